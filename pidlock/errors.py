#!/usr/bin/env python3
# SPDX-License-Identifier: MIT
"""
Exceptions raised by pidlock.

guard() reports protocol failures through its Outcome; these exceptions
exist for the raising convenience layer (acquire) and for identity lookups
of the calling process itself.
"""

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from pidlock.protocol import Outcome


class PidLockError(Exception):
    """Base class for pidlock errors."""


class ProcessUnreadable(PidLockError):
    """The process-table entry for a pid could not be read."""

    def __init__(self, pid: int):
        super().__init__(f"cannot read command line of pid {pid}")
        self.pid = pid


class LockRefused(PidLockError):
    """Another live instance with the same identity holds the key."""

    def __init__(self, outcome: "Outcome"):
        super().__init__(outcome.reason or "lock refused")
        self.outcome = outcome


class LockFatal(PidLockError):
    """The caller could not establish its own bookkeeping state."""

    def __init__(self, outcome: "Outcome"):
        super().__init__(outcome.error or outcome.reason or "lock attempt failed")
        self.outcome = outcome
