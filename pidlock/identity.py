#!/usr/bin/env python3
# SPDX-License-Identifier: MIT
"""
Process identity lookup.

A process is identified by its full command line as exposed by
/proc/<pid>/cmdline. Being able to read that entry is also the only
liveness test pidlock uses: an unreadable entry means the process is gone
(or hidden from us, which is treated the same way).

Command-line flags must not change from run to run for two launches to be
recognised as the same application; pass anything variable through the
environment or a file instead.
"""

import os
from typing import Callable, Optional

from pidlock.errors import ProcessUnreadable
from pidlock.models import PROC_ROOT

# pid -> cmdline, or None when the process table entry cannot be read
Resolver = Callable[[int], Optional[str]]


def read_cmdline(pid: int) -> Optional[str]:
    """Return the raw command line of `pid`, or None if it cannot be read."""
    try:
        raw = (PROC_ROOT / str(pid) / "cmdline").read_bytes()
    except OSError:
        return None
    # Filesystem encoding with surrogateescape: undecodable bytes stay distinct
    return os.fsdecode(raw)


def identity_of(pid: int, resolver: Resolver = read_cmdline) -> str:
    """Return the identity token of `pid`; raise ProcessUnreadable if absent."""
    identity = resolver(pid)
    if identity is None:
        raise ProcessUnreadable(pid)
    return identity


def is_alive(pid: int, resolver: Resolver = read_cmdline) -> bool:
    return resolver(pid) is not None
