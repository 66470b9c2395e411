#!/usr/bin/env python3
# SPDX-License-Identifier: MIT
"""
pidlock - a gentle, PID-based single-instance guard.

Coordinates independently launched processes through the filesystem only:
one owner directory per process and a `lock` symlink naming the current
holder. Processes count as the same application iff their command lines
(/proc/<pid>/cmdline) match, which binds pidlock to Linux.

Usage:
    from pidlock import guard

    outcome = guard("/tmp", "supercalifragilisticexpialidocious")
    if outcome.granted:
        run()
        outcome.release()
    else:
        pass  # Another instance is already running.
"""

# Guard protocol
from pidlock.protocol import (
    ExitRegistry,
    LockHandle,
    Outcome,
    acquire,
    get_exit_registry,
    guard,
)

# Data models
from pidlock.models import (
    LOCK_POINTER_NAME,
    GuardRecord,
    GuardState,
    LockStatus,
    OwnerEntry,
    PointerResult,
    RemoveResult,
)

# Errors
from pidlock.errors import (
    LockFatal,
    LockRefused,
    PidLockError,
    ProcessUnreadable,
)

# Building blocks
from pidlock.identity import identity_of, is_alive, read_cmdline
from pidlock.namespace import LockNamespace, remove_if_present
from pidlock.status import read_status, sweep_orphans

# CLI entry point
from pidlock.cli import main

__version__ = "1.0.0"

__all__ = [
    # Guard protocol
    "guard",
    "acquire",
    "Outcome",
    "LockHandle",
    "ExitRegistry",
    "get_exit_registry",
    # Data models
    "LOCK_POINTER_NAME",
    "GuardRecord",
    "GuardState",
    "LockStatus",
    "OwnerEntry",
    "PointerResult",
    "RemoveResult",
    # Errors
    "PidLockError",
    "ProcessUnreadable",
    "LockRefused",
    "LockFatal",
    # Building blocks
    "read_cmdline",
    "identity_of",
    "is_alive",
    "LockNamespace",
    "remove_if_present",
    "read_status",
    "sweep_orphans",
    # CLI
    "main",
]
