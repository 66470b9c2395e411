#!/usr/bin/env python3
# SPDX-License-Identifier: MIT
"""
Data models for pidlock.

Contains the enums, result records, and constants shared by the guard
protocol, the namespace primitives, and the inspection helpers.
"""

from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import List, Optional


# =============================================================================
# Constants
# =============================================================================

LOCK_POINTER_NAME = "lock"
PROC_ROOT = Path("/proc")
DEFAULT_RETRY_INTERVAL = 0.5  # Seconds between attempts for CLI --wait


# =============================================================================
# Enums
# =============================================================================


class GuardState(str, Enum):
    """Stages of the guard protocol, plus its three terminal states."""
    WIPE_STALE_PRIOR_RUN = "wipe_stale_prior_run"
    PUBLISH_OWNER = "publish_owner"
    ATTEMPT_PUBLISH_POINTER = "attempt_publish_pointer"
    RESOLVE_CONTENTION = "resolve_contention"
    TAKE_OVER = "take_over"
    GRANTED = "granted"
    REFUSED = "refused"
    FATAL = "fatal"

    @property
    def terminal(self) -> bool:
        return self in (GuardState.GRANTED, GuardState.REFUSED, GuardState.FATAL)


class PointerResult(str, Enum):
    """Result of trying to create the lock pointer."""
    CREATED = "created"
    ALREADY_EXISTS = "already_exists"


class RemoveResult(str, Enum):
    """Result of a best-effort removal; absence counts as success."""
    REMOVED = "removed"
    ABSENT = "absent"
    FAILED = "failed"

    @property
    def gone(self) -> bool:
        return self is not RemoveResult.FAILED


# =============================================================================
# Data Classes
# =============================================================================


@dataclass(frozen=True)
class GuardRecord:
    """Bookkeeping for one acquisition attempt."""
    pid: int
    identity: Optional[str]
    owner_dir: Path
    lock_pointer: Path
    foreign_pid: Optional[int] = None
    foreign_identity: Optional[str] = None
    lock_is_stale: bool = False

    def as_dict(self) -> dict:
        return {
            "pid": self.pid,
            "owner_dir": str(self.owner_dir),
            "lock_pointer": str(self.lock_pointer),
            "foreign_pid": self.foreign_pid,
            "lock_is_stale": self.lock_is_stale,
            "identity_match": (
                self.foreign_identity is not None
                and self.foreign_identity == self.identity
            ),
        }


@dataclass(frozen=True)
class OwnerEntry:
    """One owner directory found under a key directory."""
    pid: int
    path: Path
    alive: bool
    referenced: bool

    @property
    def orphan(self) -> bool:
        """Dead and not pointed to by the lock pointer."""
        return not self.alive and not self.referenced


@dataclass
class LockStatus:
    """Snapshot of a lock namespace, as seen by one reader."""
    key_dir: Path
    pointer_exists: bool
    holder_pid: Optional[int] = None
    holder_identity: Optional[str] = None
    stale: bool = False
    owners: List[OwnerEntry] = field(default_factory=list)

    @property
    def held(self) -> bool:
        """True if a live process is referenced by the pointer."""
        return self.pointer_exists and not self.stale

    @property
    def orphans(self) -> List[OwnerEntry]:
        return [o for o in self.owners if o.orphan]

    def to_dict(self) -> dict:
        return {
            "key_dir": str(self.key_dir),
            "pointer_exists": self.pointer_exists,
            "held": self.held,
            "holder_pid": self.holder_pid,
            "holder_cmdline": format_identity(self.holder_identity),
            "stale": self.stale,
            "owners": [
                {
                    "pid": o.pid,
                    "path": str(o.path),
                    "alive": o.alive,
                    "referenced": o.referenced,
                }
                for o in self.owners
            ],
        }

    def format(self) -> str:
        """Format the snapshot for terminal display."""
        lines = [f"{self.key_dir}"]
        if not self.pointer_exists:
            lines.append("  lock: (none)")
        else:
            label = "STALE" if self.stale else "held"
            lines.append(f"  lock: {label} by pid {self.holder_pid}")
            if self.holder_identity is not None:
                lines.append(f"    -> {format_identity(self.holder_identity)}")
        for owner in self.owners:
            flags = []
            if owner.referenced:
                flags.append("referenced")
            flags.append("alive" if owner.alive else "dead")
            lines.append(f"  [{owner.pid}] {', '.join(flags)}")
        return "\n".join(lines)


def format_identity(identity: Optional[str]) -> Optional[str]:
    """Render a raw cmdline (NUL-separated) as a readable command line."""
    if identity is None:
        return None
    return " ".join(part for part in identity.split("\0") if part)
