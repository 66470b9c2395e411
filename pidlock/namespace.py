#!/usr/bin/env python3
# SPDX-License-Identifier: MIT
"""
Lock namespace layout and the filesystem primitives the guard is built on.

For a base directory and key the layout is:

    <base>/<key>/<pid>   owner directory, one per acquiring process
    <base>/<key>/lock    symlink to the owner directory currently holding the key

Creating the symlink is the only synchronization primitive: os.symlink()
fails with FileExistsError if the pointer already exists, and that
create-or-fail is atomic on local POSIX filesystems.
"""

import os
from dataclasses import dataclass
from pathlib import Path
from typing import List, Optional

from pidlock.models import LOCK_POINTER_NAME, PointerResult, RemoveResult


def remove_if_present(path: Path) -> RemoveResult:
    """
    Remove a symlink, file, or empty directory without raising.

    ABSENT and REMOVED are equivalent outcomes for callers that only need
    the path gone; FAILED means something is still there.
    """
    try:
        if path.is_symlink() or not path.is_dir():
            path.unlink()
        else:
            path.rmdir()
    except FileNotFoundError:
        return RemoveResult.ABSENT
    except OSError:
        return RemoveResult.FAILED
    return RemoveResult.REMOVED


@dataclass(frozen=True)
class LockNamespace:
    """Paths for one (base directory, key) pair."""
    base_dir: Path
    key: str

    def __post_init__(self):
        key = self.key
        if not isinstance(key, str) or not key:
            raise ValueError("key must be a non-empty string")
        if os.sep in key or (os.altsep and os.altsep in key) or key in (".", ".."):
            raise ValueError(f"key must be a single path component: {key!r}")
        if self.base_dir is None or (isinstance(self.base_dir, str) and not self.base_dir):
            raise ValueError("base_dir must be a non-empty path")
        # Absolute so that pointer targets compare equal across processes
        object.__setattr__(self, "base_dir", Path(os.path.abspath(self.base_dir)))

    @property
    def key_dir(self) -> Path:
        return self.base_dir / self.key

    @property
    def lock_pointer(self) -> Path:
        return self.key_dir / LOCK_POINTER_NAME

    def owner_dir(self, pid: int) -> Path:
        return self.key_dir / str(pid)

    # -------------------------------------------------------------------------
    # Pointer operations
    # -------------------------------------------------------------------------

    def publish_pointer(self, target: Path) -> PointerResult:
        """
        Atomically point the lock at `target`.

        Returns ALREADY_EXISTS instead of overwriting an existing pointer.
        Any other OSError propagates; it means the namespace is unusable.
        """
        try:
            os.symlink(str(target), str(self.lock_pointer))
        except FileExistsError:
            return PointerResult.ALREADY_EXISTS
        return PointerResult.CREATED

    def read_pointer(self) -> Optional[Path]:
        """Return the pointer's target, or None if it cannot be read."""
        try:
            return Path(os.readlink(str(self.lock_pointer)))
        except OSError:
            return None

    @staticmethod
    def pointer_pid(target: Optional[Path]) -> Optional[int]:
        """Recover the holder's pid from the last component of a pointer target."""
        if target is None:
            return None
        try:
            pid = int(target.name)
        except ValueError:
            return None
        return pid if pid > 0 else None

    def points_to(self, owner_dir: Path) -> bool:
        return self.read_pointer() == owner_dir

    # -------------------------------------------------------------------------
    # Inspection
    # -------------------------------------------------------------------------

    def owner_pids(self) -> List[int]:
        """Pids that currently have an owner directory, sorted."""
        try:
            entries = list(self.key_dir.iterdir())
        except OSError:
            return []
        pids = []
        for entry in entries:
            if entry.name.isdigit() and entry.is_dir() and not entry.is_symlink():
                pids.append(int(entry.name))
        return sorted(pids)
