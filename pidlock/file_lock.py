#!/usr/bin/env python3
# SPDX-License-Identifier: MIT
"""
Advisory flock() around a shared file.

Used by the debug logger so that several processes contending for the same
key can append to, and rotate, one log file without interleaving. This is
unrelated to the pid lock itself, which never relies on flock().
"""

import fcntl
from pathlib import Path
from typing import IO, Optional


class FileLock:
    """Context manager holding an exclusive flock on `<file>.lock`."""

    def __init__(self, file_path: Path):
        self.file_path = Path(file_path)
        self.lock_path = self.file_path.with_name(self.file_path.name + ".lock")
        self._lock_file: Optional[IO[str]] = None

    @property
    def locked(self) -> bool:
        return self._lock_file is not None

    def acquire(self) -> None:
        if self._lock_file is not None:
            return
        self.lock_path.parent.mkdir(parents=True, exist_ok=True)
        lock_file = open(self.lock_path, "a")
        try:
            fcntl.flock(lock_file.fileno(), fcntl.LOCK_EX)
        except OSError:
            lock_file.close()
            raise
        self._lock_file = lock_file

    def release(self) -> None:
        if self._lock_file is None:
            return
        try:
            fcntl.flock(self._lock_file.fileno(), fcntl.LOCK_UN)
        finally:
            self._lock_file.close()
            self._lock_file = None
        # The marker file is left in place: deleting it would let two
        # processes hold flocks on different inodes for the same path.

    def __enter__(self):
        self.acquire()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.release()
        return False
