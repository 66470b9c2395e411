#!/usr/bin/env python3
# SPDX-License-Identifier: MIT
"""
Debug logging for pidlock.

Outputs JSON lines format to ~/.local/state/pidlock/debug.log when
PIDLOCK_DEBUG (or debugLevel in settings.json) is set.

Levels:
  0 or unset: disabled
  1: info - guard outcomes, takeovers, releases, orphan sweeps, errors
  2: debug - timing of whole guard attempts
  3: trace - every protocol stage, removal results, log lock waits
"""

import json
import os
import sys
import time
import uuid
from contextlib import contextmanager
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, List, Optional

from pidlock.config import get_debug_level, get_state_dir
from pidlock.file_lock import FileLock


LOG_FILE_NAME = "debug.log"
MAX_LOG_SIZE_MB = 10
MAX_LOG_FILES = 3

# Session ID - generated once per process
_SESSION_ID: Optional[str] = None


def _get_session_id() -> str:
    """Get or create a session ID for correlating events."""
    global _SESSION_ID
    if _SESSION_ID is None:
        _SESSION_ID = uuid.uuid4().hex[:12]
    return _SESSION_ID


def _get_log_path() -> Path:
    return get_state_dir() / LOG_FILE_NAME


def _rotate_if_needed(log_path: Path) -> None:
    """Rotate log file if it exceeds size limit. Caller holds the log lock."""
    if not log_path.exists():
        return

    size_mb = log_path.stat().st_size / (1024 * 1024)
    if size_mb < MAX_LOG_SIZE_MB:
        return

    # debug.log.2 -> delete, debug.log.1 -> .2, debug.log -> .1
    for i in range(MAX_LOG_FILES - 1, 0, -1):
        old_path = log_path.parent / f"{LOG_FILE_NAME}.{i}"
        new_path = log_path.parent / f"{LOG_FILE_NAME}.{i + 1}"
        if old_path.exists():
            if i == MAX_LOG_FILES - 1:
                old_path.unlink()
            else:
                old_path.rename(new_path)

    log_path.rename(log_path.parent / f"{LOG_FILE_NAME}.1")


class DebugLogger:
    """
    JSON lines debug logger for pidlock.

    All methods are no-ops when the debug level is 0.
    """

    def __init__(self) -> None:
        self._level = get_debug_level()
        self._log_path = _get_log_path() if self._level > 0 else None

    @property
    def enabled(self) -> bool:
        return self._level > 0

    @property
    def level(self) -> int:
        return self._level

    @property
    def log_path(self) -> Optional[Path]:
        return self._log_path

    def _write(self, event: Dict[str, Any]) -> None:
        """Write an event to the log file."""
        if not self.enabled or self._log_path is None:
            return

        event["timestamp"] = datetime.now(timezone.utc).isoformat().replace("+00:00", "Z")
        event["session_id"] = _get_session_id()
        event["pid"] = os.getpid()

        line = json.dumps(event, default=str) + "\n"
        try:
            self._log_path.parent.mkdir(parents=True, exist_ok=True)
            start = time.perf_counter()
            with FileLock(self._log_path):
                wait_ms = (time.perf_counter() - start) * 1000
                _rotate_if_needed(self._log_path)
                with open(self._log_path, "a") as f:
                    f.write(line)
                    if self._level >= 3:
                        f.write(json.dumps({
                            "event": "log_lock",
                            "level": "trace",
                            "wait_ms": round(wait_ms, 2),
                            "timestamp": event["timestamp"],
                            "session_id": event["session_id"],
                            "pid": event["pid"],
                        }) + "\n")
        except (OSError, ValueError) as e:
            # Never let logging errors affect the lock protocol.
            if self._level >= 3:
                print(f"[pidlock.debug_logger] write failed: {type(e).__name__}: {e}", file=sys.stderr)

    # =========================================================================
    # Level 1: Info events
    # =========================================================================

    def guard_outcome(
        self,
        key: str,
        state: str,
        stage: str,
        took_over: bool,
        record: Dict[str, Any],
        reason: str = "",
    ) -> None:
        """Log the terminal result of a guard attempt."""
        if self._level < 1:
            return
        event = {
            "event": "guard_outcome",
            "level": "info",
            "key": key,
            "state": state,
            "stage": stage,
            "took_over": took_over,
            "record": record,
        }
        if reason:
            event["reason"] = reason
        self._write(event)

    def takeover(self, key: str, foreign_pid: Optional[int], lock_is_stale: bool) -> None:
        """Log a forcible replacement of an existing lock pointer."""
        if self._level < 1:
            return
        self._write(
            {
                "event": "takeover",
                "level": "info",
                "key": key,
                "foreign_pid": foreign_pid,
                "lock_is_stale": lock_is_stale,
            }
        )

    def release(self, owner_dir: str, pointer_removed: bool, owner_removed: bool, via: str) -> None:
        """Log a release; `via` is 'explicit' or 'exit'."""
        if self._level < 1:
            return
        self._write(
            {
                "event": "release",
                "level": "info",
                "owner_dir": owner_dir,
                "pointer_removed": pointer_removed,
                "owner_removed": owner_removed,
                "via": via,
            }
        )

    def orphans_swept(self, key_dir: str, removed: List[int], failed: List[int]) -> None:
        if self._level < 1:
            return
        self._write(
            {
                "event": "orphans_swept",
                "level": "info",
                "key_dir": key_dir,
                "removed": removed[:50],  # Limit array size
                "failed": failed[:50],
            }
        )

    def error(self, operation: str, error: str, context: Optional[Dict] = None) -> None:
        """Log errors - level 1 (always shown when debug enabled)."""
        if self._level < 1:
            return
        event = {"event": "error", "level": "error", "op": operation, "err": error}
        if context:
            event["ctx"] = context
        self._write(event)

    # =========================================================================
    # Level 2: Debug events (includes timing)
    # =========================================================================

    @contextmanager
    def timer(self, operation: str, context: Optional[Dict[str, Any]] = None):
        """Context manager to time any operation at level 2.

        Usage:
            with logger.timer("guard", {"key": "app"}):
                do_work()

        Logs: {"event": "timing", "op": "guard", "ms": 0.42, "key": "app"}
        """
        if self._level < 2:
            yield
            return

        start = time.perf_counter()
        try:
            yield
        finally:
            duration_ms = (time.perf_counter() - start) * 1000
            event = {
                "event": "timing",
                "level": "debug",
                "op": operation,
                "ms": round(duration_ms, 2),
            }
            if context:
                event.update(context)
            self._write(event)

    # =========================================================================
    # Level 3: Trace events
    # =========================================================================

    def stage(self, key: str, stage: str, details: Optional[Dict[str, Any]] = None) -> None:
        """Log entry into a guard protocol stage."""
        if self._level < 3:
            return
        event = {"event": "stage", "level": "trace", "key": key, "stage": stage}
        if details:
            event.update(details)
        self._write(event)

    def removal(self, path: str, result: str) -> None:
        if self._level < 3:
            return
        self._write(
            {
                "event": "remove",
                "level": "trace",
                "path": path,
                "result": result,
            }
        )


# Global singleton
_logger: Optional[DebugLogger] = None


def get_logger() -> DebugLogger:
    """Get the global debug logger instance."""
    global _logger
    if _logger is None:
        _logger = DebugLogger()
    return _logger


def reset_logger() -> None:
    """Reset the global logger (for testing)."""
    global _logger
    _logger = None
