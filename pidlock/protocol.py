#!/usr/bin/env python3
# SPDX-License-Identifier: MIT
"""
The guard protocol: decide whether this process may run as the single
instance for a key, and hand back a releasable lock if so.

Usage:
    from pidlock import guard

    with guard("/tmp", "supercalifragilisticexpialidocious") as outcome:
        if outcome.granted:
            run()
        else:
            pass  # Another instance is already running.

The protocol errs on the side of letting a new instance take over rather
than refusing forever. It is meant to run under a supervisor that restarts
the application, or pages someone, if it ends up crash-looping.
"""

import atexit
import os
import threading
from dataclasses import dataclass, replace
from pathlib import Path
from typing import Any, Dict, List, Optional

from pidlock.debug_logger import get_logger
from pidlock.errors import LockFatal, LockRefused, ProcessUnreadable
from pidlock.identity import Resolver, identity_of, read_cmdline
from pidlock.models import GuardRecord, GuardState, PointerResult, RemoveResult
from pidlock.namespace import LockNamespace, remove_if_present


# =============================================================================
# Exit registry
# =============================================================================


class ExitRegistry:
    """
    Process-wide list of granted handles still to be released at exit.

    Handles add themselves when granted and remove themselves on explicit
    release, so a handle is released at most once. The atexit hook is
    installed lazily on first use.
    """

    def __init__(self) -> None:
        self._handles: List["LockHandle"] = []
        self._lock = threading.Lock()
        self._installed = False

    def add(self, handle: "LockHandle") -> None:
        with self._lock:
            if not self._installed:
                atexit.register(self.run)
                self._installed = True
            self._handles.append(handle)

    def discard(self, handle: "LockHandle") -> bool:
        with self._lock:
            if handle in self._handles:
                self._handles.remove(handle)
                return True
            return False

    def __contains__(self, handle: object) -> bool:
        with self._lock:
            return handle in self._handles

    def __len__(self) -> int:
        with self._lock:
            return len(self._handles)

    def run(self) -> None:
        """Release every remaining handle created by this process."""
        with self._lock:
            pending = self._handles
            self._handles = []
        current_pid = os.getpid()
        for handle in pending:
            # A forked child inherits the list but does not own the locks
            if handle.creator_pid == current_pid:
                handle.release(via="exit")


_exit_registry = ExitRegistry()


def get_exit_registry() -> ExitRegistry:
    return _exit_registry


# =============================================================================
# Lock handle
# =============================================================================


class LockHandle:
    """
    A granted lock, or a no-op stand-in for a refused one.

    release() is idempotent and never raises: it removes the lock pointer
    only if it still refers to this handle's owner directory, then removes
    the owner directory.
    """

    def __init__(self, namespace: Optional[LockNamespace] = None, owner_dir: Optional[Path] = None):
        self.namespace = namespace
        self.owner_dir = owner_dir
        self.creator_pid = os.getpid()
        self._released = owner_dir is None
        self._lock = threading.Lock()

    @classmethod
    def noop(cls) -> "LockHandle":
        return cls()

    @property
    def active(self) -> bool:
        return not self._released

    def release(self, via: str = "explicit") -> None:
        with self._lock:
            if self._released:
                return
            self._released = True
        _exit_registry.discard(self)

        pointer_removed = False
        if self.namespace.points_to(self.owner_dir):
            result = remove_if_present(self.namespace.lock_pointer)
            pointer_removed = result is RemoveResult.REMOVED
        owner_removed = remove_if_present(self.owner_dir).gone
        get_logger().release(str(self.owner_dir), pointer_removed, owner_removed, via)

    def __enter__(self) -> "LockHandle":
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.release()
        return False

    def __repr__(self) -> str:
        state = "active" if self.active else "inactive"
        return f"LockHandle({self.owner_dir}, {state})"


# =============================================================================
# Outcome
# =============================================================================


@dataclass(frozen=True)
class Outcome:
    """Result of one guard attempt."""
    state: GuardState  # GRANTED, REFUSED or FATAL
    stage: GuardState  # Last protocol stage reached before the decision
    record: GuardRecord
    handle: LockHandle
    took_over: bool = False
    reason: str = ""
    error: Optional[str] = None

    @property
    def granted(self) -> bool:
        return self.state is GuardState.GRANTED

    def release(self) -> None:
        self.handle.release()

    def __enter__(self) -> "Outcome":
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.handle.release()
        return False


# =============================================================================
# Protocol
# =============================================================================


class _GuardAttempt:
    """State machine for a single acquisition attempt."""

    def __init__(self, namespace: LockNamespace, pid: int, resolver: Resolver, exit_hook: bool):
        self.namespace = namespace
        self.resolver = resolver
        self.exit_hook = exit_hook
        self.stage = GuardState.WIPE_STALE_PRIOR_RUN
        self.record = GuardRecord(
            pid=pid,
            identity=None,
            owner_dir=namespace.owner_dir(pid),
            lock_pointer=namespace.lock_pointer,
        )
        self._logger = get_logger()

    def run(self) -> Outcome:
        ns = self.namespace
        owner_dir = self.record.owner_dir

        # Anything already at our owner path belongs to an earlier process
        # that had the same pid.
        self._enter(GuardState.WIPE_STALE_PRIOR_RUN)
        wiped = remove_if_present(owner_dir)
        self._logger.removal(str(owner_dir), wiped.value)

        self._enter(GuardState.PUBLISH_OWNER)
        try:
            identity = identity_of(self.record.pid, self.resolver)
        except ProcessUnreadable as e:
            return self._fatal(str(e))
        self.record = replace(self.record, identity=identity)
        try:
            owner_dir.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            return self._fatal(f"cannot create {owner_dir}: {e}")

        self._enter(GuardState.ATTEMPT_PUBLISH_POINTER)
        try:
            published = ns.publish_pointer(owner_dir)
        except OSError as e:
            return self._fatal(f"cannot create {ns.lock_pointer}: {e}")
        if published is PointerResult.CREATED:
            return self._grant(took_over=False)

        self._enter(GuardState.RESOLVE_CONTENTION)
        foreign_pid = ns.pointer_pid(ns.read_pointer())
        foreign_identity = None
        # Our own pid in the pointer is never a live match, even though our
        # command line would compare equal. It was left by an earlier process
        # that died holding the lock before the pid was reused; refusing here
        # would keep the key locked until someone cleans it by hand.
        if foreign_pid is not None and foreign_pid != self.record.pid:
            foreign_identity = self.resolver(foreign_pid)
        # Unreadable pointer, dead holder, or a pointer to our own pid left
        # by a previous process: all stale.
        lock_is_stale = foreign_identity is None
        self.record = replace(
            self.record,
            foreign_pid=foreign_pid,
            foreign_identity=foreign_identity,
            lock_is_stale=lock_is_stale,
        )
        if not lock_is_stale and foreign_identity == identity:
            return self._refuse(f"pid {foreign_pid} with the same command line holds the lock")

        # A live holder with a different command line is taken over too.
        self._enter(
            GuardState.TAKE_OVER, {"foreign_pid": foreign_pid, "lock_is_stale": lock_is_stale}
        )
        self._logger.takeover(ns.key, foreign_pid, lock_is_stale)
        removed = remove_if_present(ns.lock_pointer)
        self._logger.removal(str(ns.lock_pointer), removed.value)
        try:
            published = ns.publish_pointer(owner_dir)
        except OSError as e:
            return self._fatal(f"cannot create {ns.lock_pointer}: {e}")
        if published is PointerResult.CREATED:
            return self._grant(took_over=True)
        return self._refuse("another process took the lock over first")

    def _enter(self, stage: GuardState, details: Optional[Dict[str, Any]] = None) -> None:
        self.stage = stage
        self._logger.stage(self.namespace.key, stage.value, details)

    def _grant(self, took_over: bool) -> Outcome:
        handle = LockHandle(self.namespace, self.record.owner_dir)
        if self.exit_hook:
            _exit_registry.add(handle)
        return self._outcome(GuardState.GRANTED, handle, took_over=took_over)

    def _refuse(self, reason: str) -> Outcome:
        return self._outcome(GuardState.REFUSED, LockHandle.noop(), reason=reason)

    def _fatal(self, error: str) -> Outcome:
        self._logger.error("guard", error, {"key": self.namespace.key, "stage": self.stage.value})
        return self._outcome(
            GuardState.FATAL,
            LockHandle.noop(),
            reason=f"failed during {self.stage.value}",
            error=error,
        )

    def _outcome(self, state: GuardState, handle: LockHandle, **kwargs) -> Outcome:
        return Outcome(state=state, stage=self.stage, record=self.record, handle=handle, **kwargs)


def guard(
    base_dir,
    key: str,
    *,
    pid: Optional[int] = None,
    resolver: Resolver = read_cmdline,
    exit_hook: bool = True,
) -> Outcome:
    """
    Try to become the single running instance for `key` under `base_dir`.

    Args:
        base_dir: Writable directory shared by all contenders (like '/tmp')
        key: Unique application key; a single path component
        pid: Pid to acquire for; defaults to the calling process
        resolver: pid -> command line, or None if the process is gone
        exit_hook: Also release the lock at interpreter exit if still held

    Returns:
        Outcome. Only proceed if outcome.granted; release via
        outcome.release(), a with block, or (fallback) process exit.

    Raises:
        ValueError: if base_dir or key is empty, or key is not a single
            path component. Protocol failures never raise.
    """
    namespace = LockNamespace(base_dir, key)
    if pid is None:
        pid = os.getpid()

    logger = get_logger()
    with logger.timer("guard", {"key": key}):
        outcome = _GuardAttempt(namespace, pid, resolver, exit_hook).run()
    logger.guard_outcome(
        key=key,
        state=outcome.state.value,
        stage=outcome.stage.value,
        took_over=outcome.took_over,
        record=outcome.record.as_dict(),
        reason=outcome.reason,
    )
    return outcome


def acquire(base_dir, key: str, **kwargs) -> LockHandle:
    """
    Like guard(), but return the handle directly and raise if not granted.

    Raises:
        LockRefused: another instance holds the key
        LockFatal: this process could not set up its own lock state
    """
    outcome = guard(base_dir, key, **kwargs)
    if outcome.state is GuardState.GRANTED:
        return outcome.handle
    if outcome.state is GuardState.REFUSED:
        raise LockRefused(outcome)
    raise LockFatal(outcome)
