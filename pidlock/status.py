#!/usr/bin/env python3
# SPDX-License-Identifier: MIT
"""
Read-only inspection of a lock namespace, and removal of orphaned owner
directories left behind by processes that died without releasing.

Neither function ever touches the lock pointer: a stale pointer is only
replaced through the guard protocol, which is the one place that knows
how to contend for it safely.
"""

from typing import List

from pidlock.debug_logger import get_logger
from pidlock.identity import Resolver, read_cmdline
from pidlock.models import LockStatus, OwnerEntry
from pidlock.namespace import LockNamespace, remove_if_present


def read_status(base_dir, key: str, resolver: Resolver = read_cmdline) -> LockStatus:
    """
    Take a snapshot of the namespace for `key`.

    The snapshot can be out of date by the time it is returned; use it for
    display and diagnostics, never to decide whether to start.
    """
    ns = LockNamespace(base_dir, key)
    target = ns.read_pointer()
    pointer_exists = ns.lock_pointer.is_symlink() or ns.lock_pointer.exists()

    status = LockStatus(key_dir=ns.key_dir, pointer_exists=pointer_exists)
    if pointer_exists:
        status.holder_pid = ns.pointer_pid(target)
        if status.holder_pid is not None:
            status.holder_identity = resolver(status.holder_pid)
        status.stale = status.holder_identity is None

    for pid in ns.owner_pids():
        owner_dir = ns.owner_dir(pid)
        status.owners.append(
            OwnerEntry(
                pid=pid,
                path=owner_dir,
                alive=resolver(pid) is not None,
                referenced=target == owner_dir,
            )
        )
    return status


def sweep_orphans(base_dir, key: str, resolver: Resolver = read_cmdline) -> List[int]:
    """
    Remove owner directories whose process is gone and which the lock
    pointer does not reference.

    Returns:
        Pids whose owner directory was removed.
    """
    status = read_status(base_dir, key, resolver)
    removed = []
    failed = []
    for owner in status.orphans:
        if remove_if_present(owner.path).gone:
            removed.append(owner.pid)
        else:
            failed.append(owner.pid)
    get_logger().orphans_swept(str(status.key_dir), removed, failed)
    return removed
