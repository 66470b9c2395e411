#!/usr/bin/env python3
# SPDX-License-Identifier: MIT
"""
Shared fixtures for the pidlock test suite.
"""

from pathlib import Path
from typing import Dict, Optional

import pytest

from pidlock.debug_logger import reset_logger
from pidlock.protocol import get_exit_registry

# Above the kernel's maximum pid_max (2**22), so never a live process
NEVER_A_PID = 4194305

requires_proc = pytest.mark.skipif(
    not Path("/proc/self/cmdline").exists(),
    reason="needs a Linux /proc filesystem",
)


class FakeProcessTable:
    """Stands in for /proc: maps pid -> command line."""

    def __init__(self) -> None:
        self.cmdlines: Dict[int, str] = {}
        self.lookups = []

    def start(self, pid: int, cmdline: str) -> int:
        self.cmdlines[pid] = cmdline
        return pid

    def kill(self, pid: int) -> None:
        self.cmdlines.pop(pid, None)

    def __call__(self, pid: int) -> Optional[str]:
        self.lookups.append(pid)
        return self.cmdlines.get(pid)


# =============================================================================
# Fixtures
# =============================================================================


@pytest.fixture(autouse=True)
def isolated_env(tmp_path: Path, monkeypatch):
    """Keep tests away from real settings, logs, and debug env vars."""
    monkeypatch.delenv("PIDLOCK_DEBUG", raising=False)
    monkeypatch.delenv("PIDLOCK_BASE", raising=False)
    monkeypatch.setenv("PIDLOCK_STATE", str(tmp_path / "state"))
    monkeypatch.setenv("XDG_CONFIG_HOME", str(tmp_path / "xdg-config"))
    reset_logger()
    yield
    reset_logger()
    # Release anything a test left behind while its tmp_path still exists
    get_exit_registry().run()


@pytest.fixture
def procs() -> FakeProcessTable:
    return FakeProcessTable()


@pytest.fixture
def base_dir(tmp_path: Path) -> Path:
    """Base directory for lock namespaces; deliberately not created."""
    return tmp_path / "locks"
