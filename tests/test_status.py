#!/usr/bin/env python3
# SPDX-License-Identifier: MIT
"""
Test suite for namespace inspection and orphan sweeping.

Run with: pytest tests/test_status.py -v
"""

import json
import os
from pathlib import Path

from pidlock.models import format_identity
from pidlock.protocol import guard
from pidlock.status import read_status, sweep_orphans

APP = "/usr/bin/app\0--serve\0"


def _hold(base_dir: Path, procs, pid: int, cmdline: str = APP):
    procs.start(pid, cmdline)
    return guard(base_dir, "k", pid=pid, resolver=procs, exit_hook=False)


# =============================================================================
# Tests: read_status
# =============================================================================


class TestReadStatus:

    def test_empty_namespace(self, base_dir: Path, procs):
        status = read_status(base_dir, "k", procs)

        assert not status.pointer_exists
        assert not status.held
        assert status.holder_pid is None
        assert status.owners == []

    def test_live_holder(self, base_dir: Path, procs):
        _hold(base_dir, procs, 101)

        status = read_status(base_dir, "k", procs)

        assert status.held
        assert not status.stale
        assert status.holder_pid == 101
        assert status.holder_identity == APP
        assert [(o.pid, o.alive, o.referenced) for o in status.owners] == [(101, True, True)]

    def test_dead_holder_is_stale(self, base_dir: Path, procs):
        _hold(base_dir, procs, 101)
        procs.kill(101)

        status = read_status(base_dir, "k", procs)

        assert status.pointer_exists
        assert status.stale
        assert not status.held
        # Referenced, so not an orphan even though dead
        assert status.orphans == []

    def test_orphans_listed(self, base_dir: Path, procs):
        _hold(base_dir, procs, 101)
        procs.kill(101)
        _hold(base_dir, procs, 102, "/usr/bin/other\0")

        status = read_status(base_dir, "k", procs)

        assert status.holder_pid == 102
        assert [o.pid for o in status.orphans] == [101]

    def test_to_dict_is_json(self, base_dir: Path, procs):
        _hold(base_dir, procs, 101)

        data = json.loads(json.dumps(read_status(base_dir, "k", procs).to_dict()))

        assert data["held"] is True
        assert data["holder_pid"] == 101
        assert data["holder_cmdline"] == "/usr/bin/app --serve"
        assert data["owners"][0]["referenced"] is True

    def test_format(self, base_dir: Path, procs):
        _hold(base_dir, procs, 101)
        procs.kill(101)

        text = read_status(base_dir, "k", procs).format()

        assert "STALE by pid 101" in text
        assert "[101] referenced, dead" in text

    def test_format_without_pointer(self, base_dir: Path, procs):
        assert "lock: (none)" in read_status(base_dir, "k", procs).format()


# =============================================================================
# Tests: sweep_orphans
# =============================================================================


class TestSweepOrphans:

    def test_removes_only_orphans(self, base_dir: Path, procs):
        _hold(base_dir, procs, 101)
        procs.kill(101)
        holder = _hold(base_dir, procs, 102, "/usr/bin/other\0")
        waiting = _hold(base_dir, procs, 103, "/usr/bin/other\0")  # Refused, alive
        assert not waiting.granted

        removed = sweep_orphans(base_dir, "k", procs)

        assert removed == [101]
        assert not (base_dir / "k" / "101").exists()
        assert holder.record.owner_dir.is_dir()
        assert waiting.record.owner_dir.is_dir()
        assert Path(os.readlink(base_dir / "k" / "lock")) == holder.record.owner_dir

    def test_never_touches_stale_pointer(self, base_dir: Path, procs):
        _hold(base_dir, procs, 101)
        procs.kill(101)

        assert sweep_orphans(base_dir, "k", procs) == []
        assert (base_dir / "k" / "lock").is_symlink()
        assert (base_dir / "k" / "101").is_dir()

    def test_nonempty_orphan_is_skipped(self, base_dir: Path, procs):
        orphan = base_dir / "k" / "77"
        orphan.mkdir(parents=True)
        (orphan / "junk").write_text("x")

        assert sweep_orphans(base_dir, "k", procs) == []
        assert orphan.is_dir()

    def test_missing_namespace(self, base_dir: Path, procs):
        assert sweep_orphans(base_dir, "k", procs) == []


class TestFormatIdentity:

    def test_joins_nul_separated_args(self):
        assert format_identity("a\0b c\0") == "a b c"

    def test_none(self):
        assert format_identity(None) is None
