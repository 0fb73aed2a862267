"""
Tests for Status Reporting
==========================

Tests for turing/status.py
"""

import os
from datetime import datetime, timedelta, timezone
from unittest.mock import patch

import pytest

from turing.capture import CaptureEngine, CaptureRequest
from turing.config import TuringConfig
from turing.context_log import ContextLog
from turing.git_state import RepoStatus
from turing.index import IndexEntry, JsonIndexStore
from turing.session_state import SessionRecordStore
from turing.status import find_session_dirs, format_age, project_status, workstation_status


NOW = datetime(2026, 6, 1, 12, 0, tzinfo=timezone.utc)


@pytest.fixture
def config(temp_project):
    return TuringConfig(project_dir=temp_project)


def capture(config, session_id, tty, now):
    with patch("turing.capture.query_repo_status", return_value=RepoStatus()):
        request = CaptureRequest(session_id=session_id, project_dir=config.project_dir, tty=tty)
        return CaptureEngine(config).capture(request, now=now)


def make_project(path, sessions: int):
    sessions_dir = path / ".claude" / "sessions"
    sessions_dir.mkdir(parents=True)
    index = JsonIndexStore(sessions_dir)
    for i in range(sessions):
        index.put(f"s{i}", IndexEntry(session_id=f"s{i}", tokens=100))
    return path


class TestFormatAge:
    """Tests for format_age."""

    def test_minutes(self):
        assert format_age(NOW - timedelta(minutes=5), NOW) == "5m ago"

    def test_hours(self):
        assert format_age(NOW - timedelta(hours=3, minutes=20), NOW) == "3h ago"

    def test_days(self):
        assert format_age(NOW - timedelta(days=2, hours=1), NOW) == "2d ago"

    def test_future_and_unknown(self):
        assert format_age(NOW + timedelta(minutes=5), NOW) == "0m ago"
        assert format_age(None, NOW) == "unknown"


class TestProjectStatus:
    """Tests for project_status."""

    def test_no_sessions(self, config):
        status = project_status(config, now=NOW)
        assert not status.has_sessions
        assert status.sessions == []
        assert status.latest is None

    def test_sessions_sorted_by_recency(self, config):
        capture(config, "older", "/dev/pts/1", NOW - timedelta(hours=5))
        capture(config, "newer", "/dev/pts/2", NOW - timedelta(minutes=10))

        status = project_status(config, now=NOW)

        assert status.has_sessions
        assert status.from_index
        assert [row.session_id for row in status.sessions] == ["newer", "older"]
        assert status.sessions[0].age == "10m ago"
        assert status.sessions[1].age == "5h ago"
        assert status.total_tokens == sum(row.tokens for row in status.sessions)
        assert status.total_bytes > 0
        assert status.last_updated is not None

    def test_latest_details(self, config):
        capture(config, "only", "/dev/pts/1", NOW - timedelta(hours=2))
        capture(config, "only", "/dev/pts/1", NOW - timedelta(hours=1))
        SessionRecordStore(config.sessions_dir, "only").decision_log().append(title="Use JSON")

        latest = project_status(config, now=NOW).latest

        assert latest.session_id == "only"
        assert latest.compaction_count == 2
        assert latest.archive_count == 1
        assert latest.adr_count == 1
        assert latest.adr_titles == ["ADR-001: Use JSON"]
        assert len(latest.token_history) == 2
        assert latest.validation["status"] == "success"
        assert latest.tokens["status"] == "ok"

    def test_threads_and_journal(self, config):
        capture(config, "one", "/dev/pts/1", NOW)
        context = ContextLog(config.sessions_dir / "context.md").load()
        context.add_thread("open item")
        context.save()

        status = project_status(config, now=NOW)
        assert status.open_threads == ["open item"]
        assert status.journal_count == 1

    def test_without_index_scans_metadata(self, config):
        capture(config, "scanned", "/dev/pts/1", NOW)
        (config.sessions_dir / "index.json").unlink()

        status = project_status(config, now=NOW)
        assert not status.from_index
        assert [row.session_id for row in status.sessions] == ["scanned"]

    def test_to_dict(self, config):
        capture(config, "one", "/dev/pts/1", NOW)
        data = project_status(config, now=NOW).to_dict()
        assert data["sessions"][0]["session_id"] == "one"
        assert data["latest"]["session_id"] == "one"
        assert "total_kb" in data


class TestWorkstationScan:
    """Tests for find_session_dirs and workstation_status."""

    def test_finds_projects_within_depth(self, temp_project):
        make_project(temp_project / "alpha", 1)
        make_project(temp_project / "group" / "beta", 3)
        make_project(temp_project / "a" / "b" / "c" / "too-deep", 1)

        found = find_session_dirs([temp_project], max_depth=3)
        names = sorted(p.name for p in found)
        assert names == ["alpha", "beta"]

    def test_skips_hidden_and_vendor_dirs(self, temp_project):
        make_project(temp_project / ".cache" / "hidden", 1)
        make_project(temp_project / "node_modules" / "pkg", 1)
        make_project(temp_project / "real", 1)

        assert [p.name for p in find_session_dirs([temp_project])] == ["real"]

    def test_duplicate_roots_counted_once(self, temp_project):
        make_project(temp_project / "alpha", 2)
        link = temp_project.parent / (temp_project.name + "-link")
        try:
            os.symlink(temp_project, link)
        except (OSError, NotImplementedError):
            pytest.skip("symlinks unavailable")
        try:
            found = find_session_dirs([temp_project, link, temp_project])
            assert len(found) == 1
        finally:
            link.unlink()

    def test_missing_roots(self, temp_project):
        assert find_session_dirs([temp_project / "nope"]) == []

    def test_workstation_status(self, temp_project):
        make_project(temp_project / "small", 1)
        make_project(temp_project / "big", 3)
        empty = temp_project / "empty" / ".claude" / "sessions"
        empty.mkdir(parents=True)

        status = workstation_status([str(temp_project)])

        assert [p.name for p in status.projects] == ["big", "small"]
        assert status.total_sessions == 4
        assert status.total_tokens == 400
        assert status.to_dict()["total_projects"] == 2

    def test_counts_state_files_without_index(self, temp_project):
        session = temp_project / "legacy" / ".claude" / "sessions" / "abc"
        session.mkdir(parents=True)
        (session / "state.md").write_text("x" * 400, encoding="utf-8")

        status = workstation_status([str(temp_project)])
        assert status.projects[0].name == "legacy"
        assert status.projects[0].sessions == 1
        assert status.projects[0].tokens == 100
