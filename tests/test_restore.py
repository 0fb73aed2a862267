"""
Tests for the Restore Engine
============================

Tests for turing/restore.py
"""

from datetime import datetime, timedelta, timezone
from unittest.mock import patch

import pytest

from turing.capture import CaptureEngine, CaptureRequest
from turing.config import TuringConfig
from turing.context_log import ContextLog
from turing.document import ALL
from turing.git_state import RepoStatus
from turing.restore import Outcome, RestoreEngine, RestoreRequest
from turing.session_state import SessionRecordStore


NOW = datetime(2026, 4, 2, 10, 0, tzinfo=timezone.utc)


@pytest.fixture
def config(temp_project):
    return TuringConfig(project_dir=temp_project)


@pytest.fixture(autouse=True)
def no_git():
    with patch("turing.capture.query_repo_status", return_value=RepoStatus()), \
            patch("turing.restore.query_repo_status", return_value=RepoStatus()):
        yield


def capture(config, session_id, tty="/dev/pts/1", now=NOW):
    request = CaptureRequest(session_id=session_id, project_dir=config.project_dir, tty=tty)
    return CaptureEngine(config).capture(request, now=now)


def restore(config, session_id="", source="startup", tty="/dev/pts/1", full=False, now=NOW):
    request = RestoreRequest(
        session_id=session_id,
        project_dir=config.project_dir,
        source=source,
        tty=tty,
        full=full,
    )
    return RestoreEngine(config).restore(request, now=now)


class TestRestoreRequest:
    """Tests for request parsing and thresholds."""

    def test_from_hook_input(self, temp_project):
        request = RestoreRequest.from_hook_input({"session_id": "abc", "source": "resume"}, temp_project, "/dev/pts/1")
        assert request.session_id == "abc"
        assert request.source == "resume"

    def test_default_source(self, temp_project):
        assert RestoreRequest.from_hook_input({}, temp_project, "pipe").source == "startup"

    @pytest.mark.parametrize("source,threshold", [
        ("startup", "HIGH"),
        ("resume", "MEDIUM"),
        ("compact", "MEDIUM"),
        ("clear", None),
    ])
    def test_thresholds(self, temp_project, source, threshold):
        assert RestoreRequest("s", temp_project, source=source).threshold == threshold

    def test_full(self, temp_project):
        assert RestoreRequest("s", temp_project, source="startup", full=True).threshold == ALL


class TestStartup:
    """Startup restores run discovery."""

    def test_fresh_start_without_sessions(self, config):
        result = restore(config, session_id="brand-new")
        assert result.outcome == Outcome.FRESH_START
        assert result.text.startswith("# [TURING] Fresh Start")
        assert "**Session ID**: brand-new" in result.text
        assert "Fresh tape" in result.text

    def test_previous_session_detected(self, config):
        capture(config, "old-session", tty="/dev/pts/1")

        result = restore(config, session_id="new-session", tty="/dev/pts/1")

        assert result.outcome == Outcome.PREVIOUS_SESSION
        assert result.session_id == "old-session"
        assert "# [TURING] Previous Session Detected" in result.text
        assert "**Previous Session**: old-session" in result.text
        assert "**Discovery**: same terminal" in result.text
        assert "**TTY Match**: Yes (same terminal)" in result.text
        assert "## Active Focus" in result.text
        assert "## Key Decisions" in result.text
        assert "## Modified Files" not in result.text
        assert "## Session History" not in result.text

    def test_different_terminal_note(self, config):
        capture(config, "old-session", tty="/dev/pts/9")
        result = restore(config, session_id="new-session", tty="/dev/pts/1")
        assert "**Discovery**: only recent session" in result.text
        assert "**TTY Match**: No (different terminal, was: /dev/pts/9)" in result.text

    def test_missing_state_file(self, config):
        capture(config, "old-session")
        SessionRecordStore(config.sessions_dir, "old-session").state_path.unlink()
        result = restore(config, session_id="new-session")
        assert result.outcome == Outcome.FRESH_START
        assert "state file missing" in result.text

    def test_restore_metadata_footer(self, config):
        capture(config, "old-session")
        result = restore(config, session_id="new-session")
        assert "## Restore Metadata" in result.text
        assert "- **Priority Filter**: HIGH" in result.text
        assert "- **Included Priorities**: CRITICAL, HIGH" in result.text
        assert "- **Excluded Priorities**: ARCHIVE, LOW, MEDIUM" in result.text
        assert "/turing-full" in result.text
        assert "- **Checksum**: verified" in result.text
        assert result.filter_result.included == {"CRITICAL", "HIGH"}

    def test_checksum_side_file_disagrees(self, config):
        capture(config, "old-session")
        SessionRecordStore(config.sessions_dir, "old-session").write_checksum("f" * 32)
        result = restore(config, session_id="new-session")
        assert "- **Checksum**: mismatch" in result.text

    def test_corrupt_metadata_still_restores(self, config):
        capture(config, "good")
        (config.sessions_dir / "index.json").unlink()
        good_metadata = config.sessions_dir / "good" / "metadata.json"
        good_metadata.write_text('{"tokens": null, "compaction_count": "many"}', encoding="utf-8")

        result = restore(config, session_id="new-session")

        assert result.outcome == Outcome.PREVIOUS_SESSION
        assert result.session_id == "good"

    def test_startup_does_not_mark_restored(self, config):
        capture(config, "old-session")
        restore(config, session_id="new-session")
        assert SessionRecordStore(config.sessions_dir, "old-session").load_metadata().phase == "COMPACTING"


class TestContinuing:
    """Resume and compact restore the caller's own record."""

    def test_exact_match(self, config):
        capture(config, "sess-1")
        result = restore(config, session_id="sess-1", source="resume")

        assert result.outcome == Outcome.RESTORED
        assert result.text.startswith("# [TURING] State Restored")
        assert "(Fallback)" not in result.text
        assert "## Modified Files" in result.text
        assert "## Project Context" not in result.text
        assert result.filter_result.included == {"CRITICAL", "HIGH", "MEDIUM"}

    def test_exact_match_marks_restored(self, config):
        capture(config, "sess-1")
        restore(config, session_id="sess-1", source="compact")
        assert SessionRecordStore(config.sessions_dir, "sess-1").load_metadata().phase == "RESTORED"

    def test_fallback_to_discovery(self, config):
        capture(config, "older", tty="/dev/pts/1")
        result = restore(config, session_id="sess-without-state", source="resume", tty="/dev/pts/1")

        assert result.outcome == Outcome.FALLBACK
        assert result.session_id == "older"
        assert "# [TURING] State Restored (Fallback)" in result.text
        assert "**Restored From**: older" in result.text
        assert "fallback" in result.text

    def test_no_state_found(self, config):
        result = restore(config, session_id="ghost", source="resume")
        assert result.outcome == Outcome.NO_STATE
        assert "# [TURING] No State Found" in result.text

    def test_full_restore(self, config):
        capture(config, "sess-1")
        result = restore(config, session_id="sess-1", source="startup", full=True)
        assert result.outcome == Outcome.RESTORED
        assert result.threshold == ALL
        assert "## Session History" in result.text
        assert "Excluded Priorities" not in result.text


class TestUnknownSource:
    """Unexpected sources are reported without a state lookup."""

    def test_unknown_source(self, config):
        capture(config, "sess-1")
        result = restore(config, session_id="sess-1", source="clear")
        assert result.outcome == Outcome.UNKNOWN_SOURCE
        assert "# [TURING] Unknown Source" in result.text
        assert "**Source**: clear (unexpected)" in result.text
        assert "## Active Focus" not in result.text


class TestExtras:
    """ADR, thread and git sections appended to restores."""

    def test_adr_section(self, temp_project):
        config = TuringConfig(project_dir=temp_project, adr_display_limit=2)
        capture(config, "sess-1")
        log = SessionRecordStore(config.sessions_dir, "sess-1").decision_log()
        log.append(title="One", summary="first")
        log.append(title="Two")
        log.append(title="Three")

        text = restore(config, session_id="sess-1", source="resume").text
        assert "## Architecture Decision Records (Current Session)" in text
        assert "- **Total Entries**: 3" in text
        assert "- **ADR-001: One** — first" in text
        assert "- **ADR-002: Two**" in text
        assert "ADR-003" not in text
        assert "_... and 1 more_" in text

    def test_adr_section_previous_session(self, config):
        capture(config, "old")
        SessionRecordStore(config.sessions_dir, "old").decision_log().append(title="Kept")
        text = restore(config, session_id="new").text
        assert "## Architecture Decision Records (Previous Session)" in text

    def test_no_adrs_on_fresh_start(self, config):
        assert "Architecture Decision Records" not in restore(config, session_id="new").text

    def test_open_threads(self, config):
        context = ContextLog(config.sessions_dir / "context.md")
        for i in range(7):
            context.add_thread(f"thread {i}")
        context.complete_thread("thread 6")
        context.save()

        text = restore(config, session_id="new").text
        assert "## Open Threads" in text
        assert "- [ ] thread 5" in text
        assert "- [ ] thread 2" in text
        assert "thread 6" not in text
        assert "- [ ] thread 1" not in text

    def test_open_threads_on_unknown_source(self, config):
        context = ContextLog(config.sessions_dir / "context.md")
        context.add_thread("carry me")
        context.save()
        assert "- [ ] carry me" in restore(config, source="clear").text

    def test_git_section(self, config):
        repo = RepoStatus(is_repo=True, branch="main", porcelain=["?? x"], last_commit="abc123 Init")
        with patch("turing.restore.query_repo_status", return_value=repo):
            text = restore(config, session_id="new").text
        assert "## Current Git State" in text
        assert "- **Branch**: main" in text
        assert "- **Last Commit**: abc123 Init" in text
        assert "- **Uncommitted Changes**: 1 files" in text

    def test_discovery_window(self, config):
        capture(config, "a", tty="/dev/pts/2", now=NOW - timedelta(hours=2))
        capture(config, "b", tty="/dev/pts/3", now=NOW - timedelta(hours=1))
        result = restore(config, session_id="c", tty="/dev/pts/1", now=NOW)
        assert result.session_id == "b"
        assert "**Discovery**: most recent capture" in result.text
