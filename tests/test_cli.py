"""
Tests for the Command Line Entry Points
=======================================

Tests for turing/cli/ and turing/__main__.py
"""

import io
import json
from datetime import datetime, timezone
from unittest.mock import MagicMock, patch

import pytest

from turing.__main__ import main
from turing.cli.hooks_cli import read_hook_input, run_capture, run_restore
from turing.cli.records_cli import adr_main, resolve_session, thread_main
from turing.cli.status_cli import main as status_main
from turing.config import TuringConfig
from turing.context_log import ContextLog
from turing.decision import DecisionLog
from turing.errors import StateDirectoryError
from turing.git_state import RepoStatus
from turing.session_state import SessionRecordStore


NOW = datetime(2026, 7, 1, 8, 0, tzinfo=timezone.utc)


@pytest.fixture(autouse=True)
def fixed_terminal(monkeypatch):
    monkeypatch.setenv("TURING_TTY", "/dev/pts/7")


@pytest.fixture(autouse=True)
def no_git():
    with patch("turing.capture.query_repo_status", return_value=RepoStatus()), \
            patch("turing.restore.query_repo_status", return_value=RepoStatus()):
        yield


def hook_input(**payload) -> io.StringIO:
    return io.StringIO(json.dumps(payload))


def sessions_dir(project):
    return TuringConfig.load(project).sessions_dir


# =============================================================================
# Hook input
# =============================================================================

class TestReadHookInput:
    """Tests for read_hook_input."""

    def test_valid(self):
        assert read_hook_input(hook_input(session_id="abc")) == {"session_id": "abc"}

    @pytest.mark.parametrize("raw", ["", "   \n", "not json", "[1, 2]", "42"])
    def test_bad_input_is_empty(self, raw):
        assert read_hook_input(io.StringIO(raw)) == {}

    def test_interactive_terminal(self):
        stream = MagicMock()
        stream.isatty.return_value = True
        assert read_hook_input(stream) == {}
        stream.read.assert_not_called()


# =============================================================================
# Hooks
# =============================================================================

class TestCaptureHook:
    """Tests for the capture hook body."""

    def test_capture(self, temp_project, capsys):
        code = run_capture(temp_project, hook_input(session_id="hook-session", trigger="auto"), now=NOW)
        out = capsys.readouterr().out

        assert code == 0
        assert out.startswith("# [TURING] State Preserved")
        assert "**TTY**: /dev/pts/7" in out
        assert SessionRecordStore(sessions_dir(temp_project), "hook-session").has_state()

    def test_missing_session_id(self, temp_project, capsys):
        run_capture(temp_project, io.StringIO(""), now=NOW)
        out = capsys.readouterr().out
        assert f"**Session**: unknown-{int(NOW.timestamp())}" in out

    def test_string_threshold_in_config_file(self, temp_project, capsys):
        config_path = temp_project / ".claude" / "turing.json"
        config_path.parent.mkdir(parents=True)
        config_path.write_text(json.dumps({"token_warning_threshold": "2500"}), encoding="utf-8")

        run_capture(temp_project, hook_input(session_id="typed"), now=NOW)

        out = capsys.readouterr().out
        assert out.startswith("# [TURING] State Preserved")
        assert "Capture Failed" not in out
        metadata = SessionRecordStore(sessions_dir(temp_project), "typed").load_metadata()
        assert metadata.tokens["status"] == "ok"

    def test_state_directory_error(self, temp_project, capsys):
        with patch("turing.cli.hooks_cli.CaptureEngine") as engine:
            engine.return_value.capture.side_effect = StateDirectoryError("Cannot create directory /x: denied")
            code = run_capture(temp_project, hook_input(session_id="s"), now=NOW)
        assert code == 0
        assert capsys.readouterr().out.strip() == "# [TURING] Error: Cannot create directory /x: denied"

    def test_unexpected_error(self, temp_project, capsys):
        with patch("turing.cli.hooks_cli.CaptureEngine", side_effect=RuntimeError("boom")):
            code = run_capture(temp_project, hook_input(session_id="s"), now=NOW)
        captured = capsys.readouterr()
        assert code == 0
        assert captured.out.startswith("# [TURING] Capture Failed")
        assert "RuntimeError: boom" in captured.out
        assert "boom" in captured.err


class TestRestoreHook:
    """Tests for the restore hook body."""

    def test_fresh_start(self, temp_project, capsys):
        code = run_restore(temp_project, hook_input(session_id="new", source="startup"), now=NOW)
        assert code == 0
        assert capsys.readouterr().out.startswith("# [TURING] Fresh Start")

    def test_capture_then_restore(self, temp_project, capsys):
        run_capture(temp_project, hook_input(session_id="s1"), now=NOW)
        capsys.readouterr()

        run_restore(temp_project, hook_input(session_id="s1", source="compact"), now=NOW)
        out = capsys.readouterr().out
        assert out.startswith("# [TURING] State Restored")
        assert "## Modified Files" in out

    def test_full(self, temp_project, capsys):
        run_capture(temp_project, hook_input(session_id="s1"), now=NOW)
        capsys.readouterr()

        run_restore(temp_project, hook_input(session_id="s1"), full=True, now=NOW)
        out = capsys.readouterr().out
        assert "## Session History" in out
        assert "**Priority Filter**: ALL (full restore)" in out

    def test_unexpected_error(self, temp_project, capsys):
        with patch("turing.cli.hooks_cli.RestoreEngine", side_effect=RuntimeError("nope")):
            code = run_restore(temp_project, hook_input(session_id="s1"), now=NOW)
        assert code == 0
        assert capsys.readouterr().out.startswith("# [TURING] Restore Failed")


# =============================================================================
# Records CLI
# =============================================================================

class TestAdrCli:
    """Tests for `turing adr`."""

    def test_add_and_list(self, temp_project, capsys):
        assert adr_main([
            "add", "Use JSON index",
            "--summary", "Diffable",
            "--alternative", "SQLite",
            "--alternative", "Flat files",
            "--session", "s1",
            "--project-dir", str(temp_project),
        ]) == 0
        assert adr_main(["add", "Keep rich output", "--session", "s1", "--project-dir", str(temp_project)]) == 0

        store = SessionRecordStore(sessions_dir(temp_project), "s1")
        records = store.decision_log().records
        assert [r.adr_id for r in records] == ["ADR-001", "ADR-002"]
        assert records[0].alternatives == "- SQLite\n- Flat files"
        assert store.load_metadata().adr_sequence == 2

        capsys.readouterr()
        assert adr_main(["list", "--session", "s1", "--project-dir", str(temp_project)]) == 0
        out = capsys.readouterr().out
        assert "ADR-001" in out
        assert "ADR-002" in out

    def test_ids_not_reused_after_truncation(self, temp_project):
        args = ["--session", "s1", "--project-dir", str(temp_project)]
        adr_main(["add", "First", *args])
        adr_main(["add", "Second", *args])
        SessionRecordStore(sessions_dir(temp_project), "s1").adr_path.write_text("", encoding="utf-8")

        adr_main(["add", "Third", *args])

        log = DecisionLog(SessionRecordStore(sessions_dir(temp_project), "s1").adr_path)
        assert [r.adr_id for r in log.records] == ["ADR-003"]

    def test_supersede(self, temp_project):
        args = ["--session", "s1", "--project-dir", str(temp_project)]
        adr_main(["add", "Old way", *args])
        adr_main(["add", "New way", *args])

        assert adr_main(["supersede", "ADR-001", "--by", "ADR-002", *args]) == 0

        log = SessionRecordStore(sessions_dir(temp_project), "s1").decision_log()
        assert log.get("ADR-001").status == "Superseded by ADR-002"

    def test_supersede_unknown(self, temp_project):
        args = ["--session", "s1", "--project-dir", str(temp_project)]
        adr_main(["add", "Only", *args])
        assert adr_main(["supersede", "ADR-001", "--by", "ADR-009", *args]) == 1
        assert adr_main(["supersede", "ADR-005", "--by", "ADR-001", *args]) == 1
        assert adr_main(["supersede", "bogus", "--by", "ADR-001", *args]) == 1

    def test_no_command(self, temp_project):
        assert adr_main([]) == 1

    def test_no_session(self, temp_project):
        assert adr_main(["list", "--project-dir", str(temp_project)]) == 1

    def test_session_from_environment(self, temp_project, monkeypatch):
        monkeypatch.setenv("TURING_SESSION_ID", "from-env")
        config = TuringConfig.load(temp_project)
        assert resolve_session(config, None) == "from-env"
        assert resolve_session(config, "explicit") == "explicit"

    def test_session_from_discovery(self, temp_project):
        run_capture(temp_project, hook_input(session_id="captured"), now=NOW)
        assert resolve_session(TuringConfig.load(temp_project), None) == "captured"


class TestThreadCli:
    """Tests for `turing thread`."""

    def test_add_done_list(self, temp_project, capsys):
        project = ["--project-dir", str(temp_project)]
        assert thread_main(["add", "Wire restore into CI", *project]) == 0
        assert thread_main(["add", "Document config", *project]) == 0
        assert thread_main(["done", "restore into", *project]) == 0

        context = ContextLog(sessions_dir(temp_project) / "context.md").load()
        assert [t.text for t in context.open_threads()] == ["Document config"]

        capsys.readouterr()
        assert thread_main(["list", *project]) == 0
        out = capsys.readouterr().out
        assert "Document config" in out
        assert "Wire restore" not in out

    def test_done_unknown(self, temp_project):
        assert thread_main(["done", "nothing", "--project-dir", str(temp_project)]) == 1


# =============================================================================
# Status CLI
# =============================================================================

class TestStatusCli:
    """Tests for `turing status`."""

    def test_empty_project(self, temp_project, capsys):
        assert status_main(["--project-dir", str(temp_project)]) == 0
        assert "No Turing sessions found" in capsys.readouterr().err

    def test_table(self, temp_project, capsys):
        run_capture(temp_project, hook_input(session_id="status-session"), now=NOW)
        capsys.readouterr()

        assert status_main(["--project-dir", str(temp_project)]) == 0
        out = capsys.readouterr().out
        assert "Turing Memory Status" in out
        assert "status-sessi" in out

    def test_json(self, temp_project, capsys):
        run_capture(temp_project, hook_input(session_id="json-session"), now=NOW)
        capsys.readouterr()

        assert status_main(["--project-dir", str(temp_project), "--json"]) == 0
        out = capsys.readouterr().out
        assert "json-session" in out
        assert "total_kb" in out

    def test_global(self, temp_project, capsys):
        with patch("turing.cli.status_cli.workstation_status") as scan:
            scan.return_value.to_dict.return_value = {"projects": []}
            assert status_main(["--global", "--json", "--project-dir", str(temp_project)]) == 0
        assert "projects" in capsys.readouterr().out


# =============================================================================
# Dispatcher
# =============================================================================

class TestMain:
    """Tests for the `turing` dispatcher."""

    def test_usage(self, capsys):
        assert main([]) == 1
        assert "usage: turing" in capsys.readouterr().out
        assert main(["--help"]) == 0

    def test_unknown_command(self, capsys):
        assert main(["explode"]) == 1
        assert "unknown command" in capsys.readouterr().err

    def test_capture_and_restore(self, temp_project, capsys, monkeypatch):
        monkeypatch.setattr("sys.stdin", hook_input(session_id="via-main"))
        assert main(["capture", "--project-dir", str(temp_project)]) == 0
        assert "# [TURING] State Preserved" in capsys.readouterr().out

        monkeypatch.setattr("sys.stdin", hook_input(session_id="via-main", source="resume"))
        assert main(["restore", "--project-dir", str(temp_project)]) == 0
        assert "# [TURING] State Restored" in capsys.readouterr().out

    def test_records_commands(self, temp_project):
        project = ["--project-dir", str(temp_project)]
        assert main(["thread", "add", "From main", *project]) == 0
        assert main(["adr", "add", "From main", "--session", "m1", *project]) == 0
        assert main(["status", *project]) == 0
