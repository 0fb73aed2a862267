"""
Tests for Configuration Management
==================================

Tests for turing/config.py and turing/terminal.py
"""

import json
from pathlib import Path
from unittest.mock import patch

from turing.config import DEFAULT_SEARCH_PATHS, TuringConfig
from turing.terminal import detect_terminal


def write_config(project: Path, data) -> None:
    path = project / ".claude" / "turing.json"
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(json.dumps(data), encoding="utf-8")


class TestTuringConfig:
    """Tests for TuringConfig.load precedence."""

    def test_defaults(self, temp_project):
        config = TuringConfig.load(temp_project)
        assert config.project_dir == temp_project
        assert config.sessions_dir == temp_project / ".claude" / "sessions"
        assert config.index_backend == "json"
        assert config.token_warning_threshold == 2500
        assert config.transcript_tail_lines == 500
        assert config.open_thread_limit == 5
        assert config.journal_limit == 50
        assert config.search_paths == DEFAULT_SEARCH_PATHS

    def test_defaults_to_cwd(self, temp_project, monkeypatch):
        monkeypatch.chdir(temp_project)
        assert TuringConfig.load().project_dir == Path.cwd()

    def test_file_overrides_defaults(self, temp_project):
        write_config(temp_project, {"token_warning_threshold": 4000, "unknown_key": True})
        config = TuringConfig.load(temp_project)
        assert config.token_warning_threshold == 4000
        assert not hasattr(config, "unknown_key")

    def test_env_overrides_file(self, temp_project, monkeypatch):
        write_config(temp_project, {"token_warning_threshold": 4000, "index_backend": "json"})
        monkeypatch.setenv("TURING_TOKEN_WARNING", "100")
        monkeypatch.setenv("TURING_INDEX_BACKEND", "sqlite")
        config = TuringConfig.load(temp_project)
        assert config.token_warning_threshold == 100
        assert config.index_backend == "sqlite"

    def test_invalid_env_ignored(self, temp_project, monkeypatch):
        monkeypatch.setenv("TURING_TOKEN_WARNING", "lots")
        assert TuringConfig.load(temp_project).token_warning_threshold == 2500

    def test_corrupt_file_ignored(self, temp_project):
        path = temp_project / ".claude" / "turing.json"
        path.parent.mkdir(parents=True)
        path.write_text("{nope", encoding="utf-8")
        assert TuringConfig.load(temp_project).token_warning_threshold == 2500

    def test_non_object_file_ignored(self, temp_project):
        write_config(temp_project, ["not", "an", "object"])
        assert TuringConfig.load(temp_project).index_backend == "json"

    def test_file_values_are_converted(self, temp_project):
        write_config(temp_project, {
            "token_warning_threshold": "4000",
            "open_thread_limit": 3.0,
            "search_paths": "~/src",
            "template_path": None,
        })
        config = TuringConfig.load(temp_project)
        assert config.token_warning_threshold == 4000
        assert config.open_thread_limit == 3
        assert config.search_paths == ["~/src"]
        assert config.template_path is None

    def test_invalid_file_values_keep_defaults(self, temp_project, capsys):
        write_config(temp_project, {
            "token_warning_threshold": "lots",
            "journal_limit": True,
            "scan_depth": 2.5,
            "state_dir": ["not", "a", "path"],
            "search_paths": [1, 2],
            "recent_window_hours": 12,
        })
        config = TuringConfig.load(temp_project)
        assert config.token_warning_threshold == 2500
        assert config.journal_limit == 50
        assert config.scan_depth == 5
        assert config.state_dir == ".claude/sessions"
        assert config.search_paths == DEFAULT_SEARCH_PATHS
        assert config.recent_window_hours == 12
        assert "token_warning_threshold" in capsys.readouterr().err

    def test_env_still_overrides_invalid_file_value(self, temp_project, monkeypatch):
        write_config(temp_project, {"token_warning_threshold": "lots"})
        monkeypatch.setenv("TURING_TOKEN_WARNING", "900")
        assert TuringConfig.load(temp_project).token_warning_threshold == 900

    def test_unknown_backend_falls_back(self, temp_project):
        write_config(temp_project, {"index_backend": "redis"})
        assert TuringConfig.load(temp_project).index_backend == "json"

    def test_absolute_state_dir(self, temp_project, monkeypatch):
        elsewhere = temp_project / "elsewhere"
        monkeypatch.setenv("TURING_STATE_DIR", str(elsewhere))
        assert TuringConfig.load(temp_project).sessions_dir == elsewhere

    def test_project_dir_not_overridable(self, temp_project):
        write_config(temp_project, {"project_dir": "/somewhere/else"})
        assert TuringConfig.load(temp_project).project_dir == temp_project


class TestTemplatePath:
    """Tests for template resolution."""

    def test_packaged_default(self, temp_project):
        assert TuringConfig.load(temp_project).resolve_template_path() is None

    def test_configured(self, temp_project, monkeypatch):
        monkeypatch.setenv("TURING_TEMPLATE", str(temp_project / "t.md"))
        assert TuringConfig.load(temp_project).resolve_template_path() == temp_project / "t.md"

    def test_plugin_root(self, temp_project, monkeypatch):
        template = temp_project / "plugin" / "templates" / "turing-precompact.md"
        template.parent.mkdir(parents=True)
        template.write_text("plugin template", encoding="utf-8")
        monkeypatch.setenv("CLAUDE_PLUGIN_ROOT", str(temp_project / "plugin"))
        assert TuringConfig.load(temp_project).resolve_template_path() == template

    def test_plugin_root_without_template(self, temp_project, monkeypatch):
        monkeypatch.setenv("CLAUDE_PLUGIN_ROOT", str(temp_project))
        assert TuringConfig.load(temp_project).resolve_template_path() is None


class TestDetectTerminal:
    """Tests for terminal identity."""

    def test_override(self, monkeypatch):
        monkeypatch.setenv("TURING_TTY", "/dev/pts/42")
        assert detect_terminal() == "/dev/pts/42"

    def test_pipe_when_no_tty(self):
        with patch("turing.terminal.os.isatty", return_value=False):
            assert detect_terminal() == "pipe"

    def test_tty_name(self):
        with patch("turing.terminal.os.isatty", return_value=True), \
                patch("turing.terminal.os.ttyname", return_value="/dev/pts/5"), \
                patch("turing.terminal.sys.stdin") as stdin:
            stdin.fileno.return_value = 0
            assert detect_terminal() == "/dev/pts/5"

    def test_unusable_streams(self):
        with patch("turing.terminal.sys.stdin", None), \
                patch("turing.terminal.sys.stdout", None), \
                patch("turing.terminal.sys.stderr", None):
            assert detect_terminal() == "pipe"
