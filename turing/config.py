"""
Configuration Management
========================

Handles loading configuration from environment variables and config files.

Precedence (highest first):
1. Environment variables (``TURING_*``; a ``.env`` file is honoured by the CLI)
2. Project config file (``.claude/turing.json``)
3. Default values
"""

import json
import os
from dataclasses import dataclass, field, fields
from pathlib import Path
from typing import Any, Optional

from turing.output import print_warning

CONFIG_FILENAME = Path(".claude") / "turing.json"
DEFAULT_STATE_DIR = Path(".claude") / "sessions"
PLUGIN_TEMPLATE = Path("templates") / "turing-precompact.md"

INDEX_BACKENDS = ("json", "sqlite")

DEFAULT_SEARCH_PATHS = [
    "~/Projects",
    "~/projects",
    "~/Developer",
    "~/dev",
    "~/code",
    "~/Code",
    "~/workspace",
    "~/Work",
    "~/work",
]

# (environment variable, field name)
_ENV_OVERRIDES = [
    ("TURING_STATE_DIR", "state_dir"),
    ("TURING_INDEX_BACKEND", "index_backend"),
    ("TURING_TOKEN_WARNING", "token_warning_threshold"),
    ("TURING_TRANSCRIPT_TAIL", "transcript_tail_lines"),
    ("TURING_TEMPLATE", "template_path"),
    ("TURING_SCAN_DEPTH", "scan_depth"),
]


def _as_int(value: Any) -> int:
    if isinstance(value, bool):
        raise ValueError(f"expected an integer, got {value!r}")
    if isinstance(value, float) and not value.is_integer():
        raise ValueError(f"expected an integer, got {value!r}")
    return int(value)


def _as_str(value: Any) -> str:
    if not isinstance(value, str):
        raise ValueError(f"expected a string, got {value!r}")
    return value


def _as_optional_str(value: Any) -> Optional[str]:
    return None if value is None else _as_str(value)


def _as_str_list(value: Any) -> list[str]:
    if isinstance(value, str):
        return [value]
    if not isinstance(value, list):
        raise ValueError(f"expected a list of paths, got {value!r}")
    return [_as_str(item) for item in value]


# Converters shared by the config file and the environment
_FIELD_CONVERTERS = {
    "state_dir": _as_str,
    "index_backend": _as_str,
    "token_warning_threshold": _as_int,
    "transcript_tail_lines": _as_int,
    "max_auto_decisions": _as_int,
    "token_history_limit": _as_int,
    "open_thread_limit": _as_int,
    "journal_limit": _as_int,
    "recent_window_hours": _as_int,
    "adr_display_limit": _as_int,
    "template_path": _as_optional_str,
    "search_paths": _as_str_list,
    "scan_depth": _as_int,
}


def _filter_dataclass_fields(data: dict[str, Any], cls: type) -> dict[str, Any]:
    """Filter dict to only include fields that exist in the dataclass."""
    valid_fields = {f.name for f in fields(cls)}
    return {k: v for k, v in data.items() if k in valid_fields}


@dataclass
class TuringConfig:
    """Turing configuration for one project."""
    project_dir: Path
    state_dir: str = str(DEFAULT_STATE_DIR)
    index_backend: str = "json"

    # Token accounting
    token_warning_threshold: int = 2500

    # Capture limits
    transcript_tail_lines: int = 500
    max_auto_decisions: int = 8
    token_history_limit: int = 10

    # Context log limits
    open_thread_limit: int = 5
    journal_limit: int = 50

    # Discovery / restore
    recent_window_hours: int = 24
    adr_display_limit: int = 10

    # Instructional template injected after the state on capture
    template_path: Optional[str] = None

    # Workstation scan
    search_paths: list[str] = field(default_factory=lambda: list(DEFAULT_SEARCH_PATHS))
    scan_depth: int = 5

    @property
    def sessions_dir(self) -> Path:
        """Absolute path of the per-project sessions directory."""
        path = Path(self.state_dir).expanduser()
        if not path.is_absolute():
            path = self.project_dir / path
        return path

    def resolve_template_path(self) -> Optional[Path]:
        """
        Locate the instructional template file.

        Returns the configured path, else the plugin's bundled template when
        ``CLAUDE_PLUGIN_ROOT`` is set and the file exists, else None (the
        packaged default is used by the caller).
        """
        if self.template_path:
            return Path(self.template_path).expanduser()
        plugin_root = os.environ.get("CLAUDE_PLUGIN_ROOT")
        if plugin_root:
            candidate = Path(plugin_root) / PLUGIN_TEMPLATE
            if candidate.exists():
                return candidate
        return None

    @classmethod
    def load(cls, project_dir: Optional[Path] = None) -> "TuringConfig":
        """
        Load configuration for a project.

        Args:
            project_dir: Project root (default: current directory)

        Returns:
            Resolved TuringConfig
        """
        project_dir = Path(project_dir) if project_dir else Path.cwd()
        config: dict[str, Any] = {}

        config_path = project_dir / CONFIG_FILENAME
        if config_path.exists():
            try:
                with open(config_path, "r", encoding="utf-8") as f:
                    file_config = json.load(f)
                if isinstance(file_config, dict):
                    for key, value in _filter_dataclass_fields(file_config, cls).items():
                        convert = _FIELD_CONVERTERS.get(key)
                        if convert is None:
                            continue
                        try:
                            config[key] = convert(value)
                        except (TypeError, ValueError):
                            print_warning(f"Ignoring invalid {key}={value!r} in {config_path}")
                else:
                    print_warning(f"Ignoring config file {config_path}: not a JSON object")
            except (json.JSONDecodeError, OSError) as e:
                print_warning(f"Failed to load config file {config_path}: {e}")

        for env_name, key in _ENV_OVERRIDES:
            raw = os.environ.get(env_name)
            if raw:
                try:
                    config[key] = _FIELD_CONVERTERS[key](raw)
                except ValueError:
                    print_warning(f"Ignoring invalid {env_name}={raw!r}")

        loaded = cls(project_dir=project_dir, **config)

        if loaded.index_backend not in INDEX_BACKENDS:
            print_warning(f"Unknown index backend '{loaded.index_backend}', using json")
            loaded.index_backend = "json"

        return loaded
