#!/usr/bin/env python
"""
Hook CLI - Capture and restore session state for the host's lifecycle hooks.

Usage:
    turing-capture [--project-dir DIR]            # PreCompact hook, JSON on stdin
    turing-restore [--project-dir DIR] [--full]   # SessionStart hook, JSON on stdin

Both commands read a JSON object from stdin, write their payload to stdout
and always exit 0 so the host is never blocked. Diagnostics go to stderr.
"""

import argparse
import json
import logging
import sys
from datetime import datetime
from pathlib import Path
from typing import Any, Optional, TextIO

from turing.capture import CaptureEngine, CaptureRequest
from turing.cli.common import add_common_arguments, bootstrap
from turing.config import TuringConfig
from turing.errors import StateDirectoryError
from turing.output import emit, print_error, print_muted
from turing.restore import RestoreEngine, RestoreRequest
from turing.terminal import detect_terminal

logger = logging.getLogger(__name__)


def read_hook_input(stream: Optional[TextIO] = None) -> dict[str, Any]:
    """
    Parse the hook's JSON object from stdin.

    Empty, unparsable or non-object input yields an empty dict.
    """
    stream = stream if stream is not None else sys.stdin
    try:
        # Run by hand (e.g. restore --full) there is no payload to wait for
        if stream.isatty():
            return {}
        raw = stream.read()
    except (OSError, ValueError) as e:
        logger.debug("Could not read hook input: %s", e)
        return {}
    if not raw or not raw.strip():
        return {}
    try:
        data = json.loads(raw)
    except json.JSONDecodeError as e:
        logger.debug("Ignoring malformed hook input: %s", e)
        return {}
    return data if isinstance(data, dict) else {}


def run_capture(
    project_dir: Optional[Path] = None,
    stdin: Optional[TextIO] = None,
    now: Optional[datetime] = None,
) -> int:
    """Capture hook body. Always returns 0."""
    try:
        config = TuringConfig.load(project_dir)
        payload = read_hook_input(stdin)
        request = CaptureRequest.from_hook_input(payload, config.project_dir, detect_terminal(), now)
        print_muted(f"Capturing session {request.session_id} into {config.sessions_dir}")
        result = CaptureEngine(config).capture(request, now=now)
        emit(result.render())
    except StateDirectoryError as e:
        emit(f"# [TURING] Error: {e}")
    except Exception as e:
        logger.debug("Capture failed", exc_info=True)
        print_error(f"Capture failed: {e}")
        emit(f"# [TURING] Capture Failed\n\n{type(e).__name__}: {e}")
    return 0


def run_restore(
    project_dir: Optional[Path] = None,
    stdin: Optional[TextIO] = None,
    full: bool = False,
    now: Optional[datetime] = None,
) -> int:
    """Restore hook body. Always returns 0."""
    try:
        config = TuringConfig.load(project_dir)
        payload = read_hook_input(stdin)
        request = RestoreRequest.from_hook_input(payload, config.project_dir, detect_terminal(), full=full)
        print_muted(f"Restoring for session {request.session_id or 'unknown'} ({request.source})")
        result = RestoreEngine(config).restore(request, now=now)
        emit(result.render())
    except Exception as e:
        logger.debug("Restore failed", exc_info=True)
        print_error(f"Restore failed: {e}")
        emit(f"# [TURING] Restore Failed\n\n{type(e).__name__}: {e}")
    return 0


def capture_main(argv: Optional[list[str]] = None) -> int:
    parser = argparse.ArgumentParser(
        prog="turing-capture",
        description="Capture session state before context compaction (reads hook JSON on stdin)",
    )
    add_common_arguments(parser)
    args = parser.parse_args(argv)
    bootstrap(args.verbose)
    return run_capture(args.project_dir)


def restore_main(argv: Optional[list[str]] = None) -> int:
    parser = argparse.ArgumentParser(
        prog="turing-restore",
        description="Restore session state on session start (reads hook JSON on stdin)",
    )
    add_common_arguments(parser)
    parser.add_argument(
        "--full",
        action="store_true",
        help="Restore every priority level instead of the source default",
    )
    args = parser.parse_args(argv)
    bootstrap(args.verbose)
    return run_restore(args.project_dir, full=args.full)


if __name__ == "__main__":
    sys.exit(capture_main())
