"""Shared setup for the command line entry points."""

import argparse
import logging
import os
from pathlib import Path

from dotenv import load_dotenv

from turing.output import set_verbose, setup_rich_logging


def add_common_arguments(parser: argparse.ArgumentParser) -> None:
    parser.add_argument(
        "--project-dir",
        type=Path,
        default=None,
        help="Project directory holding .claude/sessions (default: current dir)",
    )
    parser.add_argument(
        "--verbose", "-v",
        action="store_true",
        help="Show debug diagnostics on stderr",
    )


def bootstrap(verbose: bool = False) -> None:
    """Load .env, then configure verbosity and logging."""
    load_dotenv()
    verbose = verbose or os.environ.get("TURING_DEBUG", "") in ("1", "true", "yes")
    set_verbose(verbose)
    setup_rich_logging(logging.DEBUG if verbose else logging.WARNING)
