"""
Rich Output Utilities
=====================

Unified terminal output for Turing using the Rich library.

Two consoles are used:
- ``console`` writes themed, human-facing output (status tables, CLI
  messages) to stdout.
- ``err_console`` writes diagnostics (warnings, errors, log records) to
  stderr so that hook payloads on stdout stay clean.

Hook payloads themselves are written with ``emit()``, which prints text
verbatim: no markup, no highlighting and no re-wrapping.
"""

from __future__ import annotations

import json
import logging
import os
import sys
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Sequence

from rich.console import Console
from rich.logging import RichHandler
from rich.panel import Panel
from rich.rule import Rule
from rich.syntax import Syntax
from rich.table import Table
from rich.theme import Theme


# =============================================================================
# Color Scheme & Theme
# =============================================================================

@dataclass(frozen=True)
class TuringColors:
    """Turing color palette using hex for truecolor terminal support."""
    ink: str = "#E6E6E6"       # primary text
    dim: str = "#9AA4B2"       # muted text
    tape: str = "#F59E0B"      # warm accent
    head: str = "#22D3EE"      # cool accent
    steel: str = "#94A3B8"     # secondary accent
    ok: str = "#22C55E"        # success green
    warn: str = "#FBBF24"      # warning yellow
    err: str = "#EF4444"       # error red


def turing_theme(colors: TuringColors = TuringColors()) -> Theme:
    """
    Rich Theme for the Turing CLI.

    Style names are semantic so they can be used everywhere:
      console.print("...", style="tg.ok")
    """
    return Theme(
        {
            "tg.accent": f"bold {colors.tape}",
            "tg.muted": f"{colors.dim}",
            "tg.text": f"{colors.ink}",
            "tg.border": f"{colors.head}",

            # Status
            "tg.ok": f"bold {colors.ok}",
            "tg.warn": f"bold {colors.warn}",
            "tg.err": f"bold {colors.err}",
            "tg.info": f"{colors.head}",

            # Data display
            "tg.key": f"{colors.steel}",
            "tg.value": f"{colors.ink}",
            "tg.number": f"bold {colors.tape}",
            "tg.path": f"{colors.head}",
            "tg.timestamp": f"{colors.dim}",

            # Table styling
            "tg.table.header": f"bold {colors.head}",
        }
    )


# =============================================================================
# Unicode / ASCII Fallbacks
# =============================================================================

def _can_use_unicode() -> bool:
    """Check if the terminal can handle the Unicode icons we use."""
    if os.name == "nt":
        try:
            encoding = sys.stdout.encoding or "utf-8"
            "✓✗•".encode(encoding)
            return True
        except (UnicodeEncodeError, LookupError, AttributeError):
            return False
    return True


_UNICODE_ICONS = {
    "check": "✓",
    "cross": "✗",
    "warning": "⚠",
    "info": "ℹ",
    "bullet": "•",
    "arrow_right": "→",
}

_ASCII_ICONS = {
    "check": "[OK]",
    "cross": "[X]",
    "warning": "[!]",
    "info": "[i]",
    "bullet": "-",
    "arrow_right": "->",
}

_ICONS = _UNICODE_ICONS if _can_use_unicode() else _ASCII_ICONS


def icon(name: str) -> str:
    """Get an icon by name, using ASCII fallback if needed."""
    return _ICONS.get(name, "")


# =============================================================================
# Global Console Instances
# =============================================================================

console = Console(theme=turing_theme())
err_console = Console(theme=turing_theme(), stderr=True)

# Plain console for hook payloads; markdown must reach the host untouched
_payload_console = Console(
    markup=False,
    highlight=False,
    emoji=False,
    soft_wrap=True,
    color_system=None,
)

_VERBOSE = False


def set_verbose(verbose: bool) -> None:
    """Set global verbosity level."""
    global _VERBOSE
    _VERBOSE = verbose


def emit(text: str = "") -> None:
    """Write hook payload text to stdout exactly as given."""
    _payload_console.print(text, markup=False, highlight=False, soft_wrap=True)


# =============================================================================
# Basic Message Functions (stderr)
# =============================================================================

def print_success(message: str) -> None:
    """Print a success message with checkmark."""
    err_console.print(f"[tg.ok]{icon('check')} {message}[/]", highlight=False)


def print_error(message: str) -> None:
    """Print an error message with X."""
    err_console.print(f"[tg.err]{icon('cross')} {message}[/]", highlight=False)


def print_warning(message: str) -> None:
    """Print a warning message."""
    err_console.print(f"[tg.warn]{icon('warning')} {message}[/]", highlight=False)


def print_info(message: str) -> None:
    """Print an info message."""
    err_console.print(f"[tg.info]{icon('info')} {message}[/]", highlight=False)


def print_muted(message: str) -> None:
    """Print muted/secondary text, only in verbose mode."""
    if _VERBOSE:
        err_console.print(f"[tg.muted]{message}[/]", highlight=False)


# =============================================================================
# Headers, Tables & Data Display (stdout)
# =============================================================================

def print_header(title: str, style: str = "tg.accent") -> None:
    """Print a prominent section header with rule lines."""
    console.print()
    console.print(Rule(f"[{style}]{title}[/]", style=style))
    console.print()


def print_subheader(title: str, style: str = "tg.info") -> None:
    """Print a smaller subsection header."""
    console.print(f"\n[{style}]{icon('arrow_right')} {title}[/]")


def print_key_value_table(
    data: Dict[str, Any],
    *,
    title: Optional[str] = None,
    border_style: str = "tg.border",
) -> None:
    """Print multiple key-value pairs in a clean table format."""
    table = Table(show_header=False, box=None, padding=(0, 2))
    table.add_column("Key", style="tg.key")
    table.add_column("Value", style="tg.value")

    for key, value in data.items():
        table.add_row(key, str(value))

    if title:
        console.print(Panel(table, title=f"[bold]{title}[/]", border_style=border_style))
    else:
        console.print(table)


def print_list(items: Sequence[str], *, style: str = "tg.text", bullet_style: str = "tg.accent") -> None:
    """Print a bulleted list. Items are printed without markup interpretation."""
    for item in items:
        console.print(f"  [{bullet_style}]{icon('bullet')}[/] ", end="")
        console.print(item, style=style, markup=False, highlight=False)


def print_json_data(data: Any, *, indent: int = 2) -> None:
    """Print JSON data; plain when stdout is not a terminal."""
    json_str = json.dumps(data, indent=indent, default=str)
    if console.is_terminal:
        console.print(Syntax(json_str, "json", theme="monokai", line_numbers=False))
    else:
        emit(json_str)


def create_table(
    *,
    title: Optional[str] = None,
    columns: Optional[List[str]] = None,
    show_header: bool = True,
    border_style: str = "tg.border",
    header_style: str = "tg.table.header",
) -> Table:
    """Create a styled Rich Table with the Turing theme."""
    table = Table(
        title=title,
        show_header=show_header,
        header_style=header_style,
        border_style=border_style,
        title_style="tg.accent",
    )

    if columns:
        for col in columns:
            table.add_column(col)

    return table


def print_table(table: Table) -> None:
    """Print a Rich Table to the console."""
    console.print(table)


# =============================================================================
# Logging Integration
# =============================================================================

def setup_rich_logging(level: int = logging.WARNING) -> None:
    """
    Configure Python logging to use Rich, writing to stderr.

    Usage:
        setup_rich_logging()
        logging.getLogger(__name__).warning("This will be pretty!")
    """
    logging.basicConfig(
        level=level,
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(
            console=err_console,
            show_path=False,
            markup=False,
            rich_tracebacks=True,
        )],
        force=True,
    )
