#!/usr/bin/env python
"""
Status CLI - Display recorded session state.

Usage:
    turing status [--project-dir DIR] [--json]   # Sessions of one project
    turing status --global [--json]              # Projects across the workstation
"""

import argparse
import sys
from typing import Optional

from turing.cli.common import add_common_arguments, bootstrap
from turing.config import TuringConfig
from turing.output import (
    console,
    create_table,
    print_header,
    print_info,
    print_json_data,
    print_key_value_table,
    print_list,
    print_subheader,
    print_table,
)
from turing.status import ProjectStatus, WorkstationStatus, project_status, workstation_status


def _short_tty(tty: str) -> str:
    return "..." + tty[-12:] if len(tty) > 15 else tty


def render_project_status(status: ProjectStatus) -> None:
    print_header(f"Turing Memory Status: {status.project_name}")
    console.print(f"[tg.key]Path:[/] [tg.path]{status.project_dir}[/]")

    if status.sessions:
        table = create_table(columns=["Session ID", "TTY", "Last Captured", "Compactions", "Tokens"])
        for row in status.sessions:
            table.add_row(
                f"[tg.accent]{row.session_id[:12]}[/]",
                _short_tty(row.tty),
                f"[tg.timestamp]{row.age}[/]",
                str(row.compaction_count),
                f"~{row.tokens}",
            )
        print_subheader("Sessions")
        print_table(table)
    else:
        print_info("No sessions in the index or session directories")

    summary = {
        "Total Sessions": len(status.sessions),
        "Total Tokens": f"~{status.total_tokens}",
        "Total Size": f"{status.total_kb:.1f} KB",
    }
    if status.last_updated:
        summary["Last Updated"] = status.last_updated[:19]
    print_key_value_table(summary, title="Summary")

    latest = status.latest
    if latest is None:
        return

    print_subheader(f"Latest Session: {latest.session_id}")
    details = {
        "Created": (latest.created_at or "unknown")[:19],
        "Last Captured": (latest.last_captured_at or "unknown")[:19],
        "TTY": latest.tty,
        "Compaction Count": latest.compaction_count,
    }
    if latest.tokens:
        details["Token Usage"] = (
            f"state={latest.tokens.get('state', 0)}, "
            f"template={latest.tokens.get('template', 0)}, "
            f"total={latest.tokens.get('total', 0)}"
        )
        details["Token Status"] = latest.tokens.get("status", "unknown")
    if latest.validation:
        details["Validation"] = (
            f"{latest.validation.get('status', 'unknown')} "
            f"({latest.validation.get('state_lines', 0)} lines, "
            f"{latest.validation.get('state_bytes', 0)} bytes)"
        )
    if latest.auto_decisions_extracted:
        details["Auto Decisions Extracted"] = latest.auto_decisions_extracted
    if latest.archive_count:
        details["Archived States"] = latest.archive_count
    print_key_value_table(details)

    if len(latest.token_history) > 1:
        print_subheader(f"Token History (Last {len(latest.token_history)} Compactions)")
        print_list([
            f"Compaction #{h.get('compaction', '?')}: ~{h.get('tokens', 0)} tokens"
            for h in latest.token_history
        ])

    if latest.adr_count:
        print_subheader(f"Architecture Decision Records: {latest.adr_count}")
        print_list(latest.adr_titles)

    print_subheader("Open Threads")
    if status.open_threads:
        print_list(status.open_threads)
    else:
        console.print("  [tg.muted]No open threads.[/]")
    console.print(f"\n[tg.key]Journal Entries:[/] [tg.number]{status.journal_count}[/]")


def render_workstation_status(status: WorkstationStatus) -> None:
    print_header("Turing Workstation Memory Status")
    if not status.projects:
        print_info("No recorded sessions found on this workstation")
        return

    table = create_table(columns=["Project", "Sessions", "Tokens", "Path"])
    for project in status.projects:
        table.add_row(
            f"[tg.accent]{project.name}[/]",
            str(project.sessions),
            f"~{project.tokens}",
            f"[tg.path]{project.path}[/]",
        )
    print_table(table)

    print_key_value_table({
        "Total Projects": len(status.projects),
        "Total Sessions": status.total_sessions,
        "Total Tokens": f"~{status.total_tokens}",
    }, title="Workstation Summary")


def cmd_status(args) -> int:
    config = TuringConfig.load(args.project_dir)

    if args.global_:
        status = workstation_status(config.search_paths, max_depth=config.scan_depth)
        if args.json:
            print_json_data(status.to_dict())
        else:
            render_workstation_status(status)
        return 0

    status = project_status(config)
    if args.json:
        print_json_data(status.to_dict())
    elif not status.has_sessions:
        print_info(f"No Turing sessions found in: {config.project_dir}")
    else:
        render_project_status(status)
    return 0


def main(argv: Optional[list[str]] = None) -> int:
    parser = argparse.ArgumentParser(
        prog="turing status",
        description="Display recorded session state",
    )
    add_common_arguments(parser)
    parser.add_argument(
        "--global", "-g",
        dest="global_",
        action="store_true",
        help="Scan well-known project directories for recorded sessions",
    )
    parser.add_argument("--json", "-j", action="store_true", help="Output JSON")
    args = parser.parse_args(argv)
    bootstrap(args.verbose)
    return cmd_status(args)


if __name__ == "__main__":
    sys.exit(main())
