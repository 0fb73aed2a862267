#!/usr/bin/env python
"""
Records CLI - Manage decision records and context threads.

Usage:
    turing adr add TITLE [--summary TEXT] [--status S] [--confidence C]
                         [--context T] [--decision T] [--alternative A ...]
                         [--consequences T] [--session ID]
    turing adr list [--session ID]
    turing adr supersede ADR_ID --by ADR_ID [--session ID]
    turing thread add TEXT
    turing thread done MATCH
    turing thread list

Decision records belong to a session. Without ``--session`` the session is
taken from ``TURING_SESSION_ID`` or found the same way a startup restore
finds it.
"""

import argparse
import os
import sys
from typing import Optional

from turing.cli.common import add_common_arguments, bootstrap
from turing.config import TuringConfig
from turing.context_log import CONTEXT_FILENAME, ContextLog
from turing.decision import Confidence, DecisionStatus
from turing.discovery import discover_session
from turing.errors import DecisionNotFoundError, TuringError
from turing.index import open_index_store
from turing.output import (
    console,
    create_table,
    print_error,
    print_header,
    print_info,
    print_list,
    print_success,
    print_table,
)
from turing.session_state import SessionMetadata, SessionRecordStore, format_timestamp, utc_now
from turing.terminal import detect_terminal


def resolve_session(config: TuringConfig, explicit: Optional[str]) -> Optional[str]:
    """Session to act on: the flag, then TURING_SESSION_ID, then discovery."""
    if explicit:
        return explicit
    from_env = os.environ.get("TURING_SESSION_ID")
    if from_env:
        return from_env
    found = discover_session(
        config.sessions_dir,
        detect_terminal(),
        index=open_index_store(config),
        window_hours=config.recent_window_hours,
    )
    return found.session_id


def _session_store(config: TuringConfig, args) -> Optional[SessionRecordStore]:
    session_id = resolve_session(config, args.session)
    if not session_id:
        print_error("No session found. Pass --session or capture a session first.")
        return None
    return SessionRecordStore(config.sessions_dir, session_id)


# =============================================================================
# ADR commands
# =============================================================================

def cmd_adr_add(args) -> int:
    config = TuringConfig.load(args.project_dir)
    store = _session_store(config, args)
    if store is None:
        return 1

    metadata = store.load_metadata()
    if metadata is None:
        metadata = SessionMetadata(session_id=store.session_id, created_at=format_timestamp(utc_now()))

    log = store.decision_log(metadata)
    record = log.append(
        title=args.title,
        summary=args.summary or "",
        status=args.status,
        confidence=args.confidence,
        context=args.context or "",
        decision=args.decision or "",
        alternatives=args.alternative or None,
        consequences=args.consequences or "",
    )

    # Persist the sequence so a later deletion cannot free this id
    metadata.adr_sequence = max(metadata.adr_sequence, record.number)
    store.save_metadata(metadata)

    print_success(f"Recorded {record.adr_id}: {record.title} (session {store.session_id})")
    return 0


def cmd_adr_list(args) -> int:
    config = TuringConfig.load(args.project_dir)
    store = _session_store(config, args)
    if store is None:
        return 1

    records = store.decision_log().records
    if not records:
        print_info(f"No decision records for session {store.session_id}")
        return 0

    print_header(f"Decision Records ({len(records)})")
    table = create_table(columns=["ID", "Date", "Status", "Confidence", "Title", "TL;DR"])
    for record in records:
        status = f"[tg.muted]{record.status}[/]" if record.is_superseded else f"[tg.ok]{record.status}[/]"
        table.add_row(
            f"[tg.accent]{record.adr_id}[/]",
            f"[tg.timestamp]{record.date}[/]",
            status,
            record.confidence,
            record.title,
            record.summary,
        )
    print_table(table)
    console.print(f"[tg.key]Location:[/] [tg.path]{store.adr_path}[/]")
    return 0


def cmd_adr_supersede(args) -> int:
    config = TuringConfig.load(args.project_dir)
    store = _session_store(config, args)
    if store is None:
        return 1

    log = store.decision_log()
    try:
        if log.get(args.by) is None:
            raise DecisionNotFoundError(f"{args.by} not found in {log.path}")
        record = log.mark_superseded(args.adr_id, by_id=args.by)
    except (DecisionNotFoundError, ValueError) as e:
        print_error(str(e))
        return 1

    print_success(f"{record.adr_id} is now '{record.status}'")
    return 0


# =============================================================================
# Thread commands
# =============================================================================

def _context_log(config: TuringConfig) -> ContextLog:
    return ContextLog(
        config.sessions_dir / CONTEXT_FILENAME,
        open_limit=config.open_thread_limit,
        journal_limit=config.journal_limit,
    ).load()


def cmd_thread_add(args) -> int:
    config = TuringConfig.load(args.project_dir)
    context = _context_log(config)
    thread = context.add_thread(args.text)
    context.save()
    print_success(f"Added thread: {thread.text}")
    return 0


def cmd_thread_done(args) -> int:
    config = TuringConfig.load(args.project_dir)
    context = _context_log(config)
    thread = context.complete_thread(args.match)
    if thread is None:
        print_error(f"No open thread matches '{args.match}'")
        return 1
    context.save()
    print_success(f"Completed thread: {thread.text}")
    return 0


def cmd_thread_list(args) -> int:
    config = TuringConfig.load(args.project_dir)
    threads = _context_log(config).open_threads()
    if not threads:
        print_info("No open threads")
        return 0
    print_header(f"Open Threads ({len(threads)})")
    print_list([t.text for t in threads])
    return 0


# =============================================================================
# Parsers
# =============================================================================

def _add_session_argument(parser: argparse.ArgumentParser) -> None:
    parser.add_argument("--session", "-s", help="Session id (default: discovered)")


def adr_main(argv: Optional[list[str]] = None) -> int:
    parser = argparse.ArgumentParser(prog="turing adr", description="Manage architecture decision records")
    subparsers = parser.add_subparsers(dest="command", help="Command to run")

    add_parser = subparsers.add_parser("add", help="Append a decision record")
    add_parser.add_argument("title", help="Decision title")
    add_parser.add_argument("--summary", "-m", help="One-line TL;DR")
    add_parser.add_argument(
        "--status",
        default=DecisionStatus.ACCEPTED.value,
        choices=[s.value for s in DecisionStatus if s is not DecisionStatus.SUPERSEDED],
    )
    add_parser.add_argument(
        "--confidence",
        default=Confidence.MEDIUM.value,
        choices=[c.value for c in Confidence],
    )
    add_parser.add_argument("--context", help="Why the decision was needed")
    add_parser.add_argument("--decision", help="What was decided")
    add_parser.add_argument("--alternative", action="append", help="Rejected alternative (repeatable)")
    add_parser.add_argument("--consequences", help="Expected consequences")
    _add_session_argument(add_parser)
    add_common_arguments(add_parser)

    list_parser = subparsers.add_parser("list", help="List decision records")
    _add_session_argument(list_parser)
    add_common_arguments(list_parser)

    supersede_parser = subparsers.add_parser("supersede", help="Mark a record as superseded")
    supersede_parser.add_argument("adr_id", help="Record to supersede (e.g. ADR-002)")
    supersede_parser.add_argument("--by", required=True, help="Replacing record (e.g. ADR-005)")
    _add_session_argument(supersede_parser)
    add_common_arguments(supersede_parser)

    args = parser.parse_args(argv)
    bootstrap(getattr(args, "verbose", False))

    commands = {
        "add": cmd_adr_add,
        "list": cmd_adr_list,
        "supersede": cmd_adr_supersede,
    }
    handler = commands.get(args.command)
    if handler is None:
        parser.print_help()
        return 1
    try:
        return handler(args)
    except TuringError as e:
        print_error(str(e))
        return 1


def thread_main(argv: Optional[list[str]] = None) -> int:
    parser = argparse.ArgumentParser(prog="turing thread", description="Manage open work threads")
    subparsers = parser.add_subparsers(dest="command", help="Command to run")

    add_parser = subparsers.add_parser("add", help="Add an open thread")
    add_parser.add_argument("text", help="Thread text")
    add_common_arguments(add_parser)

    done_parser = subparsers.add_parser("done", help="Mark a thread completed")
    done_parser.add_argument("match", help="Text contained in the thread")
    add_common_arguments(done_parser)

    list_parser = subparsers.add_parser("list", help="List open threads")
    add_common_arguments(list_parser)

    args = parser.parse_args(argv)
    bootstrap(getattr(args, "verbose", False))

    commands = {
        "add": cmd_thread_add,
        "done": cmd_thread_done,
        "list": cmd_thread_list,
    }
    handler = commands.get(args.command)
    if handler is None:
        parser.print_help()
        return 1
    return handler(args)


if __name__ == "__main__":
    sys.exit(adr_main())
