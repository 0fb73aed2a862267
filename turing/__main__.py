"""
Entry point for running turing as a module.

Usage:
    python -m turing capture [--project-dir DIR]          # PreCompact hook
    python -m turing restore [--project-dir DIR] [--full] # SessionStart hook
    python -m turing status [--global] [--json]           # Inspect recorded state
    python -m turing adr add|list|supersede ...           # Decision records
    python -m turing thread add|done|list ...             # Open threads

The ``turing`` console script is equivalent.
"""

import sys


USAGE = """usage: turing <command> [args]

commands:
  capture    Capture session state (PreCompact hook, JSON on stdin)
  restore    Restore session state (SessionStart hook, JSON on stdin)
  status     Show recorded sessions for this project or the workstation
  adr        Add, list or supersede architecture decision records
  thread     Add, complete or list open work threads
"""


def main(argv=None) -> int:
    """Main entry point with subcommand support."""
    argv = list(sys.argv[1:] if argv is None else argv)

    if not argv or argv[0] in ("-h", "--help", "help"):
        print(USAGE)
        return 0 if argv else 1

    cmd, rest = argv[0].lower(), argv[1:]

    if cmd == "capture":
        from turing.cli.hooks_cli import capture_main
        return capture_main(rest)

    elif cmd == "restore":
        from turing.cli.hooks_cli import restore_main
        return restore_main(rest)

    elif cmd == "status":
        from turing.cli.status_cli import main as status_main
        return status_main(rest)

    elif cmd == "adr":
        from turing.cli.records_cli import adr_main
        return adr_main(rest)

    elif cmd == "thread":
        from turing.cli.records_cli import thread_main
        return thread_main(rest)

    print(f"turing: unknown command '{argv[0]}'\n", file=sys.stderr)
    print(USAGE, file=sys.stderr)
    return 1


if __name__ == "__main__":
    sys.exit(main())
