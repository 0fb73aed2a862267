"""Terminal identity of the invoking process."""

import os
import sys

PIPE = "pipe"


def detect_terminal() -> str:
    """
    Return the controlling terminal's device name.

    ``TURING_TTY`` overrides detection. Otherwise the first of stdin,
    stdout and stderr attached to a terminal names it; with none attached
    the identity is "pipe".
    """
    override = os.environ.get("TURING_TTY")
    if override:
        return override

    for stream in (sys.stdin, sys.stdout, sys.stderr):
        try:
            fd = stream.fileno()
            if os.isatty(fd):
                return os.ttyname(fd)
        except (AttributeError, OSError, ValueError):
            continue
    return PIPE
