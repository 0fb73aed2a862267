"""Exceptions raised by Turing components.

Hook entry points absorb all of these; they exist so library callers and the
records CLI can react to specific failures.
"""


class TuringError(Exception):
    """Base class for Turing errors."""


class StateDirectoryError(TuringError):
    """The per-project state directory cannot be created or written."""


class InvalidTransitionError(TuringError):
    """A session phase does not accept the given event."""


class DecisionNotFoundError(TuringError):
    """An ADR id does not exist in the session's decision log."""
