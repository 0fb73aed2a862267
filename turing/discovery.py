"""
Session Discovery
=================

Picks the prior session to restore when the caller has no session id of
its own. Rules are tried in order and the first one that yields a session
wins:

1. Same terminal: latest capture among entries from the caller's terminal
2. Single recent: exactly one entry captured within the recent window
   (zero or several recent entries abstain)
3. Most recent: latest capture overall
4. Latest marker: the id stored in ``.latest``

Entries come from the index. A missing, unreadable or empty index falls
back to a scan of session metadata records. Discovery never raises.
"""

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from enum import Enum
from pathlib import Path
from typing import Optional

from turing.index import IndexEntry, IndexStore, LatestMarker
from turing.session_state import scan_session_metadata, utc_now

logger = logging.getLogger(__name__)

RECENT_WINDOW_HOURS = 24

_EPOCH = datetime.min.replace(tzinfo=timezone.utc)


class DiscoveryRule(Enum):
    SAME_TERMINAL = "same_terminal"
    SINGLE_RECENT = "single_recent"
    MOST_RECENT = "most_recent"
    LATEST_MARKER = "latest_marker"

    @property
    def label(self) -> str:
        return {
            DiscoveryRule.SAME_TERMINAL: "same terminal",
            DiscoveryRule.SINGLE_RECENT: "only recent session",
            DiscoveryRule.MOST_RECENT: "most recent capture",
            DiscoveryRule.LATEST_MARKER: "latest marker",
        }[self]


@dataclass
class DiscoveryResult:
    session_id: Optional[str] = None
    rule: Optional[DiscoveryRule] = None

    @property
    def found(self) -> bool:
        return bool(self.session_id)


def _captured(entry: IndexEntry) -> datetime:
    return entry.captured_at or _EPOCH


def choose_session(
    entries: list[IndexEntry],
    tty: str,
    now: Optional[datetime] = None,
    window_hours: int = RECENT_WINDOW_HOURS,
) -> DiscoveryResult:
    """Apply rules 1-3 to a list of entries."""
    if not entries:
        return DiscoveryResult()

    same_terminal = [e for e in entries if e.tty == tty]
    if same_terminal:
        best = max(same_terminal, key=_captured)
        return DiscoveryResult(best.session_id, DiscoveryRule.SAME_TERMINAL)

    now = now or utc_now()
    window = timedelta(hours=window_hours)
    recent = [
        e for e in entries
        if e.captured_at is not None and now - e.captured_at < window
    ]
    if len(recent) == 1:
        return DiscoveryResult(recent[0].session_id, DiscoveryRule.SINGLE_RECENT)

    best = max(entries, key=_captured)
    return DiscoveryResult(best.session_id, DiscoveryRule.MOST_RECENT)


def load_entries(sessions_dir: Path, index: Optional[IndexStore] = None) -> list[IndexEntry]:
    """
    Index entries for discovery, falling back to a metadata scan when the
    index yields nothing.
    """
    entries: list[IndexEntry] = []
    if index is not None:
        try:
            entries = index.list_all()
        except Exception as e:
            logger.warning("Session index unavailable: %s", e)
            entries = []
    if entries:
        return entries

    scanned = []
    for metadata in scan_session_metadata(sessions_dir):
        try:
            scanned.append(IndexEntry.from_dict(metadata.session_id, {
                "last_captured_at": metadata.last_captured_at or "",
                "tty": metadata.tty,
                "compaction_count": metadata.compaction_count,
                "tokens": metadata.tokens.get("state", 0),
            }))
        except Exception as e:
            logger.warning("Skipping session %s during discovery: %s", metadata.session_id, e)
    return scanned


def discover_session(
    sessions_dir: Path,
    tty: str,
    index: Optional[IndexStore] = None,
    now: Optional[datetime] = None,
    window_hours: int = RECENT_WINDOW_HOURS,
) -> DiscoveryResult:
    """
    Find the most relevant prior session.

    Args:
        sessions_dir: Per-project sessions directory
        tty: Terminal identity of the caller
        index: Index store (None scans metadata directly)
        now: Reference time for the recent window
        window_hours: Width of the recent window

    Returns:
        DiscoveryResult, empty when no rule matched
    """
    try:
        entries = load_entries(sessions_dir, index)
        result = choose_session(entries, tty, now=now, window_hours=window_hours)
        if result.found:
            logger.debug("Discovered %s by %s", result.session_id, result.rule.value)
            return result
    except Exception as e:
        logger.warning("Session discovery from recorded sessions failed: %s", e)

    latest = LatestMarker(sessions_dir).read()
    if latest:
        return DiscoveryResult(latest, DiscoveryRule.LATEST_MARKER)

    return DiscoveryResult()
