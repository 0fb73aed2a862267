"""
Decision Extraction
===================

Mines candidate decisions from raw transcript text. The capture engine only
depends on the ``DecisionExtractor`` protocol, so a smarter extractor can
replace the regex heuristic without touching capture.
"""

import re
from collections import deque
from pathlib import Path
from typing import Optional, Protocol

MIN_LENGTH = 15
MAX_LENGTH = 100
MAX_DECISIONS = 8

# Applied in order; earlier patterns win the cap
DECISION_PATTERNS = [
    r"(?i)decided to ([^.!?\n]{10,100})",
    r"(?i)going with ([^.!?\n]{10,80})",
    r"(?i)will use ([^.!?\n]{10,80}) because",
    r"(?i)chose ([^.!?\n]{10,80}) over",
    r"(?i)the approach is ([^.!?\n]{10,100})",
    r"(?i)implemented ([^.!?\n]{10,80})",
    r"(?i)created ([^.!?\n]{10,80}) for",
    r"(?i)added ([^.!?\n]{10,80}) to handle",
]


class DecisionExtractor(Protocol):
    """Anything that can turn free text into candidate decision strings."""

    def extract_candidates(self, text: str) -> list[str]:
        ...


class RegexDecisionExtractor:
    """Pattern-matching extractor over raw transcript text."""

    def __init__(
        self,
        patterns: Optional[list[str]] = None,
        max_results: int = MAX_DECISIONS,
    ):
        self.patterns = [re.compile(p) for p in (patterns or DECISION_PATTERNS)]
        self.max_results = max_results

    def extract_candidates(self, text: str) -> list[str]:
        """
        Extract unique decisions from text.

        Each match is trimmed and truncated to 100 characters; matches of 15
        characters or fewer are dropped; duplicates are compared
        case-insensitively.
        """
        decisions: list[str] = []
        seen: set[str] = set()

        for pattern in self.patterns:
            for match in pattern.findall(text):
                clean = match.strip()[:MAX_LENGTH]
                key = clean.lower()
                if clean and key not in seen and len(clean) > MIN_LENGTH:
                    seen.add(key)
                    decisions.append(clean)

        return decisions[:self.max_results]


def read_transcript_tail(path: Optional[str | Path], max_lines: int = 500) -> str:
    """Return the last ``max_lines`` lines of a transcript, or "" if unavailable."""
    if not path:
        return ""
    path = Path(path)
    if max_lines <= 0 or not path.is_file():
        return ""
    with open(path, "r", encoding="utf-8", errors="ignore") as f:
        tail = deque(f, maxlen=max_lines)
    return "".join(tail)
