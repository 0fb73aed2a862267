"""
Architecture Decision Records
=============================

Per-session, append-only log of architecture decisions stored as markdown
(``<session>/adrs.md``). Each record looks like:

    ADR-003: Cache parsed transcripts in memory
    Date: 2026-01-12
    Status: Accepted
    Confidence: High
    TL;DR: Parsing dominated capture latency.

    ### Context
    ...
    ### Decision
    ...
    ### Alternatives
    ...
    ### Consequences
    ...

    ---

Identifiers are sequential, zero-padded and never reused: the next id is one
past the larger of the highest id in the file and the persisted sequence
floor, so deleting the last entry does not free its number.

Usage:
    from turing.decision import DecisionLog, DecisionStatus

    log = DecisionLog(session_dir / "adrs.md", sequence_floor=metadata.adr_sequence)
    record = log.append(
        title="Use JSON for the session index",
        summary="Human readable and trivially diffable",
        decision="Store the index as index.json",
        alternatives=["SQLite", "One file per entry"],
    )
    log.mark_superseded(record.adr_id, by_id="ADR-004")
"""

import re
from dataclasses import dataclass, field, asdict
from datetime import date
from enum import Enum
from pathlib import Path
from typing import Optional

from turing.errors import DecisionNotFoundError

ADR_PREFIX = "ADR-"
ID_WIDTH = 3

_TITLE_RE = re.compile(r"^ADR-(\d+):\s*(.*)$")
_FIELD_RE = re.compile(r"^(Date|Status|Confidence|TL;DR):\s*(.*)$")
_BLOCK_RE = re.compile(r"^###\s+(Context|Decision|Alternatives|Consequences)\s*$")


class DecisionStatus(Enum):
    """Lifecycle states of a decision record."""
    PROPOSED = "Proposed"
    ACCEPTED = "Accepted"
    DEPRECATED = "Deprecated"
    SUPERSEDED = "Superseded"


class Confidence(Enum):
    """How sure the author was when the decision was recorded."""
    HIGH = "High"
    MEDIUM = "Medium"
    LOW = "Low"


def format_adr_id(number: int) -> str:
    """Format a sequence number as an ADR identifier (ADR-007)."""
    return f"{ADR_PREFIX}{number:0{ID_WIDTH}d}"


def parse_adr_number(adr_id: str) -> int:
    """Parse ``ADR-007`` (or ``7``) into 7."""
    text = adr_id.strip().upper()
    if text.startswith(ADR_PREFIX):
        text = text[len(ADR_PREFIX):]
    return int(text)


def superseded_status(by_id: str) -> str:
    """Status text for a record replaced by ``by_id``."""
    return f"{DecisionStatus.SUPERSEDED.value} by {format_adr_id(parse_adr_number(by_id))}"


@dataclass
class DecisionRecord:
    """One architecture decision."""
    number: int
    title: str
    date: str
    status: str = DecisionStatus.ACCEPTED.value
    confidence: str = Confidence.MEDIUM.value
    summary: str = ""
    context: str = ""
    decision: str = ""
    alternatives: str = ""
    consequences: str = ""

    @property
    def adr_id(self) -> str:
        return format_adr_id(self.number)

    @property
    def is_superseded(self) -> bool:
        return self.status.startswith(DecisionStatus.SUPERSEDED.value)

    def to_dict(self) -> dict:
        data = asdict(self)
        data["adr_id"] = self.adr_id
        return data

    def to_markdown(self) -> str:
        lines = [
            f"{self.adr_id}: {self.title}",
            f"Date: {self.date}",
            f"Status: {self.status}",
            f"Confidence: {self.confidence}",
            f"TL;DR: {self.summary}",
            "",
        ]
        for heading, text in (
            ("Context", self.context),
            ("Decision", self.decision),
            ("Alternatives", self.alternatives),
            ("Consequences", self.consequences),
        ):
            if text:
                lines.extend([f"### {heading}", text.strip(), ""])
        lines.extend(["---", ""])
        return "\n".join(lines)

    def title_line(self) -> str:
        """Single line used in state documents and restore output."""
        if self.summary:
            return f"{self.adr_id}: {self.title} — {self.summary}"
        return f"{self.adr_id}: {self.title}"


def parse_decisions(text: str) -> list[DecisionRecord]:
    """Parse every record in an ADR log. Malformed fragments are skipped."""
    records: list[DecisionRecord] = []
    current: Optional[DecisionRecord] = None
    block: Optional[str] = None
    block_lines: list[str] = []

    def flush_block() -> None:
        if current is not None and block is not None:
            setattr(current, block.lower(), "\n".join(block_lines).strip())

    for line in text.split("\n"):
        title = _TITLE_RE.match(line)
        if title:
            flush_block()
            block, block_lines = None, []
            current = DecisionRecord(number=int(title.group(1)), title=title.group(2).strip(), date="")
            records.append(current)
            continue
        if current is None:
            continue

        heading = _BLOCK_RE.match(line)
        if heading:
            flush_block()
            block, block_lines = heading.group(1), []
            continue

        if line.strip() == "---":
            flush_block()
            block, block_lines = None, []
            continue

        if block is not None:
            block_lines.append(line)
            continue

        fld = _FIELD_RE.match(line)
        if fld:
            key, value = fld.group(1), fld.group(2).strip()
            if key == "Date":
                current.date = value
            elif key == "Status":
                current.status = value
            elif key == "Confidence":
                current.confidence = value
            else:
                current.summary = value

    flush_block()
    return records


@dataclass
class DecisionLog:
    """
    Manages the ADR log of one session.

    Args:
        path: Path to adrs.md
        sequence_floor: Highest id ever issued for this session (persisted
            in the session metadata)
    """
    path: Path
    sequence_floor: int = 0
    _records: list[DecisionRecord] = field(default_factory=list, init=False, repr=False)
    _loaded: bool = field(default=False, init=False, repr=False)

    def __post_init__(self) -> None:
        self.path = Path(self.path)

    def exists(self) -> bool:
        return self.path.exists()

    def load(self) -> list[DecisionRecord]:
        """Load records from disk. A missing or unreadable log is empty."""
        try:
            text = self.path.read_text(encoding="utf-8")
        except OSError:
            text = ""
        self._records = parse_decisions(text)
        self._loaded = True
        return list(self._records)

    @property
    def records(self) -> list[DecisionRecord]:
        if not self._loaded:
            self.load()
        return list(self._records)

    @property
    def highest_number(self) -> int:
        numbers = [r.number for r in self.records]
        return max(numbers + [self.sequence_floor])

    def next_number(self) -> int:
        return self.highest_number + 1

    def get(self, adr_id: str) -> Optional[DecisionRecord]:
        number = parse_adr_number(adr_id)
        for record in self.records:
            if record.number == number:
                return record
        return None

    def append(
        self,
        title: str,
        summary: str = "",
        status: DecisionStatus | str = DecisionStatus.ACCEPTED,
        confidence: Confidence | str = Confidence.MEDIUM,
        context: str = "",
        decision: str = "",
        alternatives: Optional[list[str] | str] = None,
        consequences: str = "",
        on_date: Optional[date] = None,
    ) -> DecisionRecord:
        """
        Append a new record with the next sequential id.

        Returns:
            The appended DecisionRecord
        """
        if isinstance(alternatives, list):
            alternatives = "\n".join(f"- {a}" for a in alternatives)

        record = DecisionRecord(
            number=self.next_number(),
            title=title.strip(),
            date=(on_date or date.today()).isoformat(),
            status=status.value if isinstance(status, DecisionStatus) else str(status),
            confidence=confidence.value if isinstance(confidence, Confidence) else str(confidence),
            summary=summary.strip(),
            context=context,
            decision=decision,
            alternatives=alternatives or "",
            consequences=consequences,
        )

        self.path.parent.mkdir(parents=True, exist_ok=True)
        with open(self.path, "a", encoding="utf-8") as f:
            if self.path.stat().st_size == 0:
                f.write("# Architecture Decision Records\n\n")
            f.write(record.to_markdown())

        self._records.append(record)
        self.sequence_floor = record.number
        return record

    def mark_superseded(self, adr_id: str, by_id: str) -> DecisionRecord:
        """
        Change a record's status to "Superseded by ADR-N".

        Only the Status line of that record is rewritten; ids never change.

        Raises:
            DecisionNotFoundError: If ``adr_id`` is not in the log
        """
        target = self.get(adr_id)
        if target is None:
            raise DecisionNotFoundError(f"{adr_id} not found in {self.path}")

        new_status = superseded_status(by_id)
        lines = self.path.read_text(encoding="utf-8").split("\n")
        in_target = False
        for i, line in enumerate(lines):
            title = _TITLE_RE.match(line)
            if title:
                in_target = int(title.group(1)) == target.number
                continue
            if in_target and line.startswith("Status:"):
                lines[i] = f"Status: {new_status}"
                break
        self.path.write_text("\n".join(lines), encoding="utf-8")

        target.status = new_status
        self.load()
        return target

    def summary_lines(self, limit: Optional[int] = None) -> list[str]:
        """Title lines with their TL;DR, oldest first."""
        lines = [r.title_line() for r in self.records]
        return lines[:limit] if limit is not None else lines
