"""
Priority-Tagged State Document
==============================

The state document is a small markdown file with a ``---`` delimited header
block followed by a body split into sections. Each section starts with a
marker comment naming its priority:

    ---
    version: 1.1
    session_id: abc123
    checksum: PENDING
    token_estimate: PENDING
    ---

    <!-- PRIORITY: CRITICAL -->
    ## Active Focus
    ...

Restores replay only the sections whose priority is within a threshold, so
the most important context survives a constrained context window.

Usage:
    from turing.document import parse_document, filter_document, Priority

    doc = parse_document(text)
    result = filter_document(doc, Priority.HIGH.value)
    print(result.render())
"""

import hashlib
import re
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Optional

FORMAT_VERSION = "1.1"
PENDING = "PENDING"
ALL = "ALL"

# Header keys in the order they are written
HEADER_KEYS = (
    "version",
    "session_id",
    "tty",
    "captured_at",
    "compaction_count",
    "trigger",
    "project",
    "checksum",
    "token_estimate",
)

_MARKER_RE = re.compile(r"<!--\s*PRIORITY:\s*(\w+)\s*-->")
_FRONTMATTER_RE = re.compile(r"^---\s*\n(.*?)\n---\s*\n(.*)$", re.DOTALL)


class Priority(Enum):
    """Section importance levels, most important first."""
    CRITICAL = "CRITICAL"   # Active focus, blockers
    HIGH = "HIGH"           # Key decisions
    MEDIUM = "MEDIUM"       # Modified files, git state
    LOW = "LOW"             # Project context
    ARCHIVE = "ARCHIVE"     # Session history

    @property
    def rank(self) -> int:
        return _RANKS[self.value]

    @classmethod
    def from_label(cls, label: str) -> Optional["Priority"]:
        """Return the Priority for a marker label, or None when unrecognized."""
        try:
            return cls(label)
        except ValueError:
            return None


_RANKS = {p.value: i for i, p in enumerate(Priority)}

DEFAULT_PRIORITY = Priority.HIGH.value


def priority_allowed(section_priority: str, threshold: str) -> bool:
    """
    Check whether a section priority passes a threshold.

    ``ALL`` passes everything. A section label or threshold that is not a
    known level is always included: hiding less is preferable to losing
    information.
    """
    if threshold == ALL:
        return True
    section_rank = _RANKS.get(section_priority)
    threshold_rank = _RANKS.get(threshold)
    if section_rank is None or threshold_rank is None:
        return True
    return section_rank <= threshold_rank


@dataclass
class Section:
    """One priority-tagged block of the document body."""
    priority: str
    content: str

    @property
    def heading(self) -> Optional[str]:
        """The first markdown ``## `` heading in the section, if any."""
        for line in self.content.split("\n"):
            if line.startswith("## "):
                return line[3:].strip()
        return None


@dataclass
class StateDocument:
    """A parsed state document: header attributes plus ordered sections."""
    header: dict[str, str] = field(default_factory=dict)
    sections: list[Section] = field(default_factory=list)

    def body_text(self) -> str:
        """Serialize the sections, markers included, as stored on disk."""
        parts = []
        for section in self.sections:
            parts.append(f"<!-- PRIORITY: {section.priority} -->")
            parts.append(section.content)
        return "\n".join(parts)

    def header_text(self) -> str:
        lines = ["---"]
        keys = [k for k in HEADER_KEYS if k in self.header]
        keys += [k for k in self.header if k not in HEADER_KEYS]
        for key in keys:
            lines.append(f"{key}: {self.header[key]}")
        lines.append("---")
        return "\n".join(lines) + "\n"

    def to_text(self) -> str:
        """Full on-disk text: header block, blank line, body."""
        return self.header_text() + "\n" + self.body_text()

    def content_checksum(self) -> str:
        return content_checksum(self.body_text())

    def token_estimate(self) -> int:
        return estimate_tokens(self.body_text())

    def find_section(self, heading: str) -> Optional[Section]:
        """Return the first section whose heading starts with ``heading``."""
        for section in self.sections:
            if section.heading and section.heading.startswith(heading):
                return section
        return None

    @property
    def is_finalized(self) -> bool:
        """True once both checksum and token estimate are populated."""
        return (
            self.header.get("checksum", PENDING) != PENDING
            and self.header.get("token_estimate", PENDING) != PENDING
        )


@dataclass
class FilterResult:
    """Outcome of filtering a document at a threshold."""
    document: StateDocument
    threshold: str
    included: set[str] = field(default_factory=set)
    excluded: set[str] = field(default_factory=set)

    def render(self) -> str:
        return render_sections(self.document.sections)


def content_checksum(body: str) -> str:
    """MD5 hex digest of the body content."""
    return hashlib.md5(body.encode("utf-8")).hexdigest()


def estimate_tokens(text: str) -> int:
    """Rough token estimate: one token per four bytes of UTF-8."""
    return len(text.encode("utf-8")) // 4


def parse_document(raw: str) -> StateDocument:
    """
    Parse raw document text.

    Text before the first marker becomes a section with the default (HIGH)
    priority. Marker labels are kept verbatim so an unrecognized label can
    still be recognized as such when filtering.
    """
    header: dict[str, str] = {}
    body = raw

    match = _FRONTMATTER_RE.match(raw)
    if match:
        body = match.group(2)
        for line in match.group(1).split("\n"):
            if ":" in line:
                key, value = line.split(":", 1)
                header[key.strip()] = value.strip()

    sections: list[Section] = []
    current_priority = DEFAULT_PRIORITY
    current_lines: list[str] = []
    in_preamble = True

    for line in body.split("\n"):
        marker = _MARKER_RE.match(line)
        if marker:
            # A blank preamble is layout, not a section
            if current_lines and not (in_preamble and not "".join(current_lines).strip()):
                sections.append(Section(current_priority, "\n".join(current_lines)))
            current_priority = marker.group(1)
            in_preamble = False
            current_lines = []
        else:
            current_lines.append(line)

    if current_lines and not (in_preamble and not "".join(current_lines).strip()):
        sections.append(Section(current_priority, "\n".join(current_lines)))

    return StateDocument(header=header, sections=sections)


def load_document(path: Path) -> Optional[StateDocument]:
    """Read and parse a document file; None if missing or unreadable."""
    path = Path(path)
    try:
        raw = path.read_text(encoding="utf-8", errors="replace")
    except OSError:
        return None
    return parse_document(raw)


def render_sections(sections: list[Section]) -> str:
    """Concatenate section bodies in order, without markers."""
    return "\n".join(section.content for section in sections).strip()


def filter_document(doc: StateDocument, threshold: str) -> FilterResult:
    """
    Keep the sections allowed under ``threshold``.

    Args:
        doc: Parsed document
        threshold: A Priority value or ``ALL``

    Returns:
        FilterResult with a new document (header preserved) and the sets of
        included and excluded priority labels
    """
    kept: list[Section] = []
    included: set[str] = set()
    excluded: set[str] = set()

    for section in doc.sections:
        if priority_allowed(section.priority, threshold):
            kept.append(section)
            included.add(section.priority)
        else:
            excluded.add(section.priority)

    return FilterResult(
        document=StateDocument(header=dict(doc.header), sections=kept),
        threshold=threshold,
        included=included,
        excluded=excluded,
    )


def verify_checksum(doc: StateDocument, recorded: Optional[str] = None) -> str:
    """
    Compare the header checksum against the body.

    Nothing is verified until both checksum and token estimate are patched.

    Args:
        doc: Parsed state document
        recorded: Checksum from the side file written at capture, if any

    Returns:
        "verified", "mismatch", "pending" or "unavailable"
    """
    stored = doc.header.get("checksum", "")
    if not stored or stored == "unavailable":
        return "unavailable"
    if not doc.is_finalized:
        return "pending"
    if recorded and recorded != stored:
        return "mismatch"
    return "verified" if stored == doc.content_checksum() else "mismatch"


def patch_pending(text: str, checksum: str, token_estimate: int) -> str:
    """Replace the PENDING placeholders in a serialized header."""
    text = text.replace(f"checksum: {PENDING}", f"checksum: {checksum}", 1)
    text = text.replace(f"token_estimate: {PENDING}", f"token_estimate: {token_estimate}", 1)
    return text


def split_body(text: str) -> str:
    """Return the body part of serialized document text."""
    match = _FRONTMATTER_RE.match(text)
    return match.group(2) if match else text
