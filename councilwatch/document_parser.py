"""
Document Parser

Turns the text of an agenda package (usually a PDF run through the extractor)
into a list of ExtractedItem records.

One engine, many sources
------------------------
Every source we scrape lays out its agenda the same basic way: staff reports,
bylaws and a correspondence log, separated by recognisable markers. What
differs is the wording of those markers and of the page furniture around them.
So the parsing code is written once, and each source only contributes a
MarkerTable describing:

- which headers/footers to strip (noise_patterns)
- where sections start (section_pattern, a lookahead alternation)
- how a staff report labels its title and fields
- how a bylaw reference is written
- how short a description can be before we call it noise

The three stages are the same for every table:

    text -> strip_noise -> split_sections -> per-section extraction -> finalize_items

Sections that do not produce a usable item are dropped without raising:
partial extraction of a 400 page package is normal and expected.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass, replace

from councilwatch.config import (
    BYLAW_FALLBACK_SLICE_CHARS,
    DEFAULT_MIN_DESCRIPTION_LENGTH,
    MAX_CONTENT_LENGTH,
    MAX_DECISION_LENGTH,
)
from councilwatch.text_cleaning import cap_content, normalize_spaces, strip_noise

logger = logging.getLogger("document-parser")

SECTION_STAFF = "staff_report"
SECTION_BYLAW = "bylaw"
SECTION_CORRESPONDENCE = "correspondence"

# "Actions: Council gave third reading ..." up to the next blank line.
_ACTIONS_RE = re.compile(r"Actions:\s*([\s\S]*?)(?=\n\s*\n|$)", re.IGNORECASE)

# Shared with the issue threader: "Bylaw No. 3211", "bylaw 2025-15".
BYLAW_REFERENCE_RE = re.compile(r"Bylaw\s+No\.?\s*(\d[\w-]*)", re.IGNORECASE)

_CORRESPONDENCE_SPLIT_RE = re.compile(r"(?=RECEIVED LOG:)")
_CORRESPONDENCE_HEADER_RE = re.compile(r"^RECEIVED LOG:[^\n]*\n?", re.IGNORECASE)
_RE_LINE_RE = re.compile(r"Re:\s*([^\n]+)", re.IGNORECASE)
_PARAGRAPH_SPLIT_RE = re.compile(r"\n\s*\n")

# Embedded blocks a bylaw page may carry. The label is matched case-sensitively
# so prose like "the title of the bylaw" does not count.
_BYLAW_BLOCK_END = r"(?=\n\s*\n|\n[A-Z]{2,}|\n\d\.|$)"
_BYLAW_TITLE_BLOCK_RE = re.compile(r"\bTITLE\s*[:\s]\s*(.+?)" + _BYLAW_BLOCK_END, re.DOTALL)
_BYLAW_PURPOSE_BLOCK_RE = re.compile(r"\bPURPOSE\s*[:\s]\s*(.+?)" + _BYLAW_BLOCK_END, re.DOTALL)


@dataclass
class ExtractedItem:
    title: str
    description: str
    raw_content: str
    decision: str | None = None
    source_type: str = "agenda"
    bylaw_number: str | None = None

    def to_dict(self) -> dict:
        return {
            "title": self.title,
            "description": self.description,
            "raw_content": self.raw_content,
            "decision": self.decision,
            "source_type": self.source_type,
            "bylaw_number": self.bylaw_number,
        }


@dataclass(frozen=True)
class MarkerTable:
    """
    Declarative description of one source's agenda layout.

    `field_labels` maps a staff-report field name to the regex that opens it.
    The regex must match at the start of a (stripped) line; whatever follows the
    match on that line is the first chunk of the field's text.

    `title_field` names the field that collects lines right after the title
    line (Cumberland reports have no PURPOSE heading, the body just follows the
    subject). Leave it None to ignore unlabelled lines.
    """
    name: str
    noise_patterns: tuple = ()
    section_pattern: re.Pattern = re.compile(r"(?=\bSTAFF REPORT\b)|(?=Bylaw No\.\s*\d+)|(?=RECEIVED LOG:)")
    staff_report_start: re.Pattern = re.compile(r"^STAFF REPORT\b")
    staff_title_label: re.Pattern = re.compile(r"^SUBJECT:\s*", re.IGNORECASE)
    skip_line_pattern: re.Pattern = re.compile(r"^(?:(?:Meeting|TO|FROM|FILE|DATE|RE):\s*|STAFF REPORT$)", re.IGNORECASE)
    field_labels: tuple = (
        ("purpose", re.compile(r"^PURPOSE(?::|\s+|$)\s*", re.IGNORECASE)),
        ("background", re.compile(r"^BACKGROUND(?::|\s+|$)\s*", re.IGNORECASE)),
        ("recommendation", re.compile(r"^RECOMMENDATIONS?(?::|\s+|$)\s*", re.IGNORECASE)),
    )
    title_field: str | None = None
    description_fields: tuple = ("purpose", "background")
    decision_field: str = "recommendation"
    bylaw_detect_pattern: re.Pattern = re.compile(r"\bBylaw No\.\s*\d+")
    bylaw_pattern: re.Pattern = re.compile(r"Bylaw No\.\s*(\d+)\s*[–-]\s*([^\n]+)", re.IGNORECASE)
    bylaw_min_name_length: int = 1
    bylaw_fallback_chars: int = BYLAW_FALLBACK_SLICE_CHARS
    correspondence_start: re.Pattern = re.compile(r"^RECEIVED LOG:")
    correspondence_paragraphs: int = 3
    min_description_length: int = DEFAULT_MIN_DESCRIPTION_LENGTH
    max_content_length: int = MAX_CONTENT_LENGTH
    max_decision_length: int = MAX_DECISION_LENGTH
    source_type: str = "agenda"

    def with_overrides(self, **changes) -> "MarkerTable":
        return replace(self, **changes)


# =============================================================================
# Stage 1 + 2: noise stripping and sectioning
# =============================================================================

def split_sections(text: str, pattern: re.Pattern) -> list[str]:
    """
    Splits text in front of every marker match.

    The pattern is made of lookaheads, so the split consumes no characters:
    "".join(split_sections(text, pattern)) == text. Each marker ends up at the
    start of its own segment; anything before the first marker is the first
    segment.
    """
    if not text:
        return []
    return [part for part in pattern.split(text) if part]


def classify_section(section: str, table: MarkerTable) -> str | None:
    stripped = section.strip()
    if not stripped:
        return None
    if table.staff_report_start.match(stripped):
        return SECTION_STAFF
    if table.bylaw_detect_pattern.search(stripped):
        return SECTION_BYLAW
    if table.correspondence_start.match(stripped):
        return SECTION_CORRESPONDENCE
    return None


# =============================================================================
# Stage 3: per-section field extraction
# =============================================================================

def parse_staff_report(block: str, table: MarkerTable) -> ExtractedItem | None:
    """
    Walks a staff report top to bottom, tracking which field we are in.

    A labelled line (PURPOSE:, BACKGROUND, RECOMMENDATION ...) switches the
    current field; any other non-empty line is appended to it. Lines before
    the first label belong to no field unless the table sets `title_field`.
    """
    title = None
    fields: dict[str, list[str]] = {}
    current = None

    for raw_line in block.splitlines():
        line = raw_line.strip()

        title_match = table.staff_title_label.match(line)
        if title_match:
            if title is None:
                title = line[title_match.end():].strip()
            if table.title_field:
                current = table.title_field
            continue
        if table.skip_line_pattern.match(line):
            continue

        switched = False
        for field_name, label in table.field_labels:
            label_match = label.match(line)
            if label_match:
                current = field_name
                rest = line[label_match.end():].strip()
                if rest:
                    fields.setdefault(field_name, []).append(rest)
                switched = True
                break
        if switched:
            continue

        if current and line:
            fields.setdefault(current, []).append(line)

    if not title:
        return None

    description_parts = []
    for field_name in table.description_fields:
        description_parts.extend(fields.get(field_name, []))
    description = cap_content(" ".join(description_parts), table.max_content_length)
    if not description:
        return None

    decision = cap_content(" ".join(fields.get(table.decision_field, [])), table.max_decision_length)
    raw_content = "\n\n".join(part for part in (title, description, decision) if part)
    return ExtractedItem(
        title=title,
        description=description,
        raw_content=raw_content,
        decision=decision or None,
        source_type=table.source_type,
        bylaw_number=extract_bylaw_number(title),
    )


def parse_bylaw(block: str, table: MarkerTable) -> ExtractedItem | None:
    """
    Extracts "Bylaw No. N – Name" plus a description.

    The description prefers the bylaw's own TITLE/PURPOSE paragraphs; only
    when neither is present do we fall back to the start of the block.
    """
    match = table.bylaw_pattern.search(block)
    if not match:
        return None

    number = match.group(1).strip()
    name = re.sub(r"[–-]+$", "", match.group(2).strip()).strip()
    if len(name) < table.bylaw_min_name_length:
        return None
    title = f"Bylaw No. {number} – {name}"

    parts = []
    for block_re in (_BYLAW_TITLE_BLOCK_RE, _BYLAW_PURPOSE_BLOCK_RE):
        block_match = block_re.search(block)
        if block_match:
            parts.append(normalize_spaces(block_match.group(1)))
    description = " ".join(p for p in parts if p)
    if not description:
        description = normalize_spaces(block[:table.bylaw_fallback_chars])
    description = cap_content(description, table.max_content_length)
    if not description:
        return None

    return ExtractedItem(
        title=title,
        description=description,
        raw_content=f"{title}\n\n{description}",
        source_type=table.source_type,
        bylaw_number=number,
    )


def parse_correspondence(block: str, table: MarkerTable) -> list[ExtractedItem]:
    """
    Each "RECEIVED LOG:" entry becomes one item, titled by its "Re:" line.

    Entries without a "Re:" line are dropped; we never emit a placeholder title.
    """
    items = []
    for entry in _CORRESPONDENCE_SPLIT_RE.split(block):
        if not entry.strip().startswith("RECEIVED LOG:"):
            continue
        re_match = _RE_LINE_RE.search(entry)
        if not re_match:
            continue
        title = re_match.group(1).strip()[:200]
        if not title:
            continue

        body = _CORRESPONDENCE_HEADER_RE.sub("", entry.strip(), count=1)
        paragraphs = [p.strip() for p in _PARAGRAPH_SPLIT_RE.split(body)]
        paragraphs = [p for p in paragraphs if len(p) > 20]
        description = cap_content(
            " ".join(paragraphs[:table.correspondence_paragraphs]),
            table.max_content_length,
        )
        if not description:
            continue
        items.append(ExtractedItem(
            title=title,
            description=description,
            raw_content=f"{title}\n\n{description}",
            source_type=table.source_type,
            bylaw_number=extract_bylaw_number(title),
        ))
    return items


# =============================================================================
# Post-processing
# =============================================================================

def finalize_items(items: list[ExtractedItem], table: MarkerTable) -> list[ExtractedItem]:
    """
    Applies the output guarantees of a parse pass, in document order:

    - items with an empty title or a description shorter than the table's
      minimum are dropped (noise-only sections)
    - repeats of an exact title are merged into the first occurrence: raw
      content is concatenated (a bylaw reprinted across pages keeps both
      excerpts) and capped
    """
    kept: dict[str, ExtractedItem] = {}
    rejected = 0
    for item in items:
        title = (item.title or "").strip()
        description = (item.description or "").strip()
        if not title or len(description) < table.min_description_length:
            rejected += 1
            continue

        existing = kept.get(title)
        if existing is None:
            item.title = title
            item.description = description
            kept[title] = item
            continue

        combined = f"{existing.raw_content or ''}\n\n{item.raw_content or ''}"
        existing.raw_content = cap_content(combined, table.max_content_length)
        existing.description = cap_content(combined, table.max_content_length)
        if not existing.decision and item.decision:
            existing.decision = item.decision
        if not existing.bylaw_number and item.bylaw_number:
            existing.bylaw_number = item.bylaw_number

    if rejected:
        logger.debug("parser=%s rejected=%s kept=%s", table.name, rejected, len(kept))
    return list(kept.values())


def parse_document(text: str, table: MarkerTable) -> list[ExtractedItem]:
    """Runs the full three-stage parse of one document with one marker table."""
    if not text or not text.strip():
        return []

    cleaned = strip_noise(text, table.noise_patterns)
    items: list[ExtractedItem] = []
    for section in split_sections(cleaned, table.section_pattern):
        kind = classify_section(section, table)
        block = section.strip()
        if kind == SECTION_STAFF:
            item = parse_staff_report(block, table)
            if item:
                items.append(item)
        elif kind == SECTION_BYLAW:
            item = parse_bylaw(block, table)
            if item:
                items.append(item)
        elif kind == SECTION_CORRESPONDENCE:
            items.extend(parse_correspondence(block, table))

    return finalize_items(items, table)


# =============================================================================
# Small extractors shared with the HTML parsers and the threader
# =============================================================================

def extract_decision_from_actions(content: str | None) -> str | None:
    """
    Pulls the decision out of a highlights paragraph.

    Courtenay writes outcomes as "Actions: Council gave third reading ...".
    Everything after the label up to the next blank line (or the end of the
    text) is the decision. No label means no recorded decision.
    """
    if not content:
        return None
    match = _ACTIONS_RE.search(content)
    if not match:
        return None
    decision = match.group(1).strip()
    return decision or None


def extract_bylaw_number(text: str | None) -> str | None:
    if not text:
        return None
    match = BYLAW_REFERENCE_RE.search(text)
    return match.group(1) if match else None


# =============================================================================
# Marker tables
# =============================================================================

COMOX_MARKERS = MarkerTable(
    name="comox",
    noise_patterns=(
        # "February 4, 2026, Regular Council MeetingPage 5"
        re.compile(r"\b[A-Za-z]+\s+\d{1,2},\s+\d{4},\s*Regular Council Meeting\s*Page\s*\d+(?:-\d+)?", re.IGNORECASE),
        # "Town of Comox Bylaw No. 2053 – Development Cost Charges Bylaw Page 12"
        re.compile(r"Town of Comox Bylaw No\.\s*\d+[^–\-\n]*[–-][^P\n]*\s*Page\s*\d+", re.IGNORECASE),
    ),
    section_pattern=re.compile(
        r"(?=\bSTAFF REPORT\b)|(?=Town of Comox Bylaw No\.\s*\d+)|(?=Bylaw No\.\s*\d+[^0-9])|(?=RECEIVED LOG:)"
    ),
    bylaw_detect_pattern=re.compile(r"\b(?:Town of Comox )?Bylaw No\.\s*\d+"),
    bylaw_pattern=re.compile(r"(?:Town of Comox\s+)?Bylaw No\.\s*(\d+)\s*[–-]\s*([^\n]+)", re.IGNORECASE),
    min_description_length=100,
)

CUMBERLAND_MARKERS = MarkerTable(
    name="cumberland",
    noise_patterns=(
        re.compile(r"Village of Cumberland[^\n]*\n", re.IGNORECASE),
        re.compile(r"Regular Council Meeting[^\n]*\n", re.IGNORECASE),
        re.compile(r"Committee of the Whole[^\n]*\n", re.IGNORECASE),
        re.compile(r"Page\s+\d+\s+of\s+\d+", re.IGNORECASE),
    ),
    section_pattern=re.compile(
        r"(?=\bSTAFF REPORT\b)|(?=\bREPORT TO COUNCIL\b)|(?=Bylaw No\.?\s*\d+)|(?=\bRECEIVED LOG:)"
    ),
    staff_report_start=re.compile(r"^(?:STAFF REPORT|REPORT TO COUNCIL)\b"),
    staff_title_label=re.compile(r"^(?:SUBJECT|RE|TOPIC):\s*", re.IGNORECASE),
    skip_line_pattern=re.compile(r"^(?:(?:TO|FROM|DATE|FILE|MEETING):\s*|STAFF REPORT$|REPORT TO COUNCIL$)", re.IGNORECASE),
    field_labels=(
        ("recommendation", re.compile(r"^RECOMMENDATIONS?:?$", re.IGNORECASE)),
    ),
    title_field="body",
    description_fields=("body",),
    bylaw_detect_pattern=re.compile(r"Bylaw No\.?\s*\d+"),
    bylaw_pattern=re.compile(r"Bylaw No\.?\s*(\d+[\w-]*)\s*[–-]?\s*([^\n]{3,80})", re.IGNORECASE),
    bylaw_min_name_length=5,
    bylaw_fallback_chars=MAX_CONTENT_LENGTH,
    min_description_length=80,
)

CVRD_MARKERS = MarkerTable(
    name="cvrd",
    noise_patterns=(
        re.compile(r"\b[A-Za-z]+\s+\d{1,2},\s+\d{4}[^P\n]*Page\s*\d+", re.IGNORECASE),
        re.compile(r"Comox Valley Regional District[^P\n]*Page\s*\d+", re.IGNORECASE),
        re.compile(r"CVRD\s+Bylaw No\.\s*\d+[^–\-\n]*[–-][^P\n]*\s*Page\s*\d+", re.IGNORECASE),
    ),
    section_pattern=re.compile(
        r"(?=\bSTAFF REPORT\b)|(?=CVRD\s+Bylaw No\.\s*\d+)|(?=Bylaw No\.\s*\d+[^0-9])|(?=RECEIVED LOG:)"
    ),
    bylaw_detect_pattern=re.compile(r"\b(?:CVRD\s+)?Bylaw No\.\s*\d+"),
    bylaw_pattern=re.compile(r"(?:CVRD\s+)?Bylaw No\.\s*(\d+)\s*[–-]\s*([^\n]+)", re.IGNORECASE),
    min_description_length=80,
)

MARKER_TABLES = {
    table.name: table for table in (COMOX_MARKERS, CUMBERLAND_MARKERS, CVRD_MARKERS)
}
