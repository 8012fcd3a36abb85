"""
Feedback Sampler

Public hearing correspondence is bundled into the agenda package as a long
run of scanned and typed letters. For the Town of Comox these pages carry a
page label of the form "Page 20-<n>" (agenda section 20, page n). The sampler
slices that run out of the extracted text, estimates how many letters it
holds, and keeps a bounded prefix for storage and for the sentiment prompt.

About the letter count
----------------------
Many letters are scanned images that produce no extractable text, so counting
salutations alone under-counts badly. estimate_letter_count therefore takes
the larger of two heuristics:

    (a) salutations ("Dear Mayor ...") + email headers ("From: ...")
    (b) page estimate: half the highest page label, since a typical
        letter spans about two pages

floored at 1. The result is an estimate, not a count, and is labelled as
approximate wherever it is shown to the model or stored.
"""

from __future__ import annotations

import json
import logging
import re
from dataclasses import dataclass

from councilwatch.config import (
    FEEDBACK_RAW_TEXT_CHARS,
    FEEDBACK_SAMPLE_CHARS,
    FEEDBACK_TAIL_CHARS,
)

logger = logging.getLogger("feedback-sampler")

SALUTATION_RE = re.compile(r"Dear (?:Mayor|Council|Town)", re.IGNORECASE)
EMAIL_HEADER_RE = re.compile(r"^From:\s*.*$", re.MULTILINE)


@dataclass(frozen=True)
class SamplerConfig:
    start_marker: str
    page_pattern: re.Pattern
    tail_chars: int = FEEDBACK_TAIL_CHARS
    sample_chars: int = FEEDBACK_SAMPLE_CHARS
    raw_text_chars: int = FEEDBACK_RAW_TEXT_CHARS


COMOX_SAMPLER = SamplerConfig(
    start_marker="Page 20-1",
    page_pattern=re.compile(r"Page 20-(\d+)"),
)


@dataclass
class FeedbackSample:
    raw_text: str
    letter_count: int
    max_page: int
    sample: str

    def to_json(self) -> dict:
        """Shape stored in Meeting.raw_feedback."""
        return {
            "rawText": self.raw_text,
            "letterCount": self.letter_count,
            "maxPage": self.max_page,
            "sample": self.sample,
        }


def estimate_letter_count(section: str, max_page: int) -> int:
    marker_count = len(SALUTATION_RE.findall(section or "")) + len(EMAIL_HEADER_RE.findall(section or ""))
    # Half the pages, rounding .5 up (5 pages -> 3 letters).
    page_estimate = (max_page + 1) // 2 if max_page > 0 else 0
    return max(marker_count, page_estimate, 1)


def sample_correspondence(text: str, config: SamplerConfig = COMOX_SAMPLER) -> FeedbackSample | None:
    """
    Returns a bounded sample of the correspondence section, or None when the
    document has no correspondence pages.

    The section runs from the first page label to the last one plus
    `tail_chars`, so the body of the final letter is included.
    """
    if not text:
        return None
    start = text.find(config.start_marker)
    if start == -1:
        return None

    last_end = start
    for match in config.page_pattern.finditer(text, start):
        last_end = match.end()

    section = text[start:last_end + config.tail_chars]
    pages = [int(m.group(1)) for m in config.page_pattern.finditer(section)]
    max_page = max(pages) if pages else 1
    letter_count = estimate_letter_count(section, max_page)

    sample = (
        f"{letter_count} letters identified in public hearing correspondence.\n\n"
        + section[:config.sample_chars]
    )
    logger.info(
        "correspondence section chars=%s max_page=%s letter_estimate=%s",
        len(section), max_page, letter_count,
    )
    return FeedbackSample(
        raw_text=section[:config.raw_text_chars],
        letter_count=letter_count,
        max_page=max_page,
        sample=sample,
    )


def read_feedback_blob(blob, sample_chars: int = FEEDBACK_SAMPLE_CHARS):
    """
    Reads a stored Meeting.raw_feedback value back.

    Returns (content, letter_count, max_page). Accepts the dict written by
    FeedbackSample.to_json, a JSON string of it, or plain text from older rows.
    """
    if blob is None:
        return None, None, None

    payload = blob
    if isinstance(blob, str):
        stripped = blob.lstrip()
        if not stripped:
            return None, None, None
        if stripped.startswith("{"):
            try:
                payload = json.loads(stripped)
            except json.JSONDecodeError:
                return blob[:sample_chars], None, None
        else:
            return blob[:sample_chars], None, None

    if not isinstance(payload, dict):
        return None, None, None

    content = payload.get("sample")
    if not content and payload.get("rawText"):
        content = str(payload["rawText"])[:sample_chars]
    letter_count = payload.get("letterCount")
    max_page = payload.get("maxPage")
    return content or None, letter_count, max_page
