"""
HTML flavours of the document parser.

PDF agenda packages go through councilwatch.document_parser. Two sources
publish HTML instead:

- Courtenay (and occasionally the CVRD news page) post "council meeting
  highlights" articles: one h2/h3 heading per decision followed by a few
  paragraphs, with the outcome written as "Actions: ...".
- The CVRD agenda portal renders agendas as a table: a numbered cell
  ("1)") next to a bold title, followed by rows of <blockquote> text holding
  report summaries and "THAT ..." recommendations.

Both return ExtractedItem lists so the scrape coordinator does not care which
kind of document a meeting came from.
"""

from __future__ import annotations

import logging
import re

from scrapy.selector import Selector

from councilwatch.config import MAX_CONTENT_LENGTH
from councilwatch.document_parser import (
    ExtractedItem,
    extract_bylaw_number,
    extract_decision_from_actions,
)
from councilwatch.text_cleaning import cap_content, normalize_spaces, title_case_heading

logger = logging.getLogger("html-parser")

# Where the article body usually lives, most specific first.
CONTENT_SELECTORS = (
    "article",
    "[role='main']",
    ".content",
    ".main-content",
    "main",
    ".node__content",
    "#block-mainpagecontent",
    ".field--name-body",
)

# Text inside these never counts as article content.
_EXCLUDED_ANCESTORS = (
    "ancestor::nav or ancestor::footer or ancestor::aside or ancestor::script or ancestor::style"
    " or ancestor::*[contains(concat(' ', normalize-space(@class), ' '), ' sidebar ')]"
    " or ancestor::*[contains(concat(' ', normalize-space(@class), ' '), ' menu ')]"
)

HIGHLIGHT_SKIP_PATTERNS = (
    re.compile(r"^council meeting highlights", re.IGNORECASE),
    re.compile(r"^related links", re.IGNORECASE),
    re.compile(r"^share", re.IGNORECASE),
    re.compile(r"^contact", re.IGNORECASE),
    re.compile(r"^quick links", re.IGNORECASE),
)

NEWS_SKIP_PATTERNS = (
    re.compile(r"^related", re.IGNORECASE),
    re.compile(r"^share", re.IGNORECASE),
    re.compile(r"^contact", re.IGNORECASE),
)

_PARAGRAPH_FALLBACK_SKIP_RE = re.compile(r"^(Council meeting|For more information|Contact)", re.IGNORECASE)
_SENTENCE_END_RE = re.compile(r"[.!?]")

_NUMBERED_ITEM_RE = re.compile(r"^\d+\)$")
_AGENDA_SECTION_HEADER_RE = re.compile(r"^[A-Z]\.\s+[A-Z]")
_COMMITTEE_TITLE_RE = re.compile(r"COMMITTEE|COMMISSION|FORUM", re.IGNORECASE)
_MINUTES_FOR_RECEIPT_RE = re.compile(r"minutes dated.*for receipt", re.IGNORECASE | re.DOTALL)
_ADOPTION_OF_MINUTES_RE = re.compile(r"^ADOPTION OF MINUTES", re.IGNORECASE)
_PROCEDURAL_TITLE_RE = re.compile(
    r"CLOSED MEETING|IN.?CAMERA|TRADITIONAL TERRITOR|LAND ACKNOWLEDGMENT", re.IGNORECASE
)
# An agenda entry shorter than this (title + text) is a procedural stub.
MIN_AGENDA_ENTRY_LENGTH = 100


def node_text(node) -> str:
    """All visible text under a node (or SelectorList), script/style excluded."""
    parts = node.xpath(".//text()[not(ancestor::script) and not(ancestor::style)]").getall()
    return "".join(parts).strip()


def select_main_content(selector: Selector):
    """
    Picks the element holding the article body.

    The first selector whose first match carries more than 100 characters of
    text wins; otherwise the whole <body> is used.
    """
    for css in CONTENT_SELECTORS:
        found = selector.css(css)
        if found and len(node_text(found[0])) > 100:
            return found[0]
    body = selector.css("body")
    return body[0] if body else selector


def _content_headings(content):
    return content.xpath(f".//*[self::h2 or self::h3][not({_EXCLUDED_ANCESTORS})]")


def _text_until_next_heading(heading) -> list[str]:
    parts = []
    for sibling in heading.xpath("following-sibling::*"):
        tag = sibling.xpath("name()").get("").lower()
        if tag in ("h2", "h3"):
            break
        if tag in ("nav", "footer", "aside", "script", "style"):
            continue
        text = node_text(sibling)
        if text:
            parts.append(text)
    return parts


def parse_highlights_html(html: str, source_type: str = "highlights") -> list[ExtractedItem]:
    """
    Parses a "council meeting highlights" article into items.

    Each h2/h3 heading is one item; its text is everything up to the next
    heading. When the article has no usable headings we fall back to one item
    per substantial paragraph, titled by its first sentence.
    """
    selector = Selector(text=html or "")
    content = select_main_content(selector)

    items = []
    seen_titles = set()
    for heading in _content_headings(content):
        title = normalize_spaces(node_text(heading))
        if len(title) < 3:
            continue
        if any(p.search(title) for p in HIGHLIGHT_SKIP_PATTERNS):
            continue
        key = title.lower()
        if key in seen_titles:
            continue
        seen_titles.add(key)

        description = "\n\n".join(_text_until_next_heading(heading)).strip()
        raw_content = description or title
        items.append(ExtractedItem(
            title=title,
            description=description or title,
            raw_content=raw_content,
            decision=extract_decision_from_actions(raw_content),
            source_type=source_type,
            bylaw_number=extract_bylaw_number(title) or extract_bylaw_number(description),
        ))

    if items:
        return items

    for paragraph in content.xpath(f".//p[not({_EXCLUDED_ANCESTORS})]"):
        text = node_text(paragraph)
        if len(text) <= 50 or _PARAGRAPH_FALLBACK_SKIP_RE.match(text):
            continue
        first_sentence = _SENTENCE_END_RE.split(text, maxsplit=1)[0].strip()
        if not first_sentence:
            continue
        title = first_sentence if len(first_sentence) <= 80 else first_sentence[:77] + "..."
        if title.lower() in seen_titles:
            continue
        seen_titles.add(title.lower())
        items.append(ExtractedItem(
            title=title,
            description=text,
            raw_content=text,
            decision=extract_decision_from_actions(text),
            source_type=source_type,
            bylaw_number=extract_bylaw_number(text),
        ))
    return items


def parse_news_article_html(html: str, min_description_length: int = 50) -> list[ExtractedItem]:
    """
    Stricter heading parser for general news posts (CVRD board highlights).

    News posts mix board decisions with unrelated headings, so an item needs a
    real paragraph behind it.
    """
    selector = Selector(text=html or "")
    content = select_main_content(selector)
    items = []
    for heading in _content_headings(content):
        title = normalize_spaces(node_text(heading))
        if len(title) <= 3 or any(p.search(title) for p in NEWS_SKIP_PATTERNS):
            continue
        description = " ".join(_text_until_next_heading(heading)).strip()
        if len(description) <= min_description_length:
            continue
        items.append(ExtractedItem(
            title=title,
            description=cap_content(description, MAX_CONTENT_LENGTH),
            raw_content=f"{title}\n\n{description}",
            decision=extract_decision_from_actions(description),
            source_type="highlights",
            bylaw_number=extract_bylaw_number(title),
        ))
    return items


def parse_cvrd_agenda_html(html: str) -> list[ExtractedItem]:
    """
    Parses the CVRD portal's table-based agenda.

    Layout we rely on:
        <tr><td><b>1)</b></td><td colspan=3><b>TITLE</b></td></tr>
        <tr><td></td><td><blockquote>Report dated ...</blockquote></td></tr>
        <tr><td></td><td><blockquote>THAT the Board ...</blockquote></td></tr>
    The item's rows end at the next numbered row or at a lettered section
    header ("F. REPORTS").
    """
    selector = Selector(text=html or "")
    items = []

    for number_cell in selector.xpath("//td//b"):
        if not _NUMBERED_ITEM_RE.match(node_text(number_cell)):
            continue
        row = number_cell.xpath("ancestor::tr[1]")
        if not row:
            continue
        title = normalize_spaces(" ".join(node_text(b) for b in row.xpath(".//td[@colspan]//b")))
        if not title:
            continue

        description_parts = []
        recommendation_parts = []
        for next_row in row.xpath("following-sibling::tr"):
            cell_text = node_text(next_row)
            numbered = any(_NUMBERED_ITEM_RE.match(node_text(b)) for b in next_row.xpath(".//td//b"))
            if numbered or _AGENDA_SECTION_HEADER_RE.match(cell_text):
                break
            for quote in next_row.xpath(".//blockquote"):
                quote_text = node_text(quote)
                if not quote_text:
                    continue
                if quote_text.startswith("THAT "):
                    recommendation_parts.append(quote_text)
                elif quote_text.startswith("Report dated") or quote_text.startswith("NOTE:") or len(quote_text) > 50:
                    description_parts.append(quote_text)

        description = "\n".join(description_parts)
        recommendation = "\n".join(recommendation_parts)

        if _COMMITTEE_TITLE_RE.search(title) and _MINUTES_FOR_RECEIPT_RE.search(description) and not recommendation:
            continue
        if _ADOPTION_OF_MINUTES_RE.match(title) or _PROCEDURAL_TITLE_RE.search(title):
            continue

        formatted_title = title_case_heading(title)
        raw_content = "\n\n".join(p for p in (formatted_title, description, recommendation) if p)
        if len(raw_content) < MIN_AGENDA_ENTRY_LENGTH:
            continue

        items.append(ExtractedItem(
            title=formatted_title,
            # The blockquotes can be all recommendation; the raw text still
            # describes the item.
            description=cap_content(description or raw_content, MAX_CONTENT_LENGTH),
            raw_content=cap_content(raw_content, MAX_CONTENT_LENGTH),
            decision=recommendation or None,
            source_type="agenda",
            bylaw_number=extract_bylaw_number(formatted_title),
        ))

    logger.debug("cvrd agenda html items=%s", len(items))
    return items
