import logging
import re


logger = logging.getLogger("text-cleaning")

ELLIPSIS = "…"

_WHITESPACE_RE = re.compile(r"\s+")
_FORM_FEED_RE = re.compile(r"\f")
_BLANK_RUN_RE = re.compile(r"\n{3,}")

# Words kept lowercase inside an ALL-CAPS agenda heading once it is title-cased.
_SMALL_WORDS = {"AND", "OR", "THE", "OF", "FOR", "IN", "TO", "A", "AN"}
# Acronyms that stay upper-case.
_ACRONYM_RE = re.compile(r"^(CVRD|MRDT|OAP|OCP|ALR)$", re.IGNORECASE)
_LEADING_QUOTE_RE = re.compile(r'^["“”]')


def normalize_spaces(text: str) -> str:
    """Collapses every whitespace run (including newlines) into one space."""
    if not text:
        return ""
    return _WHITESPACE_RE.sub(" ", text).strip()


def cap_content(text: str, limit: int) -> str:
    """
    Trims text to `limit` characters, marking the cut with an ellipsis.

    Text that already fits is returned stripped but otherwise untouched.
    """
    if not text:
        return ""
    value = text.strip()
    if len(value) <= limit:
        return value
    return value[:limit].strip() + ELLIPSIS


def strip_noise(text: str, patterns) -> str:
    """
    Removes recurring page furniture (headers, footers, page numbers).

    `patterns` are compiled regexes; each match is deleted. Form feeds from
    the PDF extractor are turned into newlines so section markers that start a
    page still sit at the start of a line.
    """
    if not text:
        return ""
    cleaned = _FORM_FEED_RE.sub("\n", text)
    removed = 0
    for pattern in patterns:
        cleaned, count = pattern.subn("", cleaned)
        removed += count
    cleaned = _BLANK_RUN_RE.sub("\n\n", cleaned)
    if removed:
        logger.debug("strip_noise removed=%s", removed)
    return cleaned


def title_case_heading(title: str) -> str:
    """
    Turns an ALL-CAPS agenda heading into a readable title.

    "RECOMMENDATION for OCP AMENDMENT BYLAW NO. 12" -> "OCP Amendment Bylaw No. 12"
    """
    cleaned = re.sub(r"^RECOMMENDATION for ", "", title or "", flags=re.IGNORECASE)
    cleaned = normalize_spaces(cleaned)
    quote_match = _LEADING_QUOTE_RE.match(cleaned)
    leading_quote = quote_match.group(0) if quote_match else ""
    stripped = cleaned[len(leading_quote):]

    words = []
    for i, word in enumerate(stripped.split(" ")):
        if not word:
            continue
        if i > 0 and word in _SMALL_WORDS:
            words.append(word.lower())
        elif _ACRONYM_RE.match(word):
            words.append(word)
        elif word.lower() == "bylaw":
            words.append("Bylaw")
        elif word.lower() == "no.":
            words.append("No.")
        else:
            words.append(word[:1].upper() + word[1:].lower())
    return leading_quote + " ".join(words)
