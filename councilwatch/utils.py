import re

from dateutil import parser

# "February 18, 2026" / "Feb 18 2026" anywhere in a string.
_MONTHS = (
    r"(?:Jan(?:uary)?|Feb(?:ruary)?|Mar(?:ch)?|Apr(?:il)?|May|June?|July?|Aug(?:ust)?"
    r"|Sep(?:t(?:ember)?)?|Oct(?:ober)?|Nov(?:ember)?|Dec(?:ember)?)"
)
_MONTH_DAY_YEAR_RE = re.compile(r"\b(" + _MONTHS + r")\.?\s+(\d{1,2}),?\s+(\d{4})", re.IGNORECASE)
_SLUG_DATE_RE = re.compile(r"(" + _MONTHS + r")-(\d{1,2})-(\d{4})", re.IGNORECASE)


def parse_date_string(date_string):
    """
    Finds a date in a string and returns it as a date object.

    Why this is needed:
    Council websites write dates in many ways ("Feb 18, 2026",
    "2026-02-18", "Wednesday, February 18, 2026 - 1:00 PM"). Returning
    None instead of guessing lets callers skip a meeting whose date we
    cannot resolve, since the date is part of the meeting's identity.
    """
    if not date_string:
        return None

    # Normalize separators for better parsing
    date_string = date_string.replace("-", "/")

    try:
        # fuzzy=True allows finding dates within longer strings
        dt = parser.parse(date_string, fuzzy=True)
        return dt.date()
    except (ValueError, OverflowError):
        return None


def find_month_day_year(text):
    """
    Stricter variant: only accepts an explicit "Month D, YYYY" phrase.

    Link text like "Regular Council - Agenda Package" would make the fuzzy
    parser return today's date, so listing pages use this instead.
    """
    if not text:
        return None
    match = _MONTH_DAY_YEAR_RE.search(text)
    if not match:
        return None
    return parse_date_string(f"{match.group(1)} {match.group(2)} {match.group(3)}")


def slug_date(slug):
    """
    Reads a date out of a URL slug such as
    "regular-council-meeting-february-18-2026".
    """
    if not slug:
        return None
    match = _SLUG_DATE_RE.search(slug)
    if not match:
        return None
    return parse_date_string(f"{match.group(1)} {match.group(2)} {match.group(3)}")
