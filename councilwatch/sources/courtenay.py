from __future__ import annotations

import re

from councilwatch.html_parser import node_text, parse_highlights_html
from councilwatch.scrape_coordinator import MeetingLink, ParsedMeeting
from councilwatch.sources.base import SourceAdapter
from councilwatch.utils import parse_date_string

NEWS_LISTING_URL = "https://www.courtenay.ca/news"
BASE_URL = "https://www.courtenay.ca"

_HIGHLIGHTS_DATE_RE = re.compile(r"courtenay-council-meeting-highlights-([a-z]+)-(\d+)-(\d+)", re.IGNORECASE)

# Courtenay's news pages are light; a shorter pause is enough.
COURTENAY_PAGE_DELAY_SECONDS = 1.5


def meeting_date_from_url(url):
    """
    The meeting date lives in the article slug:
    ".../courtenay-council-meeting-highlights-february-18-2026".
    """
    match = _HIGHLIGHTS_DATE_RE.search(url or "")
    if not match:
        return None
    month, day, year = match.groups()
    return parse_date_string(f"{month} {day} {year}")


class CourtenayHighlights(SourceAdapter):
    """
    Source for the City of Courtenay.

    Courtenay does not publish machine-readable agendas. Instead, staff post a
    "Council Meeting Highlights" news article after each meeting, with one
    heading per decision and an "Actions:" line stating the outcome. Those
    articles are the whole source.
    """
    short_name = "courtenay"
    display_name = "Courtenay"
    source_type = "highlights"

    def discover(self, limit):
        page = self.fetch_page(NEWS_LISTING_URL)
        links = []
        seen = set()
        for anchor in page.css('a[href*="council-meeting-highlights"]'):
            text = node_text(anchor)
            url = self.absolute(BASE_URL + "/", anchor.attrib.get("href"))
            if not url or not text or url in seen:
                continue
            seen.add(url)
            links.append(MeetingLink(url=url, text=text, date=meeting_date_from_url(url)))
        return links

    def scrape_meeting(self, link):
        self.fetcher.pause(COURTENAY_PAGE_DELAY_SECONDS)
        html = self.fetcher.fetch_text(link.url)
        items = parse_highlights_html(html, source_type=self.source_type)
        return ParsedMeeting(
            date=link.date or meeting_date_from_url(link.url),
            title=link.text or "Council Meeting Highlights",
            meeting_type="regular",
            source_url=link.url,
            highlights_url=link.url,
            items=items,
        )
