from __future__ import annotations

import re

from councilwatch.document_parser import CUMBERLAND_MARKERS
from councilwatch.html_parser import node_text
from councilwatch.scrape_coordinator import MeetingLink, ParsedMeeting
from councilwatch.sources.base import SourceAdapter
from councilwatch.utils import find_month_day_year, parse_date_string

LISTING_URL = "https://cumberland.ca/meetings/"
BASE_URL = "https://cumberland.ca"

_MEETING_PATH_RE = re.compile(r"/meetings/[^/]+/?$")
_DOCUMENT_RE = re.compile(r"\.(pdf|doc|docx)$", re.IGNORECASE)


def meeting_type_from_text(text):
    """Maps the listing title onto our meeting types."""
    upper = (text or "").upper()
    if "COMMITTEE OF THE WHOLE" in upper or "COTW" in upper:
        return "committee"
    if "SPECIAL" in upper:
        return "special"
    if "HERITAGE" in upper:
        return "committee"
    return "regular"


class Cumberland(SourceAdapter):
    """
    Source for the Village of Cumberland.

    The Village runs a WordPress site: /meetings/ lists meeting posts whose
    titles carry the date ("Regular Council Meeting - January 26, 2026"), and
    each post links the agenda package PDF.
    """
    short_name = "cumberland"
    display_name = "Village of Cumberland"
    source_type = "agenda"
    markers = CUMBERLAND_MARKERS

    def discover(self, limit):
        page = self.fetch_page(LISTING_URL)

        links = self._collect_links(page.css("h2 a[href], h3 a[href]"))
        if not links:
            # Theme without headed post titles; fall back to every link.
            links = self._collect_links(page.css("a[href]"))
        return links

    def _collect_links(self, anchors):
        links = []
        seen = set()
        for anchor in anchors:
            href = anchor.attrib.get("href", "").strip()
            text = node_text(anchor)
            if not href or not text:
                continue
            if not _MEETING_PATH_RE.search(href) or _DOCUMENT_RE.search(href):
                continue
            url = self.absolute(BASE_URL + "/", href)
            if url == LISTING_URL or url in seen:
                continue
            seen.add(url)
            links.append(MeetingLink(
                url=url,
                text=text,
                date=find_month_day_year(text),
                meeting_type=meeting_type_from_text(text),
            ))
        return links

    def scrape_meeting(self, link):
        self.polite_pause()
        page = self.fetch_page(link.url)

        h1_text = node_text(page.css("h1")[:1]) if page.css("h1") else ""
        date = link.date
        if date is None:
            datetime_attr = page.css("time::attr(datetime)").get() or page.css("[datetime]::attr(datetime)").get()
            if datetime_attr:
                date = parse_date_string(datetime_attr)
        if date is None:
            date = find_month_day_year(h1_text)
        if date is None:
            title_nodes = page.css(".entry-title, .page-title")
            date = find_month_day_year(node_text(title_nodes[:1])) if title_nodes else None

        meeting = ParsedMeeting(
            date=date,
            title=h1_text or "Council Meeting",
            meeting_type=link.meeting_type,
            source_url=link.url,
            agenda_url=self._find_agenda_url(page, link.url),
            video_url=self.find_video_url(page, link.url),
        )

        if meeting.agenda_url:
            meeting.items, _ = self.parse_pdf(meeting.agenda_url)
        else:
            self.logger.info("No agenda PDF on %s", link.url)
        return meeting

    def _find_agenda_url(self, page, base_url):
        """
        The package is not always labelled "Agenda"; reduced-size packages
        ("...reduced.pdf") and "RC_" file names are also agenda packages.
        """
        for anchor in page.css('a[href*=".pdf"]'):
            href = anchor.attrib.get("href", "")
            text = node_text(anchor).lower()
            if "agenda" in text or "package" in text or "reduced" in href or "RC_" in href:
                return self.absolute(base_url, href)
        first_pdf = page.css('a[href$=".pdf"]::attr(href)').get()
        return self.absolute(base_url, first_pdf)
