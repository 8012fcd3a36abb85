from __future__ import annotations

import re

from councilwatch.document_parser import COMOX_MARKERS
from councilwatch.errors import FetchError
from councilwatch.feedback_sampler import COMOX_SAMPLER, sample_correspondence
from councilwatch.html_parser import node_text
from councilwatch.scrape_coordinator import MeetingLink, ParsedMeeting
from councilwatch.sources.base import SourceAdapter
from councilwatch.utils import parse_date_string, slug_date

# The Town has moved its meeting index before; the first one with links wins.
LISTING_URLS = (
    "https://www.comox.ca/councilmeetings",
    "https://www.comox.ca/government-bylaws/council/meetings",
)
BASE_URL = "https://www.comox.ca"

_MEETING_PATH_RE = re.compile(r"meetings?/[\w-]+(?:-[\w-]+)*$")
_PDF_RE = re.compile(r"\.pdf$", re.IGNORECASE)


def is_meeting_href(href, listing_url):
    if not href or "/meeting" not in href:
        return False
    if _PDF_RE.search(href) or not _MEETING_PATH_RE.search(href):
        return False
    return href.rstrip("/") != listing_url.rstrip("/")


class Comox(SourceAdapter):
    """
    Source for the Town of Comox.

    Logic Flow:
    1. Read the meeting index and collect links to individual meeting pages.
    2. On each meeting page, find the agenda/minutes PDFs and the video link.
    3. Download the agenda package and split it into staff reports, bylaws
       and correspondence.
    4. Sample the public hearing correspondence ("Page 20-n") so the feedback
       worker can analyse it later.
    """
    short_name = "comox"
    display_name = "Town of Comox"
    source_type = "agenda"
    markers = COMOX_MARKERS

    def discover(self, limit):
        for listing_url in LISTING_URLS:
            try:
                page = self.fetch_page(listing_url)
            except FetchError as e:
                self.logger.warning("Listing %s unavailable: %s", listing_url, e)
                continue

            links = []
            seen = set()
            for anchor in page.css("a[href]"):
                href = anchor.attrib.get("href", "").strip()
                text = node_text(anchor)
                if not text or not is_meeting_href(href, listing_url):
                    continue
                url = self.absolute(BASE_URL + "/", href)
                if url in seen:
                    continue
                seen.add(url)
                links.append(MeetingLink(url=url, text=text, date=slug_date(url.rstrip("/").split("/")[-1])))

            if links:
                self.logger.info("Using listing %s", listing_url)
                return links
        return []

    def scrape_meeting(self, link):
        self.polite_pause()
        page = self.fetch_page(link.url)

        title = node_text(page.css("h1")[:1]) if page.css("h1") else ""
        meeting = ParsedMeeting(
            date=link.date,
            title=title or "Regular Council Meeting",
            meeting_type="regular",
            source_url=link.url,
        )

        for anchor in page.css('a[href*=".pdf"]'):
            text = node_text(anchor).lower()
            url = self.absolute(link.url, anchor.attrib.get("href"))
            if "agenda" in text:
                meeting.agenda_url = url
            elif "minutes" in text:
                meeting.minutes_url = url
        meeting.video_url = self.find_video_url(page, link.url)

        if meeting.date is None:
            datetime_attr = page.css("time::attr(datetime)").get() or page.css("[datetime]::attr(datetime)").get()
            meeting.date = parse_date_string(datetime_attr) if datetime_attr else None

        if meeting.agenda_url:
            items, text = self.parse_pdf(meeting.agenda_url)
            meeting.items = items
            meeting.feedback = sample_correspondence(text, COMOX_SAMPLER)
        else:
            self.logger.info("No agenda PDF on %s", link.url)
        return meeting
