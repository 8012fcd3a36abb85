from __future__ import annotations

import datetime
import logging
from dataclasses import dataclass, field
from urllib.parse import urljoin

from scrapy.selector import Selector

from councilwatch.config import PAGE_DELAY_SECONDS, PDF_DELAY_SECONDS
from councilwatch.document_parser import MarkerTable, parse_document
from councilwatch.errors import ParseError
from councilwatch.extractor import extract_pdf_text
from councilwatch.fetcher import DEFAULT_POLICY, FetchPolicy, SourceFetcher
from councilwatch.scrape_coordinator import MeetingLink, ParsedMeeting, filter_new_links, scrape_links


@dataclass
class CollectResult:
    links: int = 0
    meetings: list[ParsedMeeting] = field(default_factory=list)


class SourceAdapter:
    """
    A foundational parent class for all municipal sources.

    Why this exists:
    Every source does the same three things: find meeting links on a listing
    page, fetch each meeting's documents, and turn them into items. Fetching,
    politeness delays, PDF extraction and per-meeting error isolation are the
    same everywhere, so they live here.

    Novice Developer Note:
    When you add a new municipality you subclass this and write only
    discover() and scrape_meeting(). Both should raise FetchError/ParseError
    (or return None) rather than catching broadly; the coordinator decides
    what a failure costs.
    """

    # These should be set by the child class
    short_name: str | None = None  # e.g. 'comox', must match Municipality.short_name
    display_name: str | None = None
    source_type = "agenda"
    policy: FetchPolicy = DEFAULT_POLICY
    markers: MarkerTable | None = None

    def __init__(self, fetcher: SourceFetcher | None = None):
        self.fetcher = fetcher or SourceFetcher()
        self.logger = logging.getLogger(f"source.{self.short_name}")

    # -- Overridden per source ------------------------------------------------

    def discover(self, limit: int) -> list[MeetingLink]:
        raise NotImplementedError

    def scrape_meeting(self, link: MeetingLink) -> ParsedMeeting | None:
        raise NotImplementedError

    def collect(self, limit: int, last_date: datetime.date | None = None) -> CollectResult:
        """Discover, apply the delta-crawl filter, then scrape up to `limit` meetings."""
        links = self.discover(limit)
        self.logger.info("Found %s meeting links", len(links))
        links = filter_new_links(links, last_date)[:limit]
        return CollectResult(links=len(links), meetings=scrape_links(self, links))

    # -- Helpers ---------------------------------------------------------------

    def fetch_page(self, url: str) -> Selector:
        html = self.fetcher.fetch_text(url)
        return Selector(text=html)

    def fetch_pdf_text(self, url: str) -> str:
        self.fetcher.pause(PDF_DELAY_SECONDS)
        content = self.fetcher.fetch_bytes(url)
        return extract_pdf_text(content)

    def parse_pdf(self, url: str):
        """Downloads an agenda PDF and returns (items, text)."""
        if self.markers is None:
            raise ParseError(f"{self.short_name} has no marker table for PDF agendas")
        text = self.fetch_pdf_text(url)
        return parse_document(text, self.markers), text

    def polite_pause(self) -> None:
        self.fetcher.pause(PAGE_DELAY_SECONDS)

    @staticmethod
    def absolute(base_url: str, href: str | None) -> str | None:
        if not href:
            return None
        return urljoin(base_url, href.strip())

    @staticmethod
    def find_video_url(page: Selector, base_url: str) -> str | None:
        href = page.xpath('.//a[contains(@href, "youtube.com") or contains(@href, "youtu.be")]/@href').get()
        return urljoin(base_url, href) if href else None
