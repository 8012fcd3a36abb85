"""
Scrape Coordinator

Drives one source adapter through a full scrape:

    discover links -> (per link) fetch -> parse -> sample correspondence
                   -> open ScrapeRun(running)
                   -> upsert Meeting by (municipality, date, type)
                   -> upsert Item by (meeting, title)
                   -> close ScrapeRun(completed | failed)

Two failure domains:

1. Collecting (network + parsing). A failure here only costs us that one
   meeting: it is logged and the loop moves on.
2. Writing. A database error aborts the write phase, the run is closed as
   'failed' with the error message, and the error is re-raised. The run row
   is never left 'running' by an exception we can see.

Re-running against the same source content is safe: meetings and items are
looked up by their natural keys before anything is inserted, so a second run
updates rows in place and reports items_new == 0.
"""

from __future__ import annotations

import datetime
import json
import logging
from dataclasses import dataclass, field
from typing import Callable

from sqlalchemy import func
from sqlalchemy.exc import SQLAlchemyError

from councilwatch.db_session import db_session
from councilwatch.document_parser import ExtractedItem
from councilwatch.errors import FetchError, ParseError, PersistenceError
from councilwatch.feedback_sampler import FeedbackSample
from councilwatch.metrics import record_items_extracted, record_scrape_run
from councilwatch.models import Item, Meeting, Municipality, ScrapeRun

logger = logging.getLogger("scrape-coordinator")

RUN_RUNNING = "running"
RUN_COMPLETED = "completed"
RUN_FAILED = "failed"


@dataclass
class MeetingLink:
    url: str
    text: str = ""
    date: datetime.date | None = None
    meeting_type: str = "regular"


@dataclass
class ParsedMeeting:
    date: datetime.date | None
    title: str | None = None
    meeting_type: str = "regular"
    source_url: str | None = None
    agenda_url: str | None = None
    minutes_url: str | None = None
    highlights_url: str | None = None
    video_url: str | None = None
    items: list[ExtractedItem] = field(default_factory=list)
    feedback: FeedbackSample | None = None

    @property
    def status(self) -> str:
        if self.date and self.date > datetime.date.today():
            return "scheduled"
        return "completed"

    def to_dict(self) -> dict:
        return {
            "date": self.date.isoformat() if self.date else None,
            "title": self.title,
            "meeting_type": self.meeting_type,
            "status": self.status,
            "source_url": self.source_url,
            "agenda_url": self.agenda_url,
            "minutes_url": self.minutes_url,
            "highlights_url": self.highlights_url,
            "video_url": self.video_url,
            "items": [item.to_dict() for item in self.items],
            "feedback": (
                {"letterCount": self.feedback.letter_count, "maxPage": self.feedback.max_page}
                if self.feedback else None
            ),
        }


@dataclass
class ScrapeStats:
    links: int = 0
    meetings: int = 0
    skipped: int = 0
    items_found: int = 0
    items_new: int = 0
    run_id: int | None = None


# =============================================================================
# Collecting
# =============================================================================

def scrape_links(adapter, links: list[MeetingLink], scrape: Callable | None = None) -> list[ParsedMeeting]:
    """
    Scrapes each link in order, isolating failures per meeting.

    Fetch and parse errors are logged and the meeting is skipped; anything
    else is a bug and propagates.
    """
    scrape = scrape or adapter.scrape_meeting
    meetings = []
    total = len(links)
    for index, link in enumerate(links, start=1):
        logger.info("[%s] Scraping (%s/%s): %s", adapter.short_name, index, total, link.text or link.url)
        try:
            parsed = scrape(link)
        except (FetchError, ParseError) as e:
            logger.error("[%s] Failed to scrape %s: %s", adapter.short_name, link.url, e)
            continue
        if parsed is None:
            continue
        record_items_extracted(adapter.short_name, len(parsed.items))
        logger.info("[%s]   -> %s items", adapter.short_name, len(parsed.items))
        meetings.append(parsed)
    return meetings


def filter_new_links(links: list[MeetingLink], last_date: datetime.date | None) -> list[MeetingLink]:
    """
    Delta crawl: drops links whose date is known and older than the newest
    meeting we already store. Links without a date are always kept, and the
    newest stored date itself is re-scraped so late edits are picked up.
    """
    if last_date is None:
        return list(links)
    return [link for link in links if link.date is None or link.date >= last_date]


def last_meeting_date(session, municipality: Municipality) -> datetime.date | None:
    return (
        session.query(func.max(Meeting.date))
        .filter(Meeting.municipality_id == municipality.id)
        .scalar()
    )


# =============================================================================
# Writing
# =============================================================================

def open_run(session, municipality: Municipality, source_type: str) -> ScrapeRun:
    run = ScrapeRun(
        municipality_id=municipality.id,
        source_type=source_type,
        status=RUN_RUNNING,
        items_found=0,
        items_new=0,
    )
    session.add(run)
    session.commit()
    return run


def close_run(session, run_id: int, status: str, stats: ScrapeStats, error_message: str | None = None) -> None:
    run = session.get(ScrapeRun, run_id)
    run.status = status
    run.items_found = stats.items_found
    run.items_new = stats.items_new
    run.error_message = error_message
    run.completed_at = datetime.datetime.now()
    session.commit()


def upsert_meeting(session, municipality: Municipality, parsed: ParsedMeeting) -> Meeting:
    """
    Finds the meeting by (municipality, date, type) or creates it.

    Links and the correspondence blob are refreshed on every scrape; a link
    the new scrape did not find does not erase one we already have.
    """
    meeting = session.query(Meeting).filter(
        Meeting.municipality_id == municipality.id,
        Meeting.date == parsed.date,
        Meeting.meeting_type == parsed.meeting_type,
    ).first()

    if meeting is None:
        meeting = Meeting(
            municipality_id=municipality.id,
            date=parsed.date,
            meeting_type=parsed.meeting_type,
        )
        session.add(meeting)

    if parsed.title:
        meeting.title = parsed.title
    meeting.status = parsed.status
    for column in ("agenda_url", "minutes_url", "highlights_url", "video_url"):
        value = getattr(parsed, column)
        if value:
            setattr(meeting, column, value)
    if parsed.feedback is not None:
        meeting.raw_feedback = parsed.feedback.to_json()

    session.flush()
    return meeting


def upsert_item(session, meeting: Meeting, extracted: ExtractedItem) -> bool:
    """
    Inserts or updates one item. Returns True when a row was inserted.

    Only extraction-derived columns are written; AI columns on an existing
    row are left alone.
    """
    item = session.query(Item).filter(
        Item.meeting_id == meeting.id,
        Item.title == extracted.title,
    ).first()

    if item is not None:
        item.description = extracted.description
        item.raw_content = extracted.raw_content
        if extracted.decision is not None:
            item.decision = extracted.decision
        return False

    session.add(Item(
        meeting_id=meeting.id,
        title=extracted.title,
        description=extracted.description,
        raw_content=extracted.raw_content,
        decision=extracted.decision,
        source_type=extracted.source_type,
    ))
    session.flush()
    return True


def store_meetings(session, municipality: Municipality, source_type: str, meetings: list[ParsedMeeting]) -> ScrapeStats:
    """
    Write phase of a scrape, wrapped in a ScrapeRun.

    Each meeting is committed on its own so progress survives a later failure.
    """
    stats = ScrapeStats()
    run = open_run(session, municipality, source_type)
    run_id = run.id
    stats.run_id = run_id

    try:
        for parsed in meetings:
            if parsed.date is None:
                # The date is part of the natural key; never store a null one.
                logger.warning("Skipping meeting with no date: %s", parsed.source_url or parsed.title)
                stats.skipped += 1
                continue

            meeting = upsert_meeting(session, municipality, parsed)
            for extracted in parsed.items:
                stats.items_found += 1
                if upsert_item(session, meeting, extracted):
                    stats.items_new += 1
            session.commit()
            stats.meetings += 1

    except Exception as exc:
        session.rollback()
        logger.error("Scrape run %s failed: %s", run_id, exc)
        try:
            close_run(session, run_id, RUN_FAILED, stats, error_message=str(exc))
            record_scrape_run(municipality.short_name, RUN_FAILED)
        except SQLAlchemyError as close_exc:
            # The original error is the one worth reporting; this one is logged.
            session.rollback()
            logger.error("Could not mark scrape run %s failed: %s", run_id, close_exc)
        if isinstance(exc, SQLAlchemyError):
            raise PersistenceError(f"Scrape write failed: {exc}") from exc
        raise

    close_run(session, run_id, RUN_COMPLETED, stats)
    record_scrape_run(municipality.short_name, RUN_COMPLETED)
    return stats


# =============================================================================
# One full invocation
# =============================================================================

def get_municipality(session, short_name: str) -> Municipality:
    municipality = session.query(Municipality).filter(Municipality.short_name == short_name).first()
    if municipality is None:
        raise RuntimeError(f"Municipality '{short_name}' not found. Run seed_municipalities first.")
    return municipality


def run_source(adapter, limit: int, dry_run: bool = False, force: bool = False, out=None) -> ScrapeStats:
    """
    Scrapes one source end to end.

    dry_run: collect and print the parsed meetings as JSON, write nothing.
    force:   skip the delta-crawl filter and revisit every discovered meeting.
    """
    last_date = None
    if not dry_run and not force:
        with db_session() as session:
            municipality = get_municipality(session, adapter.short_name)
            last_date = last_meeting_date(session, municipality)
        if last_date:
            logger.info("[%s] Delta crawling from %s (use --force for a full crawl)", adapter.short_name, last_date)

    collected = adapter.collect(limit, last_date=last_date)
    stats = ScrapeStats(links=collected.links)

    if collected.links and not collected.meetings:
        logger.warning("[%s] %s links found but no meetings could be scraped", adapter.short_name, collected.links)

    if dry_run:
        payload = [m.to_dict() for m in collected.meetings]
        print(json.dumps(payload, indent=2, ensure_ascii=False), file=out)
        stats.meetings = len(collected.meetings)
        stats.items_found = sum(len(m.items) for m in collected.meetings)
        return stats

    with db_session() as session:
        municipality = get_municipality(session, adapter.short_name)
        stored = store_meetings(session, municipality, adapter.source_type, collected.meetings)
    stored.links = collected.links

    if not collected.meetings:
        logger.info("[%s] No meetings scraped. Recorded an empty run.", adapter.short_name)
    elif stored.items_found == 0:
        logger.warning("[%s] %s meetings stored but no items extracted", adapter.short_name, stored.meetings)
    logger.info(
        "[%s] Scrape complete: %s meetings processed, %s new items stored, %s items already existed.",
        adapter.short_name, stored.meetings, stored.items_new, stored.items_found - stored.items_new,
    )
    return stored
