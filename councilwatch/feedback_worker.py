"""
Feedback Orchestrator

For each meeting that carries a correspondence blob (written by the scraper's
feedback sampler), ask the model for the positions residents took, then
attach the result to the agenda item the letters are about.

Which item? The model names the bylaw or topic the letters concern
("Bylaw 2056", "OCP"). We look for:
    1. an item whose title mentions "bylaw" and that bylaw number
    2. an item whose title shares a word with the reference
    3. failing both, the meeting's first item
The fallback keeps the analysis visible rather than throwing it away; the
feed shows it under the meeting either way.

Only the public_feedback table is written here, one row per item.
"""

from __future__ import annotations

import datetime
import logging
import re
import time
from dataclasses import dataclass
from typing import Callable

from councilwatch.ai_response import AiResponseError, FeedbackPayload, parse_feedback_response
from councilwatch.config import AI_CALL_DELAY_SECONDS, AI_FEEDBACK_MAX_TOKENS
from councilwatch.db_session import db_session
from councilwatch.feedback_sampler import read_feedback_blob
from councilwatch.llm_provider import CompletionError, CompletionService
from councilwatch.models import Item, Meeting, PublicFeedback
from councilwatch.prompts import build_feedback_prompt

logger = logging.getLogger("feedback-worker")

_BYLAW_REF_RE = re.compile(r"bylaw\s*(?:no\.?)?\s*(\d+)", re.IGNORECASE)


@dataclass
class FeedbackBatchResult:
    selected: int = 0
    succeeded: int = 0
    failed: int = 0
    skipped: int = 0


def match_feedback_item(reference: str | None, items: list):
    """
    Returns the item the letters are about, or None when nothing matches.

    `items` only needs objects with a `title` attribute.
    """
    if not reference or not isinstance(reference, str):
        return None
    ref = reference.strip().lower()

    bylaw_match = _BYLAW_REF_RE.search(ref)
    if bylaw_match:
        number = bylaw_match.group(1)
        for item in items:
            title = (item.title or "").lower()
            if "bylaw" in title and number in title:
                return item

    topic_words = [w for w in ref.split() if len(w) >= 2]
    for item in items:
        title = (item.title or "").lower()
        if any(word in title for word in topic_words):
            return item
    return None


def upsert_public_feedback(session, item: Item, meeting: Meeting, payload: FeedbackPayload) -> PublicFeedback:
    """At most one feedback row per item: update it if it exists."""
    record = session.query(PublicFeedback).filter(PublicFeedback.item_id == item.id).first()
    if record is None:
        record = PublicFeedback(item_id=item.id)
        session.add(record)
    record.meeting_id = meeting.id
    record.feedback_count = payload.feedback_count
    record.sentiment_summary = payload.sentiment_summary
    record.support_count = payload.support_count
    record.oppose_count = payload.oppose_count
    record.neutral_count = payload.neutral_count
    record.positions = payload.positions_json()
    record.updated_at = datetime.datetime.now()
    return record


def select_meeting_ids(session, limit: int | None = None) -> list[int]:
    """Newest meetings first; those are the ones residents are reading about."""
    query = (
        session.query(Meeting.id)
        .filter(Meeting.raw_feedback.isnot(None))
        .order_by(Meeting.date.desc(), Meeting.id.desc())
    )
    if limit:
        query = query.limit(limit)
    return [row[0] for row in query.all()]


def process_meeting(session, meeting: Meeting, service: CompletionService, dry_run: bool = False) -> bool:
    """
    Analyses one meeting's correspondence. Returns False when the meeting was
    skipped (no items, or nothing readable in the blob).

    Raises CompletionError or AiResponseError on a bad model call.
    """
    items = list(meeting.items)
    if not items:
        logger.info("  Skipping meeting %s: no items", meeting.date)
        return False

    content, letter_count, max_page = read_feedback_blob(meeting.raw_feedback)
    if not content:
        logger.info("  Skipping meeting %s: correspondence blob has no readable text", meeting.date)
        return False

    prompt = build_feedback_prompt(content, letter_count=letter_count, max_page=max_page)
    raw = service.complete("", prompt, max_tokens=AI_FEEDBACK_MAX_TOKENS, stage="feedback")
    payload = parse_feedback_response(raw).unwrap()

    item = match_feedback_item(payload.related_bylaw_or_topic, items) or items[0]

    if dry_run:
        logger.info("  [DRY RUN] Would upsert public_feedback for item %r", item.title)
        logger.info("  feedback_count: %s", payload.feedback_count)
        logger.info("  related_bylaw_or_topic: %s", payload.related_bylaw_or_topic or "(none)")
        return True

    upsert_public_feedback(session, item, meeting, payload)
    logger.info(
        "  -> %s letters, %s positions, attached to %r",
        payload.feedback_count, len(payload.positions or []), item.title,
    )
    return True


def process_feedback(
    service: CompletionService,
    *,
    limit: int | None = None,
    dry_run: bool = False,
    delay_seconds: float = AI_CALL_DELAY_SECONDS,
    sleep: Callable[[float], None] = time.sleep,
) -> FeedbackBatchResult:
    with db_session() as session:
        meeting_ids = select_meeting_ids(session, limit=limit)

    result = FeedbackBatchResult(selected=len(meeting_ids))
    if not meeting_ids:
        logger.info("No meetings with a correspondence blob. Run the Comox scraper first.")
        return result

    logger.info("Processing %s meeting(s) with correspondence%s", len(meeting_ids), " [DRY RUN]" if dry_run else "")

    for index, meeting_id in enumerate(meeting_ids, start=1):
        called_model = False
        with db_session() as session:
            meeting = session.get(Meeting, meeting_id)
            if meeting is None:
                continue
            logger.info("Meeting %s (%s/%s)...", meeting.date, index, len(meeting_ids))
            try:
                called_model = process_meeting(session, meeting, service, dry_run=dry_run)
            except (CompletionError, AiResponseError) as e:
                called_model = True
                result.failed += 1
                logger.error("  -> Error on meeting %s: %s", meeting.date, e)
                session.rollback()
            else:
                if called_model:
                    result.succeeded += 1
                    if not dry_run:
                        session.commit()
                else:
                    result.skipped += 1

        if called_model and index < len(meeting_ids) and delay_seconds > 0:
            sleep(delay_seconds)

    logger.info(
        "Feedback processing complete: %s processed, %s failed, %s skipped.",
        result.succeeded, result.failed, result.skipped,
    )
    if result.succeeded == 0 and result.failed > 0:
        logger.warning("No meeting correspondence could be analysed.")
    return result
