"""
Summarization Orchestrator

Sweeps items that still need AI output and writes the validated result back.

Modes:
    full      items with no summary yet (the normal post-scrape sweep)
    backfill  items summarized before the editorial fields (headline,
              topic label, key stats, community signal) existed
    impact    items with a summary but no resident-impact sentence; uses a
              much smaller prompt

Processing order is ascending creation time, so an interrupted sweep picks up
where it left off. One bad model response costs one item: it is logged,
counted as failed, and the sweep moves on. Nothing is written for that item.
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from typing import Callable

from councilwatch.ai_response import AiResponseError, parse_impact_response, parse_summary_response
from councilwatch.config import (
    AI_BACKFILL_MAX_TOKENS,
    AI_CALL_DELAY_SECONDS,
    AI_IMPACT_CONTENT_CHARS,
    AI_IMPACT_MAX_TOKENS,
    AI_SUMMARY_CONTENT_CHARS,
    AI_SUMMARY_MAX_TOKENS,
)
from councilwatch.db_session import db_session
from councilwatch.llm_provider import CompletionError, CompletionService
from councilwatch.models import Item
from councilwatch.prompts import (
    IMPACT_SYSTEM_PROMPT,
    SUMMARY_SYSTEM_PROMPT,
    build_impact_message,
    build_user_message,
)

logger = logging.getLogger("ai-summarizer")

MODE_FULL = "full"
MODE_BACKFILL = "backfill"
MODE_IMPACT = "impact"
MODES = (MODE_FULL, MODE_BACKFILL, MODE_IMPACT)


@dataclass
class BatchResult:
    selected: int = 0
    succeeded: int = 0
    failed: int = 0


def item_content(item: Item) -> str:
    """Raw extracted text beats the (possibly truncated) description."""
    return item.raw_content or item.description or ""


def select_item_ids(session, mode: str, *, force: bool = False, limit: int | None = None) -> list[int]:
    query = session.query(Item.id)
    if mode == MODE_FULL:
        if not force:
            query = query.filter(Item.summary.is_(None))
    elif mode == MODE_BACKFILL:
        query = query.filter(Item.summary.isnot(None))
        if not force:
            query = query.filter(Item.headline.is_(None))
    elif mode == MODE_IMPACT:
        query = query.filter(Item.summary.isnot(None))
        if not force:
            query = query.filter(Item.impact.is_(None))
    else:
        raise ValueError(f"Unknown summarizer mode '{mode}'. Choose from: {', '.join(MODES)}")

    query = query.order_by(Item.created_at.asc(), Item.id.asc())
    if limit:
        query = query.limit(limit)
    return [row[0] for row in query.all()]


# =============================================================================
# Writers: each touches only AI-derived columns.
# =============================================================================

def apply_summary(item: Item, payload) -> None:
    item.summary = payload.summary
    item.summary_simple = payload.summary_simple
    item.summary_expert = payload.summary_expert
    item.category = payload.category
    item.categories = payload.categories
    item.tags = payload.tags or None
    item.is_significant = payload.is_significant
    item.impact = payload.impact
    item.bylaw_number = payload.bylaw_number
    if payload.headline is not None:
        item.headline = payload.headline
    if payload.topic_label is not None:
        item.topic_label = payload.topic_label
    if payload.key_stats:
        item.key_stats = payload.key_stats_json()
    if payload.community_signal is not None:
        item.community_signal = payload.community_signal_json()
    # Assign a new dict so the JSON column is flagged dirty.
    item.metadata_ = {**(item.metadata_ or {}), "ai_response": payload.raw}


def apply_backfill(item: Item, payload) -> None:
    item.summary_simple = payload.summary_simple
    item.summary_expert = payload.summary_expert
    item.impact = payload.impact
    item.bylaw_number = payload.bylaw_number
    item.headline = payload.headline
    item.topic_label = payload.topic_label
    item.key_stats = payload.key_stats_json()
    item.community_signal = payload.community_signal_json()


def _describe(payload) -> dict:
    return {
        "headline": payload.headline,
        "topic_label": payload.topic_label,
        "category": payload.category,
        "key_stats": len(payload.key_stats),
        "community_signal": payload.community_signal.type if payload.community_signal else None,
        "summary_simple": (payload.summary_simple or "")[:60],
    }


# =============================================================================
# Per-item processing
# =============================================================================

def summarize_item(session, item: Item, service: CompletionService, mode: str, dry_run: bool = False) -> None:
    """
    Runs one item through the model and writes the result.

    Raises CompletionError or AiResponseError; the caller decides what a
    failure costs.
    """
    if mode == MODE_IMPACT:
        raw = service.complete(
            IMPACT_SYSTEM_PROMPT,
            build_impact_message(item.title, item_content(item), AI_IMPACT_CONTENT_CHARS),
            max_tokens=AI_IMPACT_MAX_TOKENS,
            stage="impact",
        )
        impact = parse_impact_response(raw).unwrap()
        if dry_run:
            logger.info("  [DRY RUN] Would set impact: %s", impact[:80])
            return
        item.impact = impact
        return

    user_message = build_user_message(item.title, item_content(item)[:AI_SUMMARY_CONTENT_CHARS], item.decision)
    max_tokens = AI_SUMMARY_MAX_TOKENS if mode == MODE_FULL else AI_BACKFILL_MAX_TOKENS
    raw = service.complete(SUMMARY_SYSTEM_PROMPT, user_message, max_tokens=max_tokens, stage=mode)
    payload = parse_summary_response(raw).unwrap()

    if dry_run:
        logger.info("  [DRY RUN] Would update: %s", _describe(payload))
        return
    if mode == MODE_FULL:
        apply_summary(item, payload)
    else:
        apply_backfill(item, payload)


def summarize_items(
    service: CompletionService,
    *,
    mode: str = MODE_FULL,
    limit: int | None = None,
    dry_run: bool = False,
    force: bool = False,
    delay_seconds: float = AI_CALL_DELAY_SECONDS,
    sleep: Callable[[float], None] = time.sleep,
) -> BatchResult:
    """
    The sweep. Returns counts; only a database error escapes.
    """
    with db_session() as session:
        item_ids = select_item_ids(session, mode, force=force, limit=limit)

    result = BatchResult(selected=len(item_ids))
    if not item_ids:
        logger.info("No items need %s processing. Nothing to do.", mode)
        return result

    logger.info(
        "Processing %s items (mode=%s%s%s)",
        len(item_ids), mode, ", force" if force else "", ", dry-run" if dry_run else "",
    )

    for index, item_id in enumerate(item_ids, start=1):
        with db_session() as session:
            item = session.get(Item, item_id)
            if item is None:
                continue
            logger.info("[%s/%s] %s", index, len(item_ids), (item.title or "")[:60])
            try:
                summarize_item(session, item, service, mode, dry_run=dry_run)
            except (CompletionError, AiResponseError) as e:
                result.failed += 1
                logger.error("  -> Error on item %s: %s", item_id, e)
                session.rollback()
            else:
                if not dry_run:
                    session.commit()
                result.succeeded += 1

        if index < len(item_ids) and delay_seconds > 0:
            sleep(delay_seconds)

    logger.info(
        "AI processing complete: %s items succeeded, %s failed%s.",
        result.succeeded, result.failed, " (no writes)" if dry_run else "",
    )
    if result.succeeded == 0:
        logger.warning("No items were summarized out of %s attempted.", result.selected)
    return result
