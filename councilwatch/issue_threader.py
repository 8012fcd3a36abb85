"""
Issue Threader

A bylaw usually passes through several meetings: first reading, public
hearing, third reading, adoption. Shown as separate cards, a reader cannot
tell they are the same issue. This module groups a flat list of items into
"issue threads" keyed by (municipality, bylaw number).

Rules:
- The bylaw number is the stored `bylaw_number` if set, else pulled from the
  title ("Bylaw No. 2056 – Zoning Amendment").
- Bylaw numbers are scoped per municipality: Comox Bylaw 50 is not
  Courtenay Bylaw 50.
- A thread needs the bylaw to appear in at least two distinct meetings.
- Items inside a thread are newest first; the newest item supplies the
  thread's title and topic label.
- Threads are ordered by their newest meeting.
- Threaded items are removed from the standalone list, so nothing shows twice.

Items with the same meeting date keep their input order (Python's sort is
stable); no further tie-break is applied.

This is read-path code: it never writes.
"""

from __future__ import annotations

import datetime
import re
from dataclasses import dataclass, field
from typing import Any

from sqlalchemy.orm import joinedload

from councilwatch.models import Item, Meeting, Municipality

_TITLE_BYLAW_RE = re.compile(r"Bylaw\s+No\.?\s*(\d[\w-]*)", re.IGNORECASE)


@dataclass
class ThreadItem:
    id: int
    title: str
    meeting_id: int | None
    meeting_date: datetime.date | None
    municipality: str
    bylaw_number: str | None = None
    topic_label: str | None = None
    decision: str | None = None
    summary: str | None = None
    description: str | None = None
    feedback_count: int = 0
    payload: Any = None


@dataclass
class IssueGroup:
    key: str
    bylaw_number: str
    municipality: str
    title: str
    topic_label: str | None
    items: list[ThreadItem] = field(default_factory=list)
    latest_date: datetime.date | None = None
    total_feedback_count: int = 0


def extract_bylaw_from_title(title: str | None) -> str | None:
    match = _TITLE_BYLAW_RE.search(title or "")
    return match.group(1) if match else None


def _date_key(item: ThreadItem) -> datetime.date:
    return item.meeting_date or datetime.date.min


def group_items_by_issue(items: list[ThreadItem]) -> tuple[list[IssueGroup], list[ThreadItem]]:
    """
    Returns (issue_groups, standalone_items).

    standalone_items keeps the input order.
    """
    by_key: dict[str, list[ThreadItem]] = {}
    for item in items:
        bylaw = item.bylaw_number or extract_bylaw_from_title(item.title)
        if not bylaw:
            continue
        key = f"{item.municipality}_{bylaw}"
        by_key.setdefault(key, []).append(item)

    groups = []
    threaded_ids = set()
    for key, members in by_key.items():
        meeting_ids = {m.meeting_id for m in members}
        if len(meeting_ids) < 2:
            continue

        members = sorted(members, key=_date_key, reverse=True)
        newest = members[0]
        groups.append(IssueGroup(
            key=key,
            bylaw_number=key.split("_", 1)[1],
            municipality=newest.municipality,
            title=newest.title,
            topic_label=newest.topic_label,
            items=members,
            latest_date=newest.meeting_date,
            total_feedback_count=sum(m.feedback_count or 0 for m in members),
        ))
        threaded_ids.update(m.id for m in members)

    groups.sort(key=lambda g: g.latest_date or datetime.date.min, reverse=True)
    standalone = [item for item in items if item.id not in threaded_ids]
    return groups, standalone


def group_items_by_meeting(items: list[ThreadItem]) -> list[tuple[int | None, list[ThreadItem]]]:
    """Buckets items by meeting, meetings in order of first appearance."""
    buckets: dict[int | None, list[ThreadItem]] = {}
    for item in items:
        buckets.setdefault(item.meeting_id, []).append(item)
    return list(buckets.items())


def derive_reading_status(item: ThreadItem) -> str:
    """
    Short status label for one item in a thread ("Third reading", "Adopted").

    The decision text is authoritative; the summary is only a fallback.
    Raw content is never consulted, since agenda boilerplate mentions every
    reading stage.
    """
    decision = (item.decision or "").lower().strip()
    if decision:
        has_first = "first reading" in decision or "1st reading" in decision
        has_second = "second reading" in decision or "2nd reading" in decision
        has_third = "third reading" in decision or "3rd reading" in decision
        has_adopted = "adopted" in decision or "finally passed" in decision

        # Checked before "Adopted": "first and second reading ... adopted as
        # amended" is not an adoption.
        if (
            "first and second reading" in decision
            or "1st and 2nd reading" in decision
            or "first & second reading" in decision
            or "initial readings" in decision
            or (has_first and has_second)
        ):
            return "First & second reading"
        if has_adopted and not has_first and not has_second:
            if has_third or "reading" not in decision:
                return "Adopted"
        if has_third:
            return "Third reading"
        if has_second:
            return "Second reading"
        if has_first:
            return "First reading"
        if "public hearing" in decision:
            return "Public hearing"
        if "received for information" in decision:
            return "Received for information"
        if "referred" in decision or "referral" in decision:
            return "Referred"
        if "tabled" in decision or "deferred" in decision:
            return "Deferred"

    summary = (item.summary or "").lower()
    if summary:
        if "public hearing" in summary:
            return "Public hearing"
        if "third reading" in summary:
            return "Third reading"
        if (
            "initial readings" in summary
            or "first and second reading" in summary
            or "first & second reading" in summary
        ):
            return "First & second reading"
        if "first reading" in summary:
            return "First reading"
        if "referred" in summary or "referral" in summary:
            return "Referred"
        if "received for information" in summary:
            return "Received for information"
        if "tabled" in summary or "deferred" in summary:
            return "Deferred"

    text = item.summary or item.description or ""
    if len(text) > 80:
        return text[:80].rstrip() + "…"
    return text or item.title or ""


def to_thread_item(item: Item) -> ThreadItem:
    meeting = item.meeting
    municipality = meeting.municipality.short_name if meeting and meeting.municipality else "unknown"
    return ThreadItem(
        id=item.id,
        title=item.title,
        meeting_id=item.meeting_id,
        meeting_date=meeting.date if meeting else None,
        municipality=municipality,
        bylaw_number=item.bylaw_number,
        topic_label=item.topic_label,
        decision=item.decision,
        summary=item.summary,
        description=item.description,
        feedback_count=(item.feedback.feedback_count or 0) if item.feedback else 0,
        payload=item,
    )


def load_thread_items(session, municipality: str | None = None) -> list[ThreadItem]:
    """Stored items as ThreadItems, newest meeting first."""
    query = (
        session.query(Item)
        .join(Meeting, Item.meeting_id == Meeting.id)
        .join(Municipality, Meeting.municipality_id == Municipality.id)
        .options(
            joinedload(Item.meeting).joinedload(Meeting.municipality),
            joinedload(Item.feedback),
        )
    )
    if municipality:
        query = query.filter(Municipality.short_name == municipality)
    query = query.order_by(Meeting.date.desc(), Item.id.asc())
    return [to_thread_item(item) for item in query.all()]
