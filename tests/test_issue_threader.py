import datetime

import pytest

from councilwatch.issue_threader import (
    ThreadItem,
    derive_reading_status,
    extract_bylaw_from_title,
    group_items_by_issue,
    group_items_by_meeting,
    load_thread_items,
)
from councilwatch.models import Item, Municipality, PublicFeedback


def _item(id, title, meeting_id, date, municipality="comox", **extra):
    return ThreadItem(
        id=id,
        title=title,
        meeting_id=meeting_id,
        meeting_date=datetime.date.fromisoformat(date),
        municipality=municipality,
        **extra,
    )


def test_bylaw_across_two_meetings_forms_a_thread():
    """
    Test: Bylaw 2056 at first reading in January and adoption in March is one issue.
    The newest item names the thread and comes first.
    """
    items = [
        _item(1, "Bylaw No. 2056 – Zoning Amendment", 10, "2026-01-14", feedback_count=5),
        _item(2, "Budget Update", 10, "2026-01-14"),
        _item(3, "Bylaw No. 2056 – Zoning Amendment (adoption)", 20, "2026-03-04",
              topic_label="Lazo Road rezoning", feedback_count=3),
    ]

    groups, standalone = group_items_by_issue(items)

    assert len(groups) == 1
    group = groups[0]
    assert group.key == "comox_2056"
    assert group.bylaw_number == "2056"
    assert [i.id for i in group.items] == [3, 1]
    assert group.title == "Bylaw No. 2056 – Zoning Amendment (adoption)"
    assert group.topic_label == "Lazo Road rezoning"
    assert group.latest_date == datetime.date(2026, 3, 4)
    assert group.total_feedback_count == 8
    assert [i.id for i in standalone] == [2]


def test_same_meeting_twice_is_not_a_thread():
    """
    Test: Two items for one bylaw in the SAME meeting are not a thread;
    the threshold counts distinct meetings.
    """
    items = [
        _item(1, "Bylaw No. 2056 – First reading", 10, "2026-01-14"),
        _item(2, "Bylaw No. 2056 – Second reading", 10, "2026-01-14"),
    ]

    groups, standalone = group_items_by_issue(items)

    assert groups == []
    assert [i.id for i in standalone] == [1, 2]


def test_bylaw_numbers_are_scoped_per_municipality():
    items = [
        _item(1, "Bylaw No. 50 – Fees", 10, "2026-01-14", municipality="comox"),
        _item(2, "Bylaw No. 50 – Fees", 20, "2026-02-11", municipality="courtenay"),
    ]

    groups, standalone = group_items_by_issue(items)

    assert groups == []
    assert len(standalone) == 2


def test_stored_bylaw_number_beats_title():
    items = [
        _item(1, "Lazo Road rezoning", 10, "2026-01-14", bylaw_number="2056"),
        _item(2, "Bylaw No. 2056 – Zoning Amendment", 20, "2026-02-11"),
    ]

    groups, _ = group_items_by_issue(items)

    assert [i.id for i in groups[0].items] == [2, 1]


def test_groups_ordered_by_latest_meeting():
    items = [
        _item(1, "Bylaw No. 100 – A", 10, "2026-01-14"),
        _item(2, "Bylaw No. 100 – A", 11, "2026-01-28"),
        _item(3, "Bylaw No. 200 – B", 12, "2026-02-11"),
        _item(4, "Bylaw No. 200 – B", 13, "2026-03-04"),
    ]

    groups, standalone = group_items_by_issue(items)

    assert [g.bylaw_number for g in groups] == ["200", "100"]
    assert standalone == []


def test_every_item_appears_exactly_once():
    items = [
        _item(1, "Bylaw No. 100 – A", 10, "2026-01-14"),
        _item(2, "Parks Master Plan", 10, "2026-01-14"),
        _item(3, "Bylaw No. 100 – A", 11, "2026-01-28"),
        _item(4, "Bylaw No. 300 – C", 11, "2026-01-28"),
    ]

    groups, standalone = group_items_by_issue(items)

    seen = [i.id for g in groups for i in g.items] + [i.id for i in standalone]
    assert sorted(seen) == [1, 2, 3, 4]


def test_extract_bylaw_from_title():
    assert extract_bylaw_from_title("Zoning Bylaw No. 2025-15 amendment") == "2025-15"
    assert extract_bylaw_from_title("Budget") is None


@pytest.mark.parametrize(
    "decision, summary, expected",
    [
        ("Council gave first and second reading to the bylaw.", None, "First & second reading"),
        ("Bylaw adopted.", None, "Adopted"),
        ("Council gave third reading and adopted the bylaw.", None, "Adopted"),
        ("Council gave third reading.", None, "Third reading"),
        ("Referred to the Committee of the Whole.", None, "Referred"),
        (None, "A public hearing will be held in March.", "Public hearing"),
    ],
)
def test_derive_reading_status(decision, summary, expected):
    item = _item(1, "Bylaw No. 1 – X", 10, "2026-01-14", decision=decision, summary=summary)
    assert derive_reading_status(item) == expected


def test_reading_status_falls_back_to_text():
    item = _item(1, "Bylaw No. 1 – X", 10, "2026-01-14", description="Short note.")
    assert derive_reading_status(item) == "Short note."


def test_group_items_by_meeting_keeps_first_seen_order():
    items = [
        _item(1, "A", 20, "2026-03-04"),
        _item(2, "B", 10, "2026-01-14"),
        _item(3, "C", 20, "2026-03-04"),
    ]

    buckets = group_items_by_meeting(items)

    assert [(meeting_id, [i.id for i in members]) for meeting_id, members in buckets] == [(20, [1, 3]), (10, [2])]


def test_load_thread_items_from_database(db_session, comox, make_meeting):
    courtenay = Municipality(name="City of Courtenay", short_name="courtenay")
    db_session.add(courtenay)
    db_session.commit()
    make_meeting(comox, "2026-01-14", titles=["Bylaw No. 2056 – Zoning"])
    make_meeting(comox, "2026-03-04", titles=["Bylaw No. 2056 – Zoning adoption"])
    make_meeting(courtenay, "2026-02-11", titles=["Parks"])
    item = db_session.query(Item).filter(Item.title == "Bylaw No. 2056 – Zoning").one()
    db_session.add(PublicFeedback(item_id=item.id, meeting_id=item.meeting_id, feedback_count=7))
    db_session.commit()

    comox_items = load_thread_items(db_session, municipality="comox")
    assert [i.title for i in comox_items] == ["Bylaw No. 2056 – Zoning adoption", "Bylaw No. 2056 – Zoning"]
    assert comox_items[1].feedback_count == 7

    groups, standalone = group_items_by_issue(load_thread_items(db_session))
    assert len(groups) == 1
    assert groups[0].total_feedback_count == 7
    assert [i.title for i in standalone] == ["Parks"]
