import json

import pytest

from councilwatch.ai_response import (
    MalformedJsonError,
    MissingRequiredFieldError,
    filter_positions,
    load_json_object,
    normalize_categories,
    parse_feedback_response,
    parse_impact_response,
    parse_summary_response,
)

SUMMARY = {
    "summary": "Council gave third reading to a rezoning for 40 townhouses on Lazo Road.",
    "summary_simple": "40 new townhouses on Lazo Road are one step from approval.",
    "summary_expert": "Third reading of Zoning Amendment Bylaw 2056 (CD zone, 40 units).",
    "categories": ["housing", "land_use"],
    "tags": ["Lazo Road", "townhouses"],
    "impact": "Residents near Lazo Road may see construction traffic next year.",
    "is_significant": True,
    "headline": "Lazo Road townhouses move forward",
    "topic_label": "Lazo Road rezoning",
    "key_stats": [
        {"label": "Units", "value": "40", "type": "count"},
        {"label": "Fee", "value": "$12,000", "type": "currency"},
        {"label": "", "value": "dropped"},
    ],
    "community_signal": {"type": "letters", "participant_count": 56, "sentiment": "mostly_oppose"},
}


def test_summary_parses_fenced_json():
    raw = "```json\n" + json.dumps(SUMMARY) + "\n```"
    result = parse_summary_response(raw)

    assert result.ok
    payload = result.value
    assert payload.category == "housing"
    assert payload.categories == ["housing", "land_use"]
    assert payload.is_significant is True
    assert payload.headline == "Lazo Road townhouses move forward"


def test_summary_tolerates_preamble_and_trailing_text():
    raw = "Here is the analysis you asked for:\n" + json.dumps(SUMMARY) + "\nLet me know if you need more."
    assert parse_summary_response(raw).ok


def test_key_stats_and_signal_are_normalised():
    payload = parse_summary_response(json.dumps(SUMMARY)).value

    assert [(s.label, s.type) for s in payload.key_stats] == [("Units", "count"), ("Fee", "other")]
    assert payload.community_signal.participant_count == 56
    assert payload.community_signal.sentiment == "mostly_oppose"
    assert payload.key_stats_json()[0] == {"label": "Units", "value": "40", "type": "count"}


def test_non_json_is_a_malformed_error():
    result = parse_summary_response("I'm sorry, I can't help with that.")

    assert not result.ok
    assert isinstance(result.error, MalformedJsonError)
    with pytest.raises(MalformedJsonError):
        result.unwrap()


@pytest.mark.parametrize("missing", ["summary", "summary_simple", "summary_expert", "categories"])
def test_missing_required_summary_field(missing):
    payload = {k: v for k, v in SUMMARY.items() if k != missing}
    result = parse_summary_response(json.dumps(payload))

    assert isinstance(result.error, MissingRequiredFieldError)


def test_tags_must_be_a_list():
    result = parse_summary_response(json.dumps({**SUMMARY, "tags": "housing"}))
    assert isinstance(result.error, MissingRequiredFieldError)


@pytest.mark.parametrize(
    "value, expected",
    [
        (["Housing", "finance", "housing"], ("housing", ["housing", "finance"])),
        ('["environment", "parks_recreation"]', ("environment", ["environment", "parks_recreation"])),
        ("transportation", ("transportation", ["transportation"])),
        ([], (None, None)),
        (None, (None, None)),
        ("", (None, None)),
    ],
)
def test_normalize_categories(value, expected):
    """
    Test: Whatever shape the model used, categories[0] is the primary category.
    """
    assert normalize_categories(value) == expected


def test_impact_response():
    assert parse_impact_response('{"impact": "Property taxes rise 4%."}').value == "Property taxes rise 4%."
    assert isinstance(parse_impact_response('{"impact": ""}').error, MissingRequiredFieldError)


def test_feedback_response_filters_and_sorts_positions():
    raw = json.dumps({
        "feedback_count": 12,
        "sentiment_summary": "Most letters oppose the density.",
        "support_count": 3,
        "oppose_count": 8,
        "neutral_count": 1,
        "positions": [
            {"stance": "Wants more parking", "sentiment": "neutral", "count": 1, "detail": ""},
            {"stance": "Too dense", "sentiment": "oppose", "count": 8, "detail": "Traffic"},
            {"stance": "", "sentiment": "oppose", "count": 4},
            {"stance": "Love it", "sentiment": "enthusiastic", "count": 2},
            {"stance": "Need housing", "sentiment": "support", "count": 3, "detail": "Rents"},
        ],
        "related_bylaw_or_topic": "Bylaw 2056",
    })
    payload = parse_feedback_response(raw).unwrap()

    assert payload.feedback_count == 12
    assert [p.stance for p in payload.positions] == ["Too dense", "Need housing", "Wants more parking"]
    assert payload.related_bylaw_or_topic == "Bylaw 2056"


def test_feedback_requires_count():
    result = parse_feedback_response('{"sentiment_summary": "Mixed"}')
    assert isinstance(result.error, MissingRequiredFieldError)


def test_filter_positions_returns_none_when_nothing_survives():
    assert filter_positions([{"stance": "x", "sentiment": "angry", "count": 1}]) is None
    assert filter_positions("not a list") is None


def test_load_json_object_rejects_arrays():
    with pytest.raises(MalformedJsonError):
        load_json_object("[1, 2, 3]")
