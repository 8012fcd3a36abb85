"""
Parse-then-validate for model output.

The completion service returns free text that should hold one JSON object,
sometimes wrapped in a ```json fence, sometimes with a sentence of preamble.
Nothing past this module ever sees the raw dict: each parse_* function
returns a ParseResult that is either ok (with a typed payload) or an error
(with the reason), and the orchestrators write only from an ok result.

Error types:
    MalformedJsonError         no JSON object could be read at all
    MissingRequiredFieldError  JSON parsed, but a required key is absent or
                               has the wrong type
"""

from __future__ import annotations

import json
import re
from dataclasses import asdict, dataclass, field
from typing import Any, Generic, TypeVar

from councilwatch.prompts import (
    CATEGORY_SLUGS,
    COMMUNITY_SIGNAL_SENTIMENTS,
    COMMUNITY_SIGNAL_TYPES,
    KEY_STAT_TYPES,
)

T = TypeVar("T")

_FENCE_START_RE = re.compile(r"^```(?:json)?\s*\n?", re.IGNORECASE)
_FENCE_END_RE = re.compile(r"\n?```\s*$")

POSITION_SENTIMENTS = ("oppose", "support", "neutral")


class AiResponseError(ValueError):
    """Model output that cannot be written."""


class MalformedJsonError(AiResponseError):
    pass


class MissingRequiredFieldError(AiResponseError):
    pass


@dataclass
class ParseResult(Generic[T]):
    value: T | None = None
    error: AiResponseError | None = None

    @property
    def ok(self) -> bool:
        return self.error is None

    @classmethod
    def success(cls, value: T) -> "ParseResult[T]":
        return cls(value=value)

    @classmethod
    def failure(cls, error: AiResponseError) -> "ParseResult[T]":
        return cls(error=error)

    def unwrap(self) -> T:
        if self.error is not None:
            raise self.error
        return self.value


# =============================================================================
# JSON extraction
# =============================================================================

def strip_code_fences(text: str) -> str:
    value = (text or "").strip()
    value = _FENCE_START_RE.sub("", value)
    value = _FENCE_END_RE.sub("", value)
    return value.strip()


def _extract_first_json_object(text: str) -> str:
    value = (text or "").strip()
    if not value:
        raise MalformedJsonError("empty model output")
    first = value.find("{")
    if first < 0:
        raise MalformedJsonError("no json object start")

    depth = 0
    in_string = False
    escaped = False
    for i in range(first, len(value)):
        char = value[i]
        if in_string:
            if escaped:
                escaped = False
            elif char == "\\":
                escaped = True
            elif char == '"':
                in_string = False
            continue
        if char == '"':
            in_string = True
        elif char == "{":
            depth += 1
        elif char == "}":
            depth -= 1
            if depth == 0:
                return value[first : i + 1]
    raise MalformedJsonError("unterminated json object")


def load_json_object(raw: str) -> dict:
    """Fence-stripped text -> dict, or MalformedJsonError."""
    text = strip_code_fences(raw)
    try:
        payload = json.loads(text)
    except json.JSONDecodeError:
        # Preamble or trailing prose around the object.
        try:
            payload = json.loads(_extract_first_json_object(text))
        except json.JSONDecodeError as exc:
            raise MalformedJsonError(f"invalid JSON: {exc}") from exc
    if not isinstance(payload, dict):
        raise MalformedJsonError("payload is not a JSON object")
    return payload


# =============================================================================
# Field helpers
# =============================================================================

def _require_text(payload: dict, key: str) -> str:
    value = payload.get(key)
    if not isinstance(value, str) or not value.strip():
        raise MissingRequiredFieldError(f"missing or empty '{key}'")
    return value.strip()


def _optional_text(value: Any) -> str | None:
    if value is None:
        return None
    text = str(value).strip()
    return text or None


def _string_list(value: Any) -> list[str]:
    if not isinstance(value, list):
        return []
    return [str(v).strip() for v in value if isinstance(v, (str, int, float)) and str(v).strip()]


def _coerce_count(value: Any) -> int:
    """Non-negative int; anything unreadable counts as 0."""
    if isinstance(value, bool):
        return 0
    try:
        return max(0, int(float(value)))
    except (TypeError, ValueError):
        return 0


def normalize_categories(value: Any) -> tuple[str | None, list[str] | None]:
    """
    Returns (primary, all) so that, when `all` is not None, all[0] == primary.

    The model sometimes returns categories as a JSON-encoded string
    ('["housing"]') or a bare slug ("housing"); both are accepted. Unknown
    slugs are kept: the list is advisory, and dropping a label silently
    would hide prompt drift.
    """
    cats = value
    if isinstance(cats, str):
        text = cats.strip()
        if not text:
            cats = []
        else:
            try:
                decoded = json.loads(text)
            except json.JSONDecodeError:
                decoded = [text]
            cats = decoded if isinstance(decoded, list) else [text]
    if not isinstance(cats, list):
        cats = []

    cleaned = []
    for cat in cats:
        if not isinstance(cat, str):
            continue
        slug = cat.strip().lower()
        if slug and slug not in cleaned:
            cleaned.append(slug)
    if not cleaned:
        return None, None
    return cleaned[0], cleaned


def is_known_category(slug: str | None) -> bool:
    return slug in CATEGORY_SLUGS


# =============================================================================
# Summary
# =============================================================================

@dataclass
class KeyStat:
    label: str
    value: str
    type: str = "other"


@dataclass
class CommunitySignal:
    type: str
    participant_count: int | None
    summary: str | None
    sentiment: str | None


@dataclass
class SummaryPayload:
    summary: str
    summary_simple: str
    summary_expert: str
    category: str | None
    categories: list[str] | None
    tags: list[str] = field(default_factory=list)
    impact: str | None = None
    decision: str | None = None
    bylaw_number: str | None = None
    is_significant: bool = False
    headline: str | None = None
    topic_label: str | None = None
    key_stats: list[KeyStat] = field(default_factory=list)
    community_signal: CommunitySignal | None = None
    raw: dict = field(default_factory=dict)

    def key_stats_json(self) -> list[dict]:
        return [asdict(stat) for stat in self.key_stats]

    def community_signal_json(self) -> dict | None:
        return asdict(self.community_signal) if self.community_signal else None


def _parse_key_stats(value: Any) -> list[KeyStat]:
    stats = []
    if not isinstance(value, list):
        return stats
    for entry in value:
        if not isinstance(entry, dict):
            continue
        label = _optional_text(entry.get("label"))
        stat_value = _optional_text(entry.get("value"))
        if not label or not stat_value:
            continue
        stat_type = str(entry.get("type") or "other").strip().lower()
        stats.append(KeyStat(label=label, value=stat_value, type=stat_type if stat_type in KEY_STAT_TYPES else "other"))
    return stats


def _parse_community_signal(value: Any) -> CommunitySignal | None:
    if not isinstance(value, dict):
        return None
    signal_type = str(value.get("type") or "other").strip().lower()
    sentiment = _optional_text(value.get("sentiment"))
    count = value.get("participant_count")
    return CommunitySignal(
        type=signal_type if signal_type in COMMUNITY_SIGNAL_TYPES else "other",
        participant_count=_coerce_count(count) if count is not None else None,
        summary=_optional_text(value.get("summary")),
        sentiment=sentiment if sentiment in COMMUNITY_SIGNAL_SENTIMENTS else None,
    )


def _validate_summary(payload: dict) -> SummaryPayload:
    summary = _require_text(payload, "summary")
    summary_simple = _require_text(payload, "summary_simple")
    summary_expert = _require_text(payload, "summary_expert")
    if "categories" not in payload:
        raise MissingRequiredFieldError("missing 'categories'")
    category, categories = normalize_categories(payload.get("categories"))

    tags = payload.get("tags")
    if tags is not None and not isinstance(tags, list):
        raise MissingRequiredFieldError("'tags' must be a list")

    return SummaryPayload(
        summary=summary,
        summary_simple=summary_simple,
        summary_expert=summary_expert,
        category=category,
        categories=categories,
        tags=_string_list(tags),
        impact=_optional_text(payload.get("impact")),
        decision=_optional_text(payload.get("decision")),
        bylaw_number=_optional_text(payload.get("bylaw_number")),
        is_significant=payload.get("is_significant") is True,
        headline=_optional_text(payload.get("headline")),
        topic_label=_optional_text(payload.get("topic_label")),
        key_stats=_parse_key_stats(payload.get("key_stats")),
        community_signal=_parse_community_signal(payload.get("community_signal")),
        raw=payload,
    )


def parse_summary_response(raw: str) -> ParseResult[SummaryPayload]:
    try:
        return ParseResult.success(_validate_summary(load_json_object(raw)))
    except AiResponseError as e:
        return ParseResult.failure(e)


# =============================================================================
# Impact
# =============================================================================

def parse_impact_response(raw: str) -> ParseResult[str]:
    try:
        payload = load_json_object(raw)
        return ParseResult.success(_require_text(payload, "impact"))
    except AiResponseError as e:
        return ParseResult.failure(e)


# =============================================================================
# Feedback
# =============================================================================

@dataclass
class Position:
    stance: str
    sentiment: str
    count: int
    detail: str


@dataclass
class FeedbackPayload:
    feedback_count: int
    sentiment_summary: str | None
    support_count: int
    oppose_count: int
    neutral_count: int
    positions: list[Position] | None
    related_bylaw_or_topic: str | None

    def positions_json(self) -> list[dict] | None:
        if self.positions is None:
            return None
        return [asdict(p) for p in self.positions]


def filter_positions(value: Any) -> list[Position] | None:
    """
    Keeps positions with a recognised sentiment and non-empty stance, highest
    count first. Returns None (not []) when nothing survives.
    """
    if not isinstance(value, list):
        return None
    positions = []
    for entry in value:
        if not isinstance(entry, dict):
            continue
        stance = entry.get("stance")
        sentiment = entry.get("sentiment")
        if not isinstance(stance, str) or not stance.strip():
            continue
        if sentiment not in POSITION_SENTIMENTS:
            continue
        positions.append(Position(
            stance=stance.strip(),
            sentiment=sentiment,
            count=_coerce_count(entry.get("count")),
            detail=str(entry.get("detail") or "").strip(),
        ))
    # sorted() is stable, so equal counts keep the model's order.
    positions = sorted(positions, key=lambda p: p.count, reverse=True)
    return positions or None


def _validate_feedback(payload: dict) -> FeedbackPayload:
    if payload.get("feedback_count") is None:
        raise MissingRequiredFieldError("missing 'feedback_count'")
    return FeedbackPayload(
        feedback_count=_coerce_count(payload.get("feedback_count")),
        sentiment_summary=_optional_text(payload.get("sentiment_summary")),
        support_count=_coerce_count(payload.get("support_count")),
        oppose_count=_coerce_count(payload.get("oppose_count")),
        neutral_count=_coerce_count(payload.get("neutral_count")),
        positions=filter_positions(payload.get("positions")),
        related_bylaw_or_topic=_optional_text(payload.get("related_bylaw_or_topic")),
    )


def parse_feedback_response(raw: str) -> ParseResult[FeedbackPayload]:
    try:
        return ParseResult.success(_validate_feedback(load_json_object(raw)))
    except AiResponseError as e:
        return ParseResult.failure(e)
