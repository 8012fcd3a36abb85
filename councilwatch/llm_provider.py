from __future__ import annotations

import logging
import os
import time
from typing import Protocol, runtime_checkable

import anthropic

from councilwatch.config import (
    AI_REQUEST_TIMEOUT_SECONDS,
    AI_SDK_MAX_RETRIES,
    ANTHROPIC_MODEL,
)
from councilwatch.metrics import record_ai_call

logger = logging.getLogger("completion-service")


class CompletionError(RuntimeError):
    """Base completion error type; orchestrators skip the current row on it."""


class RateLimitedError(CompletionError):
    """The API refused the call for rate-limit reasons (after SDK retries)."""


class CompletionTimeoutError(CompletionError):
    """The API did not answer within the request timeout."""


class MalformedResponseError(CompletionError):
    """The API answered, but with no usable text block."""


@runtime_checkable
class CompletionService(Protocol):
    def complete(self, system: str, user: str, *, max_tokens: int, stage: str = "summary") -> str: ...


class AnthropicCompletionService:
    """
    Completion service backed by the Anthropic Messages API.

    The SDK already retries connection errors, 429s and 5xx responses with
    backoff (`max_retries`); whatever is still failing after that is mapped
    onto the CompletionError family so callers never import anthropic.
    """
    name = "anthropic"

    def __init__(self, api_key: str | None = None, *, model: str = ANTHROPIC_MODEL, client=None):
        api_key = api_key or os.getenv("ANTHROPIC_API_KEY")
        if client is None and not api_key:
            raise CompletionError("ANTHROPIC_API_KEY not set. Export it or add it to your environment file.")
        self.model = model
        self.client = client or anthropic.Anthropic(
            api_key=api_key,
            timeout=AI_REQUEST_TIMEOUT_SECONDS,
            max_retries=AI_SDK_MAX_RETRIES,
        )

    def complete(self, system: str, user: str, *, max_tokens: int, stage: str = "summary") -> str:
        t0 = time.perf_counter()
        outcome = "ok"
        try:
            request = {
                "model": self.model,
                "max_tokens": max_tokens,
                "messages": [{"role": "user", "content": user}],
            }
            if system:
                request["system"] = system
            response = self.client.messages.create(**request)
            text = next(
                (block.text for block in (response.content or []) if getattr(block, "type", None) == "text"),
                None,
            )
            if not text:
                outcome = "malformed"
                raise MalformedResponseError("No text in response")
            return text
        except anthropic.RateLimitError as exc:
            outcome = "rate_limited"
            raise RateLimitedError(f"Rate limited by {self.name}: {exc}") from exc
        except anthropic.APITimeoutError as exc:
            outcome = "timeout"
            raise CompletionTimeoutError(f"{self.name} request timed out: {exc}") from exc
        except anthropic.APIError as exc:
            outcome = "error"
            raise CompletionError(f"{self.name} request failed: {exc}") from exc
        finally:
            duration_s = time.perf_counter() - t0
            record_ai_call(stage, outcome, duration_s)
            logger.debug("completion stage=%s outcome=%s duration_s=%.2f", stage, outcome, duration_s)
