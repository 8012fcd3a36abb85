"""
Error types shared by the ingestion stages.

Propagation policy, in one place:
- FetchError: caught per meeting by the scrape coordinator, logged, next meeting.
- ParseError: raised by low-level extractors (e.g. an unreadable PDF); the
  section parsers themselves just drop sections that do not qualify.
- PersistenceError: fatal to the current scrape run. The run is closed as
  'failed' and the error re-raised.

AI-side errors live next to the code that raises them
(councilwatch.llm_provider and councilwatch.ai_response).
"""


class FetchError(RuntimeError):
    """Base error for anything that stopped us getting a document body."""

    def __init__(self, message, url=None, attempts=0, status_code=None):
        super().__init__(message)
        self.url = url
        self.attempts = attempts
        self.status_code = status_code


class NotFoundError(FetchError):
    """The server answered 404. Terminal: retrying will not help."""


class UnreachableError(FetchError):
    """Non-2xx status, connection failure, or an empty/blocked body."""


class FetchTimeoutError(FetchError):
    """The request did not complete within the configured timeout."""


class ParseError(ValueError):
    """A document could not be turned into text or items."""


class PersistenceError(RuntimeError):
    """A database write failed during the scrape write phase."""
