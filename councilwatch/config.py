"""
Pipeline Configuration Constants

Every tunable number the ingestion pipeline uses lives here, next to a short
note on what it controls. Values can be overridden through environment
variables so a cron job (or a developer poking at one source) can change
behaviour without editing code:

    LIMIT=1 FETCH_MAX_RETRIES=0 python -m councilwatch.run_scrape comox --dry-run

How to use these constants:
----------------------------
    from councilwatch.config import MAX_CONTENT_LENGTH

    description = cap_content(description, MAX_CONTENT_LENGTH)

Why times are in seconds:
The upstream sites publish their limits in milliseconds, but `time.sleep`
and `requests` both take seconds, so we convert once here.
"""

import os


def _env_flag(name, default="false"):
    return os.getenv(name, default).strip().lower() in {"1", "true", "yes"}


# =============================================================================
# HTTP IDENTITY
# =============================================================================
# Every plain request identifies the project and gives site owners a contact.
USER_AGENT = os.getenv(
    "COUNCILWATCH_USER_AGENT",
    "ComoxValleyCouncilWatch/1.0 (LocalGovMonitor; +mailto:info@example.com)",
)

# Some portals (the CVRD agenda server) reject anything that does not look like
# a desktop browser. Only sources that need it send this.
BROWSER_USER_AGENT = os.getenv(
    "COUNCILWATCH_BROWSER_USER_AGENT",
    "Mozilla/5.0 (Macintosh; Intel Mac OS X 10_15_7) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36",
)
BROWSER_ACCEPT_LANGUAGE = "en-US,en;q=0.5"


# =============================================================================
# FETCH RESILIENCE
# =============================================================================
# Per-request timeout for the plain HTTP client.
FETCH_TIMEOUT_SECONDS = float(os.getenv("FETCH_TIMEOUT_SECONDS", "15"))

# Retries AFTER the first attempt. 404 is never retried.
FETCH_MAX_RETRIES = int(os.getenv("FETCH_MAX_RETRIES", "2"))

# Linear backoff: attempt 1 waits 2s, attempt 2 waits 4s, ...
FETCH_RETRY_BACKOFF_SECONDS = float(os.getenv("FETCH_RETRY_BACKOFF_SECONDS", "2.0"))

# Politeness delays between successive requests to the same site.
PAGE_DELAY_SECONDS = float(os.getenv("PAGE_DELAY_SECONDS", "2.0"))
PDF_DELAY_SECONDS = float(os.getenv("PDF_DELAY_SECONDS", "1.0"))

# Headless browser fallback. 10-50x slower than requests, so it only runs
# after the plain client has already failed.
BROWSER_FALLBACK_ENABLED = _env_flag("BROWSER_FALLBACK_ENABLED", "true")
BROWSER_TIMEOUT_MS = int(os.getenv("BROWSER_TIMEOUT_MS", "30000"))


# =============================================================================
# DOCUMENT PARSING LIMITS
# =============================================================================
# Item descriptions and raw content are capped so one runaway section
# (a 400 page agenda package with no markers) cannot flood the items table.
MAX_CONTENT_LENGTH = int(os.getenv("MAX_CONTENT_LENGTH", "2000"))

# Recommendations are usually one or two "THAT Council ..." sentences.
MAX_DECISION_LENGTH = int(os.getenv("MAX_DECISION_LENGTH", "500"))

# Sections whose description is shorter than this are noise (page furniture,
# a lonely heading). Each source tunes its own value in its marker table;
# this is the default for new tables.
DEFAULT_MIN_DESCRIPTION_LENGTH = int(os.getenv("DEFAULT_MIN_DESCRIPTION_LENGTH", "80"))

# Bylaw blocks without an embedded TITLE/PURPOSE paragraph fall back to a
# slice of this many characters.
BYLAW_FALLBACK_SLICE_CHARS = 800


# =============================================================================
# PUBLIC CORRESPONDENCE SAMPLING
# =============================================================================
# Correspondence sections can run to hundreds of pages. We keep a bounded
# prefix for storage and an even larger (but still bounded) one for the prompt.
FEEDBACK_SAMPLE_CHARS = int(os.getenv("FEEDBACK_SAMPLE_CHARS", "40000"))
FEEDBACK_RAW_TEXT_CHARS = int(os.getenv("FEEDBACK_RAW_TEXT_CHARS", "35000"))

# Text kept after the last correspondence page marker so the final letter's
# body is not cut off at its footer.
FEEDBACK_TAIL_CHARS = 500


# =============================================================================
# AI COMPLETION SERVICE
# =============================================================================
ANTHROPIC_MODEL = os.getenv("ANTHROPIC_MODEL", "claude-sonnet-4-5-20250929")
AI_REQUEST_TIMEOUT_SECONDS = float(os.getenv("AI_REQUEST_TIMEOUT_SECONDS", "120"))

# The SDK has its own retry loop; we keep it small because the orchestrators
# already isolate failures per item and re-running the batch is cheap.
AI_SDK_MAX_RETRIES = int(os.getenv("AI_SDK_MAX_RETRIES", "2"))

# Fixed delay between successive completion calls.
AI_CALL_DELAY_SECONDS = float(os.getenv("AI_CALL_DELAY_SECONDS", "0.5"))

AI_SUMMARY_MAX_TOKENS = int(os.getenv("AI_SUMMARY_MAX_TOKENS", "1024"))
AI_BACKFILL_MAX_TOKENS = int(os.getenv("AI_BACKFILL_MAX_TOKENS", "2048"))
AI_IMPACT_MAX_TOKENS = int(os.getenv("AI_IMPACT_MAX_TOKENS", "256"))
AI_FEEDBACK_MAX_TOKENS = int(os.getenv("AI_FEEDBACK_MAX_TOKENS", "4096"))

# Upper bound on item text sent with a summary prompt. Items are already
# capped at extraction, so this only bites on highlight articles.
AI_SUMMARY_CONTENT_CHARS = int(os.getenv("AI_SUMMARY_CONTENT_CHARS", "12000"))

# Impact-only reprocessing sends a shorter excerpt.
AI_IMPACT_CONTENT_CHARS = int(os.getenv("AI_IMPACT_CONTENT_CHARS", "4000"))


# =============================================================================
# BATCH LIMITS (overridden per invocation with LIMIT=N)
# =============================================================================
SCRAPE_DEFAULT_LIMIT = 3
SUMMARY_DEFAULT_LIMIT = 50
BACKFILL_DEFAULT_LIMIT = 9999
# 0 means "every meeting with a correspondence blob".
FEEDBACK_DEFAULT_LIMIT = 0


def batch_limit(default):
    """
    Reads LIMIT from the environment, falling back to the stage default.

    A malformed value is treated as missing rather than crashing the run.
    """
    raw = (os.getenv("LIMIT") or "").strip()
    if not raw:
        return default
    try:
        value = int(raw)
    except ValueError:
        return default
    return value if value >= 0 else default


# =============================================================================
# OBSERVABILITY
# =============================================================================
# When > 0, run_pipeline exposes Prometheus metrics on this port while it runs.
METRICS_PORT = int(os.getenv("METRICS_PORT", "0"))
