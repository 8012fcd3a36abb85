"""
Prometheus metrics for the ingestion pipeline.

The pipeline is a short-lived batch process, so these are mostly useful when
run_pipeline is started with METRICS_PORT set (a scrape of the process while
it runs) or when a test wants to assert a counter moved.
"""

from __future__ import annotations

from prometheus_client import Counter, Histogram, start_http_server


FETCH_REQUESTS_TOTAL = Counter(
    "cw_fetch_requests_total",
    "HTTP fetch attempts by outcome.",
    labelnames=("outcome",),
)

FETCH_RETRIES_TOTAL = Counter(
    "cw_fetch_retries_total",
    "HTTP fetch retries after a failed attempt.",
)

BROWSER_FALLBACKS_TOTAL = Counter(
    "cw_browser_fallbacks_total",
    "Headless browser renders triggered after the plain client failed.",
    labelnames=("outcome",),
)

ITEMS_EXTRACTED_TOTAL = Counter(
    "cw_items_extracted_total",
    "Agenda items emitted by the document parser.",
    labelnames=("source",),
)

SCRAPE_RUNS_TOTAL = Counter(
    "cw_scrape_runs_total",
    "Scrape runs closed, by terminal status.",
    labelnames=("source", "status"),
)

AI_CALLS_TOTAL = Counter(
    "cw_ai_calls_total",
    "Completion service calls by pipeline stage and outcome.",
    labelnames=("stage", "outcome"),
)

AI_CALL_DURATION_SECONDS = Histogram(
    "cw_ai_call_duration_seconds",
    "Completion service latency in seconds.",
    labelnames=("stage",),
    buckets=(0.5, 1, 2.5, 5, 10, 20, 40, 80, 160),
)


def record_fetch(outcome: str) -> None:
    FETCH_REQUESTS_TOTAL.labels(outcome=outcome).inc()


def record_fetch_retry() -> None:
    FETCH_RETRIES_TOTAL.inc()


def record_browser_fallback(outcome: str) -> None:
    BROWSER_FALLBACKS_TOTAL.labels(outcome=outcome).inc()


def record_items_extracted(source: str, count: int) -> None:
    if count > 0:
        ITEMS_EXTRACTED_TOTAL.labels(source=source).inc(count)


def record_scrape_run(source: str, status: str) -> None:
    SCRAPE_RUNS_TOTAL.labels(source=source, status=status).inc()


def record_ai_call(stage: str, outcome: str, duration_s: float) -> None:
    AI_CALLS_TOTAL.labels(stage=stage, outcome=outcome).inc()
    AI_CALL_DURATION_SECONDS.labels(stage=stage).observe(max(0.0, duration_s))


def start_metrics_server(port: int) -> bool:
    """Starts the exporter. Returns False (and does nothing) for port <= 0."""
    if port <= 0:
        return False
    start_http_server(port)
    return True
