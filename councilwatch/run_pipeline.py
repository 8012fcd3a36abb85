"""
Full nightly run: scrape every source, summarize new items, analyse feedback.

Stages run in order and each one only reads what the previous ones stored,
so a stage can also be re-run on its own with its dedicated command.

Usage:
    python -m councilwatch.run_pipeline
    python -m councilwatch.run_pipeline --skip-ai    # scrape only
    METRICS_PORT=9108 python -m councilwatch.run_pipeline
"""

import argparse
import logging
import sys

from sqlalchemy.exc import SQLAlchemyError

from councilwatch.config import (
    FEEDBACK_DEFAULT_LIMIT,
    METRICS_PORT,
    SCRAPE_DEFAULT_LIMIT,
    SUMMARY_DEFAULT_LIMIT,
    batch_limit,
)
from councilwatch.db_session import db_session
from councilwatch.feedback_worker import process_feedback
from councilwatch.llm_provider import AnthropicCompletionService
from councilwatch.metrics import start_metrics_server
from councilwatch.run_scrape import scrape_sources
from councilwatch.seed_municipalities import seed_municipalities
from councilwatch.sources.registry import SOURCES
from councilwatch.summarizer import MODE_FULL, summarize_items

logger = logging.getLogger("pipeline-manager")


def prepare_database():
    """Opening the first session creates missing tables; seeding fills municipalities."""
    with db_session() as session:
        seed_municipalities(session)


def run_pipeline(service=None, skip_ai=False, fetcher=None):
    """
    Returns True when every stage finished.

    A single source failing to scrape marks the run as failed but the AI
    stages still run over whatever the other sources stored.
    """
    logger.info("Step: prepare database")
    prepare_database()

    logger.info("Step: scrape %s", ", ".join(SOURCES))
    _, failures = scrape_sources(list(SOURCES), batch_limit(SCRAPE_DEFAULT_LIMIT), fetcher=fetcher)
    if failures:
        logger.error("Scrape failed for: %s", ", ".join(failures))

    if skip_ai:
        logger.info("Skipping AI stages (--skip-ai)")
        return not failures

    service = service or AnthropicCompletionService()

    logger.info("Step: summaries")
    summarize_items(service, mode=MODE_FULL, limit=batch_limit(SUMMARY_DEFAULT_LIMIT))

    logger.info("Step: public feedback")
    process_feedback(service, limit=batch_limit(FEEDBACK_DEFAULT_LIMIT) or None)

    return not failures


def main(argv=None, service=None):
    parser = argparse.ArgumentParser(description="Run every pipeline stage in order.")
    parser.add_argument("--skip-ai", action="store_true", help="Scrape only; skip summaries and feedback")
    args = parser.parse_args(argv)

    if start_metrics_server(METRICS_PORT):
        logger.info("Metrics exporter listening on :%s", METRICS_PORT)

    try:
        ok = run_pipeline(service=service, skip_ai=args.skip_ai)
    except SQLAlchemyError as e:
        logger.error("Database error, pipeline aborted: %s", e)
        return 1
    except Exception as e:
        logger.exception("Pipeline aborted: %s", e)
        return 1

    logger.info("Pipeline finished%s.", "" if ok else " with failures")
    return 0 if ok else 1


if __name__ == "__main__":
    logging.basicConfig(level=logging.INFO, format='%(asctime)s - %(name)s - %(levelname)s - %(message)s')
    sys.exit(main())
