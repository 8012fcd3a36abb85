"""
Analyse sampled public correspondence and attach it to agenda items.

Usage:
    python -m councilwatch.run_feedback
    LIMIT=3 python -m councilwatch.run_feedback --dry-run

LIMIT=0 (the default) processes every meeting that has a correspondence blob.
--force is accepted for symmetry with the other stages; feedback is always
re-analysed and overwritten, so it changes nothing.
"""

import argparse
import logging
import sys

from councilwatch.config import FEEDBACK_DEFAULT_LIMIT, batch_limit
from councilwatch.feedback_worker import process_feedback
from councilwatch.llm_provider import AnthropicCompletionService

logger = logging.getLogger("feedback-runner")


def build_parser():
    parser = argparse.ArgumentParser(description="Analyse public correspondence per meeting.")
    parser.add_argument("--dry-run", action="store_true", help="Call the model but write nothing")
    parser.add_argument("--force", action="store_true", help="No-op: feedback is always overwritten")
    return parser


def main(argv=None, service=None):
    args = build_parser().parse_args(argv)
    limit = batch_limit(FEEDBACK_DEFAULT_LIMIT) or None
    try:
        service = service or AnthropicCompletionService()
        process_feedback(service, limit=limit, dry_run=args.dry_run)
    except Exception as e:
        logger.error("Feedback run failed: %s", e)
        return 1
    return 0


if __name__ == "__main__":
    logging.basicConfig(level=logging.INFO, format='%(asctime)s - %(name)s - %(levelname)s - %(message)s')
    sys.exit(main())
