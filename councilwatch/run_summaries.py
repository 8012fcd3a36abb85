"""
Generate AI summaries for stored agenda items.

Usage:
    python -m councilwatch.run_summaries                  # new items
    python -m councilwatch.run_summaries --mode backfill   # add editorial fields
    python -m councilwatch.run_summaries --mode impact    # impact sentence only
    LIMIT=5 python -m councilwatch.run_summaries --dry-run

Needs ANTHROPIC_API_KEY in the environment.
"""

import argparse
import logging
import sys

from councilwatch.config import BACKFILL_DEFAULT_LIMIT, SUMMARY_DEFAULT_LIMIT, batch_limit
from councilwatch.llm_provider import AnthropicCompletionService
from councilwatch.summarizer import MODE_BACKFILL, MODE_FULL, MODES, summarize_items

logger = logging.getLogger("summary-runner")


def default_limit(mode):
    return batch_limit(BACKFILL_DEFAULT_LIMIT if mode == MODE_BACKFILL else SUMMARY_DEFAULT_LIMIT)


def build_parser():
    parser = argparse.ArgumentParser(description="Summarize agenda items with the completion service.")
    parser.add_argument("--mode", choices=MODES, default=MODE_FULL)
    parser.add_argument("--dry-run", action="store_true", help="Call the model but write nothing")
    parser.add_argument("--force", action="store_true", help="Reprocess items that already have output")
    return parser


def main(argv=None, service=None):
    args = build_parser().parse_args(argv)
    try:
        service = service or AnthropicCompletionService()
        summarize_items(
            service,
            mode=args.mode,
            limit=default_limit(args.mode),
            dry_run=args.dry_run,
            force=args.force,
        )
    except Exception as e:
        logger.error("Summary run failed: %s", e)
        return 1
    return 0


if __name__ == "__main__":
    logging.basicConfig(level=logging.INFO, format='%(asctime)s - %(name)s - %(levelname)s - %(message)s')
    sys.exit(main())
