"""
Scrape one source (or all of them) and store what was found.

Usage:
    python -m councilwatch.run_scrape courtenay
    python -m councilwatch.run_scrape all --force
    LIMIT=10 python -m councilwatch.run_scrape cvrd --dry-run

--dry-run prints the parsed meetings as JSON and writes nothing.
--force   ignores the newest stored meeting date and revisits everything.
"""

import argparse
import logging
import sys

from councilwatch.config import SCRAPE_DEFAULT_LIMIT, batch_limit
from councilwatch.errors import PersistenceError
from councilwatch.fetcher import SourceFetcher
from councilwatch.scrape_coordinator import run_source
from councilwatch.sources.registry import SOURCES, get_adapter

logger = logging.getLogger("scrape-runner")


def build_parser():
    parser = argparse.ArgumentParser(description="Scrape council meetings from one source or all of them.")
    parser.add_argument("source", choices=[*SOURCES, "all"], help="Source short name, or 'all'")
    parser.add_argument("--dry-run", action="store_true", help="Print parsed meetings as JSON, write nothing")
    parser.add_argument("--force", action="store_true", help="Revisit meetings that were already scraped")
    return parser


def scrape_sources(names, limit, dry_run=False, force=False, fetcher=None):
    """
    Runs each named source in turn with one shared fetcher.

    A source that blows up does not stop the others; its name is returned in
    the failure list so the caller can pick an exit code.
    """
    fetcher = fetcher or SourceFetcher()
    results, failures = {}, []
    for name in names:
        adapter = get_adapter(name, fetcher=fetcher)
        logger.info("=== %s (limit=%s%s%s) ===", adapter.display_name, limit,
                    ", dry-run" if dry_run else "", ", force" if force else "")
        try:
            results[name] = run_source(adapter, limit, dry_run=dry_run, force=force)
        except (PersistenceError, RuntimeError) as e:
            logger.error("Scrape of %s failed: %s", name, e)
            failures.append(name)
    return results, failures


def main(argv=None):
    args = build_parser().parse_args(argv)
    names = list(SOURCES) if args.source == "all" else [args.source]
    limit = batch_limit(SCRAPE_DEFAULT_LIMIT)

    try:
        _, failures = scrape_sources(names, limit, dry_run=args.dry_run, force=args.force)
    except Exception as e:
        logger.exception("Scrape run aborted: %s", e)
        return 1
    return 1 if failures else 0


if __name__ == "__main__":
    logging.basicConfig(level=logging.INFO, format='%(asctime)s - %(name)s - %(levelname)s - %(message)s')
    sys.exit(main())
