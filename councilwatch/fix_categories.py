"""
Repairs Item.category / Item.categories so that categories[0] == category.

Older rows stored the model's whole category list as a JSON string in the
single `category` column ('["housing", "finance"]'). The feed filters on
category membership, so those rows never matched. This walks every item and
rewrites both columns from whichever one holds the real list.
"""

import logging

from sqlalchemy.exc import SQLAlchemyError

from councilwatch.ai_response import is_known_category, normalize_categories
from councilwatch.db_session import db_session
from councilwatch.models import Item

logger = logging.getLogger("fix-categories")


def repaired_categories(item):
    """What (category, categories) should be for this row."""
    source = item.categories if item.categories else item.category
    return normalize_categories(source)


def fix_categories(session, dry_run=False):
    """Returns the number of items whose category columns changed."""
    updated = 0
    for item in session.query(Item).order_by(Item.id.asc()).all():
        primary, all_categories = repaired_categories(item)
        if item.category == primary and (item.categories or None) == all_categories:
            continue

        if primary and not is_known_category(primary):
            logger.warning("Item %s has unknown category %r", item.id, primary)
        logger.info("Fixed: %s -> category=%r, categories=%s", item.id, primary, all_categories)
        if not dry_run:
            item.category = primary
            item.categories = all_categories
        updated += 1

    if not dry_run:
        session.commit()
    return updated


def main():
    try:
        with db_session() as session:
            updated = fix_categories(session)
    except SQLAlchemyError as e:
        logger.error("Category repair failed: %s", e)
        return 1
    logger.info("Fix complete: %s items updated.", updated)
    return 0


if __name__ == "__main__":
    logging.basicConfig(level=logging.INFO, format='%(asctime)s - %(name)s - %(levelname)s - %(message)s')
    raise SystemExit(main())
