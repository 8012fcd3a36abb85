import logging

from sqlalchemy.exc import SQLAlchemyError

from councilwatch.db_session import db_session
from councilwatch.models import Municipality

logger = logging.getLogger("seed-municipalities")

# short_name must match the source adapter's short_name.
MUNICIPALITIES = (
    {"name": "City of Courtenay", "short_name": "courtenay", "website_url": "https://www.courtenay.ca"},
    {"name": "Town of Comox", "short_name": "comox", "website_url": "https://www.comox.ca"},
    {"name": "Comox Valley Regional District", "short_name": "cvrd", "website_url": "https://www.comoxvalleyrd.ca"},
    {"name": "Village of Cumberland", "short_name": "cumberland", "website_url": "https://cumberland.ca"},
)


def seed_municipalities(session, rows=MUNICIPALITIES):
    """
    Ensures a Municipality row exists for every source we scrape.

    Why this is needed:
    Meetings hang off a municipality, so the scrapers refuse to run until
    these rows exist. Running this twice is harmless: a municipality is never
    changed once it exists.

    Returns (added, skipped).
    """
    added = skipped = 0
    for row in rows:
        existing = session.query(Municipality).filter(Municipality.short_name == row["short_name"]).first()
        if existing is None:
            session.add(Municipality(**row))
            added += 1
            logger.info("Added municipality: %s", row["name"])
        else:
            skipped += 1
            logger.info("Municipality already exists: %s", existing.name)
    session.commit()
    return added, skipped


def main():
    try:
        with db_session() as session:
            added, skipped = seed_municipalities(session)
    except SQLAlchemyError as e:
        logger.error("Error during seeding: %s", e)
        return 1
    logger.info("Seeding complete: %s added, %s already present.", added, skipped)
    return 0


if __name__ == "__main__":
    logging.basicConfig(level=logging.INFO, format='%(asctime)s - %(name)s - %(levelname)s - %(message)s')
    raise SystemExit(main())
