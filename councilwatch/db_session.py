"""
Database Session Context Manager

Every stage of the pipeline talks to the database through this helper:

    with db_session() as session:
        run = open_run(session, municipality, "agenda")
        session.commit()
    # Session is automatically closed when the "with" block ends

Why a context manager?
----------------------
The scrapers, the summarizer and the feedback worker all need the same
three guarantees:
1. A failure anywhere inside the block rolls back uncommitted changes.
2. The exception still reaches the caller (so a scrape run can be marked failed).
3. The connection goes back to the pool no matter what happened.
"""

from contextlib import contextmanager
from sqlalchemy.orm import sessionmaker
from councilwatch.models import db_connect, create_tables

_SessionLocal = None


def _get_session_factory():
    """
    Creates or returns the session factory.

    The engine is created lazily on first use so that importing a module
    never opens a database connection (tests swap db_connect before that).
    """
    global _SessionLocal
    if _SessionLocal is None:
        engine = db_connect()
        create_tables(engine)
        _SessionLocal = sessionmaker(bind=engine)
    return _SessionLocal


def reset_session_factory():
    """Forgets the cached factory so the next session picks up a new engine."""
    global _SessionLocal
    _SessionLocal = None


@contextmanager
def db_session():
    """
    Context manager for database sessions with automatic cleanup.

    What happens under the hood:
    1. Creates a new database session
    2. Yields it to your code (the "as session" part)
    3. If an error occurs, rolls back any uncommitted changes and re-raises
    4. Always closes the session
    """
    SessionLocal = _get_session_factory()
    session = SessionLocal()

    try:
        yield session

    except Exception:
        # Broad on purpose: a ValueError from parsing code leaves the session
        # just as dirty as an IntegrityError does.
        session.rollback()
        raise

    finally:
        session.close()
