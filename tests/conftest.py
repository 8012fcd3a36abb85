import datetime

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

# We use a shared in-memory database so multiple connections can see the same tables.
# This is critical because every stage opens its own sessions through db_session().
TEST_DB_URL = "sqlite:///file:testdb?mode=memory&cache=shared&uri=true"


@pytest.fixture(scope="session", autouse=True)
def shared_engine():
    """
    Creates a single engine for the entire test session.
    """
    from councilwatch.models import Base
    # The URI must have the same name for all engines to share the DB
    engine = create_engine(TEST_DB_URL)
    Base.metadata.create_all(engine)
    return engine


@pytest.fixture(autouse=True)
def mock_db_connect(monkeypatch, shared_engine):
    """
    Monkeypatch every module that opens an engine to use the shared test database.
    """
    monkeypatch.setenv("DATABASE_URL", TEST_DB_URL)

    targets = [
        "councilwatch.models.db_connect",
        "councilwatch.db_session.db_connect",
    ]
    for target in targets:
        try:
            monkeypatch.setattr(target, lambda: shared_engine)
        except (AttributeError, ImportError):
            pass

    # The session factory is cached; make the next db_session() bind to the test engine.
    from councilwatch.db_session import reset_session_factory
    reset_session_factory()
    yield
    reset_session_factory()


@pytest.fixture(autouse=True)
def no_politeness_delays(monkeypatch):
    """Nothing in the test suite should ever sleep."""
    monkeypatch.setattr("councilwatch.sources.base.PAGE_DELAY_SECONDS", 0)
    monkeypatch.setattr("councilwatch.sources.base.PDF_DELAY_SECONDS", 0)
    monkeypatch.setattr("councilwatch.sources.courtenay.COURTENAY_PAGE_DELAY_SECONDS", 0)


@pytest.fixture
def db_session(shared_engine):
    """
    Setup: Returns a session tied to the shared test database.
    We clear the data between tests but keep the tables.
    """
    from councilwatch.models import Base
    Session = sessionmaker(bind=shared_engine)
    session = Session()

    yield session

    # Clean up data after every test to ensure isolation
    session.rollback()
    for table in reversed(Base.metadata.sorted_tables):
        session.execute(table.delete())
    session.commit()
    session.close()


@pytest.fixture
def comox(db_session):
    """A seeded Town of Comox row; most coordinator tests hang meetings off it."""
    from councilwatch.models import Municipality
    municipality = Municipality(name="Town of Comox", short_name="comox", website_url="https://www.comox.ca")
    db_session.add(municipality)
    db_session.commit()
    return municipality


@pytest.fixture
def make_meeting(db_session):
    """Factory: stored meeting (and optional items) for a municipality."""
    from councilwatch.models import Item, Meeting

    def _make(municipality, date, titles=(), meeting_type="regular", **columns):
        meeting = Meeting(
            municipality_id=municipality.id,
            date=date if isinstance(date, datetime.date) else datetime.date.fromisoformat(date),
            meeting_type=meeting_type,
            **columns,
        )
        db_session.add(meeting)
        db_session.flush()
        for title in titles:
            db_session.add(Item(meeting_id=meeting.id, title=title, description=f"About {title}",
                                raw_content=f"{title} raw text"))
        db_session.commit()
        return meeting

    return _make
