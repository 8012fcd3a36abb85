import datetime
import os

from sqlalchemy import create_engine
from sqlalchemy import Column, Boolean, String, Integer, Date, DateTime, Text, JSON
from sqlalchemy import ForeignKey, UniqueConstraint
from sqlalchemy.orm import relationship, DeclarativeBase


# Modern SQLAlchemy 2.0 style: Subclassing DeclarativeBase instead of calling a function.
class Base(DeclarativeBase):
    pass


def db_connect():
    """
    Connects to the database (PostgreSQL in production, SQLite for local testing).

    Why this is needed:
    Every stage (scrapers, summarizer, feedback worker) opens its own engine.
    Keeping the switch in one place means a cron job only has to set
    DATABASE_URL and everything follows.
    """
    database_url = os.getenv('DATABASE_URL')

    if database_url:
        return create_engine(
            database_url,
            pool_size=5,          # The pipeline is sequential; a few connections are plenty
            max_overflow=5,
            pool_timeout=30,      # Wait 30s for a connection before giving up
            pool_recycle=1800     # Refresh connections every 30 mins to keep them healthy
        )
    else:
        # Fallback to a local SQLite file so a developer can run one scraper
        # without any database server.
        current_dir = os.path.dirname(os.path.abspath(__file__))
        project_root = os.path.dirname(current_dir)
        db_path = os.path.join(project_root, 'councilwatch.sqlite')
        print("WARNING: DATABASE_URL not set. Using local SQLite.")
        return create_engine(f'sqlite:///{db_path}')


def create_tables(engine):
    """
    Creates all the tables defined below if they don't already exist.
    """
    Base.metadata.create_all(engine)


class Municipality(Base):
    """
    A governing body we watch (City of Courtenay, Town of Comox, CVRD, ...).

    Created once by seed_municipalities and never modified by the pipeline.
    `short_name` is the stable code the scrapers and the issue threader use.
    """
    __tablename__ = 'municipality'

    id = Column(Integer, primary_key=True)
    name = Column(String, nullable=False)
    short_name = Column(String, unique=True, index=True, nullable=False)
    website_url = Column(String)
    created_at = Column(DateTime, default=datetime.datetime.now)

    meetings = relationship("Meeting", back_populates="municipality")


class Meeting(Base):
    """
    One council/board meeting.

    Natural key: (municipality_id, date, meeting_type). Re-scraping the same
    meeting updates this row (links, correspondence blob) instead of adding a
    second one, which is why the scrape coordinator always looks the row up
    by that triple before inserting.
    """
    __tablename__ = 'meeting'
    __table_args__ = (
        UniqueConstraint('municipality_id', 'date', 'meeting_type', name='uq_meeting_natural_key'),
    )

    id = Column(Integer, primary_key=True)
    municipality_id = Column(Integer, ForeignKey('municipality.id'), nullable=False, index=True)
    date = Column(Date, nullable=False, index=True)
    meeting_type = Column(String, nullable=False, default='regular')
    title = Column(String)
    status = Column(String, nullable=False, default='completed')  # scheduled | completed

    agenda_url = Column(String)
    minutes_url = Column(String)
    highlights_url = Column(String)
    video_url = Column(String)

    # Bounded correspondence sample from the feedback sampler, stored as
    # {"rawText", "letterCount", "maxPage", "sample"}.
    raw_feedback = Column(JSON(none_as_null=True))

    created_at = Column(DateTime, default=datetime.datetime.now)
    updated_at = Column(DateTime, default=datetime.datetime.now, onupdate=datetime.datetime.now)

    municipality = relationship("Municipality", back_populates="meetings")
    items = relationship("Item", back_populates="meeting", order_by="Item.id")


class Item(Base):
    """
    One agenda entry within a meeting.

    Column ownership:
    - The scrape coordinator writes title/description/raw_content/decision.
    - The summarizer writes the AI columns (summary* through community_signal).
    - The feedback worker never touches this table (it writes PublicFeedback).

    Because the write sets never overlap, the stages can run back to back
    without locking.
    """
    __tablename__ = 'item'
    __table_args__ = (
        UniqueConstraint('meeting_id', 'title', name='uq_item_meeting_title'),
    )

    id = Column(Integer, primary_key=True)
    meeting_id = Column(Integer, ForeignKey('meeting.id'), nullable=False, index=True)
    title = Column(String, nullable=False)
    description = Column(Text)
    raw_content = Column(Text)
    decision = Column(Text)
    source_type = Column(String, nullable=False, default='agenda')  # agenda | minutes | highlights

    # AI-derived fields
    summary = Column(Text)
    summary_simple = Column(Text)
    summary_expert = Column(Text)
    impact = Column(Text)
    category = Column(String, index=True)
    categories = Column(JSON)
    tags = Column(JSON)
    is_significant = Column(Boolean, default=False)
    bylaw_number = Column(String, index=True)
    headline = Column(String)
    topic_label = Column(String)
    key_stats = Column(JSON)
    community_signal = Column(JSON)
    # `metadata` is reserved on declarative classes, so the attribute is renamed.
    metadata_ = Column('metadata', JSON)

    created_at = Column(DateTime, default=datetime.datetime.now, index=True)

    meeting = relationship("Meeting", back_populates="items")
    feedback = relationship("PublicFeedback", back_populates="item", uselist=False)


class ScrapeRun(Base):
    """
    Audit record for one scraper invocation.

    Lifecycle: opened as 'running', closed exactly once as 'completed' or
    'failed'. A row still 'running' after its process exited means the
    process crashed; nothing retries it, the next invocation opens a new row.
    """
    __tablename__ = 'scrape_run'

    id = Column(Integer, primary_key=True)
    municipality_id = Column(Integer, ForeignKey('municipality.id'), index=True)
    source_type = Column(String, nullable=False)
    status = Column(String, nullable=False, default='running')
    items_found = Column(Integer, default=0)
    items_new = Column(Integer, default=0)
    error_message = Column(Text)
    started_at = Column(DateTime, default=datetime.datetime.now, index=True)
    completed_at = Column(DateTime)


class PublicFeedback(Base):
    """
    AI sentiment summary of public correspondence, attached to one item.

    At most one row per item (unique item_id); the feedback worker overwrites
    it on every run.
    """
    __tablename__ = 'public_feedback'

    id = Column(Integer, primary_key=True)
    item_id = Column(Integer, ForeignKey('item.id'), unique=True, nullable=False)
    meeting_id = Column(Integer, ForeignKey('meeting.id'), index=True)
    feedback_count = Column(Integer, default=0)
    sentiment_summary = Column(Text)
    support_count = Column(Integer, default=0)
    oppose_count = Column(Integer, default=0)
    neutral_count = Column(Integer, default=0)
    # [{"stance", "sentiment", "count", "detail"}], sorted by count descending
    positions = Column(JSON)
    created_at = Column(DateTime, default=datetime.datetime.now)
    updated_at = Column(DateTime, default=datetime.datetime.now, onupdate=datetime.datetime.now)

    item = relationship("Item", back_populates="feedback")
