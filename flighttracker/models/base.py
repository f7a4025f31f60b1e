"""
SQLAlchemy base configuration and session management.

Uses SQLAlchemy 2.0 style with type hints and declarative base.
Designed to be portable between SQLite (dev) and PostgreSQL (prod).
All datetimes are stored as naive UTC.
"""

from datetime import datetime, timezone
from typing import Optional

from sqlalchemy import create_engine, event
from sqlalchemy.engine import Engine
from sqlalchemy.orm import DeclarativeBase, sessionmaker
from sqlalchemy.pool import StaticPool

from flighttracker.config import config


class Base(DeclarativeBase):
    """Base class for all models."""
    pass


def utcnow() -> datetime:
    """Current time as naive UTC, the representation used by every column."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def _set_sqlite_pragma(dbapi_connection, connection_record):
    """
    Configure SQLite for better write performance.

    WAL mode allows concurrent reads during writes - the debug API reads
    while the ingestor writes. Foreign keys must be on for snapshots to
    have their session link cleared when a session is deleted.
    """
    cursor = dbapi_connection.cursor()
    cursor.execute('PRAGMA journal_mode=WAL')
    cursor.execute('PRAGMA synchronous=NORMAL')
    cursor.execute('PRAGMA cache_size=-64000')  # 64MB
    cursor.execute('PRAGMA foreign_keys=ON')
    cursor.close()


def make_engine(url: str, echo: bool = False) -> Engine:
    """Create an engine with the settings appropriate for the database type."""
    engine_kwargs = {'echo': echo}

    if url.startswith('sqlite'):
        engine_kwargs['connect_args'] = {'check_same_thread': False}
        if url in ('sqlite://', 'sqlite:///:memory:'):
            # One shared connection, otherwise every checkout sees an empty database
            engine_kwargs['poolclass'] = StaticPool

    new_engine = create_engine(url, **engine_kwargs)

    if url.startswith('sqlite'):
        event.listen(new_engine, 'connect', _set_sqlite_pragma)

    return new_engine


def make_session_factory(bind: Engine) -> sessionmaker:
    return sessionmaker(
        bind=bind,
        autocommit=False,
        autoflush=False,
        expire_on_commit=False,  # Avoid lazy loading issues
    )


engine = make_engine(config.database.url, echo=config.debug)

# Session factory
SessionLocal = make_session_factory(engine)


def init_db(bind: Optional[Engine] = None) -> None:
    """
    Initialize database schema.

    Creates all tables if they don't exist. For production,
    use Alembic migrations instead.
    """
    # Import models so they register with Base.metadata
    from flighttracker.models import aircraft_snapshot, flight_session  # noqa: F401

    Base.metadata.create_all(bind=bind or engine)
