"""Database connection and session management.

Engines and session factories are built explicitly from settings and handed to
the storage backend; nothing here is a module-level global.
"""

from contextlib import contextmanager
from typing import Any, Generator

from sqlalchemy import create_engine, event
from sqlalchemy.engine import Engine
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from violet_fhir.config import Settings
from violet_fhir.models.base import Base


def _enable_sqlite_foreign_keys(dbapi_connection: Any, connection_record: Any) -> None:
    """Turn on FK enforcement, which SQLite leaves off per connection."""
    _ = connection_record  # Required by SQLAlchemy but not used
    cursor = dbapi_connection.cursor()
    cursor.execute("PRAGMA foreign_keys=ON")
    cursor.close()


def build_engine(database_url: str, settings: Settings) -> Engine:
    """Create an engine with dialect-appropriate pool settings."""
    echo = settings.debug and settings.environment == "development"

    if database_url.startswith("sqlite"):
        kwargs: dict = {"connect_args": {"check_same_thread": False}}
        if ":memory:" in database_url or database_url in ("sqlite://", "sqlite:///"):
            # one shared connection, otherwise every session sees an empty db
            kwargs["poolclass"] = StaticPool
        engine = create_engine(database_url, echo=echo, **kwargs)
        event.listen(engine, "connect", _enable_sqlite_foreign_keys)
        return engine

    return create_engine(
        database_url.replace("postgresql+asyncpg://", "postgresql://"),
        pool_size=settings.database_pool_size,
        max_overflow=settings.database_max_overflow,
        pool_pre_ping=True,
        pool_recycle=3600,
        echo=echo,
    )


def build_session_factory(engine: Engine) -> sessionmaker:
    """Create the session factory used by the SQLAlchemy storage backend."""
    return sessionmaker(
        bind=engine,
        class_=Session,
        autocommit=False,
        autoflush=False,
        expire_on_commit=False,
    )


@contextmanager
def session_scope(factory: sessionmaker) -> Generator[Session, None, None]:
    """Run one unit of work: commit on success, roll back on any failure."""
    db = factory()
    try:
        yield db
        db.commit()
    except (SQLAlchemyError, TypeError, ValueError):
        db.rollback()
        raise
    finally:
        db.close()


def init_db(engine: Engine) -> None:
    """Initialize database with tables."""
    # register the mapped classes on Base.metadata
    import violet_fhir.models  # noqa: F401  # pylint: disable=import-outside-toplevel

    Base.metadata.create_all(bind=engine)
