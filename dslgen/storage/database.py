"""Database connection and session management."""

import os
from contextlib import contextmanager
from pathlib import Path
from typing import Generator

from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from dslgen.storage.models import Base

# Default database path
DEFAULT_DB_PATH = "dslgen.db"


def get_database_url(path: str | Path | None = None) -> str:
    """
    Get the database URL.

    Args:
        path: Optional path to SQLite database file

    Returns:
        SQLAlchemy database URL
    """
    if path is None:
        # Check environment variable first
        db_url = os.environ.get("DATABASE_URL")
        if db_url:
            return db_url
        path = DEFAULT_DB_PATH

    return f"sqlite:///{path}"


def get_engine(db_url: str | None = None, echo: bool = False) -> Engine:
    """
    Create a database engine.

    Args:
        db_url: Database URL (defaults to SQLite)
        echo: Whether to echo SQL statements

    Returns:
        SQLAlchemy Engine
    """
    if db_url is None:
        db_url = get_database_url()

    if not db_url.startswith("sqlite"):
        return create_engine(db_url, echo=echo)

    kwargs = {"connect_args": {"check_same_thread": False}}
    # In-memory SQLite needs a single shared connection across threads
    if db_url in ("sqlite://", "sqlite:///:memory:"):
        kwargs["poolclass"] = StaticPool

    return create_engine(db_url, echo=echo, **kwargs)


# Global engine and session factory
_engine: Engine | None = None
_session_factory: sessionmaker | None = None


def create_session_factory(db_url: str | None = None, echo: bool = False) -> sessionmaker:
    """
    Create an engine, its tables and a session factory bound to it.

    Args:
        db_url: Database URL
        echo: Whether to echo SQL statements

    Returns:
        sessionmaker bound to a fresh engine
    """
    engine = get_engine(db_url, echo)
    Base.metadata.create_all(engine)
    return sessionmaker(bind=engine, autoflush=False, autocommit=False, expire_on_commit=False)


def init_db(db_url: str | None = None, echo: bool = False) -> Engine:
    """
    Initialize the default database and create all tables.

    Args:
        db_url: Database URL
        echo: Whether to echo SQL statements

    Returns:
        SQLAlchemy Engine
    """
    global _engine, _session_factory

    _session_factory = create_session_factory(db_url, echo)
    _engine = _session_factory.kw["bind"]

    return _engine


def get_session() -> Session:
    """
    Get a new session from the default factory.

    Returns:
        SQLAlchemy Session
    """
    global _session_factory

    if _session_factory is None:
        init_db()

    return _session_factory()


@contextmanager
def session_scope(factory: sessionmaker | None = None) -> Generator[Session, None, None]:
    """
    Provide a transactional scope around a series of operations.

    Usage:
        with session_scope() as session:
            session.add(item)
            # Commits automatically on success, rolls back on exception

    Args:
        factory: Session factory, the default database when omitted
    """
    session = factory() if factory is not None else get_session()
    try:
        yield session
        session.commit()
    except Exception:
        session.rollback()
        raise
    finally:
        session.close()
