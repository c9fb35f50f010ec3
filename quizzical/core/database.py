"""
Database configuration and connection management.

This module provides:
- SQLAlchemy engine and session management
- Connection pooling with sane defaults
- Test database support (sqlite URLs get a single shared connection)
- The `documents` table backing SqlDocumentStore
"""
from typing import Optional
from contextlib import contextmanager
from sqlalchemy import create_engine, MetaData, Table, Column, String, DateTime, JSON, Index
from sqlalchemy.pool import QueuePool, StaticPool
from sqlalchemy.orm import sessionmaker
from sqlalchemy.sql import func
import logging
import os

from quizzical.core.config import settings


logger = logging.getLogger("quizzical.database")

# SQLAlchemy metadata for table definitions
metadata = MetaData()

# Connection pooling configuration
POOL_SIZE = 10
MAX_OVERFLOW = 20
POOL_TIMEOUT = 30
POOL_RECYCLE = 3600  # Recycle connections after 1 hour

# Global engine and session factory
_engine = None
_SessionLocal = None


def get_database_url() -> Optional[str]:
    """
    Get the database URL from settings or environment.

    For testing, use TEST_DATABASE_URL if available.
    """
    test_url = os.getenv("TEST_DATABASE_URL")
    if test_url:
        return test_url

    return os.getenv("DATABASE_URL") or settings.DATABASE_URL


def init_engine(database_url: Optional[str] = None):
    """
    Initialize the SQLAlchemy engine.

    Args:
        database_url: Optional override for DATABASE_URL
    """
    global _engine, _SessionLocal

    url = database_url or get_database_url()

    if not url:
        raise ValueError(
            "DATABASE_URL is not configured. "
            "Set DATABASE_URL in environment or .env file."
        )

    if url.startswith("sqlite"):
        # One shared connection so in-memory databases survive across sessions
        _engine = create_engine(
            url,
            poolclass=StaticPool,
            connect_args={"check_same_thread": False},
            echo=False,
        )
    else:
        _engine = create_engine(
            url,
            poolclass=QueuePool,
            pool_size=POOL_SIZE,
            max_overflow=MAX_OVERFLOW,
            pool_timeout=POOL_TIMEOUT,
            pool_recycle=POOL_RECYCLE,
            echo=False,  # Set to True for SQL query logging
        )

    # Create session factory
    _SessionLocal = sessionmaker(
        autocommit=False,
        autoflush=False,
        bind=_engine
    )

    return _engine


def dispose_engine() -> None:
    """Dispose the current engine (tests switch URLs between modules)."""
    global _engine, _SessionLocal
    if _engine is not None:
        _engine.dispose()
    _engine = None
    _SessionLocal = None


def get_engine():
    """Get the current SQLAlchemy engine."""
    global _engine
    if _engine is None:
        init_engine()
    return _engine


def get_session_factory():
    """Get the session factory."""
    global _SessionLocal
    if _SessionLocal is None:
        init_engine()
    return _SessionLocal


@contextmanager
def get_db_session():
    """
    Context manager for database sessions.

    Usage:
        with get_db_session() as session:
            session.execute(...)
            session.commit()
    """
    SessionLocal = get_session_factory()
    session = SessionLocal()
    try:
        yield session
        session.commit()
    except Exception:
        session.rollback()
        raise
    finally:
        session.close()


def create_all_tables():
    """
    Create all tables defined in metadata.

    This is idempotent - tables that already exist will not be recreated.
    """
    engine = get_engine()
    metadata.create_all(bind=engine)


# Path-addressed JSON documents (SqlDocumentStore)
documents = Table(
    'documents',
    metadata,
    Column('path', String(512), primary_key=True),
    Column('parent', String(512), nullable=False),  # path minus its last segment ("" for roots)
    Column('value', JSON, nullable=False),
    Column('updated_at', DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False),
    Index('idx_documents_parent', 'parent'),
)
