"""
Database Connection and Session Management
"""
from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.orm import sessionmaker, Session
from contextlib import contextmanager
from typing import Generator, Optional
import logging

from fintrack.database.models import Base
from fintrack.exceptions import ConfigurationError

logger = logging.getLogger(__name__)

# Global engine and session factory
engine = None
SessionLocal = None
_is_initialized = False


def create_db_engine(database_url: str) -> Engine:
    """Create an engine, allowing SQLite connections to be shared across worker threads."""
    connect_args = {}
    if database_url.startswith("sqlite"):
        connect_args["check_same_thread"] = False

    return create_engine(
        database_url,
        pool_pre_ping=True,  # Verify connections before using them
        echo=False,  # Set to True for SQL query logging
        connect_args=connect_args,
    )


def create_session_factory(database_url: str, create_tables: bool = True) -> sessionmaker:
    """
    Build a standalone session factory, e.g. for tests or scripts.

    Args:
        database_url: SQLAlchemy connection URL
        create_tables: Create missing tables on the engine

    Returns:
        sessionmaker bound to a new engine
    """
    db_engine = create_db_engine(database_url)
    if create_tables:
        Base.metadata.create_all(bind=db_engine)
    return sessionmaker(autocommit=False, autoflush=False, bind=db_engine, expire_on_commit=False)


def init_db(database_url: str):
    """
    Initialize the database connection and create tables.

    Args:
        database_url: Database connection URL
    """
    global engine, SessionLocal, _is_initialized

    logger.info("Initializing database connection...")

    engine = create_db_engine(database_url)

    # Create session factory
    SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine, expire_on_commit=False)

    # Create all tables
    logger.info("Creating database tables...")
    Base.metadata.create_all(bind=engine)
    logger.info("Database initialized successfully")
    _is_initialized = True


def ensure_db_initialized():
    """Lazily initialize the database connection if it hasn't been set up yet."""
    if _is_initialized and SessionLocal is not None:
        return
    from fintrack.config import settings
    if not settings.DATABASE_URL:
        raise ConfigurationError("DATABASE_URL must be set to use database storage")
    init_db(settings.DATABASE_URL)


def get_session_factory() -> sessionmaker:
    """Return the process-wide session factory, initializing it on first use."""
    ensure_db_initialized()
    return SessionLocal


@contextmanager
def session_scope(session_factory: Optional[sessionmaker] = None) -> Generator[Session, None, None]:
    """
    Transactional scope around a series of operations.

    Usage:
        with session_scope() as db:
            link = db.query(BankLink).first()

    Yields:
        Database session, committed on success and rolled back on error
    """
    factory = session_factory or get_session_factory()
    db = factory()
    try:
        yield db
        db.commit()
    except Exception:
        db.rollback()
        raise
    finally:
        db.close()


def close_db():
    """Close database connection."""
    global engine, SessionLocal, _is_initialized
    if engine:
        engine.dispose()
        logger.info("Database connection closed")
    engine = None
    SessionLocal = None
    _is_initialized = False
