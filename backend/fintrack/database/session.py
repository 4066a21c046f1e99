"""
Database Connection and Session Management
"""
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker, Session
from sqlalchemy.pool import StaticPool
from typing import Generator
import logging

from fintrack.database.models import Base

logger = logging.getLogger(__name__)

# Global engine and session factory
engine = None
SessionLocal = None
_is_initialized = False


def _engine_options(database_url: str) -> dict:
    if not database_url.startswith("sqlite"):
        return {"pool_pre_ping": True}  # Verify connections before using them

    options = {"connect_args": {"check_same_thread": False}}
    # In-memory databases only exist for the lifetime of a single connection
    if database_url in ("sqlite://", "sqlite:///:memory:"):
        options["poolclass"] = StaticPool
    return options


def init_db(database_url: str):
    """
    Initialize the database connection and create tables.

    Args:
        database_url: SQLAlchemy connection URL
    """
    global engine, SessionLocal, _is_initialized

    logger.info("Initializing database connection...")

    engine = create_engine(
        database_url,
        echo=False,  # Set to True for SQL query logging
        **_engine_options(database_url),
    )

    SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

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
        raise RuntimeError("DATABASE_URL must be set")
    init_db(settings.DATABASE_URL)


def get_db() -> Generator[Session, None, None]:
    """
    Dependency for FastAPI to get database session.

    Yields:
        Database session
    """
    ensure_db_initialized()
    db = SessionLocal()
    try:
        yield db
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
