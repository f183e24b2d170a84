"""
Database connection and session management for Legal Review.

This module provides SQLAlchemy engine configuration, session factory, and
the declarative base for ORM models. It provides a dependency function for
FastAPI endpoints to access the database.

Architecture:
- engine: Manages database connections
- SessionLocal: Factory for creating database sessions
- Base: Declarative base for all ORM models
- get_db(): FastAPI dependency that provides sessions with automatic cleanup
"""

from sqlalchemy import create_engine, event, Engine
from sqlalchemy.orm import sessionmaker, DeclarativeBase
from legal_review.config import get_settings


def build_engine(database_url: str, echo: bool = False, **kwargs) -> Engine:
    """
    Create a SQLAlchemy engine for the given URL.

    SQLite connections get foreign key enforcement switched on, since the
    cascade rules in models.py rely on it.

    Args:
        database_url: SQLAlchemy connection string
        echo: Log emitted SQL
        **kwargs: Extra create_engine arguments (poolclass, connect_args, ...)

    Returns:
        Engine: Configured engine
    """
    is_sqlite = database_url.startswith("sqlite")
    if is_sqlite:
        connect_args = kwargs.setdefault("connect_args", {})
        # Sessions are handed to FastAPI's threadpool and asyncio.to_thread
        connect_args.setdefault("check_same_thread", False)
    else:
        kwargs.setdefault("pool_pre_ping", True)  # Verify connections before using them
        kwargs.setdefault("pool_size", 5)
        kwargs.setdefault("max_overflow", 10)

    new_engine = create_engine(database_url, echo=echo, **kwargs)

    if is_sqlite:
        @event.listens_for(new_engine, "connect")
        def _enable_sqlite_foreign_keys(dbapi_connection, connection_record):
            cursor = dbapi_connection.cursor()
            cursor.execute("PRAGMA foreign_keys=ON")
            cursor.close()

    return new_engine


# Database engine configuration
settings = get_settings()
engine: Engine = build_engine(
    settings.database_url,
    echo=settings.environment == "development" and settings.log_level.upper() == "DEBUG",
)

# Session factory
SessionLocal = sessionmaker(
    autocommit=False,  # Require explicit commits
    autoflush=False,  # Control when changes are flushed
    expire_on_commit=False,  # Returned records stay readable after commit
    bind=engine,
)


# Declarative base for ORM models using SQLAlchemy 2.0 style
class Base(DeclarativeBase):
    """Base class for all ORM models using SQLAlchemy 2.0 declarative style."""
    pass


def get_db():
    """
    FastAPI dependency that provides a database session.

    Yields a database session and ensures it is closed after use.

    Yields:
        Session: SQLAlchemy database session
    """
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def init_db(bind: Engine = None) -> None:
    """
    Create all tables on the given engine (the module engine by default).

    Safe to run multiple times. Use `python -m legal_review.db_init` for the
    interactive variant with progress output.
    """
    # Import models so they register with Base.metadata
    from legal_review import models  # noqa: F401

    Base.metadata.create_all(bind=bind or engine)


def recover_interrupted_analyses(bind: Engine = None) -> int:
    """
    Reset documents a previous process left in analyzing.

    Run at startup, after init_db(). See crud.recover_interrupted_analyses().
    """
    from legal_review import crud

    with sessionmaker(bind=bind or engine, autoflush=False)() as db:
        return crud.recover_interrupted_analyses(db)
