"""
Database configuration and session management.

This module sets up SQLAlchemy for the SQL lobby store backend. SQLite is
used by default; set BUZZBOARD_DATABASE_URL to point at a shared database
when several server instances serve the same lobbies.
"""

from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker, declarative_base
from sqlalchemy.engine import Engine
from pathlib import Path
from typing import Optional

from buzzboard.config import get_settings

settings = get_settings()

# Get the backend directory path (parent of buzzboard directory)
BACKEND_DIR = Path(__file__).parent.parent
DATA_DIR = BACKEND_DIR / "data"

# Database file path
DB_FILE = DATA_DIR / "buzzboard.db"
DATABASE_URL = settings.store.DATABASE_URL or f"sqlite:///{DB_FILE}"

# Base class for all models (using SQLAlchemy 2.0 style)
Base = declarative_base()

_engine: Optional[Engine] = None


def get_engine() -> Engine:
    """
    Get the shared engine, creating it on first use.

    The memory store backend never touches the database, so nothing is
    created on disk unless the SQL backend is selected.
    """
    global _engine
    if _engine is None:
        connect_args = {}
        if DATABASE_URL.startswith("sqlite"):
            DATA_DIR.mkdir(parents=True, exist_ok=True)
            connect_args = {"check_same_thread": False}  # Needed for SQLite
        _engine = create_engine(
            DATABASE_URL,
            connect_args=connect_args,
            echo=settings.store.ECHO_SQL,
        )
    return _engine


def make_session_factory(engine: Engine) -> sessionmaker:
    """Create a session factory bound to the given engine."""
    return sessionmaker(autocommit=False, autoflush=False, bind=engine)


def init_db(engine: Optional[Engine] = None) -> None:
    """
    Initialise the database.

    Creates all tables defined in the models if they don't exist.
    This is called on application startup when the SQL backend is active.
    """
    # Import all models here so they are registered with Base
    from buzzboard.models import lobby_record  # noqa: F401

    engine = engine or get_engine()
    Base.metadata.create_all(bind=engine)
    print(f"Database initialised at {engine.url}")
