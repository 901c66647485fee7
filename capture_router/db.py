from pathlib import Path

from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.orm import declarative_base, sessionmaker

from .config import config


"""
Database configuration for the table and document stores.

This module is intentionally small and explicit. It exposes:
- Base: declarative base for ORM models
- engine: SQLAlchemy engine bound to the SQLite file
- SessionLocal: factory for new sessions
- build_engine: engine construction shared with tests and provisioning
"""


Base = declarative_base()


def _get_database_path() -> Path:
    """
    Return the path to the SQLite database file, creating its directory.
    """
    path = Path(config.DATABASE_PATH)
    path.parent.mkdir(parents=True, exist_ok=True)
    return path


def build_engine(database_url: str) -> Engine:
    """
    Create an engine for the given URL.

    SQLite configuration:
    - check_same_thread=False because pipeline runs execute on worker threads
    - timeout sets how long SQLite waits before raising "database is locked"
    - pool_pre_ping=True verifies connections are valid before use
    """
    connect_args = {}
    if database_url.startswith("sqlite"):
        connect_args = {
            "check_same_thread": False,
            "timeout": config.DB_LOCK_TIMEOUT,
        }
    return create_engine(database_url, connect_args=connect_args, pool_pre_ping=True)


def init_db(bind: Engine) -> None:
    # Importing models registers all tables on Base.metadata.
    from . import models  # noqa: F401

    Base.metadata.create_all(bind=bind)


DATABASE_PATH = _get_database_path()
DATABASE_URL = f"sqlite:///{DATABASE_PATH}"

engine = build_engine(DATABASE_URL)
SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)
