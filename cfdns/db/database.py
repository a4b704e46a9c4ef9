"""
cfdns/db/database.py

Responsibility: Creates the SQLite engine for the statistics database and
exposes init_db() for table creation.
Does NOT: define table models, run queries, or contain business logic.
"""

from __future__ import annotations

import logging
import os
from pathlib import Path

from sqlalchemy.engine import Engine
from sqlmodel import SQLModel, create_engine

# NOTE: Models must be imported so their tables are registered before create_all.
import cfdns.db.models  # noqa: F401

logger = logging.getLogger(__name__)

APPLICATION = "cfdns"


def default_db_path() -> Path:
    """
    Returns $CFDNS_DB_PATH, else $XDG_DATA_HOME/cfdns/cfdns.db, else
    ~/.local/share/cfdns/cfdns.db.
    """
    override = os.getenv("CFDNS_DB_PATH")
    if override:
        return Path(override)
    xdg = os.getenv("XDG_DATA_HOME")
    base = Path(xdg) if xdg else Path.home() / ".local" / "share"
    return base / APPLICATION / f"{APPLICATION}.db"


def create_db_engine(db_path: Path | None = None) -> Engine:
    """
    Creates the SQLite engine, making sure the parent directory exists.

    Args:
        db_path: Database file; defaults to default_db_path().

    Returns:
        A SQLAlchemy Engine bound to the file.
    """
    path = db_path or default_db_path()
    path.parent.mkdir(parents=True, exist_ok=True)
    return create_engine(f"sqlite:///{path}", echo=False)


def init_db(engine: Engine) -> None:
    """
    Creates all tables defined in SQLModel metadata if they don't exist.

    Returns:
        None
    """
    SQLModel.metadata.create_all(engine)
    logger.debug("Database initialised at %s", engine.url)
