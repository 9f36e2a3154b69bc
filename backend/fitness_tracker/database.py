"""
Engine and session setup for the workout and billing-customer tables.

The schema is two tables created at startup with ``create_all``; there
are no migrations.
"""

import logging
from pathlib import Path
from typing import Optional

from sqlalchemy import create_engine
from sqlalchemy.engine import Engine, make_url
from sqlalchemy.orm import sessionmaker

from fitness_tracker.config import get_settings
from fitness_tracker.models.base import Base

logger = logging.getLogger(__name__)

settings = get_settings()


def build_engine(database_url: str) -> Engine:
    """
    Create the engine for ``database_url``.

    File-backed SQLite gets its parent directory created and is opened
    for use from FastAPI's worker threads.
    """
    url = make_url(database_url)
    connect_args = {}

    if url.get_backend_name() == "sqlite":
        connect_args["check_same_thread"] = False
        if url.database and url.database != ":memory:":
            Path(url.database).parent.mkdir(parents=True, exist_ok=True)

    return create_engine(url, connect_args=connect_args, pool_pre_ping=True)


engine = build_engine(settings.DATABASE_URL)

# Stores refresh what they return, so committed objects need not expire
SessionLocal = sessionmaker(bind=engine, autoflush=False, expire_on_commit=False)


def get_db():
    """Dependency to get database session."""
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def create_tables(bind: Optional[Engine] = None) -> None:
    """Create the workout and billing-customer tables if missing."""
    from fitness_tracker.models import BillingCustomer, Workout  # noqa: F401

    target = bind if bind is not None else engine
    Base.metadata.create_all(bind=target)
    logger.info(f"Tables ready: {', '.join(sorted(Base.metadata.tables))}")
