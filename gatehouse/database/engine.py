"""
gatehouse.database.engine — Engine, sessions, and the thread bridge
====================================================================

The portal's async routes (membership checks, uploads, Discord side
effects) share the process with a synchronous SQLAlchemy/psycopg2 stack.
Async callers never touch the database on the event loop; they go through
:func:`run_db`, which hands the sync function to a worker thread.

Usage::

    from gatehouse.database.engine import create_db_engine, init_db, run_db

    engine = create_db_engine()
    init_db(engine)

    app = await run_db(application_service.get_latest_for_applicant, engine, uid)
"""

from __future__ import annotations

import asyncio
import logging
import os
from collections.abc import Callable
from contextlib import contextmanager
from typing import ParamSpec, TypeVar

from sqlalchemy import Engine, create_engine
from sqlalchemy.orm import Session

from gatehouse.database.models import Base

logger = logging.getLogger(__name__)

P = ParamSpec("P")
T = TypeVar("T")


# ---------------------------------------------------------------------------
# Engine creation
# ---------------------------------------------------------------------------
def create_db_engine() -> Engine:
    """Build the engine from ``DATABASE_URL``; raise ``RuntimeError`` if unset."""
    url = os.getenv("DATABASE_URL")
    if not url:
        raise RuntimeError(
            "DATABASE_URL is not set.  "
            "Copy .env.example → .env and set a valid PostgreSQL URL."
        )

    engine = create_engine(
        url,
        echo=False,
        pool_size=5,
        max_overflow=10,
        pool_pre_ping=True,
        pool_timeout=10,
        pool_recycle=3600,
    )
    logger.info("Database engine created → %s", engine.url.host)
    return engine


# ---------------------------------------------------------------------------
# Schema initialization
# ---------------------------------------------------------------------------
def init_db(engine: Engine) -> None:
    """Create all tables and seed the default question catalog.

    Safe to call on every startup.  Seeding only runs against an empty
    catalog, so questions edited by admins are never touched.

    .. note::

        In production the schema is managed by Alembic (``alembic upgrade
        head``).  ``create_all`` is retained as a safety net for dev/test
        environments where Alembic may not have run.
    """
    Base.metadata.create_all(engine)
    logger.info("Schema ready")

    from gatehouse.database.seed import seed_default_questions

    seed_default_questions(engine)


# ---------------------------------------------------------------------------
# Session helper
# ---------------------------------------------------------------------------
@contextmanager
def get_session(engine: Engine):
    """Session scope: commit on clean exit, roll back and re-raise otherwise."""
    session = Session(engine, expire_on_commit=False)
    try:
        yield session
        session.commit()
    except Exception:
        session.rollback()
        raise
    finally:
        session.close()


# ---------------------------------------------------------------------------
# Async bridge
# ---------------------------------------------------------------------------
async def run_db(func: Callable[P, T], *args: P.args, **kwargs: P.kwargs) -> T:
    """Await a synchronous DB function on the default thread pool."""
    return await asyncio.to_thread(func, *args, **kwargs)
