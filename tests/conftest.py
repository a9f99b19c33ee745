"""
tests/conftest.py — Shared Test Fixtures
=========================================
"""

from __future__ import annotations

import asyncio
import os

# ---------------------------------------------------------------------------
# Ensure a valid JWT_SECRET is always set for test runs.
# This must happen before any import of gatehouse.api.deps which validates
# the secret at module-load time.
# ---------------------------------------------------------------------------
_TEST_JWT_SECRET = "test-secret-for-pytest-only-" + "x" * 40  # > 32 chars
os.environ.setdefault("JWT_SECRET", _TEST_JWT_SECRET)

import pytest  # noqa: E402
from sqlalchemy import Engine, create_engine  # noqa: E402

# ---------------------------------------------------------------------------
# Make JSONB columns work in SQLite for testing.
# ---------------------------------------------------------------------------
from sqlalchemy.dialects.postgresql import JSONB as PG_JSONB  # noqa: E402
from sqlalchemy.orm import Session  # noqa: E402

from gatehouse.database.models import Base, Question, QuestionType  # noqa: E402

_jsonb_sqlite_registered = False


def _register_jsonb_sqlite_compat():
    """Register SQLite compilation for PG JSONB type (idempotent).

    Also maps BigInteger → INTEGER so autoincrement works on SQLite.
    """
    global _jsonb_sqlite_registered
    if _jsonb_sqlite_registered:
        return
    from sqlalchemy import BigInteger
    from sqlalchemy.ext.compiler import compiles

    @compiles(PG_JSONB, "sqlite")
    def _compile_jsonb_as_text(type_, compiler, **kw):
        return "TEXT"

    @compiles(BigInteger, "sqlite")
    def _compile_bigint_as_integer(type_, compiler, **kw):
        return "INTEGER"

    _jsonb_sqlite_registered = True


_register_jsonb_sqlite_compat()


# Helper to run async code without pytest-asyncio
def run_async(coro):
    """Run an async coroutine in a new event loop."""
    loop = asyncio.new_event_loop()
    try:
        return loop.run_until_complete(coro)
    finally:
        loop.close()


@pytest.fixture
def db_engine() -> Engine:
    """Create an in-memory SQLite engine with all Gatehouse tables.

    Uses StaticPool so all threads share the same in-memory database
    (``run_db`` hops onto worker threads).
    """
    from sqlalchemy.pool import StaticPool

    engine = create_engine(
        "sqlite://",
        echo=False,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(engine)
    return engine


@pytest.fixture
def db_session(db_engine: Engine):
    """Provide a session that rolls back after each test."""
    with Session(db_engine) as session:
        yield session
        session.rollback()


def add_question(
    engine: Engine,
    text: str = "Why do you want to join?",
    qtype: QuestionType = QuestionType.SHORT_TEXT,
    required: bool = True,
    order: int | None = None,
) -> int:
    """Insert a question directly and return its id."""
    with Session(engine) as session:
        if order is None:
            order = session.query(Question).count()
        q = Question(text=text, type=qtype.value, required=required, order=order)
        session.add(q)
        session.commit()
        return q.id


def make_token(
    sub: str = "1000",
    username: str = "Applicant",
    is_admin: bool = False,
) -> str:
    """Create a session JWT.  Usable from any test module."""
    import jwt

    from gatehouse.api.deps import JWT_ALGORITHM, JWT_SECRET

    return jwt.encode(
        {"sub": sub, "username": username, "avatar": None, "is_admin": is_admin},
        JWT_SECRET,
        algorithm=JWT_ALGORITHM,
    )


def make_admin_token(sub: str = "99999", username: str = "FixtureAdmin") -> str:
    return make_token(sub=sub, username=username, is_admin=True)


@pytest.fixture
def admin_token():
    """Generate a valid admin JWT for use in API integration tests."""
    return make_admin_token()
