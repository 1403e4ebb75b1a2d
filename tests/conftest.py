"""
tests/conftest.py — Shared Test Fixtures
=========================================
"""

from __future__ import annotations

import os

# ---------------------------------------------------------------------------
# Ensure a valid JWT_SECRET is always set for test runs.
# This must happen before any import of quorum.api.deps which validates
# the secret at module-load time.
# ---------------------------------------------------------------------------
_TEST_JWT_SECRET = "test-secret-for-pytest-only-" + "x" * 40  # > 32 chars
os.environ.setdefault("JWT_SECRET", _TEST_JWT_SECRET)

import pytest  # noqa: E402
from sqlalchemy import BigInteger, Engine, create_engine  # noqa: E402
from sqlalchemy.ext.compiler import compiles  # noqa: E402
from sqlalchemy.orm import Session  # noqa: E402
from sqlalchemy.pool import StaticPool  # noqa: E402

from quorum.config import QuorumConfig  # noqa: E402
from quorum.database.models import Answer, Base, Question, User  # noqa: E402
from quorum.services.dispatch import TaskDispatcher  # noqa: E402
from quorum.services.notification_service import NotificationService  # noqa: E402
from quorum.services.push_hub import ConnectionRegistry  # noqa: E402


# ---------------------------------------------------------------------------
# SQLite only autoincrements INTEGER PRIMARY KEY, so render BigInteger as
# INTEGER there.
# ---------------------------------------------------------------------------
@compiles(BigInteger, "sqlite")
def _compile_bigint_as_integer(type_, compiler, **kw):
    return "INTEGER"


ASKER_ID = 1
BOB_ID = 2
CAROL_ID = 3
VOTER_ID = 4


@pytest.fixture
def db_engine() -> Engine:
    """Create an in-memory SQLite engine with all Quorum tables.

    Uses StaticPool so all threads share the same in-memory database
    (required by ``asyncio.to_thread`` used in ``run_db``).
    """
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
    """Provide a session for direct assertions against the database."""
    with Session(db_engine) as session:
        yield session
        session.rollback()


@pytest.fixture
def users(db_engine: Engine) -> dict[str, int]:
    """Four active users, all starting at reputation 0."""
    with Session(db_engine) as session:
        session.add_all([
            User(id=ASKER_ID, name="Alice", email="alice@example.com"),
            User(id=BOB_ID, name="Bob", email="bob@example.com"),
            User(id=CAROL_ID, name="Carol", email="carol@example.com"),
            User(id=VOTER_ID, name="Victor", email="victor@example.com"),
        ])
        session.commit()
    return {"asker": ASKER_ID, "bob": BOB_ID, "carol": CAROL_ID, "voter": VOTER_ID}


@pytest.fixture
def question(db_engine: Engine, users) -> int:
    with Session(db_engine) as session:
        q = Question(
            author_id=users["asker"],
            title="How do I reverse a list?",
            slug="how-do-i-reverse-a-list",
            content="Looking for the idiomatic way.",
        )
        session.add(q)
        session.commit()
        return q.id


@pytest.fixture
def answers(db_engine: Engine, users, question) -> dict[str, int]:
    """One answer by Bob and one by Carol on the shared question."""
    with Session(db_engine) as session:
        by_bob = Answer(question_id=question, author_id=users["bob"], content="Use reversed().")
        by_carol = Answer(question_id=question, author_id=users["carol"], content="Slice with [::-1].")
        session.add_all([by_bob, by_carol])
        session.commit()
        return {"bob": by_bob.id, "carol": by_carol.id}


@pytest.fixture
def config() -> QuorumConfig:
    return QuorumConfig(notification_batch_size=2, stream_queue_size=10)


@pytest.fixture
def registry(config) -> ConnectionRegistry:
    return ConnectionRegistry(
        heartbeat_seconds=config.heartbeat_seconds,
        queue_size=config.stream_queue_size,
    )


@pytest.fixture
def dispatcher() -> TaskDispatcher:
    return TaskDispatcher()


@pytest.fixture
def notifier(db_engine, registry, dispatcher, config) -> NotificationService:
    return NotificationService(
        db_engine, registry, dispatcher=dispatcher, config=config
    )


def make_token(sub: int | str) -> str:
    """Create a bearer JWT for *sub*.  Usable as a factory from tests."""
    import jwt

    from quorum.api.deps import JWT_ALGORITHM, JWT_SECRET

    return jwt.encode({"sub": str(sub)}, JWT_SECRET, algorithm=JWT_ALGORITHM)


@pytest.fixture
def auth():
    """``auth(user_id)`` → Authorization header dict."""
    def _auth(user_id: int) -> dict:
        return {"Authorization": f"Bearer {make_token(user_id)}"}
    return _auth


@pytest.fixture
def client(db_engine, registry, dispatcher, notifier, config):
    """A FastAPI TestClient wired to the in-memory engine and test singletons."""
    from fastapi.testclient import TestClient

    from quorum.api import deps
    from quorum.api.main import app

    app.dependency_overrides[deps.get_engine] = lambda: db_engine
    app.dependency_overrides[deps.get_registry] = lambda: registry
    app.dependency_overrides[deps.get_dispatcher] = lambda: dispatcher
    app.dependency_overrides[deps.get_notifier] = lambda: notifier
    app.dependency_overrides[deps.get_config] = lambda: config
    try:
        yield TestClient(app, raise_server_exceptions=False)
    finally:
        app.dependency_overrides.clear()
