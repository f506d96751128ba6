# tests/conftest.py
from __future__ import annotations

import os
from collections.abc import Generator, Iterator
from pathlib import Path

import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, sessionmaker

os.environ.setdefault("SECRET_KEY", "test-secret-key-for-unveil-stage")
os.environ.setdefault("DATABASE_URL", "sqlite://")
# Throttling is exercised directly in the gate tests; everywhere else it only slows sends down.
os.environ.setdefault("SEND_MIN_INTERVAL_MS", "0")

from unveil_stage.core.security import create_access_token
from unveil_stage.db.session import Base, build_engine, build_session_factory
from unveil_stage.db.session import get_db as app_get_session
from unveil_stage.main import create_app
from unveil_stage.models import Conversation, Match, User
from unveil_stage.models.conversation import canonical_pair
from unveil_stage.services.gate import ConversationGate
from unveil_stage.services.messaging import MessagingService


@pytest.fixture()
def engine(tmp_path: Path) -> Generator[Engine, None, None]:
    """File-backed SQLite so worker threads and the test share one database."""
    engine = build_engine(f"sqlite:///{tmp_path / 'unveil-test.db'}")
    Base.metadata.create_all(bind=engine)
    try:
        yield engine
    finally:
        Base.metadata.drop_all(bind=engine)
        engine.dispose()


@pytest.fixture()
def session_factory(engine: Engine) -> sessionmaker[Session]:
    return build_session_factory(engine)


@pytest.fixture()
def db_session(session_factory: sessionmaker[Session]) -> Iterator[Session]:
    session = session_factory()
    try:
        yield session
    finally:
        session.close()


def _make_user(db: Session, user_id: str, name: str, photo_url: str | None) -> User:
    user = User(
        id=user_id,
        email=f"{name.lower()}@example.com",
        name=name,
        age=29,
        gender="unspecified",
        city="Lyon",
        photo_url=photo_url,
    )
    db.add(user)
    db.commit()
    return user


@pytest.fixture()
def alice(db_session: Session) -> User:
    """Create the first participant (sorts first in canonical order)."""
    return _make_user(db_session, "00000000-0000-4000-8000-00000000000a", "Alice", "https://cdn.example.com/alice.jpg")


@pytest.fixture()
def bob(db_session: Session) -> User:
    """Create the second participant."""
    return _make_user(db_session, "00000000-0000-4000-8000-00000000000b", "Bob", "https://cdn.example.com/bob.jpg")


@pytest.fixture()
def carol(db_session: Session) -> User:
    """Create a member who takes part in no conversation."""
    return _make_user(db_session, "00000000-0000-4000-8000-00000000000c", "Carol", None)


@pytest.fixture()
def conversation(db_session: Session, alice: User, bob: User) -> Conversation:
    """Create a matched conversation between Alice and Bob."""
    user1_id, user2_id = canonical_pair(alice.id, bob.id)
    conversation = Conversation(user1_id=user1_id, user2_id=user2_id)
    db_session.add(conversation)
    db_session.flush()
    db_session.add(Match(user1_id=user1_id, user2_id=user2_id, conversation_id=conversation.id))
    db_session.commit()
    return conversation


@pytest.fixture()
def gate() -> ConversationGate:
    return ConversationGate(min_interval=0, idle_ttl=60)


@pytest.fixture()
def messaging(session_factory: sessionmaker[Session], gate: ConversationGate) -> MessagingService:
    return MessagingService(session_factory, gate)


@pytest.fixture()
def app(session_factory: sessionmaker[Session]) -> Iterator[FastAPI]:
    application = create_app(session_factory)

    def _get_session_override() -> Generator[Session, None, None]:
        db = session_factory()
        try:
            yield db
        finally:
            db.close()

    application.dependency_overrides[app_get_session] = _get_session_override
    try:
        yield application
    finally:
        application.dependency_overrides.clear()


@pytest.fixture()
def client(app: FastAPI) -> Iterator[TestClient]:
    with TestClient(app, base_url="http://test") as test_client:
        yield test_client


def auth_headers(user: User) -> dict[str, str]:
    return {"Authorization": f"Bearer {create_access_token(user.id)}"}


@pytest.fixture()
def alice_auth(alice: User) -> dict[str, str]:
    """Return authorization headers for Alice."""
    return auth_headers(alice)


@pytest.fixture()
def bob_auth(bob: User) -> dict[str, str]:
    """Return authorization headers for Bob."""
    return auth_headers(bob)


@pytest.fixture()
def carol_auth(carol: User) -> dict[str, str]:
    """Return authorization headers for Carol."""
    return auth_headers(carol)
