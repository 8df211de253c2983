from datetime import date

import pytest
from fastapi.testclient import TestClient
from sqlalchemy.pool import StaticPool

from academy_office.infrastructure.db import models  # noqa: F401
from academy_office.infrastructure.db.session import Base, build_engine, build_session_factory, get_db
from academy_office.main import app
from tests.helpers.factories import create_academy, create_level, create_semester


class FakeRedisClient:
    """In-memory stand-in for the handful of Redis commands the app issues."""

    def __init__(self) -> None:
        self.store: dict[str, str] = {}

    def ping(self) -> bool:
        return True

    def get(self, key: str) -> str | None:
        return self.store.get(key)

    def setex(self, key: str, ttl_seconds: int, value: str) -> bool:
        self.store[key] = value
        return True

    def set(self, key: str, value: str, nx: bool = False, ex: int | None = None) -> bool | None:
        if nx and key in self.store:
            return None
        self.store[key] = value
        return True

    def delete(self, *keys: str) -> int:
        removed = 0
        for key in keys:
            if self.store.pop(key, None) is not None:
                removed += 1
        return removed

    def eval(self, script: str, numkeys: int, key: str, token: str) -> int:
        if self.store.get(key) == token:
            del self.store[key]
            return 1
        return 0


@pytest.fixture
def engine():
    engine = build_engine("sqlite://", poolclass=StaticPool)
    Base.metadata.create_all(engine)
    try:
        yield engine
    finally:
        Base.metadata.drop_all(engine)
        engine.dispose()


@pytest.fixture
def fake_redis(monkeypatch):
    client = FakeRedisClient()
    monkeypatch.setattr("academy_office.infrastructure.cache.cache_service.get_redis_client", lambda: client)
    monkeypatch.setattr("academy_office.interfaces.api.v1.routes.health.get_redis_client", lambda: client)
    return client


@pytest.fixture
def queued_receipts(monkeypatch):
    queued: list[int] = []

    def fake_enqueue(*, invoice_id: int) -> str:
        queued.append(invoice_id)
        return f"task-{invoice_id}"

    monkeypatch.setattr("academy_office.application.services.payment_service.enqueue_payment_receipt", fake_enqueue)
    return queued


@pytest.fixture
def db_session(engine, fake_redis, queued_receipts):
    session = build_session_factory(engine)()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def client(db_session):
    def override_get_db():
        try:
            yield db_session
        finally:
            pass

    app.dependency_overrides[get_db] = override_get_db
    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.clear()


@pytest.fixture
def semester(db_session):
    return create_semester(db_session, "Spring 2026", start_date=date(2026, 2, 1), end_date=date(2026, 5, 30))


@pytest.fixture
def catalog(db_session, semester):
    art = create_academy(db_session, semester_id=semester.id, name="Art", price="100.00", display_order=1)
    create_level(db_session, academy_id=art.id, name="Beginner")
    piano = create_academy(db_session, semester_id=semester.id, name="Piano", price="100.00", display_order=2)
    korean = create_academy(db_session, semester_id=semester.id, name="Korean Language", price="50.00", display_order=3)
    create_level(db_session, academy_id=korean.id, name="Conversation")
    soccer = create_academy(db_session, semester_id=semester.id, name="Soccer", price="50.00", display_order=4)
    return {"art": art, "piano": piano, "korean": korean, "soccer": soccer}
