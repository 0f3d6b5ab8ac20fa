from __future__ import annotations

import hashlib
import hmac
import json
import os
import time
from collections.abc import Generator
from datetime import timedelta
from typing import Any

# Settings are read at import time.
os.environ.setdefault("PROJECT_NAME", "ScoutFlow Test")
os.environ.setdefault("POSTGRES_SERVER", "localhost")
os.environ.setdefault("POSTGRES_USER", "postgres")
os.environ.setdefault("ENVIRONMENT", "local")
os.environ.setdefault("PADDLE_WEBHOOK_SECRET", "paddle-test-secret")
os.environ.setdefault("LEMONSQUEEZY_WEBHOOK_SECRET", "lemon-test-secret")

import pytest
from fastapi.testclient import TestClient
from sqlalchemy.pool import StaticPool
from sqlmodel import Session, SQLModel, create_engine, delete

from scoutflow.api.deps import get_db
from scoutflow.core import security
from scoutflow.core.config import settings
from scoutflow.main import app
from scoutflow.models import BillingWebhookEvent, Scout, Subscription, UserRole
from scoutflow.services.identity_service import reset_identity_service
from scoutflow.services.lemonsqueezy_service import reset_lemonsqueezy_service
from scoutflow.services.paddle_service import reset_paddle_service


class FakeRedis:
    def __init__(self) -> None:
        self.store: dict[str, str] = {}
        self.ttls: dict[str, int] = {}

    def get(self, key: str) -> str | None:
        return self.store.get(key)

    def setex(self, key: str, ttl: int, value: str) -> bool:
        self.store[key] = value
        self.ttls[key] = ttl
        return True


@pytest.fixture(scope="session")
def engine():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    SQLModel.metadata.create_all(engine)
    return engine


@pytest.fixture(autouse=True)
def _clean_tables(engine) -> Generator[None, None, None]:
    yield
    with Session(engine) as session:
        session.exec(delete(BillingWebhookEvent))
        session.exec(delete(Subscription))
        session.exec(delete(UserRole))
        session.exec(delete(Scout))
        session.commit()


@pytest.fixture(autouse=True)
def fake_redis(monkeypatch) -> FakeRedis:
    fake = FakeRedis()
    monkeypatch.setattr("scoutflow.services.subscription_cache.get_redis", lambda: fake)
    return fake


@pytest.fixture(autouse=True)
def _reset_services(monkeypatch) -> Generator[None, None, None]:
    monkeypatch.setattr(settings, "PADDLE_API_KEY", None)
    monkeypatch.setattr(settings, "LEMONSQUEEZY_API_KEY", None)
    monkeypatch.setattr(settings, "SUPABASE_URL", None)
    reset_paddle_service()
    reset_lemonsqueezy_service()
    reset_identity_service()
    yield
    reset_paddle_service()
    reset_lemonsqueezy_service()
    reset_identity_service()


@pytest.fixture(scope="function")
def db(engine) -> Generator[Session, None, None]:
    with Session(engine) as session:
        yield session


@pytest.fixture(scope="function")
def client(engine) -> Generator[TestClient, None, None]:
    def _override_get_db() -> Generator[Session, None, None]:
        with Session(engine) as session:
            yield session

    app.dependency_overrides[get_db] = _override_get_db
    with TestClient(app) as c:
        yield c
    app.dependency_overrides.clear()


def auth_headers(user_id: str, email: str | None = None) -> dict[str, str]:
    token = security.create_access_token(user_id, timedelta(minutes=30), email=email)
    return {"Authorization": f"Bearer {token}"}


def paddle_request(payload: dict[str, Any], ts: int | None = None) -> tuple[bytes, dict[str, str]]:
    body = json.dumps(payload).encode()
    ts = int(time.time()) if ts is None else ts
    h1 = hmac.new(
        settings.PADDLE_WEBHOOK_SECRET.encode(), f"{ts}:".encode() + body, hashlib.sha256
    ).hexdigest()
    return body, {"paddle-signature": f"ts={ts};h1={h1}", "content-type": "application/json"}


def lemonsqueezy_request(payload: dict[str, Any]) -> tuple[bytes, dict[str, str]]:
    body = json.dumps(payload).encode()
    signature = hmac.new(
        settings.LEMONSQUEEZY_WEBHOOK_SECRET.encode(), body, hashlib.sha256
    ).hexdigest()
    return body, {"x-signature": signature, "content-type": "application/json"}
