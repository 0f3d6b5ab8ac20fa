from __future__ import annotations

import asyncio
from datetime import datetime, timezone

import httpx
import pytest
import redis
from fastapi import HTTPException
from sqlmodel import Session

from scoutflow import crud
from scoutflow.core import db as core_db
from scoutflow.core.config import Settings, parse_list, settings
from scoutflow.enums import AppRole, ChangeKind, ManageAction, SubscriptionStatus
from scoutflow.services import lemonsqueezy_service, paddle_service, subscription_cache
from scoutflow.services.paddle_service import PaddleAPIError, PaddleService
from scoutflow.services.payloads import MalformedEvent, as_str, dig, parse_datetime


def test_health_check(client):
    r = client.get("/api/v1/utils/health-check/")
    assert r.status_code == 200
    assert r.json() is True


def test_http_exception_handler_dict_branch():
    from scoutflow import main as app_main

    exc = HTTPException(status_code=418, detail={"code": 418001, "message": "teapot"})
    resp = asyncio.run(app_main.http_error_handler(None, exc))  # type: ignore[arg-type]
    assert resp.status_code == 418
    assert b'"code":418001' in resp.body


def test_parse_list():
    assert parse_list("a, b,,c") == ["a", "b", "c"]
    assert parse_list(["x"]) == ["x"]
    assert parse_list('["x"]') == '["x"]'
    with pytest.raises(ValueError):
        parse_list(1)


def test_default_secret_rejected_outside_local():
    with pytest.raises(ValueError):
        Settings(
            PROJECT_NAME="p",
            POSTGRES_SERVER="db",
            POSTGRES_USER="u",
            ENVIRONMENT="production",
            PADDLE_WEBHOOK_SECRET="changethis",
        )


def test_database_uri_uses_psycopg():
    assert str(settings.SQLALCHEMY_DATABASE_URI).startswith("postgresql+psycopg://")


def test_init_db_grants_admin_roles(engine, monkeypatch):
    monkeypatch.setattr(settings, "INITIAL_ADMIN_USER_IDS", ["boss-1"])
    with Session(engine) as session:
        core_db.init_db(session)
        core_db.init_db(session)
        assert crud.is_admin(session=session, user_id="boss-1") is True


def test_parse_datetime_variants():
    parsed = parse_datetime("2026-03-01T10:00:00.123456789Z")
    assert parsed == datetime(2026, 3, 1, 10, 0, 0, 123456, tzinfo=timezone.utc)
    assert parse_datetime("2026-03-01T10:00:00+02:00").hour == 8
    assert parse_datetime("2026-03-01T10:00:00").tzinfo == timezone.utc
    assert parse_datetime("not a date") is None
    assert parse_datetime(None) is None


def test_dig_and_as_str():
    payload = {"a": {"b": [{"c": 1}]}}
    assert dig(payload, "a", "b", 0, "c") == 1
    assert dig(payload, "a", "b", 3, "c") is None
    assert dig(payload, "a", "x", "y") is None
    assert as_str(12) == "12"
    assert as_str("  ") is None


def test_paddle_trialing_event_forces_trialing():
    change = paddle_service.parse_event(
        {
            "event_type": "subscription.trialing",
            "data": {
                "id": "sub_1",
                "status": "active",
                "items": [{"trial_dates": {"ends_at": "2026-03-10T00:00:00Z"}}],
            },
        }
    )
    assert change.kind == ChangeKind.upsert
    assert change.status == SubscriptionStatus.trialing
    assert change.values["trial_ends_at"].day == 10


def test_paddle_one_off_transaction_is_ignored():
    change = paddle_service.parse_event(
        {"event_type": "transaction.completed", "data": {"totals": {"total": "0"}}}
    )
    assert change.kind == ChangeKind.ignore


def test_paddle_resumed_maps_to_active():
    change = paddle_service.parse_event(
        {"event_type": "subscription.resumed", "data": {"id": "sub_1"}}
    )
    assert change.kind == ChangeKind.update
    assert change.status == SubscriptionStatus.active
    assert change.hints.external_subscription_id == "sub_1"


def test_parse_event_rejects_non_objects():
    with pytest.raises(MalformedEvent):
        paddle_service.parse_event([1, 2])
    with pytest.raises(MalformedEvent):
        lemonsqueezy_service.parse_event({"meta": {}})


def test_status_maps():
    assert paddle_service.map_paddle_status("canceled") == SubscriptionStatus.cancelled
    assert paddle_service.map_paddle_status(None) == SubscriptionStatus.active
    assert lemonsqueezy_service.map_lemon_status("on_trial") == SubscriptionStatus.trialing
    assert lemonsqueezy_service.map_lemon_status("weird") == SubscriptionStatus.active


def test_paddle_manage_effective_from():
    captured: dict = {}

    def handler(request: httpx.Request) -> httpx.Response:
        captured["path"] = request.url.path
        captured["body"] = request.content
        return httpx.Response(200, json={"data": {"status": "active"}})

    service = PaddleService("key", transport=httpx.MockTransport(handler))
    data = service.manage_subscription("sub_1", ManageAction.resume)
    assert data == {"status": "active"}
    assert captured["path"] == "/subscriptions/sub_1/resume"
    assert b"immediately" in captured["body"]


def test_paddle_transport_error():
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("refused", request=request)

    service = PaddleService("key", transport=httpx.MockTransport(handler))
    with pytest.raises(PaddleAPIError):
        service.get_subscription("sub_1")


class _BrokenRedis:
    def get(self, key):
        raise redis.ConnectionError("down")

    def setex(self, key, ttl, value):
        raise redis.ConnectionError("down")


def test_cache_falls_back_to_database(db, monkeypatch):
    monkeypatch.setattr(subscription_cache, "get_redis", lambda: _BrokenRedis())
    crud.upsert_subscription_for_user(
        session=db, user_id="user-1", status=SubscriptionStatus.past_due, values={}
    )
    crud.grant_role(session=db, user_id="user-1", role=AppRole.admin)
    db.commit()

    record = subscription_cache.get_subscription_record(session=db, user_id="user-1")
    assert record.status == SubscriptionStatus.past_due
    assert subscription_cache.get_is_admin(session=db, user_id="user-1") is True


def test_database_routes_run_in_threadpool():
    import inspect

    from fastapi.routing import APIRoute

    from scoutflow.main import app

    db_routes = [
        route
        for route in app.routes
        if isinstance(route, APIRoute)
        and ("/webhooks/" in route.path or "/subscription/" in route.path)
    ]
    assert len(db_routes) >= 10
    for route in db_routes:
        assert not inspect.iscoroutinefunction(route.endpoint), route.path
