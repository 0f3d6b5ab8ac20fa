from __future__ import annotations

import json
import time

from sqlalchemy.exc import OperationalError
from sqlmodel import select

from conftest import paddle_request
from scoutflow import crud
from scoutflow.core.config import settings
from scoutflow.enums import BillingProvider, SubscriptionStatus, WebhookOutcome
from scoutflow.models import BillingWebhookEvent, Subscription, as_utc

URL = "/api/v1/webhooks/paddle"


def _subscription_event(
    event_type: str = "subscription.created",
    *,
    event_id: str = "evt_001",
    occurred_at: str = "2026-03-01T10:00:00.000000Z",
    status: str = "active",
    custom_data: dict | None = None,
    customer: dict | None = None,
) -> dict:
    return {
        "event_id": event_id,
        "event_type": event_type,
        "occurred_at": occurred_at,
        "data": {
            "id": "sub_01",
            "status": status,
            "customer_id": "ctm_01",
            "custom_data": {"user_id": "user-1"} if custom_data is None else custom_data,
            "customer": customer,
            "current_billing_period": {
                "starts_at": "2026-03-01T10:00:00Z",
                "ends_at": "2026-04-01T10:00:00Z",
            },
            "items": [{"trial_dates": None}],
        },
    }


def _post(client, payload: dict):
    body, headers = paddle_request(payload)
    return client.post(URL, content=body, headers=headers)


def _all_subscriptions(db) -> list[Subscription]:
    db.expire_all()
    return list(db.exec(select(Subscription)).all())


def test_preflight(client):
    r = client.options(URL)
    assert r.status_code == 200
    assert r.headers["Access-Control-Allow-Origin"] == "*"
    assert "paddle-signature" in r.headers["Access-Control-Allow-Headers"]


def test_subscription_created_upserts_row(client, db):
    r = _post(client, _subscription_event())
    assert r.status_code == 200
    assert r.json() == {"received": True}

    subs = _all_subscriptions(db)
    assert len(subs) == 1
    sub = subs[0]
    assert sub.user_id == "user-1"
    assert sub.provider == BillingProvider.paddle
    assert sub.status == SubscriptionStatus.active
    assert sub.external_subscription_id == "sub_01"
    assert sub.external_customer_id == "ctm_01"
    assert as_utc(sub.current_period_end).month == 4
    assert sub.last_event_at is not None

    events = crud.list_webhook_events_for_user(session=db, user_id="user-1")
    assert [e.outcome for e in events] == [WebhookOutcome.applied]


def test_replayed_event_yields_single_row(client, db):
    payload = _subscription_event()
    assert _post(client, payload).status_code == 200
    r = _post(client, payload)
    assert r.status_code == 200
    assert r.json() == {"received": True, "duplicate": True}

    subs = _all_subscriptions(db)
    assert len(subs) == 1
    assert subs[0].status == SubscriptionStatus.active


def test_same_event_without_id_is_idempotent(client, db):
    payload = _subscription_event()
    payload.pop("event_id")
    _post(client, payload)
    _post(client, payload)
    subs = _all_subscriptions(db)
    assert len(subs) == 1
    assert subs[0].status == SubscriptionStatus.active


def test_canceled_without_row_creates_nothing(client, db):
    r = _post(client, _subscription_event("subscription.canceled", status="canceled"))
    assert r.status_code == 200
    assert r.json()["received"] is True
    assert _all_subscriptions(db) == []

    audit = crud.get_webhook_event(session=db, provider=BillingProvider.paddle, event_id="evt_001")
    assert audit.outcome == WebhookOutcome.no_subscription


def test_canceled_sets_cancelled_at_once(client, db):
    _post(client, _subscription_event())
    _post(
        client,
        _subscription_event(
            "subscription.canceled", event_id="evt_002", occurred_at="2026-03-02T10:00:00Z"
        ),
    )
    sub = _all_subscriptions(db)[0]
    assert sub.status == SubscriptionStatus.cancelled
    first_cancelled_at = sub.cancelled_at
    assert first_cancelled_at is not None

    _post(
        client,
        _subscription_event(
            "subscription.canceled", event_id="evt_003", occurred_at="2026-03-03T10:00:00Z"
        ),
    )
    assert _all_subscriptions(db)[0].cancelled_at == first_cancelled_at


def test_email_fallback_resolves_directory_entry(client, db):
    crud.create_scout(session=db, scout_id="scout-42", email="scout@example.com", name="Scout")
    payload = _subscription_event(custom_data={}, customer={"email": "scout@example.com"})
    r = _post(client, payload)
    assert r.status_code == 200

    sub = crud.get_subscription_by_user_id(session=db, user_id="scout-42")
    assert sub is not None
    assert sub.status == SubscriptionStatus.active


def test_unresolved_user_is_acknowledged(client, db):
    payload = _subscription_event(custom_data={}, customer={"email": "ghost@example.com"})
    r = _post(client, payload)
    assert r.status_code == 200
    assert r.json() == {"received": True, "warning": "User not found"}
    assert _all_subscriptions(db) == []
    assert list(db.exec(select(BillingWebhookEvent)).all()) == []


def test_unknown_event_type_is_ignored(client, db):
    r = _post(client, _subscription_event("subscription.archived"))
    assert r.status_code == 200
    assert r.json() == {"received": True}
    assert _all_subscriptions(db) == []
    assert list(db.exec(select(BillingWebhookEvent)).all()) == []


def test_zero_total_transaction_starts_trial(client, db):
    payload = {
        "event_id": "evt_txn",
        "event_type": "transaction.completed",
        "occurred_at": "2026-03-01T10:00:00Z",
        "data": {
            "subscription_id": "sub_01",
            "customer_id": "ctm_01",
            "custom_data": {"user_id": "user-1"},
            "totals": {"total": "0"},
            "billing_period": {
                "starts_at": "2026-03-01T10:00:00Z",
                "ends_at": "2026-03-15T10:00:00Z",
            },
        },
    }
    assert _post(client, payload).status_code == 200
    sub = _all_subscriptions(db)[0]
    assert sub.status == SubscriptionStatus.trialing
    assert as_utc(sub.trial_ends_at).day == 15


def test_paid_transaction_is_active(client, db):
    payload = {
        "event_type": "transaction.completed",
        "data": {
            "subscription_id": "sub_01",
            "custom_data": {"user_id": "user-1"},
            "details": {"totals": {"total": "1900"}},
        },
    }
    _post(client, payload)
    assert _all_subscriptions(db)[0].status == SubscriptionStatus.active


def test_out_of_order_event_is_stale(client, db):
    _post(client, _subscription_event(event_id="evt_a", occurred_at="2026-03-04T00:00:00Z"))
    _post(
        client,
        _subscription_event(
            "subscription.past_due", event_id="evt_b", occurred_at="2026-03-06T00:00:00Z"
        ),
    )
    r = _post(
        client,
        _subscription_event(event_id="evt_old", occurred_at="2026-03-03T00:00:00Z"),
    )
    assert r.status_code == 200

    sub = _all_subscriptions(db)[0]
    assert sub.status == SubscriptionStatus.past_due
    audit = crud.get_webhook_event(session=db, provider=BillingProvider.paddle, event_id="evt_old")
    assert audit.outcome == WebhookOutcome.stale


def test_unknown_status_defaults_to_active(client, db):
    _post(client, _subscription_event(status="mystery"))
    assert _all_subscriptions(db)[0].status == SubscriptionStatus.active


def test_invalid_signature_rejected(client, db):
    body = json.dumps(_subscription_event()).encode()
    r = client.post(
        URL,
        content=body,
        headers={"paddle-signature": f"ts={int(time.time())};h1=bad"},
    )
    assert r.status_code == 401
    assert r.json()["code"] == 401001
    assert _all_subscriptions(db) == []


def test_missing_signature_rejected(client):
    r = client.post(URL, content=json.dumps(_subscription_event()).encode())
    assert r.status_code == 401


def test_expired_signature_rejected(client):
    body, headers = paddle_request(_subscription_event(), ts=int(time.time()) - 3600)
    r = client.post(URL, content=body, headers=headers)
    assert r.status_code == 401


def test_unsigned_delivery_policy(client, db, monkeypatch):
    monkeypatch.setattr(settings, "PADDLE_WEBHOOK_SECRET", None)
    body = json.dumps(_subscription_event()).encode()

    monkeypatch.setattr(settings, "WEBHOOK_ALLOW_UNSIGNED", False)
    r = client.post(URL, content=body)
    assert r.status_code == 401
    assert r.json()["code"] == 401002

    monkeypatch.setattr(settings, "WEBHOOK_ALLOW_UNSIGNED", True)
    r = client.post(URL, content=body)
    assert r.status_code == 200
    assert len(_all_subscriptions(db)) == 1


def test_malformed_payload_acknowledged(client):
    body, headers = paddle_request({"data": {}})
    r = client.post(URL, content=body, headers=headers)
    assert r.status_code == 200
    assert r.json() == {"received": True, "warning": "Malformed payload"}


def test_unexpected_error_returns_500(client, monkeypatch):
    def boom(*args, **kwargs):
        raise RuntimeError("boom")

    monkeypatch.setattr("scoutflow.api.routes.webhooks.reconcile", boom)
    r = _post(client, _subscription_event())
    assert r.status_code == 500
    assert r.json() == {"error": "boom"}


def test_database_error_is_swallowed_and_retry_applies(client, db, monkeypatch):
    def failing_apply(*args, **kwargs):
        raise OperationalError("UPDATE subscriptions", {}, Exception("db down"))

    with monkeypatch.context() as m:
        m.setattr("scoutflow.services.reconciler.apply_change", failing_apply)
        r = _post(client, _subscription_event())
    assert r.status_code == 200
    assert _all_subscriptions(db) == []
    audit = crud.get_webhook_event(session=db, provider=BillingProvider.paddle, event_id="evt_001")
    assert audit.outcome == WebhookOutcome.failed

    r = _post(client, _subscription_event())
    assert r.json() == {"received": True}
    assert len(_all_subscriptions(db)) == 1
    db.expire_all()
    audit = crud.get_webhook_event(session=db, provider=BillingProvider.paddle, event_id="evt_001")
    assert audit.outcome == WebhookOutcome.applied
