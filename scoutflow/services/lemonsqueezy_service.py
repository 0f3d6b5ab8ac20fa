"""
LemonSqueezy integration

Webhooks: https://docs.lemonsqueezy.com/help/webhooks

Payload shape: {"meta": {"event_name", "custom_data"}, "data": {"id",
"attributes": {...}}}. LemonSqueezy does not send an event id, so its
deliveries are never deduplicated; attributes.updated_at is used for fencing.
"""
from __future__ import annotations

import logging
from typing import Any

import httpx

from scoutflow.core.config import settings
from scoutflow.enums import BillingProvider, ChangeKind, SubscriptionStatus
from scoutflow.models import utc_now
from scoutflow.services.payloads import MalformedEvent, as_str, dig, parse_datetime
from scoutflow.services.reconciler import SubscriptionChange
from scoutflow.services.user_resolver import IdentityHints

logger = logging.getLogger(__name__)

LEMON_STATUS_MAP: dict[str, SubscriptionStatus] = {
    "on_trial": SubscriptionStatus.trialing,
    "active": SubscriptionStatus.active,
    "past_due": SubscriptionStatus.past_due,
    "unpaid": SubscriptionStatus.past_due,
    "cancelled": SubscriptionStatus.cancelled,
    "expired": SubscriptionStatus.expired,
    "paused": SubscriptionStatus.paused,
}
LEMON_DEFAULT_STATUS = SubscriptionStatus.active

UPSERT_EVENTS = frozenset({"subscription_created", "subscription_updated"})

UPDATE_EVENTS: dict[str, SubscriptionStatus] = {
    "subscription_cancelled": SubscriptionStatus.cancelled,
    "subscription_expired": SubscriptionStatus.expired,
    "subscription_paused": SubscriptionStatus.paused,
    "subscription_unpaused": SubscriptionStatus.active,
    "subscription_resumed": SubscriptionStatus.active,
    "subscription_payment_success": SubscriptionStatus.active,
    "subscription_payment_failed": SubscriptionStatus.past_due,
}


class LemonSqueezyAPIError(Exception):
    def __init__(self, message: str, status_code: int | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.status_code = status_code


def map_lemon_status(lemon_status: Any) -> SubscriptionStatus:
    """
    Map a LemonSqueezy subscription status to the internal enum

    Unknown values fall back to active.
    """
    status = LEMON_STATUS_MAP.get(str(lemon_status or ""))
    if status is None:
        logger.warning(f"Unknown LemonSqueezy status {lemon_status!r}, defaulting to {LEMON_DEFAULT_STATUS.value}")
        return LEMON_DEFAULT_STATUS
    return status


def parse_event(payload: Any) -> SubscriptionChange:
    """
    Translate a LemonSqueezy webhook into a SubscriptionChange

    Raises:
        MalformedEvent: when meta.event_name or data is missing
    """
    if not isinstance(payload, dict):
        raise MalformedEvent("LemonSqueezy payload must be a JSON object")
    event_name = as_str(dig(payload, "meta", "event_name"))
    data = payload.get("data")
    if not event_name or not isinstance(data, dict):
        raise MalformedEvent("LemonSqueezy payload missing meta.event_name or data")

    attrs = data.get("attributes") if isinstance(data.get("attributes"), dict) else {}
    custom = dig(payload, "meta", "custom_data") or {}
    subscription_id = as_str(data.get("id"))

    change = SubscriptionChange(
        provider=BillingProvider.lemonsqueezy,
        event_type=event_name,
        kind=ChangeKind.ignore,
        occurred_at=parse_datetime(attrs.get("updated_at")),
        hints=IdentityHints(
            user_id=as_str(custom.get("user_id")) if isinstance(custom, dict) else None,
            email=(as_str(custom.get("user_email")) if isinstance(custom, dict) else None)
            or as_str(attrs.get("user_email")),
            external_subscription_id=subscription_id,
        ),
    )
    renews_at = parse_datetime(attrs.get("renews_at"))

    if event_name in UPSERT_EVENTS:
        change.kind = ChangeKind.upsert
        change.status = map_lemon_status(attrs.get("status"))
        change.values = {
            "external_subscription_id": subscription_id,
            "external_customer_id": as_str(attrs.get("customer_id")),
            "external_order_id": as_str(attrs.get("order_id")),
            "variant_id": as_str(attrs.get("variant_id")),
            "current_period_start": parse_datetime(attrs.get("created_at")) if renews_at else None,
            "current_period_end": renews_at,
            "trial_ends_at": parse_datetime(attrs.get("trial_ends_at")),
        }
        return change

    if event_name in UPDATE_EVENTS:
        change.kind = ChangeKind.update
        change.status = UPDATE_EVENTS[event_name]
        if event_name == "subscription_cancelled":
            change.values = {"cancelled_at": utc_now()}
        elif event_name == "subscription_payment_success":
            change.values = {"current_period_end": renews_at}
        return change

    return change


class LemonSqueezyService:
    """LemonSqueezy API client (JSON:API)"""

    def __init__(
        self,
        api_key: str,
        *,
        base_url: str = "https://api.lemonsqueezy.com/v1",
        timeout: float = 30.0,
        transport: httpx.BaseTransport | None = None,
    ):
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.transport = transport
        self.headers = {
            "Accept": "application/vnd.api+json",
            "Authorization": f"Bearer {api_key}",
        }

    def get_subscription_urls(self, subscription_id: str) -> dict[str, str | None]:
        """
        Fetch the signed self-service URLs of a subscription

        Returns:
            {"update_payment_method_url": ..., "customer_portal_url": ...}
        """
        try:
            with httpx.Client(timeout=self.timeout, transport=self.transport) as client:
                response = client.get(
                    f"{self.base_url}/subscriptions/{subscription_id}",
                    headers=self.headers,
                )
        except httpx.HTTPError as e:
            logger.error(f"LemonSqueezy request failed: {e}")
            raise LemonSqueezyAPIError(f"LemonSqueezy request failed: {e}") from e

        if response.status_code != 200:
            logger.error(f"LemonSqueezy API error: {response.status_code} {response.text}")
            raise LemonSqueezyAPIError("Failed to fetch subscription", status_code=response.status_code)

        urls = dig(response.json(), "data", "attributes", "urls") or {}
        return {
            "update_payment_method_url": urls.get("update_payment_method"),
            "customer_portal_url": urls.get("customer_portal"),
        }


_lemonsqueezy_service: LemonSqueezyService | None = None


def init_lemonsqueezy_service(api_key: str, **kwargs: Any) -> LemonSqueezyService:
    global _lemonsqueezy_service
    _lemonsqueezy_service = LemonSqueezyService(api_key, **kwargs)
    return _lemonsqueezy_service


def get_lemonsqueezy_service() -> LemonSqueezyService | None:
    if _lemonsqueezy_service is None:
        if settings.LEMONSQUEEZY_API_KEY:
            return init_lemonsqueezy_service(
                settings.LEMONSQUEEZY_API_KEY,
                base_url=settings.LEMONSQUEEZY_API_BASE_URL,
                timeout=settings.HTTP_TIMEOUT_SECONDS,
            )
        return None
    return _lemonsqueezy_service


def reset_lemonsqueezy_service() -> None:
    global _lemonsqueezy_service
    _lemonsqueezy_service = None
