"""
Paddle Billing integration

API docs: https://developer.paddle.com/api-reference/overview
Webhooks: https://developer.paddle.com/webhooks/overview

Two halves:
- PaddleService: server-side API calls (checkout transaction, subscription
  lookup, cancel/pause/resume) authenticated with the secret API key
- parse_event: turns a webhook payload into a SubscriptionChange
"""
from __future__ import annotations

import logging
from decimal import Decimal, InvalidOperation
from typing import Any

import httpx

from scoutflow.core.config import settings
from scoutflow.enums import BillingProvider, ChangeKind, ManageAction, SubscriptionStatus
from scoutflow.models import utc_now
from scoutflow.services.payloads import MalformedEvent, as_str, dig, parse_datetime
from scoutflow.services.reconciler import SubscriptionChange
from scoutflow.services.user_resolver import IdentityHints

logger = logging.getLogger(__name__)

PADDLE_STATUS_MAP: dict[str, SubscriptionStatus] = {
    "trialing": SubscriptionStatus.trialing,
    "active": SubscriptionStatus.active,
    "past_due": SubscriptionStatus.past_due,
    "canceled": SubscriptionStatus.cancelled,
    "paused": SubscriptionStatus.paused,
}
PADDLE_DEFAULT_STATUS = SubscriptionStatus.active

UPSERT_EVENTS = frozenset({"subscription.created", "subscription.updated", "subscription.activated"})

# Update-only events: status to write when the event arrives.
UPDATE_EVENTS: dict[str, SubscriptionStatus] = {
    "subscription.canceled": SubscriptionStatus.cancelled,
    "subscription.past_due": SubscriptionStatus.past_due,
    "subscription.paused": SubscriptionStatus.paused,
    "subscription.resumed": SubscriptionStatus.active,
}

# effective_from sent with each management action.
ACTION_EFFECTIVE_FROM: dict[ManageAction, str] = {
    ManageAction.cancel: "next_billing_period",
    ManageAction.pause: "next_billing_period",
    ManageAction.resume: "immediately",
}


class PaddleAPIError(Exception):
    def __init__(self, message: str, status_code: int | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.status_code = status_code


def map_paddle_status(paddle_status: Any) -> SubscriptionStatus:
    """
    Map a Paddle subscription status to the internal enum

    Unknown values fall back to active.
    """
    status = PADDLE_STATUS_MAP.get(str(paddle_status or ""))
    if status is None:
        logger.warning(f"Unknown Paddle status {paddle_status!r}, defaulting to {PADDLE_DEFAULT_STATUS.value}")
        return PADDLE_DEFAULT_STATUS
    return status


def _is_zero_total(total: Any) -> bool:
    if total is None:
        return False
    try:
        return Decimal(str(total)) == 0
    except InvalidOperation:
        logger.warning(f"Unparseable Paddle transaction total {total!r}")
        return False


def _trial_end(data: dict[str, Any]) -> Any:
    return dig(data, "items", 0, "trial_dates", "ends_at") or dig(data, "scheduled_change", "effective_at")


def _hints(data: dict[str, Any], external_subscription_id: str | None) -> IdentityHints:
    custom = data.get("custom_data") if isinstance(data.get("custom_data"), dict) else {}
    return IdentityHints(
        user_id=as_str(custom.get("user_id")),
        email=as_str(custom.get("user_email")) or as_str(dig(data, "customer", "email")),
        external_subscription_id=external_subscription_id,
    )


def parse_event(payload: Any) -> SubscriptionChange:
    """
    Translate a Paddle notification into a SubscriptionChange

    Raises:
        MalformedEvent: when the payload has no event_type or data object
    """
    if not isinstance(payload, dict):
        raise MalformedEvent("Paddle payload must be a JSON object")
    event_type = as_str(payload.get("event_type"))
    data = payload.get("data")
    if not event_type or not isinstance(data, dict):
        raise MalformedEvent("Paddle payload missing event_type or data")

    change = SubscriptionChange(
        provider=BillingProvider.paddle,
        event_type=event_type,
        kind=ChangeKind.ignore,
        occurred_at=parse_datetime(payload.get("occurred_at")),
        event_id=as_str(payload.get("event_id")),
    )

    if event_type in UPSERT_EVENTS or event_type == "subscription.trialing":
        subscription_id = as_str(data.get("id"))
        change.kind = ChangeKind.upsert
        change.hints = _hints(data, subscription_id)
        if event_type == "subscription.trialing":
            change.status = SubscriptionStatus.trialing
        else:
            change.status = map_paddle_status(data.get("status"))
        change.values = {
            "external_subscription_id": subscription_id,
            "external_customer_id": as_str(data.get("customer_id")),
            "current_period_start": parse_datetime(dig(data, "current_billing_period", "starts_at")),
            "current_period_end": parse_datetime(dig(data, "current_billing_period", "ends_at")),
            "trial_ends_at": parse_datetime(_trial_end(data)),
        }
        return change

    if event_type in UPDATE_EVENTS:
        change.kind = ChangeKind.update
        change.status = UPDATE_EVENTS[event_type]
        change.hints = _hints(data, as_str(data.get("id")))
        if change.status == SubscriptionStatus.cancelled:
            change.values = {"cancelled_at": utc_now()}
        return change

    if event_type == "transaction.completed":
        subscription_id = as_str(data.get("subscription_id"))
        if not subscription_id:
            # One-off purchase, nothing to reconcile.
            return change
        total = dig(data, "details", "totals", "total")
        if total is None:
            total = dig(data, "totals", "total")
        trial = _is_zero_total(total)
        change.kind = ChangeKind.upsert
        change.hints = _hints(data, subscription_id)
        change.status = SubscriptionStatus.trialing if trial else SubscriptionStatus.active
        period_end = parse_datetime(dig(data, "billing_period", "ends_at"))
        change.values = {
            "external_subscription_id": subscription_id,
            "external_customer_id": as_str(data.get("customer_id")),
            "current_period_start": parse_datetime(dig(data, "billing_period", "starts_at")),
            "current_period_end": period_end,
        }
        if trial:
            change.values["trial_ends_at"] = period_end
        return change

    return change


class PaddleService:
    """Paddle API client"""

    def __init__(
        self,
        api_key: str,
        *,
        base_url: str = "https://api.paddle.com",
        timeout: float = 30.0,
        transport: httpx.BaseTransport | None = None,
    ):
        self.api_key = api_key
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.transport = transport
        self.headers = {
            "Authorization": f"Bearer {api_key}",
            "Content-Type": "application/json",
        }

    def _request(self, method: str, path: str, json: dict[str, Any] | None = None) -> dict[str, Any]:
        try:
            with httpx.Client(timeout=self.timeout, transport=self.transport) as client:
                response = client.request(
                    method, f"{self.base_url}{path}", headers=self.headers, json=json
                )
        except httpx.HTTPError as e:
            logger.error(f"Paddle request {method} {path} failed: {e}")
            raise PaddleAPIError(f"Paddle request failed: {e}") from e

        if response.status_code >= 400:
            logger.error(f"Paddle API error: {response.status_code} {response.text}")
            detail = None
            try:
                detail = dig(response.json(), "error", "detail")
            except ValueError:
                pass
            raise PaddleAPIError(
                detail or f"Paddle API error: {response.status_code}",
                status_code=response.status_code,
            )
        return response.json()

    def create_checkout(
        self,
        *,
        price_id: str,
        user_id: str,
        user_email: str | None,
        redirect_url: str,
    ) -> str:
        """
        Create a transaction and return its hosted checkout URL

        The user id and email travel in custom_data and come back on every
        subscription webhook, which is how the reconciler finds the scout.
        """
        body = self._request(
            "POST",
            "/transactions",
            json={
                "items": [{"price_id": price_id, "quantity": 1}],
                "custom_data": {"user_id": user_id, "user_email": user_email},
                "checkout": {"url": redirect_url},
            },
        )
        url = dig(body, "data", "checkout", "url")
        if not url:
            raise PaddleAPIError("Paddle transaction has no checkout URL")
        logger.info(f"Paddle checkout created for user {user_id}")
        return str(url)

    def get_subscription(self, subscription_id: str) -> dict[str, Any]:
        body = self._request("GET", f"/subscriptions/{subscription_id}")
        return body.get("data") or {}

    def manage_subscription(self, subscription_id: str, action: ManageAction) -> dict[str, Any]:
        body = self._request(
            "POST",
            f"/subscriptions/{subscription_id}/{action.value}",
            json={"effective_from": ACTION_EFFECTIVE_FROM[action]},
        )
        logger.info(f"Paddle {action.value} succeeded for subscription {subscription_id}")
        return body.get("data") or {}


_paddle_service: PaddleService | None = None


def init_paddle_service(api_key: str, **kwargs: Any) -> PaddleService:
    global _paddle_service
    _paddle_service = PaddleService(api_key, **kwargs)
    return _paddle_service


def get_paddle_service() -> PaddleService | None:
    """Shared Paddle client, or None when PADDLE_API_KEY is not configured."""
    if _paddle_service is None:
        if settings.PADDLE_API_KEY:
            return init_paddle_service(
                settings.PADDLE_API_KEY,
                base_url=settings.PADDLE_API_BASE_URL,
                timeout=settings.HTTP_TIMEOUT_SECONDS,
            )
        return None
    return _paddle_service


def reset_paddle_service() -> None:
    global _paddle_service
    _paddle_service = None
