"""
API request / response schemas

Pydantic models for data exchanged over HTTP. These are not database
tables.
"""
from __future__ import annotations

from datetime import datetime
from typing import Any

from pydantic import BaseModel, Field

from scoutflow.enums import BillingProvider, ManageAction, SubscriptionStatus

# ============================================================
# Common
# ============================================================


class ApiEnvelope(BaseModel):
    """
    Common response envelope for client-facing endpoints

    - code: 0 on success, an application error code otherwise
    - message: "success" or the error description
    - data: payload, None on error

    Example:
        {"code": 0, "message": "success", "data": {...}}
        {"code": 404101, "message": "No subscription found", "data": None}
    """
    code: int = 0
    message: str = "success"
    data: Any | None = None


class TokenPayload(BaseModel):
    """
    Access token claims

    sub is the identity provider's user id.
    """
    sub: str | None = None
    email: str | None = None


class AuthUser(BaseModel):
    """Authenticated principal taken from the access token."""
    id: str
    email: str | None = None


# ============================================================
# Subscription
# ============================================================


class SubscriptionPublic(BaseModel):
    """Subscription row as exposed to the scout's client."""
    id: str
    user_id: str
    provider: BillingProvider | None = None
    status: SubscriptionStatus
    external_subscription_id: str | None = None
    external_customer_id: str | None = None
    current_period_start: datetime | None = None
    current_period_end: datetime | None = None
    trial_ends_at: datetime | None = None
    cancelled_at: datetime | None = None


class AccessData(BaseModel):
    """Derived access decision."""
    status: SubscriptionStatus
    has_access: bool
    days_remaining: int | None = None
    is_admin: bool
    is_active: bool
    is_trialing: bool
    is_past_due: bool
    is_cancelled: bool
    is_expired: bool
    is_paused: bool
    trial_ending_soon: bool


class SubscriptionStatusData(BaseModel):
    subscription: SubscriptionPublic | None = None
    access: AccessData


class IsAdminData(BaseModel):
    is_admin: bool


class CheckoutRequest(BaseModel):
    redirect_url: str | None = Field(default=None, max_length=2048)


class CheckoutData(BaseModel):
    url: str


class PortalData(BaseModel):
    """Paddle self-service URLs."""
    management_urls: dict[str, Any] | None = None
    cancel_url: str | None = None
    update_payment_method_url: str | None = None


class ManageRequest(BaseModel):
    """
    Subscription management request

    user_id is honoured only for admins; everyone else acts on their own
    subscription.
    """
    action: ManageAction
    user_id: str | None = Field(default=None, max_length=64)


class ManageData(BaseModel):
    success: bool = True
    message: str
    paddle_synced: bool
    paddle_status: str | None = None


class LemonSqueezyPortalData(BaseModel):
    update_payment_method_url: str | None = None
    customer_portal_url: str | None = None
