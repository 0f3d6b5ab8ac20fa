"""
Subscription model
"""
from datetime import datetime

from sqlalchemy import Column, DateTime, String
from sqlmodel import Field, SQLModel

from scoutflow.enums import BillingProvider, SubscriptionStatus

from .base import new_id, utc_now


class Subscription(SQLModel, table=True):
    """
    Per-scout billing state

    At most one row per user: every webhook write is an upsert keyed by
    user_id. Rows are never deleted; cancellation is a status.

    Fields:
    - user_id: identity provider user id (unique)
    - provider: billing provider that last wrote the row
    - status: internal status, see SubscriptionStatus (never "none")
    - external_subscription_id / external_customer_id: provider identifiers,
      null until the first webhook arrives
    - external_order_id / variant_id: LemonSqueezy order and variant
    - current_period_start / current_period_end: active billing cycle
    - trial_ends_at: only meaningful while status is trialing
    - cancelled_at: set once on cancellation, never cleared
    - last_event_at: provider timestamp of the newest applied event; older
      events are skipped
    """
    __tablename__ = "subscriptions"

    id: str = Field(default_factory=new_id, sa_column=Column(String(36), primary_key=True))
    user_id: str = Field(
        sa_column=Column(String(64), unique=True, index=True, nullable=False)
    )
    provider: BillingProvider | None = Field(
        default=None, sa_column=Column(String(16), nullable=True)
    )
    status: SubscriptionStatus = Field(sa_column=Column(String(16), nullable=False))

    external_subscription_id: str | None = Field(
        default=None, sa_column=Column(String(128), index=True, nullable=True)
    )
    external_customer_id: str | None = Field(default=None, max_length=128)
    external_order_id: str | None = Field(default=None, max_length=128)
    variant_id: str | None = Field(default=None, max_length=128)

    current_period_start: datetime | None = Field(
        default=None, sa_column=Column(DateTime(timezone=True), nullable=True)
    )
    current_period_end: datetime | None = Field(
        default=None, sa_column=Column(DateTime(timezone=True), nullable=True)
    )
    trial_ends_at: datetime | None = Field(
        default=None, sa_column=Column(DateTime(timezone=True), nullable=True)
    )
    cancelled_at: datetime | None = Field(
        default=None, sa_column=Column(DateTime(timezone=True), nullable=True)
    )
    last_event_at: datetime | None = Field(
        default=None, sa_column=Column(DateTime(timezone=True), nullable=True)
    )

    created_at: datetime = Field(
        default_factory=utc_now,
        sa_column=Column(DateTime(timezone=True), nullable=False),
    )
    updated_at: datetime = Field(
        default_factory=utc_now,
        sa_column=Column(DateTime(timezone=True), nullable=False),
    )
