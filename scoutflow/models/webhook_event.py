"""
Billing webhook audit model
"""
from datetime import datetime

from sqlalchemy import JSON, Column, DateTime, String, UniqueConstraint
from sqlmodel import Field, SQLModel

from scoutflow.enums import BillingProvider, WebhookOutcome

from .base import new_id, utc_now


class BillingWebhookEvent(SQLModel, table=True):
    """
    One row per accepted webhook delivery

    Used for auditing and to drop duplicate deliveries: (provider, event_id)
    is unique when the provider supplies an event id. Rows without an event
    id are never deduplicated.

    Fields:
    - event_type: provider event name (e.g. "subscription.created")
    - user_id: resolved scout, null when resolution failed
    - outcome: what the reconciler did with the event
    - occurred_at: provider-side event timestamp, if any
    """
    __tablename__ = "billing_webhook_events"
    __table_args__ = (
        UniqueConstraint("provider", "event_id", name="uq_billing_webhook_events_provider_event_id"),
    )

    id: str = Field(default_factory=new_id, sa_column=Column(String(36), primary_key=True))
    provider: BillingProvider = Field(sa_column=Column(String(16), nullable=False))
    event_id: str | None = Field(default=None, sa_column=Column(String(128), nullable=True))
    event_type: str = Field(max_length=64)
    user_id: str | None = Field(default=None, max_length=64)
    outcome: WebhookOutcome = Field(sa_column=Column(String(16), nullable=False))
    payload: dict | None = Field(default=None, sa_column=Column(JSON))
    occurred_at: datetime | None = Field(
        default=None, sa_column=Column(DateTime(timezone=True), nullable=True)
    )
    created_at: datetime = Field(
        default_factory=utc_now,
        sa_column=Column(DateTime(timezone=True), nullable=False),
    )
