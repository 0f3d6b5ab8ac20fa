"""Billing webhook audit CRUD"""
from sqlmodel import Session, select

from scoutflow.enums import BillingProvider
from scoutflow.models import BillingWebhookEvent


def get_by_event_id(
    *, session: Session, provider: BillingProvider, event_id: str
) -> BillingWebhookEvent | None:
    statement = select(BillingWebhookEvent).where(
        BillingWebhookEvent.provider == provider,
        BillingWebhookEvent.event_id == event_id,
    )
    return session.exec(statement).first()


def list_for_user(*, session: Session, user_id: str) -> list[BillingWebhookEvent]:
    statement = (
        select(BillingWebhookEvent)
        .where(BillingWebhookEvent.user_id == user_id)
        .order_by(BillingWebhookEvent.created_at)
    )
    return list(session.exec(statement).all())
