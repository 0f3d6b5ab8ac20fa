"""
Subscription CRUD

Webhook writes go through upsert_for_user / update_for_user and are flushed,
not committed: the reconciler commits them together with the audit row.
"""
from enum import Enum
from typing import Any

from sqlalchemy import func, or_
from sqlalchemy.dialects import postgresql, sqlite
from sqlmodel import Session, select

from scoutflow.enums import BillingProvider, SubscriptionStatus
from scoutflow.models import Subscription, new_id, utc_now

subscriptions_table = Subscription.__table__  # type: ignore[attr-defined]


def get_by_user_id(*, session: Session, user_id: str) -> Subscription | None:
    statement = select(Subscription).where(Subscription.user_id == user_id)
    return session.exec(statement).first()


def get_by_external_id(
    *, session: Session, provider: BillingProvider, external_subscription_id: str
) -> Subscription | None:
    statement = select(Subscription).where(
        Subscription.provider == provider,
        Subscription.external_subscription_id == external_subscription_id,
    )
    return session.exec(statement).first()


def _dialect_insert(session: Session):
    if session.get_bind().dialect.name == "sqlite":
        return sqlite.insert
    return postgresql.insert


def upsert_for_user(
    *,
    session: Session,
    user_id: str,
    status: SubscriptionStatus,
    values: dict[str, Any],
) -> Subscription:
    """
    Insert or overwrite the user's subscription row

    A single INSERT ... ON CONFLICT (user_id) DO UPDATE, so concurrent
    deliveries for a new user cannot collide on the unique key.

    - only keys present in values are written
    - cancelled_at is never cleared or moved once set
    - when values carries last_event_at, a stored newer last_event_at wins
      and the row is left untouched

    Returns the row as stored after the statement.
    """
    now = utc_now()
    columns = {
        key: value.value if isinstance(value, Enum) else value
        for key, value in {**values, "status": status, "updated_at": now}.items()
    }
    statement = _dialect_insert(session)(subscriptions_table).values(
        id=new_id(), user_id=user_id, created_at=now, **columns
    )
    excluded = statement.excluded
    update_set: dict[str, Any] = {key: excluded[key] for key in columns}
    if "cancelled_at" in columns:
        update_set["cancelled_at"] = func.coalesce(
            subscriptions_table.c.cancelled_at, excluded.cancelled_at
        )

    fence = None
    if values.get("last_event_at") is not None:
        fence = or_(
            subscriptions_table.c.last_event_at.is_(None),
            subscriptions_table.c.last_event_at <= excluded.last_event_at,
        )
    statement = statement.on_conflict_do_update(
        index_elements=[subscriptions_table.c.user_id],
        set_=update_set,
        where=fence,
    )
    session.exec(statement)  # type: ignore[call-overload]

    refreshed = (
        select(Subscription)
        .where(Subscription.user_id == user_id)
        .execution_options(populate_existing=True)
    )
    return session.exec(refreshed).one()


def update_for_user(
    *,
    session: Session,
    user_id: str,
    status: SubscriptionStatus,
    values: dict[str, Any],
) -> Subscription | None:
    """
    Patch the user's existing subscription row

    Returns None, and writes nothing, when the user has no row.
    """
    sub = get_by_user_id(session=session, user_id=user_id)
    if sub is None:
        return None
    sub.status = status
    for key, value in values.items():
        if key == "cancelled_at" and sub.cancelled_at is not None:
            continue
        setattr(sub, key, value)
    sub.updated_at = utc_now()
    session.add(sub)
    session.flush()
    return sub
