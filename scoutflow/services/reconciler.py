"""
Webhook reconciler

Applies a provider-neutral SubscriptionChange to the subscriptions table.
Provider modules (paddle_service, lemonsqueezy_service) turn raw payloads
into changes; this module resolves the scout, fences out-of-order events and
writes the row together with an audit record.

Failure policy: database errors are logged and rolled back but reported as
handled, so the provider does not retry forever. Anything else propagates to
the endpoint and becomes a 500.
"""
from __future__ import annotations

import logging
from collections.abc import Sequence
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any

from sqlalchemy.exc import SQLAlchemyError
from sqlmodel import Session

from scoutflow import crud
from scoutflow.enums import BillingProvider, ChangeKind, SubscriptionStatus, WebhookOutcome
from scoutflow.models import BillingWebhookEvent, Subscription, as_utc
from scoutflow.services.user_resolver import IdentityHints, ResolverStrategy, resolve_user

logger = logging.getLogger(__name__)


@dataclass
class SubscriptionChange:
    """
    Effect of one provider event on a subscription row

    - kind: upsert (insert when missing), update (no-op when missing) or ignore
    - status: internal status to write
    - values: other columns to write; only present keys are touched
    - hints: identity fields used to find the scout
    - occurred_at: provider timestamp used for fencing, if the event has one
    - event_id: provider event id used to drop duplicate deliveries
    """
    provider: BillingProvider
    event_type: str
    kind: ChangeKind
    status: SubscriptionStatus | None = None
    values: dict[str, Any] = field(default_factory=dict)
    hints: IdentityHints = field(default_factory=IdentityHints)
    occurred_at: datetime | None = None
    event_id: str | None = None


@dataclass(frozen=True)
class ReconcileResult:
    user_id: str | None = None
    outcome: WebhookOutcome | None = None
    duplicate: bool = False
    ignored: bool = False

    @property
    def unresolved(self) -> bool:
        return not self.ignored and not self.duplicate and self.user_id is None


def is_stale(subscription: Subscription | None, occurred_at: datetime | None) -> bool:
    """
    True when the stored row already reflects a newer event

    Events without a timestamp, and rows that were never fenced, are never
    stale. Equal timestamps are not stale so duplicate deliveries re-apply.
    """
    if subscription is None or occurred_at is None or subscription.last_event_at is None:
        return False
    return as_utc(occurred_at) < as_utc(subscription.last_event_at)  # type: ignore[operator]


def apply_change(session: Session, user_id: str, change: SubscriptionChange) -> WebhookOutcome:
    """
    Write the change for a resolved scout (flushes, does not commit)

    Raises:
        ValueError: when an upsert or update change carries no status
    """
    if change.status is None:
        raise ValueError(f"{change.provider.value} {change.event_type} change has no status")
    existing = crud.get_subscription_by_user_id(session=session, user_id=user_id)
    if is_stale(existing, change.occurred_at):
        _log_stale(change, user_id, existing)
        return WebhookOutcome.stale

    values = dict(change.values)
    if change.occurred_at is not None:
        values["last_event_at"] = change.occurred_at

    if change.kind == ChangeKind.upsert:
        values["provider"] = change.provider
        sub = crud.upsert_subscription_for_user(
            session=session, user_id=user_id, status=change.status, values=values
        )
        # A concurrent delivery may have written a newer event after the read above.
        if is_stale(sub, change.occurred_at):
            _log_stale(change, user_id, sub)
            return WebhookOutcome.stale
        return WebhookOutcome.applied

    updated = crud.update_subscription_for_user(
        session=session, user_id=user_id, status=change.status, values=values
    )
    if updated is None:
        logger.info(
            f"No subscription row for user {user_id}, "
            f"{change.provider.value} {change.event_type} left unapplied"
        )
        return WebhookOutcome.no_subscription
    return WebhookOutcome.applied


def _log_stale(change: SubscriptionChange, user_id: str, stored: Subscription | None) -> None:
    logger.warning(
        f"Skipping stale {change.provider.value} {change.event_type} for user {user_id} "
        f"(event {change.occurred_at} older than {stored.last_event_at if stored else None})"
    )


def reconcile(
    session: Session,
    change: SubscriptionChange,
    strategies: Sequence[ResolverStrategy],
    payload: dict[str, Any] | None = None,
) -> ReconcileResult:
    """
    Process one parsed webhook event end to end

    1. ignore events with no subscription effect
    2. drop duplicates of an already-processed event id
    3. resolve the scout; unresolved events are acknowledged untouched
    4. apply the change and record the audit row in one commit
    """
    provider = change.provider.value
    if change.kind == ChangeKind.ignore:
        logger.warning(f"Unhandled {provider} event type: {change.event_type}")
        return ReconcileResult(ignored=True)

    audit: BillingWebhookEvent | None = None
    if change.event_id:
        audit = crud.get_webhook_event(
            session=session, provider=change.provider, event_id=change.event_id
        )
        if audit is not None and audit.outcome != WebhookOutcome.failed:
            logger.info(
                f"Duplicate {provider} event {change.event_id}, "
                f"already {WebhookOutcome(audit.outcome).value}"
            )
            return _duplicate(audit)

    resolution = resolve_user(change.hints, strategies)
    if resolution is None:
        logger.warning(
            f"User not found for {provider} {change.event_type} "
            f"(email={change.hints.email}, subscription={change.hints.external_subscription_id})"
        )
        return ReconcileResult()
    user_id = resolution.user_id

    try:
        outcome = apply_change(session, user_id, change)
        _record(session, audit, change, user_id, outcome, payload)
        session.commit()
    except SQLAlchemyError:
        logger.exception(f"Database error applying {provider} {change.event_type} for user {user_id}")
        session.rollback()
        processed = _record_failure(session, change, user_id, payload)
        if processed is not None:
            logger.info(f"{provider} event {change.event_id} was processed by a concurrent delivery")
            return _duplicate(processed)
        outcome = WebhookOutcome.failed
    else:
        logger.info(f"{provider} {change.event_type} for user {user_id}: {outcome.value}")

    return ReconcileResult(user_id=user_id, outcome=outcome)


def _duplicate(audit: BillingWebhookEvent) -> ReconcileResult:
    return ReconcileResult(
        user_id=audit.user_id, outcome=WebhookOutcome(audit.outcome), duplicate=True
    )


def _record(
    session: Session,
    audit: BillingWebhookEvent | None,
    change: SubscriptionChange,
    user_id: str,
    outcome: WebhookOutcome,
    payload: dict[str, Any] | None,
) -> None:
    if audit is None:
        audit = BillingWebhookEvent(
            provider=change.provider,
            event_id=change.event_id,
            event_type=change.event_type,
            outcome=outcome,
        )
    audit.user_id = user_id
    audit.outcome = outcome
    audit.payload = payload
    audit.occurred_at = change.occurred_at
    session.add(audit)


def _record_failure(
    session: Session,
    change: SubscriptionChange,
    user_id: str,
    payload: dict[str, Any] | None,
) -> BillingWebhookEvent | None:
    """
    Record a failed outcome, best effort

    Returns the audit row instead when another delivery of the same event
    committed a non-failed outcome in the meantime; that row is left as is.
    """
    try:
        audit = None
        if change.event_id:
            audit = crud.get_webhook_event(
                session=session, provider=change.provider, event_id=change.event_id
            )
            if audit is not None and audit.outcome != WebhookOutcome.failed:
                return audit
        _record(session, audit, change, user_id, WebhookOutcome.failed, payload)
        session.commit()
    except SQLAlchemyError:
        # The audit write shares the database that just failed.
        logger.exception(f"Could not record failed {change.provider.value} event {change.event_id}")
        session.rollback()
    return None
