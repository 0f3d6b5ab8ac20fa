"""
Subscription access evaluation

Derives the feature-gating decision for a scout from their subscription row.
This is a pure function of (subscription, is_admin, now): nothing is read or
written, so it can be recomputed on every request from a cached record.
"""
from __future__ import annotations

import math
from dataclasses import dataclass
from datetime import datetime, timedelta

from scoutflow.api.schemas import SubscriptionPublic
from scoutflow.enums import ACCESS_GRANTING_STATUSES, SubscriptionStatus
from scoutflow.models import Subscription, as_utc, utc_now

_ONE_DAY = timedelta(days=1)

TRIAL_ENDING_SOON_DAYS = 3


@dataclass(frozen=True)
class AccessDecision:
    status: SubscriptionStatus
    has_access: bool
    days_remaining: int | None
    is_admin: bool = False

    @property
    def is_active(self) -> bool:
        return self.status == SubscriptionStatus.active

    @property
    def is_trialing(self) -> bool:
        return self.status == SubscriptionStatus.trialing

    @property
    def is_past_due(self) -> bool:
        return self.status == SubscriptionStatus.past_due

    @property
    def is_cancelled(self) -> bool:
        return self.status == SubscriptionStatus.cancelled

    @property
    def is_expired(self) -> bool:
        return self.status == SubscriptionStatus.expired

    @property
    def is_paused(self) -> bool:
        return self.status == SubscriptionStatus.paused

    @property
    def trial_ending_soon(self) -> bool:
        """Trialing with three days or fewer left."""
        return (
            self.is_trialing
            and self.days_remaining is not None
            and self.days_remaining <= TRIAL_ENDING_SOON_DAYS
        )


def subscription_status(subscription: Subscription | SubscriptionPublic | None) -> SubscriptionStatus:
    """Status of a row, or the "none" sentinel when there is no row."""
    if subscription is None or not subscription.status:
        return SubscriptionStatus.none
    return SubscriptionStatus(subscription.status)


def days_until(end: datetime, now: datetime) -> int:
    """Whole days from now until end, rounded up and never negative."""
    delta = as_utc(end) - as_utc(now)  # type: ignore[operator]
    return max(0, math.ceil(delta / _ONE_DAY))


def evaluate_access(
    subscription: Subscription | SubscriptionPublic | None,
    is_admin: bool,
    now: datetime | None = None,
) -> AccessDecision:
    """
    Compute the access decision for one scout

    Args:
        subscription: the scout's subscription row, or None
        is_admin: admins always have access
        now: evaluation time, defaults to the current UTC time

    Returns:
        AccessDecision. has_access is true for admins, otherwise iff the
        status is active, trialing or past_due. days_remaining counts down to
        trial_ends_at while trialing, else to current_period_end, else None.
    """
    now = now or utc_now()
    status = subscription_status(subscription)
    has_access = is_admin or status in ACCESS_GRANTING_STATUSES

    days_remaining: int | None = None
    if subscription is not None:
        end: datetime | None = None
        if status == SubscriptionStatus.trialing and subscription.trial_ends_at:
            end = subscription.trial_ends_at
        elif subscription.current_period_end:
            end = subscription.current_period_end
        if end is not None:
            days_remaining = days_until(end, now)

    return AccessDecision(
        status=status,
        has_access=has_access,
        days_remaining=days_remaining,
        is_admin=is_admin,
    )
