"""
Enum definitions

Every enum subclasses both str and Enum so values can be stored in plain
string columns and serialized directly into JSON responses.
"""
from enum import Enum


class SubscriptionStatus(str, Enum):
    """
    Internal subscription status

    - trialing: free trial in progress
    - active: paid and current
    - past_due: payment failed, still inside the grace period
    - cancelled: cancelled by the scout or the provider
    - expired: billing period ended without renewal
    - paused: billing paused at the provider
    - none: sentinel for "no subscription row", never stored
    """
    trialing = "trialing"
    active = "active"
    past_due = "past_due"
    cancelled = "cancelled"
    expired = "expired"
    paused = "paused"
    none = "none"


# past_due is a grace period, not a denial.
ACCESS_GRANTING_STATUSES = frozenset(
    {SubscriptionStatus.active, SubscriptionStatus.trialing, SubscriptionStatus.past_due}
)


class AppRole(str, Enum):
    """Role attached to a scout in the user_roles table."""
    admin = "admin"
    user = "user"


class BillingProvider(str, Enum):
    """External billing providers with a webhook integration."""
    paddle = "paddle"
    lemonsqueezy = "lemonsqueezy"


class ChangeKind(str, Enum):
    """
    How a parsed webhook event mutates the subscription row

    - upsert: write the full record, inserting it when missing
    - update: patch an existing record, no-op when missing
    - ignore: acknowledge without touching the database
    """
    upsert = "upsert"
    update = "update"
    ignore = "ignore"


class WebhookOutcome(str, Enum):
    """
    Result recorded in the webhook audit table for a resolved delivery

    - applied: the subscription row was written
    - stale: skipped, the row already reflects a newer provider event
    - no_subscription: update event for a scout without a row, nothing written
    - failed: the database write raised and was rolled back
    """
    applied = "applied"
    stale = "stale"
    no_subscription = "no_subscription"
    failed = "failed"


class ManageAction(str, Enum):
    """Self-service subscription actions forwarded to the provider."""
    cancel = "cancel"
    pause = "pause"
    resume = "resume"
