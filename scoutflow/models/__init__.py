"""
Database models

Models are split by table:
- scout.py: local user directory
- user_role.py: role grants (admin)
- subscription.py: per-scout billing state
- webhook_event.py: billing webhook audit trail
"""
from sqlmodel import SQLModel

from .base import as_utc, new_id, utc_now
from .scout import Scout
from .subscription import Subscription
from .user_role import UserRole
from .webhook_event import BillingWebhookEvent

__all__ = [
    "SQLModel",
    "as_utc",
    "new_id",
    "utc_now",
    "Scout",
    "UserRole",
    "Subscription",
    "BillingWebhookEvent",
]
