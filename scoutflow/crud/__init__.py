"""CRUD operations"""
from .scout import create as create_scout
from .scout import get_by_email as get_scout_by_email
from .subscription import (
    get_by_external_id as get_subscription_by_external_id,
)
from .subscription import (
    get_by_user_id as get_subscription_by_user_id,
)
from .subscription import (
    update_for_user as update_subscription_for_user,
)
from .subscription import (
    upsert_for_user as upsert_subscription_for_user,
)
from .user_role import grant as grant_role
from .user_role import is_admin
from .webhook_event import get_by_event_id as get_webhook_event
from .webhook_event import list_for_user as list_webhook_events_for_user

__all__ = [
    "create_scout",
    "get_scout_by_email",
    "get_subscription_by_external_id",
    "get_subscription_by_user_id",
    "update_subscription_for_user",
    "upsert_subscription_for_user",
    "grant_role",
    "is_admin",
    "get_webhook_event",
    "list_webhook_events_for_user",
]
