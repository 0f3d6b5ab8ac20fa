"""
Identity provider admin client

Looks up users through the identity provider's administrative user listing
(GoTrue admin API: GET {SUPABASE_URL}/auth/v1/admin/users). Used by the
webhook reconciler as a last-resort email lookup for scouts that have an
account but no directory row yet.
"""
from __future__ import annotations

import logging
from typing import Any

import httpx

from scoutflow.core.config import settings

logger = logging.getLogger(__name__)


class IdentityAdminService:
    """Thin wrapper around the admin user-listing endpoint."""

    def __init__(
        self,
        base_url: str,
        service_role_key: str,
        *,
        page_size: int = 1000,
        max_pages: int = 10,
        timeout: float = 30.0,
        transport: httpx.BaseTransport | None = None,
    ):
        """
        Args:
            base_url: project URL, e.g. https://xyz.supabase.co
            service_role_key: service role key, sent as apikey and bearer token
            page_size: users requested per page
            max_pages: upper bound on pages scanned per lookup
            transport: optional httpx transport (tests use MockTransport)
        """
        self.base_url = base_url.rstrip("/")
        self.page_size = page_size
        self.max_pages = max_pages
        self.timeout = timeout
        self.transport = transport
        self.headers = {
            "apikey": service_role_key,
            "Authorization": f"Bearer {service_role_key}",
        }

    def list_users(self, client: httpx.Client, page: int) -> list[dict[str, Any]]:
        response = client.get(
            f"{self.base_url}/auth/v1/admin/users",
            params={"page": page, "per_page": self.page_size},
            headers=self.headers,
        )
        response.raise_for_status()
        body = response.json()
        users = body.get("users", []) if isinstance(body, dict) else body
        return users if isinstance(users, list) else []

    def find_user_id_by_email(self, email: str) -> str | None:
        """
        Scan the user listing for an email match

        Returns the user id, or None when not found or the API fails. API
        failures are logged and treated as "not found" so that a flaky
        identity provider never fails the webhook.
        """
        target = email.strip().lower()
        if not target:
            return None

        try:
            with httpx.Client(timeout=self.timeout, transport=self.transport) as client:
                for page in range(1, self.max_pages + 1):
                    users = self.list_users(client, page)
                    for user in users:
                        if str(user.get("email") or "").lower() == target:
                            return str(user["id"])
                    if len(users) < self.page_size:
                        break
        except (httpx.HTTPError, KeyError, ValueError) as e:
            logger.error(f"Identity admin lookup failed for {target}: {e}")
            return None

        return None


_identity_service: IdentityAdminService | None = None


def init_identity_service(
    base_url: str, service_role_key: str, **kwargs: Any
) -> IdentityAdminService:
    global _identity_service
    _identity_service = IdentityAdminService(base_url, service_role_key, **kwargs)
    return _identity_service


def get_identity_service() -> IdentityAdminService | None:
    """
    Return the shared identity client

    Built from settings on first use. Returns None when the admin API is not
    configured, in which case the remote lookup strategy is skipped.
    """
    if _identity_service is None:
        if settings.SUPABASE_URL and settings.SUPABASE_SERVICE_ROLE_KEY:
            return init_identity_service(
                settings.SUPABASE_URL,
                settings.SUPABASE_SERVICE_ROLE_KEY,
                page_size=settings.IDENTITY_LOOKUP_PAGE_SIZE,
                max_pages=settings.IDENTITY_LOOKUP_MAX_PAGES,
                timeout=settings.HTTP_TIMEOUT_SECONDS,
            )
        return None
    return _identity_service


def reset_identity_service() -> None:
    global _identity_service
    _identity_service = None
