"""
Webhook user resolution

Billing events identify the buyer loosely: sometimes by our user id in the
checkout custom data, sometimes only by email. resolve_user tries a list of
strategies in order and stops at the first hit. The resolver itself knows
nothing about HTTP or the database; strategies close over what they need,
so tests can pass plain functions.
"""
from __future__ import annotations

import logging
from collections.abc import Callable, Sequence
from dataclasses import dataclass

from sqlmodel import Session

from scoutflow import crud
from scoutflow.enums import BillingProvider
from scoutflow.services.identity_service import IdentityAdminService

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class IdentityHints:
    """Identity fields extracted from a provider event."""
    user_id: str | None = None
    email: str | None = None
    external_subscription_id: str | None = None


@dataclass(frozen=True)
class ResolverStrategy:
    name: str
    lookup: Callable[[IdentityHints], str | None]


@dataclass(frozen=True)
class Resolution:
    user_id: str
    strategy: str


def resolve_user(
    hints: IdentityHints, strategies: Sequence[ResolverStrategy]
) -> Resolution | None:
    for strategy in strategies:
        user_id = strategy.lookup(hints)
        if user_id:
            logger.info(f"Resolved webhook user {user_id} via {strategy.name}")
            return Resolution(user_id=user_id, strategy=strategy.name)
    return None


def by_custom_user_id() -> ResolverStrategy:
    def lookup(hints: IdentityHints) -> str | None:
        if hints.user_id and hints.user_id.strip():
            return hints.user_id.strip()
        return None

    return ResolverStrategy("custom_data.user_id", lookup)


def by_local_email(session: Session) -> ResolverStrategy:
    def lookup(hints: IdentityHints) -> str | None:
        if not hints.email:
            return None
        scout = crud.get_scout_by_email(session=session, email=hints.email)
        return scout.id if scout else None

    return ResolverStrategy("scouts.email", lookup)


def by_remote_email(service: IdentityAdminService) -> ResolverStrategy:
    def lookup(hints: IdentityHints) -> str | None:
        if not hints.email:
            return None
        return service.find_user_id_by_email(hints.email)

    return ResolverStrategy("identity_admin.email", lookup)


def by_external_subscription(session: Session, provider: BillingProvider) -> ResolverStrategy:
    def lookup(hints: IdentityHints) -> str | None:
        if not hints.external_subscription_id:
            return None
        sub = crud.get_subscription_by_external_id(
            session=session,
            provider=provider,
            external_subscription_id=hints.external_subscription_id,
        )
        return sub.user_id if sub else None

    return ResolverStrategy("subscriptions.external_subscription_id", lookup)


def default_strategies(
    *,
    session: Session,
    provider: BillingProvider,
    identity_service: IdentityAdminService | None = None,
) -> list[ResolverStrategy]:
    """
    Standard resolution chain for a provider

    1. user id from the event's custom data
    2. scout directory lookup by email
    3. identity provider admin lookup by email (only when a service is given)
    4. existing subscription row with the event's external subscription id
    """
    strategies = [by_custom_user_id(), by_local_email(session)]
    if identity_service is not None:
        strategies.append(by_remote_email(identity_service))
    strategies.append(by_external_subscription(session, provider))
    return strategies
