"""
Subscription routes

Client-facing endpoints for the scout's own subscription:
- status / access decision and admin flag (cached read model)
- Paddle checkout, portal URLs and cancel / pause / resume
- LemonSqueezy self-service URLs
"""
from __future__ import annotations

import logging

from fastapi import APIRouter
from sqlalchemy.exc import SQLAlchemyError

from scoutflow import crud
from scoutflow.api.deps import CurrentUser, SessionDep
from scoutflow.api.errors import (
    AppError,
    payment_configuration_error,
    provider_error,
    subscription_not_found,
)
from scoutflow.api.schemas import (
    AccessData,
    ApiEnvelope,
    CheckoutData,
    CheckoutRequest,
    IsAdminData,
    LemonSqueezyPortalData,
    ManageData,
    ManageRequest,
    PortalData,
    SubscriptionStatusData,
)
from scoutflow.core.config import settings
from scoutflow.enums import BillingProvider, ManageAction, SubscriptionStatus
from scoutflow.models import utc_now
from scoutflow.services import subscription_cache
from scoutflow.services.access import evaluate_access
from scoutflow.services.lemonsqueezy_service import LemonSqueezyAPIError, get_lemonsqueezy_service
from scoutflow.services.paddle_service import PaddleAPIError, get_paddle_service

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/subscription", tags=["subscription"])

ACTION_STATUS: dict[ManageAction, SubscriptionStatus] = {
    ManageAction.cancel: SubscriptionStatus.cancelled,
    ManageAction.pause: SubscriptionStatus.paused,
    ManageAction.resume: SubscriptionStatus.active,
}

ACTION_PAST_TENSE: dict[ManageAction, str] = {
    ManageAction.cancel: "cancelled",
    ManageAction.pause: "paused",
    ManageAction.resume: "resumed",
}


@router.get("/status", response_model=ApiEnvelope)
def status(session: SessionDep, current_user: CurrentUser, refresh: bool = False) -> ApiEnvelope:
    """
    Current subscription and access decision

    GET /api/v1/subscription/status[?refresh=true]

    The record is served from cache for up to SUBSCRIPTION_CACHE_TTL_SECONDS;
    the access decision is recomputed on every call.
    """
    record = subscription_cache.get_subscription_record(
        session=session, user_id=current_user.id, refresh=refresh
    )
    is_admin = subscription_cache.get_is_admin(
        session=session, user_id=current_user.id, refresh=refresh
    )
    decision = evaluate_access(record, is_admin)
    access = AccessData(
        status=decision.status,
        has_access=decision.has_access,
        days_remaining=decision.days_remaining,
        is_admin=decision.is_admin,
        is_active=decision.is_active,
        is_trialing=decision.is_trialing,
        is_past_due=decision.is_past_due,
        is_cancelled=decision.is_cancelled,
        is_expired=decision.is_expired,
        is_paused=decision.is_paused,
        trial_ending_soon=decision.trial_ending_soon,
    )
    return ApiEnvelope(data=SubscriptionStatusData(subscription=record, access=access))


@router.get("/is-admin", response_model=ApiEnvelope)
def is_admin(session: SessionDep, current_user: CurrentUser, refresh: bool = False) -> ApiEnvelope:
    value = subscription_cache.get_is_admin(
        session=session, user_id=current_user.id, refresh=refresh
    )
    return ApiEnvelope(data=IsAdminData(is_admin=value))


@router.post("/checkout", response_model=ApiEnvelope)
def checkout(current_user: CurrentUser, body: CheckoutRequest | None = None) -> ApiEnvelope:
    """
    Start a Paddle checkout

    POST /api/v1/subscription/checkout {"redirect_url": "..."}

    Returns the hosted checkout URL for a client-side redirect.
    """
    service = get_paddle_service()
    if service is None or not settings.PADDLE_PRICE_ID:
        logger.error("Missing Paddle configuration")
        raise payment_configuration_error()

    redirect_url = (body.redirect_url if body else None) or settings.CHECKOUT_SUCCESS_URL
    try:
        url = service.create_checkout(
            price_id=settings.PADDLE_PRICE_ID,
            user_id=current_user.id,
            user_email=current_user.email,
            redirect_url=redirect_url,
        )
    except PaddleAPIError as e:
        raise provider_error(e.message)
    return ApiEnvelope(data=CheckoutData(url=url))


@router.post("/portal", response_model=ApiEnvelope)
def portal(session: SessionDep, current_user: CurrentUser) -> ApiEnvelope:
    """
    Paddle management URLs for the caller's subscription

    POST /api/v1/subscription/portal
    """
    sub = crud.get_subscription_by_user_id(session=session, user_id=current_user.id)
    if sub is None or sub.provider != BillingProvider.paddle or not sub.external_subscription_id:
        raise subscription_not_found()

    service = get_paddle_service()
    if service is None:
        raise payment_configuration_error()
    try:
        data = service.get_subscription(sub.external_subscription_id)
    except PaddleAPIError:
        raise provider_error("Failed to fetch subscription from Paddle")

    urls = data.get("management_urls") or None
    return ApiEnvelope(
        data=PortalData(
            management_urls=urls,
            cancel_url=urls.get("cancel") if urls else None,
            update_payment_method_url=urls.get("update_payment_method") if urls else None,
        )
    )


@router.post("/manage", response_model=ApiEnvelope)
def manage(session: SessionDep, current_user: CurrentUser, body: ManageRequest) -> ApiEnvelope:
    """
    Cancel, pause or resume a subscription

    POST /api/v1/subscription/manage {"action": "cancel", "user_id": null}

    Admins may pass user_id to act on another scout. With a Paddle
    subscription the action is sent to Paddle first and then mirrored
    locally; without one only the local row changes.
    """
    caller_is_admin = crud.is_admin(session=session, user_id=current_user.id)
    target_user_id = body.user_id if body.user_id and caller_is_admin else current_user.id

    sub = crud.get_subscription_by_user_id(session=session, user_id=target_user_id)
    if sub is None:
        raise subscription_not_found()

    values = {"cancelled_at": utc_now()} if body.action == ManageAction.cancel else {}
    new_status = ACTION_STATUS[body.action]
    done = ACTION_PAST_TENSE[body.action]

    if sub.provider != BillingProvider.paddle or not sub.external_subscription_id:
        logger.info(f"No Paddle subscription for user {target_user_id}, updating locally")
        try:
            crud.update_subscription_for_user(
                session=session, user_id=target_user_id, status=new_status, values=values
            )
            session.commit()
        except SQLAlchemyError:
            logger.exception("Failed to update local subscription")
            session.rollback()
            raise AppError(code=500102, message="Failed to update local subscription", status_code=500)
        return ApiEnvelope(
            data=ManageData(
                message=f"Subscription {done} locally (no Paddle subscription)",
                paddle_synced=False,
            )
        )

    service = get_paddle_service()
    if service is None:
        raise AppError(code=500103, message="Paddle API key not configured", status_code=500)
    try:
        paddle_data = service.manage_subscription(sub.external_subscription_id, body.action)
    except PaddleAPIError as e:
        raise provider_error(e.message)

    try:
        crud.update_subscription_for_user(
            session=session, user_id=target_user_id, status=new_status, values=values
        )
        session.commit()
    except SQLAlchemyError:
        # Paddle already applied the action; the next webhook will resync.
        logger.exception(f"Failed to update local subscription after Paddle {body.action.value}")
        session.rollback()

    return ApiEnvelope(
        data=ManageData(
            message=f"Subscription {done} successfully",
            paddle_synced=True,
            paddle_status=paddle_data.get("status"),
        )
    )


@router.post("/lemonsqueezy/manage", response_model=ApiEnvelope)
def lemonsqueezy_manage(session: SessionDep, current_user: CurrentUser) -> ApiEnvelope:
    """
    LemonSqueezy self-service URLs for the caller's subscription

    POST /api/v1/subscription/lemonsqueezy/manage
    """
    sub = crud.get_subscription_by_user_id(session=session, user_id=current_user.id)
    if sub is None or sub.provider != BillingProvider.lemonsqueezy or not sub.external_subscription_id:
        raise subscription_not_found()

    service = get_lemonsqueezy_service()
    if service is None:
        raise AppError(code=500104, message="Configuration error", status_code=500)
    try:
        urls = service.get_subscription_urls(sub.external_subscription_id)
    except LemonSqueezyAPIError:
        raise provider_error("Failed to fetch subscription")
    return ApiEnvelope(data=LemonSqueezyPortalData(**urls))
