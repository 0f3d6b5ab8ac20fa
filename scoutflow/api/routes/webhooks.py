"""
Billing webhook routes

One endpoint per provider. Both verify the signature over the raw body,
parse the event and hand it to the reconciler.

Response policy (providers retry anything that is not 2xx):
- 401: signature missing / invalid, or unsigned delivery not allowed
- 200 {"received": true}: everything that was understood, including
  unknown event types, unresolvable users and swallowed database errors
- 500 {"error": ...}: unexpected exceptions, so the provider retries
"""
from __future__ import annotations

import json
import logging
from collections.abc import Callable
from typing import Any

from fastapi import APIRouter, Header
from fastapi.responses import JSONResponse, Response
from sqlmodel import Session

from scoutflow.api.deps import RawBodyDep, SessionDep
from scoutflow.core.config import settings
from scoutflow.enums import BillingProvider
from scoutflow.services import lemonsqueezy_service, paddle_service
from scoutflow.services.identity_service import get_identity_service
from scoutflow.services.reconciler import SubscriptionChange, reconcile
from scoutflow.services.signatures import (
    enforce_signature,
    verify_lemonsqueezy_signature,
    verify_paddle_signature,
)
from scoutflow.services.user_resolver import ResolverStrategy, default_strategies

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/webhooks", tags=["webhooks"])

_BASE_ALLOW_HEADERS = "authorization, x-client-info, apikey, content-type"


def cors_headers(signature_header: str) -> dict[str, str]:
    return {
        "Access-Control-Allow-Origin": "*",
        "Access-Control-Allow-Methods": "POST, OPTIONS",
        "Access-Control-Allow-Headers": f"{_BASE_ALLOW_HEADERS}, {signature_header}",
    }


PADDLE_CORS = cors_headers("paddle-signature")
LEMONSQUEEZY_CORS = cors_headers("x-signature")


def _process(
    *,
    raw_body: bytes,
    provider: BillingProvider,
    parse: Callable[[Any], SubscriptionChange],
    strategies: list[ResolverStrategy],
    session: Session,
    headers: dict[str, str],
) -> JSONResponse:
    try:
        try:
            payload = json.loads(raw_body)
            change = parse(payload)
        except ValueError as e:  # JSONDecodeError, MalformedEvent
            logger.warning(f"Malformed {provider.value} webhook payload: {e}")
            return JSONResponse(
                {"received": True, "warning": "Malformed payload"}, headers=headers
            )

        logger.info(f"Received {provider.value} webhook: {change.event_type}")
        result = reconcile(session, change, strategies, payload=payload)
    except Exception as e:
        logger.exception(f"{provider.value} webhook error")
        return JSONResponse({"error": str(e) or type(e).__name__}, status_code=500, headers=headers)

    body: dict[str, Any] = {"received": True}
    if result.duplicate:
        body["duplicate"] = True
    elif result.unresolved:
        body["warning"] = "User not found"
    return JSONResponse(body, headers=headers)


@router.options("/paddle")
def paddle_preflight() -> Response:
    return Response(status_code=200, headers=PADDLE_CORS)


@router.post("/paddle")
def paddle_webhook(
    session: SessionDep,
    raw_body: RawBodyDep,
    paddle_signature: str | None = Header(default=None),
) -> JSONResponse:
    """
    Paddle Billing notifications

    POST /api/v1/webhooks/paddle
    """
    check = verify_paddle_signature(raw_body, paddle_signature, settings.PADDLE_WEBHOOK_SECRET)
    enforce_signature(check, provider="paddle")

    strategies = default_strategies(
        session=session,
        provider=BillingProvider.paddle,
        identity_service=get_identity_service(),
    )
    return _process(
        raw_body=raw_body,
        provider=BillingProvider.paddle,
        parse=paddle_service.parse_event,
        strategies=strategies,
        session=session,
        headers=PADDLE_CORS,
    )


@router.options("/lemonsqueezy")
def lemonsqueezy_preflight() -> Response:
    return Response(status_code=200, headers=LEMONSQUEEZY_CORS)


@router.post("/lemonsqueezy")
def lemonsqueezy_webhook(
    session: SessionDep,
    raw_body: RawBodyDep,
    x_signature: str | None = Header(default=None),
) -> JSONResponse:
    """
    LemonSqueezy notifications

    POST /api/v1/webhooks/lemonsqueezy
    """
    check = verify_lemonsqueezy_signature(
        raw_body, x_signature, settings.LEMONSQUEEZY_WEBHOOK_SECRET
    )
    enforce_signature(check, provider="lemonsqueezy")

    strategies = default_strategies(session=session, provider=BillingProvider.lemonsqueezy)
    return _process(
        raw_body=raw_body,
        provider=BillingProvider.lemonsqueezy,
        parse=lemonsqueezy_service.parse_event,
        strategies=strategies,
        session=session,
        headers=LEMONSQUEEZY_CORS,
    )
