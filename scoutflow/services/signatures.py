"""
Webhook signature verification

Each provider signs the raw request body with a shared secret:

- Paddle: header "paddle-signature: ts=<unix seconds>;h1=<hex>", where h1 is
  HMAC-SHA256(secret, "<ts>:<raw body>")
- LemonSqueezy: header "x-signature: <hex>", HMAC-SHA256(secret, raw body)

Verification returns a SignatureCheck instead of a bool so the caller can
tell "bad signature" apart from "no secret configured"; enforce_signature
turns the result into a 401 or lets the request through.
"""
from __future__ import annotations

import hashlib
import hmac
import logging
import time
from enum import Enum

from scoutflow.api.errors import AppError
from scoutflow.core.config import settings

logger = logging.getLogger(__name__)


class SignatureCheck(str, Enum):
    valid = "valid"
    invalid = "invalid"
    missing = "missing"
    expired = "expired"
    unconfigured = "unconfigured"


def _hmac_hex(secret: str, message: bytes) -> str:
    return hmac.new(secret.encode(), message, hashlib.sha256).hexdigest()


def parse_paddle_signature(header: str) -> tuple[str, list[str]] | None:
    """
    Split a paddle-signature header into (ts, [h1, ...])

    Paddle may send several h1 values during secret rotation.
    Returns None when ts or h1 is missing.
    """
    ts: str | None = None
    hashes: list[str] = []
    for part in header.split(";"):
        key, sep, value = part.strip().partition("=")
        if not sep:
            continue
        if key == "ts":
            ts = value
        elif key == "h1":
            hashes.append(value)
    if not ts or not hashes:
        return None
    return ts, hashes


def verify_paddle_signature(
    raw_body: bytes,
    signature: str | None,
    secret: str | None,
    *,
    tolerance_seconds: int | None = None,
    now: float | None = None,
) -> SignatureCheck:
    if not secret:
        return SignatureCheck.unconfigured
    if not signature:
        return SignatureCheck.missing

    parsed = parse_paddle_signature(signature)
    if parsed is None:
        logger.warning("Malformed paddle-signature header")
        return SignatureCheck.invalid
    ts, hashes = parsed

    expected = _hmac_hex(secret, ts.encode() + b":" + raw_body)
    if not any(hmac.compare_digest(expected, h) for h in hashes):
        return SignatureCheck.invalid

    if tolerance_seconds is None:
        tolerance_seconds = settings.WEBHOOK_TIMESTAMP_TOLERANCE_SECONDS
    if tolerance_seconds > 0:
        try:
            signed_at = int(ts)
        except ValueError:
            return SignatureCheck.invalid
        current = time.time() if now is None else now
        if abs(current - signed_at) > tolerance_seconds:
            return SignatureCheck.expired

    return SignatureCheck.valid


def verify_lemonsqueezy_signature(
    raw_body: bytes, signature: str | None, secret: str | None
) -> SignatureCheck:
    if not secret:
        return SignatureCheck.unconfigured
    if not signature:
        return SignatureCheck.missing
    expected = _hmac_hex(secret, raw_body)
    if hmac.compare_digest(expected, signature.strip()):
        return SignatureCheck.valid
    return SignatureCheck.invalid


def enforce_signature(check: SignatureCheck, *, provider: str) -> None:
    """
    Gate webhook processing on the verification result

    Raises:
        AppError: 401 when the signature is missing, invalid or expired, or
            when no secret is configured and unsigned deliveries are not
            allowed in this environment
    """
    if check == SignatureCheck.valid:
        return
    if check == SignatureCheck.unconfigured:
        if settings.webhook_allow_unsigned:
            logger.warning(f"{provider} webhook secret not configured, accepting unsigned delivery")
            return
        logger.error(f"{provider} webhook secret not configured, rejecting delivery")
        raise AppError(code=401002, message="Webhook secret not configured", status_code=401)

    logger.error(f"{provider} webhook signature check failed: {check.value}")
    raise AppError(code=401001, message="Invalid signature", status_code=401)
