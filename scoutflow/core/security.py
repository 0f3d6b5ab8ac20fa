from datetime import datetime, timedelta, timezone
from typing import Any

import jwt

from scoutflow.core.config import settings

ALGORITHM = "HS256"


def create_access_token(
    subject: str | Any, expires_delta: timedelta, email: str | None = None
) -> str:
    """Issue a token shaped like the identity provider's access tokens."""
    expire = datetime.now(timezone.utc) + expires_delta
    to_encode: dict[str, Any] = {"exp": expire, "sub": str(subject)}
    if email:
        to_encode["email"] = email
    return jwt.encode(to_encode, settings.SECRET_KEY, algorithm=ALGORITHM)


def decode_access_token(token: str) -> dict[str, Any]:
    # The identity provider sets aud="authenticated"; it is not checked here.
    return jwt.decode(
        token,
        settings.SECRET_KEY,
        algorithms=[ALGORITHM],
        options={"verify_aud": False},
    )
