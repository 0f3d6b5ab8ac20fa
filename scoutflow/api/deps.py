"""
FastAPI dependencies

Reusable dependencies injected into route handlers.

- get_db: one database session per request, closed afterwards
- get_raw_body: unparsed request body for signature checks
- get_current_user: the authenticated scout, from the identity provider's
  bearer token
"""
from collections.abc import Generator
from typing import Annotated

from fastapi import Depends, HTTPException, Request, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from jwt.exceptions import InvalidTokenError
from pydantic import ValidationError
from sqlmodel import Session

from scoutflow.api.schemas import AuthUser, TokenPayload
from scoutflow.core import security
from scoutflow.core.db import engine

reusable_oauth2 = HTTPBearer()


def get_db() -> Generator[Session, None, None]:
    """
    Yield a database session for the request

    The session is closed by the context manager once the response is sent.
    """
    with Session(engine) as session:
        yield session


SessionDep = Annotated[Session, Depends(get_db)]


async def get_raw_body(request: Request) -> bytes:
    """
    Raw request body, read on the event loop

    Webhook signatures cover the exact bytes sent, so sync handlers take
    the body through this dependency instead of a parsed model.
    """
    return await request.body()


RawBodyDep = Annotated[bytes, Depends(get_raw_body)]
TokenDep = Annotated[HTTPAuthorizationCredentials, Depends(reusable_oauth2)]


def get_current_user(token: TokenDep) -> AuthUser:
    """
    Resolve the caller from the access token

    The token is issued by the identity provider; sub carries the user id
    and email is optional. The caller does not need a scouts row.

    Raises:
        HTTPException: 401 when the token is invalid or has no subject
    """
    try:
        payload = security.decode_access_token(token.credentials)
        token_data = TokenPayload(**payload)
    except (InvalidTokenError, ValidationError):
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Could not validate credentials",
        )
    if not token_data.sub:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Could not validate credentials",
        )
    return AuthUser(id=token_data.sub, email=token_data.email)


CurrentUser = Annotated[AuthUser, Depends(get_current_user)]
