"""Supabase access-token creation and validation."""

import logging
import uuid
from datetime import datetime, timedelta, timezone

import jwt
from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from config import settings

logger = logging.getLogger(__name__)

ALGORITHM = "HS256"
AUDIENCE = "authenticated"
ACCESS_TOKEN_EXPIRE_MINUTES = 60

_bearer_scheme = HTTPBearer()
_optional_bearer_scheme = HTTPBearer(auto_error=False)


def create_access_token(user_id: uuid.UUID) -> str:
    """Create an access token shaped like the ones Supabase Auth issues."""
    payload = {
        "sub": str(user_id),
        "aud": AUDIENCE,
        "role": "authenticated",
        "exp": datetime.now(timezone.utc) + timedelta(minutes=ACCESS_TOKEN_EXPIRE_MINUTES),
    }
    return jwt.encode(payload, settings.supabase_jwt_secret, algorithm=ALGORITHM)


def decode_token(token: str) -> uuid.UUID:
    """Decode and validate an access token, returning the user_id.

    Raises:
        HTTPException: If token is invalid, expired, or has no usable subject.
    """
    try:
        payload = jwt.decode(
            token, settings.supabase_jwt_secret, algorithms=[ALGORITHM], audience=AUDIENCE,
        )
    except jwt.ExpiredSignatureError:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Token expired")
    except jwt.InvalidTokenError:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid token")

    try:
        return uuid.UUID(payload["sub"])
    except (KeyError, ValueError):
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid token payload")


async def get_current_user_id(
    credentials: HTTPAuthorizationCredentials = Depends(_bearer_scheme),
) -> uuid.UUID:
    """FastAPI dependency that extracts user_id from a Bearer token."""
    return decode_token(credentials.credentials)


async def get_optional_user_id(
    credentials: HTTPAuthorizationCredentials | None = Depends(_optional_bearer_scheme),
) -> uuid.UUID | None:
    """Like get_current_user_id, but anonymous or bad tokens yield None."""
    if credentials is None:
        return None
    try:
        return decode_token(credentials.credentials)
    except HTTPException as e:
        logger.info("Ignoring bearer token: %s", e.detail)
        return None
