"""
HERA Universal API - Security Layer

Authentication for the universal and v2 routes. Supports a shared API
key (service-to-service) and Supabase user JWTs.
"""

import logging
import secrets
from dataclasses import dataclass
from typing import Literal
from uuid import UUID

import jwt
from fastapi import Depends, Header, HTTPException, status

from ..config import get_settings

logger = logging.getLogger(__name__)


@dataclass
class AuthContext:
    """
    Authentication context for the current request.

    Attributes:
        subject: The acting user ID (JWT ``sub`` or X-Actor-User-Id header)
        via: How the caller was authenticated
    """

    subject: str | None
    via: Literal["api_key", "jwt"]


def _decode_jwt(token: str) -> dict | None:
    """
    Decode a Supabase JWT token.

    Returns the payload if valid, None otherwise.
    """
    secret = get_settings().supabase_jwt_secret
    if not secret:
        logger.warning("SUPABASE_JWT_SECRET not configured, cannot validate JWT")
        return None

    try:
        return jwt.decode(
            token,
            secret,
            algorithms=["HS256"],
            audience="authenticated",
        )
    except jwt.ExpiredSignatureError:
        logger.warning("JWT token has expired")
        return None
    except jwt.InvalidTokenError as e:
        logger.warning(f"Invalid JWT token: {type(e).__name__}")
        return None


async def get_current_user(
    authorization: str | None = Header(default=None),
    x_api_key: str | None = Header(default=None, alias="X-API-Key"),
    x_actor_user_id: str | None = Header(default=None, alias="X-Actor-User-Id"),
) -> AuthContext:
    """
    FastAPI dependency for authenticating requests.

    Authentication methods (in order of priority):
    1. X-API-Key header, with the actor optionally named by X-Actor-User-Id
    2. Authorization: Bearer <token>, with the actor taken from ``sub``

    Raises:
        HTTPException 401: If authentication fails
    """
    if x_api_key:
        configured_key = get_settings().hera_api_key
        if configured_key and secrets.compare_digest(x_api_key.encode(), configured_key.encode()):
            logger.debug("Authenticated via API key")
            return AuthContext(subject=x_actor_user_id, via="api_key")
        logger.warning("Invalid API key attempted")
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid API key",
            headers={"WWW-Authenticate": "API-Key"},
        )

    if authorization:
        if not authorization.startswith("Bearer "):
            raise HTTPException(
                status_code=status.HTTP_401_UNAUTHORIZED,
                detail="Invalid authorization header format",
                headers={"WWW-Authenticate": "Bearer"},
            )

        payload = _decode_jwt(authorization[7:])
        if payload:
            subject = payload.get("sub")
            logger.debug(f"Authenticated via JWT: subject={subject}")
            return AuthContext(subject=subject, via="jwt")
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid or expired token",
            headers={"WWW-Authenticate": "Bearer"},
        )

    raise HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail="Authentication required",
        headers={"WWW-Authenticate": "Bearer, API-Key"},
    )


async def get_actor_user_id(auth: AuthContext = Depends(get_current_user)) -> str:
    """
    Dependency for routes that stamp an actor on the RPC call.

    The actor must be a UUID; API-key callers supply it in X-Actor-User-Id.
    """
    if not auth.subject:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Actor user id required",
            headers={"WWW-Authenticate": "Bearer"},
        )
    try:
        actor = UUID(auth.subject)
    except ValueError:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Actor user id must be a UUID",
            headers={"WWW-Authenticate": "Bearer"},
        )
    if actor.int == 0:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Actor user id must not be the null UUID",
            headers={"WWW-Authenticate": "Bearer"},
        )
    return str(actor)
