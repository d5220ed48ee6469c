"""JWT authentication dependencies."""

import logging
import uuid
from typing import Callable, Optional

import jwt
from fastapi import Depends, Query
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from xfactor_api.core.config import get_settings
from xfactor_api.core.database import get_db
from xfactor_api.core.errors import AuthenticationError, AuthorizationError, UpstreamError

logger = logging.getLogger("xfactor_api.auth")

security = HTTPBearer(auto_error=False)

TOKEN_TYPE_ACCESS = "access"
TOKEN_TYPE_REFRESH = "refresh"


def _get_jwt_key(secret: str) -> bytes:
    """HMAC key bytes, zero-padded to 32 bytes for HS256."""
    key_bytes = secret.encode("utf-8")
    if len(key_bytes) < 32:
        key_bytes = key_bytes + b"\x00" * (32 - len(key_bytes))
    return key_bytes


def decode_token(token: str, expected_type: str = TOKEN_TYPE_ACCESS) -> dict:
    settings = get_settings()
    try:
        payload = jwt.decode(
            token,
            _get_jwt_key(settings.JWT_SECRET),
            algorithms=[settings.JWT_ALGORITHM],
        )
    except jwt.ExpiredSignatureError:
        logger.warning("Token expired")
        raise AuthenticationError("Token expired")
    except jwt.InvalidTokenError as e:
        logger.warning("Invalid token: %s", e)
        raise AuthenticationError("Invalid token")

    if payload.get("typ", TOKEN_TYPE_ACCESS) != expected_type:
        raise AuthenticationError("Invalid token")
    return payload


def user_context(user) -> dict:
    """Request-scoped view of the authenticated user."""
    return {
        "id": user.id,
        "email": user.email,
        "role": user.role,
        "first_name": user.first_name,
        "last_name": user.last_name,
    }


async def _resolve_user_from_payload(payload: dict, db: AsyncSession) -> dict:
    from xfactor_api.models.user import User

    try:
        user_id = uuid.UUID(str(payload.get("sub")))
    except ValueError:
        raise AuthenticationError("Invalid token: no subject")

    try:
        result = await db.execute(select(User).where(User.id == user_id))
    except SQLAlchemyError as e:
        logger.error("Failed to load user %s: %s", user_id, e)
        raise UpstreamError("Failed to load user") from e
    user = result.scalar_one_or_none()
    if not user:
        logger.warning("Valid token but no such user: %s", user_id)
        raise AuthenticationError("User not found")
    if not user.is_active:
        raise AuthorizationError("Account is deactivated")
    return user_context(user)


async def get_current_user(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security),
    db: AsyncSession = Depends(get_db),
) -> dict:
    """Required authentication via ``Authorization: Bearer``.

    Returns:
        {"id": UUID, "email": str, "role": str, "first_name": str, "last_name": str}
    """
    if not credentials:
        raise AuthenticationError("Authentication required")
    payload = decode_token(credentials.credentials)
    return await _resolve_user_from_payload(payload, db)


async def get_current_user_from_header_or_query(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security),
    token: Optional[str] = Query(default=None),
    db: AsyncSession = Depends(get_db),
) -> dict:
    """Bearer header first, then ``?token=`` (for PDF viewers that cannot set headers)."""
    raw = credentials.credentials if credentials else token
    if not raw:
        raise AuthenticationError("No token provided")
    payload = decode_token(raw)
    return await _resolve_user_from_payload(payload, db)


def require_roles(*roles: str) -> Callable:
    """Dependency factory: the current user must hold one of ``roles``."""
    allowed = frozenset(roles)

    async def _check(user: dict = Depends(get_current_user)) -> dict:
        if user["role"] not in allowed:
            raise AuthorizationError("Insufficient permissions")
        return user

    return _check


require_admin = require_roles("admin")
