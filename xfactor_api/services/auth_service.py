"""Authentication business logic: passwords, one-time codes, token rotation."""

from __future__ import annotations

import hashlib
import hmac
import logging
import secrets
import uuid
from datetime import datetime, timedelta, timezone
from typing import TYPE_CHECKING, Optional

import jwt
from passlib.context import CryptContext
from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from xfactor_api.core.auth import TOKEN_TYPE_ACCESS, TOKEN_TYPE_REFRESH, _get_jwt_key, decode_token
from xfactor_api.core.config import get_settings
from xfactor_api.core.errors import (
    AuthenticationError,
    AuthorizationError,
    ServiceUnavailableError,
    TooManyAttemptsError,
    UpstreamError,
    ValidationError,
)
from xfactor_api.core.redis_keys import key_refresh_token, key_user_refresh_tokens
from xfactor_api.models.user import User
from xfactor_api.services import get_redis_cache

if TYPE_CHECKING:
    import redis.asyncio as redis

logger = logging.getLogger(__name__)

_pwd_context = CryptContext(schemes=["bcrypt"], deprecated="auto")


def hash_password(password: str) -> str:
    return _pwd_context.hash(password)


def verify_password(password: str, password_hash: Optional[str]) -> bool:
    if not password_hash:
        return False
    return _pwd_context.verify(password, password_hash)


def _access_exp_seconds(settings) -> int:
    return max(int(settings.JWT_EXPIRE_MINUTES * 60), 60)


def _refresh_exp_seconds(settings) -> int:
    return max(int(settings.JWT_REFRESH_EXPIRE_DAYS * 24 * 60 * 60), 60)


def _build_token(user: User, token_type: str, expires_in: int, extra_claims: dict | None = None) -> str:
    settings = get_settings()
    now = datetime.now(timezone.utc)
    payload = {
        "sub": str(user.id),
        "email": user.email,
        "role": user.role,
        "typ": token_type,
        "iat": int(now.timestamp()),
        "exp": int((now + timedelta(seconds=expires_in)).timestamp()),
    }
    if extra_claims:
        payload.update(extra_claims)
    return jwt.encode(payload, _get_jwt_key(settings.JWT_SECRET), algorithm=settings.JWT_ALGORITHM)


def _hash_token(token: str) -> str:
    return hashlib.sha256(token.encode("utf-8")).hexdigest()


def generate_otp(length: int) -> str:
    return "".join(secrets.choice("0123456789") for _ in range(length))


def serialize_user(user: User) -> dict:
    return {
        "id": str(user.id),
        "email": user.email,
        "first_name": user.first_name,
        "last_name": user.last_name,
        "phone": user.phone,
        "role": user.role,
        "company": user.company,
        "team": user.team,
        "avatar_url": user.avatar_url,
        "timezone": user.timezone,
        "current_streak": user.current_streak or 0,
        "longest_streak": user.longest_streak or 0,
        "total_lessons_completed": user.total_lessons_completed or 0,
        "badges_earned": list(user.badges_earned or []),
        "last_activity_date": user.last_activity_date.isoformat() if user.last_activity_date else None,
        "last_login": user.last_login.isoformat() if user.last_login else None,
        "created_at": user.created_at.isoformat() if user.created_at else None,
    }


async def _require_redis() -> "redis.Redis":
    cache = await get_redis_cache()
    if not cache.client:
        raise ServiceUnavailableError("Redis unavailable for token management")
    return cache.client


async def _get_user_by(db: AsyncSession, clause) -> Optional[User]:
    try:
        result = await db.execute(select(User).where(clause))
    except SQLAlchemyError as e:
        logger.error("Failed to load user: %s", e)
        raise UpstreamError("Failed to load user") from e
    return result.scalar_one_or_none()


async def _store_refresh_token(*, user_id: uuid.UUID, jti: str, token_hash: str, ttl: int) -> None:
    client = await _require_redis()
    user_key = key_user_refresh_tokens(str(user_id))
    async with client.pipeline(transaction=True) as pipe:
        pipe.setex(key_refresh_token(jti), ttl, token_hash)
        pipe.sadd(user_key, jti)
        pipe.expire(user_key, ttl)
        await pipe.execute()


async def revoke_user_refresh_tokens(user_id: uuid.UUID) -> None:
    client = await _require_redis()
    user_key = key_user_refresh_tokens(str(user_id))
    jtis = await client.smembers(user_key)
    async with client.pipeline(transaction=True) as pipe:
        for jti in jtis or ():
            pipe.delete(key_refresh_token(jti))
        pipe.delete(user_key)
        await pipe.execute()


async def _issue_tokens(user: User) -> dict:
    settings = get_settings()
    access_ttl = _access_exp_seconds(settings)
    refresh_ttl = _refresh_exp_seconds(settings)
    jti = uuid.uuid4().hex
    access_token = _build_token(user, TOKEN_TYPE_ACCESS, access_ttl)
    refresh_token = _build_token(user, TOKEN_TYPE_REFRESH, refresh_ttl, extra_claims={"jti": jti})
    await _store_refresh_token(user_id=user.id, jti=jti, token_hash=_hash_token(refresh_token), ttl=refresh_ttl)
    return {
        "accessToken": access_token,
        "refreshToken": refresh_token,
        "tokenType": "Bearer",
        "expiresIn": access_ttl,
    }


async def _complete_login(db: AsyncSession, user: User) -> dict:
    user.last_login = datetime.now(timezone.utc)
    try:
        await db.commit()
    except SQLAlchemyError as e:
        await db.rollback()
        logger.warning("Failed to record last login for %s: %s", user.id, e)
    tokens = await _issue_tokens(user)
    return {"user": serialize_user(user), "tokens": tokens}


async def login_user(db: AsyncSession, *, email: str, password: str) -> dict:
    user = await _get_user_by(db, User.email == email.lower())
    if not user or not verify_password(password, user.password_hash):
        raise AuthenticationError("Email or password is incorrect")
    if not user.is_active:
        raise AuthorizationError("Your account has been deactivated. Please contact support.")
    logger.info("User %s logged in", user.id)
    return await _complete_login(db, user)


async def send_otp(db: AsyncSession, *, email: str) -> dict:
    """Create a one-time code for ``email``.

    The response is identical whether or not the account exists. Delivery is
    out of band; the code is echoed back only when DEBUG is on.
    """
    settings = get_settings()
    email = email.lower()
    result = {"email": email, "expiresIn": settings.OTP_EXPIRY_MINUTES}

    user = await _get_user_by(db, User.email == email)
    if not user or not user.is_active:
        logger.info("One-time code requested for unknown or inactive account")
        return result

    cache = await get_redis_cache()
    code = generate_otp(settings.OTP_LENGTH)
    stored = await cache.store_otp(email, code, settings.OTP_EXPIRY_MINUTES * 60)
    if not stored:
        raise ServiceUnavailableError("One-time codes are temporarily unavailable")

    if settings.DEBUG:
        logger.debug("One-time code for %s: %s", email, code)
        result["otp"] = code
    return result


async def verify_otp(db: AsyncSession, *, email: str, otp: str) -> dict:
    settings = get_settings()
    email = email.lower()
    cache = await get_redis_cache()

    stored = await cache.get_otp(email)
    if not stored:
        raise ValidationError("No valid code found for this email. Please request a new one.")

    if stored["attempts"] >= settings.OTP_MAX_ATTEMPTS:
        await cache.drop_otp(email)
        raise TooManyAttemptsError("Too many failed attempts. Please request a new code.")

    if not hmac.compare_digest(str(stored["code"]).encode(), otp.encode()):
        attempts = await cache.record_otp_failure(email)
        raise ValidationError(
            "The code you entered is incorrect.",
            details={"attemptsLeft": max(settings.OTP_MAX_ATTEMPTS - attempts, 0)},
        )

    await cache.drop_otp(email)
    user = await _get_user_by(db, User.email == email)
    if not user:
        raise AuthenticationError("User not found")
    if not user.is_active:
        raise AuthorizationError("Your account has been deactivated. Please contact support.")
    logger.info("User %s logged in with a one-time code", user.id)
    return await _complete_login(db, user)


async def refresh_tokens(db: AsyncSession, *, refresh_token: str) -> dict:
    """Rotate a refresh token. Presenting an unknown one revokes all of the user's tokens."""
    payload = decode_token(refresh_token, expected_type=TOKEN_TYPE_REFRESH)
    jti = payload.get("jti")
    try:
        user_id = uuid.UUID(str(payload.get("sub")))
    except ValueError:
        raise AuthenticationError("Invalid refresh token")
    if not jti:
        raise AuthenticationError("Invalid refresh token")

    user = await _get_user_by(db, User.id == user_id)
    if not user:
        raise AuthenticationError("User not found")
    if not user.is_active:
        raise AuthorizationError("Your account has been deactivated. Please contact support.")

    client = await _require_redis()
    stored_hash = await client.get(key_refresh_token(jti))
    if not stored_hash or not hmac.compare_digest(stored_hash, _hash_token(refresh_token)):
        await revoke_user_refresh_tokens(user.id)
        logger.warning("Refresh token reuse detected for user %s", user.id)
        raise AuthenticationError("Refresh token reuse detected")

    async with client.pipeline(transaction=True) as pipe:
        pipe.delete(key_refresh_token(jti))
        pipe.srem(key_user_refresh_tokens(str(user.id)), jti)
        await pipe.execute()
    return {"user": serialize_user(user), "tokens": await _issue_tokens(user)}


async def get_profile(db: AsyncSession, user_id: uuid.UUID) -> dict:
    user = await _get_user_by(db, User.id == user_id)
    if not user:
        raise AuthenticationError("User not found")
    return serialize_user(user)
