"""Authentication endpoints."""

from fastapi import APIRouter, Depends, Request
from sqlalchemy.ext.asyncio import AsyncSession

from xfactor_api.core.auth import get_current_user
from xfactor_api.core.database import get_db
from xfactor_api.core.limiter import limiter
from xfactor_api.schemas.auth import LoginRequest, RefreshRequest, SendOtpRequest, VerifyOtpRequest
from xfactor_api.schemas.common import success
from xfactor_api.services import auth_service

router = APIRouter(prefix="/auth", tags=["auth"])


@router.post("/login")
@limiter.limit("10/minute")
async def login(request: Request, payload: LoginRequest, db: AsyncSession = Depends(get_db)) -> dict:
    result = await auth_service.login_user(db, email=payload.email, password=payload.password)
    return success(result, "Login successful")


@router.post("/send-otp")
@limiter.limit("5/minute")
async def send_otp(request: Request, payload: SendOtpRequest, db: AsyncSession = Depends(get_db)) -> dict:
    result = await auth_service.send_otp(db, email=payload.email)
    return success(result, "If an account exists for this email, a code has been sent")


@router.post("/verify-otp")
@limiter.limit("10/minute")
async def verify_otp(request: Request, payload: VerifyOtpRequest, db: AsyncSession = Depends(get_db)) -> dict:
    result = await auth_service.verify_otp(db, email=payload.email, otp=payload.otp)
    return success(result, "Login successful")


@router.post("/refresh")
async def refresh(payload: RefreshRequest, db: AsyncSession = Depends(get_db)) -> dict:
    result = await auth_service.refresh_tokens(db, refresh_token=payload.refreshToken.strip())
    return success(result, "Token refreshed successfully")


@router.post("/logout")
async def logout(user: dict = Depends(get_current_user)) -> dict:
    await auth_service.revoke_user_refresh_tokens(user["id"])
    return success(None, "Logged out")


@router.get("/me")
async def get_me(user: dict = Depends(get_current_user), db: AsyncSession = Depends(get_db)) -> dict:
    return success(await auth_service.get_profile(db, user["id"]))
