"""Authentication related schemas."""

from typing import Optional

from pydantic import BaseModel, EmailStr, Field


class LoginRequest(BaseModel):
    email: EmailStr
    password: str = Field(min_length=1)


class SendOtpRequest(BaseModel):
    email: EmailStr


class VerifyOtpRequest(BaseModel):
    email: EmailStr
    otp: str = Field(min_length=4, max_length=8, pattern=r"^[0-9]+$")


class RefreshRequest(BaseModel):
    refreshToken: str


class AuthUserInfo(BaseModel):
    id: str
    email: EmailStr
    first_name: str
    last_name: str
    role: str
    company: Optional[str] = None
    team: Optional[str] = None
    current_streak: int = 0
    longest_streak: int = 0
    total_lessons_completed: int = 0
    badges_earned: list[str] = []
    last_activity_date: Optional[str] = None


class AuthTokens(BaseModel):
    accessToken: str
    refreshToken: str
    tokenType: str = "Bearer"
    expiresIn: int


class AuthResponse(BaseModel):
    user: AuthUserInfo
    tokens: AuthTokens
