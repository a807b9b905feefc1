from datetime import datetime
from typing import Literal, Optional

from pydantic import BaseModel, ConfigDict, EmailStr, Field

ACCESS_TOKEN = "access"
REFRESH_TOKEN = "refresh"
ADMIN_SESSION = "admin_session"


class TokenClaims(BaseModel):
    """Decoded end-user access/refresh token."""

    model_config = ConfigDict(extra="ignore", frozen=True)

    user_id: int
    app_id: int
    org_id: int = 0
    org_role: str = ""
    type: Literal["access", "refresh"]
    exp: int
    iat: int


class AdminClaims(BaseModel):
    """Decoded admin console session token."""

    model_config = ConfigDict(extra="ignore", frozen=True)

    email: str
    name: str = ""
    type: Literal["admin_session"]
    exp: int
    iat: int


class SignupRequest(BaseModel):
    email: EmailStr
    password: str = Field(..., min_length=6)
    name: Optional[str] = None


class LoginRequest(BaseModel):
    email: EmailStr
    password: str


class DeviceLoginRequest(BaseModel):
    device_id: str = Field(..., min_length=1, max_length=255)


class RefreshTokenRequest(BaseModel):
    refresh_token: str


class SwitchOrganizationRequest(BaseModel):
    org_id: int = Field(..., ge=0)


class UserResponse(BaseModel):
    id: int
    email: Optional[str] = None
    name: Optional[str] = None
    avatar_url: Optional[str] = None
    device_id: Optional[str] = None
    is_active: bool
    is_verified: bool
    created_at: Optional[datetime] = None
    last_login_at: Optional[datetime] = None

    model_config = {"from_attributes": True}


class AuthResponse(BaseModel):
    access_token: str
    refresh_token: str
    token_type: str = "Bearer"
    expires_in: int
    user: UserResponse


class MeResponse(BaseModel):
    user: UserResponse
    app_id: int
    org_id: int = 0
    org_role: str = ""


class SessionStatusResponse(BaseModel):
    app_id: int
    authenticated: bool
    user_id: Optional[int] = None
    org_id: int = 0
