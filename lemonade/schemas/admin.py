from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, Field


class GoogleAuthRequest(BaseModel):
    id_token: str = Field(..., min_length=1)


class AdminMeResponse(BaseModel):
    email: str
    name: str = ""


class AppResponse(BaseModel):
    id: int
    name: str
    slug: str
    api_key: str
    allowed_origins: Optional[List[str]] = None
    webhook_url: Optional[str] = None
    is_active: bool
    created_at: Optional[datetime] = None

    model_config = {"from_attributes": True}


class AppUserResponse(BaseModel):
    id: int
    email: Optional[str] = None
    name: Optional[str] = None
    device_id: Optional[str] = None
    is_active: bool
    enabled_at: Optional[datetime] = None
    last_login_at: Optional[datetime] = None


class GeneratedTokenResponse(BaseModel):
    access_token: str
    refresh_token: str
    token_type: str = "Bearer"
    expires_in: int


class AdminOrganizationCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=255)
    slug: str = Field(..., min_length=1, max_length=100, pattern=r"^[a-z0-9][a-z0-9-]*$")
    owner_user_id: int
    description: Optional[str] = None


class AdminOrganizationResponse(BaseModel):
    id: int
    name: str
    slug: str
    description: Optional[str] = None
    is_active: bool
    member_count: int = 0
    created_at: Optional[datetime] = None
