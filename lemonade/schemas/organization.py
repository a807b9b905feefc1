from datetime import datetime
from typing import Optional

from pydantic import BaseModel, EmailStr, Field

from lemonade.models.organization import InvitationStatus, OrgRole


class OrganizationCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=255)
    slug: str = Field(..., min_length=1, max_length=100, pattern=r"^[a-z0-9][a-z0-9-]*$")
    description: Optional[str] = None
    logo_url: Optional[str] = None


class OrganizationUpdate(BaseModel):
    name: Optional[str] = Field(None, min_length=1, max_length=255)
    description: Optional[str] = None
    logo_url: Optional[str] = None


class OrganizationResponse(BaseModel):
    id: int
    app_id: int
    name: str
    slug: str
    description: Optional[str] = None
    logo_url: Optional[str] = None
    is_active: bool
    created_at: Optional[datetime] = None

    model_config = {"from_attributes": True}


class MyOrganizationResponse(OrganizationResponse):
    role: OrgRole


class MemberResponse(BaseModel):
    id: int
    user_id: int
    role: OrgRole
    email: Optional[str] = None
    name: Optional[str] = None
    joined_at: Optional[datetime] = None


class MemberRoleUpdate(BaseModel):
    role: OrgRole


class InvitationCreate(BaseModel):
    email: EmailStr
    role: OrgRole = OrgRole.MEMBER


class InvitationResponse(BaseModel):
    id: int
    organization_id: int
    email: str
    role: OrgRole
    status: InvitationStatus
    created_at: Optional[datetime] = None
    expires_at: datetime
    accepted_at: Optional[datetime] = None

    model_config = {"from_attributes": True}


class InvitationCreatedResponse(InvitationResponse):
    """Returned once to the inviter; the token is delivered out of band."""

    token: str


class InvitationAccept(BaseModel):
    token: str = Field(..., min_length=1)

