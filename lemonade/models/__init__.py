from lemonade.models.base import Base
from lemonade.models.organization import (
    InvitationStatus,
    Organization,
    OrganizationInvitation,
    OrganizationMember,
    OrgRole,
)
from lemonade.models.tenant import App
from lemonade.models.user import User, UserApp

__all__ = [
    "App",
    "Base",
    "InvitationStatus",
    "Organization",
    "OrganizationInvitation",
    "OrganizationMember",
    "OrgRole",
    "User",
    "UserApp",
]
