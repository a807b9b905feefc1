"""
End-user session authority.

Issues and validates the access/refresh token pair for a (user, tenant,
optional organization) scope. Tokens are stateless; nothing is persisted.

Refresh tokens are reusable until they expire: refreshing issues a new pair
but does not invalidate the presented refresh token. The organization role
is never carried in a refresh token and is read again from the live
membership whenever a pair is reissued.
"""

import logging
from dataclasses import dataclass
from typing import Optional, Tuple

from pydantic import ValidationError
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from lemonade.core.config import Settings
from lemonade.core.exceptions import Forbidden, InvalidCredential
from lemonade.core.security import decode_token, issue_token
from lemonade.models.organization import Organization, OrganizationMember
from lemonade.models.user import User
from lemonade.schemas.auth import ACCESS_TOKEN, REFRESH_TOKEN, TokenClaims

logger = logging.getLogger(__name__)

UNKNOWN_USER = "unknown_user"


@dataclass(frozen=True)
class TokenPair:
    access_token: str
    refresh_token: str
    user: User


class SessionAuthority:
    def __init__(self, settings: Settings) -> None:
        self.settings = settings

    @property
    def access_expires_in(self) -> int:
        return int(self.settings.access_token_ttl.total_seconds())

    def issue_access(self, user_id: int, tenant_id: int, org_id: int = 0, org_role: str = "") -> str:
        claims = {
            "user_id": user_id,
            "app_id": tenant_id,
            "org_id": org_id,
            "org_role": org_role,
            "type": ACCESS_TOKEN,
        }
        return issue_token(
            claims,
            self.settings.jwt_secret_key,
            self.settings.access_token_ttl,
            self.settings.jwt_algorithm,
        )

    def issue_refresh(self, user_id: int, tenant_id: int, org_id: int = 0) -> str:
        claims = {
            "user_id": user_id,
            "app_id": tenant_id,
            "org_id": org_id,
            "type": REFRESH_TOKEN,
        }
        return issue_token(
            claims,
            self.settings.jwt_secret_key,
            self.settings.refresh_token_ttl,
            self.settings.jwt_algorithm,
        )

    def _validate(self, token: str, kind: str) -> TokenClaims:
        raw = decode_token(token, self.settings.jwt_secret_key, self.settings.jwt_algorithm)
        if raw.get("type") != kind:
            raise InvalidCredential(
                InvalidCredential.WRONG_KIND,
                f"expected {kind} token, got {raw.get('type')!r}",
            )
        try:
            return TokenClaims.model_validate(raw)
        except ValidationError as exc:
            raise InvalidCredential(InvalidCredential.MALFORMED, "token claims do not match schema") from exc

    def validate_access(self, token: str) -> TokenClaims:
        return self._validate(token, ACCESS_TOKEN)

    def validate_refresh(self, token: str) -> TokenClaims:
        return self._validate(token, REFRESH_TOKEN)

    async def current_org_role(
        self, db: AsyncSession, user_id: int, tenant_id: int, org_id: int
    ) -> Optional[str]:
        """Role of ``user_id`` in an active organization of ``tenant_id``, or None."""
        if not org_id:
            return None
        result = await db.execute(
            select(OrganizationMember.role)
            .join(Organization, Organization.id == OrganizationMember.organization_id)
            .where(
                OrganizationMember.organization_id == org_id,
                OrganizationMember.user_id == user_id,
                Organization.app_id == tenant_id,
                Organization.is_active.is_(True),
            )
        )
        role = result.scalar_one_or_none()
        return role.value if role is not None else None

    async def issue_pair(
        self, db: AsyncSession, user: User, tenant_id: int, org_id: int = 0
    ) -> Tuple[str, str]:
        """Issue both tokens, deriving the organization role from the store."""
        role = await self.current_org_role(db, user.id, tenant_id, org_id)
        if role is None:
            if org_id:
                logger.info(f"User {user.id} is no longer a member of org {org_id}; dropping org scope")
            org_id, role = 0, ""
        access = self.issue_access(user.id, tenant_id, org_id, role)
        refresh = self.issue_refresh(user.id, tenant_id, org_id)
        return access, refresh

    async def refresh(
        self, db: AsyncSession, refresh_token: str, tenant_id: Optional[int] = None
    ) -> TokenPair:
        claims = self.validate_refresh(refresh_token)
        if tenant_id is not None and claims.app_id != tenant_id:
            raise InvalidCredential(
                InvalidCredential.TENANT_MISMATCH,
                f"refresh token for app {claims.app_id} presented to app {tenant_id}",
            )

        user = await db.get(User, claims.user_id)
        if not user:
            raise InvalidCredential(UNKNOWN_USER, f"user {claims.user_id} not found")
        if not user.is_active:
            raise Forbidden("User is disabled")

        access, refresh = await self.issue_pair(db, user, claims.app_id, claims.org_id)
        return TokenPair(access_token=access, refresh_token=refresh, user=user)
