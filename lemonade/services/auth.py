from __future__ import annotations

import logging
from typing import Optional

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from lemonade.core.config import Settings
from lemonade.core.db import utcnow
from lemonade.core.exceptions import Conflict, Forbidden, InvalidCredential, NotFound
from lemonade.core.security import hash_password, verify_password
from lemonade.models.tenant import App
from lemonade.models.user import User, UserApp
from lemonade.schemas.auth import AuthResponse, MeResponse, TokenClaims, UserResponse
from lemonade.services.session import SessionAuthority

logger = logging.getLogger(__name__)

DEVICE_EMAIL_DOMAIN = "device.local"


class AuthService:
    def __init__(self, db: AsyncSession, settings: Settings) -> None:
        self.db = db
        self.settings = settings
        self.sessions = SessionAuthority(settings)

    # ------------------------------------------------------------------
    # User store
    # ------------------------------------------------------------------

    async def get_user(self, user_id: int) -> User:
        user = await self.db.get(User, user_id)
        if not user:
            raise NotFound("User not found")
        return user

    async def find_user_by(
        self,
        email: Optional[str] = None,
        device_id: Optional[str] = None,
        external_id: Optional[str] = None,
    ) -> Optional[User]:
        """Look a user up by exactly one identity field."""
        given = [v for v in (email, device_id, external_id) if v is not None]
        if len(given) != 1:
            raise ValueError("find_user_by takes exactly one of email, device_id, external_id")

        if email is not None:
            query = select(User).where(User.email == email.lower())
        elif device_id is not None:
            query = select(User).where(User.device_id == device_id)
        else:
            query = select(User).where(User.google_id == external_id)

        result = await self.db.execute(query)
        return result.scalar_one_or_none()

    async def _ensure_link(self, user_id: int, app_id: int) -> None:
        result = await self.db.execute(
            select(UserApp.id).where(UserApp.user_id == user_id, UserApp.app_id == app_id)
        )
        if result.scalar_one_or_none() is None:
            self.db.add(UserApp(user_id=user_id, app_id=app_id))
            logger.info(f"Linked user {user_id} to app {app_id}")

    async def _session_for(self, user: User, tenant_id: int, org_id: int = 0) -> AuthResponse:
        access, refresh = await self.sessions.issue_pair(self.db, user, tenant_id, org_id)
        return AuthResponse(
            access_token=access,
            refresh_token=refresh,
            expires_in=self.sessions.access_expires_in,
            user=UserResponse.model_validate(user),
        )

    # ------------------------------------------------------------------
    # Account operations
    # ------------------------------------------------------------------

    async def signup(self, tenant: App, email: str, password: str, name: Optional[str] = None) -> AuthResponse:
        email = email.lower()
        if await self.find_user_by(email=email):
            raise Conflict("Email already registered")

        user = User(
            email=email,
            password_hash=hash_password(password),
            name=name,
            is_active=True,
            is_verified=False,
        )
        try:
            self.db.add(user)
            await self.db.flush()  # Get the user ID before linking
            self.db.add(UserApp(user_id=user.id, app_id=tenant.id))
            await self.db.commit()
        except IntegrityError as exc:
            await self.db.rollback()
            raise Conflict("Email already registered") from exc

        await self.db.refresh(user)
        logger.info(f"User {user.id} signed up in app {tenant.id}")
        return await self._session_for(user, tenant.id)

    async def login(self, tenant: App, email: str, password: str) -> AuthResponse:
        user = await self.find_user_by(email=email)
        if not user or not verify_password(password, user.password_hash):
            raise InvalidCredential(InvalidCredential.BAD_PASSWORD, f"password login failed for app {tenant.id}")
        if not user.is_active:
            logger.warning(f"Login attempt for disabled user {user.id}")
            raise Forbidden("User is disabled")

        user.last_login_at = utcnow()
        await self._ensure_link(user.id, tenant.id)
        await self.db.commit()
        await self.db.refresh(user)
        return await self._session_for(user, tenant.id)

    async def device_login(self, tenant: App, device_id: str) -> AuthResponse:
        user = await self.find_user_by(device_id=device_id)
        if user is None:
            user = User(
                email=f"{device_id}@{DEVICE_EMAIL_DOMAIN}",
                device_id=device_id,
                is_active=True,
                is_verified=False,
            )
            self.db.add(user)
            try:
                await self.db.flush()
            except IntegrityError as exc:
                await self.db.rollback()
                raise Conflict("Device already registered") from exc
            logger.info(f"Created device user {user.id}")
        elif not user.is_active:
            logger.warning(f"Device login for disabled user {user.id}")
            raise Forbidden("User is disabled")

        user.last_login_at = utcnow()
        await self._ensure_link(user.id, tenant.id)
        await self.db.commit()
        await self.db.refresh(user)
        return await self._session_for(user, tenant.id)

    async def refresh(self, refresh_token: str, tenant: Optional[App] = None) -> AuthResponse:
        pair = await self.sessions.refresh(self.db, refresh_token, tenant.id if tenant else None)
        return AuthResponse(
            access_token=pair.access_token,
            refresh_token=pair.refresh_token,
            expires_in=self.sessions.access_expires_in,
            user=UserResponse.model_validate(pair.user),
        )

    async def switch_organization(self, user: User, tenant: App, org_id: int) -> AuthResponse:
        """Reissue tokens scoped to ``org_id``; 0 returns to the personal scope."""
        if org_id:
            role = await self.sessions.current_org_role(self.db, user.id, tenant.id, org_id)
            if role is None:
                raise Forbidden("Not a member of this organization")
        return await self._session_for(user, tenant.id, org_id)

    def get_me(self, user: User, claims: TokenClaims) -> MeResponse:
        return MeResponse(
            user=UserResponse.model_validate(user),
            app_id=claims.app_id,
            org_id=claims.org_id,
            org_role=claims.org_role,
        )
