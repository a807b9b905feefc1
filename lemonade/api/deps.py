"""
Request authorization policies.

Each policy is a FastAPI dependency that builds the request-scoped identity
and hands it to the route handler as a parameter:

- ``get_current_tenant``   tenant only (API key header)
- ``get_current_context``  tenant + required end-user session
- ``get_optional_context`` tenant + optional end-user session
- ``get_current_admin``    admin cookie, not tenant-scoped

The tenant gate always runs before the bearer token is looked at, so an
inactive tenant is rejected with 403 even when the token would be valid.
"""

import logging
from typing import Annotated, Optional

from fastapi import Depends, Request
from sqlalchemy.ext.asyncio import AsyncSession

from lemonade.core.config import Settings, get_settings
from lemonade.core.context import AdminContext, AuthenticatedContext
from lemonade.core.db import get_db
from lemonade.core.exceptions import Forbidden, InvalidCredential, NotFound, Unauthorized
from lemonade.models.tenant import App
from lemonade.services.admin_auth import AdminSessionAuthority, GoogleIdentityVerifier
from lemonade.services.auth import AuthService
from lemonade.services.organization import OrganizationService
from lemonade.services.session import UNKNOWN_USER, SessionAuthority
from lemonade.services.tenant_service import TenantService

logger = logging.getLogger(__name__)

DbSession = Annotated[AsyncSession, Depends(get_db)]
AppSettings = Annotated[Settings, Depends(get_settings)]


# ----------------------------------------------------------------------
# Service providers
# ----------------------------------------------------------------------

def get_session_authority(settings: AppSettings) -> SessionAuthority:
    return SessionAuthority(settings)


def get_identity_verifier(settings: AppSettings) -> GoogleIdentityVerifier:
    return GoogleIdentityVerifier(settings.google_tokeninfo_url, settings.identity_provider_timeout_seconds)


def get_admin_authority(
    settings: AppSettings,
    verifier: Annotated[GoogleIdentityVerifier, Depends(get_identity_verifier)],
) -> AdminSessionAuthority:
    return AdminSessionAuthority(settings, verifier)


def get_auth_service(db: DbSession, settings: AppSettings) -> AuthService:
    return AuthService(db, settings)


def get_organization_service(db: DbSession) -> OrganizationService:
    return OrganizationService(db)


def get_tenant_service(db: DbSession) -> TenantService:
    return TenantService(db)


# ----------------------------------------------------------------------
# Policies
# ----------------------------------------------------------------------

def _bearer_token(request: Request) -> Optional[str]:
    header = request.headers.get("Authorization")
    if not header:
        return None
    parts = header.split(" ")
    if len(parts) != 2 or parts[0].lower() != "bearer" or not parts[1]:
        return None
    return parts[1]


async def get_current_tenant(request: Request, db: DbSession, settings: AppSettings) -> App:
    api_key = request.headers.get(settings.api_key_header)
    if not api_key:
        raise Unauthorized("API key required")

    try:
        tenant = await TenantService(db).resolve(api_key)
    except NotFound:
        logger.warning(f"Unknown API key on {request.method} {request.url.path}")
        raise Unauthorized("Invalid API key")

    if not tenant.is_active:
        logger.warning(f"Request for inactive app {tenant.id}")
        raise Forbidden("App is disabled")
    return tenant


CurrentTenant = Annotated[App, Depends(get_current_tenant)]


async def _load_session_user(service: AuthService, tenant: App, token: str) -> AuthenticatedContext:
    claims = service.sessions.validate_access(token)
    if claims.app_id != tenant.id:
        raise InvalidCredential(
            InvalidCredential.TENANT_MISMATCH,
            f"token for app {claims.app_id} presented to app {tenant.id}",
        )

    try:
        user = await service.get_user(claims.user_id)
    except NotFound as exc:
        raise InvalidCredential(UNKNOWN_USER, f"user {claims.user_id} not found") from exc
    if not user.is_active:
        raise Forbidden("User is disabled")
    return AuthenticatedContext(tenant=tenant, user=user, claims=claims)


async def get_current_context(
    request: Request,
    tenant: CurrentTenant,
    service: Annotated[AuthService, Depends(get_auth_service)],
) -> AuthenticatedContext:
    token = _bearer_token(request)
    if not token:
        raise Unauthorized("Authorization header required")
    return await _load_session_user(service, tenant, token)


async def get_optional_context(
    request: Request,
    tenant: CurrentTenant,
    service: Annotated[AuthService, Depends(get_auth_service)],
) -> AuthenticatedContext:
    token = _bearer_token(request)
    if not token:
        return AuthenticatedContext(tenant=tenant)
    try:
        return await _load_session_user(service, tenant, token)
    except (InvalidCredential, Forbidden) as exc:
        logger.debug(f"Optional session ignored: {exc.message}")
        return AuthenticatedContext(tenant=tenant)


async def get_current_admin(
    request: Request,
    settings: AppSettings,
    authority: Annotated[AdminSessionAuthority, Depends(get_admin_authority)],
) -> AdminContext:
    token = request.cookies.get(settings.admin_cookie_name)
    if not token:
        raise Unauthorized("Admin session required")

    claims = authority.validate_admin_session(token)
    if not authority.is_allowlisted(claims.email):
        logger.warning(f"Admin session for {claims.email} is no longer allowlisted")
        raise Forbidden("Access denied")
    return AdminContext(email=claims.email, name=claims.name)


CurrentContext = Annotated[AuthenticatedContext, Depends(get_current_context)]
OptionalContext = Annotated[AuthenticatedContext, Depends(get_optional_context)]
CurrentAdmin = Annotated[AdminContext, Depends(get_current_admin)]
