"""
Admin console API.

Operators sign in with Google; the session lives in an httponly cookie and
every ``/admin/api`` route requires it. These routes are not tenant-scoped:
the app being managed is named in the path.
"""

import logging
from typing import Annotated, List

from fastapi import APIRouter, Depends, Request, Response, status

from lemonade.api.deps import (
    AppSettings,
    CurrentAdmin,
    get_admin_authority,
    get_organization_service,
    get_session_authority,
    get_tenant_service,
)
from lemonade.core.exceptions import Forbidden, NotFound
from lemonade.middleware.security import limiter
from lemonade.schemas.admin import (
    AdminMeResponse,
    AdminOrganizationCreate,
    AdminOrganizationResponse,
    AppResponse,
    AppUserResponse,
    GeneratedTokenResponse,
    GoogleAuthRequest,
)
from lemonade.services.admin_auth import AdminSessionAuthority
from lemonade.services.organization import OrganizationService
from lemonade.services.session import SessionAuthority
from lemonade.services.tenant_service import TenantService

router = APIRouter()
logger = logging.getLogger(__name__)

Authority = Annotated[AdminSessionAuthority, Depends(get_admin_authority)]
Tenants = Annotated[TenantService, Depends(get_tenant_service)]
Organizations = Annotated[OrganizationService, Depends(get_organization_service)]
Sessions = Annotated[SessionAuthority, Depends(get_session_authority)]


# ----------------------------------------------------------------------
# Sign-in / sign-out
# ----------------------------------------------------------------------

@router.post("/auth/google", response_model=AdminMeResponse)
@limiter.limit("10/minute")
async def google_auth(request: Request, payload: GoogleAuthRequest, response: Response, authority: Authority) -> AdminMeResponse:
    identity = await authority.verify_external_identity(payload.id_token)
    if not authority.is_allowlisted(identity.email):
        logger.warning(f"Admin sign-in refused for {identity.email}: not allowlisted")
        raise Forbidden("Access denied: email not in admin list")

    token = authority.issue_admin_session(identity.email, identity.name)
    response.set_cookie(value=token, **authority.cookie_params())
    logger.info(f"Admin sign-in: {identity.email}")
    return AdminMeResponse(email=identity.email, name=identity.name)


def _clear_session(response: Response, settings: AppSettings) -> dict:
    response.delete_cookie(settings.admin_cookie_name, path="/")
    return {"message": "Logged out"}


@router.get("/logout")
async def logout(response: Response, settings: AppSettings) -> dict:
    return _clear_session(response, settings)


@router.post("/api/logout")
async def api_logout(response: Response, settings: AppSettings) -> dict:
    return _clear_session(response, settings)


@router.get("/api/me", response_model=AdminMeResponse)
async def get_me(admin: CurrentAdmin) -> AdminMeResponse:
    return AdminMeResponse(email=admin.email, name=admin.name)


# ----------------------------------------------------------------------
# Apps and users
# ----------------------------------------------------------------------

@router.get("/api/apps", response_model=List[AppResponse])
async def list_apps(admin: CurrentAdmin, tenants: Tenants) -> List[AppResponse]:
    return [AppResponse.model_validate(app) for app in await tenants.list_apps()]


@router.get("/api/apps/{app_id}", response_model=AppResponse)
async def get_app(app_id: int, admin: CurrentAdmin, tenants: Tenants) -> AppResponse:
    return AppResponse.model_validate(await tenants.get_app(app_id))


@router.get("/api/apps/{app_id}/users", response_model=List[AppUserResponse])
async def list_app_users(app_id: int, admin: CurrentAdmin, tenants: Tenants) -> List[AppUserResponse]:
    rows = await tenants.list_app_users(app_id)
    return [
        AppUserResponse(
            id=user.id,
            email=user.email,
            name=user.name,
            device_id=user.device_id,
            is_active=user.is_active,
            enabled_at=link.enabled_at,
            last_login_at=user.last_login_at,
        )
        for user, link in rows
    ]


@router.post("/api/apps/{app_id}/users/{user_id}/generate-token", response_model=GeneratedTokenResponse)
async def generate_token(
    app_id: int, user_id: int, admin: CurrentAdmin, tenants: Tenants, sessions: Sessions
) -> GeneratedTokenResponse:
    """Issue a personal-scope token pair for a user of the app (support/debugging)."""
    await tenants.get_app(app_id)
    if not await tenants.is_linked(user_id, app_id):
        raise NotFound("User not found in this app")

    logger.warning(f"Admin {admin.email} generated tokens for user {user_id} in app {app_id}")
    return GeneratedTokenResponse(
        access_token=sessions.issue_access(user_id, app_id),
        refresh_token=sessions.issue_refresh(user_id, app_id),
        expires_in=sessions.access_expires_in,
    )


# ----------------------------------------------------------------------
# Organizations
# ----------------------------------------------------------------------

@router.get("/api/apps/{app_id}/organizations", response_model=List[AdminOrganizationResponse])
async def list_organizations(
    app_id: int, admin: CurrentAdmin, tenants: Tenants, organizations: Organizations
) -> List[AdminOrganizationResponse]:
    await tenants.get_app(app_id)
    rows = await organizations.list_for_app(app_id)
    return [
        AdminOrganizationResponse(
            id=org.id,
            name=org.name,
            slug=org.slug,
            description=org.description,
            is_active=org.is_active,
            member_count=count,
            created_at=org.created_at,
        )
        for org, count in rows
    ]


@router.post(
    "/api/apps/{app_id}/organizations",
    response_model=AdminOrganizationResponse,
    status_code=status.HTTP_201_CREATED,
)
async def create_organization(
    app_id: int,
    payload: AdminOrganizationCreate,
    admin: CurrentAdmin,
    tenants: Tenants,
    organizations: Organizations,
) -> AdminOrganizationResponse:
    await tenants.get_app(app_id)
    if not await tenants.is_linked(payload.owner_user_id, app_id):
        raise NotFound("User not found in this app")

    org = await organizations.create_organization(
        app_id=app_id,
        creator_id=payload.owner_user_id,
        name=payload.name,
        slug=payload.slug,
        description=payload.description,
    )
    logger.info(f"Admin {admin.email} created org {org.id} in app {app_id}")
    return AdminOrganizationResponse(
        id=org.id,
        name=org.name,
        slug=org.slug,
        description=org.description,
        is_active=org.is_active,
        member_count=1,
        created_at=org.created_at,
    )


@router.post("/api/apps/{app_id}/organizations/{org_id}/toggle-status", response_model=AdminOrganizationResponse)
async def toggle_organization_status(
    app_id: int, org_id: int, admin: CurrentAdmin, organizations: Organizations
) -> AdminOrganizationResponse:
    org = await organizations.toggle_status(app_id, org_id)
    logger.info(f"Admin {admin.email} set org {org_id} active={org.is_active}")
    return AdminOrganizationResponse(
        id=org.id,
        name=org.name,
        slug=org.slug,
        description=org.description,
        is_active=org.is_active,
        member_count=await organizations.count_members(org.id),
        created_at=org.created_at,
    )


@router.delete("/api/apps/{app_id}/organizations/{org_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_organization(app_id: int, org_id: int, admin: CurrentAdmin, organizations: Organizations) -> None:
    await organizations.admin_delete(app_id, org_id)
    logger.info(f"Admin {admin.email} deleted org {org_id} in app {app_id}")
