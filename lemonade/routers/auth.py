import logging
from typing import Annotated

from fastapi import APIRouter, Depends, Request, status

from lemonade.api.deps import CurrentContext, CurrentTenant, OptionalContext, get_auth_service
from lemonade.middleware.security import limiter
from lemonade.schemas.auth import (
    AuthResponse,
    DeviceLoginRequest,
    LoginRequest,
    MeResponse,
    RefreshTokenRequest,
    SessionStatusResponse,
    SignupRequest,
    SwitchOrganizationRequest,
)
from lemonade.services.auth import AuthService

router = APIRouter()
logger = logging.getLogger(__name__)

Service = Annotated[AuthService, Depends(get_auth_service)]


@router.post("/signup", response_model=AuthResponse, status_code=status.HTTP_201_CREATED)
@limiter.limit("5/minute")
async def signup(request: Request, payload: SignupRequest, tenant: CurrentTenant, service: Service) -> AuthResponse:
    """
    Create an email/password account linked to the calling app.

    Rate limited to 5 requests per minute to prevent abuse.
    """
    return await service.signup(tenant, payload.email, payload.password, payload.name)


@router.post("/login", response_model=AuthResponse)
@limiter.limit("10/minute")
async def login(request: Request, payload: LoginRequest, tenant: CurrentTenant, service: Service) -> AuthResponse:
    return await service.login(tenant, payload.email, payload.password)


@router.post("/device", response_model=AuthResponse)
async def device_login(payload: DeviceLoginRequest, tenant: CurrentTenant, service: Service) -> AuthResponse:
    """Sign in (or silently register) an anonymous device."""
    return await service.device_login(tenant, payload.device_id)


@router.post("/refresh", response_model=AuthResponse)
@limiter.limit("30/minute")
async def refresh_token(request: Request, payload: RefreshTokenRequest, tenant: CurrentTenant, service: Service) -> AuthResponse:
    return await service.refresh(payload.refresh_token, tenant)


@router.get("/me", response_model=MeResponse)
async def get_me(context: CurrentContext, service: Service) -> MeResponse:
    return service.get_me(context.user, context.claims)


@router.get("/status", response_model=SessionStatusResponse)
async def session_status(context: OptionalContext) -> SessionStatusResponse:
    """Works with or without a bearer token; reports who, if anyone, is signed in."""
    return SessionStatusResponse(
        app_id=context.tenant.id,
        authenticated=context.is_authenticated,
        user_id=context.user.id if context.user else None,
        org_id=context.claims.org_id if context.claims else 0,
    )


@router.post("/switch-organization", response_model=AuthResponse)
async def switch_organization(
    payload: SwitchOrganizationRequest,
    context: CurrentContext,
    service: Service,
) -> AuthResponse:
    """Reissue tokens scoped to an organization; ``org_id = 0`` for the personal scope."""
    return await service.switch_organization(context.user, context.tenant, payload.org_id)
