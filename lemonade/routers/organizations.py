from typing import Annotated, List

from fastapi import APIRouter, Depends, status

from lemonade.api.deps import CurrentContext, get_organization_service
from lemonade.models.organization import OrganizationMember
from lemonade.schemas.organization import (
    InvitationAccept,
    InvitationCreate,
    InvitationCreatedResponse,
    InvitationResponse,
    MemberResponse,
    MemberRoleUpdate,
    MyOrganizationResponse,
    OrganizationCreate,
    OrganizationResponse,
    OrganizationUpdate,
)
from lemonade.services.organization import OrganizationService

router = APIRouter()

Service = Annotated[OrganizationService, Depends(get_organization_service)]


def _member_response(member: OrganizationMember) -> MemberResponse:
    return MemberResponse(
        id=member.id,
        user_id=member.user_id,
        role=member.role,
        email=member.user.email if member.user else None,
        name=member.user.name if member.user else None,
        joined_at=member.joined_at,
    )


@router.get("", response_model=List[MyOrganizationResponse])
async def list_my_organizations(context: CurrentContext, service: Service) -> List[MyOrganizationResponse]:
    rows = await service.list_by_user(context.user.id, context.tenant.id)
    return [
        MyOrganizationResponse.model_validate({**OrganizationResponse.model_validate(org).model_dump(), "role": role})
        for org, role in rows
    ]


@router.post("", response_model=OrganizationResponse, status_code=status.HTTP_201_CREATED)
async def create_organization(
    payload: OrganizationCreate, context: CurrentContext, service: Service
) -> OrganizationResponse:
    org = await service.create_organization(
        app_id=context.tenant.id,
        creator_id=context.user.id,
        name=payload.name,
        slug=payload.slug,
        description=payload.description,
        logo_url=payload.logo_url,
    )
    return OrganizationResponse.model_validate(org)


@router.post("/invitations/accept", response_model=OrganizationResponse)
async def accept_invitation(
    payload: InvitationAccept, context: CurrentContext, service: Service
) -> OrganizationResponse:
    org = await service.accept_invitation(context.user.id, payload.token, app_id=context.tenant.id)
    return OrganizationResponse.model_validate(org)


@router.get("/{org_id}", response_model=OrganizationResponse)
async def get_organization(org_id: int, context: CurrentContext, service: Service) -> OrganizationResponse:
    org = await service.get_organization(org_id, context.tenant.id)
    return OrganizationResponse.model_validate(org)


@router.put("/{org_id}", response_model=OrganizationResponse)
async def update_organization(
    org_id: int, payload: OrganizationUpdate, context: CurrentContext, service: Service
) -> OrganizationResponse:
    org = await service.update_organization(
        org_id,
        actor_id=context.user.id,
        app_id=context.tenant.id,
        name=payload.name,
        description=payload.description,
        logo_url=payload.logo_url,
    )
    return OrganizationResponse.model_validate(org)


@router.delete("/{org_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_organization(org_id: int, context: CurrentContext, service: Service) -> None:
    await service.delete_organization(org_id, actor_id=context.user.id, app_id=context.tenant.id)


@router.get("/{org_id}/members", response_model=List[MemberResponse])
async def list_members(org_id: int, context: CurrentContext, service: Service) -> List[MemberResponse]:
    members = await service.list_members(org_id, actor_id=context.user.id, app_id=context.tenant.id)
    return [_member_response(m) for m in members]


@router.delete("/{org_id}/members/{member_id}", status_code=status.HTTP_204_NO_CONTENT)
async def remove_member(org_id: int, member_id: int, context: CurrentContext, service: Service) -> None:
    await service.remove_member(org_id, actor_id=context.user.id, member_id=member_id, app_id=context.tenant.id)


@router.patch("/{org_id}/members/{member_id}/role", response_model=MemberResponse)
async def update_member_role(
    org_id: int, member_id: int, payload: MemberRoleUpdate, context: CurrentContext, service: Service
) -> MemberResponse:
    member = await service.update_member_role(
        org_id, actor_id=context.user.id, member_id=member_id, role=payload.role, app_id=context.tenant.id
    )
    return MemberResponse(
        id=member.id, user_id=member.user_id, role=member.role, joined_at=member.joined_at
    )


@router.get("/{org_id}/invitations", response_model=List[InvitationResponse])
async def list_invitations(org_id: int, context: CurrentContext, service: Service) -> List[InvitationResponse]:
    invitations = await service.list_invitations(org_id, actor_id=context.user.id, app_id=context.tenant.id)
    return [InvitationResponse.model_validate(inv) for inv in invitations]


@router.post(
    "/{org_id}/invitations",
    response_model=InvitationCreatedResponse,
    status_code=status.HTTP_201_CREATED,
)
async def create_invitation(
    org_id: int, payload: InvitationCreate, context: CurrentContext, service: Service
) -> InvitationCreatedResponse:
    invitation = await service.create_invitation(
        org_id,
        inviter_id=context.user.id,
        email=payload.email,
        role=payload.role,
        app_id=context.tenant.id,
    )
    return InvitationCreatedResponse.model_validate(invitation)


@router.post("/{org_id}/invitations/{invitation_id}/revoke", response_model=InvitationResponse)
async def revoke_invitation(
    org_id: int, invitation_id: int, context: CurrentContext, service: Service
) -> InvitationResponse:
    invitation = await service.revoke_invitation(
        org_id, actor_id=context.user.id, invitation_id=invitation_id, app_id=context.tenant.id
    )
    return InvitationResponse.model_validate(invitation)
