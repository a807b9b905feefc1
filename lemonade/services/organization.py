"""
Organization membership engine.

Handles:
- Creating organizations together with the founding OWNER membership
- Invitations: issue, accept, revoke, expire
- Role changes and member removal
- Owner/admin permission checks

Every mutating operation takes the acting user's id and checks the acting
user's role itself, so callers cannot skip the permission check. The two
multi-row writes (organization + owner, membership + accepted invitation)
are committed as a single transaction and rolled back together on failure.
"""

import logging
import secrets
from datetime import timedelta
from typing import Dict, List, Optional, Tuple

from sqlalchemy import func, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from lemonade.core.db import utcnow
from lemonade.core.exceptions import Conflict, Forbidden, InvitationExpired, NotFound
from lemonade.models.organization import (
    InvitationStatus,
    Organization,
    OrganizationInvitation,
    OrganizationMember,
    OrgRole,
)

logger = logging.getLogger(__name__)

# Token expiration in days
INVITATION_EXPIRY_DAYS = 7
INVITATION_TOKEN_BYTES = 32

ADMIN_ROLES = (OrgRole.OWNER, OrgRole.ADMIN)


class OrganizationService:
    def __init__(self, db: AsyncSession):
        self.db = db

    # ------------------------------------------------------------------
    # Lookups
    # ------------------------------------------------------------------

    async def get_organization(self, org_id: int, app_id: Optional[int] = None) -> Organization:
        query = select(Organization).where(Organization.id == org_id)
        if app_id is not None:
            query = query.where(Organization.app_id == app_id)
        result = await self.db.execute(query)
        org = result.scalar_one_or_none()
        if not org:
            raise NotFound("Organization not found")
        return org

    async def list_by_user(self, user_id: int, app_id: int) -> List[Tuple[Organization, OrgRole]]:
        result = await self.db.execute(
            select(Organization, OrganizationMember.role)
            .join(OrganizationMember, OrganizationMember.organization_id == Organization.id)
            .where(OrganizationMember.user_id == user_id, Organization.app_id == app_id)
            .order_by(Organization.id)
        )
        return [(row[0], row[1]) for row in result.all()]

    async def get_member(self, org_id: int, user_id: int) -> Optional[OrganizationMember]:
        result = await self.db.execute(
            select(OrganizationMember).where(
                OrganizationMember.organization_id == org_id,
                OrganizationMember.user_id == user_id,
            )
        )
        return result.scalar_one_or_none()

    async def is_owner(self, org_id: int, user_id: int) -> bool:
        member = await self.get_member(org_id, user_id)
        return member is not None and member.role == OrgRole.OWNER

    async def is_admin(self, org_id: int, user_id: int) -> bool:
        member = await self.get_member(org_id, user_id)
        return member is not None and member.role in ADMIN_ROLES

    async def _require_member(self, org_id: int, user_id: int) -> OrganizationMember:
        member = await self.get_member(org_id, user_id)
        if member is None:
            raise Forbidden("Not a member of this organization")
        return member

    async def _require_admin(self, org_id: int, user_id: int) -> OrganizationMember:
        member = await self.get_member(org_id, user_id)
        if member is None or member.role not in ADMIN_ROLES:
            logger.warning(f"Permission denied: user={user_id} org={org_id} required=ADMIN")
            raise Forbidden("Permission denied")
        return member

    async def _require_owner(self, org_id: int, user_id: int) -> OrganizationMember:
        member = await self.get_member(org_id, user_id)
        if member is None or member.role != OrgRole.OWNER:
            logger.warning(f"Permission denied: user={user_id} org={org_id} required=OWNER")
            raise Forbidden("Only the owner can perform this action")
        return member

    async def _owner_count(self, org_id: int) -> int:
        result = await self.db.execute(
            select(func.count(OrganizationMember.id)).where(
                OrganizationMember.organization_id == org_id,
                OrganizationMember.role == OrgRole.OWNER,
            )
        )
        return result.scalar() or 0

    # ------------------------------------------------------------------
    # Organizations
    # ------------------------------------------------------------------

    async def _slug_taken(self, app_id: int, slug: str, exclude_id: Optional[int] = None) -> bool:
        query = select(Organization.id).where(Organization.app_id == app_id, Organization.slug == slug)
        if exclude_id is not None:
            query = query.where(Organization.id != exclude_id)
        result = await self.db.execute(query)
        return result.first() is not None

    async def _add_member(self, org_id: int, user_id: int, role: OrgRole) -> OrganizationMember:
        member = OrganizationMember(organization_id=org_id, user_id=user_id, role=role)
        self.db.add(member)
        await self.db.flush()
        return member

    async def create_organization(
        self,
        app_id: int,
        creator_id: int,
        name: str,
        slug: str,
        description: Optional[str] = None,
        logo_url: Optional[str] = None,
    ) -> Organization:
        """Create an organization and its founding OWNER membership atomically."""
        if await self._slug_taken(app_id, slug):
            raise Conflict("Organization with this slug already exists")

        org = Organization(
            app_id=app_id,
            name=name,
            slug=slug,
            description=description,
            logo_url=logo_url,
            is_active=True,
        )
        try:
            self.db.add(org)
            await self.db.flush()  # Get the organization ID
            await self._add_member(org.id, creator_id, OrgRole.OWNER)
            await self.db.commit()
        except IntegrityError as exc:
            await self.db.rollback()
            logger.warning(f"Organization create conflict app={app_id} slug={slug}: {exc.orig}")
            raise Conflict("Organization with this slug already exists") from exc
        except Exception:
            await self.db.rollback()
            raise

        await self.db.refresh(org)
        logger.info(f"Organization {org.id} created in app {app_id} by user {creator_id}")
        return org

    async def update_organization(
        self,
        org_id: int,
        actor_id: int,
        app_id: int,
        name: Optional[str] = None,
        description: Optional[str] = None,
        logo_url: Optional[str] = None,
    ) -> Organization:
        org = await self.get_organization(org_id, app_id)
        await self._require_admin(org.id, actor_id)

        if name is not None:
            org.name = name
        if description is not None:
            org.description = description
        if logo_url is not None:
            org.logo_url = logo_url

        await self.db.commit()
        await self.db.refresh(org)
        return org

    async def delete_organization(self, org_id: int, actor_id: int, app_id: int) -> None:
        org = await self.get_organization(org_id, app_id)
        await self._require_owner(org.id, actor_id)
        await self.db.delete(org)
        await self.db.commit()
        logger.info(f"Organization {org_id} deleted by user {actor_id}")

    # ------------------------------------------------------------------
    # Members
    # ------------------------------------------------------------------

    async def list_members(self, org_id: int, actor_id: int, app_id: int) -> List[OrganizationMember]:
        org = await self.get_organization(org_id, app_id)
        await self._require_member(org.id, actor_id)
        result = await self.db.execute(
            select(OrganizationMember)
            .options(selectinload(OrganizationMember.user))
            .where(OrganizationMember.organization_id == org.id)
            .order_by(OrganizationMember.id)
        )
        return list(result.scalars().all())

    async def _member_in_org(self, org_id: int, member_id: int) -> OrganizationMember:
        result = await self.db.execute(
            select(OrganizationMember).where(
                OrganizationMember.id == member_id,
                OrganizationMember.organization_id == org_id,
            )
        )
        member = result.scalar_one_or_none()
        if not member:
            raise NotFound("Member not found")
        return member

    async def remove_member(self, org_id: int, actor_id: int, member_id: int, app_id: int) -> None:
        org = await self.get_organization(org_id, app_id)
        actor = await self._require_admin(org.id, actor_id)
        member = await self._member_in_org(org.id, member_id)

        if member.role == OrgRole.OWNER:
            if actor.role != OrgRole.OWNER:
                raise Forbidden("Only the owner can remove an owner")
            if await self._owner_count(org.id) <= 1:
                raise Conflict("An organization must keep at least one owner")

        await self.db.delete(member)
        await self.db.commit()
        logger.info(f"Member {member_id} removed from org {org_id} by user {actor_id}")

    async def update_member_role(
        self, org_id: int, actor_id: int, member_id: int, role: OrgRole, app_id: int
    ) -> OrganizationMember:
        org = await self.get_organization(org_id, app_id)
        await self._require_owner(org.id, actor_id)
        member = await self._member_in_org(org.id, member_id)

        if member.role == OrgRole.OWNER and role != OrgRole.OWNER:
            if await self._owner_count(org.id) <= 1:
                raise Conflict("An organization must keep at least one owner")

        member.role = role
        await self.db.commit()
        await self.db.refresh(member)
        return member

    # ------------------------------------------------------------------
    # Invitations
    # ------------------------------------------------------------------

    async def _expire_old_invitations(self, org_id: int) -> None:
        """Mark expired invitations."""
        now = utcnow()
        result = await self.db.execute(
            select(OrganizationInvitation).where(
                OrganizationInvitation.organization_id == org_id,
                OrganizationInvitation.status == InvitationStatus.PENDING,
                OrganizationInvitation.expires_at < now,
            )
        )
        expired = result.scalars().all()

        for inv in expired:
            inv.status = InvitationStatus.EXPIRED

        if expired:
            await self.db.commit()

    async def list_invitations(
        self, org_id: int, actor_id: int, app_id: int
    ) -> List[OrganizationInvitation]:
        org = await self.get_organization(org_id, app_id)
        await self._require_admin(org.id, actor_id)
        await self._expire_old_invitations(org.id)
        result = await self.db.execute(
            select(OrganizationInvitation)
            .where(OrganizationInvitation.organization_id == org.id)
            .order_by(OrganizationInvitation.id.desc())
        )
        return list(result.scalars().all())

    async def create_invitation(
        self,
        org_id: int,
        inviter_id: int,
        email: str,
        role: OrgRole = OrgRole.MEMBER,
        app_id: Optional[int] = None,
    ) -> OrganizationInvitation:
        org = await self.get_organization(org_id, app_id)
        inviter = await self._require_admin(org.id, inviter_id)
        if role == OrgRole.OWNER and inviter.role != OrgRole.OWNER:
            raise Forbidden("Only the owner can invite another owner")

        email = email.lower()
        existing = await self.db.execute(
            select(OrganizationInvitation.id).where(
                OrganizationInvitation.organization_id == org.id,
                OrganizationInvitation.email == email,
                OrganizationInvitation.status == InvitationStatus.PENDING,
                OrganizationInvitation.expires_at >= utcnow(),
            )
        )
        if existing.first() is not None:
            raise Conflict("A pending invitation already exists for this email")

        invitation = OrganizationInvitation(
            organization_id=org.id,
            invited_by_id=inviter_id,
            email=email,
            role=role,
            token=secrets.token_hex(INVITATION_TOKEN_BYTES),
            status=InvitationStatus.PENDING,
            expires_at=utcnow() + timedelta(days=INVITATION_EXPIRY_DAYS),
        )
        self.db.add(invitation)
        await self.db.commit()
        await self.db.refresh(invitation)

        logger.info(f"Invitation {invitation.id} created for org {org.id} by user {inviter_id}")
        return invitation

    async def accept_invitation(
        self, user_id: int, token: str, app_id: Optional[int] = None
    ) -> Organization:
        """
        Accept a PENDING invitation.

        Raises:
            NotFound: no PENDING invitation with this token (in this app).
            InvitationExpired: the invitation was past its expiry; it is
                marked EXPIRED as a side effect.
            Conflict: the user is already a member; the invitation stays PENDING.
        """
        query = (
            select(OrganizationInvitation)
            .options(selectinload(OrganizationInvitation.organization))
            .where(
                OrganizationInvitation.token == token,
                OrganizationInvitation.status == InvitationStatus.PENDING,
            )
        )
        if app_id is not None:
            query = query.join(
                Organization, Organization.id == OrganizationInvitation.organization_id
            ).where(Organization.app_id == app_id)

        result = await self.db.execute(query)
        invitation = result.scalar_one_or_none()
        if not invitation:
            raise NotFound("Invalid or expired invitation")

        organization = invitation.organization

        if invitation.expires_at < utcnow():
            invitation.status = InvitationStatus.EXPIRED
            await self.db.commit()
            logger.info(f"Invitation {invitation.id} expired on access")
            raise InvitationExpired()

        if await self.get_member(organization.id, user_id) is not None:
            raise Conflict("Already a member of this organization")

        try:
            # Claim the token first; only one transaction can move it off PENDING
            claimed = await self.db.execute(
                update(OrganizationInvitation)
                .where(
                    OrganizationInvitation.id == invitation.id,
                    OrganizationInvitation.status == InvitationStatus.PENDING,
                )
                .values(status=InvitationStatus.ACCEPTED, accepted_at=utcnow())
            )
            if claimed.rowcount != 1:
                logger.warning(f"Invitation {invitation.id} was consumed by a concurrent accept")
                await self.db.rollback()
                raise NotFound("Invalid or expired invitation")

            await self._add_member(organization.id, user_id, invitation.role)
            await self.db.commit()
        except NotFound:
            raise
        except IntegrityError as exc:
            await self.db.rollback()
            raise Conflict("Already a member of this organization") from exc
        except Exception:
            await self.db.rollback()
            raise

        logger.info(f"User {user_id} joined org {organization.id} via invitation {invitation.id}")
        return organization

    async def revoke_invitation(
        self, org_id: int, actor_id: int, invitation_id: int, app_id: Optional[int] = None
    ) -> OrganizationInvitation:
        org = await self.get_organization(org_id, app_id)
        await self._require_admin(org.id, actor_id)

        result = await self.db.execute(
            select(OrganizationInvitation).where(
                OrganizationInvitation.id == invitation_id,
                OrganizationInvitation.organization_id == org.id,
                OrganizationInvitation.status == InvitationStatus.PENDING,
            )
        )
        invitation = result.scalar_one_or_none()
        if not invitation:
            raise NotFound("Invitation not found or already processed")

        invitation.status = InvitationStatus.REVOKED
        await self.db.commit()
        await self.db.refresh(invitation)
        return invitation

    # ------------------------------------------------------------------
    # Admin console
    # ------------------------------------------------------------------

    async def list_for_app(self, app_id: int) -> List[Tuple[Organization, int]]:
        """Organizations of a tenant with their member counts."""
        result = await self.db.execute(
            select(Organization)
            .where(Organization.app_id == app_id)
            .order_by(Organization.created_at.desc(), Organization.id.desc())
        )
        orgs = list(result.scalars().all())

        counts: Dict[int, int] = {}
        if orgs:
            count_result = await self.db.execute(
                select(OrganizationMember.organization_id, func.count(OrganizationMember.id))
                .where(OrganizationMember.organization_id.in_([o.id for o in orgs]))
                .group_by(OrganizationMember.organization_id)
            )
            counts = {row[0]: row[1] for row in count_result.all()}

        return [(org, counts.get(org.id, 0)) for org in orgs]

    async def count_members(self, org_id: int) -> int:
        result = await self.db.execute(
            select(func.count(OrganizationMember.id)).where(OrganizationMember.organization_id == org_id)
        )
        return result.scalar() or 0

    async def toggle_status(self, app_id: int, org_id: int) -> Organization:
        org = await self.get_organization(org_id, app_id)
        org.is_active = not org.is_active
        await self.db.commit()
        await self.db.refresh(org)
        return org

    async def admin_delete(self, app_id: int, org_id: int) -> None:
        org = await self.get_organization(org_id, app_id)
        await self.db.delete(org)
        await self.db.commit()
