"""
Team service: team creation, membership invites, role changes, removal.

Team administration is gated on the caller's team role, read directly;
it never goes through project role resolution.
"""

from __future__ import annotations

import uuid

import structlog
from fastapi import HTTPException
from sqlalchemy.ext.asyncio import AsyncSession
from sqlmodel import select

from backoffice.authz import (
    CapabilityGate,
    NotFoundOrNoGrant,
    OwnerRoleImmutable,
    Principal,
    guard_self_target,
)
from backoffice.models.team import Team, TeamMember
from backoffice.models.user import User
from backoffice_shared.schemas.access import Capability
from backoffice_shared.schemas.common import Role, parse_role
from backoffice_shared.schemas.teams import (
    TeamCreateRequest,
    TeamInviteRequest,
    TeamMemberRoleUpdate,
)

log = structlog.get_logger()


def _member_dict(member: TeamMember, email: str | None) -> dict:
    return {
        "id": member.id,
        "team_id": member.team_id,
        "user_id": member.user_id,
        "email": email,
        "role": parse_role(member.role),
        "joined_at": member.created_at,
    }


async def _get_member_or_404(
    session: AsyncSession, team_id: uuid.UUID, member_id: uuid.UUID
) -> TeamMember:
    result = await session.execute(
        select(TeamMember).where(TeamMember.id == member_id, TeamMember.team_id == team_id)
    )
    member = result.scalar_one_or_none()
    if not member:
        raise HTTPException(status_code=404, detail="Member not found")
    return member


async def create_team(
    req: TeamCreateRequest, principal: Principal, session: AsyncSession
) -> Team:
    """Create a team; the creator becomes its single owner member."""
    team = Team(name=req.name, owner_id=principal.user_id)
    session.add(team)
    await session.flush()

    membership = TeamMember(team_id=team.id, user_id=principal.user_id, role=Role.OWNER.value)
    session.add(membership)
    await session.flush()

    log.info("team.created", team_id=str(team.id), owner=str(principal.user_id))
    return team


async def list_user_teams(principal: Principal, session: AsyncSession) -> list[dict]:
    """List all teams the caller belongs to, with their role."""
    result = await session.execute(
        select(Team, TeamMember.role)
        .join(TeamMember, TeamMember.team_id == Team.id)
        .where(TeamMember.user_id == principal.user_id)
        .order_by(Team.created_at)
    )
    return [
        {
            "id": team.id,
            "name": team.name,
            "owner_id": team.owner_id,
            "role": parse_role(role),
            "created_at": team.created_at,
        }
        for team, role in result.all()
    ]


async def get_team(
    team_id: uuid.UUID, principal: Principal, gate: CapabilityGate, session: AsyncSession
) -> dict:
    decision = await gate.authorize_team(principal, team_id, Capability.VIEW_TEAM)
    team = await session.get(Team, team_id)
    if not team:
        raise NotFoundOrNoGrant("Team")
    return {
        "id": team.id,
        "name": team.name,
        "owner_id": team.owner_id,
        "role": parse_role(decision.role),
        "created_at": team.created_at,
    }


async def list_team_members(
    team_id: uuid.UUID, principal: Principal, gate: CapabilityGate, session: AsyncSession
) -> list[dict]:
    await gate.authorize_team(principal, team_id, Capability.VIEW_TEAM)
    result = await session.execute(
        select(TeamMember, User.email)
        .join(User, User.id == TeamMember.user_id)
        .where(TeamMember.team_id == team_id)
        .order_by(TeamMember.created_at)
    )
    return [_member_dict(member, email) for member, email in result.all()]


async def invite_member(
    team_id: uuid.UUID,
    req: TeamInviteRequest,
    principal: Principal,
    gate: CapabilityGate,
    session: AsyncSession,
) -> dict:
    """Add an existing user to the team (admin or above)."""
    await gate.authorize_team(principal, team_id, Capability.INVITE_TO_TEAM)

    result = await session.execute(select(User).where(User.email == req.email.lower()))
    user = result.scalar_one_or_none()
    if not user:
        raise HTTPException(status_code=404, detail="No user found with that email")

    existing = await session.execute(
        select(TeamMember).where(TeamMember.team_id == team_id, TeamMember.user_id == user.id)
    )
    if existing.scalar_one_or_none():
        raise HTTPException(status_code=409, detail="User is already a team member")

    member = TeamMember(team_id=team_id, user_id=user.id, role=req.role.value)
    session.add(member)
    await session.flush()

    log.info(
        "team.member_added",
        team_id=str(team_id),
        user_id=str(user.id),
        role=req.role.value,
        invited_by=str(principal.user_id),
    )
    return _member_dict(member, user.email)


async def change_member_role(
    team_id: uuid.UUID,
    member_id: uuid.UUID,
    req: TeamMemberRoleUpdate,
    principal: Principal,
    gate: CapabilityGate,
    session: AsyncSession,
) -> dict:
    """Change another member's role; the actor must outrank both old and new role."""
    await gate.authorize_team(principal, team_id, Capability.VIEW_TEAM)
    member = await _get_member_or_404(session, team_id, member_id)
    guard_self_target(principal, member.user_id)

    await gate.authorize_team(
        principal,
        team_id,
        Capability.CHANGE_TEAM_ROLE,
        target_role=member.role,
        new_role=req.role,
    )

    previous = member.role
    member.role = req.role.value
    session.add(member)
    await session.flush()

    log.info(
        "team.member_role_changed",
        team_id=str(team_id),
        user_id=str(member.user_id),
        previous=previous,
        role=member.role,
        changed_by=str(principal.user_id),
    )
    user = await session.get(User, member.user_id)
    return _member_dict(member, user.email if user else None)


async def remove_member(
    team_id: uuid.UUID,
    member_id: uuid.UUID,
    principal: Principal,
    gate: CapabilityGate,
    session: AsyncSession,
) -> None:
    """Remove another member; the actor must outrank the target."""
    await gate.authorize_team(principal, team_id, Capability.VIEW_TEAM)
    member = await _get_member_or_404(session, team_id, member_id)
    guard_self_target(principal, member.user_id)

    await gate.authorize_team(
        principal, team_id, Capability.REMOVE_TEAM_MEMBER, target_role=member.role
    )

    await session.delete(member)
    await session.flush()
    log.info(
        "team.member_removed",
        team_id=str(team_id),
        user_id=str(member.user_id),
        removed_by=str(principal.user_id),
    )


async def leave_team(
    team_id: uuid.UUID, principal: Principal, session: AsyncSession
) -> None:
    """Drop the caller's own membership. The owner cannot leave."""
    result = await session.execute(
        select(TeamMember).where(
            TeamMember.team_id == team_id, TeamMember.user_id == principal.user_id
        )
    )
    member = result.scalar_one_or_none()
    if not member:
        raise NotFoundOrNoGrant("Team")
    if member.role == Role.OWNER.value:
        raise OwnerRoleImmutable("The team owner cannot leave the team")

    await session.delete(member)
    await session.flush()
    log.info("team.member_left", team_id=str(team_id), user_id=str(principal.user_id))
