"""
Team API endpoints.

GET    /api/v1/teams                                   — List caller's teams
POST   /api/v1/teams                                   — Create a team (caller becomes owner)
GET    /api/v1/teams/{teamId}                          — Get team details
GET    /api/v1/teams/{teamId}/members                  — List members
POST   /api/v1/teams/{teamId}/members                  — Invite a member (admin+)
PATCH  /api/v1/teams/{teamId}/members/{memberId}/role  — Change a member's role
DELETE /api/v1/teams/{teamId}/members/{memberId}       — Remove a member
POST   /api/v1/teams/{teamId}/leave                    — Leave the team
"""

from __future__ import annotations

import uuid

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from backoffice.authz import CapabilityGate, Principal
from backoffice.core.auth import get_gate, get_principal
from backoffice.core.database import get_session
from backoffice.services import teams as team_service
from backoffice_shared.schemas.common import Role
from backoffice_shared.schemas.teams import (
    TeamCreateRequest,
    TeamInviteRequest,
    TeamListResponse,
    TeamMemberListResponse,
    TeamMemberResponse,
    TeamMemberRoleUpdate,
    TeamResponse,
)

router = APIRouter()


@router.get("", response_model=TeamListResponse)
async def list_teams(
    principal: Principal = Depends(get_principal),
    session: AsyncSession = Depends(get_session),
):
    """List teams the caller belongs to, with the caller's role."""
    items = await team_service.list_user_teams(principal, session)
    return TeamListResponse(data=[TeamResponse(**item) for item in items])


@router.post("", response_model=TeamResponse, status_code=201)
async def create_team(
    body: TeamCreateRequest,
    principal: Principal = Depends(get_principal),
    session: AsyncSession = Depends(get_session),
):
    """Create a team. The creator becomes its owner."""
    team = await team_service.create_team(body, principal, session)
    return TeamResponse(
        id=team.id,
        name=team.name,
        owner_id=team.owner_id,
        role=Role.OWNER,
        created_at=team.created_at,
    )


@router.get("/{team_id}", response_model=TeamResponse)
async def get_team(
    team_id: uuid.UUID,
    principal: Principal = Depends(get_principal),
    gate: CapabilityGate = Depends(get_gate),
    session: AsyncSession = Depends(get_session),
):
    item = await team_service.get_team(team_id, principal, gate, session)
    return TeamResponse(**item)


@router.get("/{team_id}/members", response_model=TeamMemberListResponse)
async def list_members(
    team_id: uuid.UUID,
    principal: Principal = Depends(get_principal),
    gate: CapabilityGate = Depends(get_gate),
    session: AsyncSession = Depends(get_session),
):
    items = await team_service.list_team_members(team_id, principal, gate, session)
    return TeamMemberListResponse(data=[TeamMemberResponse(**item) for item in items])


@router.post("/{team_id}/members", response_model=TeamMemberResponse, status_code=201)
async def invite_member(
    team_id: uuid.UUID,
    body: TeamInviteRequest,
    principal: Principal = Depends(get_principal),
    gate: CapabilityGate = Depends(get_gate),
    session: AsyncSession = Depends(get_session),
):
    """Add an existing user to the team (Admin or Owner)."""
    item = await team_service.invite_member(team_id, body, principal, gate, session)
    return TeamMemberResponse(**item)


@router.patch("/{team_id}/members/{member_id}/role", response_model=TeamMemberResponse)
async def change_member_role(
    team_id: uuid.UUID,
    member_id: uuid.UUID,
    body: TeamMemberRoleUpdate,
    principal: Principal = Depends(get_principal),
    gate: CapabilityGate = Depends(get_gate),
    session: AsyncSession = Depends(get_session),
):
    """Change a member's role. The caller must outrank both the current and the new role."""
    item = await team_service.change_member_role(
        team_id, member_id, body, principal, gate, session
    )
    return TeamMemberResponse(**item)


@router.delete("/{team_id}/members/{member_id}", status_code=204)
async def remove_member(
    team_id: uuid.UUID,
    member_id: uuid.UUID,
    principal: Principal = Depends(get_principal),
    gate: CapabilityGate = Depends(get_gate),
    session: AsyncSession = Depends(get_session),
):
    await team_service.remove_member(team_id, member_id, principal, gate, session)


@router.post("/{team_id}/leave", status_code=204)
async def leave_team(
    team_id: uuid.UUID,
    principal: Principal = Depends(get_principal),
    session: AsyncSession = Depends(get_session),
):
    await team_service.leave_team(team_id, principal, session)
