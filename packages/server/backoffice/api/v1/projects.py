"""
Project endpoints: CRUD, effective role, membership.

GET    /api/v1/projects                               — List projects visible to the caller
POST   /api/v1/projects                               — Create a project
GET    /api/v1/projects/{projectId}                   — Get a project (any role)
PATCH  /api/v1/projects/{projectId}                   — Update a project (editor+)
DELETE /api/v1/projects/{projectId}                   — Delete a project (owner)
GET    /api/v1/projects/{projectId}/role              — Caller's effective role and path
GET    /api/v1/projects/{projectId}/members           — List direct members
POST   /api/v1/projects/{projectId}/members           — Add a member (admin+)
PATCH  /api/v1/projects/{projectId}/members/{memberId} — Change a member's role (owner)
DELETE /api/v1/projects/{projectId}/members/{memberId} — Remove a member (admin+, outranking)

Projects the caller cannot see always answer 404, whether or not they exist.
"""

from __future__ import annotations

import uuid
from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from backoffice.authz import CapabilityGate, Principal
from backoffice.core.auth import get_gate, get_principal
from backoffice.core.database import get_session
from backoffice.services import projects as project_service
from backoffice_shared.schemas.access import EffectiveRoleResponse
from backoffice_shared.schemas.common import Pagination
from backoffice_shared.schemas.projects import (
    ProjectCreate,
    ProjectListResponse,
    ProjectMemberAdd,
    ProjectMemberListResponse,
    ProjectMemberRead,
    ProjectMemberRoleUpdate,
    ProjectRead,
    ProjectUpdate,
)

router = APIRouter()


@router.get("", response_model=ProjectListResponse)
async def list_projects(
    team_id: Optional[uuid.UUID] = None,
    page: int = Query(1, ge=1),
    per_page: int = Query(25, ge=1, le=100),
    principal: Principal = Depends(get_principal),
    gate: CapabilityGate = Depends(get_gate),
    session: AsyncSession = Depends(get_session),
):
    """List projects the caller owns, is a member of, or reaches through a team."""
    items, total = await project_service.list_projects(
        principal, gate, session, team_id=team_id, page=page, per_page=per_page
    )
    return ProjectListResponse(
        data=[ProjectRead(**item) for item in items],
        pagination=Pagination(
            page=page,
            per_page=per_page,
            total=total,
            total_pages=project_service.total_pages(total, per_page),
        ),
    )


@router.post("", response_model=ProjectRead, status_code=201)
async def create_project(
    body: ProjectCreate,
    principal: Principal = Depends(get_principal),
    gate: CapabilityGate = Depends(get_gate),
    session: AsyncSession = Depends(get_session),
):
    """Create a project. Attaching it to a team requires editor or above in that team."""
    item = await project_service.create_project(body, principal, gate, session)
    return ProjectRead(**item)


@router.get("/{project_id}", response_model=ProjectRead)
async def get_project(
    project_id: uuid.UUID,
    principal: Principal = Depends(get_principal),
    gate: CapabilityGate = Depends(get_gate),
    session: AsyncSession = Depends(get_session),
):
    item = await project_service.get_project(project_id, principal, gate, session)
    return ProjectRead(**item)


@router.patch("/{project_id}", response_model=ProjectRead)
async def update_project(
    project_id: uuid.UUID,
    body: ProjectUpdate,
    principal: Principal = Depends(get_principal),
    gate: CapabilityGate = Depends(get_gate),
    session: AsyncSession = Depends(get_session),
):
    item = await project_service.update_project(project_id, body, principal, gate, session)
    return ProjectRead(**item)


@router.delete("/{project_id}", status_code=204)
async def delete_project(
    project_id: uuid.UUID,
    principal: Principal = Depends(get_principal),
    gate: CapabilityGate = Depends(get_gate),
    session: AsyncSession = Depends(get_session),
):
    await project_service.delete_project(project_id, principal, gate, session)


@router.get("/{project_id}/role", response_model=EffectiveRoleResponse)
async def get_effective_role(
    project_id: uuid.UUID,
    principal: Principal = Depends(get_principal),
    gate: CapabilityGate = Depends(get_gate),
):
    """Caller's effective role, the membership source it came from, and its capabilities."""
    item = await project_service.get_effective_role(project_id, principal, gate)
    return EffectiveRoleResponse(**item)


@router.get("/{project_id}/members", response_model=ProjectMemberListResponse)
async def list_members(
    project_id: uuid.UUID,
    principal: Principal = Depends(get_principal),
    gate: CapabilityGate = Depends(get_gate),
    session: AsyncSession = Depends(get_session),
):
    items = await project_service.list_members(project_id, principal, gate, session)
    return ProjectMemberListResponse(data=[ProjectMemberRead(**item) for item in items])


@router.post("/{project_id}/members", response_model=ProjectMemberRead, status_code=201)
async def add_member(
    project_id: uuid.UUID,
    body: ProjectMemberAdd,
    principal: Principal = Depends(get_principal),
    gate: CapabilityGate = Depends(get_gate),
    session: AsyncSession = Depends(get_session),
):
    item = await project_service.add_member(project_id, body, principal, gate, session)
    return ProjectMemberRead(**item)


@router.patch("/{project_id}/members/{member_id}", response_model=ProjectMemberRead)
async def change_member_role(
    project_id: uuid.UUID,
    member_id: uuid.UUID,
    body: ProjectMemberRoleUpdate,
    principal: Principal = Depends(get_principal),
    gate: CapabilityGate = Depends(get_gate),
    session: AsyncSession = Depends(get_session),
):
    item = await project_service.change_member_role(
        project_id, member_id, body, principal, gate, session
    )
    return ProjectMemberRead(**item)


@router.delete("/{project_id}/members/{member_id}", status_code=204)
async def remove_member(
    project_id: uuid.UUID,
    member_id: uuid.UUID,
    principal: Principal = Depends(get_principal),
    gate: CapabilityGate = Depends(get_gate),
    session: AsyncSession = Depends(get_session),
):
    await project_service.remove_member(project_id, member_id, principal, gate, session)
