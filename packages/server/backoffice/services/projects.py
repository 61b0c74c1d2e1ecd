"""
Project service: CRUD and membership, every operation behind the capability gate.
"""

from __future__ import annotations

import asyncio
import math
import uuid
from datetime import datetime, timezone
from typing import Optional

import structlog
from fastapi import HTTPException
from sqlalchemy import delete, func
from sqlalchemy.ext.asyncio import AsyncSession
from sqlmodel import select

from backoffice.authz import (
    CAPABILITY_RULES,
    CapabilityGate,
    NotFoundOrNoGrant,
    OwnerRoleImmutable,
    Principal,
    ProjectRef,
    capabilities_for,
    guard_self_target,
)
from backoffice.models.project import Project, ProjectMember
from backoffice.models.user import User
from backoffice_shared.schemas.access import Capability, CapabilityScope
from backoffice_shared.schemas.common import Role, parse_role
from backoffice_shared.schemas.projects import (
    ProjectCreate,
    ProjectMemberAdd,
    ProjectMemberRoleUpdate,
    ProjectUpdate,
)

log = structlog.get_logger()


def _project_dict(project: Project, role) -> dict:
    return {
        "id": project.id,
        "name": project.name,
        "description": project.description,
        "website_url": project.website_url,
        "team_id": project.team_id,
        "owner_id": project.owner_id,
        "role": parse_role(role),
        "created_at": project.created_at,
        "updated_at": project.updated_at,
    }


def _member_dict(member: ProjectMember, email: str | None) -> dict:
    return {
        "id": member.id,
        "project_id": member.project_id,
        "user_id": member.user_id,
        "email": email,
        "role": parse_role(member.role),
        "granted_by": member.granted_by,
        "joined_at": member.created_at,
    }


async def _get_project_or_404(session: AsyncSession, project_id: uuid.UUID) -> Project:
    project = await session.get(Project, project_id)
    if not project:
        raise NotFoundOrNoGrant("Project")
    return project


async def _get_member_or_404(
    session: AsyncSession, project_id: uuid.UUID, member_id: uuid.UUID
) -> ProjectMember:
    result = await session.execute(
        select(ProjectMember).where(
            ProjectMember.id == member_id, ProjectMember.project_id == project_id
        )
    )
    member = result.scalar_one_or_none()
    if not member:
        raise HTTPException(status_code=404, detail="Member not found")
    return member


async def create_project(
    req: ProjectCreate, principal: Principal, gate: CapabilityGate, session: AsyncSession
) -> dict:
    """Create a project owned by the caller, optionally attached to a team."""
    if req.team_id is not None:
        await gate.authorize_team(principal, req.team_id, Capability.CREATE_TEAM_PROJECT)
    else:
        gate.authorize_create_project(principal)

    project = Project(
        name=req.name.strip(),
        description=(req.description or "").strip() or None,
        website_url=(req.website_url or "").strip() or None,
        owner_id=principal.user_id,
        team_id=req.team_id,
    )
    session.add(project)
    await session.flush()

    session.add(
        ProjectMember(
            project_id=project.id,
            user_id=principal.user_id,
            role=Role.OWNER.value,
            granted_by=principal.user_id,
        )
    )
    await session.flush()

    log.info(
        "project.created",
        project_id=str(project.id),
        owner=str(principal.user_id),
        team_id=str(project.team_id) if project.team_id else None,
    )
    return _project_dict(project, Role.OWNER)


async def list_projects(
    principal: Principal,
    gate: CapabilityGate,
    session: AsyncSession,
    *,
    team_id: Optional[uuid.UUID] = None,
    page: int = 1,
    per_page: int = 25,
) -> tuple[list[dict], int]:
    """List projects the caller can see. Returns (items, total)."""
    visible = await gate.visible_project_ids(principal)
    if visible is not None and not visible:
        return [], 0

    stmt = select(Project)
    count_stmt = select(func.count()).select_from(Project)
    if visible is not None:
        stmt = stmt.where(Project.id.in_(visible))
        count_stmt = count_stmt.where(Project.id.in_(visible))
    if team_id is not None:
        stmt = stmt.where(Project.team_id == team_id)
        count_stmt = count_stmt.where(Project.team_id == team_id)

    total = (await session.execute(count_stmt)).scalar_one()
    stmt = stmt.order_by(Project.created_at.desc()).offset((page - 1) * per_page).limit(per_page)
    projects = list((await session.execute(stmt)).scalars().all())

    resolutions = await asyncio.gather(
        *(
            gate.resolver.resolve_for(
                principal.user_id,
                ProjectRef(id=p.id, owner_id=p.owner_id, team_id=p.team_id),
            )
            for p in projects
        )
    )
    items = [_project_dict(p, r.role if r.granted else None) for p, r in zip(projects, resolutions)]
    return items, total


def total_pages(total: int, per_page: int) -> int:
    return max(1, math.ceil(total / per_page)) if per_page else 1


async def get_project(
    project_id: uuid.UUID, principal: Principal, gate: CapabilityGate, session: AsyncSession
) -> dict:
    decision = await gate.authorize_project(principal, project_id, Capability.VIEW_PROJECT)
    project = await _get_project_or_404(session, project_id)
    return _project_dict(project, decision.role)


async def get_effective_role(
    project_id: uuid.UUID, principal: Principal, gate: CapabilityGate
) -> dict:
    """The caller's effective role, the path that produced it and what it allows."""
    decision = await gate.authorize_project(principal, project_id, Capability.VIEW_PROJECT)
    if decision.operator:
        capabilities = [
            cap for cap, rule in CAPABILITY_RULES.items() if rule.scope == CapabilityScope.PROJECT
        ]
    else:
        capabilities = capabilities_for(decision.role)
    return {
        "project_id": project_id,
        "role": parse_role(decision.role),
        "path": decision.path,
        "capabilities": capabilities,
    }


async def update_project(
    project_id: uuid.UUID,
    req: ProjectUpdate,
    principal: Principal,
    gate: CapabilityGate,
    session: AsyncSession,
) -> dict:
    decision = await gate.authorize_project(principal, project_id, Capability.EDIT_PROJECT)
    project = await _get_project_or_404(session, project_id)

    for field, value in req.model_dump(exclude_unset=True).items():
        if isinstance(value, str):
            value = value.strip() or None
        if field == "name" and not value:
            raise HTTPException(status_code=422, detail="Project name is required")
        setattr(project, field, value)
    project.updated_at = datetime.now(timezone.utc)
    session.add(project)
    await session.flush()

    log.info("project.updated", project_id=str(project_id), by=str(principal.user_id))
    return _project_dict(project, decision.role)


async def delete_project(
    project_id: uuid.UUID, principal: Principal, gate: CapabilityGate, session: AsyncSession
) -> None:
    """Delete a project and its memberships (owner only)."""
    await gate.authorize_project(principal, project_id, Capability.MANAGE_PROJECT)
    project = await _get_project_or_404(session, project_id)

    await session.execute(delete(ProjectMember).where(ProjectMember.project_id == project_id))
    await session.delete(project)
    await session.flush()
    log.info("project.deleted", project_id=str(project_id), by=str(principal.user_id))


async def list_members(
    project_id: uuid.UUID, principal: Principal, gate: CapabilityGate, session: AsyncSession
) -> list[dict]:
    await gate.authorize_project(principal, project_id, Capability.VIEW_PROJECT)
    result = await session.execute(
        select(ProjectMember, User.email)
        .join(User, User.id == ProjectMember.user_id)
        .where(ProjectMember.project_id == project_id)
        .order_by(ProjectMember.created_at)
    )
    return [_member_dict(member, email) for member, email in result.all()]


async def add_member(
    project_id: uuid.UUID,
    req: ProjectMemberAdd,
    principal: Principal,
    gate: CapabilityGate,
    session: AsyncSession,
) -> dict:
    """Grant a user a direct project role (admin or above)."""
    await gate.authorize_project(principal, project_id, Capability.INVITE_TO_PROJECT)

    result = await session.execute(select(User).where(User.email == req.email.lower()))
    user = result.scalar_one_or_none()
    if not user:
        raise HTTPException(status_code=404, detail="No user found with that email")

    existing = await session.execute(
        select(ProjectMember).where(
            ProjectMember.project_id == project_id, ProjectMember.user_id == user.id
        )
    )
    if existing.scalar_one_or_none():
        raise HTTPException(status_code=409, detail="User is already a member of this project")

    member = ProjectMember(
        project_id=project_id,
        user_id=user.id,
        role=req.role.value,
        granted_by=principal.user_id,
    )
    session.add(member)
    await session.flush()

    log.info(
        "project.member_added",
        project_id=str(project_id),
        user_id=str(user.id),
        role=req.role.value,
        granted_by=str(principal.user_id),
    )
    return _member_dict(member, user.email)


async def change_member_role(
    project_id: uuid.UUID,
    member_id: uuid.UUID,
    req: ProjectMemberRoleUpdate,
    principal: Principal,
    gate: CapabilityGate,
    session: AsyncSession,
) -> dict:
    """Change a direct project role (owner only). The owner's own row is fixed."""
    await gate.authorize_project(principal, project_id, Capability.MANAGE_PROJECT)
    project = await _get_project_or_404(session, project_id)
    member = await _get_member_or_404(session, project_id, member_id)
    guard_self_target(principal, member.user_id)
    if member.user_id == project.owner_id or member.role == Role.OWNER.value:
        raise OwnerRoleImmutable()

    previous = member.role
    member.role = req.role.value
    session.add(member)
    await session.flush()

    log.info(
        "project.member_role_changed",
        project_id=str(project_id),
        user_id=str(member.user_id),
        previous=previous,
        role=member.role,
        changed_by=str(principal.user_id),
    )
    user = await session.get(User, member.user_id)
    return _member_dict(member, user.email if user else None)


async def remove_member(
    project_id: uuid.UUID,
    member_id: uuid.UUID,
    principal: Principal,
    gate: CapabilityGate,
    session: AsyncSession,
) -> None:
    """Remove a direct project membership; the actor must outrank the target."""
    await gate.authorize_project(principal, project_id, Capability.VIEW_PROJECT)
    project = await _get_project_or_404(session, project_id)
    member = await _get_member_or_404(session, project_id, member_id)
    guard_self_target(principal, member.user_id)
    if member.user_id == project.owner_id:
        raise OwnerRoleImmutable()

    await gate.authorize_project(
        principal, project_id, Capability.REMOVE_PROJECT_MEMBER, target_role=member.role
    )

    await session.delete(member)
    await session.flush()
    log.info(
        "project.member_removed",
        project_id=str(project_id),
        user_id=str(member.user_id),
        removed_by=str(principal.user_id),
    )
