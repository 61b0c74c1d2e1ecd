"""
AccessStore implementations.

`SqlAccessStore` opens a short-lived session per lookup so that lookups issued
concurrently never share an AsyncSession. `MemoryAccessStore` keeps the same
rows in dicts; it backs unit tests and embedded use.
"""

from __future__ import annotations

import uuid
from typing import Callable, Iterable, Optional

from sqlalchemy.ext.asyncio import AsyncSession
from sqlmodel import select

from backoffice.authz.sources import ProjectRef, TeamRef
from backoffice.models.project import Project, ProjectMember
from backoffice.models.team import Team, TeamMember


class SqlAccessStore:
    """AccessStore backed by the SQLModel tables."""

    def __init__(self, session_factory: Callable[[], AsyncSession]):
        self._session_factory = session_factory

    async def get_project(self, project_id: uuid.UUID) -> Optional[ProjectRef]:
        async with self._session_factory() as session:
            result = await session.execute(
                select(Project.id, Project.owner_id, Project.team_id).where(
                    Project.id == project_id
                )
            )
            row = result.one_or_none()
        if row is None:
            return None
        return ProjectRef(id=row.id, owner_id=row.owner_id, team_id=row.team_id)

    async def get_team(self, team_id: uuid.UUID) -> Optional[TeamRef]:
        async with self._session_factory() as session:
            result = await session.execute(
                select(Team.id, Team.owner_id).where(Team.id == team_id)
            )
            row = result.one_or_none()
        if row is None:
            return None
        return TeamRef(id=row.id, owner_id=row.owner_id)

    async def get_project_member_role(
        self, project_id: uuid.UUID, user_id: uuid.UUID
    ) -> Optional[str]:
        async with self._session_factory() as session:
            result = await session.execute(
                select(ProjectMember.role).where(
                    ProjectMember.project_id == project_id,
                    ProjectMember.user_id == user_id,
                )
            )
            return result.scalar_one_or_none()

    async def get_team_member_role(
        self, team_id: uuid.UUID, user_id: uuid.UUID
    ) -> Optional[str]:
        async with self._session_factory() as session:
            result = await session.execute(
                select(TeamMember.role).where(
                    TeamMember.team_id == team_id,
                    TeamMember.user_id == user_id,
                )
            )
            return result.scalar_one_or_none()

    async def list_owned_project_ids(self, user_id: uuid.UUID) -> set[uuid.UUID]:
        async with self._session_factory() as session:
            result = await session.execute(
                select(Project.id).where(Project.owner_id == user_id)
            )
            return set(result.scalars().all())

    async def list_member_project_ids(self, user_id: uuid.UUID) -> set[uuid.UUID]:
        async with self._session_factory() as session:
            result = await session.execute(
                select(ProjectMember.project_id).where(ProjectMember.user_id == user_id)
            )
            return set(result.scalars().all())

    async def list_team_ids(self, user_id: uuid.UUID) -> set[uuid.UUID]:
        async with self._session_factory() as session:
            result = await session.execute(
                select(TeamMember.team_id).where(TeamMember.user_id == user_id)
            )
            return set(result.scalars().all())

    async def list_team_project_ids(
        self, team_ids: Iterable[uuid.UUID]
    ) -> set[uuid.UUID]:
        team_ids = list(team_ids)
        if not team_ids:
            return set()
        async with self._session_factory() as session:
            result = await session.execute(
                select(Project.id).where(Project.team_id.in_(team_ids))
            )
            return set(result.scalars().all())


class MemoryAccessStore:
    """In-process AccessStore."""

    def __init__(self) -> None:
        self.projects: dict[uuid.UUID, ProjectRef] = {}
        self.teams: dict[uuid.UUID, TeamRef] = {}
        self.project_members: dict[tuple[uuid.UUID, uuid.UUID], str] = {}
        self.team_members: dict[tuple[uuid.UUID, uuid.UUID], str] = {}

    # -- writes -------------------------------------------------------------

    def add_team(self, owner_id: uuid.UUID, team_id: uuid.UUID | None = None) -> TeamRef:
        """Create a team and its single owner membership."""
        team = TeamRef(id=team_id or uuid.uuid4(), owner_id=owner_id)
        self.teams[team.id] = team
        self.team_members[(team.id, owner_id)] = "owner"
        return team

    def add_project(
        self,
        owner_id: uuid.UUID,
        team_id: uuid.UUID | None = None,
        project_id: uuid.UUID | None = None,
    ) -> ProjectRef:
        project = ProjectRef(id=project_id or uuid.uuid4(), owner_id=owner_id, team_id=team_id)
        self.projects[project.id] = project
        return project

    def set_team_member(self, team_id: uuid.UUID, user_id: uuid.UUID, role: str) -> None:
        self.team_members[(team_id, user_id)] = str(getattr(role, "value", role))

    def set_project_member(self, project_id: uuid.UUID, user_id: uuid.UUID, role: str) -> None:
        self.project_members[(project_id, user_id)] = str(getattr(role, "value", role))

    def remove_team_member(self, team_id: uuid.UUID, user_id: uuid.UUID) -> None:
        self.team_members.pop((team_id, user_id), None)

    def remove_project_member(self, project_id: uuid.UUID, user_id: uuid.UUID) -> None:
        self.project_members.pop((project_id, user_id), None)

    # -- AccessStore --------------------------------------------------------

    async def get_project(self, project_id: uuid.UUID) -> Optional[ProjectRef]:
        return self.projects.get(project_id)

    async def get_team(self, team_id: uuid.UUID) -> Optional[TeamRef]:
        return self.teams.get(team_id)

    async def get_project_member_role(
        self, project_id: uuid.UUID, user_id: uuid.UUID
    ) -> Optional[str]:
        return self.project_members.get((project_id, user_id))

    async def get_team_member_role(
        self, team_id: uuid.UUID, user_id: uuid.UUID
    ) -> Optional[str]:
        return self.team_members.get((team_id, user_id))

    async def list_owned_project_ids(self, user_id: uuid.UUID) -> set[uuid.UUID]:
        return {p.id for p in self.projects.values() if p.owner_id == user_id}

    async def list_member_project_ids(self, user_id: uuid.UUID) -> set[uuid.UUID]:
        return {pid for (pid, uid) in self.project_members if uid == user_id}

    async def list_team_ids(self, user_id: uuid.UUID) -> set[uuid.UUID]:
        return {tid for (tid, uid) in self.team_members if uid == user_id}

    async def list_team_project_ids(
        self, team_ids: Iterable[uuid.UUID]
    ) -> set[uuid.UUID]:
        wanted = set(team_ids)
        return {p.id for p in self.projects.values() if p.team_id in wanted}
