"""
Effective role resolution and accessible-project aggregation.

Precedence for a (user, project) pair, first match wins:

1. the project's owner_id        -> owner
2. a direct project-membership   -> that role, verbatim (an override, not a floor)
3. the project's team membership -> that role
4. otherwise                     -> no role

Nothing is cached; every call reads current rows.
"""

from __future__ import annotations

import asyncio
import uuid
from dataclasses import dataclass
from typing import Awaitable, Optional, TypeVar

import structlog

from backoffice.authz.errors import AccessError, DataSourceUnavailable
from backoffice.authz.sources import (
    AccessStore,
    ProjectRef,
    StoredRole,
    TeamRef,
    direct_project_role,
    is_owner,
    team_role,
)
from backoffice_shared.schemas.access import ResolutionPath
from backoffice_shared.schemas.common import Role, parse_role, role_level

log = structlog.get_logger()

T = TypeVar("T")


@dataclass(frozen=True)
class Resolution:
    """An effective role and the membership source that produced it."""

    role: Optional[StoredRole]
    path: ResolutionPath
    project: Optional[ProjectRef] = None

    @property
    def level(self) -> int:
        return role_level(self.role)

    @property
    def granted(self) -> bool:
        return self.level > 0


class AccessResolver:
    """Reads membership sources and applies the precedence rule.

    Holds no per-request state; one instance serves the whole process.
    """

    def __init__(self, store: AccessStore, *, lookup_timeout: float = 5.0):
        self.store = store
        self.lookup_timeout = lookup_timeout

    async def _lookup(self, name: str, awaitable: Awaitable[T]) -> T:
        """Run one source lookup; failures and timeouts become DataSourceUnavailable."""
        try:
            return await asyncio.wait_for(awaitable, timeout=self.lookup_timeout)
        except AccessError:
            raise
        except asyncio.TimeoutError as exc:
            log.error("authz.lookup_timeout", lookup=name, timeout=self.lookup_timeout)
            raise DataSourceUnavailable() from exc
        except Exception as exc:
            log.error("authz.lookup_failed", lookup=name, error=repr(exc))
            raise DataSourceUnavailable() from exc

    async def get_project(self, project_id: uuid.UUID) -> Optional[ProjectRef]:
        return await self._lookup("get_project", self.store.get_project(project_id))

    async def get_team(self, team_id: uuid.UUID) -> Optional[TeamRef]:
        return await self._lookup("get_team", self.store.get_team(team_id))

    async def resolve(self, user_id: uuid.UUID, project_id: uuid.UUID) -> Resolution:
        """Effective role of a user on a project; missing projects resolve to no role."""
        project = await self.get_project(project_id)
        if project is None:
            return Resolution(role=None, path=ResolutionPath.NONE)
        return await self.resolve_for(user_id, project)

    async def resolve_for(self, user_id: uuid.UUID, project: ProjectRef) -> Resolution:
        """Effective role for an already-fetched project row."""
        if is_owner(user_id, project):
            return Resolution(role=Role.OWNER, path=ResolutionPath.OWNER, project=project)

        direct, inherited = await asyncio.gather(
            self._lookup("direct_project_role", direct_project_role(self.store, user_id, project)),
            self._lookup("team_role", team_role(self.store, user_id, project)),
        )
        if direct is not None:
            return Resolution(role=direct, path=ResolutionPath.DIRECT, project=project)
        if inherited is not None:
            return Resolution(role=inherited, path=ResolutionPath.TEAM, project=project)
        return Resolution(role=None, path=ResolutionPath.NONE, project=project)

    async def team_role_of(
        self, user_id: uuid.UUID, team_id: uuid.UUID
    ) -> Optional[StoredRole]:
        """A user's role in a team, read directly (team actions bypass project resolution)."""
        value = await self._lookup(
            "team_member_role", self.store.get_team_member_role(team_id, user_id)
        )
        if value is None:
            return None
        return parse_role(value) or value

    async def accessible_project_ids(self, user_id: uuid.UUID) -> set[uuid.UUID]:
        """Owned ∪ directly-membered ∪ team-reachable project ids."""
        owned, direct, team_ids = await asyncio.gather(
            self._lookup("owned_projects", self.store.list_owned_project_ids(user_id)),
            self._lookup("member_projects", self.store.list_member_project_ids(user_id)),
            self._lookup("team_ids", self.store.list_team_ids(user_id)),
        )
        via_teams: set[uuid.UUID] = set()
        if team_ids:
            via_teams = await self._lookup(
                "team_projects", self.store.list_team_project_ids(team_ids)
            )
        return set(owned) | set(direct) | set(via_teams)
