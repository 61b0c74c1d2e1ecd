"""
Membership sources.

`AccessStore` is the persistence contract the resolver reads through: a handful
of independent point lookups, no joins, no transactions. The three adapters
below each consult exactly one source and know nothing about precedence.
"""

from __future__ import annotations

import uuid
from dataclasses import dataclass
from typing import Iterable, Optional, Protocol, Union

from backoffice_shared.schemas.common import Role, parse_role

StoredRole = Union[Role, str]


@dataclass(frozen=True)
class ProjectRef:
    id: uuid.UUID
    owner_id: uuid.UUID
    team_id: Optional[uuid.UUID] = None


@dataclass(frozen=True)
class TeamRef:
    id: uuid.UUID
    owner_id: uuid.UUID


class AccessStore(Protocol):
    """Read-only lookups the resolver depends on."""

    async def get_project(self, project_id: uuid.UUID) -> Optional[ProjectRef]: ...

    async def get_team(self, team_id: uuid.UUID) -> Optional[TeamRef]: ...

    async def get_project_member_role(
        self, project_id: uuid.UUID, user_id: uuid.UUID
    ) -> Optional[str]: ...

    async def get_team_member_role(
        self, team_id: uuid.UUID, user_id: uuid.UUID
    ) -> Optional[str]: ...

    async def list_owned_project_ids(self, user_id: uuid.UUID) -> set[uuid.UUID]: ...

    async def list_member_project_ids(self, user_id: uuid.UUID) -> set[uuid.UUID]: ...

    async def list_team_ids(self, user_id: uuid.UUID) -> set[uuid.UUID]: ...

    async def list_team_project_ids(
        self, team_ids: Iterable[uuid.UUID]
    ) -> set[uuid.UUID]: ...


def _stored_role(value: Optional[str]) -> Optional[StoredRole]:
    # Unknown strings are kept as-is so they still count as a (level 0) grant
    if value is None:
        return None
    return parse_role(value) or value


def is_owner(user_id: uuid.UUID, project: ProjectRef) -> bool:
    return project.owner_id == user_id


async def direct_project_role(
    store: AccessStore, user_id: uuid.UUID, project: ProjectRef
) -> Optional[StoredRole]:
    """Role from the user's project-membership row, if any."""
    return _stored_role(await store.get_project_member_role(project.id, user_id))


async def team_role(
    store: AccessStore, user_id: uuid.UUID, project: ProjectRef
) -> Optional[StoredRole]:
    """Role from the project's team membership; None for personal projects."""
    if project.team_id is None:
        return None
    return _stored_role(await store.get_team_member_role(project.team_id, user_id))
