"""Effective-role and capability schemas."""

from __future__ import annotations

from enum import Enum
from typing import Optional
from uuid import UUID

from pydantic import BaseModel

from .common import Role


class ResolutionPath(str, Enum):
    """Which membership source produced an effective role."""
    OWNER = "owner"
    DIRECT = "direct"
    TEAM = "team"
    NONE = "none"
    # Set by the capability gate only, never by the resolver
    OPERATOR = "operator"


class Capability(str, Enum):
    CREATE_PROJECT = "create_project"
    CREATE_TEAM_PROJECT = "create_team_project"
    VIEW_PROJECT = "view_project"
    EDIT_PROJECT = "edit_project"
    DELETE_PROJECT_DATA = "delete_project_data"
    INVITE_TO_PROJECT = "invite_to_project"
    REMOVE_PROJECT_MEMBER = "remove_project_member"
    MANAGE_PROJECT = "manage_project"
    VIEW_TEAM = "view_team"
    INVITE_TO_TEAM = "invite_to_team"
    CHANGE_TEAM_ROLE = "change_team_role"
    REMOVE_TEAM_MEMBER = "remove_team_member"


class CapabilityScope(str, Enum):
    NONE = "none"
    PROJECT = "project"
    TEAM = "team"


class EffectiveRoleResponse(BaseModel):
    """Caller's effective role for a project and the source that granted it."""
    project_id: UUID
    role: Optional[Role] = None
    path: ResolutionPath
    capabilities: list[Capability] = []
