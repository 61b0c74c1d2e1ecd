"""
Team-related Pydantic schemas shared between server and clients.

Covers: team CRUD, membership invites, member role changes.
"""

from __future__ import annotations

from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, EmailStr, Field, UUID4, field_validator

from .common import ASSIGNABLE_ROLES, Role


# ---------------------------------------------------------------------------
# Request schemas
# ---------------------------------------------------------------------------

class TeamCreateRequest(BaseModel):
    name: str = Field(min_length=1, max_length=200)

    @field_validator("name")
    @classmethod
    def strip_name(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("Team name is required")
        return v


class TeamInviteRequest(BaseModel):
    """Invite an existing user to the team by email."""
    email: EmailStr
    role: Role = Role.VIEWER

    @field_validator("role")
    @classmethod
    def role_is_assignable(cls, v: Role) -> Role:
        if v not in ASSIGNABLE_ROLES:
            raise ValueError("Invalid role. Must be viewer, editor, or admin")
        return v


class TeamMemberRoleUpdate(BaseModel):
    role: Role

    @field_validator("role")
    @classmethod
    def role_is_assignable(cls, v: Role) -> Role:
        if v not in ASSIGNABLE_ROLES:
            raise ValueError("Invalid role. Must be viewer, editor, or admin")
        return v


# ---------------------------------------------------------------------------
# Response schemas
# ---------------------------------------------------------------------------

class TeamResponse(BaseModel):
    id: UUID4
    name: str
    owner_id: UUID4
    role: Optional[Role] = None  # caller's role, when known
    created_at: datetime

    model_config = {"from_attributes": True}


class TeamListResponse(BaseModel):
    data: List[TeamResponse]


class TeamMemberResponse(BaseModel):
    id: UUID4
    team_id: UUID4
    user_id: UUID4
    email: Optional[str] = None
    role: Optional[Role] = None  # None for a stored role outside the known set
    joined_at: datetime


class TeamMemberListResponse(BaseModel):
    data: List[TeamMemberResponse]
