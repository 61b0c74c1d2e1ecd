from typing import Optional, List
from pydantic import BaseModel, EmailStr, Field, field_validator
from uuid import UUID
from datetime import datetime
from .common import ASSIGNABLE_ROLES, Pagination, Role


class ProjectBase(BaseModel):
    name: str = Field(min_length=1, max_length=200)
    description: Optional[str] = None
    website_url: Optional[str] = None
    team_id: Optional[UUID] = None


class ProjectCreate(ProjectBase):
    pass


class ProjectUpdate(BaseModel):
    name: Optional[str] = Field(default=None, min_length=1, max_length=200)
    description: Optional[str] = None
    website_url: Optional[str] = None


class ProjectRead(ProjectBase):
    id: UUID
    owner_id: UUID
    role: Optional[Role] = None  # caller's effective role
    created_at: datetime
    updated_at: datetime

    model_config = {"from_attributes": True}


class ProjectListResponse(BaseModel):
    data: List[ProjectRead]
    pagination: Pagination


class ProjectMemberAdd(BaseModel):
    email: EmailStr
    role: Role = Role.VIEWER

    @field_validator("role")
    @classmethod
    def role_is_assignable(cls, v: Role) -> Role:
        if v not in ASSIGNABLE_ROLES:
            raise ValueError("Invalid role")
        return v


class ProjectMemberRoleUpdate(BaseModel):
    role: Role

    @field_validator("role")
    @classmethod
    def role_is_assignable(cls, v: Role) -> Role:
        if v not in ASSIGNABLE_ROLES:
            raise ValueError("Invalid role")
        return v


class ProjectMemberRead(BaseModel):
    id: UUID
    project_id: UUID
    user_id: UUID
    email: Optional[str] = None
    role: Optional[Role] = None  # None for a stored role outside the known set
    granted_by: Optional[UUID] = None
    joined_at: datetime


class ProjectMemberListResponse(BaseModel):
    data: List[ProjectMemberRead]
