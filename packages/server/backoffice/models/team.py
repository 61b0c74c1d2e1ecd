"""Team and team membership models."""

import uuid

from sqlalchemy import UniqueConstraint
from sqlmodel import Field, SQLModel

from .base import CreatedAtMixin, UUIDMixin


class Team(UUIDMixin, CreatedAtMixin, SQLModel, table=True):
    __tablename__ = "teams"

    name: str = Field(nullable=False)
    owner_id: uuid.UUID = Field(foreign_key="users.id", nullable=False, index=True)


class TeamMember(UUIDMixin, CreatedAtMixin, SQLModel, table=True):
    __tablename__ = "team_members"
    __table_args__ = (UniqueConstraint("team_id", "user_id", name="uq_team_members_team_user"),)

    team_id: uuid.UUID = Field(foreign_key="teams.id", nullable=False, index=True)
    user_id: uuid.UUID = Field(foreign_key="users.id", nullable=False, index=True)
    role: str = Field(nullable=False, default="viewer")  # viewer | editor | admin | owner
