"""User model."""

from typing import Optional

from sqlmodel import Field, SQLModel

from .base import CreatedAtMixin, UUIDMixin


class User(UUIDMixin, CreatedAtMixin, SQLModel, table=True):
    __tablename__ = "users"

    email: str = Field(unique=True, index=True, nullable=False)
    full_name: Optional[str] = None
    # Platform operator: cross-tenant override applied above per-project grants
    is_operator: bool = Field(default=False, nullable=False)
