from enum import Enum
from typing import Optional, Union
from pydantic import BaseModel

class Role(str, Enum):
    VIEWER = "viewer"
    EDITOR = "editor"
    ADMIN = "admin"
    OWNER = "owner"

# Ordered list, least privileged first
ROLE_ORDER: list["Role"] = [
    Role.VIEWER,
    Role.EDITOR,
    Role.ADMIN,
    Role.OWNER,
]

ROLE_LEVELS: dict[str, int] = {role.value: idx + 1 for idx, role in enumerate(ROLE_ORDER)}

# Roles that may be granted through invites and role changes
ASSIGNABLE_ROLES: tuple["Role", ...] = (Role.VIEWER, Role.EDITOR, Role.ADMIN)


def role_level(role: Union[Role, str, None]) -> int:
    """Privilege level for a role; unknown or missing roles are 0."""
    if role is None:
        return 0
    if isinstance(role, Role):
        return ROLE_LEVELS[role.value]
    return ROLE_LEVELS.get(str(role), 0)


def role_for_level(level: int) -> Role:
    """Inverse of role_level for levels 1..len(ROLE_ORDER)."""
    if not 1 <= level <= len(ROLE_ORDER):
        raise ValueError(f"No role at level {level}")
    return ROLE_ORDER[level - 1]


def parse_role(value: Optional[str]) -> Optional[Role]:
    """Coerce a stored role string to a Role; malformed values become None."""
    if value is None:
        return None
    try:
        return Role(value)
    except ValueError:
        return None

class Pagination(BaseModel):
    page: int
    per_page: int
    total: int
    total_pages: int

class ErrorBody(BaseModel):
    code: str
    message: str
    status: int
    retryable: bool = False
