"""
Hierarchical authorization: effective project roles and capability checks.
"""

from .errors import (
    AccessError,
    DataSourceUnavailable,
    InsufficientRole,
    NotFoundOrNoGrant,
    OwnerRoleImmutable,
    SelfTargetForbidden,
    Unauthenticated,
)
from .gate import (
    CAPABILITY_RULES,
    CapabilityGate,
    Decision,
    can_change_role,
    can_remove_member,
    capabilities_for,
    guard_self_target,
    has_capability,
)
from .principal import Principal
from .resolver import AccessResolver, Resolution
from .sources import AccessStore, ProjectRef, TeamRef
from .store import MemoryAccessStore, SqlAccessStore

__all__ = [
    "AccessError",
    "AccessResolver",
    "AccessStore",
    "CAPABILITY_RULES",
    "CapabilityGate",
    "DataSourceUnavailable",
    "Decision",
    "InsufficientRole",
    "MemoryAccessStore",
    "NotFoundOrNoGrant",
    "OwnerRoleImmutable",
    "Principal",
    "ProjectRef",
    "Resolution",
    "SelfTargetForbidden",
    "SqlAccessStore",
    "TeamRef",
    "Unauthenticated",
    "can_change_role",
    "can_remove_member",
    "capabilities_for",
    "guard_self_target",
    "has_capability",
]
