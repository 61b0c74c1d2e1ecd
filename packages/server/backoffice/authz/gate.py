"""
Capability gate.

Maps each guarded operation to a minimum role level and checks it against
either a resolved project role or a team role read directly. Relational
operations (removing or re-roling another member) additionally require the
actor to strictly outrank the target and, for role changes, the new role.

Platform operators sit above this table: with the override enabled they pass
every scoped check, except the owner-immutability rule, which no one bypasses.
"""

from __future__ import annotations

import uuid
from dataclasses import dataclass
from typing import Optional

import structlog

from backoffice.authz.errors import (
    AccessError,
    InsufficientRole,
    NotFoundOrNoGrant,
    OwnerRoleImmutable,
    SelfTargetForbidden,
    Unauthenticated,
)
from backoffice.authz.principal import Principal
from backoffice.authz.resolver import AccessResolver
from backoffice.authz.sources import StoredRole
from backoffice_shared.schemas.access import Capability, CapabilityScope, ResolutionPath
from backoffice_shared.schemas.common import Role, role_level

log = structlog.get_logger()


@dataclass(frozen=True)
class CapabilityRule:
    scope: CapabilityScope
    min_level: int
    relational: bool = False  # actor must outrank the target member


CAPABILITY_RULES: dict[Capability, CapabilityRule] = {
    Capability.CREATE_PROJECT: CapabilityRule(CapabilityScope.NONE, 0),
    Capability.CREATE_TEAM_PROJECT: CapabilityRule(CapabilityScope.TEAM, role_level(Role.EDITOR)),
    Capability.VIEW_PROJECT: CapabilityRule(CapabilityScope.PROJECT, role_level(Role.VIEWER)),
    Capability.EDIT_PROJECT: CapabilityRule(CapabilityScope.PROJECT, role_level(Role.EDITOR)),
    # Deleting records owned by a project (not the project itself)
    Capability.DELETE_PROJECT_DATA: CapabilityRule(CapabilityScope.PROJECT, role_level(Role.ADMIN)),
    Capability.INVITE_TO_PROJECT: CapabilityRule(CapabilityScope.PROJECT, role_level(Role.ADMIN)),
    Capability.REMOVE_PROJECT_MEMBER: CapabilityRule(
        CapabilityScope.PROJECT, role_level(Role.ADMIN), relational=True
    ),
    Capability.MANAGE_PROJECT: CapabilityRule(CapabilityScope.PROJECT, role_level(Role.OWNER)),
    Capability.VIEW_TEAM: CapabilityRule(CapabilityScope.TEAM, role_level(Role.VIEWER)),
    Capability.INVITE_TO_TEAM: CapabilityRule(CapabilityScope.TEAM, role_level(Role.ADMIN)),
    Capability.CHANGE_TEAM_ROLE: CapabilityRule(
        CapabilityScope.TEAM, role_level(Role.ADMIN), relational=True
    ),
    Capability.REMOVE_TEAM_MEMBER: CapabilityRule(
        CapabilityScope.TEAM, role_level(Role.ADMIN), relational=True
    ),
}


@dataclass(frozen=True)
class Decision:
    """An allow, with the role that earned it attached for auditing."""

    capability: Capability
    role: Optional[StoredRole]
    path: ResolutionPath
    operator: bool = False

    @property
    def level(self) -> int:
        return role_level(self.role)


# ---------------------------------------------------------------------------
# Pure predicates
# ---------------------------------------------------------------------------

def has_capability(role: Optional[StoredRole], capability: Capability) -> bool:
    """Flat threshold check, ignoring any relational condition."""
    rule = CAPABILITY_RULES[capability]
    if rule.scope == CapabilityScope.NONE:
        return True
    level = role_level(role)
    return level >= 1 and level >= rule.min_level


def can_remove_member(actor_role: Optional[StoredRole], target_role: Optional[StoredRole]) -> bool:
    actor = role_level(actor_role)
    return actor >= role_level(Role.ADMIN) and actor > role_level(target_role)


def can_change_role(
    actor_role: Optional[StoredRole],
    target_role: Optional[StoredRole],
    new_role: Optional[StoredRole],
) -> bool:
    """Actor must be admin+ and strictly outrank both the current and the new role."""
    actor = role_level(actor_role)
    return (
        actor >= role_level(Role.ADMIN)
        and actor > role_level(target_role)
        and actor > role_level(new_role)
    )


def capabilities_for(
    role: Optional[StoredRole], scope: CapabilityScope = CapabilityScope.PROJECT
) -> list[Capability]:
    """Capabilities of one scope whose threshold the role meets."""
    return [
        cap
        for cap, rule in CAPABILITY_RULES.items()
        if rule.scope == scope and has_capability(role, cap)
    ]


def guard_self_target(principal: Principal, target_user_id: uuid.UUID) -> None:
    """Reject actions aimed at the caller's own membership."""
    if principal.user_id == target_user_id:
        raise SelfTargetForbidden()


def _require_scope(capability: Capability, scope: CapabilityScope) -> CapabilityRule:
    rule = CAPABILITY_RULES[capability]
    if rule.scope != scope:
        raise ValueError(f"{capability.value} is not a {scope.value}-scoped capability")
    return rule


# ---------------------------------------------------------------------------
# Gate
# ---------------------------------------------------------------------------

class CapabilityGate:
    """Authorizes operations for a principal; built once per process."""

    def __init__(self, resolver: AccessResolver, *, operator_override: bool = True):
        self.resolver = resolver
        self.operator_override = operator_override

    def _operator(self, principal: Principal) -> bool:
        return self.operator_override and principal.is_operator

    def _allowed(self, principal: Principal, target: uuid.UUID | None, decision: Decision) -> Decision:
        log.info(
            "authz.allowed",
            user_id=str(principal.user_id),
            target=str(target) if target else None,
            capability=decision.capability.value,
            role=str(getattr(decision.role, "value", decision.role)) if decision.role else None,
            path=decision.path.value,
            operator=decision.operator,
        )
        return decision

    def _denied(
        self,
        principal: Optional[Principal],
        target: uuid.UUID | None,
        capability: Capability,
        exc: AccessError,
    ) -> AccessError:
        log.warning(
            "authz.denied",
            user_id=str(principal.user_id) if principal else None,
            target=str(target) if target else None,
            capability=capability.value,
            code=exc.code,
        )
        return exc

    def authorize_create_project(self, principal: Optional[Principal]) -> Decision:
        """Any authenticated principal may create a personal project."""
        if principal is None:
            raise self._denied(None, None, Capability.CREATE_PROJECT, Unauthenticated())
        return self._allowed(
            principal,
            None,
            Decision(Capability.CREATE_PROJECT, None, ResolutionPath.NONE, self._operator(principal)),
        )

    async def authorize_project(
        self,
        principal: Optional[Principal],
        project_id: uuid.UUID,
        capability: Capability,
        *,
        target_role: Optional[StoredRole] = None,
    ) -> Decision:
        """Check a project-scoped capability against the caller's effective role."""
        rule = _require_scope(capability, CapabilityScope.PROJECT)
        if principal is None:
            raise self._denied(None, project_id, capability, Unauthenticated())
        if rule.relational and role_level(target_role) >= role_level(Role.OWNER):
            raise self._denied(principal, project_id, capability, OwnerRoleImmutable())

        resolution = await self.resolver.resolve(principal.user_id, project_id)

        if self._operator(principal):
            if resolution.project is None:
                raise self._denied(principal, project_id, capability, NotFoundOrNoGrant("Project"))
            return self._allowed(
                principal,
                project_id,
                Decision(capability, resolution.role, ResolutionPath.OPERATOR, operator=True),
            )

        if not resolution.granted:
            raise self._denied(principal, project_id, capability, NotFoundOrNoGrant("Project"))
        if resolution.level < rule.min_level:
            raise self._denied(principal, project_id, capability, InsufficientRole(capability.value))
        if rule.relational and not can_remove_member(resolution.role, target_role):
            raise self._denied(principal, project_id, capability, InsufficientRole(capability.value))

        return self._allowed(
            principal, project_id, Decision(capability, resolution.role, resolution.path)
        )

    async def authorize_team(
        self,
        principal: Optional[Principal],
        team_id: uuid.UUID,
        capability: Capability,
        *,
        target_role: Optional[StoredRole] = None,
        new_role: Optional[StoredRole] = None,
    ) -> Decision:
        """Check a team-scoped capability against the caller's team role."""
        rule = _require_scope(capability, CapabilityScope.TEAM)
        if principal is None:
            raise self._denied(None, team_id, capability, Unauthenticated())
        owner_level = role_level(Role.OWNER)
        if rule.relational and (
            role_level(target_role) >= owner_level or role_level(new_role) >= owner_level
        ):
            raise self._denied(principal, team_id, capability, OwnerRoleImmutable())

        team = await self.resolver.get_team(team_id)
        if team is None:
            raise self._denied(principal, team_id, capability, NotFoundOrNoGrant("Team"))

        role = await self.resolver.team_role_of(principal.user_id, team_id)

        if self._operator(principal):
            return self._allowed(
                principal,
                team_id,
                Decision(capability, role, ResolutionPath.OPERATOR, operator=True),
            )

        level = role_level(role)
        if level < 1:
            raise self._denied(principal, team_id, capability, NotFoundOrNoGrant("Team"))
        if level < rule.min_level:
            raise self._denied(principal, team_id, capability, InsufficientRole(capability.value))
        if capability == Capability.CHANGE_TEAM_ROLE:
            allowed = can_change_role(role, target_role, new_role)
        elif rule.relational:
            allowed = can_remove_member(role, target_role)
        else:
            allowed = True
        if not allowed:
            raise self._denied(principal, team_id, capability, InsufficientRole(capability.value))

        return self._allowed(principal, team_id, Decision(capability, role, ResolutionPath.TEAM))

    async def visible_project_ids(self, principal: Optional[Principal]) -> Optional[set[uuid.UUID]]:
        """Inclusion filter for list queries; None means unscoped (platform operator)."""
        if principal is None:
            raise self._denied(None, None, Capability.VIEW_PROJECT, Unauthenticated())
        if self._operator(principal):
            return None
        return await self.resolver.accessible_project_ids(principal.user_id)
