"""
Typed denials raised by the authorization layer.

Every error carries a stable `code` and the HTTP `status_code` it maps to.
"Project does not exist" and "project exists but no grant" share one type and
one message so callers cannot probe for existence.
"""

from __future__ import annotations


class AccessError(Exception):
    """Base class for authorization failures."""

    status_code: int = 403
    code: str = "forbidden"
    default_message: str = "Forbidden"
    retryable: bool = False

    def __init__(self, message: str | None = None):
        self.message = message or self.default_message
        super().__init__(self.message)


class Unauthenticated(AccessError):
    status_code = 401
    code = "unauthenticated"
    default_message = "Authentication required"


class NotFoundOrNoGrant(AccessError):
    status_code = 404
    code = "not_found"

    def __init__(self, resource: str = "Project"):
        self.resource = resource
        super().__init__(f"{resource} not found")


class InsufficientRole(AccessError):
    """Caller holds a grant below the operation's threshold.

    Only the operation is named; the required role is not disclosed.
    """

    code = "insufficient_role"

    def __init__(self, operation: str):
        self.operation = operation
        super().__init__(f"You don't have permission to {operation.replace('_', ' ')}")


class OwnerRoleImmutable(AccessError):
    code = "owner_role_immutable"
    default_message = "The owner role cannot be changed or removed"


class SelfTargetForbidden(AccessError):
    code = "self_target_forbidden"
    default_message = "You cannot perform this action on yourself"


class DataSourceUnavailable(AccessError):
    """A membership lookup failed or timed out. Never a denial, never an allow."""

    status_code = 503
    code = "data_source_unavailable"
    default_message = "Authorization data is temporarily unavailable"
    retryable = True
