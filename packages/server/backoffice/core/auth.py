"""
Authentication boundary and authorization dependencies.

Credential validation happens upstream; by the time a request reaches this
service the Authorization header carries an already-validated user id
(`Bearer <uuid>`). This module turns it into a Principal and exposes the
process-wide CapabilityGate to routes.
"""

from __future__ import annotations

import uuid
from typing import Optional

import structlog
from fastapi import Depends, Request
from fastapi.security import APIKeyHeader
from sqlalchemy.ext.asyncio import AsyncSession
from sqlmodel import select

from backoffice.authz import CapabilityGate, Principal, Unauthenticated
from backoffice.core.database import get_session
from backoffice.models.user import User


auth_header = APIKeyHeader(name="Authorization", auto_error=False)


def parse_bearer(value: Optional[str]) -> uuid.UUID:
    """Extract the user id from a `Bearer <uuid>` header value.

    Raises Unauthenticated for a missing or malformed header.
    """
    if not value or not value.startswith("Bearer "):
        raise Unauthenticated()
    try:
        return uuid.UUID(value[7:].strip())
    except ValueError:
        raise Unauthenticated("Invalid credentials")


async def get_principal(
    request: Request,
    authorization: Optional[str] = Depends(auth_header),
    session: AsyncSession = Depends(get_session),
) -> Principal:
    """Main authentication dependency."""
    user_id = parse_bearer(authorization)

    result = await session.execute(select(User).where(User.id == user_id))
    user = result.scalar_one_or_none()
    if not user:
        raise Unauthenticated("User not found")

    principal = Principal(user_id=user.id, is_operator=user.is_operator)
    structlog.contextvars.bind_contextvars(user_id=str(user.id))
    request.state.principal = principal
    return principal


def get_gate(request: Request) -> CapabilityGate:
    """The CapabilityGate built at startup."""
    return request.app.state.gate
