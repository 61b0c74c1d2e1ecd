"""
Script to grant or revoke the platform operator flag for a user.

Operators bypass per-project and per-team grants when the operator override
is enabled (BO_OPERATOR_OVERRIDE_ENABLED). The owner-immutability rule still
applies to them.

Usage:
    python -m backoffice.scripts.grant_operator --email ops@example.com
    python -m backoffice.scripts.grant_operator --email ops@example.com --revoke
"""

import argparse
import asyncio

import structlog
from sqlmodel import select

from backoffice.core.config import get_settings
from backoffice.core.database import get_session_context
from backoffice.core.logging import configure_logging
from backoffice.models.user import User

log = structlog.get_logger()


async def set_operator(email: str, enabled: bool) -> User:
    """Create the user if needed and set its operator flag."""
    email = email.strip().lower()
    async with get_session_context() as session:
        result = await session.execute(select(User).where(User.email == email))
        user = result.scalar_one_or_none()

        if not user:
            user = User(email=email)
            log.info("user.created", email=email)

        user.is_operator = enabled
        session.add(user)
        await session.flush()

    log.info("user.operator_flag_set", user_id=str(user.id), email=email, is_operator=enabled)
    return user


def run() -> None:
    parser = argparse.ArgumentParser(description="Grant or revoke platform operator access.")
    parser.add_argument("--email", required=True, help="Email address of the user")
    parser.add_argument("--revoke", action="store_true", help="Clear the operator flag instead")
    args = parser.parse_args()

    settings = get_settings()
    configure_logging(settings.log_level, "text")
    asyncio.run(set_operator(args.email, not args.revoke))


if __name__ == "__main__":
    run()
