"""Shared API dependencies."""

import logging
from typing import Optional

import httpx
from fastapi import Depends, Request
from sqlalchemy.ext.asyncio import AsyncSession

from core.config import SESSION_COOKIE_NAME
from core.errors import Forbidden
from db.models.user import User
from db.session import get_session
from services.auth.sessions import SessionManager
from services.email.resend import EmailSender, ResendClient

logger = logging.getLogger(__name__)


def get_session_token(request: Request) -> Optional[str]:
    """Return the raw session cookie value, if any."""
    return request.cookies.get(SESSION_COOKIE_NAME)


def get_email_sender() -> EmailSender:
    return ResendClient()


def get_oauth_transport() -> Optional[httpx.AsyncBaseTransport]:
    """HTTP transport for provider calls; None means the default network transport."""
    return None


async def get_optional_user(
    request: Request,
    db: AsyncSession = Depends(get_session),
) -> Optional[User]:
    """Return the current user, or None when the cookie is missing or invalid."""
    return await SessionManager(db).get_optional_user(get_session_token(request))


async def get_current_user(
    request: Request,
    db: AsyncSession = Depends(get_session),
) -> User:
    """Return the current authenticated user based on the session cookie.

    Raises ``Unauthenticated`` (401) when there is no valid session.
    """
    return await SessionManager(db).validate(get_session_token(request))


async def get_superadmin(current_user: User = Depends(get_current_user)) -> User:
    if not current_user.superadmin:
        raise Forbidden("Unauthorized access")
    return current_user
