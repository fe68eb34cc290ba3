"""Session minting, lookup and revocation, plus the session cookie shape."""

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Optional
from uuid import UUID

from sqlalchemy import delete, select
from sqlalchemy.ext.asyncio import AsyncSession

from core import config as core_config
from core.errors import Unauthenticated
from core.security import as_utc, generate_session_token, is_well_formed_token, utcnow
from db.models.session import AuthSession
from db.models.user import User

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class SessionCookie:
    """Attributes of a Set-Cookie header for the session token."""

    value: str
    max_age: int
    secure: bool
    samesite: str
    httponly: bool = True
    path: str = "/"
    expires: Optional[datetime] = None
    key: str = core_config.SESSION_COOKIE_NAME


def build_session_cookie(session_token: str) -> SessionCookie:
    """Cookie carrying ``session_token``; strictness follows the deployment mode."""
    return SessionCookie(
        value=session_token,
        max_age=core_config.COOKIE_MAX_AGE_DAYS * 24 * 60 * 60,
        secure=core_config.COOKIE_SECURE,
        samesite=core_config.COOKIE_SAMESITE,
        httponly=core_config.COOKIE_HTTPONLY,
    )


def build_expired_cookie() -> SessionCookie:
    """Empty cookie dated in the past so the client drops its session token."""
    return SessionCookie(
        value="",
        max_age=0,
        secure=core_config.COOKIE_SECURE,
        samesite=core_config.COOKIE_SAMESITE,
        httponly=True,
        expires=datetime.now(timezone.utc) - timedelta(days=1),
    )


class SessionManager:
    """Create, resolve and delete sessions.

    By default the stored ``expires`` is advisory only (the cookie max-age is
    what ends a session); set ``ENFORCE_SESSION_EXPIRY`` to reject expired rows.
    """

    def __init__(
        self,
        db: AsyncSession,
        ttl_days: int = core_config.SESSION_TTL_DAYS,
        enforce_expiry: Optional[bool] = None,
    ):
        self.db = db
        self.ttl = timedelta(days=ttl_days)
        if enforce_expiry is None:
            enforce_expiry = core_config.get_enforce_session_expiry()
        self.enforce_expiry = enforce_expiry

    async def mint(self, user_id: UUID) -> AuthSession:
        session = AuthSession(
            session_token=generate_session_token(),
            user_id=user_id,
            expires=utcnow() + self.ttl,
        )
        self.db.add(session)
        await self.db.commit()
        logger.info("Minted session for user %s", user_id)
        return session

    async def validate(self, session_token: Optional[str]) -> User:
        """Resolve a session token to its user in a single joined read."""
        if not is_well_formed_token(session_token):
            raise Unauthenticated()

        result = await self.db.execute(
            select(User, AuthSession.expires)
            .join(AuthSession, AuthSession.user_id == User.id)
            .where(AuthSession.session_token == session_token)
            .limit(1)
        )
        row = result.first()
        if row is None:
            raise Unauthenticated("Session not found")

        user, expires = row
        if self.enforce_expiry and as_utc(expires) < utcnow():
            raise Unauthenticated("Session has expired")
        return user

    async def get_optional_user(self, session_token: Optional[str]) -> Optional[User]:
        """Like ``validate`` but treats a missing or invalid session as no user."""
        try:
            return await self.validate(session_token)
        except Unauthenticated:
            return None

    async def revoke(self, session_token: Optional[str]) -> bool:
        """Delete the session row; returns whether one existed."""
        if not is_well_formed_token(session_token):
            return False
        result = await self.db.execute(
            delete(AuthSession)
            .where(AuthSession.session_token == session_token)
            .returning(AuthSession.user_id)
        )
        user_id = result.scalar_one_or_none()
        await self.db.commit()
        if user_id is not None:
            logger.info("Revoked session for user %s", user_id)
        return user_id is not None
