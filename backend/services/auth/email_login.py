"""Passwordless magic-link login and email-address verification."""

import logging
from typing import Optional, Tuple

from sqlalchemy.ext.asyncio import AsyncSession

from core import config as core_config
from core.errors import EmailMismatch, InvalidState
from db.models.session import AuthSession
from db.models.user import User
from db.models.verification_token import VerificationToken
from models.auth import normalize_email
from services.auth.identity import IdentityResolver, username_base_from_email
from services.auth.sessions import SessionManager
from services.auth.tokens import TokenIssuer
from services.email.resend import EmailSender
from services.email.templates import (
    MAGIC_LINK_SUBJECT,
    VERIFY_EMAIL_SUBJECT,
    build_magic_link,
    build_verification_link,
    render_magic_link_email,
    render_verification_email,
)

logger = logging.getLogger(__name__)

CHECK_EMAIL_MESSAGE = "check your email"


class EmailLogin:
    def __init__(
        self,
        db: AsyncSession,
        sender: EmailSender,
        base_url: Optional[str] = None,
        sessions: Optional[SessionManager] = None,
    ):
        self.db = db
        self.sender = sender
        self.base_url = base_url or core_config.APP_URL
        self.tokens = TokenIssuer(db)
        self.identities = IdentityResolver(db)
        self.sessions = sessions or SessionManager(db)

    async def signin(self, email: str, callback_url: Optional[str] = None) -> str:
        """Email a magic link, creating the user on first contact.

        The response is identical for new and existing addresses. A failed send
        is raised since the flow is useless without the email.
        """
        email = normalize_email(email)
        user = await self.identities.get_user_by_email(email)
        if user is None:
            name = await self.identities.generate_unique_username(username_base_from_email(email))
            user = await self.identities.create_user(name=name, email=email)
            await self.db.commit()

        token = await self.tokens.issue(user.email, user.id)
        link = build_magic_link(self.base_url, token.token, user.email, callback_url or "")
        await self.sender.send(user.email, MAGIC_LINK_SUBJECT, render_magic_link_email(user.name, link))
        logger.info("Sent magic link to user %s", user.id)
        return CHECK_EMAIL_MESSAGE

    async def _consume_for_current_email(self, token: str) -> Tuple[VerificationToken, User]:
        record = await self.tokens.consume(token)
        user = await self.identities.get_user(record.user_id)
        if record.email != user.email:
            logger.info("Verification token email no longer matches user %s", user.id)
            raise EmailMismatch()
        return record, user

    async def complete_email_login(self, token: str) -> Tuple[User, AuthSession]:
        """Consume a magic-link token, mark the email verified and mint a session."""
        _, user = await self._consume_for_current_email(token)
        user = await self.identities.set_verified_email(user)
        session = await self.sessions.mint(user.id)
        return user, session

    async def send_verification_email(self, user: User) -> VerificationToken:
        if user.email_verified is not None:
            raise InvalidState("Email is already verified")
        if not user.email:
            raise InvalidState("No email address to verify")

        token = await self.tokens.issue(user.email, user.id)
        link = build_verification_link(self.base_url, token.token)
        body = render_verification_email(user.name, link, int(self.tokens.ttl.total_seconds() // 60))
        await self.sender.send(user.email, VERIFY_EMAIL_SUBJECT, body)
        logger.info("Sent verification email to user %s", user.id)
        return token

    async def verify_email(self, token: str) -> str:
        """Consume a verification token and stamp the user's email as verified."""
        record, user = await self._consume_for_current_email(token)
        await self.identities.set_verified_email(user)
        return record.email
