"""Anonymous visitor bootstrap."""

import logging
from typing import Optional, Tuple
from uuid import uuid4

from sqlalchemy.ext.asyncio import AsyncSession

from db.models.session import AuthSession
from db.models.user import User
from services.auth.identity import IdentityResolver
from services.auth.sessions import SessionManager

logger = logging.getLogger(__name__)


class GuestBootstrapper:
    """Give every visitor a stable identity, creating a guest user when needed.

    There is no lock against two first-visit requests racing: each may create
    its own guest before either cookie reaches the client.
    """

    def __init__(self, db: AsyncSession, sessions: Optional[SessionManager] = None):
        self.db = db
        self.sessions = sessions or SessionManager(db)
        self.identities = IdentityResolver(db)

    async def ensure_session(
        self, session_token: Optional[str]
    ) -> Tuple[User, Optional[AuthSession]]:
        """Return the user behind ``session_token`` or a new guest.

        The session is only returned when one was minted; the caller must then
        set the cookie.
        """
        user = await self.sessions.get_optional_user(session_token)
        if user is not None:
            return user, None

        guest = await self.identities.create_user(name=f"guest_{uuid4()}")
        await self.db.commit()
        session = await self.sessions.mint(guest.id)
        logger.info("Bootstrapped guest user %s", guest.id)
        return guest, session
