"""Single-use email verification tokens."""

import logging
from datetime import timedelta
from uuid import UUID

from sqlalchemy import delete
from sqlalchemy.ext.asyncio import AsyncSession

from core.config import VERIFICATION_TOKEN_TTL_MINUTES
from core.errors import Expired, NotFound
from core.security import as_utc, generate_verification_token, is_well_formed_token, utcnow
from db.models.verification_token import VerificationToken

logger = logging.getLogger(__name__)


class TokenIssuer:
    """Issue and consume verification tokens.

    Several outstanding tokens may exist for one user; each is independently
    valid until consumed or expired.
    """

    def __init__(self, db: AsyncSession, ttl_minutes: int = VERIFICATION_TOKEN_TTL_MINUTES):
        self.db = db
        self.ttl = timedelta(minutes=ttl_minutes)

    async def issue(self, email: str, user_id: UUID) -> VerificationToken:
        record = VerificationToken(
            email=email,
            user_id=user_id,
            expires=utcnow() + self.ttl,
            token=generate_verification_token(),
        )
        self.db.add(record)
        await self.db.commit()
        logger.info("Issued verification token for user %s", user_id)
        return record

    async def consume(self, token: str) -> VerificationToken:
        """Delete the token and return its prior value in one statement.

        The row is gone after this call whether it succeeds or raises
        ``Expired``; a token can never be presented twice.
        """
        if not is_well_formed_token(token):
            raise NotFound("Token not found")

        result = await self.db.execute(
            delete(VerificationToken)
            .where(VerificationToken.token == token)
            .returning(VerificationToken)
        )
        record = result.scalars().first()
        await self.db.commit()

        if record is None:
            raise NotFound("Token not found")

        if as_utc(record.expires) < utcnow():
            logger.info("Rejected expired verification token for user %s", record.user_id)
            raise Expired("Token has expired")

        logger.info("Consumed verification token for user %s", record.user_id)
        return record
