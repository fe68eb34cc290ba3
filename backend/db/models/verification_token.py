"""ORM model for single-use email verification tokens."""

from uuid import uuid4

from sqlalchemy import TEXT, TIMESTAMP, Column, ForeignKey, Uuid

from db.base import Base


class VerificationToken(Base):
    __tablename__ = "verification_tokens"

    id = Column(Uuid(), primary_key=True, default=uuid4)
    email = Column(TEXT, nullable=False)
    user_id = Column(
        Uuid(),
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    expires = Column(TIMESTAMP(timezone=True), nullable=False)
    token = Column(TEXT, nullable=False, unique=True)
