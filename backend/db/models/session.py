"""ORM model for login sessions."""

from uuid import uuid4

from sqlalchemy import TEXT, TIMESTAMP, Column, ForeignKey, Uuid

from db.base import Base


class AuthSession(Base):
    """A bearer session; ``session_token`` is the cookie value."""

    __tablename__ = "sessions"

    id = Column(Uuid(), primary_key=True, default=uuid4)
    session_token = Column(TEXT, nullable=False, unique=True)
    user_id = Column(
        Uuid(),
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    expires = Column(TIMESTAMP(timezone=True), nullable=False)
