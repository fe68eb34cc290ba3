"""ORM model linking third-party OAuth identities to users."""

from uuid import uuid4

from sqlalchemy import TEXT, TIMESTAMP, Column, ForeignKey, UniqueConstraint, Uuid, func

from db.base import Base


class OAuthAccount(Base):
    __tablename__ = "oauth_accounts"
    __table_args__ = (
        UniqueConstraint("provider", "provider_account_id", name="uq_oauth_accounts_identity"),
    )

    id = Column(Uuid(), primary_key=True, default=uuid4)
    provider = Column(TEXT, nullable=False)
    provider_account_id = Column(TEXT, nullable=False)
    user_id = Column(
        Uuid(),
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    created_at = Column(
        TIMESTAMP(timezone=True),
        nullable=False,
        server_default=func.now(),
    )
