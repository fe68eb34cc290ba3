"""ORM model for blockchain wallets owned by users."""

from uuid import uuid4

from sqlalchemy import BOOLEAN, TEXT, TIMESTAMP, Column, ForeignKey, Uuid, func, text

from db.base import Base


class Wallet(Base):
    """A wallet address; stored lowercase, at most one owner per address."""

    __tablename__ = "wallets"

    id = Column(Uuid(), primary_key=True, default=uuid4)
    address = Column(TEXT, nullable=False, unique=True)
    label = Column(TEXT, nullable=False)
    wallet_type = Column(TEXT, nullable=False, default="metamask", server_default=text("'metamask'"))
    chain_type = Column(TEXT, nullable=True)
    chain_id = Column(TEXT, nullable=True)
    user_id = Column(
        Uuid(),
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    is_primary = Column(BOOLEAN, nullable=False, default=False, server_default=text("false"))
    created_at = Column(
        TIMESTAMP(timezone=True),
        nullable=False,
        server_default=func.now(),
    )
    updated_at = Column(
        TIMESTAMP(timezone=True),
        nullable=False,
        server_default=func.now(),
        onupdate=func.now(),
    )
