"""ORM model for the users table."""

from uuid import uuid4

from sqlalchemy import BOOLEAN, TEXT, TIMESTAMP, Column, Uuid, func, text

from db.base import Base


class User(Base):
    """User account information.

    ``email`` is blank for guest and wallet-only users. Uniqueness of non-blank
    emails and of ``name`` is best-effort (lookup before create), not a constraint.
    """

    __tablename__ = "users"

    id = Column(Uuid(), primary_key=True, default=uuid4)
    name = Column(TEXT, nullable=False, index=True)
    email = Column(TEXT, nullable=False, default="", server_default=text("''"), index=True)
    email_verified = Column(TIMESTAMP(timezone=True), nullable=True)
    image = Column(TEXT, nullable=True)
    is_admin = Column(BOOLEAN, nullable=False, default=False, server_default=text("false"))
    superadmin = Column(BOOLEAN, nullable=False, default=False, server_default=text("false"))
    theme = Column(TEXT, nullable=False, default="system", server_default=text("'system'"))

    first_name = Column(TEXT, nullable=True)
    last_name = Column(TEXT, nullable=True)
    address1 = Column(TEXT, nullable=True)
    address2 = Column(TEXT, nullable=True)
    address3 = Column(TEXT, nullable=True)
    postcode = Column(TEXT, nullable=True)
    phone = Column(TEXT, nullable=True)
    telephone = Column(TEXT, nullable=True)

    created_at = Column(
        TIMESTAMP(timezone=True),
        nullable=False,
        server_default=func.now(),
    )
