"""ORM model for pending OAuth authorization requests."""

from sqlalchemy import TEXT, TIMESTAMP, Column, func

from db.base import Base


class OAuthState(Base):
    """CSRF state and PKCE verifier remembered between login start and callback."""

    __tablename__ = "oauth_states"

    state = Column(TEXT, primary_key=True)
    pkce_verifier = Column(TEXT, nullable=False)
    provider = Column(TEXT, nullable=False)
    callback_url = Column(TEXT, nullable=False)
    created_at = Column(
        TIMESTAMP(timezone=True),
        nullable=False,
        server_default=func.now(),
    )
