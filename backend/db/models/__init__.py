"""Package for ORM model definitions."""

from db.models.oauth_account import OAuthAccount
from db.models.oauth_state import OAuthState
from db.models.session import AuthSession
from db.models.user import User
from db.models.verification_token import VerificationToken
from db.models.wallet import Wallet

__all__ = ["AuthSession", "OAuthAccount", "OAuthState", "User", "VerificationToken", "Wallet"]
