"""Error taxonomy for the identity and session subsystem.

Every failure raised by the auth services derives from ``IdentityError`` and
carries a short, user-presentable ``reason`` plus the HTTP status it maps to.
Reasons never include secrets or say whether an email address is registered.
"""

from fastapi import status


class IdentityError(Exception):
    """Base class for identity/session failures."""

    status_code = status.HTTP_400_BAD_REQUEST

    def __init__(self, reason: str):
        super().__init__(reason)
        self.reason = reason


class AuthError(IdentityError):
    """A session or credential is not valid."""

    status_code = status.HTTP_401_UNAUTHORIZED


class Unauthenticated(AuthError):
    """No session, or the session token is unknown."""

    def __init__(self, reason: str = "Not authenticated"):
        super().__init__(reason)


class SignatureMismatch(AuthError):
    """A wallet signature did not recover to the claimed address."""


class EmailMismatch(AuthError):
    """A verification token was issued for a different email than the user's current one."""

    def __init__(self, reason: str = "Token email does not match user email"):
        super().__init__(reason)


class Forbidden(AuthError):
    status_code = status.HTTP_403_FORBIDDEN


class NotFound(IdentityError):
    status_code = status.HTTP_404_NOT_FOUND


class InvalidState(IdentityError):
    """OAuth state unknown/consumed, or input that cannot be trusted."""


class Expired(IdentityError):
    """Token or OAuth state used outside its validity window."""


class ProviderError(IdentityError):
    """Upstream OAuth or mail service failure."""

    status_code = status.HTTP_502_BAD_GATEWAY


class DeserializationError(ProviderError):
    """Upstream payload was malformed or missing required fields."""


class ConfigurationError(IdentityError):
    status_code = status.HTTP_503_SERVICE_UNAVAILABLE
