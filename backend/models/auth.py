"""Pydantic models for authentication payloads."""

import re
from datetime import datetime
from enum import Enum
from typing import Optional
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field, field_validator

EMAIL_PATTERN = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")


def is_valid_email(value: str) -> bool:
    return bool(value) and bool(EMAIL_PATTERN.match(value))


def normalize_email(value: str) -> str:
    return value.strip().lower()


class OAuthProvider(str, Enum):
    """Supported third-party login providers."""

    GITHUB = "github"
    GOOGLE = "google"
    DISCORD = "discord"


class Theme(str, Enum):
    SYSTEM = "system"
    LIGHT = "light"
    DARK = "dark"


class OAuthUserInfo(BaseModel):
    """Provider profile normalized to one shape regardless of provider."""

    id: str
    email: Optional[str] = None
    name: Optional[str] = None
    avatar: Optional[str] = None
    # Only a provider-verified email may be used to link to an existing account
    email_verified: bool = False


class SignInForm(BaseModel):
    """Passwordless login request."""

    email: str
    callback_url: Optional[str] = None

    model_config = ConfigDict(extra="forbid")

    @field_validator("email")
    @classmethod
    def _validate_email(cls, value: str) -> str:
        value = normalize_email(value)
        if not is_valid_email(value):
            raise ValueError("Please enter a valid email address")
        return value


class WalletLoginForm(BaseModel):
    """A message signed by a wallet, submitted to log in or link the wallet."""

    address: str = Field(..., description="Claimed 0x-prefixed EVM address")
    chain_id: Optional[str] = Field(None, description="Hex chain id reported by the wallet")
    message: str = Field(..., description="Exact text that was signed")
    signature: str = Field(..., description="65-byte hex signature")

    model_config = ConfigDict(extra="forbid")


class ProfileUpdate(BaseModel):
    name: str
    email: str

    model_config = ConfigDict(extra="forbid")

    @field_validator("name")
    @classmethod
    def _validate_name(cls, value: str) -> str:
        value = value.strip()
        if not value:
            raise ValueError("Name must not be empty")
        return value

    @field_validator("email")
    @classmethod
    def _validate_email(cls, value: str) -> str:
        value = normalize_email(value)
        if not is_valid_email(value):
            raise ValueError("Invalid email format")
        return value


class UserRead(BaseModel):
    """Public view of a user."""

    id: UUID
    name: str
    email: str
    email_verified: Optional[datetime] = None
    image: Optional[str] = None
    is_admin: bool = False
    superadmin: bool = False
    theme: str = Theme.SYSTEM.value

    model_config = ConfigDict(from_attributes=True)


class SessionRead(BaseModel):
    """Soft identity lookup result; ``user`` is None for anonymous visitors."""

    user: Optional[UserRead] = None


class WalletRead(BaseModel):
    id: UUID
    address: str
    label: str
    wallet_type: str
    chain_type: Optional[str] = None
    chain_id: Optional[str] = None
    is_primary: bool

    model_config = ConfigDict(from_attributes=True)


class WalletMessage(BaseModel):
    message: str


class OAuthProviderRead(BaseModel):
    name: str
    scopes: str


class MessageResponse(BaseModel):
    message: str


class AvailabilityResponse(BaseModel):
    available: bool
