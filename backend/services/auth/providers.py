"""Normalize OAuth provider userinfo payloads into ``OAuthUserInfo``.

Each provider returns a differently shaped profile document. One parser per
provider maps it onto the canonical ``{id, email, name, avatar}`` shape so the
rest of the login flow never branches on provider.
"""

import logging
from typing import Any, Dict, Mapping, Optional

from core.errors import DeserializationError, NotFound
from models.auth import OAuthProvider, OAuthUserInfo

logger = logging.getLogger(__name__)

DISCORD_CDN_URL = "https://cdn.discordapp.com"


def _optional_str(payload: Mapping[str, Any], key: str) -> Optional[str]:
    value = payload.get(key)
    if value is None or value == "":
        return None
    return str(value)


class ProfileParser:
    """Base class: subclasses implement ``parse`` for one provider."""

    provider: OAuthProvider

    def parse(self, payload: Mapping[str, Any]) -> OAuthUserInfo:
        raise NotImplementedError

    def _require_id(self, payload: Mapping[str, Any]) -> str:
        if not isinstance(payload, Mapping):
            raise DeserializationError(f"{self.provider.value} userinfo is not a JSON object")
        raw_id = payload.get("id")
        if raw_id is None or raw_id == "":
            raise DeserializationError(f"{self.provider.value} userinfo missing id")
        return str(raw_id)


class GithubProfileParser(ProfileParser):
    """GitHub: numeric ``id``, ``login``, ``avatar_url``; ``email`` is the public, verified email."""

    provider = OAuthProvider.GITHUB

    def parse(self, payload: Mapping[str, Any]) -> OAuthUserInfo:
        user_id = self._require_id(payload)
        email = _optional_str(payload, "email")
        return OAuthUserInfo(
            id=user_id,
            email=email,
            name=_optional_str(payload, "name") or _optional_str(payload, "login"),
            avatar=_optional_str(payload, "avatar_url"),
            # GitHub only exposes a public email once it has been verified
            email_verified=email is not None,
        )


class GoogleProfileParser(ProfileParser):
    """Google v2 userinfo: ``id``, ``name``, ``picture``, ``verified_email``."""

    provider = OAuthProvider.GOOGLE

    def parse(self, payload: Mapping[str, Any]) -> OAuthUserInfo:
        user_id = self._require_id(payload)
        return OAuthUserInfo(
            id=user_id,
            email=_optional_str(payload, "email"),
            name=_optional_str(payload, "name"),
            avatar=_optional_str(payload, "picture"),
            email_verified=bool(payload.get("verified_email", False)),
        )


class DiscordProfileParser(ProfileParser):
    """Discord: ``id``, ``username``, ``avatar`` hash (CDN URL must be built), ``verified``."""

    provider = OAuthProvider.DISCORD

    def parse(self, payload: Mapping[str, Any]) -> OAuthUserInfo:
        user_id = self._require_id(payload)
        avatar_hash = _optional_str(payload, "avatar")
        avatar = None
        if avatar_hash:
            avatar = f"{DISCORD_CDN_URL}/avatars/{user_id}/{avatar_hash}.png"
        return OAuthUserInfo(
            id=user_id,
            email=_optional_str(payload, "email"),
            name=_optional_str(payload, "global_name") or _optional_str(payload, "username"),
            avatar=avatar,
            email_verified=bool(payload.get("verified", False)),
        )


PROFILE_PARSERS: Dict[OAuthProvider, ProfileParser] = {
    parser.provider: parser
    for parser in (GithubProfileParser(), GoogleProfileParser(), DiscordProfileParser())
}


def get_provider(name: str) -> OAuthProvider:
    """Map a provider name from a URL path to the enum, or raise NotFound."""
    try:
        return OAuthProvider(name.lower())
    except ValueError:
        raise NotFound(f"Unknown OAuth provider: {name}") from None


def parse_userinfo(provider: OAuthProvider, payload: Mapping[str, Any]) -> OAuthUserInfo:
    """Normalize a raw userinfo document for ``provider``."""
    info = PROFILE_PARSERS[provider].parse(payload)
    logger.debug("Parsed %s userinfo for account %s", provider.value, info.id)
    return info
