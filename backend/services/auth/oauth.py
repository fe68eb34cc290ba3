"""OAuth2 authorization-code login with CSRF state and PKCE.

Flow per login attempt::

    begin()    -> OAuthState row stored, redirect URL returned
    (user consents at the provider, provider redirects back)
    complete() -> state row deleted, code + verifier exchanged for an access
                  token, userinfo fetched and normalized

A callback is only accepted with a state value this server generated and has
not yet consumed; that remembered value is the CSRF defense.
"""

import logging
from datetime import timedelta
from typing import Dict, Optional, Tuple

import httpx
from authlib.integrations.httpx_client import AsyncOAuth2Client, OAuthError
from sqlalchemy import delete
from sqlalchemy.ext.asyncio import AsyncSession

from core.config import OAUTH_STATE_TTL_MINUTES, get_oauth_provider_config
from core.errors import (
    ConfigurationError,
    DeserializationError,
    Expired,
    InvalidState,
    ProviderError,
)
from core.security import (
    as_utc,
    generate_code_verifier,
    generate_oauth_state,
    utcnow,
)
from db.models.oauth_state import OAuthState
from models.auth import OAuthProvider, OAuthUserInfo
from services.auth.providers import parse_userinfo

logger = logging.getLogger(__name__)

HTTP_TIMEOUT = 10.0


def require_provider_config(provider: OAuthProvider) -> Dict[str, str]:
    cfg = get_oauth_provider_config(provider.value)
    if cfg is None:
        raise ConfigurationError(f"OAuth provider not configured: {provider.value}")
    return cfg


class OAuthExchange:
    """Start and finish OAuth logins against GitHub, Google or Discord.

    ``transport`` is handed to the underlying httpx client; tests pass an
    ``httpx.MockTransport`` to stand in for the provider.
    """

    def __init__(
        self,
        db: AsyncSession,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        state_ttl_minutes: int = OAUTH_STATE_TTL_MINUTES,
    ):
        self.db = db
        self.transport = transport
        self.state_ttl = timedelta(minutes=state_ttl_minutes)

    def _client(self, cfg: Dict[str, str]) -> AsyncOAuth2Client:
        kwargs = {"timeout": HTTP_TIMEOUT}
        if self.transport is not None:
            kwargs["transport"] = self.transport
        return AsyncOAuth2Client(
            cfg["client_id"],
            cfg["client_secret"],
            scope=cfg["scopes"],
            redirect_uri=cfg["redirect_uri"],
            token_endpoint_auth_method="client_secret_post",
            code_challenge_method="S256",
            **kwargs,
        )

    async def begin(self, provider: OAuthProvider, callback_url: str) -> str:
        """Persist a fresh state + PKCE verifier and return the provider authorize URL."""
        cfg = require_provider_config(provider)

        state = generate_oauth_state()
        verifier = generate_code_verifier()
        self.db.add(
            OAuthState(
                state=state,
                pkce_verifier=verifier,
                provider=provider.value,
                callback_url=callback_url,
                created_at=utcnow(),
            )
        )
        await self.db.commit()

        async with self._client(cfg) as client:
            authorize_url, _ = client.create_authorization_url(
                cfg["auth_url"],
                state=state,
                code_verifier=verifier,
            )
        logger.info("Started %s OAuth login", provider.value)
        return authorize_url

    async def _take_state(self, state: str) -> Optional[OAuthState]:
        result = await self.db.execute(
            delete(OAuthState).where(OAuthState.state == state).returning(OAuthState)
        )
        record = result.scalars().first()
        await self.db.commit()
        return record

    async def complete(
        self,
        provider: OAuthProvider,
        code: Optional[str],
        state: Optional[str],
        error: Optional[str] = None,
    ) -> Tuple[OAuthUserInfo, str]:
        """Validate and consume ``state``, exchange ``code``, and fetch the profile.

        Returns the normalized profile and the callback URL recorded at ``begin``.
        """
        record = await self._take_state(state) if state else None

        if error:
            logger.info("%s OAuth login returned error: %s", provider.value, error)
            raise ProviderError(f"Provider returned error: {error}")

        if record is None:
            raise InvalidState("Invalid OAuth state")
        if record.provider != provider.value:
            raise InvalidState("OAuth state does not match provider")
        if as_utc(record.created_at) + self.state_ttl < utcnow():
            raise Expired("OAuth state has expired")
        if not code:
            raise InvalidState("Missing authorization code")

        cfg = require_provider_config(provider)
        async with self._client(cfg) as client:
            try:
                await client.fetch_token(
                    cfg["token_url"],
                    code=code,
                    code_verifier=record.pkce_verifier,
                )
            except OAuthError as exc:
                raise ProviderError(
                    f"Failed to exchange code: {exc.description or exc.error}"
                ) from exc
            except httpx.HTTPError as exc:
                raise ProviderError(f"Failed to exchange code: {exc}") from exc
            except ValueError as exc:
                raise DeserializationError("Malformed token response") from exc

            try:
                response = await client.get(cfg["userinfo_url"])
                response.raise_for_status()
            except httpx.HTTPError as exc:
                raise ProviderError(f"Failed to fetch user info: {exc}") from exc

        try:
            payload = response.json()
        except ValueError as exc:
            raise DeserializationError("Malformed user info response") from exc

        info = parse_userinfo(provider, payload)
        logger.info("Completed %s OAuth login for account %s", provider.value, info.id)
        return info, record.callback_url
