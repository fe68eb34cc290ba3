import os
from typing import Dict, List, Optional

from dotenv import load_dotenv

# Load environment variables from .env file
# Load .env.local first (for local development), then .env (fallback)
load_dotenv(".env.local", override=True)  # Local development overrides
load_dotenv()  # Load .env if exists (won't override existing vars)
# General config in a central place


def _env_bool(name: str, default: str = "false") -> bool:
    """Parse a boolean-like environment variable.

    Accepts a broad set of truthy values to be user-friendly.
    """
    return os.getenv(name, default).strip().lower() in {"1", "true", "yes", "on", "y"}


# Deployment

# "production" switches cookies to the strict HTTPS-only profile
APP_ENV = os.getenv("APP_ENV", "development").strip().lower()
IS_PRODUCTION = APP_ENV == "production"

# Base URL of the application, used for magic links and OAuth redirect URIs
APP_URL = os.getenv("APP_URL", "http://localhost:3000")
# Origin that post-login redirects must point at
FRONTEND_BASE_URL = os.getenv("FRONTEND_BASE_URL", APP_URL)

# CORS configuration
# Comma-separated list of allowed origins; if empty, allow all (not recommended with credentials)
RAW_ALLOWED_ORIGINS = os.getenv("ALLOWED_CORS_ORIGINS", "")
ALLOWED_CORS_ORIGINS = [o.strip() for o in RAW_ALLOWED_ORIGINS.split(",") if o.strip()]


# Database

# Database connection URL (postgresql://, postgis:// or sqlite://)
DATABASE_URL = os.getenv("DATABASE_URL")


# Sessions & tokens

SESSION_COOKIE_NAME = "session_token"
SESSION_TTL_DAYS = int(os.getenv("SESSION_TTL_DAYS", "365"))
VERIFICATION_TOKEN_TTL_MINUTES = int(os.getenv("VERIFICATION_TOKEN_TTL_MINUTES", "30"))
OAUTH_STATE_TTL_MINUTES = int(os.getenv("OAUTH_STATE_TTL_MINUTES", "10"))
USERNAME_PROBE_LIMIT = int(os.getenv("USERNAME_PROBE_LIMIT", "10"))


def get_enforce_session_expiry() -> bool:
    """Return whether session lookups reject rows past their expiry.

    Exposed as a function so tests can override the environment at runtime
    and re-query the value without needing to reload this module.
    """
    return _env_bool("ENFORCE_SESSION_EXPIRY", default="false")


# Cookie Security Configuration
# Development keeps a long-lived Lax cookie over plain HTTP; production
# uses a Strict, Secure cookie with a shorter lifetime.
COOKIE_HTTPONLY = True
COOKIE_SECURE = IS_PRODUCTION
COOKIE_SAMESITE = "strict" if IS_PRODUCTION else "lax"
COOKIE_MAX_AGE_DAYS = 60 if IS_PRODUCTION else 365


# Email delivery (Resend)

RESEND_API_URL = os.getenv("RESEND_API_URL", "https://api.resend.com/emails")
RESEND_API_KEY = os.getenv("RESEND_API_KEY", "")
RESEND_FROM = os.getenv("RESEND_FROM", "")


# OAuth providers
# ----------------------------------------------------------------------------

OAUTH_PROVIDER_DEFAULTS: Dict[str, Dict[str, str]] = {
    "github": {
        "auth_url": "https://github.com/login/oauth/authorize",
        "token_url": "https://github.com/login/oauth/access_token",
        "userinfo_url": "https://api.github.com/user",
        "scopes": "read:user user:email",
    },
    "google": {
        "auth_url": "https://accounts.google.com/o/oauth2/v2/auth",
        "token_url": "https://www.googleapis.com/oauth2/v3/token",
        "userinfo_url": "https://www.googleapis.com/oauth2/v2/userinfo",
        "scopes": "email profile",
    },
    "discord": {
        "auth_url": "https://discord.com/api/oauth2/authorize",
        "token_url": "https://discord.com/api/oauth2/token",
        "userinfo_url": "https://discord.com/api/users/@me",
        "scopes": "identify email",
    },
}


def get_oauth_provider_config(name: str) -> Optional[Dict[str, str]]:
    """Return the configuration for one OAuth provider, or None if unconfigured.

    Client credentials come from ``<NAME>_CLIENT_ID`` / ``<NAME>_CLIENT_SECRET``;
    endpoints default to the provider's public URLs and may be overridden with
    ``<NAME>_AUTH_URL``, ``<NAME>_TOKEN_URL`` and ``<NAME>_USERINFO_URL``.
    """
    defaults = OAUTH_PROVIDER_DEFAULTS.get(name)
    if defaults is None:
        return None

    prefix = name.upper()
    client_id = os.getenv(f"{prefix}_CLIENT_ID", "")
    client_secret = os.getenv(f"{prefix}_CLIENT_SECRET", "")
    if not client_id or not client_secret:
        return None

    return {
        "name": name,
        "client_id": client_id,
        "client_secret": client_secret,
        "auth_url": os.getenv(f"{prefix}_AUTH_URL", defaults["auth_url"]),
        "token_url": os.getenv(f"{prefix}_TOKEN_URL", defaults["token_url"]),
        "userinfo_url": os.getenv(f"{prefix}_USERINFO_URL", defaults["userinfo_url"]),
        "scopes": defaults["scopes"],
        "redirect_uri": f"{APP_URL.rstrip('/')}/api/auth/callback/{name}",
    }


def get_oauth_providers() -> List[Dict[str, str]]:
    """Return configurations for every provider with credentials set."""
    providers = []
    for name in OAUTH_PROVIDER_DEFAULTS:
        cfg = get_oauth_provider_config(name)
        if cfg:
            providers.append(cfg)
    return providers
