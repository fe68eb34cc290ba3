"""Authentication endpoints: magic link, OAuth, wallet, guest and session management."""

import logging
from typing import List, Optional
from urllib.parse import urlparse
from uuid import UUID

import httpx
from fastapi import APIRouter, Depends, HTTPException, Query, Request, Response, status
from fastapi.responses import JSONResponse, RedirectResponse
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from api.deps import (
    get_current_user,
    get_email_sender,
    get_oauth_transport,
    get_optional_user,
    get_session_token,
    get_superadmin,
)
from core import config as core_config
from core.errors import IdentityError, InvalidState
from db.models.user import User
from db.session import get_session
from models.auth import (
    AvailabilityResponse,
    MessageResponse,
    OAuthProviderRead,
    ProfileUpdate,
    SessionRead,
    SignInForm,
    UserRead,
    WalletLoginForm,
    WalletMessage,
    WalletRead,
)
from services.auth.email_login import CHECK_EMAIL_MESSAGE, EmailLogin
from services.auth.guest import GuestBootstrapper
from services.auth.identity import IdentityResolver
from services.auth.oauth import OAuthExchange
from services.auth.providers import get_provider
from services.auth.sessions import (
    SessionCookie,
    SessionManager,
    build_expired_cookie,
    build_session_cookie,
)
from services.auth.wallet import SignatureVerifier, build_sign_message
from services.email.resend import EmailSender

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/auth", tags=["auth"])


def _set_session_cookie(response: Response, cookie: SessionCookie) -> None:
    response.set_cookie(
        key=cookie.key,
        value=cookie.value,
        httponly=cookie.httponly,
        secure=cookie.secure,
        samesite=cookie.samesite,
        max_age=cookie.max_age,
        expires=cookie.expires,
        path=cookie.path,
    )


def _user_payload(user: User) -> dict:
    return UserRead.model_validate(user).model_dump(mode="json")


def _default_redirect_url() -> str:
    return f"{core_config.FRONTEND_BASE_URL.rstrip('/')}/"


def _validate_redirect(redirect_url: Optional[str]) -> str:
    """Allow only redirects pointing to the configured frontend origin."""
    if not redirect_url:
        return _default_redirect_url()

    target = urlparse(redirect_url)
    allowed = urlparse(core_config.FRONTEND_BASE_URL)
    if not target.scheme and not target.netloc:
        if not redirect_url.startswith("/"):
            raise InvalidState("Invalid redirect URL")
        # Relative path - anchor to allowed origin
        redirect_url = f"{allowed.scheme}://{allowed.netloc}{redirect_url}"
        target = urlparse(redirect_url)

    if target.scheme == allowed.scheme and target.netloc == allowed.netloc:
        return redirect_url

    raise InvalidState("Invalid redirect URL")


def _failed(exc: IdentityError, prefix: str = "Authentication failed") -> HTTPException:
    return HTTPException(status_code=exc.status_code, detail=f"{prefix}: {exc.reason}")


# Passwordless email -----------------------------------------------------------


@router.post("/signin", response_model=MessageResponse)
async def signin(
    form: SignInForm,
    db: AsyncSession = Depends(get_session),
    sender: EmailSender = Depends(get_email_sender),
) -> MessageResponse:
    """Send a magic login link; the answer never reveals whether the email was known."""
    callback_url = _validate_redirect(form.callback_url)
    message = await EmailLogin(db, sender).signin(form.email, callback_url)
    return MessageResponse(message=message)


@router.get("/callback/email")
async def email_callback(
    token: str = Query(..., description="Single-use verification token"),
    email: Optional[str] = Query(None, description="Address the link was sent to"),
    callbackUrl: Optional[str] = Query(None, description="Where to go after login"),
    db: AsyncSession = Depends(get_session),
    sender: EmailSender = Depends(get_email_sender),
):
    """Complete a magic-link login, set the session cookie and redirect."""
    try:
        redirect_url = _validate_redirect(callbackUrl)
        _, session = await EmailLogin(db, sender).complete_email_login(token)
    except IdentityError as exc:
        logger.info("Email login failed: %s", exc.reason)
        raise _failed(exc) from exc

    response = RedirectResponse(url=redirect_url, status_code=status.HTTP_302_FOUND)
    _set_session_cookie(response, build_session_cookie(session.session_token))
    return response


@router.post("/verify-email", response_model=MessageResponse)
async def request_email_verification(
    db: AsyncSession = Depends(get_session),
    sender: EmailSender = Depends(get_email_sender),
    current_user: User = Depends(get_current_user),
) -> MessageResponse:
    await EmailLogin(db, sender).send_verification_email(current_user)
    return MessageResponse(message=CHECK_EMAIL_MESSAGE)


@router.get("/callback/email-verify")
async def email_verify_callback(
    token: str = Query(..., description="Single-use verification token"),
    db: AsyncSession = Depends(get_session),
    sender: EmailSender = Depends(get_email_sender),
):
    """Mark an email address verified and send the user to their settings."""
    try:
        await EmailLogin(db, sender).verify_email(token)
    except IdentityError as exc:
        logger.info("Email verification failed: %s", exc.reason)
        raise _failed(exc, prefix="Verification failed") from exc

    return RedirectResponse(
        url=f"{core_config.FRONTEND_BASE_URL.rstrip('/')}/settings",
        status_code=status.HTTP_302_FOUND,
    )


# OAuth ------------------------------------------------------------------------


@router.get("/oauth/providers", response_model=List[OAuthProviderRead])
async def list_oauth_providers() -> List[OAuthProviderRead]:
    """Return configured OAuth providers for the frontend."""
    return [
        OAuthProviderRead(name=p["name"], scopes=p["scopes"])
        for p in core_config.get_oauth_providers()
    ]


@router.get("/oauth/{provider}/login")
async def oauth_login(
    provider: str,
    callbackUrl: Optional[str] = Query(None, description="Redirect URL after login"),
    db: AsyncSession = Depends(get_session),
    transport: Optional[httpx.AsyncBaseTransport] = Depends(get_oauth_transport),
):
    """Initiate an OAuth login by redirecting to the provider's authorization endpoint."""
    oauth_provider = get_provider(provider)
    callback_url = _validate_redirect(callbackUrl)
    authorize_url = await OAuthExchange(db, transport=transport).begin(oauth_provider, callback_url)
    return RedirectResponse(url=authorize_url, status_code=status.HTTP_302_FOUND)


@router.get("/callback/{provider}")
async def oauth_callback(
    provider: str,
    code: Optional[str] = Query(None, description="Authorization code"),
    state: Optional[str] = Query(None, description="CSRF state"),
    error: Optional[str] = Query(None, description="Provider error, e.g. access_denied"),
    db: AsyncSession = Depends(get_session),
    transport: Optional[httpx.AsyncBaseTransport] = Depends(get_oauth_transport),
):
    """Handle the OAuth callback, resolve or link the user, and set the session cookie."""
    try:
        oauth_provider = get_provider(provider)
        info, callback_url = await OAuthExchange(db, transport=transport).complete(
            oauth_provider, code, state, error
        )
        redirect_url = _validate_redirect(callback_url)
        user = await IdentityResolver(db).resolve_oauth(oauth_provider, info)
        session = await SessionManager(db).mint(user.id)
    except IdentityError as exc:
        logger.info("OAuth login via %s failed: %s", provider, exc.reason)
        raise _failed(exc) from exc

    response = RedirectResponse(url=redirect_url, status_code=status.HTTP_302_FOUND)
    _set_session_cookie(response, build_session_cookie(session.session_token))
    return response


# Wallet -----------------------------------------------------------------------


@router.get("/wallet/message", response_model=WalletMessage)
async def wallet_message() -> WalletMessage:
    """Return a fresh message for the wallet to sign."""
    return WalletMessage(message=build_sign_message())


@router.post("/wallet/verify")
async def wallet_verify(
    form: WalletLoginForm,
    db: AsyncSession = Depends(get_session),
    current_user: Optional[User] = Depends(get_optional_user),
) -> JSONResponse:
    """Verify a wallet signature, then link the wallet or log in as its owner.

    A bare guest session never blocks the owner of an already linked wallet
    from logging in; the guest is left behind.
    """
    address = SignatureVerifier().require_valid(form.address, form.message, form.signature)
    identities = IdentityResolver(db)

    if current_user is not None:
        owned = await identities.get_wallet_by_address(address)
        if (
            owned is not None
            and owned.user_id != current_user.id
            and await identities.is_credentialless(current_user)
        ):
            logger.info("Guest %s switching to wallet owner %s", current_user.id, owned.user_id)
            current_user = None

    if current_user is not None:
        wallet = await identities.link_wallet(current_user, address, form.chain_id)
        return JSONResponse(
            content={
                "user": _user_payload(current_user),
                "wallet": WalletRead.model_validate(wallet).model_dump(mode="json"),
                "linked": True,
            }
        )

    user = await identities.resolve_wallet(address, form.chain_id)
    session = await SessionManager(db).mint(user.id)
    response = JSONResponse(content={"user": _user_payload(user), "linked": False})
    _set_session_cookie(response, build_session_cookie(session.session_token))
    return response


@router.get("/wallets", response_model=List[WalletRead])
async def list_wallets(
    db: AsyncSession = Depends(get_session),
    current_user: User = Depends(get_current_user),
) -> List[WalletRead]:
    wallets = await IdentityResolver(db).list_wallets(current_user)
    return [WalletRead.model_validate(w) for w in wallets]


@router.post("/wallets/{wallet_id}/primary", response_model=WalletRead)
async def set_primary_wallet(
    wallet_id: UUID,
    db: AsyncSession = Depends(get_session),
    current_user: User = Depends(get_current_user),
) -> WalletRead:
    wallet = await IdentityResolver(db).set_primary_wallet(current_user, wallet_id)
    return WalletRead.model_validate(wallet)


# Guest & session --------------------------------------------------------------


@router.post("/guest")
async def ensure_guest_session(
    request: Request,
    db: AsyncSession = Depends(get_session),
) -> JSONResponse:
    """Return the current user, creating a guest user and session for new visitors."""
    user, session = await GuestBootstrapper(db).ensure_session(get_session_token(request))
    response = JSONResponse(content={"user": _user_payload(user)})
    if session is not None:
        _set_session_cookie(response, build_session_cookie(session.session_token))
    return response


@router.get("/session", response_model=SessionRead)
async def read_session(current_user: Optional[User] = Depends(get_optional_user)) -> SessionRead:
    """Soft identity check: anonymous visitors get ``{"user": null}``."""
    if current_user is None:
        return SessionRead(user=None)
    return SessionRead(user=UserRead.model_validate(current_user))


@router.get("/me", response_model=UserRead)
async def me(current_user: User = Depends(get_current_user)) -> UserRead:
    """Return the current user based on session cookie."""
    return UserRead.model_validate(current_user)


@router.patch("/me", response_model=UserRead)
async def update_me(
    payload: ProfileUpdate,
    db: AsyncSession = Depends(get_session),
    sender: EmailSender = Depends(get_email_sender),
    current_user: User = Depends(get_current_user),
) -> UserRead:
    """Update name and email; a new email is unverified until its link is followed."""
    user, email_changed = await IdentityResolver(db).update_profile(
        current_user, payload.name, payload.email
    )
    if email_changed:
        try:
            await EmailLogin(db, sender).send_verification_email(user)
        except IdentityError as exc:
            logger.warning("Could not send verification email to user %s: %s", user.id, exc.reason)
    return UserRead.model_validate(user)


@router.get("/username-available", response_model=AvailabilityResponse)
async def username_available(
    username: str = Query(..., min_length=1),
    db: AsyncSession = Depends(get_session),
) -> AvailabilityResponse:
    available = await IdentityResolver(db).is_username_available(username.strip())
    return AvailabilityResponse(available=available)


@router.post("/logout", status_code=status.HTTP_204_NO_CONTENT)
async def logout(request: Request, db: AsyncSession = Depends(get_session)) -> Response:
    """Revoke the session and overwrite the cookie with an expired, empty value."""
    token = get_session_token(request)
    if token:
        try:
            await SessionManager(db).revoke(token)
        except SQLAlchemyError as exc:
            logger.warning("Failed to delete session during logout: %s", exc)

    response = Response(status_code=status.HTTP_204_NO_CONTENT)
    _set_session_cookie(response, build_expired_cookie())
    return response


@router.get("/users", response_model=List[UserRead])
async def list_users(
    db: AsyncSession = Depends(get_session),
    _: User = Depends(get_superadmin),
) -> List[UserRead]:
    users = await IdentityResolver(db).list_users()
    return [UserRead.model_validate(u) for u in users]
