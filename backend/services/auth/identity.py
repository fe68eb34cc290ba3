"""Map verified credentials onto users and link additional login methods.

Resolution precedence for a third-party credential (OAuth account or wallet):

1. an existing link for the credential is authoritative;
2. otherwise a provider-verified email matching an existing user whose own
   email is verified links the credential to that user;
3. otherwise a new user is created and the credential linked to it.

Username uniqueness is best-effort: availability is checked and then the user
is created, so two concurrent signups can still end up with the same name.
"""

import logging
from typing import List, Optional, Tuple
from uuid import UUID, uuid4

from sqlalchemy import delete, func, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from core.config import USERNAME_PROBE_LIMIT
from core.errors import AuthError, InvalidState, NotFound
from core.security import utcnow
from db.models.oauth_account import OAuthAccount
from db.models.session import AuthSession
from db.models.user import User
from db.models.verification_token import VerificationToken
from db.models.wallet import Wallet
from models.auth import OAuthProvider, OAuthUserInfo, normalize_email

logger = logging.getLogger(__name__)

KNOWN_EVM_CHAINS = {
    1: "Ethereum",
    10: "Optimism",
    56: "BNB Smart Chain",
    137: "Polygon",
    8453: "Base",
    42161: "Arbitrum One",
    43114: "Avalanche C-Chain",
    11155111: "Sepolia",
}


def chain_name(chain_id: Optional[str]) -> str:
    """Human label for a hex chain id such as ``0x89``."""
    if not chain_id:
        return "EVM Chain"
    try:
        number = int(chain_id, 16) if chain_id.lower().startswith("0x") else int(chain_id)
    except ValueError:
        return "EVM Chain"
    return KNOWN_EVM_CHAINS.get(number, "EVM Chain")


def username_base_from_email(email: str) -> str:
    local = email.split("@", 1)[0].strip()
    return local or "user"


class IdentityResolver:
    def __init__(self, db: AsyncSession, probe_limit: int = USERNAME_PROBE_LIMIT):
        self.db = db
        self.probe_limit = probe_limit

    # Users -----------------------------------------------------------------

    async def get_user(self, user_id: UUID) -> User:
        user = await self.db.get(User, user_id)
        if user is None:
            raise NotFound("User not found")
        return user

    async def get_user_by_email(self, email: str) -> Optional[User]:
        email = normalize_email(email or "")
        if not email:
            return None
        result = await self.db.execute(
            select(User)
            .where(User.email == email)
            .order_by(User.email_verified.is_(None), User.created_at)
            .limit(1)
        )
        return result.scalars().first()

    async def list_users(self) -> List[User]:
        result = await self.db.execute(select(User).order_by(User.created_at))
        return list(result.scalars().all())

    async def is_username_available(self, name: str) -> bool:
        result = await self.db.execute(select(func.count()).select_from(User).where(User.name == name))
        return result.scalar_one() == 0

    async def is_email_available(self, user: User, email: str) -> bool:
        """True if no other user holds ``email``; the caller's own email counts as available."""
        email = normalize_email(email)
        result = await self.db.execute(
            select(func.count()).select_from(User).where(User.email == email, User.id != user.id)
        )
        return result.scalar_one() == 0

    async def generate_unique_username(self, base: str) -> str:
        """Probe ``base``, ``base_1`` .. ``base_N``, then fall back to a random suffix."""
        base = base.strip() or "user"
        if await self.is_username_available(base):
            return base
        for counter in range(1, self.probe_limit + 1):
            candidate = f"{base}_{counter}"
            if await self.is_username_available(candidate):
                return candidate
        return f"{base}_{uuid4().hex[:8]}"

    async def create_user(
        self,
        name: str,
        email: str = "",
        image: Optional[str] = None,
        email_verified=None,
    ) -> User:
        """Add a user to the current transaction; the caller commits."""
        user = User(
            name=name,
            email=normalize_email(email) if email else "",
            image=image,
            email_verified=email_verified,
            created_at=utcnow(),
        )
        self.db.add(user)
        await self.db.flush()
        logger.info("Created user %s", user.id)
        return user

    async def set_verified_email(self, user: User) -> User:
        user.email_verified = utcnow()
        await self.db.commit()
        return user

    async def update_profile(self, user: User, name: str, email: str) -> Tuple[User, bool]:
        """Change name and email; returns the user and whether the email changed.

        A changed email is stored unverified.
        """
        email = normalize_email(email)
        if name != user.name and not await self.is_username_available(name):
            raise InvalidState("Username is already taken")

        email_changed = email != user.email
        if email_changed and not await self.is_email_available(user, email):
            raise InvalidState("Email is already in use")

        user.name = name
        if email_changed:
            user.email = email
            user.email_verified = None
        await self.db.commit()
        return user, email_changed

    async def delete_user(self, user: User) -> None:
        """Delete a user together with every session, token and linked credential."""
        for model in (AuthSession, VerificationToken, OAuthAccount, Wallet):
            await self.db.execute(delete(model).where(model.user_id == user.id))
        await self.db.delete(user)
        await self.db.commit()
        logger.info("Deleted user %s and linked credentials", user.id)

    # OAuth -----------------------------------------------------------------

    async def get_user_by_oauth_id(self, provider: OAuthProvider, account_id: str) -> Optional[User]:
        result = await self.db.execute(
            select(User)
            .join(OAuthAccount, OAuthAccount.user_id == User.id)
            .where(
                OAuthAccount.provider == provider.value,
                OAuthAccount.provider_account_id == account_id,
            )
            .limit(1)
        )
        return result.scalars().first()

    async def link_oauth_account(self, user_id: UUID, provider: OAuthProvider, account_id: str) -> None:
        self.db.add(
            OAuthAccount(
                provider=provider.value,
                provider_account_id=account_id,
                user_id=user_id,
                created_at=utcnow(),
            )
        )
        await self.db.flush()

    async def resolve_oauth(self, provider: OAuthProvider, info: OAuthUserInfo) -> User:
        user = await self.get_user_by_oauth_id(provider, info.id)
        if user is not None:
            logger.info("Resolved %s account %s to linked user %s", provider.value, info.id, user.id)
            return user

        verified_email = normalize_email(info.email) if info.email and info.email_verified else ""

        try:
            user = await self.get_user_by_email(verified_email) if verified_email else None
            if user is not None and user.email_verified is None:
                # Profile emails stay unverified until their link is followed
                logger.info(
                    "Not linking %s account %s to user %s: email unverified",
                    provider.value,
                    info.id,
                    user.id,
                )
                user = None
            if user is not None:
                logger.info(
                    "Linking %s account %s to existing user %s by verified email",
                    provider.value,
                    info.id,
                    user.id,
                )
            else:
                base = info.name or (
                    username_base_from_email(verified_email)
                    if verified_email
                    else f"{provider.value}_{info.id}"
                )
                user = await self.create_user(
                    name=await self.generate_unique_username(base),
                    email=verified_email,
                    image=info.avatar,
                    email_verified=utcnow() if verified_email else None,
                )
            await self.link_oauth_account(user.id, provider, info.id)
            await self.db.commit()
        except IntegrityError:
            # A concurrent callback linked the same account first
            await self.db.rollback()
            user = await self.get_user_by_oauth_id(provider, info.id)
            if user is None:
                raise
        return user

    # Wallets ---------------------------------------------------------------

    async def get_wallet_by_address(self, address: str) -> Optional[Wallet]:
        result = await self.db.execute(
            select(Wallet).where(Wallet.address == address.strip().lower()).limit(1)
        )
        return result.scalars().first()

    async def list_wallets(self, user: User) -> List[Wallet]:
        result = await self.db.execute(
            select(Wallet)
            .where(Wallet.user_id == user.id)
            .order_by(Wallet.is_primary.desc(), Wallet.label)
        )
        return list(result.scalars().all())

    def _new_wallet(
        self, user_id: UUID, address: str, chain_id: Optional[str], label: str, is_primary: bool
    ) -> Wallet:
        now = utcnow()
        wallet = Wallet(
            address=address.strip().lower(),
            label=label,
            wallet_type="metamask",
            chain_type="evm",
            chain_id=chain_id,
            user_id=user_id,
            is_primary=is_primary,
            created_at=now,
            updated_at=now,
        )
        self.db.add(wallet)
        return wallet

    async def resolve_wallet(self, address: str, chain_id: Optional[str] = None) -> User:
        """Return the owner of ``address``, creating a wallet-only user if none exists."""
        wallet = await self.get_wallet_by_address(address)
        if wallet is not None:
            logger.info("Resolved wallet %s to linked user %s", wallet.address, wallet.user_id)
            return await self.get_user(wallet.user_id)

        try:
            user = await self.create_user(name=await self.generate_unique_username(address.strip()))
            self._new_wallet(user.id, address, chain_id, "Primary auth wallet", is_primary=True)
            await self.db.commit()
        except IntegrityError:
            await self.db.rollback()
            wallet = await self.get_wallet_by_address(address)
            if wallet is None:
                raise
            return await self.get_user(wallet.user_id)
        return user

    async def link_wallet(self, user: User, address: str, chain_id: Optional[str] = None) -> Wallet:
        """Attach a verified wallet to an already authenticated user.

        The first wallet a user links becomes their primary wallet.
        """
        user_id = user.id
        existing = await self.get_wallet_by_address(address)
        if existing is not None:
            if existing.user_id != user_id:
                raise AuthError("Wallet is already linked to another account")
            return existing

        has_wallets = bool(await self.list_wallets(user))
        try:
            wallet = self._new_wallet(
                user_id,
                address,
                chain_id,
                f"MetaMask - {chain_name(chain_id)}",
                is_primary=not has_wallets,
            )
            await self.db.commit()
        except IntegrityError:
            # Another request linked the same address first
            await self.db.rollback()
            existing = await self.get_wallet_by_address(address)
            if existing is None:
                raise
            if existing.user_id != user_id:
                raise AuthError("Wallet is already linked to another account") from None
            await self.db.refresh(user)
            return existing
        logger.info("Linked wallet %s to user %s", wallet.address, user_id)
        return wallet

    async def is_credentialless(self, user: User) -> bool:
        """True for a bare guest: no email, no wallet and no OAuth link."""
        if user.email:
            return False
        wallets = await self.db.execute(
            select(func.count()).select_from(Wallet).where(Wallet.user_id == user.id)
        )
        if wallets.scalar_one():
            return False
        accounts = await self.db.execute(
            select(func.count()).select_from(OAuthAccount).where(OAuthAccount.user_id == user.id)
        )
        return accounts.scalar_one() == 0

    async def set_primary_wallet(self, user: User, wallet_id: UUID) -> Wallet:
        """Make one wallet primary by clearing the flag on all of the user's wallets first."""
        wallet = await self.db.get(Wallet, wallet_id)
        if wallet is None or wallet.user_id != user.id:
            raise NotFound("Wallet not found")

        await self.db.execute(
            update(Wallet).where(Wallet.user_id == user.id).values(is_primary=False)
        )
        await self.db.execute(
            update(Wallet)
            .where(Wallet.id == wallet_id, Wallet.user_id == user.id)
            .values(is_primary=True, updated_at=utcnow())
        )
        await self.db.commit()
        await self.db.refresh(wallet)
        return wallet
