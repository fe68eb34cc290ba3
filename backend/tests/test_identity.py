"""Tests for identity resolution, account linking and wallet ownership."""

from uuid import uuid4

import pytest
from sqlalchemy import func, select

from core.errors import AuthError, InvalidState, NotFound
from db.models.oauth_account import OAuthAccount
from db.models.session import AuthSession
from db.models.user import User
from db.models.verification_token import VerificationToken
from db.models.wallet import Wallet
from models.auth import OAuthProvider, OAuthUserInfo
from services.auth.identity import IdentityResolver, chain_name, username_base_from_email
from services.auth.sessions import SessionManager
from services.auth.tokens import TokenIssuer

ADDRESS = "0x5aAeb6053F3E94C9b9A09f33669435E7Ef1BeAed"
OTHER_ADDRESS = "0xfB6916095ca1df60bB79Ce92cE3Ea74c37c5d359"


async def _count(db, model) -> int:
    return (await db.execute(select(func.count()).select_from(model))).scalar_one()


async def _make_user(identities, name, email=""):
    user = await identities.create_user(name=name, email=email)
    await identities.db.commit()
    return user


@pytest.fixture
def identities(db):
    return IdentityResolver(db)


@pytest.mark.unit
def test_helpers():
    assert username_base_from_email("Jane.Doe@example.com") == "Jane.Doe"
    assert username_base_from_email("@example.com") == "user"
    assert chain_name("0x89") == "Polygon"
    assert chain_name("0x1") == "Ethereum"
    assert chain_name("137") == "Polygon"
    assert chain_name(None) == "EVM Chain"
    assert chain_name("0xnothex") == "EVM Chain"


# Usernames -------------------------------------------------------------------


@pytest.mark.unit
@pytest.mark.asyncio
async def test_username_probing(identities):
    assert await identities.generate_unique_username("alice") == "alice"
    await _make_user(identities, "alice")
    assert await identities.generate_unique_username("alice") == "alice_1"
    await _make_user(identities, "alice_1")
    assert await identities.generate_unique_username("alice") == "alice_2"


@pytest.mark.unit
@pytest.mark.asyncio
async def test_username_falls_back_to_random_suffix(db):
    identities = IdentityResolver(db, probe_limit=2)
    for name in ("bob", "bob_1", "bob_2"):
        await _make_user(identities, name)

    name = await identities.generate_unique_username("bob")
    assert name.startswith("bob_")
    assert len(name) == len("bob_") + 8
    assert await identities.is_username_available(name)


@pytest.mark.unit
@pytest.mark.asyncio
async def test_email_availability_ignores_own_address(identities):
    alice = await _make_user(identities, "alice", "alice@x.com")
    bob = await _make_user(identities, "bob", "bob@x.com")

    assert await identities.is_email_available(alice, "ALICE@x.com")
    assert not await identities.is_email_available(bob, "alice@x.com")
    assert await identities.is_email_available(bob, "new@x.com")


@pytest.mark.unit
@pytest.mark.asyncio
async def test_get_user_by_email_is_case_insensitive(identities):
    user = await _make_user(identities, "carol", "Carol@Example.com")
    assert user.email == "carol@example.com"
    found = await identities.get_user_by_email("  CAROL@example.COM ")
    assert found.id == user.id
    assert await identities.get_user_by_email("") is None


@pytest.mark.unit
@pytest.mark.asyncio
async def test_get_user_missing(identities):
    with pytest.raises(NotFound):
        await identities.get_user(uuid4())


# Profile ---------------------------------------------------------------------


@pytest.mark.unit
@pytest.mark.asyncio
async def test_update_profile_resets_verification_on_email_change(identities):
    user = await _make_user(identities, "dave", "dave@x.com")
    await identities.set_verified_email(user)
    assert user.email_verified is not None

    user, changed = await identities.update_profile(user, "dave", "dave@x.com")
    assert changed is False
    assert user.email_verified is not None

    user, changed = await identities.update_profile(user, "david", "david@x.com")
    assert changed is True
    assert user.name == "david"
    assert user.email == "david@x.com"
    assert user.email_verified is None


@pytest.mark.unit
@pytest.mark.asyncio
async def test_update_profile_rejects_taken_name_and_email(identities):
    await _make_user(identities, "erin", "erin@x.com")
    frank = await _make_user(identities, "frank", "frank@x.com")

    with pytest.raises(InvalidState, match="Username is already taken"):
        await identities.update_profile(frank, "erin", "frank@x.com")
    with pytest.raises(InvalidState, match="Email is already in use"):
        await identities.update_profile(frank, "frank", "erin@x.com")


# OAuth -----------------------------------------------------------------------


@pytest.mark.unit
@pytest.mark.asyncio
async def test_oauth_creates_user_with_verified_email(identities, db):
    info = OAuthUserInfo(
        id="583231", email="Octo@GitHub.com", name="octocat", avatar="https://a/1",
        email_verified=True,
    )
    user = await identities.resolve_oauth(OAuthProvider.GITHUB, info)

    assert user.name == "octocat"
    assert user.email == "octo@github.com"
    assert user.email_verified is not None
    assert user.image == "https://a/1"
    assert await _count(db, OAuthAccount) == 1


@pytest.mark.unit
@pytest.mark.asyncio
async def test_existing_link_wins_over_changed_email(identities, db):
    first = OAuthUserInfo(id="1", email="old@x.com", name="octo", email_verified=True)
    user = await identities.resolve_oauth(OAuthProvider.GITHUB, first)
    await _make_user(identities, "someone", "new@x.com")

    again = OAuthUserInfo(id="1", email="new@x.com", name="octo", email_verified=True)
    resolved = await identities.resolve_oauth(OAuthProvider.GITHUB, again)

    assert resolved.id == user.id
    assert await _count(db, OAuthAccount) == 1


@pytest.mark.unit
@pytest.mark.asyncio
async def test_verified_email_links_new_provider_to_existing_user(identities, db):
    github = OAuthUserInfo(id="1", email="e@x.com", name="e", email_verified=True)
    user = await identities.resolve_oauth(OAuthProvider.GITHUB, github)

    google = OAuthUserInfo(id="g-99", email="E@x.com", name="E Person", email_verified=True)
    resolved = await identities.resolve_oauth(OAuthProvider.GOOGLE, google)

    assert resolved.id == user.id
    assert await _count(db, User) == 1
    assert await _count(db, OAuthAccount) == 2
    assert (await identities.get_user_by_oauth_id(OAuthProvider.GOOGLE, "g-99")).id == user.id


@pytest.mark.unit
@pytest.mark.asyncio
async def test_unverified_email_never_links(identities, db):
    owner = await _make_user(identities, "owner", "owner@x.com")

    info = OAuthUserInfo(id="d-1", email="owner@x.com", name="owner", email_verified=False)
    user = await identities.resolve_oauth(OAuthProvider.DISCORD, info)

    assert user.id != owner.id
    assert user.email == ""
    assert user.email_verified is None
    assert user.name == "owner_1"


@pytest.mark.unit
@pytest.mark.asyncio
async def test_verified_email_skips_user_who_only_typed_it(identities, db):
    squatter = await _make_user(identities, "squatter")
    squatter_id = squatter.id
    await identities.update_profile(squatter, "squatter", "victim@x.com")

    info = OAuthUserInfo(id="g-1", email="victim@x.com", name="victim", email_verified=True)
    user = await identities.resolve_oauth(OAuthProvider.GOOGLE, info)

    assert user.id != squatter_id
    assert user.email == "victim@x.com"
    assert user.email_verified is not None
    linked = await db.execute(
        select(func.count())
        .select_from(OAuthAccount)
        .where(OAuthAccount.user_id == squatter_id)
    )
    assert linked.scalar_one() == 0
    # The verified holder wins later email lookups
    assert (await identities.get_user_by_email("victim@x.com")).id == user.id


@pytest.mark.unit
@pytest.mark.asyncio
async def test_oauth_name_falls_back_to_provider_and_id(identities):
    info = OAuthUserInfo(id="42")
    user = await identities.resolve_oauth(OAuthProvider.DISCORD, info)
    assert user.name == "discord_42"


# Wallets ---------------------------------------------------------------------


@pytest.mark.unit
@pytest.mark.asyncio
async def test_wallet_login_creates_wallet_only_user(identities, db):
    user = await identities.resolve_wallet(ADDRESS, "0x1")

    assert user.name == ADDRESS
    assert user.email == ""
    wallets = await identities.list_wallets(user)
    assert len(wallets) == 1
    assert wallets[0].address == ADDRESS.lower()
    assert wallets[0].is_primary is True
    assert wallets[0].label == "Primary auth wallet"

    again = await identities.resolve_wallet(ADDRESS.lower(), "0x1")
    assert again.id == user.id
    assert await _count(db, User) == 1


@pytest.mark.unit
@pytest.mark.asyncio
async def test_link_wallet_first_is_primary(identities):
    user = await _make_user(identities, "gina", "gina@x.com")

    first = await identities.link_wallet(user, ADDRESS, "0x89")
    second = await identities.link_wallet(user, OTHER_ADDRESS, "0x1")

    assert first.is_primary is True
    assert first.label == "MetaMask - Polygon"
    assert second.is_primary is False
    assert second.label == "MetaMask - Ethereum"
    assert [w.id for w in await identities.list_wallets(user)][0] == first.id

    # Linking the same wallet again is a no-op
    assert (await identities.link_wallet(user, ADDRESS.lower(), "0x89")).id == first.id


@pytest.mark.unit
@pytest.mark.asyncio
async def test_wallet_owned_by_other_user_is_rejected(identities):
    owner = await identities.resolve_wallet(ADDRESS)
    intruder = await _make_user(identities, "mallory", "m@x.com")

    with pytest.raises(AuthError):
        await identities.link_wallet(intruder, ADDRESS)
    assert (await identities.get_wallet_by_address(ADDRESS)).user_id == owner.id


def _stale_wallet_lookup(identities, monkeypatch):
    """Make the first address lookup miss, as if another request inserted meanwhile."""
    real_lookup = identities.get_wallet_by_address
    calls = []

    async def lookup(address):
        calls.append(address)
        if len(calls) == 1:
            return None
        return await real_lookup(address)

    monkeypatch.setattr(identities, "get_wallet_by_address", lookup)
    return calls


@pytest.mark.unit
@pytest.mark.asyncio
async def test_racing_link_to_other_users_wallet_is_rejected(identities, db, monkeypatch):
    owner = await identities.resolve_wallet(ADDRESS)
    owner_id = owner.id
    intruder = await _make_user(identities, "mallory", "m@x.com")
    calls = _stale_wallet_lookup(identities, monkeypatch)

    with pytest.raises(AuthError):
        await identities.link_wallet(intruder, ADDRESS)

    assert len(calls) == 2
    assert await _count(db, Wallet) == 1
    wallet = (await db.execute(select(Wallet))).scalars().one()
    assert wallet.user_id == owner_id


@pytest.mark.unit
@pytest.mark.asyncio
async def test_racing_link_of_own_wallet_returns_existing(identities, db, monkeypatch):
    user = await _make_user(identities, "hank", "hank@x.com")
    first = await identities.link_wallet(user, ADDRESS, "0x1")
    first_id = first.id
    _stale_wallet_lookup(identities, monkeypatch)

    again = await identities.link_wallet(user, ADDRESS, "0x1")

    assert again.id == first_id
    assert again.is_primary is True
    assert user.name == "hank"
    assert await _count(db, Wallet) == 1


@pytest.mark.unit
@pytest.mark.asyncio
async def test_is_credentialless(identities):
    guest = await _make_user(identities, f"guest_{uuid4()}")
    assert await identities.is_credentialless(guest) is True

    with_email = await _make_user(identities, "ivy", "ivy@x.com")
    assert await identities.is_credentialless(with_email) is False

    with_wallet = await _make_user(identities, "walt")
    await identities.link_wallet(with_wallet, ADDRESS)
    assert await identities.is_credentialless(with_wallet) is False

    info = OAuthUserInfo(id="99", name="octo")
    with_oauth = await identities.resolve_oauth(OAuthProvider.GITHUB, info)
    assert with_oauth.email == ""
    assert await identities.is_credentialless(with_oauth) is False


@pytest.mark.unit
@pytest.mark.asyncio
async def test_set_primary_wallet_keeps_exactly_one_primary(identities, db):
    user = await _make_user(identities, "hank", "hank@x.com")
    first = await identities.link_wallet(user, ADDRESS, "0x1")
    second = await identities.link_wallet(user, OTHER_ADDRESS, "0x1")

    updated = await identities.set_primary_wallet(user, second.id)
    assert updated.id == second.id
    assert updated.is_primary is True

    wallets = await identities.list_wallets(user)
    assert [w.id for w in wallets if w.is_primary] == [second.id]
    assert wallets[0].id == second.id
    await db.refresh(first)
    assert first.is_primary is False


@pytest.mark.unit
@pytest.mark.asyncio
async def test_set_primary_wallet_of_other_user_is_not_found(identities):
    owner = await _make_user(identities, "ivy", "ivy@x.com")
    wallet = await identities.link_wallet(owner, ADDRESS)
    other = await _make_user(identities, "jack", "jack@x.com")

    with pytest.raises(NotFound):
        await identities.set_primary_wallet(other, wallet.id)
    with pytest.raises(NotFound):
        await identities.set_primary_wallet(owner, uuid4())


# Deletion --------------------------------------------------------------------


@pytest.mark.unit
@pytest.mark.asyncio
async def test_delete_user_removes_linked_credentials(identities, db):
    info = OAuthUserInfo(id="7", email="k@x.com", name="kim", email_verified=True)
    user = await identities.resolve_oauth(OAuthProvider.GITHUB, info)
    await identities.link_wallet(user, ADDRESS)
    await SessionManager(db).mint(user.id)
    await TokenIssuer(db).issue(user.email, user.id)
    bystander = await _make_user(identities, "bystander", "b@x.com")
    await SessionManager(db).mint(bystander.id)

    await identities.delete_user(user)

    assert await _count(db, User) == 1
    assert await _count(db, OAuthAccount) == 0
    assert await _count(db, Wallet) == 0
    assert await _count(db, VerificationToken) == 0
    assert await _count(db, AuthSession) == 1
    assert await identities.get_wallet_by_address(ADDRESS) is None
