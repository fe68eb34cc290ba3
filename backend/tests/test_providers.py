"""Tests for OAuth userinfo normalization per provider."""

import pytest

from core.errors import DeserializationError, NotFound
from models.auth import OAuthProvider
from services.auth.providers import get_provider, parse_userinfo


@pytest.mark.unit
def test_github_profile_uses_login_when_name_missing():
    info = parse_userinfo(
        OAuthProvider.GITHUB,
        {"id": 1, "login": "octocat", "name": None, "email": None, "avatar_url": "https://a/1"},
    )
    assert info.id == "1"
    assert info.name == "octocat"
    assert info.email is None
    assert info.avatar == "https://a/1"
    assert info.email_verified is False


@pytest.mark.unit
def test_github_public_email_counts_as_verified():
    info = parse_userinfo(
        OAuthProvider.GITHUB,
        {"id": 583231, "login": "octocat", "name": "The Octocat", "email": "octo@github.com"},
    )
    assert info.id == "583231"
    assert info.name == "The Octocat"
    assert info.email == "octo@github.com"
    assert info.email_verified is True


@pytest.mark.unit
def test_google_profile():
    info = parse_userinfo(
        OAuthProvider.GOOGLE,
        {
            "id": "10769150350006150715113082367",
            "email": "jane@gmail.com",
            "verified_email": True,
            "name": "Jane Doe",
            "picture": "https://lh3.googleusercontent.com/a/photo.jpg",
        },
    )
    assert info.id == "10769150350006150715113082367"
    assert info.name == "Jane Doe"
    assert info.avatar == "https://lh3.googleusercontent.com/a/photo.jpg"
    assert info.email_verified is True


@pytest.mark.unit
def test_google_unverified_email():
    info = parse_userinfo(OAuthProvider.GOOGLE, {"id": "42", "email": "x@example.com"})
    assert info.email == "x@example.com"
    assert info.email_verified is False


@pytest.mark.unit
def test_discord_avatar_url_is_built_from_hash():
    info = parse_userinfo(
        OAuthProvider.DISCORD,
        {
            "id": "80351110224678912",
            "username": "nelly",
            "global_name": None,
            "avatar": "8342729096ea3675442027381ff50dfe",
            "email": "nelly@discord.com",
            "verified": True,
        },
    )
    assert info.name == "nelly"
    assert info.avatar == (
        "https://cdn.discordapp.com/avatars/80351110224678912/"
        "8342729096ea3675442027381ff50dfe.png"
    )
    assert info.email_verified is True


@pytest.mark.unit
def test_discord_without_avatar_or_global_name():
    info = parse_userinfo(
        OAuthProvider.DISCORD, {"id": "7", "username": "plain", "global_name": "Plain Person"}
    )
    assert info.name == "Plain Person"
    assert info.avatar is None
    assert info.email_verified is False


@pytest.mark.unit
@pytest.mark.parametrize("provider", list(OAuthProvider))
def test_missing_id_is_a_deserialization_error(provider):
    with pytest.raises(DeserializationError):
        parse_userinfo(provider, {"login": "nobody", "email": "n@x.com"})


@pytest.mark.unit
@pytest.mark.parametrize("provider", list(OAuthProvider))
def test_non_object_payload_is_a_deserialization_error(provider):
    with pytest.raises(DeserializationError):
        parse_userinfo(provider, ["not", "an", "object"])


@pytest.mark.unit
def test_get_provider_is_case_insensitive():
    assert get_provider("GitHub") is OAuthProvider.GITHUB
    assert get_provider("discord") is OAuthProvider.DISCORD


@pytest.mark.unit
def test_unknown_provider_is_not_found():
    with pytest.raises(NotFound):
        get_provider("myspace")
