"""Tests for GitHub App authentication."""

from __future__ import annotations

import dataclasses
from datetime import UTC, datetime, timedelta
from typing import TYPE_CHECKING, Any

import httpx
import jwt
import pytest
from cryptography.hazmat.primitives.serialization import load_pem_private_key

from scoutcms.exceptions import AuthError
from scoutcms.github.auth import APP_JWT_LIFETIME_SECONDS, GitHubAppAuth
from scoutcms.github.client import GitHubClient
from tests._github_fake import FakeGitHub

if TYPE_CHECKING:
    from scoutcms.github.models import GitHubConfig


def _public_key(pem: str) -> Any:
    return load_pem_private_key(pem.encode(), password=None).public_key()


class TestAppJwt:
    def test_signed_with_app_key(self, github_config: GitHubConfig) -> None:
        now = datetime(2024, 5, 17, 12, 0, tzinfo=UTC)
        auth = GitHubAppAuth(github_config, httpx.AsyncClient(), clock=lambda: now)
        token = auth.create_app_jwt()
        claims = jwt.decode(
            token,
            _public_key(github_config.private_key),
            algorithms=["RS256"],
            options={"verify_exp": False, "verify_iat": False},
        )
        assert claims["iss"] == "12345"
        assert claims["exp"] - claims["iat"] == APP_JWT_LIFETIME_SECONDS
        assert claims["iat"] < int(now.timestamp())

    def test_bad_key_is_auth_error(self, github_config: GitHubConfig) -> None:
        config = dataclasses.replace(github_config, private_key="not a key")
        auth = GitHubAppAuth(config, httpx.AsyncClient())
        with pytest.raises(AuthError, match="signing app JWT"):
            auth.create_app_jwt()


class TestInstallationToken:
    async def test_discovers_installation_for_owner(self, github_config: GitHubConfig) -> None:
        fake = FakeGitHub(
            installations=[
                {"id": 7, "account": {"login": "someone-else"}},
                {"id": 42, "account": {"login": "Scouts"}},
            ]
        )
        async with httpx.AsyncClient(transport=fake.transport) as http:
            token = await GitHubAppAuth(github_config, http).authenticate()
        assert token.installation_id == "42"
        assert fake.count("POST", r"^/app/installations/42/access_tokens$") == 1

    async def test_falls_back_to_first_installation(self, github_config: GitHubConfig) -> None:
        fake = FakeGitHub(installations=[{"id": 9, "account": {"login": "other"}}])
        async with httpx.AsyncClient(transport=fake.transport) as http:
            token = await GitHubAppAuth(github_config, http).authenticate()
        assert token.installation_id == "9"

    async def test_no_installations(self, github_config: GitHubConfig) -> None:
        fake = FakeGitHub(installations=[])
        async with httpx.AsyncClient(transport=fake.transport) as http:
            with pytest.raises(AuthError, match="listing installations"):
                await GitHubAppAuth(github_config, http).authenticate()

    async def test_configured_installation_skips_listing(
        self, github_config: GitHubConfig, fake_github: FakeGitHub
    ) -> None:
        config = dataclasses.replace(github_config, installation_id="42")
        async with httpx.AsyncClient(transport=fake_github.transport) as http:
            await GitHubAppAuth(config, http).authenticate()
        assert fake_github.count("GET", r"^/app/installations$") == 0

    async def test_exchange_failure_is_auth_error(
        self, github_config: GitHubConfig, fake_github: FakeGitHub
    ) -> None:
        fake_github.fail("POST", r"/access_tokens$", status=401, message="Bad credentials")
        async with httpx.AsyncClient(transport=fake_github.transport) as http:
            with pytest.raises(AuthError) as exc_info:
                await GitHubAppAuth(github_config, http).authenticate()
        assert exc_info.value.step == "creating installation token"
        assert exc_info.value.status == 401

    async def test_token_is_cached(
        self, github_config: GitHubConfig, fake_github: FakeGitHub
    ) -> None:
        async with httpx.AsyncClient(transport=fake_github.transport) as http:
            auth = GitHubAppAuth(github_config, http)
            first = await auth.get_token()
            second = await auth.get_token()
        assert first == second
        assert fake_github.count("POST", r"/access_tokens$") == 1

    async def test_token_refreshed_near_expiry(
        self, github_config: GitHubConfig, fake_github: FakeGitHub
    ) -> None:
        fake_github.token_lifetime = timedelta(minutes=2)
        async with httpx.AsyncClient(transport=fake_github.transport) as http:
            auth = GitHubAppAuth(github_config, http)
            first = await auth.get_token()
            second = await auth.get_token()
        assert first != second
        assert fake_github.count("POST", r"/access_tokens$") == 2


class TestClientAuthentication:
    async def test_create_authenticates_first(
        self, github_config: GitHubConfig, fake_github: FakeGitHub
    ) -> None:
        fake_github.fail("POST", r"/access_tokens$", status=500)
        async with httpx.AsyncClient(transport=fake_github.transport) as http:
            with pytest.raises(AuthError):
                await GitHubClient.create(github_config, http)
        assert not any(r.path.startswith("/repos/") for r in fake_github.requests)

    async def test_rejected_token_is_dropped(
        self, github_client: GitHubClient, fake_github: FakeGitHub
    ) -> None:
        fake_github.revoke_tokens()
        with pytest.raises(AuthError) as exc_info:
            await github_client.list_commits()
        assert exc_info.value.status == 401

        # The next call exchanges a fresh token and succeeds.
        commits = await github_client.list_commits()
        assert [c.message for c in commits] == ["Initial commit"]
