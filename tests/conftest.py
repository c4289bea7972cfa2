"""Shared test fixtures for ScoutCMS."""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from datetime import UTC, datetime
from typing import TYPE_CHECKING

import httpx
import pytest
from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric import rsa
from httpx import ASGITransport, AsyncClient
from jose import jwt

from scoutcms.config import Settings
from scoutcms.github.client import GitHubClient
from scoutcms.github.models import GitHubConfig
from scoutcms.main import create_app
from scoutcms.services.commit_service import ContentCommitService
from tests._github_fake import FakeGitHub

if TYPE_CHECKING:
    from collections.abc import AsyncGenerator

logger = logging.getLogger(__name__)

TEST_SECRET_KEY = "test-secret-key-with-at-least-32-characters"
TEST_API_URL = "https://api.github.test"
TEST_OWNER = "scouts"
TEST_REPO = "website"
FIXED_NOW = datetime(2024, 5, 17, 14, 30, 5, 123456, tzinfo=UTC)


def make_token(secret: str = TEST_SECRET_KEY, role: str = "admin") -> str:
    """Sign an admin session token the way the website's login does."""
    return jwt.encode({"sub": "leader", "role": role}, secret, algorithm="HS256")


@pytest.fixture(scope="session")
def private_key_pem() -> str:
    key = rsa.generate_private_key(public_exponent=65537, key_size=2048)
    return key.private_bytes(
        encoding=serialization.Encoding.PEM,
        format=serialization.PrivateFormat.PKCS8,
        encryption_algorithm=serialization.NoEncryption(),
    ).decode("ascii")


@pytest.fixture
def github_config(private_key_pem: str) -> GitHubConfig:
    return GitHubConfig(
        app_id="12345",
        private_key=private_key_pem,
        owner=TEST_OWNER,
        repo=TEST_REPO,
        branch="main",
        api_url=TEST_API_URL,
    )


@pytest.fixture
def fake_github() -> FakeGitHub:
    return FakeGitHub(owner=TEST_OWNER, repo=TEST_REPO)


@pytest.fixture
async def http_client(fake_github: FakeGitHub) -> AsyncGenerator[httpx.AsyncClient]:
    async with httpx.AsyncClient(transport=fake_github.transport) as client:
        yield client


@pytest.fixture
async def github_client(
    github_config: GitHubConfig, http_client: httpx.AsyncClient
) -> GitHubClient:
    return await GitHubClient.create(github_config, http_client)


@pytest.fixture
def commit_service(github_client: GitHubClient) -> ContentCommitService:
    return ContentCommitService(github_client, clock=lambda: FIXED_NOW)


@pytest.fixture
def app_settings(private_key_pem: str) -> Settings:
    return Settings(
        debug=True,
        jwt_secret=TEST_SECRET_KEY,
        github_app_id="12345",
        github_private_key=private_key_pem.replace("\n", "\\n"),
        github_user=TEST_OWNER,
        github_repo=TEST_REPO,
        github_api_url=TEST_API_URL,
    )


@asynccontextmanager
async def create_test_client(
    settings: Settings, fake: FakeGitHub
) -> AsyncGenerator[AsyncClient]:
    """Create an HTTP test client with a fully initialized app.

    Manually performs the work of the application lifespan (GitHub auth and
    service wiring) because ASGITransport does not trigger it.
    """
    app = create_app(settings)
    settings.validate_runtime_security()
    config = settings.github_config()

    async with httpx.AsyncClient(transport=fake.transport) as github_http:
        github_client = await GitHubClient.create(config, github_http)
        app.state.settings = settings
        app.state.github_client = github_client
        app.state.commit_service = ContentCommitService(
            github_client,
            conflict_retries=settings.commit_conflict_retries,
            clock=lambda: FIXED_NOW,
        )

        async with AsyncClient(
            transport=ASGITransport(app=app),
            base_url="http://test",
        ) as ac:
            yield ac


@pytest.fixture
async def client(app_settings: Settings, fake_github: FakeGitHub) -> AsyncGenerator[AsyncClient]:
    """Create test HTTP client."""
    async with create_test_client(app_settings, fake_github) as ac:
        yield ac


@pytest.fixture
def admin_headers() -> dict[str, str]:
    return {"Authorization": f"Bearer {make_token()}"}
