"""Tests for the public file listing and health check."""

from __future__ import annotations

import json
from typing import TYPE_CHECKING
from unittest.mock import AsyncMock, patch

from scoutcms.content.paths import FILES_INDEX_PATH
from scoutcms.exceptions import AuthError
from scoutcms.github.client import GitHubClient

if TYPE_CHECKING:
    from httpx import AsyncClient

    from tests._github_fake import FakeGitHub


class TestFilesListing:
    async def test_no_index_is_empty(self, client: AsyncClient) -> None:
        resp = await client.get("/api/files")
        assert resp.status_code == 200
        assert resp.json() == {"files": []}

    async def test_lists_in_index_order(self, client: AsyncClient, fake_github: FakeGitHub) -> None:
        fake_github.seed(
            {
                FILES_INDEX_PATH: json.dumps(
                    [
                        {
                            "filename": "Medical-Form.pdf",
                            "title": "Ιατρικό",
                            "description": "Fill in",
                        },
                        {"filename": "kit.pdf", "title": ""},
                    ]
                )
            }
        )
        resp = await client.get("/api/files")
        assert resp.json() == {
            "files": [
                {
                    "name": "Ιατρικό",
                    "description": "Fill in",
                    "href": "/content/files/Medical-Form.pdf",
                },
                {"name": "kit.pdf", "description": "", "href": "/content/files/kit.pdf"},
            ]
        }

    async def test_no_token_needed(self, client: AsyncClient, fake_github: FakeGitHub) -> None:
        fake_github.seed({FILES_INDEX_PATH: "[]"})
        resp = await client.get("/api/files")
        assert resp.status_code == 200


class TestHealth:
    async def test_ok(self, client: AsyncClient) -> None:
        resp = await client.get("/api/health")
        assert resp.status_code == 200
        assert resp.json() == {"status": "ok", "version": "0.1.0", "github": "ok"}

    async def test_degraded_when_github_auth_fails(self, client: AsyncClient) -> None:
        with patch.object(
            GitHubClient,
            "ensure_authenticated",
            new_callable=AsyncMock,
            side_effect=AuthError("creating installation token", status=401),
        ):
            resp = await client.get("/api/health")
        assert resp.status_code == 200
        assert resp.json()["status"] == "degraded"
        assert resp.json()["github"] == "error"
