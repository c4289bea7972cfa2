"""GitHub App authentication: app JWT and installation access tokens."""

from __future__ import annotations

import asyncio
import logging
import time
from datetime import UTC, datetime
from typing import TYPE_CHECKING, Any

import httpx
import jwt

from scoutcms.exceptions import AuthError
from scoutcms.github.models import InstallationToken

if TYPE_CHECKING:
    from collections.abc import Callable

    from scoutcms.github.models import GitHubConfig

logger = logging.getLogger(__name__)

GITHUB_ACCEPT = "application/vnd.github+json"
GITHUB_API_VERSION = "2022-11-28"

# GitHub rejects app JWTs living longer than 10 minutes; keep ours to one.
APP_JWT_LIFETIME_SECONDS = 60
_CLOCK_DRIFT_SECONDS = 30


def github_headers(token: str) -> dict[str, str]:
    return {
        "Authorization": f"Bearer {token}",
        "Accept": GITHUB_ACCEPT,
        "X-GitHub-Api-Version": GITHUB_API_VERSION,
    }


def _parse_expiry(raw: object) -> datetime:
    if isinstance(raw, str) and raw:
        return datetime.fromisoformat(raw.replace("Z", "+00:00"))
    # Installation tokens live one hour; assume the minimum when GitHub omits it.
    return datetime.fromtimestamp(time.time() + 3600, tz=UTC)


class GitHubAppAuth:
    """Exchanges the App's private key for installation access tokens.

    The token is cached process-wide and refreshed once it is within
    ``token_refresh_margin_seconds`` of expiry. Concurrent callers share one
    refresh.
    """

    def __init__(
        self,
        config: GitHubConfig,
        http_client: httpx.AsyncClient,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        self._config = config
        self._http = http_client
        self._clock = clock or (lambda: datetime.now(UTC))
        self._token: InstallationToken | None = None
        self._lock = asyncio.Lock()

    def create_app_jwt(self) -> str:
        """Sign a short-lived RS256 JWT identifying the App."""
        now = int(self._clock().timestamp())
        payload = {
            "iat": now - _CLOCK_DRIFT_SECONDS,
            "exp": now - _CLOCK_DRIFT_SECONDS + APP_JWT_LIFETIME_SECONDS,
            "iss": self._config.app_id,
        }
        try:
            return jwt.encode(payload, self._config.private_key, algorithm="RS256")
        except (jwt.PyJWTError, ValueError, TypeError) as exc:
            raise AuthError("signing app JWT", detail=str(exc)) from exc

    async def _request(self, method: str, url: str, step: str, app_jwt: str) -> Any:
        try:
            resp = await self._http.request(method, url, headers=github_headers(app_jwt))
        except httpx.HTTPError as exc:
            raise AuthError(step, detail=str(exc) or type(exc).__name__) from exc
        if not resp.is_success:
            raise AuthError(step, status=resp.status_code, detail=resp.text[:200])
        return resp.json()

    async def _resolve_installation_id(self, app_jwt: str) -> str:
        if self._config.installation_id:
            return self._config.installation_id

        installations = await self._request(
            "GET",
            f"{self._config.api_url}/app/installations",
            "listing installations",
            app_jwt,
        )
        if not isinstance(installations, list) or not installations:
            raise AuthError("listing installations", detail="No installations found for this app")
        for installation in installations:
            account = installation.get("account") or {}
            if str(account.get("login", "")).lower() == self._config.owner.lower():
                return str(installation["id"])
        logger.warning(
            "No installation matches owner %s; using installation %s",
            self._config.owner,
            installations[0].get("id"),
        )
        return str(installations[0]["id"])

    async def authenticate(self) -> InstallationToken:
        """Exchange a fresh app JWT for an installation access token."""
        app_jwt = self.create_app_jwt()
        installation_id = await self._resolve_installation_id(app_jwt)
        data = await self._request(
            "POST",
            f"{self._config.api_url}/app/installations/{installation_id}/access_tokens",
            "creating installation token",
            app_jwt,
        )
        token = data.get("token") if isinstance(data, dict) else None
        if not token:
            raise AuthError("creating installation token", detail="Response carried no token")
        installation_token = InstallationToken(
            token=token,
            expires_at=_parse_expiry(data.get("expires_at")),
            installation_id=installation_id,
        )
        logger.info(
            "Obtained installation token for installation %s (expires %s)",
            installation_id,
            installation_token.expires_at.isoformat(),
        )
        return installation_token

    async def get_token(self) -> str:
        """Return a cached installation token, refreshing it near expiry."""
        async with self._lock:
            margin = self._config.token_refresh_margin_seconds
            if self._token is None or self._token.expires_within(margin, self._clock()):
                self._token = await self.authenticate()
            return self._token.token

    def invalidate(self) -> None:
        """Drop the cached token so the next call re-authenticates."""
        self._token = None
