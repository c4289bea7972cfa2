"""Shared API dependencies: settings, GitHub client, commit service, admin gate."""

from __future__ import annotations

import logging
from typing import Annotated, Any

from fastapi import Depends, HTTPException, Request, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from jose import JWTError, jwt

from scoutcms.config import Settings
from scoutcms.github.client import GitHubClient
from scoutcms.services.commit_service import ContentCommitService

logger = logging.getLogger(__name__)

security = HTTPBearer(auto_error=False)

ADMIN_TOKEN_COOKIE = "authToken"
ALGORITHM = "HS256"


def get_github_client(request: Request) -> GitHubClient:
    """Get the authenticated GitHub client from app state."""
    client: GitHubClient = request.app.state.github_client
    return client


def get_commit_service(request: Request) -> ContentCommitService:
    """Get the content commit service from app state."""
    service: ContentCommitService = request.app.state.commit_service
    return service


def decode_admin_token(token: str, secret_key: str) -> dict[str, Any] | None:
    """Decode and validate an admin session JWT."""
    try:
        payload: dict[str, Any] = jwt.decode(token, secret_key, algorithms=[ALGORITHM])
    except JWTError:
        logger.debug("Failed to decode admin token", exc_info=True)
        return None
    return payload


async def get_token_payload(
    request: Request,
    credentials: Annotated[HTTPAuthorizationCredentials | None, Depends(security)] = None,
) -> dict[str, Any]:
    """Decode the caller's token. Raises 401 if missing or invalid."""
    token_value = (
        credentials.credentials
        if credentials is not None
        else request.cookies.get(ADMIN_TOKEN_COOKIE)
    )
    settings: Settings = request.app.state.settings
    payload = decode_admin_token(token_value, settings.jwt_secret) if token_value else None
    if payload is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Not authenticated",
            headers={"WWW-Authenticate": "Bearer"},
        )
    return payload


async def require_admin(
    payload: Annotated[dict[str, Any], Depends(get_token_payload)],
) -> dict[str, Any]:
    """Require admin role. Raises 403 if not admin."""
    if payload.get("role") != "admin":
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Admin access required",
        )
    return payload
