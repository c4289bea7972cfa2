"""Health check endpoint."""

from __future__ import annotations

import logging
from typing import Annotated

from fastapi import APIRouter, Depends
from pydantic import BaseModel

from scoutcms.api.deps import get_github_client
from scoutcms.exceptions import RemoteVCSError
from scoutcms.github.client import GitHubClient

logger = logging.getLogger(__name__)

router = APIRouter(tags=["health"])


class HealthResponse(BaseModel):
    status: str
    version: str
    github: str


@router.get("/api/health", response_model=HealthResponse)
async def health_check(
    client: Annotated[GitHubClient, Depends(get_github_client)],
) -> HealthResponse:
    """Health check endpoint for monitoring and load balancers."""
    github_status = "ok"
    try:
        await client.ensure_authenticated()
    except RemoteVCSError:
        logger.warning("Health check GitHub authentication failed", exc_info=True)
        github_status = "error"

    return HealthResponse(
        status="ok" if github_status == "ok" else "degraded",
        version="0.1.0",
        github=github_status,
    )
