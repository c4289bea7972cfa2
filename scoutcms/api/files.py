"""Public listing of downloadable files."""

from __future__ import annotations

import logging
from typing import Annotated

from fastapi import APIRouter, Depends

from scoutcms.api.deps import get_github_client
from scoutcms.content.paths import file_path, repo_path_to_public
from scoutcms.github.client import GitHubClient
from scoutcms.schemas.content import FilesResponse, PublicFile
from scoutcms.services.metadata_service import load_file_index

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/files", tags=["files"])


@router.get("", response_model=FilesResponse)
async def list_files(
    client: Annotated[GitHubClient, Depends(get_github_client)],
) -> FilesResponse:
    """List useful files in index order with their public download links."""
    index = await load_file_index(client)
    return FilesResponse(
        files=[
            PublicFile(
                name=entry.title or entry.filename,
                description=entry.description,
                href=repo_path_to_public(file_path(entry.filename)),
            )
            for entry in index
        ]
    )
