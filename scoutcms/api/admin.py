"""Admin content API endpoints."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Annotated, Any

from fastapi import APIRouter, Depends, Query
from fastapi.responses import JSONResponse

from scoutcms.api.deps import get_commit_service, get_github_client, require_admin
from scoutcms.github.client import GitHubClient
from scoutcms.schemas.content import (
    CollectionsResponse,
    CommitHistoryItemResponse,
    DeletePostRequest,
    EditFilesRequest,
    EditImagesRequest,
    EditResponse,
    RemoveRequest,
    RemoveResponse,
    UploadRequest,
    UploadResponse,
)
from scoutcms.services.commit_service import ContentCommitService
from scoutcms.services.history_service import DEFAULT_HISTORY_COUNT, get_history
from scoutcms.services.metadata_service import collection_names, load_image_index

if TYPE_CHECKING:
    from scoutcms.services.commit_service import EditResult

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/admin", tags=["admin"])


def _edit_response(result: EditResult, message: str) -> EditResponse | JSONResponse:
    body = EditResponse(
        success=result.success,
        error=result.error,
        message=message if result.success else None,
        deleted=result.deleted,
        skipped=result.skipped,
        deletion_commit_sha=result.deletion_commit_sha,
        metadata_commit_sha=result.metadata_commit_sha,
        partial=result.partial,
    )
    if result.partial:
        return JSONResponse(status_code=502, content=body.model_dump())
    return body


@router.post("/upload", response_model=UploadResponse)
async def upload_content(
    body: UploadRequest,
    service: Annotated[ContentCommitService, Depends(get_commit_service)],
    _admin: Annotated[dict[str, Any], Depends(require_admin)],
) -> UploadResponse:
    """Upload blog posts, files and images in a single commit."""
    result = await service.upload(body.items)
    return UploadResponse(
        success=True,
        message=result.message,
        commit_sha=result.commit_sha,
        paths=result.paths,
        slugs=result.slugs,
    )


@router.delete("/remove", response_model=RemoveResponse)
async def remove_content(
    body: RemoveRequest,
    service: Annotated[ContentCommitService, Depends(get_commit_service)],
    _admin: Annotated[dict[str, Any], Depends(require_admin)],
) -> RemoveResponse:
    """Delete arbitrary repository paths in a single commit."""
    result = await service.remove(body.paths, body.commit_message)
    return RemoveResponse(
        success=True,
        message=result.message,
        commit_sha=result.commit_sha,
        deleted=result.deleted,
        skipped=result.skipped,
    )


@router.post("/edit-images", response_model=EditResponse)
async def edit_images(
    body: EditImagesRequest,
    service: Annotated[ContentCommitService, Depends(get_commit_service)],
    _admin: Annotated[dict[str, Any], Depends(require_admin)],
) -> EditResponse | JSONResponse:
    """Delete images and save the new image ordering."""
    result = await service.edit_images(
        [action.path for action in body.actions], body.new_metadata
    )
    return _edit_response(result, "Image changes saved")


@router.post("/edit-files", response_model=EditResponse)
async def edit_files(
    body: EditFilesRequest,
    service: Annotated[ContentCommitService, Depends(get_commit_service)],
    _admin: Annotated[dict[str, Any], Depends(require_admin)],
) -> EditResponse | JSONResponse:
    """Delete files and save the edited file list."""
    result = await service.edit_files(
        [action.path for action in body.actions], body.new_metadata
    )
    return _edit_response(result, "File changes saved")


@router.get("/git-history", response_model=list[CommitHistoryItemResponse])
async def git_history(
    client: Annotated[GitHubClient, Depends(get_github_client)],
    _admin: Annotated[dict[str, Any], Depends(require_admin)],
    path: str | None = None,
    count: Annotated[int, Query(ge=1, le=100)] = DEFAULT_HISTORY_COUNT,
    page: Annotated[int, Query(ge=1)] = 1,
) -> list[CommitHistoryItemResponse]:
    """List recent commits on the content branch."""
    items = await get_history(client, path=path, count=count, page=page)
    return [
        CommitHistoryItemResponse(
            sha=item.sha,
            message=item.message,
            author=item.author,
            author_email=item.author_email,
            date=item.date,
            committer=item.committer,
            committer_email=item.committer_email,
            committer_date=item.committer_date,
            url=item.url,
        )
        for item in items
    ]


@router.delete("/posts", response_model=RemoveResponse)
async def delete_post(
    body: DeletePostRequest,
    service: Annotated[ContentCommitService, Depends(get_commit_service)],
    _admin: Annotated[dict[str, Any], Depends(require_admin)],
) -> RemoveResponse:
    """Delete a blog post by title or slug."""
    result = await service.delete_post(title=body.title, slug=body.slug)
    return RemoveResponse(
        success=True,
        message=result.message,
        commit_sha=result.commit_sha,
        deleted=result.deleted,
        skipped=result.skipped,
    )


@router.get("/collections", response_model=CollectionsResponse)
async def list_collections(
    client: Annotated[GitHubClient, Depends(get_github_client)],
    _admin: Annotated[dict[str, Any], Depends(require_admin)],
) -> CollectionsResponse:
    """List image collections in index order."""
    index = await load_image_index(client)
    return CollectionsResponse(collections=collection_names(index))


@router.delete("/collections/{name}", response_model=EditResponse)
async def delete_collection(
    name: str,
    service: Annotated[ContentCommitService, Depends(get_commit_service)],
    _admin: Annotated[dict[str, Any], Depends(require_admin)],
) -> EditResponse | JSONResponse:
    """Delete an image collection and all of its images."""
    result = await service.delete_collection(name)
    return _edit_response(result, f"Collection '{name}' deleted")
