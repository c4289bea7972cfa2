"""Admin content API request/response schemas."""

from __future__ import annotations

from typing import Literal

from pydantic import BaseModel, ConfigDict, Field


class UploadItem(BaseModel):
    """One blog post, useful file or image to upload.

    ``data`` is base64 (a ``data:...;base64,`` URL is accepted too). An image
    with ``path`` is written verbatim and not tracked in the images index.
    """

    type: Literal["blog", "file", "image"]
    title: str | None = None
    description: str | None = None
    author: str | None = None
    tags: list[str] | None = None
    content: str | None = None
    name: str | None = None
    data: str | None = None
    collection: str | None = None
    path: str | None = None


class UploadRequest(BaseModel):
    items: list[UploadItem] = Field(default_factory=list, max_length=200)


class RemoveRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    paths: list[str] = Field(default_factory=list)
    commit_message: str = Field(default="", alias="commitMessage", max_length=500)


class DeleteAction(BaseModel):
    type: Literal["delete"] = "delete"
    path: str = ""


class ImageMetadataUpdate(BaseModel):
    """An active image in the admin's final ordering."""

    path: str = Field(min_length=1)
    collection: str = Field(min_length=1)
    index: int = 0


class FileMetadataUpdate(BaseModel):
    """An active file with its edited title and description."""

    model_config = ConfigDict(extra="ignore")

    filename: str = Field(min_length=1)
    title: str = ""
    description: str = ""
    index: int | None = None


class EditImagesRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    actions: list[DeleteAction] = Field(default_factory=list)
    new_metadata: list[ImageMetadataUpdate] = Field(default_factory=list, alias="newMetadata")


class EditFilesRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    actions: list[DeleteAction] = Field(default_factory=list)
    new_metadata: list[FileMetadataUpdate] = Field(default_factory=list, alias="newMetadata")


class DeletePostRequest(BaseModel):
    title: str | None = None
    slug: str | None = None


class OperationResponse(BaseModel):
    """Every admin endpoint answers with at least these fields."""

    success: bool
    error: str | None = None
    message: str | None = None


class UploadResponse(OperationResponse):
    commit_sha: str | None = None
    paths: list[str] = Field(default_factory=list)
    slugs: list[str] = Field(default_factory=list)


class RemoveResponse(OperationResponse):
    commit_sha: str | None = None
    deleted: list[str] = Field(default_factory=list)
    skipped: list[str] = Field(default_factory=list)


class EditResponse(OperationResponse):
    deleted: list[str] = Field(default_factory=list)
    skipped: list[str] = Field(default_factory=list)
    deletion_commit_sha: str | None = None
    metadata_commit_sha: str | None = None
    partial: bool = False


class CommitHistoryItemResponse(BaseModel):
    sha: str
    message: str
    author: str
    author_email: str
    date: str
    committer: str
    committer_email: str
    committer_date: str
    url: str


class CollectionsResponse(BaseModel):
    collections: list[str]


class PublicFile(BaseModel):
    name: str
    description: str
    href: str


class FilesResponse(BaseModel):
    files: list[PublicFile]
