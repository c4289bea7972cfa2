"""Metadata index manager: the files and images ``metadata.json`` indices.

The indices are plain JSON arrays committed next to the content they
describe. Every mutation here is a pure function over an in-memory copy; the
commit service decides when the rewritten index is sent back.
"""

from __future__ import annotations

import json
import logging
from typing import TYPE_CHECKING, TypeVar

from pydantic import BaseModel, TypeAdapter
from pydantic import ValidationError as PydanticValidationError

from scoutcms.content.paths import (
    FILES_INDEX_PATH,
    IMAGES_INDEX_PATH,
    filename_from_file_path,
    public_path_to_repo,
    repo_path_to_public,
)
from scoutcms.exceptions import MetadataIndexError, NotFoundError
from scoutcms.github.models import RemoteFile
from scoutcms.schemas.metadata import CollectionMetadata, FileMetadata, ImageMetadata

if TYPE_CHECKING:
    from collections.abc import Iterable, Sequence

    from scoutcms.github.client import GitHubClient
    from scoutcms.schemas.content import FileMetadataUpdate, ImageMetadataUpdate

logger = logging.getLogger(__name__)

T = TypeVar("T", bound=BaseModel)

_FILE_INDEX = TypeAdapter(list[FileMetadata])
_IMAGE_INDEX = TypeAdapter(list[CollectionMetadata])


async def _load_index(client: GitHubClient, path: str, adapter: TypeAdapter[list[T]]) -> list[T]:
    try:
        remote = await client.get_file(path)
    except NotFoundError:
        logger.info("Index %s does not exist yet; starting empty", path)
        return []
    try:
        text = remote.text
    except UnicodeDecodeError as exc:
        raise MetadataIndexError(path, "not valid UTF-8") from exc
    if not text.strip():
        return []
    try:
        return adapter.validate_json(text)
    except PydanticValidationError as exc:
        raise MetadataIndexError(path, f"{exc.error_count()} validation error(s)") from exc


async def load_file_index(client: GitHubClient) -> list[FileMetadata]:
    """Fetch the files index; an index that does not exist yet is empty."""
    return await _load_index(client, FILES_INDEX_PATH, _FILE_INDEX)


async def load_image_index(client: GitHubClient) -> list[CollectionMetadata]:
    """Fetch the images index; an index that does not exist yet is empty."""
    return await _load_index(client, IMAGES_INDEX_PATH, _IMAGE_INDEX)


def serialize_index(index: Sequence[BaseModel]) -> str:
    """Serialize an index the way the site has always stored it (2-space JSON)."""
    return json.dumps([entry.model_dump() for entry in index], indent=2, ensure_ascii=False)


def index_file(path: str, index: Sequence[BaseModel]) -> RemoteFile:
    return RemoteFile(path=path, content=serialize_index(index), encoding="utf-8")


# -- files index ---------------------------------------------------------------


def merge_file_entry(index: Sequence[FileMetadata], entry: FileMetadata) -> list[FileMetadata]:
    """Upsert by filename: replace in place if present, else append."""
    merged = [item.model_copy() for item in index]
    for i, item in enumerate(merged):
        if item.filename == entry.filename:
            merged[i] = entry.model_copy()
            return merged
    merged.append(entry.model_copy())
    return merged


def apply_file_deletions(
    index: Sequence[FileMetadata], deleted_paths: Iterable[str]
) -> list[FileMetadata]:
    """Drop entries whose file is among ``deleted_paths`` (repo or public paths)."""
    deleted = {name for name in map(filename_from_file_path, deleted_paths) if name is not None}
    return [item.model_copy() for item in index if item.filename not in deleted]


def normalize_file_metadata(entries: Sequence[FileMetadataUpdate]) -> list[FileMetadata]:
    """Rebuild the files index from the admin's edited list.

    Entries are ordered by their ``index`` when given (stable otherwise); a
    blank title falls back to the filename; a repeated filename keeps its first
    position and its last values.
    """
    ordered = sorted(
        enumerate(entries),
        key=lambda pair: pair[1].index if pair[1].index is not None else pair[0],
    )
    result: list[FileMetadata] = []
    for _, entry in ordered:
        merged = FileMetadata(
            filename=entry.filename,
            title=entry.title or entry.filename,
            description=entry.description or "",
        )
        result = merge_file_entry(result, merged)
    return result


# -- images index --------------------------------------------------------------


def _reindexed(images: Iterable[ImageMetadata]) -> list[ImageMetadata]:
    """Sort by current index (stable) and re-derive a dense 0..n-1 order."""
    ordered = sorted(images, key=lambda image: image.index)
    return [ImageMetadata(path=image.path, index=i) for i, image in enumerate(ordered)]


def merge_image_entry(
    index: Sequence[CollectionMetadata],
    collection_name: str,
    image_path: str,
    today: str,
) -> list[CollectionMetadata]:
    """Add an image to a collection, creating the collection if needed.

    A new collection is dated ``today``; an existing collection keeps its date.
    Re-uploading a path already in the collection keeps its position.
    """
    merged = [collection.model_copy(deep=True) for collection in index]
    public_path = repo_path_to_public(image_path)

    collection = next((c for c in merged if c.name == collection_name), None)
    if collection is None:
        collection = CollectionMetadata(name=collection_name, date=today, images=[])
        merged.append(collection)

    collection.images = _reindexed(collection.images)
    if all(image.path != public_path for image in collection.images):
        collection.images.append(ImageMetadata(path=public_path, index=len(collection.images)))
    return merged


def apply_image_deletions(
    index: Sequence[CollectionMetadata], deleted_paths: Iterable[str]
) -> list[CollectionMetadata]:
    """Drop deleted images, re-derive indices, and prune empty collections."""
    deleted = {repo_path_to_public(path) for path in deleted_paths}
    result: list[CollectionMetadata] = []
    for collection in index:
        remaining = [
            image for image in collection.images if repo_path_to_public(image.path) not in deleted
        ]
        if not remaining:
            continue
        result.append(
            CollectionMetadata(
                name=collection.name, date=collection.date, images=_reindexed(remaining)
            )
        )
    return result


def apply_collection_deletion(
    index: Sequence[CollectionMetadata], collection_name: str
) -> tuple[list[CollectionMetadata], list[str]]:
    """Remove a collection; return the new index and the repo paths to delete."""
    remaining: list[CollectionMetadata] = []
    paths: list[str] = []
    for collection in index:
        if collection.name == collection_name:
            paths.extend(public_path_to_repo(image.path) for image in collection.images)
        else:
            remaining.append(collection.model_copy(deep=True))
    return remaining, paths


def group_image_metadata(
    entries: Sequence[ImageMetadataUpdate],
    existing: Sequence[CollectionMetadata],
    today: str,
) -> list[CollectionMetadata]:
    """Rebuild the images index from the admin's flat, reordered image list.

    Collections appear in order of first mention. Dates of collections that
    already exist are kept verbatim; new collections are dated ``today``.
    Within a collection images are sorted by the client's index and then
    re-indexed densely, so stale or sparse client indices cannot leak into the
    saved index.
    """
    dates = {collection.name: collection.date for collection in existing}
    grouped: dict[str, list[ImageMetadata]] = {}
    seen: set[str] = set()
    for entry in entries:
        path = repo_path_to_public(entry.path)
        if path in seen:
            continue
        seen.add(path)
        grouped.setdefault(entry.collection, []).append(
            ImageMetadata(path=path, index=max(entry.index, 0))
        )

    return [
        CollectionMetadata(name=name, date=dates.get(name, today), images=_reindexed(images))
        for name, images in grouped.items()
    ]


def collection_names(index: Sequence[CollectionMetadata]) -> list[str]:
    return [collection.name for collection in index]
