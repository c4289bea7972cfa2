"""Commit orchestration: logical content operations as atomic commits.

One upload request becomes one commit holding every content file plus the
rewritten indices it touched. Edits that delete files commit the deletion
first and the rewritten index second; if only the second commit fails the
result is reported as a partial failure and the deletion is left in place.

Mutating operations on one branch are serialized by an in-process lock, and a
ref update rejected because another writer moved the branch is retried from a
fresh read of the branch and indices.
"""

from __future__ import annotations

import asyncio
import base64
import binascii
import logging
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Literal, TypeVar

from scoutcms.content.frontmatter import BlogPost, serialize_blog_post
from scoutcms.content.paths import (
    FILES_DIR,
    FILES_INDEX_PATH,
    IMAGES_DIR,
    IMAGES_INDEX_PATH,
    INDEX_PATHS,
    blog_post_path,
    file_path,
    image_repo_path,
    public_path_to_repo,
)
from scoutcms.exceptions import (
    ConflictError,
    MetadataIndexError,
    NotFoundError,
    RemoteVCSError,
    ValidationError,
)
from scoutcms.github.models import CommitStage, RemoteFile, sanitize_path
from scoutcms.schemas.metadata import FileMetadata
from scoutcms.services.datetime_service import format_date, format_iso_millis, now_utc
from scoutcms.services.metadata_service import (
    apply_collection_deletion,
    apply_file_deletions,
    apply_image_deletions,
    group_image_metadata,
    index_file,
    load_file_index,
    load_image_index,
    merge_file_entry,
    merge_image_entry,
    normalize_file_metadata,
)
from scoutcms.services.slug_service import create_slug, slugify

if TYPE_CHECKING:
    from collections.abc import Awaitable, Callable, Sequence
    from datetime import datetime

    from scoutcms.github.client import GitHubClient
    from scoutcms.github.models import CommitResult, GitHubConfig
    from scoutcms.schemas.content import FileMetadataUpdate, ImageMetadataUpdate, UploadItem

logger = logging.getLogger(__name__)

T = TypeVar("T")

BATCH_COMMIT_MESSAGE = "Batch upload"
DEFAULT_REMOVE_MESSAGE = "Remove content"

_BRANCH_LOCKS: dict[tuple[str, str, str], tuple[asyncio.AbstractEventLoop, asyncio.Lock]] = {}


def get_branch_lock(config: GitHubConfig) -> asyncio.Lock:
    """Return the lock serializing writes to one repository branch.

    Locks belong to the running event loop; a new loop gets a fresh lock.
    """
    loop = asyncio.get_running_loop()
    key = (config.owner.lower(), config.repo.lower(), config.branch)
    entry = _BRANCH_LOCKS.get(key)
    if entry is None or entry[0] is not loop:
        entry = (loop, asyncio.Lock())
        _BRANCH_LOCKS[key] = entry
    return entry[1]


@dataclass
class PlannedItem:
    """A validated upload item and the file it will write."""

    kind: Literal["blog", "file", "image"]
    file: RemoteFile
    commit_message: str
    slug: str | None = None
    file_entry: FileMetadata | None = None
    collection: str | None = None


@dataclass
class UploadResult:
    success: bool
    commit_sha: str | None
    message: str
    paths: list[str] = field(default_factory=list)
    slugs: list[str] = field(default_factory=list)


@dataclass
class RemoveResult:
    success: bool
    commit_sha: str | None
    message: str
    deleted: list[str] = field(default_factory=list)
    skipped: list[str] = field(default_factory=list)


@dataclass
class EditResult:
    success: bool
    deleted: list[str] = field(default_factory=list)
    skipped: list[str] = field(default_factory=list)
    deletion_commit_sha: str | None = None
    metadata_commit_sha: str | None = None
    partial: bool = False
    error: str | None = None


def _check_name(value: str, what: str) -> str:
    if "/" in value or "\\" in value or value.strip() in {"", ".", ".."}:
        raise ValidationError(f"Invalid {what}: {value!r}")
    return value


def _check_repo_path(path: str) -> str:
    if any(part in {"", ".", ".."} for part in path.split("/")):
        raise ValidationError(f"Invalid path: {path!r}")
    return path


def normalize_base64(data: str, name: str) -> str:
    """Return ``data`` as plain base64, accepting a ``data:`` URL.

    Raises ValidationError if it does not decode.
    """
    text = data.strip()
    if text.startswith("data:"):
        header, sep, payload = text.partition(",")
        if not sep or not header.endswith(";base64"):
            raise ValidationError(f"Data for '{name}' must be base64 encoded")
        text = payload
    text = "".join(text.split())
    try:
        base64.b64decode(text, validate=True)
    except (binascii.Error, ValueError) as exc:
        raise ValidationError(f"Data for '{name}' is not valid base64") from exc
    return text


def _deletion_paths(paths: Sequence[str], root: str) -> list[str]:
    """Repo paths to delete; each must be a content file under ``root``."""
    resolved = []
    for path in paths:
        if not path:
            continue
        repo_path = _check_repo_path(public_path_to_repo(path))
        if not repo_path.startswith(f"{root}/") or repo_path in INDEX_PATHS:
            raise ValidationError(f"Path is outside {root}: {path!r}")
        resolved.append(repo_path)
    return list(dict.fromkeys(resolved))


def _stage_of(exc: BaseException, stage: CommitStage) -> CommitStage:
    if isinstance(exc, RemoteVCSError) and exc.step == "updating branch ref":
        return CommitStage.UPDATING_REF
    return stage


class ContentCommitService:
    """Turns admin content operations into commits on the content branch."""

    def __init__(
        self,
        client: GitHubClient,
        *,
        conflict_retries: int = 1,
        clock: Callable[[], datetime] = now_utc,
    ) -> None:
        self.client = client
        self.conflict_retries = conflict_retries
        self._clock = clock

    @property
    def lock(self) -> asyncio.Lock:
        return get_branch_lock(self.client.config)

    def _today(self) -> str:
        return format_date(self._clock())

    async def _with_conflict_retry(self, operation: Callable[[], Awaitable[T]], what: str) -> T:
        """Run ``operation``, re-running it when the branch moved underneath it."""
        attempt = 0
        while True:
            try:
                return await operation()
            except ConflictError:
                if attempt >= self.conflict_retries:
                    logger.error("%s: branch still moving after %d retries", what, attempt)
                    raise
                attempt += 1
                logger.warning("%s: concurrent commit detected, retrying (%d)", what, attempt)

    # -- upload ----------------------------------------------------------------

    def _plan_blog(self, item: UploadItem) -> PlannedItem:
        if not item.title or not item.title.strip() or not item.content:
            raise ValidationError("Blog items must have title and content")
        slug = create_slug(item.title)
        post = BlogPost(
            title=item.title,
            slug=slug,
            content=item.content,
            date=format_iso_millis(self._clock()),
            description=item.description,
            author=item.author,
            tags=list(item.tags or []),
        )
        return PlannedItem(
            kind="blog",
            file=RemoteFile(path=blog_post_path(slug), content=serialize_blog_post(post)),
            commit_message=f"Posted '{item.title}'",
            slug=slug,
        )

    def _plan_file(self, item: UploadItem) -> PlannedItem:
        if not item.name or not item.data:
            raise ValidationError("File items must have name and data")
        name = _check_name(item.name, "file name")
        data = normalize_base64(item.data, name)
        filename = sanitize_path(name)
        return PlannedItem(
            kind="file",
            file=RemoteFile(path=file_path(filename), content=data, encoding="base64"),
            commit_message=f"Uploaded file '{item.name}'",
            file_entry=FileMetadata(
                filename=filename,
                title=item.title or item.name,
                description=item.description or "",
            ),
        )

    def _plan_image(self, item: UploadItem) -> PlannedItem:
        if not item.name or not item.data:
            raise ValidationError("Image items must have name and data")
        name = _check_name(item.name, "image name")
        data = normalize_base64(item.data, name)
        message = f"Uploaded image '{item.name}'"

        if item.path:
            # Out-of-band upload: written verbatim, not tracked in the index.
            path = _check_repo_path(public_path_to_repo(item.path))
            return PlannedItem(
                kind="image",
                file=RemoteFile(path=path, content=data, encoding="base64"),
                commit_message=message,
            )

        if not item.collection:
            raise ValidationError("Image items must have either a collection or a path")
        collection = _check_name(item.collection, "collection name")
        return PlannedItem(
            kind="image",
            file=RemoteFile(
                path=image_repo_path(collection, name), content=data, encoding="base64"
            ),
            commit_message=message,
            collection=collection,
        )

    def plan_upload(self, items: Sequence[UploadItem]) -> list[PlannedItem]:
        """Validate every item and plan its file. Makes no remote calls."""
        if not items:
            raise ValidationError("No items provided")

        planned: list[PlannedItem] = []
        for item in items:
            if item.type == "blog":
                planned.append(self._plan_blog(item))
            elif item.type == "file":
                planned.append(self._plan_file(item))
            elif item.type == "image":
                planned.append(self._plan_image(item))
            else:
                raise ValidationError(f"Unknown item type: {item.type}")

        seen: set[str] = set()
        for plan in planned:
            path = plan.file.path
            if path in INDEX_PATHS:
                raise ValidationError(f"{path} is reserved for the metadata index")
            if path in seen:
                raise ValidationError(f"Duplicate path in upload: {path}")
            seen.add(path)
        return planned

    def _enter(self, stage: CommitStage) -> CommitStage:
        logger.debug("Upload stage: %s", stage)
        return stage

    async def _upload_once(self, planned: list[PlannedItem]) -> CommitResult:
        stage = self._enter(CommitStage.AUTHENTICATING)
        try:
            await self.client.ensure_authenticated()

            stage = self._enter(CommitStage.READING_INDEX)
            touches_files = any(p.file_entry is not None for p in planned)
            touches_images = any(p.collection is not None for p in planned)
            file_index = await load_file_index(self.client) if touches_files else []
            image_index = await load_image_index(self.client) if touches_images else []

            stage = self._enter(CommitStage.BUILDING_TREE)
            files: list[RemoteFile] = []
            today = self._today()
            for plan in planned:
                files.append(plan.file)
                if plan.file_entry is not None:
                    file_index = merge_file_entry(file_index, plan.file_entry)
                if plan.collection is not None:
                    image_index = merge_image_entry(
                        image_index, plan.collection, plan.file.path, today
                    )
            if touches_files:
                files.append(index_file(FILES_INDEX_PATH, file_index))
            if touches_images:
                files.append(index_file(IMAGES_INDEX_PATH, image_index))
            message = planned[-1].commit_message if len(files) <= 2 else BATCH_COMMIT_MESSAGE

            stage = self._enter(CommitStage.COMMITTING)
            result = await self.client.commit_files(files, message)
            self._enter(CommitStage.DONE)
            return result
        except Exception as exc:
            logger.error(
                "Upload failed at stage '%s': %s", _stage_of(exc, stage), exc, exc_info=exc
            )
            self._enter(CommitStage.FAILED)
            raise

    async def upload(self, items: Sequence[UploadItem]) -> UploadResult:
        """Upload blog posts, files and images as one commit."""
        try:
            planned = self.plan_upload(items)
        except ValidationError as exc:
            logger.warning("Upload rejected at stage '%s': %s", CommitStage.VALIDATING, exc)
            raise
        async with self.lock:
            result = await self._with_conflict_retry(lambda: self._upload_once(planned), "Upload")
        return UploadResult(
            success=True,
            commit_sha=result.commit_sha,
            message=result.message,
            paths=[p.file.path for p in planned],
            slugs=[p.slug for p in planned if p.slug is not None],
        )

    # -- removal ---------------------------------------------------------------

    async def remove(self, paths: Sequence[str], message: str = "") -> RemoveResult:
        """Delete paths in one commit; paths already absent are skipped."""
        requested = [p for p in paths if p and p.strip()]
        if not requested:
            raise ValidationError("The 'paths' array must not be empty.")
        for path in requested:
            _check_repo_path(sanitize_path(path))
        message = message.strip() or DEFAULT_REMOVE_MESSAGE

        async with self.lock:
            result = await self._with_conflict_retry(
                lambda: self.client.delete_files(requested, message), "Remove"
            )
        return RemoveResult(
            success=True,
            commit_sha=result.commit_sha,
            message=message,
            deleted=result.paths,
            skipped=result.skipped_paths,
        )

    async def delete_post(
        self, *, title: str | None = None, slug: str | None = None
    ) -> RemoveResult:
        """Delete a blog post identified by its title or slug."""
        if slug:
            if slugify(slug) != slug:
                raise ValidationError(f"Invalid slug: {slug!r}")
        elif title:
            slug = create_slug(title)
        else:
            raise ValidationError("A title or slug is required")

        path = blog_post_path(slug)
        result = await self.remove([path], f"Removed blog post: {title or slug}")
        if not result.deleted:
            raise NotFoundError("deleting blog post", status=404, detail=path)
        return result

    # -- edit flows ------------------------------------------------------------

    async def _delete_then_write_index(
        self,
        delete_paths: list[str],
        deletion_message: str,
        write_index: Callable[[], Awaitable[CommitResult]],
        what: str,
    ) -> EditResult:
        """Deletion commit, then index commit; a failed index commit is partial."""
        outcome = EditResult(success=True)
        async with self.lock:
            if delete_paths:
                deletion = await self._with_conflict_retry(
                    lambda: self.client.delete_files(delete_paths, deletion_message), what
                )
                outcome.deleted = deletion.paths
                outcome.skipped = deletion.skipped_paths
                outcome.deletion_commit_sha = deletion.commit_sha

            try:
                written = await self._with_conflict_retry(write_index, what)
            except (RemoteVCSError, MetadataIndexError) as exc:
                if not outcome.deleted:
                    raise
                logger.error(
                    "%s: deleted %d file(s) but the metadata index write failed; "
                    "the index is stale until the save is retried: %s",
                    what,
                    len(outcome.deleted),
                    exc,
                )
                outcome.success = False
                outcome.partial = True
                outcome.error = (
                    f"Deleted {len(outcome.deleted)} file(s) but failed to update "
                    f"the metadata file: {exc}"
                )
                return outcome

        outcome.metadata_commit_sha = written.commit_sha
        return outcome

    async def edit_images(
        self,
        delete_paths: Sequence[str],
        new_metadata: Sequence[ImageMetadataUpdate],
    ) -> EditResult:
        """Delete images and save the admin's final image ordering.

        The images index is read before anything is deleted, so a corrupt
        index aborts the edit with the branch untouched.
        """
        deletions = _deletion_paths(delete_paths, IMAGES_DIR)
        today = self._today()
        # raises MetadataIndexError before any deletion
        await load_image_index(self.client)

        async def write_index() -> CommitResult:
            existing = await load_image_index(self.client)
            index = group_image_metadata(new_metadata, existing, today)
            index = apply_image_deletions(index, deletions)
            return await self.client.commit_files(
                [index_file(IMAGES_INDEX_PATH, index)],
                f"Image Manager: Update metadata file (Deletions: {len(deletions)}).",
            )

        return await self._delete_then_write_index(
            deletions,
            f"Image Manager: Deleted {len(deletions)} image file(s).",
            write_index,
            "Image Manager",
        )

    async def edit_files(
        self,
        delete_paths: Sequence[str],
        new_metadata: Sequence[FileMetadataUpdate],
    ) -> EditResult:
        """Delete files and save the admin's edited file list."""
        deletions = _deletion_paths(delete_paths, FILES_DIR)
        index = apply_file_deletions(normalize_file_metadata(new_metadata), deletions)

        async def write_index() -> CommitResult:
            return await self.client.commit_files(
                [index_file(FILES_INDEX_PATH, index)],
                f"File Manager: Update metadata file (Deletions: {len(deletions)}).",
            )

        return await self._delete_then_write_index(
            deletions,
            f"File Manager: Deleted {len(deletions)} file(s).",
            write_index,
            "File Manager",
        )

    async def delete_collection(self, name: str) -> EditResult:
        """Delete a collection and every image in it."""
        index = await load_image_index(self.client)
        if all(collection.name != name for collection in index):
            raise NotFoundError("deleting collection", status=404, detail=name)
        _, paths = apply_collection_deletion(index, name)

        async def write_index() -> CommitResult:
            current = await load_image_index(self.client)
            remaining, _ = apply_collection_deletion(current, name)
            return await self.client.commit_files(
                [index_file(IMAGES_INDEX_PATH, remaining)],
                f"Image Manager: Update metadata file (Deleted collection '{name}').",
            )

        return await self._delete_then_write_index(
            paths,
            f"Image Manager: Deleted collection '{name}' ({len(paths)} image file(s)).",
            write_index,
            "Image Manager",
        )
