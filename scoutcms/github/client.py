"""GitHub client: multi-file commits on one branch via the Git Data API."""

from __future__ import annotations

import asyncio
import base64
import logging
from typing import TYPE_CHECKING, Any
from urllib.parse import quote

import httpx

from scoutcms.exceptions import (
    AuthError,
    ConflictError,
    NotFoundError,
    RemoteVCSError,
    ValidationError,
)
from scoutcms.github.auth import GitHubAppAuth, github_headers
from scoutcms.github.models import CommitHistoryItem, CommitResult, RemoteFile, sanitize_path

if TYPE_CHECKING:
    from scoutcms.github.models import GitHubConfig

logger = logging.getLogger(__name__)

MAX_HISTORY_COUNT = 100
_BLOB_MODE = "100644"


def _error_detail(resp: httpx.Response) -> str:
    try:
        data = resp.json()
    except ValueError:
        return resp.text[:200]
    if isinstance(data, dict) and data.get("message"):
        return str(data["message"])
    return resp.text[:200]


def _person(commit: dict[str, Any], role: str) -> tuple[str, str, str]:
    person = commit.get(role) or {}
    return (
        str(person.get("name") or ""),
        str(person.get("email") or ""),
        str(person.get("date") or ""),
    )


class GitHubClient:
    """Reads and writes content on one repository branch as a GitHub App.

    Use :meth:`create` to obtain an instance: construction completes the
    installation token exchange first, so a client that exists is one whose
    credentials have been accepted by GitHub.

    Writes go through the Git Data API (ref → commit → blobs → tree → commit →
    ref update). The branch ref is the only thing a reader can observe, and it
    is advanced last with a fast-forward-only update, so a failed pipeline
    leaves the branch exactly where it was.
    """

    def __init__(
        self,
        config: GitHubConfig,
        http_client: httpx.AsyncClient,
        auth: GitHubAppAuth,
    ) -> None:
        self.config = config
        self._http = http_client
        self._auth = auth

    @classmethod
    async def create(
        cls,
        config: GitHubConfig,
        http_client: httpx.AsyncClient,
        auth: GitHubAppAuth | None = None,
    ) -> GitHubClient:
        """Authenticate as the App installation and return a ready client."""
        auth = auth or GitHubAppAuth(config, http_client)
        await auth.get_token()
        return cls(config, http_client, auth)

    async def ensure_authenticated(self) -> None:
        """Make sure a valid installation token is cached."""
        await self._auth.get_token()

    # -- transport -----------------------------------------------------------

    async def _call(
        self,
        method: str,
        url: str,
        step: str,
        *,
        json: dict[str, Any] | None = None,
        params: dict[str, Any] | None = None,
    ) -> httpx.Response:
        token = await self._auth.get_token()
        try:
            resp = await self._http.request(
                method, url, headers=github_headers(token), json=json, params=params
            )
        except httpx.TimeoutException as exc:
            logger.error("GitHub API timeout during %s: %s %s", step, method, url)
            raise RemoteVCSError(step, detail="request timed out") from exc
        except httpx.HTTPError as exc:
            logger.error("GitHub API transport error during %s: %s", step, exc)
            raise RemoteVCSError(step, detail=str(exc) or type(exc).__name__) from exc

        if resp.is_success:
            return resp

        detail = _error_detail(resp)
        if resp.status_code == 401:
            self._auth.invalidate()
            raise AuthError(step, status=401, detail=detail)
        if resp.status_code != 404:
            logger.error("GitHub API error during %s: HTTP %d %s", step, resp.status_code, detail)
        raise RemoteVCSError(step, status=resp.status_code, detail=detail)

    # -- reads ---------------------------------------------------------------

    async def get_file(self, path: str) -> RemoteFile:
        """Fetch a file at the branch head. Raises NotFoundError when absent."""
        path = sanitize_path(path)
        try:
            resp = await self._call(
                "GET",
                f"{self.config.repo_url}/contents/{quote(path)}",
                "fetching file",
                params={"ref": self.config.branch},
            )
        except RemoteVCSError as exc:
            if exc.status == 404:
                raise NotFoundError("fetching file", status=404, detail=path) from exc
            raise

        data = resp.json()
        if not isinstance(data, dict) or data.get("type", "file") != "file":
            raise RemoteVCSError("fetching file", detail=f"{path} is not a file")

        sha = data.get("sha")
        content = data.get("content") or ""
        if data.get("encoding") == "base64" and content:
            raw = base64.b64decode(content)
        elif not content and data.get("size", 0) and sha:
            # Files above the Contents API inline limit come back without content.
            raw = await self._get_blob(sha)
        else:
            raw = content.encode("utf-8")
        return RemoteFile(path=path, content=raw, encoding="utf-8", sha=sha)

    async def _get_blob(self, sha: str) -> bytes:
        resp = await self._call("GET", f"{self.config.repo_url}/git/blobs/{sha}", "fetching blob")
        data = resp.json()
        if data.get("encoding") == "base64":
            return base64.b64decode(data.get("content") or "")
        return str(data.get("content") or "").encode("utf-8")

    async def _head_sha(self) -> str:
        resp = await self._call(
            "GET",
            f"{self.config.repo_url}/git/ref/heads/{self.config.branch}",
            "fetching branch ref",
        )
        return str(resp.json()["object"]["sha"])

    async def _commit_tree_sha(self, commit_sha: str) -> str:
        resp = await self._call(
            "GET",
            f"{self.config.repo_url}/git/commits/{commit_sha}",
            "fetching latest commit",
        )
        return str(resp.json()["tree"]["sha"])

    async def _tree_blobs(self, tree_sha: str) -> tuple[dict[str, str], bool]:
        """Return ({path: mode}, truncated) for every blob under a tree."""
        resp = await self._call(
            "GET",
            f"{self.config.repo_url}/git/trees/{tree_sha}",
            "listing tree",
            params={"recursive": "1"},
        )
        data = resp.json()
        blobs = {
            str(entry["path"]): str(entry.get("mode") or _BLOB_MODE)
            for entry in data.get("tree", [])
            if entry.get("type") == "blob"
        }
        return blobs, bool(data.get("truncated"))

    async def list_tree_paths(self) -> set[str]:
        """Return every blob path in the branch head tree."""
        head = await self._head_sha()
        tree_sha = await self._commit_tree_sha(head)
        blobs, truncated = await self._tree_blobs(tree_sha)
        if truncated:
            logger.warning("Tree listing for %s is truncated", self.config.branch)
        return set(blobs)

    async def _exists_at(self, path: str, commit_sha: str) -> bool:
        try:
            await self._call(
                "GET",
                f"{self.config.repo_url}/contents/{quote(path)}",
                "checking file",
                params={"ref": commit_sha},
            )
        except RemoteVCSError as exc:
            if exc.status == 404:
                return False
            raise
        return True

    async def list_commits(
        self,
        path: str | None = None,
        count: int = 10,
        page: int = 1,
    ) -> list[CommitHistoryItem]:
        """List commits on the branch, newest first, optionally filtered by path."""
        params: dict[str, Any] = {
            "sha": self.config.branch,
            "per_page": max(1, min(count, MAX_HISTORY_COUNT)),
            "page": max(1, page),
        }
        if path:
            params["path"] = path
        resp = await self._call(
            "GET", f"{self.config.repo_url}/commits", "listing commits", params=params
        )
        items: list[CommitHistoryItem] = []
        for entry in resp.json():
            commit = entry.get("commit") or {}
            author, author_email, author_date = _person(commit, "author")
            committer, committer_email, committer_date = _person(commit, "committer")
            items.append(
                CommitHistoryItem(
                    sha=str(entry.get("sha", "")),
                    message=str(commit.get("message", "")),
                    author=author,
                    author_email=author_email,
                    date=author_date,
                    committer=committer,
                    committer_email=committer_email,
                    committer_date=committer_date,
                    url=str(entry.get("html_url") or ""),
                )
            )
        return items

    # -- writes --------------------------------------------------------------

    async def _create_blob(self, content_b64: str) -> str:
        resp = await self._call(
            "POST",
            f"{self.config.repo_url}/git/blobs",
            "creating blob",
            json={"content": content_b64, "encoding": "base64"},
        )
        return str(resp.json()["sha"])

    async def _tree_entry(self, file: RemoteFile) -> dict[str, Any]:
        entry: dict[str, Any] = {"path": file.path, "mode": _BLOB_MODE, "type": "blob"}
        if file.encoding == "base64":
            content = file.content
            b64 = content.decode("ascii") if isinstance(content, bytes) else content
            entry["sha"] = await self._create_blob(b64)
            return entry
        if isinstance(file.content, bytes):
            try:
                entry["content"] = file.content.decode("utf-8")
            except UnicodeDecodeError:
                entry["sha"] = await self._create_blob(base64.b64encode(file.content).decode())
            return entry
        entry["content"] = file.content
        return entry

    async def _finish_commit(
        self,
        head: str,
        base_tree: str,
        entries: list[dict[str, Any]],
        message: str,
    ) -> tuple[str, str, str | None]:
        """Create tree and commit on top of ``head``, then fast-forward the ref."""
        tree_resp = await self._call(
            "POST",
            f"{self.config.repo_url}/git/trees",
            "creating new tree",
            json={"base_tree": base_tree, "tree": entries},
        )
        tree_sha = str(tree_resp.json()["sha"])

        commit_resp = await self._call(
            "POST",
            f"{self.config.repo_url}/git/commits",
            "creating new commit",
            json={"message": message, "tree": tree_sha, "parents": [head]},
        )
        commit_data = commit_resp.json()
        commit_sha = str(commit_data["sha"])

        try:
            await self._call(
                "PATCH",
                f"{self.config.repo_url}/git/refs/heads/{self.config.branch}",
                "updating branch ref",
                json={"sha": commit_sha, "force": False},
            )
        except RemoteVCSError as exc:
            if exc.status == 409 or (exc.status == 422 and "fast forward" in exc.detail.lower()):
                logger.warning(
                    "Branch %s moved since %s; ref update rejected", self.config.branch, head[:7]
                )
                raise ConflictError(
                    "updating branch ref", status=exc.status, detail=exc.detail
                ) from exc
            raise
        return commit_sha, tree_sha, commit_data.get("html_url")

    async def commit_files(self, files: list[RemoteFile], message: str) -> CommitResult:
        """Write every file in one commit, or none of them."""
        if not files:
            raise ValidationError("No files specified for upload")
        paths = [f.path for f in files]
        duplicates = sorted({p for p in paths if paths.count(p) > 1})
        if duplicates:
            raise ValidationError(f"Duplicate paths in commit: {', '.join(duplicates)}")

        head = await self._head_sha()
        base_tree = await self._commit_tree_sha(head)
        entries = list(await asyncio.gather(*(self._tree_entry(f) for f in files)))
        commit_sha, tree_sha, url = await self._finish_commit(head, base_tree, entries, message)
        logger.info(
            "Committed %d file(s) to %s as %s: %s",
            len(files),
            self.config.branch,
            commit_sha[:7],
            message,
        )
        return CommitResult(
            commit_sha=commit_sha, message=message, tree_sha=tree_sha, paths=paths, url=url
        )

    async def delete_files(self, paths: list[str], message: str) -> CommitResult:
        """Delete paths in one commit, skipping those already absent."""
        if not paths:
            raise ValidationError("No files specified for removal")
        requested = list(dict.fromkeys(sanitize_path(p) for p in paths if p))

        head = await self._head_sha()
        base_tree = await self._commit_tree_sha(head)
        blobs, truncated = await self._tree_blobs(base_tree)
        if truncated:
            present_flags = await asyncio.gather(*(self._exists_at(p, head) for p in requested))
            present = [p for p, ok in zip(requested, present_flags, strict=True) if ok]
        else:
            present = [p for p in requested if p in blobs]
        skipped = [p for p in requested if p not in present]
        if skipped:
            logger.warning("Skipping deletion of paths absent from %s: %s", head[:7], skipped)
        if not present:
            return CommitResult(commit_sha=None, message=message, skipped_paths=skipped)

        entries = [
            {"path": p, "mode": blobs.get(p, _BLOB_MODE), "type": "blob", "sha": None}
            for p in present
        ]
        commit_sha, tree_sha, url = await self._finish_commit(head, base_tree, entries, message)
        logger.info(
            "Deleted %d file(s) from %s as %s: %s",
            len(present),
            self.config.branch,
            commit_sha[:7],
            message,
        )
        return CommitResult(
            commit_sha=commit_sha,
            message=message,
            tree_sha=tree_sha,
            paths=present,
            skipped_paths=skipped,
            url=url,
        )
