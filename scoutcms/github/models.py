"""Data classes exchanged with the GitHub client."""

from __future__ import annotations

import enum
from dataclasses import dataclass, field
from datetime import datetime
from typing import Literal

Encoding = Literal["utf-8", "base64"]


@dataclass(frozen=True)
class GitHubConfig:
    """Everything needed to act on one repository branch as a GitHub App."""

    app_id: str
    private_key: str
    owner: str
    repo: str
    branch: str = "main"
    installation_id: str | None = None
    api_url: str = "https://api.github.com"
    timeout_seconds: float = 30.0
    token_refresh_margin_seconds: int = 300

    @property
    def repo_url(self) -> str:
        return f"{self.api_url}/repos/{self.owner}/{self.repo}"


@dataclass(frozen=True)
class InstallationToken:
    """Short-lived installation access token."""

    token: str
    expires_at: datetime
    installation_id: str

    def expires_within(self, seconds: float, now: datetime) -> bool:
        return (self.expires_at - now).total_seconds() <= seconds


def sanitize_path(path: str) -> str:
    """Normalize a repo-relative path: no raw spaces, no leading slash."""
    return path.replace(" ", "-").lstrip("/")


@dataclass
class RemoteFile:
    """A path-addressed blob in the remote repository.

    ``content`` is raw bytes or text when ``encoding`` is ``"utf-8"``, and a
    base64 string when ``encoding`` is ``"base64"``. ``sha`` is set only for
    files read back from the remote.
    """

    path: str
    content: bytes | str
    encoding: Encoding = "utf-8"
    sha: str | None = None

    def __post_init__(self) -> None:
        self.path = sanitize_path(self.path)

    @property
    def text(self) -> str:
        """Content decoded as UTF-8 text."""
        if isinstance(self.content, bytes):
            return self.content.decode("utf-8")
        return self.content


@dataclass
class CommitResult:
    """Outcome of a commit pipeline."""

    commit_sha: str | None
    message: str
    tree_sha: str | None = None
    paths: list[str] = field(default_factory=list)
    skipped_paths: list[str] = field(default_factory=list)
    url: str | None = None

    @property
    def committed(self) -> bool:
        return self.commit_sha is not None


@dataclass
class CommitHistoryItem:
    """One commit as shown in the admin audit view."""

    sha: str
    message: str
    author: str
    author_email: str
    date: str
    committer: str
    committer_email: str
    committer_date: str
    url: str


class CommitStage(enum.StrEnum):
    """Stages of one upload or edit request."""

    VALIDATING = "validating"
    AUTHENTICATING = "authenticating"
    READING_INDEX = "reading index"
    BUILDING_TREE = "building tree"
    COMMITTING = "committing"
    UPDATING_REF = "updating ref"
    DONE = "done"
    FAILED = "failed"
