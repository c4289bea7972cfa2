"""Commit history of the content branch."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from scoutcms.content.paths import public_path_to_repo
from scoutcms.exceptions import ValidationError
from scoutcms.github.client import MAX_HISTORY_COUNT
from scoutcms.github.models import sanitize_path

if TYPE_CHECKING:
    from scoutcms.github.client import GitHubClient
    from scoutcms.github.models import CommitHistoryItem

logger = logging.getLogger(__name__)

DEFAULT_HISTORY_COUNT = 10


def _history_filter_path(path: str | None) -> str | None:
    """Repo path for a history filter; public ``/content/...`` paths are mapped."""
    if not path or not path.strip():
        return None
    if path.strip().startswith("/content/"):
        return public_path_to_repo(path.strip())
    return sanitize_path(path)


async def get_history(
    client: GitHubClient,
    path: str | None = None,
    count: int = DEFAULT_HISTORY_COUNT,
    page: int = 1,
) -> list[CommitHistoryItem]:
    """Return up to ``count`` commits, newest first, optionally touching ``path``."""
    if not 1 <= count <= MAX_HISTORY_COUNT:
        raise ValidationError(f"count must be between 1 and {MAX_HISTORY_COUNT}")
    if page < 1:
        raise ValidationError("page must be at least 1")
    filter_path = _history_filter_path(path)
    items = await client.list_commits(path=filter_path, count=count, page=page)
    logger.debug("Fetched %d commit(s) (path=%s, page=%d)", len(items), filter_path, page)
    return items
