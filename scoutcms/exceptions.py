"""Application-level exception types.

Convention:
- ``ValidationError``: malformed client input (missing fields, empty slug,
  undecodable data). Raised before any remote call; the message is safe to
  forward to clients and is returned verbatim as the ``error`` field (400).
- ``RemoteVCSError`` and its subclasses: failures talking to GitHub. They
  carry the failing step name and HTTP status so the log line identifies
  exactly which part of a commit pipeline broke.
- ``ConfigError``: missing or unusable credentials. Fatal at startup.
- ``InternalServerError``: for errors whose details must never reach clients.
  The global handler logs the full message at ERROR and returns a generic
  "Internal server error" (500) to the client.
"""

from __future__ import annotations


class InternalServerError(Exception):
    """Raised for internal errors whose details must not be exposed to clients.

    The global exception handler in ``scoutcms/main.py`` catches this, logs
    the full message server-side, and returns HTTP 500 with a generic
    ``"Internal server error"`` error.
    """


class ConfigError(Exception):
    """Required configuration is missing or invalid."""


class ValidationError(ValueError):
    """Client input was rejected before any remote call was made."""


class MetadataIndexError(Exception):
    """A metadata index exists remotely but cannot be parsed."""

    def __init__(self, path: str, reason: str) -> None:
        self.path = path
        self.reason = reason
        super().__init__(f"Metadata index {path} is corrupt: {reason}")


class RemoteVCSError(Exception):
    """A GitHub API call failed (non-2xx status, network error or timeout)."""

    def __init__(self, step: str, status: int | None = None, detail: str = "") -> None:
        self.step = step
        self.status = status
        self.detail = detail
        message = f"GitHub API error during {step}"
        if status is not None:
            message += f": HTTP {status}"
        if detail:
            message += f" ({detail})"
        super().__init__(message)


class AuthError(RemoteVCSError):
    """GitHub App JWT or installation token exchange failed."""


class NotFoundError(RemoteVCSError):
    """The requested remote file does not exist on the configured branch."""


class ConflictError(RemoteVCSError):
    """The branch ref moved since the base commit was read (non-fast-forward)."""
