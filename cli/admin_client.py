"""CLI client for the ScoutCMS admin API."""

from __future__ import annotations

import argparse
import base64
import os
import sys
from pathlib import Path
from typing import Any
from urllib.parse import urlparse

import httpx

TOKEN_ENV_VAR = "SCOUTCMS_TOKEN"
SERVER_ENV_VAR = "SCOUTCMS_SERVER"
DEFAULT_SERVER = "http://localhost:8000"
_LOCALHOST_HOSTS = {"localhost", "127.0.0.1", "::1"}


class AdminAPIError(Exception):
    """The server rejected an admin request."""

    def __init__(self, status_code: int, message: str) -> None:
        self.status_code = status_code
        super().__init__(f"{message} (HTTP {status_code})")


def validate_server_url(server_url: str, allow_insecure_http: bool = False) -> str:
    """Validate server URL and enforce HTTPS for non-localhost hosts by default."""
    normalized = server_url.strip().rstrip("/")
    parsed = urlparse(normalized)
    if parsed.scheme not in {"http", "https"} or not parsed.netloc:
        raise ValueError("Server URL must include scheme and host (e.g. https://example.com)")

    hostname = parsed.hostname
    if parsed.scheme == "http" and not allow_insecure_http and hostname not in _LOCALHOST_HOSTS:
        raise ValueError(
            "HTTPS is required for non-localhost servers. "
            "Use --allow-insecure-http only on trusted networks."
        )

    return normalized


def encode_file(path: Path) -> str:
    """Read a local file as base64."""
    return base64.b64encode(path.read_bytes()).decode("ascii")


class AdminClient:
    """Thin wrapper over the admin endpoints."""

    def __init__(
        self,
        server_url: str,
        token: str,
        transport: httpx.BaseTransport | None = None,
    ) -> None:
        self.server_url = server_url.rstrip("/")
        self.client = httpx.Client(
            base_url=self.server_url,
            headers={"Authorization": f"Bearer {token}"},
            timeout=120.0,
            transport=transport,
        )

    def close(self) -> None:
        """Close the HTTP client."""
        self.client.close()

    def __enter__(self) -> AdminClient:
        return self

    def __exit__(self, *args: object) -> None:
        self.close()

    def _request(self, method: str, url: str, **kwargs: Any) -> Any:
        resp = self.client.request(method, url, **kwargs)
        try:
            data = resp.json()
        except ValueError:
            data = None
        if resp.is_error or (isinstance(data, dict) and data.get("success") is False):
            message = data.get("error") if isinstance(data, dict) else None
            raise AdminAPIError(resp.status_code, str(message or resp.reason_phrase))
        return data

    def upload(self, items: list[dict[str, Any]]) -> dict[str, Any]:
        result: dict[str, Any] = self._request("POST", "/api/admin/upload", json={"items": items})
        return result

    def remove(self, paths: list[str], message: str = "") -> dict[str, Any]:
        result: dict[str, Any] = self._request(
            "DELETE", "/api/admin/remove", json={"paths": paths, "commitMessage": message}
        )
        return result

    def history(
        self, path: str | None = None, count: int = 10, page: int = 1
    ) -> list[dict[str, Any]]:
        params: dict[str, Any] = {"count": count, "page": page}
        if path:
            params["path"] = path
        result: list[dict[str, Any]] = self._request(
            "GET", "/api/admin/git-history", params=params
        )
        return result


def _build_item(args: argparse.Namespace) -> dict[str, Any]:
    if args.command == "upload-file":
        source = Path(args.file)
        return {
            "type": "file",
            "name": args.name or source.name,
            "data": encode_file(source),
            "title": args.title,
            "description": args.description,
        }
    if args.command == "upload-image":
        source = Path(args.file)
        item: dict[str, Any] = {
            "type": "image",
            "name": args.name or source.name,
            "data": encode_file(source),
        }
        if args.path:
            item["path"] = args.path
        else:
            item["collection"] = args.collection
        return item
    return {
        "type": "blog",
        "title": args.title,
        "content": Path(args.content_file).read_text(encoding="utf-8"),
        "description": args.description,
        "author": args.author,
        "tags": args.tag or [],
    }


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="scoutcms-admin",
        description="Manage scout website content through the ScoutCMS admin API",
    )
    parser.add_argument(
        "--server",
        "-s",
        default=os.environ.get(SERVER_ENV_VAR, DEFAULT_SERVER),
        help=f"Server URL (default: ${SERVER_ENV_VAR} or {DEFAULT_SERVER})",
    )
    parser.add_argument("--token", "-t", help=f"Admin token (default: ${TOKEN_ENV_VAR})")
    parser.add_argument(
        "--allow-insecure-http",
        action="store_true",
        help="Allow http:// server URLs for non-localhost hosts",
    )

    subparsers = parser.add_subparsers(dest="command")

    upload_file = subparsers.add_parser("upload-file", help="Upload a useful file")
    upload_file.add_argument("file", help="Local file to upload")
    upload_file.add_argument("--name", help="Name in the repository (default: local name)")
    upload_file.add_argument("--title", help="Title shown on the website")
    upload_file.add_argument("--description", default="", help="Description")

    upload_image = subparsers.add_parser("upload-image", help="Upload an image")
    upload_image.add_argument("file", help="Local image to upload")
    upload_image.add_argument("--name", help="Name in the repository (default: local name)")
    target = upload_image.add_mutually_exclusive_group(required=True)
    target.add_argument("--collection", help="Collection to add the image to")
    target.add_argument("--path", help="Explicit public path, e.g. /content/banner.jpg")

    post = subparsers.add_parser("post", help="Publish a blog post")
    post.add_argument("--title", required=True, help="Post title")
    post.add_argument("--content-file", required=True, help="Markdown file with the post body")
    post.add_argument("--description", help="Short description")
    post.add_argument("--author", help="Author name")
    post.add_argument("--tag", action="append", help="Tag (repeatable)")

    remove = subparsers.add_parser("remove", help="Delete repository paths")
    remove.add_argument("paths", nargs="+", help="Repository paths to delete")
    remove.add_argument("--message", "-m", default="", help="Commit message")

    history = subparsers.add_parser("history", help="Show recent content commits")
    history.add_argument("--path", help="Only commits touching this path")
    history.add_argument("--count", type=int, default=10, help="Number of commits (1-100)")
    history.add_argument("--page", type=int, default=1, help="Page number")

    return parser


def main(argv: list[str] | None = None, transport: httpx.BaseTransport | None = None) -> None:
    """CLI entry point."""
    parser = build_parser()
    args = parser.parse_args(argv)

    if args.command is None:
        parser.print_help()
        sys.exit(1)

    try:
        server_url = validate_server_url(args.server, args.allow_insecure_http)
    except ValueError as exc:
        print(f"Error: {exc}")
        sys.exit(1)

    token = args.token or os.environ.get(TOKEN_ENV_VAR)
    if not token:
        print(f"Error: No admin token. Pass --token or set {TOKEN_ENV_VAR}.")
        sys.exit(1)

    with AdminClient(server_url, token, transport=transport) as client:
        try:
            if args.command == "history":
                for commit in client.history(args.path, args.count, args.page):
                    print(f"{commit['sha'][:7]}  {commit['date']}  {commit['author']}")
                    print(f"    {commit['message'].splitlines()[0] if commit['message'] else ''}")
            elif args.command == "remove":
                result = client.remove(args.paths, args.message)
                for path in result.get("deleted", []):
                    print(f"  Deleted: {path}")
                for path in result.get("skipped", []):
                    print(f"  Skip (absent): {path}")
                print(f"Commit: {result.get('commit_sha') or 'none'}")
            else:
                result = client.upload([_build_item(args)])
                for path in result.get("paths", []):
                    print(f"  Uploaded: {path}")
                print(f"Commit: {result.get('commit_sha')}")
        except AdminAPIError as exc:
            print(f"Error: {exc}")
            sys.exit(1)
        except httpx.HTTPError as exc:
            print(f"Error: Could not reach {server_url}: {exc}")
            sys.exit(1)
        except OSError as exc:
            print(f"Error: {exc}")
            sys.exit(1)


if __name__ == "__main__":
    main()
