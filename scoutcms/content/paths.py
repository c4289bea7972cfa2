"""Repository layout of the public site content.

The public site is built straight from these paths, so they are fixed.
"""

from __future__ import annotations

from scoutcms.github.models import sanitize_path

PUBLIC_ROOT = "public"
CONTENT_ROOT = f"{PUBLIC_ROOT}/content"

BLOG_DIR = f"{CONTENT_ROOT}/blog"
FILES_DIR = f"{CONTENT_ROOT}/files"
IMAGES_DIR = f"{CONTENT_ROOT}/images"

FILES_INDEX_PATH = f"{FILES_DIR}/metadata.json"
IMAGES_INDEX_PATH = f"{IMAGES_DIR}/metadata.json"

INDEX_PATHS = frozenset({FILES_INDEX_PATH, IMAGES_INDEX_PATH})


def blog_post_path(slug: str) -> str:
    return f"{BLOG_DIR}/{slug}.md"


def file_path(filename: str) -> str:
    return sanitize_path(f"{FILES_DIR}/{filename}")


def image_repo_path(collection: str, filename: str) -> str:
    return sanitize_path(f"{IMAGES_DIR}/{collection}/{filename}")


def image_public_path(collection: str, filename: str) -> str:
    """Public URL path of an image, as stored in the images index."""
    return repo_path_to_public(image_repo_path(collection, filename))


def repo_path_to_public(path: str) -> str:
    """``public/content/x`` -> ``/content/x``; public paths pass through."""
    path = sanitize_path(path)
    if path.startswith(f"{PUBLIC_ROOT}/"):
        return "/" + path.removeprefix(f"{PUBLIC_ROOT}/")
    return "/" + path


def public_path_to_repo(path: str) -> str:
    """``/content/x`` -> ``public/content/x``; repo paths pass through."""
    path = sanitize_path(path)
    if path.startswith(f"{PUBLIC_ROOT}/"):
        return path
    return f"{PUBLIC_ROOT}/{path}"


def filename_from_file_path(path: str) -> str | None:
    """Return the filename for a path inside the files directory, else None."""
    repo_path = public_path_to_repo(path)
    prefix = f"{FILES_DIR}/"
    if not repo_path.startswith(prefix):
        return None
    return repo_path.removeprefix(prefix)
