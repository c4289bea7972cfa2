"""YAML front matter serializer for blog posts."""

from __future__ import annotations

from dataclasses import dataclass, field

import frontmatter


@dataclass
class BlogPost:
    """A blog post ready to be written to ``public/content/blog/{slug}.md``."""

    title: str
    slug: str
    content: str
    date: str
    description: str | None = None
    author: str | None = None
    tags: list[str] = field(default_factory=list)


def serialize_blog_post(post: BlogPost) -> str:
    """Serialize a post to markdown with YAML front matter.

    Keys keep the order title, description, author, date, tags, slug. Unset
    optional fields are omitted rather than written as ``null``.
    """
    metadata: dict[str, object] = {"title": post.title}
    if post.description is not None:
        metadata["description"] = post.description
    if post.author is not None:
        metadata["author"] = post.author
    metadata["date"] = post.date
    if post.tags:
        metadata["tags"] = list(post.tags)
    metadata["slug"] = post.slug

    document = frontmatter.Post(post.content, **metadata)
    return str(frontmatter.dumps(document, sort_keys=False)) + "\n"
