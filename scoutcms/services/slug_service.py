"""Slug generation for blog post filenames."""

from __future__ import annotations

import re
import unicodedata

from scoutcms.exceptions import ValidationError

# Applied after lowercasing, so only lowercase Greek letters are listed.
_GREEK_TO_LATIN: dict[str, str] = {
    "α": "a",
    "β": "b",
    "γ": "g",
    "δ": "d",
    "ε": "e",
    "ζ": "z",
    "η": "i",
    "θ": "th",
    "ι": "i",
    "κ": "k",
    "λ": "l",
    "μ": "m",
    "ν": "n",
    "ξ": "x",
    "ο": "o",
    "π": "p",
    "ρ": "r",
    "σ": "s",
    "ς": "s",
    "τ": "t",
    "υ": "y",
    "φ": "f",
    "χ": "ch",
    "ψ": "ps",
    "ω": "o",
    "ά": "a",
    "έ": "e",
    "ή": "i",
    "ί": "i",
    "ό": "o",
    "ύ": "y",
    "ώ": "o",
    "ϊ": "i",
    "ϋ": "y",
    "ΐ": "i",
    "ΰ": "y",
}
_GREEK_TABLE = str.maketrans(_GREEK_TO_LATIN)


def transliterate_greek(text: str) -> str:
    """Replace lowercase Greek letters with their Latin equivalents."""
    return text.translate(_GREEK_TABLE)


def slugify(title: str) -> str:
    """Generate a filesystem-safe slug from a post title.

    - Lowercase, then transliterate Greek to Latin
    - Normalize remaining unicode to ASCII (NFKD)
    - Replace runs of non-alphanumeric chars with a single hyphen
    - Strip leading/trailing hyphens

    May return an empty string; use :func:`create_slug` where a slug is
    required.
    """
    text = transliterate_greek(title.lower())
    # Normalize unicode to decomposed form, then drop non-ASCII
    text = unicodedata.normalize("NFKD", text).encode("ascii", "ignore").decode("ascii")
    text = re.sub(r"[^a-z0-9]+", "-", text.lower())
    return text.strip("-")


def create_slug(title: str) -> str:
    """Return the slug for ``title``. Raises ValidationError if it is empty."""
    slug = slugify(title)
    if not slug:
        raise ValidationError("Cannot generate slug from title")
    return slug
