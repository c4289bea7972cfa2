"""Tests for blog slug generation."""

from __future__ import annotations

import pytest
from hypothesis import given, settings
from hypothesis import strategies as st

from scoutcms.exceptions import ValidationError
from scoutcms.services.slug_service import create_slug, slugify, transliterate_greek


class TestSlugify:
    def test_basic_title(self) -> None:
        assert slugify("Hello World") == "hello-world"

    def test_special_characters_replaced(self) -> None:
        assert slugify("Hello, World! How's it?") == "hello-world-how-s-it"

    def test_runs_collapsed_and_edges_stripped(self) -> None:
        assert slugify("---hello   & world---") == "hello-world"

    def test_greek_transliterated(self) -> None:
        assert slugify("Καλοκαιρινή Κατασκήνωση 2024") == "kalokairini-kataskinosi-2024"

    def test_greek_digraph_letters(self) -> None:
        assert slugify("Ψυχή θάλασσα χαρά") == "psychi-thalassa-chara"

    def test_final_sigma(self) -> None:
        assert slugify("Πρόσκοπος") == "proskopos"

    def test_greeting(self) -> None:
        assert slugify("Καλημέρα Κόσμε!") == "kalimera-kosme"

    def test_diaeresis(self) -> None:
        assert slugify("Προϊόν") == "proion"

    def test_latin_accents_normalized(self) -> None:
        assert slugify("été français") == "ete-francais"

    def test_long_title_not_truncated(self) -> None:
        title = "word " * 40
        assert slugify(title) == "-".join(["word"] * 40)

    def test_punctuation_only_is_empty(self) -> None:
        assert slugify("!!!") == ""


class TestTransliterateGreek:
    def test_leaves_latin_alone(self) -> None:
        assert transliterate_greek("abc 123") == "abc 123"

    def test_lowercase_only(self) -> None:
        assert transliterate_greek("αβγ") == "abg"


class TestCreateSlug:
    def test_returns_slug(self) -> None:
        assert create_slug("Summer Camp") == "summer-camp"

    @pytest.mark.parametrize("title", ["", "   ", "!!!@@@", "☃"])
    def test_empty_slug_rejected(self, title: str) -> None:
        with pytest.raises(ValidationError, match="Cannot generate slug"):
            create_slug(title)


class TestSlugProperties:
    @settings(max_examples=200, deadline=None)
    @given(title=st.text(max_size=80))
    def test_slug_alphabet(self, title: str) -> None:
        slug = slugify(title)
        assert all(c.isascii() and (c.isdigit() or c.islower() or c == "-") for c in slug)
        assert not slug.startswith("-")
        assert not slug.endswith("-")
        assert "--" not in slug

    @settings(max_examples=200, deadline=None)
    @given(title=st.text(max_size=80))
    def test_slugify_is_idempotent(self, title: str) -> None:
        slug = slugify(title)
        assert slugify(slug) == slug
