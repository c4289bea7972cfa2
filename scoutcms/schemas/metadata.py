"""Entries of the two ``metadata.json`` indices read by the public site."""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict, Field


class FileMetadata(BaseModel):
    """One entry of ``public/content/files/metadata.json``."""

    model_config = ConfigDict(extra="ignore")

    filename: str = Field(min_length=1)
    title: str
    description: str = ""


class ImageMetadata(BaseModel):
    """One image inside a collection; ``index`` is its 0-based display order."""

    model_config = ConfigDict(extra="ignore")

    path: str
    index: int = Field(ge=0)


class CollectionMetadata(BaseModel):
    """One entry of ``public/content/images/metadata.json``.

    ``date`` is the creation date of the collection and never changes once set.
    """

    model_config = ConfigDict(extra="ignore")

    name: str
    date: str
    images: list[ImageMetadata] = Field(default_factory=list)
