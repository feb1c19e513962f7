"""Pydantic models for normalized source content."""

from __future__ import annotations

import uuid
from enum import StrEnum
from pathlib import Path
from typing import Any, Literal

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    ValidationInfo,
    field_validator,
    model_validator,
)

TITLE_PLACEHOLDER = "Untitled"
AUTHOR_PLACEHOLDER = "Unknown"
DATE_PLACEHOLDER = "Unknown"


class SourceType(StrEnum):
    """Kinds of source material an adapter can normalize."""

    WEB = "web"
    DOCUMENT = "document"
    VIDEO = "video"
    TEXT = "text"


class ContentMetadata(BaseModel):
    """Descriptive fields for a content package.

    ``title``, ``author`` and ``date`` are never empty: missing values are
    replaced with placeholders. Provider-specific fields go in ``extra``.
    """

    model_config = ConfigDict(frozen=True)

    title: str = TITLE_PLACEHOLDER
    author: str = AUTHOR_PLACEHOLDER
    date: str = DATE_PLACEHOLDER
    description: str = ""
    site_name: str = ""
    language: str = "unknown"
    url: str = ""
    extra: dict[str, Any] = Field(default_factory=dict)

    @field_validator("title", "author", "date", mode="before")
    @classmethod
    def _placeholder_when_blank(cls, value: Any, info: ValidationInfo) -> Any:
        if value is None or (isinstance(value, str) and not value.strip()):
            return {
                "title": TITLE_PLACEHOLDER,
                "author": AUTHOR_PLACEHOLDER,
                "date": DATE_PLACEHOLDER,
            }[info.field_name]
        return str(value).strip()

    @field_validator("description", "site_name", "url", mode="before")
    @classmethod
    def _empty_when_missing(cls, value: Any) -> Any:
        return "" if value is None else str(value).strip()


class ContentPackage(BaseModel):
    """A source normalized into ordered text blocks plus provenance."""

    model_config = ConfigDict(frozen=True)

    id: str = Field(default_factory=lambda: f"content-{uuid.uuid4().hex[:12]}")
    content: list[str] = Field(min_length=1)
    metadata: ContentMetadata = Field(default_factory=ContentMetadata)
    citations: list[str] = Field(default_factory=list)
    source_type: SourceType

    @field_validator("content")
    @classmethod
    def _blocks_non_empty(cls, value: list[str]) -> list[str]:
        if any(not block.strip() for block in value):
            raise ValueError("content blocks must be non-empty strings")
        return value

    @property
    def text(self) -> str:
        """All blocks joined with blank lines."""
        return "\n\n".join(self.content)


class SourceRequest(BaseModel):
    """What the caller wants turned into a podcast."""

    kind: Literal["url", "document", "text"]
    url: str | None = None
    text: str | None = None
    path: Path | None = None
    data: bytes | None = Field(default=None, repr=False)
    file_name: str | None = None
    title: str | None = None

    @model_validator(mode="after")
    def _payload_matches_kind(self) -> SourceRequest:
        if self.kind == "url" and not self.url:
            raise ValueError("url sources need 'url'")
        if self.kind == "text" and self.text is None:
            raise ValueError("text sources need 'text'")
        if self.kind == "document" and self.path is None and self.data is None:
            raise ValueError("document sources need 'path' or 'data'")
        return self

    @classmethod
    def from_url(cls, url: str) -> SourceRequest:
        return cls(kind="url", url=url)

    @classmethod
    def from_text(cls, text: str, title: str | None = None) -> SourceRequest:
        return cls(kind="text", text=text, title=title)

    @classmethod
    def from_file(cls, path: Path) -> SourceRequest:
        return cls(kind="document", path=path, file_name=Path(path).name)

    def describe(self) -> str:
        """Short human-readable label for logs and panels."""
        if self.kind == "url":
            return str(self.url)
        if self.kind == "document":
            return self.file_name or str(self.path or "document")
        return self.title or f"{len(self.text or '')} characters of text"
