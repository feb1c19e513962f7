"""Plain-text adapter."""

from __future__ import annotations

import re
from datetime import UTC, datetime

import structlog

from castwright.exceptions import IngestionError
from castwright.ingestion.models import ContentMetadata, ContentPackage, SourceType
from castwright.ingestion.segmentation import (
    DEFAULT_MAX_BLOCK_CHARS,
    ensure_blocks,
    split_blocks,
)

logger: structlog.stdlib.BoundLogger = structlog.get_logger(__name__)

_MAX_TITLE_LENGTH = 100
_LANGUAGE_SAMPLE_CHARS = 1000

_LANGUAGE_MARKERS: dict[str, tuple[str, ...]] = {
    "en": ("the", "and", "of", "to", "a", "in", "that"),
    "es": ("el", "la", "de", "y", "en", "que", "un"),
    "fr": ("le", "la", "de", "et", "en", "un", "une"),
    "de": ("der", "die", "das", "und", "in", "ist", "zu"),
}


def detect_language(text: str) -> str:
    """Guess the language from common function words.

    Each language scores one point per marker word present in the first
    1000 characters. Ties and texts with no markers default to ``en``.
    """
    words = set(re.findall(r"\b\w+\b", text[:_LANGUAGE_SAMPLE_CHARS].lower()))
    best, best_score = "en", 0
    for language, markers in _LANGUAGE_MARKERS.items():
        score = sum(1 for marker in markers if marker in words)
        if score > best_score:
            best, best_score = language, score
    return best


def _title_from_text(text: str) -> str:
    first_line = text.strip().splitlines()[0].strip() if text.strip() else ""
    if len(first_line) > _MAX_TITLE_LENGTH:
        return "Untitled Text"
    return first_line


class TextAdapter:
    """Normalizes raw text into a ``ContentPackage``."""

    def __init__(self, max_block_chars: int = DEFAULT_MAX_BLOCK_CHARS) -> None:
        self._max_block_chars = max_block_chars

    async def normalize(self, text: str, title: str | None = None) -> ContentPackage:
        """Segment ``text`` and derive descriptive metadata.

        Args:
            text: Raw text supplied by the caller.
            title: Optional explicit title; otherwise the first line is used.

        Returns:
            The normalized content package.

        Raises:
            IngestionError: If the text is empty or whitespace only.
        """
        if not text or not text.strip():
            raise IngestionError("Text source is empty")

        blocks = ensure_blocks(
            split_blocks(text, self._max_block_chars), text.strip()[: self._max_block_chars]
        )
        metadata = ContentMetadata(
            title=title or _title_from_text(text),
            language=detect_language(text),
            date=datetime.now(tz=UTC).isoformat(),
            extra={
                "character_count": len(text),
                "word_count": len(text.split()),
                "line_count": len(text.split("\n")),
            },
        )
        package = ContentPackage(
            content=blocks,
            metadata=metadata,
            source_type=SourceType.TEXT,
        )
        logger.info(
            "text_normalized",
            package_id=package.id,
            blocks=len(blocks),
            language=metadata.language,
        )
        return package
