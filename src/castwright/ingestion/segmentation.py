"""Paragraph segmentation shared by every content adapter."""

from __future__ import annotations

import re
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from collections.abc import Iterable

DEFAULT_MAX_BLOCK_CHARS = 500

_BLANK_LINE_RE = re.compile(r"\n\s*\n")
_SENTENCE_END_RE = re.compile(r"(?<=[.!?])\s+")
_WHITESPACE_RE = re.compile(r"\s+")


def _collapse(text: str) -> str:
    return _WHITESPACE_RE.sub(" ", text).strip()


def split_sentences(text: str) -> list[str]:
    """Split on terminal punctuation followed by whitespace."""
    return [s for s in (_collapse(part) for part in _SENTENCE_END_RE.split(text)) if s]


def group_sentences(
    sentences: Iterable[str], max_chars: int = DEFAULT_MAX_BLOCK_CHARS
) -> list[str]:
    """Greedily pack sentences into blocks of at most ``max_chars``.

    A single sentence longer than the cap becomes its own block.
    """
    blocks: list[str] = []
    current = ""
    for sentence in sentences:
        candidate = f"{current} {sentence}" if current else sentence
        if current and len(candidate) > max_chars:
            blocks.append(current)
            current = sentence
        else:
            current = candidate
    if current:
        blocks.append(current)
    return blocks


def split_blocks(text: str, max_chars: int = DEFAULT_MAX_BLOCK_CHARS) -> list[str]:
    """Segment ``text`` into content blocks.

    Splits on blank lines. When that yields at most one block, falls back
    to sentence splitting and regroups sentences into blocks capped at
    ``max_chars``. Paragraphs over the cap are regrouped the same way.

    Args:
        text: Normalized source text.
        max_chars: Soft cap on block length.

    Returns:
        Non-empty blocks in source order (possibly an empty list).
    """
    paragraphs = [p for p in (_collapse(part) for part in _BLANK_LINE_RE.split(text)) if p]
    if len(paragraphs) <= 1:
        return group_sentences(split_sentences(text), max_chars)

    blocks: list[str] = []
    for paragraph in paragraphs:
        if len(paragraph) > max_chars:
            blocks.extend(group_sentences(split_sentences(paragraph), max_chars))
        else:
            blocks.append(paragraph)
    return blocks


def ensure_blocks(blocks: list[str], placeholder: str) -> list[str]:
    """Return ``blocks`` or a single placeholder block if there are none."""
    return blocks if blocks else [placeholder]
