"""Multi-speaker script generation."""

from __future__ import annotations

from castwright.script.models import (
    DialogueTurn,
    PodcastScript,
    ScriptMetadata,
    ScriptOptions,
    Speaker,
)
from castwright.script.service import ScriptGenerator

__all__ = [
    "DialogueTurn",
    "PodcastScript",
    "ScriptGenerator",
    "ScriptMetadata",
    "ScriptOptions",
    "Speaker",
]
