"""Content adapters that normalize sources into ``ContentPackage`` values."""

from __future__ import annotations

from castwright.ingestion.document import DocumentAdapter
from castwright.ingestion.models import (
    ContentMetadata,
    ContentPackage,
    SourceRequest,
    SourceType,
)
from castwright.ingestion.service import IngestionService
from castwright.ingestion.text import TextAdapter
from castwright.ingestion.video import VideoAdapter, is_video_url
from castwright.ingestion.web import WebAdapter

__all__ = [
    "ContentMetadata",
    "ContentPackage",
    "DocumentAdapter",
    "IngestionService",
    "SourceRequest",
    "SourceType",
    "TextAdapter",
    "VideoAdapter",
    "WebAdapter",
    "is_video_url",
]
