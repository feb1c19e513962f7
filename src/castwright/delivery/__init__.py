"""Packaging and persistence of finished podcasts."""

from __future__ import annotations

from castwright.delivery.models import (
    AVAILABLE_FORMATS,
    Chapter,
    DeliveryFormat,
    DeliveryOptions,
    PodcastPackage,
)
from castwright.delivery.service import LocalDeliveryService, sanitize_filename
from castwright.delivery.transcript import (
    build_chapters,
    format_timestamp,
    generate_transcript,
)

__all__ = [
    "AVAILABLE_FORMATS",
    "Chapter",
    "DeliveryFormat",
    "DeliveryOptions",
    "LocalDeliveryService",
    "PodcastPackage",
    "build_chapters",
    "format_timestamp",
    "generate_transcript",
    "sanitize_filename",
]
