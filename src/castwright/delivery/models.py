"""Delivery models: output formats, packaging options and the final package."""

from __future__ import annotations

import uuid
from datetime import UTC, datetime
from typing import Any

from pydantic import BaseModel, ConfigDict, Field

from castwright.voice.models import MIME_TYPES, AudioFormat


class DeliveryFormat(BaseModel):
    """An audio container a package can be delivered in."""

    model_config = ConfigDict(frozen=True)

    id: AudioFormat
    name: str
    extension: str
    mime_type: str
    description: str


AVAILABLE_FORMATS: tuple[DeliveryFormat, ...] = (
    DeliveryFormat(
        id=AudioFormat.MP3,
        name="MP3",
        extension="mp3",
        mime_type=MIME_TYPES[AudioFormat.MP3],
        description="Compressed audio with wide player support",
    ),
    DeliveryFormat(
        id=AudioFormat.WAV,
        name="WAV",
        extension="wav",
        mime_type=MIME_TYPES[AudioFormat.WAV],
        description="Uncompressed audio",
    ),
    DeliveryFormat(
        id=AudioFormat.OGG,
        name="OGG Vorbis",
        extension="ogg",
        mime_type=MIME_TYPES[AudioFormat.OGG],
        description="Open compressed audio format",
    ),
)


class DeliveryOptions(BaseModel):
    """What to write alongside the audio file."""

    format: AudioFormat = AudioFormat.MP3
    include_transcript: bool = True
    include_speaker_labels: bool = True
    include_chapters: bool = False
    include_metadata: bool = True


class Chapter(BaseModel):
    """A titled time range of the episode."""

    title: str
    start_time: float
    end_time: float


class PodcastPackage(BaseModel):
    """The persisted deliverable: file locations plus descriptive data."""

    model_config = ConfigDict(frozen=True)

    id: str = Field(default_factory=lambda: f"podcast-{uuid.uuid4().hex[:12]}")
    title: str
    description: str
    audio_url: str
    transcript_url: str | None = None
    metadata_url: str | None = None
    duration: float
    format: AudioFormat
    size: int
    created_at: datetime = Field(default_factory=lambda: datetime.now(tz=UTC))
    metadata: dict[str, Any] = Field(default_factory=dict)
