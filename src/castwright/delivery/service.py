"""Local delivery: persist audio, transcript and metadata as sibling files.

Files are written in order: audio, transcript, metadata. A failure part
way through raises ``DeliveryError`` and leaves already written files in
place; nothing is rolled back.
"""

from __future__ import annotations

import json
import re
from pathlib import Path
from typing import TYPE_CHECKING, Any

import structlog

from castwright.delivery.models import (
    AVAILABLE_FORMATS,
    DeliveryFormat,
    DeliveryOptions,
    PodcastPackage,
)
from castwright.delivery.transcript import build_chapters, generate_transcript
from castwright.exceptions import DeliveryError
from castwright.providers.base import LocalArtifactWriter

if TYPE_CHECKING:
    from castwright.providers.base import ArtifactWriter
    from castwright.voice.models import PodcastAudio

logger: structlog.stdlib.BoundLogger = structlog.get_logger(__name__)

# ---------------------------------------------------------------------------
# Filename sanitization
# ---------------------------------------------------------------------------

_MAX_FILENAME_LENGTH = 80
_UNSAFE_CHARS = re.compile(r"[^\w\s-]")
_WHITESPACE = re.compile(r"[\s_]+")


def sanitize_filename(title: str) -> str:
    """Turn a podcast title into a filesystem-safe filename stem.

    Lowercases, drops characters other than word characters, spaces and
    hyphens, collapses whitespace into single hyphens and truncates to
    80 characters.

    Args:
        title: Podcast title.

    Returns:
        A non-empty slug (``"podcast"`` when nothing survives).
    """
    sanitized = title.lower().strip()
    sanitized = _UNSAFE_CHARS.sub("", sanitized)
    sanitized = _WHITESPACE.sub("-", sanitized)
    sanitized = sanitized.strip("-")

    if len(sanitized) > _MAX_FILENAME_LENGTH:
        sanitized = sanitized[:_MAX_FILENAME_LENGTH].rstrip("-")

    return sanitized or "podcast"


# ---------------------------------------------------------------------------
# Service
# ---------------------------------------------------------------------------


class LocalDeliveryService:
    """Packages ``PodcastAudio`` into files under ``output_dir``."""

    def __init__(
        self,
        output_dir: Path | str,
        writer: ArtifactWriter | None = None,
    ) -> None:
        self.output_dir = Path(output_dir)
        self.writer = writer or LocalArtifactWriter()

    def available_formats(self) -> list[DeliveryFormat]:
        """Formats this service can deliver, with MIME types."""
        return list(AVAILABLE_FORMATS)

    def shareable_link(self, package: PodcastPackage) -> str:
        """Return a ``file://`` URI for the package's audio file."""
        return Path(package.audio_url).resolve().as_uri()

    def _write(self, path: Path, data: bytes) -> Path:
        try:
            return self.writer.write_bytes(path, data)
        except OSError as exc:
            raise DeliveryError(f"Failed to write {path}: {exc}") from exc

    async def package_podcast(
        self, audio: PodcastAudio, options: DeliveryOptions | None = None
    ) -> PodcastPackage:
        """Write ``audio`` and its sidecars and describe the result.

        Args:
            audio: Assembled podcast audio.
            options: What to write; defaults to audio plus transcript
                and metadata.

        Returns:
            The package, with paths of every file written.

        Raises:
            DeliveryError: If the requested format differs from the audio
                format or any write fails.
        """
        opts = options or DeliveryOptions()
        if opts.format != audio.format:
            msg = (
                f"Cannot deliver {audio.format.value} audio as {opts.format.value}; "
                "transcoding is not supported"
            )
            raise DeliveryError(msg)

        title = audio.metadata.title or "Untitled Podcast"
        package = PodcastPackage(
            title=title,
            description=audio.metadata.description,
            audio_url="",
            duration=audio.total_duration,
            format=audio.format,
            size=len(audio.full_audio),
        )
        stem = self.output_dir / f"{sanitize_filename(title)}-{package.id}"

        audio_path = self._write(stem.with_suffix(f".{audio.format.value}"), audio.full_audio)

        transcript_path: Path | None = None
        if opts.include_transcript:
            transcript = generate_transcript(audio, opts.include_speaker_labels)
            transcript_path = self._write(stem.with_suffix(".txt"), transcript.encode("utf-8"))

        metadata: dict[str, Any] = {
            "script_id": audio.script_id,
            "audio_id": audio.id,
            "speakers": audio.metadata.speaker_names,
            "segment_count": audio.metadata.segment_count,
        }
        if opts.include_chapters:
            metadata["chapters"] = [c.model_dump() for c in build_chapters(audio)]

        metadata_path: Path | None = None
        if opts.include_metadata:
            metadata["chars_per_second"] = audio.metadata.chars_per_second
            metadata["generated_at"] = audio.metadata.generated_at.isoformat()
            metadata["segments"] = [
                {
                    "id": s.id,
                    "speaker_id": s.speaker_id,
                    "start_time": s.start_time,
                    "end_time": s.end_time,
                }
                for s in audio.segments
            ]
            metadata_path = stem.with_suffix(".json")

        package = package.model_copy(
            update={
                "audio_url": str(audio_path),
                "transcript_url": str(transcript_path) if transcript_path else None,
                "metadata_url": str(metadata_path) if metadata_path else None,
                "metadata": metadata,
            }
        )
        if metadata_path is not None:
            sidecar = json.dumps(package.model_dump(mode="json"), indent=2, default=str)
            self._write(metadata_path, sidecar.encode("utf-8"))

        logger.info(
            "podcast_packaged",
            package_id=package.id,
            audio_path=str(audio_path),
            transcript_path=package.transcript_url,
            metadata_path=package.metadata_url,
            size=package.size,
            duration=round(package.duration, 2),
        )
        return package
