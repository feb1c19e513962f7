"""Capability interfaces the pipeline stages depend on.

Stages receive implementations through their constructors; real and fake
back-ends satisfy the same protocols and are chosen once at construction.
"""

from __future__ import annotations

from pathlib import Path
from typing import TYPE_CHECKING, Protocol, runtime_checkable

import structlog

from castwright.exceptions import DeliveryError

if TYPE_CHECKING:
    from castwright.voice.models import AudioFormat, Voice, VoiceOptions

logger: structlog.stdlib.BoundLogger = structlog.get_logger(__name__)


@runtime_checkable
class TextGenerator(Protocol):
    """Text-generation capability used by the understanding and script stages."""

    async def generate(
        self,
        prompt: str,
        *,
        system_instruction: str | None = None,
        temperature: float | None = None,
        max_tokens: int | None = None,
    ) -> str: ...


@runtime_checkable
class SpeechSynthesizer(Protocol):
    """Speech-synthesis capability used by the voice stage."""

    @property
    def output_format(self) -> AudioFormat: ...

    async def synthesize(
        self,
        text: str,
        voice_id: str,
        options: VoiceOptions | None = None,
    ) -> bytes: ...

    async def list_voices(self) -> list[Voice]: ...


@runtime_checkable
class ArtifactWriter(Protocol):
    """Persistence capability: write bytes to a named path."""

    def write_bytes(self, path: Path, data: bytes) -> Path: ...


class LocalArtifactWriter:
    """Writes artifacts to the local filesystem."""

    def write_bytes(self, path: Path, data: bytes) -> Path:
        """Write ``data`` to ``path``, creating parent directories.

        Raises:
            DeliveryError: On any filesystem failure.
        """
        target = Path(path)
        try:
            target.parent.mkdir(parents=True, exist_ok=True)
            target.write_bytes(data)
        except OSError as exc:
            raise DeliveryError(f"Failed to write {target}: {exc}") from exc
        logger.debug("artifact_written", path=str(target), size=len(data))
        return target
