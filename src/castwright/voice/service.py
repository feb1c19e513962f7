"""Voice synthesis stage: script in, timed audio track out.

Synthesis units are the introduction, each dialogue turn, and the
conclusion, in script order. The narrator (introduction and conclusion)
speaks with the first mapping's voice. Each unit is one back-end call
through the retry policy. With ``max_concurrency`` above one, turns are
synthesized concurrently under a semaphore; ``asyncio.gather`` keeps
results in script order.
"""

from __future__ import annotations

import asyncio
import uuid
from dataclasses import dataclass
from typing import TYPE_CHECKING

import structlog

from castwright.exceptions import SynthesisError
from castwright.retry import RetryPolicy
from castwright.voice.models import (
    NARRATOR_ID,
    AudioMetadata,
    AudioSegment,
    PodcastAudio,
)
from castwright.voice.timeline import (
    DEFAULT_CHARS_PER_SECOND,
    assign_timeline,
    concatenate_audio,
    estimate_duration,
)

if TYPE_CHECKING:
    from castwright.providers.base import SpeechSynthesizer
    from castwright.script.models import PodcastScript
    from castwright.voice.models import SpeakerVoiceMapping, VoiceOptions

logger: structlog.stdlib.BoundLogger = structlog.get_logger(__name__)

NARRATOR_NAME = "Narrator"


@dataclass(frozen=True, slots=True)
class _Unit:
    speaker_id: str
    voice_id: str
    options: VoiceOptions | None
    text: str


class VoiceSynthesisService:
    """Synthesizes a ``PodcastScript`` into a ``PodcastAudio``.

    Attributes:
        synthesizer: Speech-synthesis back-end.
        retry: Retry policy wrapping every synthesis call.
    """

    def __init__(
        self,
        synthesizer: SpeechSynthesizer,
        *,
        retry: RetryPolicy | None = None,
        chars_per_second: float = DEFAULT_CHARS_PER_SECOND,
        max_concurrency: int = 1,
    ) -> None:
        if chars_per_second <= 0:
            msg = f"chars_per_second must be positive, got {chars_per_second}"
            raise ValueError(msg)
        self.synthesizer = synthesizer
        self.retry = retry or RetryPolicy()
        self._chars_per_second = chars_per_second
        self._max_concurrency = max(1, max_concurrency)

    def _plan(
        self, script: PodcastScript, mappings: list[SpeakerVoiceMapping]
    ) -> list[_Unit]:
        if not mappings:
            raise SynthesisError("No speaker-voice mappings were provided")
        by_speaker = {m.speaker_id: m for m in mappings}
        narrator = mappings[0]

        units: list[_Unit] = []
        if script.introduction.strip():
            units.append(
                _Unit(NARRATOR_ID, narrator.voice_id, narrator.voice_options, script.introduction)
            )
        for turn in script.dialogue:
            mapping = by_speaker.get(turn.speaker_id)
            if mapping is None:
                msg = f"No voice mapping for speaker {turn.speaker_id!r}"
                raise SynthesisError(msg)
            units.append(
                _Unit(turn.speaker_id, mapping.voice_id, mapping.voice_options, turn.text)
            )
        if script.conclusion.strip():
            units.append(
                _Unit(NARRATOR_ID, narrator.voice_id, narrator.voice_options, script.conclusion)
            )
        return units

    async def _synthesize_unit(self, index: int, unit: _Unit) -> AudioSegment:
        async def _call() -> bytes:
            return await self.synthesizer.synthesize(unit.text, unit.voice_id, unit.options)

        audio = await self.retry.run(_call, label="voice.synthesize")
        return AudioSegment(
            id=f"segment-{index + 1}",
            speaker_id=unit.speaker_id,
            voice_id=unit.voice_id,
            text=unit.text,
            audio_data=audio,
            duration=estimate_duration(unit.text, self._chars_per_second),
            format=self.synthesizer.output_format,
        )

    async def _synthesize_all(self, units: list[_Unit]) -> list[AudioSegment]:
        if self._max_concurrency == 1:
            return [await self._synthesize_unit(i, unit) for i, unit in enumerate(units)]

        semaphore = asyncio.Semaphore(self._max_concurrency)

        async def _limited(index: int, unit: _Unit) -> AudioSegment:
            async with semaphore:
                return await self._synthesize_unit(index, unit)

        tasks = [asyncio.ensure_future(_limited(i, u)) for i, u in enumerate(units)]
        try:
            return list(await asyncio.gather(*tasks))
        except BaseException:
            for task in tasks:
                task.cancel()
            await asyncio.gather(*tasks, return_exceptions=True)
            raise

    async def synthesize_podcast(
        self, script: PodcastScript, mappings: list[SpeakerVoiceMapping]
    ) -> PodcastAudio:
        """Synthesize every unit of ``script`` and assemble one track.

        Args:
            script: The script to voice.
            mappings: One mapping per script speaker; the first one also
                voices the narrator.

        Returns:
            Audio whose segments are contiguous from zero.

        Raises:
            SynthesisError: On an unmapped speaker, a back-end failure
                after retries, or mixed audio formats.
        """
        units = self._plan(script, mappings)
        fmt = self.synthesizer.output_format
        logger.info(
            "synthesis_started",
            units=len(units),
            max_concurrency=self._max_concurrency,
            format=fmt.value,
        )

        segments = assign_timeline(await self._synthesize_all(units))
        full_audio = concatenate_audio(segments, fmt)
        total_duration = segments[-1].end_time if segments else 0.0

        audio = PodcastAudio(
            id=f"audio-{uuid.uuid4().hex[:12]}",
            script_id=script.id,
            segments=segments,
            full_audio=full_audio,
            total_duration=total_duration,
            format=fmt,
            metadata=AudioMetadata(
                title=script.title,
                description=script.description,
                speaker_names={**script.speaker_names(), NARRATOR_ID: NARRATOR_NAME},
                segment_count=len(segments),
                chars_per_second=self._chars_per_second,
            ),
        )
        logger.info(
            "synthesis_completed",
            audio_id=audio.id,
            segments=len(segments),
            total_duration=round(total_duration, 2),
            audio_bytes=len(full_audio),
        )
        return audio
