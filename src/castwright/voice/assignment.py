"""Speaker-to-voice assignment."""

from __future__ import annotations

from typing import TYPE_CHECKING

import structlog

from castwright.exceptions import NoVoicesAvailableError
from castwright.voice.models import SpeakerVoiceMapping

if TYPE_CHECKING:
    from castwright.script.models import Speaker
    from castwright.voice.models import Voice

logger: structlog.stdlib.BoundLogger = structlog.get_logger(__name__)


def auto_assign_voices(
    speakers: list[Speaker], voices: list[Voice]
) -> list[SpeakerVoiceMapping]:
    """Assign voices to speakers round robin.

    Speaker ``i`` gets ``voices[i % len(voices)]`` along with that voice's
    default options. With fewer voices than speakers, voices are reused.

    Args:
        speakers: Script speakers in order.
        voices: Voices offered by the synthesis back-end.

    Returns:
        Exactly one mapping per speaker, in speaker order.

    Raises:
        NoVoicesAvailableError: If ``voices`` is empty.
    """
    if not voices:
        raise NoVoicesAvailableError("No voices are available for synthesis")
    mappings = [
        SpeakerVoiceMapping(
            speaker_id=speaker.id,
            voice_id=voices[i % len(voices)].id,
            voice_options=voices[i % len(voices)].default_options,
        )
        for i, speaker in enumerate(speakers)
    ]
    if len(voices) < len(speakers):
        logger.info("voices_reused", speakers=len(speakers), voices=len(voices))
    return mappings


def apply_voice_overrides(
    mappings: list[SpeakerVoiceMapping], overrides: dict[str, str]
) -> list[SpeakerVoiceMapping]:
    """Replace the voice of any speaker listed in ``overrides``."""
    return [
        m.model_copy(update={"voice_id": overrides[m.speaker_id], "voice_options": None})
        if m.speaker_id in overrides
        else m
        for m in mappings
    ]
