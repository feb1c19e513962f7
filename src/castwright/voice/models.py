"""Pydantic models for voices, synthesized segments and assembled audio."""

from __future__ import annotations

from datetime import UTC, datetime
from enum import StrEnum

from pydantic import BaseModel, ConfigDict, Field

# ---------------------------------------------------------------------------
# Enums
# ---------------------------------------------------------------------------


class AudioFormat(StrEnum):
    """Container formats a run can produce."""

    MP3 = "mp3"
    WAV = "wav"
    OGG = "ogg"


MIME_TYPES: dict[AudioFormat, str] = {
    AudioFormat.MP3: "audio/mpeg",
    AudioFormat.WAV: "audio/wav",
    AudioFormat.OGG: "audio/ogg",
}

NARRATOR_ID = "narrator"


# ---------------------------------------------------------------------------
# Voices
# ---------------------------------------------------------------------------


class VoiceOptions(BaseModel):
    """Per-voice synthesis tuning."""

    stability: float = Field(default=0.5, ge=0.0, le=1.0)
    similarity_boost: float = Field(default=0.75, ge=0.0, le=1.0)
    style: float = Field(default=0.0, ge=0.0, le=1.0)
    use_speaker_boost: bool = False


class Voice(BaseModel):
    """A voice offered by the speech-synthesis back-end."""

    id: str
    name: str
    category: str = "premade"
    default_options: VoiceOptions = Field(default_factory=VoiceOptions)


class SpeakerVoiceMapping(BaseModel):
    """Assignment of one script speaker to one back-end voice."""

    model_config = ConfigDict(frozen=True)

    speaker_id: str
    voice_id: str
    voice_options: VoiceOptions | None = None


# ---------------------------------------------------------------------------
# Segments and assembled audio
# ---------------------------------------------------------------------------


class AudioSegment(BaseModel):
    """One synthesized unit of speech.

    ``start_time`` and ``end_time`` stay at zero until
    ``assign_timeline`` returns placed copies.
    """

    model_config = ConfigDict(frozen=True)

    id: str
    speaker_id: str
    voice_id: str
    text: str
    audio_data: bytes = Field(repr=False)
    duration: float = Field(ge=0.0, description="Estimated seconds of speech.")
    start_time: float = 0.0
    end_time: float = 0.0
    format: AudioFormat = AudioFormat.MP3


class AudioMetadata(BaseModel):
    """Descriptive data carried alongside assembled audio."""

    title: str
    description: str
    speaker_names: dict[str, str] = Field(default_factory=dict)
    segment_count: int = 0
    chars_per_second: float
    generated_at: datetime = Field(default_factory=lambda: datetime.now(tz=UTC))


class PodcastAudio(BaseModel):
    """A complete, time-contiguous podcast audio track."""

    model_config = ConfigDict(frozen=True)

    id: str
    script_id: str
    segments: list[AudioSegment]
    full_audio: bytes = Field(repr=False)
    total_duration: float
    format: AudioFormat
    metadata: AudioMetadata
