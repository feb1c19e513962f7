"""Voice assignment, speech synthesis and timeline assembly."""

from __future__ import annotations

from castwright.voice.assignment import apply_voice_overrides, auto_assign_voices
from castwright.voice.models import (
    NARRATOR_ID,
    AudioFormat,
    AudioMetadata,
    AudioSegment,
    PodcastAudio,
    SpeakerVoiceMapping,
    Voice,
    VoiceOptions,
)
from castwright.voice.service import VoiceSynthesisService
from castwright.voice.timeline import (
    assign_timeline,
    concatenate_audio,
    estimate_duration,
    sniff_audio_format,
)

__all__ = [
    "NARRATOR_ID",
    "AudioFormat",
    "AudioMetadata",
    "AudioSegment",
    "PodcastAudio",
    "SpeakerVoiceMapping",
    "Voice",
    "VoiceOptions",
    "VoiceSynthesisService",
    "apply_voice_overrides",
    "assign_timeline",
    "auto_assign_voices",
    "concatenate_audio",
    "estimate_duration",
    "sniff_audio_format",
]
