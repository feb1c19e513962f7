"""Capability interfaces and their real and fake implementations."""

from __future__ import annotations

from castwright.providers.base import (
    ArtifactWriter,
    LocalArtifactWriter,
    SpeechSynthesizer,
    TextGenerator,
)
from castwright.providers.elevenlabs import ElevenLabsSynthesizer
from castwright.providers.fake import FakeSpeechSynthesizer, FakeTextGenerator
from castwright.providers.litellm_text import LiteLLMTextGenerator

__all__ = [
    "ArtifactWriter",
    "ElevenLabsSynthesizer",
    "FakeSpeechSynthesizer",
    "FakeTextGenerator",
    "LiteLLMTextGenerator",
    "LocalArtifactWriter",
    "SpeechSynthesizer",
    "TextGenerator",
]
