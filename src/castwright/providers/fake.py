"""Deterministic offline back-ends.

``FakeTextGenerator`` answers each stage prompt with a canned, well-formed
response (or with scripted responses supplied by the caller), and
``FakeSpeechSynthesizer`` returns small MP3-tagged byte strings. Both are
selected at construction time in place of the network back-ends; nothing
is patched after the fact.
"""

from __future__ import annotations

import json
import re
from collections import deque
from typing import TYPE_CHECKING

import structlog

from castwright.voice.models import AudioFormat, Voice, VoiceOptions

if TYPE_CHECKING:
    from collections.abc import Iterable

logger: structlog.stdlib.BoundLogger = structlog.get_logger(__name__)

_TURNS_RE = re.compile(r"approximately (\d+) dialogue turns")
_SPEAKER_COUNT_RE = re.compile(r"Create (\d+) distinct speakers")
_ID_RE = re.compile(r'"id":\s*"([^"]+)"')

_MP3_TAG = b"ID3\x04\x00\x00\x00\x00\x00\x00"


def _section(prompt: str, header: str, next_header: str) -> str:
    start = prompt.find(header)
    if start == -1:
        return ""
    end = prompt.find(next_header, start + len(header))
    return prompt[start : end if end != -1 else len(prompt)]


class FakeTextGenerator:
    """Offline text generator.

    Scripted responses are returned first, in order; an ``Exception`` in
    the script is raised instead of returned. Once the script is empty the
    generator answers from the prompt kind.

    Attributes:
        prompts: Every prompt received, in call order.
    """

    def __init__(self, script: Iterable[str | Exception] = ()) -> None:
        self._script: deque[str | Exception] = deque(script)
        self.prompts: list[str] = []

    async def generate(
        self,
        prompt: str,
        *,
        system_instruction: str | None = None,
        temperature: float | None = None,
        max_tokens: int | None = None,
    ) -> str:
        self.prompts.append(prompt)
        logger.debug("fake_generate", call=len(self.prompts), scripted=bool(self._script))
        if self._script:
            item = self._script.popleft()
            if isinstance(item, Exception):
                raise item
            return item
        return self._default_response(prompt)

    def _default_response(self, prompt: str) -> str:
        if "array of topic objects" in prompt:
            return json.dumps(
                [
                    {
                        "id": "topic-1",
                        "name": "Core Ideas",
                        "description": "The central argument of the source.",
                        "importance": 8,
                        "relatedContent": [],
                    },
                    {
                        "id": "topic-2",
                        "name": "Practical Impact",
                        "description": "How the ideas apply in practice.",
                        "importance": 6,
                        "relatedContent": [],
                    },
                ]
            )
        if "array of entity objects" in prompt:
            return json.dumps(
                [
                    {
                        "id": "entity-1",
                        "name": "The Author",
                        "type": "person",
                        "mentions": ["the author"],
                        "attributes": {},
                    }
                ]
            )
        if "array of relationship objects" in prompt:
            return json.dumps(
                [
                    {
                        "id": "rel-1",
                        "sourceId": "topic-1",
                        "targetId": "entity-1",
                        "relationshipType": "mentions",
                        "strength": 7,
                    }
                ]
            )
        if "array of speaker objects" in prompt:
            match = _SPEAKER_COUNT_RE.search(prompt)
            count = int(match.group(1)) if match else 2
            return json.dumps(
                [
                    {
                        "id": f"speaker-{i + 1}",
                        "name": f"Host {i + 1}",
                        "personality": "Curious and articulate",
                        "expertise": ["General knowledge"],
                        "perspective": "Balanced viewpoint",
                    }
                    for i in range(count)
                ]
            )
        if "array of dialogue turn objects" in prompt:
            match = _TURNS_RE.search(prompt)
            turns = int(match.group(1)) if match else 4
            speaker_ids = _ID_RE.findall(_section(prompt, "SPEAKERS:", "TOPICS:"))
            speaker_ids = speaker_ids or ["speaker-1", "speaker-2"]
            return json.dumps(
                [
                    {
                        "speakerId": speaker_ids[i % len(speaker_ids)],
                        "text": f"Here is point number {i + 1} about the material.",
                    }
                    for i in range(turns)
                ]
            )
        if "narrator introduction" in prompt:
            return "Welcome to the show. Today we walk through the material together."
        if "narrator conclusion" in prompt:
            return "That wraps up our discussion. Thanks for listening."
        return "A short summary of the material."


class FakeSpeechSynthesizer:
    """Offline speech synthesizer producing MP3-tagged bytes.

    Attributes:
        calls: ``(text, voice_id)`` pairs in call order.
    """

    def __init__(self, voices: list[Voice] | None = None) -> None:
        self._voices = (
            voices
            if voices is not None
            else [
                Voice(id="fake-voice-1", name="Aria"),
                Voice(id="fake-voice-2", name="Bram"),
                Voice(id="fake-voice-3", name="Cleo"),
            ]
        )
        self.calls: list[tuple[str, str]] = []

    @property
    def output_format(self) -> AudioFormat:
        return AudioFormat.MP3

    async def synthesize(
        self,
        text: str,
        voice_id: str,
        options: VoiceOptions | None = None,
    ) -> bytes:
        self.calls.append((text, voice_id))
        return _MP3_TAG + text.encode("utf-8")

    async def list_voices(self) -> list[Voice]:
        return list(self._voices)
