"""Podcast script models."""

from __future__ import annotations

import uuid
from datetime import UTC, datetime
from typing import Any

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    ValidationInfo,
    model_validator,
)
from pydantic.alias_generators import to_camel

from castwright.repair import (
    coerce_id,
    coerce_optional_str,
    coerce_str,
    coerce_str_list,
    pick,
    record_position,
)

_RECORD_CONFIG = ConfigDict(alias_generator=to_camel, populate_by_name=True)

DEFAULT_PERSONALITY = "Thoughtful and articulate"
DEFAULT_EXPERTISE = "General knowledge"
DEFAULT_PERSPECTIVE = "Balanced viewpoint"
DEFAULT_TURN_TEXT = "I agree with what was said."


class Speaker(BaseModel):
    """A podcast participant."""

    model_config = _RECORD_CONFIG

    id: str
    name: str
    personality: str = DEFAULT_PERSONALITY
    expertise: list[str] = Field(default_factory=lambda: [DEFAULT_EXPERTISE])
    perspective: str = DEFAULT_PERSPECTIVE

    @model_validator(mode="before")
    @classmethod
    def _repair(cls, data: Any, info: ValidationInfo) -> Any:
        if not isinstance(data, dict):
            return data
        kind, index = record_position(info, "speaker")
        return {
            "id": coerce_id(data.get("id"), kind, index),
            "name": coerce_str(data.get("name"), f"Speaker {index + 1}"),
            "personality": coerce_str(data.get("personality"), DEFAULT_PERSONALITY),
            "expertise": coerce_str_list(data.get("expertise"), [DEFAULT_EXPERTISE]),
            "perspective": coerce_str(data.get("perspective"), DEFAULT_PERSPECTIVE),
        }


def generic_speaker(index: int) -> Speaker:
    """Synthetic speaker used to pad or replace model output."""
    return Speaker(id=f"speaker-{index + 1}", name=f"Speaker {index + 1}")


class DialogueTurn(BaseModel):
    """One utterance in the dialogue.

    ``speaker_name`` is always derived from ``speaker_id`` by the script
    stage; whatever the model supplied is discarded.
    """

    model_config = _RECORD_CONFIG

    id: str
    speaker_id: str = ""
    speaker_name: str = ""
    text: str = DEFAULT_TURN_TEXT
    emotion: str | None = None
    references: list[str] | None = None

    @model_validator(mode="before")
    @classmethod
    def _repair(cls, data: Any, info: ValidationInfo) -> Any:
        if not isinstance(data, dict):
            return data
        kind, index = record_position(info, "turn")
        references = data.get("references")
        return {
            "id": coerce_id(data.get("id"), kind, index),
            "speakerId": coerce_str(pick(data, "speakerId", "speaker_id"), "").strip(),
            "speakerName": coerce_str(pick(data, "speakerName", "speaker_name"), ""),
            "text": coerce_str(data.get("text"), DEFAULT_TURN_TEXT),
            "emotion": coerce_optional_str(data.get("emotion")),
            "references": (
                coerce_str_list(references, []) if isinstance(references, list) else None
            ),
        }


class ScriptOptions(BaseModel):
    """Caller-tunable script generation parameters."""

    speaker_count: int = Field(default=2, ge=1, le=8)
    turn_count: int = Field(default=15, ge=1, le=200)
    tone_style: str = "conversational"
    focus_topics: list[str] = Field(default_factory=list)
    include_introduction: bool = True
    include_conclusion: bool = True
    speaker_personalities: list[str] = Field(default_factory=list)
    max_script_length: int | None = Field(
        default=None, gt=0, description="Soft limit on dialogue length in words."
    )


class ScriptMetadata(BaseModel):
    """Descriptive data about a generated script."""

    speaker_count: int
    turn_count: int
    requested_turn_count: int
    tone_style: str
    word_count: int
    generated_at: datetime = Field(default_factory=lambda: datetime.now(tz=UTC))


class PodcastScript(BaseModel):
    """A complete multi-speaker script."""

    model_config = ConfigDict(frozen=True)

    id: str = Field(default_factory=lambda: f"script-{uuid.uuid4().hex[:12]}")
    title: str
    description: str
    speakers: list[Speaker]
    introduction: str = ""
    dialogue: list[DialogueTurn]
    conclusion: str = ""
    source_knowledge_graph_id: str
    metadata: ScriptMetadata

    def speaker_names(self) -> dict[str, str]:
        """Map of speaker id to display name."""
        return {s.id: s.name for s in self.speakers}
