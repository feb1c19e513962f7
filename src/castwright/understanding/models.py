"""Knowledge graph models.

Each record model repairs its own input: missing or wrong-shaped fields
are replaced with defaults before validation, so a model response with
gaps still yields usable records. JSON exchanged with the model uses
camelCase keys.
"""

from __future__ import annotations

import uuid
from datetime import UTC, datetime
from enum import StrEnum
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
    coerce_dict,
    coerce_id,
    coerce_score,
    coerce_str,
    coerce_str_list,
    pick,
    record_position,
)

_RECORD_CONFIG = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class UnderstandingStep(StrEnum):
    """States of knowledge-graph construction, in order."""

    IDLE = "idle"
    TOPICS_EXTRACTED = "topics_extracted"
    ENTITIES_IDENTIFIED = "entities_identified"
    RELATIONSHIPS_RESOLVED = "relationships_resolved"
    DONE = "done"


class Topic(BaseModel):
    """A theme discussed in the source."""

    model_config = _RECORD_CONFIG

    id: str
    name: str
    description: str = ""
    importance: int = Field(default=5, ge=1, le=10)
    related_content: list[str] = Field(default_factory=list)

    @model_validator(mode="before")
    @classmethod
    def _repair(cls, data: Any, info: ValidationInfo) -> Any:
        if not isinstance(data, dict):
            return data
        kind, index = record_position(info, "topic")
        return {
            "id": coerce_id(data.get("id"), kind, index),
            "name": coerce_str(data.get("name"), f"Unnamed Topic {index + 1}"),
            "description": coerce_str(data.get("description"), ""),
            "importance": coerce_score(data.get("importance")),
            "relatedContent": coerce_str_list(
                pick(data, "relatedContent", "related_content"), []
            ),
        }


class Entity(BaseModel):
    """A person, organization, concept, etc. mentioned in the source."""

    model_config = _RECORD_CONFIG

    id: str
    name: str
    type: str = "unknown"
    mentions: list[str] = Field(default_factory=list)
    attributes: dict[str, Any] = Field(default_factory=dict)

    @model_validator(mode="before")
    @classmethod
    def _repair(cls, data: Any, info: ValidationInfo) -> Any:
        if not isinstance(data, dict):
            return data
        kind, index = record_position(info, "entity")
        name = coerce_str(data.get("name"), f"Unnamed Entity {index + 1}")
        return {
            "id": coerce_id(data.get("id"), kind, index),
            "name": name,
            "type": coerce_str(data.get("type"), "unknown"),
            "mentions": coerce_str_list(data.get("mentions"), [name]),
            "attributes": coerce_dict(data.get("attributes")),
        }


class Relationship(BaseModel):
    """A directed, weighted link between two topics or entities."""

    model_config = _RECORD_CONFIG

    id: str
    source_id: str = ""
    target_id: str = ""
    relationship_type: str = "related to"
    strength: int = Field(default=5, ge=1, le=10)

    @model_validator(mode="before")
    @classmethod
    def _repair(cls, data: Any, info: ValidationInfo) -> Any:
        if not isinstance(data, dict):
            return data
        kind, index = record_position(info, "rel")
        return {
            "id": coerce_id(data.get("id"), kind, index),
            "sourceId": coerce_str(pick(data, "sourceId", "source_id"), ""),
            "targetId": coerce_str(pick(data, "targetId", "target_id"), ""),
            "relationshipType": coerce_str(
                pick(data, "relationshipType", "relationship_type", "type"), "related to"
            ),
            "strength": coerce_score(data.get("strength")),
        }


class KnowledgeGraph(BaseModel):
    """Topics, entities and relationships extracted from one content package."""

    model_config = ConfigDict(frozen=True)

    id: str = Field(default_factory=lambda: f"kg-{uuid.uuid4().hex[:12]}")
    topics: list[Topic] = Field(default_factory=list)
    entities: list[Entity] = Field(default_factory=list)
    relationships: list[Relationship] = Field(default_factory=list)
    sources: list[str] = Field(default_factory=list)
    content_id: str = ""
    summary: str = ""
    created_at: datetime = Field(default_factory=lambda: datetime.now(tz=UTC))

    def node_ids(self) -> set[str]:
        """Ids of every topic and entity."""
        return {t.id for t in self.topics} | {e.id for e in self.entities}

    def top_topics(self, count: int) -> list[Topic]:
        """The ``count`` most important topics; ties keep extraction order."""
        return sorted(self.topics, key=lambda t: t.importance, reverse=True)[:count]
