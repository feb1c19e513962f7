"""Knowledge-graph extraction from normalized content."""

from __future__ import annotations

from castwright.understanding.models import (
    Entity,
    KnowledgeGraph,
    Relationship,
    Topic,
    UnderstandingStep,
)
from castwright.understanding.service import ContentUnderstandingService

__all__ = [
    "ContentUnderstandingService",
    "Entity",
    "KnowledgeGraph",
    "Relationship",
    "Topic",
    "UnderstandingStep",
]
