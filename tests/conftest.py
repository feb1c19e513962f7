"""Shared pytest fixtures for the castwright test suite."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING
from unittest.mock import AsyncMock

import pytest
import structlog

from castwright.ingestion.models import ContentMetadata, ContentPackage, SourceType
from castwright.retry import RetryPolicy
from castwright.script.models import (
    DialogueTurn,
    PodcastScript,
    ScriptMetadata,
    Speaker,
)
from castwright.understanding.models import Entity, KnowledgeGraph, Relationship, Topic

if TYPE_CHECKING:
    from collections.abc import Iterator

# ---------------------------------------------------------------------------
# Logging isolation
# ---------------------------------------------------------------------------


@pytest.fixture(autouse=True)
def _reset_structlog() -> Iterator[None]:
    """Reset structlog state between tests."""
    yield
    structlog.contextvars.clear_contextvars()
    structlog.reset_defaults()
    root = logging.getLogger()
    root.handlers.clear()
    root.setLevel(logging.WARNING)


# ---------------------------------------------------------------------------
# Retry
# ---------------------------------------------------------------------------


@pytest.fixture()
def fake_sleep() -> AsyncMock:
    """Sleep stand-in recording requested delays without waiting."""
    return AsyncMock(return_value=None)


@pytest.fixture()
def fast_retry(fake_sleep: AsyncMock) -> RetryPolicy:
    """Retry policy that never actually sleeps and has no jitter."""
    return RetryPolicy(max_retries=2, initial_backoff=0.5, sleep=fake_sleep, random=lambda: 1.0)


# ---------------------------------------------------------------------------
# Domain samples
# ---------------------------------------------------------------------------


@pytest.fixture()
def content_package() -> ContentPackage:
    return ContentPackage(
        content=[
            "Solar power converts sunlight into electricity.",
            "Storage batteries smooth out the daily cycle.",
        ],
        metadata=ContentMetadata(title="Solar Basics", author="A. Writer"),
        citations=["https://example.com/solar"],
        source_type=SourceType.WEB,
    )


@pytest.fixture()
def knowledge_graph() -> KnowledgeGraph:
    return KnowledgeGraph(
        topics=[
            Topic(id="topic-1", name="Solar Panels", description="How panels work.", importance=9),
            Topic(id="topic-2", name="Batteries", description="Storing energy.", importance=7),
            Topic(id="topic-3", name="Grid", description="Distribution.", importance=3),
        ],
        entities=[Entity(id="entity-1", name="Photovoltaic cell", type="concept")],
        relationships=[
            Relationship(id="rel-1", source_id="topic-1", target_id="entity-1"),
        ],
        sources=["https://example.com/solar"],
        content_id="content-abc",
    )


@pytest.fixture()
def speakers() -> list[Speaker]:
    return [
        Speaker(id="speaker-1", name="Ada"),
        Speaker(id="speaker-2", name="Ben"),
    ]


@pytest.fixture()
def podcast_script(speakers: list[Speaker]) -> PodcastScript:
    dialogue = [
        DialogueTurn(id="turn-1", speaker_id="speaker-1", speaker_name="Ada", text="Hello there."),
        DialogueTurn(id="turn-2", speaker_id="speaker-2", speaker_name="Ben", text="Hi Ada!"),
        DialogueTurn(id="turn-3", speaker_id="speaker-1", speaker_name="Ada", text="Let us begin."),
    ]
    return PodcastScript(
        title="Exploring Solar Panels and Batteries",
        description="A discussion.",
        speakers=speakers,
        introduction="Welcome to the show.",
        dialogue=dialogue,
        conclusion="Thanks for listening.",
        source_knowledge_graph_id="kg-123",
        metadata=ScriptMetadata(
            speaker_count=2,
            turn_count=3,
            requested_turn_count=3,
            tone_style="conversational",
            word_count=14,
        ),
    )
