"""Content understanding: build a knowledge graph from a content package.

Three dependent generative calls run in order (topics, then entities,
then relationships between them). Each call is one prompt plus repair,
routed through the shared retry policy. An empty or unstructured answer
is treated as "nothing found" and yields an empty list; relationships
that point at unknown ids are dropped.
"""

from __future__ import annotations

import asyncio
import json
from typing import TYPE_CHECKING, Any, TypeVar

import structlog
from pydantic import BaseModel

from castwright.exceptions import PipelineCancelledError, UnderstandingError
from castwright.repair import repair_records
from castwright.retry import RetryPolicy
from castwright.templates import render_prompt
from castwright.understanding.models import (
    Entity,
    KnowledgeGraph,
    Relationship,
    Topic,
    UnderstandingStep,
)

if TYPE_CHECKING:
    from collections.abc import Awaitable, Callable

    from castwright.ingestion.models import ContentPackage
    from castwright.providers.base import TextGenerator

logger: structlog.stdlib.BoundLogger = structlog.get_logger(__name__)

M = TypeVar("M", bound=BaseModel)
T = TypeVar("T")

_DEFAULT_MAX_CONTENT_CHARS = 30_000
_DEFAULT_SUMMARY_LENGTH = 1000


def _dump_records(records: list[Any]) -> str:
    return json.dumps([r.model_dump(by_alias=True) for r in records], indent=2)


def filter_relationships(
    relationships: list[Relationship], node_ids: set[str]
) -> list[Relationship]:
    """Keep relationships whose endpoints both exist in ``node_ids``."""
    return [
        rel
        for rel in relationships
        if rel.source_id in node_ids and rel.target_id in node_ids
    ]


class ContentUnderstandingService:
    """Turns a ``ContentPackage`` into a ``KnowledgeGraph``.

    Attributes:
        generator: Text-generation back-end.
        retry: Retry policy wrapping every generative call.
    """

    def __init__(
        self,
        generator: TextGenerator,
        *,
        retry: RetryPolicy | None = None,
        temperature: float | None = None,
        max_tokens: int | None = None,
        max_content_chars: int = _DEFAULT_MAX_CONTENT_CHARS,
    ) -> None:
        self.generator = generator
        self.retry = retry or RetryPolicy()
        self._temperature = temperature
        self._max_tokens = max_tokens
        self._max_content_chars = max_content_chars

    # -- generative helpers ------------------------------------------------

    async def _ask(self, key: str, **values: Any) -> str:
        system, prompt = render_prompt("understanding", key, **values)
        return await self.generator.generate(
            prompt,
            system_instruction=system,
            temperature=self._temperature,
            max_tokens=self._max_tokens,
        )

    async def _records(
        self, key: str, model: type[M], kind: str, **values: Any
    ) -> list[M]:
        async def _call() -> list[M]:
            raw = await self._ask(key, **values)
            return repair_records(raw, model, kind=kind, fallback=[])

        return await self.retry.run(_call, label=f"understanding.{key}")

    def _content_text(self, package: ContentPackage) -> str:
        return package.text[: self._max_content_chars]

    # -- operations ----------------------------------------------------------

    async def extract_topics(self, package: ContentPackage) -> list[Topic]:
        """Extract the main topics of ``package``.

        Returns:
            Repaired topics; empty when the model found none or returned
            nothing structured.
        """
        return await self._records(
            "topics",
            Topic,
            "topic",
            content=self._content_text(package),
            metadata=json.dumps(package.metadata.model_dump(mode="json"), indent=2),
        )

    async def identify_entities(self, package: ContentPackage) -> list[Entity]:
        """Identify the notable entities mentioned in ``package``."""
        return await self._records(
            "entities", Entity, "entity", content=self._content_text(package)
        )

    async def identify_relationships(
        self, topics: list[Topic], entities: list[Entity]
    ) -> list[Relationship]:
        """Link topics and entities; dangling relationships are dropped.

        No call is made when there is nothing to relate.
        """
        if not topics and not entities:
            return []
        relationships = await self._records(
            "relationships",
            Relationship,
            "rel",
            topics=_dump_records(topics),
            entities=_dump_records(entities),
        )
        node_ids = {t.id for t in topics} | {e.id for e in entities}
        kept = filter_relationships(relationships, node_ids)
        if len(kept) != len(relationships):
            logger.info(
                "dangling_relationships_dropped",
                dropped=len(relationships) - len(kept),
                kept=len(kept),
            )
        return kept

    async def generate_summary(
        self, package: ContentPackage, max_length: int = _DEFAULT_SUMMARY_LENGTH
    ) -> str:
        """Summarize ``package`` as plain text of at most ``max_length`` chars."""

        async def _call() -> str:
            return await self._ask(
                "summary",
                content=self._content_text(package),
                metadata=json.dumps(package.metadata.model_dump(mode="json"), indent=2),
                max_length=max_length,
            )

        summary = (await self.retry.run(_call, label="understanding.summary")).strip()
        return summary[:max_length]

    async def analyze_content(
        self, package: ContentPackage, *, include_summary: bool = False
    ) -> KnowledgeGraph:
        """Run the full understanding state machine.

        Args:
            package: Normalized source content.
            include_summary: Also generate a plain-text summary.

        Returns:
            The knowledge graph (possibly with empty collections).

        Raises:
            UnderstandingError: Tagged with the sub-step that failed.
        """
        step = UnderstandingStep.IDLE

        async def _run(name: str, call: Callable[[], Awaitable[T]]) -> T:
            try:
                return await call()
            except (asyncio.CancelledError, PipelineCancelledError):
                raise
            except Exception as exc:
                logger.error(
                    "understanding_step_failed", step=name, state=step.value, error=str(exc)
                )
                raise UnderstandingError(
                    f"Content understanding failed during {name}: {exc}",
                    step=name,
                    raw_text=getattr(exc, "raw_text", None),
                ) from exc

        topics = await _run("extract_topics", lambda: self.extract_topics(package))
        step = UnderstandingStep.TOPICS_EXTRACTED
        logger.info("understanding_transition", state=step.value, topics=len(topics))

        entities = await _run("identify_entities", lambda: self.identify_entities(package))
        step = UnderstandingStep.ENTITIES_IDENTIFIED
        logger.info("understanding_transition", state=step.value, entities=len(entities))

        relationships = await _run(
            "identify_relationships",
            lambda: self.identify_relationships(topics, entities),
        )
        step = UnderstandingStep.RELATIONSHIPS_RESOLVED
        logger.info(
            "understanding_transition", state=step.value, relationships=len(relationships)
        )

        summary = ""
        if include_summary:
            summary = await _run("generate_summary", lambda: self.generate_summary(package))

        graph = KnowledgeGraph(
            topics=topics,
            entities=entities,
            relationships=relationships,
            sources=list(package.citations),
            content_id=package.id,
            summary=summary,
        )
        step = UnderstandingStep.DONE
        logger.info("understanding_transition", state=step.value, graph_id=graph.id)
        return graph
