"""Podcast script generation from a knowledge graph.

Four dependent calls run in order: speakers, the optional introduction,
the dialogue, and the optional conclusion. Later calls see the output of
earlier ones, so they are never fanned out.

Speakers are forced to the requested count. Every dialogue turn is
checked against the speaker list: an unknown speaker id is reassigned by
position rather than dropped, and the display name is always rebuilt
from the id. Title and description come from the top topics without a
model call.
"""

from __future__ import annotations

import asyncio
import json
from typing import TYPE_CHECKING, Any, TypeVar

import structlog

from castwright.exceptions import (
    MalformedOutputError,
    PipelineCancelledError,
    ScriptError,
)
from castwright.repair import fit_count, repair_records
from castwright.retry import RetryPolicy
from castwright.script.models import (
    DialogueTurn,
    PodcastScript,
    ScriptMetadata,
    ScriptOptions,
    Speaker,
    generic_speaker,
)
from castwright.templates import render_prompt
from castwright.voice.models import NARRATOR_ID

if TYPE_CHECKING:
    from collections.abc import Awaitable, Callable

    from castwright.providers.base import TextGenerator
    from castwright.understanding.models import KnowledgeGraph

logger: structlog.stdlib.BoundLogger = structlog.get_logger(__name__)

T = TypeVar("T")

_INTRO_TOPIC_LIMIT = 5
_DIALOGUE_ENTITY_LIMIT = 10
_DIALOGUE_RELATIONSHIP_LIMIT = 15
_CONCLUSION_CONTEXT_TURNS = 5


# ---------------------------------------------------------------------------
# Deterministic helpers
# ---------------------------------------------------------------------------


def script_title(graph: KnowledgeGraph) -> str:
    """Title from the two most important topics."""
    top = graph.top_topics(2)
    if not top:
        return "Podcast Discussion"
    return "Exploring " + " and ".join(t.name for t in top)


def script_description(graph: KnowledgeGraph) -> str:
    """Description from the two most important topics."""
    top = graph.top_topics(2)
    if not top:
        return "An engaging podcast discussion on various topics."
    names = " and ".join(t.name for t in top)
    return f"A thought-provoking discussion exploring {names}. {top[0].description}".strip()


def dedupe_speaker_ids(speakers: list[Speaker]) -> list[Speaker]:
    """Give any speaker with a repeated or reserved id a fresh positional id.

    The narrator id is reserved for the introduction and conclusion, so a
    model speaker claiming it is renamed like a duplicate.
    """
    seen: set[str] = {NARRATOR_ID}
    result: list[Speaker] = []
    for index, speaker in enumerate(speakers):
        speaker_id = speaker.id
        n = index + 1
        while speaker_id in seen:
            speaker_id = f"speaker-{n}"
            n += 1
        seen.add(speaker_id)
        if speaker_id != speaker.id:
            speaker = speaker.model_copy(update={"id": speaker_id})
        result.append(speaker)
    return result


def assign_speakers(turns: list[DialogueTurn], speakers: list[Speaker]) -> list[DialogueTurn]:
    """Resolve every turn to a known speaker.

    A turn naming an unknown speaker id goes to
    ``speakers[index % len(speakers)]``. Names always come from the
    speaker list. Turn count and order are preserved.
    """
    names = {s.id: s.name for s in speakers}
    resolved: list[DialogueTurn] = []
    reassigned = 0
    for index, turn in enumerate(turns):
        speaker_id = turn.speaker_id
        if speaker_id not in names:
            speaker_id = speakers[index % len(speakers)].id
            reassigned += 1
        resolved.append(
            turn.model_copy(
                update={"speaker_id": speaker_id, "speaker_name": names[speaker_id]}
            )
        )
    if reassigned:
        logger.warning("dialogue_turns_reassigned", count=reassigned, total=len(turns))
    return resolved


def _dump(records: list[Any]) -> str:
    return json.dumps([r.model_dump(by_alias=True) for r in records], indent=2)


# ---------------------------------------------------------------------------
# Generator
# ---------------------------------------------------------------------------


class ScriptGenerator:
    """Turns a ``KnowledgeGraph`` into a ``PodcastScript``.

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
    ) -> None:
        self.generator = generator
        self.retry = retry or RetryPolicy()
        self._temperature = temperature
        self._max_tokens = max_tokens

    async def _ask(self, key: str, **values: Any) -> str:
        system, prompt = render_prompt("script", key, **values)
        return await self.generator.generate(
            prompt,
            system_instruction=system,
            temperature=self._temperature,
            max_tokens=self._max_tokens,
        )

    async def _ask_text(self, key: str, **values: Any) -> str:
        async def _call() -> str:
            return (await self._ask(key, **values)).strip()

        return await self.retry.run(_call, label=f"script.{key}")

    # -- sub-steps -----------------------------------------------------------

    async def generate_speakers(
        self, graph: KnowledgeGraph, options: ScriptOptions
    ) -> list[Speaker]:
        """Generate exactly ``options.speaker_count`` speakers.

        Unusable output falls back to generic speakers; short or long
        lists are padded or truncated.
        """
        count = options.speaker_count
        personalities = ""
        if options.speaker_personalities:
            lines = "\n".join(f"- {p}" for p in options.speaker_personalities)
            personalities = f"\nUse these personalities, in order:\n{lines}\n"

        async def _call() -> list[Speaker]:
            raw = await self._ask(
                "speakers",
                count=count,
                topics=_dump(graph.topics),
                entities=_dump(graph.entities),
                personalities=personalities,
            )
            return repair_records(
                raw,
                Speaker,
                kind="speaker",
                key="speakers",
                fallback=[generic_speaker(i) for i in range(count)],
            )

        speakers = await self.retry.run(_call, label="script.speakers")
        return dedupe_speaker_ids(fit_count(speakers, count, generic_speaker))

    async def generate_introduction(
        self, graph: KnowledgeGraph, speakers: list[Speaker], options: ScriptOptions
    ) -> str:
        return await self._ask_text(
            "introduction",
            tone=options.tone_style,
            topics=_dump(graph.top_topics(_INTRO_TOPIC_LIMIT)),
            speakers=_dump(speakers),
        )

    async def generate_dialogue(
        self, graph: KnowledgeGraph, speakers: list[Speaker], options: ScriptOptions
    ) -> list[DialogueTurn]:
        """Generate dialogue turns and resolve their speakers.

        ``options.turn_count`` is a target; whatever number of turns the
        model produced is kept. Output with no usable turns is retried and
        finally raises.
        """
        focus = ""
        if options.focus_topics:
            focus = f"\nGive extra attention to: {', '.join(options.focus_topics)}.\n"
        length_limit = ""
        if options.max_script_length:
            length_limit = (
                f"Keep the whole dialogue under {options.max_script_length} words.\n"
            )

        async def _call() -> list[DialogueTurn]:
            raw = await self._ask(
                "dialogue",
                tone=options.tone_style,
                speakers=_dump(speakers),
                topics=_dump(graph.topics),
                entities=_dump(graph.entities[:_DIALOGUE_ENTITY_LIMIT]),
                relationships=_dump(graph.relationships[:_DIALOGUE_RELATIONSHIP_LIMIT]),
                focus=focus,
                turn_count=options.turn_count,
                length_limit=length_limit,
            )
            turns = repair_records(raw, DialogueTurn, kind="turn", key="dialogue")
            if not turns:
                raise MalformedOutputError("Model returned no dialogue turns", raw_text=raw)
            return turns

        turns = await self.retry.run(_call, label="script.dialogue")
        if len(turns) != options.turn_count:
            logger.info(
                "dialogue_turn_count_differs",
                produced=len(turns),
                requested=options.turn_count,
            )
        return assign_speakers(turns, speakers)

    async def generate_conclusion(
        self,
        graph: KnowledgeGraph,
        speakers: list[Speaker],
        dialogue: list[DialogueTurn],
        options: ScriptOptions,
    ) -> str:
        recent = "\n\n".join(
            f"{turn.speaker_name}: {turn.text}"
            for turn in dialogue[-_CONCLUSION_CONTEXT_TURNS:]
        )
        topic_names = ", ".join(t.name for t in graph.top_topics(5)) or "the source material"
        return await self._ask_text(
            "conclusion",
            tone=options.tone_style,
            topic_names=topic_names,
            speakers=_dump(speakers),
            recent_dialogue=recent,
        )

    # -- full script -----------------------------------------------------------

    async def generate_script(
        self, graph: KnowledgeGraph, options: ScriptOptions | None = None
    ) -> PodcastScript:
        """Generate a complete script.

        Raises:
            ScriptError: Tagged with the sub-step that failed.
        """
        opts = options or ScriptOptions()

        async def _run(name: str, call: Callable[[], Awaitable[T]]) -> T:
            try:
                return await call()
            except (asyncio.CancelledError, PipelineCancelledError):
                raise
            except Exception as exc:
                logger.error("script_step_failed", step=name, error=str(exc))
                raise ScriptError(
                    f"Script generation failed during {name}: {exc}",
                    step=name,
                    raw_text=getattr(exc, "raw_text", None),
                ) from exc

        speakers = await _run("speakers", lambda: self.generate_speakers(graph, opts))
        logger.info("speakers_generated", count=len(speakers))

        introduction = ""
        if opts.include_introduction:
            introduction = await _run(
                "introduction",
                lambda: self.generate_introduction(graph, speakers, opts),
            )

        dialogue = await _run(
            "dialogue", lambda: self.generate_dialogue(graph, speakers, opts)
        )
        logger.info("dialogue_generated", turns=len(dialogue))

        conclusion = ""
        if opts.include_conclusion:
            conclusion = await _run(
                "conclusion",
                lambda: self.generate_conclusion(graph, speakers, dialogue, opts),
            )

        word_count = sum(
            len(text.split())
            for text in [introduction, conclusion, *(t.text for t in dialogue)]
        )
        script = PodcastScript(
            title=script_title(graph),
            description=script_description(graph),
            speakers=speakers,
            introduction=introduction,
            dialogue=dialogue,
            conclusion=conclusion,
            source_knowledge_graph_id=graph.id,
            metadata=ScriptMetadata(
                speaker_count=len(speakers),
                turn_count=len(dialogue),
                requested_turn_count=opts.turn_count,
                tone_style=opts.tone_style,
                word_count=word_count,
            ),
        )
        logger.info(
            "script_generated",
            script_id=script.id,
            title=script.title,
            words=word_count,
        )
        return script
