"""Unit tests for ScriptGenerator and its deterministic helpers."""

from __future__ import annotations

import json

import pytest
from structlog.testing import capture_logs

from castwright.exceptions import ScriptError
from castwright.providers import FakeTextGenerator
from castwright.retry import RetryPolicy
from castwright.script import DialogueTurn, ScriptGenerator, ScriptOptions, Speaker
from castwright.script.service import (
    assign_speakers,
    dedupe_speaker_ids,
    script_description,
    script_title,
)
from castwright.understanding.models import KnowledgeGraph

_TWO_SPEAKERS = json.dumps(
    [
        {"id": "speaker-1", "name": "Ada", "expertise": ["Energy"]},
        {"id": "speaker-2", "name": "Ben"},
    ]
)


def _turns(*speaker_ids: str) -> str:
    return json.dumps(
        [
            {"speakerId": sid, "speakerName": "Wrong Name", "text": f"Line {i + 1}."}
            for i, sid in enumerate(speaker_ids)
        ]
    )


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


class TestTitleAndDescription:
    def test_from_top_topics(self, knowledge_graph: KnowledgeGraph) -> None:
        assert script_title(knowledge_graph) == "Exploring Solar Panels and Batteries"
        assert script_description(knowledge_graph) == (
            "A thought-provoking discussion exploring Solar Panels and Batteries. "
            "How panels work."
        )

    def test_empty_graph(self) -> None:
        graph = KnowledgeGraph()
        assert script_title(graph) == "Podcast Discussion"
        assert script_description(graph) == "An engaging podcast discussion on various topics."


class TestAssignSpeakers:
    def test_unknown_ids_reassigned_by_position(self, speakers: list[Speaker]) -> None:
        turns = [
            DialogueTurn(id="turn-1", speaker_id="speaker-1", text="a"),
            DialogueTurn(id="turn-2", speaker_id="ghost", text="b"),
            DialogueTurn(id="turn-3", speaker_id="", text="c"),
        ]
        with capture_logs() as logs:
            resolved = assign_speakers(turns, speakers)

        assert [t.speaker_id for t in resolved] == ["speaker-1", "speaker-2", "speaker-1"]
        assert [t.speaker_name for t in resolved] == ["Ada", "Ben", "Ada"]
        assert [t.text for t in resolved] == ["a", "b", "c"]
        assert logs[0]["event"] == "dialogue_turns_reassigned"
        assert logs[0]["count"] == 2

    def test_names_always_rebuilt(self, speakers: list[Speaker]) -> None:
        turn = DialogueTurn(id="t", speaker_id="speaker-2", speaker_name="Impostor", text="x")
        assert assign_speakers([turn], speakers)[0].speaker_name == "Ben"


def test_dedupe_speaker_ids() -> None:
    speakers = [
        Speaker(id="host", name="A"),
        Speaker(id="host", name="B"),
        Speaker(id="speaker-2", name="C"),
    ]
    assert [s.id for s in dedupe_speaker_ids(speakers)] == ["host", "speaker-2", "speaker-3"]


def test_dedupe_renames_narrator_id() -> None:
    speakers = [Speaker(id="narrator", name="Ada"), Speaker(id="s2", name="Ben")]
    deduped = dedupe_speaker_ids(speakers)
    assert [s.id for s in deduped] == ["speaker-1", "s2"]
    assert [s.name for s in deduped] == ["Ada", "Ben"]


# ---------------------------------------------------------------------------
# Generator
# ---------------------------------------------------------------------------


class TestGenerateSpeakers:
    @pytest.mark.asyncio()
    @pytest.mark.parametrize(
        ("payload", "expected_names"),
        [
            (_TWO_SPEAKERS, ["Ada", "Ben"]),
            (json.dumps([{"name": "Solo"}]), ["Solo", "Speaker 2"]),
            (
                json.dumps([{"name": "A"}, {"name": "B"}, {"name": "C"}]),
                ["A", "B"],
            ),
            ("Sorry, I cannot help with that.", ["Speaker 1", "Speaker 2"]),
        ],
    )
    async def test_count_is_forced(
        self,
        knowledge_graph: KnowledgeGraph,
        fast_retry: RetryPolicy,
        payload: str,
        expected_names: list[str],
    ) -> None:
        generator = ScriptGenerator(FakeTextGenerator([payload]), retry=fast_retry)
        result = await generator.generate_speakers(knowledge_graph, ScriptOptions(speaker_count=2))
        assert [s.name for s in result] == expected_names
        assert len({s.id for s in result}) == 2

    @pytest.mark.asyncio()
    async def test_personalities_in_prompt(
        self, knowledge_graph: KnowledgeGraph, fast_retry: RetryPolicy
    ) -> None:
        fake = FakeTextGenerator([_TWO_SPEAKERS])
        generator = ScriptGenerator(fake, retry=fast_retry)
        await generator.generate_speakers(
            knowledge_graph,
            ScriptOptions(speaker_personalities=["Skeptical engineer", "Optimistic host"]),
        )
        assert "- Skeptical engineer" in fake.prompts[0]


class TestGenerateScript:
    @pytest.mark.asyncio()
    async def test_full_script(
        self, knowledge_graph: KnowledgeGraph, fast_retry: RetryPolicy
    ) -> None:
        fake = FakeTextGenerator(
            [
                _TWO_SPEAKERS,
                "  Welcome to the show.  ",
                _turns("speaker-1", "speaker-2", "speaker-9"),
                "Thanks for listening.",
            ]
        )
        generator = ScriptGenerator(fake, retry=fast_retry)
        script = await generator.generate_script(knowledge_graph, ScriptOptions(turn_count=3))

        assert script.title == "Exploring Solar Panels and Batteries"
        assert script.introduction == "Welcome to the show."
        assert script.conclusion == "Thanks for listening."
        assert [t.speaker_name for t in script.dialogue] == ["Ada", "Ben", "Ada"]
        assert script.source_knowledge_graph_id == knowledge_graph.id
        assert script.metadata.turn_count == 3
        assert script.metadata.speaker_count == 2
        assert script.metadata.word_count == 4 + 3 * 2 + 3
        # the conclusion sees the dialogue it wraps up
        assert "Ben: Line 2." in fake.prompts[3]

    @pytest.mark.asyncio()
    async def test_turn_count_is_a_target(
        self, knowledge_graph: KnowledgeGraph, fast_retry: RetryPolicy
    ) -> None:
        fake = FakeTextGenerator([_TWO_SPEAKERS, _turns("speaker-1", "speaker-2")])
        generator = ScriptGenerator(fake, retry=fast_retry)
        options = ScriptOptions(turn_count=10, include_introduction=False, include_conclusion=False)
        script = await generator.generate_script(knowledge_graph, options)

        assert script.introduction == ""
        assert script.conclusion == ""
        assert script.metadata.turn_count == 2
        assert script.metadata.requested_turn_count == 10
        assert len(fake.prompts) == 2

    @pytest.mark.asyncio()
    async def test_no_dialogue_raises(
        self, knowledge_graph: KnowledgeGraph, fast_retry: RetryPolicy
    ) -> None:
        fake = FakeTextGenerator([_TWO_SPEAKERS, "Intro.", "[]", "[]", "[]"])
        generator = ScriptGenerator(fake, retry=fast_retry)
        with pytest.raises(ScriptError) as exc_info:
            await generator.generate_script(knowledge_graph)

        assert exc_info.value.step == "dialogue"
        assert exc_info.value.stage == "script"
        assert exc_info.value.raw_text == "[]"

    @pytest.mark.asyncio()
    async def test_introduction_failure_tagged(
        self, knowledge_graph: KnowledgeGraph
    ) -> None:
        fake = FakeTextGenerator([_TWO_SPEAKERS, RuntimeError("quota")])
        generator = ScriptGenerator(fake, retry=RetryPolicy(max_retries=0))
        with pytest.raises(ScriptError) as exc_info:
            await generator.generate_script(knowledge_graph)
        assert exc_info.value.step == "introduction"

    @pytest.mark.asyncio()
    async def test_offline_defaults(self, knowledge_graph: KnowledgeGraph) -> None:
        generator = ScriptGenerator(FakeTextGenerator())
        script = await generator.generate_script(knowledge_graph, ScriptOptions(speaker_count=3))

        assert [s.name for s in script.speakers] == ["Host 1", "Host 2", "Host 3"]
        assert len(script.dialogue) == 15
        assert {t.speaker_id for t in script.dialogue} == {"speaker-1", "speaker-2", "speaker-3"}
