"""Unit tests for castwright.repair - span location, parsing and defaulting."""

from __future__ import annotations

import json

import pytest

from castwright.exceptions import MalformedOutputError, NoStructuredOutputError
from castwright.repair import (
    coerce_id,
    coerce_score,
    coerce_str_list,
    extract_json_span,
    fit_count,
    parse_structured,
    repair_records,
)
from castwright.script.models import DialogueTurn, Speaker, generic_speaker
from castwright.understanding.models import Entity, Relationship, Topic

# ---------------------------------------------------------------------------
# Span location
# ---------------------------------------------------------------------------


class TestExtractJsonSpan:
    """Greedy bracket matching over free-form model text."""

    def test_plain_array(self) -> None:
        assert extract_json_span('[{"a": 1}]') == '[{"a": 1}]'

    def test_prose_around_array(self) -> None:
        text = 'Sure! Here you go:\n[{"a": 1}, {"b": 2}]\nHope that helps.'
        assert extract_json_span(text) == '[{"a": 1}, {"b": 2}]'

    def test_code_fence_preferred(self) -> None:
        text = 'Note [draft]\n```json\n[{"id": "x"}]\n```'
        assert extract_json_span(text) == '[{"id": "x"}]'

    def test_brackets_inside_strings_ignored(self) -> None:
        text = '[{"text": "a ] tricky } value"}]'
        assert extract_json_span(text) == text

    def test_skips_unparseable_prefix_group(self) -> None:
        text = 'See [ref a] for details: [{"ok": true}]'
        assert extract_json_span(text) == '[{"ok": true}]'

    def test_no_brackets(self) -> None:
        assert extract_json_span("nothing structured here") is None

    def test_unterminated_prose_bracket_skipped(self) -> None:
        text = 'Topics [draft follow:\n[{"id": "t1", "name": "Solar"}]'
        assert extract_json_span(text) == '[{"id": "t1", "name": "Solar"}]'

    def test_unterminated_prose_bracket_reported_when_nothing_parses(self) -> None:
        assert extract_json_span("Notes [draft, see {later") == "[draft, see {later"

    def test_truncated_output_returned_for_reporting(self) -> None:
        assert extract_json_span('[{"a": 1}, {"b":') == '[{"a": 1}, {"b":'


class TestParseStructured:
    """Array-level failures raise typed errors carrying the raw text."""

    def test_parses_object(self) -> None:
        assert parse_structured('result: {"k": [1, 2]}') == {"k": [1, 2]}

    def test_no_structure(self) -> None:
        with pytest.raises(NoStructuredOutputError) as exc_info:
            parse_structured("I cannot help with that.")
        assert exc_info.value.raw_text == "I cannot help with that."

    def test_malformed(self) -> None:
        with pytest.raises(MalformedOutputError) as exc_info:
            parse_structured('[{"a": 1,}]')
        assert exc_info.value.raw_text == '[{"a": 1,}]'

    def test_empty_text(self) -> None:
        with pytest.raises(NoStructuredOutputError):
            parse_structured("")


# ---------------------------------------------------------------------------
# Coercion helpers
# ---------------------------------------------------------------------------


class TestCoercion:
    """Field-level coercion never raises."""

    @pytest.mark.parametrize(
        ("value", "expected"),
        [
            (7, 7),
            (0, 1),
            (42, 10),
            ("8", 8),
            ("6.6", 7),
            ("high", 5),
            (None, 5),
            (True, 5),
            (float("nan"), 5),
            ([3], 5),
        ],
    )
    def test_coerce_score(self, value: object, expected: int) -> None:
        assert coerce_score(value) == expected

    def test_coerce_id(self) -> None:
        assert coerce_id("  topic-a ", "topic", 0) == "topic-a"
        assert coerce_id(12, "topic", 0) == "12"
        assert coerce_id("", "topic", 2) == "topic-3"
        assert coerce_id(None, "rel", 0) == "rel-1"
        assert coerce_id(False, "rel", 4) == "rel-5"

    def test_coerce_str_list(self) -> None:
        assert coerce_str_list("solo", ["d"]) == ["d"]
        assert coerce_str_list(["a", 2, None], []) == ["a", "2"]


# ---------------------------------------------------------------------------
# Record repair
# ---------------------------------------------------------------------------


class TestRepairRecords:
    """Per-record defaulting and array-level fallback."""

    def test_missing_fields_defaulted(self) -> None:
        topics = repair_records('[{"name": "Energy"}, {}]', Topic, kind="topic")
        assert [t.id for t in topics] == ["topic-1", "topic-2"]
        assert topics[0].name == "Energy"
        assert topics[0].importance == 5
        assert topics[1].name == "Unnamed Topic 2"

    def test_wrong_shapes_defaulted(self) -> None:
        raw = json.dumps(
            [{"id": 3, "name": ["x"], "importance": "very", "relatedContent": "nope"}]
        )
        topic = repair_records(raw, Topic, kind="topic")[0]
        assert topic.id == "3"
        assert topic.name == "Unnamed Topic 1"
        assert topic.importance == 5
        assert topic.related_content == []

    def test_non_object_items_become_default_records(self) -> None:
        entities = repair_records('["just a string", {"name": "NASA"}]', Entity, kind="entity")
        assert len(entities) == 2
        assert entities[0].name == "Unnamed Entity 1"
        assert entities[1].mentions == ["NASA"]

    def test_object_wrapping_array(self) -> None:
        raw = '{"speakers": [{"name": "Ada"}], "note": "two"}'
        speakers = repair_records(raw, Speaker, kind="speaker", key="speakers")
        assert [s.name for s in speakers] == ["Ada"]

    def test_single_object_treated_as_one_record(self) -> None:
        rels = repair_records(
            '{"sourceId": "a", "targetId": "b", "type": "causes"}', Relationship, kind="rel"
        )
        assert rels[0].relationship_type == "causes"
        assert rels[0].id == "rel-1"

    def test_single_speaker_object_keeps_its_fields(self) -> None:
        raw = '{"id": "s1", "name": "Ada", "expertise": ["physics"]}'
        speakers = repair_records(raw, Speaker, kind="speaker", key="speakers")
        assert [(s.id, s.name, s.expertise) for s in speakers] == [("s1", "Ada", ["physics"])]

    def test_single_topic_object_not_unwrapped(self) -> None:
        raw = '{"id": "t1", "name": "Solar", "importance": 9, "relatedContent": ["a", "b"]}'
        topics = repair_records(raw, Topic, kind="topic")
        assert [t.name for t in topics] == ["Solar"]
        assert topics[0].importance == 9
        assert topics[0].related_content == ["a", "b"]

    def test_unkeyed_wrapper_of_records_unwrapped(self) -> None:
        raw = '{"topics": [{"name": "Solar"}, {"name": "Wind"}]}'
        assert [t.name for t in repair_records(raw, Topic, kind="topic")] == ["Solar", "Wind"]

    def test_prose_bracket_before_array_does_not_hide_records(self) -> None:
        raw = 'Topics [draft follow:\n[{"id": "t1", "name": "Solar"}]'
        topics = repair_records(raw, Topic, kind="topic", fallback=[])
        assert [t.id for t in topics] == ["t1"]

    def test_raises_without_fallback(self) -> None:
        with pytest.raises(NoStructuredOutputError):
            repair_records("no json", DialogueTurn, kind="turn")

    def test_fallback_used(self) -> None:
        fallback = [generic_speaker(0)]
        assert repair_records("[{broken", Speaker, kind="speaker", fallback=fallback) == fallback

    def test_empty_fallback(self) -> None:
        assert repair_records("nothing", Topic, kind="topic", fallback=[]) == []

    def test_malformed_raises_without_fallback(self) -> None:
        with pytest.raises(MalformedOutputError):
            repair_records('[{"name": "x",}]', Topic, kind="topic")

    def test_idempotent_on_valid_input(self) -> None:
        raw = json.dumps(
            [
                {
                    "id": "topic-9",
                    "name": "Grid",
                    "description": "Power lines.",
                    "importance": 4,
                    "relatedContent": ["block 2"],
                },
                {
                    "id": "topic-3",
                    "name": "Storage",
                    "description": "Batteries.",
                    "importance": 10,
                    "relatedContent": [],
                },
            ]
        )
        first = repair_records(raw, Topic, kind="topic")
        dumped = json.dumps([t.model_dump(by_alias=True) for t in first])
        second = repair_records(dumped, Topic, kind="topic")
        assert first == second
        assert [t.model_dump(by_alias=True) for t in first] == json.loads(raw)

    def test_dialogue_turn_defaults(self) -> None:
        turns = repair_records('[{"speakerId": "speaker-2"}]', DialogueTurn, kind="turn")
        assert turns[0].id == "turn-1"
        assert turns[0].speaker_id == "speaker-2"
        assert turns[0].text == "I agree with what was said."
        assert turns[0].references is None

    def test_dialogue_turn_speaker_id_stripped(self) -> None:
        turns = repair_records('[{"speakerId": " speaker-1 "}]', DialogueTurn, kind="turn")
        assert turns[0].speaker_id == "speaker-1"


class TestFitCount:
    """Padding and truncation to an exact count."""

    def test_pads(self) -> None:
        fitted = fit_count([generic_speaker(0)], 3, generic_speaker)
        assert [s.id for s in fitted] == ["speaker-1", "speaker-2", "speaker-3"]

    def test_truncates(self) -> None:
        speakers = [generic_speaker(i) for i in range(4)]
        assert fit_count(speakers, 2, generic_speaker) == speakers[:2]
