"""
Tests for the adventure data model and response validation.
"""

import pytest
from pydantic import ValidationError

from adventure.schemas import (
    TURN_CANCELLED_MARKER,
    Entity,
    MemoryFetchResponse,
    MemoryUpdateResponse,
    SummaryResponse,
    Turn,
    TurnFeedback,
    TurnValidationResult,
    parse_json_response,
)


class TestEntity:
    def test_searchable_text_prefers_info_and_secret(self):
        entity = Entity(id="hero", name="Hero", info="Brave", secret="Afraid of the dark")
        assert entity.searchable_text() == "Brave\nAfraid of the dark"

    def test_searchable_text_falls_back_to_name(self):
        assert Entity(id="hero", name="Hero").searchable_text() == "Hero"
        assert Entity(id="hero").searchable_text() == "hero"

    def test_unknown_fields_are_ignored(self):
        entity = Entity.model_validate({"id": "x", "name": "X", "mood": "happy"})
        assert not hasattr(entity, "mood")


class TestTurn:
    def test_narrative_extraction(self):
        turn = Turn(turn_number=1, writer_response="<narrative>Hello</narrative><notes>n</notes>")
        assert turn.get_narrative() == "Hello"
        assert turn.get_notes() == "n"

    def test_partial_narrative(self):
        turn = Turn(turn_number=1, writer_response="<scene>s</scene><narrative>Hel")
        assert turn.get_narrative() == ""
        assert turn.get_narrative(partial=True) == "Hel"

    def test_cancelled_turn(self):
        turn = Turn(turn_number=3, cancelled=True)
        assert turn.get_narrative() == TURN_CANCELLED_MARKER
        assert turn.to_client()["narrative"] == TURN_CANCELLED_MARKER

    def test_to_client_contains_narrative(self):
        turn = Turn(turn_number=2, writer_response="<narrative>Text</narrative>")
        data = turn.to_client()
        assert data["turn_number"] == 2
        assert data["narrative"] == "Text"


def test_feedback_type_is_checked():
    with pytest.raises(ValidationError):
        TurnFeedback(feedback_type="meh")


class TestParseJsonResponse:
    def test_valid_response(self):
        result = TurnValidationResult()
        response = parse_json_response(
            '{"entities": ["hero"], "search": ["forest"]}', MemoryFetchResponse, result
        )
        assert result.is_success()
        assert response.entities == ["hero"]

    def test_fenced_response(self):
        result = TurnValidationResult()
        response = parse_json_response('```json\n{"search": ["a"]}\n```', MemoryFetchResponse, result)
        assert response.search == ["a"]

    def test_invalid_json(self):
        result = TurnValidationResult()
        assert parse_json_response("{not json", MemoryFetchResponse, result) is None
        assert result.is_failed()
        assert result.messages()[0].startswith("Failed to parse response")

    def test_not_an_object(self):
        result = TurnValidationResult()
        assert parse_json_response("[1, 2]", MemoryFetchResponse, result) is None
        assert result.is_failed()

    def test_schema_errors_are_flattened(self):
        result = TurnValidationResult()
        assert parse_json_response('{"entities": "hero"}', MemoryFetchResponse, result) is None
        assert any(message.startswith("entities") for message in result.messages())

    def test_aliases(self):
        result = TurnValidationResult()
        response = parse_json_response(
            '{"newEntities": {"e1": {"name": "Elf"}}, "backgroundPrompt": "hill"}',
            MemoryUpdateResponse,
            result,
        )
        assert response.new_entities["e1"].name == "Elf"
        assert response.background_prompt == "hill"
        assert response.updates is None

        summary = SummaryResponse.model_validate({"plotPlan": "p", "userProfile": "u"})
        assert summary.plot_plan == "p"
        assert summary.user_profile == "u"


def test_validation_result_kinds():
    result = TurnValidationResult()
    assert result.is_success()
    result.add_error("Entity E1 must be added", kind="memory_consistency")
    other = TurnValidationResult()
    other.add_error("Response is empty", kind="empty_response")
    result.extend(other)
    assert result.is_failed()
    assert result.has_kind("memory_consistency")
    assert result.has_kind("empty_response")
    assert not result.has_kind("transport")
    assert str(result.errors[0]) == "Entity E1 must be added"
