"""
Tests for whole turns: phase sequencing, commit, rollback and summaries.
"""

import pytest

from adventure.engine.orchestrator import TurnStatus
from adventure.engine.state import (
    PLOT_PLAN,
    RECENT_TURNS,
    STORY_ARCHIVE,
    TRANSIENT_PARAMETERS,
    AdventureState,
)
from adventure.errors import TransportError
from adventure.schemas import EntityUpdate, Turn, UserInput


def build_state(story, turn_count: int) -> AdventureState:
    """State of an adventure that already played ``turn_count`` turns after turn 0"""
    state = AdventureState.from_story(story)
    state.memory_graph.apply_update(
        {entity.id: EntityUpdate(**entity.model_dump()) for entity in story.entities}
    )
    for number in range(1, turn_count + 1):
        state.turns.append(
            Turn(
                turn_number=number,
                user_input=UserInput(action=f"Action {number}"),
                writer_response=f"<narrative>Narrative of turn {number}.</narrative><notes>n{number}</notes>",
            )
        )
    return state


@pytest.fixture
def emitted():
    return []


@pytest.fixture
def session_at(make_session, story, emitted):
    """Session restored to a state with the given number of played turns"""

    async def factory(turn_count: int, config=None):
        session = make_session(config=config)
        session.state.restore(build_state(story, turn_count))
        await session.memory.sync_entities(session.state.memory_graph)
        session.on_turn_updated.append(emitted.append)
        return session

    return factory


class TestTurnCommit:
    @pytest.mark.asyncio
    async def test_successful_turn(self, session_at, provider, replies, emitted):
        session = await session_at(0)
        provider.add(replies.narrative("The hero walks on."), replies.memory_update())

        result = await session.orchestrator.perform_turn(UserInput(action="Walk"))

        assert result.is_success()
        assert session.orchestrator.status == TurnStatus.COMMITTED
        assert len(session.state.turns) == 2
        turn = session.state.get_last_turn()
        assert turn.turn_number == 1
        assert turn.get_narrative() == "The hero walks on."
        assert turn.user_input.action == "Walk"
        assert emitted and emitted[-1].turn_number == 1
        for name in TRANSIENT_PARAMETERS:
            assert name not in session.state.parameters
        assert session.orchestrator.conversation.messages == []

    @pytest.mark.asyncio
    async def test_memory_fetch_runs_from_turn_two(self, session_at, provider, replies):
        session = await session_at(1)
        provider.add(
            replies.memory_fetch(entities=["forest"]),
            replies.narrative(),
            replies.memory_update(),
        )
        result = await session.orchestrator.perform_turn(UserInput(action="Walk"))

        assert result.is_success()
        assert provider.calls[0]["params"].json_output
        assert "forest" in session.state.fetched_entities

    @pytest.mark.asyncio
    async def test_critic_phase_when_enabled(self, session_at, provider, replies, test_settings):
        config = test_settings.model_copy(update={"enable_critic_phase": True})
        session = await session_at(0, config=config)
        provider.add(replies.narrative(), replies.memory_update(), "<response>Nice pacing.</response>")

        result = await session.orchestrator.perform_turn(UserInput(action="Walk"))

        assert result.is_success()
        assert session.state.get_last_turn().critic_feedback.endswith("Nice pacing.")

    def test_recent_turn_narratives(self, make_session, story):
        session = make_session()
        session.state.restore(build_state(story, 2))
        text = session.orchestrator.fetch_recent_turn_narratives(1, 2)
        assert "--Turn 1:" in text and "--Turn 2:" in text
        assert "--Turn 0:" not in text
        assert "Narrative of turn 2." in text
        assert "Notes:\nn1" in text
        assert session.orchestrator.fetch_recent_turn_narratives(-5, -1) == ""


class TestTurnRollback:
    @pytest.mark.asyncio
    async def test_update_of_unknown_entity(self, session_at, provider, replies, emitted):
        session = await session_at(4)
        graph_before = session.state.memory_graph.model_dump()
        state_before = session.state.model_dump()
        provider.add(
            replies.memory_fetch(),
            replies.narrative(),
            *[replies.memory_update(updates={"E1": {"info": "Appears from nowhere"}})] * 5,
        )

        result = await session.orchestrator.perform_turn(UserInput(action="Search the camp"))

        assert result.is_failed()
        assert result.has_kind("memory_consistency")
        assert any("E1" in message for message in result.messages())
        assert session.state.memory_graph.model_dump() == graph_before
        assert session.state.model_dump() == state_before
        assert session.orchestrator.status == TurnStatus.ROLLED_BACK
        assert emitted[-1].cancelled
        assert emitted[-1].turn_number == 5

    @pytest.mark.asyncio
    async def test_narrative_retry_exhaustion(self, session_at, provider, emitted):
        session = await session_at(0)
        state_before = session.state.model_dump()
        provider.add(*["<response><scene>s</scene><narrative>n</narrative><notes>x</notes>"] * 3)

        result = await session.orchestrator.perform_turn(UserInput(action="Walk"))

        assert result.is_failed()
        assert len(session.state.turns) == 1
        assert session.state.model_dump() == state_before
        assert emitted[-1].cancelled

    @pytest.mark.asyncio
    async def test_new_entities_are_removed_from_memory_on_rollback(self, session_at, provider, replies):
        session = await session_at(0)
        session.context.config = session.context.config.model_copy(update={"enable_critic_phase": True})
        # Valid memory update, then the critic fails
        provider.add(
            replies.narrative(),
            replies.memory_update(new_entities={"elf": {"name": "Elf", "info": "river elf"}}),
            "",
            "",
        )

        result = await session.orchestrator.perform_turn(UserInput(action="Walk"))

        assert result.is_failed()
        assert "elf" not in session.state.memory_graph
        assert session.memory.entity_store.get("elf") is None

    @pytest.mark.asyncio
    async def test_transport_failure(self, session_at, provider, emitted):
        session = await session_at(0)
        provider.add(TransportError("down"), TransportError("still down"))

        result = await session.orchestrator.perform_turn(UserInput(action="Walk"))

        assert result.has_kind("transport")
        assert len(session.state.turns) == 1
        assert emitted[-1].cancelled


class TestSummary:
    @pytest.mark.asyncio
    async def test_summary_runs_when_due(self, session_at, provider, replies):
        session = await session_at(5)
        provider.add(
            replies.memory_fetch(),
            replies.narrative(),
            replies.memory_update(),
            replies.summary("Everything so far."),
        )

        result = await session.orchestrator.perform_turn(UserInput(action="Rest"))

        assert result.is_success()
        assert session.state.parameters[STORY_ARCHIVE] == "Everything so far."
        assert session.state.parameters[PLOT_PLAN] == "Lead the hero to the castle."
        assert session.state.last_summarized_turn == 6
        summary_messages = provider.calls[-1]["messages"]
        assert any(getattr(message, "name", None) == "History_Provider" for message in summary_messages)
        assert any("Narrative of turn 5." in message.content for message in summary_messages)

    @pytest.mark.asyncio
    async def test_summary_failure_keeps_turn(self, session_at, provider, replies):
        session = await session_at(5)
        provider.add(
            replies.memory_fetch(),
            replies.narrative(),
            replies.memory_update(),
            *["{}"] * 5,
        )

        result = await session.orchestrator.perform_turn(UserInput(action="Rest"))

        assert result.is_success()
        assert len(session.state.turns) == 7
        assert session.state.last_summarized_turn == -1

    @pytest.mark.asyncio
    async def test_archived_turns_are_indexed(self, session_at, provider, replies):
        session = await session_at(9)
        session.state.last_summarized_turn = 8
        provider.add(replies.memory_fetch(), replies.narrative(), replies.memory_update())

        result = await session.orchestrator.perform_turn(UserInput(action="Rest"))

        assert result.is_success()
        store = session.memory.narrative_store
        assert store.is_turn_known(0) and store.is_turn_known(1)
        assert not store.is_turn_known(2)
        assert RECENT_TURNS not in session.state.parameters


class TestMemoryAcrossTurn:
    @pytest.mark.asyncio
    async def test_working_set_is_capped_before_commit(self, session_at, provider, replies, test_settings):
        session = await session_at(1)
        fetched = session.state.fetched_entities
        fetched.add_many([f"extra-{index}" for index in range(test_settings.max_fetched_entities)], 0)
        provider.add(
            replies.memory_fetch(entities=["hero", "forest"]),
            replies.narrative(),
            replies.memory_update(
                new_entities={"elf": {"name": "Elf"}, "orc": {"name": "Orc"}},
            ),
        )

        result = await session.orchestrator.perform_turn(UserInput(action="Walk"))

        assert result.is_success()
        assert len(fetched) == test_settings.max_fetched_entities
        for entity_id in ("hero", "forest", "elf", "orc"):
            assert fetched.entries[entity_id] == 2

    @pytest.mark.asyncio
    async def test_embedding_error_does_not_fail_the_turn(self, session_at, provider, replies, embeddings):
        session = await session_at(0)
        provider.add(
            replies.narrative(),
            replies.memory_update(new_entities={"elf": {"name": "Elf", "info": "river elf"}}),
        )
        embeddings.failures = 1

        result = await session.orchestrator.perform_turn(UserInput(action="Walk"))

        assert result.is_success()
        assert len(provider.calls) == 2
        assert "elf" in session.state.memory_graph

    @pytest.mark.asyncio
    async def test_embedding_outage_rolls_back_as_transport_failure(
        self, session_at, provider, replies, embeddings
    ):
        session = await session_at(0)
        state_before = session.state.model_dump()
        provider.add(
            replies.narrative(),
            replies.memory_update(new_entities={"elf": {"name": "Elf", "info": "river elf"}}),
        )
        embeddings.failures = 10

        result = await session.orchestrator.perform_turn(UserInput(action="Walk"))

        assert result.has_kind("transport")
        assert len(provider.calls) == 2
        assert session.state.model_dump() == state_before
