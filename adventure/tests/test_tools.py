"""
Tests for the memory tools offered to the writer model.
"""

import json

import pytest

from adventure.engine.state import AdventureState
from adventure.schemas import EntityUpdate, Turn


@pytest.fixture
def session(make_session, story):
    session = make_session()
    session.state.restore(AdventureState.from_story(story))
    session.state.memory_graph.apply_update(
        {entity.id: EntityUpdate(**entity.model_dump()) for entity in story.entities}
    )
    session.state.memory_graph.apply_update(
        {"goblin": EntityUpdate(type="character", name="Goblin", info="A goblin from the camp")}
    )
    return session


@pytest.mark.asyncio
async def test_search_memory_finds_entities_and_passages(session):
    memory = session.memory
    await memory.sync_entities(session.state.memory_graph)
    for number, text in ((1, "A goblin attacked the castle."), (2, "The river was calm.")):
        await memory.index_turn(Turn(turn_number=number, writer_response=f"<narrative>{text}</narrative>"))

    result = await session.tools.search_memory("goblin camp")

    assert result["entities"][0]["id"] == "goblin"
    assert result["narrative"] == ["Turn 1 p1: A goblin attacked the castle."]


@pytest.mark.asyncio
async def test_visible_turns_are_not_searched(session):
    memory = session.memory
    for number, text in ((1, "A goblin attacked."), (2, "The goblin fled."), (3, "A dragon slept.")):
        await memory.index_turn(Turn(turn_number=number, writer_response=f"<narrative>{text}</narrative>"))
    session.tools.visible_turns = {1, 2}

    result = await session.tools.search_memory("goblin")

    assert all(not passage.startswith(("Turn 1", "Turn 2")) for passage in result["narrative"])


def test_get_entity(session):
    assert session.tools.get_entity("hero")["name"] == "Hero"
    assert "error" in session.tools.get_entity("ghost")


@pytest.mark.asyncio
async def test_execute_tool_call(session):
    message = await session.tools.execute({"name": "get_entity", "args": {"id": "forest"}, "id": "c1"})
    assert message.tool_call_id == "c1"
    assert json.loads(message.content)["name"] == "Dark Forest"


@pytest.mark.asyncio
async def test_execute_unknown_tool(session):
    message = await session.tools.execute({"name": "launch_rocket", "args": {}, "id": "c2"})
    assert "Unknown tool" in json.loads(message.content)["error"]


@pytest.mark.asyncio
async def test_execute_invalid_arguments(session):
    message = await session.tools.execute({"name": "get_entity", "args": {}, "id": "c3"})
    assert "error" in json.loads(message.content)
