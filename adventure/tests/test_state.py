"""
Tests for the adventure state, its snapshot and image bookkeeping.
"""

from adventure.engine.state import (
    BACKSTORY,
    FIRST_INPUT,
    PLOT_PLAN,
    STORY_ARCHIVE,
    AdventureState,
)
from adventure.schemas import EntityUpdate, ImagePromptParameters, ImageUpdate, Turn


class TestFromStory:
    def test_turn_zero_holds_backstory(self, story):
        state = AdventureState.from_story(story)
        assert len(state.turns) == 1
        assert state.turns[0].turn_number == 0
        assert state.turns[0].get_narrative() == story.backstory

    def test_parameters_are_initialized(self, story):
        state = AdventureState.from_story(story)
        assert state.parameters[BACKSTORY] == story.backstory
        assert state.parameters[FIRST_INPUT] == "Wake up"
        assert state.parameters[PLOT_PLAN] == ""
        assert state.parameters[STORY_ARCHIVE] == ""
        assert state.important_entities == ["hero"]


class TestSnapshot:
    def test_restore_returns_to_snapshot_values(self, story):
        state = AdventureState.from_story(story)
        state.memory_graph.apply_update({"hero": EntityUpdate(name="Hero")})
        snapshot = state.snapshot()
        before = state.model_dump()

        state.turns.append(Turn(turn_number=1))
        state.parameters[PLOT_PLAN] = "changed"
        state.memory_graph.apply_update({"hero": EntityUpdate(info="changed"), "elf": EntityUpdate()})
        state.fetched_entities.add("elf", 1)

        state.restore(snapshot)
        assert state.model_dump() == before

    def test_snapshot_is_independent(self, story):
        state = AdventureState.from_story(story)
        snapshot = state.snapshot()
        state.turns[0].writer_response = "edited"
        assert snapshot.turns[0].writer_response != "edited"

    def test_restore_keeps_object_identity(self, story):
        state = AdventureState.from_story(story)
        snapshot = state.snapshot()
        original = state
        state.restore(snapshot)
        assert state is original

        # Restored lists are copies of the snapshot's
        state.turns.append(Turn(turn_number=1))
        assert len(snapshot.turns) == 1


class TestImages:
    def test_update_image_replaces_role(self):
        state = AdventureState(turns=[Turn(turn_number=1)])
        state.update_image(ImageUpdate(role="background", image_prompt="forest"))
        state.update_image(ImageUpdate(role="background", image_prompt="castle"))
        images = state.get_last_turn().images
        assert [image.image_prompt for image in images] == ["castle"]

    def test_make_image_update_uses_frames(self):
        state = AdventureState(
            image_prompt_parameters=ImagePromptParameters(
                character_start_prompt="portrait of ",
                character_end_prompt=", detailed",
                character_negative_prompt="blurry",
                items_start_prompt="scene: ",
            )
        )
        character = state.make_image_update("player", "knight", "character")
        assert character.image_prompt == "portrait of knight, detailed"
        assert character.negative_prompt == "blurry"

        location = state.make_image_update("background", "forest", "location")
        assert location.image_prompt == "scene: forest"

    def test_find_image_searches_back_through_turns(self):
        state = AdventureState(turns=[Turn(turn_number=0), Turn(turn_number=1)])
        state.turns[0].images.append(ImageUpdate(role="player", image_prompt="knight"))
        assert state.find_image("player").image_prompt == "knight"
        assert state.find_image("illustration") is None


def test_render_fetched_entities(story):
    state = AdventureState.from_story(story)
    state.memory_graph.apply_update(
        {entity.id: EntityUpdate(**entity.model_dump()) for entity in story.entities}
    )
    assert '"forest"' not in state.render_fetched_entities()
    assert '"hero"' in state.render_fetched_entities()
    assert '"forest"' in state.render_fetched_entities(fetch_all=True)

    state.fetched_entities.add("forest", 1)
    assert '"forest"' in state.render_fetched_entities()
