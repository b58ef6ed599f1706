"""
Session state of one adventure and its structural snapshot
"""

from typing import Dict, List, Optional

from pydantic import BaseModel, Field

from adventure.engine.memory_graph import FetchedEntities, MemoryGraph
from adventure.schemas import (
    ImagePromptParameters,
    ImageRole,
    ImageUpdate,
    StoryStartingParameters,
    Turn,
)

# Parameter names shared between phases and prompt templates
BACKSTORY = "BACKSTORY"
NOVEL_INSTRUCTIONS = "NOVEL_INSTRUCTIONS"
AUTHOR_STYLE = "AUTHOR_STYLE"
FIRST_INPUT = "FIRST_INPUT"
NARRATIVE_INSTRUCTIONS = "NARRATIVE_INSTRUCTIONS"
IMAGE_INSTRUCTIONS = "IMAGE_INSTRUCTIONS"
PLOT_PLAN = "PLOT_PLAN"
USER_PROFILE = "USER_PROFILE"
SUMMARY_ANALYSIS = "SUMMARY_ANALYSIS"
STORY_ARCHIVE = "STORY_ARCHIVE"
PREVIOUS_BACKGROUND_PROMPT = "PREVIOUS_BACKGROUND_PROMPT"
PREVIOUS_PLAYER_PROMPT = "PREVIOUS_PLAYER_PROMPT"

# Per-turn parameters, removed once the turn is over
RECENT_TURNS = "RECENT_TURNS"
TURN_NUMBER = "TURN_NUMBER"
REFMAP = "REFMAP"
EXISTING_ENTITY_IDS = "EXISTING_ENTITY_IDS"
FETCHED_ENTITIES = "FETCHED_ENTITIES"
SEARCHED_RESULTS = "SEARCHED_RESULTS"
TURNS_TO_SUMMARIZE = "TURNS_TO_SUMMARIZE"

TRANSIENT_PARAMETERS = (
    RECENT_TURNS,
    TURN_NUMBER,
    REFMAP,
    EXISTING_ENTITY_IDS,
    FETCHED_ENTITIES,
    SEARCHED_RESULTS,
    TURNS_TO_SUMMARIZE,
)

DEFAULT_FIRST_INPUT = "Begin the story"


class AdventureState(BaseModel):
    """Everything that a turn may change, as plain value types"""

    turns: List[Turn] = Field(default_factory=list)
    last_summarized_turn: int = -1
    parameters: Dict[str, str] = Field(default_factory=dict)
    important_entities: List[str] = Field(default_factory=list)
    image_prompt_parameters: ImagePromptParameters = Field(
        default_factory=ImagePromptParameters
    )
    memory_graph: MemoryGraph = Field(default_factory=MemoryGraph)
    fetched_entities: FetchedEntities = Field(default_factory=FetchedEntities)

    @classmethod
    def from_story(cls, story: StoryStartingParameters) -> "AdventureState":
        """Create the state of a new adventure, with turn 0 holding the backstory"""
        state = cls(
            important_entities=list(story.important_entities),
            image_prompt_parameters=story.image_parameters.model_copy(deep=True),
        )
        state.parameters.update(
            {
                BACKSTORY: story.backstory,
                NOVEL_INSTRUCTIONS: story.novel_instructions,
                AUTHOR_STYLE: story.author_style,
                FIRST_INPUT: story.first_input or DEFAULT_FIRST_INPUT,
                NARRATIVE_INSTRUCTIONS: story.narrative_instructions,
                IMAGE_INSTRUCTIONS: story.image_instructions,
                PLOT_PLAN: story.plot_plan or "",
                USER_PROFILE: "",
                SUMMARY_ANALYSIS: "",
                STORY_ARCHIVE: "",
                PREVIOUS_BACKGROUND_PROMPT: "",
                PREVIOUS_PLAYER_PROMPT: "",
            }
        )

        state.turns.append(
            Turn(turn_number=0, writer_response=f"<narrative>\n{story.backstory}\n</narrative>")
        )
        return state

    def snapshot(self) -> "AdventureState":
        return self.model_copy(deep=True)

    def restore(self, snapshot: "AdventureState") -> None:
        """Put the live object back to the snapshot's values"""
        restored = snapshot.model_copy(deep=True)
        for name in type(self).model_fields:
            setattr(self, name, getattr(restored, name))

    def get_last_turn(self) -> Turn:
        return self.turns[-1]

    def get_parameter_or_default(self, name: str, default: str = "") -> str:
        return self.parameters.get(name) or default

    def update_image(self, update: ImageUpdate) -> None:
        """Set the image of a role on the last turn, ignoring exact duplicates"""
        turn = self.get_last_turn()
        if any(
            image.role == update.role
            and image.image_prompt == update.image_prompt
            and image.negative_prompt == update.negative_prompt
            for image in turn.images
        ):
            return
        turn.images = [image for image in turn.images if image.role != update.role]
        turn.images.append(update)

    def make_image_update(self, role: ImageRole, prompt: str, entity_type: str) -> ImageUpdate:
        """Wrap a prompt in the character or items frame"""
        prompts = self.image_prompt_parameters
        if entity_type == "character":
            start, end = prompts.character_start_prompt, prompts.character_end_prompt
            negative = prompts.character_negative_prompt
        else:
            start, end = prompts.items_start_prompt, prompts.items_end_prompt
            negative = prompts.items_negative_prompt
        return ImageUpdate(role=role, image_prompt=start + prompt + end, negative_prompt=negative)

    def find_image(self, role: ImageRole) -> Optional[ImageUpdate]:
        """Most recent image of a role across all turns"""
        for turn in reversed(self.turns):
            for image in turn.images:
                if image.role == role:
                    return image
        return None

    def render_fetched_entities(self, fetch_all: bool = False) -> str:
        """JSON of the entities in context: everything, or important plus fetched ones"""
        if fetch_all:
            return self.memory_graph.render(self.memory_graph.ids())
        return self.memory_graph.render(self.important_entities + self.fetched_entities.ids())
