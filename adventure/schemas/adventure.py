"""
Adventure data model: entities, turns, images and story parameters
"""

from typing import Dict, List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field

from adventure.utils.sections import find_partial_section, find_section

ImageRole = Literal["player", "background", "illustration"]

TURN_CANCELLED_MARKER = "<TURN CANCELLED>"

# Fields of an entity that may be merged by an update
ENTITY_FIELDS = ("type", "name", "brief", "appearance", "clothes", "info", "secret", "state")


class Entity(BaseModel):
    """A persistent world object or character tracked in the memory graph"""

    model_config = ConfigDict(extra="ignore")

    id: str
    type: str = "entity"
    name: str = ""
    brief: Optional[str] = None
    appearance: Optional[str] = None
    clothes: Optional[str] = None
    info: Optional[str] = None
    secret: Optional[str] = None
    state: Optional[str] = None

    def searchable_text(self) -> str:
        """Text embedded for semantic search"""
        text = "\n".join(part for part in (self.info, self.secret) if part)
        return text or self.name or self.id


class EntityUpdate(BaseModel):
    """Partial entity as produced by the model"""

    model_config = ConfigDict(extra="ignore")

    id: Optional[str] = None
    type: Optional[str] = None
    name: Optional[str] = None
    brief: Optional[str] = None
    appearance: Optional[str] = None
    clothes: Optional[str] = None
    info: Optional[str] = None
    secret: Optional[str] = None
    state: Optional[str] = None


MemoryGraphUpdate = Dict[str, EntityUpdate]


class ImageUpdate(BaseModel):
    """Image request for one of the three image slots"""

    role: ImageRole
    image_prompt: str
    negative_prompt: str = ""


class UserInput(BaseModel):
    """Player input for a turn"""

    action: Optional[str] = None
    out_of_character: Optional[str] = None
    error: Optional[str] = None
    error_details: Optional[List[str]] = None


class TurnFeedback(BaseModel):
    """Player rating of a turn"""

    feedback_type: Literal["like", "dislike"]
    comment: str = ""


class Turn(BaseModel):
    """One player-input/narrative-output cycle"""

    turn_number: int
    writer_response: str = ""
    suggested_actions: str = ""
    user_input: Optional[UserInput] = None
    illustration_type: str = ""
    illustration_id: str = ""
    images: List[ImageUpdate] = Field(default_factory=list)
    feedback: Optional[TurnFeedback] = None
    critic_feedback: Optional[str] = None
    cancelled: bool = False

    def get_narrative(self, partial: bool = False) -> str:
        """Narrative section of the writer response"""
        if self.cancelled:
            return TURN_CANCELLED_MARKER
        if partial:
            return find_partial_section(self.writer_response, "narrative") or ""
        narrative, _ = find_section(self.writer_response, "narrative")
        return narrative or ""

    def get_notes(self) -> str:
        notes, _ = find_section(self.writer_response, "notes")
        return notes or ""

    def to_client(self, partial: bool = True) -> Dict:
        """Payload sent to collaborators, with the narrative extracted"""
        data = self.model_dump(mode="json")
        data["narrative"] = self.get_narrative(partial=partial)
        return data


class ImagePromptParameters(BaseModel):
    """Prompt frames wrapped around model-written image prompts"""

    model: str = ""
    character_start_prompt: str = ""
    character_end_prompt: str = ""
    character_negative_prompt: str = ""
    items_start_prompt: str = ""
    items_end_prompt: str = ""
    items_negative_prompt: str = ""


class StoryStartingParameters(BaseModel):
    """Everything needed to start a new adventure"""

    backstory: str
    novel_instructions: str = ""
    author_style: str = ""
    first_input: str = ""
    narrative_instructions: str = ""
    image_instructions: str = ""
    plot_plan: Optional[str] = None
    entities: List[Entity] = Field(default_factory=list)
    important_entities: List[str] = Field(default_factory=list)
    image_parameters: ImagePromptParameters = Field(default_factory=ImagePromptParameters)
