"""
Data models and validation for the adventure engine
"""

from .adventure import (
    ENTITY_FIELDS,
    TURN_CANCELLED_MARKER,
    Entity,
    EntityUpdate,
    ImagePromptParameters,
    ImageRole,
    ImageUpdate,
    MemoryGraphUpdate,
    StoryStartingParameters,
    Turn,
    TurnFeedback,
    UserInput,
)
from .responses import MemoryFetchResponse, MemoryUpdateResponse, SummaryResponse
from .validation import PhaseError, TurnValidationResult, parse_json_response

__all__ = [
    # Adventure data model
    "Entity",
    "EntityUpdate",
    "MemoryGraphUpdate",
    "ImageRole",
    "ImageUpdate",
    "UserInput",
    "TurnFeedback",
    "Turn",
    "ImagePromptParameters",
    "StoryStartingParameters",
    "TURN_CANCELLED_MARKER",
    "ENTITY_FIELDS",
    # Phase responses
    "MemoryFetchResponse",
    "MemoryUpdateResponse",
    "SummaryResponse",
    # Validation
    "PhaseError",
    "TurnValidationResult",
    "parse_json_response",
]
