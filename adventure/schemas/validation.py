"""
Validation results shared by phases, the orchestrator and the session
"""

import json
from typing import List, Literal, Optional, Type, TypeVar

from pydantic import BaseModel, Field
from pydantic import ValidationError as PydanticValidationError

from adventure.utils.sections import strip_code_fences

ErrorKind = Literal[
    "validation", "empty_response", "memory_consistency", "transport", "internal"
]

ModelT = TypeVar("ModelT", bound=BaseModel)


class PhaseError(BaseModel):
    """One structured error produced while running a phase"""

    kind: ErrorKind = "validation"
    message: str

    def __str__(self) -> str:
        return self.message


class TurnValidationResult(BaseModel):
    """Outcome of a phase or a whole turn: success when no errors were collected"""

    errors: List[PhaseError] = Field(default_factory=list)

    def is_success(self) -> bool:
        return len(self.errors) == 0

    def is_failed(self) -> bool:
        return len(self.errors) > 0

    def add_error(self, message: str, kind: ErrorKind = "validation") -> None:
        self.errors.append(PhaseError(kind=kind, message=message))

    def extend(self, other: "TurnValidationResult") -> None:
        self.errors.extend(other.errors)

    def messages(self) -> List[str]:
        return [error.message for error in self.errors]

    def has_kind(self, kind: ErrorKind) -> bool:
        return any(error.kind == kind for error in self.errors)


def format_pydantic_errors(error: PydanticValidationError) -> List[str]:
    """Flatten a pydantic ValidationError into readable lines"""
    lines = []
    for item in error.errors():
        location = ".".join(str(part) for part in item.get("loc", ())) or "response"
        lines.append(f"{location}: {item.get('msg', 'invalid value')}")
    return lines


def parse_json_response(
    text: str, model: Type[ModelT], result: TurnValidationResult
) -> Optional[ModelT]:
    """
    Parse a JSON model response into ``model``.

    Decoding and schema problems are recorded in ``result`` instead of raised.
    """
    try:
        data = json.loads(strip_code_fences(text))
    except json.JSONDecodeError as e:
        result.add_error(f"Failed to parse response: {e}")
        return None

    if not isinstance(data, dict):
        result.add_error("Failed to parse response: expected a JSON object")
        return None

    try:
        return model.model_validate(data)
    except PydanticValidationError as e:
        for line in format_pydantic_errors(e):
            result.add_error(line)
        return None
