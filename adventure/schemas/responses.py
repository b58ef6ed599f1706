"""
Structured responses expected from the JSON-mode phases
"""

from typing import Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field

from .adventure import EntityUpdate


class MemoryFetchResponse(BaseModel):
    """Entities to pull into context and free-text memory queries"""

    model_config = ConfigDict(extra="ignore")

    entities: List[str] = Field(default_factory=list)
    search: List[str] = Field(default_factory=list)


class MemoryUpdateResponse(BaseModel):
    """Entity changes and image prompts derived from the latest narrative"""

    model_config = ConfigDict(extra="ignore", populate_by_name=True)

    feedback: str = ""
    new_entities: Optional[Dict[str, EntityUpdate]] = Field(default=None, alias="newEntities")
    updates: Optional[Dict[str, EntityUpdate]] = None
    background_prompt: str = Field(default="", alias="backgroundPrompt")
    illustration_type: str = Field(default="", alias="illustrationType")
    illustration_id: str = Field(default="", alias="illustrationId")
    illustration_prompt: str = Field(default="", alias="illustrationPrompt")
    player_portrait_prompt: str = Field(default="", alias="playerPortraitPrompt")


class SummaryResponse(BaseModel):
    """Archive summary and rolling plot/user parameters"""

    model_config = ConfigDict(extra="ignore", populate_by_name=True)

    summary: str = ""
    analysis: str = ""
    plot_plan: str = Field(default="", alias="plotPlan")
    user_profile: str = Field(default="", alias="userProfile")
