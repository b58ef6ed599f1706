"""
Read-only memory tools the writer model may call while generating a turn
"""

import json
from typing import Any, Dict, List, Optional, Set, Type

from langchain_core.messages import ToolMessage
from langchain_core.tools import BaseTool
from pydantic import BaseModel, Field

from adventure.config import Settings, settings
from adventure.engine.memory import MemoryManager, format_search_result
from adventure.engine.state import AdventureState
from adventure.utils.logger import get_logger

logger = get_logger(__name__)


class SearchMemoryInput(BaseModel):
    query: str = Field(description="What to look for, in a few words")


class GetEntityInput(BaseModel):
    id: str = Field(description="Entity id")


class MemoryTools:
    """Builds the memory tools for one session and executes model tool calls"""

    def __init__(self, state: AdventureState, memory: MemoryManager, config: Settings = settings):
        self.state = state
        self.memory = memory
        self.config = config
        # Turns whose text is already in the prompt, excluded from narrative search
        self.visible_turns: Set[int] = set()
        self.tools: List[BaseTool] = [
            self._create_search_memory_tool(),
            self._create_get_entity_tool(),
        ]
        self._by_name: Dict[str, BaseTool] = {tool.name: tool for tool in self.tools}

    async def search_memory(self, query: str) -> Dict[str, Any]:
        entity_hits = await self.memory.search_entities([query], self.config.entity_search_results)
        narrative_hits = await self.memory.search_narrative(
            [query], self.config.narrative_search_results, self.visible_turns
        )
        entities = []
        for hit in entity_hits:
            entity = self.state.memory_graph.get(hit.chunk.chunk_id)
            if entity is not None:
                entities.append(entity.model_dump(exclude_none=True))
        return {
            "entities": entities,
            "narrative": [format_search_result(hit) for hit in narrative_hits],
        }

    def get_entity(self, entity_id: str) -> Dict[str, Any]:
        entity = self.state.memory_graph.get(entity_id)
        if entity is None:
            return {"error": f"Entity '{entity_id}' not found"}
        return entity.model_dump(exclude_none=True)

    def _create_search_memory_tool(self) -> BaseTool:
        """Create tool for semantic memory search"""

        class SearchMemoryTool(BaseTool):
            name: str = "search_memory"
            description: str = (
                "Search the story memory for entities and earlier passages related to a query."
            )
            args_schema: Type[BaseModel] = SearchMemoryInput
            owner: Any = None

            def _run(self, query: str) -> str:
                return json.dumps({"error": "search_memory can only run asynchronously"})

            async def _arun(self, query: str) -> str:
                result = await self.owner.search_memory(query)
                return json.dumps(result, ensure_ascii=False)

        return SearchMemoryTool(owner=self)

    def _create_get_entity_tool(self) -> BaseTool:
        """Create tool for reading one entity"""

        class GetEntityTool(BaseTool):
            name: str = "get_entity"
            description: str = "Get everything the story memory knows about an entity by id."
            args_schema: Type[BaseModel] = GetEntityInput
            owner: Any = None

            def _run(self, id: str) -> str:
                return json.dumps(self.owner.get_entity(id), ensure_ascii=False)

            async def _arun(self, id: str) -> str:
                return self._run(id)

        return GetEntityTool(owner=self)

    async def execute(self, tool_call: Dict[str, Any]) -> ToolMessage:
        """Run one tool call. Failures are reported to the model, never raised."""
        name = tool_call.get("name", "")
        call_id = tool_call.get("id") or ""
        tool: Optional[BaseTool] = self._by_name.get(name)

        if tool is None:
            content = json.dumps({"error": f"Unknown tool '{name}'"})
        else:
            try:
                content = await tool.ainvoke(tool_call.get("args") or {})
            except Exception as e:
                logger.error(f"[Tools] Tool '{name}' failed: {e}")
                content = json.dumps({"error": f"Tool execution error: {e}"})

        logger.debug(f"[Tools] {name}({tool_call.get('args')}) -> {len(str(content))} chars")
        return ToolMessage(content=str(content), tool_call_id=call_id, name=name)
