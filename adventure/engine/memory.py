"""
Memory manager keeping the entity graph and the semantic stores in sync
"""

from typing import Iterable, List, Optional

from langchain_core.embeddings import Embeddings

from adventure.config import Settings, settings
from adventure.engine.memory_graph import MemoryGraph
from adventure.engine.memory_store import MemoryStore, SearchResult
from adventure.engine.vector_index import create_chroma_client
from adventure.schemas import MemoryGraphUpdate, Turn
from adventure.utils.logger import get_logger

logger = get_logger(__name__)


class MemoryManager:
    """Entity and narrative memory stores of one adventure session"""

    def __init__(self, session_id: str, embeddings: Embeddings, config: Settings = settings):
        self.session_id = session_id
        self.config = config
        self.embeddings = embeddings
        self.client = create_chroma_client()
        self.entity_store = self._create_store("entities")
        self.narrative_store = self._create_store("narrative")

    def _create_store(self, name: str) -> MemoryStore:
        return MemoryStore(
            name,
            self.embeddings,
            self.config.narrative_chunk_min_length,
            self.config.narrative_chunk_target_length,
            self.config.narrative_chunk_max_length,
            client=self.client,
            retry_count=self.config.transport_retry_count,
        )

    def reset_narrative(self) -> None:
        """Forget every indexed passage, used when the session switches to another story state"""
        self.narrative_store.close()
        self.narrative_store = self._create_store("narrative")
        logger.info(f"[Memory] Session {self.session_id}: narrative memory reset")

    async def update_memory_graph(self, graph: MemoryGraph, update: MemoryGraphUpdate) -> List[str]:
        """
        Merge an update into the graph and re-index the touched entities.

        The merge is staged on a copy and applied only after indexing, so a
        failed embedding request leaves the graph untouched.
        """
        staged = graph.model_copy(deep=True)
        touched = staged.apply_update(update)
        changed = await self.entity_store.upsert_entities(staged.entities[i] for i in touched)
        graph.entities = staged.entities
        logger.debug(
            f"[Memory] Session {self.session_id}: merged {len(touched)} entities, "
            f"re-indexed {len(changed)}"
        )
        return touched

    async def sync_entities(self, graph: MemoryGraph) -> None:
        """Make the entity store match the graph exactly"""
        removed = 0
        for chunk_id in self.entity_store.chunk_ids():
            if chunk_id not in graph:
                self.entity_store.remove(chunk_id)
                removed += 1
        changed = await self.entity_store.upsert_entities(graph.entities.values())
        logger.info(
            f"[Memory] Session {self.session_id}: entity store synced "
            f"({len(changed)} re-indexed, {removed} removed)"
        )

    async def index_turn(self, turn: Turn) -> int:
        return await self.narrative_store.upsert_narrative(turn.turn_number, turn.get_narrative())

    async def backfill_narratives(self, turns: List[Turn], archived_before: int) -> int:
        """Index turns older than the archived window that were never indexed"""
        indexed = 0
        for turn in turns[: max(archived_before, 0)]:
            if self.narrative_store.is_turn_known(turn.turn_number):
                continue
            await self.index_turn(turn)
            indexed += 1
        if indexed:
            logger.info(f"[Memory] Session {self.session_id}: indexed {indexed} archived turns")
        return indexed

    async def search_entities(
        self, queries: List[str], k: int, exclude_ids: Optional[Iterable[str]] = None
    ) -> List[SearchResult]:
        return await self.entity_store.search_multiple(queries, k, exclude_ids)

    async def search_narrative(
        self, queries: List[str], k: int, exclude_turns: Iterable[int] = ()
    ) -> List[SearchResult]:
        exclude = self.narrative_store.chunk_ids_for_turns(exclude_turns)
        return await self.narrative_store.search_multiple(queries, k, exclude)

    def close(self) -> None:
        self.entity_store.close()
        self.narrative_store.close()


def format_search_result(result: SearchResult) -> str:
    """Render a narrative hit as ``Turn N pI: text``"""
    paragraph_id = result.chunk.meta.paragraph_id
    if paragraph_id is not None:
        return f"Turn {paragraph_id[0]} p{paragraph_id[1]}: {result.chunk.text}"
    return result.chunk.text
