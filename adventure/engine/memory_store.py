"""
Semantic memory store: chunks of entity and narrative text with embeddings.

Every chunk maps to exactly one vector index row. Re-adding a chunk id
replaces its row, the old row is deleted from the index and never reused.
"""

import re
from typing import Any, Awaitable, Callable, Dict, Iterable, List, Literal, Optional, Set, Tuple

from chromadb.api import ClientAPI
from langchain_core.embeddings import Embeddings
from pydantic import BaseModel

from adventure.engine.vector_index import VectorIndex, create_chroma_client
from adventure.errors import TransportError
from adventure.schemas import Entity
from adventure.utils.logger import get_logger

logger = get_logger(__name__)

_PARAGRAPH_BREAK = re.compile(r"\n\s*\n")


class ChunkMeta(BaseModel):
    type: Literal["entity", "narrative"]
    paragraph_id: Optional[Tuple[int, int]] = None


class MemoryChunk(BaseModel):
    chunk_id: str
    text: str
    meta: ChunkMeta


class SearchResult(BaseModel):
    chunk: MemoryChunk
    distance: float


def entity_to_chunk(entity: Entity) -> MemoryChunk:
    return MemoryChunk(
        chunk_id=entity.id,
        text=entity.searchable_text(),
        meta=ChunkMeta(type="entity"),
    )


def _split_words(paragraph: str, max_length: int) -> List[str]:
    """Split an over-long paragraph on word boundaries"""
    pieces: List[str] = []
    current = ""
    for word in paragraph.split(" "):
        while len(word) > max_length:
            if current:
                pieces.append(current)
                current = ""
            pieces.append(word[:max_length])
            word = word[max_length:]
        candidate = f"{current} {word}" if current else word
        if len(candidate) > max_length:
            pieces.append(current)
            current = word
        else:
            current = candidate
    if current:
        pieces.append(current)
    return pieces


def split_narrative(
    narrative: str, min_length: int = 400, target_length: int = 1200, max_length: int = 2000
) -> List[str]:
    """
    Group narrative paragraphs into chunks of roughly ``target_length`` chars.

    Paragraphs are separated by blank lines and have their inner newlines
    collapsed. A chunk never grows past ``max_length`` by grouping. A trailing
    remainder shorter than ``min_length`` is still merged into the previous
    chunk, and that merge wins over ``max_length``: the last chunk can reach
    ``max_length + min_length`` characters.
    """
    paragraphs = [
        " ".join(part.split("\n")).strip() for part in _PARAGRAPH_BREAK.split(narrative)
    ]
    pieces: List[str] = []
    for paragraph in paragraphs:
        if not paragraph:
            continue
        if len(paragraph) > max_length:
            pieces.extend(_split_words(paragraph, max_length))
        else:
            pieces.append(paragraph)

    chunks: List[str] = []
    current = ""
    for piece in pieces:
        candidate = f"{current}\n\n{piece}" if current else piece
        if current and len(candidate) > max_length:
            chunks.append(current)
            current = piece
        else:
            current = candidate
        if len(current) >= target_length:
            chunks.append(current)
            current = ""

    if current:
        if chunks and len(current) < min_length:
            chunks[-1] = f"{chunks[-1]}\n\n{current}"
        else:
            chunks.append(current)
    return chunks


def narrative_to_chunks(
    turn_number: int,
    narrative: str,
    min_length: int = 400,
    target_length: int = 1200,
    max_length: int = 2000,
) -> List[MemoryChunk]:
    return [
        MemoryChunk(
            chunk_id=f"narrative-{turn_number}-{index}",
            text=text,
            meta=ChunkMeta(type="narrative", paragraph_id=(turn_number, index + 1)),
        )
        for index, text in enumerate(
            split_narrative(narrative, min_length, target_length, max_length)
        )
    ]


class MemoryStore:
    """Chunk registry plus vector index for one kind of memory"""

    def __init__(
        self,
        name: str,
        embeddings: Embeddings,
        chunk_min_length: int = 400,
        chunk_target_length: int = 1200,
        chunk_max_length: int = 2000,
        client: Optional[ClientAPI] = None,
        retry_count: int = 1,
    ):
        self.name = name
        self.embeddings = embeddings
        self.chunk_min_length = chunk_min_length
        self.chunk_target_length = chunk_target_length
        self.chunk_max_length = chunk_max_length
        self.retry_count = retry_count

        self.index = VectorIndex(name, client or create_chroma_client())
        self._chunks: Dict[str, MemoryChunk] = {}
        self._rows: Dict[str, int] = {}
        self._row_chunks: Dict[int, str] = {}
        self._known_turns: Set[int] = set()

    @property
    def size(self) -> int:
        return len(self._rows)

    def get(self, chunk_id: str) -> Optional[MemoryChunk]:
        return self._chunks.get(chunk_id)

    def chunk_ids(self) -> List[str]:
        return list(self._chunks.keys())

    async def _embed(self, call: Callable[[Any], Awaitable[Any]], payload: Any) -> Any:
        """
        Call the embedding provider, retrying failed requests.

        Raises:
            TransportError: when every attempt failed
        """
        for attempt in range(1, self.retry_count + 1):
            try:
                return await call(payload)
            except Exception as e:
                if attempt >= self.retry_count:
                    raise TransportError(f"Embedding request for {self.name} memory failed: {e}") from e
                logger.warning(
                    f"[MemoryStore] {self.name}: embedding error (attempt {attempt}/{self.retry_count}): {e}"
                )

    async def add_chunks(self, chunks: List[MemoryChunk]) -> None:
        """Embed and index chunks, replacing rows of chunk ids already present"""
        if not chunks:
            return
        vectors = await self._embed(
            self.embeddings.aembed_documents, [chunk.text for chunk in chunks]
        )
        for chunk, vector in zip(chunks, vectors):
            self.remove(chunk.chunk_id)
            row = self.index.add(vector)
            self._chunks[chunk.chunk_id] = chunk
            self._rows[chunk.chunk_id] = row
            self._row_chunks[row] = chunk.chunk_id

    async def upsert_entities(self, entities: Iterable[Entity]) -> List[str]:
        """Index entities whose searchable text changed, returning their ids"""
        changed = []
        for entity in entities:
            chunk = entity_to_chunk(entity)
            existing = self._chunks.get(chunk.chunk_id)
            if existing is not None and existing.text == chunk.text:
                continue
            changed.append(chunk)
        await self.add_chunks(changed)
        return [chunk.chunk_id for chunk in changed]

    async def upsert_entity(self, entity: Entity) -> bool:
        return bool(await self.upsert_entities([entity]))

    async def upsert_narrative(self, turn_number: int, narrative: str) -> int:
        """Chunk and index the narrative of a turn, returning the chunk count"""
        chunks = narrative_to_chunks(
            turn_number,
            narrative,
            self.chunk_min_length,
            self.chunk_target_length,
            self.chunk_max_length,
        )
        for chunk_id in self.chunk_ids_for_turns([turn_number]):
            self.remove(chunk_id)
        await self.add_chunks(chunks)
        self._known_turns.add(turn_number)
        return len(chunks)

    def is_turn_known(self, turn_number: int) -> bool:
        return turn_number in self._known_turns

    def remove(self, chunk_id: str) -> bool:
        row = self._rows.pop(chunk_id, None)
        self._chunks.pop(chunk_id, None)
        if row is None:
            return False
        self._row_chunks.pop(row, None)
        self.index.remove(row)
        return True

    def chunk_ids_for_turns(self, turn_numbers: Iterable[int]) -> Set[str]:
        turns = set(turn_numbers)
        return {
            chunk_id
            for chunk_id, chunk in self._chunks.items()
            if chunk.meta.paragraph_id is not None and chunk.meta.paragraph_id[0] in turns
        }

    async def search(self, query: str, k: int) -> List[SearchResult]:
        """Nearest chunks to ``query``, closest first"""
        if self.size < 2:
            return []
        vector = await self._embed(self.embeddings.aembed_query, query)
        results = []
        for row, distance in self.index.search(vector, min(k, self.size - 1)):
            chunk_id = self._row_chunks.get(row)
            if chunk_id is None:
                continue
            results.append(SearchResult(chunk=self._chunks[chunk_id], distance=distance))
        return results

    async def search_multiple(
        self, queries: List[str], k: int, exclude_ids: Optional[Iterable[str]] = None
    ) -> List[SearchResult]:
        """
        Search several queries at once.

        Each query asks for extra results to make up for excluded chunks. The
        merged list keeps the closest hit per chunk id and is cut to ``k``.
        """
        exclude = set(exclude_ids or ())
        merged: List[SearchResult] = []
        for query in queries:
            hits = await self.search(query, k + len(exclude))
            merged.extend(hit for hit in hits if hit.chunk.chunk_id not in exclude)

        merged.sort(key=lambda hit: hit.distance)
        best: Dict[str, SearchResult] = {}
        for hit in merged:
            if hit.chunk.chunk_id not in best:
                best[hit.chunk.chunk_id] = hit
        return sorted(best.values(), key=lambda hit: hit.distance)[:k]

    def close(self) -> None:
        self.index.drop()
        self._chunks.clear()
        self._rows.clear()
        self._row_chunks.clear()
        self._known_turns.clear()
