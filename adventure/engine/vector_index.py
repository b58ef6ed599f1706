"""
Nearest-neighbour index over embedding vectors, backed by a chromadb collection.

Rows are integers handed out in insertion order and never reused. Removing a
row deletes it from the collection so it can no longer be returned by a search.
"""

import uuid
from typing import List, Sequence, Tuple

import chromadb
from chromadb.api import ClientAPI
from chromadb.config import Settings as ChromaSettings

from adventure.utils.logger import get_logger

logger = get_logger(__name__)


def create_chroma_client() -> ClientAPI:
    """In-process chromadb client, owned by the memory of one session"""
    return chromadb.EphemeralClient(settings=ChromaSettings(anonymized_telemetry=False))


class VectorIndex:
    """Append-only vector index with L2 distance"""

    def __init__(self, name: str, client: ClientAPI):
        self.name = name
        self.collection_name = f"{name}-{uuid.uuid4().hex}"
        self._client = client
        self._collection = self._client.create_collection(
            name=self.collection_name,
            metadata={"hnsw:space": "l2"},
            embedding_function=None,
        )
        self._next_row = 0
        self._dropped = False
        logger.debug(f"[VectorIndex] Created collection '{self.collection_name}'")

    @property
    def size(self) -> int:
        return self._collection.count()

    def add(self, vector: Sequence[float]) -> int:
        """Add a vector and return its row number"""
        row = self._next_row
        self._next_row += 1
        self._collection.add(ids=[str(row)], embeddings=[list(vector)])
        return row

    def search(self, vector: Sequence[float], k: int) -> List[Tuple[int, float]]:
        """Return up to ``k`` (row, distance) pairs, closest first"""
        if k <= 0 or self.size == 0:
            return []
        k = min(k, self.size)
        result = self._collection.query(
            query_embeddings=[list(vector)],
            n_results=k,
            include=["distances"],
        )
        ids = result["ids"][0] if result["ids"] else []
        distances = result["distances"][0] if result.get("distances") else []
        return [(int(row_id), float(distance)) for row_id, distance in zip(ids, distances)]

    def remove(self, row: int) -> None:
        self._collection.delete(ids=[str(row)])

    def drop(self) -> None:
        """Delete the underlying collection"""
        if self._dropped:
            return
        self._client.delete_collection(self.collection_name)
        self._dropped = True
        logger.debug(f"[VectorIndex] Dropped collection '{self.collection_name}'")
