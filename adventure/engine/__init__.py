"""
Turn engine and memory subsystem
"""

from .memory import MemoryManager
from .memory_graph import FetchedEntities, MemoryGraph
from .memory_store import MemoryChunk, MemoryStore, SearchResult
from .orchestrator import TurnOrchestrator, TurnStatus
from .session import AdventureSession
from .state import AdventureState

__all__ = [
    "AdventureSession",
    "AdventureState",
    "FetchedEntities",
    "MemoryChunk",
    "MemoryGraph",
    "MemoryManager",
    "MemoryStore",
    "SearchResult",
    "TurnOrchestrator",
    "TurnStatus",
]
