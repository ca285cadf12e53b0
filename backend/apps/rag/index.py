"""
Nearest-neighbour index over a user's chunks.

The query pipeline only talks to ChunkIndex, so the linear scan below can be
replaced by an approximate index without touching the orchestrator.
"""
from abc import ABC, abstractmethod
from typing import Iterable, List, Sequence

from apps.docs.repository import Chunk
from apps.rag.similarity import RankedChunk, top_k


class ChunkIndex(ABC):
    """Abstract index of embedded chunks."""

    @abstractmethod
    def insert(self, chunk: Chunk) -> None:
        """Add an embedded chunk to the index."""
        pass

    @abstractmethod
    def query(self, vector: Sequence[float], k: int) -> List[RankedChunk]:
        """Return the ``k`` chunks closest to ``vector``, best first."""
        pass

    @abstractmethod
    def __len__(self) -> int:
        """Number of chunks in the index."""
        pass


class LinearScanIndex(ChunkIndex):
    """Exact cosine search over every inserted chunk, in insertion order."""

    def __init__(self, chunks: Iterable[Chunk] = ()):
        self._chunks: List[Chunk] = []
        for chunk in chunks:
            self.insert(chunk)

    def insert(self, chunk: Chunk) -> None:
        self._chunks.append(chunk)

    def query(self, vector: Sequence[float], k: int) -> List[RankedChunk]:
        return top_k(vector, self._chunks, k)

    def __len__(self) -> int:
        return len(self._chunks)
