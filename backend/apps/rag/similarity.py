"""
Cosine similarity ranking over in-memory vectors.

Pure functions, no I/O.
"""
import math
from dataclasses import dataclass
from typing import List, Sequence

from apps.docs.repository import Chunk

# Decimal places kept on reported similarity scores
SIMILARITY_PRECISION = 6


@dataclass
class RankedChunk:
    """A chunk with its similarity to the query."""
    id: str
    document_id: str
    text: str
    similarity: float


def cosine_similarity(a: Sequence[float], b: Sequence[float]) -> float:
    """
    Cosine of the angle between ``a`` and ``b``.

    Returns exactly 0.0 when the dimensions differ or either vector has
    zero magnitude.
    """
    if len(a) != len(b):
        return 0.0

    dot = 0.0
    mag_a = 0.0
    mag_b = 0.0
    for x, y in zip(a, b):
        dot += x * y
        mag_a += x * x
        mag_b += y * y

    mag_a = math.sqrt(mag_a)
    mag_b = math.sqrt(mag_b)
    if mag_a == 0 or mag_b == 0:
        return 0.0
    return dot / (mag_a * mag_b)


def top_k(query_vector: Sequence[float], chunks: Sequence[Chunk], k: int) -> List[RankedChunk]:
    """
    Rank chunks by cosine similarity to ``query_vector``.

    Chunks without a vector, or whose vector dimension differs from the
    query's, are skipped. Equal scores keep their input order.

    Args:
        query_vector: Embedding of the question
        chunks: Candidate chunks (embedded)
        k: Maximum number of results

    Returns:
        At most ``k`` RankedChunk objects, best first
    """
    if k <= 0:
        return []

    scored = []
    for chunk in chunks:
        if not chunk.has_embedding or len(chunk.embedding) != len(query_vector):
            continue
        scored.append((chunk, cosine_similarity(query_vector, chunk.embedding)))

    # sorted() is stable, so ties stay in input order
    scored = sorted(scored, key=lambda pair: pair[1], reverse=True)

    return [
        RankedChunk(
            id=chunk.id,
            document_id=chunk.document_id,
            text=chunk.text,
            similarity=round(score, SIMILARITY_PRECISION),
        )
        for chunk, score in scored[:k]
    ]
