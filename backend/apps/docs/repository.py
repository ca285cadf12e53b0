"""
Chunk repository for the query pipeline.

Two handles with different capabilities:

- ChunkRepository: reads, always filtered by the owner's user id.
- EmbeddingWriter: patches only the ``embedding`` column, only for chunk ids
  a ChunkRepository has already loaded for the same owner, over its own
  database alias.
"""
import logging
from dataclasses import dataclass
from typing import Iterable, List, Optional, Sequence

from django.conf import settings
from django.db import DatabaseError

from apps.rag.errors import StorageError
from .models import DocumentChunk

logger = logging.getLogger(__name__)


@dataclass
class Chunk:
    """A user's text chunk as seen by the query pipeline."""
    id: str
    document_id: str
    owner_id: str
    text: str
    embedding: Optional[List[float]] = None

    @property
    def has_embedding(self) -> bool:
        """True when a non-empty vector is stored."""
        return isinstance(self.embedding, list) and len(self.embedding) > 0


class EmbeddingWriter:
    """Narrow write handle used by the lazy embedding repair."""

    def __init__(self, owner_id: str, chunk_ids: Iterable[str], using: str):
        self.owner_id = owner_id
        self.using = using
        self._chunk_ids = frozenset(chunk_ids)

    def write_embedding(self, chunk_id: str, vector: Sequence[float]) -> None:
        """
        Persist a computed embedding for one chunk.

        Raises:
            StorageError: If the chunk was not confirmed for this owner,
                or the update fails
        """
        if chunk_id not in self._chunk_ids:
            logger.error(
                f"Refusing embedding write for unconfirmed chunk {chunk_id} "
                f"(owner {self.owner_id})"
            )
            raise StorageError("Chunk is not writable by this handle")

        try:
            updated = DocumentChunk.objects.using(self.using).filter(
                id=chunk_id, owner_user_id=self.owner_id
            ).update(embedding=[float(x) for x in vector])
        except DatabaseError as e:
            logger.error(f"Embedding write failed for chunk {chunk_id}: {e}")
            raise StorageError("Failed to store embedding", detail=str(e))

        if updated != 1:
            logger.warning(f"Embedding write matched {updated} rows for chunk {chunk_id}")


class ChunkRepository:
    """Owner-scoped read access to stored chunks."""

    def __init__(self, owner_id: str, using: str = 'default'):
        self.owner_id = owner_id
        self.using = using
        self._loaded_ids = set()

    def load_chunks(self) -> List[Chunk]:
        """
        Return every chunk owned by the user, oldest first.

        This is a full scan of the user's chunks; there is no paging.

        Raises:
            StorageError: If the query fails
        """
        try:
            rows = list(
                DocumentChunk.objects.using(self.using)
                .filter(owner_user_id=self.owner_id)
                .order_by('created_at', 'id')
                .values_list('id', 'document_id', 'owner_user_id', 'text', 'embedding')
            )
        except DatabaseError as e:
            logger.error(f"Chunk fetch failed for user {self.owner_id}: {e}")
            raise StorageError("Failed to load chunks", detail=str(e))

        chunks = [
            Chunk(
                id=str(chunk_id),
                document_id=str(document_id),
                owner_id=owner,
                text=text,
                embedding=embedding,
            )
            for chunk_id, document_id, owner, text, embedding in rows
        ]
        self._loaded_ids.update(c.id for c in chunks)
        return chunks

    def embedding_writer(self, chunks: Iterable[Chunk]) -> EmbeddingWriter:
        """
        Build a writer limited to ``chunks``.

        Every chunk must have been returned by this repository's
        load_chunks() and belong to its owner.
        """
        chunk_ids = []
        for chunk in chunks:
            if chunk.owner_id != self.owner_id or chunk.id not in self._loaded_ids:
                raise StorageError("Chunk does not belong to the requesting user")
            chunk_ids.append(chunk.id)

        using = getattr(settings, 'RAG_EMBEDDING_WRITE_DATABASE', 'default')
        return EmbeddingWriter(self.owner_id, chunk_ids, using=using)
