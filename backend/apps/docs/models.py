"""
Document and chunk models for DocuQuery.

Documents and their text chunks are written by the ingestion path; the query
pipeline only reads them and fills in missing chunk embeddings.
"""
import uuid
from django.db import models


class Document(models.Model):
    """
    A document uploaded by a user.

    Only the metadata needed for ownership and display lives here; the text
    itself is stored as DocumentChunk rows.
    """
    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)

    # Owner is the token 'sub' claim (user ID)
    owner_user_id = models.CharField(
        max_length=255,
        db_index=True,
        help_text="User ID (sub claim) of the owner"
    )

    filename = models.CharField(
        max_length=255,
        help_text="Original filename"
    )

    # SHA-256 of the uploaded file, used by ingestion to skip duplicates
    content_hash = models.CharField(
        max_length=64,
        blank=True,
        default='',
        help_text="SHA-256 hash of file content"
    )

    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        db_table = 'documents'
        ordering = ['-created_at']
        indexes = [
            models.Index(fields=['owner_user_id', 'content_hash'], name='documents_owner_hash_idx'),
        ]

    def __str__(self):
        return self.filename


class DocumentChunk(models.Model):
    """
    A text chunk from a document with its (optional) embedding vector.

    ``embedding`` stays null until the first query that needs it computes
    and stores it.
    """
    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)

    document = models.ForeignKey(
        Document,
        on_delete=models.CASCADE,
        related_name='chunks',
        help_text="The source document"
    )

    # Denormalised owner so every read can be filtered without a join
    owner_user_id = models.CharField(
        max_length=255,
        db_index=True,
        help_text="User ID (sub claim) of the owner"
    )

    text = models.TextField(
        help_text="The text content of this chunk"
    )

    # List of floats; dimension depends on the embedding model
    embedding = models.JSONField(
        null=True,
        blank=True,
        help_text="Embedding vector, filled lazily on first query"
    )

    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        db_table = 'doc_chunks'
        ordering = ['created_at', 'id']

    def __str__(self):
        preview = self.text[:50] + '...' if len(self.text) > 50 else self.text
        return f"Chunk {self.id}: {preview}"
