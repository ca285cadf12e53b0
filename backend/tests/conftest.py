"""
Shared fixtures for the RAG query pipeline tests.

Provides deterministic fake embedding/generation clients, token helpers and
factories for stored documents and chunks.
"""
import threading
import time
from datetime import datetime, timedelta, timezone
from typing import Dict, List, Optional, Sequence

import jwt
import pytest

from apps.docs.models import Document, DocumentChunk
from apps.rag.embeddings import BaseEmbeddingClient, EmbeddingError, TaskType
from apps.rag.llm_client import BaseLLMClient, GenerationError


TEST_JWT_SECRET = "test-secret-with-enough-length-for-hs256"


class FakeEmbedder(BaseEmbeddingClient):
    """Embedding client that returns fixed vectors per text."""

    def __init__(
        self,
        vectors: Optional[Dict[str, List[float]]] = None,
        default: Optional[List[float]] = None,
        fail_on: Sequence[str] = (),
        fail_all: bool = False,
        delay: float = 0.0,
    ):
        self.vectors = vectors or {}
        self.default = default or [0.0, 0.0, 1.0]
        self.fail_on = set(fail_on)
        self.fail_all = fail_all
        self.delay = delay
        self.calls = []
        self.batch_calls = []
        self.active = 0
        self.max_active = 0
        self._lock = threading.Lock()

    @property
    def model_name(self) -> str:
        return "fake-embed"

    def embed(self, text: str, task_type: TaskType = TaskType.QUERY) -> List[float]:
        with self._lock:
            self.calls.append((text, task_type))
            self.active += 1
            self.max_active = max(self.max_active, self.active)
        try:
            if self.delay:
                time.sleep(self.delay)
            if self.fail_all or text in self.fail_on:
                raise EmbeddingError("Embedding error: 500", detail="provider exploded")
            return list(self.vectors.get(text, self.default))
        finally:
            with self._lock:
                self.active -= 1

    def embed_batch(self, texts, concurrency_limit=5, task_type=TaskType.DOCUMENT):
        self.batch_calls.append((list(texts), concurrency_limit, task_type))
        return super().embed_batch(texts, concurrency_limit, task_type)


class FakeGenerator(BaseLLMClient):
    """Generation client that returns a canned answer."""

    def __init__(self, answer: str = "Grounded answer.", fail: bool = False):
        self.answer = answer
        self.fail = fail
        self.calls = []

    @property
    def model_name(self) -> str:
        return "fake-llm"

    def generate(self, system_prompt: str, user_message: str) -> str:
        self.calls.append((system_prompt, user_message))
        if self.fail:
            raise GenerationError("Gemini API error: 503", detail="overloaded")
        return self.answer


@pytest.fixture
def fake_embedder():
    return FakeEmbedder()


@pytest.fixture
def fake_generator():
    return FakeGenerator()


@pytest.fixture(autouse=True)
def jwt_settings(settings):
    """Configure token validation for every test."""
    settings.AUTH_JWT_SECRET = TEST_JWT_SECRET
    settings.AUTH_JWT_ALGORITHMS = ['HS256']
    settings.AUTH_JWT_AUDIENCE = 'authenticated'
    settings.AUTH_JWT_ISSUER = ''
    settings.RAG_EMBEDDING_WRITE_DATABASE = 'default'
    return settings


def make_token(sub: Optional[str] = "user-1", secret: str = TEST_JWT_SECRET, expires_in: int = 3600, **extra) -> str:
    """Encode a signed HS256 token like the identity provider issues."""
    claims = {
        "aud": "authenticated",
        "exp": datetime.now(timezone.utc) + timedelta(seconds=expires_in),
        "role": "authenticated",
        **extra,
    }
    if sub is not None:
        claims["sub"] = sub
    return jwt.encode(claims, secret, algorithm="HS256")


@pytest.fixture
def auth_header():
    """Build HTTP_AUTHORIZATION kwargs for the Django test client."""
    def _header(sub: str = "user-1") -> dict:
        return {"HTTP_AUTHORIZATION": f"Bearer {make_token(sub)}"}
    return _header


@pytest.fixture
def make_document():
    def _make(owner: str = "user-1", filename: str = "handbook.pdf") -> Document:
        return Document.objects.create(owner_user_id=owner, filename=filename)
    return _make


@pytest.fixture
def make_chunk():
    def _make(document: Document, text: str, embedding=None) -> DocumentChunk:
        return DocumentChunk.objects.create(
            document=document,
            owner_user_id=document.owner_user_id,
            text=text,
            embedding=embedding,
        )
    return _make
