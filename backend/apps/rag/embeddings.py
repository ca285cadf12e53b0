"""
Embedding client for the RAG query pipeline.

Embeds user questions and, lazily, stored chunks that have no vector yet.
Provider is selected by the EMBEDDING_PROVIDER setting:
- "gemini" (default): Google text-embedding API
- "ollama": local Ollama embeddings endpoint
"""
import logging
from abc import ABC, abstractmethod
from concurrent.futures import ThreadPoolExecutor
from enum import Enum
from typing import List, Optional, Sequence

import httpx
from django.conf import settings

from apps.rag.errors import UpstreamError

logger = logging.getLogger(__name__)

# Provider inputs are cut to this many characters
MAX_EMBED_INPUT_CHARS = 8000

DEFAULT_EMBED_CONCURRENCY = 5


class EmbeddingError(UpstreamError):
    """Raised when embedding generation fails."""

    def __init__(self, message: str, detail: str = ''):
        super().__init__(message, step='embedding', detail=detail)


class TaskType(str, Enum):
    """What an embedding will be used for; providers may weight these differently."""
    DOCUMENT = 'document'
    QUERY = 'query'


class BaseEmbeddingClient(ABC):
    """Abstract base class for embedding clients."""

    @abstractmethod
    def embed(self, text: str, task_type: TaskType = TaskType.QUERY) -> List[float]:
        """
        Embed a single text with one provider call.

        Raises:
            EmbeddingError: If the request fails
        """
        pass

    @property
    @abstractmethod
    def model_name(self) -> str:
        """Return the embedding model name."""
        pass

    def embed_batch(
        self,
        texts: Sequence[str],
        concurrency_limit: int = DEFAULT_EMBED_CONCURRENCY,
        task_type: TaskType = TaskType.DOCUMENT,
    ) -> List[List[float]]:
        """
        Embed many texts, at most ``concurrency_limit`` calls at a time.

        Texts are split into consecutive groups of ``concurrency_limit``.
        A group is embedded concurrently, groups run one after another.
        The result has the same order as ``texts``. The first failure
        aborts the whole batch and nothing is returned.

        Raises:
            EmbeddingError: If any embedding in the batch fails
        """
        if concurrency_limit < 1:
            raise ValueError("concurrency_limit must be at least 1")

        results: List[List[float]] = []
        total_groups = (len(texts) + concurrency_limit - 1) // concurrency_limit
        logger.info(f"Embedding {len(texts)} texts in {total_groups} groups")

        for start in range(0, len(texts), concurrency_limit):
            group = list(texts[start:start + concurrency_limit])
            logger.debug(f"Embedding group {start // concurrency_limit + 1}/{total_groups}")
            with ThreadPoolExecutor(max_workers=len(group)) as executor:
                # map() yields in submission order and re-raises the first failure
                results.extend(executor.map(lambda t: self.embed(t, task_type), group))

        logger.info(f"Generated {len(results)} embeddings")
        return results


class GeminiEmbeddingClient(BaseEmbeddingClient):
    """Embedding client for the Google Gemini API."""

    TASK_TYPES = {
        TaskType.DOCUMENT: 'RETRIEVAL_DOCUMENT',
        TaskType.QUERY: 'RETRIEVAL_QUERY',
    }

    def __init__(self):
        self.api_key = getattr(settings, 'GEMINI_API_KEY', '')
        self.model = getattr(settings, 'GEMINI_EMBED_MODEL', 'text-embedding-004')
        self.timeout = getattr(settings, 'GEMINI_TIMEOUT', 120)
        self.base_url = "https://generativelanguage.googleapis.com/v1"

        if not self.api_key:
            raise EmbeddingError("GEMINI_API_KEY not configured")

    @property
    def model_name(self) -> str:
        return self.model

    def embed(self, text: str, task_type: TaskType = TaskType.QUERY) -> List[float]:
        url = f"{self.base_url}/models/{self.model}:embedContent"

        try:
            with httpx.Client(timeout=float(self.timeout)) as client:
                response = client.post(
                    url,
                    params={"key": self.api_key},
                    json={
                        "model": f"models/{self.model}",
                        "content": {"parts": [{"text": text[:MAX_EMBED_INPUT_CHARS]}]},
                        "taskType": self.TASK_TYPES[task_type],
                    },
                    headers={"Content-Type": "application/json"}
                )
                response.raise_for_status()
                data = response.json()

                values = data["embedding"]["values"]
                if not values:
                    raise EmbeddingError("Gemini returned empty embedding")
                return values

        except httpx.HTTPStatusError as e:
            body = e.response.text[:300]
            logger.error(f"Gemini embedding API error: {e.response.status_code}")
            logger.error(f"Gemini embedding API error body: {body}")
            raise EmbeddingError(f"Embedding error: {e.response.status_code}", detail=body)
        except httpx.TimeoutException:
            logger.error("Gemini embedding request timed out")
            raise EmbeddingError("Embedding service timed out")
        except httpx.RequestError as e:
            logger.error(f"Gemini embedding connection error: {e}")
            raise EmbeddingError("Could not connect to embedding service", detail=str(e))
        except (KeyError, TypeError, ValueError) as e:
            logger.error(f"Unexpected Gemini embedding response format: {e}")
            raise EmbeddingError("Invalid response from embedding service", detail=str(e))


class OllamaEmbeddingClient(BaseEmbeddingClient):
    """Embedding client for Ollama local inference."""

    # nomic-embed-text expects the task as a text prefix
    TASK_PREFIXES = {
        TaskType.DOCUMENT: 'search_document: ',
        TaskType.QUERY: 'search_query: ',
    }

    def __init__(self):
        self.base_url = getattr(settings, 'OLLAMA_BASE_URL', 'http://ollama:11434')
        self.model = getattr(settings, 'OLLAMA_EMBED_MODEL', 'nomic-embed-text')
        self.timeout = getattr(settings, 'OLLAMA_EMBED_TIMEOUT', 120)

    @property
    def model_name(self) -> str:
        return self.model

    def embed(self, text: str, task_type: TaskType = TaskType.QUERY) -> List[float]:
        prompt = text[:MAX_EMBED_INPUT_CHARS]
        if 'nomic' in self.model:
            prompt = self.TASK_PREFIXES[task_type] + prompt

        try:
            with httpx.Client(timeout=float(self.timeout)) as client:
                response = client.post(
                    f"{self.base_url}/api/embeddings",
                    json={
                        "model": self.model,
                        "prompt": prompt
                    }
                )
                response.raise_for_status()
                data = response.json()

                # Ollama /api/embeddings returns {"embedding": [...]}
                embedding = data.get("embedding")
                if not embedding:
                    raise EmbeddingError("Ollama returned empty embedding")
                return embedding

        except httpx.HTTPStatusError as e:
            body = e.response.text[:300]
            logger.error(f"Ollama embedding request failed: {e.response.status_code} {body}")
            raise EmbeddingError(f"Embedding service error: {e.response.status_code}", detail=body)
        except httpx.TimeoutException:
            logger.error("Ollama embedding request timed out")
            raise EmbeddingError("Embedding service timed out")
        except httpx.RequestError as e:
            logger.error(f"Ollama connection error: {e}")
            raise EmbeddingError("Could not connect to embedding service", detail=str(e))
        except (AttributeError, TypeError, ValueError) as e:
            logger.error(f"Unexpected Ollama response format: {e}")
            raise EmbeddingError("Invalid response from embedding service", detail=str(e))


# =============================================================================
# Client Factory
# =============================================================================

_client_instance: Optional[BaseEmbeddingClient] = None


def get_embedding_client() -> BaseEmbeddingClient:
    """
    Get the configured embedding client instance.

    Uses EMBEDDING_PROVIDER setting to determine which client to use.
    """
    global _client_instance

    if _client_instance is not None:
        return _client_instance

    provider = getattr(settings, 'EMBEDDING_PROVIDER', 'gemini').lower()

    if provider == 'ollama':
        logger.info("Using Ollama for embeddings")
        _client_instance = OllamaEmbeddingClient()
    else:
        logger.info("Using Gemini API for embeddings")
        _client_instance = GeminiEmbeddingClient()

    return _client_instance


def reset_embedding_client():
    """Reset the cached client instance. Useful for testing."""
    global _client_instance
    _client_instance = None
