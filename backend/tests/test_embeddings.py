"""
Tests for the embedding clients.

Covers bounded-concurrency batching and the Gemini/Ollama request and error
handling (httpx.Client is patched, no network).
"""
import httpx
import pytest
from unittest.mock import patch, MagicMock

from apps.rag.embeddings import (
    EmbeddingError,
    GeminiEmbeddingClient,
    OllamaEmbeddingClient,
    TaskType,
    MAX_EMBED_INPUT_CHARS,
    get_embedding_client,
    reset_embedding_client,
)
from conftest import FakeEmbedder


def http_response(status_code: int, **kwargs) -> httpx.Response:
    return httpx.Response(status_code, request=httpx.Request("POST", "https://provider.test"), **kwargs)


def mock_http_client(mock_client_cls, response=None, side_effect=None) -> MagicMock:
    """Wire a patched httpx.Client so `with httpx.Client() as c: c.post()` works."""
    client = MagicMock()
    if side_effect is not None:
        client.post.side_effect = side_effect
    else:
        client.post.return_value = response
    mock_client_cls.return_value.__enter__.return_value = client
    return client


# ============================================================================
# Batch embedding
# ============================================================================

class TestEmbedBatch:
    """Tests for the bounded-concurrency batch embedding."""

    def test_preserves_order(self):
        """Results line up with the input texts."""
        texts = [f"text-{i}" for i in range(7)]
        embedder = FakeEmbedder(vectors={t: [float(i)] for i, t in enumerate(texts)})

        result = embedder.embed_batch(texts, concurrency_limit=3)

        assert result == [[float(i)] for i in range(7)]

    def test_concurrency_is_bounded(self):
        """Never more than concurrency_limit calls in flight."""
        embedder = FakeEmbedder(delay=0.02)

        embedder.embed_batch([f"t{i}" for i in range(9)], concurrency_limit=3)

        assert len(embedder.calls) == 9
        assert 1 <= embedder.max_active <= 3

    def test_passes_task_type(self):
        """Every call in the batch uses the requested task type."""
        embedder = FakeEmbedder()

        embedder.embed_batch(["a", "b"], concurrency_limit=5, task_type=TaskType.DOCUMENT)

        assert {task for _, task in embedder.calls} == {TaskType.DOCUMENT}

    def test_any_failure_fails_the_batch(self):
        """A single failure raises; no partial results come back."""
        embedder = FakeEmbedder(fail_on=["bad"])

        with pytest.raises(EmbeddingError):
            embedder.embed_batch(["ok-1", "bad", "ok-2"], concurrency_limit=5)

    def test_failure_stops_later_groups(self):
        """Groups after the failing one are never started."""
        embedder = FakeEmbedder(fail_on=["bad"])
        texts = ["bad", "a", "b", "c", "d"]

        with pytest.raises(EmbeddingError):
            embedder.embed_batch(texts, concurrency_limit=2)

        embedded = {text for text, _ in embedder.calls}
        assert embedded <= {"bad", "a"}

    def test_empty_batch(self):
        """No texts, no calls."""
        embedder = FakeEmbedder()

        assert embedder.embed_batch([], concurrency_limit=5) == []
        assert embedder.calls == []

    def test_invalid_concurrency(self):
        """A limit below one is a programming error."""
        with pytest.raises(ValueError):
            FakeEmbedder().embed_batch(["a"], concurrency_limit=0)


# ============================================================================
# Gemini
# ============================================================================

class TestGeminiEmbeddingClient:
    """Tests for the Gemini embedding client."""

    @pytest.fixture
    def gemini_settings(self, settings):
        settings.GEMINI_API_KEY = "key-123"
        settings.GEMINI_EMBED_MODEL = "text-embedding-004"
        return settings

    @patch('apps.rag.embeddings.httpx.Client')
    def test_embed_query(self, mock_client_cls, gemini_settings):
        """Sends the task type and returns the vector values."""
        client = mock_http_client(
            mock_client_cls,
            http_response(200, json={"embedding": {"values": [0.1, 0.2, 0.3]}}),
        )

        vector = GeminiEmbeddingClient().embed("What is the refund policy?", TaskType.QUERY)

        assert vector == [0.1, 0.2, 0.3]
        args, kwargs = client.post.call_args
        assert args[0].endswith("/models/text-embedding-004:embedContent")
        assert kwargs["params"] == {"key": "key-123"}
        assert kwargs["json"]["taskType"] == "RETRIEVAL_QUERY"
        assert kwargs["json"]["content"]["parts"][0]["text"] == "What is the refund policy?"

    @patch('apps.rag.embeddings.httpx.Client')
    def test_document_task_and_truncation(self, mock_client_cls, gemini_settings):
        """Document embeddings use RETRIEVAL_DOCUMENT and long text is cut."""
        client = mock_http_client(
            mock_client_cls,
            http_response(200, json={"embedding": {"values": [1.0]}}),
        )

        GeminiEmbeddingClient().embed("x" * (MAX_EMBED_INPUT_CHARS + 500), TaskType.DOCUMENT)

        sent = client.post.call_args.kwargs["json"]
        assert sent["taskType"] == "RETRIEVAL_DOCUMENT"
        assert len(sent["content"]["parts"][0]["text"]) == MAX_EMBED_INPUT_CHARS

    @patch('apps.rag.embeddings.httpx.Client')
    def test_http_error(self, mock_client_cls, gemini_settings):
        """Non-2xx responses raise EmbeddingError with a truncated body."""
        mock_http_client(mock_client_cls, http_response(429, text="quota " * 200))

        with pytest.raises(EmbeddingError) as exc_info:
            GeminiEmbeddingClient().embed("question")

        assert "429" in str(exc_info.value)
        assert exc_info.value.step == "embedding"
        assert len(exc_info.value.detail) <= 300

    @patch('apps.rag.embeddings.httpx.Client')
    def test_connection_error(self, mock_client_cls, gemini_settings):
        """Transport errors raise EmbeddingError."""
        mock_http_client(mock_client_cls, side_effect=httpx.ConnectError("refused"))

        with pytest.raises(EmbeddingError):
            GeminiEmbeddingClient().embed("question")

    @patch('apps.rag.embeddings.httpx.Client')
    def test_malformed_response(self, mock_client_cls, gemini_settings):
        """A body without embedding values raises EmbeddingError."""
        mock_http_client(mock_client_cls, http_response(200, json={"unexpected": True}))

        with pytest.raises(EmbeddingError):
            GeminiEmbeddingClient().embed("question")

    def test_missing_api_key(self, settings):
        """The client refuses to start without a key."""
        settings.GEMINI_API_KEY = ""

        with pytest.raises(EmbeddingError):
            GeminiEmbeddingClient()


# ============================================================================
# Ollama
# ============================================================================

class TestOllamaEmbeddingClient:
    """Tests for the Ollama embedding client."""

    @patch('apps.rag.embeddings.httpx.Client')
    def test_nomic_task_prefix(self, mock_client_cls, settings):
        """nomic-embed-text gets the search_query/search_document prefix."""
        settings.OLLAMA_EMBED_MODEL = "nomic-embed-text"
        client = mock_http_client(mock_client_cls, http_response(200, json={"embedding": [0.5, 0.5]}))

        embedder = OllamaEmbeddingClient()
        assert embedder.embed("hello", TaskType.QUERY) == [0.5, 0.5]
        assert client.post.call_args.kwargs["json"]["prompt"] == "search_query: hello"

        embedder.embed("hello", TaskType.DOCUMENT)
        assert client.post.call_args.kwargs["json"]["prompt"] == "search_document: hello"

    @patch('apps.rag.embeddings.httpx.Client')
    def test_empty_embedding(self, mock_client_cls, settings):
        """An empty vector is an error."""
        mock_http_client(mock_client_cls, http_response(200, json={"embedding": []}))

        with pytest.raises(EmbeddingError):
            OllamaEmbeddingClient().embed("hello")


class TestEmbeddingClientFactory:
    """Tests for provider selection."""

    def teardown_method(self):
        reset_embedding_client()

    def test_ollama_provider(self, settings):
        settings.EMBEDDING_PROVIDER = "ollama"
        reset_embedding_client()

        assert isinstance(get_embedding_client(), OllamaEmbeddingClient)

    def test_gemini_provider_cached(self, settings):
        settings.EMBEDDING_PROVIDER = "gemini"
        settings.GEMINI_API_KEY = "key"
        reset_embedding_client()

        client = get_embedding_client()

        assert isinstance(client, GeminiEmbeddingClient)
        assert get_embedding_client() is client
