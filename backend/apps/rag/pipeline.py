"""
RAG query orchestration.

One call to QueryOrchestrator.answer() runs the full request cycle:
validate -> reserve quota -> embed question -> load chunks -> embed any
chunks still missing a vector -> rank -> prompt -> generate.

Nothing is retried. Every failure after the quota reservation surfaces as an
UpstreamError carrying the quota counters reserved for the request.
"""
import logging
from dataclasses import dataclass, field
from datetime import date as date_type
from enum import Enum
from typing import Callable, List, Optional, Sequence

from django.conf import settings
from django.utils import timezone

from apps.docs.repository import Chunk, ChunkRepository
from apps.quota.tracker import QuotaReservation, QuotaTracker
from apps.rag.embeddings import BaseEmbeddingClient, TaskType, get_embedding_client
from apps.rag.errors import QueryValidationError, QuotaExceededError, UpstreamError
from apps.rag.index import LinearScanIndex
from apps.rag.llm_client import BaseLLMClient, get_llm_client
from apps.rag.prompts import NOT_FOUND_ANSWER, SYSTEM_PROMPT, build_user_message
from apps.rag.similarity import RankedChunk

logger = logging.getLogger(__name__)

NO_DOCUMENTS_ANSWER = (
    "You have not uploaded any documents yet. "
    "Please upload a document before asking questions."
)

# Characters of chunk text returned as a source preview
PREVIEW_MAX_LENGTH = 300


class QueryOutcome(str, Enum):
    """Which terminal branch produced the answer."""
    NO_DOCUMENTS = 'no_documents'
    NO_RELEVANT_CONTEXT = 'no_relevant_context'
    GROUNDED = 'grounded'


@dataclass
class Source:
    """A document that contributed context to the answer."""
    document_id: str
    preview_text: str
    similarity: float

    def to_dict(self) -> dict:
        return {
            "document_id": self.document_id,
            "preview_text": self.preview_text,
            "similarity": self.similarity,
        }


@dataclass
class QueryResult:
    """Answer to one question plus the user's quota counters."""
    answer: str
    questions_used: int
    questions_remaining: int
    outcome: QueryOutcome
    sources: List[Source] = field(default_factory=list)

    def to_dict(self) -> dict:
        """Convert to the JSON response body."""
        return {
            "answer": self.answer,
            "sources": [s.to_dict() for s in self.sources],
            "questions_used": self.questions_used,
            "questions_remaining": self.questions_remaining,
        }


def normalize_question(raw_question, max_length: int) -> str:
    """
    Strip surrounding whitespace, then enforce non-empty and max length.

    The stripped text is otherwise passed through unchanged.

    Raises:
        QueryValidationError: If the question is missing, empty or too long
    """
    if not isinstance(raw_question, str):
        raise QueryValidationError("Missing or empty question")

    question = raw_question.strip()
    if not question:
        raise QueryValidationError("Missing or empty question")

    if len(question) > max_length:
        raise QueryValidationError(f"Question too long (max {max_length} chars)")

    return question


def build_sources(ranked: Sequence[RankedChunk]) -> List[Source]:
    """One source per document, from its best ranked chunk, in rank order."""
    sources = []
    seen_docs = set()
    for chunk in ranked:
        if chunk.document_id in seen_docs:
            continue
        seen_docs.add(chunk.document_id)
        sources.append(Source(
            document_id=chunk.document_id,
            preview_text=chunk.text[:PREVIEW_MAX_LENGTH],
            similarity=chunk.similarity,
        ))
    return sources


class QueryOrchestrator:
    """
    Sequences the query pipeline for one user question.

    Collaborators are injectable so tests can pass deterministic fakes;
    by default the configured provider clients are used.
    """

    def __init__(
        self,
        embedder: Optional[BaseEmbeddingClient] = None,
        generator: Optional[BaseLLMClient] = None,
        quota: Optional[QuotaTracker] = None,
        repository_factory: Callable[[str], ChunkRepository] = ChunkRepository,
        daily_limit: Optional[int] = None,
        top_k: Optional[int] = None,
        max_question_length: Optional[int] = None,
        embed_concurrency: Optional[int] = None,
    ):
        self._embedder = embedder
        self._generator = generator
        self.quota = quota or QuotaTracker()
        self.repository_factory = repository_factory
        self.daily_limit = daily_limit if daily_limit is not None else getattr(settings, 'RAG_DAILY_LIMIT', 7)
        self.top_k = top_k if top_k is not None else getattr(settings, 'RAG_TOP_K', 5)
        self.max_question_length = (
            max_question_length if max_question_length is not None
            else getattr(settings, 'RAG_MAX_QUESTION_LENGTH', 2000)
        )
        self.embed_concurrency = (
            embed_concurrency if embed_concurrency is not None
            else getattr(settings, 'RAG_EMBED_CONCURRENCY', 5)
        )

    @property
    def embedder(self) -> BaseEmbeddingClient:
        if self._embedder is None:
            self._embedder = get_embedding_client()
        return self._embedder

    @property
    def generator(self) -> BaseLLMClient:
        if self._generator is None:
            self._generator = get_llm_client()
        return self._generator

    def today(self) -> date_type:
        """Server-local calendar date that keys the usage counter."""
        return timezone.localdate()

    def usage(self, owner_id: str) -> QuotaReservation:
        """Today's counters for ``owner_id``, without consuming a question."""
        return self.quota.peek(owner_id, self.today(), self.daily_limit)

    def answer(self, owner_id: str, raw_question) -> QueryResult:
        """
        Answer ``raw_question`` from the documents of ``owner_id``.

        Raises:
            QueryValidationError: Empty or over-long question (no quota used)
            QuotaExceededError: Daily limit reached (no provider calls made)
            UpstreamError: Any embedding, generation, storage or other failure
                after the quota reservation
        """
        question = normalize_question(raw_question, self.max_question_length)
        logger.info(f"[STEP Q1] Question accepted for user {owner_id}, length: {len(question)}")

        reservation = self._call('quota', self.quota.reserve, owner_id, self.today(), self.daily_limit)
        if not reservation.allowed:
            logger.info(f"[STEP Q1] Daily limit reached: {reservation.used}")
            raise QuotaExceededError(
                "Daily question limit reached. Resets tomorrow.",
                questions_used=self.daily_limit,
                daily_limit=self.daily_limit,
            )

        try:
            return self._run(owner_id, question, reservation)
        except UpstreamError as e:
            e.questions_used = reservation.used
            e.questions_remaining = reservation.remaining
            raise
        except Exception as e:
            logger.exception("Unexpected error while answering question")
            error = UpstreamError("Unexpected error while answering question", step='unknown', detail=str(e))
            error.questions_used = reservation.used
            error.questions_remaining = reservation.remaining
            raise error from e

    def _run(self, owner_id: str, question: str, reservation: QuotaReservation) -> QueryResult:
        def result(answer: str, outcome: QueryOutcome, sources=None) -> QueryResult:
            return QueryResult(
                answer=answer,
                questions_used=reservation.used,
                questions_remaining=reservation.remaining,
                outcome=outcome,
                sources=sources or [],
            )

        logger.info("[STEP Q2] Embedding question")
        query_vector = self._call('embedding', self.embedder.embed, question, TaskType.QUERY)
        logger.info(f"[STEP Q2] Question embedded, vector length: {len(query_vector)}")

        repository = self.repository_factory(owner_id)
        chunks = self._call('storage', repository.load_chunks)
        logger.info(f"[STEP Q3] Chunks fetched: {len(chunks)}")

        if not chunks:
            return result(NO_DOCUMENTS_ANSWER, QueryOutcome.NO_DOCUMENTS)

        self._repair_embeddings(repository, chunks)

        index = LinearScanIndex(c for c in chunks if c.has_embedding)
        ranked = index.query(query_vector, self.top_k)
        best = ranked[0].similarity if ranked else 0
        logger.info(f"[STEP Q5] Top chunks found: {len(ranked)}, best similarity: {best}")

        if not ranked:
            logger.info("[STEP Q5] No relevant chunks found")
            return result(NOT_FOUND_ANSWER, QueryOutcome.NO_RELEVANT_CONTEXT)

        sources = build_sources(ranked)
        user_message = build_user_message(question, ranked)
        answer = self._call('generation', self.generator.generate, SYSTEM_PROMPT, user_message)

        if not answer or not answer.strip():
            logger.warning("[STEP Q6] Empty LLM response")
            answer = NOT_FOUND_ANSWER

        logger.info(f"[STEP Q7] Response ready, answer chars: {len(answer)}, sources: {len(sources)}")
        return result(answer, QueryOutcome.GROUNDED, sources)

    def _repair_embeddings(self, repository: ChunkRepository, chunks: List[Chunk]) -> None:
        """Embed and persist every chunk that has no vector yet, all or nothing."""
        unembedded = [c for c in chunks if not c.has_embedding]
        if not unembedded:
            logger.info("[STEP Q4] All chunks already embedded")
            return

        logger.info(f"[STEP Q4] Lazy embedding: {len(unembedded)} chunks need embeddings")
        writer = self._call('storage', repository.embedding_writer, unembedded)
        vectors = self._call(
            'embedding',
            self.embedder.embed_batch,
            [c.text for c in unembedded],
            self.embed_concurrency,
            TaskType.DOCUMENT,
        )

        for chunk, vector in zip(unembedded, vectors):
            self._call('storage', writer.write_embedding, chunk.id, vector)

        for chunk, vector in zip(unembedded, vectors):
            chunk.embedding = list(vector)
        logger.info("[STEP Q4] Lazy embedding complete")

    @staticmethod
    def _call(step: str, func, *args):
        """Run one collaborator call, turning unexpected failures into UpstreamError."""
        try:
            return func(*args)
        except UpstreamError:
            raise
        except Exception as e:
            logger.exception(f"Unexpected error in step '{step}'")
            raise UpstreamError(f"Unexpected error during {step}", step=step, detail=str(e))
