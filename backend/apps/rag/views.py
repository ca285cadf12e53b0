"""
RAG API views.

Provides endpoints for:
- Query (full RAG answer with sources and quota counters)
- Usage (today's quota counters)
"""
import logging
import json

from django.http import JsonResponse
from django.views import View
from django.views.decorators.csrf import csrf_exempt
from django.utils.decorators import method_decorator

from apps.authn.middleware import auth_required
from apps.authn.audit import (
    audit_quota_exceeded,
    audit_rag_query,
    audit_upstream_failure,
)
from apps.rag.errors import QueryValidationError, QuotaExceededError, UpstreamError
from apps.rag.pipeline import QueryOrchestrator

logger = logging.getLogger(__name__)

GENERIC_FAILURE_MESSAGE = "An error occurred while processing your question. Please try again later."


def get_orchestrator() -> QueryOrchestrator:
    """Build the orchestrator for a request; patched in tests."""
    return QueryOrchestrator()


@method_decorator(csrf_exempt, name='dispatch')
@method_decorator(auth_required, name='dispatch')
class QueryView(View):
    """
    POST /api/rag/query

    Answer a question from the caller's own documents.

    Request body:
        {
            "question": "What is the notice period?"
        }

    Response:
        {
            "answer": "The notice period is 30 days.",
            "sources": [
                {
                    "document_id": "...",
                    "preview_text": "...",
                    "similarity": 0.912345
                }
            ],
            "questions_used": 3,
            "questions_remaining": 4
        }
    """

    def post(self, request):
        try:
            body = json.loads(request.body)
        except json.JSONDecodeError:
            return JsonResponse({"error": "Invalid JSON"}, status=400)

        if not isinstance(body, dict):
            return JsonResponse({"error": "Invalid JSON"}, status=400)

        user_id = request.user_claims.sub
        orchestrator = get_orchestrator()

        try:
            result = orchestrator.answer(user_id, body.get("question"))

        except QueryValidationError as e:
            return JsonResponse({"error": str(e)}, status=400)

        except QuotaExceededError as e:
            audit_quota_exceeded(request, daily_limit=e.daily_limit)
            return JsonResponse(
                {
                    "error": str(e),
                    "questions_used": e.daily_limit,
                    "questions_remaining": 0,
                },
                status=429
            )

        except UpstreamError as e:
            logger.error(f"RAG query failed at step '{e.step}': {e} {e.detail}")
            audit_upstream_failure(request, step=e.step, error=str(e))
            return JsonResponse(
                {
                    "error": GENERIC_FAILURE_MESSAGE,
                    # Reservation counters when known, else nothing was consumed
                    "questions_used": e.questions_used if e.questions_used is not None else 0,
                    "questions_remaining": e.questions_remaining if e.questions_remaining is not None else 0,
                },
                status=500
            )

        audit_rag_query(
            request,
            question_length=len(body.get("question") or ""),
            source_count=len(result.sources),
            outcome=result.outcome.value,
            questions_used=result.questions_used,
        )

        return JsonResponse(result.to_dict())


@method_decorator(auth_required, name='dispatch')
class UsageView(View):
    """
    GET /api/rag/usage

    Today's question counters for the caller. Does not consume a question.

    Response:
        {
            "date": "2026-03-01",
            "questions_used": 3,
            "questions_remaining": 4,
            "daily_limit": 7
        }
    """

    def get(self, request):
        orchestrator = get_orchestrator()

        try:
            usage = orchestrator.usage(request.user_claims.sub)
        except UpstreamError as e:
            logger.error(f"Usage lookup failed: {e} {e.detail}")
            return JsonResponse({"error": GENERIC_FAILURE_MESSAGE}, status=500)

        return JsonResponse({
            "date": orchestrator.today().isoformat(),
            "questions_used": usage.used,
            "questions_remaining": usage.remaining,
            "daily_limit": orchestrator.daily_limit,
        })
