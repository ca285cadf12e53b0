"""
Audit logging for security and compliance.

Provides structured JSON logging for key events without exposing sensitive
content: question text and token contents are never logged here.
"""
import json
import logging
import uuid
from datetime import datetime, timezone
from typing import Any, Dict, Optional

# Dedicated audit logger
audit_logger = logging.getLogger('audit')


class AuditEvent:
    """Standard audit event types."""
    # Auth events
    AUTH_TOKEN_REJECTED = 'auth.token_rejected'

    # RAG events
    RAG_QUERY = 'rag.query'
    RAG_QUOTA_EXCEEDED = 'rag.quota_exceeded'
    RAG_UPSTREAM_FAILURE = 'rag.upstream_failure'


def get_client_ip(request) -> str:
    """Extract client IP from request, handling proxies."""
    x_forwarded_for = request.META.get('HTTP_X_FORWARDED_FOR')
    if x_forwarded_for:
        # First IP in the chain is the client
        return x_forwarded_for.split(',')[0].strip()
    return request.META.get('REMOTE_ADDR', 'unknown')


def get_request_id(request) -> str:
    """Get or generate a request ID for correlation."""
    request_id = getattr(request, 'request_id', None)
    if not request_id:
        request_id = request.META.get('HTTP_X_REQUEST_ID')
    if not request_id:
        request_id = str(uuid.uuid4())[:8]
    return request_id


def log_audit(
    event_type: str,
    user_id: Optional[str] = None,
    request_id: Optional[str] = None,
    client_ip: Optional[str] = None,
    outcome: str = 'success',
    metadata: Optional[Dict[str, Any]] = None
):
    """
    Log a structured audit event.

    Args:
        event_type: One of AuditEvent constants
        user_id: Subject ID (from JWT)
        request_id: Correlation ID for request tracing
        client_ip: Client IP address
        outcome: 'success' or 'failure'
        metadata: Event-specific data (no PII/secrets)
    """
    event = {
        'timestamp': datetime.now(timezone.utc).isoformat(),
        'event_type': event_type,
        'user_id': user_id,
        'request_id': request_id,
        'client_ip': client_ip,
        'outcome': outcome,
        'metadata': metadata or {}
    }

    audit_logger.info(json.dumps(event))


def log_audit_from_request(
    request,
    event_type: str,
    outcome: str = 'success',
    metadata: Optional[Dict[str, Any]] = None
):
    """Log an audit event with request context auto-populated."""
    user_id = None
    if getattr(request, 'user_claims', None):
        user_id = getattr(request.user_claims, 'sub', None)

    log_audit(
        event_type=event_type,
        user_id=user_id,
        request_id=get_request_id(request),
        client_ip=get_client_ip(request),
        outcome=outcome,
        metadata=metadata
    )


def audit_rag_query(request, question_length: int, source_count: int, outcome: str, questions_used: int):
    """Log an answered RAG query (without the actual question text)."""
    log_audit_from_request(
        request,
        AuditEvent.RAG_QUERY,
        metadata={
            'question_length': question_length,
            'source_count': source_count,
            'result': outcome,
            'questions_used': questions_used,
        }
    )


def audit_quota_exceeded(request, daily_limit: int):
    """Log a question refused by the daily quota."""
    log_audit_from_request(
        request,
        AuditEvent.RAG_QUOTA_EXCEEDED,
        outcome='failure',
        metadata={'daily_limit': daily_limit}
    )


def audit_upstream_failure(request, step: str, error: str):
    """Log a query that failed on a provider or storage call."""
    log_audit_from_request(
        request,
        AuditEvent.RAG_UPSTREAM_FAILURE,
        outcome='failure',
        metadata={
            'step': step,
            'error': error[:200],  # Truncate error message
        }
    )


def audit_auth_rejected(request, reason: str):
    """Log failed token validation."""
    log_audit_from_request(
        request,
        AuditEvent.AUTH_TOKEN_REJECTED,
        outcome='failure',
        metadata={
            'reason': reason,
        }
    )
