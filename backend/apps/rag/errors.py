"""
Failure taxonomy of the RAG query pipeline.

Auth failures live in apps.authn.jwt_validator (AuthError).
"""


class QueryValidationError(Exception):
    """Raised when the question is missing, empty or too long (HTTP 400)."""
    pass


class QuotaExceededError(Exception):
    """Raised when the user's daily question quota is used up (HTTP 429)."""

    def __init__(self, message: str, questions_used: int, daily_limit: int):
        super().__init__(message)
        self.questions_used = questions_used
        self.daily_limit = daily_limit


class UpstreamError(Exception):
    """
    Raised when a provider or storage call fails (HTTP 500).

    ``step`` names the pipeline step that failed; ``detail`` carries the
    truncated raw error for the logs and is never shown to the user.
    """

    def __init__(self, message: str, step: str = 'unknown', detail: str = ''):
        super().__init__(message)
        self.step = step
        self.detail = detail[:300]
        # Counters of the quota reservation, attached by the orchestrator
        self.questions_used = None
        self.questions_remaining = None


class StorageError(UpstreamError):
    """Raised when reading or writing chunks or usage rows fails."""

    def __init__(self, message: str, detail: str = ''):
        super().__init__(message, step='storage', detail=detail)
