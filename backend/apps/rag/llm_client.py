"""
LLM Client Abstraction Layer.

Provides a single ``generate(system_prompt, user_message)`` call that can
switch between:
- Gemini API (Google's cloud API, default)
- Ollama (local inference)

Sampling is fixed and low-temperature; answers are grounded in retrieved
excerpts, not creative.
"""
import logging
from abc import ABC, abstractmethod
from typing import Any, Dict, Optional

import httpx
from django.conf import settings

from apps.rag.errors import UpstreamError

logger = logging.getLogger(__name__)

GENERATION_TEMPERATURE = 0.1
GENERATION_TOP_P = 0.9
GENERATION_MAX_TOKENS = 2048


class GenerationError(UpstreamError):
    """Raised when the generation call fails."""

    def __init__(self, message: str, detail: str = ''):
        super().__init__(message, step='generation', detail=detail)


class BaseLLMClient(ABC):
    """Abstract base class for LLM clients."""

    @abstractmethod
    def generate(self, system_prompt: str, user_message: str) -> str:
        """
        Generate an answer.

        Args:
            system_prompt: Fixed instruction block
            user_message: Excerpts and question

        Returns:
            The trimmed text of the first candidate, or "" if the provider
            returned none

        Raises:
            GenerationError: If the request fails
        """
        pass

    @property
    @abstractmethod
    def model_name(self) -> str:
        """Return the model name being used."""
        pass


class GeminiClient(BaseLLMClient):
    """LLM client for Google Gemini API."""

    def __init__(self):
        self.api_key = getattr(settings, 'GEMINI_API_KEY', '')
        self.model = getattr(settings, 'GEMINI_MODEL', 'gemini-2.0-flash')
        self.timeout = getattr(settings, 'GEMINI_TIMEOUT', 120)
        self.base_url = "https://generativelanguage.googleapis.com/v1beta"

        if not self.api_key:
            raise GenerationError("GEMINI_API_KEY not configured")

    @property
    def model_name(self) -> str:
        return self.model

    def generate(self, system_prompt: str, user_message: str) -> str:
        """Send a generateContent request to Gemini."""
        logger.info(f"Calling Gemini API: model={self.model}, temp={GENERATION_TEMPERATURE}")

        # The instructions go in systemInstruction, separate from the
        # user turn that carries the excerpts
        request_body: Dict[str, Any] = {
            "systemInstruction": {
                "parts": [{"text": system_prompt}]
            },
            "contents": [
                {
                    "role": "user",
                    "parts": [{"text": user_message}]
                }
            ],
            "generationConfig": {
                "temperature": GENERATION_TEMPERATURE,
                "topP": GENERATION_TOP_P,
                "maxOutputTokens": GENERATION_MAX_TOKENS,
            }
        }

        url = f"{self.base_url}/models/{self.model}:generateContent"

        try:
            with httpx.Client(timeout=float(self.timeout)) as client:
                response = client.post(
                    url,
                    params={"key": self.api_key},
                    json=request_body,
                    headers={"Content-Type": "application/json"}
                )
                response.raise_for_status()
                data = response.json()

        except httpx.HTTPStatusError as e:
            body = e.response.text[:300]
            logger.error(f"Gemini API error: {e.response.status_code}")
            logger.error(f"Gemini API error body: {body}")
            raise GenerationError(f"Gemini API error: {e.response.status_code}", detail=body)
        except httpx.TimeoutException:
            logger.error("Gemini request timed out")
            raise GenerationError("Gemini API timed out")
        except httpx.RequestError as e:
            logger.error(f"Gemini connection error: {e}")
            raise GenerationError("Could not connect to Gemini API", detail=str(e))
        except ValueError as e:
            logger.error(f"Gemini returned invalid JSON: {e}")
            raise GenerationError("Invalid response from Gemini API", detail=str(e))

        # Response format: {"candidates": [{"content": {"parts": [{"text": "..."}]}}]}
        candidates = data.get("candidates") or []
        if not candidates:
            block_reason = (data.get("promptFeedback") or {}).get("blockReason")
            if block_reason:
                logger.warning(f"Gemini returned no candidates, blockReason={block_reason}")
            return ""

        parts = (candidates[0].get("content") or {}).get("parts") or []
        answer = (parts[0].get("text") or "").strip() if parts else ""
        logger.info(f"Gemini answer chars: {len(answer)}")
        return answer


class OllamaClient(BaseLLMClient):
    """LLM client for Ollama local inference."""

    def __init__(self):
        self.base_url = getattr(settings, 'OLLAMA_BASE_URL', 'http://ollama:11434')
        self.model = getattr(settings, 'OLLAMA_CHAT_MODEL', 'llama3.2')
        self.timeout = getattr(settings, 'OLLAMA_CHAT_TIMEOUT', 600)

    @property
    def model_name(self) -> str:
        return self.model

    def generate(self, system_prompt: str, user_message: str) -> str:
        """Send chat request to Ollama."""
        logger.info(f"Calling Ollama chat: model={self.model}, temp={GENERATION_TEMPERATURE}")

        try:
            with httpx.Client(timeout=float(self.timeout)) as client:
                response = client.post(
                    f"{self.base_url}/api/chat",
                    json={
                        "model": self.model,
                        "messages": [
                            {"role": "system", "content": system_prompt},
                            {"role": "user", "content": user_message},
                        ],
                        "stream": False,
                        "options": {
                            "temperature": GENERATION_TEMPERATURE,
                            "top_p": GENERATION_TOP_P,
                            "num_predict": GENERATION_MAX_TOKENS,
                        }
                    }
                )
                response.raise_for_status()
                data = response.json()

        except httpx.HTTPStatusError as e:
            body = e.response.text[:300]
            logger.error(f"Ollama HTTP error: {e.response.status_code} {body}")
            raise GenerationError(f"Ollama service error: {e.response.status_code}", detail=body)
        except httpx.TimeoutException:
            logger.error("Ollama request timed out")
            raise GenerationError("Ollama service timed out")
        except httpx.RequestError as e:
            logger.error(f"Ollama connection error: {e}")
            raise GenerationError("Could not connect to Ollama", detail=str(e))
        except ValueError as e:
            logger.error(f"Ollama returned invalid JSON: {e}")
            raise GenerationError("Invalid response from Ollama", detail=str(e))

        answer = ((data.get("message") or {}).get("content") or "").strip()
        logger.info(f"Ollama response: {len(answer)} chars")
        return answer


# =============================================================================
# Client Factory
# =============================================================================

_client_instance: Optional[BaseLLMClient] = None


def get_llm_client() -> BaseLLMClient:
    """
    Get the configured LLM client instance.

    Uses LLM_PROVIDER setting to determine which client to use:
    - "gemini" (default): Google Gemini API
    - "ollama": Local Ollama inference
    """
    global _client_instance

    # Return cached instance if available
    if _client_instance is not None:
        return _client_instance

    provider = getattr(settings, 'LLM_PROVIDER', 'gemini').lower()

    if provider == 'ollama':
        logger.info("Using Ollama for LLM inference")
        _client_instance = OllamaClient()
    else:
        logger.info("Using Gemini API for LLM inference")
        _client_instance = GeminiClient()

    return _client_instance


def reset_llm_client():
    """Reset the cached client instance. Useful for testing."""
    global _client_instance
    _client_instance = None
