"""Text-in/text-out LLM contract used by the classifier, workflows and handlers.

Consumers only see ``is_configured`` and ``enhance(text, prompt)``. The
Ollama-backed service maps transport and response problems onto LLMError
kinds.
"""

import logging
import re
from enum import StrEnum
from typing import Protocol

import httpx

from talk.integrations.ollama import OllamaClient

logger = logging.getLogger(__name__)


class LLMErrorKind(StrEnum):
    NOT_CONFIGURED = "not_configured"
    CONNECTION_FAILED = "connection_failed"
    REQUEST_FAILED = "request_failed"
    INVALID_RESPONSE = "invalid_response"
    NO_CONTENT = "no_content"


_LLM_ERROR_MESSAGES = {
    LLMErrorKind.NOT_CONFIGURED: "LLM provider is not configured",
    LLMErrorKind.CONNECTION_FAILED: "Failed to connect to LLM service",
    LLMErrorKind.REQUEST_FAILED: "Request failed: {detail}",
    LLMErrorKind.INVALID_RESPONSE: "Invalid response from LLM",
    LLMErrorKind.NO_CONTENT: "No content in LLM response",
}


class LLMError(Exception):
    """Classified failure of the generation service."""

    def __init__(self, kind: LLMErrorKind, detail: str = "") -> None:
        self.kind = kind
        self.detail = detail
        message = _LLM_ERROR_MESSAGES[kind].format(detail=detail)
        if detail and "{detail}" not in _LLM_ERROR_MESSAGES[kind]:
            message = f"{message}: {detail}"
        super().__init__(message)


class GenerationService(Protocol):
    @property
    def is_configured(self) -> bool: ...

    async def enhance(self, text: str, prompt: str) -> str: ...


class OllamaGenerationService:
    """GenerationService backed by an open OllamaClient."""

    def __init__(
        self,
        client: OllamaClient | None,
        model: str | None,
        *,
        keep_alive: str | None = None,
        temperature: float = 0.2,
    ) -> None:
        self._client = client
        self._model = model
        self._keep_alive = keep_alive
        self._temperature = temperature

    @property
    def is_configured(self) -> bool:
        return self._client is not None and bool(self._model)

    @property
    def model(self) -> str | None:
        return self._model

    async def enhance(self, text: str, prompt: str) -> str:
        """Run ``text`` through the model with ``prompt`` as the system prompt.

        Raises:
            LLMError: For every failure; never a raw httpx exception.
        """
        if self._client is None or not self._model:
            raise LLMError(LLMErrorKind.NOT_CONFIGURED)

        try:
            content, _raw = await self._client.chat(
                model=self._model,
                system=prompt,
                prompt=text,
                temperature=self._temperature,
                keep_alive=self._keep_alive,
            )
        except (httpx.ConnectError, httpx.TimeoutException) as e:
            raise LLMError(LLMErrorKind.CONNECTION_FAILED, str(e)) from e
        except httpx.HTTPStatusError as e:
            raise LLMError(
                LLMErrorKind.REQUEST_FAILED,
                f"HTTP {e.response.status_code}",
            ) from e
        except httpx.HTTPError as e:
            raise LLMError(LLMErrorKind.REQUEST_FAILED, str(e)) from e
        except ValueError as e:
            raise LLMError(LLMErrorKind.INVALID_RESPONSE, str(e)) from e

        content = content.strip()
        if not content:
            raise LLMError(LLMErrorKind.NO_CONTENT)
        return content


class DisabledGenerationService:
    """Stand-in used when no LLM provider is configured."""

    @property
    def is_configured(self) -> bool:
        return False

    async def enhance(self, text: str, prompt: str) -> str:
        raise LLMError(LLMErrorKind.NOT_CONFIGURED)


_FENCE = re.compile(r"```(?:json)?", re.IGNORECASE)


def strip_code_fences(response: str) -> str:
    """Remove markdown code fences an LLM may wrap its JSON in."""
    return _FENCE.sub("", response.strip()).strip()
