"""Async client for Ollama's chat endpoint, used as Talk's local LLM backend."""

import logging

import httpx
from pydantic import BaseModel

logger = logging.getLogger(__name__)

# Substrings marking chat-tuned models, in order of preference.
PREFERRED_MODEL_MARKERS = ("instruct", "chat", "qwen", "gemma")


class ChatReply(BaseModel):
    """Non-streaming /api/chat reply. Durations are in nanoseconds."""

    model: str
    message: dict
    done: bool
    done_reason: str = ""
    total_duration: int = 0
    load_duration: int = 0
    prompt_eval_count: int = 0
    eval_count: int = 0

    @property
    def text(self) -> str:
        return self.message.get("content") or ""

    @property
    def seconds(self) -> float:
        return self.total_duration / 1e9


def build_messages(
    system: str,
    prompt: str,
    history: list[dict[str, str]] | None = None,
) -> list[dict[str, str]]:
    """System prompt first, then any prior turns, then the new user turn."""
    return [
        {"role": "system", "content": system},
        *(history or []),
        {"role": "user", "content": prompt},
    ]


class OllamaClient:
    """One httpx connection pool to an Ollama server.

    Usage::

        async with OllamaClient("http://localhost:11434") as ollama:
            model = await ollama.pick_instruct_model()
            text, reply = await ollama.chat(model, SYSTEM_PROMPT, "open Safari")
    """

    def __init__(
        self,
        base_url: str,
        *,
        default_keep_alive: str = "5m",
        timeout: float = 120.0,
    ) -> None:
        self._default_keep_alive = default_keep_alive
        self._client = httpx.AsyncClient(base_url=base_url.rstrip("/"), timeout=timeout)

    async def __aenter__(self) -> "OllamaClient":
        return self

    async def __aexit__(self, *exc: object) -> None:
        await self.close()

    async def close(self) -> None:
        await self._client.aclose()

    async def chat(
        self,
        model: str,
        system: str,
        prompt: str,
        *,
        temperature: float = 0.2,
        keep_alive: str | None = None,
        messages: list[dict[str, str]] | None = None,
    ) -> tuple[str, ChatReply]:
        """Ask ``model`` for one reply.

        Args:
            model: Ollama model name, e.g. "gemma3:4b".
            system: Instructions for this task (classification, rewrite, ...).
            prompt: The user turn, usually the transcription.
            temperature: Sampling temperature; the agent keeps it low.
            keep_alive: Model residency after the call. Defaults to the
                client's ``default_keep_alive``.
            messages: Earlier turns placed between ``system`` and ``prompt``.

        Returns:
            The assistant text and the parsed reply.

        Raises:
            httpx.HTTPStatusError: The server answered with a non-2xx status.
            httpx.TransportError: The server could not be reached.
            pydantic.ValidationError: The body is not a chat reply.
        """
        response = await self._client.post(
            "/api/chat",
            json={
                "model": model,
                "messages": build_messages(system, prompt, messages),
                "stream": False,
                "keep_alive": keep_alive or self._default_keep_alive,
                "options": {"temperature": temperature},
            },
        )
        response.raise_for_status()

        reply = ChatReply.model_validate(response.json())
        logger.debug(
            "Ollama %s replied in %.2fs (%d prompt / %d eval tokens)",
            model,
            reply.seconds,
            reply.prompt_eval_count,
            reply.eval_count,
        )
        return reply.text, reply

    async def list_models(self) -> list[str]:
        """Names of the models pulled on the server."""
        response = await self._client.get("/api/tags")
        response.raise_for_status()
        return [m["name"] for m in response.json().get("models", [])]

    async def pick_instruct_model(self) -> str | None:
        return pick_instruct_model(await self.list_models())


def pick_instruct_model(names: list[str]) -> str | None:
    """First chat-tuned model by marker preference, else the first model, else None."""
    for marker in PREFERRED_MODEL_MARKERS:
        for name in names:
            if marker in name.lower():
                return name
    return names[0] if names else None
