from __future__ import annotations

"""Chat completions against Groq's OpenAI-compatible endpoint."""

from dataclasses import dataclass, field
import json
import logging
import time
from typing import Any, AsyncIterator, Dict, List, Literal

import httpx
from pydantic import BaseModel
from tenacity import AsyncRetrying, RetryError, retry_if_exception_type, stop_after_attempt, wait_exponential

from .config import settings
from .errors import LLMError
from .utils.logging import log_event
from .utils.tracing import async_span

DEFAULT_MODEL = "openai/gpt-oss-120b"
REASONING_LEVELS = ("low", "medium", "high")

logger = logging.getLogger(__name__)


class ChatMessage(BaseModel):
    """One entry of the prompt sent to the model."""

    role: Literal["system", "user", "assistant"]
    content: str


@dataclass
class ChatOptions:
    model: str = DEFAULT_MODEL
    temperature: float = 0.7
    max_tokens: int = 2048
    reasoning_effort: Literal["low", "medium", "high"] = "medium"

    def payload(self, messages: List[Dict[str, str]], stream: bool) -> Dict[str, Any]:
        if self.reasoning_effort not in REASONING_LEVELS:
            raise ValueError(f"reasoning_effort must be one of {REASONING_LEVELS}")
        return {
            "model": self.model,
            "messages": messages,
            "temperature": self.temperature,
            "max_completion_tokens": self.max_tokens,
            "reasoning_effort": self.reasoning_effort,
            "stream": stream,
        }


@dataclass
class Usage:
    prompt_tokens: int = 0
    completion_tokens: int = 0
    total_tokens: int = 0

    @classmethod
    def from_dict(cls, data: Dict[str, Any] | None) -> "Usage":
        data = data or {}
        return cls(
            prompt_tokens=int(data.get("prompt_tokens", 0) or 0),
            completion_tokens=int(data.get("completion_tokens", 0) or 0),
            total_tokens=int(data.get("total_tokens", 0) or 0),
        )


@dataclass
class ChatResult:
    content: str
    model: str
    usage: Usage = field(default_factory=Usage)
    latency_ms: int = 0


@dataclass
class StreamChunk:
    content: str
    done: bool = False
    usage: Usage = field(default_factory=Usage)


class GroqClient:
    """Minimal async client; pass ``transport`` to route requests elsewhere."""

    def __init__(
        self,
        api_key: str | None = None,
        *,
        base_url: str | None = None,
        model: str | None = None,
        timeout: float = 30.0,
        attempts: int = 3,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.api_key = api_key if api_key is not None else settings.groq_api_key
        self.base_url = (base_url or settings.groq_base_url).rstrip("/")
        self.model = model or settings.groq_model
        self.timeout = timeout
        self.attempts = attempts
        self.transport = transport

    def _headers(self) -> Dict[str, str]:
        if not self.api_key:
            raise LLMError("GROQ_API_KEY is not configured")
        return {"Authorization": f"Bearer {self.api_key}", "Content-Type": "application/json"}

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(timeout=self.timeout, transport=self.transport)

    def _options(self, options: ChatOptions | None) -> ChatOptions:
        return options or ChatOptions(model=self.model)

    async def complete(
        self, messages: List[Dict[str, str]], options: ChatOptions | None = None
    ) -> ChatResult:
        """Return the full completion for ``messages``."""
        opts = self._options(options)
        headers = self._headers()
        payload = opts.payload(messages, stream=False)
        start = time.monotonic()
        async with async_span("llm.complete", model=opts.model):
            try:
                async with self._client() as client:
                    async for attempt in AsyncRetrying(
                        stop=stop_after_attempt(self.attempts),
                        wait=wait_exponential(multiplier=0.5),
                        retry=retry_if_exception_type(httpx.HTTPError),
                    ):
                        with attempt:
                            resp = await client.post(
                                f"{self.base_url}/chat/completions", json=payload, headers=headers
                            )
                            resp.raise_for_status()
                data = resp.json()
                content = data["choices"][0]["message"].get("content") or ""
            except Exception as e:  # noqa: BLE001
                error = str(e.last_attempt.exception()) if isinstance(e, RetryError) else repr(e)
                await log_event("llm_error", {"model": opts.model, "error": error}, logging.ERROR)
                raise LLMError() from e
        latency = int((time.monotonic() - start) * 1000)
        await log_event("llm_complete", {"model": opts.model, "latency_ms": latency})
        return ChatResult(
            content=content,
            model=data.get("model", opts.model),
            usage=Usage.from_dict(data.get("usage")),
            latency_ms=latency,
        )

    async def stream(
        self, messages: List[Dict[str, str]], options: ChatOptions | None = None
    ) -> AsyncIterator[StreamChunk]:
        """Yield content deltas, then one final chunk with ``done=True``."""
        opts = self._options(options)
        headers = self._headers()
        payload = opts.payload(messages, stream=True)
        usage = Usage()
        try:
            async with self._client() as client:
                async with client.stream(
                    "POST", f"{self.base_url}/chat/completions", json=payload, headers=headers
                ) as resp:
                    resp.raise_for_status()
                    async for line in resp.aiter_lines():
                        if not line.startswith("data:"):
                            continue
                        data = line[len("data:") :].strip()
                        if data == "[DONE]":
                            break
                        try:
                            event = json.loads(data)
                        except ValueError:
                            logger.warning("ignoring malformed stream event")
                            continue
                        extra = event.get("x_groq") or {}
                        if event.get("usage") or extra.get("usage"):
                            usage = Usage.from_dict(event.get("usage") or extra.get("usage"))
                        for choice in event.get("choices", []):
                            delta = (choice.get("delta") or {}).get("content")
                            if delta:
                                yield StreamChunk(content=delta)
        except httpx.HTTPError as e:
            await log_event("llm_stream_error", {"model": opts.model, "error": repr(e)}, logging.ERROR)
            raise LLMError() from e
        yield StreamChunk(content="", done=True, usage=usage)


__all__ = [
    "DEFAULT_MODEL",
    "REASONING_LEVELS",
    "ChatMessage",
    "ChatOptions",
    "Usage",
    "ChatResult",
    "StreamChunk",
    "GroqClient",
]
