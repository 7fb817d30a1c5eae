import json

import httpx
import pytest

from spawnkit.errors import LLMError
from spawnkit.llm import DEFAULT_MODEL, ChatOptions, GroqClient


def _client(handler, **kw):
    return GroqClient("test-key", base_url="https://api.groq.com/openai/v1", transport=httpx.MockTransport(handler), **kw)


@pytest.mark.asyncio
async def test_complete_sends_defaults():
    seen = {}

    def handler(request: httpx.Request) -> httpx.Response:
        seen["url"] = str(request.url)
        seen["auth"] = request.headers["authorization"]
        seen["body"] = json.loads(request.content)
        return httpx.Response(
            200,
            json={
                "model": DEFAULT_MODEL,
                "choices": [{"message": {"role": "assistant", "content": "hello"}}],
                "usage": {"prompt_tokens": 3, "completion_tokens": 1, "total_tokens": 4},
            },
        )

    result = await _client(handler).complete([{"role": "user", "content": "hi"}], ChatOptions())
    assert result.content == "hello"
    assert result.usage.total_tokens == 4
    assert seen["url"] == "https://api.groq.com/openai/v1/chat/completions"
    assert seen["auth"] == "Bearer test-key"
    body = seen["body"]
    assert body["model"] == "openai/gpt-oss-120b"
    assert body["temperature"] == 0.7
    assert body["max_completion_tokens"] == 2048
    assert body["reasoning_effort"] == "medium"
    assert body["stream"] is False


@pytest.mark.asyncio
async def test_complete_retries_then_succeeds():
    attempts = []

    def handler(request):
        attempts.append(1)
        if len(attempts) == 1:
            return httpx.Response(503)
        return httpx.Response(200, json={"choices": [{"message": {"content": "ok"}}]})

    result = await _client(handler).complete([{"role": "user", "content": "hi"}])
    assert result.content == "ok"
    assert len(attempts) == 2


@pytest.mark.asyncio
async def test_complete_failure_raises_llm_error():
    def handler(request):
        return httpx.Response(500, json={"error": "boom"})

    with pytest.raises(LLMError):
        await _client(handler, attempts=1).complete([{"role": "user", "content": "hi"}])


@pytest.mark.asyncio
async def test_missing_api_key():
    client = GroqClient("", transport=httpx.MockTransport(lambda r: httpx.Response(200)))
    with pytest.raises(LLMError):
        await client.complete([{"role": "user", "content": "hi"}])


def test_invalid_reasoning_effort():
    with pytest.raises(ValueError):
        ChatOptions(reasoning_effort="extreme").payload([], stream=False)


@pytest.mark.asyncio
async def test_stream_yields_deltas_then_done():
    events = [
        {"choices": [{"delta": {"role": "assistant"}}]},
        {"choices": [{"delta": {"content": "Hel"}}]},
        {"choices": [{"delta": {"content": "lo"}}]},
    ]
    body = "".join(f"data: {json.dumps(e)}\n\n" for e in events) + "data: [DONE]\n\n"

    def handler(request):
        assert json.loads(request.content)["stream"] is True
        return httpx.Response(200, content=body.encode(), headers={"content-type": "text/event-stream"})

    chunks = [c async for c in _client(handler).stream([{"role": "user", "content": "hi"}])]
    assert [c.content for c in chunks] == ["Hel", "lo", ""]
    assert [c.done for c in chunks] == [False, False, True]
    assert chunks[-1].usage.total_tokens == 0


@pytest.mark.asyncio
async def test_stream_reports_usage():
    events = [
        {"choices": [{"delta": {"content": "x"}}]},
        {"choices": [], "x_groq": {"usage": {"prompt_tokens": 2, "completion_tokens": 1, "total_tokens": 3}}},
    ]
    body = "".join(f"data: {json.dumps(e)}\n\n" for e in events) + "data: [DONE]\n\n"
    chunks = [c async for c in _client(lambda r: httpx.Response(200, content=body.encode())).stream([])]
    assert chunks[-1].done
    assert chunks[-1].usage.total_tokens == 3
