"""Unit tests for the upstream providers against a fake aiohttp server."""

import asyncio
from typing import Any, Dict, List

import pytest
from aiohttp import web
from aiohttp.test_utils import TestServer

from linkdok.application.tutor import ModelRegistry
from linkdok.core.cancellation import CancellationToken
from linkdok.core.exceptions import (
    ConfigurationError,
    ProviderError,
    RateLimitedError,
    RequestCancelledError,
)
from linkdok.core.models import Intent, ModelProfile
from linkdok.infrastructure.llm import MockProvider, NvidiaProvider, OpenRouterProvider, create_providers
from linkdok.infrastructure.llm.mock_provider import sse_frame

MESSAGES = [{"role": "user", "content": "hi"}]

class FakeUpstream:
    """Records requests and answers them with a swappable handler."""

    def __init__(self):
        self.requests: List[Dict[str, Any]] = []
        self.handler = stream_of(sse_frame(content="ok"), b"data: [DONE]\n\n")
        self.base_url = ""

    async def chat(self, request: web.Request):
        self.requests.append({
            "json": await request.json(),
            "authorization": request.headers.get("Authorization"),
            "accept": request.headers.get("Accept"),
            "title": request.headers.get("X-Title"),
            "referer": request.headers.get("HTTP-Referer"),
        })
        return await self.handler(request)

def stream_of(*frames: bytes, delay: float = 0.0):
    async def handler(request: web.Request):
        response = web.StreamResponse(headers={"Content-Type": "text/event-stream"})
        await response.prepare(request)
        for frame in frames:
            await response.write(frame)
            if delay:
                await asyncio.sleep(delay)
        await response.write_eof()
        return response
    return handler

@pytest.fixture
async def upstream():
    fake = FakeUpstream()
    app = web.Application()
    app.router.add_post("/v1/chat/completions", fake.chat)
    server = TestServer(app)
    await server.start_server()
    fake.base_url = str(server.make_url("/v1"))
    yield fake
    await server.close()

@pytest.fixture
async def nvidia(upstream):
    provider = NvidiaProvider({"base_url": upstream.base_url}, api_key="test-key")
    yield provider
    await provider.shutdown()

@pytest.fixture
async def openrouter(upstream):
    provider = OpenRouterProvider(
        {"base_url": upstream.base_url, "models": ["free-a", "free-b"], "app_url": "https://linkdok.app"},
        api_key="or-key",
    )
    yield provider
    await provider.shutdown()

@pytest.mark.asyncio
async def test_streams_answer_and_tokens(nvidia, upstream):
    upstream.handler = stream_of(
        sse_frame(reasoning="thinking..."),
        sse_frame(content="Hel"),
        sse_frame(content="lo"),
        b"data: [DONE]\n\n",
    )
    tokens, reasoning = [], []

    answer = await nvidia.invoke(
        MESSAGES, "kimi-k2.5", True, None, tokens.append, reasoning.append
    )

    assert answer == "Hello"
    assert tokens == ["Hel", "lo"]
    assert reasoning == ["thinking..."]

@pytest.mark.asyncio
async def test_request_shape(nvidia, upstream):
    await nvidia.invoke(MESSAGES, "qwen3.5")

    request = upstream.requests[0]
    assert request["authorization"] == "Bearer test-key"
    assert request["accept"] == "text/event-stream"
    body = request["json"]
    assert body["model"] == "qwen/qwen3.5-397b-a17b"
    assert body["messages"] == MESSAGES
    assert body["stream"] is True
    assert body["top_k"] == 20
    assert "chat_template_kwargs" not in body

@pytest.mark.asyncio
async def test_thinking_params_sent_only_when_thinking(nvidia, upstream):
    await nvidia.invoke(MESSAGES, "glm5", use_thinking=True)
    await nvidia.invoke(MESSAGES, "glm5", use_thinking=False)

    assert upstream.requests[0]["json"]["chat_template_kwargs"] == {
        "enable_thinking": True, "clear_thinking": False
    }
    assert "chat_template_kwargs" not in upstream.requests[1]["json"]

@pytest.mark.asyncio
async def test_rate_limited_with_json_hint(nvidia, upstream):
    async def handler(request):
        return web.json_response({"retryAfter": 7}, status=429)
    upstream.handler = handler

    with pytest.raises(RateLimitedError) as exc_info:
        await nvidia.invoke(MESSAGES, "qwen3.5")
    assert exc_info.value.retry_after == 7

@pytest.mark.asyncio
async def test_rate_limited_with_header_hint(nvidia, upstream):
    async def handler(request):
        return web.Response(status=429, text="slow down", headers={"Retry-After": "12"})
    upstream.handler = handler

    with pytest.raises(RateLimitedError) as exc_info:
        await nvidia.invoke(MESSAGES, "qwen3.5")
    assert exc_info.value.retry_after == 12

@pytest.mark.asyncio
async def test_rate_limited_default_hint(nvidia, upstream):
    async def handler(request):
        return web.Response(status=429)
    upstream.handler = handler

    with pytest.raises(RateLimitedError) as exc_info:
        await nvidia.invoke(MESSAGES, "qwen3.5")
    assert exc_info.value.retry_after == 60

@pytest.mark.asyncio
async def test_server_error(nvidia, upstream):
    async def handler(request):
        return web.json_response({"error": {"message": "model overloaded"}}, status=503)
    upstream.handler = handler

    with pytest.raises(ProviderError) as exc_info:
        await nvidia.invoke(MESSAGES, "qwen3.5")
    assert exc_info.value.status == 503
    assert "model overloaded" in str(exc_info.value)

@pytest.mark.asyncio
async def test_empty_answer_is_a_failure(nvidia, upstream):
    upstream.handler = stream_of(sse_frame(reasoning="only thoughts"), b"data: [DONE]\n\n")

    with pytest.raises(ProviderError, match="Empty response"):
        await nvidia.invoke(MESSAGES, "kimi-k2.5", use_thinking=True)

@pytest.mark.asyncio
async def test_missing_api_key(upstream):
    provider = NvidiaProvider({"base_url": upstream.base_url}, api_key="")

    assert not provider.configured
    with pytest.raises(ProviderError, match="not configured"):
        await provider.invoke(MESSAGES, "qwen3.5")
    assert upstream.requests == []

@pytest.mark.asyncio
async def test_connection_error():
    provider = NvidiaProvider({"base_url": "http://127.0.0.1:9/v1"}, api_key="k")
    try:
        with pytest.raises(ProviderError):
            await provider.invoke(MESSAGES, "qwen3.5")
    finally:
        await provider.shutdown()

@pytest.mark.asyncio
async def test_timeout_cancels_with_timeout_reason(upstream):
    registry = ModelRegistry(
        profiles={"slow": ModelProfile(model="vendor/slow", max_tokens=10, temperature=0.1,
                                       top_p=0.9, timeout_ms=50)},
        routing={Intent.GENERAL: ["slow"]},
    )
    provider = NvidiaProvider({"base_url": upstream.base_url}, registry=registry, api_key="k")
    upstream.handler = stream_of(sse_frame(content="a"), sse_frame(content="b"), delay=0.5)

    try:
        with pytest.raises(RequestCancelledError) as exc_info:
            await provider.invoke(MESSAGES, "slow")
    finally:
        await provider.shutdown()

    assert exc_info.value.timed_out
    assert exc_info.value.reason == "timeout"

@pytest.mark.asyncio
async def test_user_cancel_stops_tokens(nvidia, upstream):
    upstream.handler = stream_of(sse_frame(content="a"), sse_frame(content="b"), sse_frame(content="c"),
                                 delay=0.2)
    token = CancellationToken()
    asyncio.get_running_loop().call_later(0.05, token.cancel)
    tokens = []

    with pytest.raises(RequestCancelledError) as exc_info:
        await nvidia.invoke(MESSAGES, "qwen3.5", cancel_token=token, on_token=tokens.append)

    assert exc_info.value.reason == "user"
    assert not exc_info.value.timed_out
    received = list(tokens)
    await asyncio.sleep(0.3)
    assert tokens == received
    assert len(tokens) <= 1

@pytest.mark.asyncio
async def test_already_cancelled_token_skips_the_call(nvidia, upstream):
    token = CancellationToken()
    token.cancel()

    with pytest.raises(RequestCancelledError):
        await nvidia.invoke(MESSAGES, "qwen3.5", cancel_token=token)
    assert upstream.requests == []

def test_nvidia_timeouts():
    provider = NvidiaProvider({"thinking_floor_ms": 180_000}, api_key="k")

    assert provider.timeout_seconds("kimi-k2.5", False) == 180
    assert provider.timeout_seconds("qwen3.5", False) == 160
    assert provider.timeout_seconds("qwen3.5", True) == 180
    assert provider.timeout_seconds("step-flash", False) == 25

def test_thinking_floor_only_extends():
    provider = NvidiaProvider({"thinking_floor_ms": 10_000}, api_key="k")
    assert provider.timeout_seconds("kimi-k2.5", True) == 180

@pytest.mark.asyncio
async def test_openrouter_request_shape(openrouter, upstream):
    answer = await openrouter.invoke(MESSAGES, "free-a", use_thinking=True)

    assert answer == "ok"
    request = upstream.requests[0]
    assert request["authorization"] == "Bearer or-key"
    assert request["title"] == "LinkDok - AI Learning Platform"
    assert request["referer"] == "https://linkdok.app"
    assert request["json"] == {
        "model": "free-a",
        "messages": MESSAGES,
        "temperature": 0.3,
        "max_tokens": 2000,
        "stream": True,
    }

def test_openrouter_defaults():
    provider = OpenRouterProvider({}, api_key="k")
    assert len(provider.models) == 5
    assert provider.models[0] == "tngtech/deepseek-r1t2-chimera:free"
    assert provider.timeout_seconds("any", False) == 30

@pytest.mark.asyncio
async def test_proxy_completion_non_streaming(nvidia, upstream):
    async def handler(request):
        return web.json_response({"choices": [{"message": {"content": "hi"}}]})
    upstream.handler = handler

    async with nvidia.open_completion({"model": "x", "messages": MESSAGES}, stream=False) as response:
        await nvidia.raise_for_status(response)
        data = await response.json()

    assert data["choices"][0]["message"]["content"] == "hi"
    assert upstream.requests[0]["accept"] == "application/json"

def test_create_providers_modes():
    primary, secondary = create_providers({"mode": "mock", "openrouter": {"models": ["m1"]}})
    assert isinstance(primary, MockProvider)
    assert secondary.models == ["m1"]

    primary, secondary = create_providers({"mode": "live", "app_url": "https://x.test"})
    assert isinstance(primary, NvidiaProvider)
    assert isinstance(secondary, OpenRouterProvider)
    assert secondary.app_url == "https://x.test"

    with pytest.raises(ConfigurationError):
        create_providers({"mode": "carrier-pigeon"})

@pytest.mark.asyncio
async def test_openrouter_referer_falls_back_to_origin(upstream):
    provider = OpenRouterProvider({"base_url": upstream.base_url}, api_key="or-key")
    upstream.handler = stream_of(b"data: [DONE]\n\n")
    try:
        async with provider.open_completion({"model": "m", "messages": MESSAGES}, origin="https://tab.test"):
            pass
        async with provider.open_completion({"model": "m", "messages": MESSAGES}):
            pass
    finally:
        await provider.shutdown()

    assert upstream.requests[0]["referer"] == "https://tab.test"
    assert upstream.requests[1]["referer"] is None

@pytest.mark.asyncio
async def test_configured_app_url_wins_over_origin(openrouter, upstream):
    upstream.handler = stream_of(b"data: [DONE]\n\n")

    async with openrouter.open_completion({"model": "m", "messages": MESSAGES}, origin="https://tab.test"):
        pass

    assert upstream.requests[0]["referer"] == "https://linkdok.app"

@pytest.mark.parametrize("provider", [
    NvidiaProvider({}, api_key="k"),
    OpenRouterProvider({}, api_key=""),
    MockProvider(),
])
def test_providers_expose_interface_attributes(provider):
    for attribute in ("name", "label", "models", "configured"):
        assert hasattr(provider, attribute)
    assert isinstance(provider.models, list)
    assert callable(provider.raise_for_status)

def test_configured_follows_api_key():
    assert NvidiaProvider({}, api_key="k").configured is True
    assert OpenRouterProvider({}, api_key="").configured is False
