"""Scripted provider for testing and offline development."""

import asyncio
import json
from contextlib import asynccontextmanager
from typing import Dict, Any, List, Optional, AsyncIterator, Union

from linkdok.core.cancellation import CancellationToken
from linkdok.core.exceptions import ProviderError, RequestCancelledError
from linkdok.core.interfaces import TokenCallback
from .base import check_response

Outcome = Union[str, BaseException]


def sse_frame(content: str = "", reasoning: str = "") -> bytes:
    """Encode one chat-completion chunk as an SSE data line."""
    delta: Dict[str, Any] = {}
    if reasoning:
        delta["reasoning_content"] = reasoning
    if content:
        delta["content"] = content
    return f"data: {json.dumps({'choices': [{'delta': delta}]})}\n\n".encode()


class _MockBody:
    def __init__(self, chunks: List[bytes]):
        self._chunks = chunks

    async def iter_any(self) -> AsyncIterator[bytes]:
        for chunk in self._chunks:
            yield chunk


class MockResponse:
    """Minimal stand-in for an upstream HTTP response."""

    def __init__(
        self,
        status: int = 200,
        body: Optional[Dict[str, Any]] = None,
        chunks: Optional[List[bytes]] = None,
        headers: Optional[Dict[str, str]] = None,
    ):
        self.status = status
        self.reason = "OK" if status < 400 else "Error"
        self.headers = headers or {}
        self._body = body or {}
        self.content = _MockBody(chunks or [])

    async def json(self, content_type: Optional[str] = None) -> Dict[str, Any]:
        return self._body

    async def text(self) -> str:
        return json.dumps(self._body)


class MockProvider:
    """
    Provider whose answers are scripted per model.

    ``responses`` maps a model id to either an answer string (streamed word
    by word) or an exception instance to raise. Unscripted models answer
    with ``default_response``. Every call is recorded in ``calls``.
    """

    def __init__(
        self,
        config: Optional[Dict[str, Any]] = None,
        responses: Optional[Dict[str, Outcome]] = None,
        name: str = "mock",
    ):
        config = config or {}
        self.name = name
        self.label = name
        self.configured = config.get("configured", True)
        self.models: List[str] = list(config.get("models", ["mock-free-1", "mock-free-2"]))
        self.responses: Dict[str, Outcome] = dict(responses or {})
        self.default_response = config.get(
            "default_response", "This is a mock response from the tutor."
        )
        self.reasoning = config.get("reasoning", "")
        self.delay = config.get("delay", 0.0)
        self.calls: List[Dict[str, Any]] = []
        self.proxy_requests: List[Dict[str, Any]] = []
        self.proxy_response: Optional[MockResponse] = None
        self._initialized = False

    async def initialize(self) -> None:
        self._initialized = True

    async def invoke(
        self,
        messages: List[Dict[str, Any]],
        model_id: str,
        use_thinking: bool = False,
        cancel_token: Optional[CancellationToken] = None,
        on_token: Optional[TokenCallback] = None,
        on_reasoning_token: Optional[TokenCallback] = None,
    ) -> str:
        self.calls.append(
            {"model": model_id, "use_thinking": use_thinking, "messages": messages}
        )
        if cancel_token is not None and cancel_token.cancelled:
            raise RequestCancelledError(cancel_token.reason, model_id)

        outcome = self.responses.get(model_id, self.default_response)
        if isinstance(outcome, BaseException):
            raise outcome

        if use_thinking and self.reasoning and on_reasoning_token:
            on_reasoning_token(self.reasoning)

        words = outcome.split(" ")
        for i, word in enumerate(words):
            if self.delay:
                await asyncio.sleep(self.delay)
            if cancel_token is not None and cancel_token.cancelled:
                raise RequestCancelledError(cancel_token.reason, model_id)
            if on_token:
                on_token(word if i == len(words) - 1 else word + " ")

        if not outcome:
            raise ProviderError("Empty response", model=model_id)
        return outcome

    @asynccontextmanager
    async def open_completion(
        self,
        payload: Dict[str, Any],
        stream: bool = False,
        timeout: Optional[float] = None,
        origin: Optional[str] = None,
    ) -> AsyncIterator[MockResponse]:
        self.calls.append({"model": payload.get("model"), "proxy": True, "stream": stream})
        self.proxy_requests.append({"payload": payload, "origin": origin})
        if self.proxy_response is not None:
            yield self.proxy_response
            return

        answer = self.default_response
        if stream:
            chunks = [sse_frame(content=word + " ") for word in answer.split(" ")]
            yield MockResponse(chunks=chunks + [b"data: [DONE]\n\n"])
        else:
            yield MockResponse(
                body={
                    "model": payload.get("model"),
                    "choices": [{"message": {"role": "assistant", "content": answer}}],
                }
            )

    async def raise_for_status(self, response: Any, model_id: Optional[str] = None) -> None:
        await check_response(response, self.label, model_id)

    async def health_check(self) -> bool:
        return True

    async def shutdown(self) -> None:
        self._initialized = False
