"""Base provider implementation."""

import asyncio
import json
import time
from abc import ABC, abstractmethod
from contextlib import asynccontextmanager
from typing import Dict, Any, List, Optional, AsyncIterator

import aiohttp

from linkdok.core.cancellation import CancellationToken
from linkdok.core.exceptions import ProviderError, RateLimitedError, RequestCancelledError
from linkdok.core.interfaces import TokenCallback
from linkdok.utils.config import get_api_key
from linkdok.utils.logger import get_logger
from .stream_reader import consume

logger = get_logger(__name__)

DEFAULT_RETRY_AFTER = 60


class BaseProvider(ABC):
    """Base class for OpenAI-compatible streaming chat providers."""

    name = "base"
    label = "Provider"

    def __init__(self, config: Dict[str, Any], api_key: Optional[str] = None):
        self.config = config
        self.base_url = config.get("base_url", "").rstrip("/")
        self.api_key = api_key if api_key is not None else get_api_key(self.name)
        self.connect_timeout = config.get("connect_timeout", 10)
        self.models: List[str] = list(config.get("models") or [])
        self.session: Optional[aiohttp.ClientSession] = None

    @property
    def configured(self) -> bool:
        return bool(self.api_key)

    async def initialize(self) -> None:
        """Create the HTTP session."""
        if self.session is not None and not self.session.closed:
            return

        # Per-request deadlines come from cancellation tokens, not aiohttp.
        timeout = aiohttp.ClientTimeout(total=None, sock_connect=self.connect_timeout)
        self.session = aiohttp.ClientSession(timeout=timeout)
        logger.info(f"{self.label} provider initialized: {self.base_url}")

    def _headers(self, stream: bool, origin: Optional[str] = None) -> Dict[str, str]:
        return {
            "Content-Type": "application/json",
            "Authorization": f"Bearer {self.api_key}",
            "Accept": "text/event-stream" if stream else "application/json",
        }

    @abstractmethod
    def build_payload(
        self, messages: List[Dict[str, Any]], model_id: str, use_thinking: bool
    ) -> Dict[str, Any]:
        """Build the provider-specific streaming request body."""
        pass

    @abstractmethod
    def timeout_seconds(self, model_id: str, use_thinking: bool) -> float:
        """Deadline for one streaming call."""
        pass

    @asynccontextmanager
    async def open_completion(
        self,
        payload: Dict[str, Any],
        stream: bool = False,
        timeout: Optional[float] = None,
        origin: Optional[str] = None,
    ) -> AsyncIterator[aiohttp.ClientResponse]:
        """
        POST to the chat-completions endpoint and yield the open response.

        ``timeout`` bounds the whole exchange in seconds; without it only the
        connect timeout applies. ``origin`` is the browser origin of a proxied
        request, for providers that attribute traffic to the calling app.
        """
        if not self.configured:
            raise ProviderError(f"{self.label} API key not configured")

        await self.initialize()
        url = f"{self.base_url}/chat/completions"

        try:
            async with self.session.post(
                url,
                json=payload,
                headers=self._headers(stream, origin),
                timeout=aiohttp.ClientTimeout(total=timeout, sock_connect=self.connect_timeout),
            ) as response:
                yield response
        except asyncio.TimeoutError:
            raise ProviderError(f"{self.label} request timed out")
        except aiohttp.ClientError as e:
            raise ProviderError(f"{self.label} connection error: {e}")

    async def invoke(
        self,
        messages: List[Dict[str, Any]],
        model_id: str,
        use_thinking: bool = False,
        cancel_token: Optional[CancellationToken] = None,
        on_token: Optional[TokenCallback] = None,
        on_reasoning_token: Optional[TokenCallback] = None,
    ) -> str:
        """
        Stream one completion from ``model_id``.

        The call is raced against the caller's token combined with an
        internal timeout; whichever fires first aborts the HTTP request.

        Raises:
            RateLimitedError: Upstream returned 429
            RequestCancelledError: Caller cancelled or the timeout fired
            ProviderError: Transport error, non-2xx status or empty answer
        """
        if cancel_token is not None and cancel_token.cancelled:
            raise RequestCancelledError(cancel_token.reason, model_id)

        payload = self.build_payload(messages, model_id, use_thinking)
        timeout_token = CancellationToken.after(self.timeout_seconds(model_id, use_thinking))
        combined = CancellationToken.any(cancel_token, timeout_token)

        start_time = time.time()
        call = asyncio.ensure_future(
            self._stream(payload, model_id, on_token, on_reasoning_token)
        )
        waiter = asyncio.ensure_future(combined.wait())

        try:
            done, _ = await asyncio.wait(
                {call, waiter}, return_when=asyncio.FIRST_COMPLETED
            )
            if call in done:
                content = call.result()
                logger.debug(
                    f"{self.label} {model_id} streamed {len(content)} chars",
                    extra={
                        "model": model_id,
                        "latency_ms": int((time.time() - start_time) * 1000),
                    },
                )
                return content
            raise RequestCancelledError(combined.reason, model_id)
        finally:
            for task in (call, waiter):
                if not task.done():
                    task.cancel()
            await asyncio.gather(call, waiter, return_exceptions=True)
            combined.dispose()
            timeout_token.dispose()

    async def _stream(
        self,
        payload: Dict[str, Any],
        model_id: str,
        on_token: Optional[TokenCallback],
        on_reasoning_token: Optional[TokenCallback],
    ) -> str:
        async with self.open_completion(payload, stream=True) as response:
            await self.raise_for_status(response, model_id)
            content = await consume(
                response.content.iter_any(), on_token, on_reasoning_token
            )

        if not content:
            raise ProviderError("Empty response", model=model_id)
        return content

    async def raise_for_status(self, response: Any, model_id: Optional[str] = None) -> None:
        """Translate a non-2xx upstream response into an exception."""
        await check_response(response, self.label, model_id)

    async def health_check(self) -> bool:
        """Check that the provider can be called."""
        if not self.configured:
            return False
        try:
            await self.initialize()
            return True
        except Exception as e:
            logger.error(f"{self.label} health check failed: {e}")
            return False

    async def shutdown(self) -> None:
        """Close the HTTP session."""
        if self.session is not None:
            await self.session.close()
            self.session = None
            logger.info(f"{self.label} provider shut down")


async def retry_after_hint(response: Any) -> int:
    """Seconds to wait, from a JSON ``retryAfter`` field or the Retry-After header."""
    try:
        data = await response.json(content_type=None)
        if isinstance(data, dict) and data.get("retryAfter"):
            return max(1, int(data["retryAfter"]))
    except (ValueError, TypeError, aiohttp.ClientError):
        pass

    header = response.headers.get("Retry-After")
    if header and header.isdigit():
        return max(1, int(header))
    return DEFAULT_RETRY_AFTER


async def error_detail(response: Any) -> str:
    """Best-effort error message from an upstream error body."""
    try:
        text = await response.text()
    except (aiohttp.ClientError, UnicodeDecodeError):
        return getattr(response, "reason", None) or "unknown error"

    try:
        data = json.loads(text)
    except ValueError:
        data = None

    if isinstance(data, dict):
        error = data.get("error")
        if isinstance(error, dict) and error.get("message"):
            return error["message"]
        if isinstance(error, str) and error:
            return error
    return text[:500] or getattr(response, "reason", None) or "unknown error"


async def check_response(response: Any, label: str, model_id: Optional[str] = None) -> None:
    """Raise RateLimitedError on 429 and ProviderError on any other non-2xx."""
    if response.status == 429:
        raise RateLimitedError(await retry_after_hint(response))
    if response.status >= 400:
        detail = await error_detail(response)
        raise ProviderError(
            f"{label} {response.status}: {detail}",
            model=model_id,
            status=response.status,
        )
