"""Async client for the LinkDok HTTP API, used by the CLI."""

import aiohttp
import asyncio
import json
from contextlib import asynccontextmanager
from typing import Dict, Any, AsyncIterator, List, Optional

from linkdok.core.exceptions import LinkDokError, RateLimitedError
from linkdok.utils.logger import get_logger

logger = get_logger(__name__)

class APIClient:
    """Talks to /api/ask, /api/models and /health."""

    def __init__(self, base_url: str = "http://localhost:8000", timeout: int = 300):
        self.base_url = base_url.rstrip('/')
        self.timeout = aiohttp.ClientTimeout(total=timeout)
        self.session: Optional[aiohttp.ClientSession] = None

    async def __aenter__(self):
        self._session()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.close()

    def _session(self) -> aiohttp.ClientSession:
        if self.session is None:
            self.session = aiohttp.ClientSession(timeout=self.timeout)
        return self.session

    @staticmethod
    def build_ask_payload(
        question: str,
        resources: Optional[List[Dict[str, Any]]] = None,
        model: str = "auto",
        thinking_mode: str = "auto",
        playground: bool = False,
        history: Optional[List[Dict[str, Any]]] = None,
        stream: bool = False,
    ) -> Dict[str, Any]:
        return {
            "question": question,
            "resources": resources or [],
            "model": model,
            "thinkingMode": thinking_mode,
            "playground": playground,
            "history": history or [],
            "stream": stream,
        }

    @asynccontextmanager
    async def _request(self, method: str, path: str, **kwargs) -> AsyncIterator[aiohttp.ClientResponse]:
        """
        Open a request and raise for API-level failures.

        Raises:
            RateLimitedError: The server answered 429
            LinkDokError: Any other non-200 status, a transport error or a timeout
        """
        try:
            async with self._session().request(method, f"{self.base_url}{path}", **kwargs) as response:
                if response.status == 429:
                    retry_after = response.headers.get("Retry-After", "60")
                    raise RateLimitedError(int(retry_after) if retry_after.isdigit() else 60)
                if response.status != 200:
                    detail = await response.text()
                    raise LinkDokError(f"API error ({response.status}) on {path}: {detail}")
                yield response
        except aiohttp.ClientError as e:
            logger.error(f"Request to {path} failed: {e}")
            raise LinkDokError(f"Connection error: {e}")
        except asyncio.TimeoutError:
            raise LinkDokError(f"Request to {path} timed out")

    async def ask(self, question: str, **kwargs) -> Dict[str, Any]:
        """
        Ask the tutor and wait for the full answer.

        Args:
            question: User question
            **kwargs: resources, model, thinking_mode, playground, history
        """
        payload = self.build_ask_payload(question, stream=False, **kwargs)
        async with self._request("POST", "/api/ask", json=payload) as response:
            return await response.json()

    async def stream_ask(self, question: str, **kwargs) -> AsyncIterator[Dict[str, Any]]:
        """Yield server-sent event dicts (token, reasoning, result, error) until [DONE]."""
        payload = self.build_ask_payload(question, stream=True, **kwargs)
        async with self._request("POST", "/api/ask", json=payload) as response:
            async for raw in response.content:
                line = raw.decode("utf-8").strip()
                if not line.startswith("data:"):
                    continue
                data = line[5:].strip()
                if data == "[DONE]":
                    return
                try:
                    yield json.loads(data)
                except ValueError:
                    logger.debug(f"Skipping malformed event: {data[:100]}")

    async def models(self) -> List[Dict[str, Any]]:
        async with self._request("GET", "/api/models") as response:
            data = await response.json()
        return data["models"]

    async def health_check(self) -> Dict[str, Any]:
        async with self._request("GET", "/health") as response:
            return await response.json()

    async def close(self):
        if self.session:
            await self.session.close()
            self.session = None
