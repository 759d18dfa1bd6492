"""
Request gate shared by every AI endpoint.

- Sliding-window rate limiting per client IP, held in process memory. The
  table resets on restart, which is acceptable at this scale.
- Client IP resolution behind proxies.
- Chat payload validation.
"""

import json
import math
import threading
import time
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Mapping, Optional

from fastapi import Request

from linkdok.utils.logger import get_logger

logger = get_logger(__name__)

ANONYMOUS = "anon"

ALLOWED_ROLES = frozenset({"user", "assistant", "system"})
MAX_MESSAGES = 30
MAX_MESSAGE_CHARS = 800_000  # room for base64 images and large extracted pages

CORS_HEADERS = {
    "Access-Control-Allow-Origin": "*",
    "Access-Control-Allow-Methods": "POST, OPTIONS",
    "Access-Control-Allow-Headers": "Content-Type",
}


@dataclass
class RateLimitDecision:
    """Outcome of one admission check."""

    allowed: bool
    retry_after: Optional[int] = None


class SlidingWindowRateLimiter:
    """Per-client sliding-window limiter."""

    def __init__(
        self,
        sweep_threshold: int = 10_000,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.sweep_threshold = sweep_threshold
        self._clock = clock
        self._hits: Dict[str, List[float]] = {}
        self._lock = threading.Lock()

    def __len__(self) -> int:
        return len(self._hits)

    def admit(self, client_id: str, limit: int = 10, window_ms: int = 60_000) -> RateLimitDecision:
        """
        Admit or reject one request from ``client_id``.

        Args:
            client_id: Client identifier (usually an IP)
            limit: Requests allowed per window
            window_ms: Window length in milliseconds

        Returns:
            RateLimitDecision; rejected decisions carry retry_after >= 1
        """
        key = client_id or ANONYMOUS

        with self._lock:
            now = self._clock() * 1000
            hits = [t for t in self._hits.get(key, []) if now - t < window_ms]

            if len(hits) >= limit:
                self._hits[key] = hits
                retry_after = math.ceil((hits[0] + window_ms - now) / 1000)
                return RateLimitDecision(allowed=False, retry_after=max(1, retry_after))

            hits.append(now)
            self._hits[key] = hits

            if len(self._hits) > self.sweep_threshold:
                self._sweep(now, window_ms)

        return RateLimitDecision(allowed=True)

    def _sweep(self, now: float, window_ms: int) -> None:
        stale = [k for k, hits in self._hits.items() if all(now - t >= window_ms for t in hits)]
        for key in stale:
            del self._hits[key]
        if stale:
            logger.debug(f"Rate limiter swept {len(stale)} idle clients")

    def reset(self) -> None:
        with self._lock:
            self._hits.clear()


def resolve_client_id(headers: Mapping[str, str], peer: Optional[str] = None) -> str:
    """First X-Forwarded-For entry, then X-Real-IP, then the peer address."""
    forwarded = headers.get("x-forwarded-for")
    if forwarded:
        first = forwarded.split(",")[0].strip()
        if first:
            return first

    real_ip = headers.get("x-real-ip")
    if real_ip:
        return real_ip.strip()

    return peer or ANONYMOUS


def get_client_ip(request: Request) -> str:
    """Extract the client IP from a request, honouring proxy headers."""
    peer = request.client.host if request.client else None
    return resolve_client_id(request.headers, peer)


def validate_messages(
    messages: Any,
    max_messages: int = MAX_MESSAGES,
    max_chars: int = MAX_MESSAGE_CHARS,
) -> Optional[str]:
    """
    Check a chat payload.

    Returns:
        A human-readable description of the first violation, or None when
        the payload is valid
    """
    if not isinstance(messages, list):
        return "messages must be an array"
    if not messages:
        return "messages array is empty"
    if len(messages) > max_messages:
        return f"Too many messages (max {max_messages})"

    for message in messages:
        if not isinstance(message, dict):
            return "Invalid message object"
        role = message.get("role")
        if not isinstance(role, str) or role not in ALLOWED_ROLES:
            return f'Invalid role "{role}"'

        content = message.get("content")
        if isinstance(content, str):
            size = len(content)
        else:
            size = len(json.dumps(content, separators=(",", ":"), ensure_ascii=False))
        if size > max_chars:
            return f"Message too large (max {max_chars} characters)"

    return None
