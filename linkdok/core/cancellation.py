"""Cooperative cancellation tokens.

A token is cancelled at most once and remembers why. Tokens compose: a token
built with ``CancellationToken.any(a, b)`` is cancelled as soon as either
constituent is, and inherits that constituent's reason. Timeout tokens
cancel themselves with reason ``timeout`` after a delay.
"""

import asyncio
from typing import Callable, List, Optional

USER = "user"
TIMEOUT = "timeout"


class CancellationToken:
    """Single-shot cancellation signal for one request."""

    def __init__(self):
        self._event = asyncio.Event()
        self._callbacks: List[Callable[[str], None]] = []
        self._timer: Optional[asyncio.TimerHandle] = None
        self._unlinks: List[Callable[[], None]] = []
        self.reason: Optional[str] = None

    @property
    def cancelled(self) -> bool:
        return self.reason is not None

    def cancel(self, reason: str = USER) -> None:
        """Cancel the token. Later calls are ignored."""
        if self.cancelled:
            return
        self.reason = reason
        self._event.set()
        for callback in list(self._callbacks):
            callback(reason)

    def add_callback(self, callback: Callable[[str], None]) -> Callable[[], None]:
        """Run callback(reason) on cancellation; returns an unregister function."""
        if self.cancelled:
            callback(self.reason)
            return lambda: None
        self._callbacks.append(callback)

        def unregister() -> None:
            if callback in self._callbacks:
                self._callbacks.remove(callback)

        return unregister

    async def wait(self) -> str:
        """Suspend until cancelled and return the reason."""
        await self._event.wait()
        return self.reason

    def dispose(self) -> None:
        """Stop the timer and detach from linked tokens."""
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None
        for unlink in self._unlinks:
            unlink()
        self._unlinks.clear()

    @classmethod
    def after(cls, seconds: float, reason: str = TIMEOUT) -> "CancellationToken":
        """Token that cancels itself after ``seconds``. Needs a running loop."""
        token = cls()
        loop = asyncio.get_running_loop()
        token._timer = loop.call_later(seconds, token.cancel, reason)
        return token

    @classmethod
    def any(cls, *tokens: Optional["CancellationToken"]) -> "CancellationToken":
        """Token cancelled when any of ``tokens`` is."""
        combined = cls()
        for token in tokens:
            if token is None:
                continue
            combined._unlinks.append(token.add_callback(combined.cancel))
        return combined
