"""Core interfaces for LinkDok."""

from typing import Protocol, List, Dict, Any, Optional, Callable, AsyncContextManager

from linkdok.core.cancellation import CancellationToken

TokenCallback = Callable[[str], None]


class IProvider(Protocol):
    """Interface for streaming chat-completion providers."""

    name: str
    label: str
    # Fallback model ids, tried in order (secondary provider)
    models: List[str]
    # False when the API key is missing
    configured: bool

    async def initialize(self) -> None:
        """Open HTTP resources."""
        ...

    async def invoke(
        self,
        messages: List[Dict[str, Any]],
        model_id: str,
        use_thinking: bool = False,
        cancel_token: Optional[CancellationToken] = None,
        on_token: Optional[TokenCallback] = None,
        on_reasoning_token: Optional[TokenCallback] = None,
    ) -> str:
        """Stream one completion and return the full answer text."""
        ...

    def open_completion(
        self,
        payload: Dict[str, Any],
        stream: bool = False,
        timeout: Optional[float] = None,
        origin: Optional[str] = None,
    ) -> AsyncContextManager[Any]:
        """Open a raw upstream completion call for proxying."""
        ...

    async def raise_for_status(self, response: Any, model_id: Optional[str] = None) -> None:
        """Raise RateLimitedError on 429 and ProviderError on other non-2xx responses."""
        ...

    async def health_check(self) -> bool:
        """Check if provider is reachable and configured."""
        ...

    async def shutdown(self) -> None:
        """Cleanup resources."""
        ...
