"""NVIDIA NIM provider: the primary multi-model backend."""

from typing import Dict, Any, List, Optional

from linkdok.application.tutor.registry import ModelRegistry, default_registry
from .base import BaseProvider

DEFAULT_BASE_URL = "https://integrate.api.nvidia.com/v1"


class NvidiaProvider(BaseProvider):
    """Streams completions for models described by the registry."""

    name = "nvidia"
    label = "NVIDIA"

    def __init__(
        self,
        config: Dict[str, Any],
        registry: ModelRegistry = default_registry,
        api_key: Optional[str] = None,
    ):
        config = {"base_url": DEFAULT_BASE_URL, **config}
        super().__init__(config, api_key)
        self.registry = registry
        self.thinking_floor_ms = config.get("thinking_floor_ms", 180_000)
        self.default_timeout_ms = config.get("default_timeout_ms", 30_000)

    def build_payload(
        self, messages: List[Dict[str, Any]], model_id: str, use_thinking: bool
    ) -> Dict[str, Any]:
        profile = self.registry.get(model_id)
        payload = {
            "model": profile.model,
            "messages": messages,
            "temperature": profile.temperature,
            "max_tokens": profile.max_tokens,
            "top_p": profile.top_p,
            "stream": True,
        }
        if profile.top_k is not None:
            payload["top_k"] = profile.top_k
        if use_thinking and profile.thinking_params:
            payload["chat_template_kwargs"] = dict(profile.thinking_params)
        return payload

    def timeout_seconds(self, model_id: str, use_thinking: bool) -> float:
        timeout_ms = self.registry.get(model_id).timeout_ms or self.default_timeout_ms
        # Reasoning runs long: thinking extends the deadline, never shortens it.
        if use_thinking:
            timeout_ms = max(timeout_ms, self.thinking_floor_ms)
        return timeout_ms / 1000
