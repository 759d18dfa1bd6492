"""OpenRouter provider: the free-tier fallback backend."""

from typing import Dict, Any, List, Optional

from .base import BaseProvider

DEFAULT_BASE_URL = "https://openrouter.ai/api/v1"

DEFAULT_MODELS = [
    "tngtech/deepseek-r1t2-chimera:free",
    "nex-agi/deepseek-v3.1-nex-n1:free",
    "google/gemini-2.0-flash-exp:free",
    "qwen/qwen-2.5-vl-7b-instruct:free",
    "google/gemma-3-27b-it:free",
]


class OpenRouterProvider(BaseProvider):
    """Fixed list of free models, tried in order. No thinking mode."""

    name = "openrouter"
    label = "OpenRouter"

    def __init__(self, config: Dict[str, Any], api_key: Optional[str] = None):
        config = {"base_url": DEFAULT_BASE_URL, **config}
        super().__init__(config, api_key)
        self.models: List[str] = list(config.get("models") or DEFAULT_MODELS)
        self.timeout_ms = config.get("timeout_ms", 30_000)
        self.temperature = config.get("temperature", 0.3)
        self.max_tokens = config.get("max_tokens", 2000)
        self.app_url = config.get("app_url", "")
        self.app_title = config.get("app_title", "LinkDok - AI Learning Platform")

    def _headers(self, stream: bool, origin: Optional[str] = None) -> Dict[str, str]:
        headers = super()._headers(stream, origin)
        headers["X-Title"] = self.app_title
        referer = self.app_url or origin
        if referer:
            headers["HTTP-Referer"] = referer
        return headers

    def build_payload(
        self, messages: List[Dict[str, Any]], model_id: str, use_thinking: bool
    ) -> Dict[str, Any]:
        return {
            "model": model_id,
            "messages": messages,
            "temperature": self.temperature,
            "max_tokens": self.max_tokens,
            "stream": True,
        }

    def timeout_seconds(self, model_id: str, use_thinking: bool) -> float:
        return self.timeout_ms / 1000
