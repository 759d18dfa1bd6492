"""Model registry and intent routing policy.

The registry and routing table are static configuration. Both are built once
at import time into read-only mappings and cross-checked so that a routing
entry can never point at a missing profile.
"""

from types import MappingProxyType
from typing import Dict, List, Mapping, Optional, Sequence, Any

from linkdok.core.exceptions import ConfigurationError, UnknownModelError
from linkdok.core.models import Intent, ModelProfile

AUTO = "auto"

DEFAULT_PROFILES: Dict[str, ModelProfile] = {
    "kimi-k2.5": ModelProfile(
        model="moonshotai/kimi-k2.5",
        max_tokens=16384,
        top_p=1.0,
        temperature=1.0,
        thinking_params=MappingProxyType({"thinking": True}),
        timeout_ms=180_000,
        label="Kimi K2.5",
        description="Deep reasoning & math",
        abbr="K2",
        color="#8b5cf6",
    ),
    "glm5": ModelProfile(
        model="z-ai/glm5",
        max_tokens=16384,
        top_p=1.0,
        temperature=1.0,
        thinking_params=MappingProxyType({"enable_thinking": True, "clear_thinking": False}),
        timeout_ms=160_000,
        label="GLM5",
        description="General purpose",
        abbr="G5",
        color="#64748b",
    ),
    "step-flash": ModelProfile(
        model="stepfun-ai/step-3.5-flash",
        max_tokens=16384,
        top_p=0.9,
        temperature=0.3,
        timeout_ms=25_000,
        label="Step Flash",
        description="Fastest answers",
        abbr="SF",
        color="#f59e0b",
    ),
    "deepseek-v3.2": ModelProfile(
        model="deepseek-ai/deepseek-v3.2",
        max_tokens=8192,
        top_p=0.95,
        temperature=1.0,
        thinking_params=MappingProxyType({"thinking": True}),
        timeout_ms=180_000,
        label="DeepSeek V3",
        description="Deep research & analysis",
        abbr="DS",
        color="#06b6d4",
    ),
    "devstral": ModelProfile(
        model="mistralai/devstral-2-123b-instruct-2512",
        max_tokens=8192,
        top_p=0.95,
        temperature=0.15,
        timeout_ms=60_000,
        label="Devstral",
        description="Code & technical tasks",
        abbr="{}",
        color="#10b981",
    ),
    "mistral-large": ModelProfile(
        model="mistralai/mistral-large-3-675b-instruct-2512",
        max_tokens=4096,
        top_p=1.0,
        temperature=0.7,
        timeout_ms=50_000,
        label="Mistral Large",
        description="Creative writing & long-form",
        abbr="ML",
        color="#ec4899",
    ),
    "qwen3.5": ModelProfile(
        model="qwen/qwen3.5-397b-a17b",
        max_tokens=16384,
        top_p=0.95,
        top_k=20,
        temperature=0.6,
        thinking_params=MappingProxyType({"enable_thinking": True}),
        timeout_ms=160_000,
        label="Qwen 3.5",
        description="Powerful all-rounder",
        abbr="Q3",
        color="#f97316",
    ),
}

DEFAULT_ROUTING: Dict[Intent, Sequence[str]] = {
    Intent.CODING: ("devstral", "deepseek-v3.2", "qwen3.5"),
    Intent.REASONING: ("kimi-k2.5", "deepseek-v3.2", "qwen3.5"),
    Intent.CREATIVE: ("mistral-large", "qwen3.5", "glm5"),
    Intent.FACTUAL: ("step-flash", "qwen3.5", "mistral-large"),
    Intent.ANALYSIS: ("deepseek-v3.2", "kimi-k2.5", "qwen3.5"),
    Intent.GENERAL: ("qwen3.5", "mistral-large", "step-flash"),
}


class ModelRegistry:
    """Read-only model profiles plus the per-intent fallback order."""

    def __init__(
        self,
        profiles: Optional[Mapping[str, ModelProfile]] = None,
        routing: Optional[Mapping[Intent, Sequence[str]]] = None,
    ):
        self._profiles = MappingProxyType(dict(profiles or DEFAULT_PROFILES))
        self._routing = MappingProxyType(
            {intent: tuple(order) for intent, order in (routing or DEFAULT_ROUTING).items()}
        )
        self._validate()

    def _validate(self) -> None:
        if Intent.GENERAL not in self._routing:
            raise ConfigurationError("Routing table needs an entry for 'general'")
        for intent, order in self._routing.items():
            if not order:
                raise ConfigurationError(f"Routing for '{intent.value}' is empty")
            dangling = [model_id for model_id in order if model_id not in self._profiles]
            if dangling:
                raise ConfigurationError(
                    f"Routing for '{intent.value}' references unknown models: {dangling}"
                )

    @property
    def profiles(self) -> Mapping[str, ModelProfile]:
        return self._profiles

    @property
    def routing(self) -> Mapping[Intent, Sequence[str]]:
        return self._routing

    def __contains__(self, model_id: str) -> bool:
        return model_id in self._profiles

    def get(self, model_id: str) -> ModelProfile:
        try:
            return self._profiles[model_id]
        except KeyError:
            raise UnknownModelError(f"Unknown model: {model_id}")

    def is_allowed_provider_model(self, provider_model: str) -> bool:
        """True when ``provider_model`` is the upstream name of a known profile."""
        return any(p.model == provider_model for p in self._profiles.values())

    def resolve_candidates(self, intent: Intent, explicit_model: Optional[str] = AUTO) -> List[str]:
        """
        Ordered model ids to try for a request.

        An explicit model goes first, followed by the intent's routing order
        without it. ``None`` or ``"auto"`` use the routing order unchanged.
        """
        order = list(self._routing.get(intent, self._routing[Intent.GENERAL]))
        if not explicit_model or explicit_model == AUTO:
            return order
        if explicit_model not in self._profiles:
            raise UnknownModelError(f"Unknown model: {explicit_model}")
        return [explicit_model] + [m for m in order if m != explicit_model]

    def model_catalogue(self) -> List[Dict[str, Any]]:
        """Entries for a model selector, starting with the auto router."""
        catalogue = [
            {
                "id": AUTO,
                "label": "Auto",
                "description": "Smart routing, best model per question",
                "abbr": "A",
                "color": "#3b82f6",
                "supportsThinking": True,
            }
        ]
        for model_id, profile in self._profiles.items():
            catalogue.append(
                {
                    "id": model_id,
                    "label": profile.label or model_id,
                    "description": profile.description,
                    "abbr": profile.abbr,
                    "color": profile.color,
                    "supportsThinking": profile.supports_thinking,
                }
            )
        return catalogue


# Built at import so a broken table fails at startup, not mid-request.
default_registry = ModelRegistry()
