"""Decides whether a candidate model runs in extended-reasoning mode."""

import re
from typing import Union

from linkdok.core.models import Intent, ThinkingMode
from .registry import ModelRegistry, default_registry

THINKING_INTENTS = frozenset({Intent.REASONING, Intent.ANALYSIS})

EXPLICIT_THINKING = re.compile(
    r"\b(step by step|think carefully|explain why|reason through|analyze deeply|prove|"
    r"derive|compare in detail|elaborate)\b",
    re.IGNORECASE,
)


def should_think(
    question: str,
    intent: Intent,
    model_id: str,
    mode: Union[ThinkingMode, str] = ThinkingMode.AUTO,
    registry: ModelRegistry = default_registry,
) -> bool:
    profile = registry.profiles.get(model_id)
    if profile is None or not profile.supports_thinking:
        return False

    mode = ThinkingMode(mode)
    if mode is ThinkingMode.ON:
        return True
    if mode is ThinkingMode.OFF:
        return False

    return intent in THINKING_INTENTS or bool(EXPLICIT_THINKING.search(question or ""))
