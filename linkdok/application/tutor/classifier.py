"""Keyword-based intent classification."""

import re
from typing import List, Tuple, Pattern

from linkdok.core.models import Intent

_CODING = re.compile(
    r"\b(code|function|bug|syntax|debug|algorithm|implement|class|method|api|error|"
    r"exception|variable|loop|array|object|typescript|javascript|python|react|css|html|"
    r"component|hook|async|await|promise|runtime|compile|git|docker|sql|database|query)\b"
)
_ANALYSIS = re.compile(
    r"\b(analyze|evaluate|assess|review|critique|compare|contrast|deep dive|comprehensive|"
    r"elaborate|pros and cons|trade.?off|implication|impact|advantages|disadvantages|"
    r"versus|vs\.?)(?!\w)"
)
_REASONING = re.compile(
    r"\b(prove|calculate|derive|math|equation|solve|probability|statistics|logic|theorem|"
    r"formula|compute|integral|derivative|percent|ratio)\b"
)
_CREATIVE = re.compile(
    r"\b(write|create|story|poem|essay|design|brainstorm|generate|draft|compose|creative|"
    r"imagine|fiction|narrative|blog|caption|tagline)\b"
)
_FACTUAL = re.compile(
    r"^(what is|who is|when did|where is|define|list|how many|which|what are|name the|"
    r"tell me what)\b"
)

# Evaluated in order; the first match wins.
RULES: List[Tuple[Intent, Pattern]] = [
    (Intent.CODING, _CODING),
    (Intent.ANALYSIS, _ANALYSIS),
    (Intent.REASONING, _REASONING),
    (Intent.CREATIVE, _CREATIVE),
    (Intent.FACTUAL, _FACTUAL),
]


def classify_intent(question: str) -> Intent:
    """Map a question to an Intent."""
    text = (question or "").strip().lower()
    for intent, pattern in RULES:
        if pattern.search(text):
            return intent
    return Intent.GENERAL
