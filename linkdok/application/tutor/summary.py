"""Category status lines and short article summaries."""

import html
import re
from typing import Optional, Sequence

from linkdok.core.cancellation import CancellationToken
from linkdok.core.exceptions import LLMError
from linkdok.core.interfaces import IProvider
from linkdok.core.models import ResourceContent
from linkdok.utils.logger import get_logger

logger = get_logger(__name__)

_TAG = re.compile(r"<[^>]*>")
_SPACE = re.compile(r"\s+")


def summarize_category_content(resources: Optional[Sequence[ResourceContent]]) -> str:
    """One-line readiness status for a category's resources."""
    if not resources:
        return "No resources added yet."
    ready = [r for r in resources if r.success and r.extracted_text]
    if not ready:
        return "Resources are being processed..."
    plural = "s" if len(ready) > 1 else ""
    return f"{len(ready)} resource{plural} ready, ask me anything!"


def strip_html(markup: str) -> str:
    if not markup:
        return ""
    text = html.unescape(_TAG.sub(" ", markup))
    return _SPACE.sub(" ", text.replace("\xa0", " ")).strip()


class ArticleSummarizer:
    """2-3 sentence neutral summaries via the fallback provider."""

    def __init__(self, provider: IProvider, model: Optional[str] = None):
        self.provider = provider
        self.model = model or provider.models[0]

    async def summarize(
        self,
        title: str,
        description: str,
        cancel_token: Optional[CancellationToken] = None,
    ) -> str:
        clean = strip_html(description)
        if len(clean) < 20:
            return clean or title

        prompt = (
            "Summarize this news article in 2-3 sentences. Use neutral, factual tone. "
            "No emojis. No opinions.\n\n"
            f"Title: {title}\nContent: {clean[:500]}\n\n"
            "Write only the summary, nothing else."
        )
        try:
            summary = await self.provider.invoke(
                [{"role": "user", "content": prompt}],
                self.model,
                cancel_token=cancel_token,
            )
        except LLMError as e:
            logger.warning(f"Failed to summarize article '{title[:50]}': {e}")
            return clean[:200] + "..."

        return summary.strip() or clean[:200]
