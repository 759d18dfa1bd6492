"""AI tutor: intent routing, model registry and orchestration."""

from .classifier import classify_intent
from .registry import AUTO, ModelRegistry, default_registry
from .thinking import should_think
from .orchestrator import AskOptions, TutorOrchestrator
from .summary import ArticleSummarizer, summarize_category_content

__all__ = [
    "classify_intent",
    "AUTO",
    "ModelRegistry",
    "default_registry",
    "should_think",
    "AskOptions",
    "TutorOrchestrator",
    "ArticleSummarizer",
    "summarize_category_content",
]
