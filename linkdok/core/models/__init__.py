"""Core domain models for LinkDok."""

from dataclasses import dataclass, field
from typing import Optional, Dict, Any, List, Mapping, Union
from enum import Enum


class Intent(str, Enum):
    """Coarse category of a user question."""

    CODING = "coding"
    REASONING = "reasoning"
    CREATIVE = "creative"
    FACTUAL = "factual"
    ANALYSIS = "analysis"
    GENERAL = "general"


class ThinkingMode(str, Enum):
    """Caller preference for extended reasoning."""

    AUTO = "auto"
    ON = "on"
    OFF = "off"


class AttachmentKind(str, Enum):
    """Supported attachment kinds."""

    IMAGE = "image"
    TEXT = "text"


class StreamEventKind(Enum):
    """Kinds of decoded stream frames."""

    CONTENT = "content"
    REASONING = "reasoning"
    DONE = "done"
    IGNORED = "ignored"


@dataclass(frozen=True)
class ModelProfile:
    """Capability profile of one model on the primary provider."""

    model: str
    max_tokens: int
    temperature: float
    top_p: float
    timeout_ms: int
    top_k: Optional[int] = None
    thinking_params: Optional[Mapping[str, Any]] = None
    label: str = ""
    description: str = ""
    abbr: str = ""
    color: str = "#64748b"

    @property
    def supports_thinking(self) -> bool:
        return bool(self.thinking_params)


@dataclass
class Attachment:
    """A file attached to the user's turn."""

    kind: AttachmentKind
    payload: str
    mime_type: str = ""
    name: str = "attachment"


@dataclass
class ChatMessage:
    """One conversation turn."""

    role: str
    content: Union[str, List[Dict[str, Any]]]
    attachments: List[Attachment] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {"role": self.role, "content": self.content}


@dataclass
class ResourceContent:
    """Text extracted from one saved link."""

    url: str
    extracted_text: str = ""
    success: bool = True


@dataclass
class StreamEvent:
    """One decoded frame from a provider event stream."""

    kind: StreamEventKind
    text: str = ""


@dataclass
class TutorResult:
    """Outcome of a single ask() call."""

    answer: str
    model_used: Optional[str] = None
    intent_used: Optional[Intent] = None
    used_thinking: bool = False
    based_on_resources: bool = False
    metadata: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "answer": self.answer,
            "modelUsed": self.model_used,
            "intent": self.intent_used.value if self.intent_used else None,
            "usedThinking": self.used_thinking,
            "basedOnResources": self.based_on_resources,
        }


__all__ = [
    "Intent",
    "ThinkingMode",
    "AttachmentKind",
    "StreamEventKind",
    "ModelProfile",
    "Attachment",
    "ChatMessage",
    "ResourceContent",
    "StreamEvent",
    "TutorResult",
]
