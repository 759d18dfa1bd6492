"""
Pydantic models for the LinkDok API
"""

from pydantic import BaseModel, ConfigDict, Field
from typing import Dict, List, Any, Optional

from linkdok.core.models import AttachmentKind, ThinkingMode


class CamelModel(BaseModel):
    """Accepts both camelCase aliases and snake_case field names."""

    model_config = ConfigDict(populate_by_name=True, protected_namespaces=())


class ProviderProxyRequest(CamelModel):
    """Request body for the provider proxy endpoints"""

    # Left untyped so malformed payloads reach validate_messages and get a 400
    messages: Any = Field(None, description="Chat messages")
    model: Optional[str] = Field(None, description="Provider-side model name")
    temperature: Optional[float] = Field(None, ge=0.0, le=2.0)
    max_tokens: Optional[int] = Field(None, alias="maxTokens", ge=1)
    top_p: Optional[float] = Field(None, alias="topP", ge=0.0, le=1.0)
    top_k: Optional[int] = Field(None, alias="topK", ge=1)
    chat_template_kwargs: Optional[Dict[str, Any]] = Field(
        None, alias="chatTemplateKwargs", description="Thinking activation parameters"
    )
    stream: bool = Field(False, description="Relay the upstream event stream")


class ResourcePayload(CamelModel):
    """Extracted text of one saved link"""

    url: str = Field(..., description="Link URL")
    extracted_text: str = Field("", alias="extractedText")
    success: bool = Field(True, description="Whether extraction succeeded")


class AttachmentPayload(CamelModel):
    """A file attached to the question"""

    type: AttachmentKind = Field(..., description="image or text")
    data: str = Field(..., description="Data URL for images, file text for text files")
    name: str = Field("attachment", description="Original file name")
    mime_type: str = Field("", alias="mimeType")


class AskRequest(CamelModel):
    """Request body for the tutor endpoint"""

    question: str = Field("", max_length=20000, description="User question")
    resources: List[ResourcePayload] = Field(default_factory=list)
    model: str = Field("auto", description="Model id or 'auto'")
    thinking_mode: ThinkingMode = Field(ThinkingMode.AUTO, alias="thinkingMode")
    playground: bool = Field(False, description="General assistant instead of tutor")
    history: List[Any] = Field(default_factory=list, description="Prior turns")
    attachments: List[AttachmentPayload] = Field(default_factory=list)
    stream: bool = Field(False, description="Stream tokens as server-sent events")


class AskResponse(CamelModel):
    """Response body for the tutor endpoint"""

    success: bool = Field(True)
    answer: str = Field(..., description="Full answer text")
    model_used: Optional[str] = Field(None, alias="modelUsed")
    intent: Optional[str] = Field(None, description="Classified intent")
    used_thinking: bool = Field(False, alias="usedThinking")
    based_on_resources: bool = Field(False, alias="basedOnResources")


class SummarizeRequest(CamelModel):
    """Request body for article summaries"""

    title: str = Field(..., min_length=1, max_length=1000)
    description: str = Field("", max_length=100000)


class SummarizeResponse(BaseModel):
    """Article summary"""

    summary: str


class ModelInfo(BaseModel):
    """Entry in the model catalogue"""

    id: str
    label: str
    description: str
    abbr: str
    color: str
    supportsThinking: bool


class ModelsResponse(BaseModel):
    """Model catalogue for UI selectors"""

    models: List[ModelInfo]


class HealthResponse(BaseModel):
    """Health check response"""

    status: str = Field(..., description="Overall health status")
    timestamp: float = Field(..., description="Health check timestamp")
    version: str = Field(..., description="Application version")
    services: Dict[str, str] = Field(..., description="Individual service statuses")


class ErrorResponse(BaseModel):
    """Error response model"""

    error: str = Field(..., description="Error message")
    success: Optional[bool] = Field(None)
    rateLimited: Optional[bool] = Field(None)
    retryAfter: Optional[int] = Field(None)
    timedOut: Optional[bool] = Field(None)
    cancelled: Optional[bool] = Field(None)
