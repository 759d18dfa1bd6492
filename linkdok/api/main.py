"""
LinkDok FastAPI Server
Provider proxies and the AI tutor endpoint
"""

import asyncio
import json
import time
import uuid
from contextlib import AsyncExitStack, asynccontextmanager
from typing import Any, AsyncIterator, Dict, List, Optional

import aiohttp
import uvicorn
from fastapi import Depends, FastAPI, Request, Response
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, StreamingResponse

from linkdok.application.tutor import AUTO, AskOptions, TutorOrchestrator
from linkdok.core.cancellation import CancellationToken, USER
from linkdok.core.exceptions import (
    LLMError,
    ProviderError,
    RateLimitedError,
    InputValidationError,
    RequestCancelledError,
    UnknownModelError,
    ValidationError,
)
from linkdok.core.models import Attachment, ChatMessage, ResourceContent
from linkdok.utils.config import load_config
from linkdok.utils.logger import get_logger, setup_logging
from .dependencies import (
    cleanup_resources,
    enforce_rate_limit,
    get_observability,
    get_orchestrator,
    get_primary_provider,
    get_providers,
    get_registry,
    get_secondary_provider,
    get_summarizer,
)
from .models import (
    AskRequest,
    AskResponse,
    ErrorResponse,
    HealthResponse,
    ModelsResponse,
    ProviderProxyRequest,
    SummarizeRequest,
    SummarizeResponse,
)
from .security import CORS_HEADERS, MAX_MESSAGE_CHARS, MAX_MESSAGES, validate_messages

logger = get_logger(__name__)
config = load_config()

VERSION = "1.0.0"

NVIDIA_DEFAULT_MODEL = "moonshotai/kimi-k2.5"
NVIDIA_DEFAULT_TEMPERATURE = 0.3
NVIDIA_DEFAULT_MAX_TOKENS = 8192
NVIDIA_DEFAULT_TOP_P = 1.0
OPENROUTER_DEFAULT_MODEL = "tngtech/deepseek-r1t2-chimera:free"

GENERIC_FAILURE = "Something went wrong. Please try again."
TIMEOUT_FAILURE = (
    "The model took too long to respond. Try a faster model or turn off thinking mode."
)
CANCELLED_FAILURE = "Request cancelled."
PROXY_FAILURE = "AI request failed. Please try again."

SSE_HEADERS = {"Cache-Control": "no-cache", "Connection": "keep-alive"}


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan manager"""
    setup_logging()
    logger.info("🚀 Starting LinkDok API server")

    try:
        for provider in get_providers():
            await provider.initialize()
        logger.info("✅ Providers initialized successfully")
        yield
    except Exception as e:
        logger.error(f"❌ Failed to initialize services: {e}")
        raise
    finally:
        await cleanup_resources()
        logger.info("🔄 Shutting down LinkDok API server")


# Create FastAPI app
app = FastAPI(
    title="LinkDok API",
    description="Multi-provider AI tutor and provider proxies for the LinkDok link collector",
    version=VERSION,
    docs_url="/docs",
    redoc_url="/redoc",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_methods=["GET", "POST", "OPTIONS"],
    allow_headers=["Content-Type"],
)


@app.exception_handler(RateLimitedError)
async def rate_limited_handler(request: Request, exc: RateLimitedError):
    body = ErrorResponse(error="Too many requests", retryAfter=exc.retry_after, rateLimited=True)
    return JSONResponse(
        status_code=429,
        content=body.model_dump(exclude_none=True),
        headers={"Retry-After": str(exc.retry_after)},
    )


@app.exception_handler(ValidationError)
async def validation_error_handler(request: Request, exc: ValidationError):
    reason = "unknown_model" if isinstance(exc, UnknownModelError) else "invalid"
    metrics_factory = request.app.dependency_overrides.get(get_observability, get_observability)
    metrics_factory().record_gate_rejection(request.url.path, reason)
    logger.warning(f"Rejected {request.url.path}: {exc}")
    body = ErrorResponse(error=str(exc))
    return JSONResponse(status_code=400, content=body.model_dump(exclude_none=True))


def sse(data: Dict[str, Any]) -> str:
    """Encode one server-sent event frame."""
    return f"data: {json.dumps(data, ensure_ascii=False)}\n\n"


def _validation_limits() -> Dict[str, int]:
    settings = config.get("validation", {})
    return {
        "max_messages": settings.get("max_messages", MAX_MESSAGES),
        "max_chars": settings.get("max_message_chars", MAX_MESSAGE_CHARS),
    }


@app.options("/api/nvidia")
@app.options("/api/chat")
@app.options("/api/ask")
async def preflight():
    """CORS preflight"""
    return Response(status_code=204, headers=CORS_HEADERS)


async def fetch_completion(
    provider,
    payload: Dict[str, Any],
    timeout: Optional[float] = None,
    origin: Optional[str] = None,
) -> Dict[str, Any]:
    """
    Run one non-streaming upstream completion and return its JSON body.

    Raises:
        RateLimitedError: Upstream returned 429
        ProviderError: Upstream failed or returned a non-2xx status
    """
    async with provider.open_completion(
        payload, stream=False, timeout=timeout, origin=origin
    ) as response:
        await provider.raise_for_status(response, payload.get("model"))
        try:
            data = await response.json(content_type=None)
        except ValueError as e:
            raise ProviderError(f"Invalid JSON from {provider.name}: {e}", model=payload.get("model"))

    if not isinstance(data, dict):
        raise ProviderError(f"Unexpected response from {provider.name}", model=payload.get("model"))
    return data


async def relay_completion(
    provider,
    payload: Dict[str, Any],
    timeout: Optional[float] = None,
    origin: Optional[str] = None,
) -> StreamingResponse:
    """
    Open a streaming upstream completion and pass its bytes through unchanged.

    The upstream response stays open until the relay finishes or the client
    goes away. Status errors are raised before any byte is sent.
    """
    stack = AsyncExitStack()
    response = await stack.enter_async_context(
        provider.open_completion(payload, stream=True, timeout=timeout, origin=origin)
    )
    try:
        await provider.raise_for_status(response, payload.get("model"))
    except BaseException:
        await stack.aclose()
        raise

    async def relay() -> AsyncIterator[bytes]:
        try:
            async for chunk in response.content.iter_any():
                yield chunk
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            # Headers are already sent, so the stream just ends.
            logger.error(f"Upstream stream from {provider.name} broke off: {e}")
        finally:
            await stack.aclose()

    return StreamingResponse(relay(), media_type="text/event-stream", headers=SSE_HEADERS)


@app.post("/api/nvidia")
async def nvidia_proxy(
    body: ProviderProxyRequest,
    request: Request,
    client_id: str = Depends(enforce_rate_limit),
    provider=Depends(get_primary_provider),
    registry=Depends(get_registry),
):
    """
    Proxy a chat completion to NVIDIA NIM.

    Only provider models listed in the registry are accepted.
    """
    error = validate_messages(body.messages, **_validation_limits())
    if error:
        raise InputValidationError(error)

    model = body.model or NVIDIA_DEFAULT_MODEL
    if not registry.is_allowed_provider_model(model):
        raise UnknownModelError("Unknown model requested")

    if not provider.configured:
        logger.error("NVIDIA API key not configured")
        return {"success": False, "error": "API key not configured on server"}

    payload: Dict[str, Any] = {
        "model": model,
        "messages": body.messages,
        "temperature": body.temperature if body.temperature is not None else NVIDIA_DEFAULT_TEMPERATURE,
        "max_tokens": body.max_tokens if body.max_tokens is not None else NVIDIA_DEFAULT_MAX_TOKENS,
        "top_p": body.top_p if body.top_p is not None else NVIDIA_DEFAULT_TOP_P,
        "stream": body.stream,
    }
    if body.top_k is not None:
        payload["top_k"] = body.top_k
    if body.chat_template_kwargs:
        payload["chat_template_kwargs"] = body.chat_template_kwargs

    timeout_ms = config["providers"].get("nvidia", {}).get("proxy_timeout_ms", 295_000)
    try:
        if body.stream:
            return await relay_completion(provider, payload, timeout_ms / 1000)
        data = await fetch_completion(provider, payload, timeout_ms / 1000)
    except RateLimitedError:
        raise
    except LLMError as e:
        logger.error(f"NVIDIA proxy failed: {e}", extra={"client_id": client_id, "model": model})
        return {"success": False, "error": PROXY_FAILURE}

    return {**data, "success": True}


@app.post("/api/chat")
async def openrouter_proxy(
    body: ProviderProxyRequest,
    request: Request,
    client_id: str = Depends(enforce_rate_limit),
    provider=Depends(get_secondary_provider),
):
    """Proxy a chat completion to OpenRouter."""
    error = validate_messages(body.messages, **_validation_limits())
    if error:
        raise InputValidationError(error)

    if not provider.configured:
        logger.error("OpenRouter API key not configured")
        return JSONResponse(status_code=500, content={"error": "API key not configured on server"})

    model = body.model or OPENROUTER_DEFAULT_MODEL
    origin = request.headers.get("origin")
    payload = {
        "model": model,
        "messages": body.messages,
        "temperature": body.temperature if body.temperature is not None else 0.7,
        "max_tokens": body.max_tokens or 4000,
        "stream": body.stream,
    }

    try:
        if body.stream:
            return await relay_completion(provider, payload, origin=origin)
        return await fetch_completion(provider, payload, origin=origin)
    except RateLimitedError:
        raise
    except LLMError as e:
        logger.error(f"OpenRouter proxy failed: {e}", extra={"client_id": client_id, "model": model})
        return JSONResponse(status_code=500, content={"error": str(e)})


def _ask_options(body: AskRequest) -> AskOptions:
    return AskOptions(
        model=body.model,
        attachments=[
            Attachment(kind=a.type, payload=a.data, mime_type=a.mime_type, name=a.name)
            for a in body.attachments
        ],
        history=[
            ChatMessage(role=m["role"], content=m.get("content", ""))
            for m in body.history
        ],
        thinking_mode=body.thinking_mode,
        playground=body.playground,
    )


def _failure_body(exc: LLMError) -> Dict[str, Any]:
    if isinstance(exc, RequestCancelledError):
        if exc.timed_out:
            body = ErrorResponse(success=False, error=TIMEOUT_FAILURE, timedOut=True)
        else:
            body = ErrorResponse(success=False, error=CANCELLED_FAILURE, cancelled=True)
    else:
        body = ErrorResponse(success=False, error=GENERIC_FAILURE)
    return body.model_dump(exclude_none=True)


async def stream_answer(
    orchestrator: TutorOrchestrator,
    question: str,
    resources: List[ResourceContent],
    options: AskOptions,
    request_id: str,
) -> AsyncIterator[str]:
    """
    Run the tutor and emit its tokens as SSE frames.

    Closing the stream before the answer completes cancels the request.
    """
    queue: asyncio.Queue = asyncio.Queue()
    options.cancel_token = CancellationToken()
    options.on_token = lambda text: queue.put_nowait({"type": "token", "content": text})
    options.on_reasoning_token = lambda text: queue.put_nowait(
        {"type": "reasoning", "content": text}
    )

    task = asyncio.ensure_future(orchestrator.ask(question, resources, options))
    task.add_done_callback(lambda _: queue.put_nowait(None))

    try:
        while True:
            frame = await queue.get()
            if frame is None:
                break
            yield sse(frame)

        try:
            result = task.result()
        except RateLimitedError as e:
            yield sse({
                "type": "error",
                "error": "Too many requests",
                "rateLimited": True,
                "retryAfter": e.retry_after,
            })
        except LLMError as e:
            yield sse({"type": "error", **_failure_body(e)})
        except ValidationError as e:
            yield sse({"type": "error", "success": False, "error": str(e)})
        else:
            body = AskResponse(**result.to_dict()).model_dump(by_alias=True)
            yield sse({"type": "result", **body})
        yield "data: [DONE]\n\n"
    finally:
        if not task.done():
            logger.info(f"Client went away, cancelling {request_id}", extra={"request_id": request_id})
            options.cancel_token.cancel(USER)
            task.add_done_callback(_log_abandoned)


def _log_abandoned(task: asyncio.Future) -> None:
    if task.cancelled():
        return
    error = task.exception()
    if error is not None:
        logger.debug(f"Abandoned tutor request ended with: {error}")


@app.post(
    "/api/ask",
    responses={
        200: {"model": AskResponse},
        400: {"model": ErrorResponse},
        429: {"model": ErrorResponse},
    },
)
async def ask_endpoint(
    body: AskRequest,
    request: Request,
    client_id: str = Depends(enforce_rate_limit),
    orchestrator: TutorOrchestrator = Depends(get_orchestrator),
    registry=Depends(get_registry),
):
    """
    Ask the AI tutor.

    Returns JSON, or server-sent events when ``stream`` is set.
    """
    request_id = f"ask_{uuid.uuid4().hex[:12]}"

    if body.history:
        error = validate_messages(body.history, **_validation_limits())
        if error:
            raise InputValidationError(error)

    if body.model != AUTO and body.model not in registry:
        raise UnknownModelError("Unknown model requested")

    resources = [
        ResourceContent(url=r.url, extracted_text=r.extracted_text, success=r.success)
        for r in body.resources
    ]
    options = _ask_options(body)

    logger.info(
        f"Processing question: {request_id}",
        extra={"request_id": request_id, "client_id": client_id, "model": body.model},
    )

    if body.stream:
        return StreamingResponse(
            stream_answer(orchestrator, body.question, resources, options, request_id),
            media_type="text/event-stream",
            headers=SSE_HEADERS,
        )

    start_time = time.time()
    try:
        result = await orchestrator.ask(body.question, resources, options)
    except RateLimitedError:
        raise
    except LLMError as e:
        logger.error(
            f"Question failed: {request_id}: {e}",
            extra={
                "request_id": request_id,
                "latency_ms": int((time.time() - start_time) * 1000),
                "success": False,
            },
        )
        return _failure_body(e)

    logger.info(
        f"Question answered: {request_id}",
        extra={
            "request_id": request_id,
            "model": result.model_used,
            "latency_ms": int((time.time() - start_time) * 1000),
            "success": True,
        },
    )
    return AskResponse(**result.to_dict()).model_dump(by_alias=True)


@app.get("/api/models", response_model=ModelsResponse)
async def list_models(registry=Depends(get_registry)):
    """Model catalogue for UI selectors"""
    return {"models": registry.model_catalogue()}


@app.post("/api/summarize", response_model=SummarizeResponse)
async def summarize_endpoint(
    body: SummarizeRequest,
    client_id: str = Depends(enforce_rate_limit),
    summarizer=Depends(get_summarizer),
):
    """Short neutral summary of an article"""
    summary = await summarizer.summarize(body.title, body.description)
    return SummarizeResponse(summary=summary)


@app.get("/health", response_model=HealthResponse)
async def health_check(providers=Depends(get_providers)):
    """Health check endpoint"""
    services = {"api": "healthy"}
    provider_ok = []
    for provider in providers:
        healthy = await provider.health_check()
        provider_ok.append(healthy)
        services[provider.name] = "healthy" if healthy else "unavailable"

    return HealthResponse(
        status="healthy" if any(provider_ok) else "degraded",
        timestamp=time.time(),
        version=VERSION,
        services=services,
    )


@app.get("/metrics")
async def metrics_endpoint(metrics=Depends(get_observability)):
    """Prometheus-style metrics endpoint"""
    return metrics.get_metrics()


if __name__ == "__main__":
    uvicorn.run(
        "linkdok.api.main:app",
        host=config.get("api", {}).get("host", "0.0.0.0"),
        port=config.get("api", {}).get("port", 8000),
        reload=True,
        log_level="info",
    )
