"""FastAPI dependencies for dependency injection."""

import os
import threading
from typing import Optional, Tuple
from functools import lru_cache

from fastapi import Depends, Request

from linkdok.core.exceptions import RateLimitedError
from linkdok.core.interfaces import IProvider
from linkdok.infrastructure.llm import create_providers
from linkdok.application.tutor import (
    ArticleSummarizer,
    ModelRegistry,
    TutorOrchestrator,
    default_registry,
)
from linkdok.infrastructure.observability.metrics import MetricsCollector
from linkdok.utils.config import load_config
from linkdok.utils.logger import get_logger
from .security import SlidingWindowRateLimiter, get_client_ip

logger = get_logger(__name__)

# Singleton instances
_providers: Optional[Tuple[IProvider, IProvider]] = None
_orchestrator: Optional[TutorOrchestrator] = None
_rate_limiter: Optional[SlidingWindowRateLimiter] = None
_metrics_collector: Optional[MetricsCollector] = None
_summarizer: Optional[ArticleSummarizer] = None
# Reentrant: getters call one another
_singleton_lock = threading.RLock()

@lru_cache()
def get_config():
    """Get configuration singleton."""
    return load_config()

def get_registry() -> ModelRegistry:
    """Get the model registry."""
    return default_registry

def get_providers() -> Tuple[IProvider, IProvider]:
    """Get the (primary, secondary) provider pair."""
    global _providers

    with _singleton_lock:
        if _providers is None:
            config = get_config()
            app_url = config.get('api', {}).get('app_url') or os.getenv('APP_URL', '')
            _providers = create_providers({**config['providers'], 'app_url': app_url})
            logger.info(f"Providers created: {_providers[0].name}, {_providers[1].name}")

    return _providers

def get_primary_provider() -> IProvider:
    return get_providers()[0]

def get_secondary_provider() -> IProvider:
    return get_providers()[1]

def get_observability() -> MetricsCollector:
    """Get metrics collector singleton."""
    global _metrics_collector

    with _singleton_lock:
        if _metrics_collector is None:
            config = get_config()
            _metrics_collector = MetricsCollector(config.get('observability', {}))
            logger.info("Metrics collector initialized")

    return _metrics_collector

def get_orchestrator() -> TutorOrchestrator:
    """Get tutor orchestrator singleton."""
    global _orchestrator

    with _singleton_lock:
        if _orchestrator is None:
            config = get_config()
            primary, secondary = get_providers()
            _orchestrator = TutorOrchestrator(
                primary=primary,
                secondary=secondary,
                registry=get_registry(),
                config=config['tutor'],
                metrics=get_observability(),
            )
            logger.info("Tutor orchestrator initialized")

    return _orchestrator

def get_summarizer() -> ArticleSummarizer:
    """Get article summarizer singleton."""
    global _summarizer

    with _singleton_lock:
        if _summarizer is None:
            _summarizer = ArticleSummarizer(get_secondary_provider())

    return _summarizer

def get_rate_limiter() -> SlidingWindowRateLimiter:
    """Get rate limiter singleton."""
    global _rate_limiter

    with _singleton_lock:
        if _rate_limiter is None:
            config = get_config()
            _rate_limiter = SlidingWindowRateLimiter(
                sweep_threshold=config['rate_limit'].get('sweep_threshold', 10_000)
            )

    return _rate_limiter

def enforce_rate_limit(
    request: Request,
    limiter: SlidingWindowRateLimiter = Depends(get_rate_limiter),
    metrics: MetricsCollector = Depends(get_observability),
) -> str:
    """
    Admit the request or raise RateLimitedError.

    Returns:
        The resolved client id
    """
    settings = get_config()['rate_limit']
    client_id = get_client_ip(request)
    decision = limiter.admit(
        client_id,
        limit=settings.get('limit', 10),
        window_ms=settings.get('window_ms', 60_000),
    )

    if not decision.allowed:
        metrics.record_gate_rejection(request.url.path, "rate_limited", tracked_clients=len(limiter))
        logger.warning(
            f"Rate limited {client_id} on {request.url.path}",
            extra={"client_id": client_id},
        )
        raise RateLimitedError(decision.retry_after, "Too many requests")

    return client_id

async def cleanup_resources():
    """Cleanup all resources on shutdown."""
    global _providers, _orchestrator, _summarizer, _metrics_collector, _rate_limiter

    if _providers:
        for provider in _providers:
            await provider.shutdown()
        _providers = None

    _orchestrator = None
    _summarizer = None
    _metrics_collector = None
    _rate_limiter = None

    logger.info("All resources cleaned up")
