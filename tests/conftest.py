"""Pytest configuration and fixtures."""

import pytest
from typing import Dict, Any, List

from linkdok.application.tutor import ModelRegistry, TutorOrchestrator
from linkdok.core.models import ResourceContent
from linkdok.infrastructure.llm.mock_provider import MockProvider
from linkdok.infrastructure.observability.metrics import MetricsCollector

@pytest.fixture
def mock_config() -> Dict[str, Any]:
    """Mock configuration for testing."""
    return {
        "api": {
            "host": "0.0.0.0",
            "port": 8000
        },
        "providers": {
            "mode": "mock",
            "connect_timeout": 5,
            "nvidia": {
                "thinking_floor_ms": 180000,
                "default_timeout_ms": 30000
            },
            "openrouter": {
                "timeout_ms": 30000,
                "models": ["free-a", "free-b"]
            }
        },
        "rate_limit": {
            "limit": 10,
            "window_ms": 60000
        },
        "tutor": {
            "history_window": 8,
            "playground_history_window": 10,
            "max_resource_chars": 15000,
            "max_context_chars": 60000
        },
        "observability": {
            "metrics_enabled": True
        }
    }

@pytest.fixture
def registry() -> ModelRegistry:
    """Default model registry."""
    return ModelRegistry()

@pytest.fixture
def metrics(mock_config) -> MetricsCollector:
    """Fresh metrics collector."""
    return MetricsCollector(mock_config["observability"])

@pytest.fixture
async def primary_provider():
    """Scripted stand-in for the primary provider."""
    provider = MockProvider(name="nvidia")
    await provider.initialize()
    yield provider
    await provider.shutdown()

@pytest.fixture
async def secondary_provider(mock_config):
    """Scripted stand-in for the fallback provider."""
    provider = MockProvider(mock_config["providers"]["openrouter"], name="openrouter")
    await provider.initialize()
    yield provider
    await provider.shutdown()

@pytest.fixture
def orchestrator(primary_provider, secondary_provider, registry, mock_config, metrics):
    """Tutor orchestrator wired to mock providers."""
    return TutorOrchestrator(
        primary=primary_provider,
        secondary=secondary_provider,
        registry=registry,
        config=mock_config["tutor"],
        metrics=metrics,
    )

@pytest.fixture
def sample_resources() -> List[ResourceContent]:
    """Sample extracted resources for testing."""
    return [
        ResourceContent(
            url="https://example.com/closures",
            extracted_text="A closure is a function bundled together with references to its surrounding state.",
        ),
        ResourceContent(
            url="https://example.com/event-loop",
            extracted_text="The event loop runs queued callbacks once the call stack is empty.",
        ),
        ResourceContent(
            url="https://example.com/broken",
            extracted_text="",
            success=False,
        ),
    ]
