"""Chat-completion provider implementations."""

from typing import Dict, Any, Tuple

from linkdok.core.interfaces import IProvider
from linkdok.core.exceptions import ConfigurationError
from .base import BaseProvider
from .nvidia_provider import NvidiaProvider
from .openrouter_provider import OpenRouterProvider
from .mock_provider import MockProvider

def create_providers(config: Dict[str, Any]) -> Tuple[IProvider, IProvider]:
    """
    Factory function to create the primary and secondary providers.

    Args:
        config: ``providers`` configuration section

    Returns:
        (primary, secondary) provider pair

    Raises:
        ConfigurationError: If the provider mode is unknown
    """
    mode = config.get('mode', 'live')
    shared = {'connect_timeout': config.get('connect_timeout', 10)}

    if mode == 'live':
        primary = NvidiaProvider({**shared, **config.get('nvidia', {})})
        secondary = OpenRouterProvider(
            {**shared, 'app_url': config.get('app_url', ''), **config.get('openrouter', {})}
        )
        return primary, secondary
    elif mode == 'mock':
        secondary_models = config.get('openrouter', {}).get('models')
        return (
            MockProvider(config.get('mock', {}), name='mock-primary'),
            MockProvider({'models': secondary_models} if secondary_models else {}, name='mock-secondary'),
        )
    else:
        raise ConfigurationError(f"Unknown provider mode: {mode}")

__all__ = ['create_providers', 'BaseProvider', 'NvidiaProvider', 'OpenRouterProvider', 'MockProvider']
