"""Settings loading for the LinkDok server."""

import os
import yaml
from pathlib import Path
from typing import Any, Callable, Dict, Optional, Tuple
from functools import lru_cache

from linkdok.core.exceptions import ConfigurationError

SEARCH_PATHS = (
    Path("config/settings.yaml"),
    Path("/etc/linkdok/settings.yaml"),
    Path.home() / ".linkdok" / "settings.yaml",
    Path(__file__).parent.parent.parent / "config" / "settings.yaml",
)

REQUIRED_SECTIONS = ("api", "providers", "rate_limit", "tutor")

PROVIDER_MODES = ("live", "mock")

# env var -> (settings path, converter)
ENV_OVERRIDES: Dict[str, Tuple[Tuple[str, ...], Callable[[str], Any]]] = {
    "LINKDOK_API_HOST": (("api", "host"), str),
    "LINKDOK_API_PORT": (("api", "port"), int),
    "LINKDOK_PROVIDER_MODE": (("providers", "mode"), str.lower),
    "LINKDOK_THINKING_FLOOR_MS": (("providers", "nvidia", "thinking_floor_ms"), int),
    "LINKDOK_RATE_LIMIT": (("rate_limit", "limit"), int),
    "LINKDOK_LOG_LEVEL": (("logging", "level"), str.upper),
}

API_KEY_ENV = {
    "nvidia": ("NVIDIA_API_KEY", "VITE_NVIDIA_API_KEY"),
    "openrouter": ("OPENROUTER_API_KEY", "VITE_OPENROUTER_API_KEY"),
}


def _find_settings_file() -> Path:
    for path in SEARCH_PATHS:
        if path.exists():
            return path
    raise ConfigurationError(
        f"No configuration file found in: {[str(p) for p in SEARCH_PATHS]}"
    )


@lru_cache(maxsize=1)
def load_config(config_path: Optional[str] = None) -> Dict[str, Any]:
    """
    Read settings.yaml, apply LINKDOK_* overrides and check the result.

    Args:
        config_path: Explicit settings file. Searched for when omitted.

    Raises:
        ConfigurationError: If the file is missing, unreadable or incomplete
    """
    path = Path(config_path) if config_path else _find_settings_file()

    try:
        with open(path, "r") as f:
            config = yaml.safe_load(f) or {}
    except yaml.YAMLError as e:
        raise ConfigurationError(f"Invalid YAML in {path}: {e}")
    except FileNotFoundError:
        raise ConfigurationError(f"Config file not found: {path}")
    except OSError as e:
        raise ConfigurationError(f"Error reading {path}: {e}")

    if not isinstance(config, dict):
        raise ConfigurationError(f"{path} must contain a mapping at the top level")

    missing = [s for s in REQUIRED_SECTIONS if s not in config]
    if missing:
        raise ConfigurationError(f"Missing required config sections: {missing}")

    apply_env_overrides(config, os.environ)
    _validate(config)
    return config


def apply_env_overrides(config: Dict[str, Any], environ) -> Dict[str, Any]:
    """Copy LINKDOK_* variables from ``environ`` into ``config`` in place."""
    for env_var, (keys, convert) in ENV_OVERRIDES.items():
        raw = environ.get(env_var)
        if raw is None:
            continue
        try:
            value = convert(raw)
        except ValueError:
            raise ConfigurationError(f"{env_var}={raw!r} is not a valid value")

        section = config
        for key in keys[:-1]:
            section = section.setdefault(key, {})
        section[keys[-1]] = value

    return config


def _validate(config: Dict[str, Any]) -> None:
    mode = config["providers"].get("mode", "live")
    if mode not in PROVIDER_MODES:
        raise ConfigurationError(
            f"providers.mode must be one of {PROVIDER_MODES}, got {mode!r}"
        )

    rate_limit = config["rate_limit"]
    for key in ("limit", "window_ms"):
        value = rate_limit.get(key)
        if value is not None and (not isinstance(value, int) or value <= 0):
            raise ConfigurationError(f"rate_limit.{key} must be a positive integer")


def get_config_value(path: str, default: Any = None) -> Any:
    """
    Look up a dotted path such as ``api.port``.

    Returns ``default`` when the path is absent or no settings file exists.
    """
    try:
        value = load_config()
    except ConfigurationError:
        return default

    for key in path.split("."):
        if not isinstance(value, dict) or key not in value:
            return default
        value = value[key]
    return value


def get_api_key(provider: str) -> str:
    """First non-empty key for ``provider`` from the environment, or ''."""
    for name in API_KEY_ENV.get(provider, ()):
        value = os.getenv(name)
        if value:
            return value
    return ""
