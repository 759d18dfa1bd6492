"""Utility modules for LinkDok."""

from .config import load_config, get_config_value, get_api_key
from .logger import get_logger, setup_logging

__all__ = ['load_config', 'get_config_value', 'get_api_key', 'get_logger', 'setup_logging']
