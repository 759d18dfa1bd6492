"""Logging setup shared by the server and the CLI."""

import logging
import json
from pathlib import Path
from datetime import datetime, timezone
from logging.handlers import RotatingFileHandler
from typing import Optional

from .config import get_config_value

# Attributes callers pass through ``extra=`` that end up in JSON records
EXTRA_FIELDS = (
    "request_id",
    "client_id",
    "model",
    "intent",
    "candidate",
    "latency_ms",
    "used_thinking",
    "success",
)

TEXT_FORMAT = '%(asctime)s - %(name)s - %(levelname)s - %(message)s'

NOISY_LOGGERS = ('aiohttp', 'asyncio', 'uvicorn.access')

SIZE_UNITS = {'KB': 1024, 'MB': 1024 ** 2, 'GB': 1024 ** 3}


class JsonFormatter(logging.Formatter):
    """One JSON object per line."""

    def format(self, record: logging.LogRecord) -> str:
        entry = {
            'timestamp': datetime.fromtimestamp(record.created, timezone.utc).isoformat(),
            'level': record.levelname,
            'logger': record.name,
            'message': record.getMessage(),
            'module': record.module,
            'function': record.funcName,
            'line': record.lineno,
        }
        entry.update(
            (key, getattr(record, key)) for key in EXTRA_FIELDS if hasattr(record, key)
        )
        if record.exc_info:
            entry['exception'] = self.formatException(record.exc_info)

        return json.dumps(entry, default=str)


def parse_size(value) -> int:
    """'50MB' -> bytes. Plain integers are taken as bytes already."""
    if isinstance(value, int):
        return value
    text = str(value).strip().upper()
    for unit, multiplier in SIZE_UNITS.items():
        if text.endswith(unit):
            return int(text[:-len(unit)]) * multiplier
    return int(text)


def _build_formatter(style: str) -> logging.Formatter:
    return JsonFormatter() if style == 'json' else logging.Formatter(TEXT_FORMAT)


def _file_handler(path: str, max_size, backup_count: int) -> RotatingFileHandler:
    Path(path).parent.mkdir(parents=True, exist_ok=True)
    return RotatingFileHandler(path, maxBytes=parse_size(max_size), backupCount=backup_count)


def setup_logging(level: Optional[str] = None, log_file: Optional[str] = None) -> None:
    """
    Install console and rotating-file handlers on the root logger.

    Args:
        level: Overrides ``logging.level`` from settings
        log_file: Overrides ``logging.file``; an empty string disables the file
    """
    level_name = level or get_config_value('logging.level', 'INFO')
    numeric_level = getattr(logging, str(level_name).upper(), logging.INFO)
    formatter = _build_formatter(get_config_value('logging.format', 'json'))
    if log_file is None:
        log_file = get_config_value('logging.file', 'logs/linkdok.log')

    handlers = [logging.StreamHandler()]
    if log_file:
        handlers.append(
            _file_handler(
                log_file,
                get_config_value('logging.max_size', '50MB'),
                get_config_value('logging.backup_count', 5),
            )
        )

    root = logging.getLogger()
    root.setLevel(numeric_level)
    for handler in list(root.handlers):
        root.removeHandler(handler)
        handler.close()
    for handler in handlers:
        handler.setLevel(numeric_level)
        handler.setFormatter(formatter)
        root.addHandler(handler)

    for name in NOISY_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)


def get_logger(name: str) -> logging.Logger:
    """Module logger; configures the root logger on first use."""
    if not logging.getLogger().handlers:
        setup_logging()

    return logging.getLogger(name)
