"""Structured logging helpers."""

from __future__ import annotations

import json
import logging
import logging.config
from datetime import datetime, timezone
from typing import Any, Dict, Iterable, Mapping

from .config import Config

# Attributes every LogRecord carries; anything else came in through ``extra=``.
_RECORD_ATTRS = frozenset(logging.LogRecord("", 0, "", 0, "", (), None).__dict__) | {
    "message",
    "asctime",
}

REDACTED = "***REDACTED***"

# Header names plus the MQTT password as it appears in forms and documents.
_REDACT_KEYS = {"authorization", "x-api-key", "cookie", "mqpass", "password"}


class JsonFormatter(logging.Formatter):
    """One JSON object per record, with ``extra=`` fields inlined."""

    def format(self, record: logging.LogRecord) -> str:  # noqa: D401
        base: Dict[str, Any] = {
            "ts": datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        if record.exc_info:
            base["exc_info"] = self.formatException(record.exc_info)
        if record.stack_info:
            base["stack"] = self.formatStack(record.stack_info)
        base.update(
            (key, value)
            for key, value in record.__dict__.items()
            if not key.startswith("_") and key not in _RECORD_ATTRS
        )
        return json.dumps(base, ensure_ascii=False, default=str)


def redact_mapping(values: Mapping[str, Any], extra_keys: Iterable[str] = ()) -> Dict[str, Any]:
    """Return a copy of `values` with sensitive keys redacted.

    Nested mappings are walked, so a whole settings document can be logged.
    Unset (``None``) secrets are left as they are.
    """

    redact_keys = _REDACT_KEYS | {key.lower() for key in extra_keys}
    return _redact(values, redact_keys)


def _redact(values: Mapping[str, Any], redact_keys: set) -> Dict[str, Any]:
    redacted: Dict[str, Any] = {}
    for key, value in values.items():
        if isinstance(value, Mapping):
            redacted[key] = _redact(value, redact_keys)
        elif str(key).lower() in redact_keys and value is not None:
            redacted[key] = REDACTED
        else:
            redacted[key] = value
    return redacted


def configure_logging(config: Config) -> None:
    """Configure global logging based on the provided config."""

    level = config.log_level.upper()
    discovery_level = (config.discovery_log_level or config.log_level).upper()
    api_level = (config.api_log_level or config.log_level).upper()
    if config.log_format == "json":
        formatter = {
            "format": "json",
            "()": f"{__name__}.JsonFormatter",
        }
    else:
        formatter = {
            "format": "%(asctime)s | %(levelname)s | %(name)s | %(message)s",
            "datefmt": "%Y-%m-%dT%H:%M:%S%z",
        }

    def _logger(logger_level: str) -> Dict[str, Any]:
        return {"level": logger_level, "handlers": ["console"], "propagate": False}

    logging.config.dictConfig(
        {
            "version": 1,
            "disable_existing_loggers": False,
            "formatters": {
                "default": formatter,
            },
            "handlers": {
                "console": {
                    "class": "logging.StreamHandler",
                    "formatter": "default",
                    "level": level,
                }
            },
            "loggers": {
                "wled_sync": _logger(level),
                "wled_sync.codec": _logger(level),
                "wled_sync.presets": _logger(level),
                "wled_sync.sync": _logger(level),
                "wled_sync.client": _logger(level),
                "wled_sync.discovery": _logger(discovery_level),
                "wled_sync.discovery.mdns": _logger(discovery_level),
                "wled_sync.api": _logger(api_level),
                "wled_sync.api.middleware": _logger(api_level),
            },
            "root": {"level": level, "handlers": ["console"]},
        }
    )


def get_logger(name: str) -> logging.Logger:
    """Return a namespaced logger for the requested subsystem."""

    return logging.getLogger(name)
