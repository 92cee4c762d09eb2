"""
Structured Logging Utilities

Every module in this package logs through ``logging.getLogger(__name__)`` with
structured ``extra`` payloads and never installs handlers on import. This module
holds the helpers that applications opt into: masking secrets before they reach
a record, a JSON-lines formatter that keeps the ``extra`` fields, and a
one-call setup for the package logger.
"""

from __future__ import annotations

import json
import logging
import sys
from datetime import datetime, timezone
from typing import Dict, Mapping, Optional, TextIO

__all__ = ["JSONFormatter", "mask_sensitive_data", "setup_logging"]

PACKAGE_LOGGER = "httpsession"

_SENSITIVE_KEYS = {
    "authorization",
    "proxy-authorization",
    "cookie",
    "set-cookie",
    "api_key",
    "apikey",
    "x-api-key",
    "token",
    "secret",
    "password",
}

# Attributes present on every LogRecord; anything else came in through ``extra``.
_RESERVED = set(vars(logging.makeLogRecord({}))) | {"message", "asctime"}


def mask_sensitive_data(payload: Mapping[str, object]) -> Dict[str, object]:
    """Remove secrets from structured payloads prior to logging.

    Args:
        payload: Arbitrary key-value pairs, typically request headers, that may
            contain credentials or tokens.

    Returns:
        Copy of the payload where common secret fields are replaced with
        `***masked***`.

    Examples:
        >>> mask_sensitive_data({"Authorization": "Basic abc", "Accept": "*/*"})
        {'Authorization': '***masked***', 'Accept': '*/*'}
    """
    masked: Dict[str, object] = {}
    for key, value in payload.items():
        lower = key.lower()
        if lower in _SENSITIVE_KEYS:
            masked[key] = "***masked***"
        elif isinstance(value, str) and "apikey" in value.lower():
            masked[key] = "***masked***"
        elif isinstance(value, Mapping):
            masked[key] = mask_sensitive_data(value)
        else:
            masked[key] = value
    return masked


class JSONFormatter(logging.Formatter):
    """Formatter emitting JSON structured logs.

    Examples:
        >>> formatter = JSONFormatter()
        >>> isinstance(formatter.format(logging.makeLogRecord({'msg': 'test'})), str)
        True
    """

    def format(self, record: logging.LogRecord) -> str:
        """Serialize a logging record, including its ``extra`` fields, into a JSON line."""
        now = datetime.fromtimestamp(record.created, tz=timezone.utc)
        log_obj: Dict[str, object] = {
            "timestamp": now.isoformat().replace("+00:00", "Z"),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        for key, value in vars(record).items():
            if key not in _RESERVED and not key.startswith("_"):
                log_obj[key] = value
        if record.exc_info:
            log_obj["exc_info"] = self.formatException(record.exc_info)
        return json.dumps(mask_sensitive_data(log_obj), default=str)


def setup_logging(
    level: Optional[str] = None,
    *,
    json_format: bool = True,
    stream: Optional[TextIO] = None,
) -> logging.Logger:
    """Attach a stream handler to the package logger.

    Calling it again replaces the handler installed by the previous call
    instead of stacking a second one.

    Args:
        level: Log level name; defaults to ``SessionSettings.log_level``.
        json_format: Emit JSON lines when ``True``, plain text otherwise.
        stream: Destination stream, ``sys.stderr`` by default.

    Returns:
        The configured ``httpsession`` logger.
    """
    if level is None:
        from .settings import get_settings

        level = get_settings().log_level

    logger = logging.getLogger(PACKAGE_LOGGER)
    logger.setLevel(level.upper())
    for handler in list(logger.handlers):
        if getattr(handler, "_httpsession_handler", False):
            logger.removeHandler(handler)

    handler = logging.StreamHandler(stream or sys.stderr)
    if json_format:
        handler.setFormatter(JSONFormatter())
    else:
        handler.setFormatter(logging.Formatter("%(asctime)s %(levelname)s %(name)s %(message)s"))
    handler._httpsession_handler = True  # type: ignore[attr-defined]
    logger.addHandler(handler)
    return logger
