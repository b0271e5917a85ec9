"""
Structured Logging Utilities

Centralizes logging setup for MediaVault: a console handler emitting either
plain text or JSON lines, with secrets masked before they reach the output.
Modules log through ``logging.getLogger(__name__)``; this module only
configures the ``MediaVault`` parent logger.
"""

from __future__ import annotations

import json
import logging
import sys
from datetime import datetime, timezone
from typing import Dict, Optional, TextIO

from MediaVault.config.models import LoggingConfig

ROOT_LOGGER_NAME = "MediaVault"
_SENSITIVE_KEYS = {"authorization", "token", "secret", "password", "api_key", "apikey"}


def mask_sensitive_data(payload: Dict[str, object]) -> Dict[str, object]:
    """Replace values of credential-like keys with ``***masked***``.

    Examples:
        >>> mask_sensitive_data({"token": "secret", "status": "ok"})
        {'token': '***masked***', 'status': 'ok'}
    """
    masked: Dict[str, object] = {}
    for key, value in payload.items():
        if key.lower() in _SENSITIVE_KEYS:
            masked[key] = "***masked***"
        else:
            masked[key] = value
    return masked


class JSONFormatter(logging.Formatter):
    """Formatter emitting one JSON object per record."""

    def format(self, record: logging.LogRecord) -> str:
        now = datetime.now(timezone.utc)
        log_obj: Dict[str, object] = {
            "timestamp": now.isoformat().replace("+00:00", "Z"),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        extra_fields = getattr(record, "extra_fields", None)
        if isinstance(extra_fields, dict):
            log_obj.update(extra_fields)
        if record.exc_info:
            log_obj["exc_info"] = self.formatException(record.exc_info)
        return json.dumps(mask_sensitive_data(log_obj), default=str)


def setup_logging(
    config: Optional[LoggingConfig] = None,
    stream: Optional[TextIO] = None,
) -> logging.Logger:
    """Install a console handler on the ``MediaVault`` logger.

    Handlers installed by earlier calls are replaced; handlers added by the
    host application are left alone.
    """
    config = config or LoggingConfig()
    logger = logging.getLogger(ROOT_LOGGER_NAME)
    logger.setLevel(getattr(logging, config.level, logging.INFO))

    for handler in list(logger.handlers):
        if getattr(handler, "_mediavault_managed", False):
            logger.removeHandler(handler)
            handler.close()

    handler = logging.StreamHandler(stream or sys.stderr)
    if config.json_format:
        handler.setFormatter(JSONFormatter())
    else:
        handler.setFormatter(logging.Formatter("%(levelname)s: %(name)s: %(message)s"))
    handler._mediavault_managed = True  # type: ignore[attr-defined]
    logger.addHandler(handler)
    logger.propagate = True
    return logger


__all__ = ["JSONFormatter", "mask_sensitive_data", "setup_logging"]
