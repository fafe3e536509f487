"""Logging configuration for CEPP tools and embedding services."""

from __future__ import annotations

import json
import logging
import os
import sys
from datetime import datetime, timezone

from opentelemetry import trace

LEVEL_ENV_VAR = "CEPP_LOG_LEVEL"
FORMAT_ENV_VAR = "CEPP_LOG_FORMAT"

DEFAULT_LOG_LEVEL = "WARNING"
DEFAULT_LOG_FORMAT = "%(asctime)s %(levelname)-7s %(service_name)s %(name)s: %(message)s"
LOG_OFF_LEVEL = "OFF"
JSON_FORMAT = "json"

# Attributes passed through ``extra=`` with this prefix are certificate context
CONTEXT_PREFIX = "cepp_"


class CeppContextFilter(logging.Filter):
    """Tag records with the service name and, inside a recording span, its trace id."""

    def __init__(self, service_name: str) -> None:
        super().__init__()
        self.service_name = service_name

    def filter(self, record: logging.LogRecord) -> bool:
        record.service_name = self.service_name
        span_context = trace.get_current_span().get_span_context()
        record.trace_id = format(span_context.trace_id, "032x") if span_context.is_valid else None
        return True


class JSONFormatter(logging.Formatter):
    """One JSON object per line, with certificate context lifted out of ``extra``."""

    def format(self, record: logging.LogRecord) -> str:
        entry = {
            "time": datetime.fromtimestamp(record.created, timezone.utc).isoformat(),
            "level": record.levelname,
            "service": getattr(record, "service_name", None),
            "logger": record.name,
            "event": record.getMessage(),
        }
        entry.update(
            (name[len(CONTEXT_PREFIX):], value)
            for name, value in vars(record).items()
            if name.startswith(CONTEXT_PREFIX)
        )
        if getattr(record, "trace_id", None):
            entry["trace_id"] = record.trace_id
        if record.exc_info:
            entry["exception"] = self.formatException(record.exc_info)
        return json.dumps(entry, default=str)


def _resolve_level(name: str) -> int | None:
    """Map a level name to its number; None means logging is off."""
    name = name.strip().upper()
    if name == LOG_OFF_LEVEL:
        return None
    level = logging.getLevelName(name)
    return level if isinstance(level, int) else logging.INFO


def setup_logging(
    service_name: str = "cepp",
    log_level: str | None = None,
    log_format: str | None = None,
    log_level_env_var: str = LEVEL_ENV_VAR,
    log_format_env_var: str = FORMAT_ENV_VAR,
) -> None:
    """
    Send root logging to stderr.

    Args:
        service_name: Name used to tag every log record
        log_level: Level name, or ``OFF``; overrides the environment
        log_format: ``json`` or a ``logging`` format string; overrides the environment
        log_level_env_var: Environment variable to read the log level from
        log_format_env_var: Environment variable to read the log format from
    """
    level = _resolve_level(log_level or os.environ.get(log_level_env_var, DEFAULT_LOG_LEVEL))
    fmt = log_format or os.environ.get(log_format_env_var) or DEFAULT_LOG_FORMAT

    root_logger = logging.getLogger()
    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)

    if level is None:
        root_logger.setLevel(logging.CRITICAL + 1)
        return
    root_logger.setLevel(level)

    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(JSONFormatter() if fmt.lower() == JSON_FORMAT else logging.Formatter(fmt))
    handler.addFilter(CeppContextFilter(service_name))
    root_logger.addHandler(handler)
