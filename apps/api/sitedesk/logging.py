"""Structured JSON logging.

Every record carries the request correlation id. Domain code passes context
through ``extra=``; only the keys listed in ``LOGGED_FIELDS`` reach the output,
so stray attributes (tokens, payloads) never leak into log lines.
"""

from __future__ import annotations

import json
import logging
import sys
from datetime import datetime, timezone
from typing import Any

from sitedesk.context import get_correlation_id
from sitedesk.core.config import Settings, get_settings


LOGGED_FIELDS = frozenset(
    {
        "method",
        "path",
        "status_code",
        "duration_ms",
        "sequence_name",
        "project_id",
        "sales_rep_id",
        "utilization_percentage",
        "policy_action",
        "policy_outcome",
        "flag_key",
        "audit_action",
        "audit_outcome",
        "audit_event",
        "event_name",
        "seeded_count",
        "error",
    }
)
MAX_ERROR_LENGTH = 500
NOISY_LOGGERS = ("uvicorn.access", "sqlalchemy.engine", "opentelemetry")

_default_factory = logging.getLogRecordFactory()


def _contextual_record(*args: Any, **kwargs: Any) -> logging.LogRecord:
    record = _default_factory(*args, **kwargs)
    record.correlation_id = get_correlation_id()
    return record


class JsonLogFormatter(logging.Formatter):
    def __init__(self, service: str | None = None) -> None:
        super().__init__()
        self.service = service

    def format(self, record: logging.LogRecord) -> str:
        fields = {key: value for key, value in record.__dict__.items() if key in LOGGED_FIELDS}
        error = fields.get("error")
        if isinstance(error, str) and len(error) > MAX_ERROR_LENGTH:
            fields["error"] = error[:MAX_ERROR_LENGTH]
        if record.exc_info:
            fields["exception"] = self.formatException(record.exc_info)

        payload: dict[str, Any] = {
            "ts": datetime.now(timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "msg": record.getMessage(),
            "correlation_id": getattr(record, "correlation_id", None),
            "fields": fields,
        }
        if self.service:
            payload["service"] = self.service
        return json.dumps(payload, default=str)


def configure_logging(settings: Settings | None = None) -> None:
    root_logger = logging.getLogger()
    if getattr(root_logger, "_sitedesk_configured", False):
        return

    settings = settings or get_settings()
    level = logging.getLevelName(settings.log_level.upper())
    if not isinstance(level, int):
        level = logging.INFO

    handler = logging.StreamHandler(stream=sys.stdout)
    handler.setFormatter(JsonLogFormatter(service=settings.app_name))

    logging.setLogRecordFactory(_contextual_record)
    root_logger.handlers.clear()
    root_logger.addHandler(handler)
    root_logger.setLevel(level)
    if settings.log_quiet_libraries:
        for name in NOISY_LOGGERS:
            if name == "sqlalchemy.engine" and settings.database_echo:
                continue
            logging.getLogger(name).setLevel(logging.WARNING)
    root_logger._sitedesk_configured = True  # type: ignore[attr-defined]
