"""Structured JSON logging for the analytics jobs and scripts."""

from __future__ import annotations

import json
import logging
import sys
from datetime import date, datetime
from decimal import Decimal
from typing import Any, Dict, TextIO
from uuid import UUID

from loguru import logger
from opentelemetry import trace

# Attributes every stdlib LogRecord carries; anything else was passed via ``extra=``.
_STANDARD_RECORD_FIELDS = frozenset(logging.makeLogRecord({}).__dict__) | {"message", "asctime", "taskName"}

_QUIET_LOGGERS = ("sqlalchemy.engine", "sqlalchemy.pool", "aiosqlite", "asyncpg")


class InterceptHandler(logging.Handler):
    """Route stdlib records from SQLAlchemy and the DB drivers into Loguru."""

    def emit(self, record: logging.LogRecord) -> None:  # pragma: no cover - bridging glue
        try:
            level: str | int = logger.level(record.levelname).name
        except ValueError:
            level = record.levelno

        extra = {key: value for key, value in record.__dict__.items() if key not in _STANDARD_RECORD_FIELDS}
        message = record.getMessage().replace("{", "{{").replace("}", "}}")
        target = logger.bind(**extra) if extra else logger
        target.opt(depth=6, exception=record.exc_info).log(level, message)


def _json_default(value: Any) -> Any:
    # Money stays exact in log output.
    if isinstance(value, Decimal):
        return str(value)
    if isinstance(value, UUID):
        return str(value)
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    if isinstance(value, (set, frozenset)):
        return sorted(str(item) for item in value)
    return str(value)


def _trace_fields() -> Dict[str, str]:
    span_context = trace.get_current_span().get_span_context()
    if not span_context.is_valid:
        return {}
    return {"trace_id": f"{span_context.trace_id:032x}", "span_id": f"{span_context.span_id:016x}"}


def build_log_payload(record: Dict[str, Any], metadata: Dict[str, str]) -> Dict[str, Any]:
    """Flatten a Loguru record into the JSON document written to the sink."""

    payload: Dict[str, Any] = {
        "timestamp": record["time"].isoformat(),
        "level": record["level"].name.lower(),
        "message": record["message"],
        "logger": record["name"],
        **metadata,
        **_trace_fields(),
        **record["extra"],
    }
    exception = record["exception"]
    if exception is not None:
        payload["error"] = {
            "type": exception.type.__name__ if exception.type else None,
            "detail": str(exception.value) if exception.value else None,
        }
    return payload


def configure_logging(
    *,
    service_name: str,
    environment: str,
    version: str,
    level: str = "INFO",
    stream: TextIO | None = None,
) -> None:
    """Send every Loguru and stdlib record to ``stream`` (stdout by default) as one JSON line."""

    output = stream or sys.stdout
    metadata = {"service": service_name, "environment": environment, "version": version}

    def _sink(message: Any) -> None:
        output.write(json.dumps(build_log_payload(message.record, metadata), default=_json_default) + "\n")

    logger.remove()
    logger.add(_sink, level=level.upper(), backtrace=False, diagnose=False)

    logging.basicConfig(handlers=[InterceptHandler()], level=0, force=True)
    for name in _QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)


__all__ = ["InterceptHandler", "build_log_payload", "configure_logging"]
