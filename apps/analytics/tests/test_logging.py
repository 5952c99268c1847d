import io
import json
import logging
import sys
from decimal import Decimal
from uuid import UUID

import pytest
from loguru import logger

from promo_funnel.core.logging import configure_logging


@pytest.fixture
def log_stream():
    stream = io.StringIO()
    root_handlers = logging.getLogger().handlers[:]
    root_level = logging.getLogger().level
    configure_logging(service_name="promo-funnel", environment="test", version="9.9.9", stream=stream)
    try:
        yield stream
    finally:
        logger.remove()
        logger.add(sys.stderr)
        root = logging.getLogger()
        root.handlers[:] = root_handlers
        root.setLevel(root_level)


def _lines(stream: io.StringIO) -> list[dict]:
    return [json.loads(line) for line in stream.getvalue().splitlines() if line]


def test_loguru_records_are_json_with_service_metadata(log_stream):
    promo_code_id = UUID("00000000-0000-0000-0000-000000000001")
    logger.bind(promo_code_id=promo_code_id, total_revenue=Decimal("12.50")).info("Snapshot refreshed")

    [payload] = _lines(log_stream)
    assert payload["message"] == "Snapshot refreshed"
    assert payload["level"] == "info"
    assert payload["service"] == "promo-funnel"
    assert payload["environment"] == "test"
    assert payload["version"] == "9.9.9"
    assert payload["promo_code_id"] == str(promo_code_id)
    assert payload["total_revenue"] == "12.50"
    assert "trace_id" not in payload


def test_exceptions_are_summarised(log_stream):
    try:
        raise ValueError("bad cart value")
    except ValueError as exc:
        logger.opt(exception=exc).error("Tracking failed")

    [payload] = _lines(log_stream)
    assert payload["error"] == {"type": "ValueError", "detail": "bad cart value"}


def test_stdlib_records_are_intercepted(log_stream):
    logging.getLogger("promo_funnel.tests").warning("stdlib says %s", "hello", extra={"order_id": "ORD-1"})

    [payload] = _lines(log_stream)
    assert payload["message"] == "stdlib says hello"
    assert payload["level"] == "warning"
    assert payload["order_id"] == "ORD-1"
