"""Tests for the structured logging system (shopfloor_kernel/logging_config.py)."""

import json
import logging
from decimal import Decimal
from io import StringIO
from uuid import uuid4

import pytest

from shopfloor_kernel.exceptions import VehicleNotAvailableError
from shopfloor_kernel.logging_config import (
    LogContext,
    StructuredFormatter,
    configure_logging,
    get_logger,
    reset_logging,
)


@pytest.fixture(autouse=True)
def _clean_logging():
    """Reset logging state between tests, restoring the suite configuration after."""
    reset_logging()
    LogContext.clear()
    yield
    LogContext.clear()
    reset_logging()
    configure_logging(level=logging.DEBUG)


def _make_handler() -> tuple[logging.Handler, StringIO]:
    stream = StringIO()
    handler = logging.StreamHandler(stream)
    handler.setFormatter(StructuredFormatter())
    return handler, stream


def _parse_log(stream: StringIO) -> dict:
    line = stream.getvalue().strip().split("\n")[0]
    return json.loads(line)


class TestStructuredFormatter:
    def test_basic_json_output(self):
        handler, stream = _make_handler()
        configure_logging(handler=handler)
        get_logger("test").info("hello")

        record = _parse_log(stream)
        assert record["level"] == "INFO"
        assert record["message"] == "hello"
        assert record["logger"] == "shopfloor_kernel.test"
        assert "ts" in record

    def test_extra_fields_serialized(self):
        handler, stream = _make_handler()
        configure_logging(handler=handler)
        item_id = uuid4()
        get_logger("test").info(
            "stock_ledger_entry_recorded",
            extra={"item_id": item_id, "qty": Decimal("2.5"), "seq": 3},
        )

        record = _parse_log(stream)
        assert record["item_id"] == str(item_id)
        assert record["qty"] == "2.5"
        assert record["seq"] == 3

    def test_context_fields_included(self):
        handler, stream = _make_handler()
        configure_logging(handler=handler)
        with LogContext.bind(tenant_id="t-1", operation="dispatch"):
            get_logger("test").info("inside")

        record = _parse_log(stream)
        assert record["tenant_id"] == "t-1"
        assert record["operation"] == "dispatch"

    def test_exception_fields_included(self):
        handler, stream = _make_handler()
        configure_logging(handler=handler)
        try:
            raise VehicleNotAvailableError("v-1", "IN_USE")
        except VehicleNotAvailableError:
            get_logger("test").warning("acquire_failed", exc_info=True)

        record = _parse_log(stream)
        assert record["exc_type"] == "VehicleNotAvailableError"
        assert record["exc_code"] == "VEHICLE_NOT_AVAILABLE"
        assert record["exc_status"] == "IN_USE"
        assert record["exc_message"] == "vehicle not AVAILABLE: IN_USE"
        assert "traceback" in record


class TestConfigureLogging:
    def test_idempotent(self):
        handler, _ = _make_handler()
        configure_logging(handler=handler)
        configure_logging(handler=handler)
        assert len(logging.getLogger("shopfloor_kernel").handlers) == 1

    def test_level_respected(self):
        handler, stream = _make_handler()
        configure_logging(level=logging.WARNING, handler=handler)
        logger = get_logger("test")
        logger.info("dropped")
        logger.warning("kept")

        lines = [json.loads(line) for line in stream.getvalue().strip().split("\n") if line]
        assert [r["message"] for r in lines] == ["kept"]
