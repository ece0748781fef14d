"""Tests for the structured logging system (corptax_kernel/logging_config.py)."""

import json
import logging
from datetime import date
from decimal import Decimal
from io import StringIO
from uuid import uuid4

import pytest

from corptax_kernel.exceptions import StaleRevisionError
from corptax_kernel.logging_config import (
    LogContext,
    StructuredFormatter,
    configure_logging,
    get_logger,
    reset_logging,
)


@pytest.fixture(autouse=True)
def _clean_logging():
    """Reset logging state, then restore the suite configuration."""
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


def _parse_all_logs(stream: StringIO) -> list[dict]:
    lines = stream.getvalue().strip().split("\n")
    return [json.loads(line) for line in lines if line]


# ---------------------------------------------------------------------------
# StructuredFormatter tests
# ---------------------------------------------------------------------------


class TestStructuredFormatter:

    def test_basic_json_output(self):
        handler, stream = _make_handler()
        configure_logging(handler=handler)
        get_logger("test").info("hello")

        record = _parse_all_logs(stream)[0]
        assert record["level"] == "INFO"
        assert record["message"] == "hello"
        assert record["logger"] == "corptax.test"
        assert "ts" in record

    def test_extra_fields_serialized(self):
        handler, stream = _make_handler()
        configure_logging(handler=handler)
        assessment_id = uuid4()
        get_logger("test").info("advance_tax_payment_recorded", extra={
            "assessment_id": assessment_id,
            "amount": Decimal("195000"),
            "payment_date": date(2024, 6, 10),
            "quarter": 1,
        })

        record = _parse_all_logs(stream)[0]
        assert record["assessment_id"] == str(assessment_id)
        assert record["amount"] == "195000"
        assert record["payment_date"] == "2024-06-10"
        assert record["quarter"] == 1

    def test_exception_fields(self):
        handler, stream = _make_handler()
        configure_logging(handler=handler)
        try:
            raise StaleRevisionError("a-1", 0, 1)
        except StaleRevisionError:
            get_logger("test").warning("revision_rejected", exc_info=True)

        record = _parse_all_logs(stream)[0]
        assert record["exc_type"] == "StaleRevisionError"
        assert record["exc_code"] == "STALE_REVISION"
        assert record["exc_expected_revision_count"] == 0
        assert record["exc_actual_revision_count"] == 1
        assert "Traceback" in record["traceback"]

    def test_level_filtering(self):
        handler, stream = _make_handler()
        configure_logging(handler=handler, level=logging.WARNING)
        logger = get_logger("test")
        logger.info("dropped")
        logger.warning("kept")

        assert [r["message"] for r in _parse_all_logs(stream)] == ["kept"]


# ---------------------------------------------------------------------------
# LogContext tests
# ---------------------------------------------------------------------------


class TestLogContext:

    def test_context_fields_included(self):
        handler, stream = _make_handler()
        configure_logging(handler=handler)
        LogContext.set(company_id="c-1", actor_id="u-1")
        get_logger("test").info("with_context")

        record = _parse_all_logs(stream)[0]
        assert record["company_id"] == "c-1"
        assert record["actor_id"] == "u-1"
        assert "assessment_id" not in record

    def test_bind_restores_previous_values(self):
        LogContext.set(assessment_id="outer")
        with LogContext.bind(assessment_id="inner", trace_id="t-1"):
            assert LogContext.get_all() == {"assessment_id": "inner", "trace_id": "t-1"}
        assert LogContext.get_all() == {"assessment_id": "outer"}

    def test_bind_skips_none(self):
        with LogContext.bind(assessment_id=None, financial_year="2024-25"):
            assert LogContext.get_all() == {"financial_year": "2024-25"}

    def test_unknown_field_rejected(self):
        with pytest.raises(TypeError):
            LogContext.set(event_id="e-1")
        with pytest.raises(TypeError):
            LogContext.bind(producer="x")

    def test_values_stringified(self):
        company = uuid4()
        LogContext.set(company_id=company)
        assert LogContext.get_all() == {"company_id": str(company)}

    def test_clear(self):
        LogContext.set(correlation_id="r-1", company_id="c-1")
        LogContext.clear()
        assert LogContext.get_all() == {}


# ---------------------------------------------------------------------------
# configure_logging tests
# ---------------------------------------------------------------------------


class TestConfigureLogging:

    def test_idempotent(self):
        first, first_stream = _make_handler()
        second, second_stream = _make_handler()
        configure_logging(handler=first)
        configure_logging(handler=second)
        get_logger("test").info("once")

        assert len(_parse_all_logs(first_stream)) == 1
        assert second_stream.getvalue() == ""

    def test_level_from_environment(self, monkeypatch):
        monkeypatch.setenv("CORPTAX_LOG_LEVEL", "warning")
        handler, stream = _make_handler()
        configure_logging(handler=handler)
        logger = get_logger("test")
        logger.info("dropped")
        logger.error("kept")
        assert [r["message"] for r in _parse_all_logs(stream)] == ["kept"]

    def test_bad_environment_level(self, monkeypatch):
        monkeypatch.setenv("CORPTAX_LOG_LEVEL", "loud")
        with pytest.raises(ValueError):
            configure_logging()

    def test_reset_clears_handlers(self):
        handler, _ = _make_handler()
        configure_logging(handler=handler)
        reset_logging()
        root = logging.getLogger("corptax")
        assert root.handlers == []
        assert root.propagate is True
