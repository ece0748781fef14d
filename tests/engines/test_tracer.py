"""
Tests for the engine tracer.

Validates:
- Fingerprints are deterministic and insensitive to Decimal scale
- A trace record is emitted for successful and failing calls
- financial_year and regime are copied onto the trace
"""

from decimal import Decimal

import pytest

from corptax_engines.schedule import LateCredit, ScheduleGenerator
from corptax_engines.tracer import compute_input_fingerprint, traced_engine
from corptax_kernel.domain.fiscal_year import FinancialYear
from corptax_kernel.exceptions import InvalidQuarterError


def _traces(captured_logs):
    return [r for r in captured_logs() if r["message"] == "CORPTAX_ENGINE_TRACE"]


class TestFingerprint:

    def test_decimal_scale_ignored(self):
        fields = ("amount",)
        assert compute_input_fingerprint(fields, {"amount": Decimal("1300000.00")}) == \
            compute_input_fingerprint(fields, {"amount": Decimal("1.3E+6")})

    def test_dict_order_ignored(self):
        fields = ("credits",)
        assert compute_input_fingerprint(fields, {"credits": {"tds": 1, "tcs": 2}}) == \
            compute_input_fingerprint(fields, {"credits": {"tcs": 2, "tds": 1}})

    def test_dataclasses_hashed_by_value(self):
        fields = ("late_credits", "financial_year")
        first = {"late_credits": [LateCredit(quarter=2, amount=Decimal("10"))],
                 "financial_year": FinancialYear(2024)}
        second = {"late_credits": [LateCredit(quarter=2, amount=Decimal("10.0"))],
                  "financial_year": FinancialYear(2024)}
        third = {"late_credits": [LateCredit(quarter=3, amount=Decimal("10"))],
                 "financial_year": FinancialYear(2024)}
        assert compute_input_fingerprint(fields, first) == compute_input_fingerprint(fields, second)
        assert compute_input_fingerprint(fields, first) != compute_input_fingerprint(fields, third)

    def test_missing_field_is_null(self):
        assert compute_input_fingerprint(("a",), {}) == compute_input_fingerprint(("a",), {"a": None})


class TestTracedEngine:

    def test_success_trace(self, captured_logs):
        ScheduleGenerator().generate(financial_year="2024-25", total_tax_liability=Decimal("100"))
        trace = _traces(captured_logs)[-1]
        assert trace["engine_name"] == "schedule"
        assert trace["outcome"] == "ok"
        assert trace["financial_year"] == "2024-25"
        assert len(trace["input_fingerprint"]) == 16

    def test_failure_trace_then_reraise(self, captured_logs):
        with pytest.raises(InvalidQuarterError):
            ScheduleGenerator().generate(
                financial_year="2024-25",
                total_tax_liability=Decimal("100"),
                late_credits=[LateCredit(quarter=9, amount=Decimal("1"))],
            )
        trace = _traces(captured_logs)[-1]
        assert trace["outcome"] == "error"
        assert trace["error_code"] == InvalidQuarterError.code

    def test_plain_function(self, captured_logs):
        @traced_engine("doubler", "2.1", fingerprint_fields=("x",))
        def doubler(*, x, regime):
            return x * 2

        assert doubler(x=3, regime="115BAA") == 6
        trace = _traces(captured_logs)[-1]
        assert trace["engine_version"] == "2.1"
        assert trace["regime"] == "115BAA"
        assert "financial_year" not in trace
