"""
Tests for kernel primitives: rounding, clock, workflow and exceptions.
"""

from datetime import date, datetime, timezone
from decimal import Decimal

import pytest

from corptax_kernel.domain.clock import DeterministicClock, SystemClock
from corptax_kernel.domain.rounding import non_negative, round_rate, round_rupee
from corptax_kernel.domain.workflow import Transition, Workflow
from corptax_kernel.exceptions import (
    AssessmentFinalizedError,
    ConflictError,
    CorpTaxError,
    InvalidAmountError,
    StaleRevisionError,
    ValidationError,
)


class TestRounding:

    @pytest.mark.parametrize("value,expected", [
        ("0.5", "1"),
        ("1.49", "1"),
        ("2.5", "3"),
        ("-0.5", "-1"),
        ("150000.45", "150000"),
    ])
    def test_round_half_up(self, value, expected):
        assert round_rupee(Decimal(value)) == Decimal(expected)

    def test_idempotent(self):
        once = round_rupee(Decimal("1234.5"))
        assert round_rupee(once) == once

    def test_round_rate(self):
        assert round_rate(Decimal("75000") / Decimal("2525000")) == Decimal("0.029703")

    def test_non_negative(self):
        assert non_negative(Decimal("-3")) == Decimal("0")
        assert non_negative(Decimal("3")) == Decimal("3")


class TestClock:

    def test_deterministic_default(self):
        clock = DeterministicClock()
        assert clock.today() == date(2024, 4, 1)
        assert clock.now() == clock.now()

    def test_advance(self):
        clock = DeterministicClock()
        before = clock.now()
        clock.advance(3600)
        assert (clock.now() - before).total_seconds() == 3600

    def test_set_date(self):
        clock = DeterministicClock()
        clock.advance(10)
        clock.set_date(date(2024, 9, 20))
        assert clock.today() == date(2024, 9, 20)
        assert clock.now().hour == 9

    def test_system_clock_is_utc(self):
        assert SystemClock().now().tzinfo == timezone.utc

    def test_today_is_indian_date(self):
        # 20:00 UTC on 15 June is 01:30 IST on 16 June.
        clock = DeterministicClock(datetime(2024, 6, 15, 20, 0, tzinfo=timezone.utc))
        assert clock.today() == date(2024, 6, 16)

    def test_naive_time_rejected(self):
        with pytest.raises(ValueError):
            DeterministicClock().set_time(datetime(2024, 6, 15, 9, 0))

    def test_advance_days(self):
        clock = DeterministicClock()
        clock.advance_days(75)
        assert clock.today() == date(2024, 6, 15)


class TestWorkflow:

    def setup_method(self):
        self.workflow = Workflow(
            name="doc",
            description="test",
            initial_state="draft",
            states=("draft", "done"),
            transitions=(Transition("draft", "done", "finish"),),
            terminal_states=("done",),
        )

    def test_find_transition(self):
        transition = self.workflow.find_transition("draft", "finish")
        assert transition.to_state == "done"

    def test_missing_transition(self):
        assert self.workflow.find_transition("done", "finish") is None

    def test_unknown_state_rejected(self):
        with pytest.raises(ValueError):
            Workflow(
                name="bad",
                description="",
                initial_state="draft",
                states=("draft",),
                transitions=(Transition("draft", "gone", "x"),),
            )

    def test_initial_state_must_exist(self):
        with pytest.raises(ValueError):
            Workflow(name="bad", description="", initial_state="x", states=("draft",), transitions=())

    def test_duplicate_action_rejected(self):
        with pytest.raises(ValueError):
            Workflow(
                name="bad",
                description="",
                initial_state="draft",
                states=("draft", "done"),
                transitions=(Transition("draft", "done", "x"), Transition("draft", "draft", "x")),
            )

    def test_terminal_state_must_exist(self):
        with pytest.raises(ValueError):
            Workflow(
                name="bad", description="", initial_state="draft", states=("draft",),
                transitions=(), terminal_states=("closed",),
            )

    def test_actions_from(self):
        assert self.workflow.actions_from("draft") == ("finish",)
        assert self.workflow.actions_from("done") == ()
        assert self.workflow.is_terminal("done")
        assert not self.workflow.is_terminal("draft")


class TestExceptions:

    def test_hierarchy(self):
        assert issubclass(InvalidAmountError, ValidationError)
        assert issubclass(StaleRevisionError, ConflictError)
        assert issubclass(AssessmentFinalizedError, CorpTaxError)

    def test_codes_are_class_level(self):
        assert InvalidAmountError.code == "INVALID_AMOUNT"
        assert StaleRevisionError.code == "STALE_REVISION"

    def test_invalid_amount_carries_field(self):
        exc = InvalidAmountError("tds_credit", Decimal("-1"))
        assert exc.field == "tds_credit"
        assert "tds_credit" in str(exc)
