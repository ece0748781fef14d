"""
Tests for Section 234B / 234C interest.

Covers:
- 234B: shortfall below the 90% threshold, part months, non-applicability
- 234C: per-installment shortfall, Q1/Q2 relief, last installment months
- 234C against a generated schedule with as-of gating and proportional relief
"""

from datetime import date
from decimal import Decimal

import pytest

from corptax_engines.interest import InterestCalculator
from corptax_engines.schedule import ScheduleGenerator
from corptax_kernel.exceptions import InvalidAmountError

D = Decimal


class TestInterest234B:

    def setup_method(self):
        self.calculator = InterestCalculator()

    def test_shortfall_for_four_months(self):
        """1 April to 10 July of the assessment year counts four months."""
        result = self.calculator.interest_234b(
            assessed_tax=D("1000000"),
            advance_tax_paid=D("800000"),
            financial_year="2024-25",
            determination_date=date(2025, 7, 10),
        )
        assert result.applicable is True
        assert result.shortfall == D("200000")
        assert result.months == 4
        assert result.interest == D("8000")
        assert result.threshold_amount == D("900000")

    def test_threshold_met(self):
        result = self.calculator.interest_234b(
            assessed_tax=D("1000000"),
            advance_tax_paid=D("900000"),
            financial_year="2024-25",
            determination_date=date(2025, 7, 10),
        )
        assert result.applicable is False
        assert result.interest == D("0")
        assert "does not apply" in result.explanation

    def test_no_assessed_tax(self):
        result = self.calculator.interest_234b(
            assessed_tax=D("0"),
            advance_tax_paid=D("0"),
            financial_year="2024-25",
            determination_date=date(2025, 7, 10),
        )
        assert result.applicable is False

    def test_determined_before_assessment_year(self):
        result = self.calculator.interest_234b(
            assessed_tax=D("1000000"),
            advance_tax_paid=D("0"),
            financial_year="2024-25",
            determination_date=date(2025, 3, 1),
        )
        assert result.applicable is True
        assert result.months == 0
        assert result.interest == D("0")

    def test_negative_payment_rejected(self):
        with pytest.raises(InvalidAmountError):
            self.calculator.interest_234b(
                assessed_tax=D("1000"),
                advance_tax_paid=D("-1"),
                financial_year="2024-25",
                determination_date=date(2025, 7, 10),
            )


class TestInterest234C:

    def setup_method(self):
        self.calculator = InterestCalculator()

    def test_first_installment_short(self):
        """Q1 requires 150,000; 100,000 paid is below the 12% relief."""
        result = self.calculator.interest_234c(
            assessed_tax=D("1000000"),
            cumulative_paid=[D("100000"), D("450000"), D("750000"), D("1000000")],
        )
        q1 = result.for_quarter(1)
        assert q1.required == D("150000")
        assert q1.relief_amount == D("120000")
        assert q1.relief_met is False
        assert q1.shortfall == D("50000")
        assert q1.interest == D("1500")
        assert result.total_interest == D("1500")

    def test_relief_met_in_first_installment(self):
        result = self.calculator.interest_234c(
            assessed_tax=D("1000000"),
            cumulative_paid=[D("125000"), D("450000"), D("750000"), D("1000000")],
        )
        assert result.for_quarter(1).relief_met is True
        assert result.total_interest == D("0")

    def test_last_installment_one_month(self):
        result = self.calculator.interest_234c(
            assessed_tax=D("1000000"),
            cumulative_paid=[D("150000"), D("450000"), D("750000"), D("900000")],
        )
        q4 = result.for_quarter(4)
        assert q4.months == 1
        assert q4.interest == D("1000")
        assert result.total_interest == D("1000")

    def test_third_installment_has_no_relief(self):
        result = self.calculator.interest_234c(
            assessed_tax=D("1000000"),
            cumulative_paid=[D("150000"), D("450000"), D("700000"), D("1000000")],
        )
        q3 = result.for_quarter(3)
        assert q3.relief_amount is None
        assert q3.interest == D("1500")

    def test_missing_entries_repeat_last_paid(self):
        result = self.calculator.interest_234c(
            assessed_tax=D("1000000"),
            cumulative_paid=[D("150000")],
        )
        assert [q.cumulative_paid for q in result.quarters] == [D("150000")] * 4
        assert result.for_quarter(2).shortfall == D("300000")

    def test_negative_payment_rejected(self):
        with pytest.raises(InvalidAmountError):
            self.calculator.interest_234c(assessed_tax=D("1000"), cumulative_paid=[D("-5")])

    def test_unknown_quarter(self):
        result = self.calculator.interest_234c(assessed_tax=D("1000"), cumulative_paid=[])
        assert result.for_quarter(7) is None


class TestInterest234CForSchedule:

    def setup_method(self):
        self.calculator = InterestCalculator()
        self.generator = ScheduleGenerator()

    def test_only_past_due_installments_assessed(self):
        lines = self.generator.generate(financial_year="2024-25", total_tax_liability=D("1000000"))
        result = self.calculator.interest_234c_for_schedule(
            lines=lines,
            cumulative_paid=[D("0")] * 4,
            as_of=date(2024, 10, 1),
        )
        assert [q.assessed for q in result.quarters] == [True, True, False, False]
        assert result.for_quarter(1).interest == D("4500")
        assert result.for_quarter(2).interest == D("13500")
        assert result.for_quarter(3).interest == D("0")
        assert result.total_interest == D("18000")

    def test_due_date_itself_not_yet_assessed(self):
        lines = self.generator.generate(financial_year="2024-25", total_tax_liability=D("1000000"))
        result = self.calculator.interest_234c_for_schedule(
            lines=lines, cumulative_paid=[D("0")] * 4, as_of=date(2024, 6, 15),
        )
        assert result.total_interest == D("0")

    def test_relief_proportional_to_net_schedule(self):
        """A net schedule of 900,000 keeps Q1 relief at 12/15 of 135,000."""
        lines = self.generator.generate(
            financial_year="2024-25",
            total_tax_liability=D("1000000"),
            credits_known_upfront=D("100000"),
        )
        result = self.calculator.interest_234c_for_schedule(
            lines=lines, cumulative_paid=[D("110000"), D("405000"), D("675000"), D("900000")],
        )
        q1 = result.for_quarter(1)
        assert q1.relief_amount == D("108000")
        assert q1.relief_met is True
        assert result.total_interest == D("0")
