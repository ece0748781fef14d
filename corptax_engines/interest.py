"""
Interest Calculator -- Sections 234B and 234C.

Responsibility:
    Compute statutory interest on advance tax:

    * 234B (annual shortfall): when advance tax paid is below 90% of the
      assessed tax, ``shortfall = assessed - paid`` attracts 1% per month
      (a part month counts as a full month) from 1 April of the assessment
      year to the date of determination.
    * 234C (deferment): per installment, ``shortfall = max(0, required -
      cumulative_paid)`` attracts 1% per month for 3 months (1 month for the
      last installment).  Q1 and Q2 are treated as met when cumulative paid
      reaches the relief percentages (12% / 36%).

Architecture position:
    Engines -- pure.  Never mutates the schedule; the service writes the
    results back.

Invariants enforced:
    - No 234B interest when paid >= 90% of assessed.  A non-applicable
      result is returned with zero interest and an explanation.
    - 234C total is the sum of the per-quarter (rounded) interest.

Failure modes:
    - InvalidAmountError: negative assessed tax or payments.
"""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass
from datetime import date
from decimal import Decimal

from corptax_engines.schedule import STATUTORY_INSTALLMENTS, InstallmentRule, ScheduleLine, validate_installments
from corptax_engines.tracer import traced_engine
from corptax_kernel.domain.fiscal_year import FinancialYear, months_elapsed
from corptax_kernel.domain.rounding import ZERO, non_negative, round_rupee
from corptax_kernel.exceptions import InvalidAmountError

HUNDRED = Decimal("100")


@dataclass(frozen=True)
class Interest234BResult:
    applicable: bool
    assessed_tax: Decimal
    advance_tax_paid: Decimal
    threshold_amount: Decimal
    shortfall: Decimal
    months: int
    rate_per_month: Decimal
    interest: Decimal
    explanation: str


@dataclass(frozen=True)
class QuarterInterest:
    quarter: int
    required: Decimal
    relief_amount: Decimal | None
    cumulative_paid: Decimal
    shortfall: Decimal
    months: int
    interest: Decimal
    relief_met: bool = False
    assessed: bool = True


@dataclass(frozen=True)
class Interest234CResult:
    quarters: tuple[QuarterInterest, ...]

    @property
    def total_interest(self) -> Decimal:
        return sum((q.interest for q in self.quarters), ZERO)

    def for_quarter(self, quarter: int) -> QuarterInterest | None:
        for q in self.quarters:
            if q.quarter == quarter:
                return q
        return None


class InterestCalculator:
    """234B and 234C interest."""

    def __init__(
        self,
        installments: Sequence[InstallmentRule] = STATUTORY_INSTALLMENTS,
        rate_per_month: Decimal = Decimal("0.01"),
        threshold_234b: Decimal = Decimal("0.90"),
    ):
        validate_installments(installments)
        self._installments = tuple(installments)
        self._rate = rate_per_month
        self._threshold = threshold_234b

    @traced_engine(
        "interest_234b", "1.0",
        fingerprint_fields=("assessed_tax", "advance_tax_paid", "financial_year", "determination_date"),
    )
    def interest_234b(
        self,
        *,
        assessed_tax: Decimal,
        advance_tax_paid: Decimal,
        financial_year: str | FinancialYear,
        determination_date: date,
    ) -> Interest234BResult:
        fy = FinancialYear.parse(financial_year)
        if advance_tax_paid < ZERO:
            raise InvalidAmountError("advance_tax_paid", advance_tax_paid)
        assessed = non_negative(assessed_tax)
        threshold = assessed * self._threshold
        months = months_elapsed(fy.assessment_year.start_date, determination_date)

        if assessed <= ZERO:
            return self._no_234b(assessed, advance_tax_paid, threshold, months,
                                 "No assessed tax; Section 234B does not apply.")
        if advance_tax_paid >= threshold:
            return self._no_234b(
                assessed, advance_tax_paid, threshold, months,
                f"Advance tax paid ({advance_tax_paid}) meets "
                f"{self._threshold:.0%} of assessed tax ({round_rupee(threshold)}); "
                "Section 234B does not apply.",
            )

        shortfall = assessed - advance_tax_paid
        interest = round_rupee(shortfall * self._rate * months)
        return Interest234BResult(
            applicable=True,
            assessed_tax=assessed,
            advance_tax_paid=advance_tax_paid,
            threshold_amount=round_rupee(threshold),
            shortfall=shortfall,
            months=months,
            rate_per_month=self._rate,
            interest=interest,
            explanation=(
                f"Advance tax paid ({advance_tax_paid}) is below "
                f"{self._threshold:.0%} of assessed tax; interest on "
                f"{shortfall} for {months} month(s) from "
                f"{fy.assessment_year.start_date.isoformat()}."
            ),
        )

    def _no_234b(
        self,
        assessed: Decimal,
        paid: Decimal,
        threshold: Decimal,
        months: int,
        explanation: str,
    ) -> Interest234BResult:
        return Interest234BResult(
            applicable=False,
            assessed_tax=assessed,
            advance_tax_paid=paid,
            threshold_amount=round_rupee(threshold),
            shortfall=ZERO,
            months=months,
            rate_per_month=self._rate,
            interest=ZERO,
            explanation=explanation,
        )

    @traced_engine(
        "interest_234c", "1.0",
        fingerprint_fields=("assessed_tax", "cumulative_paid"),
    )
    def interest_234c(
        self,
        *,
        assessed_tax: Decimal,
        cumulative_paid: Sequence[Decimal],
    ) -> Interest234CResult:
        """234C from percentages of assessed tax.

        ``cumulative_paid[i]`` is the advance tax paid up to installment i+1.
        Missing trailing entries repeat the last known value.
        """
        assessed = non_negative(assessed_tax)
        rows = []
        for rule in self._installments:
            rows.append((
                rule,
                assessed * rule.cumulative_percentage / HUNDRED,
                None if rule.relief_percentage is None
                else assessed * rule.relief_percentage / HUNDRED,
                True,
            ))
        return self._compute(rows, cumulative_paid)

    @traced_engine(
        "interest_234c_schedule", "1.0",
        fingerprint_fields=("lines", "cumulative_paid", "as_of"),
    )
    def interest_234c_for_schedule(
        self,
        *,
        lines: Sequence[ScheduleLine],
        cumulative_paid: Sequence[Decimal],
        as_of: date | None = None,
    ) -> Interest234CResult:
        """234C against a generated schedule.

        The relief threshold keeps the statutory proportion of each line's
        cumulative due (12/15 for Q1, 36/45 for Q2).  With ``as_of`` only
        installments whose due date has passed attract interest.
        """
        rows = []
        for line in lines:
            relief = None
            if line.relief_percentage is not None and line.cumulative_percentage > ZERO:
                relief = line.cumulative_tax_due * line.relief_percentage / line.cumulative_percentage
            rule = InstallmentRule(
                quarter=line.quarter,
                cumulative_percentage=line.cumulative_percentage,
                due_month=line.due_date.month,
                due_day=line.due_date.day,
                relief_percentage=line.relief_percentage,
                interest_months=line.interest_months,
            )
            assessed = as_of is None or line.due_date < as_of
            rows.append((rule, line.cumulative_tax_due, relief, assessed))
        return self._compute(rows, cumulative_paid)

    def _compute(self, rows, cumulative_paid: Sequence[Decimal]) -> Interest234CResult:
        paid_list = list(cumulative_paid)
        for amount in paid_list:
            if amount < ZERO:
                raise InvalidAmountError("cumulative_paid", amount)

        quarters: list[QuarterInterest] = []
        last_paid = ZERO
        for idx, (rule, required, relief, assessed) in enumerate(rows):
            paid = paid_list[idx] if idx < len(paid_list) else last_paid
            last_paid = paid
            relief_met = relief is not None and paid >= relief
            shortfall = ZERO if relief_met else non_negative(required - paid)
            interest = ZERO
            if assessed:
                interest = round_rupee(shortfall * self._rate * rule.interest_months)
            quarters.append(QuarterInterest(
                quarter=rule.quarter,
                required=round_rupee(required),
                relief_amount=None if relief is None else round_rupee(relief),
                cumulative_paid=paid,
                shortfall=round_rupee(shortfall),
                months=rule.interest_months,
                interest=interest,
                relief_met=relief_met,
                assessed=assessed,
            ))
        return Interest234CResult(quarters=tuple(quarters))
