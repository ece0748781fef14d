"""
Schedule Generator -- quarterly advance tax installments (Section 211).

Responsibility:
    Build the cumulative-due schedule from the year's liability and the
    credits known up front, following the installment table (statutory
    default: 15 / 45 / 75 / 100 percent by 15 Jun, 15 Sep, 15 Dec, 15 Mar).

Architecture position:
    Engines -- pure.  The service persists the lines and regenerates them
    wholesale whenever the assessment is recomputed.

Up-front credit policy:
    NET_BEFORE_ALLOCATION   cumulative_due[q] = (liability - upfront) x pct[q]
    REDUCE_FINAL_QUARTER    installments are computed on the full liability
                            and up-front credits reduce the last installment,
                            spilling backwards when it is exhausted.

    Credits discovered later (``LateCredit``) reduce the installment of the
    quarter they were recorded in, spilling forward; earlier quarters are
    never touched.

Invariants enforced:
    - Cumulative percentages are non-decreasing and end at 100.
    - Every installment is >= 0 and cumulative due is non-decreasing.
    - Sum of installments == round(liability - upfront) - late credits applied.
    - Rounding is applied to cumulative amounts; installments are their
      differences, so the sum never drifts.

Failure modes:
    - ValueError: malformed installment table (configuration error).
    - ScheduleInvariantError: a computed schedule breaks an invariant.
      Always a defect.
"""

from __future__ import annotations

from collections.abc import Iterable, Sequence
from dataclasses import dataclass
from datetime import date
from decimal import Decimal
from enum import Enum

from corptax_engines.tracer import traced_engine
from corptax_kernel.domain.fiscal_year import FinancialYear
from corptax_kernel.domain.rounding import ZERO, non_negative, round_rupee
from corptax_kernel.exceptions import InvalidAmountError, InvalidQuarterError, ScheduleInvariantError
from corptax_kernel.logging_config import get_logger

logger = get_logger("engines.schedule")

HUNDRED = Decimal("100")


@dataclass(frozen=True)
class InstallmentRule:
    """One row of the installment table."""

    quarter: int
    cumulative_percentage: Decimal
    due_month: int
    due_day: int
    relief_percentage: Decimal | None = None
    interest_months: int = 3

    def due_date(self, financial_year: FinancialYear) -> date:
        year = financial_year.start_year if self.due_month >= 4 else financial_year.start_year + 1
        return date(year, self.due_month, self.due_day)


STATUTORY_INSTALLMENTS: tuple[InstallmentRule, ...] = (
    InstallmentRule(1, Decimal("15"), 6, 15, relief_percentage=Decimal("12"), interest_months=3),
    InstallmentRule(2, Decimal("45"), 9, 15, relief_percentage=Decimal("36"), interest_months=3),
    InstallmentRule(3, Decimal("75"), 12, 15, interest_months=3),
    InstallmentRule(4, Decimal("100"), 3, 15, interest_months=1),
)


def validate_installments(installments: Sequence[InstallmentRule]) -> None:
    """Raise ValueError for an unusable installment table."""
    if not installments:
        raise ValueError("installment table is empty")
    expected = list(range(1, len(installments) + 1))
    if [rule.quarter for rule in installments] != expected:
        raise ValueError(f"installment quarters must be {expected}")
    previous = ZERO
    for rule in installments:
        if rule.cumulative_percentage < previous:
            raise ValueError(
                f"cumulative percentage decreases at quarter {rule.quarter}"
            )
        if rule.relief_percentage is not None and not (
            ZERO <= rule.relief_percentage <= rule.cumulative_percentage
        ):
            raise ValueError(f"relief percentage out of range at quarter {rule.quarter}")
        if rule.interest_months < 0:
            raise ValueError(f"interest months negative at quarter {rule.quarter}")
        previous = rule.cumulative_percentage
    if installments[-1].cumulative_percentage != HUNDRED:
        raise ValueError("final cumulative percentage must be 100")


class UpfrontCreditPolicy(str, Enum):
    NET_BEFORE_ALLOCATION = "net_before_allocation"
    REDUCE_FINAL_QUARTER = "reduce_final_quarter"


@dataclass(frozen=True)
class LateCredit:
    """A credit (e.g. a TDS certificate) recorded during the year."""

    quarter: int
    amount: Decimal
    recorded_on: date | None = None


@dataclass(frozen=True)
class ScheduleLine:
    quarter: int
    due_date: date
    cumulative_percentage: Decimal
    cumulative_tax_due: Decimal
    tax_payable_this_quarter: Decimal
    late_credit_applied: Decimal = ZERO
    relief_percentage: Decimal | None = None
    interest_months: int = 3


def quarter_for_date(
    installments: Sequence[InstallmentRule],
    financial_year: FinancialYear,
    day: date,
) -> int:
    """Installment a payment made on ``day`` counts towards.

    A payment belongs to the first installment whose due date is on or after
    the payment date; anything after the last due date belongs to the last.
    """
    for rule in installments:
        if day <= rule.due_date(financial_year):
            return rule.quarter
    return installments[-1].quarter


class ScheduleGenerator:
    """Generates installment lines from a liability."""

    def __init__(
        self,
        installments: Sequence[InstallmentRule] = STATUTORY_INSTALLMENTS,
        policy: UpfrontCreditPolicy = UpfrontCreditPolicy.NET_BEFORE_ALLOCATION,
    ):
        validate_installments(installments)
        self._installments = tuple(installments)
        self._policy = policy

    @property
    def installments(self) -> tuple[InstallmentRule, ...]:
        return self._installments

    def quarter_for_date(self, financial_year: str | FinancialYear, day: date) -> int:
        return quarter_for_date(self._installments, FinancialYear.parse(financial_year), day)

    @traced_engine(
        "schedule", "1.0",
        fingerprint_fields=(
            "financial_year", "total_tax_liability", "credits_known_upfront",
            "late_credits", "policy",
        ),
    )
    def generate(
        self,
        *,
        financial_year: str | FinancialYear,
        total_tax_liability: Decimal,
        credits_known_upfront: Decimal = ZERO,
        late_credits: Iterable[LateCredit] = (),
        policy: UpfrontCreditPolicy | None = None,
    ) -> tuple[ScheduleLine, ...]:
        fy = FinancialYear.parse(financial_year)
        policy = policy or self._policy
        if credits_known_upfront < ZERO:
            raise InvalidAmountError("credits_known_upfront", credits_known_upfront)

        liability = round_rupee(non_negative(total_tax_liability))
        upfront = round_rupee(credits_known_upfront)
        count = len(self._installments)

        if policy == UpfrontCreditPolicy.NET_BEFORE_ALLOCATION:
            base = non_negative(liability - upfront)
            installments = self._split(base)
        else:
            installments = self._split(liability)
            remaining = min(upfront, liability)
            for idx in reversed(range(count)):
                take = min(installments[idx], remaining)
                installments[idx] -= take
                remaining -= take

        applied = [ZERO] * count
        for credit in sorted(late_credits, key=lambda c: c.quarter):
            if not 1 <= credit.quarter <= count:
                raise InvalidQuarterError(credit.quarter)
            if credit.amount < ZERO:
                raise InvalidAmountError("late_credit", credit.amount)
            remaining = round_rupee(credit.amount)
            for idx in range(credit.quarter - 1, count):
                take = min(installments[idx], remaining)
                installments[idx] -= take
                applied[idx] += take
                remaining -= take

        lines: list[ScheduleLine] = []
        cumulative = ZERO
        for idx, rule in enumerate(self._installments):
            cumulative += installments[idx]
            lines.append(ScheduleLine(
                quarter=rule.quarter,
                due_date=rule.due_date(fy),
                cumulative_percentage=rule.cumulative_percentage,
                cumulative_tax_due=cumulative,
                tax_payable_this_quarter=installments[idx],
                late_credit_applied=applied[idx],
                relief_percentage=rule.relief_percentage,
                interest_months=rule.interest_months,
            ))

        expected_total = non_negative(liability - upfront) - sum(applied, ZERO)
        self._check_invariants(lines, expected_total)
        logger.debug(
            "schedule_generated",
            extra={
                "financial_year": fy.label,
                "policy": policy.value,
                "liability": str(liability),
                "upfront": str(upfront),
                "late_credit_applied": str(sum(applied, ZERO)),
            },
        )
        return tuple(lines)

    def _split(self, amount: Decimal) -> list[Decimal]:
        """Installments of ``amount`` from rounded cumulative amounts."""
        out: list[Decimal] = []
        previous = ZERO
        for rule in self._installments:
            cumulative = round_rupee(amount * rule.cumulative_percentage / HUNDRED)
            out.append(cumulative - previous)
            previous = cumulative
        return out

    @staticmethod
    def _check_invariants(lines: Sequence[ScheduleLine], expected_total: Decimal) -> None:
        previous_pct = ZERO
        previous_cum = ZERO
        for line in lines:
            if line.tax_payable_this_quarter < ZERO:
                raise ScheduleInvariantError(
                    "non_negative_installment",
                    f"quarter {line.quarter} installment {line.tax_payable_this_quarter}",
                )
            if line.cumulative_percentage < previous_pct or line.cumulative_tax_due < previous_cum:
                raise ScheduleInvariantError(
                    "non_decreasing_cumulative", f"quarter {line.quarter} decreases",
                )
            previous_pct = line.cumulative_percentage
            previous_cum = line.cumulative_tax_due
        if lines[-1].cumulative_percentage != HUNDRED:
            raise ScheduleInvariantError("final_percentage", "last quarter is not 100%")
        total = sum((line.tax_payable_this_quarter for line in lines), ZERO)
        if total != expected_total:
            raise ScheduleInvariantError(
                "installment_sum", f"installments sum to {total}, expected {expected_total}",
            )
