"""
Reconciliation Builder -- book profit to taxable income.

Responsibility:
    Turn year-to-date actuals, projections and the enumerated book-to-tax
    adjustments into taxable income:

        taxable_income = book_profit + total_additions - total_deductions

    clamped at zero for liability purposes while the raw (possibly
    negative) figure is kept for disclosure.

Architecture position:
    Engines -- pure calculation, no side effects.

Invariants enforced:
    - Every addition and deduction category is retained individually on
      the result, not only as an aggregate.
    - Category amounts are non-negative.
    - ``taxable_income == max(0, raw_taxable_income)``.

Failure modes:
    - InvalidAmountError: a negative category amount.
"""

from __future__ import annotations

from dataclasses import dataclass, fields
from datetime import date
from decimal import Decimal
from enum import Enum

from corptax_engines.tracer import traced_engine
from corptax_kernel.domain.fiscal_year import FinancialYear, months_elapsed
from corptax_kernel.domain.rounding import ZERO, non_negative, round_rupee
from corptax_kernel.exceptions import InvalidAmountError


class AdditionCategory(str, Enum):
    """Items added back to book profit."""

    BOOK_DEPRECIATION = "book_depreciation"
    DISALLOWED_40A3 = "disallowed_40a3"
    DISALLOWED_40A7 = "disallowed_40a7"
    DISALLOWED_43B = "disallowed_43b"
    OTHER_DISALLOWANCES = "other_disallowances"


class DeductionCategory(str, Enum):
    """Items deducted from book profit."""

    IT_DEPRECIATION = "it_depreciation"
    DEDUCTIONS_80C = "deductions_80c"
    DEDUCTIONS_80D = "deductions_80d"
    OTHER_DEDUCTIONS = "other_deductions"


ADDITION_FIELDS = tuple(c.value for c in AdditionCategory)
DEDUCTION_FIELDS = tuple(c.value for c in DeductionCategory)


@dataclass(frozen=True)
class ReconciliationInput:
    """Inputs to the book-to-tax reconciliation.

    ``book_profit`` overrides the profit derived from actuals and
    projections when given.
    """

    ytd_revenue: Decimal = ZERO
    ytd_expenses: Decimal = ZERO
    projected_additional_revenue: Decimal = ZERO
    projected_additional_expenses: Decimal = ZERO
    projected_depreciation: Decimal = ZERO
    projected_other_income: Decimal = ZERO
    book_profit: Decimal | None = None
    book_depreciation: Decimal = ZERO
    disallowed_40a3: Decimal = ZERO
    disallowed_40a7: Decimal = ZERO
    disallowed_43b: Decimal = ZERO
    other_disallowances: Decimal = ZERO
    it_depreciation: Decimal = ZERO
    deductions_80c: Decimal = ZERO
    deductions_80d: Decimal = ZERO
    other_deductions: Decimal = ZERO

    @property
    def projected_revenue(self) -> Decimal:
        return self.ytd_revenue + self.projected_additional_revenue + self.projected_other_income

    @property
    def projected_expenses(self) -> Decimal:
        return self.ytd_expenses + self.projected_additional_expenses + self.projected_depreciation

    @property
    def projected_profit_before_tax(self) -> Decimal:
        return self.projected_revenue - self.projected_expenses

    def as_dict(self) -> dict[str, str | None]:
        out: dict[str, str | None] = {}
        for f in fields(self):
            value = getattr(self, f.name)
            out[f.name] = None if value is None else str(value)
        return out

    @classmethod
    def from_dict(cls, data: dict) -> ReconciliationInput:
        kwargs = {}
        for f in fields(cls):
            if f.name not in data:
                continue
            value = data[f.name]
            kwargs[f.name] = None if value is None else Decimal(str(value))
        return cls(**kwargs)


@dataclass(frozen=True)
class ReconciliationResult:
    """Reconciled taxable income with every category retained."""

    inputs: ReconciliationInput
    projected_revenue: Decimal
    projected_expenses: Decimal
    projected_profit_before_tax: Decimal
    book_profit: Decimal
    additions: dict[str, Decimal]
    deductions: dict[str, Decimal]
    total_additions: Decimal
    total_deductions: Decimal
    raw_taxable_income: Decimal
    taxable_income: Decimal

    @property
    def is_loss(self) -> bool:
        return self.raw_taxable_income < ZERO


class ReconciliationBuilder:
    """Builds taxable income from book profit and adjustments."""

    @traced_engine(
        "reconciliation", "1.0",
        fingerprint_fields=("reconciliation_input",),
    )
    def build(self, *, reconciliation_input: ReconciliationInput) -> ReconciliationResult:
        data = reconciliation_input
        for name in ADDITION_FIELDS + DEDUCTION_FIELDS:
            amount = getattr(data, name)
            if amount < ZERO:
                raise InvalidAmountError(name, amount)

        additions = {name: getattr(data, name) for name in ADDITION_FIELDS}
        deductions = {name: getattr(data, name) for name in DEDUCTION_FIELDS}
        total_additions = sum(additions.values(), ZERO)
        total_deductions = sum(deductions.values(), ZERO)

        pbt = data.projected_profit_before_tax
        book_profit = data.book_profit if data.book_profit is not None else pbt
        raw = book_profit + total_additions - total_deductions

        return ReconciliationResult(
            inputs=data,
            projected_revenue=data.projected_revenue,
            projected_expenses=data.projected_expenses,
            projected_profit_before_tax=pbt,
            book_profit=book_profit,
            additions=additions,
            deductions=deductions,
            total_additions=total_additions,
            total_deductions=total_deductions,
            raw_taxable_income=raw,
            taxable_income=non_negative(raw),
        )


@dataclass(frozen=True)
class ProjectionSuggestion:
    """Trend projection of the rest of the year from YTD averages."""

    months_covered: int
    remaining_months: int
    average_monthly_revenue: Decimal
    average_monthly_expenses: Decimal
    projected_additional_revenue: Decimal
    projected_additional_expenses: Decimal


def suggest_projection(
    ytd_revenue: Decimal,
    ytd_expenses: Decimal,
    ytd_through_date: date,
    financial_year: str | FinancialYear,
) -> ProjectionSuggestion:
    """Project remaining-month revenue and expenses from monthly averages."""
    fy = FinancialYear.parse(financial_year)
    months = min(12, months_elapsed(fy.start_date, ytd_through_date))
    if months == 0:
        return ProjectionSuggestion(0, 12, ZERO, ZERO, ZERO, ZERO)
    remaining = 12 - months
    avg_rev = ytd_revenue / months
    avg_exp = ytd_expenses / months
    return ProjectionSuggestion(
        months_covered=months,
        remaining_months=remaining,
        average_monthly_revenue=round_rupee(avg_rev),
        average_monthly_expenses=round_rupee(avg_exp),
        projected_additional_revenue=round_rupee(avg_rev * remaining),
        projected_additional_expenses=round_rupee(avg_exp * remaining),
    )
