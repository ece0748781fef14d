"""
Revision variance and revision advisory.

Responsibility:
    * ``RevisionSnapshot`` / ``compute_variance``: the computed state of an
      assessment before and after a revision and the field-wise difference.
    * ``should_recommend_revision``: read-only advisory that flags an
      assessment whose actual profit to date has drifted from the projection
      by more than a threshold, or that has not been revised in the current
      quarter while an installment falls due within the advisory window.

Architecture position:
    Engines -- pure.  The service builds snapshots from the persisted
    assessment and records them on an immutable revision row.

Invariants enforced:
    - ``variance == revised - previous`` for every snapshot field.
    - The advisory never changes anything.
"""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import asdict, dataclass, fields
from datetime import date
from decimal import Decimal

from corptax_engines.schedule import STATUTORY_INSTALLMENTS, InstallmentRule
from corptax_kernel.domain.fiscal_year import FinancialYear, months_elapsed
from corptax_kernel.domain.rounding import ZERO, round_rupee

HUNDRED = Decimal("100")


@dataclass(frozen=True)
class RevisionSnapshot:
    """Computed values of an assessment at one point in time.

    ``tax_payable_after_credits`` is the liability after MAT credit, TDS and
    TCS; advance tax payments are excluded so recording a payment never
    moves a snapshot.
    """

    projected_revenue: Decimal = ZERO
    projected_expenses: Decimal = ZERO
    book_profit: Decimal = ZERO
    taxable_income: Decimal = ZERO
    total_tax_liability: Decimal = ZERO
    total_mat: Decimal = ZERO
    tax_payable_after_mat: Decimal = ZERO
    tax_payable_after_credits: Decimal = ZERO

    def as_dict(self) -> dict[str, str]:
        return {k: str(v) for k, v in asdict(self).items()}

    @classmethod
    def from_dict(cls, data: dict) -> RevisionSnapshot:
        return cls(**{
            f.name: Decimal(str(data[f.name])) for f in fields(cls) if f.name in data
        })


def compute_variance(previous: RevisionSnapshot, revised: RevisionSnapshot) -> RevisionSnapshot:
    return RevisionSnapshot(**{
        f.name: getattr(revised, f.name) - getattr(previous, f.name) for f in fields(RevisionSnapshot)
    })


@dataclass(frozen=True)
class RevisionAdvice:
    recommended: bool
    reasons: tuple[str, ...]
    current_quarter: int
    months_elapsed: int
    actual_profit_to_date: Decimal
    projected_profit_to_date: Decimal
    variance: Decimal
    variance_percentage: Decimal
    next_due_date: date | None
    days_until_due: int | None
    revised_this_quarter: bool

    @property
    def reason(self) -> str | None:
        return " ".join(self.reasons) if self.reasons else None


def should_recommend_revision(
    *,
    financial_year: str | FinancialYear,
    as_of: date,
    ytd_revenue: Decimal,
    ytd_expenses: Decimal,
    projected_profit_before_tax: Decimal,
    last_revision_quarter: int | None = None,
    threshold_percentage: Decimal = Decimal("10"),
    due_window_days: int = 15,
    installments: Sequence[InstallmentRule] = STATUTORY_INSTALLMENTS,
) -> RevisionAdvice:
    """Advise whether the assessment's projection should be revised."""
    fy = FinancialYear.parse(financial_year)
    quarter = fy.quarter_of(as_of)
    months = min(12, months_elapsed(fy.start_date, as_of))

    actual = ytd_revenue - ytd_expenses
    projected = projected_profit_before_tax * months / 12
    variance = actual - projected
    pct = ZERO
    if projected != ZERO:
        pct = (variance / abs(projected) * HUNDRED).quantize(Decimal("0.01"))

    next_due: date | None = None
    for rule in installments:
        due = rule.due_date(fy)
        if due >= as_of:
            next_due = due
            break
    days = (next_due - as_of).days if next_due is not None else None
    revised_this_quarter = last_revision_quarter is not None and last_revision_quarter >= quarter

    reasons: list[str] = []
    if abs(pct) > threshold_percentage:
        direction = "above" if variance > ZERO else "below"
        reasons.append(
            f"Actual profit to date is {abs(pct)}% {direction} the projection "
            f"(threshold {threshold_percentage}%)."
        )
    if days is not None and days <= due_window_days and not revised_this_quarter and quarter > 1:
        reasons.append(
            f"Installment due on {next_due.isoformat()} in {days} day(s) and the "
            f"estimate has not been revised in quarter {quarter}."
        )

    return RevisionAdvice(
        recommended=bool(reasons),
        reasons=tuple(reasons),
        current_quarter=quarter,
        months_elapsed=months,
        actual_profit_to_date=round_rupee(actual),
        projected_profit_to_date=round_rupee(projected),
        variance=round_rupee(variance),
        variance_percentage=pct,
        next_due_date=next_due,
        days_until_due=days,
        revised_this_quarter=revised_this_quarter,
    )
