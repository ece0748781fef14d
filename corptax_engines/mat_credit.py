"""
MAT credit ledger arithmetic -- carry-forward, expiry and FIFO utilization.

Responsibility:
    Pure functions over a snapshot of MAT credit lots (one per company and
    financial year in which MAT exceeded normal tax).  Decides which lots
    are usable in a given year and plans utilization oldest-first so the
    lots closest to expiry are consumed before they lapse.

Architecture position:
    Engines -- pure.  The service persists lots and utilization records;
    this module never writes.

Invariants enforced:
    - A lot's balance is never negative; utilized <= created.
    - A lot created in year X expires after X + carry_forward_years and is
      excluded from available credit from the following year onward.
    - Credit is usable only in years after the year that created it.
    - A plan never takes more than a lot's remaining balance, and the plan
      total never exceeds the requested amount.

Failure modes:
    - MatLedgerInvariantError: a lot snapshot with utilized > created, or
      negative amounts.  Always a defect in the caller's data.
"""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass
from decimal import Decimal
from typing import Any

from corptax_kernel.domain.fiscal_year import FinancialYear
from corptax_kernel.domain.rounding import ZERO
from corptax_kernel.exceptions import MatLedgerInvariantError

DEFAULT_CARRY_FORWARD_YEARS = 15


def expiry_year(
    financial_year: FinancialYear,
    carry_forward_years: int = DEFAULT_CARRY_FORWARD_YEARS,
) -> FinancialYear:
    """Last financial year in which credit created in ``financial_year`` is usable."""
    return financial_year.plus_years(carry_forward_years)


@dataclass(frozen=True)
class MatCreditLot:
    """Snapshot of one MAT credit ledger entry."""

    lot_id: Any
    financial_year: FinancialYear
    credit_created: Decimal
    credit_utilized: Decimal = ZERO
    expires_after: FinancialYear | None = None

    def __post_init__(self) -> None:
        if self.credit_created < ZERO or self.credit_utilized < ZERO:
            raise MatLedgerInvariantError(
                "non_negative", f"lot {self.lot_id} has negative amounts",
            )
        if self.credit_utilized > self.credit_created:
            raise MatLedgerInvariantError(
                "utilized_le_created",
                f"lot {self.lot_id} utilized {self.credit_utilized} "
                f"exceeds created {self.credit_created}",
            )

    @property
    def balance(self) -> Decimal:
        return self.credit_created - self.credit_utilized

    def expiry(self, carry_forward_years: int = DEFAULT_CARRY_FORWARD_YEARS) -> FinancialYear:
        if self.expires_after is not None:
            return self.expires_after
        return expiry_year(self.financial_year, carry_forward_years)


def is_expired(
    lot: MatCreditLot,
    as_of: FinancialYear,
    carry_forward_years: int = DEFAULT_CARRY_FORWARD_YEARS,
) -> bool:
    return as_of > lot.expiry(carry_forward_years)


def usable_lots(
    lots: Iterable[MatCreditLot],
    as_of: FinancialYear,
    carry_forward_years: int = DEFAULT_CARRY_FORWARD_YEARS,
) -> tuple[MatCreditLot, ...]:
    """Non-expired lots with a balance, created before ``as_of``, oldest first."""
    eligible = [
        lot for lot in lots
        if lot.financial_year < as_of
        and lot.balance > ZERO
        and not is_expired(lot, as_of, carry_forward_years)
    ]
    return tuple(sorted(eligible, key=lambda lot: (lot.financial_year, str(lot.lot_id))))


def available_credit(
    lots: Iterable[MatCreditLot],
    as_of: FinancialYear,
    carry_forward_years: int = DEFAULT_CARRY_FORWARD_YEARS,
) -> Decimal:
    return sum((lot.balance for lot in usable_lots(lots, as_of, carry_forward_years)), ZERO)


def expiring_within(
    lots: Iterable[MatCreditLot],
    as_of: FinancialYear,
    years: int,
    carry_forward_years: int = DEFAULT_CARRY_FORWARD_YEARS,
) -> tuple[MatCreditLot, ...]:
    """Usable lots whose last usable year is at most ``years`` after ``as_of``."""
    horizon = as_of.plus_years(years)
    return tuple(
        lot for lot in usable_lots(lots, as_of, carry_forward_years)
        if lot.expiry(carry_forward_years) <= horizon
    )


@dataclass(frozen=True)
class MatUtilizationLine:
    lot_id: Any
    financial_year: FinancialYear
    amount: Decimal
    balance_after: Decimal


@dataclass(frozen=True)
class MatUtilizationPlan:
    lines: tuple[MatUtilizationLine, ...]

    @property
    def total(self) -> Decimal:
        return sum((line.amount for line in self.lines), ZERO)


def plan_fifo_utilization(
    lots: Iterable[MatCreditLot],
    amount: Decimal,
    as_of: FinancialYear,
    carry_forward_years: int = DEFAULT_CARRY_FORWARD_YEARS,
) -> MatUtilizationPlan:
    """Take ``amount`` from usable lots, oldest creation year first."""
    remaining = amount if amount > ZERO else ZERO
    lines: list[MatUtilizationLine] = []
    for lot in usable_lots(lots, as_of, carry_forward_years):
        if remaining <= ZERO:
            break
        take = min(lot.balance, remaining)
        lines.append(MatUtilizationLine(
            lot_id=lot.lot_id,
            financial_year=lot.financial_year,
            amount=take,
            balance_after=lot.balance - take,
        ))
        remaining -= take
    return MatUtilizationPlan(lines=tuple(lines))
