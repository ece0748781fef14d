"""
Payment allocation across installments.

Responsibility:
    Decide which installment(s) a payment counts towards.

    * With a quarter hint the whole amount goes to that quarter, even past
      its outstanding amount (an explicit overpaid state, never an error).
    * Without a hint the amount goes FIFO to the earliest quarter with a
      positive outstanding amount, spilling forward; whatever remains after
      the last quarter lands on the last quarter as overpayment.

    ``reattach_by_date`` replays every payment of an assessment, in payment
    date order, against a freshly generated schedule.  Payments that carry
    a hint keep it; the rest are allocated FIFO as above.

Architecture position:
    Engines -- pure.  Allocation is an ordered reduction over the
    installment positions; nothing is mutated in place.

Invariants enforced:
    - Allocation lines always sum to the payment amount.
    - Payment amounts are positive; hints are valid quarters.
"""

from __future__ import annotations

from collections.abc import Iterable, Sequence
from dataclasses import dataclass, replace
from datetime import date
from decimal import Decimal
from typing import Any

from corptax_engines.schedule import ScheduleLine
from corptax_kernel.domain.rounding import ZERO, non_negative
from corptax_kernel.exceptions import InvalidAmountError, InvalidQuarterError


@dataclass(frozen=True)
class QuarterPosition:
    quarter: int
    installment: Decimal
    allocated: Decimal = ZERO

    @property
    def outstanding(self) -> Decimal:
        return non_negative(self.installment - self.allocated)


@dataclass(frozen=True)
class AllocationLine:
    quarter: int
    amount: Decimal


@dataclass(frozen=True)
class PaymentAllocation:
    amount: Decimal
    lines: tuple[AllocationLine, ...]
    overpaid: Decimal = ZERO
    quarter_hint: int | None = None

    def amount_for(self, quarter: int) -> Decimal:
        return sum((line.amount for line in self.lines if line.quarter == quarter), ZERO)


@dataclass(frozen=True)
class PaymentToAllocate:
    payment_id: Any
    payment_date: date
    amount: Decimal
    quarter_hint: int | None = None
    sequence: int = 0


def positions_from_schedule(lines: Sequence[ScheduleLine]) -> tuple[QuarterPosition, ...]:
    return tuple(
        QuarterPosition(quarter=line.quarter, installment=line.tax_payable_this_quarter)
        for line in lines
    )


def apply_allocation(
    positions: Sequence[QuarterPosition], allocation: PaymentAllocation,
) -> tuple[QuarterPosition, ...]:
    return tuple(
        replace(p, allocated=p.allocated + allocation.amount_for(p.quarter))
        for p in positions
    )


class PaymentAllocator:
    """Allocates payments to installment positions."""

    def allocate(
        self,
        *,
        amount: Decimal,
        positions: Sequence[QuarterPosition],
        quarter_hint: int | None = None,
    ) -> PaymentAllocation:
        if amount <= ZERO:
            raise InvalidAmountError("amount", amount, expected="> 0")
        if not positions:
            raise InvalidQuarterError(quarter_hint)
        ordered = sorted(positions, key=lambda p: p.quarter)

        if quarter_hint is not None:
            target = next((p for p in ordered if p.quarter == quarter_hint), None)
            if target is None:
                raise InvalidQuarterError(quarter_hint)
            return PaymentAllocation(
                amount=amount,
                lines=(AllocationLine(quarter_hint, amount),),
                overpaid=non_negative(amount - target.outstanding),
                quarter_hint=quarter_hint,
            )

        remaining = amount
        taken: dict[int, Decimal] = {}
        for position in ordered:
            if remaining <= ZERO:
                break
            take = min(position.outstanding, remaining)
            if take > ZERO:
                taken[position.quarter] = take
                remaining -= take

        overpaid = remaining
        if overpaid > ZERO:
            last = ordered[-1].quarter
            taken[last] = taken.get(last, ZERO) + overpaid

        return PaymentAllocation(
            amount=amount,
            lines=tuple(AllocationLine(q, a) for q, a in sorted(taken.items())),
            overpaid=overpaid,
        )

    def reattach_by_date(
        self,
        payments: Iterable[PaymentToAllocate],
        schedule: Sequence[ScheduleLine],
    ) -> tuple[tuple[Any, PaymentAllocation], ...]:
        """Replay payments against ``schedule`` in payment date order.

        The result is independent of the order payments were recorded in and
        of the quarter rows they were attached to before regeneration.
        """
        positions = positions_from_schedule(schedule)
        results: list[tuple[Any, PaymentAllocation]] = []
        for payment in sorted(payments, key=lambda p: (p.payment_date, p.sequence)):
            allocation = self.allocate(
                amount=payment.amount, positions=positions, quarter_hint=payment.quarter_hint,
            )
            positions = apply_allocation(positions, allocation)
            results.append((payment.payment_id, allocation))
        return tuple(results)
