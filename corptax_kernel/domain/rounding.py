"""
Rounding -- the single rounding policy for tax amounts.

Responsibility:
    Round monetary results to the nearest whole rupee, half-up.

Architecture position:
    Kernel > Domain.  Engines compute at full Decimal precision and call
    these helpers only when building the public result of a step (normal
    tax breakdown, MAT outcome, schedule rows, interest).  Nothing rounds
    mid-pipeline.

Invariants enforced:
    - Amounts are Decimal, never float.
    - ``round_rupee`` is idempotent.
"""

from decimal import ROUND_HALF_UP, Decimal

WHOLE_RUPEE = Decimal("1")
RATE_QUANTUM = Decimal("0.000001")
ZERO = Decimal("0")


def round_rupee(amount: Decimal) -> Decimal:
    """Round to the nearest whole rupee (ROUND_HALF_UP)."""
    return Decimal(amount).quantize(WHOLE_RUPEE, rounding=ROUND_HALF_UP)


def round_rate(rate: Decimal) -> Decimal:
    """Round a derived rate (e.g. effective surcharge) for display and storage."""
    return Decimal(rate).quantize(RATE_QUANTUM, rounding=ROUND_HALF_UP)


def non_negative(amount: Decimal) -> Decimal:
    """Clamp at zero."""
    return amount if amount > ZERO else ZERO
