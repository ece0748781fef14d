"""
Advance Tax Helpers -- pure functions used by ``AdvanceTaxService``.

Responsibility:
    Small pieces of arithmetic and classification that do not belong to a
    calculation engine: netting a downward TDS/TCS correction against
    recorded credits, deriving a quarter's payment status, splitting a
    challan amount into its heads, and classifying a company for the
    compliance dashboard.

Architecture:
    corptax_modules -- module glue.
    Every function is pure: no I/O, no side effects, no database.

Invariants:
    - All inputs and outputs are ``Decimal`` -- NEVER ``float``.
    - Credit netting never drives a credit below zero.
"""

from __future__ import annotations

from collections.abc import Sequence
from datetime import date
from decimal import Decimal
from typing import Hashable

from corptax_kernel.domain.rounding import ZERO, round_rupee
from corptax_modules.advance_tax.models import (
    AlertSeverity,
    ComplianceStatus,
    DashboardAlert,
    QuarterStatus,
)

HUNDRED = Decimal("100")


def net_late_credits(
    upfront: Decimal,
    late: Sequence[tuple[Hashable, Decimal]],
    reduction: Decimal,
) -> tuple[Decimal, dict[Hashable, Decimal]]:
    """
    Apply a downward correction of a credit total.

    The most recently recorded late credits are reduced first, then the
    up-front credit.  ``late`` is ordered oldest first.

    Returns:
        ``(new_upfront, {key: new_amount})`` for every late credit.
    """
    remaining = reduction
    amounts = {key: amount for key, amount in late}
    for key, amount in reversed(late):
        if remaining <= ZERO:
            break
        take = min(amount, remaining)
        amounts[key] = amount - take
        remaining -= take
    new_upfront = upfront
    if remaining > ZERO:
        new_upfront = max(ZERO, upfront - remaining)
    return new_upfront, amounts


def quarter_status(
    *,
    installment: Decimal,
    allocated: Decimal,
    due_date: date,
    as_of: date,
    cumulative_due: Decimal,
    cumulative_paid: Decimal,
) -> QuarterStatus:
    """Payment status of one installment as of a date."""
    if allocated >= installment:
        return QuarterStatus.OVERPAID if allocated > installment else QuarterStatus.PAID
    if due_date < as_of and cumulative_paid < cumulative_due:
        return QuarterStatus.OVERDUE
    if allocated > ZERO:
        return QuarterStatus.PARTIAL
    return QuarterStatus.PENDING


def split_challan_amount(
    amount: Decimal,
    *,
    income_tax: Decimal,
    surcharge: Decimal,
    cess: Decimal,
) -> tuple[Decimal, Decimal, Decimal]:
    """
    Split a payment into (income tax, surcharge, cess) pro rata to the
    assessment's components.  The three parts always add up to ``amount``.
    """
    total = income_tax + surcharge + cess
    if total <= ZERO or amount <= ZERO:
        return amount, ZERO, ZERO
    cess_part = round_rupee(amount * cess / total)
    surcharge_part = round_rupee(amount * surcharge / total)
    return amount - surcharge_part - cess_part, surcharge_part, cess_part


def classify_compliance(
    *,
    as_of: date,
    overdue_quarters: Sequence[int],
    next_due_date: date | None,
    next_due_amount: Decimal,
    at_risk_window_days: int,
) -> ComplianceStatus:
    """
    ``overdue`` when a past installment is short, ``at_risk`` when an unpaid
    installment falls due within the window, otherwise ``on_track``.
    """
    if overdue_quarters:
        return ComplianceStatus.OVERDUE
    if (
        next_due_date is not None
        and next_due_amount > ZERO
        and (next_due_date - as_of).days <= at_risk_window_days
    ):
        return ComplianceStatus.AT_RISK
    return ComplianceStatus.ON_TRACK


def compliance_alerts(
    *,
    company_id,
    status: ComplianceStatus,
    as_of: date,
    overdue_quarters: Sequence[int],
    shortfall: Decimal,
    next_due_date: date | None,
    next_due_amount: Decimal,
    revision_recommended: bool = False,
    mat_credit_expiring: Decimal = ZERO,
) -> tuple[DashboardAlert, ...]:
    alerts: list[DashboardAlert] = []
    if status == ComplianceStatus.NO_ASSESSMENT:
        alerts.append(DashboardAlert(
            company_id=company_id,
            severity=AlertSeverity.WARNING,
            code="NO_ASSESSMENT",
            message="No advance tax assessment for the financial year.",
        ))
    if overdue_quarters:
        quarters = ", ".join(f"Q{q}" for q in overdue_quarters)
        alerts.append(DashboardAlert(
            company_id=company_id,
            severity=AlertSeverity.CRITICAL,
            code="INSTALLMENT_OVERDUE",
            message=f"Installment shortfall of Rs. {shortfall:,} overdue for {quarters}.",
        ))
    if status == ComplianceStatus.AT_RISK and next_due_date is not None:
        days = (next_due_date - as_of).days
        alerts.append(DashboardAlert(
            company_id=company_id,
            severity=AlertSeverity.WARNING,
            code="INSTALLMENT_DUE_SOON",
            message=(
                f"Rs. {next_due_amount:,} due on {next_due_date.isoformat()} "
                f"({days} day(s))."
            ),
        ))
    if revision_recommended:
        alerts.append(DashboardAlert(
            company_id=company_id,
            severity=AlertSeverity.INFO,
            code="REVISION_RECOMMENDED",
            message="Actual results have drifted from the estimate; consider a revision.",
        ))
    if mat_credit_expiring > ZERO:
        alerts.append(DashboardAlert(
            company_id=company_id,
            severity=AlertSeverity.INFO,
            code="MAT_CREDIT_EXPIRING",
            message=f"MAT credit of Rs. {mat_credit_expiring:,} expires soon.",
        ))
    return tuple(alerts)


def change_percentage(previous: Decimal, current: Decimal) -> Decimal | None:
    if previous == ZERO:
        return None
    return ((current - previous) / abs(previous) * HUNDRED).quantize(Decimal("0.01"))
