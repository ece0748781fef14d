"""
Advance Tax Domain Models.

Responsibility:
    Frozen dataclass DTOs for the nouns of corporate advance tax:
    assessments, schedule rows, payments, revisions, the MAT credit ledger,
    and the read models returned to callers (tracker, interest breakdown,
    challan snapshot, compliance dashboard, what-if preview).

Architecture:
    corptax_modules -- module layer.
    Pure data containers with no I/O and no ORM coupling.

Invariants:
    - All models are ``frozen=True``.
    - All monetary fields use ``Decimal`` -- NEVER ``float``.

Audit relevance:
    - ``AdvanceTaxRevision`` carries before/after snapshots and variance
      and is never mutated after creation.
    - ``MatCreditEntry`` is never deleted; ``is_expired`` is computed.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date
from decimal import Decimal
from enum import Enum
from typing import Any
from uuid import UUID

from corptax_engines.interest import Interest234BResult, Interest234CResult
from corptax_engines.reconciliation import ReconciliationInput
from corptax_engines.revision import RevisionSnapshot
from corptax_kernel.logging_config import get_logger

logger = get_logger("modules.advance_tax.models")

_ZERO = Decimal("0")


class AssessmentStatus(Enum):
    """Assessment lifecycle states."""
    DRAFT = "draft"
    ACTIVE = "active"
    FINALIZED = "finalized"


class QuarterStatus(Enum):
    """Payment status of one installment."""
    PENDING = "pending"
    PARTIAL = "partial"
    PAID = "paid"
    OVERPAID = "overpaid"
    OVERDUE = "overdue"


class PaymentStatus(Enum):
    RECORDED = "recorded"
    POSTED = "posted"
    POSTING_FAILED = "posting_failed"


class CreditType(Enum):
    TDS = "tds"
    TCS = "tcs"


class MatCreditStatus(Enum):
    ACTIVE = "active"
    FULLY_UTILIZED = "fully_utilized"
    REVERSED = "reversed"


class ComplianceStatus(Enum):
    ON_TRACK = "on_track"
    AT_RISK = "at_risk"
    OVERDUE = "overdue"
    NO_ASSESSMENT = "no_assessment"


class AlertSeverity(Enum):
    CRITICAL = "critical"
    WARNING = "warning"
    INFO = "info"


@dataclass(frozen=True)
class AssessmentInputs:
    """Caller-supplied inputs of an assessment (or of a revision)."""
    regime: str = "normal"
    reconciliation: ReconciliationInput = field(default_factory=ReconciliationInput)
    ytd_through_date: date | None = None
    rule_pack_version: int | None = None
    notes: str | None = None

    def as_dict(self) -> dict[str, Any]:
        return {
            "regime": self.regime,
            "reconciliation": self.reconciliation.as_dict(),
            "ytd_through_date": self.ytd_through_date.isoformat() if self.ytd_through_date else None,
            "rule_pack_version": self.rule_pack_version,
            "notes": self.notes,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> AssessmentInputs:
        through = data.get("ytd_through_date")
        return cls(
            regime=data.get("regime", "normal"),
            reconciliation=ReconciliationInput.from_dict(data.get("reconciliation", {})),
            ytd_through_date=date.fromisoformat(through) if through else None,
            rule_pack_version=data.get("rule_pack_version"),
            notes=data.get("notes"),
        )


@dataclass(frozen=True)
class WhatIfAdjustments:
    """Adjustments applied on top of an assessment's inputs for a preview."""
    name: str = "what-if"
    revenue_adjustment: Decimal = _ZERO
    expense_adjustment: Decimal = _ZERO
    payroll_adjustment: Decimal = _ZERO
    capex_adjustment: Decimal = _ZERO
    other_adjustment: Decimal = _ZERO
    regime: str | None = None


@dataclass(frozen=True)
class AdvanceTaxAssessment:
    """Advance tax assessment for one company and financial year."""
    id: UUID
    company_id: UUID
    financial_year: str
    assessment_year: str
    regime: str
    status: AssessmentStatus
    inputs: AssessmentInputs
    # Reconciliation
    projected_revenue: Decimal = _ZERO
    projected_expenses: Decimal = _ZERO
    projected_profit_before_tax: Decimal = _ZERO
    book_profit: Decimal = _ZERO
    total_additions: Decimal = _ZERO
    total_deductions: Decimal = _ZERO
    raw_taxable_income: Decimal = _ZERO
    taxable_income: Decimal = _ZERO
    # Rates
    tax_rate: Decimal = _ZERO
    surcharge_rate: Decimal = _ZERO
    cess_rate: Decimal = _ZERO
    marginal_relief_applied: bool = False
    # Normal tax
    base_tax: Decimal = _ZERO
    surcharge: Decimal = _ZERO
    cess: Decimal = _ZERO
    total_tax_liability: Decimal = _ZERO
    # MAT
    mat_rate: Decimal = _ZERO
    mat_on_book_profit: Decimal = _ZERO
    mat_surcharge: Decimal = _ZERO
    mat_cess: Decimal = _ZERO
    total_mat: Decimal = _ZERO
    is_mat_applicable: bool = False
    mat_credit_created: Decimal = _ZERO
    mat_credit_available: Decimal = _ZERO
    mat_credit_to_utilize: Decimal = _ZERO
    tax_payable_after_mat: Decimal = _ZERO
    mat_applicability_reason: str = ""
    # Credits
    upfront_tds: Decimal = _ZERO
    upfront_tcs: Decimal = _ZERO
    tds_receivable: Decimal = _ZERO
    tcs_credit: Decimal = _ZERO
    advance_tax_paid: Decimal = _ZERO
    gross_tax: Decimal = _ZERO
    total_credits: Decimal = _ZERO
    net_tax_payable: Decimal = _ZERO
    # Interest
    interest_234b: Decimal = _ZERO
    interest_234c: Decimal = _ZERO
    total_interest: Decimal = _ZERO
    # Audit
    rule_pack_id: str = ""
    rule_pack_version: int = 0
    rule_pack_checksum: str = ""
    revision_count: int = 0
    last_revision_date: date | None = None
    last_revision_quarter: int | None = None
    finalized_on: date | None = None
    row_version: int = 1

    @property
    def is_loss(self) -> bool:
        return self.raw_taxable_income < 0

    def snapshot(self) -> RevisionSnapshot:
        return RevisionSnapshot(
            projected_revenue=self.projected_revenue,
            projected_expenses=self.projected_expenses,
            book_profit=self.book_profit,
            taxable_income=self.taxable_income,
            total_tax_liability=self.total_tax_liability,
            total_mat=self.total_mat,
            tax_payable_after_mat=self.tax_payable_after_mat,
            tax_payable_after_credits=max(
                self.tax_payable_after_mat - self.tds_receivable - self.tcs_credit, _ZERO,
            ),
        )


@dataclass(frozen=True)
class ScheduleRow:
    """One installment of an assessment's schedule with its tracking state."""
    assessment_id: UUID
    quarter: int
    due_date: date
    cumulative_percentage: Decimal
    cumulative_tax_due: Decimal
    tax_payable_this_quarter: Decimal
    late_credit_applied: Decimal = _ZERO
    amount_paid: Decimal = _ZERO
    cumulative_tax_paid: Decimal = _ZERO
    shortfall_amount: Decimal = _ZERO
    interest_234c: Decimal = _ZERO
    interest_months: int = 3
    status: QuarterStatus = QuarterStatus.PENDING


@dataclass(frozen=True)
class PaymentAllocationLine:
    quarter: int
    amount: Decimal


@dataclass(frozen=True)
class AdvanceTaxPayment:
    """An advance tax payment (challan)."""
    id: UUID
    assessment_id: UUID
    company_id: UUID
    payment_date: date
    amount: Decimal
    quarter_hint: int | None = None
    challan_number: str | None = None
    bsr_code: str | None = None
    cin: str | None = None
    bank_account_id: UUID | None = None
    status: PaymentStatus = PaymentStatus.RECORDED
    is_posted: bool = False
    journal_entry_id: UUID | None = None
    posting_warning: str | None = None
    notes: str | None = None
    allocations: tuple[PaymentAllocationLine, ...] = ()


@dataclass(frozen=True)
class AdvanceTaxTracker:
    """Schedule with payments, shortfall and 234C interest applied."""
    assessment: AdvanceTaxAssessment
    rows: tuple[ScheduleRow, ...]
    as_of: date
    total_paid: Decimal
    total_due_to_date: Decimal
    shortfall_to_date: Decimal
    interest_234c: Decimal
    next_due_date: date | None = None
    next_due_amount: Decimal = _ZERO


@dataclass(frozen=True)
class PaymentResult:
    payment: AdvanceTaxPayment
    tracker: AdvanceTaxTracker
    warning: str | None = None


@dataclass(frozen=True)
class InterestBreakdown:
    assessment_id: UUID
    as_of: date
    interest_234b: Interest234BResult
    interest_234c: Interest234CResult

    @property
    def total_interest(self) -> Decimal:
        return self.interest_234b.interest + self.interest_234c.total_interest


@dataclass(frozen=True)
class AdvanceTaxRevision:
    """Immutable record of one revision of an assessment."""
    id: UUID
    assessment_id: UUID
    revision_number: int
    revision_date: date
    revision_quarter: int
    previous: RevisionSnapshot
    revised: RevisionSnapshot
    variance: RevisionSnapshot
    previous_inputs: dict[str, Any]
    revised_inputs: dict[str, Any]
    rule_pack_version: int
    reason: str | None = None


@dataclass(frozen=True)
class MatCreditEntry:
    """
    MAT credit created in one financial year.

    ``credit_created`` is net of revision adjustments; ``credit_adjusted``
    is the part of it that came from revising a finalized assessment.
    """
    id: UUID
    company_id: UUID
    financial_year: str
    assessment_year: str
    assessment_id: UUID | None
    book_profit: Decimal
    mat_on_book_profit: Decimal
    mat_surcharge: Decimal
    mat_cess: Decimal
    total_mat: Decimal
    normal_tax: Decimal
    credit_created: Decimal
    credit_utilized: Decimal
    balance: Decimal
    expiry_year: str
    status: MatCreditStatus = MatCreditStatus.ACTIVE
    is_expired: bool = False
    credit_adjusted: Decimal = _ZERO


@dataclass(frozen=True)
class MatCreditUtilization:
    """Draw-down of one credit entry; a negative amount returns credit after a revision."""
    id: UUID
    mat_credit_id: UUID
    company_id: UUID
    source_financial_year: str
    utilized_in_financial_year: str
    assessment_id: UUID | None
    amount: Decimal
    balance_after: Decimal
    utilization_date: date


@dataclass(frozen=True)
class MatCreditAdjustment:
    """Change to a year's MAT credit from revising its finalized assessment."""
    id: UUID
    mat_credit_id: UUID
    company_id: UUID
    financial_year: str
    assessment_id: UUID
    revision_number: int
    previous_credit: Decimal
    revised_credit: Decimal
    amount: Decimal
    balance_after: Decimal
    adjustment_date: date


@dataclass(frozen=True)
class MatCreditSummary:
    company_id: UUID
    as_of_financial_year: str
    total_created: Decimal
    total_utilized: Decimal
    total_expired: Decimal
    available_balance: Decimal
    expiring_soon: Decimal
    entries: tuple[MatCreditEntry, ...] = ()
    expiring_soon_entries: tuple[MatCreditEntry, ...] = ()


@dataclass(frozen=True)
class ChallanSnapshot:
    """Data for an ITNS 280 challan; rendering is the caller's concern."""
    assessment_id: UUID
    company_id: UUID
    financial_year: str
    assessment_year: str
    quarter: int | None
    due_date: date | None
    generated_on: date
    income_tax: Decimal
    surcharge: Decimal
    cess: Decimal
    interest: Decimal
    total: Decimal
    challan_type: str = "ITNS 280"
    major_head: str = "0020"
    minor_head: str = "100"
    company_name: str | None = None
    pan: str | None = None


@dataclass(frozen=True)
class CompanyCompliance:
    company_id: UUID
    status: ComplianceStatus
    assessment_id: UUID | None = None
    total_tax_liability: Decimal = _ZERO
    net_tax_payable: Decimal = _ZERO
    total_paid: Decimal = _ZERO
    shortfall: Decimal = _ZERO
    interest: Decimal = _ZERO
    next_due_date: date | None = None
    next_due_amount: Decimal = _ZERO


@dataclass(frozen=True)
class DashboardAlert:
    company_id: UUID
    severity: AlertSeverity
    code: str
    message: str


@dataclass(frozen=True)
class UpcomingDueDate:
    quarter: int
    due_date: date
    company_count: int
    amount: Decimal


@dataclass(frozen=True)
class DashboardTotals:
    companies: int = 0
    on_track: int = 0
    at_risk: int = 0
    overdue: int = 0
    no_assessment: int = 0
    total_tax_liability: Decimal = _ZERO
    total_paid: Decimal = _ZERO
    total_shortfall: Decimal = _ZERO
    total_interest: Decimal = _ZERO


@dataclass(frozen=True)
class YearOverYear:
    prior_financial_year: str
    prior_total_tax_liability: Decimal
    current_total_tax_liability: Decimal
    change: Decimal
    change_percentage: Decimal | None


@dataclass(frozen=True)
class ComplianceDashboard:
    financial_year: str
    as_of: date
    companies: tuple[CompanyCompliance, ...]
    totals: DashboardTotals
    alerts: tuple[DashboardAlert, ...] = ()
    upcoming_due_dates: tuple[UpcomingDueDate, ...] = ()
    year_over_year: YearOverYear | None = None
