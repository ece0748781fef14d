"""
Advance Tax ORM Persistence Models (``corptax_modules.advance_tax.orm``).

Responsibility:
    SQLAlchemy ORM models that persist the frozen dataclass DTOs defined in
    ``corptax_modules.advance_tax.models``.  Each ORM class mirrors a DTO
    and provides ``to_dto()`` / ``from_dto()`` conversion where the service
    needs it.

Architecture position:
    **Modules layer** -- persistence companions to the pure DTO models.
    Inherits from ``TrackedBase`` (kernel DB base) which provides:
    id (UUID PK, auto-generated), created_at, updated_at,
    created_by_id (NOT NULL UUID), updated_by_id (nullable UUID).

Invariants enforced:
    - All monetary fields use Decimal (maps to Numeric(38,9)) -- NEVER float.
    - Enum fields stored as String(50) containing the enum .value string.
    - One assessment per (company_id, financial_year).
    - One schedule row per (assessment_id, quarter).
    - One revision per (assessment_id, revision_number).
    - One MAT credit entry per (company_id, financial_year).
    - ``row_version`` is the SQLAlchemy version counter of the assessment;
      concurrent flushes of the same row fail with StaleDataError.

Audit relevance:
    Revisions, MAT credit utilizations, MAT credit adjustments and posted payments are protected by
    ORM immutability listeners (``corptax_kernel.db.immutability``); MAT
    credit entries can never be deleted.
"""

from __future__ import annotations

from datetime import date
from decimal import Decimal
from uuid import UUID

from sqlalchemy import Boolean, Date, ForeignKey, Index, Integer, String, Text, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from corptax_kernel.db.base import FinancialYearLabel, Rupees, TaxRate, TrackedBase

_ZERO = Decimal("0")


# ---------------------------------------------------------------------------
# AdvanceTaxAssessmentModel
# ---------------------------------------------------------------------------

class AdvanceTaxAssessmentModel(TrackedBase):
    """
    ORM model for ``AdvanceTaxAssessment``.

    Contract:
        Inputs (YTD actuals, projections, every addition and deduction
        category) are stored individually next to the derived amounts.
        Derived amounts are always rewritten together by a full pass.

    Guarantees:
        - (company_id, financial_year) is unique (uq_advance_tax_company_fy).
        - ``row_version`` increments on every flush of the row.
    """

    __tablename__ = "advance_tax_assessments"

    company_id: Mapped[UUID] = mapped_column(nullable=False)
    financial_year: Mapped[FinancialYearLabel] = mapped_column(nullable=False)
    assessment_year: Mapped[FinancialYearLabel] = mapped_column(nullable=False)
    regime: Mapped[str] = mapped_column(String(20), nullable=False, default="normal")
    status: Mapped[str] = mapped_column(String(50), nullable=False, default="draft")
    pinned_rule_pack_version: Mapped[int | None] = mapped_column(nullable=True)
    notes: Mapped[str | None] = mapped_column(Text, nullable=True)

    # Inputs
    ytd_revenue: Mapped[Rupees] = mapped_column(default=_ZERO)
    ytd_expenses: Mapped[Rupees] = mapped_column(default=_ZERO)
    ytd_through_date: Mapped[date | None] = mapped_column(Date, nullable=True)
    projected_additional_revenue: Mapped[Rupees] = mapped_column(default=_ZERO)
    projected_additional_expenses: Mapped[Rupees] = mapped_column(default=_ZERO)
    projected_depreciation: Mapped[Rupees] = mapped_column(default=_ZERO)
    projected_other_income: Mapped[Rupees] = mapped_column(default=_ZERO)
    book_profit_override: Mapped[Rupees | None] = mapped_column(nullable=True)
    book_depreciation: Mapped[Rupees] = mapped_column(default=_ZERO)
    disallowed_40a3: Mapped[Rupees] = mapped_column(default=_ZERO)
    disallowed_40a7: Mapped[Rupees] = mapped_column(default=_ZERO)
    disallowed_43b: Mapped[Rupees] = mapped_column(default=_ZERO)
    other_disallowances: Mapped[Rupees] = mapped_column(default=_ZERO)
    it_depreciation: Mapped[Rupees] = mapped_column(default=_ZERO)
    deductions_80c: Mapped[Rupees] = mapped_column(default=_ZERO)
    deductions_80d: Mapped[Rupees] = mapped_column(default=_ZERO)
    other_deductions: Mapped[Rupees] = mapped_column(default=_ZERO)

    # Reconciliation
    projected_revenue: Mapped[Rupees] = mapped_column(default=_ZERO)
    projected_expenses: Mapped[Rupees] = mapped_column(default=_ZERO)
    projected_profit_before_tax: Mapped[Rupees] = mapped_column(default=_ZERO)
    book_profit: Mapped[Rupees] = mapped_column(default=_ZERO)
    total_additions: Mapped[Rupees] = mapped_column(default=_ZERO)
    total_deductions: Mapped[Rupees] = mapped_column(default=_ZERO)
    raw_taxable_income: Mapped[Rupees] = mapped_column(default=_ZERO)
    taxable_income: Mapped[Rupees] = mapped_column(default=_ZERO)

    # Rates and normal tax
    tax_rate: Mapped[TaxRate] = mapped_column(default=_ZERO)
    surcharge_rate: Mapped[TaxRate] = mapped_column(default=_ZERO)
    cess_rate: Mapped[TaxRate] = mapped_column(default=_ZERO)
    marginal_relief_applied: Mapped[bool] = mapped_column(Boolean, default=False)
    base_tax: Mapped[Rupees] = mapped_column(default=_ZERO)
    surcharge: Mapped[Rupees] = mapped_column(default=_ZERO)
    cess: Mapped[Rupees] = mapped_column(default=_ZERO)
    total_tax_liability: Mapped[Rupees] = mapped_column(default=_ZERO)

    # MAT
    mat_rate: Mapped[TaxRate] = mapped_column(default=_ZERO)
    mat_on_book_profit: Mapped[Rupees] = mapped_column(default=_ZERO)
    mat_surcharge: Mapped[Rupees] = mapped_column(default=_ZERO)
    mat_cess: Mapped[Rupees] = mapped_column(default=_ZERO)
    total_mat: Mapped[Rupees] = mapped_column(default=_ZERO)
    is_mat_applicable: Mapped[bool] = mapped_column(Boolean, default=False)
    mat_credit_created: Mapped[Rupees] = mapped_column(default=_ZERO)
    mat_credit_available: Mapped[Rupees] = mapped_column(default=_ZERO)
    mat_credit_to_utilize: Mapped[Rupees] = mapped_column(default=_ZERO)
    tax_payable_after_mat: Mapped[Rupees] = mapped_column(default=_ZERO)
    mat_applicability_reason: Mapped[str] = mapped_column(Text, default="")

    # Credits
    upfront_tds: Mapped[Rupees] = mapped_column(default=_ZERO)
    upfront_tcs: Mapped[Rupees] = mapped_column(default=_ZERO)
    tds_receivable: Mapped[Rupees] = mapped_column(default=_ZERO)
    tcs_credit: Mapped[Rupees] = mapped_column(default=_ZERO)
    advance_tax_paid: Mapped[Rupees] = mapped_column(default=_ZERO)
    gross_tax: Mapped[Rupees] = mapped_column(default=_ZERO)
    total_credits: Mapped[Rupees] = mapped_column(default=_ZERO)
    net_tax_payable: Mapped[Rupees] = mapped_column(default=_ZERO)

    # Interest
    interest_234b: Mapped[Rupees] = mapped_column(default=_ZERO)
    interest_234c: Mapped[Rupees] = mapped_column(default=_ZERO)
    total_interest: Mapped[Rupees] = mapped_column(default=_ZERO)

    # Audit
    rule_pack_id: Mapped[str] = mapped_column(String(100), default="")
    rule_pack_version: Mapped[int] = mapped_column(default=0)
    rule_pack_checksum: Mapped[str] = mapped_column(String(64), default="")
    revision_count: Mapped[int] = mapped_column(default=0)
    last_revision_date: Mapped[date | None] = mapped_column(Date, nullable=True)
    last_revision_quarter: Mapped[int | None] = mapped_column(nullable=True)
    finalized_on: Mapped[date | None] = mapped_column(Date, nullable=True)
    row_version: Mapped[int] = mapped_column(Integer, nullable=False)

    __mapper_args__ = {"version_id_col": row_version}

    __table_args__ = (
        UniqueConstraint("company_id", "financial_year", name="uq_advance_tax_company_fy"),
        Index("idx_advance_tax_fy", "financial_year"),
        Index("idx_advance_tax_status", "status"),
    )

    def to_dto(self):
        from corptax_engines.reconciliation import ReconciliationInput
        from corptax_modules.advance_tax.models import (
            AdvanceTaxAssessment,
            AssessmentInputs,
            AssessmentStatus,
        )
        inputs = AssessmentInputs(
            regime=self.regime,
            reconciliation=ReconciliationInput(
                ytd_revenue=self.ytd_revenue,
                ytd_expenses=self.ytd_expenses,
                projected_additional_revenue=self.projected_additional_revenue,
                projected_additional_expenses=self.projected_additional_expenses,
                projected_depreciation=self.projected_depreciation,
                projected_other_income=self.projected_other_income,
                book_profit=self.book_profit_override,
                book_depreciation=self.book_depreciation,
                disallowed_40a3=self.disallowed_40a3,
                disallowed_40a7=self.disallowed_40a7,
                disallowed_43b=self.disallowed_43b,
                other_disallowances=self.other_disallowances,
                it_depreciation=self.it_depreciation,
                deductions_80c=self.deductions_80c,
                deductions_80d=self.deductions_80d,
                other_deductions=self.other_deductions,
            ),
            ytd_through_date=self.ytd_through_date,
            rule_pack_version=self.pinned_rule_pack_version,
            notes=self.notes,
        )
        return AdvanceTaxAssessment(
            id=self.id,
            company_id=self.company_id,
            financial_year=self.financial_year,
            assessment_year=self.assessment_year,
            regime=self.regime,
            status=AssessmentStatus(self.status),
            inputs=inputs,
            projected_revenue=self.projected_revenue,
            projected_expenses=self.projected_expenses,
            projected_profit_before_tax=self.projected_profit_before_tax,
            book_profit=self.book_profit,
            total_additions=self.total_additions,
            total_deductions=self.total_deductions,
            raw_taxable_income=self.raw_taxable_income,
            taxable_income=self.taxable_income,
            tax_rate=self.tax_rate,
            surcharge_rate=self.surcharge_rate,
            cess_rate=self.cess_rate,
            marginal_relief_applied=self.marginal_relief_applied,
            base_tax=self.base_tax,
            surcharge=self.surcharge,
            cess=self.cess,
            total_tax_liability=self.total_tax_liability,
            mat_rate=self.mat_rate,
            mat_on_book_profit=self.mat_on_book_profit,
            mat_surcharge=self.mat_surcharge,
            mat_cess=self.mat_cess,
            total_mat=self.total_mat,
            is_mat_applicable=self.is_mat_applicable,
            mat_credit_created=self.mat_credit_created,
            mat_credit_available=self.mat_credit_available,
            mat_credit_to_utilize=self.mat_credit_to_utilize,
            tax_payable_after_mat=self.tax_payable_after_mat,
            mat_applicability_reason=self.mat_applicability_reason,
            upfront_tds=self.upfront_tds,
            upfront_tcs=self.upfront_tcs,
            tds_receivable=self.tds_receivable,
            tcs_credit=self.tcs_credit,
            advance_tax_paid=self.advance_tax_paid,
            gross_tax=self.gross_tax,
            total_credits=self.total_credits,
            net_tax_payable=self.net_tax_payable,
            interest_234b=self.interest_234b,
            interest_234c=self.interest_234c,
            total_interest=self.total_interest,
            rule_pack_id=self.rule_pack_id,
            rule_pack_version=self.rule_pack_version,
            rule_pack_checksum=self.rule_pack_checksum,
            revision_count=self.revision_count,
            last_revision_date=self.last_revision_date,
            last_revision_quarter=self.last_revision_quarter,
            finalized_on=self.finalized_on,
            row_version=self.row_version,
        )

    def apply_inputs(self, inputs) -> None:
        """Copy ``AssessmentInputs`` onto the input columns."""
        data = inputs.reconciliation
        self.regime = inputs.regime
        self.pinned_rule_pack_version = inputs.rule_pack_version
        self.notes = inputs.notes
        self.ytd_through_date = inputs.ytd_through_date
        self.ytd_revenue = data.ytd_revenue
        self.ytd_expenses = data.ytd_expenses
        self.projected_additional_revenue = data.projected_additional_revenue
        self.projected_additional_expenses = data.projected_additional_expenses
        self.projected_depreciation = data.projected_depreciation
        self.projected_other_income = data.projected_other_income
        self.book_profit_override = data.book_profit
        self.book_depreciation = data.book_depreciation
        self.disallowed_40a3 = data.disallowed_40a3
        self.disallowed_40a7 = data.disallowed_40a7
        self.disallowed_43b = data.disallowed_43b
        self.other_disallowances = data.other_disallowances
        self.it_depreciation = data.it_depreciation
        self.deductions_80c = data.deductions_80c
        self.deductions_80d = data.deductions_80d
        self.other_deductions = data.other_deductions

    def apply_computation(self, computation) -> None:
        """Copy an ``AssessmentComputation`` onto the derived columns."""
        recon = computation.reconciliation
        rates = computation.rates
        mat = computation.mat
        tax = computation.tax
        self.projected_revenue = recon.projected_revenue
        self.projected_expenses = recon.projected_expenses
        self.projected_profit_before_tax = recon.projected_profit_before_tax
        self.book_profit = recon.book_profit
        self.total_additions = recon.total_additions
        self.total_deductions = recon.total_deductions
        self.raw_taxable_income = recon.raw_taxable_income
        self.taxable_income = recon.taxable_income
        self.tax_rate = rates.tax_rate
        self.surcharge_rate = rates.surcharge_rate
        self.cess_rate = rates.cess_rate
        self.marginal_relief_applied = rates.marginal_relief_applied
        self.base_tax = tax.base_tax
        self.surcharge = tax.surcharge
        self.cess = tax.cess
        self.total_tax_liability = tax.total_tax_liability
        self.mat_rate = mat.mat_rate
        self.mat_on_book_profit = mat.mat_on_book_profit
        self.mat_surcharge = mat.mat_surcharge
        self.mat_cess = mat.mat_cess
        self.total_mat = mat.total_mat
        self.is_mat_applicable = mat.is_mat_applicable
        self.mat_credit_created = mat.mat_credit_created
        self.mat_credit_available = mat.mat_credit_available
        self.mat_credit_to_utilize = mat.mat_credit_to_utilize
        self.tax_payable_after_mat = tax.tax_payable_after_mat
        self.mat_applicability_reason = mat.mat_applicability_reason
        self.tds_receivable = tax.tds_credit
        self.tcs_credit = tax.tcs_credit
        self.advance_tax_paid = tax.advance_tax_already_paid
        self.gross_tax = tax.gross_tax
        self.total_credits = tax.total_credits
        self.net_tax_payable = tax.net_tax_payable
        self.rule_pack_id = rates.rule_pack_id
        self.rule_pack_version = rates.rule_pack_version
        self.rule_pack_checksum = rates.rule_pack_checksum

    def __repr__(self) -> str:
        return (
            f"<AdvanceTaxAssessmentModel {self.company_id} FY{self.financial_year} "
            f"[{self.status}] rev={self.revision_count}>"
        )


# ---------------------------------------------------------------------------
# AdvanceTaxScheduleModel
# ---------------------------------------------------------------------------

class AdvanceTaxScheduleModel(TrackedBase):
    """
    ORM model for ``ScheduleRow``.

    Contract:
        Rows are regenerated wholesale (delete, flush, insert) whenever the
        assessment is recomputed; tracking columns are rewritten after every
        payment change.
    """

    __tablename__ = "advance_tax_schedules"

    assessment_id: Mapped[UUID] = mapped_column(
        ForeignKey("advance_tax_assessments.id"), nullable=False,
    )
    quarter: Mapped[int] = mapped_column(nullable=False)
    due_date: Mapped[date] = mapped_column(Date, nullable=False)
    cumulative_percentage: Mapped[Rupees] = mapped_column(nullable=False)
    cumulative_tax_due: Mapped[Rupees] = mapped_column(nullable=False)
    tax_payable_this_quarter: Mapped[Rupees] = mapped_column(nullable=False)
    late_credit_applied: Mapped[Rupees] = mapped_column(default=_ZERO)
    amount_paid: Mapped[Rupees] = mapped_column(default=_ZERO)
    cumulative_tax_paid: Mapped[Rupees] = mapped_column(default=_ZERO)
    shortfall_amount: Mapped[Rupees] = mapped_column(default=_ZERO)
    interest_234c: Mapped[Rupees] = mapped_column(default=_ZERO)
    interest_months: Mapped[int] = mapped_column(default=3)
    status: Mapped[str] = mapped_column(String(50), default="pending")

    __table_args__ = (
        UniqueConstraint("assessment_id", "quarter", name="uq_advance_tax_schedule_quarter"),
        Index("idx_advance_tax_schedule_due", "due_date"),
    )

    def to_dto(self):
        from corptax_modules.advance_tax.models import QuarterStatus, ScheduleRow
        return ScheduleRow(
            assessment_id=self.assessment_id,
            quarter=self.quarter,
            due_date=self.due_date,
            cumulative_percentage=self.cumulative_percentage,
            cumulative_tax_due=self.cumulative_tax_due,
            tax_payable_this_quarter=self.tax_payable_this_quarter,
            late_credit_applied=self.late_credit_applied,
            amount_paid=self.amount_paid,
            cumulative_tax_paid=self.cumulative_tax_paid,
            shortfall_amount=self.shortfall_amount,
            interest_234c=self.interest_234c,
            interest_months=self.interest_months,
            status=QuarterStatus(self.status),
        )

    @classmethod
    def from_line(cls, line, assessment_id: UUID, created_by_id: UUID) -> AdvanceTaxScheduleModel:
        """Build a row from a ``corptax_engines.schedule.ScheduleLine``."""
        return cls(
            assessment_id=assessment_id,
            quarter=line.quarter,
            due_date=line.due_date,
            cumulative_percentage=line.cumulative_percentage,
            cumulative_tax_due=line.cumulative_tax_due,
            tax_payable_this_quarter=line.tax_payable_this_quarter,
            late_credit_applied=line.late_credit_applied,
            interest_months=line.interest_months,
            status="pending",
            created_by_id=created_by_id,
        )

    def __repr__(self) -> str:
        return f"<AdvanceTaxScheduleModel Q{self.quarter} due={self.cumulative_tax_due}>"


# ---------------------------------------------------------------------------
# AdvanceTaxPaymentModel
# ---------------------------------------------------------------------------

class AdvanceTaxPaymentModel(TrackedBase):
    """
    ORM model for ``AdvanceTaxPayment``.

    Guarantees:
        - Once ``is_posted`` is True the row is append-only (immutability
          listener); unposted payments may be edited or deleted.
    """

    __tablename__ = "advance_tax_payments"

    assessment_id: Mapped[UUID] = mapped_column(
        ForeignKey("advance_tax_assessments.id"), nullable=False,
    )
    company_id: Mapped[UUID] = mapped_column(nullable=False)
    payment_date: Mapped[date] = mapped_column(Date, nullable=False)
    amount: Mapped[Rupees] = mapped_column(nullable=False)
    quarter_hint: Mapped[int | None] = mapped_column(nullable=True)
    challan_number: Mapped[str | None] = mapped_column(String(50), nullable=True)
    bsr_code: Mapped[str | None] = mapped_column(String(20), nullable=True)
    cin: Mapped[str | None] = mapped_column(String(50), nullable=True)
    bank_account_id: Mapped[UUID | None] = mapped_column(nullable=True)
    status: Mapped[str] = mapped_column(String(50), default="recorded")
    is_posted: Mapped[bool] = mapped_column(Boolean, default=False)
    journal_entry_id: Mapped[UUID | None] = mapped_column(nullable=True)
    posting_warning: Mapped[str | None] = mapped_column(Text, nullable=True)
    notes: Mapped[str | None] = mapped_column(Text, nullable=True)

    __table_args__ = (
        Index("idx_advance_tax_payment_assessment", "assessment_id"),
        Index("idx_advance_tax_payment_date", "payment_date"),
    )

    def to_dto(self, allocations=()):
        from corptax_modules.advance_tax.models import AdvanceTaxPayment, PaymentStatus
        return AdvanceTaxPayment(
            id=self.id,
            assessment_id=self.assessment_id,
            company_id=self.company_id,
            payment_date=self.payment_date,
            amount=self.amount,
            quarter_hint=self.quarter_hint,
            challan_number=self.challan_number,
            bsr_code=self.bsr_code,
            cin=self.cin,
            bank_account_id=self.bank_account_id,
            status=PaymentStatus(self.status),
            is_posted=self.is_posted,
            journal_entry_id=self.journal_entry_id,
            posting_warning=self.posting_warning,
            notes=self.notes,
            allocations=tuple(allocations),
        )

    def __repr__(self) -> str:
        return f"<AdvanceTaxPaymentModel {self.payment_date} {self.amount} posted={self.is_posted}>"


class AdvanceTaxPaymentAllocationModel(TrackedBase):
    """Derived allocation of a payment to one installment; rebuilt on every replay."""

    __tablename__ = "advance_tax_payment_allocations"

    payment_id: Mapped[UUID] = mapped_column(
        ForeignKey("advance_tax_payments.id"), nullable=False,
    )
    assessment_id: Mapped[UUID] = mapped_column(
        ForeignKey("advance_tax_assessments.id"), nullable=False,
    )
    quarter: Mapped[int] = mapped_column(nullable=False)
    amount: Mapped[Rupees] = mapped_column(nullable=False)

    __table_args__ = (
        Index("idx_advance_tax_allocation_payment", "payment_id"),
        Index("idx_advance_tax_allocation_assessment", "assessment_id"),
    )


class AdvanceTaxCreditModel(TrackedBase):
    """TDS/TCS credit discovered after the assessment was created."""

    __tablename__ = "advance_tax_credits"

    assessment_id: Mapped[UUID] = mapped_column(
        ForeignKey("advance_tax_assessments.id"), nullable=False,
    )
    credit_type: Mapped[str] = mapped_column(String(10), nullable=False)
    quarter: Mapped[int] = mapped_column(nullable=False)
    amount: Mapped[Rupees] = mapped_column(nullable=False)
    recorded_on: Mapped[date] = mapped_column(Date, nullable=False)

    __table_args__ = (
        Index("idx_advance_tax_credit_assessment", "assessment_id"),
    )


# ---------------------------------------------------------------------------
# AdvanceTaxRevisionModel
# ---------------------------------------------------------------------------

class AdvanceTaxRevisionModel(TrackedBase):
    """
    ORM model for ``AdvanceTaxRevision``.

    Snapshots and inputs are stored as JSON text.

    Guarantees:
        - (assessment_id, revision_number) is unique.
        - Rows are immutable from creation (immutability listener).
    """

    __tablename__ = "advance_tax_revisions"

    assessment_id: Mapped[UUID] = mapped_column(
        ForeignKey("advance_tax_assessments.id"), nullable=False,
    )
    revision_number: Mapped[int] = mapped_column(nullable=False)
    revision_date: Mapped[date] = mapped_column(Date, nullable=False)
    revision_quarter: Mapped[int] = mapped_column(nullable=False)
    reason: Mapped[str | None] = mapped_column(Text, nullable=True)
    rule_pack_version: Mapped[int] = mapped_column(nullable=False)
    previous_total_tax_liability: Mapped[Rupees] = mapped_column(nullable=False)
    revised_total_tax_liability: Mapped[Rupees] = mapped_column(nullable=False)
    previous_snapshot: Mapped[dict] = mapped_column(nullable=False)
    revised_snapshot: Mapped[dict] = mapped_column(nullable=False)
    variance_snapshot: Mapped[dict] = mapped_column(nullable=False)
    previous_inputs_snapshot: Mapped[dict] = mapped_column(nullable=False)
    revised_inputs_snapshot: Mapped[dict] = mapped_column(nullable=False)

    __table_args__ = (
        UniqueConstraint("assessment_id", "revision_number", name="uq_advance_tax_revision_number"),
    )

    def to_dto(self):
        from corptax_engines.revision import RevisionSnapshot
        from corptax_modules.advance_tax.models import AdvanceTaxRevision
        return AdvanceTaxRevision(
            id=self.id,
            assessment_id=self.assessment_id,
            revision_number=self.revision_number,
            revision_date=self.revision_date,
            revision_quarter=self.revision_quarter,
            previous=RevisionSnapshot.from_dict(self.previous_snapshot),
            revised=RevisionSnapshot.from_dict(self.revised_snapshot),
            variance=RevisionSnapshot.from_dict(self.variance_snapshot),
            previous_inputs=dict(self.previous_inputs_snapshot),
            revised_inputs=dict(self.revised_inputs_snapshot),
            rule_pack_version=self.rule_pack_version,
            reason=self.reason,
        )

    @classmethod
    def from_dto(cls, dto, created_by_id: UUID) -> AdvanceTaxRevisionModel:
        return cls(
            id=dto.id,
            assessment_id=dto.assessment_id,
            revision_number=dto.revision_number,
            revision_date=dto.revision_date,
            revision_quarter=dto.revision_quarter,
            reason=dto.reason,
            rule_pack_version=dto.rule_pack_version,
            previous_total_tax_liability=dto.previous.total_tax_liability,
            revised_total_tax_liability=dto.revised.total_tax_liability,
            previous_snapshot=dto.previous.as_dict(),
            revised_snapshot=dto.revised.as_dict(),
            variance_snapshot=dto.variance.as_dict(),
            previous_inputs_snapshot=dict(dto.previous_inputs),
            revised_inputs_snapshot=dict(dto.revised_inputs),
            created_by_id=created_by_id,
        )

    def __repr__(self) -> str:
        return f"<AdvanceTaxRevisionModel {self.assessment_id} #{self.revision_number}>"


# ---------------------------------------------------------------------------
# MAT credit ledger
# ---------------------------------------------------------------------------

class MatCreditModel(TrackedBase):
    """
    ORM model for ``MatCreditEntry`` -- MAT credit created in one year.

    Guarantees:
        - (company_id, financial_year) is unique.
        - Never deleted; ``credit_created`` keeps the amount first posted.
          Only ``credit_adjusted`` (net revision adjustments),
          ``credit_utilized``, ``balance`` and ``status`` may change, and
          ``balance`` never goes negative (immutability listener).
    """

    __tablename__ = "mat_credit_register"

    company_id: Mapped[UUID] = mapped_column(nullable=False)
    financial_year: Mapped[FinancialYearLabel] = mapped_column(nullable=False)
    assessment_year: Mapped[FinancialYearLabel] = mapped_column(nullable=False)
    assessment_id: Mapped[UUID | None] = mapped_column(
        ForeignKey("advance_tax_assessments.id"), nullable=True,
    )
    book_profit: Mapped[Rupees] = mapped_column(nullable=False)
    mat_on_book_profit: Mapped[Rupees] = mapped_column(nullable=False)
    mat_surcharge: Mapped[Rupees] = mapped_column(default=_ZERO)
    mat_cess: Mapped[Rupees] = mapped_column(default=_ZERO)
    total_mat: Mapped[Rupees] = mapped_column(nullable=False)
    normal_tax: Mapped[Rupees] = mapped_column(nullable=False)
    credit_created: Mapped[Rupees] = mapped_column(nullable=False)
    credit_adjusted: Mapped[Rupees] = mapped_column(default=_ZERO)
    credit_utilized: Mapped[Rupees] = mapped_column(default=_ZERO)
    balance: Mapped[Rupees] = mapped_column(nullable=False)
    expiry_year: Mapped[FinancialYearLabel] = mapped_column(nullable=False)
    status: Mapped[str] = mapped_column(String(50), default="active")

    __table_args__ = (
        UniqueConstraint("company_id", "financial_year", name="uq_mat_credit_company_fy"),
        Index("idx_mat_credit_company", "company_id"),
    )

    @property
    def effective_credit(self) -> Decimal:
        return self.credit_created + (self.credit_adjusted or _ZERO)

    def to_dto(self, is_expired: bool = False):
        from corptax_modules.advance_tax.models import MatCreditEntry, MatCreditStatus
        return MatCreditEntry(
            id=self.id,
            company_id=self.company_id,
            financial_year=self.financial_year,
            assessment_year=self.assessment_year,
            assessment_id=self.assessment_id,
            book_profit=self.book_profit,
            mat_on_book_profit=self.mat_on_book_profit,
            mat_surcharge=self.mat_surcharge,
            mat_cess=self.mat_cess,
            total_mat=self.total_mat,
            normal_tax=self.normal_tax,
            credit_created=self.effective_credit,
            credit_utilized=self.credit_utilized,
            balance=self.balance,
            expiry_year=self.expiry_year,
            status=MatCreditStatus(self.status),
            is_expired=is_expired,
            credit_adjusted=self.credit_adjusted or _ZERO,
        )

    def to_lot(self):
        from corptax_engines.mat_credit import MatCreditLot
        from corptax_kernel.domain.fiscal_year import FinancialYear
        return MatCreditLot(
            lot_id=self.id,
            financial_year=FinancialYear.parse(self.financial_year),
            credit_created=self.effective_credit,
            credit_utilized=self.credit_utilized,
            expires_after=FinancialYear.parse(self.expiry_year),
        )

    def __repr__(self) -> str:
        return f"<MatCreditModel {self.company_id} FY{self.financial_year} balance={self.balance}>"


class MatCreditUtilizationModel(TrackedBase):
    """
    ORM model for ``MatCreditUtilization``.

    Guarantees:
        - Immutable from creation (immutability listener).
    """

    __tablename__ = "mat_credit_utilizations"

    mat_credit_id: Mapped[UUID] = mapped_column(
        ForeignKey("mat_credit_register.id"), nullable=False,
    )
    company_id: Mapped[UUID] = mapped_column(nullable=False)
    source_financial_year: Mapped[FinancialYearLabel] = mapped_column(nullable=False)
    utilized_in_financial_year: Mapped[FinancialYearLabel] = mapped_column(nullable=False)
    assessment_id: Mapped[UUID | None] = mapped_column(
        ForeignKey("advance_tax_assessments.id"), nullable=True,
    )
    amount: Mapped[Rupees] = mapped_column(nullable=False)
    balance_after: Mapped[Rupees] = mapped_column(nullable=False)
    utilization_date: Mapped[date] = mapped_column(Date, nullable=False)

    __table_args__ = (
        Index("idx_mat_utilization_credit", "mat_credit_id"),
        Index("idx_mat_utilization_company", "company_id"),
    )

    def to_dto(self):
        from corptax_modules.advance_tax.models import MatCreditUtilization
        return MatCreditUtilization(
            id=self.id,
            mat_credit_id=self.mat_credit_id,
            company_id=self.company_id,
            source_financial_year=self.source_financial_year,
            utilized_in_financial_year=self.utilized_in_financial_year,
            assessment_id=self.assessment_id,
            amount=self.amount,
            balance_after=self.balance_after,
            utilization_date=self.utilization_date,
        )


class MatCreditAdjustmentModel(TrackedBase):
    """
    ORM model for ``MatCreditAdjustment``.

    Guarantees:
        - Immutable from creation (immutability listener).
        - One row per revision that changed the year's MAT credit.
    """

    __tablename__ = "mat_credit_adjustments"

    mat_credit_id: Mapped[UUID] = mapped_column(
        ForeignKey("mat_credit_register.id"), nullable=False,
    )
    company_id: Mapped[UUID] = mapped_column(nullable=False)
    financial_year: Mapped[FinancialYearLabel] = mapped_column(nullable=False)
    assessment_id: Mapped[UUID] = mapped_column(
        ForeignKey("advance_tax_assessments.id"), nullable=False,
    )
    revision_number: Mapped[int] = mapped_column(Integer, nullable=False)
    previous_credit: Mapped[Rupees] = mapped_column(nullable=False)
    revised_credit: Mapped[Rupees] = mapped_column(nullable=False)
    amount: Mapped[Rupees] = mapped_column(nullable=False)
    balance_after: Mapped[Rupees] = mapped_column(nullable=False)
    adjustment_date: Mapped[date] = mapped_column(Date, nullable=False)

    __table_args__ = (
        UniqueConstraint("mat_credit_id", "revision_number", name="uq_mat_adjustment_revision"),
        Index("idx_mat_adjustment_company", "company_id"),
    )

    def to_dto(self):
        from corptax_modules.advance_tax.models import MatCreditAdjustment
        return MatCreditAdjustment(
            id=self.id,
            mat_credit_id=self.mat_credit_id,
            company_id=self.company_id,
            financial_year=self.financial_year,
            assessment_id=self.assessment_id,
            revision_number=self.revision_number,
            previous_credit=self.previous_credit,
            revised_credit=self.revised_credit,
            amount=self.amount,
            balance_after=self.balance_after,
            adjustment_date=self.adjustment_date,
        )
