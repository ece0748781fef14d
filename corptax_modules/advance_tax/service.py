"""
Advance Tax Service -- orchestrates assessments, payments, revisions and the
MAT credit ledger over the pure engines.

Responsibility:
    Thin glue layer between the calculation engines and persistence.  All
    tax arithmetic is delegated to ``AssessmentCalculator`` (which composes
    the engines), ``PaymentAllocator`` and ``InterestCalculator``; this
    service owns loading, writing and the transaction boundary.

Architecture:
    corptax_modules -- module glue (this layer).
    1. Loads ORM rows and turns them into engine inputs (credit lots, late
       credits, payments).
    2. Runs one full computation pass; nothing is written until the pass
       has succeeded.
    3. Writes the derived state (assessment, schedule rows, allocations,
       ledger movements) and commits.

Invariants:
    - The service owns the transaction boundary: commit on success,
      rollback on any failure.
    - Schedule rows are always regenerated wholesale; payments are replayed
      by date against the regenerated rows.
    - Optimistic concurrency: ``expected_revision_count`` is checked
      explicitly and ``row_version`` guards concurrent flushes; both surface
      as ``StaleRevisionError``.
    - Amounts are ``Decimal`` throughout -- NEVER ``float``.

Failure modes:
    - Typed ``CorpTaxError`` subclasses for every business failure
      (not found, finalized, stale revision, invalid input).
    - A failure of the journal poster never fails ``record_payment``: the
      payment is kept unposted with a warning in the result.

Audit relevance:
    - Every mutation logs a structured event with the assessment id and
      the resulting amounts.
    - Revisions, MAT utilizations and posted payments are append-only
      (``corptax_kernel.db.immutability``).

Usage:
    service = AdvanceTaxService(session, rule_pack_provider, tds_tcs_source, clock=clock)
    assessment = service.create_assessment(company_id, "2024-25", inputs, actor_id)
    service.activate_assessment(assessment.id, actor_id)
    result = service.record_payment(assessment.id, Decimal("150000"), date(2024, 6, 10), actor_id)
"""

from __future__ import annotations

from collections import defaultdict
from collections.abc import Iterator, Sequence
from contextlib import contextmanager
from dataclasses import dataclass, replace
from datetime import date
from decimal import Decimal
from uuid import UUID, uuid4

from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session
from sqlalchemy.orm.exc import StaleDataError

from corptax_config.provider import CachingRulePackProvider, FileRulePackProvider, RulePackProvider
from corptax_engines.allocation import PaymentAllocation, PaymentAllocator, PaymentToAllocate
from corptax_engines.computation import TaxCredits
from corptax_engines.interest import Interest234CResult, InterestCalculator
from corptax_engines.mat_credit import (
    MatCreditLot,
    available_credit,
    expiring_within,
    expiry_year,
    is_expired,
)
from corptax_engines.rates import RateResolver
from corptax_engines.revision import RevisionAdvice, compute_variance, should_recommend_revision
from corptax_engines.schedule import LateCredit, ScheduleLine
from corptax_kernel.domain.clock import Clock, SystemClock
from corptax_kernel.domain.fiscal_year import FinancialYear
from corptax_kernel.domain.rounding import ZERO, non_negative, round_rupee
from corptax_kernel.exceptions import (
    AssessmentAlreadyExistsError,
    AssessmentFinalizedError,
    AssessmentNotFoundError,
    ImmutabilityViolationError,
    InvalidAmountError,
    InvalidQuarterError,
    InvalidStatusTransitionError,
    MatCreditNotFoundError,
    MatLedgerInvariantError,
    PaymentNotFoundError,
    StaleRevisionError,
    UnresolvedShortfallError,
    ValidationError,
)
from corptax_kernel.logging_config import LogContext, get_logger
from corptax_modules.advance_tax.calculator import (
    AssessmentCalculator,
    AssessmentComputation,
    WhatIfResult,
    apply_adjustments,
)
from corptax_modules.advance_tax.collaborators import (
    JournalPoster,
    NullJournalPoster,
    StaticTdsTcsSource,
    TdsTcsSource,
)
from corptax_modules.advance_tax.config import AdvanceTaxConfig
from corptax_modules.advance_tax.helpers import (
    change_percentage,
    classify_compliance,
    compliance_alerts,
    net_late_credits,
    quarter_status,
    split_challan_amount,
)
from corptax_modules.advance_tax.models import (
    AdvanceTaxAssessment,
    AdvanceTaxPayment,
    AdvanceTaxRevision,
    AdvanceTaxTracker,
    AssessmentInputs,
    AssessmentStatus,
    ChallanSnapshot,
    CompanyCompliance,
    ComplianceDashboard,
    ComplianceStatus,
    CreditType,
    DashboardTotals,
    InterestBreakdown,
    MatCreditAdjustment,
    MatCreditEntry,
    MatCreditStatus,
    MatCreditSummary,
    MatCreditUtilization,
    PaymentAllocationLine,
    PaymentResult,
    PaymentStatus,
    QuarterStatus,
    ScheduleRow,
    UpcomingDueDate,
    WhatIfAdjustments,
    YearOverYear,
)
from corptax_modules.advance_tax.orm import (
    AdvanceTaxAssessmentModel,
    AdvanceTaxCreditModel,
    AdvanceTaxPaymentAllocationModel,
    AdvanceTaxPaymentModel,
    AdvanceTaxRevisionModel,
    AdvanceTaxScheduleModel,
    MatCreditAdjustmentModel,
    MatCreditModel,
    MatCreditUtilizationModel,
)
from corptax_modules.advance_tax.workflows import ASSESSMENT_WORKFLOW

logger = get_logger("modules.advance_tax.service")

_UNSET = object()


def default_rule_pack_provider(
    config: AdvanceTaxConfig | None = None,
    clock: Clock | None = None,
) -> CachingRulePackProvider:
    """Packaged YAML rule packs behind a TTL cache sized by ``config``."""
    config = config or AdvanceTaxConfig.with_defaults()
    return CachingRulePackProvider(
        FileRulePackProvider(),
        clock=clock,
        ttl_seconds=config.rule_pack_cache_ttl_seconds,
    )


@dataclass(frozen=True)
class _Tracking:
    """Payments replayed against a schedule as of one date."""

    as_of: date
    allocations: tuple[tuple[UUID, PaymentAllocation], ...]
    rows: tuple[ScheduleRow, ...]
    interest: Interest234CResult
    total_paid: Decimal


class AdvanceTaxService:
    """
    Orchestrates the advance tax lifecycle for companies and financial years.

    Contract:
        Callers supply a ``Session``, a rule pack provider, a TDS/TCS source,
        an optional journal poster and an optional ``Clock``.  Every mutating
        method commits on success and rolls back on failure.  Read methods
        never write.

    Guarantees:
        - One assessment per company and financial year.
        - Identical inputs and rule-pack version give identical figures.
        - Nothing from a failed computation pass is persisted.

    Non-goals:
        - Filing returns or rendering challans (``generate_challan`` returns
          data only).
    """

    def __init__(
        self,
        session: Session,
        rule_pack_provider: RulePackProvider | None = None,
        tds_tcs_source: TdsTcsSource | None = None,
        journal_poster: JournalPoster | None = None,
        config: AdvanceTaxConfig | None = None,
        clock: Clock | None = None,
    ):
        self._session = session
        self._clock = clock or SystemClock()
        self._config = config or AdvanceTaxConfig.with_defaults()
        self._rule_packs = rule_pack_provider or default_rule_pack_provider(
            self._config, self._clock,
        )
        self._tds_tcs = tds_tcs_source or StaticTdsTcsSource()
        self._journal = journal_poster or NullJournalPoster()

        # Stateless engines
        self._calculator = AssessmentCalculator(RateResolver(self._rule_packs), self._config)
        self._schedule = self._calculator.schedule_generator
        self._allocator = PaymentAllocator()
        self._interest = InterestCalculator(
            installments=self._config.installment_rules(),
            rate_per_month=self._config.interest_rate_per_month,
            threshold_234b=self._config.threshold_234b,
        )

    # =========================================================================
    # Transaction boundary
    # =========================================================================

    @contextmanager
    def _transaction(self, assessment_id: UUID | None = None) -> Iterator[None]:
        with LogContext.bind(assessment_id=assessment_id):
            try:
                yield
                self._session.commit()
            except StaleDataError as exc:
                self._session.rollback()
                logger.warning(
                    "advance_tax_concurrent_update_detected",
                    extra={"assessment_id": str(assessment_id)},
                )
                raise StaleRevisionError(str(assessment_id)) from exc
            except Exception:
                self._session.rollback()
                raise

    # =========================================================================
    # Assessment lifecycle
    # =========================================================================

    def create_assessment(
        self,
        company_id: UUID,
        financial_year: str,
        inputs: AssessmentInputs,
        actor_id: UUID,
    ) -> AdvanceTaxAssessment:
        """
        Create a draft assessment and its schedule.

        TDS/TCS known today become the up-front credits of the schedule.

        Raises:
            AssessmentAlreadyExistsError: company already has one for the year.
            InvalidRegimeError, RulePackNotFoundError, InvalidAmountError.
        """
        fy = FinancialYear.parse(financial_year)
        with self._transaction():
            if self._find_model(company_id, fy.label) is not None:
                raise AssessmentAlreadyExistsError(str(company_id), fy.label)

            model = AdvanceTaxAssessmentModel(
                id=uuid4(),
                company_id=company_id,
                financial_year=fy.label,
                assessment_year=fy.assessment_year.label,
                status=AssessmentStatus.DRAFT.value,
                upfront_tds=round_rupee(self._tds_tcs.tds_receivable(company_id, fy.label)),
                upfront_tcs=round_rupee(self._tds_tcs.tcs_credit(company_id, fy.label)),
                interest_234b=ZERO,
                interest_234c=ZERO,
                total_interest=ZERO,
                revision_count=0,
                created_by_id=actor_id,
            )
            computation = self._compute_for(model, inputs)
            model.apply_inputs(inputs)
            model.apply_computation(computation)
            self._session.add(model)
            try:
                self._session.flush()
            except IntegrityError as exc:
                raise AssessmentAlreadyExistsError(str(company_id), fy.label) from exc
            self._write_schedule(model, computation, actor_id)

        logger.info("advance_tax_assessment_created", extra={
            "assessment_id": str(model.id),
            "company_id": str(company_id),
            "financial_year": fy.label,
            "regime": model.regime,
            "rule_pack_version": model.rule_pack_version,
            "total_tax_liability": str(model.total_tax_liability),
            "tax_payable_after_mat": str(model.tax_payable_after_mat),
        })
        return model.to_dto()

    def update_assessment(
        self,
        assessment_id: UUID,
        inputs: AssessmentInputs,
        actor_id: UUID,
    ) -> AdvanceTaxAssessment:
        """
        Replace the inputs of a draft assessment and recompute.

        Active assessments change only through ``create_revision``.
        """
        with self._transaction(assessment_id):
            model = self._get_model(assessment_id)
            self._require_transition(model, "update")
            computation = self._compute_for(model, inputs)
            model.apply_inputs(inputs)
            model.apply_computation(computation)
            model.updated_by_id = actor_id
            self._write_schedule(model, computation, actor_id)

        logger.info("advance_tax_assessment_updated", extra={
            "assessment_id": str(assessment_id),
            "total_tax_liability": str(model.total_tax_liability),
            "tax_payable_after_mat": str(model.tax_payable_after_mat),
        })
        return model.to_dto()

    def activate_assessment(self, assessment_id: UUID, actor_id: UUID) -> AdvanceTaxAssessment:
        with self._transaction(assessment_id):
            model = self._get_model(assessment_id)
            transition = self._require_transition(model, "activate")
            model.status = transition.to_state
            model.updated_by_id = actor_id

        logger.info("advance_tax_assessment_activated", extra={
            "assessment_id": str(assessment_id),
        })
        return model.to_dto()

    def finalize_assessment(
        self,
        assessment_id: UUID,
        actor_id: UUID,
        expected_revision_count: int | None = None,
    ) -> AdvanceTaxAssessment:
        """
        Close the assessment for the year.

        Recomputes against the current MAT credit ledger, computes 234B with
        today as the determination date (only payments made by 31 March
        count as advance tax), and writes the year's MAT ledger
        movements: a new credit entry when MAT exceeded normal tax, and one
        utilization per lot drawn down.

        Raises:
            InvalidStatusTransitionError: not active.
            StaleRevisionError: ``expected_revision_count`` is out of date.
            UnresolvedShortfallError: shortfall remains and the policy blocks it.
        """
        with self._transaction(assessment_id):
            model = self._get_model(assessment_id)
            transition = self._require_transition(model, "finalize")
            self._check_revision_count(model, expected_revision_count)
            today = self._clock.today()

            inputs = model.to_dto().inputs
            computation = self._compute_for(model, inputs)
            model.apply_computation(computation)
            self._write_schedule(model, computation, actor_id)

            assessed = non_negative(
                model.tax_payable_after_mat - model.tds_receivable - model.tcs_credit
            )
            if self._config.block_finalize_with_shortfall:
                shortfall = non_negative(assessed - model.advance_tax_paid)
                if shortfall > ZERO:
                    raise UnresolvedShortfallError(str(model.id), shortfall)

            result_234b = self._interest.interest_234b(
                assessed_tax=assessed,
                advance_tax_paid=self._advance_tax_paid_by_year_end(model, today),
                financial_year=model.financial_year,
                determination_date=today,
            )
            model.interest_234b = result_234b.interest
            model.total_interest = model.interest_234b + model.interest_234c

            self._post_mat_ledger(model, computation, actor_id, today)
            model.status = transition.to_state
            model.finalized_on = today
            model.updated_by_id = actor_id

        logger.info("advance_tax_assessment_finalized", extra={
            "assessment_id": str(assessment_id),
            "interest_234b": str(model.interest_234b),
            "interest_234c": str(model.interest_234c),
            "mat_credit_created": str(model.mat_credit_created),
            "mat_credit_utilized": str(model.mat_credit_to_utilize),
        })
        return model.to_dto()

    def delete_assessment(self, assessment_id: UUID, actor_id: UUID) -> None:
        """Delete a draft assessment with its schedule, credits and unposted payments."""
        with self._transaction(assessment_id):
            model = self._get_model(assessment_id)
            if model.status != AssessmentStatus.DRAFT.value:
                if model.status == AssessmentStatus.FINALIZED.value:
                    raise AssessmentFinalizedError(str(model.id), "delete")
                raise InvalidStatusTransitionError(str(model.id), model.status, "delete")

            self._clear_allocations(model.id)
            for row in self._schedule_rows(model.id):
                self._session.delete(row)
            for credit in self._credit_rows(model.id):
                self._session.delete(credit)
            for payment in self._payment_rows(model.id):
                self._session.delete(payment)
            self._session.flush()
            self._session.delete(model)

        logger.info("advance_tax_assessment_deleted", extra={
            "assessment_id": str(assessment_id),
            "actor_id": str(actor_id),
        })

    # =========================================================================
    # Dry run / what-if (never persisted)
    # =========================================================================

    def preview(
        self,
        company_id: UUID,
        financial_year: str,
        inputs: AssessmentInputs,
    ) -> AssessmentComputation:
        """Full computation pass for inputs that are not (yet) an assessment."""
        fy = FinancialYear.parse(financial_year)
        existing = self._find_model(company_id, fy.label)
        if existing is not None:
            return self._compute_for(existing, inputs)

        tds = round_rupee(self._tds_tcs.tds_receivable(company_id, fy.label))
        tcs = round_rupee(self._tds_tcs.tcs_credit(company_id, fy.label))
        return self._calculator.compute(
            financial_year=fy,
            inputs=inputs,
            credits=TaxCredits(tds_credit=tds, tcs_credit=tcs),
            credits_known_upfront=tds + tcs,
            credit_lots=self._credit_lots(company_id, fy.label, None),
        )

    def what_if(self, assessment_id: UUID, adjustments: WhatIfAdjustments) -> WhatIfResult:
        """Recompute an assessment with adjusted inputs, next to its baseline."""
        model = self._get_model(assessment_id)
        dto = model.to_dto()
        computation = self._compute_for(model, apply_adjustments(dto.inputs, adjustments))
        result = WhatIfResult(
            name=adjustments.name,
            adjustments=adjustments,
            baseline=dto.snapshot(),
            computation=computation,
        )
        logger.info("advance_tax_what_if_computed", extra={
            "assessment_id": str(assessment_id),
            "scenario": adjustments.name,
            "total_tax_liability_change": str(result.variance.total_tax_liability),
        })
        return result

    # =========================================================================
    # TDS / TCS
    # =========================================================================

    def refresh_tds_tcs(self, assessment_id: UUID, actor_id: UUID) -> AdvanceTaxAssessment:
        """
        Pull current TDS/TCS totals and recompute.

        An increase is recorded as a late credit in the current quarter and
        reduces that quarter's installment onwards.  A decrease reduces the
        most recent late credits first, then the up-front credit.
        """
        with self._transaction(assessment_id):
            model = self._get_model(assessment_id)
            if model.status == AssessmentStatus.FINALIZED.value:
                raise AssessmentFinalizedError(str(model.id), "refresh TDS/TCS")

            today = self._clock.today()
            quarter = self._schedule.quarter_for_date(model.financial_year, today)
            late_rows = self._credit_rows(model.id)
            sources = (
                (CreditType.TDS, "upfront_tds", self._tds_tcs.tds_receivable),
                (CreditType.TCS, "upfront_tcs", self._tds_tcs.tcs_credit),
            )
            changed = False
            for credit_type, upfront_attr, fetch in sources:
                current = round_rupee(fetch(model.company_id, model.financial_year))
                rows = [r for r in late_rows if r.credit_type == credit_type.value]
                upfront = getattr(model, upfront_attr)
                delta = current - upfront - sum((r.amount for r in rows), ZERO)
                if delta == ZERO:
                    continue
                changed = True
                if delta > ZERO:
                    self._session.add(AdvanceTaxCreditModel(
                        assessment_id=model.id,
                        credit_type=credit_type.value,
                        quarter=quarter,
                        amount=delta,
                        recorded_on=today,
                        created_by_id=actor_id,
                    ))
                else:
                    new_upfront, amounts = net_late_credits(
                        upfront, [(r.id, r.amount) for r in rows], -delta,
                    )
                    setattr(model, upfront_attr, new_upfront)
                    for row in rows:
                        if amounts[row.id] == ZERO:
                            self._session.delete(row)
                        else:
                            row.amount = amounts[row.id]
                logger.info("advance_tax_credit_refreshed", extra={
                    "assessment_id": str(model.id),
                    "credit_type": credit_type.value,
                    "delta": str(delta),
                    "quarter": quarter,
                })

            if changed:
                self._session.flush()
                computation = self._compute_for(model, model.to_dto().inputs)
                model.apply_computation(computation)
                model.updated_by_id = actor_id
                self._write_schedule(model, computation, actor_id)

        return model.to_dto()

    # =========================================================================
    # Payments
    # =========================================================================

    def record_payment(
        self,
        assessment_id: UUID,
        amount: Decimal,
        payment_date: date,
        actor_id: UUID,
        quarter_hint: int | None = None,
        create_journal_entry: bool = False,
        challan_number: str | None = None,
        bsr_code: str | None = None,
        cin: str | None = None,
        bank_account_id: UUID | None = None,
        notes: str | None = None,
    ) -> PaymentResult:
        """
        Record an advance tax payment and re-track every installment.

        With ``quarter_hint`` the whole amount goes to that installment;
        otherwise it fills installments in order.  234C is recomputed for all
        quarters; 234B waits for finalization.

        Postconditions:
            - The payment is persisted even when journal posting fails; the
              failure is reported in ``PaymentResult.warning``.
        """
        self._validate_payment(amount, payment_date, quarter_hint)
        with self._transaction(assessment_id):
            model = self._get_model(assessment_id)
            if model.status == AssessmentStatus.FINALIZED.value:
                raise AssessmentFinalizedError(str(model.id), "record a payment")

            payment = AdvanceTaxPaymentModel(
                id=uuid4(),
                assessment_id=model.id,
                company_id=model.company_id,
                payment_date=payment_date,
                amount=amount,
                quarter_hint=quarter_hint,
                challan_number=challan_number,
                bsr_code=bsr_code,
                cin=cin,
                bank_account_id=bank_account_id,
                status=PaymentStatus.RECORDED.value,
                is_posted=False,
                notes=notes,
                created_by_id=actor_id,
            )
            self._session.add(payment)
            self._session.flush()
            self._sync_tracking(model, actor_id)
            model.updated_by_id = actor_id

            warning = None
            if create_journal_entry:
                warning = self._post_payment(model, payment, actor_id)

        logger.info("advance_tax_payment_recorded", extra={
            "assessment_id": str(assessment_id),
            "payment_id": str(payment.id),
            "amount": str(amount),
            "payment_date": payment_date.isoformat(),
            "quarter_hint": quarter_hint,
            "is_posted": payment.is_posted,
        })
        return PaymentResult(
            payment=self._payment_dto(payment),
            tracker=self.get_tracker(assessment_id),
            warning=warning,
        )

    def retry_payment_posting(self, payment_id: UUID, actor_id: UUID) -> PaymentResult:
        """Post an unposted payment to the ledger.  Already posted payments are returned as is."""
        with self._transaction():
            payment = self._get_payment(payment_id)
            model = self._get_model(payment.assessment_id)
            warning = None
            if not payment.is_posted:
                warning = self._post_payment(model, payment, actor_id)

        return PaymentResult(
            payment=self._payment_dto(payment),
            tracker=self.get_tracker(payment.assessment_id),
            warning=warning,
        )

    def update_payment(
        self,
        payment_id: UUID,
        actor_id: UUID,
        amount: Decimal | None = None,
        payment_date: date | None = None,
        quarter_hint: int | None | object = _UNSET,
        challan_number: str | None = None,
        bsr_code: str | None = None,
        cin: str | None = None,
        notes: str | None = None,
    ) -> AdvanceTaxPayment:
        """
        Edit an unposted payment and replay all payments.

        ``None`` leaves a field unchanged; pass ``quarter_hint=None``
        explicitly to clear the hint.

        Raises:
            ImmutabilityViolationError: the payment is posted.
        """
        with self._transaction():
            payment = self._get_payment(payment_id)
            self._require_unposted(payment, "modified")
            model = self._get_model(payment.assessment_id)
            if model.status == AssessmentStatus.FINALIZED.value:
                raise AssessmentFinalizedError(str(model.id), "update a payment")

            new_hint = payment.quarter_hint if quarter_hint is _UNSET else quarter_hint
            self._validate_payment(
                amount if amount is not None else payment.amount,
                payment_date or payment.payment_date,
                new_hint,
            )
            if amount is not None:
                payment.amount = amount
            if payment_date is not None:
                payment.payment_date = payment_date
            payment.quarter_hint = new_hint
            if challan_number is not None:
                payment.challan_number = challan_number
            if bsr_code is not None:
                payment.bsr_code = bsr_code
            if cin is not None:
                payment.cin = cin
            if notes is not None:
                payment.notes = notes
            payment.updated_by_id = actor_id
            self._session.flush()
            self._sync_tracking(model, actor_id)
            model.updated_by_id = actor_id

        logger.info("advance_tax_payment_updated", extra={
            "payment_id": str(payment_id),
            "amount": str(payment.amount),
            "payment_date": payment.payment_date.isoformat(),
        })
        return self._payment_dto(payment)

    def delete_payment(self, payment_id: UUID, actor_id: UUID) -> AdvanceTaxTracker:
        """Delete an unposted payment and replay the rest."""
        with self._transaction():
            payment = self._get_payment(payment_id)
            self._require_unposted(payment, "deleted")
            model = self._get_model(payment.assessment_id)
            if model.status == AssessmentStatus.FINALIZED.value:
                raise AssessmentFinalizedError(str(model.id), "delete a payment")

            self._clear_allocations(model.id)
            self._session.delete(payment)
            self._session.flush()
            self._sync_tracking(model, actor_id)
            model.updated_by_id = actor_id

        logger.info("advance_tax_payment_deleted", extra={
            "payment_id": str(payment_id),
            "assessment_id": str(model.id),
        })
        return self.get_tracker(model.id)

    def list_payments(self, assessment_id: UUID) -> tuple[AdvanceTaxPayment, ...]:
        self._get_model(assessment_id)
        return tuple(self._payment_dto(p) for p in self._payment_rows(assessment_id))

    # =========================================================================
    # Interest
    # =========================================================================

    def recalculate_interest(self, assessment_id: UUID, actor_id: UUID) -> AdvanceTaxAssessment:
        """Re-track installments and 234C as of today (used by the interest sweep)."""
        with self._transaction(assessment_id):
            model = self._get_model(assessment_id)
            if model.status == AssessmentStatus.FINALIZED.value:
                raise AssessmentFinalizedError(str(model.id), "recalculate interest")
            self._sync_tracking(model, actor_id)

        logger.debug("advance_tax_interest_recalculated", extra={
            "assessment_id": str(assessment_id),
            "interest_234c": str(model.interest_234c),
        })
        return model.to_dto()

    def get_interest_breakdown(
        self,
        assessment_id: UUID,
        as_of: date | None = None,
    ) -> InterestBreakdown:
        """234B and 234C as they would stand on ``as_of`` (default today)."""
        model = self._get_model(assessment_id)
        as_of = as_of or self._clock.today()
        tracking = self._track(model, as_of)
        assessed = non_negative(model.tax_payable_after_mat - model.tds_receivable - model.tcs_credit)
        result_234b = self._interest.interest_234b(
            assessed_tax=assessed,
            advance_tax_paid=self._advance_tax_paid_by_year_end(model, as_of),
            financial_year=model.financial_year,
            determination_date=as_of,
        )
        return InterestBreakdown(
            assessment_id=model.id,
            as_of=as_of,
            interest_234b=result_234b,
            interest_234c=tracking.interest,
        )

    # =========================================================================
    # Revisions
    # =========================================================================

    def create_revision(
        self,
        assessment_id: UUID,
        new_inputs: AssessmentInputs,
        expected_revision_count: int,
        actor_id: UUID,
        revision_quarter: int | None = None,
        reason: str | None = None,
    ) -> AdvanceTaxRevision:
        """
        Revise an active assessment.

        Snapshots the current figures, runs a full pass on ``new_inputs``,
        records an immutable revision with previous/revised/variance,
        increments ``revision_count`` and regenerates the schedule with
        payments reattached by date.  On a finalized year the MAT ledger is
        reconciled to the revised figures with appended records.

        Raises:
            StaleRevisionError: ``expected_revision_count`` is out of date.
            AssessmentFinalizedError: finalized and the policy forbids it.
            InvalidStatusTransitionError: still a draft.
            MatLedgerInvariantError: the revision would take back MAT credit
                that later years already utilized.
        """
        with self._transaction(assessment_id):
            model = self._get_model(assessment_id)
            if (
                model.status == AssessmentStatus.FINALIZED.value
                and not self._config.allow_revision_after_finalize
            ):
                raise AssessmentFinalizedError(str(model.id), "revise")
            self._require_transition(model, "revise")
            self._check_revision_count(model, expected_revision_count)

            today = self._clock.today()
            fy = FinancialYear.parse(model.financial_year)
            quarter = revision_quarter if revision_quarter is not None else fy.quarter_of(today)
            if not 1 <= quarter <= len(self._schedule.installments):
                raise InvalidQuarterError(quarter)

            before = model.to_dto()
            computation = self._compute_for(model, new_inputs)
            model.apply_inputs(new_inputs)
            model.apply_computation(computation)
            self._write_schedule(model, computation, actor_id)

            previous = before.snapshot()
            revised = model.to_dto().snapshot()
            revision = AdvanceTaxRevision(
                id=uuid4(),
                assessment_id=model.id,
                revision_number=model.revision_count + 1,
                revision_date=today,
                revision_quarter=quarter,
                previous=previous,
                revised=revised,
                variance=compute_variance(previous, revised),
                previous_inputs=before.inputs.as_dict(),
                revised_inputs=new_inputs.as_dict(),
                rule_pack_version=computation.rates.rule_pack_version,
                reason=reason,
            )
            self._session.add(AdvanceTaxRevisionModel.from_dto(revision, actor_id))
            model.revision_count = revision.revision_number
            model.last_revision_date = today
            model.last_revision_quarter = quarter
            model.updated_by_id = actor_id
            try:
                self._session.flush()
            except IntegrityError as exc:
                raise StaleRevisionError(
                    str(model.id), expected_revision_count, expected_revision_count + 1,
                ) from exc
            if model.status == AssessmentStatus.FINALIZED.value:
                self._reconcile_mat_ledger(
                    model, computation, revision.revision_number, actor_id, today,
                )

        logger.info("advance_tax_revision_created", extra={
            "assessment_id": str(assessment_id),
            "revision_number": revision.revision_number,
            "revision_quarter": quarter,
            "total_tax_liability_change": str(revision.variance.total_tax_liability),
            "rule_pack_version": revision.rule_pack_version,
        })
        return revision

    def list_revisions(self, assessment_id: UUID) -> tuple[AdvanceTaxRevision, ...]:
        self._get_model(assessment_id)
        rows = self._session.scalars(
            select(AdvanceTaxRevisionModel)
            .where(AdvanceTaxRevisionModel.assessment_id == assessment_id)
            .order_by(AdvanceTaxRevisionModel.revision_number)
        )
        return tuple(row.to_dto() for row in rows)

    def revision_advice(
        self,
        assessment_id: UUID,
        as_of: date | None = None,
        ytd_revenue: Decimal | None = None,
        ytd_expenses: Decimal | None = None,
    ) -> RevisionAdvice:
        """Read-only advice on whether the estimate should be revised."""
        model = self._get_model(assessment_id)
        return should_recommend_revision(
            financial_year=model.financial_year,
            as_of=as_of or self._clock.today(),
            ytd_revenue=model.ytd_revenue if ytd_revenue is None else ytd_revenue,
            ytd_expenses=model.ytd_expenses if ytd_expenses is None else ytd_expenses,
            projected_profit_before_tax=model.projected_profit_before_tax,
            last_revision_quarter=model.last_revision_quarter,
            threshold_percentage=self._config.revision_variance_threshold,
            due_window_days=self._config.revision_due_window_days,
            installments=self._schedule.installments,
        )

    # =========================================================================
    # Queries
    # =========================================================================

    def get_assessment(self, assessment_id: UUID) -> AdvanceTaxAssessment:
        return self._get_model(assessment_id).to_dto()

    def find_assessment(self, company_id: UUID, financial_year: str) -> AdvanceTaxAssessment | None:
        model = self._find_model(company_id, FinancialYear.parse(financial_year).label)
        return model.to_dto() if model is not None else None

    def get_schedule(self, assessment_id: UUID) -> tuple[ScheduleRow, ...]:
        self._get_model(assessment_id)
        return tuple(row.to_dto() for row in self._schedule_rows(assessment_id))

    def get_tracker(self, assessment_id: UUID, as_of: date | None = None) -> AdvanceTaxTracker:
        """Schedule with payments, shortfall and 234C as of ``as_of`` (default today)."""
        model = self._get_model(assessment_id)
        return self._tracker(model, as_of or self._clock.today())

    # =========================================================================
    # MAT credit ledger
    # =========================================================================

    def list_mat_credits(
        self,
        company_id: UUID,
        as_of_financial_year: str | None = None,
    ) -> tuple[MatCreditEntry, ...]:
        as_of = self._as_of_year(as_of_financial_year)
        return tuple(
            entry.to_dto(is_expired=is_expired(entry.to_lot(), as_of))
            for entry in self._mat_entries(company_id)
        )

    def mat_credit_utilizations(
        self,
        company_id: UUID,
        mat_credit_id: UUID | None = None,
    ) -> tuple[MatCreditUtilization, ...]:
        stmt = select(MatCreditUtilizationModel).where(
            MatCreditUtilizationModel.company_id == company_id,
        )
        if mat_credit_id is not None:
            if self._session.get(MatCreditModel, mat_credit_id) is None:
                raise MatCreditNotFoundError(str(mat_credit_id))
            stmt = stmt.where(MatCreditUtilizationModel.mat_credit_id == mat_credit_id)
        stmt = stmt.order_by(
            MatCreditUtilizationModel.utilization_date,
            MatCreditUtilizationModel.source_financial_year,
        )
        return tuple(row.to_dto() for row in self._session.scalars(stmt))

    def mat_credit_adjustments(
        self,
        company_id: UUID,
        mat_credit_id: UUID | None = None,
    ) -> tuple[MatCreditAdjustment, ...]:
        """Changes to created credit posted by revising finalized years."""
        stmt = select(MatCreditAdjustmentModel).where(
            MatCreditAdjustmentModel.company_id == company_id,
        )
        if mat_credit_id is not None:
            if self._session.get(MatCreditModel, mat_credit_id) is None:
                raise MatCreditNotFoundError(str(mat_credit_id))
            stmt = stmt.where(MatCreditAdjustmentModel.mat_credit_id == mat_credit_id)
        stmt = stmt.order_by(
            MatCreditAdjustmentModel.financial_year,
            MatCreditAdjustmentModel.revision_number,
        )
        return tuple(row.to_dto() for row in self._session.scalars(stmt))

    def mat_credit_summary(
        self,
        company_id: UUID,
        as_of_financial_year: str | None = None,
    ) -> MatCreditSummary:
        """
        Ledger totals as of a financial year.

        Expired entries stay in the ledger but are excluded from the
        available balance; ``expiring_soon`` covers the configured horizon.
        """
        as_of = self._as_of_year(as_of_financial_year)
        entries = self._mat_entries(company_id)
        lots = [entry.to_lot() for entry in entries]
        expired_ids = {lot.lot_id for lot in lots if is_expired(lot, as_of)}
        expiring = expiring_within(lots, as_of, self._config.mat_expiring_soon_years)
        expiring_ids = {lot.lot_id for lot in expiring}
        dtos = tuple(entry.to_dto(is_expired=entry.id in expired_ids) for entry in entries)

        return MatCreditSummary(
            company_id=company_id,
            as_of_financial_year=as_of.label,
            total_created=sum((e.effective_credit for e in entries), ZERO),
            total_utilized=sum((e.credit_utilized for e in entries), ZERO),
            total_expired=sum((lot.balance for lot in lots if lot.lot_id in expired_ids), ZERO),
            available_balance=available_credit(lots, as_of),
            expiring_soon=sum((lot.balance for lot in expiring), ZERO),
            entries=dtos,
            expiring_soon_entries=tuple(d for d in dtos if d.id in expiring_ids),
        )

    # =========================================================================
    # Challan and dashboard
    # =========================================================================

    def generate_challan(
        self,
        assessment_id: UUID,
        quarter: int | None = None,
        company_name: str | None = None,
        pan: str | None = None,
    ) -> ChallanSnapshot:
        """
        ITNS 280 challan data for an installment.

        Without ``quarter`` the earliest installment with an outstanding
        amount is used.  The amount is split into income tax, surcharge and
        cess in proportion to the assessment's components (MAT components
        when MAT applies); the installment's 234C interest is added.
        """
        model = self._get_model(assessment_id)
        today = self._clock.today()
        tracker = self._tracker(model, today)
        if quarter is not None and not any(r.quarter == quarter for r in tracker.rows):
            raise InvalidQuarterError(quarter)

        row = None
        if quarter is not None:
            row = next(r for r in tracker.rows if r.quarter == quarter)
        else:
            row = next(
                (r for r in tracker.rows if r.tax_payable_this_quarter > r.amount_paid),
                None,
            )

        amount = ZERO
        interest = ZERO
        if row is not None:
            amount = non_negative(row.tax_payable_this_quarter - row.amount_paid)
            interest = row.interest_234c
        if model.is_mat_applicable:
            heads = (model.mat_on_book_profit, model.mat_surcharge, model.mat_cess)
        else:
            heads = (model.base_tax, model.surcharge, model.cess)
        income_tax, surcharge, cess = split_challan_amount(
            amount, income_tax=heads[0], surcharge=heads[1], cess=heads[2],
        )

        logger.info("advance_tax_challan_generated", extra={
            "assessment_id": str(assessment_id),
            "quarter": row.quarter if row else None,
            "amount": str(amount),
            "interest": str(interest),
        })
        return ChallanSnapshot(
            assessment_id=model.id,
            company_id=model.company_id,
            financial_year=model.financial_year,
            assessment_year=model.assessment_year,
            quarter=row.quarter if row else None,
            due_date=row.due_date if row else None,
            generated_on=today,
            income_tax=income_tax,
            surcharge=surcharge,
            cess=cess,
            interest=interest,
            total=amount + interest,
            company_name=company_name,
            pan=pan,
        )

    def compliance_dashboard(
        self,
        company_ids: Sequence[UUID],
        financial_year: str,
        as_of: date | None = None,
    ) -> ComplianceDashboard:
        """
        Cross-company advance tax position for one financial year.

        Each company is ``overdue`` (a past installment is short),
        ``at_risk`` (an unpaid installment is due within the configured
        window), ``on_track`` or ``no_assessment``.
        """
        fy = FinancialYear.parse(financial_year)
        as_of = as_of or self._clock.today()
        companies: list[CompanyCompliance] = []
        alerts = []
        upcoming: dict[int, list] = defaultdict(list)
        current_liability = ZERO
        prior_liability = ZERO

        for company_id in company_ids:
            model = self._find_model(company_id, fy.label)
            prior = self._find_model(company_id, fy.plus_years(-1).label)
            if prior is not None:
                prior_liability += prior.total_tax_liability
            if model is None:
                companies.append(CompanyCompliance(
                    company_id=company_id, status=ComplianceStatus.NO_ASSESSMENT,
                ))
                alerts.extend(compliance_alerts(
                    company_id=company_id,
                    status=ComplianceStatus.NO_ASSESSMENT,
                    as_of=as_of,
                    overdue_quarters=(),
                    shortfall=ZERO,
                    next_due_date=None,
                    next_due_amount=ZERO,
                ))
                continue

            current_liability += model.total_tax_liability
            tracker = self._tracker(model, as_of)
            overdue = tuple(r.quarter for r in tracker.rows if r.status == QuarterStatus.OVERDUE)
            status = classify_compliance(
                as_of=as_of,
                overdue_quarters=overdue,
                next_due_date=tracker.next_due_date,
                next_due_amount=tracker.next_due_amount,
                at_risk_window_days=self._config.at_risk_window_days,
            )
            advice = self.revision_advice(model.id, as_of=as_of)
            lots = [entry.to_lot() for entry in self._mat_entries(company_id)]
            expiring = sum(
                (lot.balance for lot in expiring_within(lots, fy, self._config.mat_expiring_soon_years)),
                ZERO,
            )
            interest = tracker.interest_234c + model.interest_234b
            companies.append(CompanyCompliance(
                company_id=company_id,
                status=status,
                assessment_id=model.id,
                total_tax_liability=model.total_tax_liability,
                net_tax_payable=model.net_tax_payable,
                total_paid=tracker.total_paid,
                shortfall=tracker.shortfall_to_date,
                interest=interest,
                next_due_date=tracker.next_due_date,
                next_due_amount=tracker.next_due_amount,
            ))
            alerts.extend(compliance_alerts(
                company_id=company_id,
                status=status,
                as_of=as_of,
                overdue_quarters=overdue,
                shortfall=tracker.shortfall_to_date,
                next_due_date=tracker.next_due_date,
                next_due_amount=tracker.next_due_amount,
                revision_recommended=advice.recommended,
                mat_credit_expiring=expiring,
            ))
            for row in tracker.rows:
                outstanding = non_negative(row.tax_payable_this_quarter - row.amount_paid)
                if row.due_date >= as_of and outstanding > ZERO:
                    upcoming[row.quarter].append((row.due_date, outstanding))

        counts = defaultdict(int)
        for company in companies:
            counts[company.status] += 1
        totals = DashboardTotals(
            companies=len(companies),
            on_track=counts[ComplianceStatus.ON_TRACK],
            at_risk=counts[ComplianceStatus.AT_RISK],
            overdue=counts[ComplianceStatus.OVERDUE],
            no_assessment=counts[ComplianceStatus.NO_ASSESSMENT],
            total_tax_liability=sum((c.total_tax_liability for c in companies), ZERO),
            total_paid=sum((c.total_paid for c in companies), ZERO),
            total_shortfall=sum((c.shortfall for c in companies), ZERO),
            total_interest=sum((c.interest for c in companies), ZERO),
        )
        due_dates = tuple(
            UpcomingDueDate(
                quarter=quarter,
                due_date=min(d for d, _ in items),
                company_count=len(items),
                amount=sum((a for _, a in items), ZERO),
            )
            for quarter, items in sorted(upcoming.items())
        )
        year_over_year = None
        if prior_liability > ZERO:
            year_over_year = YearOverYear(
                prior_financial_year=fy.plus_years(-1).label,
                prior_total_tax_liability=prior_liability,
                current_total_tax_liability=current_liability,
                change=current_liability - prior_liability,
                change_percentage=change_percentage(prior_liability, current_liability),
            )

        logger.info("advance_tax_dashboard_built", extra={
            "financial_year": fy.label,
            "companies": totals.companies,
            "overdue": totals.overdue,
            "at_risk": totals.at_risk,
        })
        return ComplianceDashboard(
            financial_year=fy.label,
            as_of=as_of,
            companies=tuple(companies),
            totals=totals,
            alerts=tuple(alerts),
            upcoming_due_dates=due_dates,
            year_over_year=year_over_year,
        )

    # =========================================================================
    # Internals: loading
    # =========================================================================

    def _get_model(self, assessment_id: UUID) -> AdvanceTaxAssessmentModel:
        model = self._session.get(AdvanceTaxAssessmentModel, assessment_id)
        if model is None:
            raise AssessmentNotFoundError(str(assessment_id))
        return model

    def _find_model(self, company_id: UUID, financial_year: str) -> AdvanceTaxAssessmentModel | None:
        return self._session.scalars(
            select(AdvanceTaxAssessmentModel).where(
                AdvanceTaxAssessmentModel.company_id == company_id,
                AdvanceTaxAssessmentModel.financial_year == financial_year,
            )
        ).first()

    def _get_payment(self, payment_id: UUID) -> AdvanceTaxPaymentModel:
        payment = self._session.get(AdvanceTaxPaymentModel, payment_id)
        if payment is None:
            raise PaymentNotFoundError(str(payment_id))
        return payment

    def _schedule_rows(self, assessment_id: UUID) -> list[AdvanceTaxScheduleModel]:
        return list(self._session.scalars(
            select(AdvanceTaxScheduleModel)
            .where(AdvanceTaxScheduleModel.assessment_id == assessment_id)
            .order_by(AdvanceTaxScheduleModel.quarter)
        ))

    def _payment_rows(self, assessment_id: UUID) -> list[AdvanceTaxPaymentModel]:
        return list(self._session.scalars(
            select(AdvanceTaxPaymentModel)
            .where(AdvanceTaxPaymentModel.assessment_id == assessment_id)
            .order_by(AdvanceTaxPaymentModel.payment_date, AdvanceTaxPaymentModel.created_at)
        ))

    def _credit_rows(self, assessment_id: UUID) -> list[AdvanceTaxCreditModel]:
        return list(self._session.scalars(
            select(AdvanceTaxCreditModel)
            .where(AdvanceTaxCreditModel.assessment_id == assessment_id)
            .order_by(AdvanceTaxCreditModel.recorded_on, AdvanceTaxCreditModel.created_at)
        ))

    def _mat_entries(self, company_id: UUID) -> list[MatCreditModel]:
        return list(self._session.scalars(
            select(MatCreditModel)
            .where(MatCreditModel.company_id == company_id)
            .order_by(MatCreditModel.financial_year)
        ))

    def _credit_lots(
        self,
        company_id: UUID,
        financial_year: str,
        assessment_id: UUID | None,
    ) -> tuple[MatCreditLot, ...]:
        """Ledger lots of other years, with this assessment's own draw-downs added back."""
        own = self._own_utilizations(assessment_id) if assessment_id is not None else {}

        lots = []
        for entry in self._mat_entries(company_id):
            if entry.financial_year == financial_year:
                continue
            lot = entry.to_lot()
            returned = own.get(entry.id)
            if returned:
                lot = replace(lot, credit_utilized=lot.credit_utilized - returned)
            lots.append(lot)
        return tuple(lots)

    def _as_of_year(self, financial_year: str | None) -> FinancialYear:
        if financial_year is None:
            return FinancialYear.containing(self._clock.today())
        return FinancialYear.parse(financial_year)

    # =========================================================================
    # Internals: rules
    # =========================================================================

    def _require_transition(self, model: AdvanceTaxAssessmentModel, action: str):
        transition = ASSESSMENT_WORKFLOW.find_transition(model.status, action)
        if transition is None:
            logger.warning("advance_tax_transition_rejected", extra={
                "assessment_id": str(model.id),
                "status": model.status,
                "action": action,
                "allowed_actions": list(ASSESSMENT_WORKFLOW.actions_from(model.status)),
            })
            if ASSESSMENT_WORKFLOW.is_terminal(model.status):
                raise AssessmentFinalizedError(str(model.id), action)
            raise InvalidStatusTransitionError(str(model.id), model.status, action)
        return transition

    @staticmethod
    def _check_revision_count(model: AdvanceTaxAssessmentModel, expected: int | None) -> None:
        if expected is not None and expected != model.revision_count:
            logger.warning("advance_tax_stale_revision_rejected", extra={
                "assessment_id": str(model.id),
                "expected_revision_count": expected,
                "actual_revision_count": model.revision_count,
            })
            raise StaleRevisionError(str(model.id), expected, model.revision_count)

    @staticmethod
    def _require_unposted(payment: AdvanceTaxPaymentModel, verb: str) -> None:
        if payment.is_posted:
            raise ImmutabilityViolationError(
                entity_type="AdvanceTaxPayment",
                entity_id=str(payment.id),
                reason=f"Posted advance tax payments cannot be {verb}",
            )

    def _validate_payment(self, amount: Decimal, payment_date: date, quarter_hint: int | None) -> None:
        if amount is None or amount <= ZERO:
            raise InvalidAmountError("amount", amount, expected="> 0")
        if quarter_hint is not None and not 1 <= quarter_hint <= len(self._schedule.installments):
            raise InvalidQuarterError(quarter_hint)
        if payment_date > self._clock.today():
            raise ValidationError(
                f"Payment date {payment_date.isoformat()} is in the future",
                field="payment_date",
                expected=f"<= {self._clock.today().isoformat()}",
            )

    # =========================================================================
    # Internals: computation and writing
    # =========================================================================

    def _compute_for(
        self,
        model: AdvanceTaxAssessmentModel,
        inputs: AssessmentInputs,
    ) -> AssessmentComputation:
        """Full pass for ``inputs`` using the assessment's credits, payments and ledger."""
        late_rows = self._credit_rows(model.id) if model.id is not None else []
        paid = sum((p.amount for p in self._payment_rows(model.id)), ZERO) if model.id else ZERO
        tds = model.upfront_tds + sum(
            (r.amount for r in late_rows if r.credit_type == CreditType.TDS.value), ZERO,
        )
        tcs = model.upfront_tcs + sum(
            (r.amount for r in late_rows if r.credit_type == CreditType.TCS.value), ZERO,
        )
        return self._calculator.compute(
            financial_year=model.financial_year,
            inputs=inputs,
            credits=TaxCredits(tds_credit=tds, tcs_credit=tcs, advance_tax_already_paid=paid),
            credits_known_upfront=model.upfront_tds + model.upfront_tcs,
            late_credits=[
                LateCredit(quarter=r.quarter, amount=r.amount, recorded_on=r.recorded_on)
                for r in late_rows
            ],
            credit_lots=self._credit_lots(model.company_id, model.financial_year, model.id),
        )

    def _write_schedule(
        self,
        model: AdvanceTaxAssessmentModel,
        computation: AssessmentComputation,
        actor_id: UUID,
    ) -> None:
        """Replace all schedule rows and replay payments against them."""
        self._clear_allocations(model.id)
        for row in self._schedule_rows(model.id):
            self._session.delete(row)
        self._session.flush()
        for line in computation.schedule:
            self._session.add(AdvanceTaxScheduleModel.from_line(line, model.id, actor_id))
        self._session.flush()
        self._sync_tracking(model, actor_id)

    def _clear_allocations(self, assessment_id: UUID) -> None:
        rows = self._session.scalars(
            select(AdvanceTaxPaymentAllocationModel)
            .where(AdvanceTaxPaymentAllocationModel.assessment_id == assessment_id)
        )
        for row in rows:
            self._session.delete(row)
        self._session.flush()

    def _sync_tracking(self, model: AdvanceTaxAssessmentModel, actor_id: UUID) -> _Tracking:
        """Persist allocations, quarter tracking and interest as of today."""
        tracking = self._track(model, self._clock.today())
        self._clear_allocations(model.id)
        for payment_id, allocation in tracking.allocations:
            for line in allocation.lines:
                self._session.add(AdvanceTaxPaymentAllocationModel(
                    payment_id=payment_id,
                    assessment_id=model.id,
                    quarter=line.quarter,
                    amount=line.amount,
                    created_by_id=actor_id,
                ))

        for orm_row, row in zip(self._schedule_rows(model.id), tracking.rows):
            orm_row.amount_paid = row.amount_paid
            orm_row.cumulative_tax_paid = row.cumulative_tax_paid
            orm_row.shortfall_amount = row.shortfall_amount
            orm_row.interest_234c = row.interest_234c
            orm_row.status = row.status.value

        model.advance_tax_paid = tracking.total_paid
        model.net_tax_payable = non_negative(
            model.tax_payable_after_mat - model.tds_receivable - model.tcs_credit - tracking.total_paid
        )
        model.interest_234c = tracking.interest.total_interest
        model.total_interest = model.interest_234b + model.interest_234c
        self._session.flush()
        return tracking

    def _track(self, model: AdvanceTaxAssessmentModel, as_of: date) -> _Tracking:
        """
        Replay payments made on or before ``as_of`` against the schedule.

        Allocation decides each installment's paid amount and status; 234C
        counts the payments made on or before each due date.
        """
        rows = self._schedule_rows(model.id)
        lines = self._lines_from_rows(rows)
        payments = [p for p in self._payment_rows(model.id) if p.payment_date <= as_of]
        allocations = self._allocator.reattach_by_date(
            [
                PaymentToAllocate(
                    payment_id=p.id,
                    payment_date=p.payment_date,
                    amount=p.amount,
                    quarter_hint=p.quarter_hint,
                    sequence=seq,
                )
                for seq, p in enumerate(payments)
            ],
            lines,
        ) if payments else ()

        allocated: dict[int, Decimal] = defaultdict(lambda: ZERO)
        for _, allocation in allocations:
            for line in allocation.lines:
                allocated[line.quarter] += line.amount

        cumulative_paid = [
            sum((p.amount for p in payments if p.payment_date <= line.due_date), ZERO)
            for line in lines
        ]
        interest = self._interest.interest_234c_for_schedule(
            lines=lines, cumulative_paid=cumulative_paid, as_of=as_of,
        )

        tracked = []
        for row, paid in zip(rows, cumulative_paid):
            quarter_interest = interest.for_quarter(row.quarter)
            tracked.append(ScheduleRow(
                assessment_id=row.assessment_id,
                quarter=row.quarter,
                due_date=row.due_date,
                cumulative_percentage=row.cumulative_percentage,
                cumulative_tax_due=row.cumulative_tax_due,
                tax_payable_this_quarter=row.tax_payable_this_quarter,
                late_credit_applied=row.late_credit_applied,
                amount_paid=allocated[row.quarter],
                cumulative_tax_paid=paid,
                shortfall_amount=non_negative(row.cumulative_tax_due - paid),
                interest_234c=quarter_interest.interest if quarter_interest else ZERO,
                interest_months=row.interest_months,
                status=quarter_status(
                    installment=row.tax_payable_this_quarter,
                    allocated=allocated[row.quarter],
                    due_date=row.due_date,
                    as_of=as_of,
                    cumulative_due=row.cumulative_tax_due,
                    cumulative_paid=paid,
                ),
            ))
        return _Tracking(
            as_of=as_of,
            allocations=tuple(allocations),
            rows=tuple(tracked),
            interest=interest,
            total_paid=sum((p.amount for p in payments), ZERO),
        )

    def _advance_tax_paid_by_year_end(self, model: AdvanceTaxAssessmentModel, as_of: date) -> Decimal:
        """Advance tax for 234B: payments dated by 31 March of the year and by ``as_of``."""
        cutoff = min(FinancialYear.parse(model.financial_year).end_date, as_of)
        return sum(
            (p.amount for p in self._payment_rows(model.id) if p.payment_date <= cutoff), ZERO,
        )

    def _lines_from_rows(self, rows: Sequence[AdvanceTaxScheduleModel]) -> tuple[ScheduleLine, ...]:
        relief = {rule.quarter: rule.relief_percentage for rule in self._schedule.installments}
        return tuple(
            ScheduleLine(
                quarter=row.quarter,
                due_date=row.due_date,
                cumulative_percentage=row.cumulative_percentage,
                cumulative_tax_due=row.cumulative_tax_due,
                tax_payable_this_quarter=row.tax_payable_this_quarter,
                late_credit_applied=row.late_credit_applied,
                relief_percentage=relief.get(row.quarter),
                interest_months=row.interest_months,
            )
            for row in rows
        )

    def _tracker(self, model: AdvanceTaxAssessmentModel, as_of: date) -> AdvanceTaxTracker:
        tracking = self._track(model, as_of)
        past = [r for r in tracking.rows if r.due_date < as_of]
        due_to_date = past[-1].cumulative_tax_due if past else ZERO
        upcoming = next((r for r in tracking.rows if r.due_date >= as_of), None)
        return AdvanceTaxTracker(
            assessment=model.to_dto(),
            rows=tracking.rows,
            as_of=as_of,
            total_paid=tracking.total_paid,
            total_due_to_date=due_to_date,
            shortfall_to_date=non_negative(due_to_date - tracking.total_paid),
            interest_234c=tracking.interest.total_interest,
            next_due_date=upcoming.due_date if upcoming else None,
            next_due_amount=(
                non_negative(upcoming.cumulative_tax_due - tracking.total_paid)
                if upcoming else ZERO
            ),
        )

    def _post_payment(
        self,
        model: AdvanceTaxAssessmentModel,
        payment: AdvanceTaxPaymentModel,
        actor_id: UUID,
    ) -> str | None:
        """Book the payment in the ledger; a failure leaves it unposted with a warning."""
        try:
            entry_id = self._journal.post_advance_tax_payment(
                payment_id=payment.id,
                company_id=payment.company_id,
                financial_year=model.financial_year,
                amount=payment.amount,
                payment_date=payment.payment_date,
                bank_account_id=payment.bank_account_id,
                actor_id=actor_id,
            )
        except Exception as exc:
            logger.warning("advance_tax_payment_posting_failed", extra={
                "payment_id": str(payment.id),
                "assessment_id": str(model.id),
                "error": str(exc),
            }, exc_info=True)
            payment.status = PaymentStatus.POSTING_FAILED.value
            payment.posting_warning = f"Journal entry could not be created: {exc}"
            payment.updated_by_id = actor_id
            self._session.flush()
            return payment.posting_warning

        payment.journal_entry_id = entry_id
        payment.is_posted = True
        payment.status = PaymentStatus.POSTED.value
        payment.posting_warning = None
        payment.updated_by_id = actor_id
        self._session.flush()
        logger.info("advance_tax_payment_posted", extra={
            "payment_id": str(payment.id),
            "journal_entry_id": str(entry_id),
        })
        return None

    def _payment_dto(self, payment: AdvanceTaxPaymentModel) -> AdvanceTaxPayment:
        rows = self._session.scalars(
            select(AdvanceTaxPaymentAllocationModel)
            .where(AdvanceTaxPaymentAllocationModel.payment_id == payment.id)
            .order_by(AdvanceTaxPaymentAllocationModel.quarter)
        )
        return payment.to_dto(
            allocations=[PaymentAllocationLine(quarter=r.quarter, amount=r.amount) for r in rows],
        )

    def _post_mat_ledger(
        self,
        model: AdvanceTaxAssessmentModel,
        computation: AssessmentComputation,
        actor_id: UUID,
        today: date,
    ) -> None:
        """Write this year's MAT credit entry and draw-downs."""
        if computation.mat.mat_credit_created > ZERO:
            self._create_mat_entry(model, computation, actor_id)
        for line in computation.mat.utilization_plan.lines:
            self._draw_mat_credit(model, line.lot_id, line.amount, actor_id, today)
        self._session.flush()

    def _reconcile_mat_ledger(
        self,
        model: AdvanceTaxAssessmentModel,
        computation: AssessmentComputation,
        revision_number: int,
        actor_id: UUID,
        today: date,
    ) -> None:
        """
        Bring a finalized year's ledger movements in line with a revision.

        Nothing is deleted: draw-downs are corrected with signed utilization
        rows, and a change to the year's own credit is recorded as an
        adjustment on its entry.

        Raises:
            MatLedgerInvariantError: later years already used more of this
                year's credit than the revision leaves.
        """
        mat = computation.mat
        own_entry = self._session.scalars(
            select(MatCreditModel).where(
                MatCreditModel.company_id == model.company_id,
                MatCreditModel.financial_year == model.financial_year,
            )
        ).first()
        if own_entry is None:
            if mat.mat_credit_created > ZERO:
                self._create_mat_entry(model, computation, actor_id)
        elif own_entry.effective_credit != mat.mat_credit_created:
            self._adjust_mat_entry(
                model, own_entry, mat.mat_credit_created, revision_number, actor_id, today,
            )

        planned: dict[UUID, Decimal] = defaultdict(lambda: ZERO)
        for line in mat.utilization_plan.lines:
            planned[line.lot_id] += line.amount
        drawn = self._own_utilizations(model.id)
        for lot_id in sorted(set(planned) | set(drawn), key=str):
            delta = planned[lot_id] - drawn.get(lot_id, ZERO)
            if delta != ZERO:
                self._draw_mat_credit(model, lot_id, delta, actor_id, today)
        self._session.flush()

        logger.info("mat_ledger_reconciled", extra={
            "assessment_id": str(model.id),
            "revision_number": revision_number,
            "mat_credit_created": str(mat.mat_credit_created),
            "mat_credit_utilized": str(mat.mat_credit_to_utilize),
        })

    def _own_utilizations(self, assessment_id: UUID) -> dict[UUID, Decimal]:
        """Net credit drawn per ledger entry by one assessment."""
        rows = self._session.execute(
            select(
                MatCreditUtilizationModel.mat_credit_id,
                func.sum(MatCreditUtilizationModel.amount),
            )
            .where(MatCreditUtilizationModel.assessment_id == assessment_id)
            .group_by(MatCreditUtilizationModel.mat_credit_id)
        )
        return {credit_id: Decimal(str(total)) for credit_id, total in rows}

    def _create_mat_entry(
        self,
        model: AdvanceTaxAssessmentModel,
        computation: AssessmentComputation,
        actor_id: UUID,
    ) -> MatCreditModel:
        mat = computation.mat
        expires = expiry_year(computation.financial_year, computation.rates.mat_carry_forward_years)
        entry = MatCreditModel(
            company_id=model.company_id,
            financial_year=model.financial_year,
            assessment_year=model.assessment_year,
            assessment_id=model.id,
            book_profit=mat.book_profit,
            mat_on_book_profit=mat.mat_on_book_profit,
            mat_surcharge=mat.mat_surcharge,
            mat_cess=mat.mat_cess,
            total_mat=mat.total_mat,
            normal_tax=mat.normal_tax,
            credit_created=mat.mat_credit_created,
            credit_adjusted=ZERO,
            credit_utilized=ZERO,
            balance=mat.mat_credit_created,
            expiry_year=expires.label,
            status=MatCreditStatus.ACTIVE.value,
            created_by_id=actor_id,
        )
        self._session.add(entry)
        logger.info("mat_credit_created", extra={
            "assessment_id": str(model.id),
            "financial_year": model.financial_year,
            "credit_created": str(mat.mat_credit_created),
            "expiry_year": expires.label,
        })
        return entry

    def _adjust_mat_entry(
        self,
        model: AdvanceTaxAssessmentModel,
        entry: MatCreditModel,
        revised_credit: Decimal,
        revision_number: int,
        actor_id: UUID,
        today: date,
    ) -> None:
        previous = entry.effective_credit
        if revised_credit < entry.credit_utilized:
            raise MatLedgerInvariantError(
                "mat_credit_covers_utilization",
                f"FY {entry.financial_year} credit cannot fall to {revised_credit}: "
                f"{entry.credit_utilized} already utilized by later years",
            )
        entry.credit_adjusted = (entry.credit_adjusted or ZERO) + (revised_credit - previous)
        entry.balance = entry.effective_credit - entry.credit_utilized
        entry.status = _mat_entry_status(entry)
        entry.updated_by_id = actor_id
        self._session.add(MatCreditAdjustmentModel(
            mat_credit_id=entry.id,
            company_id=model.company_id,
            financial_year=entry.financial_year,
            assessment_id=model.id,
            revision_number=revision_number,
            previous_credit=previous,
            revised_credit=revised_credit,
            amount=revised_credit - previous,
            balance_after=entry.balance,
            adjustment_date=today,
            created_by_id=actor_id,
        ))
        logger.info("mat_credit_adjusted", extra={
            "assessment_id": str(model.id),
            "financial_year": entry.financial_year,
            "previous_credit": str(previous),
            "revised_credit": str(revised_credit),
            "balance_after": str(entry.balance),
        })

    def _draw_mat_credit(
        self,
        model: AdvanceTaxAssessmentModel,
        entry_id: UUID,
        amount: Decimal,
        actor_id: UUID,
        today: date,
    ) -> None:
        """Post a draw-down on one entry; a negative amount returns credit."""
        entry = self._session.get(MatCreditModel, entry_id)
        if entry is None:
            raise MatCreditNotFoundError(str(entry_id))
        entry.credit_utilized = entry.credit_utilized + amount
        entry.balance = entry.effective_credit - entry.credit_utilized
        entry.status = _mat_entry_status(entry)
        entry.updated_by_id = actor_id
        self._session.add(MatCreditUtilizationModel(
            mat_credit_id=entry.id,
            company_id=model.company_id,
            source_financial_year=entry.financial_year,
            utilized_in_financial_year=model.financial_year,
            assessment_id=model.id,
            amount=amount,
            balance_after=entry.balance,
            utilization_date=today,
            created_by_id=actor_id,
        ))
        logger.info("mat_credit_utilized", extra={
            "assessment_id": str(model.id),
            "source_financial_year": entry.financial_year,
            "amount": str(amount),
            "balance_after": str(entry.balance),
        })


def _mat_entry_status(entry: MatCreditModel) -> str:
    if entry.effective_credit == ZERO:
        return MatCreditStatus.REVERSED.value
    if entry.balance == ZERO:
        return MatCreditStatus.FULLY_UTILIZED.value
    return MatCreditStatus.ACTIVE.value
