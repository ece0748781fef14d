"""
Assessment Calculator -- one full computation pass.

Responsibility:
    Run the engines in order for one set of assessment inputs:

        Reconciliation -> Rate Resolver -> normal tax -> MAT -> Tax
        Computation -> Schedule Generator

    and return every intermediate result as one immutable value.  Used for
    creation, recomputation, revisions and what-if previews alike, so all
    of them produce identical numbers for identical inputs.

Architecture:
    corptax_modules -- module layer, but pure: no session, no clock.  The
    rule pack, credit totals and MAT credit lots are passed in as
    already-fetched snapshots, so an in-flight pass can be discarded
    without any partial write.

Failure modes:
    - Any engine error propagates unchanged (InvalidRegimeError,
      RulePackNotFoundError, InvalidAmountError, ScheduleInvariantError).
"""

from __future__ import annotations

from collections.abc import Iterable, Sequence
from dataclasses import dataclass, replace
from decimal import Decimal

from corptax_engines.computation import (
    NormalTaxBreakdown,
    TaxComputationEngine,
    TaxComputationResult,
    TaxCredits,
)
from corptax_engines.mat import MatEvaluator, MatOutcome
from corptax_engines.mat_credit import MatCreditLot
from corptax_engines.rates import RateResolver, ResolvedRates
from corptax_engines.reconciliation import ReconciliationBuilder, ReconciliationResult
from corptax_engines.revision import RevisionSnapshot, compute_variance
from corptax_engines.schedule import LateCredit, ScheduleGenerator, ScheduleLine
from corptax_kernel.domain.fiscal_year import FinancialYear
from corptax_kernel.domain.rounding import ZERO
from corptax_kernel.logging_config import get_logger
from corptax_modules.advance_tax.config import AdvanceTaxConfig
from corptax_modules.advance_tax.models import AssessmentInputs, WhatIfAdjustments

logger = get_logger("modules.advance_tax.calculator")


@dataclass(frozen=True)
class AssessmentComputation:
    """Every result of one computation pass.  Amounts are whole rupees."""

    financial_year: FinancialYear
    inputs: AssessmentInputs
    rates: ResolvedRates
    reconciliation: ReconciliationResult
    normal: NormalTaxBreakdown
    mat: MatOutcome
    tax: TaxComputationResult
    schedule: tuple[ScheduleLine, ...]
    credits_known_upfront: Decimal

    def snapshot(self) -> RevisionSnapshot:
        return RevisionSnapshot(
            projected_revenue=self.reconciliation.projected_revenue,
            projected_expenses=self.reconciliation.projected_expenses,
            book_profit=self.reconciliation.book_profit,
            taxable_income=self.tax.taxable_income,
            total_tax_liability=self.tax.total_tax_liability,
            total_mat=self.mat.total_mat,
            tax_payable_after_mat=self.tax.tax_payable_after_mat,
            tax_payable_after_credits=max(
                self.tax.tax_payable_after_mat - self.tax.tds_credit - self.tax.tcs_credit, ZERO,
            ),
        )


class AssessmentCalculator:
    """Composes the engines into one deterministic pass."""

    def __init__(self, rate_resolver: RateResolver, config: AdvanceTaxConfig | None = None):
        self._config = config or AdvanceTaxConfig.with_defaults()
        self._resolver = rate_resolver
        self._reconciler = ReconciliationBuilder()
        self._tax = TaxComputationEngine()
        self._mat = MatEvaluator()
        self._schedule = ScheduleGenerator(
            installments=self._config.installment_rules(),
            policy=self._config.upfront_credit_policy,
        )

    @property
    def schedule_generator(self) -> ScheduleGenerator:
        return self._schedule

    def compute(
        self,
        *,
        financial_year: str | FinancialYear,
        inputs: AssessmentInputs,
        credits: TaxCredits | None = None,
        credits_known_upfront: Decimal = ZERO,
        late_credits: Sequence[LateCredit] = (),
        credit_lots: Iterable[MatCreditLot] = (),
    ) -> AssessmentComputation:
        fy = FinancialYear.parse(financial_year)
        credits = credits or TaxCredits()

        reconciliation = self._reconciler.build(reconciliation_input=inputs.reconciliation)
        rates = self._resolver.resolve(
            financial_year=fy,
            regime=inputs.regime,
            taxable_income=reconciliation.taxable_income,
            book_profit=reconciliation.book_profit,
            version=inputs.rule_pack_version,
        )
        normal = self._tax.normal_tax(
            taxable_income=reconciliation.taxable_income, rates=rates,
        ).rounded()
        mat = self._mat.evaluate(
            book_profit=reconciliation.book_profit,
            normal_tax=normal.total,
            rates=rates,
            financial_year=fy,
            credit_lots=tuple(credit_lots),
        )
        tax = self._tax.compute(
            reconciliation=reconciliation, rates=rates, mat_outcome=mat, credits=credits,
        ).rounded()
        schedule = self._schedule.generate(
            financial_year=fy,
            total_tax_liability=tax.tax_payable_after_mat,
            credits_known_upfront=credits_known_upfront,
            late_credits=tuple(late_credits),
        )

        logger.debug(
            "assessment_computed",
            extra={
                "financial_year": fy.label,
                "regime": rates.regime.value,
                "rule_pack_version": rates.rule_pack_version,
                "taxable_income": str(tax.taxable_income),
                "total_tax_liability": str(tax.total_tax_liability),
                "tax_payable_after_mat": str(tax.tax_payable_after_mat),
            },
        )
        return AssessmentComputation(
            financial_year=fy,
            inputs=inputs,
            rates=rates,
            reconciliation=reconciliation,
            normal=normal,
            mat=mat,
            tax=tax,
            schedule=schedule,
            credits_known_upfront=credits_known_upfront,
        )


@dataclass(frozen=True)
class WhatIfResult:
    """A what-if pass next to the baseline it was derived from.  Never persisted."""

    name: str
    adjustments: WhatIfAdjustments
    baseline: RevisionSnapshot
    computation: AssessmentComputation

    @property
    def variance(self) -> RevisionSnapshot:
        return compute_variance(self.baseline, self.computation.snapshot())


def apply_adjustments(inputs: AssessmentInputs, adjustments: WhatIfAdjustments) -> AssessmentInputs:
    """
    Inputs with what-if adjustments applied.

    Revenue moves projected additional revenue; expense and payroll changes
    move projected additional expenses; capex moves projected depreciation.
    A positive ``other_adjustment`` is an extra disallowance, a negative one
    an extra deduction.
    """
    recon = inputs.reconciliation
    other = adjustments.other_adjustment
    recon = replace(
        recon,
        projected_additional_revenue=(
            recon.projected_additional_revenue + adjustments.revenue_adjustment
        ),
        projected_additional_expenses=(
            recon.projected_additional_expenses
            + adjustments.expense_adjustment
            + adjustments.payroll_adjustment
        ),
        projected_depreciation=recon.projected_depreciation + adjustments.capex_adjustment,
        other_disallowances=recon.other_disallowances + max(other, ZERO),
        other_deductions=recon.other_deductions + max(-other, ZERO),
    )
    return replace(
        inputs,
        reconciliation=recon,
        regime=adjustments.regime or inputs.regime,
    )
