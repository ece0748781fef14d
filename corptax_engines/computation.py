"""
Tax Computation -- normal tax, credits and net payable.

Responsibility:
    Combine the reconciliation, the resolved rates and the MAT outcome into
    the assessment's tax figures:

        base_tax       = tax on taxable income across the regime's slabs
        surcharge      = base_tax x effective surcharge (marginal relief)
        cess           = (base_tax + surcharge) x cess_rate
        total_tax_liability = base_tax + surcharge + cess
        total_credits  = tds + tcs + mat_credit_to_utilize
        net_tax_payable = max(0, tax_payable_after_mat - tds - tcs - advance_paid)

    ``tax_payable_after_mat`` already has the MAT credit netted off, so the
    credit is counted once.

Architecture position:
    Engines -- pure.

Invariants enforced:
    - Results are unrounded; ``.rounded()`` rounds each component to whole
      rupees and re-derives totals from the rounded components, so
      ``total_tax_liability == base_tax + surcharge + cess`` holds exactly
      on the rounded result.
    - Identical inputs (including the rule pack version) yield identical
      output.

Failure modes:
    - InvalidAmountError: negative credits.
"""

from __future__ import annotations

from dataclasses import dataclass, replace
from decimal import Decimal

from corptax_engines.mat import MatOutcome
from corptax_engines.rates import ResolvedRates
from corptax_engines.reconciliation import ReconciliationResult
from corptax_engines.tracer import traced_engine
from corptax_kernel.domain.rounding import ZERO, non_negative, round_rupee
from corptax_kernel.exceptions import InvalidAmountError


@dataclass(frozen=True)
class NormalTaxBreakdown:
    taxable_income: Decimal
    base_tax: Decimal
    surcharge: Decimal
    cess: Decimal
    marginal_relief: Decimal = ZERO

    @property
    def total(self) -> Decimal:
        return self.base_tax + self.surcharge + self.cess

    def rounded(self) -> NormalTaxBreakdown:
        return replace(
            self,
            base_tax=round_rupee(self.base_tax),
            surcharge=round_rupee(self.surcharge),
            cess=round_rupee(self.cess),
            marginal_relief=round_rupee(self.marginal_relief),
        )


@dataclass(frozen=True)
class TaxCredits:
    """Credits available against the year's tax."""

    tds_credit: Decimal = ZERO
    tcs_credit: Decimal = ZERO
    advance_tax_already_paid: Decimal = ZERO

    def __post_init__(self) -> None:
        for name in ("tds_credit", "tcs_credit", "advance_tax_already_paid"):
            if getattr(self, name) < ZERO:
                raise InvalidAmountError(name, getattr(self, name))


@dataclass(frozen=True)
class TaxComputationResult:
    taxable_income: Decimal
    base_tax: Decimal
    surcharge: Decimal
    cess: Decimal
    gross_tax: Decimal
    tax_payable_after_mat: Decimal
    tds_credit: Decimal
    tcs_credit: Decimal
    advance_tax_already_paid: Decimal
    mat_credit_to_utilize: Decimal
    is_mat_applicable: bool
    tax_rate: Decimal
    surcharge_rate: Decimal
    cess_rate: Decimal
    marginal_relief_applied: bool
    rule_pack_id: str
    rule_pack_version: int
    rule_pack_checksum: str

    @property
    def total_tax_liability(self) -> Decimal:
        return self.base_tax + self.surcharge + self.cess

    @property
    def total_credits(self) -> Decimal:
        return self.tds_credit + self.tcs_credit + self.mat_credit_to_utilize

    @property
    def net_tax_payable(self) -> Decimal:
        return non_negative(
            self.tax_payable_after_mat
            - self.tds_credit
            - self.tcs_credit
            - self.advance_tax_already_paid
        )

    def rounded(self) -> TaxComputationResult:
        base = round_rupee(self.base_tax)
        surcharge = round_rupee(self.surcharge)
        cess = round_rupee(self.cess)
        return replace(
            self,
            taxable_income=round_rupee(self.taxable_income),
            base_tax=base,
            surcharge=surcharge,
            cess=cess,
            gross_tax=round_rupee(self.gross_tax) if self.is_mat_applicable else base + surcharge + cess,
            tax_payable_after_mat=round_rupee(self.tax_payable_after_mat),
            tds_credit=round_rupee(self.tds_credit),
            tcs_credit=round_rupee(self.tcs_credit),
            advance_tax_already_paid=round_rupee(self.advance_tax_already_paid),
            mat_credit_to_utilize=round_rupee(self.mat_credit_to_utilize),
        )


class TaxComputationEngine:
    """Normal tax and net payable."""

    @traced_engine(
        "normal_tax", "1.0",
        fingerprint_fields=("taxable_income",),
    )
    def normal_tax(self, *, taxable_income: Decimal, rates: ResolvedRates) -> NormalTaxBreakdown:
        surcharge = rates.surcharge(taxable_income)
        cess = (surcharge.base_tax + surcharge.surcharge) * rates.cess_rate
        return NormalTaxBreakdown(
            taxable_income=taxable_income,
            base_tax=surcharge.base_tax,
            surcharge=surcharge.surcharge,
            cess=cess,
            marginal_relief=surcharge.marginal_relief,
        )

    @traced_engine(
        "tax_computation", "1.0",
        fingerprint_fields=("reconciliation", "mat_outcome", "credits"),
    )
    def compute(
        self,
        *,
        reconciliation: ReconciliationResult,
        rates: ResolvedRates,
        mat_outcome: MatOutcome,
        credits: TaxCredits | None = None,
    ) -> TaxComputationResult:
        credits = credits or TaxCredits()
        normal = self.normal_tax(
            taxable_income=reconciliation.taxable_income, rates=rates,
        )

        gross = mat_outcome.total_mat if mat_outcome.is_mat_applicable else normal.total
        return TaxComputationResult(
            taxable_income=reconciliation.taxable_income,
            base_tax=normal.base_tax,
            surcharge=normal.surcharge,
            cess=normal.cess,
            gross_tax=gross,
            tax_payable_after_mat=mat_outcome.tax_payable_after_mat,
            tds_credit=credits.tds_credit,
            tcs_credit=credits.tcs_credit,
            advance_tax_already_paid=credits.advance_tax_already_paid,
            mat_credit_to_utilize=mat_outcome.mat_credit_to_utilize,
            is_mat_applicable=mat_outcome.is_mat_applicable,
            tax_rate=rates.tax_rate,
            surcharge_rate=rates.surcharge_rate,
            cess_rate=rates.cess_rate,
            marginal_relief_applied=rates.marginal_relief_applied,
            rule_pack_id=rates.rule_pack_id,
            rule_pack_version=rates.rule_pack_version,
            rule_pack_checksum=rates.rule_pack_checksum,
        )
