"""
Rate Resolver -- statutory rates for a (financial year, regime) pair.

Responsibility:
    Resolve the tax rate, surcharge rate, cess rate and MAT rate from an
    immutable, versioned rule pack, applying surcharge marginal relief so
    the returned surcharge rate is the *effective* one for the income (and
    the book profit, for MAT).

Architecture position:
    Engines -- pure calculation.  The rule pack arrives through the
    injected ``RulePackProvider``; the resolver holds no state between
    calls and never caches.

Invariants enforced:
    - Regime is one of normal / 115BAA / 115BAB.
    - Marginal relief: for income above a surcharge threshold T,
      ``tax + surcharge(income) <= tax + surcharge(T) + (income - T)``.
      The capped surcharge never drops below zero.
    - The resolved result records pack id, version and checksum.

Failure modes:
    - InvalidRegimeError: unknown regime, or regime missing from the pack.
    - InvalidFinancialYearError: malformed year label.
    - RulePackNotFoundError: provider has no resolvable pack.
    - RulePackValidationError: pack carries negative or >100% rates.

Audit relevance:
    Effective surcharge rates and the relief flag are persisted on the
    assessment, so a reviewer can see when relief reduced the surcharge.
"""

from __future__ import annotations

from collections.abc import Callable, Sequence
from dataclasses import dataclass
from decimal import Decimal
from enum import Enum
from functools import partial

from corptax_config.provider import RulePackProvider
from corptax_config.schema import SurchargeTier, TaxSlab
from corptax_config.validator import ensure_valid
from corptax_engines.tracer import traced_engine
from corptax_kernel.domain.fiscal_year import FinancialYear
from corptax_kernel.domain.rounding import ZERO, non_negative, round_rate
from corptax_kernel.exceptions import InvalidRegimeError
from corptax_kernel.logging_config import get_logger

logger = get_logger("engines.rates")


class Regime(str, Enum):
    """Corporate tax regime."""

    NORMAL = "normal"
    SEC_115BAA = "115BAA"
    SEC_115BAB = "115BAB"

    @classmethod
    def parse(cls, value: str | Regime) -> Regime:
        if isinstance(value, Regime):
            return value
        try:
            return cls(value)
        except ValueError:
            raise InvalidRegimeError(str(value)) from None


def tax_on_slabs(income: Decimal, slabs: Sequence[TaxSlab]) -> Decimal:
    """Base tax on ``income`` across ordered slabs.  Unrounded."""
    if income <= ZERO:
        return ZERO
    tax = ZERO
    lower = ZERO
    for slab in slabs:
        upper = slab.up_to
        if upper is None or income <= upper:
            tax += (income - lower) * slab.rate
            return tax
        tax += (upper - lower) * slab.rate
        lower = upper
    return tax


def mat_on_book_profit(book_profit: Decimal, mat_rate: Decimal) -> Decimal:
    """MAT before surcharge and cess.  A book loss yields zero."""
    return non_negative(book_profit) * mat_rate


@dataclass(frozen=True)
class SurchargeComputation:
    """Surcharge on one base tax, before and after marginal relief."""

    base_tax: Decimal
    nominal_rate: Decimal
    nominal_surcharge: Decimal
    surcharge: Decimal
    threshold: Decimal | None = None

    @property
    def relief_applied(self) -> bool:
        return self.surcharge < self.nominal_surcharge

    @property
    def marginal_relief(self) -> Decimal:
        return self.nominal_surcharge - self.surcharge

    @property
    def effective_rate(self) -> Decimal:
        if self.base_tax <= ZERO:
            return ZERO
        return self.surcharge / self.base_tax


def _tier_for(
    income: Decimal, tiers: Sequence[SurchargeTier],
) -> tuple[SurchargeTier | None, Decimal]:
    """Highest tier exceeded by ``income`` and the rate of the tier below it."""
    current: SurchargeTier | None = None
    lower_rate = ZERO
    for tier in sorted(tiers, key=lambda t: t.threshold):
        if income > tier.threshold:
            lower_rate = current.rate if current is not None else ZERO
            current = tier
        else:
            break
    return current, lower_rate


def surcharge_with_relief(
    income: Decimal,
    tiers: Sequence[SurchargeTier],
    tax_fn: Callable[[Decimal], Decimal],
) -> SurchargeComputation:
    """
    Surcharge on ``tax_fn(income)`` with marginal relief at the tier threshold.

    Relief compares the nominal tax-plus-surcharge with the tax-plus-surcharge
    at the threshold (charged at the lower tier's rate) plus the income in
    excess of the threshold, and caps the surcharge at the difference.
    """
    base = tax_fn(income)
    tier, lower_rate = _tier_for(income, tiers)
    if tier is None or base <= ZERO:
        return SurchargeComputation(
            base_tax=base, nominal_rate=ZERO, nominal_surcharge=ZERO, surcharge=ZERO,
        )

    nominal = base * tier.rate
    at_threshold = tax_fn(tier.threshold) * (1 + lower_rate)
    ceiling = at_threshold + (income - tier.threshold)
    surcharge = nominal
    if base + nominal > ceiling:
        surcharge = non_negative(ceiling - base)
    return SurchargeComputation(
        base_tax=base,
        nominal_rate=tier.rate,
        nominal_surcharge=nominal,
        surcharge=surcharge,
        threshold=tier.threshold,
    )


@dataclass(frozen=True)
class ResolvedRates:
    """Rates for one (financial year, regime) from one rule pack version."""

    financial_year: str
    regime: Regime
    tax_rate: Decimal
    surcharge_rate: Decimal
    nominal_surcharge_rate: Decimal
    cess_rate: Decimal
    mat_rate: Decimal
    mat_surcharge_rate: Decimal
    nominal_mat_surcharge_rate: Decimal
    marginal_relief_applied: bool
    mat_marginal_relief_applied: bool
    mat_applies: bool
    mat_carry_forward_years: int
    rule_pack_id: str
    rule_pack_version: int
    rule_pack_checksum: str
    slabs: tuple[TaxSlab, ...]
    surcharge_tiers: tuple[SurchargeTier, ...] = ()
    mat_surcharge_tiers: tuple[SurchargeTier, ...] = ()

    def base_tax(self, taxable_income: Decimal) -> Decimal:
        return tax_on_slabs(taxable_income, self.slabs)

    def surcharge(self, taxable_income: Decimal) -> SurchargeComputation:
        return surcharge_with_relief(taxable_income, self.surcharge_tiers, self.base_tax)

    def mat_base(self, book_profit: Decimal) -> Decimal:
        return mat_on_book_profit(book_profit, self.mat_rate)

    def mat_surcharge(self, book_profit: Decimal) -> SurchargeComputation:
        return surcharge_with_relief(book_profit, self.mat_surcharge_tiers, self.mat_base)


class RateResolver:
    """
    Resolves rates from the injected rule pack provider.

    Contract:
        ``resolve()`` is a pure function of its arguments and the pack the
        provider returns; it never caches.
    """

    def __init__(self, provider: RulePackProvider):
        self._provider = provider

    @traced_engine(
        "rate_resolver", "1.0",
        fingerprint_fields=("financial_year", "regime", "taxable_income", "book_profit", "version"),
    )
    def resolve(
        self,
        *,
        financial_year: str | FinancialYear,
        regime: str | Regime,
        taxable_income: Decimal | None = None,
        book_profit: Decimal | None = None,
        version: int | None = None,
    ) -> ResolvedRates:
        fy = FinancialYear.parse(financial_year)
        regime_enum = Regime.parse(regime)

        pack = self._provider.get_rule_pack(fy.label, version)
        ensure_valid(pack)
        rule = pack.regime(regime_enum.value)
        if rule is None:
            raise InvalidRegimeError(regime_enum.value)

        income = taxable_income if taxable_income is not None else ZERO
        profit = book_profit if book_profit is not None else ZERO

        tax_rate = rule.slabs[0].rate
        if income > ZERO and len(rule.slabs) > 1:
            tax_rate = round_rate(tax_on_slabs(income, rule.slabs) / income)

        normal = surcharge_with_relief(
            income, rule.surcharge_tiers, partial(tax_on_slabs, slabs=rule.slabs),
        )
        mat = surcharge_with_relief(
            profit, pack.mat_surcharge_tiers, partial(mat_on_book_profit, mat_rate=pack.mat_rate),
        )

        resolved = ResolvedRates(
            financial_year=fy.label,
            regime=regime_enum,
            tax_rate=tax_rate,
            surcharge_rate=round_rate(normal.effective_rate),
            nominal_surcharge_rate=normal.nominal_rate,
            cess_rate=pack.cess_rate,
            mat_rate=pack.mat_rate,
            mat_surcharge_rate=round_rate(mat.effective_rate),
            nominal_mat_surcharge_rate=mat.nominal_rate,
            marginal_relief_applied=normal.relief_applied,
            mat_marginal_relief_applied=mat.relief_applied,
            mat_applies=rule.mat_applies,
            mat_carry_forward_years=pack.mat_carry_forward_years,
            rule_pack_id=pack.pack_id,
            rule_pack_version=pack.version,
            rule_pack_checksum=pack.checksum,
            slabs=rule.slabs,
            surcharge_tiers=rule.surcharge_tiers,
            mat_surcharge_tiers=pack.mat_surcharge_tiers,
        )

        if resolved.marginal_relief_applied or resolved.mat_marginal_relief_applied:
            logger.info(
                "marginal_relief_applied",
                extra={
                    "financial_year": fy.label,
                    "regime": regime_enum.value,
                    "normal_relief": str(normal.marginal_relief),
                    "mat_relief": str(mat.marginal_relief),
                },
            )
        return resolved
