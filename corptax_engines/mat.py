"""
MAT Evaluator -- Minimum Alternate Tax on book profit (Section 115JB).

Responsibility:
    Compute MAT on book profit with its own surcharge (marginal relief
    included) and cess, compare it with normal tax, and decide whether MAT
    applies.  When it does, the excess is banked as MAT credit; when it does
    not, available credit from earlier years is utilized against the
    difference, oldest lot first.

Architecture position:
    Engines -- pure.  Credit lots arrive as an already-fetched snapshot.

Invariants enforced:
    - ``is_mat_applicable == total_mat > normal_tax``.
    - Applicable: ``tax_payable_after_mat == total_mat`` and
      ``mat_credit_created == total_mat - normal_tax``.
    - Not applicable: ``mat_credit_to_utilize ==
      min(available, normal_tax - total_mat)`` and
      ``tax_payable_after_mat == normal_tax - mat_credit_to_utilize``.
    - ``mat_applicability_reason`` is always populated.
    - Book loss yields zero MAT.

Audit relevance:
    The reason string is reproduced on compliance reports.
"""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass
from decimal import Decimal

from corptax_engines.mat_credit import (
    MatCreditLot,
    MatUtilizationPlan,
    available_credit,
    plan_fifo_utilization,
)
from corptax_engines.rates import ResolvedRates
from corptax_engines.tracer import traced_engine
from corptax_kernel.domain.fiscal_year import FinancialYear
from corptax_kernel.domain.rounding import ZERO, round_rupee
from corptax_kernel.logging_config import get_logger

logger = get_logger("engines.mat")


def _rs(amount: Decimal) -> str:
    return f"Rs. {amount:,}"


@dataclass(frozen=True)
class MatOutcome:
    """Result of the MAT comparison.  Amounts are whole rupees."""

    book_profit: Decimal
    mat_rate: Decimal
    mat_on_book_profit: Decimal
    mat_surcharge: Decimal
    mat_cess: Decimal
    total_mat: Decimal
    normal_tax: Decimal
    is_mat_applicable: bool
    mat_credit_created: Decimal
    mat_credit_available: Decimal
    mat_credit_to_utilize: Decimal
    tax_payable_after_mat: Decimal
    mat_applicability_reason: str
    utilization_plan: MatUtilizationPlan
    mat_applies_to_regime: bool = True
    mat_marginal_relief_applied: bool = False

    @property
    def tax_difference(self) -> Decimal:
        return self.total_mat - self.normal_tax


class MatEvaluator:
    """Evaluates MAT against normal tax."""

    @traced_engine(
        "mat_evaluator", "1.0",
        fingerprint_fields=("book_profit", "normal_tax", "financial_year", "credit_lots"),
    )
    def evaluate(
        self,
        *,
        book_profit: Decimal,
        normal_tax: Decimal,
        rates: ResolvedRates,
        financial_year: str | FinancialYear,
        credit_lots: Iterable[MatCreditLot] = (),
    ) -> MatOutcome:
        fy = FinancialYear.parse(financial_year)
        lots = tuple(credit_lots)
        normal_tax = round_rupee(normal_tax)
        empty_plan = MatUtilizationPlan(lines=())

        if not rates.mat_applies:
            return MatOutcome(
                book_profit=book_profit,
                mat_rate=rates.mat_rate,
                mat_on_book_profit=ZERO,
                mat_surcharge=ZERO,
                mat_cess=ZERO,
                total_mat=ZERO,
                normal_tax=normal_tax,
                is_mat_applicable=False,
                mat_credit_created=ZERO,
                mat_credit_available=ZERO,
                mat_credit_to_utilize=ZERO,
                tax_payable_after_mat=normal_tax,
                mat_applicability_reason=(
                    f"Regime {rates.regime.value} is outside MAT; "
                    f"normal tax of {_rs(normal_tax)} applies and MAT credit cannot be used."
                ),
                utilization_plan=empty_plan,
                mat_applies_to_regime=False,
            )

        surcharge = rates.mat_surcharge(book_profit)
        mat_base = round_rupee(surcharge.base_tax)
        mat_surcharge = round_rupee(surcharge.surcharge)
        mat_cess = round_rupee((surcharge.base_tax + surcharge.surcharge) * rates.cess_rate)
        total_mat = mat_base + mat_surcharge + mat_cess
        available = available_credit(lots, fy, rates.mat_carry_forward_years)

        if total_mat > normal_tax:
            created = total_mat - normal_tax
            outcome = MatOutcome(
                book_profit=book_profit,
                mat_rate=rates.mat_rate,
                mat_on_book_profit=mat_base,
                mat_surcharge=mat_surcharge,
                mat_cess=mat_cess,
                total_mat=total_mat,
                normal_tax=normal_tax,
                is_mat_applicable=True,
                mat_credit_created=created,
                mat_credit_available=available,
                mat_credit_to_utilize=ZERO,
                tax_payable_after_mat=total_mat,
                mat_applicability_reason=(
                    f"MAT of {_rs(total_mat)} exceeds normal tax of {_rs(normal_tax)}; "
                    f"MAT is payable and credit of {_rs(created)} is carried forward."
                ),
                utilization_plan=empty_plan,
                mat_marginal_relief_applied=surcharge.relief_applied,
            )
        else:
            headroom = normal_tax - total_mat
            plan = plan_fifo_utilization(
                lots, min(available, headroom), fy, rates.mat_carry_forward_years,
            )
            to_utilize = plan.total
            if to_utilize > ZERO:
                reason = (
                    f"Normal tax of {_rs(normal_tax)} is not below MAT of {_rs(total_mat)}; "
                    f"MAT credit of {_rs(to_utilize)} is set off against the difference."
                )
            else:
                reason = (
                    f"Normal tax of {_rs(normal_tax)} is not below MAT of {_rs(total_mat)}; "
                    f"normal tax applies."
                )
            outcome = MatOutcome(
                book_profit=book_profit,
                mat_rate=rates.mat_rate,
                mat_on_book_profit=mat_base,
                mat_surcharge=mat_surcharge,
                mat_cess=mat_cess,
                total_mat=total_mat,
                normal_tax=normal_tax,
                is_mat_applicable=False,
                mat_credit_created=ZERO,
                mat_credit_available=available,
                mat_credit_to_utilize=to_utilize,
                tax_payable_after_mat=normal_tax - to_utilize,
                mat_applicability_reason=reason,
                utilization_plan=plan,
                mat_marginal_relief_applied=surcharge.relief_applied,
            )

        logger.debug(
            "mat_evaluated",
            extra={
                "financial_year": fy.label,
                "total_mat": str(outcome.total_mat),
                "normal_tax": str(outcome.normal_tax),
                "is_mat_applicable": outcome.is_mat_applicable,
                "mat_credit_to_utilize": str(outcome.mat_credit_to_utilize),
            },
        )
        return outcome
