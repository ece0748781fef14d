"""
Tests for the tax computation engine.

Covers:
- Normal tax breakdown (base, surcharge, cess) with rounding
- Marginal relief flowing into the breakdown
- Net payable after MAT, TDS, TCS and payments
- Credit validation
"""

from decimal import Decimal

import pytest

from corptax_config.provider import FileRulePackProvider
from corptax_engines.computation import TaxComputationEngine, TaxCredits
from corptax_engines.mat import MatEvaluator
from corptax_engines.rates import RateResolver
from corptax_engines.reconciliation import ReconciliationBuilder, ReconciliationInput
from corptax_kernel.exceptions import InvalidAmountError


class TestNormalTax:
    """Base tax, surcharge and cess."""

    def setup_method(self):
        self.resolver = RateResolver(FileRulePackProvider())
        self.engine = TaxComputationEngine()

    def _normal(self, regime, income):
        income = Decimal(income)
        rates = self.resolver.resolve(
            financial_year="2024-25", regime=regime, taxable_income=income,
        )
        return self.engine.normal_tax(taxable_income=income, rates=rates).rounded()

    def test_115baa_on_one_crore(self):
        """22% + 10% surcharge + 4% cess on 1 crore."""
        result = self._normal("115BAA", "10000000")
        assert result.base_tax == Decimal("2200000")
        assert result.surcharge == Decimal("220000")
        assert result.cess == Decimal("96800")
        assert result.total == Decimal("2516800")

    def test_normal_regime_with_marginal_relief(self):
        result = self._normal("normal", "10100000")
        assert result.base_tax == Decimal("2525000")
        assert result.surcharge == Decimal("75000")
        assert result.cess == Decimal("104000")
        assert result.total == Decimal("2704000")
        assert result.marginal_relief == Decimal("101750")

    def test_zero_income(self):
        result = self._normal("normal", "0")
        assert result.total == Decimal("0")


class TestNetPayable:
    """Credits and payments reduce the net payable, never below zero."""

    def setup_method(self):
        self.resolver = RateResolver(FileRulePackProvider())
        self.engine = TaxComputationEngine()
        self.mat = MatEvaluator()
        self.builder = ReconciliationBuilder()

    def _compute(self, credits=None, income="4000000"):
        recon = self.builder.build(
            reconciliation_input=ReconciliationInput(ytd_revenue=Decimal(income)),
        )
        rates = self.resolver.resolve(
            financial_year="2024-25",
            regime="normal",
            taxable_income=recon.taxable_income,
            book_profit=recon.book_profit,
        )
        normal = self.engine.normal_tax(taxable_income=recon.taxable_income, rates=rates).rounded()
        outcome = self.mat.evaluate(
            book_profit=recon.book_profit,
            normal_tax=normal.total,
            rates=rates,
            financial_year="2024-25",
        )
        return self.engine.compute(
            reconciliation=recon, rates=rates, mat_outcome=outcome, credits=credits,
        ).rounded()

    def test_liability_without_credits(self):
        """4,000,000 at 25% plus 4% cess."""
        result = self._compute()
        assert result.total_tax_liability == Decimal("1040000")
        assert result.net_tax_payable == Decimal("1040000")
        assert result.is_mat_applicable is False
        assert result.rule_pack_version == 2

    def test_credits_reduce_net_payable(self):
        result = self._compute(TaxCredits(
            tds_credit=Decimal("100000"),
            tcs_credit=Decimal("40000"),
            advance_tax_already_paid=Decimal("300000"),
        ))
        assert result.net_tax_payable == Decimal("600000")
        assert result.total_credits == Decimal("140000")

    def test_excess_credits_floor_at_zero(self):
        result = self._compute(TaxCredits(tds_credit=Decimal("2000000")))
        assert result.net_tax_payable == Decimal("0")

    def test_negative_credit_rejected(self):
        with pytest.raises(InvalidAmountError):
            TaxCredits(tds_credit=Decimal("-1"))

    def test_rounded_components_sum_to_total(self):
        result = self._compute(income="3333333")
        assert result.total_tax_liability == result.base_tax + result.surcharge + result.cess
        assert result.base_tax == result.base_tax.to_integral_value()
