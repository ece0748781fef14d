"""
Tests for the advance tax helpers, workflow and calculator.

Validates:
- net_late_credits: newest late credit reduced first, never below zero
- quarter_status, split_challan_amount, classify_compliance
- ASSESSMENT_WORKFLOW transitions
- AssessmentCalculator: full pass and what-if adjustments
"""

from datetime import date
from decimal import Decimal
from uuid import uuid4

import pytest

from corptax_config.provider import FileRulePackProvider
from corptax_engines.computation import TaxCredits
from corptax_engines.mat_credit import MatCreditLot
from corptax_engines.rates import RateResolver
from corptax_kernel.domain.fiscal_year import FinancialYear
from corptax_modules.advance_tax.calculator import AssessmentCalculator, apply_adjustments
from corptax_modules.advance_tax.helpers import (
    change_percentage,
    classify_compliance,
    compliance_alerts,
    net_late_credits,
    quarter_status,
    split_challan_amount,
)
from corptax_modules.advance_tax.models import (
    AlertSeverity,
    ComplianceStatus,
    QuarterStatus,
    WhatIfAdjustments,
)
from corptax_modules.advance_tax.workflows import ASSESSMENT_WORKFLOW
from tests.conftest import make_inputs

D = Decimal


class TestNetLateCredits:

    def test_newest_reduced_first(self):
        upfront, amounts = net_late_credits(D("100"), [("a", D("50")), ("b", D("30"))], D("40"))
        assert upfront == D("100")
        assert amounts == {"a": D("40"), "b": D("0")}

    def test_spills_into_upfront(self):
        upfront, amounts = net_late_credits(D("100"), [("a", D("50"))], D("80"))
        assert upfront == D("70")
        assert amounts == {"a": D("0")}

    def test_floor_at_zero(self):
        upfront, amounts = net_late_credits(D("10"), [], D("80"))
        assert upfront == D("0")
        assert amounts == {}


class TestQuarterStatus:

    def _status(self, allocated, as_of, paid=None):
        return quarter_status(
            installment=D("100"),
            allocated=D(allocated),
            due_date=date(2024, 6, 15),
            as_of=as_of,
            cumulative_due=D("100"),
            cumulative_paid=D(allocated if paid is None else paid),
        )

    def test_paid(self):
        assert self._status("100", date(2024, 7, 1)) == QuarterStatus.PAID

    def test_overpaid(self):
        assert self._status("120", date(2024, 6, 1)) == QuarterStatus.OVERPAID

    def test_partial_before_due(self):
        assert self._status("40", date(2024, 6, 1)) == QuarterStatus.PARTIAL

    def test_pending(self):
        assert self._status("0", date(2024, 6, 15)) == QuarterStatus.PENDING

    def test_overdue(self):
        assert self._status("40", date(2024, 6, 16)) == QuarterStatus.OVERDUE

    def test_cumulative_payment_covers_quarter(self):
        """A hinted payment elsewhere can still cover the cumulative requirement."""
        assert self._status("0", date(2024, 6, 16), paid="100") == QuarterStatus.PENDING


class TestChallanSplit:

    def test_parts_add_up(self):
        parts = split_challan_amount(
            D("377520"), income_tax=D("2200000"), surcharge=D("220000"), cess=D("96800"),
        )
        assert parts == (D("330000"), D("33000"), D("14520"))
        assert sum(parts) == D("377520")

    def test_zero_components(self):
        assert split_challan_amount(
            D("500"), income_tax=D("0"), surcharge=D("0"), cess=D("0"),
        ) == (D("500"), D("0"), D("0"))


class TestCompliance:

    def test_classification(self):
        as_of = date(2024, 6, 5)
        assert classify_compliance(
            as_of=as_of, overdue_quarters=(1,), next_due_date=None,
            next_due_amount=D("0"), at_risk_window_days=15,
        ) == ComplianceStatus.OVERDUE
        assert classify_compliance(
            as_of=as_of, overdue_quarters=(), next_due_date=date(2024, 6, 15),
            next_due_amount=D("1"), at_risk_window_days=15,
        ) == ComplianceStatus.AT_RISK
        assert classify_compliance(
            as_of=as_of, overdue_quarters=(), next_due_date=date(2024, 6, 15),
            next_due_amount=D("0"), at_risk_window_days=15,
        ) == ComplianceStatus.ON_TRACK

    def test_alerts(self):
        company = uuid4()
        alerts = compliance_alerts(
            company_id=company,
            status=ComplianceStatus.OVERDUE,
            as_of=date(2024, 9, 20),
            overdue_quarters=(1, 2),
            shortfall=D("585000"),
            next_due_date=date(2024, 12, 15),
            next_due_amount=D("390000"),
            revision_recommended=True,
            mat_credit_expiring=D("1000"),
        )
        assert [a.code for a in alerts] == [
            "INSTALLMENT_OVERDUE", "REVISION_RECOMMENDED", "MAT_CREDIT_EXPIRING",
        ]
        assert alerts[0].severity == AlertSeverity.CRITICAL
        assert "Q1, Q2" in alerts[0].message

    def test_change_percentage(self):
        assert change_percentage(D("0"), D("10")) is None
        assert change_percentage(D("200"), D("150")) == D("-25.00")


class TestAssessmentWorkflow:

    @pytest.mark.parametrize("state,action,target", [
        ("draft", "update", "draft"),
        ("draft", "activate", "active"),
        ("active", "revise", "active"),
        ("active", "finalize", "finalized"),
        ("finalized", "revise", "finalized"),
    ])
    def test_allowed(self, state, action, target):
        assert ASSESSMENT_WORKFLOW.find_transition(state, action).to_state == target

    @pytest.mark.parametrize("state,action", [
        ("draft", "finalize"),
        ("draft", "revise"),
        ("active", "update"),
        ("active", "activate"),
        ("finalized", "update"),
        ("finalized", "finalize"),
    ])
    def test_rejected(self, state, action):
        assert ASSESSMENT_WORKFLOW.find_transition(state, action) is None

    def test_guards(self):
        finalize = ASSESSMENT_WORKFLOW.find_transition("active", "finalize")
        assert finalize.guard.name == "shortfall_resolved"
        assert ASSESSMENT_WORKFLOW.initial_state == "draft"
        assert ASSESSMENT_WORKFLOW.terminal_states == ("finalized",)


class TestAssessmentCalculator:

    def setup_method(self):
        self.calculator = AssessmentCalculator(RateResolver(FileRulePackProvider()))

    def test_full_pass(self):
        computation = self.calculator.compute(
            financial_year="2024-25",
            inputs=make_inputs(regime="normal", ytd_revenue="5000000"),
            credits=TaxCredits(tds_credit=D("100000")),
            credits_known_upfront=D("100000"),
        )
        assert computation.normal.total == D("1300000")
        assert computation.tax.tax_payable_after_mat == D("1300000")
        assert computation.tax.net_tax_payable == D("1200000")
        assert computation.schedule[-1].cumulative_tax_due == D("1200000")
        assert computation.snapshot().tax_payable_after_credits == D("1200000")

    def test_credit_lots_used(self):
        lot = MatCreditLot(
            lot_id=uuid4(),
            financial_year=FinancialYear.parse("2023-24"),
            credit_created=D("260000"),
        )
        computation = self.calculator.compute(
            financial_year="2024-25",
            inputs=make_inputs(regime="normal", ytd_revenue="5000000"),
            credit_lots=[lot],
        )
        assert computation.mat.mat_credit_to_utilize == D("260000")
        assert computation.tax.tax_payable_after_mat == D("1040000")
        assert computation.schedule[0].cumulative_tax_due == D("156000")

    def test_apply_adjustments(self):
        inputs = make_inputs(regime="normal", ytd_revenue="5000000")
        adjusted = apply_adjustments(inputs, WhatIfAdjustments(
            revenue_adjustment=D("100"),
            expense_adjustment=D("20"),
            payroll_adjustment=D("30"),
            capex_adjustment=D("40"),
            other_adjustment=D("-5"),
        ))
        recon = adjusted.reconciliation
        assert recon.projected_additional_revenue == D("100")
        assert recon.projected_additional_expenses == D("50")
        assert recon.projected_depreciation == D("40")
        assert recon.other_deductions == D("5")
        assert recon.other_disallowances == D("0")
        assert adjusted.regime == "normal"
