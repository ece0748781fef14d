"""
Tests for the cross-company compliance dashboard.

Validates:
- Company classification: on_track, at_risk, overdue, no_assessment
- Alerts per company
- Totals, upcoming due dates and year-over-year comparison
"""

from __future__ import annotations

from datetime import date
from decimal import Decimal
from uuid import uuid4

from corptax_modules.advance_tax.models import AlertSeverity, ComplianceStatus
from tests.conftest import make_inputs
from tests.modules.conftest import FIFTY_LAKH, FY


def _codes(dashboard, company_id):
    return {a.code for a in dashboard.alerts if a.company_id == company_id}


class TestClassification:

    def test_due_soon_is_at_risk(self, advance_tax_service, active_fifty_lakh, company_id):
        dashboard = advance_tax_service.compliance_dashboard(
            [company_id], FY, as_of=date(2024, 6, 5),
        )
        company = dashboard.companies[0]
        assert company.status == ComplianceStatus.AT_RISK
        assert company.next_due_date == date(2024, 6, 15)
        assert company.next_due_amount == Decimal("195000")
        assert "INSTALLMENT_DUE_SOON" in _codes(dashboard, company_id)

    def test_far_from_due_is_on_track(self, advance_tax_service, active_fifty_lakh, company_id):
        dashboard = advance_tax_service.compliance_dashboard(
            [company_id], FY, as_of=date(2024, 4, 20),
        )
        assert dashboard.companies[0].status == ComplianceStatus.ON_TRACK
        assert dashboard.totals.on_track == 1

    def test_missed_installment_is_overdue(self, advance_tax_service, active_fifty_lakh, company_id):
        dashboard = advance_tax_service.compliance_dashboard(
            [company_id], FY, as_of=date(2024, 6, 20),
        )
        company = dashboard.companies[0]
        assert company.status == ComplianceStatus.OVERDUE
        assert company.shortfall == Decimal("195000")
        assert company.interest == Decimal("5850")
        overdue = [a for a in dashboard.alerts if a.code == "INSTALLMENT_OVERDUE"]
        assert overdue[0].severity == AlertSeverity.CRITICAL
        assert "Q1" in overdue[0].message

    def test_paid_up_is_on_track(
        self, advance_tax_service, active_fifty_lakh, company_id, test_actor_id,
        deterministic_clock,
    ):
        deterministic_clock.set_date(date(2024, 6, 10))
        advance_tax_service.record_payment(
            active_fifty_lakh.id, Decimal("195000"), date(2024, 6, 10), test_actor_id,
        )
        dashboard = advance_tax_service.compliance_dashboard([company_id], FY, as_of=date(2024, 6, 12))
        company = dashboard.companies[0]
        assert company.status == ComplianceStatus.ON_TRACK
        assert company.total_paid == Decimal("195000")
        assert company.next_due_amount == Decimal("0")

    def test_missing_assessment(self, advance_tax_service):
        missing = uuid4()
        dashboard = advance_tax_service.compliance_dashboard([missing], FY, as_of=date(2024, 6, 5))
        assert dashboard.companies[0].status == ComplianceStatus.NO_ASSESSMENT
        assert dashboard.companies[0].assessment_id is None
        assert _codes(dashboard, missing) == {"NO_ASSESSMENT"}


class TestTotals:

    def test_portfolio_totals(self, advance_tax_service, active_fifty_lakh, company_id):
        missing = uuid4()
        dashboard = advance_tax_service.compliance_dashboard(
            [company_id, missing], FY, as_of=date(2024, 6, 5),
        )
        totals = dashboard.totals
        assert totals.companies == 2
        assert totals.at_risk == 1
        assert totals.no_assessment == 1
        assert totals.total_tax_liability == Decimal("1300000")
        assert totals.total_paid == Decimal("0")
        assert dashboard.financial_year == FY
        assert dashboard.as_of == date(2024, 6, 5)

    def test_upcoming_due_dates(self, advance_tax_service, test_actor_id):
        companies = [uuid4(), uuid4()]
        for company in companies:
            advance_tax_service.create_assessment(company, FY, make_inputs(**FIFTY_LAKH), test_actor_id)

        dashboard = advance_tax_service.compliance_dashboard(companies, FY, as_of=date(2024, 6, 5))
        first = dashboard.upcoming_due_dates[0]
        assert first.quarter == 1
        assert first.due_date == date(2024, 6, 15)
        assert first.company_count == 2
        assert first.amount == Decimal("390000")
        assert [d.quarter for d in dashboard.upcoming_due_dates] == [1, 2, 3, 4]

    def test_year_over_year(self, advance_tax_service, company_id, test_actor_id):
        advance_tax_service.create_assessment(
            company_id, "2023-24", make_inputs(**FIFTY_LAKH), test_actor_id,
        )
        advance_tax_service.create_assessment(
            company_id, FY, make_inputs(regime="normal", ytd_revenue="6000000"), test_actor_id,
        )
        dashboard = advance_tax_service.compliance_dashboard([company_id], FY, as_of=date(2024, 6, 5))
        yoy = dashboard.year_over_year
        assert yoy.prior_financial_year == "2023-24"
        assert yoy.prior_total_tax_liability == Decimal("1300000")
        assert yoy.current_total_tax_liability == Decimal("1560000")
        assert yoy.change == Decimal("260000")
        assert yoy.change_percentage == Decimal("20.00")

    def test_no_prior_year(self, advance_tax_service, active_fifty_lakh, company_id):
        dashboard = advance_tax_service.compliance_dashboard([company_id], FY, as_of=date(2024, 6, 5))
        assert dashboard.year_over_year is None

    def test_dashboard_logged(self, advance_tax_service, active_fifty_lakh, company_id, captured_logs):
        advance_tax_service.compliance_dashboard([company_id], FY, as_of=date(2024, 6, 5))
        records = [r for r in captured_logs() if r["message"] == "advance_tax_dashboard_built"]
        assert records[0]["companies"] == 1
        assert records[0]["at_risk"] == 1
