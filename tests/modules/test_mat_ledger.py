"""
Tests for the MAT credit ledger across financial years.

Validates:
- Finalizing a MAT year creates a credit entry with its expiry year
- The next year's assessment sees the credit and plans a FIFO draw-down
- Finalizing the next year writes utilizations and updates the entry
- Ledger summary and queries
- Revising a finalized year reconciles the ledger with appended records
"""

from __future__ import annotations

from decimal import Decimal
from uuid import uuid4

import pytest

from corptax_kernel.exceptions import MatCreditNotFoundError, MatLedgerInvariantError
from corptax_modules.advance_tax.models import MatCreditStatus
from tests.conftest import make_inputs
from tests.modules.conftest import FIFTY_LAKH, MAT_YEAR


@pytest.fixture
def mat_year(advance_tax_service, company_id, test_actor_id):
    """FY 2023-24 finalized under MAT with 2,60,000 of credit."""
    assessment = advance_tax_service.create_assessment(
        company_id, "2023-24", make_inputs(**MAT_YEAR), test_actor_id,
    )
    advance_tax_service.activate_assessment(assessment.id, test_actor_id)
    return advance_tax_service.finalize_assessment(assessment.id, test_actor_id)


class TestMatYear:

    def test_mat_figures(self, advance_tax_service, company_id, test_actor_id):
        assessment = advance_tax_service.create_assessment(
            company_id, "2023-24", make_inputs(**MAT_YEAR), test_actor_id,
        )
        assert assessment.taxable_income == Decimal("2000000")
        assert assessment.book_profit == Decimal("5000000")
        assert assessment.total_tax_liability == Decimal("520000")
        assert assessment.total_mat == Decimal("780000")
        assert assessment.is_mat_applicable is True
        assert assessment.mat_credit_created == Decimal("260000")
        assert assessment.tax_payable_after_mat == Decimal("780000")
        assert "carried forward" in assessment.mat_applicability_reason

    def test_no_ledger_entry_before_finalize(self, advance_tax_service, company_id, test_actor_id):
        advance_tax_service.create_assessment(
            company_id, "2023-24", make_inputs(**MAT_YEAR), test_actor_id,
        )
        assert advance_tax_service.list_mat_credits(company_id) == ()

    def test_finalize_creates_credit(self, advance_tax_service, company_id, mat_year):
        entries = advance_tax_service.list_mat_credits(company_id, "2024-25")
        assert len(entries) == 1
        entry = entries[0]
        assert entry.financial_year == "2023-24"
        assert entry.assessment_year == "2024-25"
        assert entry.assessment_id == mat_year.id
        assert entry.credit_created == Decimal("260000")
        assert entry.balance == Decimal("260000")
        assert entry.normal_tax == Decimal("520000")
        assert entry.expiry_year == "2038-39"
        assert entry.status == MatCreditStatus.ACTIVE
        assert entry.is_expired is False

    def test_234b_at_finalize(self, mat_year):
        """Nothing paid; determined 1 April 2024: 7,80,000 x 1% x 1 month."""
        assert mat_year.interest_234b == Decimal("7800")
        assert mat_year.interest_234c == Decimal("39390")
        assert mat_year.total_interest == Decimal("47190")

    def test_expiry_reported_after_carry_forward(self, advance_tax_service, company_id, mat_year):
        entries = advance_tax_service.list_mat_credits(company_id, "2039-40")
        assert entries[0].is_expired is True


class TestMatCreditUtilization:

    def test_next_year_plans_draw_down(self, advance_tax_service, company_id, test_actor_id, mat_year):
        assessment = advance_tax_service.create_assessment(
            company_id, "2024-25", make_inputs(**FIFTY_LAKH), test_actor_id,
        )
        assert assessment.is_mat_applicable is False
        assert assessment.mat_credit_available == Decimal("260000")
        assert assessment.mat_credit_to_utilize == Decimal("260000")
        assert assessment.tax_payable_after_mat == Decimal("1040000")
        assert "set off" in assessment.mat_applicability_reason

        # Planned only; the ledger moves at finalization.
        entry = advance_tax_service.list_mat_credits(company_id)[0]
        assert entry.credit_utilized == Decimal("0")

    def test_finalize_writes_utilization(
        self, advance_tax_service, company_id, test_actor_id, mat_year,
    ):
        assessment = advance_tax_service.create_assessment(
            company_id, "2024-25", make_inputs(**FIFTY_LAKH), test_actor_id,
        )
        advance_tax_service.activate_assessment(assessment.id, test_actor_id)
        final = advance_tax_service.finalize_assessment(assessment.id, test_actor_id)
        assert final.tax_payable_after_mat == Decimal("1040000")
        assert final.interest_234b == Decimal("0")

        entry = advance_tax_service.list_mat_credits(company_id)[0]
        assert entry.credit_utilized == Decimal("260000")
        assert entry.balance == Decimal("0")
        assert entry.status == MatCreditStatus.FULLY_UTILIZED

        utilizations = advance_tax_service.mat_credit_utilizations(company_id, entry.id)
        assert len(utilizations) == 1
        used = utilizations[0]
        assert used.amount == Decimal("260000")
        assert used.balance_after == Decimal("0")
        assert used.source_financial_year == "2023-24"
        assert used.utilized_in_financial_year == "2024-25"
        assert used.assessment_id == assessment.id

    def test_summary(self, advance_tax_service, company_id, test_actor_id, mat_year):
        summary = advance_tax_service.mat_credit_summary(company_id, "2024-25")
        assert summary.total_created == Decimal("260000")
        assert summary.total_utilized == Decimal("0")
        assert summary.available_balance == Decimal("260000")
        assert summary.total_expired == Decimal("0")
        assert summary.expiring_soon == Decimal("0")
        assert len(summary.entries) == 1

    def test_summary_expiring_soon(self, advance_tax_service, company_id, mat_year):
        summary = advance_tax_service.mat_credit_summary(company_id, "2037-38")
        assert summary.expiring_soon == Decimal("260000")
        assert len(summary.expiring_soon_entries) == 1

    def test_summary_after_expiry(self, advance_tax_service, company_id, mat_year):
        summary = advance_tax_service.mat_credit_summary(company_id, "2039-40")
        assert summary.available_balance == Decimal("0")
        assert summary.total_expired == Decimal("260000")

    def test_unknown_credit(self, advance_tax_service, company_id):
        with pytest.raises(MatCreditNotFoundError):
            advance_tax_service.mat_credit_utilizations(company_id, uuid4())

    def test_other_company_unaffected(self, advance_tax_service, test_actor_id, mat_year):
        other = uuid4()
        assessment = advance_tax_service.create_assessment(
            other, "2024-25", make_inputs(**FIFTY_LAKH), test_actor_id,
        )
        assert assessment.mat_credit_available == Decimal("0")
        assert assessment.tax_payable_after_mat == Decimal("1300000")


def _finalize(service, company_id, fy, inputs, actor_id):
    assessment = service.create_assessment(company_id, fy, make_inputs(**inputs), actor_id)
    service.activate_assessment(assessment.id, actor_id)
    return service.finalize_assessment(assessment.id, actor_id)


class TestRevisionAfterFinalize:

    @pytest.fixture
    def service(self, make_service):
        return make_service(allow_revision_after_finalize=True)

    def test_revised_away_credit_is_reversed(self, service, company_id, test_actor_id):
        mat_year = _finalize(service, company_id, "2023-24", MAT_YEAR, test_actor_id)
        service.create_revision(
            mat_year.id, make_inputs(**FIFTY_LAKH),
            expected_revision_count=0, actor_id=test_actor_id,
        )

        entry = service.list_mat_credits(company_id, "2024-25")[0]
        assert entry.credit_created == Decimal("0")
        assert entry.credit_adjusted == Decimal("-260000")
        assert entry.balance == Decimal("0")
        assert entry.status == MatCreditStatus.REVERSED

        adjustments = service.mat_credit_adjustments(company_id, entry.id)
        assert len(adjustments) == 1
        adjustment = adjustments[0]
        assert adjustment.assessment_id == mat_year.id
        assert adjustment.revision_number == 1
        assert adjustment.previous_credit == Decimal("260000")
        assert adjustment.revised_credit == Decimal("0")
        assert adjustment.amount == Decimal("-260000")
        assert adjustment.balance_after == Decimal("0")

        summary = service.mat_credit_summary(company_id, "2024-25")
        assert summary.total_created == Decimal("0")
        assert summary.available_balance == Decimal("0")

    def test_next_year_no_longer_sees_reversed_credit(self, service, company_id, test_actor_id):
        mat_year = _finalize(service, company_id, "2023-24", MAT_YEAR, test_actor_id)
        service.create_revision(
            mat_year.id, make_inputs(**FIFTY_LAKH),
            expected_revision_count=0, actor_id=test_actor_id,
        )
        assessment = service.create_assessment(
            company_id, "2024-25", make_inputs(**FIFTY_LAKH), test_actor_id,
        )
        assert assessment.mat_credit_available == Decimal("0")
        assert assessment.tax_payable_after_mat == Decimal("1300000")

    def test_reverting_restores_credit(self, service, company_id, test_actor_id):
        mat_year = _finalize(service, company_id, "2023-24", MAT_YEAR, test_actor_id)
        service.create_revision(
            mat_year.id, make_inputs(**FIFTY_LAKH),
            expected_revision_count=0, actor_id=test_actor_id,
        )
        service.create_revision(
            mat_year.id, make_inputs(**MAT_YEAR),
            expected_revision_count=1, actor_id=test_actor_id,
        )

        entry = service.list_mat_credits(company_id, "2024-25")[0]
        assert entry.credit_created == Decimal("260000")
        assert entry.credit_adjusted == Decimal("0")
        assert entry.balance == Decimal("260000")
        assert entry.status == MatCreditStatus.ACTIVE
        amounts = [a.amount for a in service.mat_credit_adjustments(company_id)]
        assert amounts == [Decimal("-260000"), Decimal("260000")]

    def test_unchanged_credit_posts_nothing(self, service, company_id, test_actor_id):
        mat_year = _finalize(service, company_id, "2023-24", MAT_YEAR, test_actor_id)
        service.create_revision(
            mat_year.id, make_inputs(**MAT_YEAR),
            expected_revision_count=0, actor_id=test_actor_id, reason="restated",
        )
        assert service.mat_credit_adjustments(company_id) == ()
        assert service.list_mat_credits(company_id)[0].balance == Decimal("260000")

    def test_draw_down_returned_when_no_longer_needed(self, service, company_id, test_actor_id):
        _finalize(service, company_id, "2023-24", MAT_YEAR, test_actor_id)
        next_year = _finalize(service, company_id, "2024-25", FIFTY_LAKH, test_actor_id)

        # Revised into a MAT year of its own: nothing is set off, and the
        # year creates fresh credit.
        service.create_revision(
            next_year.id, make_inputs(**MAT_YEAR),
            expected_revision_count=0, actor_id=test_actor_id,
        )

        entries = {e.financial_year: e for e in service.list_mat_credits(company_id, "2024-25")}
        assert entries["2023-24"].credit_utilized == Decimal("0")
        assert entries["2023-24"].balance == Decimal("260000")
        assert entries["2023-24"].status == MatCreditStatus.ACTIVE
        assert entries["2024-25"].credit_created == Decimal("260000")
        assert entries["2024-25"].assessment_id == next_year.id

        source = entries["2023-24"].id
        amounts = [u.amount for u in service.mat_credit_utilizations(company_id, source)]
        assert sorted(amounts) == [Decimal("-260000"), Decimal("260000")]

    def test_redrawn_after_round_trip(self, service, company_id, test_actor_id):
        _finalize(service, company_id, "2023-24", MAT_YEAR, test_actor_id)
        next_year = _finalize(service, company_id, "2024-25", FIFTY_LAKH, test_actor_id)
        service.create_revision(
            next_year.id, make_inputs(**MAT_YEAR),
            expected_revision_count=0, actor_id=test_actor_id,
        )
        service.create_revision(
            next_year.id, make_inputs(**FIFTY_LAKH),
            expected_revision_count=1, actor_id=test_actor_id,
        )
        assert service.get_assessment(next_year.id).mat_credit_to_utilize == Decimal("260000")

        entries = {e.financial_year: e for e in service.list_mat_credits(company_id, "2024-25")}
        assert entries["2023-24"].credit_utilized == Decimal("260000")
        assert entries["2023-24"].status == MatCreditStatus.FULLY_UTILIZED
        assert entries["2024-25"].credit_created == Decimal("0")
        assert entries["2024-25"].status == MatCreditStatus.REVERSED

    def test_credit_used_by_later_year_cannot_be_revised_away(
        self, service, company_id, test_actor_id,
    ):
        mat_year = _finalize(service, company_id, "2023-24", MAT_YEAR, test_actor_id)
        _finalize(service, company_id, "2024-25", FIFTY_LAKH, test_actor_id)

        with pytest.raises(MatLedgerInvariantError):
            service.create_revision(
                mat_year.id, make_inputs(**FIFTY_LAKH),
                expected_revision_count=0, actor_id=test_actor_id,
            )

        assert service.get_assessment(mat_year.id).revision_count == 0
        assert service.get_assessment(mat_year.id).mat_credit_created == Decimal("260000")
        entry = service.list_mat_credits(company_id)[0]
        assert entry.credit_created == Decimal("260000")
        assert entry.credit_utilized == Decimal("260000")
        assert service.mat_credit_adjustments(company_id) == ()

    def test_draft_revision_leaves_ledger_alone(self, service, company_id, test_actor_id):
        _finalize(service, company_id, "2023-24", MAT_YEAR, test_actor_id)
        active = service.create_assessment(
            company_id, "2024-25", make_inputs(**FIFTY_LAKH), test_actor_id,
        )
        service.activate_assessment(active.id, test_actor_id)
        service.create_revision(
            active.id, make_inputs(regime="normal", ytd_revenue="5200000"),
            expected_revision_count=0, actor_id=test_actor_id,
        )
        assert service.list_mat_credits(company_id)[0].credit_utilized == Decimal("0")
        assert service.mat_credit_utilizations(company_id) == ()
