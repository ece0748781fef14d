"""
Shared fixtures for advance tax module tests.
"""

import pytest

from corptax_modules.advance_tax.config import AdvanceTaxConfig
from corptax_modules.advance_tax.service import AdvanceTaxService
from tests.conftest import make_inputs

FY = "2024-25"

# Normal regime, 50 lakh taxable: 25% + 4% cess = 13,00,000; MAT (7,80,000)
# stays below normal tax.
FIFTY_LAKH = dict(regime="normal", ytd_revenue="5000000")

# Normal regime with 30 lakh of IT depreciation: normal tax 5,20,000 on
# 20 lakh taxable, MAT 7,80,000 on 50 lakh book profit, credit 2,60,000.
MAT_YEAR = dict(regime="normal", ytd_revenue="5000000", it_depreciation="3000000")


@pytest.fixture
def make_service(
    session,
    rule_pack_provider,
    tds_tcs_source,
    journal_poster,
    deterministic_clock,
):
    """Build an AdvanceTaxService on the test session with config overrides."""

    def _make(*, journal=journal_poster, **config_overrides) -> AdvanceTaxService:
        return AdvanceTaxService(
            session=session,
            rule_pack_provider=rule_pack_provider,
            tds_tcs_source=tds_tcs_source,
            journal_poster=journal,
            config=AdvanceTaxConfig(**config_overrides),
            clock=deterministic_clock,
        )

    return _make


@pytest.fixture
def fifty_lakh(advance_tax_service, company_id, test_actor_id):
    """Draft FY 2024-25 assessment with 13,00,000 payable after MAT."""
    return advance_tax_service.create_assessment(
        company_id, FY, make_inputs(**FIFTY_LAKH), test_actor_id,
    )


@pytest.fixture
def active_fifty_lakh(advance_tax_service, fifty_lakh, test_actor_id):
    return advance_tax_service.activate_assessment(fifty_lakh.id, test_actor_id)
