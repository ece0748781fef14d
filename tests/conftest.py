"""
Pytest fixtures for the corptax test suite.

Provides:
- A database session per test, rolled back at teardown
- Deterministic clock, packaged rule packs and fake collaborators
- Builders for assessment inputs

Environment Variables:
- DATABASE_URL: database connection URL.  Defaults to in-memory SQLite;
  set a postgresql+psycopg2 URL to run the suite against PostgreSQL.
"""

import json
import logging
import os
from datetime import date
from decimal import Decimal
from io import StringIO
from typing import Generator
from uuid import UUID, uuid4

import pytest
from sqlalchemy.orm import Session

from corptax_config.provider import FileRulePackProvider
from corptax_engines.reconciliation import ReconciliationInput
from corptax_kernel.db.engine import drop_tables, init_engine_from_url, reset_engine
from corptax_kernel.db.immutability import unregister_immutability_listeners
from corptax_kernel.domain.clock import DeterministicClock
from corptax_kernel.logging_config import (
    LogContext,
    StructuredFormatter,
    configure_logging,
    reset_logging,
)
from corptax_modules._orm_registry import create_all_tables
from corptax_modules.advance_tax.collaborators import RecordingJournalPoster, StaticTdsTcsSource
from corptax_modules.advance_tax.config import AdvanceTaxConfig
from corptax_modules.advance_tax.models import AssessmentInputs
from corptax_modules.advance_tax.service import AdvanceTaxService

# Test actor ID for all test operations
TEST_ACTOR_ID = uuid4()

DEFAULT_DATABASE_URL = "sqlite://"


def get_database_url() -> str:
    return os.environ.get("DATABASE_URL", DEFAULT_DATABASE_URL)


def make_inputs(
    *,
    regime: str = "normal",
    ytd_revenue: Decimal | str = "0",
    ytd_expenses: Decimal | str = "0",
    book_profit: Decimal | str | None = None,
    rule_pack_version: int | None = None,
    **adjustments,
) -> AssessmentInputs:
    """AssessmentInputs with Decimal coercion for terse tests."""
    recon = ReconciliationInput(
        ytd_revenue=Decimal(ytd_revenue),
        ytd_expenses=Decimal(ytd_expenses),
        book_profit=None if book_profit is None else Decimal(book_profit),
        **{name: Decimal(value) for name, value in adjustments.items()},
    )
    return AssessmentInputs(
        regime=regime, reconciliation=recon, rule_pack_version=rule_pack_version,
    )


def pytest_configure(config):
    """Register custom markers."""
    config.addinivalue_line(
        "markers", "postgres: mark test as requiring PostgreSQL"
    )
    config.addinivalue_line(
        "markers", "slow_locks: mark test as potentially waiting for DB locks"
    )


# =============================================================================
# Logging fixtures
# =============================================================================


@pytest.fixture(autouse=True, scope="session")
def _configure_test_logging():
    """Configure structured logging for the test suite."""
    reset_logging()
    configure_logging(level=logging.DEBUG)
    yield
    reset_logging()


@pytest.fixture(autouse=True)
def _clear_log_context():
    """Clear LogContext between tests to prevent cross-test contamination."""
    LogContext.clear()
    yield
    LogContext.clear()


@pytest.fixture
def captured_logs():
    """
    Capture corptax logs as parsed JSON dicts.

    Usage::

        def test_something(captured_logs, advance_tax_service):
            advance_tax_service.create_assessment(...)
            logs = captured_logs()
            assert any(r["message"] == "advance_tax_assessment_created" for r in logs)
    """
    stream = StringIO()
    handler = logging.StreamHandler(stream)
    handler.setFormatter(StructuredFormatter())
    root = logging.getLogger("corptax")
    root.addHandler(handler)

    def _get_records() -> list[dict]:
        lines = stream.getvalue().strip().split("\n")
        return [json.loads(line) for line in lines if line]

    yield _get_records

    root.removeHandler(handler)


# =============================================================================
# Session-scoped DB infrastructure (create engine + tables ONCE per suite)
# =============================================================================


@pytest.fixture(scope="session")
def db_engine():
    """Single engine for the entire test session."""
    eng = init_engine_from_url(get_database_url(), echo=False)
    yield eng
    reset_engine()


@pytest.fixture(scope="session")
def db_tables(db_engine):
    """Create all tables once per session and register immutability listeners."""
    drop_tables()
    create_all_tables()
    yield
    unregister_immutability_listeners()
    drop_tables()


# =============================================================================
# Per-test session with automatic rollback
# =============================================================================


@pytest.fixture(scope="function")
def session(db_tables, db_engine) -> Generator[Session, None, None]:
    """Provide a database session for testing.

    The session joins an outer transaction on a dedicated connection;
    ``session.commit()`` inside the service releases a savepoint, and the
    outer transaction is rolled back at teardown.
    """
    conn = db_engine.connect()
    trans = conn.begin()
    sess = Session(bind=conn, join_transaction_mode="create_savepoint", expire_on_commit=False)
    yield sess
    try:
        sess.close()
    finally:
        try:
            trans.rollback()
        finally:
            conn.close()


# =============================================================================
# Common fixtures
# =============================================================================


@pytest.fixture
def test_actor_id() -> UUID:
    """Provide a consistent test actor ID."""
    return TEST_ACTOR_ID


@pytest.fixture
def company_id() -> UUID:
    return uuid4()


@pytest.fixture
def deterministic_clock():
    """Clock fixed at 1 April 2024, the first day of FY 2024-25."""
    return DeterministicClock()


@pytest.fixture
def rule_pack_provider():
    """Packaged YAML rule packs, read on every call."""
    return FileRulePackProvider()


@pytest.fixture
def tds_tcs_source():
    return StaticTdsTcsSource()


@pytest.fixture
def journal_poster():
    return RecordingJournalPoster()


@pytest.fixture
def advance_tax_config():
    return AdvanceTaxConfig.with_defaults()


@pytest.fixture
def advance_tax_service(
    session,
    rule_pack_provider,
    tds_tcs_source,
    journal_poster,
    advance_tax_config,
    deterministic_clock,
) -> AdvanceTaxService:
    return AdvanceTaxService(
        session=session,
        rule_pack_provider=rule_pack_provider,
        tds_tcs_source=tds_tcs_source,
        journal_poster=journal_poster,
        config=advance_tax_config,
        clock=deterministic_clock,
    )


@pytest.fixture
def fy_start() -> date:
    return date(2024, 4, 1)
