"""
Fixtures for multi-session tests.

The suite-wide ``session`` fixture shares one connection, which cannot show
two transactions racing.  These fixtures build a file-backed SQLite database
per test so every worker opens its own connection.
"""

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

from corptax_config.provider import FileRulePackProvider
from corptax_kernel.db.base import Base
from corptax_kernel.domain.clock import DeterministicClock
from corptax_modules._orm_registry import import_all_orm_models
from corptax_modules.advance_tax.config import AdvanceTaxConfig
from corptax_modules.advance_tax.service import AdvanceTaxService


@pytest.fixture
def file_session_factory(tmp_path):
    engine = create_engine(
        f"sqlite:///{tmp_path / 'corptax.db'}",
        connect_args={"check_same_thread": False, "timeout": 30},
    )
    import_all_orm_models()
    Base.metadata.create_all(engine)
    yield sessionmaker(bind=engine, expire_on_commit=False)
    engine.dispose()


@pytest.fixture
def shared_clock():
    return DeterministicClock()


@pytest.fixture
def service_factory(shared_clock):
    """Service bound to whichever session the caller hands in."""
    provider = FileRulePackProvider()
    config = AdvanceTaxConfig.with_defaults()

    def _make(session) -> AdvanceTaxService:
        return AdvanceTaxService(
            session=session,
            rule_pack_provider=provider,
            config=config,
            clock=shared_clock,
        )

    return _make
