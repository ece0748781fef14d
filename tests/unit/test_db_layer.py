"""
Tests for the database layer: URL selection, session scope and column types.
"""

from datetime import date
from decimal import Decimal

import pytest
from sqlalchemy import select

from corptax_kernel.db.base import JSONDocument
from corptax_kernel.db.engine import database_url_from_env, session_scope
from corptax_modules.advance_tax.orm import AdvanceTaxAssessmentModel


class TestDatabaseUrl:

    def test_default_is_in_memory_sqlite(self, monkeypatch):
        monkeypatch.delenv("DATABASE_URL", raising=False)
        assert database_url_from_env() == "sqlite://"

    def test_env_override(self, monkeypatch):
        monkeypatch.setenv("DATABASE_URL", "postgresql+psycopg2://u:p@db/corptax")
        assert database_url_from_env() == "postgresql+psycopg2://u:p@db/corptax"


class TestSessionScope:

    def test_rollback_and_reraise(self, db_tables):
        with pytest.raises(RuntimeError, match="boom"):
            with session_scope() as session:
                session.execute(select(AdvanceTaxAssessmentModel.id))
                raise RuntimeError("boom")

    def test_commit(self, db_tables):
        with session_scope() as session:
            assert list(session.scalars(
                select(AdvanceTaxAssessmentModel.id).where(
                    AdvanceTaxAssessmentModel.financial_year == "1999-00",
                )
            )) == []


class TestJSONDocument:

    def setup_method(self):
        self.type = JSONDocument()

    def test_sorted_keys_and_decimal_strings(self):
        stored = self.type.process_bind_param(
            {"b": Decimal("1300000"), "a": date(2024, 6, 15)}, dialect=None,
        )
        assert stored == '{"a": "2024-06-15", "b": "1300000"}'

    def test_round_trip(self):
        stored = self.type.process_bind_param({"total": "1300000"}, dialect=None)
        assert self.type.process_result_value(stored, dialect=None) == {"total": "1300000"}

    def test_none_passthrough(self):
        assert self.type.process_bind_param(None, dialect=None) is None
        assert self.type.process_result_value(None, dialect=None) is None

    def test_unsupported_value(self):
        with pytest.raises(TypeError):
            self.type.process_bind_param({"x": object()}, dialect=None)
