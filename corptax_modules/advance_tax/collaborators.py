"""
Advance tax collaborators.

Responsibility:
    Protocols for the systems the advance tax service reads from or writes
    to but does not own: TDS/TCS totals (filed by the TDS and GST modules)
    and the general ledger that books advance tax payments.  Simple
    in-memory implementations are provided for wiring and tests.

Architecture position:
    Modules layer.  The service receives implementations by constructor
    injection; the rule-pack provider protocol lives in ``corptax_config``.
"""

from __future__ import annotations

from datetime import date
from decimal import Decimal
from typing import Protocol, runtime_checkable
from uuid import UUID, uuid4

from corptax_config.provider import RulePackProvider

__all__ = [
    "JournalPoster",
    "NullJournalPoster",
    "RecordingJournalPoster",
    "RulePackProvider",
    "StaticTdsTcsSource",
    "TdsTcsSource",
]


@runtime_checkable
class TdsTcsSource(Protocol):
    """
    Year-to-date TDS receivable and TCS credit for a company.

    Implementors return totals for the whole financial year as known today.
    """

    def tds_receivable(self, company_id: UUID, financial_year: str) -> Decimal: ...

    def tcs_credit(self, company_id: UUID, financial_year: str) -> Decimal: ...


@runtime_checkable
class JournalPoster(Protocol):
    """
    Books an advance tax payment in the general ledger.

    Returns the journal entry id.  Any exception means nothing was booked.
    """

    def post_advance_tax_payment(
        self,
        *,
        payment_id: UUID,
        company_id: UUID,
        financial_year: str,
        amount: Decimal,
        payment_date: date,
        bank_account_id: UUID | None,
        actor_id: UUID,
    ) -> UUID: ...


class StaticTdsTcsSource:
    """In-memory TDS/TCS totals keyed by (company_id, financial_year)."""

    def __init__(self, totals: dict[tuple[UUID, str], tuple[Decimal, Decimal]] | None = None):
        self._totals = dict(totals or {})

    def set(self, company_id: UUID, financial_year: str, *, tds: Decimal, tcs: Decimal) -> None:
        self._totals[(company_id, financial_year)] = (Decimal(tds), Decimal(tcs))

    def tds_receivable(self, company_id: UUID, financial_year: str) -> Decimal:
        return self._totals.get((company_id, financial_year), (Decimal("0"), Decimal("0")))[0]

    def tcs_credit(self, company_id: UUID, financial_year: str) -> Decimal:
        return self._totals.get((company_id, financial_year), (Decimal("0"), Decimal("0")))[1]


class NullJournalPoster:
    """Poster used when no ledger is wired; posting requests fail loudly."""

    def post_advance_tax_payment(self, **kwargs) -> UUID:
        raise RuntimeError("No journal poster configured")


class RecordingJournalPoster:
    """Poster that records requests and returns fresh journal entry ids."""

    def __init__(self):
        self.posted: list[dict] = []

    def post_advance_tax_payment(self, **kwargs) -> UUID:
        entry_id = uuid4()
        self.posted.append({**kwargs, "journal_entry_id": entry_id})
        return entry_id
