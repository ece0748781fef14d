"""
Rule Pack Schema (``corptax_config.schema``).

Responsibility
--------------
Frozen dataclasses describing a versioned, financial-year-scoped table of
statutory corporate tax rates: per-regime slabs and surcharge tiers, the
health and education cess, and the MAT rate with its own surcharge tiers.

Architecture position
---------------------
**Config layer** -- pure data.  Produced by ``corptax_config.loader``,
checked by ``corptax_config.validator`` and consumed by
``corptax_engines.rates``.

Invariants enforced
-------------------
* All dataclasses are ``frozen=True``.
* Rates are ``Decimal`` fractions (0.25 means 25%) -- NEVER ``float``.
* ``checksum`` is the SHA-256 of the canonical source document and is
  recorded on every assessment computed with the pack.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date
from decimal import Decimal

from corptax_config.lifecycle import RulePackStatus


@dataclass(frozen=True)
class TaxSlab:
    """Income band taxed at ``rate``; ``up_to`` of None means unbounded."""

    up_to: Decimal | None
    rate: Decimal


@dataclass(frozen=True)
class SurchargeTier:
    """Surcharge ``rate`` applying once income exceeds ``threshold``."""

    threshold: Decimal
    rate: Decimal


@dataclass(frozen=True)
class RegimeRule:
    """Rates for one corporate regime (normal, 115BAA, 115BAB)."""

    regime: str
    slabs: tuple[TaxSlab, ...]
    surcharge_tiers: tuple[SurchargeTier, ...] = ()
    mat_applies: bool = True
    description: str = ""


@dataclass(frozen=True)
class RulePack:
    """A versioned rate table for one financial year."""

    pack_id: str
    financial_year: str
    version: int
    status: RulePackStatus
    effective_from: date
    cess_rate: Decimal
    mat_rate: Decimal
    regimes: tuple[RegimeRule, ...]
    mat_surcharge_tiers: tuple[SurchargeTier, ...] = ()
    mat_carry_forward_years: int = 15
    effective_to: date | None = None
    description: str = ""
    checksum: str = ""

    def regime(self, name: str) -> RegimeRule | None:
        for rule in self.regimes:
            if rule.regime == name:
                return rule
        return None

    @property
    def regime_names(self) -> tuple[str, ...]:
        return tuple(rule.regime for rule in self.regimes)
