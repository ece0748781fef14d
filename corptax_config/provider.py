"""
Rule Pack Providers (``corptax_config.provider``).

Responsibility
--------------
Implementations of the rule pack provider collaborator consumed by the
rate resolver:

* ``FileRulePackProvider`` -- reads packs through ``get_rule_pack()``.
* ``StaticRulePackProvider`` -- an already-fetched, immutable snapshot of
  packs (tests, replay, callers that load packs from elsewhere).
* ``CachingRulePackProvider`` -- explicit, time-bounded cache in front of
  another provider, keyed by financial year and version.

Architecture position
---------------------
**Config layer**.  The engines depend only on the ``RulePackProvider``
protocol, never on these classes.

Invariants enforced
-------------------
* Cache entries expire after ``ttl_seconds`` measured on the injected
  ``Clock``; there is no implicit global cache.
* Selection never returns a DRAFT pack.
"""

from __future__ import annotations

import threading
from collections.abc import Iterable
from dataclasses import dataclass
from datetime import datetime, timedelta
from pathlib import Path
from typing import Protocol, runtime_checkable

from corptax_config.lifecycle import RESOLVABLE_STATUSES, RulePackStatus
from corptax_config.schema import RulePack
from corptax_kernel.domain.clock import Clock, SystemClock
from corptax_kernel.exceptions import RulePackNotFoundError
from corptax_kernel.logging_config import get_logger

logger = get_logger("config.provider")


@runtime_checkable
class RulePackProvider(Protocol):
    """Supplies the rule pack for a financial year (latest active, or a version)."""

    def get_rule_pack(self, financial_year: str, version: int | None = None) -> RulePack:
        ...


def select_rule_pack(
    packs: Iterable[RulePack],
    financial_year: str,
    version: int | None = None,
) -> RulePack:
    """
    Pick the pack for a financial year.

    Without ``version`` the highest PUBLISHED version wins.  With ``version``
    that exact version is returned if it is PUBLISHED or SUPERSEDED.

    Raises:
        RulePackNotFoundError: if nothing matches.
    """
    same_year = [p for p in packs if p.financial_year == financial_year]
    if version is None:
        candidates = [p for p in same_year if p.status == RulePackStatus.PUBLISHED]
    else:
        candidates = [
            p for p in same_year
            if p.version == version and p.status in RESOLVABLE_STATUSES
        ]
    if not candidates:
        raise RulePackNotFoundError(financial_year, version)
    return max(candidates, key=lambda p: p.version)


class StaticRulePackProvider:
    """Provider over an in-memory, immutable set of packs."""

    def __init__(self, packs: Iterable[RulePack]):
        self._packs: tuple[RulePack, ...] = tuple(packs)

    def get_rule_pack(self, financial_year: str, version: int | None = None) -> RulePack:
        return select_rule_pack(self._packs, financial_year, version)


class FileRulePackProvider:
    """Provider reading YAML packs from a directory on every call."""

    def __init__(self, config_dir: Path | None = None):
        self._config_dir = config_dir

    def get_rule_pack(self, financial_year: str, version: int | None = None) -> RulePack:
        from corptax_config import get_rule_pack

        return get_rule_pack(financial_year, version=version, config_dir=self._config_dir)


@dataclass(frozen=True)
class _CacheEntry:
    pack: RulePack
    expires_at: datetime


class CachingRulePackProvider:
    """
    Time-bounded cache in front of another provider.

    Contract:
        Entries are keyed by ``(financial_year, version)`` and expire
        ``ttl_seconds`` after they were fetched, per the injected clock.
        ``invalidate()`` drops everything.
    """

    def __init__(
        self,
        inner: RulePackProvider,
        clock: Clock | None = None,
        ttl_seconds: int = 300,
    ):
        if ttl_seconds <= 0:
            raise ValueError("ttl_seconds must be positive")
        self._inner = inner
        self._clock = clock or SystemClock()
        self._ttl = timedelta(seconds=ttl_seconds)
        self._entries: dict[tuple[str, int | None], _CacheEntry] = {}
        self._lock = threading.Lock()

    def get_rule_pack(self, financial_year: str, version: int | None = None) -> RulePack:
        key = (financial_year, version)
        now = self._clock.now()
        with self._lock:
            entry = self._entries.get(key)
            if entry is not None and now < entry.expires_at:
                logger.debug(
                    "rule_pack_cache_hit",
                    extra={"financial_year": financial_year, "version": version},
                )
                return entry.pack

        pack = self._inner.get_rule_pack(financial_year, version)
        with self._lock:
            self._entries[key] = _CacheEntry(pack=pack, expires_at=now + self._ttl)
        logger.debug(
            "rule_pack_cache_miss",
            extra={
                "financial_year": financial_year,
                "version": version,
                "resolved_version": pack.version,
            },
        )
        return pack

    def invalidate(self) -> None:
        with self._lock:
            self._entries.clear()
