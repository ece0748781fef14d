"""
corptax_config -- single public entrypoint for statutory rate tables.

Responsibility:
    Provides the ONLY way to obtain a rule pack from disk through
    ``get_rule_pack()``.  Rule packs are versioned YAML documents under
    ``corptax_config/packs/`` (or an override directory), each scoped to one
    financial year.

Architecture position:
    Configuration -- sits above ``corptax_kernel`` and below
    ``corptax_engines`` / ``corptax_modules``.  Engines receive packs
    through the ``RulePackProvider`` protocol as immutable snapshots.

Invariants enforced:
    - Single entrypoint: all file-backed rate lookups flow through
      ``get_rule_pack()``.
    - Every returned pack has passed validation.
    - Fingerprint pinning: when APPROVED_FINGERPRINTS lists the pack, its
      checksum must match.
    - DRAFT packs are never returned.

Failure modes:
    - ``RulePackNotFoundError`` -- no PUBLISHED pack for the year, or the
      requested version does not exist / is not resolvable.
    - ``RulePackValidationError`` -- the selected pack is invalid.
    - ``RulePackIntegrityError`` -- checksum differs from the pinned value.

Audit relevance:
    Every successful call emits a ``CORPTAX_CONFIG_TRACE`` log entry with the
    pack id, version, status and checksum.
"""

from __future__ import annotations

import logging
from pathlib import Path

from corptax_config.integrity import RulePackIntegrityError, verify_fingerprint_pin
from corptax_config.lifecycle import RulePackStatus
from corptax_config.loader import load_rule_packs
from corptax_config.provider import (
    CachingRulePackProvider,
    FileRulePackProvider,
    RulePackProvider,
    StaticRulePackProvider,
    select_rule_pack,
)
from corptax_config.schema import RegimeRule, RulePack, SurchargeTier, TaxSlab
from corptax_config.validator import RulePackValidationError, ensure_valid

_logger = logging.getLogger("corptax.config")

DEFAULT_PACK_DIR = Path(__file__).parent / "packs"


def get_rule_pack(
    financial_year: str,
    version: int | None = None,
    config_dir: Path | None = None,
) -> RulePack:
    """The ONLY public rule pack entrypoint.

    Guarantees:
        - The returned pack has passed validation and (when pinned)
          fingerprint verification.
        - A ``CORPTAX_CONFIG_TRACE`` log entry is emitted on every
          successful call.

    Non-goals:
        - No caching; wrap a provider in ``CachingRulePackProvider`` for that.

    Args:
        financial_year: Label such as "2024-25".
        version: Explicit version, or None for the latest PUBLISHED one.
        config_dir: Override directory.  Defaults to corptax_config/packs/.

    Raises:
        RulePackNotFoundError, RulePackValidationError, RulePackIntegrityError.
    """
    pack_dir = config_dir or DEFAULT_PACK_DIR
    pack = select_rule_pack(load_rule_packs(pack_dir), financial_year, version)

    validation = ensure_valid(pack)
    for warning in validation.warnings:
        _logger.warning(
            "rule_pack_validation_warning",
            extra={"pack_id": pack.pack_id, "warning": warning},
        )

    verify_fingerprint_pin(pack.pack_id, pack.checksum, pack_dir)

    _logger.info(
        "CORPTAX_CONFIG_TRACE",
        extra={
            "trace_type": "CORPTAX_CONFIG_TRACE",
            "pack_id": pack.pack_id,
            "financial_year": pack.financial_year,
            "pack_version": pack.version,
            "pack_status": pack.status.value,
            "checksum": pack.checksum,
            "regime_count": len(pack.regimes),
        },
    )
    return pack


__all__ = [
    "CachingRulePackProvider",
    "DEFAULT_PACK_DIR",
    "FileRulePackProvider",
    "RegimeRule",
    "RulePack",
    "RulePackIntegrityError",
    "RulePackProvider",
    "RulePackStatus",
    "RulePackValidationError",
    "StaticRulePackProvider",
    "SurchargeTier",
    "TaxSlab",
    "get_rule_pack",
]
