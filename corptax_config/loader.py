"""
Rule Pack Loader (``corptax_config.loader``).

Responsibility
--------------
Loads rule pack YAML files and parses them into typed
``corptax_config.schema`` dataclass instances.  This is internal tooling:
the single public entry point for runtime rates is
``corptax_config.get_rule_pack()``.

Architecture position
---------------------
**Config layer** -- infrastructure tooling.  No dependency on modules or
engines.

Invariants enforced
-------------------
* All parse errors raise ``ValueError`` or ``KeyError`` with descriptive
  messages; no silent defaults for required fields.
* Rates and thresholds are parsed through ``str`` into ``Decimal`` so YAML
  floats never leak binary rounding into tax arithmetic.
* ``compute_checksum`` produces a deterministic SHA-256 hash of the source
  document.

Failure modes
-------------
* Missing YAML file  -> ``FileNotFoundError`` propagates.
* Malformed YAML  -> ``yaml.YAMLError`` propagates.
* Missing required keys  -> ``KeyError`` propagates.
* Invalid date or number  -> ``ValueError``.

Audit relevance
---------------
The checksum is stored on every assessment, tying each computed liability
to the exact rate table that produced it.
"""

from __future__ import annotations

import hashlib
import json
from datetime import date
from decimal import Decimal, InvalidOperation
from pathlib import Path
from typing import Any

import yaml

from corptax_config.lifecycle import RulePackStatus
from corptax_config.schema import RegimeRule, RulePack, SurchargeTier, TaxSlab


def load_yaml_file(path: Path) -> dict[str, Any]:
    """
    Load a single YAML file and return its contents as a dict.

    Raises:
        FileNotFoundError: if the file does not exist.
        yaml.YAMLError: if the file contains invalid YAML.
    """
    with open(path) as f:
        return yaml.safe_load(f) or {}


def parse_date(value: Any) -> date:
    """Parse a date from YAML (string or date object)."""
    if isinstance(value, date):
        return value
    if isinstance(value, str):
        return date.fromisoformat(value)
    raise ValueError(f"Cannot parse date from {value!r}")


def parse_decimal(value: Any, field: str) -> Decimal:
    """Parse a number from YAML into Decimal via its string form."""
    if isinstance(value, bool) or value is None:
        raise ValueError(f"{field}: expected a number, got {value!r}")
    try:
        return Decimal(str(value))
    except InvalidOperation as exc:
        raise ValueError(f"{field}: cannot parse {value!r} as a decimal") from exc


def parse_slab(data: dict[str, Any], field: str) -> TaxSlab:
    up_to = data.get("up_to")
    return TaxSlab(
        up_to=parse_decimal(up_to, f"{field}.up_to") if up_to is not None else None,
        rate=parse_decimal(data["rate"], f"{field}.rate"),
    )


def parse_surcharge_tier(data: dict[str, Any], field: str) -> SurchargeTier:
    return SurchargeTier(
        threshold=parse_decimal(data["threshold"], f"{field}.threshold"),
        rate=parse_decimal(data["rate"], f"{field}.rate"),
    )


def parse_regime(name: str, data: dict[str, Any]) -> RegimeRule:
    """Parse one regime block.  A bare ``rate`` is shorthand for one flat slab."""
    if "slabs" in data:
        slabs = tuple(
            parse_slab(s, f"regimes.{name}.slabs[{i}]")
            for i, s in enumerate(data["slabs"])
        )
    else:
        slabs = (TaxSlab(up_to=None, rate=parse_decimal(data["rate"], f"regimes.{name}.rate")),)
    return RegimeRule(
        regime=name,
        slabs=slabs,
        surcharge_tiers=tuple(
            parse_surcharge_tier(t, f"regimes.{name}.surcharge[{i}]")
            for i, t in enumerate(data.get("surcharge", []))
        ),
        mat_applies=bool(data.get("mat_applies", True)),
        description=data.get("description", ""),
    )


def compute_checksum(data: dict[str, Any]) -> str:
    """SHA-256 of the canonical JSON form of a parsed YAML document."""
    canonical = json.dumps(data, sort_keys=True, default=str, separators=(",", ":"))
    return hashlib.sha256(canonical.encode("utf-8")).hexdigest()


def parse_rule_pack(data: dict[str, Any]) -> RulePack:
    """
    Parse a ``RulePack`` from a YAML document.

    Postconditions:
        - ``checksum`` is computed from ``data``.
    Raises:
        KeyError: if a required key is missing.
        ValueError: for invalid dates, numbers or status values.
    """
    mat = data.get("mat", {})
    regimes = data["regimes"]
    return RulePack(
        pack_id=data["pack_id"],
        financial_year=str(data["financial_year"]),
        version=int(data["version"]),
        status=RulePackStatus(data.get("status", RulePackStatus.DRAFT.value)),
        effective_from=parse_date(data["effective_from"]),
        effective_to=parse_date(data["effective_to"]) if data.get("effective_to") else None,
        cess_rate=parse_decimal(data["cess_rate"], "cess_rate"),
        mat_rate=parse_decimal(mat["rate"], "mat.rate"),
        mat_surcharge_tiers=tuple(
            parse_surcharge_tier(t, f"mat.surcharge[{i}]")
            for i, t in enumerate(mat.get("surcharge", []))
        ),
        mat_carry_forward_years=int(mat.get("carry_forward_years", 15)),
        regimes=tuple(parse_regime(str(name), block) for name, block in regimes.items()),
        description=data.get("description", ""),
        checksum=compute_checksum(data),
    )


def load_rule_pack(path: Path) -> RulePack:
    """Load and parse one rule pack file."""
    return parse_rule_pack(load_yaml_file(path))


def load_rule_packs(directory: Path) -> list[RulePack]:
    """Load every ``*.yaml`` rule pack in a directory, sorted by file name."""
    if not directory.is_dir():
        raise FileNotFoundError(f"Rule pack directory not found: {directory}")
    return [load_rule_pack(path) for path in sorted(directory.glob("*.yaml"))]
