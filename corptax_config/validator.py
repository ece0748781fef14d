"""
Rule Pack Validator (``corptax_config.validator``).

Responsibility
--------------
Validates a parsed ``RulePack`` before it can be resolved at runtime.

Architecture position
---------------------
**Config layer** -- load-time validation.  Called by
``corptax_config.get_rule_pack`` for every candidate pack.

Invariants enforced
-------------------
* Every rate (slab, surcharge, cess, MAT) lies in [0, 1].
* Slab upper bounds strictly increase and only the last slab is unbounded.
* Surcharge thresholds are non-negative and strictly increase.
* Regime names are the supported corporate regimes.
* The financial year label is well-formed and the version is positive.

Failure modes
-------------
* Validation errors -> ``RulePackValidationError`` (a ``ValidationError``);
  the pack MUST NOT be used.
* Warnings do not block use but should be reviewed.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from decimal import Decimal

from corptax_config.schema import RulePack, SurchargeTier
from corptax_kernel.domain.fiscal_year import FinancialYear
from corptax_kernel.exceptions import InvalidFinancialYearError, ValidationError

KNOWN_REGIMES = frozenset({"normal", "115BAA", "115BAB"})

_ZERO = Decimal("0")
_ONE = Decimal("1")


class RulePackValidationError(ValidationError):
    """A rule pack failed validation."""

    code: str = "RULE_PACK_INVALID"

    def __init__(self, pack_id: str, errors: list[str]):
        self.pack_id = pack_id
        self.errors = errors
        super().__init__(
            f"Rule pack {pack_id!r} failed validation:\n"
            + "\n".join(f"  - {e}" for e in errors),
            field="rule_pack",
        )


@dataclass
class RulePackValidationResult:
    """
    Result of rule pack validation.

    ``is_valid`` returns ``True`` only when ``errors`` is empty.
    """

    errors: list[str] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)

    @property
    def is_valid(self) -> bool:
        return len(self.errors) == 0

    def add_error(self, msg: str) -> None:
        self.errors.append(msg)

    def add_warning(self, msg: str) -> None:
        self.warnings.append(msg)


def _check_rate(result: RulePackValidationResult, name: str, rate: Decimal) -> None:
    if rate < _ZERO or rate > _ONE:
        result.add_error(f"{name}: rate {rate} outside [0, 1]")


def _check_tiers(
    result: RulePackValidationResult, name: str, tiers: tuple[SurchargeTier, ...]
) -> None:
    previous: Decimal | None = None
    for i, tier in enumerate(tiers):
        _check_rate(result, f"{name}[{i}]", tier.rate)
        if tier.threshold < _ZERO:
            result.add_error(f"{name}[{i}]: negative threshold {tier.threshold}")
        if previous is not None and tier.threshold <= previous:
            result.add_error(f"{name}[{i}]: thresholds must strictly increase")
        previous = tier.threshold


def validate_rule_pack(pack: RulePack) -> RulePackValidationResult:
    """
    Validate a rule pack.

    Postconditions:
        Returns a result; never raises.
    """
    result = RulePackValidationResult()

    try:
        fy = FinancialYear.parse(pack.financial_year)
    except InvalidFinancialYearError:
        result.add_error(f"financial_year: invalid label {pack.financial_year!r}")
        fy = None

    if pack.version < 1:
        result.add_error(f"version: must be >= 1, got {pack.version}")

    if pack.effective_to is not None and pack.effective_to < pack.effective_from:
        result.add_error("effective_to precedes effective_from")
    if fy is not None and pack.effective_from > fy.end_date:
        result.add_warning(
            f"effective_from {pack.effective_from} is after the end of {fy.label}"
        )

    _check_rate(result, "cess_rate", pack.cess_rate)
    _check_rate(result, "mat.rate", pack.mat_rate)
    _check_tiers(result, "mat.surcharge", pack.mat_surcharge_tiers)
    if pack.mat_carry_forward_years < 1:
        result.add_error("mat.carry_forward_years must be >= 1")

    if not pack.regimes:
        result.add_error("regimes: at least one regime is required")

    for rule in pack.regimes:
        if rule.regime not in KNOWN_REGIMES:
            result.add_error(f"regimes.{rule.regime}: unknown regime")
        if not rule.slabs:
            result.add_error(f"regimes.{rule.regime}: no slabs")
        previous: Decimal | None = None
        for i, slab in enumerate(rule.slabs):
            _check_rate(result, f"regimes.{rule.regime}.slabs[{i}]", slab.rate)
            last = i == len(rule.slabs) - 1
            if slab.up_to is None and not last:
                result.add_error(
                    f"regimes.{rule.regime}.slabs[{i}]: only the last slab may be unbounded"
                )
            if slab.up_to is not None:
                if last:
                    result.add_error(
                        f"regimes.{rule.regime}.slabs[{i}]: last slab must be unbounded"
                    )
                if previous is not None and slab.up_to <= previous:
                    result.add_error(
                        f"regimes.{rule.regime}.slabs[{i}]: bounds must strictly increase"
                    )
                previous = slab.up_to
        _check_tiers(result, f"regimes.{rule.regime}.surcharge", rule.surcharge_tiers)

    return result


def ensure_valid(pack: RulePack) -> RulePackValidationResult:
    """Validate and raise ``RulePackValidationError`` on any error."""
    result = validate_rule_pack(pack)
    if not result.is_valid:
        raise RulePackValidationError(pack.pack_id, result.errors)
    return result
