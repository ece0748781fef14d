"""
Advance Tax Configuration Schema.

Defines the business policy knobs for advance tax and sensible statutory
defaults.  Rates live in rule packs (``corptax_config``); this dataclass
holds only policy that is not a rate.
"""

from dataclasses import dataclass, field
from decimal import Decimal
from typing import Self

from corptax_engines.schedule import InstallmentRule, UpfrontCreditPolicy, validate_installments
from corptax_kernel.logging_config import get_logger

logger = get_logger("modules.advance_tax.config")


@dataclass
class AdvanceTaxConfig:
    """
    Configuration schema for the advance tax module.

    Field defaults follow Sections 211, 234B and 234C and Section 115JAA.
    Override at instantiation with company-specific policy:

        config = AdvanceTaxConfig(
            block_finalize_with_shortfall=True,
            revision_variance_threshold=Decimal("5"),
        )
    """

    # Installments (Section 211)
    cumulative_percentages: tuple[Decimal, ...] = (
        Decimal("15"), Decimal("45"), Decimal("75"), Decimal("100"),
    )
    due_dates: tuple[tuple[int, int], ...] = ((6, 15), (9, 15), (12, 15), (3, 15))
    relief_percentages: dict[int, Decimal] = field(
        default_factory=lambda: {1: Decimal("12"), 2: Decimal("36")},
    )

    # Interest (Sections 234B / 234C)
    interest_rate_per_month: Decimal = Decimal("0.01")
    threshold_234b: Decimal = Decimal("0.90")
    months_234c: tuple[int, ...] = (3, 3, 3, 1)

    # MAT credit ledger (carry-forward period comes from the rule pack)
    mat_expiring_soon_years: int = 2

    # Schedule policy
    upfront_credit_policy: UpfrontCreditPolicy = UpfrontCreditPolicy.NET_BEFORE_ALLOCATION

    # Revision advisory
    revision_variance_threshold: Decimal = Decimal("10")
    revision_due_window_days: int = 15

    # Lifecycle policy
    block_finalize_with_shortfall: bool = False
    allow_revision_after_finalize: bool = False

    # Compliance dashboard
    at_risk_window_days: int = 15

    # Rule pack provider cache
    rule_pack_cache_ttl_seconds: int = 300

    def __post_init__(self):
        count = len(self.cumulative_percentages)
        if len(self.due_dates) != count:
            raise ValueError("due_dates must have one entry per installment")
        if len(self.months_234c) != count:
            raise ValueError("months_234c must have one entry per installment")
        for month, day in self.due_dates:
            if not 1 <= month <= 12 or not 1 <= day <= 31:
                raise ValueError(f"invalid due date ({month}, {day})")
        for quarter in self.relief_percentages:
            if not 1 <= quarter <= count:
                raise ValueError(f"relief quarter {quarter} out of range")

        # Installment table rules (ordering, final 100%) live with the engine.
        validate_installments(self.installment_rules())

        if not Decimal("0") <= self.interest_rate_per_month <= Decimal("1"):
            raise ValueError("interest_rate_per_month must be between 0 and 1")
        if not Decimal("0") < self.threshold_234b <= Decimal("1"):
            raise ValueError("threshold_234b must be in (0, 1]")
        if self.mat_expiring_soon_years < 0:
            raise ValueError("mat_expiring_soon_years cannot be negative")
        if self.revision_variance_threshold < 0:
            raise ValueError("revision_variance_threshold cannot be negative")
        if self.revision_due_window_days < 0:
            raise ValueError("revision_due_window_days cannot be negative")
        if self.at_risk_window_days < 0:
            raise ValueError("at_risk_window_days cannot be negative")
        if self.rule_pack_cache_ttl_seconds <= 0:
            raise ValueError("rule_pack_cache_ttl_seconds must be positive")

        logger.info(
            "advance_tax_config_initialized",
            extra={
                "cumulative_percentages": [str(p) for p in self.cumulative_percentages],
                "upfront_credit_policy": self.upfront_credit_policy.value,
                "interest_rate_per_month": str(self.interest_rate_per_month),
                "threshold_234b": str(self.threshold_234b),
                "block_finalize_with_shortfall": self.block_finalize_with_shortfall,
                "allow_revision_after_finalize": self.allow_revision_after_finalize,
            },
        )

    def installment_rules(self) -> tuple[InstallmentRule, ...]:
        return tuple(
            InstallmentRule(
                quarter=idx + 1,
                cumulative_percentage=pct,
                due_month=self.due_dates[idx][0],
                due_day=self.due_dates[idx][1],
                relief_percentage=self.relief_percentages.get(idx + 1),
                interest_months=self.months_234c[idx],
            )
            for idx, pct in enumerate(self.cumulative_percentages)
        )

    @classmethod
    def with_defaults(cls) -> Self:
        """Create config with statutory defaults."""
        logger.info("advance_tax_config_created_with_defaults")
        return cls()

    @classmethod
    def from_dict(cls, data: dict) -> Self:
        """Create config from dictionary (e.g., loaded from database/file)."""
        logger.info(
            "advance_tax_config_loading_from_dict",
            extra={"keys": sorted(data.keys())},
        )
        data = dict(data)
        decimal_fields = (
            "interest_rate_per_month", "threshold_234b", "revision_variance_threshold",
        )
        for name in decimal_fields:
            if name in data:
                data[name] = Decimal(str(data[name]))
        if "cumulative_percentages" in data:
            data["cumulative_percentages"] = tuple(
                Decimal(str(p)) for p in data["cumulative_percentages"]
            )
        if "due_dates" in data:
            data["due_dates"] = tuple(tuple(d) for d in data["due_dates"])
        if "months_234c" in data:
            data["months_234c"] = tuple(data["months_234c"])
        if "relief_percentages" in data:
            data["relief_percentages"] = {
                int(q): Decimal(str(p)) for q, p in data["relief_percentages"].items()
            }
        if "upfront_credit_policy" in data:
            data["upfront_credit_policy"] = UpfrontCreditPolicy(data["upfront_credit_policy"])
        return cls(**data)
