"""
Rule pack lifecycle status.

Rule packs are append-only. A correction is published as a new version of
the same financial year and the previous version becomes SUPERSEDED.  Only
PUBLISHED packs are chosen by default; SUPERSEDED packs stay resolvable by
explicit version for replay and audit.  DRAFT packs are never resolved.
"""

from enum import Enum, unique


@unique
class RulePackStatus(str, Enum):
    """Lifecycle status for a rule pack."""

    DRAFT = "draft"
    REVIEWED = "reviewed"
    APPROVED = "approved"
    PUBLISHED = "published"
    SUPERSEDED = "superseded"


ALLOWED_TRANSITIONS: dict[RulePackStatus, frozenset[RulePackStatus]] = {
    RulePackStatus.DRAFT: frozenset({RulePackStatus.REVIEWED}),
    RulePackStatus.REVIEWED: frozenset({RulePackStatus.APPROVED, RulePackStatus.DRAFT}),
    RulePackStatus.APPROVED: frozenset({RulePackStatus.PUBLISHED, RulePackStatus.DRAFT}),
    RulePackStatus.PUBLISHED: frozenset({RulePackStatus.SUPERSEDED}),
    RulePackStatus.SUPERSEDED: frozenset(),  # Terminal
}

# Statuses a caller may resolve by explicit version.
RESOLVABLE_STATUSES: frozenset[RulePackStatus] = frozenset(
    {RulePackStatus.PUBLISHED, RulePackStatus.SUPERSEDED}
)


def validate_transition(current: RulePackStatus, target: RulePackStatus) -> bool:
    """Check if a status transition is valid."""
    return target in ALLOWED_TRANSITIONS.get(current, frozenset())
