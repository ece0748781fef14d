"""
ORM-Level Immutability Enforcement.

===============================================================================
WHY THIS EXISTS
===============================================================================

Advance tax and MAT records are evidence.  An assessing officer or auditor
must be able to see what was estimated, when, and on which rule pack; the
MAT credit ledger must show every rupee of credit created and every rupee
utilized for fifteen years.  Changes are made by appending new records
(a revision, a utilization), never by editing old ones.

SQLAlchemy fires events before UPDATE/DELETE operations reach the database.
We register listeners that intercept these events and check our rules:

    session.flush()
         |
         v
    [before_update event] --> _check_*_immutability() --> ImmutabilityViolationError
         |                                                        ^
         v                                                        |
    [before_delete event] --> _check_*_delete() -----------------+
         |
         v
    SQL sent to database (only if checks pass)

If a check fails, ImmutabilityViolationError is raised, the service rolls
the transaction back, and the database is never modified.

===============================================================================
WHAT'S PROTECTED
===============================================================================

Entity                  | Immutable When                  | Notes
------------------------|---------------------------------|-------------------------------
AdvanceTaxRevision      | ALWAYS (from creation)          | Before/after snapshots are the audit trail
MatCreditUtilization    | ALWAYS (from creation)          | Ledger movement; negative returns credit
MatCreditAdjustment     | ALWAYS (from creation)          | Revision of a finalized MAT year
AdvanceTaxPayment       | After is_posted = True          | Journal entry references it
MatCredit               | Never deletable                 | Only adjusted/utilized/balance/status
                        |                                 | may change;
                        |                                 | balance never negative

updated_at / updated_by_id are audit metadata and may always change.

===============================================================================
USAGE
===============================================================================

Called once at startup, after the ORM models are imported:

    from corptax_kernel.db.immutability import register_immutability_listeners
    register_immutability_listeners()

To temporarily disable (TESTS ONLY - never in production):

    from corptax_kernel.db.immutability import unregister_immutability_listeners
    unregister_immutability_listeners()
"""

from decimal import Decimal

from sqlalchemy import event, inspect
from sqlalchemy.orm.attributes import get_history

from corptax_kernel.exceptions import ImmutabilityViolationError
from corptax_kernel.logging_config import get_logger

logger = get_logger("db.immutability")

AUDIT_FIELDS = frozenset({"updated_at", "updated_by_id"})

MAT_CREDIT_MUTABLE_FIELDS = frozenset({
    "credit_adjusted",
    "credit_utilized",
    "balance",
    "status",
    "updated_at",
    "updated_by_id",
})


def _blocked(entity_type: str, entity_id, operation: str, reason: str, field: str | None = None):
    logger.error(
        "immutability_violation_blocked",
        extra={
            "entity_type": entity_type,
            "entity_id": str(entity_id),
            "operation": operation,
            "field": field,
        },
    )
    return ImmutabilityViolationError(
        entity_type=entity_type,
        entity_id=str(entity_id),
        reason=reason,
    )


def _first_changed_field(target, allowed: frozenset[str]) -> str | None:
    for attr in inspect(target).attrs:
        if attr.key in allowed:
            continue
        if attr.history.has_changes():
            return attr.key
    return None


# ---------------------------------------------------------------------------
# Revisions and utilizations: append-only from creation
# ---------------------------------------------------------------------------

def _check_revision_immutability(mapper, connection, target):
    """Revisions are never modified once written."""
    field = _first_changed_field(target, AUDIT_FIELDS)
    if field is None:
        return
    raise _blocked(
        "AdvanceTaxRevision", target.id, "UPDATE",
        "Advance tax revisions are immutable", field=field,
    )


def _check_revision_delete(mapper, connection, target):
    raise _blocked(
        "AdvanceTaxRevision", target.id, "DELETE",
        "Advance tax revisions cannot be deleted",
    )


def _check_utilization_immutability(mapper, connection, target):
    """MAT credit utilizations are never modified once written."""
    field = _first_changed_field(target, AUDIT_FIELDS)
    if field is None:
        return
    raise _blocked(
        "MatCreditUtilization", target.id, "UPDATE",
        "MAT credit utilizations are immutable", field=field,
    )


def _check_utilization_delete(mapper, connection, target):
    raise _blocked(
        "MatCreditUtilization", target.id, "DELETE",
        "MAT credit utilizations cannot be deleted",
    )


def _check_adjustment_immutability(mapper, connection, target):
    field = _first_changed_field(target, AUDIT_FIELDS)
    if field is None:
        return
    raise _blocked(
        "MatCreditAdjustment", target.id, "UPDATE",
        "MAT credit adjustments are immutable", field=field,
    )


def _check_adjustment_delete(mapper, connection, target):
    raise _blocked(
        "MatCreditAdjustment", target.id, "DELETE",
        "MAT credit adjustments cannot be deleted",
    )


# ---------------------------------------------------------------------------
# Payments: immutable once posted
# ---------------------------------------------------------------------------

def _payment_was_posted(target) -> bool:
    """True when the row was already posted before this flush.

    The posting step itself flips is_posted False -> True and is allowed.
    """
    history = get_history(target, "is_posted")
    if history.deleted:
        return bool(history.deleted[0])
    if not history.added:
        return bool(target.is_posted)
    return False


def _check_payment_immutability(mapper, connection, target):
    """Posted payments are append-only; unposted payments are editable."""
    if not _payment_was_posted(target):
        return
    field = _first_changed_field(target, AUDIT_FIELDS)
    if field is None:
        return
    raise _blocked(
        "AdvanceTaxPayment", target.id, "UPDATE",
        f"Cannot modify field '{field}' on a posted advance tax payment",
        field=field,
    )


def _check_payment_delete(mapper, connection, target):
    if not target.is_posted:
        return
    raise _blocked(
        "AdvanceTaxPayment", target.id, "DELETE",
        "Posted advance tax payments cannot be deleted",
    )


# ---------------------------------------------------------------------------
# MAT credit ledger: never deleted, financial fields frozen
# ---------------------------------------------------------------------------

def _check_mat_credit_immutability(mapper, connection, target):
    """Only utilization fields may change, and the balance stays within bounds."""
    field = _first_changed_field(target, MAT_CREDIT_MUTABLE_FIELDS)
    if field is not None:
        raise _blocked(
            "MatCredit", target.id, "UPDATE",
            f"Cannot modify field '{field}' on a MAT credit ledger entry",
            field=field,
        )
    if target.balance < Decimal("0") or target.credit_utilized > target.effective_credit:
        raise _blocked(
            "MatCredit", target.id, "UPDATE",
            f"MAT credit balance would become {target.balance} "
            f"(utilized {target.credit_utilized} of {target.effective_credit})",
            field="balance",
        )


def _check_mat_credit_delete(mapper, connection, target):
    raise _blocked(
        "MatCredit", target.id, "DELETE",
        "MAT credit ledger entries are never deleted; expiry is computed",
    )


def _listeners():
    from corptax_modules.advance_tax.orm import (
        AdvanceTaxPaymentModel,
        AdvanceTaxRevisionModel,
        MatCreditAdjustmentModel,
        MatCreditModel,
        MatCreditUtilizationModel,
    )

    return (
        (AdvanceTaxRevisionModel, "before_update", _check_revision_immutability),
        (AdvanceTaxRevisionModel, "before_delete", _check_revision_delete),
        (MatCreditUtilizationModel, "before_update", _check_utilization_immutability),
        (MatCreditUtilizationModel, "before_delete", _check_utilization_delete),
        (MatCreditAdjustmentModel, "before_update", _check_adjustment_immutability),
        (MatCreditAdjustmentModel, "before_delete", _check_adjustment_delete),
        (AdvanceTaxPaymentModel, "before_update", _check_payment_immutability),
        (AdvanceTaxPaymentModel, "before_delete", _check_payment_delete),
        (MatCreditModel, "before_update", _check_mat_credit_immutability),
        (MatCreditModel, "before_delete", _check_mat_credit_delete),
    )


def register_immutability_listeners():
    """
    Register all immutability enforcement event listeners.

    Idempotent: listeners already registered are left in place.
    """
    for target, event_name, listener_fn in _listeners():
        if not event.contains(target, event_name, listener_fn):
            event.listen(target, event_name, listener_fn)
    logger.debug("immutability_listeners_registered")


def _safe_remove_listener(target, event_name, listener_fn):
    """
    Safely remove an event listener, ignoring if not registered.
    """
    if event.contains(target, event_name, listener_fn):
        event.remove(target, event_name, listener_fn)


def unregister_immutability_listeners():
    """
    Remove immutability enforcement event listeners.

    WARNING: Only use this in tests where you need to intentionally
    violate immutability rules to verify detection.
    """
    for target, event_name, listener_fn in _listeners():
        _safe_remove_listener(target, event_name, listener_fn)
    logger.debug("immutability_listeners_unregistered")
