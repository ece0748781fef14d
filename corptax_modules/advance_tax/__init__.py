"""
Advance Tax Module.

Responsibility:
    Thin glue for corporate advance tax: assessments, quarterly schedules,
    payments, 234B/234C interest, revisions and the MAT credit ledger.
    Delegates all arithmetic to ``corptax_engines`` and all rates to the
    rule packs of ``corptax_config``.

Architecture:
    corptax_modules -- module glue (this layer).
    The module owns domain models, ORM persistence, configuration,
    workflows and the service.  Tax arithmetic lives in the engines.

Invariants:
    - All monetary amounts use ``Decimal`` -- NEVER ``float``.
    - Every mutating service method follows the single-transaction
      boundary contract: commit on success, rollback on failure.

Failure modes:
    - ``AdvanceTaxConfig.__post_init__`` raises ``ValueError`` for invalid
      policy values.
    - Service methods raise typed ``CorpTaxError`` subclasses.

Audit relevance:
    - Revisions, MAT credit utilizations and posted payments are
      append-only; MAT credit entries are never deleted.
"""

from corptax_modules.advance_tax.calculator import (
    AssessmentCalculator,
    AssessmentComputation,
    WhatIfResult,
)
from corptax_modules.advance_tax.config import AdvanceTaxConfig
from corptax_modules.advance_tax.models import (
    AdvanceTaxAssessment,
    AdvanceTaxPayment,
    AdvanceTaxRevision,
    AdvanceTaxTracker,
    AssessmentInputs,
    AssessmentStatus,
    ChallanSnapshot,
    ComplianceDashboard,
    MatCreditEntry,
    MatCreditSummary,
    PaymentResult,
    ScheduleRow,
    WhatIfAdjustments,
)
from corptax_modules.advance_tax.service import AdvanceTaxService
from corptax_modules.advance_tax.sweep import InterestSweep
from corptax_modules.advance_tax.workflows import ASSESSMENT_WORKFLOW

__all__ = [
    "ASSESSMENT_WORKFLOW",
    "AdvanceTaxAssessment",
    "AdvanceTaxConfig",
    "AdvanceTaxPayment",
    "AdvanceTaxRevision",
    "AdvanceTaxService",
    "AdvanceTaxTracker",
    "AssessmentCalculator",
    "AssessmentComputation",
    "AssessmentInputs",
    "AssessmentStatus",
    "ChallanSnapshot",
    "ComplianceDashboard",
    "InterestSweep",
    "MatCreditEntry",
    "MatCreditSummary",
    "PaymentResult",
    "ScheduleRow",
    "WhatIfAdjustments",
    "WhatIfResult",
]
