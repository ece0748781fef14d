"""
Typed Exception Hierarchy for the CorpTax engine.

===============================================================================
WHY TYPED EXCEPTIONS
===============================================================================

Callers render tax errors to accountants, filing tools and APIs. Parsing
message strings to decide what went wrong is fragile, so every error:

  1. Has a TYPED exception class (catch by type, not message)
  2. Has a CODE attribute (machine-readable, API-safe)
  3. Carries structured DATA (field, expected range, entity id)

Example:
    try:
        service.create_revision(assessment_id, inputs, expected_revision_count=2)
    except StaleRevisionError as e:
        show_banner(e.user_message)            # human-readable
        api_response(code=e.code, current=e.actual_revision_count)

===============================================================================
EXCEPTION HIERARCHY
===============================================================================

    CorpTaxError (base)
    |
    +-- ValidationError
    |   +-- InvalidRegimeError
    |   +-- InvalidQuarterError
    |   +-- InvalidRateError
    |   +-- InvalidAmountError
    |   +-- InvalidFinancialYearError
    |   +-- InvalidStatusTransitionError
    |   +-- AssessmentFinalizedError
    |
    +-- NotFoundError
    |   +-- RulePackNotFoundError
    |   +-- AssessmentNotFoundError
    |   +-- PaymentNotFoundError
    |   +-- MatCreditNotFoundError
    |
    +-- ConflictError
    |   +-- StaleRevisionError
    |   +-- AssessmentAlreadyExistsError
    |   +-- UnresolvedShortfallError
    |
    +-- ComputationError
    |   +-- ScheduleInvariantError
    |   +-- MatLedgerInvariantError
    |
    +-- ImmutabilityError
        +-- ImmutabilityViolationError

===============================================================================
ERROR CODES - QUICK REFERENCE
===============================================================================

Category     | Code                        | When Raised
-------------|-----------------------------|--------------------------------------
Validation   | INVALID_REGIME              | Regime not normal/115BAA/115BAB
             | INVALID_QUARTER             | Quarter outside 1-4
             | INVALID_RATE                | Negative or out-of-range rate
             | INVALID_AMOUNT              | Negative amount where not allowed
             | INVALID_FINANCIAL_YEAR      | Not in "YYYY-YY" form
             | INVALID_STATUS_TRANSITION   | draft/active/finalized misuse
             | ASSESSMENT_FINALIZED        | Edit attempted on finalized period
-------------|-----------------------------|--------------------------------------
NotFound     | RULE_PACK_NOT_FOUND         | No active rule pack for year/version
             | ASSESSMENT_NOT_FOUND        | Unknown assessment id
             | PAYMENT_NOT_FOUND           | Unknown payment id
             | MAT_CREDIT_NOT_FOUND        | Unknown MAT credit ledger entry
-------------|-----------------------------|--------------------------------------
Conflict     | STALE_REVISION              | revision_count moved underneath caller
             | ASSESSMENT_ALREADY_EXISTS   | Second assessment for company + FY
             | UNRESOLVED_SHORTFALL        | Finalize blocked by open shortfall
-------------|-----------------------------|--------------------------------------
Computation  | SCHEDULE_INVARIANT_VIOLATED | Internal defect in schedule math
             | MAT_LEDGER_INVARIANT        | Internal defect in MAT credit math
-------------|-----------------------------|--------------------------------------
Immutability | IMMUTABILITY_VIOLATION      | Revision/utilization/posted payment edit

===============================================================================
HANDLING PATTERNS
===============================================================================

Business outcomes such as "MAT not applicable", "no 234B interest" or "zero
liability in a loss year" are NOT exceptions; they are explicit fields on the
typed results.  ComputationError subclasses are always defects and should be
reported, never shown to users as business errors.  Nothing in the engine
retries internally.
"""


class CorpTaxError(Exception):
    """Base exception for all CorpTax errors."""

    code: str = "CORPTAX_ERROR"


# Validation errors


class ValidationError(CorpTaxError):
    """Malformed or out-of-range input."""

    code: str = "VALIDATION_ERROR"

    def __init__(self, message: str, field: str | None = None, expected: str | None = None):
        self.field = field
        self.expected = expected
        super().__init__(message)


class InvalidRegimeError(ValidationError):
    """Regime is not one of the supported corporate regimes."""

    code: str = "INVALID_REGIME"

    def __init__(self, regime: str):
        self.regime = regime
        super().__init__(
            f"Unknown tax regime: {regime!r}",
            field="regime",
            expected="normal | 115BAA | 115BAB",
        )


class InvalidQuarterError(ValidationError):
    """Quarter number outside 1-4."""

    code: str = "INVALID_QUARTER"

    def __init__(self, quarter: object):
        self.quarter = quarter
        super().__init__(
            f"Quarter must be between 1 and 4, got {quarter!r}",
            field="quarter",
            expected="1-4",
        )


class InvalidRateError(ValidationError):
    """Rate is negative or above 100%."""

    code: str = "INVALID_RATE"

    def __init__(self, field: str, rate: object):
        self.rate = rate
        super().__init__(
            f"Rate {field} must be between 0 and 1, got {rate}",
            field=field,
            expected="0 <= rate <= 1",
        )


class InvalidAmountError(ValidationError):
    """Amount is negative where only non-negative values are allowed."""

    code: str = "INVALID_AMOUNT"

    def __init__(self, field: str, amount: object, expected: str = ">= 0"):
        self.amount = amount
        super().__init__(
            f"Invalid amount for {field}: {amount} (expected {expected})",
            field=field,
            expected=expected,
        )


class InvalidFinancialYearError(ValidationError):
    """Financial year label is not of the form YYYY-YY."""

    code: str = "INVALID_FINANCIAL_YEAR"

    def __init__(self, value: object):
        self.value = value
        super().__init__(
            f"Invalid financial year: {value!r}",
            field="financial_year",
            expected="YYYY-YY with consecutive years, e.g. 2024-25",
        )


class InvalidStatusTransitionError(ValidationError):
    """Lifecycle transition not allowed from the current status."""

    code: str = "INVALID_STATUS_TRANSITION"

    def __init__(self, entity_id: str, from_status: str, action: str):
        self.entity_id = entity_id
        self.from_status = from_status
        self.action = action
        super().__init__(
            f"Cannot {action} assessment {entity_id} in status {from_status!r}",
            field="status",
        )


class AssessmentFinalizedError(ValidationError):
    """Direct edit or revision attempted on a finalized assessment."""

    code: str = "ASSESSMENT_FINALIZED"

    def __init__(self, assessment_id: str, action: str):
        self.assessment_id = assessment_id
        self.action = action
        super().__init__(
            f"Assessment {assessment_id} is finalized; cannot {action}",
            field="status",
        )


# Not-found errors


class NotFoundError(CorpTaxError):
    """Referenced entity or configuration does not exist."""

    code: str = "NOT_FOUND"


class RulePackNotFoundError(NotFoundError):
    """No active rule pack covers the requested financial year / version."""

    code: str = "RULE_PACK_NOT_FOUND"

    def __init__(self, financial_year: str, version: int | None = None):
        self.financial_year = financial_year
        self.version = version
        detail = f" version {version}" if version is not None else ""
        super().__init__(
            f"No active rule pack for financial year {financial_year}{detail}"
        )


class AssessmentNotFoundError(NotFoundError):
    """Assessment id (or company + financial year) is unknown."""

    code: str = "ASSESSMENT_NOT_FOUND"

    def __init__(self, assessment_id: str):
        self.assessment_id = assessment_id
        super().__init__(f"Assessment not found: {assessment_id}")


class PaymentNotFoundError(NotFoundError):
    """Payment id is unknown."""

    code: str = "PAYMENT_NOT_FOUND"

    def __init__(self, payment_id: str):
        self.payment_id = payment_id
        super().__init__(f"Advance tax payment not found: {payment_id}")


class MatCreditNotFoundError(NotFoundError):
    """MAT credit ledger entry is unknown."""

    code: str = "MAT_CREDIT_NOT_FOUND"

    def __init__(self, mat_credit_id: str):
        self.mat_credit_id = mat_credit_id
        super().__init__(f"MAT credit not found: {mat_credit_id}")


# Conflict errors


class ConflictError(CorpTaxError):
    """Request conflicts with the current persisted state."""

    code: str = "CONFLICT"


class StaleRevisionError(ConflictError):
    """
    Caller's view of the assessment is out of date.

    Raised when the expected revision count does not match the stored one,
    or when a concurrent flush bumped the row version first.
    """

    code: str = "STALE_REVISION"

    user_message: str = "Someone else updated this assessment. Reload and retry."

    def __init__(
        self,
        assessment_id: str,
        expected_revision_count: int | None = None,
        actual_revision_count: int | None = None,
    ):
        self.assessment_id = assessment_id
        self.expected_revision_count = expected_revision_count
        self.actual_revision_count = actual_revision_count
        super().__init__(
            f"Stale revision for assessment {assessment_id}: "
            f"expected revision_count={expected_revision_count}, "
            f"found {actual_revision_count}"
        )


class AssessmentAlreadyExistsError(ConflictError):
    """An assessment already exists for the company + financial year."""

    code: str = "ASSESSMENT_ALREADY_EXISTS"

    def __init__(self, company_id: str, financial_year: str):
        self.company_id = company_id
        self.financial_year = financial_year
        super().__init__(
            f"Assessment already exists for company {company_id} "
            f"in financial year {financial_year}"
        )


class UnresolvedShortfallError(ConflictError):
    """Finalization blocked because advance tax is still short."""

    code: str = "UNRESOLVED_SHORTFALL"

    def __init__(self, assessment_id: str, shortfall: object):
        self.assessment_id = assessment_id
        self.shortfall = shortfall
        super().__init__(
            f"Assessment {assessment_id} has an unresolved shortfall of {shortfall}"
        )


# Computation errors (always defects)


class ComputationError(CorpTaxError):
    """An internal invariant was violated during computation."""

    code: str = "COMPUTATION_ERROR"

    def __init__(self, invariant: str, detail: str):
        self.invariant = invariant
        self.detail = detail
        super().__init__(f"Invariant '{invariant}' violated: {detail}")


class ScheduleInvariantError(ComputationError):
    """Schedule math produced an impossible state."""

    code: str = "SCHEDULE_INVARIANT_VIOLATED"


class MatLedgerInvariantError(ComputationError):
    """MAT credit ledger math produced an impossible state."""

    code: str = "MAT_LEDGER_INVARIANT"


# Immutability errors


class ImmutabilityError(CorpTaxError):
    """Base exception for immutability-related errors."""

    code: str = "IMMUTABILITY_ERROR"


class ImmutabilityViolationError(ImmutabilityError):
    """
    Attempted to modify or delete an immutable record.

    Revisions and MAT credit utilizations are immutable from creation;
    payments become immutable once linked to a posted journal entry;
    MAT credit ledger entries are never deleted.
    """

    code: str = "IMMUTABILITY_VIOLATION"

    def __init__(self, entity_type: str, entity_id: str, reason: str):
        self.entity_type = entity_type
        self.entity_id = entity_id
        self.reason = reason
        super().__init__(
            f"Immutability violation on {entity_type} {entity_id}: {reason}"
        )
