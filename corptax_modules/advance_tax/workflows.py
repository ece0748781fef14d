"""Advance Tax Workflows.

State machine for the assessment lifecycle: draft -> active -> finalized.
Draft assessments are edited in place; active ones change only through
revisions; finalized ones are closed for the year.
"""

from corptax_kernel.domain.workflow import Guard, Transition, Workflow
from corptax_kernel.logging_config import get_logger

logger = get_logger("modules.advance_tax.workflows")


# -----------------------------------------------------------------------------
# Guards
# -----------------------------------------------------------------------------

REVISION_CURRENT = Guard(
    name="revision_current",
    description="Caller's expected revision count matches the stored one",
)

SHORTFALL_RESOLVED = Guard(
    name="shortfall_resolved",
    description="No unpaid shortfall remains (only when the policy requires it)",
)

REVISION_AFTER_FINALIZE_ALLOWED = Guard(
    name="revision_after_finalize_allowed",
    description="Policy permits revising a finalized assessment",
)

logger.info(
    "advance_tax_workflow_guards_defined",
    extra={
        "guards": [
            REVISION_CURRENT.name,
            SHORTFALL_RESOLVED.name,
            REVISION_AFTER_FINALIZE_ALLOWED.name,
        ],
    },
)


# -----------------------------------------------------------------------------
# Assessment Workflow
# -----------------------------------------------------------------------------

ASSESSMENT_WORKFLOW = Workflow(
    name="advance_tax_assessment",
    description="Advance tax assessment lifecycle",
    initial_state="draft",
    states=(
        "draft",
        "active",
        "finalized",
    ),
    transitions=(
        Transition("draft", "draft", action="update"),
        Transition("draft", "active", action="activate"),
        Transition("active", "active", action="revise", guard=REVISION_CURRENT),
        Transition("active", "finalized", action="finalize", guard=SHORTFALL_RESOLVED),
        Transition(
            "finalized", "finalized", action="revise", guard=REVISION_AFTER_FINALIZE_ALLOWED,
        ),
    ),
    terminal_states=("finalized",),
)

logger.info(
    "advance_tax_assessment_workflow_registered",
    extra={
        "workflow_name": ASSESSMENT_WORKFLOW.name,
        "state_count": len(ASSESSMENT_WORKFLOW.states),
        "transition_count": len(ASSESSMENT_WORKFLOW.transitions),
        "initial_state": ASSESSMENT_WORKFLOW.initial_state,
    },
)
