"""Termination Workflows.

State machine for termination settlement. Deductions can be toggled
only while the termination is a draft.
"""

from payroll_kernel.domain.workflow import Guard, Transition, Workflow
from payroll_kernel.logging_config import get_logger
from payroll_modules.termination.models import TerminationStatus

logger = get_logger("modules.termination.workflows")


# -----------------------------------------------------------------------------
# Guards
# -----------------------------------------------------------------------------

SETTLEMENT_VALID = Guard(
    name="settlement_valid",
    description="Termination validation rules report no errors",
)

FINAL_PAYRUN_FINALIZED = Guard(
    name="final_payrun_finalized",
    description="The payrun carrying the final payslip is finalized for the employee",
)


# -----------------------------------------------------------------------------
# Termination Workflow
# -----------------------------------------------------------------------------

TERMINATION_WORKFLOW = Workflow(
    name="termination",
    description="Termination settlement lifecycle",
    initial_state=TerminationStatus.DRAFT,
    states=(
        TerminationStatus.DRAFT,
        TerminationStatus.PENDING_PAYROLL,
        TerminationStatus.COMPLETED,
    ),
    transitions=(
        Transition(TerminationStatus.DRAFT, TerminationStatus.DRAFT, action="update_deduction"),
        Transition(TerminationStatus.DRAFT, TerminationStatus.PENDING_PAYROLL,
                   action="submit", guard=SETTLEMENT_VALID),
        Transition(TerminationStatus.PENDING_PAYROLL, TerminationStatus.COMPLETED,
                   action="complete", guard=FINAL_PAYRUN_FINALIZED),
    ),
    terminal_states=(TerminationStatus.COMPLETED,),
)

logger.info(
    "termination_workflow_registered",
    extra={
        "workflow_name": TERMINATION_WORKFLOW.name,
        "state_count": len(TERMINATION_WORKFLOW.states),
        "transition_count": len(TERMINATION_WORKFLOW.transitions),
    },
)
