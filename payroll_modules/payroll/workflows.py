"""Payroll Workflows.

State machine for payrun processing.
"""

from payroll_kernel.domain.workflow import Guard, Transition, Workflow
from payroll_kernel.logging_config import get_logger
from payroll_modules.payroll.models import PayrunStatus

logger = get_logger("modules.payroll.workflows")


# -----------------------------------------------------------------------------
# Guards
# -----------------------------------------------------------------------------

EMPLOYEES_SNAPSHOTTED = Guard(
    name="employees_snapshotted",
    description="Eligible employee inputs are captured for the run",
)

ALL_PAYSLIPS_COMPUTED = Guard(
    name="all_payslips_computed",
    description="Every eligible employee has a payslip (success or error)",
)

PAYSLIPS_PRESENT = Guard(
    name="payslips_present",
    description="The run has been calculated at least once",
)

NO_PAYSLIP_ERRORS = Guard(
    name="no_payslip_errors",
    description="employees_with_errors is zero",
)

logger.info(
    "payrun_workflow_guards_defined",
    extra={
        "guards": [
            EMPLOYEES_SNAPSHOTTED.name,
            ALL_PAYSLIPS_COMPUTED.name,
            PAYSLIPS_PRESENT.name,
            NO_PAYSLIP_ERRORS.name,
        ],
    },
)


# -----------------------------------------------------------------------------
# Payrun Workflow
# -----------------------------------------------------------------------------

PAYRUN_WORKFLOW = Workflow(
    name="payrun",
    description="Payrun calculation and finalization lifecycle",
    initial_state=PayrunStatus.DRAFT,
    states=(
        PayrunStatus.DRAFT,
        PayrunStatus.CALCULATING,
        PayrunStatus.READY,
        PayrunStatus.FINALIZED,
    ),
    transitions=(
        Transition(PayrunStatus.DRAFT, PayrunStatus.CALCULATING,
                   action="run", guard=EMPLOYEES_SNAPSHOTTED),
        Transition(PayrunStatus.CALCULATING, PayrunStatus.READY,
                   action="complete_calculation", guard=ALL_PAYSLIPS_COMPUTED),
        Transition(PayrunStatus.CALCULATING, PayrunStatus.DRAFT, action="cancel"),
        Transition(PayrunStatus.READY, PayrunStatus.DRAFT, action="edit"),  # totals invalidated
        Transition(PayrunStatus.DRAFT, PayrunStatus.DRAFT, action="edit"),
        Transition(PayrunStatus.DRAFT, PayrunStatus.READY,
                   action="recalculate", guard=PAYSLIPS_PRESENT),
        Transition(PayrunStatus.READY, PayrunStatus.FINALIZED,
                   action="finalize", guard=NO_PAYSLIP_ERRORS),
    ),
    terminal_states=(PayrunStatus.FINALIZED,),
)

logger.info(
    "payrun_workflow_registered",
    extra={
        "workflow_name": PAYRUN_WORKFLOW.name,
        "state_count": len(PAYRUN_WORKFLOW.states),
        "transition_count": len(PAYRUN_WORKFLOW.transitions),
        "initial_state": PAYRUN_WORKFLOW.initial_state.value,
    },
)
