"""Leave Workflows.

State machine for leave requests. Transitions are one-directional;
cancellation is reachable from pending or approved, and only before the
leave period starts.
"""

from payroll_kernel.domain.workflow import Guard, Transition, Workflow
from payroll_kernel.logging_config import get_logger
from payroll_modules.leave.models import LeaveRequestStatus

logger = get_logger("modules.leave.workflows")


# -----------------------------------------------------------------------------
# Guards
# -----------------------------------------------------------------------------

BALANCE_RESERVED = Guard(
    name="balance_reserved",
    description="Requested days are held as pending on the leave balance",
)

REJECTION_REASON_GIVEN = Guard(
    name="rejection_reason_given",
    description="A rejection carries a non-empty reason",
)

BEFORE_LEAVE_START = Guard(
    name="before_leave_start",
    description="The leave period has not started yet",
)


# -----------------------------------------------------------------------------
# Leave Request Workflow
# -----------------------------------------------------------------------------

LEAVE_REQUEST_WORKFLOW = Workflow(
    name="leave_request",
    description="Leave request approval lifecycle",
    initial_state=LeaveRequestStatus.PENDING,
    states=(
        LeaveRequestStatus.PENDING,
        LeaveRequestStatus.APPROVED,
        LeaveRequestStatus.REJECTED,
        LeaveRequestStatus.CANCELLED,
    ),
    transitions=(
        Transition(LeaveRequestStatus.PENDING, LeaveRequestStatus.APPROVED,
                   action="approve", guard=BALANCE_RESERVED),
        Transition(LeaveRequestStatus.PENDING, LeaveRequestStatus.REJECTED,
                   action="reject", guard=REJECTION_REASON_GIVEN),
        Transition(LeaveRequestStatus.PENDING, LeaveRequestStatus.CANCELLED,
                   action="cancel", guard=BEFORE_LEAVE_START),
        Transition(LeaveRequestStatus.APPROVED, LeaveRequestStatus.CANCELLED,
                   action="cancel", guard=BEFORE_LEAVE_START),
    ),
    terminal_states=(LeaveRequestStatus.REJECTED, LeaveRequestStatus.CANCELLED),
)

logger.info(
    "leave_request_workflow_registered",
    extra={
        "workflow_name": LEAVE_REQUEST_WORKFLOW.name,
        "state_count": len(LEAVE_REQUEST_WORKFLOW.states),
        "transition_count": len(LEAVE_REQUEST_WORKFLOW.transitions),
    },
)
