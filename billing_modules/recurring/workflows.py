"""
Recurring Schedule Workflow.

Lifecycle of a recurring invoice schedule.  Completed and cancelled are
terminal.  A paused schedule is resumed or cancelled, or completes when
resuming would land past its end date.
"""

from billing_kernel.domain.workflow import Guard, Transition, Workflow
from billing_kernel.logging_config import get_logger

logger = get_logger("modules.recurring.workflows")


BOUND_REACHED = Guard(
    name="bound_reached",
    description="Occurrence cap reached or next run is past the end date",
)

SCHEDULE_WORKFLOW = Workflow(
    name="recurring_schedule",
    description="Recurring invoice schedule lifecycle",
    initial_state="active",
    states=(
        "active",
        "paused",
        "completed",
        "cancelled",
    ),
    transitions=(
        Transition("active", "paused", action="pause"),
        Transition("paused", "active", action="resume"),
        Transition("active", "cancelled", action="cancel"),
        Transition("paused", "cancelled", action="cancel"),
        Transition("active", "completed", action="complete", guard=BOUND_REACHED),
        # Resuming a schedule whose catch-up date is past its end date
        Transition("paused", "completed", action="complete", guard=BOUND_REACHED),
    ),
    terminal_states=("completed", "cancelled"),
)

logger.info(
    "schedule_workflow_registered",
    extra={
        "workflow_name": SCHEDULE_WORKFLOW.name,
        "state_count": len(SCHEDULE_WORKFLOW.states),
        "transition_count": len(SCHEDULE_WORKFLOW.transitions),
        "initial_state": SCHEDULE_WORKFLOW.initial_state,
    },
)
