"""
Proposal Workflows.

Accepted is terminal (the proposal may then be converted to an invoice).
Rejected and expired proposals can go back to draft for revision.
"""

from billing_kernel.domain.workflow import Guard, Transition, Workflow
from billing_kernel.logging_config import get_logger

logger = get_logger("modules.proposals.workflows")


# Checked by ProposalService.expire_overdue
PAST_VALID_UNTIL = Guard(
    name="past_valid_until",
    description="Proposal validity date is before today",
)

PROPOSAL_WORKFLOW = Workflow(
    name="proposal",
    description="Sales proposal lifecycle",
    initial_state="draft",
    states=(
        "draft",
        "sent",
        "viewed",
        "accepted",
        "rejected",
        "expired",
    ),
    transitions=(
        Transition("draft", "sent", action="send", stamps="sent_at"),
        Transition("sent", "viewed", action="mark_viewed", stamps="viewed_at"),
        Transition("sent", "accepted", action="accept", stamps="accepted_at"),
        Transition("sent", "rejected", action="reject", stamps="rejected_at"),
        Transition("sent", "expired", action="expire", guard=PAST_VALID_UNTIL),
        Transition("viewed", "accepted", action="accept", stamps="accepted_at"),
        Transition("viewed", "rejected", action="reject", stamps="rejected_at"),
        Transition("viewed", "expired", action="expire", guard=PAST_VALID_UNTIL),
        Transition("rejected", "draft", action="revise"),
        Transition("expired", "draft", action="revise"),
    ),
    terminal_states=("accepted",),
)

logger.info(
    "proposal_workflow_registered",
    extra={
        "workflow_name": PROPOSAL_WORKFLOW.name,
        "state_count": len(PROPOSAL_WORKFLOW.states),
        "transition_count": len(PROPOSAL_WORKFLOW.transitions),
        "initial_state": PROPOSAL_WORKFLOW.initial_state,
    },
)
