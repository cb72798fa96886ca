"""
Invoicing Workflows.

State machine for the invoice lifecycle.  Paid and cancelled are terminal.
"""

from billing_kernel.domain.workflow import Guard, Transition, Workflow
from billing_kernel.logging_config import get_logger

logger = get_logger("modules.invoicing.workflows")


# -----------------------------------------------------------------------------
# Guards
# -----------------------------------------------------------------------------

# Checked by InvoiceService.mark_overdue, not by update_status
PAST_DUE_DATE = Guard(
    name="past_due_date",
    description="Invoice due date is before today",
)


# -----------------------------------------------------------------------------
# Invoice Workflow
# -----------------------------------------------------------------------------

INVOICE_WORKFLOW = Workflow(
    name="invoice",
    description="Client invoice lifecycle",
    initial_state="draft",
    states=(
        "draft",
        "sent",
        "viewed",
        "paid",
        "overdue",
        "cancelled",
    ),
    transitions=(
        Transition("draft", "sent", action="send", stamps="sent_at"),
        Transition("draft", "cancelled", action="cancel"),
        Transition("sent", "viewed", action="mark_viewed", stamps="viewed_at"),
        Transition("sent", "paid", action="mark_paid", stamps="paid_at"),
        Transition("sent", "overdue", action="mark_overdue", guard=PAST_DUE_DATE),
        Transition("sent", "cancelled", action="cancel"),
        Transition("viewed", "paid", action="mark_paid", stamps="paid_at"),
        Transition("viewed", "overdue", action="mark_overdue", guard=PAST_DUE_DATE),
        Transition("viewed", "cancelled", action="cancel"),
        Transition("overdue", "paid", action="mark_paid", stamps="paid_at"),
        Transition("overdue", "cancelled", action="cancel"),
    ),
    terminal_states=("paid", "cancelled"),
)

logger.info(
    "invoice_workflow_registered",
    extra={
        "workflow_name": INVOICE_WORKFLOW.name,
        "state_count": len(INVOICE_WORKFLOW.states),
        "transition_count": len(INVOICE_WORKFLOW.transitions),
        "initial_state": INVOICE_WORKFLOW.initial_state,
    },
)
