"""
Typed Exception Hierarchy for the Billing Kernel.

===============================================================================
WHY TYPED EXCEPTIONS
===============================================================================

Callers of the billing engine (HTTP controllers, the cron command, tests)
must react to failures without parsing message strings:

  1. Every error has a TYPED exception class (catch by type, not message)
  2. Every exception has a CODE attribute (machine-readable, API-safe)
  3. Exceptions carry structured DATA (not just a message string)

Example:
    try:
        invoice_service.update_status(ctx, invoice_id, InvoiceStatus.PAID)
    except InvalidTransitionError as e:
        return {"error": e.code, "from": e.from_state, "to": e.to_state}

===============================================================================
EXCEPTION HIERARCHY
===============================================================================

    BillingKernelError (base)
    |
    +-- WorkflowError
    |   +-- InvalidTransitionError
    |
    +-- ScheduleError
    |   +-- ScheduleNotFoundError
    |   +-- ScheduleNotEligibleError
    |   +-- UnknownFrequencyError
    |   +-- InvalidScheduleDateError
    |
    +-- InvoiceError
    |   +-- InvoiceNotFoundError
    |   +-- InvoiceImmutableError
    |   +-- LineItemNotFoundError
    |
    +-- ProposalError
    |   +-- ProposalNotFoundError
    |   +-- ProposalNotAcceptedError
    |
    +-- PersistenceError
    |   +-- InvoicePersistenceError
    |
    +-- ClientNotFoundError

===============================================================================
ERROR CODES - QUICK REFERENCE
===============================================================================

Category     | Code                   | When Raised
-------------|------------------------|--------------------------------------------
Workflow     | INVALID_TRANSITION     | (from, to) pair not in the workflow table
-------------|------------------------|--------------------------------------------
Schedule     | SCHEDULE_NOT_FOUND     | No schedule with this id for the tenant
             | SCHEDULE_NOT_ELIGIBLE  | Generation precondition failed
             | UNKNOWN_FREQUENCY      | Frequency string not recognised
             | INVALID_SCHEDULE_DATE  | Malformed or missing date input
-------------|------------------------|--------------------------------------------
Invoice      | INVOICE_NOT_FOUND      | No invoice with this id for the tenant
             | INVOICE_IMMUTABLE      | Edit attempted on a non-draft invoice
             | LINE_ITEM_NOT_FOUND    | Line id not on the invoice
-------------|------------------------|--------------------------------------------
Proposal     | PROPOSAL_NOT_FOUND     | No proposal with this id for the tenant
             | PROPOSAL_NOT_ACCEPTED  | Conversion attempted before acceptance
-------------|------------------------|--------------------------------------------
Persistence  | PERSISTENCE_FAILURE    | Invoice write rolled back
-------------|------------------------|--------------------------------------------
Client       | CLIENT_NOT_FOUND       | Client lookup returned nothing

===============================================================================
PROPAGATION
===============================================================================

The invoice generator absorbs ScheduleNotEligibleError and
InvoicePersistenceError: both are logged and the call returns None so a
batch run can move on to the next schedule.  Every other operation raises
to its caller.  Nothing in the kernel retries; the next scheduled run is
the retry.
"""


class BillingKernelError(Exception):
    """
    Base exception for all billing kernel errors.

    All subclasses must have a `code` class attribute for machine-readable
    error identification.
    """

    code: str = "BILLING_KERNEL_ERROR"


# Workflow exceptions


class WorkflowError(BillingKernelError):
    """Base exception for state machine errors."""

    code: str = "WORKFLOW_ERROR"


class InvalidTransitionError(WorkflowError):
    """Requested status change is not allowed by the workflow."""

    code: str = "INVALID_TRANSITION"

    def __init__(self, workflow: str, from_state: str, to_state: str):
        self.workflow = workflow
        self.from_state = from_state
        self.to_state = to_state
        super().__init__(
            f"Invalid {workflow} transition: {from_state} -> {to_state}"
        )


# Schedule exceptions


class ScheduleError(BillingKernelError):
    """Base exception for recurring schedule errors."""

    code: str = "SCHEDULE_ERROR"


class ScheduleNotFoundError(ScheduleError):
    """Schedule with given ID was not found for the tenant."""

    code: str = "SCHEDULE_NOT_FOUND"

    def __init__(self, schedule_id: str):
        self.schedule_id = schedule_id
        super().__init__(f"Recurring schedule not found: {schedule_id}")


class ScheduleNotEligibleError(ScheduleError):
    """
    Schedule failed a generation precondition.

    Raised when the schedule is not active, has reached its occurrence cap,
    has run past its end date, or is not yet due.
    """

    code: str = "SCHEDULE_NOT_ELIGIBLE"

    def __init__(self, schedule_id: str, reason: str):
        self.schedule_id = schedule_id
        self.reason = reason
        super().__init__(f"Schedule {schedule_id} not eligible: {reason}")


class UnknownFrequencyError(ScheduleError):
    """Frequency value is not one of the supported cadences."""

    code: str = "UNKNOWN_FREQUENCY"

    def __init__(self, frequency: str):
        self.frequency = frequency
        super().__init__(f"Unknown recurrence frequency: {frequency!r}")


class InvalidScheduleDateError(ScheduleError):
    """Date input was missing or malformed."""

    code: str = "INVALID_SCHEDULE_DATE"

    def __init__(self, field_name: str, value: object):
        self.field_name = field_name
        self.value = value
        super().__init__(f"Invalid date for {field_name}: {value!r}")


# Invoice exceptions


class InvoiceError(BillingKernelError):
    """Base exception for invoice errors."""

    code: str = "INVOICE_ERROR"


class InvoiceNotFoundError(InvoiceError):
    """Invoice with given ID was not found for the tenant."""

    code: str = "INVOICE_NOT_FOUND"

    def __init__(self, invoice_id: str):
        self.invoice_id = invoice_id
        super().__init__(f"Invoice not found: {invoice_id}")


class InvoiceImmutableError(InvoiceError):
    """Only draft invoices may have their content edited."""

    code: str = "INVOICE_IMMUTABLE"

    def __init__(self, invoice_id: str, status: str):
        self.invoice_id = invoice_id
        self.status = status
        super().__init__(
            f"Invoice {invoice_id} is {status}; only draft invoices can be edited"
        )


class LineItemNotFoundError(InvoiceError):
    """Line item does not belong to the invoice."""

    code: str = "LINE_ITEM_NOT_FOUND"

    def __init__(self, invoice_id: str, line_id: str):
        self.invoice_id = invoice_id
        self.line_id = line_id
        super().__init__(f"Line item {line_id} not found on invoice {invoice_id}")


# Proposal exceptions


class ProposalError(BillingKernelError):
    """Base exception for proposal errors."""

    code: str = "PROPOSAL_ERROR"


class ProposalNotFoundError(ProposalError):
    """Proposal with given ID was not found for the tenant."""

    code: str = "PROPOSAL_NOT_FOUND"

    def __init__(self, proposal_id: str):
        self.proposal_id = proposal_id
        super().__init__(f"Proposal not found: {proposal_id}")


class ProposalNotAcceptedError(ProposalError):
    """Only accepted proposals can be converted to invoices."""

    code: str = "PROPOSAL_NOT_ACCEPTED"

    def __init__(self, proposal_id: str, status: str):
        self.proposal_id = proposal_id
        self.status = status
        super().__init__(
            f"Proposal {proposal_id} is {status}; only accepted proposals convert"
        )


# Persistence exceptions


class PersistenceError(BillingKernelError):
    """Base exception for storage failures."""

    code: str = "PERSISTENCE_ERROR"


class InvoicePersistenceError(PersistenceError):
    """
    Writing a generated invoice failed and the transaction was rolled back.

    No invoice, line item, or schedule change survives this error.
    """

    code: str = "PERSISTENCE_FAILURE"

    def __init__(self, schedule_id: str, reason: str):
        self.schedule_id = schedule_id
        self.reason = reason
        super().__init__(
            f"Invoice persistence failed for schedule {schedule_id}: {reason}"
        )


# Client exceptions


class ClientNotFoundError(BillingKernelError):
    """Client directory has no record for the id."""

    code: str = "CLIENT_NOT_FOUND"

    def __init__(self, client_id: str):
        self.client_id = client_id
        super().__init__(f"Client not found: {client_id}")
