"""
Proposals Module.

Sales proposals with priced sections, e-signature acceptance and
conversion of accepted proposals into draft invoices.
"""

from billing_modules.proposals.config import ProposalConfig
from billing_modules.proposals.models import (
    Proposal,
    ProposalSection,
    ProposalSectionInput,
    ProposalStatus,
    ProposalTotals,
    compute_proposal_totals,
)
from billing_modules.proposals.workflows import PROPOSAL_WORKFLOW

__all__ = [
    "Proposal",
    "ProposalSection",
    "ProposalSectionInput",
    "ProposalStatus",
    "ProposalTotals",
    "compute_proposal_totals",
    "PROPOSAL_WORKFLOW",
    "ProposalConfig",
]
