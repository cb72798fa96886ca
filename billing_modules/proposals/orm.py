"""
Proposal ORM Models (``billing_modules.proposals.orm``).

SQLAlchemy persistence for proposals and their sections.
"""

from datetime import date, datetime
from decimal import Decimal
from uuid import UUID

from sqlalchemy import (
    Boolean,
    Date,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    Numeric,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from billing_kernel.db.base import TenantScopedMixin, TrackedBase


class ProposalModel(TenantScopedMixin, TrackedBase):
    """
    ORM model for proposals.

    Guarantees:
        - proposal_number is unique per tenant.
        - totals are maintained by ProposalService from selected sections.
    """

    __tablename__ = "proposals"

    __table_args__ = (
        UniqueConstraint("tenant_id", "proposal_number", name="uq_proposals_tenant_number"),
        Index("idx_proposals_client_id", "client_id"),
        Index("idx_proposals_status_valid_until", "status", "valid_until"),
    )

    client_id: Mapped[UUID] = mapped_column(nullable=False)
    proposal_number: Mapped[str] = mapped_column(String(50), nullable=False)
    title: Mapped[str] = mapped_column(String(255), nullable=False)
    introduction: Mapped[str | None] = mapped_column(Text, nullable=True)
    conclusion: Mapped[str | None] = mapped_column(Text, nullable=True)
    terms_conditions: Mapped[str | None] = mapped_column(Text, nullable=True)

    currency: Mapped[str] = mapped_column(String(3), nullable=False)
    subtotal: Mapped[Decimal] = mapped_column(nullable=False)
    discount_percent: Mapped[Decimal] = mapped_column(Numeric(7, 4), nullable=False)
    discount_amount: Mapped[Decimal] = mapped_column(nullable=False)
    tax_rate: Mapped[Decimal] = mapped_column(Numeric(7, 4), nullable=False)
    tax_amount: Mapped[Decimal] = mapped_column(nullable=False)
    total: Mapped[Decimal] = mapped_column(nullable=False)

    status: Mapped[str] = mapped_column(String(20), default="draft")
    valid_until: Mapped[date | None] = mapped_column(Date, nullable=True)
    sent_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    viewed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    accepted_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    rejected_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    rejection_reason: Mapped[str | None] = mapped_column(Text, nullable=True)

    signed_name: Mapped[str | None] = mapped_column(String(255), nullable=True)
    signed_email: Mapped[str | None] = mapped_column(String(255), nullable=True)
    signed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    converted_to_invoice_id: Mapped[UUID | None] = mapped_column(nullable=True)

    sections: Mapped[list["ProposalSectionModel"]] = relationship(
        back_populates="proposal",
        cascade="all, delete-orphan",
        lazy="selectin",
        order_by="ProposalSectionModel.sort_order",
    )

    def to_dto(self):
        """Convert ORM model to frozen dataclass."""
        from billing_modules.proposals.models import Proposal, ProposalStatus

        return Proposal(
            id=self.id,
            tenant_id=self.tenant_id,
            client_id=self.client_id,
            proposal_number=self.proposal_number,
            title=self.title,
            currency=self.currency,
            subtotal=self.subtotal,
            discount_percent=self.discount_percent,
            discount_amount=self.discount_amount,
            tax_rate=self.tax_rate,
            tax_amount=self.tax_amount,
            total=self.total,
            status=ProposalStatus(self.status),
            sections=tuple(s.to_dto() for s in sorted(self.sections, key=lambda s: s.sort_order)),
            valid_until=self.valid_until,
            introduction=self.introduction,
            conclusion=self.conclusion,
            terms_conditions=self.terms_conditions,
            sent_at=self.sent_at,
            viewed_at=self.viewed_at,
            accepted_at=self.accepted_at,
            rejected_at=self.rejected_at,
            rejection_reason=self.rejection_reason,
            signed_name=self.signed_name,
            signed_email=self.signed_email,
            signed_at=self.signed_at,
            converted_to_invoice_id=self.converted_to_invoice_id,
        )

    def __repr__(self) -> str:
        return f"<ProposalModel {self.proposal_number} [{self.status}]>"


class ProposalSectionModel(TrackedBase):
    """ORM model for a priced proposal section."""

    __tablename__ = "proposal_sections"

    __table_args__ = (
        Index("idx_proposal_sections_proposal_id", "proposal_id"),
    )

    proposal_id: Mapped[UUID] = mapped_column(
        ForeignKey("proposals.id", ondelete="CASCADE"), nullable=False
    )
    sort_order: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    title: Mapped[str] = mapped_column(String(255), nullable=False)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    quantity: Mapped[Decimal] = mapped_column(nullable=False)
    unit_price: Mapped[Decimal] = mapped_column(nullable=False)
    total_price: Mapped[Decimal] = mapped_column(nullable=False)
    is_selected: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)

    proposal: Mapped["ProposalModel"] = relationship(back_populates="sections")

    def to_dto(self):
        from billing_modules.proposals.models import ProposalSection

        return ProposalSection(
            id=self.id,
            proposal_id=self.proposal_id,
            sort_order=self.sort_order,
            title=self.title,
            description=self.description,
            quantity=self.quantity,
            unit_price=self.unit_price,
            total_price=self.total_price,
            is_selected=self.is_selected,
        )
