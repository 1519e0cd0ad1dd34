"""Order approval models

An OrderApproval is a negotiation with one vendor over a subset of a
customer's order items. Selected items are snapshotted at selection time so
later contract edits do not change what the vendor agreed to.
"""

from uuid import uuid4

from sqlalchemy import (
    Column, Text, Boolean, Integer, Numeric, DateTime, Uuid,
    ForeignKey, Index, UniqueConstraint, CheckConstraint,
)
from sqlalchemy.orm import relationship

from .base import Base, utcnow


class OrderApproval(Base):
    __tablename__ = "order_approval"
    __table_args__ = (
        UniqueConstraint("org_id", "reference_no", name="uq_order_approval_reference_no"),
        CheckConstraint(
            "stage IN ('draft', 'sent', 'negotiating', 'approved')",
            name="ck_order_approval_stage",
        ),
        Index("ix_order_approval_vendor_id", "vendor_id"),
        Index("ix_order_approval_customer_id", "customer_id"),
        Index("ix_order_approval_stage", "stage"),
        Index("ix_order_approval_deleted_at", "deleted_at"),
        Index("ix_order_approval_date_created", "date_created"),
    )

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid4)
    org_id = Column(Uuid(as_uuid=True), ForeignKey("org.id", ondelete="RESTRICT"), nullable=False)
    reference_no = Column(Text, nullable=False)
    vendor_id = Column(Uuid(as_uuid=True), ForeignKey("vendor.id"), nullable=False)
    customer_id = Column(Uuid(as_uuid=True), ForeignKey("customer.id"), nullable=False)
    order_id = Column(Uuid(as_uuid=True), ForeignKey("order.id"), nullable=True)
    stage = Column(Text, nullable=False, default="draft")
    pm_approved = Column(Boolean, nullable=False, default=False)
    vendor_approved = Column(Boolean, nullable=False, default=False)
    vendor_approved_at = Column(DateTime(timezone=True), nullable=True)
    date_created = Column(DateTime(timezone=True), nullable=False, default=utcnow)
    created_by = Column(Uuid(as_uuid=True), ForeignKey("user.id"), nullable=False)
    sent_at = Column(DateTime(timezone=True), nullable=True)
    updated_at = Column(DateTime(timezone=True), nullable=False, default=utcnow, onupdate=utcnow)
    deleted_at = Column(DateTime(timezone=True), nullable=True)

    vendor = relationship("Vendor")
    customer = relationship("Customer")
    order = relationship("Order")
    creator = relationship("User")
    items = relationship(
        "OrderApprovalItem",
        back_populates="approval",
        cascade="all, delete-orphan",
        order_by="OrderApprovalItem.created_at",
    )

    def __repr__(self):
        return f"<OrderApproval(id={self.id}, reference_no='{self.reference_no}', stage='{self.stage}')>"


class OrderApprovalItem(Base):
    """Snapshot of one order item selected into an approval."""
    __tablename__ = "order_approval_item"
    __table_args__ = (
        UniqueConstraint("order_approval_id", "order_item_id", name="uq_order_approval_item"),
        Index("ix_order_approval_item_order_item_id", "order_item_id"),
    )

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid4)
    org_id = Column(Uuid(as_uuid=True), ForeignKey("org.id", ondelete="RESTRICT"), nullable=False)
    order_approval_id = Column(
        Uuid(as_uuid=True), ForeignKey("order_approval.id", ondelete="CASCADE"), nullable=False
    )
    # no FK: the snapshot must survive order item replacement
    order_item_id = Column(Uuid(as_uuid=True), nullable=False)
    product_service = Column(Text, nullable=True)
    amount = Column(Numeric(15, 2), nullable=True)
    qty = Column(Numeric(15, 2), nullable=True)
    rate = Column(Numeric(15, 2), nullable=True)
    negotiated_vendor_amount = Column(Numeric(15, 2), nullable=True)
    snapshot_date = Column(DateTime(timezone=True), nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)

    approval = relationship("OrderApproval", back_populates="items")


class ReferenceNumberSequence(Base):
    """Per-organization, per-year counter behind YYYY-NNNNN reference numbers."""
    __tablename__ = "reference_number_sequence"
    __table_args__ = (
        UniqueConstraint("org_id", "year", name="uq_reference_sequence_org_year"),
    )

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid4)
    org_id = Column(Uuid(as_uuid=True), ForeignKey("org.id", ondelete="RESTRICT"), nullable=False)
    year = Column(Integer, nullable=False)
    last_sequence = Column(Integer, nullable=False, default=0)
    updated_at = Column(DateTime(timezone=True), nullable=False, default=utcnow, onupdate=utcnow)
