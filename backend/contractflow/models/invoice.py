"""Invoice SQLAlchemy model"""

from uuid import uuid4

from sqlalchemy import Column, Text, Boolean, Integer, Numeric, DateTime, Uuid, ForeignKey, Index
from sqlalchemy.orm import relationship

from .base import Base, PortableJSONB, utcnow


class Invoice(Base):
    """Progress-billing invoice issued against an order.

    row_index is the invoice's slot in the contract workbook (354-391).
    linked_line_items holds [{"order_item_id": ..., "this_bill_amount": ...}] when
    the invoice amount was derived from selected order items.
    """
    __tablename__ = "invoice"
    __table_args__ = (
        Index("ix_invoice_order_id", "order_id"),
        Index("ix_invoice_updated_at", "updated_at"),
    )

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid4)
    org_id = Column(Uuid(as_uuid=True), ForeignKey("org.id", ondelete="RESTRICT"), nullable=False)
    order_id = Column(Uuid(as_uuid=True), ForeignKey("order.id"), nullable=False)
    invoice_number = Column(Text, nullable=True)
    invoice_date = Column(DateTime(timezone=True), nullable=True)
    invoice_amount = Column(Numeric(15, 2), nullable=True)
    payments_received = Column(Numeric(15, 2), nullable=False, default=0)
    exclude = Column(Boolean, nullable=False, default=False)
    row_index = Column(Integer, nullable=True)
    linked_line_items = Column(PortableJSONB, nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)
    updated_at = Column(DateTime(timezone=True), nullable=False, default=utcnow, onupdate=utcnow)

    order = relationship("Order", back_populates="invoices")

    def to_dict(self):
        return {
            "id": str(self.id),
            "order_id": str(self.order_id),
            "invoice_number": self.invoice_number,
            "invoice_date": self.invoice_date.isoformat() if self.invoice_date else None,
            "invoice_amount": float(self.invoice_amount) if self.invoice_amount is not None else None,
            "payments_received": float(self.payments_received or 0),
            "exclude": self.exclude,
            "row_index": self.row_index,
            "linked_line_items": self.linked_line_items,
            "created_at": self.created_at.isoformat() if self.created_at else None,
            "updated_at": self.updated_at.isoformat() if self.updated_at else None,
        }

    def __repr__(self):
        return f"<Invoice(id={self.id}, invoice_number='{self.invoice_number}')>"
