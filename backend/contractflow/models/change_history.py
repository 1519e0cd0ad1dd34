"""ChangeHistory and AlertAcknowledgment models"""

from enum import Enum
from uuid import uuid4

from sqlalchemy import Column, Text, Integer, DateTime, Uuid, ForeignKey, Index, UniqueConstraint
from sqlalchemy.orm import relationship

from .base import Base, utcnow


class ChangeType(str, Enum):
    """Kinds of business edits recorded in change_history."""
    CELL_EDIT = "cell_edit"
    ROW_ADD = "row_add"
    ROW_DELETE = "row_delete"
    ROW_UPDATE = "row_update"
    CUSTOMER_EDIT = "customer_edit"
    ORDER_EDIT = "order_edit"
    CONTRACT_ADD = "contract_add"
    STAGE_UPDATE = "stage_update"
    CUSTOMER_DELETE = "customer_delete"
    CUSTOMER_RESTORE = "customer_restore"


class ChangeHistory(Base):
    """Field-level edit log for customers, orders, order items and invoices.

    old_value/new_value are stored as normalized strings (see
    changes.service.value_to_string) so numeric noise does not create entries.
    """
    __tablename__ = "change_history"
    __table_args__ = (
        Index("ix_change_history_customer_id", "customer_id"),
        Index("ix_change_history_order_id", "order_id"),
        Index("ix_change_history_changed_at", "changed_at"),
    )

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid4)
    org_id = Column(Uuid(as_uuid=True), ForeignKey("org.id", ondelete="RESTRICT"), nullable=False)
    order_id = Column(Uuid(as_uuid=True), ForeignKey("order.id"), nullable=True)
    # order items are replaced wholesale on save, so no FK here
    order_item_id = Column(Uuid(as_uuid=True), nullable=True)
    customer_id = Column(Uuid(as_uuid=True), ForeignKey("customer.id"), nullable=True)
    change_type = Column(Text, nullable=False)
    field_name = Column(Text, nullable=False)
    old_value = Column(Text, nullable=True)
    new_value = Column(Text, nullable=True)
    row_index = Column(Integer, nullable=True)
    changed_by = Column(Uuid(as_uuid=True), ForeignKey("user.id"), nullable=False)
    changed_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)

    user = relationship("User")
    customer = relationship("Customer")
    order = relationship("Order")

    def to_dict(self):
        return {
            "id": str(self.id),
            "order_id": str(self.order_id) if self.order_id else None,
            "order_item_id": str(self.order_item_id) if self.order_item_id else None,
            "customer_id": str(self.customer_id) if self.customer_id else None,
            "change_type": self.change_type,
            "field_name": self.field_name,
            "old_value": self.old_value,
            "new_value": self.new_value,
            "row_index": self.row_index,
            "changed_by": str(self.changed_by),
            "changed_by_username": self.user.username if self.user else "Unknown",
            "changed_at": self.changed_at.isoformat(),
        }


class AlertAcknowledgment(Base):
    """Records that a user dismissed a customer alert (e.g. order_items_mismatch)."""
    __tablename__ = "alert_acknowledgment"
    __table_args__ = (
        UniqueConstraint("customer_id", "alert_type", name="uq_alert_ack_customer_type"),
        Index("ix_alert_ack_customer_id", "customer_id"),
    )

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid4)
    org_id = Column(Uuid(as_uuid=True), ForeignKey("org.id", ondelete="RESTRICT"), nullable=False)
    customer_id = Column(Uuid(as_uuid=True), ForeignKey("customer.id"), nullable=False)
    alert_type = Column(Text, nullable=False)
    acknowledged_by = Column(Uuid(as_uuid=True), ForeignKey("user.id"), nullable=False)
    acknowledged_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)
    created_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)
