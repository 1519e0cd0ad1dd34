"""Order and OrderItem models

An Order is one signed contract for a customer. Its OrderItems are the rows of
the contract's line-item table (headers, subheaders, detail rows and blank
spacer rows) together with the progress-billing columns tracked per row.
"""

from uuid import uuid4

from sqlalchemy import (
    Column, Text, Boolean, Integer, Numeric, DateTime, Uuid,
    ForeignKey, Index, UniqueConstraint, CheckConstraint,
)
from sqlalchemy.orm import relationship

from .base import Base, utcnow


class Order(Base):
    """Contract header.

    Dates captured from the project-status form (contract_date, project start
    and end) are stored as MM/DD/YYYY strings exactly as entered.
    """

    __tablename__ = "order"
    __table_args__ = (
        UniqueConstraint("org_id", "order_no", name="uq_order_org_order_no"),
        CheckConstraint("status IN ('pending_updates', 'completed')", name="ck_order_status"),
        CheckConstraint(
            "stage IS NULL OR stage IN ('waiting_for_permit', 'active', 'completed')",
            name="ck_order_stage",
        ),
        Index("ix_order_customer_id", "customer_id"),
        Index("ix_order_created_at", "created_at"),
    )

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid4)
    org_id = Column(Uuid(as_uuid=True), ForeignKey("org.id", ondelete="RESTRICT"), nullable=False)
    customer_id = Column(Uuid(as_uuid=True), ForeignKey("customer.id"), nullable=False)

    order_no = Column(Text, nullable=False)
    order_date = Column(DateTime(timezone=True), nullable=True)
    order_po = Column(Text, nullable=True)
    order_due_date = Column(DateTime(timezone=True), nullable=True)
    order_type = Column(Text, nullable=True)
    order_delivered = Column(Boolean, nullable=False, default=False)
    quote_expiration_date = Column(DateTime(timezone=True), nullable=True)
    order_grand_total = Column(Numeric(15, 2), nullable=False, default=0)
    progress_payments = Column(Text, nullable=True)
    balance_due = Column(Numeric(15, 2), nullable=False, default=0)
    sales_rep = Column(Text, nullable=True)
    status = Column(Text, nullable=False, default="pending_updates")

    stage = Column(Text, nullable=True)
    contract_date = Column(Text, nullable=True)
    first_build_invoice_date = Column(Text, nullable=True)
    project_start_date = Column(Text, nullable=True)
    project_end_date = Column(Text, nullable=True)

    original_contract_url = Column(Text, nullable=True)
    eml_filename = Column(Text, nullable=True)

    created_by = Column(Uuid(as_uuid=True), ForeignKey("user.id"), nullable=True)
    updated_by = Column(Uuid(as_uuid=True), ForeignKey("user.id"), nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)
    updated_at = Column(DateTime(timezone=True), nullable=False, default=utcnow, onupdate=utcnow)

    customer = relationship("Customer", back_populates="orders")
    items = relationship(
        "OrderItem",
        back_populates="order",
        order_by="OrderItem.row_index",
        cascade="all, delete-orphan",
    )
    invoices = relationship(
        "Invoice",
        back_populates="order",
        order_by="Invoice.row_index",
        cascade="all, delete-orphan",
    )

    def to_dict(self):
        """Convert order to dictionary representation"""
        return {
            "id": str(self.id),
            "customer_id": str(self.customer_id),
            "order_no": self.order_no,
            "order_date": self.order_date.isoformat() if self.order_date else None,
            "order_po": self.order_po,
            "order_due_date": self.order_due_date.isoformat() if self.order_due_date else None,
            "order_type": self.order_type,
            "order_delivered": self.order_delivered,
            "quote_expiration_date": self.quote_expiration_date.isoformat() if self.quote_expiration_date else None,
            "order_grand_total": float(self.order_grand_total or 0),
            "progress_payments": self.progress_payments,
            "balance_due": float(self.balance_due or 0),
            "sales_rep": self.sales_rep,
            "status": self.status,
            "stage": self.stage,
            "contract_date": self.contract_date,
            "first_build_invoice_date": self.first_build_invoice_date,
            "project_start_date": self.project_start_date,
            "project_end_date": self.project_end_date,
            "original_contract_url": self.original_contract_url,
            "eml_filename": self.eml_filename,
            "created_at": self.created_at.isoformat() if self.created_at else None,
            "updated_at": self.updated_at.isoformat() if self.updated_at else None,
        }

    def __repr__(self):
        return f"<Order(id={self.id}, order_no='{self.order_no}')>"


class OrderItem(Base):
    """One row of a contract's line-item table.

    item_type is 'maincategory', 'subcategory' or 'item'. Percent columns hold
    0-100 values; completed_amount is derived from progress_overall_pct.
    """

    __tablename__ = "order_item"
    __table_args__ = (
        CheckConstraint(
            "item_type IN ('maincategory', 'subcategory', 'item')",
            name="ck_order_item_type",
        ),
        Index("ix_order_item_order_id", "order_id"),
    )

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid4)
    org_id = Column(Uuid(as_uuid=True), ForeignKey("org.id", ondelete="RESTRICT"), nullable=False)
    order_id = Column(Uuid(as_uuid=True), ForeignKey("order.id"), nullable=False)
    row_index = Column(Integer, nullable=False)
    column_a_label = Column(Text, nullable=True)
    column_b_label = Column(Text, nullable=True)
    product_service = Column(Text, nullable=False, default="")
    qty = Column(Numeric(15, 2), nullable=True)
    rate = Column(Numeric(15, 2), nullable=True)
    amount = Column(Numeric(15, 2), nullable=True)
    progress_overall_pct = Column(Numeric(10, 4), nullable=True)
    completed_amount = Column(Numeric(15, 2), nullable=True)
    previously_invoiced_pct = Column(Numeric(10, 4), nullable=True)
    previously_invoiced_amount = Column(Numeric(15, 2), nullable=True)
    new_progress_pct = Column(Numeric(10, 4), nullable=True)
    this_bill = Column(Numeric(15, 2), nullable=True)
    item_type = Column(Text, nullable=False, default="item")
    main_category = Column(Text, nullable=True)
    sub_category = Column(Text, nullable=True)
    is_optional = Column(Boolean, nullable=False, default=False)
    optional_package_number = Column(Integer, nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)
    updated_at = Column(DateTime(timezone=True), nullable=False, default=utcnow, onupdate=utcnow)

    order = relationship("Order", back_populates="items")

    def to_dict(self):
        """Item row as an API dictionary.

        ``type`` mirrors item_type so stored rows can be fed to the same
        validation and spreadsheet code as freshly parsed items.
        """
        def number(value):
            return float(value) if value is not None else None

        return {
            "id": str(self.id),
            "order_id": str(self.order_id),
            "row_index": self.row_index,
            "column_a_label": self.column_a_label,
            "column_b_label": self.column_b_label,
            "type": self.item_type,
            "product_service": self.product_service,
            "qty": number(self.qty),
            "rate": number(self.rate),
            "amount": number(self.amount),
            "progress_overall_pct": number(self.progress_overall_pct),
            "completed_amount": number(self.completed_amount),
            "previously_invoiced_pct": number(self.previously_invoiced_pct),
            "previously_invoiced_amount": number(self.previously_invoiced_amount),
            "new_progress_pct": number(self.new_progress_pct),
            "this_bill": number(self.this_bill),
            "main_category": self.main_category,
            "sub_category": self.sub_category,
            "is_optional": self.is_optional,
            "optional_package_number": self.optional_package_number,
        }

    def __repr__(self):
        return f"<OrderItem(id={self.id}, row_index={self.row_index}, type='{self.item_type}')>"
