"""Customer SQLAlchemy model"""

from uuid import uuid4

from sqlalchemy import Column, Text, ForeignKey, Index, UniqueConstraint, CheckConstraint, DateTime, Uuid
from sqlalchemy.orm import relationship

from .base import Base, utcnow


class Customer(Base):
    """A homeowner/client whose contracts are tracked.

    Customers are identified externally by their ProDBX customer id
    (dbx_customer_id), unique per organization. deleted_at marks a soft delete;
    trashed customers are purged by the cleanup job after the retention window.
    """
    __tablename__ = "customer"
    __table_args__ = (
        UniqueConstraint("org_id", "dbx_customer_id", name="uq_customer_org_dbx_id"),
        CheckConstraint("status IN ('pending_updates', 'completed')", name="ck_customer_status"),
        Index("ix_customer_org_id", "org_id"),
        Index("ix_customer_deleted_at", "deleted_at"),
        Index("ix_customer_updated_at", "updated_at"),
    )

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid4)
    org_id = Column(Uuid(as_uuid=True), ForeignKey("org.id", ondelete="RESTRICT"), nullable=False)
    dbx_customer_id = Column(Text, nullable=False)
    client_name = Column(Text, nullable=False)
    email = Column(Text, nullable=True)
    phone = Column(Text, nullable=True)
    street_address = Column(Text, nullable=False, default="")
    city = Column(Text, nullable=False, default="")
    state = Column(Text, nullable=False, default="")
    zip = Column(Text, nullable=False, default="")
    status = Column(Text, nullable=False, default="pending_updates")
    deleted_at = Column(DateTime(timezone=True), nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)
    updated_at = Column(DateTime(timezone=True), nullable=False, default=utcnow, onupdate=utcnow)

    org = relationship("Org", back_populates="customers")
    orders = relationship("Order", back_populates="customer", order_by="Order.created_at")

    @property
    def is_deleted(self) -> bool:
        return self.deleted_at is not None

    def to_dict(self):
        """Convert customer to dictionary representation"""
        return {
            "id": str(self.id),
            "dbx_customer_id": self.dbx_customer_id,
            "client_name": self.client_name,
            "email": self.email,
            "phone": self.phone,
            "street_address": self.street_address,
            "city": self.city,
            "state": self.state,
            "zip": self.zip,
            "status": self.status,
            "deleted_at": self.deleted_at.isoformat() if self.deleted_at else None,
            "created_at": self.created_at.isoformat() if self.created_at else None,
            "updated_at": self.updated_at.isoformat() if self.updated_at else None,
        }

    def __repr__(self):
        return f"<Customer(id={self.id}, dbx_customer_id='{self.dbx_customer_id}')>"
