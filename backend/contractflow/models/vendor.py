"""Vendor SQLAlchemy model"""

from uuid import uuid4

from sqlalchemy import Column, Text, DateTime, Uuid, ForeignKey, Index, UniqueConstraint, CheckConstraint
from sqlalchemy.orm import relationship

from .base import Base, PortableJSONB, utcnow


class Vendor(Base):
    """Subcontractor or supplier that negotiates order approvals.

    Vendor portal users are linked to a vendor by matching email addresses.
    """
    __tablename__ = "vendor"
    __table_args__ = (
        UniqueConstraint("org_id", "name", name="uq_vendor_org_name"),
        CheckConstraint("status IN ('active', 'inactive')", name="ck_vendor_status"),
        Index("ix_vendor_status", "status"),
        Index("ix_vendor_category", "category"),
        Index("ix_vendor_deleted_at", "deleted_at"),
    )

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid4)
    org_id = Column(Uuid(as_uuid=True), ForeignKey("org.id", ondelete="RESTRICT"), nullable=False)
    name = Column(Text, nullable=False)
    email = Column(Text, nullable=True)
    phone = Column(Text, nullable=True)
    contact_person = Column(Text, nullable=True)
    address = Column(Text, nullable=True)
    city = Column(Text, nullable=True)
    state = Column(Text, nullable=True)
    zip = Column(Text, nullable=True)
    category = Column(Text, nullable=True)
    status = Column(Text, nullable=False, default="active")
    notes = Column(Text, nullable=True)
    specialties = Column(PortableJSONB, nullable=True)
    deleted_at = Column(DateTime(timezone=True), nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)
    updated_at = Column(DateTime(timezone=True), nullable=False, default=utcnow, onupdate=utcnow)

    org = relationship("Org", back_populates="vendors")

    def __repr__(self):
        return f"<Vendor(id={self.id}, name='{self.name}')>"
