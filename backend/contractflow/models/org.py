"""Org model - Root entity for multi-tenant isolation"""

import re
from uuid import uuid4

from sqlalchemy import Column, Text, DateTime, Uuid
from sqlalchemy.orm import validates, relationship

from .base import Base, PortableJSONB, utcnow


class Org(Base):
    """
    Organization model - Root entity for multi-tenant system.

    Each organization is one contracting business. Users, customers, vendors,
    orders and approvals all reference org.id and are never shared.
    """
    __tablename__ = "org"

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid4)
    name = Column(Text, nullable=False)
    slug = Column(Text, nullable=False, unique=True)
    settings_json = Column(PortableJSONB, nullable=False, default=dict)
    created_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)
    updated_at = Column(DateTime(timezone=True), nullable=False, default=utcnow, onupdate=utcnow)

    users = relationship("User", back_populates="org")
    customers = relationship("Customer", back_populates="org")
    vendors = relationship("Vendor", back_populates="org")

    @validates('slug')
    def validate_slug(self, key, value):
        """
        Ensure slug is URL-friendly.

        Pattern: ^[a-z0-9-]+$, 2 to 100 characters.

        Raises:
            ValueError: If slug doesn't match pattern or length requirements
        """
        if not re.match(r'^[a-z0-9-]+$', value):
            raise ValueError(
                "Slug must contain only lowercase letters, numbers, and hyphens"
            )
        if len(value) < 2 or len(value) > 100:
            raise ValueError("Slug must be between 2 and 100 characters")
        return value

    @validates('name')
    def validate_name(self, key, value):
        if not value or len(value.strip()) == 0:
            raise ValueError("Organization name cannot be empty")
        if len(value) > 200:
            raise ValueError("Organization name cannot exceed 200 characters")
        return value.strip()

    def __repr__(self):
        return f"<Org(id={self.id}, slug='{self.slug}', name='{self.name}')>"
