"""User SQLAlchemy model"""

from uuid import uuid4

from sqlalchemy import Column, Text, ForeignKey, CheckConstraint, UniqueConstraint, DateTime, Uuid
from sqlalchemy.orm import relationship, validates

from .base import Base, utcnow


class User(Base):
    """User model representing authenticated users.

    Users self-register into an organization with status 'pending' and no
    role. An admin activates them and assigns a role. Passwords are hashed
    using Argon2id.
    """
    __tablename__ = "user"

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid4)
    org_id = Column(Uuid(as_uuid=True), ForeignKey("org.id", ondelete="RESTRICT"), nullable=False)
    username = Column(Text, nullable=False)
    email = Column(Text, nullable=True)
    password_hash = Column(Text, nullable=False)
    role = Column(Text, nullable=True)
    status = Column(Text, nullable=False, default="pending")
    sales_rep_name = Column(Text, nullable=True)
    last_login_at = Column(DateTime(timezone=True), nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)
    updated_at = Column(DateTime(timezone=True), nullable=False, default=utcnow, onupdate=utcnow)

    org = relationship("Org", back_populates="users")

    __table_args__ = (
        CheckConstraint(
            "role IS NULL OR role IN ('admin', 'contract_manager', 'sales_rep', 'accountant', 'viewer', 'vendor')",
            name='ck_user_role'
        ),
        CheckConstraint(
            "status IN ('pending', 'active', 'suspended')",
            name='ck_user_status'
        ),
        UniqueConstraint('org_id', 'username', name='uq_user_org_username'),
    )

    @validates('email')
    def validate_email(self, key, value):
        """Store emails lower-cased so vendor matching is case-insensitive."""
        if value is None:
            return None
        value = value.strip().lower()
        return value or None

    def to_dict(self):
        """Convert user to dictionary representation (excludes password_hash)"""
        return {
            "id": str(self.id),
            "org_id": str(self.org_id),
            "username": self.username,
            "email": self.email,
            "role": self.role,
            "status": self.status,
            "sales_rep_name": self.sales_rep_name,
            "last_login_at": self.last_login_at.isoformat() if self.last_login_at else None,
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }

    def __repr__(self):
        return f"<User(id={self.id}, username='{self.username}', role='{self.role}')>"
