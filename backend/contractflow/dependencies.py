"""Tenant scoping helpers shared by the routers.

The org_id always comes from the authenticated user's token, never from
the request body or query string. Records of another organization are
reported as not found.
"""

from uuid import UUID

from fastapi import Depends, HTTPException, status
from sqlalchemy.orm import Session

from .auth.dependencies import get_current_user
from .models.user import User


def get_org_id(current_user: User = Depends(get_current_user)) -> UUID:
    """Organization of the authenticated user.

    Raises:
        HTTPException 500: If the user has no organization (integrity issue)
    """
    if not current_user.org_id:
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="User has no organization association",
        )
    return current_user.org_id


class TenantQuery:
    """Builders for org-scoped queries.

    Example:
        customer = TenantQuery.get_or_404(db, Customer, customer_id, org_id)
    """

    @staticmethod
    def scoped_query(session: Session, model, org_id: UUID):
        """Query of ``model`` filtered to one organization.

        Raises:
            AttributeError: If the model has no org_id column
        """
        if not hasattr(model, "org_id"):
            raise AttributeError(f"Model {model.__name__} does not have org_id column")

        return session.query(model).filter(model.org_id == org_id)

    @staticmethod
    def get_or_404(session: Session, model, record_id: UUID, org_id: UUID, detail: str | None = None):
        """Fetch one record of the organization or raise 404.

        The same 404 is raised whether the record does not exist or belongs
        to another organization.
        """
        record = TenantQuery.scoped_query(session, model, org_id).filter(model.id == record_id).first()

        if not record:
            raise HTTPException(
                status_code=status.HTTP_404_NOT_FOUND,
                detail=detail or f"{model.__name__} not found",
            )

        return record
