"""Order approval request schemas"""

from typing import List, Optional
from uuid import UUID

from pydantic import BaseModel, Field


class OrderApprovalCreate(BaseModel):
    """Body of POST /order-approvals.

    Ids are optional in the schema so a missing id is answered with 400.
    """
    vendor_id: Optional[UUID] = None
    customer_id: Optional[UUID] = None
    order_id: Optional[UUID] = None


class OrderApprovalUpdate(BaseModel):
    stage: Optional[str] = None
    pm_approved: Optional[bool] = None
    vendor_approved: Optional[bool] = None
    disclaimer_accepted: Optional[bool] = None


class ItemSelection(BaseModel):
    order_item_ids: List[UUID]


class NegotiatedAmount(BaseModel):
    order_approval_item_id: UUID
    negotiated_vendor_amount: Optional[float] = None


class NegotiatedAmountsUpdate(BaseModel):
    items: List[NegotiatedAmount]


class ApprovedBatchRequest(BaseModel):
    """Order items to look up; order_id adds every item of that order."""
    order_item_ids: List[str] = Field(default_factory=list)
    order_id: Optional[UUID] = None
    customer_id: Optional[UUID] = None
