"""Pydantic schemas for order items, project status and invoices"""

import re
from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, Field, field_validator

from ..contracts.schemas import ContractItem

DATE_PATTERN = re.compile(r"^(0[1-9]|1[0-2])/(0[1-9]|[12]\d|3[01])/\d{4}$")

STAGES = ("waiting_for_permit", "active", "completed")


class OrderItemIn(ContractItem):
    """Item row submitted from the order items editor.

    ``id`` is the existing row's id; rows keeping their id keep their
    invoice links.
    """
    id: Optional[str] = None


class OrderItemsUpdate(BaseModel):
    items: List[OrderItemIn]


class ProjectStatusUpdate(BaseModel):
    """Stage and MM/DD/YYYY project dates.

    Format checks happen in the endpoint so the 400 response can name the
    offending field.
    """
    stage: Optional[str] = None
    contract_date: Optional[str] = None
    first_build_invoice_date: Optional[str] = None
    project_start_date: Optional[str] = None
    project_end_date: Optional[str] = None


class InvoiceCreate(BaseModel):
    invoice_number: Optional[str] = None
    invoice_date: Optional[datetime] = None
    invoice_amount: Optional[float] = Field(None, ge=0)
    payments_received: float = Field(0, ge=0)
    exclude: bool = False


class LinkedLineItem(BaseModel):
    order_item_id: str
    this_bill_amount: Optional[float] = None


class InvoiceUpdate(BaseModel):
    """Invoice PATCH body.

    ``linked_line_item_ids`` links items at their calculated this_bill;
    ``linked_line_items`` carries explicit amounts. An empty list clears the
    links.
    """
    invoice_number: Optional[str] = None
    invoice_date: Optional[datetime] = None
    invoice_amount: Optional[float] = None
    payments_received: Optional[float] = None
    exclude: Optional[bool] = None
    linked_line_item_ids: Optional[List[str]] = None
    linked_line_items: Optional[List[LinkedLineItem]] = None

    @field_validator('invoice_amount', 'payments_received')
    @classmethod
    def non_negative(cls, v: Optional[float]) -> Optional[float]:
        if v is not None and v < 0:
            raise ValueError("must be greater than or equal to 0")
        return v
