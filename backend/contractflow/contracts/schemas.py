"""Pydantic schemas for contract parsing and storage"""

from datetime import datetime
from typing import List, Optional, Union

from pydantic import BaseModel, Field, field_validator

from ..parsing.text_utils import parse_money


class EmlFileRequest(BaseModel):
    """Base64 encoded .eml file."""
    file: str = Field(..., min_length=1, description="Base64 encoded EML content")


class ParseContractRequest(EmlFileRequest):
    apply_formatting: bool = False


class ParseContractJsonRequest(EmlFileRequest):
    order_grand_total: Optional[float] = None


class ValidateLinkRequest(BaseModel):
    url: str = Field(..., min_length=1)


class AddendumParseRequest(BaseModel):
    urls: List[str] = Field(..., min_length=1)


def _optional_number(value):
    """Parsed items use "" for empty numeric cells; money strings are accepted."""
    if value is None or value == "":
        return None
    if isinstance(value, str):
        return parse_money(value)
    return value


class ContractCustomer(BaseModel):
    dbx_customer_id: Optional[str] = None
    client_name: Optional[str] = None
    email: Optional[str] = None
    phone: Optional[str] = None
    street_address: str = ""
    city: str = ""
    state: str = ""
    zip: str = ""


class ContractOrder(BaseModel):
    order_no: str = Field(..., min_length=1)
    order_date: Optional[datetime] = None
    order_po: Optional[str] = None
    order_due_date: Optional[datetime] = None
    order_type: Optional[str] = None
    order_delivered: bool = False
    quote_expiration_date: Optional[datetime] = None
    order_grand_total: float = 0
    progress_payments: Optional[str] = None
    balance_due: float = 0
    sales_rep: Optional[str] = None
    original_contract_url: Optional[str] = None
    eml_filename: Optional[str] = None


class ContractItem(BaseModel):
    """One item row of a stored contract.

    Progress fields are percentages on a 0-100 scale.
    """
    type: str = Field("item", pattern="^(maincategory|subcategory|item)$")
    product_service: str = ""
    qty: Optional[float] = None
    rate: Optional[float] = None
    amount: Optional[float] = None
    main_category: Optional[str] = None
    sub_category: Optional[str] = None
    is_optional: bool = False
    optional_package_number: Optional[int] = None
    progress_overall_pct: Optional[float] = None
    completed_amount: Optional[float] = None
    previously_invoiced_pct: Optional[float] = None
    previously_invoiced_amount: Optional[float] = None
    new_progress_pct: Optional[float] = None
    this_bill: Optional[float] = None
    column_b_label: Optional[str] = None
    is_blank_row: bool = False
    is_addendum_header: bool = False

    @field_validator(
        'qty', 'rate', 'amount', 'progress_overall_pct', 'completed_amount',
        'previously_invoiced_pct', 'previously_invoiced_amount', 'new_progress_pct', 'this_bill',
        mode='before',
    )
    @classmethod
    def empty_to_none(cls, v: Union[str, float, None]):
        return _optional_number(v)


class ContractAddendum(BaseModel):
    """Parsed addendum appended after the contract's own items."""
    addendum_number: str
    url_id: Optional[str] = None
    items: List[ContractItem] = []


class StoredContractIn(BaseModel):
    """Body of POST /contracts.

    The three parts are optional in the schema so the endpoint can answer
    with a 400 that names what is missing.
    """
    customer: Optional[ContractCustomer] = None
    order: Optional[ContractOrder] = None
    items: Optional[List[ContractItem]] = None
    addendums: List[ContractAddendum] = []


class ContractCustomerUpdate(BaseModel):
    client_name: Optional[str] = None
    email: Optional[str] = None
    phone: Optional[str] = None
    street_address: Optional[str] = None
    city: Optional[str] = None
    state: Optional[str] = None
    zip: Optional[str] = None


class ContractOrderUpdate(BaseModel):
    order_date: Optional[datetime] = None
    order_po: Optional[str] = None
    order_due_date: Optional[datetime] = None
    order_type: Optional[str] = None
    order_delivered: Optional[bool] = None
    quote_expiration_date: Optional[datetime] = None
    order_grand_total: Optional[float] = None
    progress_payments: Optional[str] = None
    balance_due: Optional[float] = None
    sales_rep: Optional[str] = None
    status: Optional[str] = Field(None, pattern="^(pending_updates|completed)$")


class ContractUpdate(BaseModel):
    customer: Optional[ContractCustomerUpdate] = None
    order: Optional[ContractOrderUpdate] = None
