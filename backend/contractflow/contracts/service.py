"""Persistence of parsed contracts.

A stored contract is a customer, one of its orders and the order's item
rows. Saving upserts the customer by ProDBX id and the order by order
number, then replaces the item rows wholesale.
"""

import logging
import re
from decimal import Decimal
from typing import List, Optional, Tuple

from sqlalchemy.orm import Session

from ..changes.service import log_contract_add, log_customer_edit, log_order_edit
from ..customers.service import update_customer_status
from ..models.base import utcnow
from ..models.customer import Customer
from ..models.order import Order, OrderItem
from ..models.user import User
from ..parsing.table_extractor import ITEM, MAIN_CATEGORY, SUB_CATEGORY, Location
from .schemas import ContractAddendum, ContractItem, ContractUpdate, StoredContractIn

logger = logging.getLogger(__name__)

BLANK_ROW_LABEL = "1 - Blank Row"
HEADER_LABEL = "1 - Header"
SUBHEADER_LABEL = "1 - Subheader"
DETAIL_LABEL = "1 - Detail"

INITIAL_LABEL = "Initial"
ADDENDUM_LABEL = "Addendum"

_ADDENDUM_HEADER = re.compile(r"Addendum #(\d+) \((\d+)\)")


class ContractStoreError(Exception):
    """Raised when a contract cannot be stored as submitted"""
    pass


def to_decimal(value) -> Optional[Decimal]:
    if value is None or value == "":
        return None
    return Decimal(str(value))


def column_a_label(item: ContractItem) -> str:
    if item.is_blank_row:
        return BLANK_ROW_LABEL
    if item.is_addendum_header or item.type == MAIN_CATEGORY:
        return HEADER_LABEL
    if item.type == SUB_CATEGORY:
        return SUBHEADER_LABEL
    return DETAIL_LABEL


def column_b_label(item: ContractItem) -> str:
    return item.column_b_label or INITIAL_LABEL


def merge_addendums(items: List[ContractItem], addendums: List[ContractAddendum]) -> List[ContractItem]:
    """Append addendum items after the contract's own rows.

    Two blank rows separate the contract from the addendums. Each addendum
    gets a header row "Addendum #N (urlId)" and its rows are labelled
    "Addendum" in column B.
    """
    merged = list(items)
    if not addendums:
        return merged

    for _ in range(2):
        merged.append(ContractItem(type=ITEM, is_blank_row=True, column_b_label=INITIAL_LABEL))

    for addendum in addendums:
        url_id = addendum.url_id or addendum.addendum_number
        merged.append(ContractItem(
            type=MAIN_CATEGORY,
            product_service=f"Addendum #{addendum.addendum_number} ({url_id})",
            column_b_label=ADDENDUM_LABEL,
            is_addendum_header=True,
        ))
        for item in addendum.items:
            merged.append(item.model_copy(update={"column_b_label": ADDENDUM_LABEL}))

    return merged


ITEM_FIELDS = (
    "qty", "rate", "amount", "progress_overall_pct", "completed_amount",
    "previously_invoiced_pct", "previously_invoiced_amount", "new_progress_pct", "this_bill",
)


def apply_item_fields(order_item: OrderItem, item: ContractItem, row_index: int) -> OrderItem:
    """Copy a submitted row onto an OrderItem, deriving the column labels."""
    order_item.row_index = row_index
    order_item.column_a_label = column_a_label(item)
    order_item.column_b_label = column_b_label(item)
    order_item.product_service = item.product_service or ""
    for field in ITEM_FIELDS:
        setattr(order_item, field, to_decimal(getattr(item, field)))
    order_item.item_type = item.type
    order_item.main_category = item.main_category
    order_item.sub_category = item.sub_category
    order_item.is_optional = item.is_optional
    order_item.optional_package_number = item.optional_package_number
    return order_item


def build_order_item(order: Order, item: ContractItem, row_index: int) -> OrderItem:
    return apply_item_fields(OrderItem(org_id=order.org_id), item, row_index)


def replace_order_items(order: Order, items: List[ContractItem]) -> None:
    """Replace all item rows of an order; row_index follows list order."""
    order.items.clear()
    for index, item in enumerate(items):
        order.items.append(build_order_item(order, item, index))


def save_contract(db: Session, user: User, contract: StoredContractIn) -> Tuple[Order, bool]:
    """Upsert customer and order and replace the order's items.

    Args:
        db: Database session
        user: User storing the contract; owns the org and the history entries
        contract: Parsed contract

    Returns:
        Tuple[Order, bool]: The stored order and whether it was newly created

    Raises:
        ContractStoreError: If customer, order, items or the ProDBX id is missing
    """
    if contract.customer is None or contract.order is None or contract.items is None:
        raise ContractStoreError("Contract must have customer, order, and items")
    if not contract.customer.dbx_customer_id:
        raise ContractStoreError("dbx_customer_id is required")

    data = contract.customer
    customer = (
        db.query(Customer)
        .filter(Customer.org_id == user.org_id, Customer.dbx_customer_id == data.dbx_customer_id)
        .first()
    )
    if customer is None:
        customer = Customer(org_id=user.org_id, dbx_customer_id=data.dbx_customer_id)
        db.add(customer)

    customer.client_name = data.client_name or customer.client_name or "Unknown"
    customer.email = data.email or None
    customer.phone = data.phone or None
    customer.street_address = data.street_address
    customer.city = data.city
    customer.state = data.state
    customer.zip = data.zip
    customer.updated_at = utcnow()
    db.flush()

    fields = contract.order
    order = (
        db.query(Order)
        .filter(Order.org_id == user.org_id, Order.order_no == fields.order_no)
        .first()
    )
    is_new = order is None
    if is_new:
        order = Order(org_id=user.org_id, order_no=fields.order_no, created_by=user.id)
        db.add(order)

    order.customer = customer
    order.order_date = fields.order_date
    order.order_po = fields.order_po or None
    order.order_due_date = fields.order_due_date
    order.order_type = fields.order_type or None
    order.order_delivered = fields.order_delivered
    order.quote_expiration_date = fields.quote_expiration_date
    order.order_grand_total = to_decimal(fields.order_grand_total) or Decimal("0")
    order.progress_payments = fields.progress_payments or None
    order.balance_due = to_decimal(fields.balance_due) or Decimal("0")
    order.sales_rep = fields.sales_rep or None
    order.original_contract_url = fields.original_contract_url or order.original_contract_url
    order.eml_filename = fields.eml_filename or order.eml_filename
    order.updated_by = user.id
    db.flush()

    replace_order_items(order, merge_addendums(contract.items, contract.addendums))
    db.flush()

    if is_new:
        description = f"Contract for {customer.client_name or 'Unknown'} - Order #{order.order_no}"
        log_contract_add(db, user, customer.id, order.id, description)

    update_customer_status(db, customer)
    logger.info(
        f"Stored contract order {order.order_no} for customer {customer.dbx_customer_id} "
        f"with {len(order.items)} rows (new={is_new})"
    )
    return order, is_new


def update_contract(db: Session, user: User, order: Order, data: ContractUpdate) -> Order:
    """Apply customer and order field edits, logging each changed field."""
    customer = order.customer

    if data.customer is not None:
        for field, value in data.customer.model_dump(exclude_unset=True).items():
            if value is None and field == "client_name":
                continue
            if value is None and field in ("street_address", "city", "state", "zip"):
                value = ""
            log_customer_edit(db, user, field, getattr(customer, field), value, customer.id)
            setattr(customer, field, value)
        customer.updated_at = utcnow()

    if data.order is not None:
        for field, value in data.order.model_dump(exclude_unset=True).items():
            if field in ("order_grand_total", "balance_due"):
                value = to_decimal(value) or Decimal("0")
            elif field == "order_delivered":
                value = bool(value)
            log_order_edit(db, user, field, getattr(order, field), value, order.id, customer.id)
            setattr(order, field, value)
        order.updated_by = user.id
        order.updated_at = utcnow()

    db.flush()
    update_customer_status(db, customer)
    return order


def stored_item(item: OrderItem) -> dict:
    """Item row with the blank-row and addendum-header markers restored."""
    data = item.to_dict()
    data["is_blank_row"] = item.column_a_label == BLANK_ROW_LABEL
    data["is_addendum_header"] = False
    if (
        item.column_b_label == ADDENDUM_LABEL
        and item.column_a_label == HEADER_LABEL
        and (item.product_service or "").startswith("Addendum #")
    ):
        data["is_addendum_header"] = True
        match = _ADDENDUM_HEADER.search(item.product_service)
        if match:
            data["addendum_number"] = match.group(1)
            data["addendum_url_id"] = match.group(2)
    return data


def stored_contract(order: Order) -> dict:
    customer = order.customer
    return {
        "id": str(order.id),
        "customer": customer.to_dict(),
        "order": order.to_dict(),
        "items": [stored_item(item) for item in order.items],
        "parsed_at": order.created_at.isoformat() if order.created_at else None,
        "is_deleted": customer.is_deleted,
        "deleted_at": customer.deleted_at.isoformat() if customer.deleted_at else None,
    }


def location_for_order(order: Order) -> Location:
    """Location header data of a stored contract, for spreadsheet export."""
    customer = order.customer
    return Location(
        order_no=order.order_no,
        street_address=customer.street_address or "",
        city=customer.city or "",
        state=customer.state or "",
        zip=customer.zip or "",
        client_name=customer.client_name or "",
        dbx_customer_id=customer.dbx_customer_id or "",
    )
