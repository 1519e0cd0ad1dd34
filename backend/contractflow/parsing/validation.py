"""Checks that the parsed items add up to the order grand total."""

import logging
from dataclasses import dataclass, asdict
from typing import Iterable, Optional, Union

from ..observability.metrics import items_total_mismatches_total
from .table_extractor import ITEM, OrderItem
from .text_utils import parse_float

logger = logging.getLogger(__name__)

ItemLike = Union[OrderItem, dict]


@dataclass
class TotalValidation:
    is_valid: bool
    items_total: float
    order_grand_total: float
    difference: float
    message: Optional[str] = None

    def to_dict(self) -> dict:
        return asdict(self)


def format_usd(value: float) -> str:
    """1234.5 -> "1,234.50"."""
    return f"{value:,.2f}"


def _field(item: ItemLike, name: str):
    if isinstance(item, dict):
        return item.get(name)
    return getattr(item, name, None)


def _amount(value) -> float:
    if value is None or value == "":
        return 0.0
    if isinstance(value, str):
        return parse_float(value.replace("$", "").replace(",", "").replace("*", ""))
    return float(value)


def calculate_order_items_total(items: Iterable[ItemLike]) -> float:
    """Sum of positive amounts of ``item`` rows; category rows are ignored."""
    total = 0.0
    for item in items or []:
        if _field(item, "type") != ITEM:
            continue
        amount = _amount(_field(item, "amount"))
        if amount > 0:
            total += amount
    return total


def validate_order_items_total(
    items: Iterable[ItemLike],
    order_grand_total: Optional[float],
    tolerance: float = 0.01,
) -> TotalValidation:
    """Compare the items total to the order grand total.

    Args:
        items: Parsed or stored order items
        order_grand_total: Grand total of the order
        tolerance: Allowed absolute difference for rounding

    Returns:
        TotalValidation: Outcome with a human readable message on mismatch
    """
    items_total = calculate_order_items_total(items)

    if not order_grand_total:
        return TotalValidation(
            is_valid=False,
            items_total=items_total,
            order_grand_total=0.0,
            difference=items_total,
            message="Order Grand Total is missing or zero",
        )

    grand_total = float(order_grand_total)
    difference = abs(items_total - grand_total)
    if difference > tolerance:
        items_total_mismatches_total.inc()
        logger.info(
            f"Order items total {items_total:.2f} differs from grand total {grand_total:.2f}"
        )
        return TotalValidation(
            is_valid=False,
            items_total=items_total,
            order_grand_total=grand_total,
            difference=difference,
            message=(
                f"Order items total (${format_usd(items_total)}) does not match "
                f"Order Grand Total (${format_usd(grand_total)}). "
                f"Difference: ${format_usd(difference)}"
            ),
        )

    return TotalValidation(
        is_valid=True,
        items_total=items_total,
        order_grand_total=grand_total,
        difference=0.0,
    )
