"""Unit tests for progress billing calculations"""

from decimal import Decimal
from uuid import uuid4

import pytest

from contractflow.models import Invoice, Order, OrderItem
from contractflow.orders.billing import (
    InvoiceSlotError,
    LineItemLinkError,
    build_links,
    calculate_this_bill,
    completed_amount,
    invoice_summary,
    linkable_items,
    linked_amounts_by_item,
    next_invoice_row,
    validate_item_for_linking_with_amount,
)


def make_item(amount="1000.00", overall=None, previous=None, this_bill=None, item_type="item", row_index=17):
    return OrderItem(
        id=uuid4(),
        row_index=row_index,
        item_type=item_type,
        product_service="Pool shell",
        amount=Decimal(amount) if amount is not None else None,
        progress_overall_pct=Decimal(overall) if overall is not None else None,
        previously_invoiced_pct=Decimal(previous) if previous is not None else None,
        this_bill=Decimal(this_bill) if this_bill is not None else None,
    )


def make_invoice(links=None, exclude=False, payments="0", row_index=354):
    return Invoice(
        id=uuid4(),
        row_index=row_index,
        exclude=exclude,
        payments_received=Decimal(payments),
        linked_line_items=links,
    )


class TestItemAmounts:
    def test_completed_amount(self):
        assert completed_amount(Decimal("25"), Decimal("2000")) == 500.0

    def test_completed_amount_requires_positive_values(self):
        assert completed_amount(None, 2000) is None
        assert completed_amount(50, 0) is None

    def test_this_bill_prefers_stored_value(self):
        assert calculate_this_bill(make_item(overall="50", this_bill="123.45")) == 123.45

    def test_this_bill_from_new_progress(self):
        item = make_item(amount="2000", overall="60", previous="25")
        assert calculate_this_bill(item) == pytest.approx(700.0)

    def test_this_bill_without_new_progress(self):
        assert calculate_this_bill(make_item(overall="25", previous="25")) == 0.0


class TestLinkValidation:
    def test_requires_progress(self):
        check = validate_item_for_linking_with_amount(make_item(overall="0"), 100)
        assert check.valid is False
        assert check.error == "Item must have Progress Overall % greater than 0"

    def test_requires_positive_amount(self):
        check = validate_item_for_linking_with_amount(make_item(overall="10"), 0)
        assert check.error == "Invoice amount must be greater than 0"

    def test_cannot_exceed_item_amount(self):
        check = validate_item_for_linking_with_amount(make_item(overall="10"), 300, existing_invoice_amounts=800)
        assert check.valid is False
        assert check.error == "Would exceed item amount. Remaining billable: $200.00"

    def test_exact_remaining_amount_is_valid(self):
        check = validate_item_for_linking_with_amount(make_item(overall="10"), 200, existing_invoice_amounts=800)
        assert check.valid is True

    @pytest.mark.parametrize(
        "amount, existing, invoice_amount",
        [
            ("0.30", 0.1, 0.2),
            ("12345.67", 1046.88, 11298.79),
            ("25000.45", 8195.37, 16805.08),
        ],
    )
    def test_split_that_bills_the_whole_item(self, amount, existing, invoice_amount):
        item = make_item(amount=amount, overall="100")
        check = validate_item_for_linking_with_amount(item, invoice_amount, existing_invoice_amounts=existing)
        assert check.valid is True

    def test_one_cent_over_is_rejected(self):
        item = make_item(amount="12345.67", overall="100")
        check = validate_item_for_linking_with_amount(item, 11298.80, existing_invoice_amounts=1046.88)
        assert check.error == "Would exceed item amount. Remaining billable: $11298.79"


class TestBuildLinks:
    def _order(self, items, invoices):
        order = Order(id=uuid4(), order_no="1041", order_grand_total=Decimal("10000"))
        order.items = items
        order.invoices = invoices
        return order

    def test_links_with_explicit_and_calculated_amounts(self):
        first = make_item(amount="1000", overall="50")
        second = make_item(amount="400", overall="100", row_index=18)
        invoice = make_invoice()
        order = self._order([first, second], [invoice])

        links = build_links(order, invoice, [
            {"order_item_id": str(first.id), "this_bill_amount": 250},
            {"order_item_id": str(second.id), "this_bill_amount": None},
        ])

        assert links == [
            {"order_item_id": str(first.id), "this_bill_amount": 250.0},
            {"order_item_id": str(second.id), "this_bill_amount": 400.0},
        ]

    def test_other_invoices_count_against_item(self):
        item = make_item(amount="1000", overall="100")
        other = make_invoice(links=[{"order_item_id": str(item.id), "this_bill_amount": 900}], row_index=355)
        excluded = make_invoice(
            links=[{"order_item_id": str(item.id), "this_bill_amount": 1000}], exclude=True, row_index=356
        )
        invoice = make_invoice()
        order = self._order([item], [invoice, other, excluded])

        with pytest.raises(LineItemLinkError) as exc_info:
            build_links(order, invoice, [{"order_item_id": str(item.id), "this_bill_amount": 200}])

        assert exc_info.value.errors == [{
            "order_item_id": str(item.id),
            "reason": "Would exceed item amount. Remaining billable: $100.00",
        }]

    def test_split_across_invoices_reaches_item_amount(self):
        item = make_item(amount="0.30", overall="100")
        first = make_invoice(links=[{"order_item_id": str(item.id), "this_bill_amount": 0.1}], row_index=355)
        invoice = make_invoice()
        order = self._order([item], [invoice, first])

        links = build_links(order, invoice, [{"order_item_id": str(item.id), "this_bill_amount": 0.2}])

        assert links == [{"order_item_id": str(item.id), "this_bill_amount": 0.2}]

    def test_category_rows_and_unknown_ids_are_ignored(self):
        header = make_item(item_type="maincategory", amount=None)
        invoice = make_invoice()
        order = self._order([header], [invoice])

        with pytest.raises(LineItemLinkError, match="None of the provided 2 item ID"):
            build_links(order, invoice, [
                {"order_item_id": str(header.id), "this_bill_amount": 10},
                {"order_item_id": str(uuid4()), "this_bill_amount": 10},
            ])

    def test_linkable_items_report(self):
        item = make_item(amount="1000", overall="40")
        invoice = make_invoice(links=[{"order_item_id": str(item.id), "this_bill_amount": 400}])
        order = self._order([item, make_item(item_type="subcategory", amount=None)], [invoice])

        rows = linkable_items(order, invoice)

        assert len(rows) == 1
        assert rows[0]["is_linked"] is True
        assert rows[0]["linked_amount"] == 400.0
        assert rows[0]["this_bill"] == 400.0
        assert rows[0]["remaining_billable"] == 1000.0
        assert rows[0]["can_link"] is True

    def test_linked_amounts_skip_malformed_links(self):
        item_id = str(uuid4())
        invoices = [
            make_invoice(links=[{"order_item_id": item_id, "this_bill_amount": "25.5"}, "junk", {"x": 1}]),
            make_invoice(links=[{"order_item_id": item_id, "this_bill_amount": 10}], row_index=355),
        ]
        assert linked_amounts_by_item(invoices) == {item_id: 35.5}


class TestInvoiceRows:
    def test_first_free_row(self):
        assert next_invoice_row([]) == 354
        assert next_invoice_row([make_invoice(row_index=354), make_invoice(row_index=356)]) == 355

    def test_all_rows_taken(self):
        invoices = [make_invoice(row_index=row) for row in range(354, 392)]
        with pytest.raises(InvoiceSlotError, match="Maximum number of invoices reached"):
            next_invoice_row(invoices)


def test_invoice_summary():
    order = Order(id=uuid4(), order_no="1041", order_grand_total=Decimal("10000"))
    order.items = [
        make_item(amount="4000", overall="50"),
        make_item(amount="6000", overall="25", row_index=18),
        make_item(item_type="maincategory", amount="10000", overall="100", row_index=16),
    ]
    order.invoices = [
        make_invoice(payments="1500"),
        make_invoice(payments="999", exclude=True, row_index=355),
    ]

    summary = invoice_summary(order).to_dict()
    percent = summary.pop("percent_completed")

    assert summary == {
        "original_contract_price": 10000.0,
        "total_completed": 3500.0,
        "balance_remaining": 6500.0,
        "less_payments_received": -1500.0,
        "total_due_upon_receipt": 2000.0,
    }
    assert percent == pytest.approx(35.0)
