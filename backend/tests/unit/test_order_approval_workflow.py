"""Unit tests for the order approval stage machine, reference numbers and
the confirmation email"""

from datetime import datetime, timezone
from decimal import Decimal
from uuid import uuid4

import pytest

from contractflow.models import Customer, OrderApproval, OrderApprovalItem, User, Vendor
from contractflow.order_approvals.email_preview import (
    build_email_payload,
    email_items,
    format_currency,
    format_qty,
    format_timestamp,
    render_email_html,
)
from contractflow.order_approvals.reference import format_reference_number
from contractflow.order_approvals.stages import (
    StageTransitionError,
    resolve_flag,
    validate_send,
    validate_stage_change,
)


class TestStageChanges:
    def test_one_step_forward_and_back(self):
        validate_stage_change("draft", "negotiating", False, False)
        validate_stage_change("negotiating", "draft", False, False)
        validate_stage_change("negotiating", "approved", True, True)

    def test_unknown_stage(self):
        with pytest.raises(StageTransitionError, match="Invalid stage"):
            validate_stage_change("draft", "archived", False, False)

    def test_sent_is_not_a_patch_target(self):
        with pytest.raises(StageTransitionError, match="Invalid stage"):
            validate_stage_change("draft", "sent", False, False)

    def test_cannot_skip(self):
        with pytest.raises(StageTransitionError, match="Cannot skip stages"):
            validate_stage_change("draft", "approved", True, True)

    def test_approval_needs_both_sign_offs(self):
        with pytest.raises(StageTransitionError, match="Both PM and Vendor must approve"):
            validate_stage_change("negotiating", "approved", True, False)

    def test_approved_is_read_only(self):
        with pytest.raises(StageTransitionError, match="Approved orders are read-only"):
            validate_stage_change("approved", "negotiating", True, True)

    def test_sent_counts_as_negotiating(self):
        validate_stage_change("sent", "approved", True, True)
        validate_stage_change("sent", "draft", False, False)


class TestSend:
    def test_draft_with_items(self):
        validate_send("draft", 3)

    @pytest.mark.parametrize(
        "stage, count, deleted, message",
        [
            ("draft", 1, True, "Cannot send deleted approval"),
            ("negotiating", 1, False, "Can only send approvals from draft stage"),
            ("draft", 0, False, "Cannot send approval without selected items"),
        ],
    )
    def test_rejected(self, stage, count, deleted, message):
        with pytest.raises(StageTransitionError, match=message):
            validate_send(stage, count, deleted=deleted)


def test_resolve_flag():
    assert resolve_flag(None, True) is True
    assert resolve_flag(False, True) is False


def test_reference_number_format():
    assert format_reference_number(2024, 1) == "2024-00001"
    assert format_reference_number(2025, 12345) == "2025-12345"


class TestEmailFormatting:
    def test_currency(self):
        assert format_currency(1234.5) == "$1,234.50"
        assert format_currency(-1234.5) == "-$1,234.50"

    def test_qty(self):
        assert format_qty(2) == "2.00"

    def test_timestamp_in_pacific_time(self):
        value = datetime(2025, 3, 4, 22, 5, tzinfo=timezone.utc)
        assert format_timestamp(value) == "March 04, 2025 at 2:05 PM PST"

    def test_values_are_escaped(self):
        html = render_email_html(
            reference_no="2025-00001",
            customer_name="<script>alert(1)</script>",
            project_manager="pm@bluelagoon.com",
            vendor_contact="Maria / Tile & Stone",
            vendor_phone="555",
            vendor_email="ops@poolprostile.com",
            approval_timestamp="now",
            items=[],
        )
        assert "<script>" not in html
        assert "&lt;script&gt;" in html
        assert "Tile &amp; Stone" in html


def _approval():
    approval = OrderApproval(
        id=uuid4(),
        reference_no="2025-00007",
        vendor_approved_at=datetime(2025, 3, 4, 22, 5, tzinfo=timezone.utc),
    )
    approval.vendor = Vendor(name="Pool Pros Tile", email="ops@poolprostile.com", contact_person="Maria Lopez")
    approval.customer = Customer(client_name="Ely Przybyl")
    approval.creator = User(username="manager", email="manager@bluelagoon.com")
    approval.items = [
        OrderApprovalItem(product_service="Waterline tile", qty=Decimal("2"), rate=Decimal("150"), amount=None),
        OrderApprovalItem(product_service="  ", qty=Decimal("1"), rate=Decimal("10"), amount=Decimal("12.50")),
    ]
    return approval


class TestEmailPayload:
    def test_items_fall_back_to_qty_times_rate(self):
        items = email_items(_approval())

        assert items[0].amount == 300.0
        assert items[1].product_service == "Untitled Item"
        assert items[1].amount == 12.5

    def test_payload(self):
        approval = _approval()
        payload = build_email_payload(approval).to_dict()

        assert payload["subject"] == "Order Approval Confirmation - 2025-00007"
        assert payload["reference_no"] == "2025-00007"
        assert payload["approval_id"] == str(approval.id)
        assert payload["vendor_email"] == "ops@poolprostile.com"
        assert payload["approved_at"] == "2025-03-04T22:05:00+00:00"
        assert payload["trigger_source"] == "manual_button"
        assert payload["test_mode"] is True
        assert "March 04, 2025 at 2:05 PM PST" in payload["html_email"]
        assert "Maria Lopez / Pool Pros Tile" in payload["html_email"]
        assert "$300.00" in payload["html_email"]
