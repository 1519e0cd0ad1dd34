"""Integration tests for customer listing, editing, alerts and the trash"""

from datetime import timedelta
from uuid import UUID, uuid4

import pytest

from contractflow.auth.roles import UserRole
from contractflow.config import get_settings
from contractflow.models import ChangeHistory, Customer, Order, OrderItem, User
from contractflow.models.base import utcnow

from tests.conftest import auth_headers
from tests.fixtures.contract_samples import contract_payload

pytestmark = pytest.mark.integration


def customer_url(contract, suffix=""):
    return f"/api/v1/customers/{contract['customer']['id']}{suffix}"


@pytest.fixture
def mismatched_contract(manager_client):
    """Contract whose items add up to 10,000 against a grand total of 12,000."""
    response = manager_client.post("/api/v1/contracts", json=contract_payload(
        dbx_customer_id="7001", order_no="2002", client_name="Sam Hill", order_grand_total=12000.0,
    ))
    return response.json()["contract"]


class TestListCustomers:
    def test_summary_row(self, manager_client, stored_contract):
        body = manager_client.get("/api/v1/customers").json()

        assert body["total"] == 1
        row = body["customers"][0]
        assert row["dbx_customer_id"] == "9682"
        assert row["stage"] == "waiting_for_permit"
        assert row["contract_count"] == 1
        assert row["order_grand_total"] == 10000.0
        assert row["has_validation_issues"] is False
        assert row["validation_issues"] is None

    def test_mismatch_is_flagged(self, manager_client, mismatched_contract):
        row = manager_client.get("/api/v1/customers").json()["customers"][0]

        assert row["has_validation_issues"] is True
        assert row["validation_issues"] == ["Order 2002: Items total mismatch"]

    def test_search(self, manager_client, stored_contract, mismatched_contract):
        response = manager_client.get("/api/v1/customers", params={"search": "hill"})
        assert [c["client_name"] for c in response.json()["customers"]] == ["Sam Hill"]

        response = manager_client.get("/api/v1/customers", params={"search": "Temple"})
        assert response.json()["total"] == 2

    def test_trash_filters(self, manager_client, stored_contract, mismatched_contract):
        manager_client.delete(customer_url(mismatched_contract))

        active = manager_client.get("/api/v1/customers").json()
        trash = manager_client.get("/api/v1/customers", params={"trash_only": True}).json()
        everything = manager_client.get("/api/v1/customers", params={"include_deleted": True}).json()

        assert [c["client_name"] for c in active["customers"]] == ["Ely Przybyl"]
        assert [c["client_name"] for c in trash["customers"]] == ["Sam Hill"]
        assert everything["total"] == 2

    def test_sales_rep_sees_own_customers(self, manager_client, client_for, sales_rep_user):
        manager_client.post("/api/v1/contracts", json=contract_payload(sales_rep="jdoe"))
        manager_client.post("/api/v1/contracts", json=contract_payload(
            dbx_customer_id="7001", order_no="2002", client_name="Sam Hill", sales_rep="Someone Else",
        ))

        body = client_for(sales_rep_user).get("/api/v1/customers").json()

        assert [c["client_name"] for c in body["customers"]] == ["Ely Przybyl"]

    def test_sales_rep_only_sees_mismatches_on_own_orders(self, manager_client, client_for, sales_rep_user):
        manager_client.post("/api/v1/contracts", json=contract_payload(sales_rep="jdoe"))
        manager_client.post("/api/v1/contracts", json=contract_payload(
            order_no="2002", order_grand_total=12000.0, sales_rep="Someone Else",
        ))

        rep_row = client_for(sales_rep_user).get("/api/v1/customers").json()["customers"][0]
        manager_row = manager_client.get("/api/v1/customers").json()["customers"][0]

        assert rep_row["contract_count"] == 1
        assert rep_row["has_validation_issues"] is False
        assert rep_row["validation_issues"] is None
        assert manager_row["validation_issues"] == ["Order 2002: Items total mismatch"]

    def test_vendor_is_forbidden(self, client_for, vendor_user):
        assert client_for(vendor_user).get("/api/v1/customers").status_code == 403

    def test_other_org_is_invisible(self, stored_contract, client_for, make_user, other_org):
        stranger = client_for(make_user(UserRole.ADMIN, username="stranger", user_org=other_org))

        assert stranger.get("/api/v1/customers").json()["total"] == 0
        assert stranger.get(customer_url(stored_contract)).status_code == 404


def test_check_exists(manager_client, stored_contract):
    response = manager_client.get("/api/v1/customers/check-exists", params={"dbx_customer_id": "9682"})
    assert response.json() == {
        "exists": True,
        "is_deleted": False,
        "customer_id": stored_contract["customer"]["id"],
    }

    response = manager_client.get("/api/v1/customers/check-exists", params={"dbx_customer_id": "0000"})
    assert response.json() == {"exists": False, "is_deleted": False, "customer_id": None}


class TestCustomerDetail:
    def test_orders_with_items_and_validation(self, manager_client, stored_contract):
        manager_client.post(f"/api/v1/orders/{stored_contract['id']}/invoices", json={"invoice_number": "INV-1"})

        body = manager_client.get(customer_url(stored_contract)).json()

        assert body["customer"]["client_name"] == "Ely Przybyl"
        assert body["stage"] == "waiting_for_permit"
        order = body["orders"][0]
        assert len(order["items"]) == 4
        assert order["invoices"][0]["invoice_number"] == "INV-1"
        assert order["validation"]["is_valid"] is True

    def test_edit_logs_each_changed_field(self, manager_client, stored_contract, db_session):
        response = manager_client.patch(customer_url(stored_contract), json={
            "client_name": "  Ely Przybyl-Gomez ",
            "city": None,
            "state": "TX",
        })

        assert response.status_code == 200
        assert response.json()["client_name"] == "Ely Przybyl-Gomez"
        assert response.json()["city"] == ""

        edits = {
            entry.field_name: (entry.old_value, entry.new_value)
            for entry in db_session.query(ChangeHistory).filter(ChangeHistory.change_type == "customer_edit")
        }
        assert edits == {
            "client_name": ("Ely Przybyl", "Ely Przybyl-Gomez"),
            "city": ("Austin", None),
        }

    def test_blank_client_name(self, manager_client, stored_contract):
        response = manager_client.patch(customer_url(stored_contract), json={"client_name": "   "})
        assert response.status_code == 422

    def test_accountant_cannot_edit(self, client_for, accountant_user, stored_contract):
        response = client_for(accountant_user).patch(customer_url(stored_contract), json={"state": "NM"})
        assert response.status_code == 403


class TestTrash:
    def test_delete_and_recover(self, manager_client, stored_contract, db_session):
        response = manager_client.delete(customer_url(stored_contract))

        assert response.status_code == 200
        assert response.json()["message"] == (
            "Customer moved to trash. It will be permanently deleted after 30 days."
        )
        assert response.json()["deleted_at"]

        again = manager_client.delete(customer_url(stored_contract))
        assert again.status_code == 400
        assert again.json()["detail"] == "Customer is already deleted"

        contract = manager_client.get(f"/api/v1/contracts/{stored_contract['id']}").json()["contract"]
        assert contract["is_deleted"] is True

        response = manager_client.post(customer_url(stored_contract, "/recover"))
        assert response.json() == {"message": "Customer recovered from trash successfully"}

        types = [entry.change_type for entry in db_session.query(ChangeHistory).order_by(ChangeHistory.changed_at)]
        assert types[-2:] == ["customer_delete", "customer_restore"]

    def test_recover_requires_trash(self, manager_client, stored_contract):
        response = manager_client.post(customer_url(stored_contract, "/recover"))
        assert response.status_code == 400
        assert response.json()["detail"] == "Customer is not in trash"

    def test_permanent_delete(self, admin_client, manager_client, stored_contract, db_session):
        response = admin_client.delete(customer_url(stored_contract, "/permanent"))
        assert response.status_code == 400
        assert response.json()["detail"] == "Customer must be moved to trash before permanent deletion"

        manager_client.post(f"/api/v1/orders/{stored_contract['id']}/invoices", json={})
        manager_client.delete(customer_url(stored_contract))

        assert manager_client.delete(customer_url(stored_contract, "/permanent")).status_code == 403

        response = admin_client.delete(customer_url(stored_contract, "/permanent"))
        assert response.json() == {"message": "Customer and all associated data permanently deleted successfully"}
        assert db_session.query(Customer).count() == 0
        assert db_session.query(Order).count() == 0
        assert db_session.query(OrderItem).count() == 0
        assert db_session.query(ChangeHistory).count() == 0


class TestCleanupTrash:
    def _age(self, db_session, contract, days):
        customer = db_session.get(Customer, UUID(contract["customer"]["id"]))
        customer.deleted_at = utcnow() - timedelta(days=days)
        db_session.commit()

    def test_admin_purges_expired_customers_of_own_org(
        self, admin_client, manager_client, stored_contract, mismatched_contract, db_session,
    ):
        self._age(db_session, stored_contract, days=31)
        self._age(db_session, mismatched_contract, days=5)

        response = admin_client.post("/api/v1/customers/cleanup-trash")

        assert response.status_code == 200
        assert response.json() == {
            "deleted_count": 1,
            "deleted_ids": [stored_contract["customer"]["id"]],
        }
        assert [c.client_name for c in db_session.query(Customer).all()] == ["Sam Hill"]

    def test_non_admin_is_forbidden(self, manager_client):
        response = manager_client.post("/api/v1/customers/cleanup-trash")
        assert response.status_code == 403
        assert response.json()["detail"] == "Admin access required"

    def test_scheduler_token(self, client, stored_contract, db_session, monkeypatch):
        monkeypatch.setattr(get_settings(), "CLEANUP_API_TOKEN", "cron-secret")
        self._age(db_session, stored_contract, days=45)

        denied = client.post("/api/v1/customers/cleanup-trash", headers={"Authorization": "Bearer wrong"})
        assert denied.status_code == 401
        assert denied.json()["detail"] == "Unauthorized"

        response = client.post("/api/v1/customers/cleanup-trash", headers={"Authorization": "Bearer cron-secret"})
        assert response.json()["deleted_count"] == 1


class TestAlerts:
    def test_mismatch_alert_and_acknowledgment(self, manager_client, mismatched_contract, manager_user):
        alerts = manager_client.get(customer_url(mismatched_contract, "/alerts")).json()

        assert alerts["acknowledgments"] == []
        alert = alerts["alerts"][0]
        assert alert["alert_type"] == "order_items_mismatch"
        assert alert["acknowledged"] is False
        assert alert["orders"][0]["order_no"] == "2002"
        assert alert["orders"][0]["validation"]["difference"] == 2000.0

        response = manager_client.post(
            customer_url(mismatched_contract, "/alerts/acknowledge"), json={"alert_type": "order_items_mismatch"},
        )
        assert response.json() == {"message": "Alert acknowledged successfully"}

        alerts = manager_client.get(customer_url(mismatched_contract, "/alerts")).json()
        assert alerts["alerts"][0]["acknowledged"] is True
        assert alerts["acknowledgments"][0]["acknowledged_by"]["username"] == "manager"

        row = manager_client.get("/api/v1/customers").json()["customers"][0]
        assert row["has_validation_issues"] is False

    def test_acknowledging_twice_keeps_one_record(self, manager_client, mismatched_contract):
        url = customer_url(mismatched_contract, "/alerts/acknowledge")
        manager_client.post(url, json={"alert_type": "order_items_mismatch"})
        manager_client.post(url, json={"alert_type": "order_items_mismatch"})

        alerts = manager_client.get(customer_url(mismatched_contract, "/alerts")).json()
        assert len(alerts["acknowledgments"]) == 1

    def test_no_alert_when_totals_match(self, manager_client, stored_contract):
        assert manager_client.get(customer_url(stored_contract, "/alerts")).json()["alerts"] == []


def test_customer_history(manager_client, stored_contract):
    for city in ("Round Rock", "Pflugerville", "Cedar Park"):
        manager_client.patch(customer_url(stored_contract), json={"city": city})

    body = manager_client.get(customer_url(stored_contract, "/history"), params={"limit": 2}).json()

    assert body["total"] == 4
    assert body["offset"] == 0
    assert body["has_more"] is True
    assert [entry["new_value"] for entry in body["history"]] == ["Cedar Park", "Pflugerville"]

    second = manager_client.get(customer_url(stored_contract, "/history"), params={"limit": 2, "page": 2}).json()
    assert second["offset"] == 2
    assert second["has_more"] is False
    assert second["history"][-1]["change_type"] == "contract_add"


class TestInvoicingStatus:
    def test_accountant_overrides_status(self, client_for, accountant_user, stored_contract, db_session):
        accountant = client_for(accountant_user)

        response = accountant.patch(customer_url(stored_contract, "/invoicing-status"), json={"status": "completed"})

        assert response.status_code == 200
        assert response.json()["status"] == "completed"
        assert accountant.get(customer_url(stored_contract, "/invoicing-status")).json() == {
            "status": "completed",
            "open_balance": 0.0,
            "invoice_count": 0,
        }

    def test_invalid_status(self, manager_client, stored_contract):
        response = manager_client.patch(customer_url(stored_contract, "/invoicing-status"), json={"status": "paid"})
        assert response.status_code == 422

    def test_viewer_cannot_override(self, client_for, viewer_user, stored_contract):
        response = client_for(viewer_user).patch(
            customer_url(stored_contract, "/invoicing-status"), json={"status": "completed"},
        )
        assert response.status_code == 403


def test_requests_without_valid_user_are_rejected(client):
    ghost = User(id=uuid4(), org_id=uuid4(), role="admin", username="ghost")

    assert client.get("/api/v1/customers").status_code in (401, 403)
    assert client.get("/api/v1/customers", headers=auth_headers(ghost)).status_code == 401

