"""Integration tests for the contract parsing endpoints and stored contracts"""

import base64
import importlib
from io import BytesIO

import pytest
from openpyxl import load_workbook

from contractflow.auth.roles import UserRole
from contractflow.models import ChangeHistory, Customer, Order
from contractflow.parsing import AddendumFetchError
from contractflow.parsing import addendum as addendum_module

from tests.fixtures.contract_samples import (
    ADDENDUM_HTML,
    ADDENDUM_URL,
    ORIGINAL_CONTRACT_URL,
    build_eml,
    contract_payload,
)

pytestmark = pytest.mark.integration

router_module = importlib.import_module("contractflow.contracts.router")


def encoded_eml(**kwargs):
    return base64.b64encode(build_eml(**kwargs)).decode("ascii")


class TestParseContract:
    def test_json_result(self, admin_client):
        response = admin_client.post("/api/v1/parse-contract/json", json={
            "file": encoded_eml(),
            "order_grand_total": 10000,
        })

        assert response.status_code == 200
        body = response.json()
        assert body["location"]["dbx_customer_id"] == "9682"
        assert body["location"]["client_name"] == "Ely Przybyl"
        assert [item["type"] for item in body["items"]] == ["maincategory", "subcategory", "item", "item"]
        assert body["links"]["original_contract_url"] == ORIGINAL_CONTRACT_URL
        assert body["links"]["addendum_urls"] == [ADDENDUM_URL]
        assert body["validation"]["is_valid"] is True
        assert body["filename"] == "E. Przybyl - #9682 - 1041 Temple terrace.xlsx"

    def test_json_reports_mismatch(self, admin_client):
        response = admin_client.post("/api/v1/parse-contract/json", json={
            "file": encoded_eml(),
            "order_grand_total": 12000,
        })

        validation = response.json()["validation"]
        assert validation["is_valid"] is False
        assert validation["difference"] == 2000.0
        assert "Difference: $2,000.00" in validation["message"]

    def test_spreadsheet_download(self, admin_client):
        response = admin_client.post("/api/v1/parse-contract", json={"file": encoded_eml()})

        assert response.status_code == 200
        assert response.headers["content-type"].startswith(
            "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet"
        )
        assert response.headers["x-content-type-options"] == "nosniff"
        disposition = response.headers["content-disposition"]
        assert 'filename="E. Przybyl - #9682 - 1041 Temple terrace.xlsx"' in disposition
        assert "filename*=UTF-8''E.%20Przybyl" in disposition

        workbook = load_workbook(BytesIO(response.content))
        assert workbook.active.max_row > 1

    def test_not_base64(self, admin_client):
        response = admin_client.post("/api/v1/parse-contract/json", json={"file": "abc"})
        assert response.status_code == 400
        assert response.json()["detail"] == "File must be base64 encoded"

    def test_decodes_to_nothing(self, admin_client):
        response = admin_client.post("/api/v1/parse-contract/json", json={"file": "!!!!"})
        assert response.status_code == 400
        assert response.json()["detail"] == "No file uploaded or file is empty"

    def test_missing_items_table(self, admin_client):
        response = admin_client.post("/api/v1/parse-contract/json", json={
            "file": encoded_eml(html="<html><body><p>No table</p></body></html>"),
        })
        assert response.status_code == 422
        assert response.json()["detail"].startswith("Failed to process contract:")

    def test_vendor_is_forbidden(self, client_for, vendor_user):
        response = client_for(vendor_user).post("/api/v1/parse-contract/json", json={"file": encoded_eml()})
        assert response.status_code == 403
        assert response.json()["detail"] == "Vendor users cannot access this resource"


class TestEmlHelpers:
    def test_detect_sections(self, admin_client):
        response = admin_client.post("/api/v1/detect-eml-sections", json={"file": encoded_eml()})

        body = response.json()
        assert body["has_table"] is True
        assert [section["type"] for section in body["sections"]] == ["original", "optional_package"]

    def test_extract_links(self, admin_client):
        response = admin_client.post("/api/v1/extract-contract-links", json={"file": encoded_eml()})
        assert response.json() == {
            "original_contract_url": ORIGINAL_CONTRACT_URL,
            "addendum_urls": [ADDENDUM_URL],
        }

    def test_extract_dbx_customer_id(self, admin_client):
        response = admin_client.post("/api/v1/extract-dbx-customer-id", json={"file": encoded_eml()})
        assert response.json() == {"dbx_customer_id": "9682", "client_name": "Ely Przybyl"}

    def test_extract_dbx_customer_id_without_text(self, admin_client):
        response = admin_client.post("/api/v1/extract-dbx-customer-id", json={
            "file": encoded_eml(text=" "),
        })
        assert response.json() == {"dbx_customer_id": None, "client_name": None}


class TestAddendumLinks:
    def test_invalid_format(self, admin_client):
        response = admin_client.post("/api/v1/validate-link", json={"url": "https://example.com/x"})
        assert response.json() == {
            "valid": False,
            "error": "Invalid URL format. Expected format: https://l1.prodbx.com/go/view/?...",
        }

    def test_reachable_link(self, admin_client, monkeypatch):
        monkeypatch.setattr(router_module, "fetch_addendum_html", lambda url: ADDENDUM_HTML)

        response = admin_client.post("/api/v1/validate-link", json={"url": f"  {ADDENDUM_URL} "})

        assert response.json() == {"valid": True, "addendum_number": "35587"}

    def test_unreachable_link(self, admin_client, monkeypatch):
        def fail(url):
            raise AddendumFetchError("HTTP 404 Not Found while fetching addendum")

        monkeypatch.setattr(router_module, "fetch_addendum_html", fail)

        response = admin_client.post("/api/v1/validate-link", json={"url": ADDENDUM_URL})

        assert response.json() == {"valid": False, "error": "HTTP 404 Not Found while fetching addendum"}

    def test_parse_addendums_skips_failures(self, admin_client, monkeypatch):
        monkeypatch.setattr(addendum_module, "fetch_addendum_html", lambda url: ADDENDUM_HTML)

        response = admin_client.post("/api/v1/addendums/parse", json={
            "urls": [ADDENDUM_URL, "https://example.com/not-prodbx"],
        })

        assert response.status_code == 200
        addendums = response.json()["addendums"]
        assert len(addendums) == 1
        assert addendums[0]["addendum_number"] == "7"
        assert addendums[0]["url_id"] == "35587"
        assert [item["product_service"] for item in addendums[0]["items"]][-2:] == [
            "Extra pavers",
            "Credit for tile",
        ]

    def test_parse_addendums_all_failed(self, admin_client):
        response = admin_client.post("/api/v1/addendums/parse", json={"urls": ["https://example.com/x"]})
        assert response.status_code == 502
        assert response.json()["detail"].startswith("All addendum URLs failed to process")

    def test_parse_addendums_requires_urls(self, admin_client):
        assert admin_client.post("/api/v1/addendums/parse", json={"urls": []}).status_code == 422


class TestStoredContracts:
    def test_create_then_update_same_order(self, manager_client, db_session):
        response = manager_client.post("/api/v1/contracts", json=contract_payload())

        assert response.status_code == 201
        body = response.json()
        assert body["created"] is True
        contract = body["contract"]
        assert contract["customer"]["dbx_customer_id"] == "9682"
        assert contract["order"]["order_no"] == "1041"
        assert [item["row_index"] for item in contract["items"]] == [0, 1, 2, 3]
        assert contract["items"][2]["column_a_label"] == "1 - Detail"
        assert contract["is_deleted"] is False

        history = db_session.query(ChangeHistory).filter(ChangeHistory.change_type == "contract_add").one()
        assert history.new_value == "Contract for Ely Przybyl - Order #1041"

        again = manager_client.post("/api/v1/contracts", json=contract_payload(client_name="Ely P."))
        assert again.status_code == 201
        assert again.json()["created"] is False
        assert db_session.query(Customer).count() == 1
        assert db_session.query(Order).count() == 1
        assert db_session.query(ChangeHistory).filter(ChangeHistory.change_type == "contract_add").count() == 1

    def test_addendums_are_appended(self, manager_client):
        payload = contract_payload(addendums=[{
            "addendum_number": "7",
            "url_id": "35587",
            "items": [{"type": "item", "product_service": "Extra pavers", "amount": "$1,200.00"}],
        }])

        items = manager_client.post("/api/v1/contracts", json=payload).json()["contract"]["items"]

        assert [item["is_blank_row"] for item in items[4:6]] == [True, True]
        assert items[6]["is_addendum_header"] is True
        assert items[6]["addendum_number"] == "7"
        assert items[7]["product_service"] == "Extra pavers"
        assert items[7]["column_b_label"] == "Addendum"
        assert items[7]["amount"] == 1200.0

    @pytest.mark.parametrize(
        "payload, detail",
        [
            ({"customer": {"dbx_customer_id": "1"}, "order": {"order_no": "1"}},
             "Contract must have customer, order, and items"),
            (contract_payload(dbx_customer_id=""), "dbx_customer_id is required"),
        ],
    )
    def test_incomplete_contract(self, manager_client, payload, detail):
        response = manager_client.post("/api/v1/contracts", json=payload)
        assert response.status_code == 400
        assert response.json()["detail"] == detail

    def test_viewer_cannot_store(self, client_for, viewer_user):
        response = client_for(viewer_user).post("/api/v1/contracts", json=contract_payload())
        assert response.status_code == 403
        assert response.json()["detail"] == "You do not have permission to edit contracts"

    def test_get_and_update(self, manager_client, db_session):
        contract_id = manager_client.post("/api/v1/contracts", json=contract_payload()).json()["contract"]["id"]

        assert manager_client.get(f"/api/v1/contracts/{contract_id}").json()["contract"]["id"] == contract_id

        response = manager_client.put(f"/api/v1/contracts/{contract_id}", json={
            "customer": {"city": "Round Rock"},
            "order": {"order_grand_total": 10500},
        })

        assert response.status_code == 200
        contract = response.json()["contract"]
        assert contract["customer"]["city"] == "Round Rock"
        assert contract["order"]["order_grand_total"] == 10500.0
        types = {c.change_type for c in db_session.query(ChangeHistory).all()}
        assert {"customer_edit", "order_edit"} <= types

    def test_unknown_contract(self, manager_client):
        response = manager_client.get("/api/v1/contracts/00000000-0000-0000-0000-000000000000")
        assert response.status_code == 404
        assert response.json()["detail"] == "Contract not found"

    def test_stored_spreadsheet(self, manager_client):
        contract_id = manager_client.post("/api/v1/contracts", json=contract_payload()).json()["contract"]["id"]

        response = manager_client.get(f"/api/v1/contracts/{contract_id}/spreadsheet")

        assert response.status_code == 200
        assert 'filename="E. Przybyl - #9682 - 1041 Temple terrace.xlsx"' in response.headers["content-disposition"]
        load_workbook(BytesIO(response.content))

    def test_sales_rep_sees_own_contracts(self, manager_client, client_for, sales_rep_user):
        manager_client.post("/api/v1/contracts", json=contract_payload(sales_rep="John Doe"))
        other = manager_client.post("/api/v1/contracts", json=contract_payload(
            dbx_customer_id="7001", order_no="2002", client_name="Sam Hill", sales_rep="Someone Else",
        )).json()["contract"]

        rep_client = client_for(sales_rep_user)
        contracts = rep_client.get("/api/v1/contracts").json()["contracts"]

        assert [c["order"]["order_no"] for c in contracts] == ["1041"]
        assert rep_client.get(f"/api/v1/contracts/{other['id']}").status_code == 404

    def test_other_org_contracts_are_invisible(self, manager_client, client_for, make_user, other_org):
        contract_id = manager_client.post("/api/v1/contracts", json=contract_payload()).json()["contract"]["id"]
        stranger = make_user(UserRole.ADMIN, username="stranger", user_org=other_org)

        stranger_client = client_for(stranger)

        assert stranger_client.get("/api/v1/contracts").json() == {"contracts": []}
        assert stranger_client.get(f"/api/v1/contracts/{contract_id}").status_code == 404
