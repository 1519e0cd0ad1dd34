"""Integration tests for the vendor directory"""

import pytest

from contractflow.auth.roles import UserRole
from contractflow.models import Vendor

pytestmark = pytest.mark.integration

IMPORT_CSV = (
    "VENDOR,EMAIL,PHONE,CONTACT_PERSON,ADDRESS,CITY,STATE,ZIP,CATEGORY,STATUS,NOTES,SPECIALTIES\n"
    "Aqua Plaster,info@aquaplaster.com,512-555-0133,Lee Chen,,Austin,TX,,Plaster,active,,plaster; pebble\n"
    "pool pros tile,ops@poolprostile.com,,,,,,,,,,\n"
    ",orphan@example.com,,,,,,,,,,\n"
    "Deck Masters,,,,,,,,,retired,,\n"
    "Aqua Plaster,,,,,,,,,,,\n"
)


class TestVendorDirectory:
    def test_create_and_get(self, manager_client):
        response = manager_client.post("/api/v1/vendors", json={
            "name": "  Aqua Plaster ",
            "email": "info@aquaplaster.com",
            "phone": " ",
            "specialties": ["plaster"],
        })

        assert response.status_code == 201
        vendor = response.json()
        assert vendor["name"] == "Aqua Plaster"
        assert vendor["phone"] is None
        assert vendor["status"] == "active"

        fetched = manager_client.get(f"/api/v1/vendors/{vendor['id']}").json()
        assert fetched["specialties"] == ["plaster"]

    def test_duplicate_name_is_case_insensitive(self, manager_client, vendor):
        response = manager_client.post("/api/v1/vendors", json={"name": "POOL PROS TILE"})
        assert response.status_code == 409
        assert response.json()["detail"] == "Vendor with this name already exists"

    def test_list_defaults_to_active(self, manager_client, vendor):
        manager_client.post("/api/v1/vendors", json={"name": "Dormant Decking", "status": "inactive"})

        active = manager_client.get("/api/v1/vendors").json()
        everything = manager_client.get("/api/v1/vendors", params={"status": "all"}).json()

        assert [v["name"] for v in active["vendors"]] == ["Pool Pros Tile"]
        assert [v["name"] for v in everything["vendors"]] == ["Dormant Decking", "Pool Pros Tile"]

    def test_search_and_pagination(self, manager_client, vendor):
        manager_client.post("/api/v1/vendors", json={"name": "Aqua Plaster", "category": "Plaster"})
        manager_client.post("/api/v1/vendors", json={"name": "Blue Coping", "category": "Tile"})

        page = manager_client.get("/api/v1/vendors", params={"page_size": 2, "page": 2}).json()
        assert [v["name"] for v in page["vendors"]] == ["Pool Pros Tile"]
        assert page["pagination"] == {"page": 2, "page_size": 2, "total": 3, "total_pages": 2}

        tile = manager_client.get("/api/v1/vendors", params={"category": "Tile"}).json()
        assert {v["name"] for v in tile["vendors"]} == {"Blue Coping", "Pool Pros Tile"}

        found = manager_client.get("/api/v1/vendors", params={"search": "poolprostile"}).json()
        assert [v["name"] for v in found["vendors"]] == ["Pool Pros Tile"]

    def test_update(self, manager_client, vendor):
        manager_client.post("/api/v1/vendors", json={"name": "Aqua Plaster"})

        response = manager_client.patch(f"/api/v1/vendors/{vendor.id}", json={"name": "aqua plaster"})
        assert response.status_code == 409

        response = manager_client.patch(f"/api/v1/vendors/{vendor.id}", json={
            "notes": "Prefers morning calls",
            "status": None,
        })
        assert response.json()["notes"] == "Prefers morning calls"
        assert response.json()["status"] == "active"

    def test_trash_and_restore(self, manager_client, vendor):
        response = manager_client.delete(f"/api/v1/vendors/{vendor.id}")
        assert response.json() == {"success": True, "message": "Vendor deleted successfully"}

        again = manager_client.delete(f"/api/v1/vendors/{vendor.id}")
        assert again.json()["detail"] == "Vendor is already deleted"

        assert manager_client.get("/api/v1/vendors").json()["pagination"]["total"] == 0
        trash = manager_client.get("/api/v1/vendors", params={"trash": True}).json()
        assert [v["name"] for v in trash["vendors"]] == ["Pool Pros Tile"]

        restored = manager_client.post(f"/api/v1/vendors/{vendor.id}/restore")
        assert restored.json()["deleted_at"] is None

        response = manager_client.post(f"/api/v1/vendors/{vendor.id}/restore")
        assert response.status_code == 400
        assert response.json()["detail"] == "Vendor is not in trash"

    def test_viewer_cannot_create(self, client_for, viewer_user):
        response = client_for(viewer_user).post("/api/v1/vendors", json={"name": "Aqua Plaster"})
        assert response.status_code == 403

    def test_vendor_users_are_forbidden(self, client_for, vendor_user):
        assert client_for(vendor_user).get("/api/v1/vendors").status_code == 403

    def test_other_org_vendor(self, client_for, make_user, other_org, vendor):
        stranger = client_for(make_user(UserRole.ADMIN, username="stranger", user_org=other_org))
        assert stranger.get(f"/api/v1/vendors/{vendor.id}").status_code == 404


class TestCsv:
    def test_export(self, manager_client, vendor):
        response = manager_client.get("/api/v1/vendors/export")

        assert response.status_code == 200
        assert response.headers["content-type"].startswith("text/csv")
        assert response.headers["content-disposition"].startswith('attachment; filename="vendors-export-')
        lines = response.text.splitlines()
        assert lines[0] == "VENDOR,EMAIL,PHONE,CONTACT_PERSON,ADDRESS,CITY,STATE,ZIP,CATEGORY,STATUS,NOTES,SPECIALTIES"
        assert lines[1] == (
            "Pool Pros Tile,ops@poolprostile.com,512-555-0101,Maria Lopez,,,,,Tile,active,,tile; coping"
        )

    def test_import(self, manager_client, db_session, vendor):
        response = manager_client.post(
            "/api/v1/vendors/import",
            files={"file": ("vendors.csv", IMPORT_CSV.encode("utf-8"), "text/csv")},
        )

        assert response.status_code == 200
        result = response.json()
        assert result["total_rows"] == 5
        assert result["imported_count"] == 1
        assert result["skipped_count"] == 2
        assert result["error_count"] == 2
        assert result["errors"] == [
            {"row": 4, "name": None, "error": "Vendor name is required"},
            {"row": 5, "name": "Deck Masters", "error": "Invalid status: retired"},
        ]

        imported = db_session.query(Vendor).filter(Vendor.name == "Aqua Plaster").one()
        assert imported.city == "Austin"
        assert imported.specialties == ["plaster", "pebble"]

    def test_import_of_export_is_idempotent(self, manager_client, vendor):
        exported = manager_client.get("/api/v1/vendors/export").content

        response = manager_client.post(
            "/api/v1/vendors/import", files={"file": ("export.csv", exported, "text/csv")},
        )

        assert response.json()["skipped_count"] == 1
        assert response.json()["imported_count"] == 0

    def test_names_only_without_header(self, manager_client):
        response = manager_client.post(
            "/api/v1/vendors/import", files={"file": ("names.csv", b"Aqua Plaster\nBlue Coping\n", "text/csv")},
        )
        assert response.json()["imported_count"] == 2

    @pytest.mark.parametrize(
        "filename, content, detail",
        [
            ("vendors.txt", b"Aqua Plaster\n", "File must be a CSV file"),
            ("vendors.csv", b"", "CSV file is empty"),
        ],
    )
    def test_rejected_files(self, manager_client, filename, content, detail):
        response = manager_client.post(
            "/api/v1/vendors/import", files={"file": (filename, content, "text/csv")},
        )
        assert response.status_code == 400
        assert response.json()["detail"] == detail


def test_vendor_projects(manager_client, vendor, stored_contract):
    created = manager_client.post("/api/v1/order-approvals", json={
        "vendor_id": str(vendor.id),
        "customer_id": stored_contract["customer"]["id"],
        "order_id": stored_contract["id"],
    }).json()["approval"]
    item_ids = [item["id"] for item in stored_contract["items"] if item["type"] == "item"]
    manager_client.put(f"/api/v1/order-approvals/{created['id']}/items", json={"order_item_ids": item_ids})

    body = manager_client.get(f"/api/v1/vendors/{vendor.id}/projects").json()

    assert body["vendor"]["name"] == "Pool Pros Tile"
    assert body["pagination"]["total"] == 1
    project = body["projects"][0]
    assert project["reference_no"] == created["reference_no"]
    assert project["customer"]["client_name"] == "Ely Przybyl"
    assert project["order"]["order_no"] == "1041"
    assert project["item_count"] == 2
    assert project["total_amount"] == 10000.0

    manager_client.delete(f"/api/v1/customers/{stored_contract['customer']['id']}")
    assert manager_client.get(f"/api/v1/vendors/{vendor.id}/projects").json()["projects"] == []
