from __future__ import annotations

import unittest
from datetime import date, timedelta

from fastapi.testclient import TestClient

from inventory.deps import get_storage
from inventory.main import app
from inventory.memory_storage import MemoryStorage
from inventory.routers.pcs import is_safe_asset_tag


def _pc_payload(**overrides: object) -> dict[str, object]:
    payload: dict[str, object] = {
        "brand": "Dell",
        "model": "Latitude 5440",
        "cpu": "Intel i7-1365U",
        "ram": 16,
        "storage": "512GB SSD",
        "operating_system": "Windows 11 Pro",
        "serial_number": "sn-abc123456",
        "purchase_date": "2025-01-10",
        "warranty_expiry": "2028-01-10",
    }
    payload.update(overrides)
    return payload


class InventoryApiTests(unittest.TestCase):
    def setUp(self) -> None:
        app.state.rate_limiters.reset()
        self.storage = MemoryStorage()
        self.user = self.storage.add_user(username="mrossi", email="m.rossi@example.com", password="Secret123!")
        self.headers = {"Authorization": f"Bearer {self.storage.create_session(self.user.id).id}"}
        app.dependency_overrides[get_storage] = lambda: self.storage
        self.client = TestClient(app)

    def tearDown(self) -> None:
        app.dependency_overrides.clear()
        app.state.rate_limiters.reset()

    def _create_employee(self, name: str = "Anna Verdi", email: str = "anna@example.com") -> dict:
        response = self.client.post(
            "/api/employees",
            json={"name": name, "email": email, "department": "IT", "position": "Developer"},
            headers=self.headers,
        )
        self.assertEqual(response.status_code, 201)
        return response.json()

    def _create_pc(self, **overrides: object) -> dict:
        response = self.client.post("/api/pcs", json=_pc_payload(**overrides), headers=self.headers)
        self.assertEqual(response.status_code, 201, response.text)
        return response.json()

    def test_employee_crud(self) -> None:
        employee = self._create_employee()

        listed = self.client.get("/api/employees", headers=self.headers)
        self.assertEqual([row["id"] for row in listed.json()], [employee["id"]])

        updated = self.client.put(
            f"/api/employees/{employee['id']}",
            json={"department": "Finance"},
            headers=self.headers,
        )
        self.assertEqual(updated.status_code, 200)
        self.assertEqual(updated.json()["department"], "Finance")
        self.assertEqual(updated.json()["name"], "Anna Verdi")

        deleted = self.client.delete(f"/api/employees/{employee['id']}", headers=self.headers)
        self.assertEqual(deleted.status_code, 204)

        missing = self.client.get(f"/api/employees/{employee['id']}", headers=self.headers)
        self.assertEqual(missing.status_code, 404)
        self.assertEqual(missing.json()["error"], "Employee not found")

    def test_duplicate_employee_email_is_conflict(self) -> None:
        self._create_employee()

        response = self.client.post(
            "/api/employees",
            json={"name": "Other", "email": "ANNA@example.com", "department": "HR"},
            headers=self.headers,
        )

        self.assertEqual(response.status_code, 409)
        self.assertEqual(response.json()["code"], "DUPLICATE_VALUE")

    def test_create_pc_generates_asset_tag_and_history(self) -> None:
        employee = self._create_employee()

        pc = self._create_pc(employee_id=employee["id"])

        self.assertEqual(pc["pc_id"], "PC-123456")
        self.assertEqual(pc["status"], "active")
        self.assertEqual(pc["employee"]["name"], "Anna Verdi")

        history = self.client.get(f"/api/pcs/{pc['id']}/history", headers=self.headers).json()
        self.assertEqual({entry["event_type"] for entry in history}, {"created", "assigned"})
        self.assertTrue(all(entry["performed_by_name"] == "mrossi" for entry in history))

    def test_create_pc_with_unknown_employee_is_not_found(self) -> None:
        response = self.client.post(
            "/api/pcs",
            json=_pc_payload(employee_id="missing"),
            headers=self.headers,
        )

        self.assertEqual(response.status_code, 404)
        self.assertEqual(self.storage.pcs, {})

    def test_duplicate_serial_is_conflict(self) -> None:
        self._create_pc()

        response = self.client.post("/api/pcs", json=_pc_payload(pc_id="PC-OTHER"), headers=self.headers)

        self.assertEqual(response.status_code, 409)
        self.assertEqual(response.json()["details"][0]["field"], "serial_number")

    def test_update_pc_records_one_event_per_change(self) -> None:
        employee = self._create_employee()
        pc = self._create_pc()

        response = self.client.put(
            f"/api/pcs/{pc['id']}",
            json={"employee_id": employee["id"], "status": "maintenance", "ram": 32, "notes": "Fan noise"},
            headers=self.headers,
        )

        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.json()["ram"], 32)
        history = self.client.get(f"/api/pcs/{pc['id']}/history", headers=self.headers).json()
        event_types = [entry["event_type"] for entry in history]
        self.assertEqual(
            sorted(event_types),
            sorted(["created", "assigned", "maintenance", "specs_update", "notes_update"]),
        )

    def test_update_missing_pc_is_not_found(self) -> None:
        response = self.client.put("/api/pcs/missing", json={"ram": 8}, headers=self.headers)

        self.assertEqual(response.status_code, 404)

    def test_deleting_employee_unassigns_pcs(self) -> None:
        employee = self._create_employee()
        pc = self._create_pc(employee_id=employee["id"])

        self.client.delete(f"/api/employees/{employee['id']}", headers=self.headers)

        refreshed = self.client.get(f"/api/pcs/{pc['id']}", headers=self.headers).json()
        self.assertIsNone(refreshed["employee_id"])
        self.assertIsNone(refreshed["employee"])
        history = self.client.get(f"/api/pcs/{pc['id']}/history", headers=self.headers).json()
        self.assertEqual(history[0]["event_type"], "unassigned")
        self.assertEqual(history[0]["related_employee_name"], "Anna Verdi")
        self.assertIsNone(history[0]["related_employee_id"])

    def test_delete_pc(self) -> None:
        pc = self._create_pc()

        self.assertEqual(self.client.delete(f"/api/pcs/{pc['id']}", headers=self.headers).status_code, 204)
        self.assertEqual(self.client.delete(f"/api/pcs/{pc['id']}", headers=self.headers).status_code, 404)

        history = self.client.get("/api/pc-history", headers=self.headers).json()
        self.assertEqual(len(history), 1)
        self.assertIsNone(history[0]["pc_id"])
        self.assertEqual(history[0]["serial_number"], "sn-abc123456")

    def test_history_by_serial_prefix(self) -> None:
        self._create_pc()
        self._create_pc(serial_number="XY-999999", pc_id="PC-XY")

        response = self.client.get("/api/pc-history/serial/sn-abc", headers=self.headers)

        self.assertEqual(response.status_code, 200)
        self.assertEqual({entry["serial_number"] for entry in response.json()}, {"sn-abc123456"})

    def test_qr_scan_is_public(self) -> None:
        employee = self._create_employee()
        self._create_pc(employee_id=employee["id"], pc_id="PC-QR1")

        response = self.client.get("/api/pcs/qr/PC-QR1")

        self.assertEqual(response.status_code, 200)
        body = response.json()
        self.assertEqual(body["pc_id"], "PC-QR1")
        self.assertEqual(body["employee"]["email"], "anna@example.com")
        self.assertIn("scan_timestamp", body)

    def test_qr_scan_rejects_unsafe_identifiers(self) -> None:
        for pc_id in ("a..b", "a%5Cb", "X" * 51):
            with self.subTest(pc_id=pc_id):
                response = self.client.get(f"/api/pcs/qr/{pc_id}")
                self.assertEqual(response.status_code, 400)
                self.assertEqual(response.json()["code"], "INVALID_PC_ID")

    def test_qr_scan_unknown_tag(self) -> None:
        response = self.client.get("/api/pcs/qr/PC-NOPE")

        self.assertEqual(response.status_code, 404)
        self.assertEqual(response.json()["pc_id"], "PC-NOPE")

    def test_dashboard_stats(self) -> None:
        employee = self._create_employee()
        soon = (date.today() + timedelta(days=10)).isoformat()
        self._create_pc(serial_number="SN-000001", employee_id=employee["id"])
        self._create_pc(serial_number="SN-000002", warranty_expiry=soon)
        self._create_pc(serial_number="SN-000003", status="maintenance")
        self._create_pc(serial_number="SN-000004", status="retired")

        response = self.client.get("/api/dashboard/stats", headers=self.headers)

        self.assertEqual(response.status_code, 200)
        self.assertEqual(
            response.json(),
            {
                "total_pcs": 4,
                "active_pcs": 2,
                "maintenance_pcs": 1,
                "retired_pcs": 1,
                "assigned_pcs": 1,
                "available_pcs": 1,
                "expiring_warranties": 1,
                "total_employees": 1,
            },
        )


class AssetTagSafetyTests(unittest.TestCase):
    def test_rules(self) -> None:
        cases = {
            "PC-123456": True,
            "X" * 50: True,
            "": False,
            "X" * 51: False,
            "a..b": False,
            "a/b": False,
            "a\\b": False,
        }
        for value, expected in cases.items():
            with self.subTest(value=value):
                self.assertEqual(is_safe_asset_tag(value), expected)


if __name__ == "__main__":
    unittest.main()
