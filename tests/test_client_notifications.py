from __future__ import annotations

import tempfile
import unittest
from datetime import datetime, timedelta, timezone
from pathlib import Path

from inventory.client.notifications import DismissedNotifications, generate_notifications, visible_notifications

NOW = datetime(2026, 6, 1, 9, 0, tzinfo=timezone.utc)


def _pc(**overrides: object) -> dict[str, object]:
    pc: dict[str, object] = {
        "id": "uuid-1",
        "pc_id": "PC-000001",
        "status": "active",
        "employee_id": "e-1",
        "warranty_expiry": "2028-01-01",
        "created_at": (NOW - timedelta(days=10)).isoformat(),
        "updated_at": (NOW - timedelta(days=1)).isoformat(),
    }
    pc.update(overrides)
    return pc


def _expiry_in(days: int) -> str:
    return (NOW.date() + timedelta(days=days)).isoformat()


class GenerateNotificationsTests(unittest.TestCase):
    def test_healthy_assigned_pc_has_no_notifications(self) -> None:
        self.assertEqual(generate_notifications([_pc()], now=NOW), [])

    def test_warranty_boundaries(self) -> None:
        cases = {0: "high", 7: "high", 8: "medium", 30: "medium"}
        for days, priority in cases.items():
            with self.subTest(days=days):
                notifications = generate_notifications([_pc(warranty_expiry=_expiry_in(days))], now=NOW)
                self.assertEqual(len(notifications), 1)
                self.assertEqual(notifications[0].kind, "warranty")
                self.assertEqual(notifications[0].priority, priority)

        for days in (31, -1):
            with self.subTest(days=days):
                self.assertEqual(generate_notifications([_pc(warranty_expiry=_expiry_in(days))], now=NOW), [])

    def test_warranty_id_embeds_expiry(self) -> None:
        notification = generate_notifications([_pc(warranty_expiry=_expiry_in(10))], now=NOW)[0]

        self.assertEqual(notification.id, f"warranty-uuid-1-{_expiry_in(10)}")

    def test_maintenance_notification(self) -> None:
        notifications = generate_notifications([_pc(status="maintenance")], now=NOW)

        self.assertEqual([(item.id, item.priority) for item in notifications], [("maintenance-uuid-1", "medium")])

    def test_unassigned_only_after_24_hours(self) -> None:
        fresh = _pc(employee_id=None, created_at=(NOW - timedelta(hours=23)).isoformat())
        exactly = _pc(id="uuid-2", employee_id=None, created_at=(NOW - timedelta(hours=24)).isoformat())
        old = _pc(id="uuid-3", employee_id=None, created_at=(NOW - timedelta(hours=25)).isoformat())

        notifications = generate_notifications([fresh, exactly, old], now=NOW)

        self.assertEqual([item.id for item in notifications], ["unassigned-uuid-3"])
        self.assertEqual(notifications[0].priority, "low")

    def test_one_pc_can_raise_several_notifications(self) -> None:
        pc = _pc(status="maintenance", employee_id=None, warranty_expiry=_expiry_in(3))

        kinds = [item.kind for item in generate_notifications([pc], now=NOW)]

        self.assertEqual(kinds, ["warranty", "maintenance", "assignment"])


class DismissedNotificationsTests(unittest.TestCase):
    def test_dismissed_ids_persist_across_instances(self) -> None:
        with tempfile.TemporaryDirectory() as tmp:
            path = Path(tmp) / "state" / "dismissed.json"
            first = DismissedNotifications(path)
            first.dismiss("maintenance-uuid-1")

            second = DismissedNotifications(path)

            self.assertIn("maintenance-uuid-1", second)
            self.assertEqual(len(second), 1)

            second.clear()
            self.assertEqual(len(DismissedNotifications(path)), 0)

    def test_unreadable_file_starts_empty(self) -> None:
        with tempfile.TemporaryDirectory() as tmp:
            path = Path(tmp) / "dismissed.json"
            path.write_text("{not json", encoding="utf-8")

            with self.assertLogs("inventory.client", level="WARNING"):
                dismissed = DismissedNotifications(path)

            self.assertEqual(len(dismissed), 0)

    def test_extended_warranty_resurfaces(self) -> None:
        dismissed = DismissedNotifications()
        before = generate_notifications([_pc(warranty_expiry=_expiry_in(5))], now=NOW)
        dismissed.dismiss(before[0].id)

        self.assertEqual(visible_notifications(before, dismissed), [])

        after = generate_notifications([_pc(warranty_expiry=_expiry_in(20))], now=NOW)
        self.assertEqual(len(visible_notifications(after, dismissed)), 1)

    def test_plain_iterables_are_accepted(self) -> None:
        notifications = generate_notifications([_pc(status="maintenance")], now=NOW)

        self.assertEqual(visible_notifications(notifications, ["maintenance-uuid-1"]), [])


if __name__ == "__main__":
    unittest.main()
