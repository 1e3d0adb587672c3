from __future__ import annotations

import json
import logging
from collections.abc import Iterable, Mapping, Sequence
from dataclasses import dataclass
from datetime import date, datetime, timedelta, timezone
from pathlib import Path
from typing import Any, Literal

from inventory.client.filters import WARRANTY_HORIZON_DAYS, as_date

logger = logging.getLogger("inventory.client")

HIGH_PRIORITY_DAYS = 7
UNASSIGNED_GRACE = timedelta(hours=24)

Priority = Literal["high", "medium", "low"]
Kind = Literal["warranty", "maintenance", "assignment"]


@dataclass(frozen=True)
class Notification:
    id: str
    kind: Kind
    title: str
    message: str
    pc_id: str
    priority: Priority
    occurred_at: date | datetime | None


def _as_datetime(value: Any) -> datetime | None:
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        parsed = value
    else:
        parsed = datetime.fromisoformat(str(value).replace("Z", "+00:00"))
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def _warranty_notification(pc: Mapping[str, Any], today: date) -> Notification | None:
    expiry = as_date(pc.get("warranty_expiry"))
    if expiry is None:
        return None
    remaining = (expiry - today).days
    if not 0 <= remaining <= WARRANTY_HORIZON_DAYS:
        return None
    return Notification(
        id=f"warranty-{pc['id']}-{expiry.isoformat()}",
        kind="warranty",
        title="Warranty expiring",
        message=f"The warranty of PC {pc.get('pc_id')} expires on {expiry.isoformat()}",
        pc_id=str(pc.get("pc_id")),
        priority="high" if remaining <= HIGH_PRIORITY_DAYS else "medium",
        occurred_at=expiry,
    )


def generate_notifications(pcs: Iterable[Mapping[str, Any]], now: datetime | None = None) -> list[Notification]:
    """Recompute every notification from the current PC snapshot.

    Warranty ids embed the expiry date, so extending a warranty resurfaces a
    notification that was dismissed for the old date.
    """
    now = now or datetime.now(timezone.utc)
    if now.tzinfo is None:
        now = now.replace(tzinfo=timezone.utc)
    today = now.date()
    notifications: list[Notification] = []

    for pc in pcs:
        warranty = _warranty_notification(pc, today)
        if warranty is not None:
            notifications.append(warranty)

        if pc.get("status") == "maintenance":
            notifications.append(
                Notification(
                    id=f"maintenance-{pc['id']}",
                    kind="maintenance",
                    title="PC in maintenance",
                    message=f"PC {pc.get('pc_id')} is currently in maintenance",
                    pc_id=str(pc.get("pc_id")),
                    priority="medium",
                    occurred_at=_as_datetime(pc.get("updated_at")),
                )
            )

        created_at = _as_datetime(pc.get("created_at"))
        if not pc.get("employee_id") and created_at is not None and now - created_at > UNASSIGNED_GRACE:
            notifications.append(
                Notification(
                    id=f"unassigned-{pc['id']}",
                    kind="assignment",
                    title="PC not assigned",
                    message=f"PC {pc.get('pc_id')} is not assigned to any employee",
                    pc_id=str(pc.get("pc_id")),
                    priority="low",
                    occurred_at=created_at,
                )
            )

    return notifications


class DismissedNotifications:
    """Ids the user has acknowledged, kept in a local JSON file across runs."""

    def __init__(self, path: Path | str | None = None):
        self.path = Path(path) if path is not None else None
        self._ids: set[str] = set()
        self._load()

    def _load(self) -> None:
        if self.path is None or not self.path.exists():
            return
        try:
            payload = json.loads(self.path.read_text(encoding="utf-8"))
        except (OSError, ValueError):
            logger.warning("dismissed_notifications_unreadable", extra={"path": str(self.path)})
            return
        if isinstance(payload, list):
            self._ids = {str(item) for item in payload}

    def _save(self) -> None:
        if self.path is None:
            return
        self.path.parent.mkdir(parents=True, exist_ok=True)
        self.path.write_text(json.dumps(sorted(self._ids)), encoding="utf-8")

    def __contains__(self, notification_id: object) -> bool:
        return notification_id in self._ids

    def __len__(self) -> int:
        return len(self._ids)

    def dismiss(self, notification_id: str) -> None:
        self._ids.add(notification_id)
        self._save()

    def clear(self) -> None:
        self._ids.clear()
        self._save()


def visible_notifications(
    notifications: Sequence[Notification],
    dismissed: DismissedNotifications | Iterable[str],
) -> list[Notification]:
    hidden = dismissed if isinstance(dismissed, DismissedNotifications) else set(dismissed)
    return [notification for notification in notifications if notification.id not in hidden]
