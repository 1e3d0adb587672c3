from __future__ import annotations

from collections.abc import Collection, Mapping, Sequence
from datetime import datetime, timezone
from typing import Any

EVENT_LABELS: dict[str, str] = {
    "created": "Added to inventory",
    "assigned": "Assigned",
    "unassigned": "Unassigned",
    "maintenance": "Maintenance",
    "status_change": "Status change",
    "specs_update": "Specifications updated",
    "notes_update": "Notes updated",
}


def event_label(event_type: str) -> str:
    return EVENT_LABELS.get(event_type, event_type.replace("_", " ").capitalize())


def _timestamp(entry: Mapping[str, Any]) -> datetime:
    value = entry.get("created_at")
    if isinstance(value, datetime):
        parsed = value
    elif value:
        parsed = datetime.fromisoformat(str(value).replace("Z", "+00:00"))
    else:
        return datetime.min.replace(tzinfo=timezone.utc)
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def history_timeline(
    entries: Sequence[Mapping[str, Any]],
    event_types: Collection[str] | None = None,
) -> list[dict[str, Any]]:
    """Newest first, optionally narrowed to ``event_types``; each item gains a ``label``."""
    selected = [entry for entry in entries if not event_types or entry.get("event_type") in event_types]
    selected.sort(key=_timestamp, reverse=True)
    return [{**entry, "label": event_label(str(entry.get("event_type")))} for entry in selected]
