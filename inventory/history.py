from __future__ import annotations

import logging
from collections.abc import Mapping
from datetime import date, datetime, timezone
from typing import Any

from inventory.models import Employee, Pc, PcEventType, PcHistory, PcStatus, new_id
from inventory.schemas import SessionUser

logger = logging.getLogger("inventory.history")

HARDWARE_FIELDS: tuple[str, ...] = (
    "brand",
    "model",
    "cpu",
    "ram",
    "storage",
    "operating_system",
    "serial_number",
    "purchase_date",
    "warranty_expiry",
)

HARDWARE_FIELD_LABELS: dict[str, str] = {
    "brand": "brand",
    "model": "model",
    "cpu": "CPU",
    "ram": "RAM",
    "storage": "storage",
    "operating_system": "operating system",
    "serial_number": "serial number",
    "purchase_date": "purchase date",
    "warranty_expiry": "warranty expiry",
}


def _as_text(value: Any) -> str | None:
    if value is None:
        return None
    if isinstance(value, PcStatus):
        return value.value
    if isinstance(value, date):
        return value.isoformat()
    return str(value)


def snapshot_pc(pc: Pc) -> dict[str, Any]:
    return {
        "employee_id": pc.employee_id,
        "status": pc.status,
        "notes": pc.notes,
        **{field: getattr(pc, field) for field in HARDWARE_FIELDS},
    }


def build_history_entry(
    pc: Pc,
    *,
    event_type: PcEventType,
    description: str,
    actor: SessionUser | None = None,
    old_value: Any = None,
    new_value: Any = None,
    employee: Employee | None = None,
) -> PcHistory:
    entry = PcHistory(
        id=new_id(),
        pc_id=pc.id,
        serial_number=pc.serial_number,
        event_type=event_type,
        event_description=description,
        old_value=_as_text(old_value),
        new_value=_as_text(new_value),
        performed_by=actor.id if actor else None,
        performed_by_name=actor.username if actor else None,
        related_employee_id=employee.id if employee else None,
        related_employee_name=employee.name if employee else None,
        created_at=datetime.now(timezone.utc),
    )
    logger.info(
        "pc_history_event",
        extra={
            "pc_id": pc.id,
            "asset_tag": pc.pc_id,
            "event_type": event_type.value,
            "actor_id": actor.id if actor else None,
            "related_employee_id": employee.id if employee else None,
        },
    )
    return entry


def creation_events(
    pc: Pc,
    *,
    actor: SessionUser | None = None,
    employee: Employee | None = None,
) -> list[PcHistory]:
    events = [
        build_history_entry(
            pc,
            event_type=PcEventType.CREATED,
            description=f"PC {pc.pc_id} added to inventory",
            actor=actor,
            new_value=pc.pc_id,
        )
    ]
    if employee is not None:
        events.append(
            build_history_entry(
                pc,
                event_type=PcEventType.ASSIGNED,
                description=f"PC {pc.pc_id} assigned to {employee.name}",
                actor=actor,
                new_value=employee.name,
                employee=employee,
            )
        )
    return events


def change_events(
    before: Mapping[str, Any],
    pc: Pc,
    *,
    actor: SessionUser | None = None,
    old_employee: Employee | None = None,
    new_employee: Employee | None = None,
) -> list[PcHistory]:
    """One history row per concern that changed between ``before`` and the current ``pc``."""
    events: list[PcHistory] = []

    if before.get("employee_id") != pc.employee_id:
        if old_employee is not None:
            events.append(
                build_history_entry(
                    pc,
                    event_type=PcEventType.UNASSIGNED,
                    description=f"PC {pc.pc_id} unassigned from {old_employee.name}",
                    actor=actor,
                    old_value=old_employee.name,
                    employee=old_employee,
                )
            )
        if new_employee is not None:
            events.append(
                build_history_entry(
                    pc,
                    event_type=PcEventType.ASSIGNED,
                    description=f"PC {pc.pc_id} assigned to {new_employee.name}",
                    actor=actor,
                    old_value=old_employee.name if old_employee else None,
                    new_value=new_employee.name,
                    employee=new_employee,
                )
            )

    old_status = before.get("status")
    if old_status != pc.status:
        if pc.status == PcStatus.MAINTENANCE:
            event_type = PcEventType.MAINTENANCE
            description = f"PC {pc.pc_id} sent to maintenance"
        else:
            event_type = PcEventType.STATUS_CHANGE
            description = f"PC {pc.pc_id} status changed from {_as_text(old_status)} to {pc.status.value}"
        events.append(
            build_history_entry(
                pc,
                event_type=event_type,
                description=description,
                actor=actor,
                old_value=old_status,
                new_value=pc.status,
            )
        )

    changed_hardware = [field for field in HARDWARE_FIELDS if before.get(field) != getattr(pc, field)]
    if changed_hardware:
        labels = ", ".join(HARDWARE_FIELD_LABELS[field] for field in changed_hardware)
        events.append(
            build_history_entry(
                pc,
                event_type=PcEventType.SPECS_UPDATE,
                description=f"PC {pc.pc_id} specifications updated: {labels}",
                actor=actor,
                old_value="; ".join(f"{field}={_as_text(before.get(field))}" for field in changed_hardware),
                new_value="; ".join(f"{field}={_as_text(getattr(pc, field))}" for field in changed_hardware),
            )
        )

    if (before.get("notes") or None) != (pc.notes or None):
        events.append(
            build_history_entry(
                pc,
                event_type=PcEventType.NOTES_UPDATE,
                description=f"PC {pc.pc_id} notes updated",
                actor=actor,
                old_value=before.get("notes"),
                new_value=pc.notes,
            )
        )

    return events
