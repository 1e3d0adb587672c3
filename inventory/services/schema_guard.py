from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any

from sqlalchemy import inspect, text
from sqlalchemy.engine import Engine, Inspector
from sqlalchemy.exc import SQLAlchemyError

EXPECTED_ALEMBIC_REVISION = "0001_initial"

REQUIRED_TABLE_COLUMNS: dict[str, set[str]] = {
    "employees": {"id", "email", "department"},
    "pcs": {"id", "pc_id", "employee_id", "serial_number", "warranty_expiry", "status"},
    "users": {"id", "email", "password_hash", "role", "is_active"},
    "sessions": {"id", "user_id", "expires_at"},
    "pc_history": {"id", "pc_id", "serial_number", "event_type", "created_at"},
    "alembic_version": {"version_num"},
}

REQUIRED_ENUM_VALUES: dict[str, set[str]] = {
    "pc_status": {"active", "maintenance", "retired"},
    "pc_event_type": {
        "created",
        "assigned",
        "unassigned",
        "maintenance",
        "status_change",
        "specs_update",
        "notes_update",
    },
}


@dataclass(frozen=True, slots=True)
class SchemaGuardResult:
    ok: bool
    checked_at_utc: datetime
    issues: list[str] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)
    alembic_revision: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "ok": self.ok,
            "checked_at_utc": self.checked_at_utc.isoformat(),
            "alembic_revision": self.alembic_revision,
            "issues": list(self.issues),
            "warnings": list(self.warnings),
            "issue_count": len(self.issues),
            "warning_count": len(self.warnings),
        }


def _missing_columns(inspector: Inspector) -> list[str]:
    issues: list[str] = []
    for table_name, required in REQUIRED_TABLE_COLUMNS.items():
        try:
            present = {str(column.get("name")) for column in inspector.get_columns(table_name)}
        except SQLAlchemyError as exc:
            issues.append(f"TABLE_UNREADABLE:{table_name}:{exc.__class__.__name__}")
            continue
        missing = sorted(required - present)
        if missing:
            issues.append(f"MISSING_COLUMNS:{table_name}:{','.join(missing)}")
    return issues


def _enum_labels(inspector: Inspector, warnings: list[str]) -> dict[str, set[str]]:
    try:
        enums = inspector.get_enums() or []  # type: ignore[attr-defined]
    except (AttributeError, NotImplementedError) as exc:
        # Only PostgreSQL inspectors expose named enums.
        warnings.append(f"ENUM_INSPECTION_FAILED:{exc.__class__.__name__}")
        return {}
    return {
        str(item["name"]): {str(label) for label in item.get("labels") or []}
        for item in enums
        if item.get("name")
    }


def _missing_enum_values(labels_by_name: dict[str, set[str]], warnings: list[str]) -> list[str]:
    issues: list[str] = []
    for enum_name, required in REQUIRED_ENUM_VALUES.items():
        labels = labels_by_name.get(enum_name)
        if labels is None:
            warnings.append(f"ENUM_NOT_FOUND:{enum_name}")
            continue
        missing = sorted(required - labels)
        if missing:
            issues.append(f"MISSING_ENUM_VALUES:{enum_name}:{','.join(missing)}")
    return issues


def _read_alembic_revision(engine: Engine) -> tuple[str | None, str | None]:
    """Return ``(revision, issue)``; exactly one of them is set."""
    try:
        with engine.connect() as connection:
            row = connection.execute(text("SELECT version_num FROM alembic_version LIMIT 1")).scalar()
    except SQLAlchemyError as exc:
        return None, f"ALEMBIC_VERSION_CHECK_FAILED:{exc.__class__.__name__}"
    revision = str(row).strip() if row is not None else ""
    if not revision:
        return None, "ALEMBIC_VERSION_EMPTY"
    return revision, None


def verify_runtime_schema(engine: Engine) -> SchemaGuardResult:
    """Compare the live database with what the ORM models expect.

    Issues make the result fail (and block startup in strict mode). Warnings
    cover checks the backend cannot perform, e.g. enum inspection on SQLite,
    and a migration revision newer or older than this build knows about.
    """
    checked_at_utc = datetime.now(timezone.utc)
    warnings: list[str] = []
    inspector = inspect(engine)

    issues = _missing_columns(inspector)
    issues.extend(_missing_enum_values(_enum_labels(inspector, warnings), warnings))

    revision, revision_issue = _read_alembic_revision(engine)
    if revision_issue:
        issues.append(revision_issue)
    elif revision != EXPECTED_ALEMBIC_REVISION:
        warnings.append(f"ALEMBIC_REVISION_MISMATCH:{revision}:{EXPECTED_ALEMBIC_REVISION}")

    return SchemaGuardResult(
        ok=not issues,
        checked_at_utc=checked_at_utc,
        issues=issues,
        warnings=warnings,
        alembic_revision=revision,
    )
