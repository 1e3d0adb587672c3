from __future__ import annotations

from datetime import datetime, timedelta
from typing import Protocol

from sqlalchemy import delete, func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session, selectinload

from inventory.history import change_events, creation_events, snapshot_pc
from inventory.models import Employee, Pc, PcHistory, User, UserSession, new_id
from inventory.schemas import (
    EmployeeCreate,
    EmployeeUpdate,
    PcCreate,
    PcUpdate,
    SessionUser,
    UserCreateRequest,
)
from inventory.security import as_utc, hash_password, new_session_token, utcnow, verify_password
from inventory.settings import get_settings


class ConflictError(Exception):
    """Raised when a write would violate a uniqueness constraint."""

    def __init__(self, field: str, message: str | None = None):
        super().__init__(message or f"{field} already exists")
        self.field = field
        self.message = message or f"{field} already exists"


def generate_asset_tag(serial_number: str) -> str:
    return f"PC-{serial_number[-6:].upper()}"


class Storage(Protocol):
    """Capabilities the API layer needs from the backing store."""

    def validate_session(self, token: str, now: datetime | None = None) -> User | None: ...

    def create_session(self, user_id: str) -> UserSession: ...

    def delete_session(self, token: str) -> bool: ...

    def validate_password(self, email: str, password: str) -> User | None: ...

    def get_user(self, user_id: str) -> User | None: ...

    def get_user_by_email(self, email: str) -> User | None: ...

    def list_users(self) -> list[User]: ...

    def create_user(self, payload: UserCreateRequest) -> User: ...

    def update_user(self, user_id: str, **fields: object) -> User | None: ...

    def set_password(self, user_id: str, password: str) -> User | None: ...

    def delete_user(self, user_id: str) -> bool: ...

    def list_employees(self) -> list[Employee]: ...

    def count_employees(self) -> int: ...

    def get_employee(self, employee_id: str) -> Employee | None: ...

    def create_employee(self, payload: EmployeeCreate) -> Employee: ...

    def update_employee(self, employee_id: str, payload: EmployeeUpdate) -> Employee | None: ...

    def delete_employee(self, employee_id: str, actor: SessionUser | None = None) -> bool: ...

    def list_pcs(self) -> list[tuple[Pc, Employee | None]]: ...

    def get_pc(self, pc_uuid: str) -> Pc | None: ...

    def get_pc_by_pc_id(self, pc_id: str) -> Pc | None: ...

    def create_pc(self, payload: PcCreate, actor: SessionUser | None = None) -> Pc: ...

    def update_pc(self, pc_uuid: str, payload: PcUpdate, actor: SessionUser | None = None) -> Pc | None: ...

    def delete_pc(self, pc_uuid: str) -> bool: ...

    def get_pc_history(self, pc_uuid: str) -> list[PcHistory]: ...

    def get_pc_history_by_serial(self, serial_prefix: str) -> list[PcHistory]: ...

    def list_pc_history(self) -> list[PcHistory]: ...


def _escape_like(value: str) -> str:
    return value.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")


def _conflict_field(exc: IntegrityError, candidates: tuple[str, ...]) -> str:
    message = str(exc.orig).lower()
    for field in candidates:
        if field in message:
            return field
    return candidates[0]


class DatabaseStorage:
    def __init__(self, db: Session):
        self.db = db

    def _commit(self, *candidates: str) -> None:
        try:
            self.db.commit()
        except IntegrityError as exc:
            self.db.rollback()
            raise ConflictError(_conflict_field(exc, candidates)) from exc

    # Sessions

    def validate_session(self, token: str, now: datetime | None = None) -> User | None:
        session_row = self.db.get(UserSession, token)
        if session_row is None:
            return None
        if as_utc(session_row.expires_at) < (now or utcnow()):
            return None
        return self.db.get(User, session_row.user_id)

    def create_session(self, user_id: str) -> UserSession:
        now = utcnow()
        self.db.execute(delete(UserSession).where(UserSession.expires_at < now))
        session_row = UserSession(
            id=new_session_token(),
            user_id=user_id,
            expires_at=now + timedelta(days=get_settings().session_ttl_days),
            created_at=now,
        )
        self.db.add(session_row)
        self.db.commit()
        return session_row

    def delete_session(self, token: str) -> bool:
        result = self.db.execute(delete(UserSession).where(UserSession.id == token))
        self.db.commit()
        return bool(result.rowcount)

    # Users

    def validate_password(self, email: str, password: str) -> User | None:
        user = self.get_user_by_email(email)
        if user is None or not verify_password(password, user.password_hash):
            return None
        user.last_login = utcnow()
        self.db.commit()
        return user

    def get_user(self, user_id: str) -> User | None:
        return self.db.get(User, user_id)

    def get_user_by_email(self, email: str) -> User | None:
        return self.db.scalar(select(User).where(func.lower(User.email) == email.strip().lower()))

    def list_users(self) -> list[User]:
        return list(self.db.scalars(select(User).order_by(User.username)).all())

    def create_user(self, payload: UserCreateRequest) -> User:
        user = User(
            id=new_id(),
            username=payload.username.strip(),
            email=str(payload.email).lower(),
            password_hash=hash_password(payload.password),
            first_name=payload.first_name,
            last_name=payload.last_name,
            role=payload.role,
            is_active=payload.is_active,
        )
        self.db.add(user)
        self._commit("username", "email")
        return user

    def update_user(self, user_id: str, **fields: object) -> User | None:
        user = self.db.get(User, user_id)
        if user is None:
            return None
        for key, value in fields.items():
            setattr(user, key, value)
        self._commit("email", "username")
        return user

    def set_password(self, user_id: str, password: str) -> User | None:
        user = self.db.get(User, user_id)
        if user is None:
            return None
        user.password_hash = hash_password(password)
        user.updated_at = utcnow()
        self.db.commit()
        return user

    def delete_user(self, user_id: str) -> bool:
        user = self.db.get(User, user_id)
        if user is None:
            return False
        self.db.delete(user)
        self.db.commit()
        return True

    # Employees

    def list_employees(self) -> list[Employee]:
        return list(self.db.scalars(select(Employee).order_by(Employee.name)).all())

    def count_employees(self) -> int:
        return int(self.db.scalar(select(func.count()).select_from(Employee)) or 0)

    def get_employee(self, employee_id: str) -> Employee | None:
        return self.db.get(Employee, employee_id)

    def create_employee(self, payload: EmployeeCreate) -> Employee:
        employee = Employee(
            id=new_id(),
            name=payload.name.strip(),
            email=str(payload.email).lower(),
            department=payload.department.strip(),
            position=payload.position,
            created_at=utcnow(),
        )
        self.db.add(employee)
        self._commit("email")
        return employee

    def update_employee(self, employee_id: str, payload: EmployeeUpdate) -> Employee | None:
        employee = self.db.get(Employee, employee_id)
        if employee is None:
            return None
        for key, value in payload.model_dump(exclude_unset=True).items():
            if key == "email" and value is not None:
                value = str(value).lower()
            if value is None and key != "position":
                continue
            setattr(employee, key, value)
        self._commit("email")
        return employee

    def delete_employee(self, employee_id: str, actor: SessionUser | None = None) -> bool:
        employee = self.db.get(Employee, employee_id)
        if employee is None:
            return False
        assigned = self.db.scalars(select(Pc).where(Pc.employee_id == employee_id)).all()
        for pc in assigned:
            before = snapshot_pc(pc)
            pc.employee_id = None
            pc.updated_at = utcnow()
            self.db.add_all(change_events(before, pc, actor=actor, old_employee=employee))
        self.db.flush()
        self.db.delete(employee)
        self.db.commit()
        return True

    # PCs

    def list_pcs(self) -> list[tuple[Pc, Employee | None]]:
        rows = self.db.scalars(select(Pc).options(selectinload(Pc.employee)).order_by(Pc.pc_id)).all()
        return [(pc, pc.employee) for pc in rows]

    def get_pc(self, pc_uuid: str) -> Pc | None:
        return self.db.get(Pc, pc_uuid)

    def get_pc_by_pc_id(self, pc_id: str) -> Pc | None:
        return self.db.scalar(select(Pc).where(Pc.pc_id == pc_id))

    def create_pc(self, payload: PcCreate, actor: SessionUser | None = None) -> Pc:
        now = utcnow()
        pc = Pc(
            id=new_id(),
            pc_id=payload.pc_id or generate_asset_tag(payload.serial_number),
            employee_id=payload.employee_id,
            brand=payload.brand,
            model=payload.model,
            cpu=payload.cpu,
            ram=payload.ram,
            storage=payload.storage,
            operating_system=payload.operating_system,
            serial_number=payload.serial_number,
            purchase_date=payload.purchase_date,
            warranty_expiry=payload.warranty_expiry,
            status=payload.status,
            notes=payload.notes,
            created_at=now,
            updated_at=now,
        )
        employee = self.db.get(Employee, payload.employee_id) if payload.employee_id else None
        self.db.add(pc)
        self.db.add_all(creation_events(pc, actor=actor, employee=employee))
        self._commit("pc_id", "serial_number")
        return pc

    def update_pc(self, pc_uuid: str, payload: PcUpdate, actor: SessionUser | None = None) -> Pc | None:
        pc = self.db.get(Pc, pc_uuid)
        if pc is None:
            return None
        before = snapshot_pc(pc)
        changes = payload.model_dump(exclude_unset=True)
        for key, value in changes.items():
            if value is None and key not in {"employee_id", "notes"}:
                continue
            setattr(pc, key, value)
        pc.updated_at = utcnow()

        old_employee = self.db.get(Employee, before["employee_id"]) if before["employee_id"] else None
        new_employee = self.db.get(Employee, pc.employee_id) if pc.employee_id else None
        self.db.add_all(
            change_events(
                before,
                pc,
                actor=actor,
                old_employee=old_employee,
                new_employee=new_employee,
            )
        )
        self._commit("pc_id", "serial_number")
        return pc

    def delete_pc(self, pc_uuid: str) -> bool:
        pc = self.db.get(Pc, pc_uuid)
        if pc is None:
            return False
        self.db.delete(pc)
        self.db.commit()
        return True

    # History

    def get_pc_history(self, pc_uuid: str) -> list[PcHistory]:
        stmt = select(PcHistory).where(PcHistory.pc_id == pc_uuid).order_by(PcHistory.created_at.desc())
        return list(self.db.scalars(stmt).all())

    def get_pc_history_by_serial(self, serial_prefix: str) -> list[PcHistory]:
        stmt = (
            select(PcHistory)
            .where(PcHistory.serial_number.like(f"{_escape_like(serial_prefix)}%", escape="\\"))
            .order_by(PcHistory.created_at.desc())
        )
        return list(self.db.scalars(stmt).all())

    def list_pc_history(self) -> list[PcHistory]:
        return list(self.db.scalars(select(PcHistory).order_by(PcHistory.created_at.desc())).all())
