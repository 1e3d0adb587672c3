from __future__ import annotations

import threading
from datetime import datetime, timedelta

from inventory.history import change_events, creation_events, snapshot_pc
from inventory.models import Employee, Pc, PcHistory, PcStatus, User, UserRole, UserSession, new_id
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
from inventory.storage import ConflictError, generate_asset_tag


class MemoryStorage:
    """Process-local ``Storage`` used by the API tests and local demos.

    Rows are detached ORM instances, so every default (ids, timestamps,
    status) is filled in here instead of at flush time.
    """

    def __init__(self) -> None:
        self._lock = threading.RLock()
        self.users: dict[str, User] = {}
        self.sessions: dict[str, UserSession] = {}
        self.employees: dict[str, Employee] = {}
        self.pcs: dict[str, Pc] = {}
        self.history: list[PcHistory] = []

    # Sessions

    def validate_session(self, token: str, now: datetime | None = None) -> User | None:
        session_row = self.sessions.get(token)
        if session_row is None:
            return None
        if as_utc(session_row.expires_at) < (now or utcnow()):
            return None
        return self.users.get(session_row.user_id)

    def create_session(self, user_id: str) -> UserSession:
        now = utcnow()
        with self._lock:
            for token in [key for key, row in self.sessions.items() if as_utc(row.expires_at) < now]:
                del self.sessions[token]
            session_row = UserSession(
                id=new_session_token(),
                user_id=user_id,
                expires_at=now + timedelta(days=get_settings().session_ttl_days),
                created_at=now,
            )
            self.sessions[session_row.id] = session_row
        return session_row

    def delete_session(self, token: str) -> bool:
        with self._lock:
            return self.sessions.pop(token, None) is not None

    # Users

    def validate_password(self, email: str, password: str) -> User | None:
        user = self.get_user_by_email(email)
        if user is None or not verify_password(password, user.password_hash):
            return None
        user.last_login = utcnow()
        return user

    def get_user(self, user_id: str) -> User | None:
        return self.users.get(user_id)

    def get_user_by_email(self, email: str) -> User | None:
        needle = email.strip().lower()
        for user in self.users.values():
            if user.email.lower() == needle:
                return user
        return None

    def list_users(self) -> list[User]:
        return sorted(self.users.values(), key=lambda user: user.username)

    def _check_user_unique(self, *, username: str | None, email: str | None, exclude_id: str | None = None) -> None:
        for user in self.users.values():
            if user.id == exclude_id:
                continue
            if username is not None and user.username == username:
                raise ConflictError("username")
            if email is not None and user.email.lower() == email.lower():
                raise ConflictError("email")

    def create_user(self, payload: UserCreateRequest) -> User:
        now = utcnow()
        username = payload.username.strip()
        email = str(payload.email).lower()
        with self._lock:
            self._check_user_unique(username=username, email=email)
            user = User(
                id=new_id(),
                username=username,
                email=email,
                password_hash=hash_password(payload.password),
                first_name=payload.first_name,
                last_name=payload.last_name,
                role=payload.role,
                is_active=payload.is_active,
                last_login=None,
                two_factor_secret=None,
                two_factor_enabled=False,
                backup_codes=None,
                created_at=now,
                updated_at=now,
            )
            self.users[user.id] = user
        return user

    def add_user(
        self,
        *,
        username: str,
        email: str,
        password: str,
        role: UserRole = UserRole.USER,
        is_active: bool = True,
    ) -> User:
        """Shortcut for fixtures that need a user without building a request model."""
        return self.create_user(
            UserCreateRequest(
                username=username,
                email=email,
                password=password,
                first_name=username.title(),
                last_name="Tester",
                role=role,
                is_active=is_active,
            )
        )

    def update_user(self, user_id: str, **fields: object) -> User | None:
        with self._lock:
            user = self.users.get(user_id)
            if user is None:
                return None
            self._check_user_unique(
                username=fields.get("username"),  # type: ignore[arg-type]
                email=fields.get("email"),  # type: ignore[arg-type]
                exclude_id=user_id,
            )
            for key, value in fields.items():
                setattr(user, key, value)
            user.updated_at = utcnow()
        return user

    def set_password(self, user_id: str, password: str) -> User | None:
        password_hash = hash_password(password)
        with self._lock:
            user = self.users.get(user_id)
            if user is None:
                return None
            user.password_hash = password_hash
            user.updated_at = utcnow()
        return user

    def delete_user(self, user_id: str) -> bool:
        with self._lock:
            if self.users.pop(user_id, None) is None:
                return False
            for token in [key for key, row in self.sessions.items() if row.user_id == user_id]:
                del self.sessions[token]
            for entry in self.history:
                if entry.performed_by == user_id:
                    entry.performed_by = None
        return True

    # Employees

    def list_employees(self) -> list[Employee]:
        return sorted(self.employees.values(), key=lambda employee: employee.name)

    def count_employees(self) -> int:
        return len(self.employees)

    def get_employee(self, employee_id: str) -> Employee | None:
        return self.employees.get(employee_id)

    def _check_employee_email(self, email: str, exclude_id: str | None = None) -> None:
        for employee in self.employees.values():
            if employee.id != exclude_id and employee.email.lower() == email.lower():
                raise ConflictError("email")

    def create_employee(self, payload: EmployeeCreate) -> Employee:
        email = str(payload.email).lower()
        with self._lock:
            self._check_employee_email(email)
            employee = Employee(
                id=new_id(),
                name=payload.name.strip(),
                email=email,
                department=payload.department.strip(),
                position=payload.position,
                created_at=utcnow(),
            )
            self.employees[employee.id] = employee
        return employee

    def update_employee(self, employee_id: str, payload: EmployeeUpdate) -> Employee | None:
        with self._lock:
            employee = self.employees.get(employee_id)
            if employee is None:
                return None
            changes = payload.model_dump(exclude_unset=True)
            if changes.get("email") is not None:
                changes["email"] = str(changes["email"]).lower()
                self._check_employee_email(changes["email"], exclude_id=employee_id)
            for key, value in changes.items():
                if value is None and key != "position":
                    continue
                setattr(employee, key, value)
        return employee

    def delete_employee(self, employee_id: str, actor: SessionUser | None = None) -> bool:
        with self._lock:
            employee = self.employees.get(employee_id)
            if employee is None:
                return False
            for pc in self.pcs.values():
                if pc.employee_id != employee_id:
                    continue
                before = snapshot_pc(pc)
                pc.employee_id = None
                pc.updated_at = utcnow()
                self.history.extend(change_events(before, pc, actor=actor, old_employee=employee))
            for entry in self.history:
                if entry.related_employee_id == employee_id:
                    entry.related_employee_id = None
            del self.employees[employee_id]
        return True

    # PCs

    def list_pcs(self) -> list[tuple[Pc, Employee | None]]:
        rows = sorted(self.pcs.values(), key=lambda pc: pc.pc_id)
        return [(pc, self.employees.get(pc.employee_id) if pc.employee_id else None) for pc in rows]

    def get_pc(self, pc_uuid: str) -> Pc | None:
        return self.pcs.get(pc_uuid)

    def get_pc_by_pc_id(self, pc_id: str) -> Pc | None:
        for pc in self.pcs.values():
            if pc.pc_id == pc_id:
                return pc
        return None

    def _check_pc_unique(self, *, pc_id: str | None, serial_number: str | None, exclude_id: str | None = None) -> None:
        for pc in self.pcs.values():
            if pc.id == exclude_id:
                continue
            if pc_id is not None and pc.pc_id == pc_id:
                raise ConflictError("pc_id")
            if serial_number is not None and pc.serial_number == serial_number:
                raise ConflictError("serial_number")

    def create_pc(self, payload: PcCreate, actor: SessionUser | None = None) -> Pc:
        now = utcnow()
        pc_id = payload.pc_id or generate_asset_tag(payload.serial_number)
        with self._lock:
            self._check_pc_unique(pc_id=pc_id, serial_number=payload.serial_number)
            pc = Pc(
                id=new_id(),
                pc_id=pc_id,
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
                status=payload.status or PcStatus.ACTIVE,
                notes=payload.notes,
                created_at=now,
                updated_at=now,
            )
            employee = self.employees.get(payload.employee_id) if payload.employee_id else None
            self.pcs[pc.id] = pc
            self.history.extend(creation_events(pc, actor=actor, employee=employee))
        return pc

    def update_pc(self, pc_uuid: str, payload: PcUpdate, actor: SessionUser | None = None) -> Pc | None:
        with self._lock:
            pc = self.pcs.get(pc_uuid)
            if pc is None:
                return None
            changes = payload.model_dump(exclude_unset=True)
            self._check_pc_unique(
                pc_id=changes.get("pc_id"),
                serial_number=changes.get("serial_number"),
                exclude_id=pc_uuid,
            )
            before = snapshot_pc(pc)
            for key, value in changes.items():
                if value is None and key not in {"employee_id", "notes"}:
                    continue
                setattr(pc, key, value)
            pc.updated_at = utcnow()
            old_employee = self.employees.get(before["employee_id"]) if before["employee_id"] else None
            new_employee = self.employees.get(pc.employee_id) if pc.employee_id else None
            self.history.extend(
                change_events(
                    before,
                    pc,
                    actor=actor,
                    old_employee=old_employee,
                    new_employee=new_employee,
                )
            )
        return pc

    def delete_pc(self, pc_uuid: str) -> bool:
        with self._lock:
            if self.pcs.pop(pc_uuid, None) is None:
                return False
            for entry in self.history:
                if entry.pc_id == pc_uuid:
                    entry.pc_id = None
        return True

    # History

    @staticmethod
    def _newest_first(entries: list[PcHistory]) -> list[PcHistory]:
        # Insertion order breaks ties between entries written in the same instant.
        ordered = sorted(enumerate(entries), key=lambda pair: (as_utc(pair[1].created_at), pair[0]), reverse=True)
        return [entry for _index, entry in ordered]

    def get_pc_history(self, pc_uuid: str) -> list[PcHistory]:
        return self._newest_first([entry for entry in self.history if entry.pc_id == pc_uuid])

    def get_pc_history_by_serial(self, serial_prefix: str) -> list[PcHistory]:
        return self._newest_first([entry for entry in self.history if entry.serial_number.startswith(serial_prefix)])

    def list_pc_history(self) -> list[PcHistory]:
        return self._newest_first(list(self.history))
