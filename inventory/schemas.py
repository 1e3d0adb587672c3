from datetime import date, datetime
from typing import Literal

from pydantic import BaseModel, ConfigDict, EmailStr, Field, StrictBool, field_validator

from inventory.models import PcEventType, PcStatus, UserRole


def _blank_to_none(value: object) -> object:
    if isinstance(value, str) and not value.strip():
        return None
    return value


class ErrorDetail(BaseModel):
    field: str
    message: str


class ErrorResponse(BaseModel):
    error: str
    code: str | None = None
    details: list[ErrorDetail] | None = None


class EmployeeCreate(BaseModel):
    name: str = Field(min_length=1, max_length=255)
    email: EmailStr
    department: str = Field(min_length=1, max_length=255)
    position: str | None = Field(default=None, max_length=255)


class EmployeeUpdate(BaseModel):
    name: str | None = Field(default=None, min_length=1, max_length=255)
    email: EmailStr | None = None
    department: str | None = Field(default=None, min_length=1, max_length=255)
    position: str | None = Field(default=None, max_length=255)


class EmployeeRead(BaseModel):
    id: str
    name: str
    email: str
    department: str
    position: str | None = None
    created_at: datetime | None = None

    model_config = ConfigDict(from_attributes=True)


class EmployeeSummary(BaseModel):
    id: str
    name: str
    email: str

    model_config = ConfigDict(from_attributes=True)


class PcCreate(BaseModel):
    pc_id: str | None = Field(default=None, max_length=50)
    employee_id: str | None = None
    brand: str = Field(min_length=1, max_length=100)
    model: str = Field(min_length=1, max_length=100)
    cpu: str = Field(min_length=1, max_length=100)
    ram: int = Field(gt=0)
    storage: str = Field(min_length=1, max_length=100)
    operating_system: str = Field(min_length=1, max_length=100)
    serial_number: str = Field(min_length=1, max_length=100)
    purchase_date: date
    warranty_expiry: date
    status: PcStatus = PcStatus.ACTIVE
    notes: str | None = None

    @field_validator("pc_id", "employee_id", mode="before")
    @classmethod
    def _empty_strings_are_missing(cls, value: object) -> object:
        return _blank_to_none(value)


class PcUpdate(BaseModel):
    pc_id: str | None = Field(default=None, min_length=1, max_length=50)
    employee_id: str | None = None
    brand: str | None = Field(default=None, min_length=1, max_length=100)
    model: str | None = Field(default=None, min_length=1, max_length=100)
    cpu: str | None = Field(default=None, min_length=1, max_length=100)
    ram: int | None = Field(default=None, gt=0)
    storage: str | None = Field(default=None, min_length=1, max_length=100)
    operating_system: str | None = Field(default=None, min_length=1, max_length=100)
    serial_number: str | None = Field(default=None, min_length=1, max_length=100)
    purchase_date: date | None = None
    warranty_expiry: date | None = None
    status: PcStatus | None = None
    notes: str | None = None

    @field_validator("employee_id", mode="before")
    @classmethod
    def _empty_employee_means_unassign(cls, value: object) -> object:
        return _blank_to_none(value)


class PcRead(BaseModel):
    id: str
    pc_id: str
    employee_id: str | None = None
    brand: str
    model: str
    cpu: str
    ram: int
    storage: str
    operating_system: str
    serial_number: str
    purchase_date: date
    warranty_expiry: date
    status: PcStatus
    notes: str | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None

    model_config = ConfigDict(from_attributes=True)


class PcWithEmployeeRead(PcRead):
    employee: EmployeeSummary | None = None


class PcScanRead(PcWithEmployeeRead):
    scan_timestamp: datetime


class PcHistoryRead(BaseModel):
    id: str
    pc_id: str | None = None
    serial_number: str
    event_type: PcEventType
    event_description: str
    old_value: str | None = None
    new_value: str | None = None
    performed_by: str | None = None
    performed_by_name: str | None = None
    related_employee_id: str | None = None
    related_employee_name: str | None = None
    notes: str | None = None
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)


class SessionUser(BaseModel):
    id: str
    username: str
    email: str
    role: UserRole


class UserRead(BaseModel):
    id: str
    username: str
    email: str
    first_name: str
    last_name: str
    role: UserRole
    is_active: bool
    two_factor_enabled: bool = False
    last_login: datetime | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None


class UserCreateRequest(BaseModel):
    username: str = Field(min_length=3, max_length=100)
    email: EmailStr
    password: str = Field(min_length=6, max_length=128)
    first_name: str = Field(min_length=1, max_length=100)
    last_name: str = Field(min_length=1, max_length=100)
    role: UserRole = UserRole.USER
    is_active: bool = True


class UserStatusUpdateRequest(BaseModel):
    is_active: StrictBool


class PasswordSetRequest(BaseModel):
    password: str = Field(min_length=6, max_length=128)


class ProfileUpdateRequest(BaseModel):
    first_name: str = Field(min_length=1, max_length=100)
    last_name: str = Field(min_length=1, max_length=100)
    email: EmailStr


class LoginRequest(BaseModel):
    email: EmailStr
    password: str = Field(min_length=1)


class LoginResponse(BaseModel):
    message: str
    session_id: str
    expires_at: datetime
    user: UserRead


class MessageResponse(BaseModel):
    message: str


class DashboardStats(BaseModel):
    total_pcs: int
    active_pcs: int
    maintenance_pcs: int
    retired_pcs: int
    assigned_pcs: int
    available_pcs: int
    expiring_warranties: int
    total_employees: int


class HealthResponse(BaseModel):
    status: Literal["ok"]
    environment: str
    timestamp: datetime
    schema_guard: dict[str, object] | None = None
