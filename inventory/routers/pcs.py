from datetime import date, datetime, timezone

from fastapi import APIRouter, Depends, HTTPException, Request, status

from inventory.deps import client_ip, get_rate_limiters, get_storage, require_session
from inventory.errors import ApiError
from inventory.models import Employee, Pc
from inventory.rate_limit import RateLimiters
from inventory.schemas import (
    DashboardStats,
    EmployeeSummary,
    PcCreate,
    PcHistoryRead,
    PcRead,
    PcScanRead,
    PcUpdate,
    PcWithEmployeeRead,
    SessionUser,
)
from inventory.services.dashboard import compute_dashboard_stats
from inventory.storage import ConflictError, Storage
from inventory.validation import require_json_content_type

router = APIRouter(tags=["pcs"])

MAX_ASSET_TAG_LENGTH = 50


def _with_employee(pc: Pc, employee: Employee | None) -> PcWithEmployeeRead:
    return PcWithEmployeeRead(
        **PcRead.model_validate(pc).model_dump(),
        employee=EmployeeSummary.model_validate(employee) if employee is not None else None,
    )


def _duplicate_pc(exc: ConflictError) -> ApiError:
    label = "asset tag" if exc.field == "pc_id" else "serial number"
    return ApiError(
        status_code=409,
        code="DUPLICATE_VALUE",
        message=f"A PC with this {label} already exists.",
        details=[{"field": exc.field, "message": exc.message}],
    )


def _ensure_employee_exists(storage: Storage, employee_id: str | None) -> None:
    if employee_id and storage.get_employee(employee_id) is None:
        raise HTTPException(status_code=404, detail="Employee not found")


def is_safe_asset_tag(pc_id: str) -> bool:
    if not pc_id or len(pc_id) > MAX_ASSET_TAG_LENGTH:
        return False
    return ".." not in pc_id and "/" not in pc_id and "\\" not in pc_id


@router.get("/api/pcs", response_model=list[PcWithEmployeeRead])
def list_pcs(
    _user: SessionUser = Depends(require_session),
    storage: Storage = Depends(get_storage),
) -> list[PcWithEmployeeRead]:
    return [_with_employee(pc, employee) for pc, employee in storage.list_pcs()]


@router.get("/api/pcs/qr/{pc_id}", response_model=PcScanRead)
def scan_pc(
    pc_id: str,
    request: Request,
    storage: Storage = Depends(get_storage),
    limiters: RateLimiters = Depends(get_rate_limiters),
) -> PcScanRead:
    limiters.qr_scan.consume(client_ip(request))

    if not is_safe_asset_tag(pc_id):
        raise ApiError(status_code=400, code="INVALID_PC_ID", message="Invalid PC identifier.")

    pc = storage.get_pc_by_pc_id(pc_id)
    if pc is None:
        raise ApiError(
            status_code=404,
            code="NOT_FOUND",
            message="PC not found.",
            extra={"pc_id": pc_id},
        )
    employee = storage.get_employee(pc.employee_id) if pc.employee_id else None
    return PcScanRead(
        **_with_employee(pc, employee).model_dump(),
        scan_timestamp=datetime.now(timezone.utc),
    )


@router.get("/api/pcs/{pc_uuid}", response_model=PcWithEmployeeRead)
def get_pc(
    pc_uuid: str,
    _user: SessionUser = Depends(require_session),
    storage: Storage = Depends(get_storage),
) -> PcWithEmployeeRead:
    pc = storage.get_pc(pc_uuid)
    if pc is None:
        raise HTTPException(status_code=404, detail="PC not found")
    employee = storage.get_employee(pc.employee_id) if pc.employee_id else None
    return _with_employee(pc, employee)


@router.post(
    "/api/pcs",
    response_model=PcWithEmployeeRead,
    status_code=status.HTTP_201_CREATED,
    dependencies=[Depends(require_json_content_type)],
)
def create_pc(
    payload: PcCreate,
    user: SessionUser = Depends(require_session),
    storage: Storage = Depends(get_storage),
) -> PcWithEmployeeRead:
    _ensure_employee_exists(storage, payload.employee_id)
    try:
        pc = storage.create_pc(payload, actor=user)
    except ConflictError as exc:
        raise _duplicate_pc(exc) from exc
    employee = storage.get_employee(pc.employee_id) if pc.employee_id else None
    return _with_employee(pc, employee)


@router.put(
    "/api/pcs/{pc_uuid}",
    response_model=PcWithEmployeeRead,
    dependencies=[Depends(require_json_content_type)],
)
def update_pc(
    pc_uuid: str,
    payload: PcUpdate,
    user: SessionUser = Depends(require_session),
    storage: Storage = Depends(get_storage),
) -> PcWithEmployeeRead:
    if storage.get_pc(pc_uuid) is None:
        raise HTTPException(status_code=404, detail="PC not found")
    _ensure_employee_exists(storage, payload.employee_id)
    try:
        pc = storage.update_pc(pc_uuid, payload, actor=user)
    except ConflictError as exc:
        raise _duplicate_pc(exc) from exc
    if pc is None:
        raise HTTPException(status_code=404, detail="PC not found")
    employee = storage.get_employee(pc.employee_id) if pc.employee_id else None
    return _with_employee(pc, employee)


@router.delete("/api/pcs/{pc_uuid}", status_code=status.HTTP_204_NO_CONTENT)
def delete_pc(
    pc_uuid: str,
    _user: SessionUser = Depends(require_session),
    storage: Storage = Depends(get_storage),
) -> None:
    if not storage.delete_pc(pc_uuid):
        raise HTTPException(status_code=404, detail="PC not found")


@router.get("/api/pcs/{pc_uuid}/history", response_model=list[PcHistoryRead])
def pc_history(
    pc_uuid: str,
    _user: SessionUser = Depends(require_session),
    storage: Storage = Depends(get_storage),
) -> list[PcHistoryRead]:
    if storage.get_pc(pc_uuid) is None:
        raise HTTPException(status_code=404, detail="PC not found")
    return [PcHistoryRead.model_validate(entry) for entry in storage.get_pc_history(pc_uuid)]


@router.get("/api/pc-history/serial/{serial_prefix}", response_model=list[PcHistoryRead])
def pc_history_by_serial(
    serial_prefix: str,
    _user: SessionUser = Depends(require_session),
    storage: Storage = Depends(get_storage),
) -> list[PcHistoryRead]:
    return [PcHistoryRead.model_validate(entry) for entry in storage.get_pc_history_by_serial(serial_prefix)]


@router.get("/api/pc-history", response_model=list[PcHistoryRead])
def all_pc_history(
    _user: SessionUser = Depends(require_session),
    storage: Storage = Depends(get_storage),
) -> list[PcHistoryRead]:
    return [PcHistoryRead.model_validate(entry) for entry in storage.list_pc_history()]


@router.get("/api/dashboard/stats", response_model=DashboardStats)
def dashboard_stats(
    _user: SessionUser = Depends(require_session),
    storage: Storage = Depends(get_storage),
) -> DashboardStats:
    pcs = [pc for pc, _employee in storage.list_pcs()]
    return compute_dashboard_stats(pcs, storage.count_employees(), date.today())
