from fastapi import APIRouter, Depends, HTTPException, status

from inventory.deps import get_storage, require_session
from inventory.errors import ApiError
from inventory.schemas import EmployeeCreate, EmployeeRead, EmployeeUpdate, SessionUser
from inventory.storage import ConflictError, Storage
from inventory.validation import require_json_content_type

router = APIRouter(tags=["employees"])


def _duplicate_email(exc: ConflictError) -> ApiError:
    return ApiError(
        status_code=409,
        code="DUPLICATE_VALUE",
        message="An employee with this email already exists.",
        details=[{"field": exc.field, "message": exc.message}],
    )


@router.get("/api/employees", response_model=list[EmployeeRead])
def list_employees(
    _user: SessionUser = Depends(require_session),
    storage: Storage = Depends(get_storage),
) -> list[EmployeeRead]:
    return [EmployeeRead.model_validate(employee) for employee in storage.list_employees()]


@router.get("/api/employees/{employee_id}", response_model=EmployeeRead)
def get_employee(
    employee_id: str,
    _user: SessionUser = Depends(require_session),
    storage: Storage = Depends(get_storage),
) -> EmployeeRead:
    employee = storage.get_employee(employee_id)
    if employee is None:
        raise HTTPException(status_code=404, detail="Employee not found")
    return EmployeeRead.model_validate(employee)


@router.post(
    "/api/employees",
    response_model=EmployeeRead,
    status_code=status.HTTP_201_CREATED,
    dependencies=[Depends(require_json_content_type)],
)
def create_employee(
    payload: EmployeeCreate,
    _user: SessionUser = Depends(require_session),
    storage: Storage = Depends(get_storage),
) -> EmployeeRead:
    try:
        employee = storage.create_employee(payload)
    except ConflictError as exc:
        raise _duplicate_email(exc) from exc
    return EmployeeRead.model_validate(employee)


@router.put(
    "/api/employees/{employee_id}",
    response_model=EmployeeRead,
    dependencies=[Depends(require_json_content_type)],
)
def update_employee(
    employee_id: str,
    payload: EmployeeUpdate,
    _user: SessionUser = Depends(require_session),
    storage: Storage = Depends(get_storage),
) -> EmployeeRead:
    try:
        employee = storage.update_employee(employee_id, payload)
    except ConflictError as exc:
        raise _duplicate_email(exc) from exc
    if employee is None:
        raise HTTPException(status_code=404, detail="Employee not found")
    return EmployeeRead.model_validate(employee)


@router.delete("/api/employees/{employee_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_employee(
    employee_id: str,
    user: SessionUser = Depends(require_session),
    storage: Storage = Depends(get_storage),
) -> None:
    if not storage.delete_employee(employee_id, actor=user):
        raise HTTPException(status_code=404, detail="Employee not found")
