import logging

from fastapi import APIRouter, Depends, HTTPException, Request, status

from inventory.deps import get_storage, require_admin_user
from inventory.errors import ApiError
from inventory.schemas import (
    MessageResponse,
    PasswordSetRequest,
    SessionUser,
    UserCreateRequest,
    UserRead,
    UserStatusUpdateRequest,
)
from inventory.security import sanitize_user
from inventory.storage import ConflictError, Storage
from inventory.validation import require_json_content_type

router = APIRouter(tags=["users"])
logger = logging.getLogger("inventory.auth")


@router.get("/api/users", response_model=list[UserRead])
def list_users(
    _admin: SessionUser = Depends(require_admin_user),
    storage: Storage = Depends(get_storage),
) -> list[UserRead]:
    return [UserRead.model_validate(sanitize_user(user)) for user in storage.list_users()]


@router.post(
    "/api/users",
    response_model=UserRead,
    status_code=status.HTTP_201_CREATED,
    dependencies=[Depends(require_json_content_type)],
)
def create_user(
    payload: UserCreateRequest,
    request: Request,
    admin: SessionUser = Depends(require_admin_user),
    storage: Storage = Depends(get_storage),
) -> UserRead:
    try:
        user = storage.create_user(payload)
    except ConflictError as exc:
        raise ApiError(
            status_code=409,
            code="DUPLICATE_VALUE",
            message=f"A user with this {exc.field} already exists.",
            details=[{"field": exc.field, "message": exc.message}],
        ) from exc

    logger.info(
        "user_created",
        extra={
            "request_id": getattr(request.state, "request_id", None),
            "actor_id": admin.id,
            "user_id": user.id,
            "role": user.role.value,
        },
    )
    return UserRead.model_validate(sanitize_user(user))


@router.delete("/api/users/{user_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_user(
    user_id: str,
    request: Request,
    admin: SessionUser = Depends(require_admin_user),
    storage: Storage = Depends(get_storage),
) -> None:
    if user_id == admin.id:
        raise HTTPException(status_code=409, detail="You cannot delete your own account")
    if not storage.delete_user(user_id):
        raise HTTPException(status_code=404, detail="User not found")

    logger.info(
        "user_deleted",
        extra={
            "request_id": getattr(request.state, "request_id", None),
            "actor_id": admin.id,
            "user_id": user_id,
        },
    )


@router.patch(
    "/api/users/{user_id}",
    response_model=UserRead,
    dependencies=[Depends(require_json_content_type)],
)
def update_user_status(
    user_id: str,
    payload: UserStatusUpdateRequest,
    request: Request,
    admin: SessionUser = Depends(require_admin_user),
    storage: Storage = Depends(get_storage),
) -> UserRead:
    if user_id == admin.id and not payload.is_active:
        raise HTTPException(status_code=409, detail="You cannot deactivate your own account")
    user = storage.update_user(user_id, is_active=payload.is_active)
    if user is None:
        raise HTTPException(status_code=404, detail="User not found")

    logger.info(
        "user_status_changed",
        extra={
            "request_id": getattr(request.state, "request_id", None),
            "actor_id": admin.id,
            "user_id": user_id,
            "is_active": payload.is_active,
        },
    )
    return UserRead.model_validate(sanitize_user(user))


@router.post(
    "/api/users/{user_id}/set-password",
    response_model=MessageResponse,
    dependencies=[Depends(require_json_content_type)],
)
def set_user_password(
    user_id: str,
    payload: PasswordSetRequest,
    request: Request,
    admin: SessionUser = Depends(require_admin_user),
    storage: Storage = Depends(get_storage),
) -> MessageResponse:
    if storage.set_password(user_id, payload.password) is None:
        raise HTTPException(status_code=404, detail="User not found")

    logger.info(
        "user_password_set",
        extra={
            "request_id": getattr(request.state, "request_id", None),
            "actor_id": admin.id,
            "user_id": user_id,
        },
    )
    return MessageResponse(message="Password updated")
