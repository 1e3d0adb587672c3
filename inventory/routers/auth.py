import logging
import time
from typing import Any

from fastapi import APIRouter, Body, Depends, Request, Response

from inventory.deps import client_ip, get_rate_limiters, get_storage, require_session
from inventory.errors import ApiError
from inventory.rate_limit import RateLimiters
from inventory.schemas import (
    LoginRequest,
    LoginResponse,
    MessageResponse,
    ProfileUpdateRequest,
    SessionUser,
    UserRead,
)
from inventory.security import sanitize_user
from inventory.settings import get_settings, is_login_limiter_bypassed
from inventory.storage import ConflictError, Storage
from inventory.validation import require_json_content_type, validate_body

router = APIRouter(tags=["auth"])
logger = logging.getLogger("inventory.auth")


def _pad_to_min_duration(started: float) -> None:
    # Failed and successful logins take at least the same wall time.
    remaining = get_settings().login_min_duration_ms / 1000 - (time.perf_counter() - started)
    if remaining > 0:
        time.sleep(remaining)


def _user_read(user: Any) -> UserRead:
    return UserRead.model_validate(sanitize_user(user))


@router.post(
    "/api/auth/login",
    response_model=LoginResponse,
    dependencies=[Depends(require_json_content_type)],
)
def login(
    request: Request,
    response: Response,
    raw_payload: Any = Body(default=None),
    storage: Storage = Depends(get_storage),
    limiters: RateLimiters = Depends(get_rate_limiters),
) -> LoginResponse:
    started = time.perf_counter()
    ip = client_ip(request)
    limiter_active = not is_login_limiter_bypassed()
    request.state.actor = "system"
    request.state.actor_id = "system"

    if limiter_active:
        limiters.login.ensure_allowed(ip)

    try:
        payload = validate_body(LoginRequest, raw_payload)
        user = storage.validate_password(str(payload.email), payload.password)
        if user is None or not user.is_active:
            logger.warning(
                "login_failed",
                extra={
                    "request_id": getattr(request.state, "request_id", None),
                    "ip": ip,
                    "reason": "INVALID_CREDENTIALS" if user is None else "USER_INACTIVE",
                },
            )
            raise ApiError(status_code=401, code="INVALID_CREDENTIALS", message="Invalid email or password.")
    except ApiError:
        if limiter_active:
            limiters.login.hit(ip)
        _pad_to_min_duration(started)
        raise

    session_row = storage.create_session(user.id)
    settings = get_settings()
    response.set_cookie(
        settings.session_cookie_name,
        session_row.id,
        max_age=settings.session_ttl_days * 24 * 60 * 60,
        httponly=True,
        samesite="lax",
        secure=settings.app_env == "production",
    )
    request.state.actor = "user"
    request.state.actor_id = user.username
    logger.info(
        "login_success",
        extra={
            "request_id": getattr(request.state, "request_id", None),
            "ip": ip,
            "user_id": user.id,
        },
    )
    _pad_to_min_duration(started)
    return LoginResponse(
        message="Login successful",
        session_id=session_row.id,
        expires_at=session_row.expires_at,
        user=_user_read(user),
    )


@router.post("/api/auth/logout", response_model=MessageResponse)
def logout(
    request: Request,
    response: Response,
    user: SessionUser = Depends(require_session),
    storage: Storage = Depends(get_storage),
) -> MessageResponse:
    storage.delete_session(request.state.session_token)
    response.delete_cookie(get_settings().session_cookie_name)
    logger.info(
        "logout",
        extra={"request_id": getattr(request.state, "request_id", None), "user_id": user.id},
    )
    return MessageResponse(message="Logout successful")


@router.get("/api/auth/me", response_model=SessionUser)
def me(user: SessionUser = Depends(require_session)) -> SessionUser:
    return user


@router.put(
    "/api/auth/profile",
    response_model=UserRead,
    dependencies=[Depends(require_json_content_type)],
)
def update_profile(
    payload: ProfileUpdateRequest,
    user: SessionUser = Depends(require_session),
    storage: Storage = Depends(get_storage),
) -> UserRead:
    try:
        updated = storage.update_user(
            user.id,
            first_name=payload.first_name.strip(),
            last_name=payload.last_name.strip(),
            email=str(payload.email).lower(),
        )
    except ConflictError as exc:
        raise ApiError(status_code=409, code="EMAIL_IN_USE", message="Email is already in use.") from exc
    if updated is None:
        raise ApiError(status_code=404, code="NOT_FOUND", message="User not found.")
    return _user_read(updated)


@router.post("/api/auth/register")
def register() -> None:
    raise ApiError(
        status_code=403,
        code="REGISTRATION_DISABLED",
        message="Registration is disabled. Contact an administrator.",
    )
