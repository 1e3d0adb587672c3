from __future__ import annotations

import logging
import secrets
from collections.abc import Mapping
from datetime import datetime, timezone
from typing import TYPE_CHECKING, Any

from fastapi import Request
from passlib.context import CryptContext
from passlib.exc import UnknownHashError
from pydantic import BaseModel

from inventory.errors import AuthenticationRequired, InternalError, InvalidSession
from inventory.models import User, model_to_dict
from inventory.schemas import SessionUser
from inventory.settings import get_settings

if TYPE_CHECKING:
    from inventory.storage import Storage

logger = logging.getLogger("inventory.auth")

pwd_context = CryptContext(schemes=["bcrypt"], deprecated="auto")

SENSITIVE_USER_FIELDS: frozenset[str] = frozenset(
    {
        "password_hash",
        "passwordHash",
        "two_factor_secret",
        "twoFactorSecret",
        "backup_codes",
        "backupCodes",
    }
)


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def as_utc(value: datetime) -> datetime:
    # SQLite hands back naive datetimes even for timezone-aware columns.
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def hash_password(password: str) -> str:
    return pwd_context.hash(password)


def verify_password(password: str, password_hash: str) -> bool:
    try:
        return pwd_context.verify(password, password_hash)
    except (ValueError, TypeError, UnknownHashError):
        # Invalid/legacy hash values should not crash auth flow.
        return False


def new_session_token() -> str:
    return secrets.token_urlsafe(32)


def sanitize_user(user: Any) -> dict[str, Any] | None:
    """Return a shallow copy of ``user`` without credential material.

    Accepts a mapping, a ``User`` row or a pydantic model. The input is never
    mutated and sanitizing an already sanitized mapping returns an equal copy.
    """
    if user is None:
        return None
    if isinstance(user, Mapping):
        source: Mapping[str, Any] = user
    elif isinstance(user, User):
        source = model_to_dict(user)
    elif isinstance(user, BaseModel):
        source = user.model_dump()
    else:
        source = dict(vars(user))
    return {
        key: value
        for key, value in source.items()
        if key not in SENSITIVE_USER_FIELDS and not key.startswith("_sa_")
    }


def session_user_projection(user: User) -> SessionUser:
    return SessionUser(id=user.id, username=user.username, email=user.email, role=user.role)


def extract_session_token(request: Request, authorization: str | None) -> str | None:
    if authorization:
        scheme, _, credentials = authorization.partition(" ")
        if scheme.lower() == "bearer" and credentials.strip():
            return credentials.strip()

    attached = getattr(request.state, "session_token", None)
    if attached:
        return str(attached)

    cookie_value = request.cookies.get(get_settings().session_cookie_name)
    if cookie_value:
        return cookie_value
    return None


def authenticate_request(request: Request, storage: Storage) -> SessionUser:
    token = extract_session_token(request, request.headers.get("authorization"))
    if not token:
        raise AuthenticationRequired()

    try:
        user = storage.validate_session(token)
    except Exception as exc:
        logger.exception(
            "session_resolution_failed",
            extra={
                "request_id": getattr(request.state, "request_id", None),
                "path": request.url.path,
            },
        )
        raise InternalError() from exc

    if user is None or not user.is_active:
        logger.info(
            "invalid_session",
            extra={
                "request_id": getattr(request.state, "request_id", None),
                "path": request.url.path,
            },
        )
        raise InvalidSession()

    session_user = session_user_projection(user)
    request.state.session_token = token
    request.state.user = session_user
    request.state.actor = "user"
    request.state.actor_id = session_user.username
    return session_user
