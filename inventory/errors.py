from __future__ import annotations

from typing import Any, Mapping

from fastapi import Request
from fastapi.responses import JSONResponse


class ApiError(Exception):
    def __init__(
        self,
        status_code: int,
        code: str,
        message: str,
        *,
        details: list[dict[str, str]] | None = None,
        headers: Mapping[str, str] | None = None,
        extra: Mapping[str, Any] | None = None,
    ):
        super().__init__(message)
        self.status_code = status_code
        self.code = code
        self.message = message
        self.details = details
        self.headers = dict(headers or {})
        self.extra = dict(extra or {})


class AuthenticationRequired(ApiError):
    def __init__(self, message: str = "Authentication required."):
        super().__init__(401, "AUTHENTICATION_REQUIRED", message)


class InvalidSession(ApiError):
    def __init__(self, message: str = "Session is invalid or expired."):
        super().__init__(401, "INVALID_SESSION", message)


class ValidationFailed(ApiError):
    def __init__(self, details: list[dict[str, str]], message: str = "Invalid input data."):
        super().__init__(400, "VALIDATION_ERROR", message, details=details)


class RateLimited(ApiError):
    def __init__(self, message: str, *, headers: Mapping[str, str] | None = None):
        super().__init__(429, "RATE_LIMITED", message, headers=headers)


class MethodNotAllowed(ApiError):
    def __init__(self, allowed: list[str]):
        super().__init__(
            405,
            "METHOD_NOT_ALLOWED",
            "Method not allowed.",
            headers={"Allow": ", ".join(allowed)} if allowed else None,
            extra={"allowed": allowed},
        )


class UnsupportedContentType(ApiError):
    def __init__(self, required: str = "application/json"):
        super().__init__(
            415,
            "UNSUPPORTED_CONTENT_TYPE",
            "Unsupported Content-Type.",
            extra={"required": required},
        )


class InternalError(ApiError):
    def __init__(self, message: str = "Internal server error."):
        super().__init__(500, "INTERNAL_ERROR", message)


def get_request_id(request: Request) -> str:
    request_id = getattr(request.state, "request_id", None)
    if request_id:
        return str(request_id)
    return "unknown"


def error_response(
    request: Request,
    *,
    status_code: int,
    code: str,
    message: str,
    details: list[dict[str, str]] | None = None,
    headers: Mapping[str, str] | None = None,
    extra: Mapping[str, Any] | None = None,
) -> JSONResponse:
    payload: dict[str, Any] = {"error": message, "code": code}
    if details is not None:
        payload["details"] = details
    if extra:
        payload.update(extra)
    response_headers = dict(headers or {})
    response_headers.setdefault("X-Request-Id", get_request_id(request))
    return JSONResponse(status_code=status_code, content=payload, headers=response_headers)
