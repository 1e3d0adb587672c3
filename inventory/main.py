import asyncio
import logging
import time
from datetime import datetime, timezone
from uuid import uuid4

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from inventory.db import engine
from inventory.deps import client_ip
from inventory.errors import ApiError, MethodNotAllowed, error_response
from inventory.logging_utils import setup_json_logging
from inventory.rate_limit import build_rate_limiters
from inventory.routers import auth, employees, pcs, users
from inventory.schemas import HealthResponse
from inventory.services.schema_guard import SchemaGuardResult, verify_runtime_schema
from inventory.settings import get_cors_origins, get_settings, is_login_limiter_bypassed
from inventory.validation import validation_details

settings = get_settings()
setup_json_logging(settings.log_level, service=settings.app_name)
logger = logging.getLogger("inventory.request")
startup_logger = logging.getLogger("inventory.startup")

HTTP_ERROR_CODES = {
    400: "BAD_REQUEST",
    401: "AUTHENTICATION_REQUIRED",
    403: "FORBIDDEN",
    404: "NOT_FOUND",
    409: "CONFLICT",
    429: "RATE_LIMITED",
}

app = FastAPI(title=settings.app_name, version="0.1.0")
app.state.rate_limiters = build_rate_limiters(settings)
app.add_middleware(
    CORSMiddleware,
    allow_origins=get_cors_origins(),
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


def _is_api_limited_path(path: str) -> bool:
    if path == settings.health_check_path:
        return False
    return path == "/api" or path.startswith("/api/")


@app.middleware("http")
async def api_rate_limit_middleware(request: Request, call_next):
    if not _is_api_limited_path(request.url.path):
        return await call_next(request)

    state = request.app.state.rate_limiters.api.hit(client_ip(request))
    if state.exceeded:
        limiter = request.app.state.rate_limiters.api
        return error_response(
            request,
            status_code=429,
            code="RATE_LIMITED",
            message=limiter.message,
            headers=state.headers(),
        )

    response = await call_next(request)
    for name, value in state.headers().items():
        response.headers.setdefault(name, value)
    return response


@app.middleware("http")
async def request_middleware(request: Request, call_next):
    request_id = request.headers.get("X-Request-Id") or str(uuid4())
    request.state.request_id = request_id
    request.state.actor = getattr(request.state, "actor", "system")
    request.state.actor_id = getattr(request.state, "actor_id", "system")

    start = time.perf_counter()
    status_code = 500
    try:
        response = await call_next(request)
        status_code = response.status_code
        response.headers["X-Request-Id"] = request_id
        return response
    finally:
        latency_ms = round((time.perf_counter() - start) * 1000, 2)
        logger.info(
            "request_complete",
            extra={
                "request_id": request_id,
                "path": request.url.path,
                "method": request.method,
                "status_code": status_code,
                "latency_ms": latency_ms,
                "actor": getattr(request.state, "actor", "system"),
                "actor_id": getattr(request.state, "actor_id", "system"),
            },
        )


@app.exception_handler(ApiError)
async def handle_api_error(request: Request, exc: ApiError) -> JSONResponse:
    return error_response(
        request,
        status_code=exc.status_code,
        code=exc.code,
        message=exc.message,
        details=exc.details,
        headers=exc.headers,
        extra=exc.extra,
    )


@app.exception_handler(StarletteHTTPException)
async def handle_http_exception(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    if exc.status_code == 405:
        allow_header = (exc.headers or {}).get("Allow", "")
        allowed = [method.strip() for method in allow_header.split(",") if method.strip()]
        return await handle_api_error(request, MethodNotAllowed(allowed))

    code = HTTP_ERROR_CODES.get(exc.status_code, "HTTP_ERROR")
    message = str(exc.detail) if exc.detail else "Request failed."
    return error_response(
        request,
        status_code=exc.status_code,
        code=code,
        message=message,
        headers=exc.headers,
    )


@app.exception_handler(RequestValidationError)
async def handle_validation_error(request: Request, exc: RequestValidationError) -> JSONResponse:
    return error_response(
        request,
        status_code=400,
        code="VALIDATION_ERROR",
        message="Invalid input data.",
        details=validation_details(exc.errors()),
    )


@app.exception_handler(Exception)
async def handle_unexpected_error(request: Request, exc: Exception) -> JSONResponse:
    logger.exception(
        "unhandled_error",
        extra={
            "request_id": getattr(request.state, "request_id", "unknown"),
            "path": request.url.path,
            "method": request.method,
        },
    )
    return error_response(
        request,
        status_code=500,
        code="INTERNAL_ERROR",
        message="Internal server error.",
    )


app.include_router(auth.router)
app.include_router(users.router)
app.include_router(employees.router)
app.include_router(pcs.router)


def _default_schema_guard_result() -> SchemaGuardResult:
    return SchemaGuardResult(
        ok=False,
        checked_at_utc=datetime.now(timezone.utc),
        issues=["SCHEMA_GUARD_NOT_RUN"],
        warnings=[],
    )


@app.on_event("startup")
async def run_schema_guard() -> None:
    result = await asyncio.to_thread(verify_runtime_schema, engine)
    app.state.schema_guard_result = result
    if result.ok:
        startup_logger.info("schema_guard_ok", extra=result.to_dict())
        return

    startup_logger.error("schema_guard_failed", extra=result.to_dict())
    if settings.schema_guard_strict:
        joined_issues = "; ".join(result.issues)
        raise RuntimeError(f"Runtime schema guard failed: {joined_issues}")


@app.on_event("startup")
async def warn_login_limiter_bypass() -> None:
    if is_login_limiter_bypassed():
        startup_logger.warning(
            "login_rate_limit_bypassed",
            extra={"app_env": settings.app_env},
        )


@app.get("/health", response_model=HealthResponse)
@app.get("/api/health", response_model=HealthResponse)
def health() -> HealthResponse:
    schema_guard_result: SchemaGuardResult = getattr(app.state, "schema_guard_result", _default_schema_guard_result())
    return HealthResponse(
        status="ok",
        environment=settings.app_env,
        timestamp=datetime.now(timezone.utc),
        schema_guard=schema_guard_result.to_dict(),
    )
