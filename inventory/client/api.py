from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable, Iterable, Mapping
from typing import Any

import httpx
from tenacity import AsyncRetrying, RetryCallState, retry_if_exception, stop_after_attempt, wait_exponential

from inventory.client.cache import QueryCache, QueryKey
from inventory.client.session import SessionContext

logger = logging.getLogger("inventory.client")

MAX_RETRIES = 2
MAX_RETRY_DELAY_SECONDS = 30.0
MIN_SERIAL_SEARCH_LENGTH = 4


class ApiRequestError(Exception):
    def __init__(
        self,
        status_code: int,
        message: str,
        *,
        code: str | None = None,
        details: list[dict[str, Any]] | None = None,
    ):
        super().__init__(message)
        self.status_code = status_code
        self.message = message
        self.code = code
        self.details = details

    @property
    def retryable(self) -> bool:
        return self.status_code >= 500


def query_key(path: str, params: Mapping[str, Any] | None = None) -> QueryKey:
    """Path segments then sorted params, so invalidating ``/api/pcs`` also drops ``/api/pcs/<id>/history``."""
    segments = tuple(segment for segment in path.split("/") if segment)
    return segments + tuple(sorted((params or {}).items()))


def is_retryable(exc: BaseException) -> bool:
    if isinstance(exc, ApiRequestError):
        return exc.retryable
    return isinstance(exc, httpx.TransportError)


def error_from_response(response: httpx.Response) -> ApiRequestError:
    """Surface the server's own message: ``error``, then ``message``, then raw text, then the reason phrase."""
    raw = response.text
    fallback = response.reason_phrase or f"HTTP {response.status_code}"
    if not raw.strip():
        return ApiRequestError(response.status_code, fallback)
    try:
        body = response.json()
    except ValueError:
        return ApiRequestError(response.status_code, raw)
    if not isinstance(body, Mapping):
        return ApiRequestError(response.status_code, raw)
    message = body.get("error") or body.get("message") or fallback
    details = body.get("details") if isinstance(body.get("details"), list) else None
    code = body.get("code") if isinstance(body.get("code"), str) else None
    return ApiRequestError(response.status_code, str(message), code=code, details=details)


class InventoryClient:
    """Async data-fetching layer for the inventory API.

    GET requests go through ``QueryCache`` and are retried on network errors
    and 5xx responses; 4xx responses and mutations are never retried.
    Mutations invalidate the cached queries they affect.
    """

    def __init__(
        self,
        base_url: str,
        *,
        session: SessionContext | None = None,
        cache: QueryCache | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
        max_retries: int = MAX_RETRIES,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
        timeout: float = 30.0,
    ):
        self.session = session or SessionContext()
        self.cache = cache or QueryCache()
        self.max_retries = max_retries
        self._sleep = sleep
        self._http = httpx.AsyncClient(base_url=base_url, transport=transport, timeout=timeout)

    async def __aenter__(self) -> InventoryClient:
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:  # type: ignore[no-untyped-def]
        await self.aclose()

    async def aclose(self) -> None:
        await self._http.aclose()

    def _headers(self, *, has_body: bool) -> dict[str, str]:
        headers = {"Accept": "application/json"}
        if has_body:
            headers["Content-Type"] = "application/json"
        token = self.session.token()
        if token:
            headers["Authorization"] = f"Bearer {token}"
        return headers

    async def _send(self, method: str, path: str, *, json: Any = None, params: Mapping[str, Any] | None = None) -> Any:
        response = await self._http.request(
            method,
            path,
            json=json,
            params=params,
            headers=self._headers(has_body=json is not None),
        )
        if response.is_error:
            raise error_from_response(response)
        if response.status_code == 204 or not response.content:
            return None
        return response.json()

    async def _fetch_with_retries(self, path: str, params: Mapping[str, Any] | None = None) -> Any:
        def log_retry(retry_state: RetryCallState) -> None:
            outcome = retry_state.outcome
            logger.warning(
                "request_retry",
                extra={
                    "path": path,
                    "attempt": retry_state.attempt_number,
                    "delay_seconds": retry_state.next_action.sleep if retry_state.next_action else None,
                    "error": str(outcome.exception()) if outcome else None,
                },
            )

        retrying = AsyncRetrying(
            stop=stop_after_attempt(self.max_retries + 1),
            wait=wait_exponential(multiplier=1, max=MAX_RETRY_DELAY_SECONDS),
            retry=retry_if_exception(is_retryable),
            sleep=self._sleep,
            before_sleep=log_retry,
            reraise=True,
        )
        async for attempt in retrying:
            with attempt:
                return await self._send("GET", path, params=params)

    async def query(self, path: str, params: Mapping[str, Any] | None = None, *, force: bool = False) -> Any:
        key = query_key(path, params)
        if not force:
            cached = self.cache.get(key)
            if cached is not None and cached[1]:
                return cached[0]
        value = await self._fetch_with_retries(path, params)
        self.cache.set(key, value)
        return value

    async def mutate(
        self,
        method: str,
        path: str,
        json: Any = None,
        *,
        invalidates: Iterable[str] = (),
    ) -> Any:
        result = await self._send(method, path, json=json)
        for prefix in invalidates:
            self.cache.invalidate(query_key(prefix))
        return result

    # Auth

    async def login(self, email: str, password: str, *, remember: bool = False) -> dict[str, Any]:
        payload = await self._send("POST", "/api/auth/login", json={"email": email, "password": password})
        self.session.login(payload["session_id"], remember=remember)
        self.cache.invalidate()
        return payload

    async def logout(self) -> None:
        try:
            await self._send("POST", "/api/auth/logout")
        finally:
            self.session.logout()
            self.cache.invalidate()

    async def me(self) -> dict[str, Any] | None:
        try:
            return await self._send("GET", "/api/auth/me")
        except ApiRequestError as exc:
            if exc.status_code == 401:
                return None
            raise

    # Users (admin only)

    async def list_users(self) -> list[dict[str, Any]]:
        return await self.query("/api/users")

    async def create_user(self, payload: Mapping[str, Any]) -> dict[str, Any]:
        return await self.mutate("POST", "/api/users", dict(payload), invalidates=("/api/users",))

    async def set_user_active(self, user_id: str, is_active: bool) -> dict[str, Any]:
        return await self.mutate(
            "PATCH",
            f"/api/users/{user_id}",
            {"is_active": is_active},
            invalidates=("/api/users",),
        )

    async def set_user_password(self, user_id: str, password: str) -> dict[str, Any]:
        return await self._send("POST", f"/api/users/{user_id}/set-password", json={"password": password})

    async def delete_user(self, user_id: str) -> None:
        await self.mutate("DELETE", f"/api/users/{user_id}", invalidates=("/api/users",))

    # Employees

    async def list_employees(self) -> list[dict[str, Any]]:
        return await self.query("/api/employees")

    async def create_employee(self, payload: Mapping[str, Any]) -> dict[str, Any]:
        return await self.mutate(
            "POST",
            "/api/employees",
            dict(payload),
            invalidates=("/api/employees", "/api/dashboard/stats"),
        )

    async def update_employee(self, employee_id: str, payload: Mapping[str, Any]) -> dict[str, Any]:
        return await self.mutate(
            "PUT",
            f"/api/employees/{employee_id}",
            dict(payload),
            invalidates=("/api/employees", "/api/pcs"),
        )

    async def delete_employee(self, employee_id: str) -> None:
        await self.mutate(
            "DELETE",
            f"/api/employees/{employee_id}",
            invalidates=("/api/employees", "/api/pcs", "/api/pc-history", "/api/dashboard/stats"),
        )

    # PCs

    async def list_pcs(self) -> list[dict[str, Any]]:
        return await self.query("/api/pcs")

    async def scan_pc(self, pc_id: str) -> dict[str, Any]:
        return await self._send("GET", f"/api/pcs/qr/{pc_id}")

    async def create_pc(self, payload: Mapping[str, Any]) -> dict[str, Any]:
        return await self.mutate(
            "POST",
            "/api/pcs",
            dict(payload),
            invalidates=("/api/pcs", "/api/pc-history", "/api/dashboard/stats"),
        )

    async def update_pc(self, pc_uuid: str, payload: Mapping[str, Any]) -> dict[str, Any]:
        return await self.mutate(
            "PUT",
            f"/api/pcs/{pc_uuid}",
            dict(payload),
            invalidates=("/api/pcs", "/api/pc-history", "/api/dashboard/stats"),
        )

    async def delete_pc(self, pc_uuid: str) -> None:
        await self.mutate(
            "DELETE",
            f"/api/pcs/{pc_uuid}",
            invalidates=("/api/pcs", "/api/pc-history", "/api/dashboard/stats"),
        )

    # History and dashboard

    async def pc_history(self, pc_uuid: str) -> list[dict[str, Any]]:
        return await self.query(f"/api/pcs/{pc_uuid}/history")

    async def history_by_serial(self, serial_prefix: str) -> list[dict[str, Any]]:
        prefix = serial_prefix.strip()
        if len(prefix) < MIN_SERIAL_SEARCH_LENGTH:
            return []
        return await self.query(f"/api/pc-history/serial/{prefix}")

    async def all_history(self) -> list[dict[str, Any]]:
        return await self.query("/api/pc-history")

    async def dashboard_stats(self) -> dict[str, Any]:
        return await self.query("/api/dashboard/stats")
