from __future__ import annotations

from collections.abc import Iterator

from fastapi import Depends, HTTPException, Request
from sqlalchemy.orm import Session

from inventory.db import get_db
from inventory.models import UserRole
from inventory.rate_limit import RateLimiters
from inventory.schemas import SessionUser
from inventory.security import authenticate_request
from inventory.settings import get_settings
from inventory.storage import DatabaseStorage, Storage


def get_storage(db: Session = Depends(get_db)) -> Iterator[Storage]:
    yield DatabaseStorage(db)


def require_session(request: Request, storage: Storage = Depends(get_storage)) -> SessionUser:
    return authenticate_request(request, storage)


def require_admin_user(user: SessionUser = Depends(require_session)) -> SessionUser:
    if user.role != UserRole.ADMIN:
        raise HTTPException(status_code=403, detail="Admin access required")
    return user


def client_ip(request: Request) -> str:
    """Rate-limit key for the caller.

    Each trusted proxy appends the address it received the request from to
    ``X-Forwarded-For``, so the client is the entry ``trusted_proxy_count``
    places left of the peer. Entries further left are client-supplied and
    ignored. With no trusted proxies the header is ignored entirely.
    """
    peer = request.client.host if request.client else "unknown"
    trusted = get_settings().trusted_proxy_count
    if trusted == 0:
        return peer
    forwarded_for = request.headers.get("x-forwarded-for", "")
    hops = [hop.strip() for hop in forwarded_for.split(",") if hop.strip()]
    chain = [*hops, peer]
    if trusted >= len(chain):
        return chain[0]
    return chain[-(trusted + 1)]


def get_rate_limiters(request: Request) -> RateLimiters:
    return request.app.state.rate_limiters
