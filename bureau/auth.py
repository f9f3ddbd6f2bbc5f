"""Admin session verification shared by every protected router.

Tokens are issued by the admin login flow elsewhere; this module only checks
them. A token is read from ``Authorization: Bearer`` first, then from the
``adminSessionToken`` cookie.
"""
from __future__ import annotations

import logging
from typing import Any

from fastapi import HTTPException, Request, status
from jose import JWTError, jwt

from bureau import config

log = logging.getLogger(__name__)


def _extract_token(request: Request) -> str | None:
    header = request.headers.get("authorization", "")
    if header.startswith("Bearer "):
        return header[len("Bearer "):].strip() or None
    return request.cookies.get(config.ADMIN_COOKIE_NAME) or None


def decode_admin_token(token: str) -> dict[str, Any] | None:
    """Return the claims of a valid, unexpired admin token, else None."""
    try:
        payload = jwt.decode(token, config.ADMIN_JWT_SECRET, algorithms=[config.ADMIN_JWT_ALGORITHM])
    except JWTError as exc:
        log.debug("Admin token rejected: %s", exc)
        return None
    if payload.get("role") != "admin":
        return None
    return payload


def require_admin(request: Request) -> dict[str, Any]:
    """FastAPI dependency: 401 unless the request carries an admin session."""
    token = _extract_token(request)
    if not token:
        raise HTTPException(
            status.HTTP_401_UNAUTHORIZED,
            {"error": "Authentication required", "code": "NO_TOKEN"},
        )
    payload = decode_admin_token(token)
    if payload is None:
        raise HTTPException(
            status.HTTP_401_UNAUTHORIZED,
            {"error": "Invalid or expired token", "code": "INVALID_TOKEN"},
        )
    return payload
