"""Admin session API（登录 / 登出 / 状态）"""

from __future__ import annotations

import logging
import threading
import time
from datetime import datetime, timedelta, timezone

from fastapi import APIRouter, HTTPException, Request
from pydantic import BaseModel, Field
from starlette.responses import Response

from ..config import settings
from ..utils.admin_password import verify_admin_password_hash
from ..utils.admin_token import issue_token
from ..utils.errors import UnauthorizedError
from .deps import is_admin_request

router = APIRouter(prefix="/admin", tags=["admin"])
logger = logging.getLogger(__name__)

_RATE_LOCK = threading.Lock()
_RATE_ATTEMPTS: dict[str, list[float]] = {}


def _client_ip(request: Request) -> str | None:
    if not settings.admin_trust_proxy_headers:
        return request.client.host if request.client else None
    xff = request.headers.get("x-forwarded-for")
    if xff and xff.split(",")[0].strip():
        return xff.split(",")[0].strip()
    xrip = (request.headers.get("x-real-ip") or "").strip()
    if xrip:
        return xrip
    return request.client.host if request.client else None


def _enforce_rate_limit(ip: str | None) -> None:
    window = int(settings.admin_rate_limit_window_seconds or 0)
    max_attempts = int(settings.admin_rate_limit_max_attempts or 0)
    if not ip or window <= 0 or max_attempts <= 0:
        return

    cutoff = time.time() - window
    with _RATE_LOCK:
        recent = [ts for ts in _RATE_ATTEMPTS.get(ip, []) if ts >= cutoff]
        if recent:
            _RATE_ATTEMPTS[ip] = recent
        else:
            _RATE_ATTEMPTS.pop(ip, None)
        if len(recent) >= max_attempts:
            raise HTTPException(status_code=429, detail="TOO_MANY_ATTEMPTS")


def _record_failed_attempt(ip: str | None) -> None:
    if not ip:
        return
    with _RATE_LOCK:
        _RATE_ATTEMPTS.setdefault(ip, []).append(time.time())


def _resolve_cookie_secure(request: Request) -> bool:
    raw = settings.admin_cookie_secure
    if raw == "true":
        return True
    if raw == "false":
        return False
    if (request.url.scheme or "").lower() == "https":
        return True
    forwarded = (request.headers.get("x-forwarded-proto") or "").split(",")[0].strip().lower()
    return forwarded == "https"


class LoginRequest(BaseModel):
    password_hash: str = Field(
        ...,
        min_length=1,
        description="客户端对管理员密码做 sha256 后的 hex 字符串",
    )


@router.post("/login")
async def login(body: LoginRequest, request: Request) -> Response:
    if not settings.admin_configured:
        raise UnauthorizedError("ADMIN_NOT_CONFIGURED")

    ip = _client_ip(request)
    _enforce_rate_limit(ip)

    ok = verify_admin_password_hash(
        (body.password_hash or "").strip().lower(),
        configured_hash=settings.admin_password_hash,
        plaintext=settings.admin_password,
    )
    if not ok:
        _record_failed_attempt(ip)
        logger.warning("[ADMIN] Failed login from ip=%s", ip or "-")
        raise UnauthorizedError("ACCESS_DENIED")

    token = issue_token(
        secret=settings.admin_session_secret or "",
        pwd_version=settings.admin_password_version,
        days=settings.admin_session_days,
    )
    max_age = int(settings.admin_session_days) * 24 * 60 * 60

    response = Response(status_code=204)
    response.set_cookie(
        key=settings.admin_cookie_name,
        value=token,
        max_age=max_age,
        expires=datetime.now(timezone.utc) + timedelta(seconds=max_age),
        httponly=True,
        samesite=settings.admin_cookie_samesite,
        secure=_resolve_cookie_secure(request),
        path="/",
    )
    logger.info("[ADMIN] Login ok ip=%s", ip or "-")
    return response


@router.post("/logout")
async def logout() -> Response:
    response = Response(status_code=204)
    response.delete_cookie(key=settings.admin_cookie_name, path="/")
    return response


@router.get("/status")
async def status(request: Request) -> dict[str, bool]:
    return {"admin": is_admin_request(request)}
