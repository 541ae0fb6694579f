"""管理员会话 token：`base64url(payload).base64url(hmac_sha256)`

payload 携带签发/过期时间与密码版本号；修改 ADMIN_PASSWORD_VERSION 即可让所有旧会话失效。
"""

from __future__ import annotations

import base64
import hashlib
import hmac
import json
import time
from typing import Any

_TOKEN_VERSION = 1


def _b64url_encode(data: bytes) -> str:
    return base64.urlsafe_b64encode(data).decode("ascii").rstrip("=")


def _b64url_decode(text: str) -> bytes:
    padding = "=" * (-len(text) % 4)
    return base64.urlsafe_b64decode(text + padding)


def _sign(payload_b64url: str, secret: str) -> str:
    sig = hmac.new(
        secret.encode("utf-8"),
        payload_b64url.encode("utf-8"),
        hashlib.sha256,
    ).digest()
    return _b64url_encode(sig)


def issue_token(*, secret: str, pwd_version: int, days: int, now: int | None = None) -> str:
    issued = int(now if now is not None else time.time())
    days = int(days or 0) if int(days or 0) > 0 else 30

    payload = {
        "v": _TOKEN_VERSION,
        "role": "admin",
        "iat": issued,
        "exp": issued + days * 24 * 60 * 60,
        "pwd_ver": int(pwd_version or 0),
    }
    raw = json.dumps(payload, separators=(",", ":"), ensure_ascii=False).encode("utf-8")
    payload_b64 = _b64url_encode(raw)
    return f"{payload_b64}.{_sign(payload_b64, secret)}"


def verify_token(
    token: str | None,
    *,
    secret: str,
    expected_pwd_version: int,
    now: int | None = None,
) -> tuple[bool, str]:
    """返回 (ok, reason)；reason 只用于日志排查，不返回给客户端。"""
    token = (token or "").strip()
    if not token:
        return False, "missing"
    if not secret:
        return False, "no_secret"

    parts = token.split(".")
    if len(parts) != 2:
        return False, "format"

    payload_b64, sig_b64 = parts
    if not hmac.compare_digest(_sign(payload_b64, secret), sig_b64):
        return False, "bad_sig"

    try:
        payload: Any = json.loads(_b64url_decode(payload_b64).decode("utf-8"))
    except (ValueError, UnicodeDecodeError):
        return False, "bad_payload"
    if not isinstance(payload, dict):
        return False, "bad_payload"

    if payload.get("v") != _TOKEN_VERSION or payload.get("role") != "admin":
        return False, "bad_version"

    try:
        exp = int(payload.get("exp"))
        pwd_ver = int(payload.get("pwd_ver"))
    except (TypeError, ValueError):
        return False, "bad_claims"

    if exp < int(now if now is not None else time.time()):
        return False, "expired"
    if pwd_ver != int(expected_pwd_version):
        return False, "pwd_ver_mismatch"
    return True, "ok"
