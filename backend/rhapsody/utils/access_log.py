"""按天落盘的访问日志（logfmt）：<repo>/logs/YYYY-MM-DD.logs"""

from __future__ import annotations

import threading
import time
from datetime import datetime
from pathlib import Path
from typing import Any

from starlette.concurrency import run_in_threadpool
from starlette.requests import Request

from ..config import resolve_repo_path, settings


_WRITE_LOCK = threading.Lock()


def _logfmt_value(value: Any) -> str:
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, (int, float)):
        return str(value)
    text = str(value).replace("\r", "\\r").replace("\n", "\\n").replace("\t", "\\t")
    if len(text) > 800:
        text = f"{text[:800]}…"
    if not text or any(ch.isspace() for ch in text) or any(ch in text for ch in ['"', "=", "\\"]):
        escaped = text.replace("\\", "\\\\").replace('"', '\\"')
        return f"\"{escaped}\""
    return text


def to_logfmt(fields: list[tuple[str, Any]]) -> str:
    return " ".join(
        f"{key}={_logfmt_value(value)}"
        for key, value in fields
        if value is not None and value != ""
    )


def daily_log_path(now: datetime | None = None) -> Path:
    dt = now or datetime.now().astimezone()
    return resolve_repo_path(settings.access_log_dir) / f"{dt.strftime('%Y-%m-%d')}.logs"


def _append_line_sync(line: str) -> Path:
    path = daily_log_path()
    path.parent.mkdir(parents=True, exist_ok=True)
    with _WRITE_LOCK:
        with path.open("a", encoding="utf-8", newline="\n") as f:
            f.write(line.rstrip("\n") + "\n")
    return path


def _client_ip(request: Request) -> str | None:
    xff = request.headers.get("x-forwarded-for")
    if xff and xff.split(",")[0].strip():
        return xff.split(",")[0].strip()
    xrip = (request.headers.get("x-real-ip") or "").strip()
    if xrip:
        return xrip
    return request.client.host if request.client else None


def _should_ignore(path: str) -> bool:
    ignore = {p.strip() for p in (settings.access_log_ignore_paths or "").split(",") if p.strip()}
    return path in ignore


async def log_http_request(
    request: Request,
    *,
    status_code: int,
    duration_ms: int,
    error: str | None = None,
    request_id: str | None = None,
) -> None:
    if not settings.access_log_enabled or _should_ignore(request.url.path):
        return

    query = request.url.query if settings.access_log_include_query else None
    line = to_logfmt(
        [
            ("ts", datetime.now().astimezone().isoformat(timespec="seconds")),
            ("method", request.method),
            ("path", request.url.path),
            ("query", query),
            ("status", status_code),
            ("dur_ms", duration_ms),
            ("ip", _client_ip(request)),
            ("ua", request.headers.get("user-agent")),
            ("rid", request_id),
            ("error", error),
        ]
    )
    await run_in_threadpool(_append_line_sync, line)


class AccessLogTimer:
    def __init__(self) -> None:
        self._start = time.perf_counter()

    def elapsed_ms(self) -> int:
        return int((time.perf_counter() - self._start) * 1000)
