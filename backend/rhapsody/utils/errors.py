from __future__ import annotations

import re
from typing import Any


_CONTROL_RE = re.compile(r"[\r\n\t]+")


def _sanitize_text(text: str, *, max_len: int) -> str:
    """把异常文本压缩成单行短字符串（去掉换行、控制字符，超长截断）。"""
    if max_len <= 0:
        return ""
    cleaned = _CONTROL_RE.sub(" ", text).strip()
    if len(cleaned) > max_len:
        return f"{cleaned[:max_len]}…"
    return cleaned


def exception_summary(exc: BaseException, *, max_len: int = 200) -> str:
    """异常类型 + 截断后的消息，用于日志与对外响应。"""
    name = type(exc).__name__
    msg = _sanitize_text(str(exc), max_len=max_len)
    return f"{name}: {msg}" if msg else name


def safe_str(value: Any, *, max_len: int = 200) -> str:
    return _sanitize_text(str(value), max_len=max_len)


class FeedError(Exception):
    """业务异常基类：携带 HTTP 状态码与机器可读的 code，由 main.py 统一转换成响应。"""

    status_code = 500
    code = "INTERNAL_ERROR"

    def __init__(self, detail: str | None = None):
        self.detail = detail or self.code
        super().__init__(self.detail)


class ValidationError(FeedError):
    """请求内容不合法（空内容、日期格式错误、不支持的图片类型等）。"""

    status_code = 400
    code = "VALIDATION_ERROR"


class PinConflictError(FeedError):
    """已有另一篇置顶记录，需要先取消它的置顶。"""

    status_code = 409
    code = "PIN_CONFLICT"

    def __init__(self, pinned_id: int):
        self.pinned_id = pinned_id
        super().__init__(
            f"已有置顶博客（id={pinned_id}），请先取消该篇置顶后再设置本文置顶。"
        )


class NotFoundError(FeedError):
    status_code = 404
    code = "NOT_FOUND"


class UnauthorizedError(FeedError):
    status_code = 401
    code = "ADMIN_REQUIRED"


class UpstreamUnavailable(FeedError):
    """外部来源（WordPress）不可用。读路径上只记录日志，不返回给调用方。"""

    status_code = 502
    code = "UPSTREAM_UNAVAILABLE"


class StorageError(FeedError):
    """持久化读写失败；整表写入失败时之前的数据保持不变。"""

    status_code = 500
    code = "STORAGE_ERROR"
