"""上游 HTTP 请求辅助（重试/退避）

- 只对网络类异常（httpx.RequestError，含超时）做有限重试；HTTP 状态码交给调用方判断。
- 指数退避 + 少量抖动。
- 最终抛出的异常上附带 rhapsody_attempts / rhapsody_url，便于日志说明“已重试 N 次”。
"""

from __future__ import annotations

import asyncio
import random
from typing import Any

import httpx


def compute_backoff_seconds(
    *,
    attempt: int,
    base: float,
    max_backoff: float,
    jitter_ratio: float,
) -> float:
    if base <= 0:
        return 0.0

    delay = base * (2 ** max(0, int(attempt) - 1))
    if max_backoff > 0:
        delay = min(delay, max_backoff)
    if jitter_ratio > 0:
        delay += random.random() * delay * jitter_ratio
    return max(0.0, float(delay))


def retry_suffix(exc: BaseException) -> str:
    try:
        attempts = int(getattr(exc, "rhapsody_attempts", 0) or 0)
    except (TypeError, ValueError):
        attempts = 0
    return f" (after {attempts} attempts)" if attempts > 1 else ""


async def request_with_retry(
    *,
    client: httpx.AsyncClient,
    method: str,
    url: str,
    max_attempts: int,
    backoff_seconds: float,
    max_backoff_seconds: float = 5.0,
    jitter_ratio: float = 0.1,
    **kwargs: Any,
) -> httpx.Response:
    """成功返回 Response；重试耗尽后抛出最后一次的 httpx.RequestError。"""
    attempts = max(1, int(max_attempts or 1))
    base = max(0.0, float(backoff_seconds or 0.0))
    max_backoff = max(0.0, float(max_backoff_seconds or 0.0))
    jitter = max(0.0, float(jitter_ratio or 0.0))
    method_up = (method or "GET").upper()

    attempt = 1
    while True:
        try:
            return await client.request(method_up, url, **kwargs)
        except httpx.RequestError as e:
            if attempt >= attempts:
                setattr(e, "rhapsody_attempts", attempt)
                setattr(e, "rhapsody_url", str(url))
                raise

            sleep_s = compute_backoff_seconds(
                attempt=attempt,
                base=base,
                max_backoff=max_backoff,
                jitter_ratio=jitter,
            )
            if sleep_s > 0:
                await asyncio.sleep(sleep_s)
            attempt += 1
