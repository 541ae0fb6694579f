"""WordPress 发布时间来源

接口：`GET {api_base}/{site}/posts?number=100&page=N&order=ASC&order_by=date`
- 每页 100 条，按发布时间升序翻页；不足一页、空页或非 2xx 时停止。
- 第一页就失败：抛出 UpstreamUnavailable。
- 后续页失败：停止翻页，返回已拿到的部分结果（记录 warning）。

FeedService 只调用 `try_fetch_publish_times()`，它把失败/超时/未配置都折叠成
PublishTimesResult，不会向读请求抛异常。
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Any, Literal

import httpx

from ..config import settings
from ..utils.errors import UpstreamUnavailable, exception_summary
from .http_client import request_with_retry, retry_suffix

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class PublishTimesResult:
    status: Literal["ok", "failed", "disabled"]
    times: dict[int, str] = field(default_factory=dict)
    error: str | None = None

    @property
    def ok(self) -> bool:
        return self.status == "ok"


def _extract_posts(data: Any) -> list[Any] | None:
    # v1.1 返回 {"found": n, "posts": [...]}，wp/v2 直接返回数组
    if isinstance(data, dict):
        posts = data.get("posts")
        return posts if isinstance(posts, list) else None
    if isinstance(data, list):
        return data
    return None


def _post_id_and_date(post: Any) -> tuple[int, str] | None:
    if not isinstance(post, dict):
        return None
    raw_id = post.get("ID", post.get("id"))
    raw_date = post.get("date")
    if raw_id is None or not isinstance(raw_date, str) or not raw_date.strip():
        return None
    try:
        return int(raw_id), raw_date.strip()
    except (TypeError, ValueError):
        return None


class WordPressPublishTimeSource:
    """从 WordPress 站点拉取每篇文章的精确发布时间（id -> ISO 时间）。"""

    def __init__(
        self,
        *,
        site: str | None = None,
        api_base: str | None = None,
        per_page: int | None = None,
        max_pages: int | None = None,
        total_timeout_seconds: float | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.site = (site if site is not None else settings.wordpress_site) or None
        self.api_base = (api_base or settings.wordpress_api_base).rstrip("/")
        self.per_page = int(per_page or settings.wordpress_per_page)
        self.max_pages = int(max_pages or settings.wordpress_max_pages)
        self.total_timeout_seconds = float(
            total_timeout_seconds or settings.wordpress_total_timeout_seconds
        )
        self._transport = transport

    @property
    def enabled(self) -> bool:
        return bool(self.site)

    @property
    def posts_url(self) -> str:
        return f"{self.api_base}/{self.site}/posts"

    def _page_failed(self, page: int, reason: str, collected: int) -> None:
        if page == 1:
            raise UpstreamUnavailable(f"WordPress 拉取失败：{reason}")
        logger.warning(
            "[WORDPRESS] Page %s failed (%s), keeping %s partial results",
            page,
            reason,
            collected,
        )

    async def fetch_publish_times(self) -> dict[int, str]:
        if not self.enabled:
            raise UpstreamUnavailable("WordPress site is not configured")

        times: dict[int, str] = {}
        async with httpx.AsyncClient(
            timeout=settings.wordpress_request_timeout_seconds,
            trust_env=settings.wordpress_http_trust_env,
            transport=self._transport,
        ) as client:
            page = 1
            while page <= self.max_pages:
                try:
                    resp = await request_with_retry(
                        client=client,
                        method="GET",
                        url=self.posts_url,
                        params={
                            "number": self.per_page,
                            "page": page,
                            "order": "ASC",
                            "order_by": "date",
                            "fields": "ID,date",
                        },
                        max_attempts=settings.wordpress_http_max_attempts,
                        backoff_seconds=settings.wordpress_http_retry_backoff_seconds,
                        max_backoff_seconds=settings.wordpress_http_retry_max_backoff_seconds,
                        jitter_ratio=settings.wordpress_http_retry_jitter_ratio,
                    )
                except httpx.RequestError as e:
                    self._page_failed(page, exception_summary(e) + retry_suffix(e), len(times))
                    break

                if not resp.is_success:
                    self._page_failed(page, f"HTTP {resp.status_code}", len(times))
                    break

                try:
                    posts = _extract_posts(resp.json())
                except ValueError:
                    posts = None
                if posts is None:
                    self._page_failed(page, "unexpected response body", len(times))
                    break
                if not posts:
                    break

                for post in posts:
                    parsed = _post_id_and_date(post)
                    if parsed is not None:
                        times[parsed[0]] = parsed[1]

                if len(posts) < self.per_page:
                    break
                page += 1

        logger.info("[WORDPRESS] Fetched %s publish times from %s", len(times), self.site)
        return times

    async def try_fetch_publish_times(self) -> PublishTimesResult:
        if not self.enabled:
            return PublishTimesResult(status="disabled")

        try:
            times = await asyncio.wait_for(
                self.fetch_publish_times(), timeout=self.total_timeout_seconds
            )
        except asyncio.TimeoutError:
            logger.warning(
                "[WORDPRESS] Fetch timed out after %ss, using local timestamps",
                self.total_timeout_seconds,
            )
            return PublishTimesResult(status="failed", error="timeout")
        except (UpstreamUnavailable, httpx.HTTPError) as e:
            summary = exception_summary(e)
            logger.warning("[WORDPRESS] Fetch failed, using local timestamps: %s", summary)
            return PublishTimesResult(status="failed", error=summary)
        except Exception as e:
            logger.exception("[WORDPRESS] Unexpected fetch error")
            return PublishTimesResult(status="failed", error=exception_summary(e))

        return PublishTimesResult(status="ok", times=times)
