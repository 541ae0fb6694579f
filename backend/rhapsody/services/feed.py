"""Feed 服务：合并外部发布时间、排序、置顶约束、标签聚合与分页

两种查询模式：
- 全量（不带 limit / offset / tag）：返回完整有序集合，先尽力合并 WordPress 发布时间。
- 分页（任一参数出现）：对完整集合排序后按 tag 过滤再切片；offset=0 时附带标签云与日期集合。

所有写操作（新建/更新/删除）在同一把进程内锁里完成“读取 -> 校验 -> 整表写回 -> 提交”，
置顶唯一性因此不会被并发请求打破。
"""

from __future__ import annotations

import asyncio
import logging
import weakref
from collections.abc import Sequence

from sqlalchemy.ext.asyncio import AsyncSession

from ..config import settings
from ..schemas import DiaryCreateRequest, DiaryEntry, DiaryPage, DiaryUpdateRequest
from ..utils.errors import NotFoundError, PinConflictError
from .entry_store import EntryStore, load_seed_entries
from .ordering import (
    distinct_dates,
    ensure_date,
    ensure_instant,
    filter_by_tag,
    find_pinned,
    merge_publish_times,
    next_entry_id,
    paginate,
    parse_page_params,
    resolve_zone,
    sort_entries,
    tag_counts,
    today,
)
from .wordpress import WordPressPublishTimeSource

logger = logging.getLogger(__name__)

DIARY_COLLECTION = "diaries"

# 每个事件循环、每个逻辑集合一把锁。asyncio.Lock 在第一次争用时绑定到当前循环，
# 按循环分开保存，循环结束后随弱引用一起回收。
# 只在单进程内有效；多进程部署需要换成数据库级别的锁。
_COLLECTION_LOCKS: weakref.WeakKeyDictionary[asyncio.AbstractEventLoop, dict[str, asyncio.Lock]] = (
    weakref.WeakKeyDictionary()
)


def _collection_lock(name: str) -> asyncio.Lock:
    locks = _COLLECTION_LOCKS.setdefault(asyncio.get_running_loop(), {})
    lock = locks.get(name)
    if lock is None:
        lock = asyncio.Lock()
        locks[name] = lock
    return lock


def is_paged_query(limit: str | None, offset: str | None, tag: str | None) -> bool:
    return any(value not in (None, "") for value in (limit, offset, tag))


def _max_id(entries: Sequence[DiaryEntry]) -> int:
    return max((e.id for e in entries), default=0)


def _find_index(entries: Sequence[DiaryEntry], entry_id: int) -> int | None:
    for i, entry in enumerate(entries):
        if entry.id == entry_id:
            return i
    return None


class FeedService:
    """日记 feed 的读写入口"""

    def __init__(
        self,
        db: AsyncSession,
        *,
        source: WordPressPublishTimeSource | None = None,
        seed: Sequence[DiaryEntry] | None = None,
    ):
        self.db = db
        self.store = EntryStore(db)
        self.source = source if source is not None else WordPressPublishTimeSource()
        self.seed = list(seed) if seed is not None else load_seed_entries()
        self.zone = resolve_zone(settings.feed_timezone)

    async def _load(self) -> list[DiaryEntry]:
        return await self.store.load(self.seed)

    # ---- 查询 ----

    async def query(
        self,
        *,
        limit: str | None = None,
        offset: str | None = None,
        tag: str | None = None,
    ) -> list[DiaryEntry] | DiaryPage:
        if is_paged_query(limit, offset, tag):
            return await self.query_page(limit=limit, offset=offset, tag=tag)
        return await self.list_all()

    async def list_all(self) -> list[DiaryEntry]:
        """全量有序集合；外部来源失败时直接使用本地时间。"""
        entries = await self._load()
        result = await self.source.try_fetch_publish_times()
        if result.ok:
            entries = merge_publish_times(entries, result.times)
        elif result.status == "failed":
            logger.info("[FEED] Serving %s entries without external publish times", len(entries))
        return sort_entries(entries, self.zone)

    async def query_page(
        self,
        *,
        limit: str | int | None = None,
        offset: str | int | None = None,
        tag: str | None = None,
    ) -> DiaryPage:
        limit_n, offset_n = parse_page_params(limit, offset)
        ordered = sort_entries(await self._load(), self.zone)
        filtered = filter_by_tag(ordered, tag)
        items, total, has_more = paginate(filtered, offset=offset_n, limit=limit_n)

        page = DiaryPage(items=items, total=total, has_more=has_more)
        if offset_n == 0:
            page.tag_counts = tag_counts(ordered)
            page.dates = distinct_dates(ordered)
        return page

    async def get_entry(self, entry_id: int) -> DiaryEntry:
        entries = await self._load()
        index = _find_index(entries, entry_id)
        if index is None:
            raise NotFoundError(f"Diary {entry_id} not found")
        return entries[index]

    # ---- 写操作 ----

    async def create_entry(self, req: DiaryCreateRequest) -> DiaryEntry:
        entry_date = ensure_date(req.date) if req.date else today(self.zone)

        async with _collection_lock(DIARY_COLLECTION):
            entries = await self._load()
            if req.pinned:
                pinned = find_pinned(entries)
                if pinned is not None:
                    raise PinConflictError(pinned.id)

            entry = DiaryEntry(
                id=next_entry_id(entries, await self.store.max_assigned_id()),
                date=entry_date,
                pinned=bool(req.pinned),
                summary=req.summary or "",
                tags=list(req.tags),
                images=list(req.images),
            )
            await self.store.replace_all(
                sort_entries([entry, *entries], self.zone), high_water=_max_id(entries)
            )

        logger.info("[FEED] Created diary id=%s date=%s pinned=%s", entry.id, entry.date, entry.pinned)
        return entry

    async def update_entry(self, entry_id: int, req: DiaryUpdateRequest) -> DiaryEntry:
        provided = req.model_fields_set
        changes: dict[str, object] = {}
        if "date" in provided and req.date is not None:
            changes["date"] = ensure_date(req.date)
        if "published_at" in provided:
            changes["published_at"] = ensure_instant(req.published_at) if req.published_at else None
        for name in ("pinned", "summary", "tags", "images"):
            value = getattr(req, name)
            if name in provided and value is not None:
                changes[name] = value

        async with _collection_lock(DIARY_COLLECTION):
            entries = await self._load()
            index = _find_index(entries, entry_id)
            if index is None:
                raise NotFoundError(f"Diary {entry_id} not found")

            if changes.get("pinned"):
                other = find_pinned(entries, exclude_id=entry_id)
                if other is not None:
                    raise PinConflictError(other.id)

            updated = entries[index].model_copy(update=changes)
            entries[index] = updated
            await self.store.replace_all(sort_entries(entries, self.zone), high_water=_max_id(entries))

        logger.info("[FEED] Updated diary id=%s fields=%s", entry_id, sorted(changes))
        return updated

    async def delete_entry(self, entry_id: int) -> None:
        async with _collection_lock(DIARY_COLLECTION):
            entries = await self._load()
            index = _find_index(entries, entry_id)
            if index is None:
                raise NotFoundError(f"Diary {entry_id} not found")
            high_water = _max_id(entries)
            entries.pop(index)
            await self.store.replace_all(entries, high_water=high_water)

        # 评论不做级联删除（diary_id 是弱引用）
        logger.info("[FEED] Deleted diary id=%s", entry_id)
