"""日记集合存储

只有两个原语：整表读取（`load`）与整表替换（`replace_all`）。
- replace_all 在一个事务里 delete + insert + commit；失败时回滚，旧数据保持不变。
- 从未写入过时返回调用方给的种子数据（SEED_DIARIES_PATH）。
- 加锁与置顶校验由 FeedService 负责，这里不做业务判断。
"""

from __future__ import annotations

import json
import logging
from collections.abc import Sequence
from functools import lru_cache
from pathlib import Path

from pydantic import ValidationError as PydanticValidationError
from sqlalchemy import delete, insert, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from ..config import resolve_repo_path, settings
from ..models import CollectionMeta, DiaryEntryRow
from ..schemas import DiaryEntry
from ..utils.errors import StorageError, exception_summary

logger = logging.getLogger(__name__)

_MAX_ID_KEY = "diary_entries.max_id"


def _load_json_list(value: str | None) -> list[str]:
    if not isinstance(value, str) or not value.strip():
        return []
    try:
        data = json.loads(value)
    except ValueError:
        return []
    if not isinstance(data, list):
        return []
    return [str(item) for item in data if item is not None]


def _row_to_entry(row: DiaryEntryRow) -> DiaryEntry:
    return DiaryEntry(
        id=int(row.id),
        date=row.date,
        published_at=row.published_at or None,
        pinned=bool(row.pinned),
        summary=row.summary or "",
        tags=_load_json_list(row.tags_json),
        images=_load_json_list(row.images_json),
    )


def _entry_to_values(entry: DiaryEntry, position: int) -> dict[str, object]:
    return {
        "id": entry.id,
        "position": position,
        "date": entry.date,
        "published_at": entry.published_at,
        "pinned": bool(entry.pinned),
        "summary": entry.summary or "",
        "tags_json": json.dumps(list(entry.tags or []), ensure_ascii=False),
        "images_json": json.dumps(list(entry.images or []), ensure_ascii=False),
    }


@lru_cache(maxsize=4)
def _read_seed_file(path: str) -> tuple[DiaryEntry, ...]:
    seed_path = Path(path)
    if not seed_path.exists():
        logger.warning("[STORE] Seed file not found: %s", seed_path)
        return ()
    try:
        data = json.loads(seed_path.read_text(encoding="utf-8"))
    except (OSError, ValueError) as e:
        logger.warning("[STORE] Seed file unreadable: %s", exception_summary(e))
        return ()
    if not isinstance(data, list):
        logger.warning("[STORE] Seed file must contain a JSON array: %s", seed_path)
        return ()

    entries: list[DiaryEntry] = []
    for item in data:
        try:
            entries.append(DiaryEntry.model_validate(item))
        except PydanticValidationError as e:
            logger.warning("[STORE] Skipping invalid seed entry: %s", exception_summary(e))
    return tuple(entries)


def load_seed_entries() -> list[DiaryEntry]:
    """SEED_DIARIES_PATH 指向的初始数据；未配置时为空。"""
    raw = (settings.seed_diaries_path or "").strip()
    if not raw:
        return []
    return list(_read_seed_file(str(resolve_repo_path(raw))))


class EntryStore:
    """整表读写的日记存储"""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def load(self, fallback: Sequence[DiaryEntry] = ()) -> list[DiaryEntry]:
        try:
            result = await self.db.execute(
                select(DiaryEntryRow)
                .order_by(DiaryEntryRow.position.asc(), DiaryEntryRow.id.asc())
                .execution_options(populate_existing=True)
            )
            rows = result.scalars().all()
        except SQLAlchemyError as e:
            logger.exception("[STORE] Failed to load diary entries")
            raise StorageError("读取日记失败") from e

        if rows:
            return [_row_to_entry(row) for row in rows]

        # 从未写入过才使用种子；写入过后被删空的集合就是空集合
        if await self._has_persisted():
            return []
        return list(fallback)

    async def _has_persisted(self) -> bool:
        try:
            meta = await self.db.get(CollectionMeta, _MAX_ID_KEY)
        except SQLAlchemyError as e:
            raise StorageError("读取日记计数器失败") from e
        return meta is not None

    async def max_assigned_id(self) -> int:
        """历史上持久化过的最大 id（删除后仍保留）。"""
        try:
            meta = await self.db.get(CollectionMeta, _MAX_ID_KEY, populate_existing=True)
        except SQLAlchemyError as e:
            raise StorageError("读取日记计数器失败") from e
        return int(meta.value or 0) if meta is not None else 0

    async def replace_all(self, entries: Sequence[DiaryEntry], *, high_water: int = 0) -> None:
        """整表替换并提交；任何一步失败都会回滚。

        high_water：写入前集合里出现过的最大 id（例如刚被删除的种子条目），一并计入高水位。
        """
        max_id = max(max((e.id for e in entries), default=0), int(high_water or 0))
        try:
            await self.db.execute(
                delete(DiaryEntryRow).execution_options(synchronize_session=False)
            )
            if entries:
                await self.db.execute(
                    insert(DiaryEntryRow),
                    [_entry_to_values(entry, i) for i, entry in enumerate(entries)],
                )

            meta = await self.db.get(CollectionMeta, _MAX_ID_KEY, populate_existing=True)
            if meta is None:
                self.db.add(CollectionMeta(key=_MAX_ID_KEY, value=max_id))
            elif max_id > int(meta.value or 0):
                meta.value = max_id

            await self.db.commit()
        except SQLAlchemyError as e:
            await self.db.rollback()
            logger.exception("[STORE] Failed to replace diary entries")
            raise StorageError("保存日记失败") from e

        logger.info("[STORE] Persisted %s diary entries", len(entries))
