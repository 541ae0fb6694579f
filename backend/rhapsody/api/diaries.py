"""Diary feed API"""

from __future__ import annotations

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from ..database import get_db
from ..schemas import (
    DeleteResult,
    DiaryCreateRequest,
    DiaryEntry,
    DiaryPage,
    DiaryUpdateRequest,
)
from ..services import FeedService, WordPressPublishTimeSource
from .deps import get_publish_time_source, require_admin

router = APIRouter(prefix="/diaries", tags=["diaries"])


@router.get(
    "",
    response_model=DiaryPage | list[DiaryEntry],
    response_model_exclude_none=True,
)
async def list_diaries(
    limit: str | None = Query(None, description="分页大小（1-100，默认 30）；不传 limit/offset/tag 时返回全量"),
    offset: str | None = Query(None, description="分页 offset（>=0）"),
    tag: str | None = Query(None, description="按标签精确过滤（区分大小写）"),
    db: AsyncSession = Depends(get_db),
    source: WordPressPublishTimeSource = Depends(get_publish_time_source),
):
    """日记列表：全量（合并 WordPress 发布时间）或分页（带标签云与日期集合）"""
    service = FeedService(db, source=source)
    return await service.query(limit=limit, offset=offset, tag=tag)


@router.get("/{diary_id}", response_model=DiaryEntry, response_model_exclude_none=True)
async def get_diary(diary_id: int, db: AsyncSession = Depends(get_db)):
    """获取单条日记"""
    return await FeedService(db).get_entry(diary_id)


@router.post("", response_model=DiaryEntry, dependencies=[Depends(require_admin)])
async def create_diary(body: DiaryCreateRequest, db: AsyncSession = Depends(get_db)):
    """新建日记（分配 id、校验置顶、整表写回）"""
    return await FeedService(db).create_entry(body)


@router.put("/{diary_id}", response_model=DiaryEntry, dependencies=[Depends(require_admin)])
async def update_diary(
    diary_id: int,
    body: DiaryUpdateRequest,
    db: AsyncSession = Depends(get_db),
):
    """按 id 合并更新"""
    return await FeedService(db).update_entry(diary_id, body)


@router.delete("/{diary_id}", response_model=DeleteResult, dependencies=[Depends(require_admin)])
async def delete_diary(diary_id: int, db: AsyncSession = Depends(get_db)):
    """删除日记（评论保留）"""
    await FeedService(db).delete_entry(diary_id)
    return DeleteResult(ok=True)
