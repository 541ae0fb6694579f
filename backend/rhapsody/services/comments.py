from __future__ import annotations

import logging
import uuid
from datetime import datetime, timezone

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from ..models import Comment
from ..schemas import CommentResponse
from ..utils.errors import StorageError, ValidationError

logger = logging.getLogger(__name__)

AUTHOR_MAX_LEN = 64
CONTENT_MAX_LEN = 2000
DEFAULT_AUTHOR = "匿名"


def _to_utc(dt: datetime) -> datetime:
    # SQLite 读回来的是 naive 时间，写入时统一是 UTC
    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


def _to_response(row: Comment) -> CommentResponse:
    return CommentResponse(
        id=row.id,
        diary_id=int(row.diary_id),
        author=row.author,
        content=row.content,
        created_at=_to_utc(row.created_at),
    )


class CommentService:
    """按日记追加/读取评论（只追加，不修改不删除）"""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def list(self, diary_id: int) -> list[CommentResponse]:
        try:
            result = await self.db.execute(
                select(Comment)
                .where(Comment.diary_id == diary_id)
                .order_by(Comment.created_at.asc())
            )
        except SQLAlchemyError as e:
            raise StorageError("读取评论失败") from e
        return [_to_response(row) for row in result.scalars().all()]

    async def append(
        self, diary_id: int, author: str | None, content: str | None
    ) -> CommentResponse:
        author_text = (author or "").strip()[:AUTHOR_MAX_LEN] or DEFAULT_AUTHOR
        content_text = (content or "").strip()[:CONTENT_MAX_LEN]
        if not content_text:
            raise ValidationError("内容不能为空")

        row = Comment(
            id=uuid.uuid4().hex,
            diary_id=diary_id,
            author=author_text,
            content=content_text,
            created_at=datetime.now(timezone.utc),
        )
        try:
            self.db.add(row)
            await self.db.commit()
        except SQLAlchemyError as e:
            await self.db.rollback()
            logger.exception("[COMMENTS] Failed to append comment diary_id=%s", diary_id)
            raise StorageError("保存评论失败") from e

        logger.info("[COMMENTS] Appended comment id=%s diary_id=%s", row.id, diary_id)
        return _to_response(row)
