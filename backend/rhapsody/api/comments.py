"""Diary comments API"""

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from ..database import get_db
from ..schemas import CommentCreateRequest, CommentResponse
from ..services import CommentService

router = APIRouter(prefix="/diaries", tags=["comments"])


@router.get("/{diary_id}/comments", response_model=list[CommentResponse])
async def list_comments(diary_id: int, db: AsyncSession = Depends(get_db)):
    """某条日记的评论（按时间升序）"""
    return await CommentService(db).list(diary_id)


@router.post("/{diary_id}/comments", response_model=CommentResponse)
async def add_comment(
    diary_id: int,
    body: CommentCreateRequest,
    db: AsyncSession = Depends(get_db),
):
    return await CommentService(db).append(diary_id, body.author, body.content)
