"""Author profile API"""

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from ..database import get_db
from ..schemas import ProfileResponse, ProfileUpdateRequest
from ..services import ProfileService
from .deps import require_admin

router = APIRouter(prefix="/profile", tags=["profile"])


@router.get("", response_model=ProfileResponse)
async def get_profile(db: AsyncSession = Depends(get_db)):
    return await ProfileService(db).get()


@router.put("", response_model=ProfileResponse, dependencies=[Depends(require_admin)])
async def update_profile(body: ProfileUpdateRequest, db: AsyncSession = Depends(get_db)):
    """部分更新：只覆盖传入的非空字段"""
    return await ProfileService(db).save(body)
