from __future__ import annotations

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from ..models import Profile
from ..schemas import ProfileResponse, ProfileUpdateRequest
from ..utils.errors import StorageError

_PROFILE_ID = 1

DEFAULT_PROFILE = {
    "name": "DailyRhapsody",
    "signature": "君子论迹不论心",
    "avatar": "/avatar.png",
    "location": "杭州",
    "industry": "计算机硬件行业",
    "zodiac": "天秤座",
    "header_bg": "/header-bg.png",
}


class ProfileService:
    """作者资料：库里的值覆盖默认值，空字段回落到默认值。"""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def _row(self) -> Profile | None:
        try:
            return await self.db.get(Profile, _PROFILE_ID)
        except SQLAlchemyError as e:
            raise StorageError("读取资料失败") from e

    @staticmethod
    def _merge(row: Profile | None) -> ProfileResponse:
        data = dict(DEFAULT_PROFILE)
        if row is not None:
            for key in DEFAULT_PROFILE:
                value = getattr(row, key, None)
                if isinstance(value, str) and value:
                    data[key] = value
        return ProfileResponse(**data)

    async def get(self) -> ProfileResponse:
        return self._merge(await self._row())

    async def save(self, updates: ProfileUpdateRequest) -> ProfileResponse:
        row = await self._row()
        if row is None:
            row = Profile(id=_PROFILE_ID)
            self.db.add(row)

        for key, value in updates.model_dump(exclude_none=True).items():
            if key in DEFAULT_PROFILE:
                setattr(row, key, value)

        try:
            await self.db.commit()
        except SQLAlchemyError as e:
            await self.db.rollback()
            raise StorageError("保存资料失败") from e
        return self._merge(row)
