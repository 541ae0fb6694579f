from sqlalchemy import Column, DateTime, Integer, String
from sqlalchemy.sql import func

from ..database import Base


class Profile(Base):
    """作者资料（单行表，id 固定为 1）"""

    __tablename__ = "profile"

    id = Column(Integer, primary_key=True)
    name = Column(String(100))
    signature = Column(String(255))
    avatar = Column(String(512))
    location = Column(String(100))
    industry = Column(String(100))
    zodiac = Column(String(50))
    header_bg = Column(String(512))
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())
