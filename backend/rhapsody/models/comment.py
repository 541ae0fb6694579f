from sqlalchemy import Column, DateTime, Integer, String, Text
from sqlalchemy.sql import func

from ..database import Base


class Comment(Base):
    """评论表 - 只追加

    diary_id 是弱引用（不加外键）：删除日记不会级联删除评论。
    """

    __tablename__ = "comments"

    id = Column(String(40), primary_key=True)
    diary_id = Column(Integer, nullable=False, index=True)
    author = Column(String(64), nullable=False)
    content = Column(Text, nullable=False)
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())
