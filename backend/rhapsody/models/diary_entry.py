from sqlalchemy import Boolean, Column, Integer, String, Text

from ..database import Base


class DiaryEntryRow(Base):
    """日记表 - 整个集合按 position 顺序整体读写

    说明：
    - id 由 FeedService 分配（max + 1），不使用数据库自增。
    - tags / images 以 JSON 数组文本存储，顺序即展示顺序。
    - published_at 原样保存 ISO 字符串，保留上游带的时区偏移。
    """

    __tablename__ = "diary_entries"

    id = Column(Integer, primary_key=True, autoincrement=False)
    position = Column(Integer, nullable=False, default=0)
    date = Column(String(10), nullable=False, index=True)
    published_at = Column(String(64), nullable=True)
    pinned = Column(Boolean, nullable=False, default=False)
    summary = Column(Text, nullable=False, default="")
    tags_json = Column(Text, nullable=False, default="[]")
    images_json = Column(Text, nullable=False, default="[]")


class CollectionMeta(Base):
    """集合级别的计数器（例如 id 高水位，保证删除后的 id 不被复用）"""

    __tablename__ = "collection_meta"

    key = Column(String(64), primary_key=True)
    value = Column(Integer, nullable=False, default=0)
