from pathlib import Path

from sqlalchemy.ext.asyncio import create_async_engine, AsyncSession, async_sessionmaker
from sqlalchemy.orm import declarative_base
from sqlalchemy import event, text
from .config import settings

# SQLite 默认优化：
# - busy_timeout：降低并发写入下的 “database is locked”
# - WAL：读请求不被整表替换的写事务阻塞
_is_sqlite = str(settings.database_url or "").startswith("sqlite")
_connect_args = {"timeout": 30} if _is_sqlite else {}

engine = create_async_engine(
    settings.database_url,
    echo=settings.sql_echo,
    pool_pre_ping=True,
    future=True,
    connect_args=_connect_args,
)

if _is_sqlite:
    @event.listens_for(engine.sync_engine, "connect")
    def _set_sqlite_pragma(dbapi_connection, _connection_record):
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA journal_mode=WAL;")
        cursor.execute("PRAGMA synchronous=NORMAL;")
        cursor.execute("PRAGMA busy_timeout=30000;")
        cursor.close()

AsyncSessionLocal = async_sessionmaker(
    engine,
    class_=AsyncSession,
    expire_on_commit=False
)

# Base class for models
Base = declarative_base()


async def get_db():
    """Dependency for getting database session"""
    async with AsyncSessionLocal() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise
        finally:
            await session.close()


async def init_db():
    """Initialize database tables"""
    # 确保所有模型都已注册到 Base.metadata（单独运行 init_db.py 时同样生效）
    from . import models  # noqa: F401

    if _is_sqlite:
        db_file = str(settings.database_url).split(":///", 1)[-1]
        if db_file and db_file != ":memory:":
            Path(db_file).parent.mkdir(parents=True, exist_ok=True)

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
        await _ensure_indexes(conn)


async def _ensure_indexes(conn) -> None:
    """补齐常用查询索引（IF NOT EXISTS 同时兼容 SQLite / PostgreSQL）。"""
    # 全量读取按 position 顺序返回
    await conn.execute(
        text("CREATE INDEX IF NOT EXISTS idx_diary_entries_position ON diary_entries (position)")
    )
    # 评论按记录 + 时间读取
    await conn.execute(
        text("CREATE INDEX IF NOT EXISTS idx_comments_diary_created ON comments (diary_id, created_at)")
    )
