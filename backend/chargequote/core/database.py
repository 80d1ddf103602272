"""
数据库连接管理
"""
from typing import Optional

from sqlalchemy.ext.asyncio import (
    AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine
)
from sqlalchemy.orm import DeclarativeBase

from chargequote.core.config import settings


class Base(DeclarativeBase):
    """ORM基类"""
    pass


def create_engine(url: Optional[str] = None, **kwargs) -> AsyncEngine:
    """创建异步引擎，默认使用配置中的 DATABASE_URL"""
    kwargs.setdefault("echo", settings.DB_ECHO)
    return create_async_engine(url or settings.DATABASE_URL, **kwargs)


def create_session_maker(engine: AsyncEngine) -> async_sessionmaker:
    """创建会话工厂"""
    return async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


async def init_db(engine: AsyncEngine) -> None:
    """创建数据库表"""
    # 导入模型以注册表结构
    from chargequote.models import quote  # noqa: F401

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
