"""共通 — 非同期 DB エンジンとセッションファクトリ"""

from sqlalchemy import MetaData
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, create_async_engine
from sqlalchemy.orm import sessionmaker


def create_engine(database_url: str, **kwargs) -> AsyncEngine:
    return create_async_engine(database_url, echo=False, **kwargs)


def create_session_factory(engine: AsyncEngine) -> sessionmaker:
    return sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


async def create_schema(engine: AsyncEngine, metadata: MetaData) -> None:
    """テーブルが無ければ作成する (開発・テスト用)。"""
    async with engine.begin() as conn:
        await conn.run_sync(metadata.create_all)
