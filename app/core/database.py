"""Async database engine, sessions and schema version check."""
import logging

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncEngine, async_sessionmaker, create_async_engine

from app.models.activitypub import Base, ConfigEntry

logger = logging.getLogger(__name__)

DB_VERSION = 2

class SchemaVersionError(Exception):
    """Database schema does not match the running code."""
    pass

def create_engine(database_url: str) -> AsyncEngine:
    return create_async_engine(database_url, future=True)

def create_sessionmaker(engine: AsyncEngine) -> async_sessionmaker:
    return async_sessionmaker(engine, expire_on_commit=False)

async def init_db(engine: AsyncEngine) -> None:
    """建立資料表並寫入 dbversion（已存在則略過）"""
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    sessionmaker = create_sessionmaker(engine)
    async with sessionmaker() as session:
        entry = await session.get(ConfigEntry, "dbversion")
        if entry is None:
            session.add(ConfigEntry(key="dbversion", value=str(DB_VERSION)))
            await session.commit()
            logger.info("initialized database at version %d", DB_VERSION)

async def check_db_version(engine: AsyncEngine) -> None:
    """啟動時檢查版本，不符即中止"""
    sessionmaker = create_sessionmaker(engine)
    async with sessionmaker() as session:
        try:
            result = await session.execute(
                select(ConfigEntry.value).where(ConfigEntry.key == "dbversion")
            )
        except SQLAlchemyError as e:
            raise SchemaVersionError(f"cannot read database version: {e}") from e
        value = result.scalar_one_or_none()
    if value is None or int(value) != DB_VERSION:
        raise SchemaVersionError(
            f"incorrect database version {value!r}, expected {DB_VERSION}. run init."
        )
