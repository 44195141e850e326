from typing import AsyncGenerator

from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.orm import declarative_base

from coaching.core.config import settings


def make_engine(database_url: str) -> AsyncEngine:
    """
    pool_pre_ping / pool_recycle guard against connections the database closed
    while idle. SQLite files (tests, local runs) get the default pool.
    """
    if database_url.startswith("sqlite"):
        return create_async_engine(database_url, echo=False)
    return create_async_engine(
        database_url,
        echo=False,
        pool_pre_ping=True,
        pool_recycle=300,
    )


def make_session_factory(bind: AsyncEngine) -> async_sessionmaker:
    # Consumers and scans read attributes after commit
    return async_sessionmaker(bind=bind, class_=AsyncSession, expire_on_commit=False)


engine = make_engine(settings.database_url)

AsyncSessionLocal = make_session_factory(engine)

Base = declarative_base()


async def get_db() -> AsyncGenerator[AsyncSession, None]:
    async with AsyncSessionLocal() as session:
        yield session
