from typing import AsyncIterator
from sqlalchemy import AsyncAdaptedQueuePool, NullPool
from sqlalchemy.ext.asyncio import (
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)

from app.db.base import Base
from app.db.config import DatabaseSettings
settings = DatabaseSettings()
class DatabaseManager:
    def __init__(self, url: str | None = None):
        url = url or settings.url  # mysql이면 driver 자동 보정
        kwargs = {}
        if url.startswith("mysql"):
            kwargs = dict(
                poolclass=AsyncAdaptedQueuePool,
                pool_recycle=28000,      # RDS wait_timeout 대비
                pool_pre_ping=True,      # 죽은 커넥션 사전 감지
            )
        elif url.startswith("sqlite"):
            # aiosqlite connections must not outlive the event loop that opened them
            kwargs = dict(poolclass=NullPool)
        self.engine = create_async_engine(url, **kwargs)
        self.session_factory = async_sessionmaker(
            bind=self.engine,
            expire_on_commit=False,
        )

    async def create_all(self) -> None:
        # importing the models registers them on Base.metadata
        from app.db.models import audio, user  # noqa: F401
        async with self.engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)


db_manager = DatabaseManager()
SESSION = db_manager.session_factory


async def get_db() -> AsyncIterator[AsyncSession]:
    """FastAPI dependency: one session per request."""
    async with SESSION() as db:
        yield db
