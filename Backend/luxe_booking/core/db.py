from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.orm import DeclarativeBase

from .config import get_settings


def build_engine(database_url: str):
    options = {"echo": False, "future": True, "pool_pre_ping": True}
    if not database_url.startswith("sqlite"):
        options.update(
            pool_recycle=3600,  # Recycle connections after 1 hour
            pool_size=10,  # Maximum number of connections in the pool
            max_overflow=20,  # Maximum overflow connections
        )
    return create_async_engine(database_url, **options)


settings = get_settings()
engine = build_engine(settings.database_url)
AsyncSessionLocal = async_sessionmaker(engine, expire_on_commit=False, class_=AsyncSession)


class Base(DeclarativeBase):
    pass


async def get_session() -> AsyncSession:
    async with AsyncSessionLocal() as session:
        yield session
