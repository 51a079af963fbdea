from sqlalchemy.ext.asyncio import AsyncSession, create_async_engine, async_sessionmaker
from sqlalchemy.orm import DeclarativeBase

from recapbot.core.config import settings


def _engine_options(url: str) -> dict:
    if url.startswith("sqlite"):
        return {"connect_args": {"check_same_thread": False}}
    options = {"pool_pre_ping": True}
    # Private-network Postgres (e.g. .flycast, .internal) is reached without TLS
    if "postgresql+asyncpg" in url and (".flycast" in url or ".internal" in url):
        options["connect_args"] = {"ssl": False}
    return options


engine = create_async_engine(
    settings.DATABASE_URL,
    echo=settings.LOG_LEVEL.upper() == "DEBUG",
    **_engine_options(settings.DATABASE_URL),
)
async_session_maker = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


class Base(DeclarativeBase):
    pass


async def get_db():
    """Request-scoped session; uncommitted work is rolled back on error."""
    async with async_session_maker() as session:
        try:
            yield session
        except Exception:
            await session.rollback()
            raise


async def init_db():
    # Registers every model on Base.metadata
    from recapbot import models  # noqa: F401

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
