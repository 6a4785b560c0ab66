from sqlalchemy.ext.asyncio import create_async_engine, AsyncSession
from sqlalchemy.orm import sessionmaker

from grid_command_center.core.config import settings

DATABASE_URL = settings.sqlalchemy_database_uri


def _engine_kwargs(url: str) -> dict:
    if url.startswith("postgresql"):
        return {
            "pool_pre_ping": True,
            "pool_size": 5,
            "max_overflow": 10,
            "connect_args": {"timeout": settings.db_timeout},
        }
    # aiosqlite: one connection shared across the event loop
    return {"connect_args": {"check_same_thread": False}}


engine = create_async_engine(DATABASE_URL, echo=False, **_engine_kwargs(DATABASE_URL))

async_session = sessionmaker(
    bind=engine,
    class_=AsyncSession,
    expire_on_commit=False
)


async def get_db():
    async with async_session() as session:
        yield session


async def init_models() -> None:
    """Create the audit tables if they do not exist yet."""
    from grid_command_center.models import Base

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)


# Alias used by routers for dependency injection
get_session = get_db
