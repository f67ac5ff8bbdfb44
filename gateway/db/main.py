from collections.abc import AsyncGenerator

from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine
from sqlmodel import SQLModel

from gateway.core.config import Config


def build_engine(database_url: str, **engine_kwargs) -> AsyncEngine:
    connect_args: dict = {}
    if database_url.startswith("sqlite"):
        connect_args["check_same_thread"] = False
    return create_async_engine(
        database_url, pool_pre_ping=True, connect_args=connect_args, **engine_kwargs
    )


def build_session_maker(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


async_engine = build_engine(Config.DATABASE_URL)
async_session_maker = build_session_maker(async_engine)


async def init_db(engine: AsyncEngine = async_engine) -> None:
    # register tables on the metadata before create_all
    import gateway.api.merchants.models  # noqa: F401
    import gateway.api.payments.models  # noqa: F401

    async with engine.begin() as conn:
        await conn.run_sync(SQLModel.metadata.create_all)


async def get_session() -> AsyncGenerator[AsyncSession, None]:
    async with async_session_maker() as session:
        yield session
