from typing import Annotated
from fastapi import Depends
from sqlmodel import SQLModel
from sqlmodel.ext.asyncio.session import AsyncSession
from sqlalchemy.orm import sessionmaker
from sqlalchemy.ext.asyncio import AsyncEngine, create_async_engine


from .settings import settings


def build_engine(url: str = settings.database_url) -> AsyncEngine:
    engine_kwargs = {"echo": settings.db_echo, "future": True}
    if not url.startswith("sqlite"):
        engine_kwargs.update(
            pool_size=settings.db_pool_size,
            max_overflow=settings.db_max_overflow,
            pool_pre_ping=True,
            pool_recycle=300,  # 5 minutes, plays well with poolers
        )
    return create_async_engine(url, **engine_kwargs)


async_engine = build_engine()


async def init_db(engine: AsyncEngine = async_engine):
    async with engine.begin() as conn:
        await conn.run_sync(SQLModel.metadata.create_all)


def build_session_maker(engine: AsyncEngine) -> sessionmaker:
    return sessionmaker(
        bind=engine,
        class_=AsyncSession,
        expire_on_commit=False,
        autoflush=False
    )


async_session_maker = build_session_maker(async_engine)


async def get_session():
    async with async_session_maker() as session:
        yield session


SessionDep = Annotated[AsyncSession, Depends(get_session)]
