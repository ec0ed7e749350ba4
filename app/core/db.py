from fastapi import Depends
from sqlalchemy.ext.asyncio import create_async_engine, async_sessionmaker, AsyncSession
from .config import settings
from .base import Base

engine = create_async_engine(settings.POSTGRES_DSN, pool_pre_ping=True)
SessionLocal = async_sessionmaker(engine, expire_on_commit=False, class_=AsyncSession)

def get_session_factory() -> async_sessionmaker[AsyncSession]:
    # Overridden in tests; streaming routes open their own sessions from it.
    return SessionLocal

async def get_session(factory: async_sessionmaker[AsyncSession] = Depends(get_session_factory)):
    async with factory() as session:
        yield session

async def init_models():
    ## In dev-only "create_all" mode, create tables directly; otherwise, migrations own the schema.
    if settings.DB_MANAGE.lower() == "create_all":
        # register every model on Base.metadata
        from app.modules.identity import models as _identity  # noqa: F401
        from app.modules.chats import models as _chats  # noqa: F401
        from app.modules.knowledge import models as _knowledge  # noqa: F401
        async with engine.begin() as conn:
            await conn.exec_driver_sql("CREATE EXTENSION IF NOT EXISTS vector")
            await conn.run_sync(Base.metadata.create_all)
