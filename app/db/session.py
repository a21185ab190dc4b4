from typing import Optional
from sqlalchemy.ext.asyncio import create_async_engine, AsyncSession, AsyncEngine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import NullPool
from app.core.config import settings


def make_engine(url: Optional[str] = None, pooled: bool = True) -> AsyncEngine:
    """Engine for the API (pooled) or for a worker task that owns its event loop (unpooled)."""
    url = url or settings.DATABASE_URL
    if not pooled:
        return create_async_engine(url, future=True, echo=False, poolclass=NullPool)
    kwargs = {}
    if not url.startswith("sqlite"):
        kwargs["pool_pre_ping"] = True
    return create_async_engine(url, future=True, echo=False, **kwargs)


def make_session_factory(bind: AsyncEngine) -> sessionmaker:
    return sessionmaker(bind, class_=AsyncSession, expire_on_commit=False)


engine = make_engine()
AsyncSessionLocal = make_session_factory(engine)


async def get_db():
    async with AsyncSessionLocal() as session:
        yield session
