"""
Async engine and session factory for the sync store
"""

from sqlalchemy import text
from sqlalchemy.engine import make_url
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import NullPool
from core.config import settings
import logging

logger = logging.getLogger(__name__)

# Scheduled jobs open a session per table and per summary, so connections
# are not pooled between runs.
engine = create_async_engine(
    settings.DATABASE_URL,
    echo=settings.DB_ECHO,
    poolclass=NullPool,
)

async_session_maker = async_sessionmaker(
    engine,
    class_=AsyncSession,
    expire_on_commit=False,
    autoflush=False
)


async def get_session():
    """Yield one session per request"""
    async with async_session_maker() as session:
        yield session


def database_label(url: str = None) -> str:
    """Database URL with the password masked, for logs"""
    return make_url(url or settings.DATABASE_URL).render_as_string(hide_password=True)


async def ping(session: AsyncSession) -> bool:
    """True when the database answers a trivial query"""
    try:
        await session.execute(text("SELECT 1"))
        return True
    except Exception as e:
        logger.error(f"Database ping failed: {e}")
        return False


async def create_tables(bind: AsyncEngine, drop_first: bool = False):
    """Create every table registered on the models metadata"""
    # Importing the package registers the tables on Base.metadata
    from models import Base

    async with bind.begin() as conn:
        if drop_first:
            logger.warning("Dropping sync tables")
            await conn.run_sync(Base.metadata.drop_all)
        await conn.run_sync(Base.metadata.create_all)

    return sorted(Base.metadata.tables)


async def dispose_engine():
    await engine.dispose()
