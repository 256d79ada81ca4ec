from sqlalchemy.ext.asyncio import create_async_engine, AsyncSession
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import NullPool
from sqlmodel import SQLModel
from src.core.config import settings

# Import ALL models to ensure they're registered with SQLModel.metadata
from src.modules.imagery.models import ProcessedImageRecord  # noqa: F401

# Create async engine
# Pre-ping replaces pooled connections the server has dropped
engine = create_async_engine(
    settings.DATABASE_URL, echo=False, future=True, pool_pre_ping=True
)

# Create async session factory
async_session_maker = sessionmaker(
    engine, class_=AsyncSession, expire_on_commit=False
)


def create_worker_session_maker(database_url: str = None):
    """Engine and session factory for a single worker event loop.

    Celery tasks run each request in a fresh event loop, and pooled
    connections cannot cross loops, so workers use NullPool.
    """
    worker_engine = create_async_engine(
        database_url or settings.DATABASE_URL,
        echo=False,
        future=True,
        poolclass=NullPool
    )
    return worker_engine, sessionmaker(
        worker_engine, class_=AsyncSession, expire_on_commit=False
    )


async def create_db_and_tables(bind=None):
    """Create all tables if they don't exist.

    Uses checkfirst=True to avoid errors when tables already exist.
    """
    async with (bind or engine).begin() as conn:
        await conn.run_sync(lambda sync_conn: SQLModel.metadata.create_all(sync_conn, checkfirst=True))


async def get_session() -> AsyncSession:
    async with async_session_maker() as session:
        yield session
