"""
Database session management.

expire_on_commit=False keeps loaded rows usable after the unit commits, which the
orchestrator relies on when it builds response shapes.
"""
from contextlib import asynccontextmanager
from sqlalchemy.ext.asyncio import create_async_engine, async_sessionmaker, AsyncSession
from sqlalchemy.pool import NullPool
from salonpass.core.config import settings


def build_engine(database_url: str = settings.DATABASE_URL):
    """Create the async engine; SQLite URLs get no pool sizing"""
    if database_url.startswith("sqlite"):
        return create_async_engine(database_url, echo=False, future=True)
    
    if settings.ENVIRONMENT == "worker":
        # Celery workers run each task in a fresh event loop
        return create_async_engine(database_url, echo=False, future=True, poolclass=NullPool)
    
    return create_async_engine(
        database_url,
        echo=False,  # Set to True for SQL debugging
        future=True,
        pool_pre_ping=True,  # Verify connections before using
        pool_size=10,
        max_overflow=20,
    )


def build_session_factory(bind) -> async_sessionmaker:
    return async_sessionmaker(
        bind,
        class_=AsyncSession,
        expire_on_commit=False,
        autoflush=False,
    )


engine = build_engine()
async_session = build_session_factory(engine)


async def init_models(bind=None) -> None:
    """Create missing tables"""
    from salonpass.db.base import Base

    async with (bind or engine).begin() as conn:
        await conn.run_sync(Base.metadata.create_all)


async def get_db():
    """
    Dependency for FastAPI endpoints.
    Yields async database session and ensures cleanup.
    """
    async with async_session() as session:
        try:
            yield session
        finally:
            await session.close()


@asynccontextmanager
async def get_db_context():
    """Session context for Celery tasks and scripts"""
    async with async_session() as session:
        try:
            yield session
        finally:
            await session.close()
