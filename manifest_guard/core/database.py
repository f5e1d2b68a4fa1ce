"""Database configuration and session management."""
from typing import AsyncIterator

from sqlalchemy.ext.asyncio import create_async_engine, AsyncSession, async_sessionmaker
from sqlalchemy.orm import DeclarativeBase
from sqlalchemy import MetaData

from manifest_guard.core.config import settings


def _normalize_async_database_url(database_url: str) -> str:
    """Map legacy / plain PostgreSQL URLs onto the psycopg (v3) async driver."""
    # Accept legacy asyncpg URLs and run with psycopg driver (psycopg 3)
    if database_url.startswith("postgresql+asyncpg://"):
        return database_url.replace("postgresql+asyncpg://", "postgresql+psycopg://", 1)
    
    # Heroku-style postgres:// URLs
    if database_url.startswith("postgres://"):
        return database_url.replace("postgres://", "postgresql+psycopg://", 1)
        
    # Plain postgresql:// goes to the installed psycopg (v3) driver
    if database_url.startswith("postgresql://") and "+psycopg" not in database_url:
        return database_url.replace("postgresql://", "postgresql+psycopg://", 1)
        
    return database_url


# Naming convention for constraints
naming_convention = {
    "ix": "ix_%(column_0_label)s",
    "uq": "uq_%(table_name)s_%(column_0_name)s",
    "ck": "ck_%(table_name)s_%(constraint_name)s",
    "fk": "fk_%(table_name)s_%(column_0_name)s_%(referred_table_name)s",
    "pk": "pk_%(table_name)s"
}

metadata = MetaData(naming_convention=naming_convention)


class Base(DeclarativeBase):
    """Base class for SQLAlchemy models."""
    metadata = metadata


def is_postgres(session: AsyncSession) -> bool:
    """Whether the session is bound to PostgreSQL (advisory locks, FOR UPDATE)."""
    return session.get_bind().dialect.name == "postgresql"


# Create async engine
database_url = _normalize_async_database_url(settings.DATABASE_URL)

engine_kwargs = {
    "echo": settings.DEBUG,
    "pool_pre_ping": True,     # Avoid stale connections
}

if database_url.startswith("sqlite"):
    engine = create_async_engine(
        database_url,
        **engine_kwargs,
    )
else:
    engine = create_async_engine(
        database_url,
        pool_size=settings.DATABASE_POOL_SIZE,
        max_overflow=settings.DATABASE_MAX_OVERFLOW,
        pool_recycle=1800,      # Recycle connections every 30 min
        **engine_kwargs,
    )


# Session factory
async_session_maker = async_sessionmaker(
    engine,
    class_=AsyncSession,
    expire_on_commit=False,
)


async def get_db() -> AsyncIterator[AsyncSession]:
    """Dependency to get database session."""
    async with async_session_maker() as session:
        yield session
