from contextlib import asynccontextmanager
from pathlib import Path
from typing import AsyncGenerator

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from ..models import Base


def sqlite_url(path: str | Path) -> str:
    """Build an aiosqlite URL for a database file."""
    return f"sqlite+aiosqlite:///{Path(path)}"


@asynccontextmanager
async def open_database(
    path: str | Path,
) -> AsyncGenerator[async_sessionmaker[AsyncSession], None]:
    """
    Open the SQLite file at ``path``, creating the tables if missing.

    The engine lives only for the duration of the context so the file is fully
    closed again before it is hashed or uploaded by the backup layer.
    """
    engine = create_async_engine(sqlite_url(path), echo=False)
    try:
        async with engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)
        yield async_sessionmaker(
            bind=engine,
            class_=AsyncSession,
            autocommit=False,
            autoflush=False,
            expire_on_commit=False,
        )
    finally:
        await engine.dispose()
