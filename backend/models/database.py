"""
Database connection and session management.
Only transcription history is persisted; the batch queue lives in memory.
"""

from datetime import datetime
from pathlib import Path

from sqlalchemy import Column, Integer, DateTime, select
from sqlalchemy.ext.asyncio import create_async_engine, AsyncSession
from sqlalchemy.orm import sessionmaker, declarative_base

from config import settings

# SQLite with async support
DATABASE_URL = settings.database_url.replace("sqlite:///", "sqlite+aiosqlite:///")

engine = create_async_engine(
    DATABASE_URL,
    echo=settings.debug,
    connect_args={
        "timeout": 30,  # Wait up to 30 seconds for locks
        "check_same_thread": False,
    },
    pool_pre_ping=True,
)
async_session = sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)

Base = declarative_base()


class SchemaVersion(Base):
    """Tracks the database schema version for future migrations."""
    __tablename__ = "schema_version"
    id = Column(Integer, primary_key=True)
    version = Column(Integer, nullable=False)
    updated_at = Column(DateTime, default=datetime.utcnow)


async def init_db():
    """Create tables and record the initial schema version."""
    # Import models here to ensure they are registered with Base metadata
    from models.history import HistoryEntry  # noqa: F401

    db_path = Path(settings.database_url.replace("sqlite:///", ""))
    db_path.parent.mkdir(parents=True, exist_ok=True)

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

        result = await conn.execute(select(SchemaVersion).limit(1))
        if result.first() is None:
            await conn.execute(SchemaVersion.__table__.insert().values(version=1))
