import logging
import os
from pathlib import Path
from typing import Optional

from sqlalchemy.ext.asyncio import AsyncEngine, async_sessionmaker, create_async_engine
from sqlalchemy.orm import declarative_base
from dotenv import load_dotenv

from config import env_flag

load_dotenv()

logger = logging.getLogger(__name__)

# Token store connection details (PostgreSQL)
DB_HOST = os.getenv("DB_HOST")
DB_PORT = os.getenv("DB_PORT", "5432")
DB_NAME = os.getenv("DB_NAME")
DB_USER = os.getenv("DB_USER")
DB_PASSWORD = os.getenv("DB_PASSWORD")

# Prefer Postgres when all required vars are present; otherwise fall back to SQLite
use_postgres = all([DB_HOST, DB_PORT, DB_NAME, DB_USER, DB_PASSWORD])

if use_postgres:
    DATABASE_URL = f"postgresql+asyncpg://{DB_USER}:{DB_PASSWORD}@{DB_HOST}:{DB_PORT}/{DB_NAME}"
    logger.info("[DB] Using PostgreSQL via asyncpg (env vars detected)")
else:
    base_dir = Path(__file__).resolve().parent
    sqlite_path = base_dir / "push_tokens.db"
    DATABASE_URL = f"sqlite+aiosqlite:///{sqlite_path.as_posix()}"
    logger.info("[DB] Using SQLite fallback at %s (Postgres env not set)", sqlite_path)

engine = create_async_engine(DATABASE_URL, echo=env_flag("DB_ECHO"))

AsyncSessionLocal = async_sessionmaker(
    bind=engine,
    expire_on_commit=False
)

Base = declarative_base()


async def create_all(bind: Optional[AsyncEngine] = None) -> None:
    """Create the users / user_groups / device_tokens tables if missing."""
    import models  # noqa: F401  (registers tables on Base.metadata)

    target = bind or engine
    async with target.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    logger.info("[DB] Token tables ready on %s", target.url.get_backend_name())
