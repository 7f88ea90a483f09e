import pytest
from sqlalchemy.ext.asyncio import async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

import models  # noqa: F401
from database import Base
from doubles import FakeStore, FakeTransport
from resolver import GroupMember


@pytest.fixture
def transport() -> FakeTransport:
    return FakeTransport()


@pytest.fixture
def store() -> FakeStore:
    return FakeStore(
        tokens={"user-1": ["tok-a", "tok-b"], "user-2": ["tok-b", "tok-c"], "user-empty": []},
        emails={"ana@example.com": "user-1", "nobody-tokens@example.com": "user-empty"},
        groups={
            "runners": [
                GroupMember("user-1", email="ana@example.com", name="Ana"),
                GroupMember("user-2", name="Ben"),
            ],
            "legacy": [GroupMember("user-empty", legacy_token="tok-legacy"), GroupMember("user-3")],
        },
    )


@pytest.fixture
async def session_factory():
    engine = create_async_engine(
        "sqlite+aiosqlite://",
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield async_sessionmaker(bind=engine, expire_on_commit=False)
    await engine.dispose()
