from __future__ import annotations

import pytest
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import NullPool

from rollflow.db import models  # noqa: F401
from rollflow.db.base import Base
from tests.factories import make_job_order, persist


@pytest.fixture
async def engine(tmp_path):
    eng = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'rollflow.db'}", poolclass=NullPool)
    async with eng.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield eng
    await eng.dispose()


@pytest.fixture
def session_factory(engine):
    return async_sessionmaker(engine, expire_on_commit=False, class_=AsyncSession)


@pytest.fixture
async def session(session_factory):
    async with session_factory() as s:
        yield s


@pytest.fixture
async def job_order(session_factory):
    [j] = await persist(session_factory, make_job_order())
    return j


@pytest.fixture
async def printed_job_order(session_factory):
    [j] = await persist(session_factory, make_job_order(order_ref="SO-2002", requires_printing=True))
    return j
