"""Pytest configuration and fixtures."""

import os
from typing import AsyncGenerator

import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

# Set test environment
os.environ["ENVIRONMENT"] = "test"
os.environ["DATABASE_URL"] = "sqlite+aiosqlite:///:memory:"
os.environ["DEBUG"] = "false"
os.environ["ADMIN_TOKEN"] = "test-admin-token"
os.environ["GAS_SPONSOR_PRIVATE_KEY"] = ""

from nullwallet.ledger.accounts import LedgerAccount
from nullwallet.ledger.models import Base
from nullwallet.ledger.repository import LedgerRepository
from nullwallet.utils.locks import clear_locks


@pytest.fixture(autouse=True)
def reset_locks():
    """Locks are bound to the loop that created them."""
    clear_locks()
    yield
    clear_locks()


@pytest_asyncio.fixture
async def db_engine(tmp_path):
    """File-backed sqlite so every session gets its own connection."""
    engine = create_async_engine(
        f"sqlite+aiosqlite:///{tmp_path / 'test.db'}",
        echo=False,
    )

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    await engine.dispose()


@pytest_asyncio.fixture
async def session_factory(db_engine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(
        bind=db_engine,
        class_=AsyncSession,
        expire_on_commit=False,
        autoflush=False,
    )


@pytest_asyncio.fixture
async def db_session(session_factory) -> AsyncGenerator[AsyncSession, None]:
    """Create database session for testing."""
    async with session_factory() as session:
        yield session


@pytest_asyncio.fixture
async def ledger_repo(db_session: AsyncSession) -> LedgerRepository:
    """Create ledger repository for testing."""
    return LedgerRepository(db_session)


@pytest_asyncio.fixture
async def ledger(session_factory) -> LedgerAccount:
    return LedgerAccount(session_factory)
