"""
LedgerGate - Test Configuration

Pytest fixtures and configuration.
"""

from datetime import datetime, timezone
from decimal import Decimal
from typing import AsyncGenerator, Callable, List

import pytest
import pytest_asyncio
from httpx import AsyncClient, ASGITransport
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

import ledgergate.models  # noqa: F401
from ledgergate.config import Settings
from ledgergate.database import Base
from ledgergate.dependencies import get_balance_provider, get_lock_store
from ledgergate.schemas.accounting import AccountBalance
from ledgergate.schemas.period import PeriodDescriptor
from ledgergate.schemas.period_lock import Actor
from ledgergate.services.balance_provider import InMemoryBalanceProvider
from ledgergate.services.lock_store import InMemoryLockStore
from ledgergate.services.period_lock_service import PeriodLockService
from ledgergate.services.report_pipeline import StatementPipeline
from ledgergate.utils.permissions import UserRole
from main import app


FIXED_NOW = datetime(2025, 4, 5, 9, 30, tzinfo=timezone.utc)

# Months of 2025 that carry the trading scenario below
SCENARIO_MONTHS = ("2025-01", "2025-02", "2025-03", "2025-04")


# ===========================================
# SETTINGS / PERIODS
# ===========================================

@pytest.fixture
def test_settings() -> Settings:
    return Settings(_env_file=None, database_url_async="sqlite+aiosqlite://")


@pytest.fixture
def fixed_now() -> datetime:
    return FIXED_NOW


@pytest.fixture
def march() -> PeriodDescriptor:
    return PeriodDescriptor.for_month(2025, 3)


# ===========================================
# BALANCES
# ===========================================

@pytest.fixture
def make_balance() -> Callable[..., AccountBalance]:
    """Factory for account balances; amounts may be given as int or str."""

    def _make(
        code: str,
        opening_debit=0,
        opening_credit=0,
        period_debit=0,
        period_credit=0,
        **extra,
    ) -> AccountBalance:
        return AccountBalance(
            account_code=code,
            opening_debit=Decimal(str(opening_debit)),
            opening_credit=Decimal(str(opening_credit)),
            period_debit=Decimal(str(period_debit)),
            period_credit=Decimal(str(period_credit)),
            **extra,
        )

    return _make


@pytest.fixture
def trading_balances(make_balance) -> List[AccountBalance]:
    """
    One month of a small trading business.

    Opening: 100M cash funded by owner's capital.
    Period: 30M cash sales, 10M cash admin expenses, 5M merchandise bought
    on credit, 2M depreciation.
    Closing: cash 120M, pre-tax profit 18M, operating cash flow 20M.
    """
    return [
        make_balance("111", opening_debit=100_000_000, period_debit=30_000_000, period_credit=10_000_000),
        make_balance("156", period_debit=5_000_000),
        make_balance("214", period_credit=2_000_000),
        make_balance("331", period_credit=5_000_000),
        make_balance("411", opening_credit=100_000_000),
        make_balance("511", period_credit=30_000_000),
        make_balance("642", period_debit=12_000_000),
    ]


@pytest.fixture
def balance_provider(trading_balances) -> InMemoryBalanceProvider:
    return InMemoryBalanceProvider({key: trading_balances for key in SCENARIO_MONTHS})


# ===========================================
# LOCKING
# ===========================================

@pytest.fixture
def lock_store() -> InMemoryLockStore:
    return InMemoryLockStore()


@pytest.fixture
def pipeline(balance_provider, lock_store, test_settings) -> StatementPipeline:
    return StatementPipeline(balance_provider, lock_reader=lock_store, settings=test_settings)


@pytest.fixture
def lock_service(lock_store, pipeline, test_settings) -> PeriodLockService:
    return PeriodLockService(lock_store, pipeline, settings=test_settings, clock=lambda: FIXED_NOW)


@pytest.fixture
def chief_accountant() -> Actor:
    return Actor(user_id="u-chief", name="Nguyen Lan", role=UserRole.CHIEF_ACCOUNTANT)


@pytest.fixture
def admin() -> Actor:
    return Actor(user_id="u-admin", name="Tran Minh", role=UserRole.ADMIN)


@pytest.fixture
def super_admin() -> Actor:
    return Actor(user_id="u-root", name="Le Hoa", role=UserRole.SUPER_ADMIN)


@pytest.fixture
def accountant() -> Actor:
    return Actor(user_id="u-acct", name="Pham Duc", role=UserRole.ACCOUNTANT)


# ===========================================
# DATABASE
# ===========================================

@pytest_asyncio.fixture
async def session_factory(tmp_path) -> AsyncGenerator[async_sessionmaker, None]:
    """Session factory over a fresh SQLite database file."""
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'ledgergate_test.db'}")
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False, autoflush=False)

    await engine.dispose()


@pytest_asyncio.fixture
async def db_session(session_factory) -> AsyncGenerator[AsyncSession, None]:
    async with session_factory() as session:
        yield session


# ===========================================
# HTTP CLIENT
# ===========================================

@pytest_asyncio.fixture
async def client(balance_provider, lock_store) -> AsyncGenerator[AsyncClient, None]:
    """HTTP client with in-memory balances and lock storage."""
    app.dependency_overrides[get_balance_provider] = lambda: balance_provider
    app.dependency_overrides[get_lock_store] = lambda: lock_store

    async with AsyncClient(
        transport=ASGITransport(app=app),
        base_url="http://test",
    ) as ac:
        yield ac

    app.dependency_overrides.clear()
