"""
LedgerGate - FastAPI Dependencies

Shared dependencies for the acting user, balance data, lock storage and
the services built on them.

Authentication happens upstream; the gateway in front of this service
passes the acting user in ``X-Actor-*`` headers.
"""

import asyncio
from collections import defaultdict
from typing import Dict, Optional

from fastapi import Depends, Header, Path
from sqlalchemy.ext.asyncio import AsyncSession

from ledgergate.config import Settings, get_settings
from ledgergate.database import async_session_maker, get_async_session
from ledgergate.schemas.period import PeriodDescriptor
from ledgergate.schemas.period_lock import Actor
from ledgergate.services.balance_provider import AccountBalanceProvider, SqlAlchemyBalanceProvider
from ledgergate.services.lock_store import LockStore, SqlAlchemyLockStore
from ledgergate.services.period_lock_service import PeriodLockService
from ledgergate.services.report_pipeline import StatementPipeline
from ledgergate.utils.error_handling import AuthenticationException, ValidationException
from ledgergate.utils.permissions import UserRole


_lock_store: Optional[SqlAlchemyLockStore] = None
_lock_mutexes: Dict[str, asyncio.Lock] = defaultdict(asyncio.Lock)


async def get_current_actor(
    x_actor_id: Optional[str] = Header(None),
    x_actor_name: Optional[str] = Header(None),
    x_actor_role: Optional[str] = Header(None),
) -> Actor:
    """
    Build the acting user from request headers.

    Raises:
        AuthenticationException: no actor id supplied
        ValidationException: unknown role
    """
    if not x_actor_id:
        raise AuthenticationException("X-Actor-Id header is required")
    try:
        role = UserRole((x_actor_role or UserRole.VIEWER.value).lower())
    except ValueError:
        raise ValidationException(
            message=f"Unknown role '{x_actor_role}'",
            field="X-Actor-Role",
            details={"allowed": [r.value for r in UserRole]},
        )
    return Actor(user_id=x_actor_id, name=x_actor_name, role=role)


def get_period(period: str = Path(..., description="Period key: YYYY-MM, YYYY-Qn or YYYY")) -> PeriodDescriptor:
    return PeriodDescriptor.parse(period)


async def get_balance_provider(
    db: AsyncSession = Depends(get_async_session),
) -> AccountBalanceProvider:
    return SqlAlchemyBalanceProvider(db)


def get_lock_store() -> LockStore:
    """Process-wide lock store over the application session factory."""
    global _lock_store
    if _lock_store is None:
        _lock_store = SqlAlchemyLockStore(async_session_maker)
    return _lock_store


async def get_statement_pipeline(
    provider: AccountBalanceProvider = Depends(get_balance_provider),
    store: LockStore = Depends(get_lock_store),
    settings: Settings = Depends(get_settings),
) -> StatementPipeline:
    return StatementPipeline(provider, lock_reader=store, settings=settings)


async def get_period_lock_service(
    pipeline: StatementPipeline = Depends(get_statement_pipeline),
    store: LockStore = Depends(get_lock_store),
    settings: Settings = Depends(get_settings),
) -> PeriodLockService:
    return PeriodLockService(store, pipeline, settings=settings, mutexes=_lock_mutexes)
