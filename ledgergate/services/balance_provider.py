"""
LedgerGate - Account Balance Providers

The balance provider is the boundary to the posted ledger. Every statement
is derived from the balances it returns for a period.

Providers:
- InMemoryBalanceProvider: explicit snapshots keyed by period, for open
  periods whose figures are supplied by the caller and for tests
- SqlAlchemyBalanceProvider: monthly rows in ``account_period_balances``
  aggregated over the requested date range
"""

import asyncio
import logging
from decimal import Decimal
from typing import Dict, Iterable, List, Optional, Protocol, Tuple

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from ledgergate.models.accounting import AccountPeriodBalance
from ledgergate.schemas.accounting import AccountBalance, ZERO
from ledgergate.schemas.period import PeriodDescriptor
from ledgergate.utils.error_handling import TransientProviderException

logger = logging.getLogger(__name__)


class AccountBalanceProvider(Protocol):
    """Source of per-account balances for a period."""

    async def get_balances(self, period: PeriodDescriptor) -> List[AccountBalance]:
        ...


def calculate_closing_balance(
    opening_debit: Decimal,
    opening_credit: Decimal,
    period_debit: Decimal,
    period_credit: Decimal,
) -> Tuple[Decimal, Decimal]:
    """
    Net the opening balance and period movement onto one side.

    Returns (closing_debit, closing_credit); at most one is non-zero.
    """
    net = (opening_debit - opening_credit) + (period_debit - period_credit)
    if net >= 0:
        return net, ZERO
    return ZERO, -net


class InMemoryBalanceProvider:
    """Balances held in memory, keyed by canonical period key."""

    def __init__(self, snapshots: Optional[Dict[str, Iterable[AccountBalance]]] = None):
        self._snapshots: Dict[str, Tuple[AccountBalance, ...]] = {}
        for key, balances in (snapshots or {}).items():
            self.set_balances(key, balances)

    def set_balances(self, period_key: str, balances: Iterable[AccountBalance]) -> None:
        self._snapshots[period_key] = tuple(balances)

    async def get_balances(self, period: PeriodDescriptor) -> List[AccountBalance]:
        return list(self._snapshots.get(period.key, ()))


class SqlAlchemyBalanceProvider:
    """Aggregates monthly balance rows over the period's date range."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def get_balances(self, period: PeriodDescriptor) -> List[AccountBalance]:
        months = period.months()
        first, last = months[0], months[-1]
        ordinal = AccountPeriodBalance.fiscal_year * 100 + AccountPeriodBalance.fiscal_month

        result = await self.db.execute(
            select(AccountPeriodBalance)
            .where(ordinal.between(first[0] * 100 + first[1], last[0] * 100 + last[1]))
            .order_by(
                AccountPeriodBalance.account_code,
                AccountPeriodBalance.fiscal_year,
                AccountPeriodBalance.fiscal_month,
            )
        )

        # Opening comes from the earliest month in range; movements are summed.
        aggregated: Dict[str, Dict] = {}
        for row in result.scalars():
            entry = aggregated.get(row.account_code)
            if entry is None:
                aggregated[row.account_code] = {
                    "account_code": row.account_code,
                    "account_name": row.account_name or "",
                    "parent_code": row.parent_code,
                    "opening_debit": row.opening_debit,
                    "opening_credit": row.opening_credit,
                    "period_debit": row.period_debit,
                    "period_credit": row.period_credit,
                }
            else:
                entry["period_debit"] += row.period_debit
                entry["period_credit"] += row.period_credit

        balances = []
        for entry in aggregated.values():
            closing_debit, closing_credit = calculate_closing_balance(
                entry["opening_debit"], entry["opening_credit"],
                entry["period_debit"], entry["period_credit"],
            )
            balances.append(AccountBalance(
                **entry,
                closing_debit=closing_debit,
                closing_credit=closing_credit,
            ))
        return balances


async def fetch_balances(
    provider: AccountBalanceProvider,
    period: PeriodDescriptor,
    timeout: float,
) -> List[AccountBalance]:
    """
    Fetch balances, converting slow or failing providers into a retryable
    TransientProviderException.
    """
    try:
        return await asyncio.wait_for(provider.get_balances(period), timeout=timeout)
    except TransientProviderException:
        raise
    except asyncio.TimeoutError as e:
        logger.error(f"Balance provider timed out after {timeout}s for {period.key}")
        raise TransientProviderException(
            f"provider did not respond within {timeout} seconds for {period.key}",
            original_error=e,
        )
    except (SQLAlchemyError, ConnectionError, OSError) as e:
        logger.error(f"Balance provider failed for {period.key}: {e}")
        raise TransientProviderException(str(e), original_error=e)
