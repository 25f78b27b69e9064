"""
LedgerGate - Services Package

Statement builders, period locking and their persistence.
"""

from ledgergate.services.balance_provider import (
    AccountBalanceProvider,
    InMemoryBalanceProvider,
    SqlAlchemyBalanceProvider,
)
from ledgergate.services.trial_balance_service import TrialBalanceService
from ledgergate.services.income_statement_service import IncomeStatementService
from ledgergate.services.balance_sheet_service import BalanceSheetService
from ledgergate.services.cash_flow_service import CashFlowService
from ledgergate.services.lock_store import (
    AuditLogSink,
    LockStore,
    InMemoryAuditLogSink,
    InMemoryLockStore,
    SqlAlchemyAuditLogSink,
    SqlAlchemyLockStore,
)
from ledgergate.services.period_lock_service import (
    PeriodLockService,
    LedgerActivityProvider,
    StaticLedgerActivity,
)
from ledgergate.services.report_pipeline import StatementPipeline
