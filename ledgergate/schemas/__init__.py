"""
LedgerGate - Pydantic Schemas Package
"""

from ledgergate.schemas.period import PeriodDescriptor
from ledgergate.schemas.accounting import (
    AccountBalance,
    TrialBalanceFilter,
    TrialBalanceRow,
    BalanceCheckPart,
    BalanceCheckResult,
    DataIntegrityWarning,
    TrialBalanceReport,
    TrialBalanceGroup,
)
from ledgergate.schemas.statements import (
    StatementLine,
    StatementValidation,
    IncomeStatementReport,
    BalanceSheetReport,
    CashFlowReport,
    StatementBundle,
    HealthCheck,
    StatementHealth,
)
from ledgergate.schemas.period_lock import (
    Actor,
    PeriodLockRecord,
    LockAuditEvent,
    LockChecklist,
    LockCheckItem,
    CheckSeverity,
    CanModifyResult,
)
