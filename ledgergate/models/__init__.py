"""
LedgerGate - SQLAlchemy Models Package

This package contains all database models for the application.
"""

from ledgergate.models.base import BaseModel, TimestampMixin
from ledgergate.models.accounting import AccountType, AccountNature, AccountPeriodBalance
from ledgergate.models.period_lock import (
    PeriodType,
    PeriodLockStatus,
    PeriodLockAction,
    PeriodLock,
    PeriodLockAuditLog,
)

__all__ = [
    "BaseModel",
    "TimestampMixin",
    "AccountType",
    "AccountNature",
    "AccountPeriodBalance",
    "PeriodType",
    "PeriodLockStatus",
    "PeriodLockAction",
    "PeriodLock",
    "PeriodLockAuditLog",
]
