"""
LedgerGate - Period Lock Schemas

Snapshots of lock records, checklist results and audit events.
"""

from datetime import datetime
from enum import Enum
from typing import List, Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field

from ledgergate.models.period_lock import PeriodLockAction, PeriodLockStatus, PeriodType
from ledgergate.utils.permissions import UserRole


class Actor(BaseModel):
    """The user performing a lock transition."""

    model_config = ConfigDict(frozen=True)

    user_id: str = Field(..., min_length=1)
    name: Optional[str] = None
    role: UserRole

    @property
    def display_name(self) -> str:
        return self.name or self.user_id


class PeriodLockRecord(BaseModel):
    """
    Lock state of a period as read from a lock store.

    ``version`` 0 means the period has never been written; such records
    are materialized on first reference and are always OPEN.
    """

    model_config = ConfigDict(frozen=True, from_attributes=True)

    period: str
    period_type: PeriodType
    year: int
    month: Optional[int] = None
    quarter: Optional[int] = None
    status: PeriodLockStatus = PeriodLockStatus.OPEN
    version: int = 0

    locked_at: Optional[datetime] = None
    locked_by: Optional[str] = None
    locked_by_name: Optional[str] = None
    unlocked_at: Optional[datetime] = None
    unlocked_by: Optional[str] = None
    unlocked_by_name: Optional[str] = None
    unlock_reason: Optional[str] = None
    closed_at: Optional[datetime] = None
    closed_by: Optional[str] = None
    closed_by_name: Optional[str] = None

    @property
    def is_locked(self) -> bool:
        """LOCKED and CLOSED both freeze the period."""
        return self.status in (PeriodLockStatus.LOCKED, PeriodLockStatus.CLOSED)


class LockAuditEvent(BaseModel):
    """Immutable record of one lock transition."""

    model_config = ConfigDict(frozen=True, from_attributes=True)

    period: str
    action: PeriodLockAction
    before_status: PeriodLockStatus
    after_status: PeriodLockStatus
    actor_id: str
    actor_name: Optional[str] = None
    actor_role: str
    reason: Optional[str] = None
    version: int
    occurred_at: datetime


# =============================================================================
# CHECKLIST
# =============================================================================

class CheckSeverity(str, Enum):
    REQUIRED = "required"
    WARNING = "warning"


class LockCheckItem(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: str
    name: str
    description: str
    severity: CheckSeverity
    passed: bool
    skipped: bool = False
    details: Optional[str] = None


class LockChecklist(BaseModel):
    """Result of evaluating every pre-lock check for a period."""

    model_config = ConfigDict(frozen=True)

    period: str
    items: Tuple[LockCheckItem, ...]
    can_lock: bool
    missing_checks: Tuple[str, ...] = ()
    warnings: Tuple[str, ...] = ()


class CanModifyResult(BaseModel):
    model_config = ConfigDict(frozen=True)

    period: str
    allowed: bool
    status: PeriodLockStatus
    message: Optional[str] = None


# =============================================================================
# REQUESTS / LISTINGS
# =============================================================================

class UnlockRequest(BaseModel):
    reason: str = ""


class PeriodStatusSummary(BaseModel):
    model_config = ConfigDict(frozen=True)

    period: str
    label: str
    status: PeriodLockStatus
    locked_at: Optional[datetime] = None
    locked_by_name: Optional[str] = None


class PeriodListResponse(BaseModel):
    model_config = ConfigDict(frozen=True)

    year: int
    period_type: PeriodType
    periods: List[PeriodStatusSummary]
    last_locked: Optional[str] = None
    next_lockable: Optional[str] = None
