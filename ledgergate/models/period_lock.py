"""
LedgerGate - Period Lock Models

Lock state per accounting period and the append-only history of lock
transitions.
"""

import uuid
from datetime import datetime
from enum import Enum
from typing import Optional

from sqlalchemy import DateTime, Integer, String, Text, Uuid, Enum as SQLEnum, Index, func
from sqlalchemy.orm import Mapped, mapped_column

from ledgergate.database import Base
from ledgergate.models.base import BaseModel


# =============================================================================
# ENUMS
# =============================================================================

class PeriodType(str, Enum):
    """Granularity of an accounting period."""
    MONTH = "month"
    QUARTER = "quarter"
    YEAR = "year"


class PeriodLockStatus(str, Enum):
    """Lock state of an accounting period."""
    OPEN = "open"
    LOCKED = "locked"
    CLOSED = "closed"


class PeriodLockAction(str, Enum):
    """Transitions recorded in the lock audit log."""
    LOCK = "lock"
    UNLOCK = "unlock"
    CLOSE = "close"


# =============================================================================
# MODELS
# =============================================================================

class PeriodLock(BaseModel):
    """
    Lock record for one period key (``2025-03``, ``2025-Q1``, ``2025``).

    ``version`` increases by one on every transition and is the
    compare-and-swap token for concurrent writers.
    """

    __tablename__ = "period_locks"

    period: Mapped[str] = mapped_column(String(10), unique=True, nullable=False)
    period_type: Mapped[PeriodType] = mapped_column(SQLEnum(PeriodType), nullable=False)
    year: Mapped[int] = mapped_column(Integer, nullable=False)
    month: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    quarter: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)

    status: Mapped[PeriodLockStatus] = mapped_column(
        SQLEnum(PeriodLockStatus),
        default=PeriodLockStatus.OPEN,
        nullable=False,
    )
    version: Mapped[int] = mapped_column(Integer, default=0, nullable=False)

    locked_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    locked_by: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    locked_by_name: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)

    unlocked_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    unlocked_by: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    unlocked_by_name: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    unlock_reason: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    closed_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    closed_by: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    closed_by_name: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)

    __table_args__ = (
        Index("ix_period_locks_year", "year"),
    )


class PeriodLockAuditLog(Base):
    """
    Immutable record of a single lock transition.
    No update path exists; rows are only ever inserted.
    """

    __tablename__ = "period_lock_audit_logs"

    id: Mapped[uuid.UUID] = mapped_column(
        Uuid(as_uuid=True),
        primary_key=True,
        default=uuid.uuid4,
    )
    period: Mapped[str] = mapped_column(String(10), nullable=False, index=True)
    action: Mapped[PeriodLockAction] = mapped_column(SQLEnum(PeriodLockAction), nullable=False)
    before_status: Mapped[PeriodLockStatus] = mapped_column(SQLEnum(PeriodLockStatus), nullable=False)
    after_status: Mapped[PeriodLockStatus] = mapped_column(SQLEnum(PeriodLockStatus), nullable=False)
    actor_id: Mapped[str] = mapped_column(String(100), nullable=False)
    actor_name: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    actor_role: Mapped[str] = mapped_column(String(50), nullable=False)
    reason: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    version: Mapped[int] = mapped_column(Integer, nullable=False)
    occurred_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        nullable=False,
    )

    def __repr__(self) -> str:
        return f"<PeriodLockAuditLog({self.period} {self.action.value} v{self.version})>"
