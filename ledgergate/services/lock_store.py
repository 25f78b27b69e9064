"""
LedgerGate - Period Lock Store

Persistence for period lock records and their audit trail.

A lock store exposes two primitives: ``get`` returns the current record of
a period (a fresh OPEN record at version 0 if it was never written), and
``compare_and_swap`` replaces it only if its version is still the one the
caller read. The audit event of a transition is written in the same
transaction as the state change, so there is never a lock without an audit
record or an audit record without a lock.

Stores:
- InMemoryLockStore: process-local, for tests and single-process tools
- SqlAlchemyLockStore: ``period_locks`` / ``period_lock_audit_logs`` tables
"""

import asyncio
import logging
from typing import Dict, List, Optional, Protocol

from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from ledgergate.models.period_lock import PeriodLock, PeriodLockAuditLog, PeriodType
from ledgergate.schemas.period import PeriodDescriptor
from ledgergate.schemas.period_lock import LockAuditEvent, PeriodLockRecord

logger = logging.getLogger(__name__)


# =============================================================================
# INTERFACES
# =============================================================================

class AuditLogSink(Protocol):
    """Append-only destination for lock transition events."""

    async def record_lock_event(self, event: LockAuditEvent) -> None:
        ...

    async def list_events(self, period: str) -> List[LockAuditEvent]:
        ...


class LockStore(Protocol):
    """Versioned key-value store of period lock records."""

    audit_sink: AuditLogSink

    async def get(self, period: str) -> PeriodLockRecord:
        ...

    async def compare_and_swap(
        self,
        expected_version: int,
        record: PeriodLockRecord,
        event: LockAuditEvent,
    ) -> bool:
        ...

    async def list_records(self, year: int, period_type: PeriodType) -> List[PeriodLockRecord]:
        ...

    async def is_locked(self, period: str) -> bool:
        ...


def blank_record(period: PeriodDescriptor) -> PeriodLockRecord:
    """The never-written OPEN record of a period."""
    return PeriodLockRecord(
        period=period.key,
        period_type=period.period_type,
        year=period.year,
        month=period.month,
        quarter=period.quarter,
    )


class LockReaderMixin:
    """Answers ``is_locked`` from ``get``; lets a store feed the statement builders."""

    async def is_locked(self, period: str) -> bool:
        record = await self.get(period)
        return record.is_locked


# =============================================================================
# IN-MEMORY
# =============================================================================

class InMemoryAuditLogSink:
    def __init__(self):
        self._events: List[LockAuditEvent] = []

    async def record_lock_event(self, event: LockAuditEvent) -> None:
        self._events.append(event)

    async def list_events(self, period: str) -> List[LockAuditEvent]:
        return [e for e in self._events if e.period == period]

    @property
    def events(self) -> List[LockAuditEvent]:
        return list(self._events)


class InMemoryLockStore(LockReaderMixin):
    """
    Lock records in a dict guarded by an asyncio lock.

    If the audit sink raises, the record swap is undone and the error
    propagates.
    """

    def __init__(self, audit_sink: Optional[AuditLogSink] = None):
        self.audit_sink = audit_sink if audit_sink is not None else InMemoryAuditLogSink()
        self._records: Dict[str, PeriodLockRecord] = {}
        self._guard = asyncio.Lock()

    async def get(self, period: str) -> PeriodLockRecord:
        record = self._records.get(period)
        if record is None:
            return blank_record(PeriodDescriptor.parse(period))
        return record

    async def compare_and_swap(
        self,
        expected_version: int,
        record: PeriodLockRecord,
        event: LockAuditEvent,
    ) -> bool:
        async with self._guard:
            previous = self._records.get(record.period)
            current_version = previous.version if previous is not None else 0
            if current_version != expected_version:
                logger.info(
                    f"Lock record {record.period} is at version {current_version}, "
                    f"expected {expected_version}; swap rejected"
                )
                return False

            self._records[record.period] = record
            try:
                await self.audit_sink.record_lock_event(event)
            except Exception:
                if previous is None:
                    del self._records[record.period]
                else:
                    self._records[record.period] = previous
                raise
            return True

    async def list_records(self, year: int, period_type: PeriodType) -> List[PeriodLockRecord]:
        return [
            r for r in self._records.values()
            if r.year == year and r.period_type == period_type
        ]


# =============================================================================
# SQLALCHEMY
# =============================================================================

class SqlAlchemyAuditLogSink:
    """Audit events in ``period_lock_audit_logs``."""

    def __init__(self, session_factory: async_sessionmaker):
        self.session_factory = session_factory

    @staticmethod
    def stage(session: AsyncSession, event: LockAuditEvent) -> None:
        """Add an event to a caller-owned transaction."""
        session.add(PeriodLockAuditLog(**event.model_dump()))

    async def record_lock_event(self, event: LockAuditEvent) -> None:
        async with self.session_factory() as session:
            async with session.begin():
                self.stage(session, event)

    async def list_events(self, period: str) -> List[LockAuditEvent]:
        async with self.session_factory() as session:
            result = await session.execute(
                select(PeriodLockAuditLog)
                .where(PeriodLockAuditLog.period == period)
                .order_by(PeriodLockAuditLog.version)
            )
            return [LockAuditEvent.model_validate(row) for row in result.scalars()]


class SqlAlchemyLockStore(LockReaderMixin):
    """
    Lock records in ``period_locks``.

    The swap is an ``UPDATE ... WHERE version = :expected`` (or an INSERT for
    a never-written period, guarded by the unique period key); the audit row
    is added in the same transaction.
    """

    def __init__(self, session_factory: async_sessionmaker):
        self.session_factory = session_factory
        self.audit_sink = SqlAlchemyAuditLogSink(session_factory)

    async def get(self, period: str) -> PeriodLockRecord:
        async with self.session_factory() as session:
            result = await session.execute(
                select(PeriodLock).where(PeriodLock.period == period)
            )
            row = result.scalar_one_or_none()
            if row is None:
                return blank_record(PeriodDescriptor.parse(period))
            return PeriodLockRecord.model_validate(row)

    async def compare_and_swap(
        self,
        expected_version: int,
        record: PeriodLockRecord,
        event: LockAuditEvent,
    ) -> bool:
        values = record.model_dump(exclude={"period"})

        async with self.session_factory() as session:
            try:
                if expected_version == 0:
                    session.add(PeriodLock(period=record.period, **values))
                    await session.flush()
                else:
                    result = await session.execute(
                        update(PeriodLock)
                        .where(
                            PeriodLock.period == record.period,
                            PeriodLock.version == expected_version,
                        )
                        .values(**values)
                        .execution_options(synchronize_session=False)
                    )
                    if result.rowcount != 1:
                        await session.rollback()
                        logger.info(f"Lock record {record.period} moved past version {expected_version}; swap rejected")
                        return False

                self.audit_sink.stage(session, event)
                await session.commit()
            except IntegrityError:
                await session.rollback()
                logger.info(f"Lock record {record.period} was created concurrently; swap rejected")
                return False
        return True

    async def list_records(self, year: int, period_type: PeriodType) -> List[PeriodLockRecord]:
        async with self.session_factory() as session:
            result = await session.execute(
                select(PeriodLock)
                .where(PeriodLock.year == year, PeriodLock.period_type == period_type)
                .order_by(PeriodLock.period)
            )
            return [PeriodLockRecord.model_validate(row) for row in result.scalars()]
