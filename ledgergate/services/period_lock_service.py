"""
LedgerGate - Period Lock Service

State machine over accounting period locks:

    OPEN --lock--> LOCKED --close--> CLOSED
    LOCKED --unlock--> OPEN

CLOSED is terminal. Locking requires every REQUIRED item of the lock
checklist to pass and the preceding period of the same granularity to be
locked already (January, Q1 and whole years excepted). Lock, unlock and
close are separate privilege tiers.

Transitions on one period are serialized in-process by a per-period mutex
and across processes by the store's version check, which is re-validated
at commit time. A lock also holds its predecessor's mutex and re-reads the
predecessor just before committing.
"""

import asyncio
import logging
from collections import defaultdict
from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from datetime import date, datetime, timezone
from typing import AsyncIterator, Callable, Dict, List, Optional, Protocol

from ledgergate.config import Settings, settings as default_settings
from ledgergate.models.period_lock import PeriodLockAction, PeriodLockStatus, PeriodType
from ledgergate.schemas.period import PeriodDescriptor, covering_periods, periods_in_year
from ledgergate.schemas.period_lock import (
    Actor,
    CanModifyResult,
    CheckSeverity,
    LockAuditEvent,
    LockCheckItem,
    LockChecklist,
    PeriodListResponse,
    PeriodLockRecord,
    PeriodStatusSummary,
)
from ledgergate.schemas.statements import HealthCheck, StatementHealth
from ledgergate.services.lock_store import LockStore, blank_record
from ledgergate.utils.error_handling import (
    InvalidTransitionException,
    PeriodLockedException,
    PermissionDeniedException,
    PrerequisitesNotMetException,
    UnlockReasonTooShortException,
)
from ledgergate.utils.permissions import PeriodPermission, has_permission

logger = logging.getLogger(__name__)


# Checklist item ids, in evaluation order
TRIAL_BALANCE_CHECK = "trial_balance_balanced"
BALANCE_SHEET_CHECK = "balance_sheet_valid"
INCOME_STATEMENT_CHECK = "income_statement_valid"
CASH_FLOW_CHECK = "cash_flow_valid"
PREVIOUS_PERIOD_CHECK = "previous_period_locked"
VOUCHERS_APPROVED_CHECK = "all_vouchers_approved"
NO_DRAFTS_CHECK = "no_draft_entries"


# =============================================================================
# COLLABORATORS
# =============================================================================

class StatementHealthEvaluator(Protocol):
    async def evaluate_health(self, period: PeriodDescriptor) -> StatementHealth:
        ...


class LedgerActivityProvider(Protocol):
    """Voucher workflow state used by the advisory checklist items."""

    async def count_unapproved_vouchers(self, period: PeriodDescriptor) -> int:
        ...

    async def count_draft_entries(self, period: PeriodDescriptor) -> int:
        ...


@dataclass
class StaticLedgerActivity:
    """Fixed counts per period key."""

    unapproved_vouchers: Dict[str, int] = field(default_factory=dict)
    draft_entries: Dict[str, int] = field(default_factory=dict)

    async def count_unapproved_vouchers(self, period: PeriodDescriptor) -> int:
        return self.unapproved_vouchers.get(period.key, 0)

    async def count_draft_entries(self, period: PeriodDescriptor) -> int:
        return self.draft_entries.get(period.key, 0)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


# =============================================================================
# SERVICE
# =============================================================================

class PeriodLockService:
    """Service for locking, unlocking and closing accounting periods."""

    def __init__(
        self,
        store: LockStore,
        health_evaluator: StatementHealthEvaluator,
        activity: Optional[LedgerActivityProvider] = None,
        settings: Optional[Settings] = None,
        clock: Optional[Callable[[], datetime]] = None,
        mutexes: Optional[Dict[str, asyncio.Lock]] = None,
    ):
        self.store = store
        self.health_evaluator = health_evaluator
        self.activity = activity
        self.settings = settings or default_settings
        self.clock = clock or _utcnow
        # Per-period transition mutexes; callers may share one mapping across instances
        self._mutexes = mutexes if mutexes is not None else defaultdict(asyncio.Lock)

    # =========================================================================
    # QUERIES
    # =========================================================================

    async def get_status(self, period: PeriodDescriptor) -> PeriodLockRecord:
        return await self.store.get(period.key)

    async def is_locked(self, period: str) -> bool:
        return await self.store.is_locked(period)

    async def get_lock_checklist(self, period: PeriodDescriptor) -> LockChecklist:
        """
        Evaluate every pre-lock check for a period.

        REQUIRED items gate the lock; failed WARNING items are reported
        but do not block it.
        """
        period = period.without_override()
        health = await self.health_evaluator.evaluate_health(period)
        unapproved = drafts = None
        if self.activity is not None:
            unapproved = await self.activity.count_unapproved_vouchers(period)
            drafts = await self.activity.count_draft_entries(period)

        items = [
            self._health_item(
                TRIAL_BALANCE_CHECK, "Trial balance is balanced",
                "Opening, period and closing debits equal credits with no abnormal balances",
                health.trial_balance,
            ),
            self._health_item(
                BALANCE_SHEET_CHECK, "Balance sheet is valid",
                "Total assets equal total liabilities and equity",
                health.balance_sheet,
            ),
            self._health_item(
                INCOME_STATEMENT_CHECK, "Income statement is valid",
                "Income statement has no validation errors",
                health.income_statement,
            ),
            self._health_item(
                CASH_FLOW_CHECK, "Cash flow statement is valid",
                "Ending cash reconciles with the balance sheet",
                health.cash_flow,
            ),
            await self._previous_period_item(period),
            self._activity_item(
                VOUCHERS_APPROVED_CHECK, "All vouchers approved",
                "No vouchers are waiting for approval", "unapproved voucher(s)",
                unapproved,
            ),
            self._activity_item(
                NO_DRAFTS_CHECK, "No draft entries",
                "No journal entries are left in draft", "draft entry(ies)",
                drafts,
            ),
        ]

        missing = tuple(i.name for i in items if i.severity == CheckSeverity.REQUIRED and not i.passed)
        warnings = tuple(i.name for i in items if i.severity == CheckSeverity.WARNING and not i.passed)
        return LockChecklist(
            period=period.key,
            items=tuple(items),
            can_lock=not missing,
            missing_checks=missing,
            warnings=warnings,
        )

    async def can_modify(self, period: PeriodDescriptor) -> CanModifyResult:
        """Whether entries dated in a period may still be written."""
        record = await self.store.get(period.key)
        message = None
        if record.status == PeriodLockStatus.LOCKED:
            message = f"Period {period.key} is locked; it must be unlocked before entries can be changed"
        elif record.status == PeriodLockStatus.CLOSED:
            message = f"Period {period.key} is closed and can no longer be modified"
        return CanModifyResult(
            period=period.key,
            allowed=message is None,
            status=record.status,
            message=message,
        )

    async def can_modify_on(self, posting_date: date) -> CanModifyResult:
        """A date is modifiable only if its month, quarter and year all are."""
        periods = covering_periods(posting_date)
        for period in periods:
            result = await self.can_modify(period)
            if not result.allowed:
                return result
        return CanModifyResult(
            period=periods[0].key,
            allowed=True,
            status=PeriodLockStatus.OPEN,
        )

    async def ensure_modifiable(self, period: PeriodDescriptor) -> None:
        result = await self.can_modify(period)
        if not result.allowed:
            raise PeriodLockedException(period.key, result.message)

    async def get_history(self, period: PeriodDescriptor) -> List[LockAuditEvent]:
        """Audit events for a period, oldest first."""
        return await self.store.audit_sink.list_events(period.key)

    async def list_periods(self, year: int, period_type: PeriodType = PeriodType.MONTH) -> PeriodListResponse:
        records = {r.period: r for r in await self.store.list_records(year, period_type)}

        summaries = []
        last_locked = None
        next_lockable = None
        previous_locked = True
        for period in periods_in_year(year, period_type):
            record = records.get(period.key) or blank_record(period)
            summaries.append(PeriodStatusSummary(
                period=period.key,
                label=period.label,
                status=record.status,
                locked_at=record.locked_at,
                locked_by_name=record.locked_by_name,
            ))
            if record.is_locked:
                last_locked = period.key
            elif next_lockable is None and (previous_locked or period.is_first_of_year):
                next_lockable = period.key
            previous_locked = record.is_locked

        return PeriodListResponse(
            year=year,
            period_type=period_type,
            periods=summaries,
            last_locked=last_locked,
            next_lockable=next_lockable,
        )

    # =========================================================================
    # TRANSITIONS
    # =========================================================================

    async def lock(self, period: PeriodDescriptor, actor: Actor) -> PeriodLockRecord:
        """
        Lock an OPEN period.

        Raises:
            PermissionDeniedException: actor's role cannot lock
            InvalidTransitionException: period not OPEN, or the previous
                period is not locked yet
            PrerequisitesNotMetException: other REQUIRED checks failed
        """
        self._require(actor, PeriodPermission.LOCK_PERIOD)
        period = period.without_override()

        async with self._lock_mutexes(period):
            record = await self.store.get(period.key)
            if record.status != PeriodLockStatus.OPEN:
                self._refuse(period, PeriodLockAction.LOCK, record, f"Period {period.key} is already {record.status.value}")

            checklist = await self.get_lock_checklist(period)
            if not checklist.can_lock:
                failed = [
                    i for i in checklist.items
                    if i.severity == CheckSeverity.REQUIRED and not i.passed
                ]
                reasons = [f"{i.name}: {i.details}" if i.details else i.name for i in failed]
                if any(i.id == PREVIOUS_PERIOD_CHECK for i in failed):
                    self._refuse(period, PeriodLockAction.LOCK, record, *reasons)
                logger.warning(f"Lock of {period.key} by {actor.user_id} refused: {'; '.join(reasons)}")
                raise PrerequisitesNotMetException("period_lock", period.key, reasons)

            # Another process may have reopened the predecessor since the checklist read it
            if not period.is_first_of_year:
                predecessor = await self.store.get(period.previous().key)
                if not predecessor.is_locked:
                    self._refuse(
                        period, PeriodLockAction.LOCK, record,
                        f"Previous period locked: Previous period {predecessor.period} is {predecessor.status.value}",
                    )

            now = self.clock()
            updated = record.model_copy(update={
                "status": PeriodLockStatus.LOCKED,
                "version": record.version + 1,
                "locked_at": now,
                "locked_by": actor.user_id,
                "locked_by_name": actor.display_name,
            })
            await self._commit(record, updated, PeriodLockAction.LOCK, actor, None, now)

        if checklist.warnings:
            logger.info(f"Period {period.key} locked with warnings: {', '.join(checklist.warnings)}")
        return updated

    async def unlock(self, period: PeriodDescriptor, actor: Actor, reason: str) -> PeriodLockRecord:
        """
        Reopen a LOCKED period.

        Raises:
            PermissionDeniedException: actor's role cannot unlock
            UnlockReasonTooShortException: reason below the minimum length
            InvalidTransitionException: period not LOCKED
        """
        self._require(actor, PeriodPermission.UNLOCK_PERIOD)
        reason = (reason or "").strip()
        min_length = self.settings.unlock_reason_min_length
        if len(reason) < min_length:
            raise UnlockReasonTooShortException(min_length, len(reason))
        period = period.without_override()

        async with self._mutexes[period.key]:
            record = await self.store.get(period.key)
            if record.status == PeriodLockStatus.OPEN:
                self._refuse(period, PeriodLockAction.UNLOCK, record, f"Period {period.key} is not locked")
            if record.status == PeriodLockStatus.CLOSED:
                self._refuse(period, PeriodLockAction.UNLOCK, record, f"Period {period.key} is closed and cannot be reopened")

            now = self.clock()
            updated = record.model_copy(update={
                "status": PeriodLockStatus.OPEN,
                "version": record.version + 1,
                "unlocked_at": now,
                "unlocked_by": actor.user_id,
                "unlocked_by_name": actor.display_name,
                "unlock_reason": reason,
            })
            await self._commit(record, updated, PeriodLockAction.UNLOCK, actor, reason, now)
        return updated

    async def close(self, period: PeriodDescriptor, actor: Actor) -> PeriodLockRecord:
        """Permanently close a LOCKED period."""
        self._require(actor, PeriodPermission.CLOSE_PERIOD)
        period = period.without_override()

        async with self._mutexes[period.key]:
            record = await self.store.get(period.key)
            if record.status != PeriodLockStatus.LOCKED:
                self._refuse(period, PeriodLockAction.CLOSE, record, "Only locked periods can be closed")

            now = self.clock()
            updated = record.model_copy(update={
                "status": PeriodLockStatus.CLOSED,
                "version": record.version + 1,
                "closed_at": now,
                "closed_by": actor.user_id,
                "closed_by_name": actor.display_name,
            })
            await self._commit(record, updated, PeriodLockAction.CLOSE, actor, None, now)
        return updated

    # =========================================================================
    # HELPERS
    # =========================================================================

    @asynccontextmanager
    async def _lock_mutexes(self, period: PeriodDescriptor) -> AsyncIterator[None]:
        """
        Hold the predecessor's mutex, then this period's.

        Earlier periods are always taken first, so a concurrent unlock of
        the predecessor waits until this lock has committed or failed.
        """
        if period.is_first_of_year:
            async with self._mutexes[period.key]:
                yield
            return
        async with self._mutexes[period.previous().key]:
            async with self._mutexes[period.key]:
                yield

    @staticmethod
    def _require(actor: Actor, permission: PeriodPermission) -> None:
        if not has_permission(actor.role, permission):
            logger.warning(f"{actor.user_id} ({actor.role.value}) lacks {permission.value}")
            raise PermissionDeniedException(permission.value, actor.role.value)

    @staticmethod
    def _refuse(period: PeriodDescriptor, action: PeriodLockAction, record: PeriodLockRecord, *reasons: str) -> None:
        logger.warning(f"{action.value.capitalize()} of {period.key} refused: {'; '.join(reasons)}")
        raise InvalidTransitionException(period.key, action.value, record.status.value, list(reasons))

    async def _commit(
        self,
        before: PeriodLockRecord,
        after: PeriodLockRecord,
        action: PeriodLockAction,
        actor: Actor,
        reason: Optional[str],
        occurred_at: datetime,
    ) -> None:
        event = LockAuditEvent(
            period=after.period,
            action=action,
            before_status=before.status,
            after_status=after.status,
            actor_id=actor.user_id,
            actor_name=actor.name,
            actor_role=actor.role.value,
            reason=reason,
            version=after.version,
            occurred_at=occurred_at,
        )
        swapped = await self.store.compare_and_swap(before.version, after, event)
        if not swapped:
            logger.warning(f"{action.value.capitalize()} of {after.period} lost a concurrent update")
            raise InvalidTransitionException(
                after.period,
                action.value,
                before.status.value,
                ["Period lock state changed concurrently; reload and retry"],
            )
        logger.info(
            f"Period {after.period} {before.status.value} -> {after.status.value} "
            f"by {actor.display_name} ({actor.role.value})"
        )

    @staticmethod
    def _health_item(check_id: str, name: str, description: str, health: HealthCheck) -> LockCheckItem:
        return LockCheckItem(
            id=check_id,
            name=name,
            description=description,
            severity=CheckSeverity.REQUIRED,
            passed=health.passed,
            details=health.details,
        )

    async def _previous_period_item(self, period: PeriodDescriptor) -> LockCheckItem:
        name = "Previous period locked"
        description = "The preceding period of the same type is locked"
        if period.is_first_of_year:
            return LockCheckItem(
                id=PREVIOUS_PERIOD_CHECK,
                name=name,
                description=description,
                severity=CheckSeverity.REQUIRED,
                passed=True,
                skipped=True,
                details="First period of the year",
            )

        previous = period.previous()
        record = await self.store.get(previous.key)
        return LockCheckItem(
            id=PREVIOUS_PERIOD_CHECK,
            name=name,
            description=description,
            severity=CheckSeverity.REQUIRED,
            passed=record.is_locked,
            details=None if record.is_locked else f"Previous period {previous.key} is {record.status.value}",
        )

    @staticmethod
    def _activity_item(
        check_id: str,
        name: str,
        description: str,
        noun: str,
        count: Optional[int],
    ) -> LockCheckItem:
        if count is None:
            return LockCheckItem(
                id=check_id,
                name=name,
                description=description,
                severity=CheckSeverity.WARNING,
                passed=True,
                skipped=True,
                details="No voucher workflow connected",
            )
        return LockCheckItem(
            id=check_id,
            name=name,
            description=description,
            severity=CheckSeverity.WARNING,
            passed=count == 0,
            details=f"{count} {noun}" if count else None,
        )
