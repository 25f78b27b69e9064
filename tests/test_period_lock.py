"""
LedgerGate - Period Lock Tests

Tests for the lock checklist, the OPEN -> LOCKED -> CLOSED state machine,
separation of duties, write gating and the audit trail.
"""

import asyncio
from datetime import date

import pytest

from ledgergate.models.period_lock import PeriodLockAction, PeriodLockStatus
from ledgergate.schemas.period import PeriodDescriptor
from ledgergate.schemas.period_lock import LockAuditEvent
from ledgergate.services.balance_provider import InMemoryBalanceProvider
from ledgergate.services.lock_store import InMemoryLockStore, blank_record
from ledgergate.services.period_lock_service import (
    PREVIOUS_PERIOD_CHECK,
    TRIAL_BALANCE_CHECK,
    PeriodLockService,
    StaticLedgerActivity,
)
from ledgergate.services.report_pipeline import StatementPipeline
from ledgergate.utils.error_handling import (
    InvalidTransitionException,
    PeriodLockedException,
    PermissionDeniedException,
    PrerequisitesNotMetException,
    UnlockReasonTooShortException,
)


JANUARY = PeriodDescriptor.for_month(2025, 1)
FEBRUARY = PeriodDescriptor.for_month(2025, 2)
MARCH = PeriodDescriptor.for_month(2025, 3)

UNLOCK_REASON = "Correcting a misposted supplier invoice"


class TestChecklist:
    """Pre-lock checklist evaluation."""

    @pytest.mark.asyncio
    async def test_items_in_order(self, lock_service):
        checklist = await lock_service.get_lock_checklist(JANUARY)

        assert [i.id for i in checklist.items] == [
            "trial_balance_balanced",
            "balance_sheet_valid",
            "income_statement_valid",
            "cash_flow_valid",
            "previous_period_locked",
            "all_vouchers_approved",
            "no_draft_entries",
        ]
        assert checklist.can_lock
        assert checklist.missing_checks == ()

    @pytest.mark.asyncio
    async def test_first_month_skips_previous_period(self, lock_service):
        checklist = await lock_service.get_lock_checklist(JANUARY)
        previous = next(i for i in checklist.items if i.id == PREVIOUS_PERIOD_CHECK)

        assert previous.passed
        assert previous.skipped
        assert previous.details == "First period of the year"

    @pytest.mark.asyncio
    async def test_voucher_items_skipped_without_workflow(self, lock_service):
        checklist = await lock_service.get_lock_checklist(JANUARY)

        assert all(i.skipped for i in checklist.items[-2:])
        assert checklist.warnings == ()

    @pytest.mark.asyncio
    async def test_previous_period_must_be_locked(self, lock_service):
        checklist = await lock_service.get_lock_checklist(MARCH)
        previous = next(i for i in checklist.items if i.id == PREVIOUS_PERIOD_CHECK)

        assert not previous.passed
        assert previous.details == "Previous period 2025-02 is open"
        assert checklist.missing_checks == ("Previous period locked",)
        assert not checklist.can_lock

    @pytest.mark.asyncio
    async def test_unbalanced_ledger_fails_statement_checks(self, lock_store, test_settings, make_balance):
        provider = InMemoryBalanceProvider({"2025-01": [
            make_balance("111", period_debit=1_000),
            make_balance("511", period_credit=800),
        ]})
        pipeline = StatementPipeline(provider, lock_reader=lock_store, settings=test_settings)
        service = PeriodLockService(lock_store, pipeline, settings=test_settings)

        checklist = await service.get_lock_checklist(JANUARY)

        assert checklist.missing_checks == (
            "Trial balance is balanced",
            "Balance sheet is valid",
            "Income statement is valid",
            "Cash flow statement is valid",
        )
        tb_item = next(i for i in checklist.items if i.id == TRIAL_BALANCE_CHECK)
        assert tb_item.details.startswith("Trial balance is not balanced")


class TestLock:
    """OPEN -> LOCKED."""

    @pytest.mark.asyncio
    async def test_lock_first_month(self, lock_service, lock_store, chief_accountant, fixed_now):
        record = await lock_service.lock(JANUARY, chief_accountant)

        assert record.status == PeriodLockStatus.LOCKED
        assert record.version == 1
        assert record.locked_at == fixed_now
        assert record.locked_by == "u-chief"
        assert record.locked_by_name == "Nguyen Lan"
        assert await lock_store.is_locked("2025-01")

    @pytest.mark.asyncio
    async def test_lock_in_sequence(self, lock_service, chief_accountant, admin):
        await lock_service.lock(JANUARY, chief_accountant)
        await lock_service.lock(FEBRUARY, admin)
        record = await lock_service.lock(MARCH, chief_accountant)

        assert record.status == PeriodLockStatus.LOCKED

    @pytest.mark.asyncio
    async def test_skipping_a_month_is_refused(self, lock_service, chief_accountant):
        await lock_service.lock(JANUARY, chief_accountant)

        with pytest.raises(InvalidTransitionException) as exc_info:
            await lock_service.lock(MARCH, chief_accountant)

        assert exc_info.value.status_code == 409
        assert exc_info.value.reasons == ["Previous period locked: Previous period 2025-02 is open"]

    @pytest.mark.asyncio
    async def test_locking_twice_is_refused(self, lock_service, chief_accountant):
        await lock_service.lock(JANUARY, chief_accountant)

        with pytest.raises(InvalidTransitionException, match="already locked"):
            await lock_service.lock(JANUARY, chief_accountant)

    @pytest.mark.asyncio
    async def test_failed_statement_checks_block_the_lock(self, lock_store, test_settings, make_balance, chief_accountant):
        provider = InMemoryBalanceProvider({"2025-01": [
            make_balance("111", period_debit=1_000),
            make_balance("511", period_credit=800),
        ]})
        pipeline = StatementPipeline(provider, lock_reader=lock_store, settings=test_settings)
        service = PeriodLockService(lock_store, pipeline, settings=test_settings)

        with pytest.raises(PrerequisitesNotMetException) as exc_info:
            await service.lock(JANUARY, chief_accountant)

        assert exc_info.value.stage == "period_lock"
        assert exc_info.value.reasons[0].startswith("Trial balance is balanced: Trial balance is not balanced")
        assert not await lock_store.is_locked("2025-01")

    @pytest.mark.asyncio
    async def test_closed_loss_month_can_be_locked(self, lock_store, test_settings, make_balance, chief_accountant):
        provider = InMemoryBalanceProvider({"2025-01": [
            make_balance("111", opening_debit=100_000_000, period_debit=10_000_000, period_credit=15_000_000),
            make_balance("411", opening_credit=100_000_000),
            make_balance("421", period_debit=5_000_000),
            make_balance("511", period_debit=10_000_000, period_credit=10_000_000),
            make_balance("642", period_debit=15_000_000, period_credit=15_000_000),
            make_balance("911", period_debit=15_000_000, period_credit=15_000_000),
        ]})
        pipeline = StatementPipeline(provider, lock_reader=lock_store, settings=test_settings)
        service = PeriodLockService(lock_store, pipeline, settings=test_settings)

        checklist = await service.get_lock_checklist(JANUARY)
        record = await service.lock(JANUARY, chief_accountant)

        assert checklist.missing_checks == ()
        assert record.status == PeriodLockStatus.LOCKED

    @pytest.mark.asyncio
    async def test_warnings_do_not_block(self, lock_store, pipeline, test_settings, chief_accountant):
        activity = StaticLedgerActivity(unapproved_vouchers={"2025-01": 3})
        service = PeriodLockService(lock_store, pipeline, activity=activity, settings=test_settings)

        checklist = await service.get_lock_checklist(JANUARY)
        record = await service.lock(JANUARY, chief_accountant)

        assert checklist.warnings == ("All vouchers approved",)
        assert checklist.items[5].details == "3 unapproved voucher(s)"
        assert record.status == PeriodLockStatus.LOCKED

    @pytest.mark.asyncio
    async def test_date_override_locks_the_whole_period(self, lock_service, chief_accountant):
        partial = PeriodDescriptor(
            period_type=JANUARY.period_type, year=2025, month=1,
            from_date=date(2025, 1, 10), to_date=date(2025, 1, 20),
        )

        record = await lock_service.lock(partial, chief_accountant)

        assert record.period == "2025-01"


class TestUnlock:
    """LOCKED -> OPEN."""

    @pytest.mark.asyncio
    async def test_unlock_reopens(self, lock_service, chief_accountant, admin):
        await lock_service.lock(JANUARY, chief_accountant)

        record = await lock_service.unlock(JANUARY, admin, UNLOCK_REASON)

        assert record.status == PeriodLockStatus.OPEN
        assert record.version == 2
        assert record.unlocked_by == "u-admin"
        assert record.unlock_reason == UNLOCK_REASON
        # Lock metadata is kept for reference
        assert record.locked_by == "u-chief"

    @pytest.mark.asyncio
    async def test_reason_must_have_ten_characters(self, lock_service, chief_accountant, admin):
        await lock_service.lock(JANUARY, chief_accountant)

        with pytest.raises(UnlockReasonTooShortException) as exc_info:
            await lock_service.unlock(JANUARY, admin, "  too short  ")

        assert exc_info.value.status_code == 422
        assert exc_info.value.details["actual_length"] == 9
        record = await lock_service.unlock(JANUARY, admin, "fix typo 1")
        assert record.status == PeriodLockStatus.OPEN

    @pytest.mark.asyncio
    async def test_locker_cannot_unlock(self, lock_service, chief_accountant):
        await lock_service.lock(JANUARY, chief_accountant)

        with pytest.raises(PermissionDeniedException) as exc_info:
            await lock_service.unlock(JANUARY, chief_accountant, UNLOCK_REASON)

        assert exc_info.value.status_code == 403
        assert await lock_service.is_locked("2025-01")

    @pytest.mark.asyncio
    async def test_open_period_cannot_be_unlocked(self, lock_service, admin):
        with pytest.raises(InvalidTransitionException, match="is not locked"):
            await lock_service.unlock(JANUARY, admin, UNLOCK_REASON)


class TestClose:
    """LOCKED -> CLOSED, which is terminal."""

    @pytest.mark.asyncio
    async def test_close_locked_period(self, lock_service, chief_accountant, super_admin, admin):
        await lock_service.lock(JANUARY, chief_accountant)

        record = await lock_service.close(JANUARY, super_admin)

        assert record.status == PeriodLockStatus.CLOSED
        assert record.closed_by == "u-root"
        with pytest.raises(InvalidTransitionException, match="cannot be reopened"):
            await lock_service.unlock(JANUARY, admin, UNLOCK_REASON)

    @pytest.mark.asyncio
    async def test_open_period_cannot_be_closed(self, lock_service, super_admin):
        with pytest.raises(InvalidTransitionException, match="Only locked periods"):
            await lock_service.close(JANUARY, super_admin)

    @pytest.mark.asyncio
    async def test_role_tiers(self, lock_service, chief_accountant, admin, super_admin, accountant):
        with pytest.raises(PermissionDeniedException):
            await lock_service.lock(JANUARY, accountant)
        with pytest.raises(PermissionDeniedException):
            await lock_service.lock(JANUARY, super_admin)

        await lock_service.lock(JANUARY, chief_accountant)

        with pytest.raises(PermissionDeniedException):
            await lock_service.close(JANUARY, admin)


class TestCanModify:
    """Write gating for entries dated in a period."""

    @pytest.mark.asyncio
    async def test_open_period_is_modifiable(self, lock_service):
        result = await lock_service.can_modify(JANUARY)

        assert result.allowed
        assert result.message is None

    @pytest.mark.asyncio
    async def test_locked_and_closed_periods_are_not(self, lock_service, chief_accountant, super_admin):
        await lock_service.lock(JANUARY, chief_accountant)
        locked = await lock_service.can_modify(JANUARY)
        await lock_service.close(JANUARY, super_admin)
        closed = await lock_service.can_modify(JANUARY)

        assert not locked.allowed
        assert "must be unlocked" in locked.message
        assert closed.status == PeriodLockStatus.CLOSED
        assert "can no longer be modified" in closed.message

    @pytest.mark.asyncio
    async def test_posting_dates(self, lock_service, chief_accountant):
        await lock_service.lock(JANUARY, chief_accountant)

        blocked = await lock_service.can_modify_on(date(2025, 1, 31))
        allowed = await lock_service.can_modify_on(date(2025, 2, 1))

        assert not blocked.allowed
        assert blocked.period == "2025-01"
        assert allowed.allowed
        assert allowed.period == "2025-02"

    @pytest.mark.asyncio
    async def test_ensure_modifiable_raises(self, lock_service, chief_accountant):
        await lock_service.lock(JANUARY, chief_accountant)

        with pytest.raises(PeriodLockedException) as exc_info:
            await lock_service.ensure_modifiable(JANUARY)

        assert exc_info.value.details["period"] == "2025-01"


class TestHistoryAndListing:
    """Audit trail and yearly overview."""

    @pytest.mark.asyncio
    async def test_every_transition_is_audited(self, lock_service, chief_accountant, admin, fixed_now):
        await lock_service.lock(JANUARY, chief_accountant)
        await lock_service.unlock(JANUARY, admin, UNLOCK_REASON)
        await lock_service.lock(JANUARY, chief_accountant)

        events = await lock_service.get_history(JANUARY)

        assert [e.action for e in events] == [
            PeriodLockAction.LOCK, PeriodLockAction.UNLOCK, PeriodLockAction.LOCK,
        ]
        assert [e.version for e in events] == [1, 2, 3]
        assert events[1].before_status == PeriodLockStatus.LOCKED
        assert events[1].after_status == PeriodLockStatus.OPEN
        assert events[1].reason == UNLOCK_REASON
        assert events[1].actor_role == "admin"
        assert events[0].occurred_at == fixed_now

    @pytest.mark.asyncio
    async def test_refusals_are_not_audited(self, lock_service, lock_store, accountant):
        with pytest.raises(PermissionDeniedException):
            await lock_service.lock(JANUARY, accountant)

        assert lock_store.audit_sink.events == []

    @pytest.mark.asyncio
    async def test_list_periods(self, lock_service, chief_accountant):
        await lock_service.lock(JANUARY, chief_accountant)
        await lock_service.lock(FEBRUARY, chief_accountant)

        listing = await lock_service.list_periods(2025)

        assert len(listing.periods) == 12
        assert listing.periods[0].status == PeriodLockStatus.LOCKED
        assert listing.periods[0].locked_by_name == "Nguyen Lan"
        assert listing.last_locked == "2025-02"
        assert listing.next_lockable == "2025-03"


class StaleReadStore(InMemoryLockStore):
    """Always reports the never-written record, as a lagging replica would."""

    async def get(self, period: str):
        return blank_record(PeriodDescriptor.parse(period))


class FailingAuditSink:
    async def record_lock_event(self, event) -> None:
        raise RuntimeError("audit storage unavailable")

    async def list_events(self, period: str):
        return []


class ReopeningStore(InMemoryLockStore):
    """Another writer reopens one period right after it is next read."""

    def __init__(self, reopen_key: str, occurred_at):
        super().__init__()
        self.reopen_key = reopen_key
        self.occurred_at = occurred_at
        self.armed = False

    async def get(self, period: str):
        record = await super().get(period)
        if self.armed and period == self.reopen_key:
            self.armed = False
            reopened = record.model_copy(update={"status": PeriodLockStatus.OPEN, "version": record.version + 1})
            event = LockAuditEvent(
                period=period,
                action=PeriodLockAction.UNLOCK,
                before_status=record.status,
                after_status=PeriodLockStatus.OPEN,
                actor_id="u-other",
                actor_role="admin",
                reason=UNLOCK_REASON,
                version=reopened.version,
                occurred_at=self.occurred_at,
            )
            await self.compare_and_swap(record.version, reopened, event)
        return record


class SlowHealthPipeline(StatementPipeline):
    """Holds February's checklist open until released."""

    def __init__(self, *args, **kwargs):
        super().__init__(*args, **kwargs)
        self.started = asyncio.Event()
        self.release = asyncio.Event()

    async def evaluate_health(self, period):
        if period.key == "2025-02":
            self.started.set()
            await self.release.wait()
        return await super().evaluate_health(period)


class TestConcurrency:
    """Mutual exclusion and the version check."""

    @pytest.mark.asyncio
    async def test_simultaneous_locks_succeed_once(self, lock_service, lock_store, chief_accountant, admin):
        results = await asyncio.gather(
            lock_service.lock(JANUARY, chief_accountant),
            lock_service.lock(JANUARY, admin),
            return_exceptions=True,
        )

        succeeded = [r for r in results if not isinstance(r, Exception)]
        refused = [r for r in results if isinstance(r, InvalidTransitionException)]
        assert len(succeeded) == 1
        assert len(refused) == 1
        assert len(lock_store.audit_sink.events) == 1

    @pytest.mark.asyncio
    async def test_stale_version_is_rejected(self, balance_provider, test_settings, chief_accountant):
        store = StaleReadStore()
        pipeline = StatementPipeline(balance_provider, lock_reader=store, settings=test_settings)
        service = PeriodLockService(store, pipeline, settings=test_settings)
        await service.lock(JANUARY, chief_accountant)

        with pytest.raises(InvalidTransitionException) as exc_info:
            await service.lock(JANUARY, chief_accountant)

        assert exc_info.value.reasons == ["Period lock state changed concurrently; reload and retry"]
        assert len(store.audit_sink.events) == 1

    @pytest.mark.asyncio
    async def test_audit_failure_rolls_back(self, balance_provider, test_settings, chief_accountant):
        store = InMemoryLockStore(audit_sink=FailingAuditSink())
        pipeline = StatementPipeline(balance_provider, lock_reader=store, settings=test_settings)
        service = PeriodLockService(store, pipeline, settings=test_settings)

        with pytest.raises(RuntimeError):
            await service.lock(JANUARY, chief_accountant)

        record = await store.get("2025-01")
        assert record.status == PeriodLockStatus.OPEN
        assert record.version == 0

    @pytest.mark.asyncio
    async def test_predecessor_reopened_before_commit(
        self, balance_provider, test_settings, chief_accountant, fixed_now
    ):
        store = ReopeningStore("2025-01", fixed_now)
        pipeline = StatementPipeline(balance_provider, lock_reader=store, settings=test_settings)
        service = PeriodLockService(store, pipeline, settings=test_settings)
        await service.lock(JANUARY, chief_accountant)
        store.armed = True

        with pytest.raises(InvalidTransitionException) as exc_info:
            await service.lock(FEBRUARY, chief_accountant)

        assert exc_info.value.reasons == ["Previous period locked: Previous period 2025-01 is open"]
        assert not await store.is_locked("2025-02")
        assert [e.period for e in store.audit_sink.events] == ["2025-01", "2025-01"]

    @pytest.mark.asyncio
    async def test_unlock_of_predecessor_waits_for_lock(
        self, balance_provider, lock_store, test_settings, chief_accountant, admin
    ):
        pipeline = SlowHealthPipeline(balance_provider, lock_reader=lock_store, settings=test_settings)
        service = PeriodLockService(lock_store, pipeline, settings=test_settings)
        await service.lock(JANUARY, chief_accountant)

        lock_task = asyncio.create_task(service.lock(FEBRUARY, chief_accountant))
        await pipeline.started.wait()
        unlock_task = asyncio.create_task(service.unlock(JANUARY, admin, UNLOCK_REASON))
        await asyncio.sleep(0)
        assert not unlock_task.done()

        pipeline.release.set()
        await asyncio.gather(lock_task, unlock_task)

        events = lock_store.audit_sink.events
        assert [(e.period, e.action) for e in events] == [
            ("2025-01", PeriodLockAction.LOCK),
            ("2025-02", PeriodLockAction.LOCK),
            ("2025-01", PeriodLockAction.UNLOCK),
        ]
