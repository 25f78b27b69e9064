"""
LedgerGate - Period Locks Router

API endpoints for the period lock checklist and lock transitions.
"""

from datetime import date
from typing import List

from fastapi import APIRouter, Depends, Query

from ledgergate.dependencies import get_current_actor, get_period, get_period_lock_service
from ledgergate.models.period_lock import PeriodType
from ledgergate.schemas.period import PeriodDescriptor
from ledgergate.schemas.period_lock import (
    Actor,
    CanModifyResult,
    LockAuditEvent,
    LockChecklist,
    PeriodListResponse,
    PeriodLockRecord,
    UnlockRequest,
)
from ledgergate.services.period_lock_service import PeriodLockService


router = APIRouter(prefix="/api/v1/period-locks", tags=["Period Locks"])


@router.get("", response_model=PeriodListResponse)
async def list_periods(
    year: int = Query(..., ge=1900, le=9999),
    period_type: PeriodType = Query(PeriodType.MONTH),
    service: PeriodLockService = Depends(get_period_lock_service),
    actor: Actor = Depends(get_current_actor),
):
    """Lock status of every period of a year."""
    return await service.list_periods(year, period_type)


@router.get("/can-modify-date", response_model=CanModifyResult)
async def can_modify_date(
    posting_date: date = Query(..., description="Date of the entry to be written"),
    service: PeriodLockService = Depends(get_period_lock_service),
    actor: Actor = Depends(get_current_actor),
):
    """Whether an entry dated ``posting_date`` may be written."""
    return await service.can_modify_on(posting_date)


@router.get("/{period}", response_model=PeriodLockRecord)
async def get_period_status(
    period: PeriodDescriptor = Depends(get_period),
    service: PeriodLockService = Depends(get_period_lock_service),
    actor: Actor = Depends(get_current_actor),
):
    return await service.get_status(period)


@router.get("/{period}/checklist", response_model=LockChecklist)
async def get_lock_checklist(
    period: PeriodDescriptor = Depends(get_period),
    service: PeriodLockService = Depends(get_period_lock_service),
    actor: Actor = Depends(get_current_actor),
):
    """Evaluate the pre-lock checks without locking."""
    return await service.get_lock_checklist(period)


@router.get("/{period}/can-modify", response_model=CanModifyResult)
async def can_modify_period(
    period: PeriodDescriptor = Depends(get_period),
    service: PeriodLockService = Depends(get_period_lock_service),
    actor: Actor = Depends(get_current_actor),
):
    return await service.can_modify(period)


@router.get("/{period}/history", response_model=List[LockAuditEvent])
async def get_lock_history(
    period: PeriodDescriptor = Depends(get_period),
    service: PeriodLockService = Depends(get_period_lock_service),
    actor: Actor = Depends(get_current_actor),
):
    return await service.get_history(period)


# ============================================================================
# TRANSITIONS
# ============================================================================

@router.post("/{period}/lock", response_model=PeriodLockRecord)
async def lock_period(
    period: PeriodDescriptor = Depends(get_period),
    service: PeriodLockService = Depends(get_period_lock_service),
    actor: Actor = Depends(get_current_actor),
):
    """Lock a period once every required check passes."""
    return await service.lock(period, actor)


@router.post("/{period}/unlock", response_model=PeriodLockRecord)
async def unlock_period(
    request: UnlockRequest,
    period: PeriodDescriptor = Depends(get_period),
    service: PeriodLockService = Depends(get_period_lock_service),
    actor: Actor = Depends(get_current_actor),
):
    """Reopen a locked period. A written reason is mandatory."""
    return await service.unlock(period, actor, request.reason)


@router.post("/{period}/close", response_model=PeriodLockRecord)
async def close_period(
    period: PeriodDescriptor = Depends(get_period),
    service: PeriodLockService = Depends(get_period_lock_service),
    actor: Actor = Depends(get_current_actor),
):
    """Permanently close a locked period."""
    return await service.close(period, actor)
