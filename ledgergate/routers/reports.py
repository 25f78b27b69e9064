"""
LedgerGate - Financial Reports Router

API endpoints for the trial balance and the statutory statements.
"""

from typing import List, Optional

from fastapi import APIRouter, Depends, Query

from ledgergate.dependencies import get_current_actor, get_period, get_statement_pipeline
from ledgergate.schemas.accounting import TrialBalanceFilter, TrialBalanceGroup, TrialBalanceReport
from ledgergate.schemas.period import PeriodDescriptor
from ledgergate.schemas.period_lock import Actor
from ledgergate.schemas.statements import (
    BalanceSheetReport,
    CashFlowReport,
    IncomeStatementReport,
    StatementBundle,
)
from ledgergate.services.report_pipeline import StatementPipeline
from ledgergate.services.trial_balance_service import group_by_account_type
from ledgergate.utils.error_handling import PermissionDeniedException
from ledgergate.utils.permissions import PeriodPermission, has_permission


router = APIRouter(prefix="/api/v1/reports/{period}", tags=["Financial Reports"])


def require_report_access(actor: Actor = Depends(get_current_actor)) -> Actor:
    if not has_permission(actor.role, PeriodPermission.VIEW_REPORTS):
        raise PermissionDeniedException(PeriodPermission.VIEW_REPORTS.value, actor.role.value)
    return actor


# ============================================================================
# TRIAL BALANCE
# ============================================================================

@router.get("/trial-balance", response_model=TrialBalanceReport)
async def get_trial_balance(
    period: PeriodDescriptor = Depends(get_period),
    include_zero_balance: bool = Query(False, description="Include accounts with no balance or movement"),
    include_sub_accounts: bool = Query(True, description="Include level 2 and 3 accounts"),
    account_level: Optional[int] = Query(None, ge=1, le=3, description="Deepest account level shown"),
    pipeline: StatementPipeline = Depends(get_statement_pipeline),
    actor: Actor = Depends(require_report_access),
):
    """Trial balance with its three-way balance check."""
    filters = TrialBalanceFilter(
        include_zero_balance=include_zero_balance,
        include_sub_accounts=include_sub_accounts,
        account_level=account_level,
    )
    return await pipeline.trial_balances.build_trial_balance(period, filters)


@router.get("/trial-balance/groups", response_model=List[TrialBalanceGroup])
async def get_trial_balance_groups(
    period: PeriodDescriptor = Depends(get_period),
    pipeline: StatementPipeline = Depends(get_statement_pipeline),
    actor: Actor = Depends(require_report_access),
):
    """Trial balance rows grouped by account type."""
    report = await pipeline.trial_balances.build_trial_balance(period, TrialBalanceFilter.everything())
    return group_by_account_type(report)


# ============================================================================
# STATEMENTS
# ============================================================================

@router.get("/income-statement", response_model=IncomeStatementReport)
async def get_income_statement(
    period: PeriodDescriptor = Depends(get_period),
    pipeline: StatementPipeline = Depends(get_statement_pipeline),
    actor: Actor = Depends(require_report_access),
):
    return await pipeline.income_statements.build_income_statement(period)


@router.get("/balance-sheet", response_model=BalanceSheetReport)
async def get_balance_sheet(
    period: PeriodDescriptor = Depends(get_period),
    pipeline: StatementPipeline = Depends(get_statement_pipeline),
    actor: Actor = Depends(require_report_access),
):
    """Balance sheet; requires a clean trial balance and a locked period."""
    return await pipeline.balance_sheets.build_balance_sheet(period)


@router.get("/cash-flow", response_model=CashFlowReport)
async def get_cash_flow(
    period: PeriodDescriptor = Depends(get_period),
    pipeline: StatementPipeline = Depends(get_statement_pipeline),
    actor: Actor = Depends(require_report_access),
):
    """Cash flow statement (indirect method); same prerequisites as the balance sheet."""
    return await pipeline.cash_flows.build_cash_flow(period)


@router.get("/bundle", response_model=StatementBundle)
async def get_statement_bundle(
    period: PeriodDescriptor = Depends(get_period),
    for_submission: bool = Query(False, description="Fail unless every statement can be submitted"),
    pipeline: StatementPipeline = Depends(get_statement_pipeline),
    actor: Actor = Depends(require_report_access),
):
    """All statements of a locked period in one call."""
    return await pipeline.run(period, for_submission=for_submission)
