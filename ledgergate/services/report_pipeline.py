"""
LedgerGate - Statement Pipeline

Builds the statements of a period in dependency order:

    trial balance -> income statement + balance sheet -> cash flow

The trial balance is fetched once and shared by every later stage. The
pipeline stops at the first stage whose prerequisites fail and raises with
every reason for that stage plus the bundle built so far.
"""

import logging
from typing import Dict, Optional

from ledgergate.config import Settings, settings as default_settings
from ledgergate.schemas.accounting import TrialBalanceFilter
from ledgergate.schemas.period import PeriodDescriptor
from ledgergate.schemas.statements import HealthCheck, StatementBundle, StatementHealth
from ledgergate.services.balance_provider import AccountBalanceProvider
from ledgergate.services.balance_sheet_service import (
    BalanceSheetService,
    PeriodLockReader,
    lock_reasons,
    read_lock_state,
    trial_balance_reasons,
)
from ledgergate.services.cash_flow_service import CashFlowService, cash_flow_reasons
from ledgergate.services.income_statement_service import IncomeStatementService
from ledgergate.services.trial_balance_service import TrialBalanceService
from ledgergate.statutory.chart_of_accounts import ChartAccount
from ledgergate.utils.error_handling import PrerequisitesNotMetException, ReportValidationFailedException

logger = logging.getLogger(__name__)


def _health(reasons) -> HealthCheck:
    return HealthCheck(passed=not reasons, details="; ".join(reasons) if reasons else None)


class StatementPipeline:
    """Wires the four statement builders around one balance provider."""

    def __init__(
        self,
        provider: AccountBalanceProvider,
        lock_reader: Optional[PeriodLockReader] = None,
        settings: Optional[Settings] = None,
        chart: Optional[Dict[str, ChartAccount]] = None,
    ):
        self.settings = settings or default_settings
        self.lock_reader = lock_reader
        self.trial_balances = TrialBalanceService(provider, chart, self.settings)
        self.income_statements = IncomeStatementService(self.trial_balances, self.settings)
        self.balance_sheets = BalanceSheetService(self.trial_balances, lock_reader, self.settings)
        self.cash_flows = CashFlowService(
            self.trial_balances,
            self.income_statements,
            self.balance_sheets,
            lock_reader,
            self.settings,
        )

    async def run(self, period: PeriodDescriptor, for_submission: bool = False) -> StatementBundle:
        """
        Build every statement of a locked period.

        Raises:
            PrerequisitesNotMetException: a stage is blocked; ``partial``
                holds the bundle built before it
            ReportValidationFailedException: ``for_submission`` and the cash
                flow statement does not reconcile
            TransientProviderException: balances could not be fetched
        """
        trial_balance = await self.trial_balances.build_trial_balance(
            period, TrialBalanceFilter.everything()
        )
        is_locked = await read_lock_state(self.lock_reader, period)
        bundle = StatementBundle(period=period.key, is_locked=is_locked, trial_balance=trial_balance)

        reasons = trial_balance_reasons(trial_balance) + lock_reasons(period, is_locked)
        if reasons:
            logger.warning(f"Statements for {period.key} blocked at balance sheet: {'; '.join(reasons)}")
            raise PrerequisitesNotMetException("balance_sheet", period.key, reasons, partial=bundle)

        income_statement = self.income_statements.assemble(period, trial_balance)
        balance_sheet = self.balance_sheets.assemble(period, trial_balance)
        bundle = bundle.model_copy(update={
            "income_statement": income_statement,
            "balance_sheet": balance_sheet,
        })

        reasons = cash_flow_reasons(period, trial_balance, income_statement, balance_sheet, is_locked)
        if reasons:
            logger.warning(f"Statements for {period.key} blocked at cash flow: {'; '.join(reasons)}")
            raise PrerequisitesNotMetException("cash_flow", period.key, reasons, partial=bundle)

        cash_flow = self.cash_flows.assemble(period, trial_balance, income_statement, balance_sheet)
        bundle = bundle.model_copy(update={"cash_flow": cash_flow})

        if for_submission and not cash_flow.can_submit:
            raise ReportValidationFailedException(
                "cash_flow",
                period.key,
                cash_flow.validation.cash_difference,
                list(cash_flow.validation.errors),
            )
        return bundle

    async def evaluate_health(self, period: PeriodDescriptor) -> StatementHealth:
        """
        Evaluate every statement without the lock requirement.

        Used by the lock checklist, which must judge the statements of a
        period before it is locked.
        """
        trial_balance = await self.trial_balances.build_trial_balance(
            period, TrialBalanceFilter.everything()
        )
        tb_reasons = trial_balance_reasons(trial_balance)
        income_statement = self.income_statements.assemble(period, trial_balance)
        balance_sheet = self.balance_sheets.assemble(period, trial_balance)

        bs_reasons = list(tb_reasons)
        if not balance_sheet.can_submit:
            bs_reasons += balance_sheet.validation.errors

        cf_reasons = cash_flow_reasons(period, trial_balance, income_statement, balance_sheet, None)
        if not cf_reasons:
            cash_flow = self.cash_flows.assemble(period, trial_balance, income_statement, balance_sheet)
            if not cash_flow.can_submit:
                cf_reasons = list(cash_flow.validation.errors)

        return StatementHealth(
            period=period.key,
            trial_balance=_health(tb_reasons),
            income_statement=_health(list(income_statement.validation.errors)),
            balance_sheet=_health(bs_reasons),
            cash_flow=_health(cf_reasons),
        )
