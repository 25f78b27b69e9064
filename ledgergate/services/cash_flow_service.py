"""
LedgerGate - Cash Flow Statement Service (Indirect Method)

Starts from profit before tax, adds back non-cash and financing items,
adjusts for working-capital changes, then adds investing and financing
flows. The derived ending cash is cross-checked against the cash balance
on the balance sheet.
"""

import logging
from decimal import Decimal
from typing import Dict, List, Optional

from ledgergate.config import Settings, settings as default_settings
from ledgergate.schemas.accounting import TrialBalanceFilter, TrialBalanceReport, TrialBalanceRow, ZERO
from ledgergate.schemas.period import PeriodDescriptor
from ledgergate.schemas.statements import (
    BalanceSheetReport,
    CashFlowReport,
    CashFlowSection,
    CashFlowSectionKey,
    CashFlowValidation,
    IncomeStatementReport,
    StatementLine,
)
from ledgergate.services.balance_sheet_service import (
    BalanceSheetService,
    PeriodLockReader,
    lock_reasons,
    read_lock_state,
    trial_balance_reasons,
)
from ledgergate.services.income_statement_service import IncomeStatementService
from ledgergate.services.trial_balance_service import TrialBalanceService
from ledgergate.statutory.balance_sheet_template import CASH_LINE_CODE
from ledgergate.statutory.cash_flow_template import (
    CASH_FLOW_TEMPLATE,
    DEPRECIATION_LINE,
    INVENTORIES_LINE,
    PAYABLES_LINE,
    PROFIT_LINE,
    RECEIVABLES_LINE,
    CashFlowLineTemplate,
    FlowMeasure,
    FlowSource,
)
from ledgergate.statutory.chart_of_accounts import CASH_ACCOUNTS
from ledgergate.utils.error_handling import PrerequisitesNotMetException

logger = logging.getLogger(__name__)


def cash_flow_reasons(
    period: PeriodDescriptor,
    trial_balance: TrialBalanceReport,
    income_statement: IncomeStatementReport,
    balance_sheet: BalanceSheetReport,
    is_locked: Optional[bool],
) -> List[str]:
    """
    Every unmet precondition of the cash flow statement.

    ``is_locked`` of None skips the lock requirement.
    """
    reasons = trial_balance_reasons(trial_balance)
    if not balance_sheet.can_submit:
        reasons.append(f"Balance sheet is not valid: {'; '.join(balance_sheet.validation.errors)}")
    if not income_statement.is_valid:
        reasons.append(f"Income statement is not valid: {'; '.join(income_statement.validation.errors)}")
    if is_locked is not None:
        reasons += lock_reasons(period, is_locked)
    return reasons


def measure_flow(source: FlowSource, row: Optional[TrialBalanceRow]) -> Decimal:
    if row is None:
        return ZERO
    measure = source.measure
    if measure == FlowMeasure.PERIOD_DEBIT:
        value = row.period_debit
    elif measure == FlowMeasure.PERIOD_CREDIT:
        value = row.period_credit
    elif measure == FlowMeasure.PERIOD_NET_CREDIT:
        value = row.period_credit - row.period_debit
    elif measure == FlowMeasure.DEBIT_BALANCE_CHANGE:
        value = row.closing_net - row.opening_net
    else:
        value = row.opening_net - row.closing_net
    return value * source.sign


class CashFlowService:
    """Service for building cash flow statements."""

    def __init__(
        self,
        trial_balances: TrialBalanceService,
        income_statements: IncomeStatementService,
        balance_sheets: BalanceSheetService,
        lock_reader: Optional[PeriodLockReader] = None,
        settings: Optional[Settings] = None,
    ):
        self.trial_balances = trial_balances
        self.income_statements = income_statements
        self.balance_sheets = balance_sheets
        self.lock_reader = lock_reader
        self.settings = settings or default_settings

    async def build_cash_flow(self, period: PeriodDescriptor, require_locked: bool = True) -> CashFlowReport:
        """
        Build the cash flow statement for a period.

        All preconditions are evaluated before failing so the raised
        PrerequisitesNotMetException lists every problem at once.
        """
        trial_balance = await self.trial_balances.build_trial_balance(
            period, TrialBalanceFilter.everything()
        )
        income_statement = self.income_statements.assemble(period, trial_balance)
        balance_sheet = self.balance_sheets.assemble(period, trial_balance)
        is_locked = await read_lock_state(self.lock_reader, period) if require_locked else None

        reasons = cash_flow_reasons(period, trial_balance, income_statement, balance_sheet, is_locked)
        if reasons:
            logger.warning(f"Cash flow {period.key} blocked: {'; '.join(reasons)}")
            raise PrerequisitesNotMetException("cash_flow", period.key, reasons)

        return self.assemble(period, trial_balance, income_statement, balance_sheet)

    def assemble(
        self,
        period: PeriodDescriptor,
        trial_balance: TrialBalanceReport,
        income_statement: IncomeStatementReport,
        balance_sheet: BalanceSheetReport,
    ) -> CashFlowReport:
        """Derive the statement from already-built upstream reports."""
        rows = {row.account_code: row for row in trial_balance.rows}
        values: Dict[str, Decimal] = {}

        # Detail lines first; totals may reference lines defined after them
        for section in CASH_FLOW_TEMPLATE:
            for line in section.lines:
                if not line.is_total:
                    values[line.code] = self._line_value(line, rows, income_statement)
        for section in CASH_FLOW_TEMPLATE:
            for line in section.lines:
                if line.is_total:
                    values[line.code] = sum((values[code] for code in line.components), ZERO)

        sections = []
        for section in CASH_FLOW_TEMPLATE:
            sections.append(CashFlowSection(
                key=section.key,
                title=section.title,
                rows=tuple(
                    StatementLine(
                        code=line.code,
                        name=line.name,
                        level=line.level,
                        amount=values[line.code],
                        account_mapping=line.account_mapping,
                        formula=line.formula,
                        is_negative=line.is_negative,
                        is_total=line.is_total,
                    )
                    for line in section.lines
                ),
                total=values[section.total_code],
            ))

        totals = {s.key: s.total for s in sections}
        net_cash_flow = sum(totals.values(), ZERO)
        cash_beginning = sum(
            (rows[code].opening_net for code in CASH_ACCOUNTS if code in rows), ZERO
        )
        cash_ending_calculated = cash_beginning + net_cash_flow
        cash_line = balance_sheet.line(CASH_LINE_CODE)
        cash_ending = cash_line.amount if cash_line is not None else ZERO

        validation = self._validate(
            values,
            totals[CashFlowSectionKey.OPERATING],
            cash_beginning,
            net_cash_flow,
            cash_ending_calculated,
            cash_ending,
        )

        return CashFlowReport(
            period=period.key,
            period_label=period.label,
            from_date=period.start_date,
            to_date=period.end_date,
            sections=tuple(sections),
            operating_total=totals[CashFlowSectionKey.OPERATING],
            investing_total=totals[CashFlowSectionKey.INVESTING],
            financing_total=totals[CashFlowSectionKey.FINANCING],
            net_cash_flow=net_cash_flow,
            cash_beginning=cash_beginning,
            cash_ending_calculated=cash_ending_calculated,
            validation=validation,
        )

    @staticmethod
    def _line_value(
        line: CashFlowLineTemplate,
        rows: Dict[str, TrialBalanceRow],
        income_statement: IncomeStatementReport,
    ) -> Decimal:
        value = sum((measure_flow(source, rows.get(source.account_code)) for source in line.sources), ZERO)
        if line.income_statement_code is not None:
            value += income_statement.amount(line.income_statement_code) * line.income_statement_sign
        return value

    def _validate(
        self,
        values: Dict[str, Decimal],
        operating_total: Decimal,
        cash_beginning: Decimal,
        net_cash_flow: Decimal,
        cash_ending_calculated: Decimal,
        cash_ending: Decimal,
    ) -> CashFlowValidation:
        errors = []
        warnings = []

        cash_difference = abs(cash_ending - cash_ending_calculated)
        is_balanced = cash_difference <= self.settings.cash_flow_tolerance
        if not is_balanced:
            errors.append(
                f"Ending cash per balance sheet ({cash_ending}) differs from beginning cash plus "
                f"net cash flow ({cash_ending_calculated}) by {cash_difference}"
            )
        if cash_ending < 0:
            errors.append(f"Ending cash is negative ({cash_ending})")
        if cash_beginning < 0:
            errors.append(f"Beginning cash is negative ({cash_beginning})")

        explanations = self._explain(values, operating_total, warnings)

        return CashFlowValidation(
            is_balanced=is_balanced,
            cash_beginning=cash_beginning,
            net_cash_flow=net_cash_flow,
            cash_ending_calculated=cash_ending_calculated,
            cash_ending=cash_ending,
            cash_difference=cash_difference,
            errors=tuple(errors),
            warnings=tuple(warnings),
            explanations=tuple(explanations),
            can_submit=is_balanced and not errors,
        )

    @staticmethod
    def _explain(values: Dict[str, Decimal], operating_total: Decimal, warnings: List[str]) -> List[str]:
        """Attribute a profit/operating-cash mismatch to specific lines."""
        explanations = []
        profit = values[PROFIT_LINE]

        if profit > 0 and operating_total < 0:
            if values[RECEIVABLES_LINE] < 0:
                explanations.append(
                    f"Receivables increased by {-values[RECEIVABLES_LINE]}: sales were made on credit and not yet collected"
                )
            if values[INVENTORIES_LINE] < 0:
                explanations.append(
                    f"Inventories increased by {-values[INVENTORIES_LINE]}: cash was tied up in stock"
                )
            if not explanations:
                warnings.append(
                    "Profit is positive but operating cash flow is negative, and no receivables or "
                    "inventory increase explains the gap"
                )
        elif profit < 0 and operating_total > 0:
            if values[PAYABLES_LINE] > 0:
                explanations.append(
                    f"Payables increased by {values[PAYABLES_LINE]}: payments to suppliers were deferred"
                )
            if values[DEPRECIATION_LINE] > 0:
                explanations.append(
                    f"Depreciation of {values[DEPRECIATION_LINE]} reduced profit without using cash"
                )
            if not explanations:
                warnings.append(
                    "Profit is negative but operating cash flow is positive, and no payables increase "
                    "or depreciation explains the gap"
                )
        return explanations
