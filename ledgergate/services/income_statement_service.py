"""
LedgerGate - Income Statement Service

Derives the income statement from trial-balance period movements using the
statutory template. Total lines are evaluated from their formulas.
"""

import logging
import re
from decimal import Decimal
from typing import Dict, List, Optional

from ledgergate.config import Settings, settings as default_settings
from ledgergate.schemas.accounting import TrialBalanceFilter, TrialBalanceReport, ZERO
from ledgergate.schemas.period import PeriodDescriptor
from ledgergate.schemas.statements import IncomeStatementReport, StatementLine, StatementValidation
from ledgergate.services.trial_balance_service import TrialBalanceService
from ledgergate.statutory.income_statement_template import (
    ADMIN_EXPENSES,
    GROSS_PROFIT,
    INCOME_STATEMENT_TEMPLATE,
    NET_PROFIT,
    NET_REVENUE,
    OPERATING_PROFIT,
    PROFIT_BEFORE_TAX,
    IncomeStatementLineTemplate,
    MovementSide,
)

logger = logging.getLogger(__name__)

_FORMULA_TOKEN = re.compile(r"\s*([+-]|\d+)")

MAX_GROSS_MARGIN = Decimal("0.90")
MAX_ADMIN_EXPENSE_RATIO = Decimal("0.50")


def evaluate_formula(formula: str, values: Dict[str, Decimal]) -> Decimal:
    """
    Evaluate a line formula such as ``"20 + 21 - 22 - 24"``.

    Operands are line codes already present in ``values``.
    """
    tokens = []
    position = 0
    formula = formula.strip()
    while position < len(formula):
        match = _FORMULA_TOKEN.match(formula, position)
        if not match:
            raise ValueError(f"Invalid formula: {formula!r}")
        tokens.append(match.group(1))
        position = match.end()

    total = ZERO
    sign = 1
    expect_operand = True
    for token in tokens:
        if expect_operand:
            if token in ("+", "-"):
                raise ValueError(f"Invalid formula: {formula!r}")
            if token not in values:
                raise ValueError(f"Formula {formula!r} references unknown line {token}")
            total += values[token] * sign
            expect_operand = False
        else:
            if token not in ("+", "-"):
                raise ValueError(f"Invalid formula: {formula!r}")
            sign = 1 if token == "+" else -1
            expect_operand = True
    if expect_operand:
        raise ValueError(f"Invalid formula: {formula!r}")
    return total


class IncomeStatementService:
    """Service for building income statements."""

    def __init__(
        self,
        trial_balances: TrialBalanceService,
        settings: Optional[Settings] = None,
    ):
        self.trial_balances = trial_balances
        self.settings = settings or default_settings

    async def build_income_statement(self, period: PeriodDescriptor) -> IncomeStatementReport:
        trial_balance = await self.trial_balances.build_trial_balance(
            period, TrialBalanceFilter.everything()
        )
        return self.assemble(period, trial_balance)

    def assemble(self, period: PeriodDescriptor, trial_balance: TrialBalanceReport) -> IncomeStatementReport:
        rows = {row.account_code: row for row in trial_balance.rows}
        values: Dict[str, Decimal] = {}
        lines: List[StatementLine] = []

        for template in INCOME_STATEMENT_TEMPLATE:
            if template.is_total:
                amount = evaluate_formula(template.formula, values)
            else:
                amount = self._movement(template, rows)
            values[template.code] = amount
            lines.append(StatementLine(
                code=template.code,
                name=template.name,
                level=template.level,
                amount=amount,
                account_mapping=template.accounts,
                formula=template.formula,
                is_negative=template.is_negative,
                is_total=template.is_total,
            ))

        validation = self._validate(trial_balance, values)
        return IncomeStatementReport(
            period=period.key,
            period_label=period.label,
            from_date=period.start_date,
            to_date=period.end_date,
            lines=tuple(lines),
            net_revenue=values[NET_REVENUE],
            gross_profit=values[GROSS_PROFIT],
            operating_profit=values[OPERATING_PROFIT],
            profit_before_tax=values[PROFIT_BEFORE_TAX],
            net_profit=values[NET_PROFIT],
            validation=validation,
        )

    @staticmethod
    def _movement(template: IncomeStatementLineTemplate, rows) -> Decimal:
        total = ZERO
        for code in template.accounts:
            row = rows.get(code)
            if row is None:
                continue
            total += row.period_credit if template.side == MovementSide.CREDIT else row.period_debit
        return total

    def _validate(self, trial_balance: TrialBalanceReport, values: Dict[str, Decimal]) -> StatementValidation:
        errors = []
        warnings = []

        period_check = trial_balance.check.period
        if not period_check.balanced:
            errors.append(
                f"Period movements in the trial balance are not balanced (difference: {period_check.difference})"
            )

        net_revenue = values[NET_REVENUE]
        net_profit = values[NET_PROFIT]
        if net_revenue < 0:
            warnings.append(f"Net revenue is negative ({net_revenue})")
        if net_profit < 0:
            warnings.append(f"The period shows a loss of {-net_profit}")
        if net_revenue > 0:
            gross_margin = values[GROSS_PROFIT] / net_revenue
            if gross_margin < 0:
                warnings.append("Gross margin is negative: cost of goods sold exceeds net revenue")
            elif gross_margin > MAX_GROSS_MARGIN:
                warnings.append(f"Gross margin of {gross_margin:.1%} is unusually high; check cost of goods sold")
            if values[ADMIN_EXPENSES] > net_revenue * MAX_ADMIN_EXPENSE_RATIO:
                warnings.append("Selling and administrative expenses exceed 50% of net revenue")

        return StatementValidation(errors=tuple(errors), warnings=tuple(warnings))
