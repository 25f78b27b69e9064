"""
LedgerGate - Financial Statement Schemas

Income statement, balance sheet and cash flow statement report models,
plus the bundle returned by the statement pipeline.
"""

from datetime import date
from decimal import Decimal
from enum import Enum
from typing import Optional, Tuple

from pydantic import BaseModel, ConfigDict

from ledgergate.schemas.accounting import TrialBalanceReport


class StatementLine(BaseModel):
    """One line of a statutory statement."""

    model_config = ConfigDict(frozen=True)

    code: str
    name: str
    level: int
    amount: Decimal
    account_mapping: Tuple[str, ...] = ()
    formula: Optional[str] = None
    is_negative: bool = False
    is_total: bool = False


class StatementValidation(BaseModel):
    """Errors block submission; warnings are advisory."""

    model_config = ConfigDict(frozen=True)

    errors: Tuple[str, ...] = ()
    warnings: Tuple[str, ...] = ()

    @property
    def is_valid(self) -> bool:
        return not self.errors


# =============================================================================
# INCOME STATEMENT
# =============================================================================

class IncomeStatementReport(BaseModel):
    """Income statement (results of operations) for a period."""

    model_config = ConfigDict(frozen=True)

    period: str
    period_label: str
    from_date: date
    to_date: date
    lines: Tuple[StatementLine, ...]
    net_revenue: Decimal
    gross_profit: Decimal
    operating_profit: Decimal
    profit_before_tax: Decimal
    net_profit: Decimal
    validation: StatementValidation

    @property
    def is_valid(self) -> bool:
        return self.validation.is_valid

    def amount(self, code: str) -> Decimal:
        for line in self.lines:
            if line.code == code:
                return line.amount
        raise KeyError(code)


# =============================================================================
# BALANCE SHEET
# =============================================================================

class BalanceSheetSectionKey(str, Enum):
    SHORT_TERM_ASSETS = "short_term_assets"
    LONG_TERM_ASSETS = "long_term_assets"
    LIABILITIES = "liabilities"
    EQUITY = "equity"


class BalanceSheetSection(BaseModel):
    model_config = ConfigDict(frozen=True)

    key: BalanceSheetSectionKey
    title: str
    rows: Tuple[StatementLine, ...]
    total: Decimal


class BalanceSheetValidation(BaseModel):
    model_config = ConfigDict(frozen=True)

    is_balanced: bool
    total_assets: Decimal
    total_liabilities_and_equity: Decimal
    difference: Decimal
    errors: Tuple[str, ...] = ()
    warnings: Tuple[str, ...] = ()
    can_submit: bool


class BalanceSheetReport(BaseModel):
    """Statement of financial position at the end of a period."""

    model_config = ConfigDict(frozen=True)

    period: str
    period_label: str
    as_of_date: date
    sections: Tuple[BalanceSheetSection, ...]
    total_short_term_assets: Decimal
    total_long_term_assets: Decimal
    total_assets: Decimal
    total_liabilities: Decimal
    total_equity: Decimal
    total_liabilities_and_equity: Decimal
    validation: BalanceSheetValidation

    @property
    def can_submit(self) -> bool:
        return self.validation.can_submit

    def line(self, code: str) -> Optional[StatementLine]:
        for section in self.sections:
            for row in section.rows:
                if row.code == code:
                    return row
        return None


# =============================================================================
# CASH FLOW STATEMENT
# =============================================================================

class CashFlowSectionKey(str, Enum):
    OPERATING = "operating"
    INVESTING = "investing"
    FINANCING = "financing"


class CashFlowSection(BaseModel):
    model_config = ConfigDict(frozen=True)

    key: CashFlowSectionKey
    title: str
    rows: Tuple[StatementLine, ...]
    total: Decimal


class CashFlowValidation(BaseModel):
    model_config = ConfigDict(frozen=True)

    is_balanced: bool
    cash_beginning: Decimal
    net_cash_flow: Decimal
    cash_ending_calculated: Decimal
    cash_ending: Decimal
    cash_difference: Decimal
    errors: Tuple[str, ...] = ()
    warnings: Tuple[str, ...] = ()
    explanations: Tuple[str, ...] = ()
    can_submit: bool


class CashFlowReport(BaseModel):
    """Cash flow statement, indirect method."""

    model_config = ConfigDict(frozen=True)

    period: str
    period_label: str
    from_date: date
    to_date: date
    sections: Tuple[CashFlowSection, ...]
    operating_total: Decimal
    investing_total: Decimal
    financing_total: Decimal
    net_cash_flow: Decimal
    cash_beginning: Decimal
    cash_ending_calculated: Decimal
    validation: CashFlowValidation

    @property
    def can_submit(self) -> bool:
        return self.validation.can_submit

    def line(self, code: str) -> Optional[StatementLine]:
        for section in self.sections:
            for row in section.rows:
                if row.code == code:
                    return row
        return None


# =============================================================================
# PIPELINE
# =============================================================================

class HealthCheck(BaseModel):
    model_config = ConfigDict(frozen=True)

    passed: bool
    details: Optional[str] = None


class StatementHealth(BaseModel):
    """Whether each statement of a period is fit to be locked."""

    model_config = ConfigDict(frozen=True)

    period: str
    trial_balance: HealthCheck
    income_statement: HealthCheck
    balance_sheet: HealthCheck
    cash_flow: HealthCheck


class StatementBundle(BaseModel):
    """Everything the pipeline managed to build for a period."""

    model_config = ConfigDict(frozen=True)

    period: str
    is_locked: bool
    trial_balance: TrialBalanceReport
    income_statement: Optional[IncomeStatementReport] = None
    balance_sheet: Optional[BalanceSheetReport] = None
    cash_flow: Optional[CashFlowReport] = None
