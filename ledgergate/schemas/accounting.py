"""
LedgerGate - Account Balance and Trial Balance Schemas

Pydantic schemas for per-account balances and the trial balance report.
All report models are frozen: consumers receive snapshots.
"""

from datetime import date
from decimal import Decimal
from typing import Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field

from ledgergate.models.accounting import AccountNature, AccountType


ZERO = Decimal("0.00")


# =============================================================================
# ACCOUNT BALANCES
# =============================================================================

class AccountBalance(BaseModel):
    """Opening, movement and closing balance of one account for one period."""

    model_config = ConfigDict(frozen=True)

    account_code: str = Field(..., min_length=1, max_length=20)
    account_name: str = ""
    level: int = Field(1, ge=1, le=3)
    parent_code: Optional[str] = None
    nature: AccountNature = AccountNature.AMPHIBIOUS
    account_type: AccountType = AccountType.ASSET

    opening_debit: Decimal = ZERO
    opening_credit: Decimal = ZERO
    period_debit: Decimal = ZERO
    period_credit: Decimal = ZERO
    closing_debit: Decimal = ZERO
    closing_credit: Decimal = ZERO

    @property
    def opening_net(self) -> Decimal:
        """Opening balance as debit minus credit."""
        return self.opening_debit - self.opening_credit

    @property
    def closing_net(self) -> Decimal:
        """Closing balance as debit minus credit."""
        return self.closing_debit - self.closing_credit

    @property
    def is_zero(self) -> bool:
        return not any((
            self.opening_debit, self.opening_credit,
            self.period_debit, self.period_credit,
            self.closing_debit, self.closing_credit,
        ))


class TrialBalanceFilter(BaseModel):
    """Display filters for the trial balance."""

    model_config = ConfigDict(frozen=True)

    include_zero_balance: bool = False
    include_sub_accounts: bool = True
    account_level: Optional[int] = Field(None, ge=1, le=3)

    @classmethod
    def everything(cls) -> "TrialBalanceFilter":
        """Unfiltered view used when statements are derived from the trial balance."""
        return cls(include_zero_balance=True, include_sub_accounts=True)


# =============================================================================
# TRIAL BALANCE
# =============================================================================

class TrialBalanceRow(AccountBalance):
    """Account balance with the abnormal-side flag applied."""

    is_abnormal: bool = False
    abnormal_reason: Optional[str] = None


class BalanceCheckPart(BaseModel):
    """Debit/credit equality for one of opening, period or closing."""

    model_config = ConfigDict(frozen=True)

    debit_total: Decimal
    credit_total: Decimal
    difference: Decimal
    balanced: bool


class BalanceCheckResult(BaseModel):
    """Three-way balance check over level-1 accounts."""

    model_config = ConfigDict(frozen=True)

    opening: BalanceCheckPart
    period: BalanceCheckPart
    closing: BalanceCheckPart
    is_fully_balanced: bool
    abnormal_count: int
    can_generate_report: bool
    warnings: Tuple[str, ...] = ()


class DataIntegrityWarning(BaseModel):
    """Non-blocking data problem attached to a report."""

    model_config = ConfigDict(frozen=True)

    account_code: str
    message: str


class TrialBalanceReport(BaseModel):
    """Trial balance for one period."""

    model_config = ConfigDict(frozen=True)

    period: str
    period_label: str
    from_date: date
    to_date: date
    rows: Tuple[TrialBalanceRow, ...]
    check: BalanceCheckResult
    integrity_warnings: Tuple[DataIntegrityWarning, ...] = ()

    def row(self, account_code: str) -> Optional[TrialBalanceRow]:
        for row in self.rows:
            if row.account_code == account_code:
                return row
        return None

    @property
    def abnormal_rows(self) -> Tuple[TrialBalanceRow, ...]:
        return tuple(r for r in self.rows if r.is_abnormal)


class TrialBalanceGroup(BaseModel):
    """Trial balance rows of one account type with level-1 subtotals."""

    model_config = ConfigDict(frozen=True)

    account_type: AccountType
    rows: Tuple[TrialBalanceRow, ...]
    opening_debit: Decimal
    opening_credit: Decimal
    period_debit: Decimal
    period_credit: Decimal
    closing_debit: Decimal
    closing_credit: Decimal
