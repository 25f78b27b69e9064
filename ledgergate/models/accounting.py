"""
LedgerGate - Account Balance Models

Per-month account balance totals produced by journal posting. These rows
are the raw material every financial statement is derived from.
"""

from decimal import Decimal
from enum import Enum
from typing import Optional

from sqlalchemy import Integer, Numeric, String, UniqueConstraint, Index, CheckConstraint
from sqlalchemy.orm import Mapped, mapped_column

from ledgergate.models.base import BaseModel


# =============================================================================
# ENUMS
# =============================================================================

class AccountType(str, Enum):
    """Main account types."""
    ASSET = "asset"
    LIABILITY = "liability"
    EQUITY = "equity"
    REVENUE = "revenue"
    COST = "cost"
    EXPENSE = "expense"


class AccountNature(str, Enum):
    """Side on which an account's normal balance sits."""
    DEBIT = "debit"
    CREDIT = "credit"
    AMPHIBIOUS = "amphibious"  # Receivable/payable control accounts


# =============================================================================
# MODELS
# =============================================================================

class AccountPeriodBalance(BaseModel):
    """
    Opening balance and movement of one account for one calendar month.

    Quarters, years and custom ranges are aggregated from the monthly rows:
    the opening balance comes from the first month in range, movements are
    summed.
    """

    __tablename__ = "account_period_balances"

    fiscal_year: Mapped[int] = mapped_column(Integer, nullable=False)
    fiscal_month: Mapped[int] = mapped_column(Integer, nullable=False)

    account_code: Mapped[str] = mapped_column(String(20), nullable=False)
    account_name: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    parent_code: Mapped[Optional[str]] = mapped_column(String(20), nullable=True)

    opening_debit: Mapped[Decimal] = mapped_column(Numeric(18, 2), default=Decimal("0.00"), nullable=False)
    opening_credit: Mapped[Decimal] = mapped_column(Numeric(18, 2), default=Decimal("0.00"), nullable=False)
    period_debit: Mapped[Decimal] = mapped_column(Numeric(18, 2), default=Decimal("0.00"), nullable=False)
    period_credit: Mapped[Decimal] = mapped_column(Numeric(18, 2), default=Decimal("0.00"), nullable=False)

    __table_args__ = (
        UniqueConstraint("fiscal_year", "fiscal_month", "account_code", name="uq_account_period_balance"),
        CheckConstraint("fiscal_month >= 1 AND fiscal_month <= 12", name="ck_fiscal_month"),
        Index("ix_account_period_balance_period", "fiscal_year", "fiscal_month"),
    )

    def __repr__(self) -> str:
        return f"<AccountPeriodBalance({self.fiscal_year}-{self.fiscal_month:02d} {self.account_code})>"
