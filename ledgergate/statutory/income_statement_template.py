"""
LedgerGate - Income Statement Template (B02-DNN)

Detail lines read period movements of their accounts; total lines carry a
formula over other line codes, e.g. ``"20 + 21 - 22 - 24"``.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Optional, Tuple


class MovementSide(str, Enum):
    """Which period movement of the source accounts a line reads."""
    DEBIT = "debit"
    CREDIT = "credit"


@dataclass(frozen=True)
class IncomeStatementLineTemplate:
    code: str
    name: str
    level: int
    accounts: Tuple[str, ...] = ()
    side: MovementSide = MovementSide.DEBIT
    formula: Optional[str] = None
    is_negative: bool = False

    @property
    def is_total(self) -> bool:
        return self.formula is not None


L = IncomeStatementLineTemplate
DR, CR = MovementSide.DEBIT, MovementSide.CREDIT

INCOME_STATEMENT_TEMPLATE: Tuple[IncomeStatementLineTemplate, ...] = (
    L("01", "Revenue from sales and services", 1, ("511",), CR),
    L("02", "Revenue deductions", 1, ("521",), DR, is_negative=True),
    L("10", "Net revenue", 0, formula="01 - 02"),
    L("11", "Cost of goods sold", 1, ("632",), DR),
    L("20", "Gross profit", 0, formula="10 - 11"),
    L("21", "Financial income", 1, ("515",), CR),
    L("22", "Financial expenses", 1, ("635",), DR),
    L("23", "Of which: interest expense", 2, ("6351",), DR),
    L("24", "Selling and administrative expenses", 1, ("641", "642"), DR),
    L("30", "Operating profit", 0, formula="20 + 21 - 22 - 24"),
    L("31", "Other income", 1, ("711",), CR),
    L("32", "Other expenses", 1, ("811",), DR),
    L("40", "Other profit", 0, formula="31 - 32"),
    L("50", "Profit before tax", 0, formula="30 + 40"),
    L("51", "Corporate income tax expense", 1, ("821",), DR),
    L("60", "Net profit after tax", 0, formula="50 - 51"),
)

NET_REVENUE = "10"
GROSS_PROFIT = "20"
OPERATING_PROFIT = "30"
PROFIT_BEFORE_TAX = "50"
NET_PROFIT = "60"
ADMIN_EXPENSES = "24"
