"""
LedgerGate - Standard Chart of Accounts

Small-business chart of accounts used to classify balances coming from the
ledger. Codes are numeric strings; a sub-account's code starts with its
parent's code.
"""

from dataclasses import dataclass
from typing import Dict, Optional

from ledgergate.models.accounting import AccountNature, AccountType


@dataclass(frozen=True)
class ChartAccount:
    """Account definition in the chart."""
    code: str
    name: str
    account_type: AccountType
    nature: AccountNature
    level: int = 1
    parent_code: Optional[str] = None


A = AccountType
N = AccountNature

_ACCOUNTS = [
    # Cash
    ChartAccount("111", "Cash on hand", A.ASSET, N.DEBIT),
    ChartAccount("1111", "Cash on hand - local currency", A.ASSET, N.DEBIT, 2, "111"),
    ChartAccount("1112", "Cash on hand - foreign currency", A.ASSET, N.DEBIT, 2, "111"),
    ChartAccount("112", "Cash at bank", A.ASSET, N.DEBIT),
    ChartAccount("1121", "Cash at bank - local currency", A.ASSET, N.DEBIT, 2, "112"),
    ChartAccount("1122", "Cash at bank - foreign currency", A.ASSET, N.DEBIT, 2, "112"),

    # Receivables
    ChartAccount("131", "Receivables from customers", A.ASSET, N.AMPHIBIOUS),
    ChartAccount("133", "Deductible VAT", A.ASSET, N.DEBIT),
    ChartAccount("1331", "Deductible VAT on goods and services", A.ASSET, N.DEBIT, 2, "133"),
    ChartAccount("1332", "Deductible VAT on fixed assets", A.ASSET, N.DEBIT, 2, "133"),
    ChartAccount("138", "Other receivables", A.ASSET, N.DEBIT),
    ChartAccount("141", "Advances to employees", A.ASSET, N.DEBIT),

    # Inventories
    ChartAccount("152", "Raw materials", A.ASSET, N.DEBIT),
    ChartAccount("153", "Tools and supplies", A.ASSET, N.DEBIT),
    ChartAccount("154", "Work in progress", A.ASSET, N.DEBIT),
    ChartAccount("155", "Finished goods", A.ASSET, N.DEBIT),
    ChartAccount("156", "Merchandise", A.ASSET, N.DEBIT),
    ChartAccount("157", "Goods on consignment", A.ASSET, N.DEBIT),

    # Long-term assets
    ChartAccount("211", "Tangible fixed assets", A.ASSET, N.DEBIT),
    ChartAccount("214", "Accumulated depreciation", A.ASSET, N.CREDIT),
    ChartAccount("228", "Long-term investments", A.ASSET, N.DEBIT),
    ChartAccount("229", "Provisions for investment losses", A.ASSET, N.CREDIT),
    ChartAccount("242", "Prepaid expenses", A.ASSET, N.DEBIT),

    # Liabilities
    ChartAccount("331", "Payables to suppliers", A.LIABILITY, N.AMPHIBIOUS),
    ChartAccount("333", "Taxes payable to the state", A.LIABILITY, N.CREDIT),
    ChartAccount("3331", "Output VAT", A.LIABILITY, N.CREDIT, 2, "333"),
    ChartAccount("33311", "Output VAT on domestic sales", A.LIABILITY, N.CREDIT, 3, "3331"),
    ChartAccount("3334", "Corporate income tax", A.LIABILITY, N.CREDIT, 2, "333"),
    ChartAccount("3335", "Personal income tax", A.LIABILITY, N.CREDIT, 2, "333"),
    ChartAccount("334", "Payables to employees", A.LIABILITY, N.CREDIT),
    ChartAccount("335", "Accrued expenses", A.LIABILITY, N.CREDIT),
    ChartAccount("338", "Other payables", A.LIABILITY, N.CREDIT),
    ChartAccount("3383", "Social insurance", A.LIABILITY, N.CREDIT, 2, "338"),
    ChartAccount("3384", "Health insurance", A.LIABILITY, N.CREDIT, 2, "338"),
    ChartAccount("3386", "Unemployment insurance", A.LIABILITY, N.CREDIT, 2, "338"),
    ChartAccount("341", "Borrowings", A.LIABILITY, N.CREDIT),
    ChartAccount("342", "Finance lease liabilities", A.LIABILITY, N.CREDIT),

    # Equity
    ChartAccount("411", "Owner's capital", A.EQUITY, N.CREDIT),
    ChartAccount("421", "Undistributed profit after tax", A.EQUITY, N.AMPHIBIOUS),
    ChartAccount("4211", "Undistributed profit of prior years", A.EQUITY, N.AMPHIBIOUS, 2, "421"),
    ChartAccount("4212", "Undistributed profit of current year", A.EQUITY, N.AMPHIBIOUS, 2, "421"),

    # Revenue
    ChartAccount("511", "Revenue from sales and services", A.REVENUE, N.CREDIT),
    ChartAccount("5111", "Revenue from sale of goods", A.REVENUE, N.CREDIT, 2, "511"),
    ChartAccount("5112", "Revenue from sale of finished products", A.REVENUE, N.CREDIT, 2, "511"),
    ChartAccount("5113", "Revenue from services", A.REVENUE, N.CREDIT, 2, "511"),
    ChartAccount("515", "Financial income", A.REVENUE, N.CREDIT),
    ChartAccount("521", "Revenue deductions", A.REVENUE, N.DEBIT),

    # Costs and expenses
    ChartAccount("632", "Cost of goods sold", A.COST, N.DEBIT),
    ChartAccount("635", "Financial expenses", A.EXPENSE, N.DEBIT),
    ChartAccount("6351", "Interest expense", A.EXPENSE, N.DEBIT, 2, "635"),
    ChartAccount("641", "Selling expenses", A.EXPENSE, N.DEBIT),
    ChartAccount("642", "General and administrative expenses", A.EXPENSE, N.DEBIT),

    # Other income and expense
    ChartAccount("711", "Other income", A.REVENUE, N.CREDIT),
    ChartAccount("811", "Other expenses", A.EXPENSE, N.DEBIT),
    ChartAccount("821", "Corporate income tax expense", A.EXPENSE, N.DEBIT),

    # Profit determination
    ChartAccount("911", "Profit determination", A.EQUITY, N.AMPHIBIOUS),
]

STANDARD_CHART: Dict[str, ChartAccount] = {account.code: account for account in _ACCOUNTS}

CASH_ACCOUNTS = ("111", "112")


def resolve_account(
    code: str,
    parent_code: Optional[str] = None,
    chart: Optional[Dict[str, ChartAccount]] = None,
) -> Optional[ChartAccount]:
    """
    Classify an account code against the chart.

    Codes missing from the chart are treated as sub-accounts of their
    parent: the explicit parent code when given, otherwise the longest
    chart code that prefixes theirs. Returns None when no parent can be
    found.
    """
    chart = STANDARD_CHART if chart is None else chart
    if code in chart:
        return chart[code]

    parent = chart.get(parent_code) if parent_code else None
    if parent is None:
        for length in range(len(code) - 1, 2, -1):
            parent = chart.get(code[:length])
            if parent is not None:
                break
    if parent is None:
        return None

    return ChartAccount(
        code=code,
        name="",
        account_type=parent.account_type,
        nature=parent.nature,
        level=min(parent.level + 1, 3),
        parent_code=parent.code,
    )
