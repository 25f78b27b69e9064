"""
LedgerGate - Balance Sheet Template (B01-DNN)

Declarative layout of the statement of financial position. Each detail
line names the accounts it reads and which side of their closing balance
it takes; group lines roll up the detail lines beneath them.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Tuple

from ledgergate.schemas.statements import BalanceSheetSectionKey


class BalanceSide(str, Enum):
    """Which part of an account's closing balance a line reads."""
    DEBIT = "debit"      # closing debit only
    CREDIT = "credit"    # closing credit only
    NET = "net"          # debit - credit for assets, credit - debit for sources


@dataclass(frozen=True)
class AccountSource:
    account_code: str
    side: BalanceSide = BalanceSide.NET


@dataclass(frozen=True)
class BalanceSheetLineTemplate:
    """
    One statutory line. Lines without sources are totals of the lines that
    follow them at the next level down.
    """
    code: str
    name: str
    level: int
    sources: Tuple[AccountSource, ...] = ()
    is_negative: bool = False

    @property
    def is_total(self) -> bool:
        return not self.sources

    @property
    def account_mapping(self) -> Tuple[str, ...]:
        return tuple(source.account_code for source in self.sources)


@dataclass(frozen=True)
class BalanceSheetSectionTemplate:
    key: BalanceSheetSectionKey
    title: str
    is_asset: bool
    lines: Tuple[BalanceSheetLineTemplate, ...]


def _src(*codes: str, side: BalanceSide = BalanceSide.NET) -> Tuple[AccountSource, ...]:
    return tuple(AccountSource(code, side) for code in codes)


L = BalanceSheetLineTemplate
D, C = BalanceSide.DEBIT, BalanceSide.CREDIT

# Revenue, expense and clearing accounts not yet closed at period end belong
# to the current year's undistributed profit.
UNCLOSED_PROFIT_ACCOUNTS = ("511", "515", "521", "632", "635", "641", "642", "711", "811", "821", "911")

SHORT_TERM_ASSETS = BalanceSheetSectionTemplate(
    key=BalanceSheetSectionKey.SHORT_TERM_ASSETS,
    title="A. Short-term assets",
    is_asset=True,
    lines=(
        L("100", "A. Short-term assets", 0),
        L("110", "I. Cash and cash equivalents", 1),
        L("111", "Cash", 2, _src("111", "112")),
        L("130", "II. Short-term receivables", 1),
        L("131", "Receivables from customers", 2, _src("131", side=D)),
        L("132", "Prepayments to suppliers", 2, _src("331", side=D)),
        L("136", "Other receivables", 2, _src("138", "141")),
        L("140", "III. Inventories", 1),
        L("141", "Inventories", 2, _src("152", "153", "154", "155", "156", "157")),
        L("150", "IV. Other short-term assets", 1),
        L("151", "Deductible VAT", 2, _src("133")),
        L("152", "Taxes receivable from the state", 2, _src("333", side=D)),
        L("155", "Prepaid expenses", 2, _src("242")),
    ),
)

LONG_TERM_ASSETS = BalanceSheetSectionTemplate(
    key=BalanceSheetSectionKey.LONG_TERM_ASSETS,
    title="B. Long-term assets",
    is_asset=True,
    lines=(
        L("200", "B. Long-term assets", 0),
        L("220", "I. Fixed assets", 1),
        L("221", "Tangible fixed assets", 2),
        L("222", "Cost", 3, _src("211")),
        L("223", "Accumulated depreciation", 3, _src("214", side=C), is_negative=True),
        L("250", "II. Long-term financial investments", 1),
        L("251", "Investments in other entities", 2, _src("228")),
        L("254", "Provision for investment losses", 2, _src("229", side=C), is_negative=True),
    ),
)

LIABILITIES = BalanceSheetSectionTemplate(
    key=BalanceSheetSectionKey.LIABILITIES,
    title="C. Liabilities",
    is_asset=False,
    lines=(
        L("300", "C. Liabilities", 0),
        L("310", "I. Short-term liabilities", 1),
        L("311", "Payables to suppliers", 2, _src("331", side=C)),
        L("312", "Advances from customers", 2, _src("131", side=C)),
        L("313", "Taxes payable to the state", 2, _src("333", side=C)),
        L("314", "Payables to employees", 2, _src("334")),
        L("315", "Accrued expenses", 2, _src("335")),
        L("318", "Other payables", 2, _src("338")),
        L("320", "Borrowings and finance lease liabilities", 2, _src("341", "342")),
    ),
)

EQUITY = BalanceSheetSectionTemplate(
    key=BalanceSheetSectionKey.EQUITY,
    title="D. Owner's equity",
    is_asset=False,
    lines=(
        L("400", "D. Owner's equity", 0),
        L("410", "I. Owner's equity", 1),
        L("411", "Owner's capital", 2, _src("411")),
        L("421", "Undistributed profit after tax", 2, _src("421", *UNCLOSED_PROFIT_ACCOUNTS)),
    ),
)

BALANCE_SHEET_TEMPLATE: Tuple[BalanceSheetSectionTemplate, ...] = (
    SHORT_TERM_ASSETS,
    LONG_TERM_ASSETS,
    LIABILITIES,
    EQUITY,
)

CASH_LINE_CODE = "110"
