"""
LedgerGate - Cash Flow Statement Template (B03-DNN, indirect method)

Lines either read trial-balance figures for their accounts or total other
lines. ``formula`` documents the derivation for readers; totals are
computed from ``components``. A line may also add an income statement
amount, scaled by ``income_statement_sign``.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Optional, Tuple

from ledgergate.schemas.statements import CashFlowSectionKey
from ledgergate.statutory.balance_sheet_template import UNCLOSED_PROFIT_ACCOUNTS


class FlowMeasure(str, Enum):
    """Trial-balance figure a cash flow source reads."""
    PERIOD_DEBIT = "period_debit"
    PERIOD_CREDIT = "period_credit"
    PERIOD_NET_CREDIT = "period_net_credit"        # credit - debit movement
    DEBIT_BALANCE_CHANGE = "debit_balance_change"  # closing - opening, debit-positive
    CREDIT_BALANCE_CHANGE = "credit_balance_change"


@dataclass(frozen=True)
class FlowSource:
    account_code: str
    measure: FlowMeasure
    sign: int = 1


@dataclass(frozen=True)
class CashFlowLineTemplate:
    code: str
    name: str
    level: int
    sources: Tuple[FlowSource, ...] = ()
    components: Tuple[str, ...] = ()
    formula: Optional[str] = None
    income_statement_code: Optional[str] = None
    income_statement_sign: int = 1
    is_negative: bool = False

    @property
    def is_total(self) -> bool:
        return bool(self.components)

    @property
    def account_mapping(self) -> Tuple[str, ...]:
        seen = []
        for source in self.sources:
            if source.account_code not in seen:
                seen.append(source.account_code)
        return tuple(seen)


@dataclass(frozen=True)
class CashFlowSectionTemplate:
    key: CashFlowSectionKey
    title: str
    total_code: str
    lines: Tuple[CashFlowLineTemplate, ...]


def _flows(measure: FlowMeasure, *codes: str, sign: int = 1) -> Tuple[FlowSource, ...]:
    return tuple(FlowSource(code, measure, sign) for code in codes)


L = CashFlowLineTemplate
M = FlowMeasure

OPERATING = CashFlowSectionTemplate(
    key=CashFlowSectionKey.OPERATING,
    title="I. Cash flows from operating activities",
    total_code="20",
    lines=(
        L("01", "Profit before tax", 1, income_statement_code="50"),
        L("02", "Adjustments for:", 1, components=("03", "04", "05", "06"), formula="03 + 04 + 05 + 06"),
        L("03", "Depreciation of fixed assets", 2, _flows(M.PERIOD_CREDIT, "214")),
        L("04", "Provisions", 2, _flows(M.PERIOD_NET_CREDIT, "229")),
        # Book value of disposed assets less disposal proceeds and financial income
        L(
            "05", "(Gains)/losses from investing activities", 2,
            _flows(M.PERIOD_CREDIT, "211")
            + _flows(M.PERIOD_DEBIT, "214", sign=-1)
            + _flows(M.PERIOD_CREDIT, "711", "515", sign=-1),
            formula="211 credit - 214 debit - 711 credit - 515 credit",
        ),
        L("06", "Interest expense", 2, _flows(M.PERIOD_DEBIT, "635")),
        L(
            "08", "Operating profit before working capital changes", 1,
            components=("01", "02"), formula="01 + 02",
        ),
        L(
            "09", "(Increase)/decrease in receivables", 1,
            _flows(M.DEBIT_BALANCE_CHANGE, "131", "133", "138", "141", sign=-1),
            is_negative=True,
        ),
        L(
            "10", "(Increase)/decrease in inventories", 1,
            _flows(M.DEBIT_BALANCE_CHANGE, "152", "153", "154", "155", "156", "157", sign=-1),
            is_negative=True,
        ),
        L(
            "11", "Increase/(decrease) in payables (excluding income tax payable)", 1,
            _flows(M.CREDIT_BALANCE_CHANGE, "331", "333", "334", "335", "338")
            + _flows(M.CREDIT_BALANCE_CHANGE, "3334", sign=-1),
            formula="change in 331 + 333 + 334 + 335 + 338 - change in 3334",
        ),
        L(
            "12", "(Increase)/decrease in prepaid expenses", 1,
            _flows(M.DEBIT_BALANCE_CHANGE, "242", sign=-1),
            is_negative=True,
        ),
        L("13", "Interest paid", 1, _flows(M.PERIOD_DEBIT, "635", sign=-1), is_negative=True),
        L("14", "Corporate income tax paid", 1, _flows(M.PERIOD_DEBIT, "3334", sign=-1), is_negative=True),
        L(
            "20", "Net cash flows from operating activities", 0,
            components=("08", "09", "10", "11", "12", "13", "14"),
            formula="08 + 09 + 10 + 11 + 12 + 13 + 14",
        ),
    ),
)

INVESTING = CashFlowSectionTemplate(
    key=CashFlowSectionKey.INVESTING,
    title="II. Cash flows from investing activities",
    total_code="30",
    lines=(
        L("21", "Purchase of fixed assets", 1, _flows(M.PERIOD_DEBIT, "211", sign=-1), is_negative=True),
        L("22", "Proceeds from disposal of fixed assets", 1, _flows(M.PERIOD_CREDIT, "711")),
        L("23", "Investments in other entities", 1, _flows(M.PERIOD_DEBIT, "228", sign=-1), is_negative=True),
        L("24", "Recovery of investments in other entities", 1, _flows(M.PERIOD_CREDIT, "228")),
        L("25", "Interest and dividends received", 1, _flows(M.PERIOD_CREDIT, "515")),
        L(
            "30", "Net cash flows from investing activities", 0,
            components=("21", "22", "23", "24", "25"),
            formula="21 + 22 + 23 + 24 + 25",
        ),
    ),
)

FINANCING = CashFlowSectionTemplate(
    key=CashFlowSectionKey.FINANCING,
    title="III. Cash flows from financing activities",
    total_code="40",
    lines=(
        L("31", "Capital contributions from owners", 1, _flows(M.PERIOD_CREDIT, "411")),
        L("32", "Capital returned to owners", 1, _flows(M.PERIOD_DEBIT, "411", sign=-1), is_negative=True),
        L("33", "Proceeds from borrowings", 1, _flows(M.PERIOD_CREDIT, "341")),
        L("34", "Repayment of borrowings", 1, _flows(M.PERIOD_DEBIT, "341", sign=-1), is_negative=True),
        L("35", "Finance lease principal paid", 1, _flows(M.PERIOD_DEBIT, "342", sign=-1), is_negative=True),
        # Retained earnings roll-forward: whatever left equity other than this period's result
        L(
            "36", "Dividends and profits paid to owners", 1,
            _flows(M.CREDIT_BALANCE_CHANGE, "421", *UNCLOSED_PROFIT_ACCOUNTS),
            formula="change in 421 and unclosed profit accounts - net profit after tax",
            income_statement_code="60",
            income_statement_sign=-1,
            is_negative=True,
        ),
        L(
            "40", "Net cash flows from financing activities", 0,
            components=("31", "32", "33", "34", "35", "36"),
            formula="31 + 32 + 33 + 34 + 35 + 36",
        ),
    ),
)

CASH_FLOW_TEMPLATE: Tuple[CashFlowSectionTemplate, ...] = (OPERATING, INVESTING, FINANCING)

PROFIT_LINE = "01"
DEPRECIATION_LINE = "03"
RECEIVABLES_LINE = "09"
INVENTORIES_LINE = "10"
PAYABLES_LINE = "11"
