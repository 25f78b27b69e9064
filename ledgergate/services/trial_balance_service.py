"""
LedgerGate - Trial Balance Service

Builds the trial balance for a period:
1. Fetch balances from the balance provider
2. Classify every account against the chart of accounts
3. Recompute closing balances from opening balance and period movement
4. Flag accounts whose closing balance sits on the wrong side
5. Check that debits equal credits for opening, period and closing,
   over level-1 accounts only
"""

import logging
from decimal import Decimal
from typing import Dict, Iterable, List, Optional, Tuple

from ledgergate.config import Settings, settings as default_settings
from ledgergate.models.accounting import AccountNature, AccountType
from ledgergate.schemas.accounting import (
    AccountBalance,
    BalanceCheckPart,
    BalanceCheckResult,
    DataIntegrityWarning,
    TrialBalanceFilter,
    TrialBalanceGroup,
    TrialBalanceReport,
    TrialBalanceRow,
    ZERO,
)
from ledgergate.schemas.period import PeriodDescriptor
from ledgergate.services.balance_provider import (
    AccountBalanceProvider,
    calculate_closing_balance,
    fetch_balances,
)
from ledgergate.statutory.chart_of_accounts import ChartAccount, STANDARD_CHART, resolve_account

logger = logging.getLogger(__name__)


def check_abnormal_balance(balance: AccountBalance) -> Tuple[bool, Optional[str]]:
    """
    A debit-nature account closing with a net credit balance is abnormal,
    and vice versa. Amphibious accounts are never abnormal.
    """
    if balance.nature == AccountNature.DEBIT:
        if balance.closing_credit > 0 and balance.closing_debit == 0:
            return True, (
                f"Account {balance.account_code} normally carries a debit balance "
                f"but closes with a credit balance of {balance.closing_credit}"
            )
    elif balance.nature == AccountNature.CREDIT:
        if balance.closing_debit > 0 and balance.closing_credit == 0:
            return True, (
                f"Account {balance.account_code} normally carries a credit balance "
                f"but closes with a debit balance of {balance.closing_debit}"
            )
    return False, None


def check_amphibious_plausibility(balance: AccountBalance) -> Optional[DataIntegrityWarning]:
    """
    Receivable and payable control accounts may swing either way, but a
    balance on the unexpected side that exceeds everything posted to the
    account this period is worth a second look.
    """
    if balance.nature != AccountNature.AMPHIBIOUS:
        return None
    if balance.account_type == AccountType.ASSET:
        unexpected = balance.closing_credit
    elif balance.account_type == AccountType.LIABILITY:
        unexpected = balance.closing_debit
    else:
        return None

    turnover = balance.period_debit + balance.period_credit
    if unexpected > 0 and unexpected > turnover:
        side = "credit" if balance.account_type == AccountType.ASSET else "debit"
        return DataIntegrityWarning(
            account_code=balance.account_code,
            message=(
                f"Account {balance.account_code} closes with a {side} balance of {unexpected}, "
                f"more than its period turnover of {turnover}"
            ),
        )
    return None


def _check_part(debit_total: Decimal, credit_total: Decimal, tolerance: Decimal) -> BalanceCheckPart:
    difference = debit_total - credit_total
    return BalanceCheckPart(
        debit_total=debit_total,
        credit_total=credit_total,
        difference=difference,
        balanced=abs(difference) <= tolerance,
    )


def compute_balance_check(rows: Iterable[TrialBalanceRow], tolerance: Decimal) -> BalanceCheckResult:
    """Three-way balance check; sub-accounts are excluded from the totals."""
    rows = list(rows)
    top_level = [r for r in rows if r.level == 1]

    opening = _check_part(
        sum((r.opening_debit for r in top_level), ZERO),
        sum((r.opening_credit for r in top_level), ZERO),
        tolerance,
    )
    period = _check_part(
        sum((r.period_debit for r in top_level), ZERO),
        sum((r.period_credit for r in top_level), ZERO),
        tolerance,
    )
    closing = _check_part(
        sum((r.closing_debit for r in top_level), ZERO),
        sum((r.closing_credit for r in top_level), ZERO),
        tolerance,
    )

    abnormal_count = sum(1 for r in rows if r.is_abnormal)
    is_fully_balanced = opening.balanced and period.balanced and closing.balanced

    warnings = []
    if not opening.balanced:
        warnings.append(f"Opening balances are not balanced (difference: {opening.difference})")
    if not period.balanced:
        warnings.append(f"Period movements are not balanced (difference: {period.difference})")
    if not closing.balanced:
        warnings.append(f"Closing balances are not balanced (difference: {closing.difference})")
    if abnormal_count:
        warnings.append(f"{abnormal_count} account(s) have abnormal balances")

    return BalanceCheckResult(
        opening=opening,
        period=period,
        closing=closing,
        is_fully_balanced=is_fully_balanced,
        abnormal_count=abnormal_count,
        can_generate_report=is_fully_balanced and abnormal_count == 0,
        warnings=tuple(warnings),
    )


def filter_rows(rows: Iterable[TrialBalanceRow], filters: TrialBalanceFilter) -> List[TrialBalanceRow]:
    result = []
    for row in rows:
        if not filters.include_zero_balance and row.is_zero:
            continue
        if not filters.include_sub_accounts and row.level > 1:
            continue
        if filters.account_level is not None and row.level > filters.account_level:
            continue
        result.append(row)
    return result


def group_by_account_type(report: TrialBalanceReport) -> List[TrialBalanceGroup]:
    """Group rows by account type with subtotals over level-1 rows."""
    groups = []
    for account_type in AccountType:
        rows = tuple(r for r in report.rows if r.account_type == account_type)
        if not rows:
            continue
        top = [r for r in rows if r.level == 1]
        groups.append(TrialBalanceGroup(
            account_type=account_type,
            rows=rows,
            opening_debit=sum((r.opening_debit for r in top), ZERO),
            opening_credit=sum((r.opening_credit for r in top), ZERO),
            period_debit=sum((r.period_debit for r in top), ZERO),
            period_credit=sum((r.period_credit for r in top), ZERO),
            closing_debit=sum((r.closing_debit for r in top), ZERO),
            closing_credit=sum((r.closing_credit for r in top), ZERO),
        ))
    return groups


class TrialBalanceService:
    """Service for building trial balances from provider balances."""

    def __init__(
        self,
        provider: AccountBalanceProvider,
        chart: Optional[Dict[str, ChartAccount]] = None,
        settings: Optional[Settings] = None,
    ):
        self.provider = provider
        self.chart = chart if chart is not None else STANDARD_CHART
        self.settings = settings or default_settings

    async def build_trial_balance(
        self,
        period: PeriodDescriptor,
        filters: Optional[TrialBalanceFilter] = None,
    ) -> TrialBalanceReport:
        """
        Build the trial balance for a period.

        Raises TransientProviderException when balances cannot be fetched.
        """
        balances = await fetch_balances(self.provider, period, self.settings.provider_timeout_seconds)
        return self.assemble(period, balances, filters)

    def assemble(
        self,
        period: PeriodDescriptor,
        balances: Iterable[AccountBalance],
        filters: Optional[TrialBalanceFilter] = None,
    ) -> TrialBalanceReport:
        """Build the report from already-fetched balances."""
        filters = filters or TrialBalanceFilter()
        integrity_warnings: List[DataIntegrityWarning] = []
        rows: Dict[str, TrialBalanceRow] = {}

        for balance in balances:
            code = balance.account_code
            if code in rows:
                integrity_warnings.append(DataIntegrityWarning(
                    account_code=code,
                    message=f"Duplicate balance for account {code} skipped",
                ))
                continue

            account = resolve_account(code, balance.parent_code, self.chart)
            if account is None:
                logger.warning(f"Unknown account {code} in balances for {period.key}; row skipped")
                integrity_warnings.append(DataIntegrityWarning(
                    account_code=code,
                    message=f"Account {code} is not in the chart of accounts; row skipped",
                ))
                continue

            row, warning = self._build_row(balance, account)
            if warning is not None:
                integrity_warnings.append(warning)
            plausibility = check_amphibious_plausibility(row)
            if plausibility is not None:
                integrity_warnings.append(plausibility)
            rows[code] = row

        ordered = [rows[code] for code in sorted(rows)]
        check = compute_balance_check(ordered, self.settings.balance_tolerance)
        if not check.can_generate_report:
            logger.info(f"Trial balance {period.key} cannot feed statements: {'; '.join(check.warnings)}")

        return TrialBalanceReport(
            period=period.key,
            period_label=period.label,
            from_date=period.start_date,
            to_date=period.end_date,
            rows=tuple(filter_rows(ordered, filters)),
            check=check,
            integrity_warnings=tuple(integrity_warnings),
        )

    def _build_row(
        self,
        balance: AccountBalance,
        account: ChartAccount,
    ) -> Tuple[TrialBalanceRow, Optional[DataIntegrityWarning]]:
        closing_debit, closing_credit = calculate_closing_balance(
            balance.opening_debit, balance.opening_credit,
            balance.period_debit, balance.period_credit,
        )

        warning = None
        supplied = (balance.closing_debit, balance.closing_credit)
        if any(supplied) and supplied != (closing_debit, closing_credit):
            warning = DataIntegrityWarning(
                account_code=balance.account_code,
                message=(
                    f"Supplied closing balance for {balance.account_code} "
                    f"(debit {supplied[0]}, credit {supplied[1]}) does not match opening "
                    f"plus movement; recomputed as debit {closing_debit}, credit {closing_credit}"
                ),
            )

        row = TrialBalanceRow(
            account_code=balance.account_code,
            account_name=balance.account_name or account.name,
            level=account.level,
            parent_code=account.parent_code,
            nature=account.nature,
            account_type=account.account_type,
            opening_debit=balance.opening_debit,
            opening_credit=balance.opening_credit,
            period_debit=balance.period_debit,
            period_credit=balance.period_credit,
            closing_debit=closing_debit,
            closing_credit=closing_credit,
        )
        is_abnormal, reason = check_abnormal_balance(row)
        if is_abnormal:
            row = row.model_copy(update={"is_abnormal": True, "abnormal_reason": reason})
        return row, warning
