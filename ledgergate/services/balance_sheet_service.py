"""
LedgerGate - Balance Sheet Service

Maps trial-balance closing balances onto the statutory balance sheet
template and checks that total assets equal total liabilities and equity.

An unbalanced sheet is still returned for display; it just cannot be
submitted. Generation itself requires a clean trial balance and a locked
period.
"""

import logging
from decimal import Decimal
from typing import Dict, List, Optional, Protocol

from ledgergate.config import Settings, settings as default_settings
from ledgergate.schemas.accounting import TrialBalanceFilter, TrialBalanceReport, TrialBalanceRow, ZERO
from ledgergate.schemas.period import PeriodDescriptor
from ledgergate.schemas.statements import (
    BalanceSheetReport,
    BalanceSheetSection,
    BalanceSheetSectionKey,
    BalanceSheetValidation,
    StatementLine,
)
from ledgergate.services.trial_balance_service import TrialBalanceService
from ledgergate.statutory.balance_sheet_template import (
    BALANCE_SHEET_TEMPLATE,
    AccountSource,
    BalanceSheetSectionTemplate,
    BalanceSide,
)
from ledgergate.utils.error_handling import PrerequisitesNotMetException

logger = logging.getLogger(__name__)


class PeriodLockReader(Protocol):
    """Anything that can answer whether a period is locked."""

    async def is_locked(self, period: str) -> bool:
        ...


# =============================================================================
# PREREQUISITES
# =============================================================================

def trial_balance_reasons(trial_balance: TrialBalanceReport) -> List[str]:
    """Why a trial balance cannot feed the statements; empty when it can."""
    reasons = []
    check = trial_balance.check
    if not check.is_fully_balanced:
        parts = []
        for name, part in (("opening", check.opening), ("period", check.period), ("closing", check.closing)):
            if not part.balanced:
                parts.append(f"{name} difference {part.difference}")
        reasons.append(f"Trial balance is not balanced ({', '.join(parts)})")
    if check.abnormal_count:
        codes = ", ".join(row.account_code for row in trial_balance.abnormal_rows)
        reasons.append(f"{check.abnormal_count} account(s) have abnormal balances: {codes}")
    return reasons


def lock_reasons(period: PeriodDescriptor, is_locked: bool) -> List[str]:
    if is_locked:
        return []
    return [f"Period {period.key} is not locked"]


async def read_lock_state(lock_reader: Optional[PeriodLockReader], period: PeriodDescriptor) -> bool:
    if lock_reader is None:
        return False
    return await lock_reader.is_locked(period.key)


# =============================================================================
# SERVICE
# =============================================================================

class BalanceSheetService:
    """Service for building balance sheets."""

    def __init__(
        self,
        trial_balances: TrialBalanceService,
        lock_reader: Optional[PeriodLockReader] = None,
        settings: Optional[Settings] = None,
    ):
        self.trial_balances = trial_balances
        self.lock_reader = lock_reader
        self.settings = settings or default_settings

    async def build_balance_sheet(
        self,
        period: PeriodDescriptor,
        require_locked: bool = True,
    ) -> BalanceSheetReport:
        """
        Build the balance sheet for a period.

        Raises PrerequisitesNotMetException listing every unmet condition
        when the trial balance is unbalanced, carries abnormal balances, or
        the period is not locked.
        """
        trial_balance = await self.trial_balances.build_trial_balance(
            period, TrialBalanceFilter.everything()
        )

        reasons = trial_balance_reasons(trial_balance)
        if require_locked:
            reasons += lock_reasons(period, await read_lock_state(self.lock_reader, period))
        if reasons:
            logger.warning(f"Balance sheet {period.key} blocked: {'; '.join(reasons)}")
            raise PrerequisitesNotMetException("balance_sheet", period.key, reasons, partial=trial_balance)

        return self.assemble(period, trial_balance)

    def assemble(self, period: PeriodDescriptor, trial_balance: TrialBalanceReport) -> BalanceSheetReport:
        """Map an already-built trial balance onto the template."""
        rows = {row.account_code: row for row in trial_balance.rows}

        sections = [self._build_section(template, rows) for template in BALANCE_SHEET_TEMPLATE]
        totals: Dict[BalanceSheetSectionKey, Decimal] = {s.key: s.total for s in sections}

        total_short = totals[BalanceSheetSectionKey.SHORT_TERM_ASSETS]
        total_long = totals[BalanceSheetSectionKey.LONG_TERM_ASSETS]
        total_assets = total_short + total_long
        total_liabilities = totals[BalanceSheetSectionKey.LIABILITIES]
        total_equity = totals[BalanceSheetSectionKey.EQUITY]
        total_sources = total_liabilities + total_equity

        validation = self._validate(total_assets, total_sources, total_equity)
        if not validation.can_submit:
            logger.info(f"Balance sheet {period.key} cannot be submitted: {'; '.join(validation.errors)}")

        return BalanceSheetReport(
            period=period.key,
            period_label=period.label,
            as_of_date=period.end_date,
            sections=tuple(sections),
            total_short_term_assets=total_short,
            total_long_term_assets=total_long,
            total_assets=total_assets,
            total_liabilities=total_liabilities,
            total_equity=total_equity,
            total_liabilities_and_equity=total_sources,
            validation=validation,
        )

    # =========================================================================
    # ASSEMBLY
    # =========================================================================

    def _build_section(
        self,
        template: BalanceSheetSectionTemplate,
        rows: Dict[str, TrialBalanceRow],
    ) -> BalanceSheetSection:
        lines = template.lines
        amounts: List[Decimal] = [ZERO] * len(lines)

        for index, line in enumerate(lines):
            if line.is_total:
                continue
            value = sum((self._read(source, rows, template.is_asset) for source in line.sources), ZERO)
            amounts[index] = -value if line.is_negative else value

        # Roll up bottom-first so nested totals are ready for their parents
        for index in range(len(lines) - 1, -1, -1):
            line = lines[index]
            if not line.is_total:
                continue
            total = ZERO
            for child_index in range(index + 1, len(lines)):
                child = lines[child_index]
                if child.level <= line.level:
                    break
                if child.level == line.level + 1:
                    total += amounts[child_index]
            amounts[index] = total

        statement_lines = tuple(
            StatementLine(
                code=line.code,
                name=line.name,
                level=line.level,
                amount=amounts[index],
                account_mapping=line.account_mapping,
                is_negative=line.is_negative,
                is_total=line.is_total,
            )
            for index, line in enumerate(lines)
        )
        return BalanceSheetSection(
            key=template.key,
            title=template.title,
            rows=statement_lines,
            total=amounts[0],
        )

    @staticmethod
    def _read(source: AccountSource, rows: Dict[str, TrialBalanceRow], is_asset: bool) -> Decimal:
        row = rows.get(source.account_code)
        if row is None:
            return ZERO
        if source.side == BalanceSide.DEBIT:
            return row.closing_debit
        if source.side == BalanceSide.CREDIT:
            return row.closing_credit
        return row.closing_net if is_asset else -row.closing_net

    def _validate(self, total_assets: Decimal, total_sources: Decimal, total_equity: Decimal) -> BalanceSheetValidation:
        difference = abs(total_assets - total_sources)
        is_balanced = difference <= self.settings.balance_tolerance

        errors = []
        warnings = []
        if not is_balanced:
            errors.append(
                f"Total assets ({total_assets}) do not equal total liabilities and equity "
                f"({total_sources}); difference {difference}"
            )
        if total_assets < 0:
            errors.append(f"Total assets are negative ({total_assets})")
        if total_equity < 0:
            warnings.append(f"Owner's equity is negative ({total_equity})")

        return BalanceSheetValidation(
            is_balanced=is_balanced,
            total_assets=total_assets,
            total_liabilities_and_equity=total_sources,
            difference=difference,
            errors=tuple(errors),
            warnings=tuple(warnings),
            can_submit=is_balanced and not errors,
        )
