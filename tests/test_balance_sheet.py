"""
LedgerGate - Balance Sheet Tests

Tests for template mapping, the assets = liabilities + equity check and
generation prerequisites.
"""

from decimal import Decimal

import pytest

from ledgergate.schemas.statements import BalanceSheetSectionKey
from ledgergate.services.balance_provider import InMemoryBalanceProvider
from ledgergate.services.balance_sheet_service import BalanceSheetService
from ledgergate.services.trial_balance_service import TrialBalanceService
from ledgergate.utils.error_handling import PrerequisitesNotMetException


class LockedReader:
    async def is_locked(self, period: str) -> bool:
        return True


@pytest.fixture
def trial_balances(balance_provider, test_settings) -> TrialBalanceService:
    return TrialBalanceService(balance_provider, settings=test_settings)


@pytest.fixture
def service(trial_balances, test_settings) -> BalanceSheetService:
    return BalanceSheetService(trial_balances, LockedReader(), settings=test_settings)


class TestBalanceSheetEquation:
    """Total assets against total liabilities and equity."""

    def test_cash_funded_by_capital_balances(self, service, trial_balances, march, make_balance):
        tb = trial_balances.assemble(march, [
            make_balance("111", opening_debit=50_000_000),
            make_balance("411", opening_credit=50_000_000),
        ])

        report = service.assemble(march, tb)

        assert report.total_assets == Decimal("50000000")
        assert report.total_liabilities_and_equity == Decimal("50000000")
        assert report.validation.is_balanced
        assert report.validation.difference == 0
        assert report.can_submit

    def test_capital_short_by_one_thousand(self, service, trial_balances, march, make_balance):
        tb = trial_balances.assemble(march, [
            make_balance("111", opening_debit=50_000_000),
            make_balance("411", opening_credit=49_999_000),
        ])

        report = service.assemble(march, tb)

        assert report.validation.difference == Decimal("1000")
        assert not report.validation.is_balanced
        assert not report.can_submit
        assert "difference 1000" in report.validation.errors[0]

    @pytest.mark.asyncio
    async def test_trading_month(self, service, march):
        report = await service.build_balance_sheet(march)

        assert report.line("110").amount == Decimal("120000000")
        assert report.line("141").amount == Decimal("5000000")
        assert report.line("223").amount == Decimal("-2000000")
        assert report.line("221").amount == Decimal("-2000000")
        assert report.total_assets == Decimal("123000000")
        assert report.line("311").amount == Decimal("5000000")
        assert report.total_liabilities == Decimal("5000000")
        # Unclosed revenue and expenses sit in undistributed profit
        assert report.line("421").amount == Decimal("18000000")
        assert report.total_equity == Decimal("118000000")
        assert report.can_submit

    @pytest.mark.asyncio
    async def test_section_totals_match_top_lines(self, service, march):
        report = await service.build_balance_sheet(march)
        sections = {s.key: s for s in report.sections}

        assert sections[BalanceSheetSectionKey.SHORT_TERM_ASSETS].total == report.line("100").amount
        assert sections[BalanceSheetSectionKey.EQUITY].total == report.line("400").amount
        assert report.total_short_term_assets + report.total_long_term_assets == report.total_assets


class TestSideSplitting:
    """Amphibious accounts land on the side their balance is on."""

    def test_supplier_prepayment_is_an_asset(self, service, trial_balances, march, make_balance):
        tb = trial_balances.assemble(march, [
            make_balance("331", period_debit=3_000_000),
            make_balance("111", opening_debit=10_000_000, period_credit=3_000_000),
            make_balance("411", opening_credit=10_000_000),
        ])

        report = service.assemble(march, tb)

        assert report.line("132").amount == Decimal("3000000")
        assert report.line("311").amount == 0
        assert report.can_submit

    def test_customer_advance_is_a_liability(self, service, trial_balances, march, make_balance):
        tb = trial_balances.assemble(march, [
            make_balance("131", period_credit=4_000_000),
            make_balance("111", opening_debit=10_000_000, period_debit=4_000_000),
            make_balance("411", opening_credit=10_000_000),
        ])

        report = service.assemble(march, tb)

        assert report.line("312").amount == Decimal("4000000")
        assert report.line("131").amount == 0
        assert report.can_submit

    def test_negative_equity_is_a_warning(self, service, trial_balances, march, make_balance):
        tb = trial_balances.assemble(march, [
            make_balance("111", opening_debit=10),
            make_balance("421", opening_debit=50),
            make_balance("411", opening_credit=10),
            make_balance("331", opening_credit=50),
        ])

        report = service.assemble(march, tb)

        assert report.total_equity == Decimal("-40")
        assert report.can_submit
        assert "negative" in report.validation.warnings[0]


class TestPrerequisites:
    """Generation is blocked, with every reason, until the inputs are clean."""

    @pytest.mark.asyncio
    async def test_unlocked_period_is_blocked(self, trial_balances, test_settings, march):
        service = BalanceSheetService(trial_balances, settings=test_settings)

        with pytest.raises(PrerequisitesNotMetException) as exc_info:
            await service.build_balance_sheet(march)

        assert exc_info.value.reasons == ["Period 2025-03 is not locked"]
        assert exc_info.value.stage == "balance_sheet"

    @pytest.mark.asyncio
    async def test_all_reasons_are_reported(self, test_settings, march, make_balance):
        provider = InMemoryBalanceProvider({"2025-03": [
            make_balance("111", period_credit=700),
            make_balance("511", period_credit=300),
        ]})
        service = BalanceSheetService(TrialBalanceService(provider, settings=test_settings), settings=test_settings)

        with pytest.raises(PrerequisitesNotMetException) as exc_info:
            await service.build_balance_sheet(march)

        reasons = exc_info.value.reasons
        assert len(reasons) == 3
        assert reasons[0].startswith("Trial balance is not balanced")
        assert "111" in reasons[1]
        assert reasons[2] == "Period 2025-03 is not locked"
        assert exc_info.value.partial.period == "2025-03"

    @pytest.mark.asyncio
    async def test_lock_can_be_waived(self, trial_balances, test_settings, march):
        service = BalanceSheetService(trial_balances, settings=test_settings)

        report = await service.build_balance_sheet(march, require_locked=False)

        assert report.can_submit

    @pytest.mark.asyncio
    async def test_rebuild_is_identical(self, service, march):
        first = await service.build_balance_sheet(march)
        second = await service.build_balance_sheet(march)

        assert first.model_dump_json() == second.model_dump_json()
