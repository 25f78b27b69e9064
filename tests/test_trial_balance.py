"""
LedgerGate - Trial Balance Tests

Tests for closing balance computation, the three-way balance check,
abnormal balances, account classification and provider failures.
"""

import asyncio
import random
from decimal import Decimal

import pytest

from ledgergate.config import Settings
from ledgergate.models.accounting import AccountNature, AccountType
from ledgergate.schemas.accounting import TrialBalanceFilter
from ledgergate.schemas.period import PeriodDescriptor
from ledgergate.services.balance_provider import InMemoryBalanceProvider, calculate_closing_balance
from ledgergate.services.trial_balance_service import TrialBalanceService, group_by_account_type
from ledgergate.utils.error_handling import TransientProviderException


LEVEL_ONE_CODES = ["111", "112", "131", "156", "211", "331", "334", "411", "511", "632", "642"]


@pytest.fixture
def service(balance_provider, test_settings) -> TrialBalanceService:
    return TrialBalanceService(balance_provider, settings=test_settings)


class TestClosingBalance:
    """Closing balance nets opening and movement onto one side."""

    def test_debit_side(self):
        assert calculate_closing_balance(
            Decimal("100"), Decimal("0"), Decimal("30"), Decimal("10"),
        ) == (Decimal("120"), Decimal("0.00"))

    def test_credit_side(self):
        assert calculate_closing_balance(
            Decimal("0"), Decimal("50"), Decimal("10"), Decimal("5"),
        ) == (Decimal("0.00"), Decimal("45"))

    def test_crossing_sides(self):
        assert calculate_closing_balance(
            Decimal("10"), Decimal("0"), Decimal("0"), Decimal("25"),
        ) == (Decimal("0.00"), Decimal("15"))


class TestBalanceCheck:
    """Three-way balance check."""

    @pytest.mark.asyncio
    async def test_scenario_is_fully_balanced(self, service, march):
        report = await service.build_trial_balance(march)
        check = report.check

        assert check.is_fully_balanced
        assert check.can_generate_report
        assert check.abnormal_count == 0
        assert check.opening.debit_total == Decimal("100000000")
        assert check.period.debit_total == Decimal("47000000")
        assert check.closing.debit_total == check.closing.credit_total == Decimal("137000000")
        assert check.warnings == ()

    @pytest.mark.asyncio
    async def test_closing_is_recomputed(self, service, march):
        report = await service.build_trial_balance(march)

        cash = report.row("111")
        assert cash.closing_debit == Decimal("120000000")
        assert cash.closing_credit == 0
        assert cash.account_name == "Cash on hand"
        assert cash.nature == AccountNature.DEBIT

    def test_unbalanced_movement_is_reported(self, service, march, make_balance):
        report = service.assemble(march, [
            make_balance("111", period_debit=1000),
            make_balance("511", period_credit=900),
        ])

        assert not report.check.is_fully_balanced
        assert report.check.opening.balanced
        assert not report.check.period.balanced
        assert report.check.period.difference == Decimal("100")
        assert not report.check.can_generate_report
        assert any("Period movements are not balanced" in w for w in report.check.warnings)

    def test_difference_within_tolerance_is_balanced(self, service, march, make_balance):
        report = service.assemble(march, [
            make_balance("111", period_debit="1000.01"),
            make_balance("511", period_credit="1000.00"),
        ])

        assert report.check.period.balanced

    def test_random_balanced_ledgers_always_balance(self, service, march, make_balance):
        rng = random.Random(20250301)

        for _ in range(50):
            movements = {code: [Decimal("0")] * 4 for code in LEVEL_ONE_CODES}
            for _ in range(rng.randint(1, 40)):
                debit_code, credit_code = rng.sample(LEVEL_ONE_CODES, 2)
                amount = Decimal(rng.randint(1, 10_000_000_00)) / 100
                # Opening pairs and period pairs
                offset = 0 if rng.random() < 0.3 else 2
                movements[debit_code][offset] += amount
                movements[credit_code][offset + 1] += amount

            balances = [
                make_balance(code, *values)
                for code, values in movements.items()
            ]
            report = service.assemble(march, balances, TrialBalanceFilter.everything())

            assert report.check.is_fully_balanced
            assert report.check.closing.debit_total == report.check.closing.credit_total


class TestAbnormalBalances:
    """Wrong-side balances on debit- and credit-nature accounts."""

    def test_cash_in_credit_is_abnormal(self, service, march, make_balance):
        report = service.assemble(march, [
            make_balance("111", period_credit=500),
            make_balance("511", period_debit=500),
        ])

        cash = report.row("111")
        assert cash.is_abnormal
        assert "debit balance" in cash.abnormal_reason
        assert report.check.abnormal_count == 2
        assert not report.check.can_generate_report

    def test_amphibious_account_is_never_abnormal(self, service, march, make_balance):
        report = service.assemble(march, [
            make_balance("131", period_debit=100, period_credit=400),
            make_balance("111", period_debit=300),
        ])

        assert not report.row("131").is_abnormal
        assert report.check.can_generate_report

    def test_implausible_amphibious_balance_warns(self, service, march, make_balance):
        report = service.assemble(march, [
            make_balance("131", opening_credit=5_000_000),
            make_balance("111", opening_debit=5_000_000),
        ])

        assert not report.row("131").is_abnormal
        assert [w.account_code for w in report.integrity_warnings] == ["131"]

    def test_retained_deficit_is_not_abnormal(self, service, march, make_balance):
        report = service.assemble(march, [
            make_balance("421", opening_debit=2_000_000),
            make_balance("411", opening_credit=2_000_000),
        ])

        assert not report.row("421").is_abnormal
        assert report.integrity_warnings == ()


class TestAccountClassification:
    """Chart lookups, sub-accounts and unknown codes."""

    def test_unknown_account_is_skipped_with_warning(self, service, march, make_balance):
        report = service.assemble(march, [
            make_balance("111", opening_debit=100),
            make_balance("411", opening_credit=100),
            make_balance("999", opening_debit=50),
        ])

        assert report.row("999") is None
        assert report.check.is_fully_balanced
        assert report.integrity_warnings[0].account_code == "999"

    def test_sub_account_inherits_from_parent(self, service, march, make_balance):
        report = service.assemble(march, [
            make_balance("111", opening_debit=100),
            make_balance("1113", opening_debit=40),
            make_balance("411", opening_credit=100),
        ])

        sub = report.row("1113")
        assert sub.level == 2
        assert sub.parent_code == "111"
        assert sub.account_type == AccountType.ASSET
        # Sub-accounts stay out of the totals
        assert report.check.opening.debit_total == Decimal("100")

    def test_explicit_parent_code_wins(self, service, march, make_balance):
        report = service.assemble(march, [
            make_balance("77001", parent_code="711", period_credit=10),
        ])

        assert report.row("77001").account_type == AccountType.REVENUE

    def test_duplicate_rows_are_skipped(self, service, march, make_balance):
        report = service.assemble(march, [
            make_balance("111", opening_debit=100),
            make_balance("111", opening_debit=999),
            make_balance("411", opening_credit=100),
        ])

        assert report.row("111").opening_debit == Decimal("100")
        assert "Duplicate" in report.integrity_warnings[0].message

    def test_supplied_closing_mismatch_warns(self, service, march, make_balance):
        report = service.assemble(march, [
            make_balance("111", opening_debit=100, closing_debit=Decimal("90")),
            make_balance("411", opening_credit=100),
        ])

        assert report.row("111").closing_debit == Decimal("100")
        assert report.integrity_warnings[0].account_code == "111"


class TestFilters:
    """Display filters never affect the balance check."""

    def test_zero_rows_hidden_by_default(self, service, march, make_balance):
        balances = [
            make_balance("111", opening_debit=100),
            make_balance("112"),
            make_balance("411", opening_credit=100),
        ]

        hidden = service.assemble(march, balances)
        shown = service.assemble(march, balances, TrialBalanceFilter(include_zero_balance=True))

        assert hidden.row("112") is None
        assert shown.row("112") is not None
        assert hidden.check == shown.check

    def test_sub_accounts_and_levels(self, service, march, make_balance):
        balances = [
            make_balance("333", period_credit=10),
            make_balance("3331", period_credit=10),
            make_balance("33311", period_credit=10),
            make_balance("111", period_debit=10),
        ]

        no_subs = service.assemble(march, balances, TrialBalanceFilter(include_sub_accounts=False))
        level_two = service.assemble(march, balances, TrialBalanceFilter(account_level=2))

        assert [r.account_code for r in no_subs.rows] == ["111", "333"]
        assert [r.account_code for r in level_two.rows] == ["111", "333", "3331"]
        assert no_subs.check.is_fully_balanced

    @pytest.mark.asyncio
    async def test_group_by_account_type(self, service, march):
        report = await service.build_trial_balance(march)
        groups = {g.account_type: g for g in group_by_account_type(report)}

        assert groups[AccountType.ASSET].closing_debit == Decimal("125000000")
        assert groups[AccountType.ASSET].closing_credit == Decimal("2000000")
        assert groups[AccountType.REVENUE].period_credit == Decimal("30000000")
        assert AccountType.COST not in groups


class SlowProvider:
    async def get_balances(self, period):
        await asyncio.sleep(1)
        return []


class BrokenProvider:
    async def get_balances(self, period):
        raise ConnectionError("ledger database unreachable")


class TestProviderFailures:
    """Provider failures surface as retryable errors."""

    @pytest.mark.asyncio
    async def test_timeout_is_transient(self, march):
        settings = Settings(_env_file=None, provider_timeout_seconds=0.01)
        service = TrialBalanceService(SlowProvider(), settings=settings)

        with pytest.raises(TransientProviderException) as exc_info:
            await service.build_trial_balance(march)

        assert exc_info.value.retryable
        assert exc_info.value.status_code == 503

    @pytest.mark.asyncio
    async def test_connection_error_is_transient(self, march, test_settings):
        service = TrialBalanceService(BrokenProvider(), settings=test_settings)

        with pytest.raises(TransientProviderException) as exc_info:
            await service.build_trial_balance(march)

        assert "unreachable" in exc_info.value.message

    @pytest.mark.asyncio
    async def test_missing_snapshot_gives_empty_balanced_report(self, test_settings):
        service = TrialBalanceService(InMemoryBalanceProvider(), settings=test_settings)

        report = await service.build_trial_balance(PeriodDescriptor.for_month(2030, 6))

        assert report.rows == ()
        assert report.check.is_fully_balanced
