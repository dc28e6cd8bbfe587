"""
Unit tests for PricingRulesProvider and rules_from_row.
"""

import asyncio
from datetime import date
from decimal import Decimal

import pytest

from rental_engine.core.exceptions import NotFoundError
from rental_engine.services.pricing_service import PricingRulesProvider, rules_from_row

from conftest import MockPricingRuleSet, result_with_scalar


class FakeClock:
    def __init__(self):
        self.now = 1000.0

    def __call__(self):
        return self.now


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def provider(clock):
    return PricingRulesProvider(ttl_seconds=60, clock=clock)


class TestPricingRulesProvider:

    async def test_rules_are_cached(self, provider, mock_db):
        mock_db.execute.return_value = result_with_scalar(MockPricingRuleSet())

        first = await provider.get_rules(mock_db)
        second = await provider.get_rules(mock_db)

        assert first is second
        assert mock_db.execute.await_count == 1

    async def test_refresh_bypasses_cache(self, provider, mock_db):
        mock_db.execute.return_value = result_with_scalar(MockPricingRuleSet())
        await provider.get_rules(mock_db)

        mock_db.execute.return_value = result_with_scalar(MockPricingRuleSet(per_mile_after_base_cents=650))
        rules = await provider.get_rules(mock_db, refresh=True)

        assert rules.per_mile_after_base_cents == 650
        assert mock_db.execute.await_count == 2

    async def test_invalidate_forces_reload(self, provider, mock_db):
        mock_db.execute.return_value = result_with_scalar(MockPricingRuleSet())
        await provider.get_rules(mock_db)

        provider.invalidate()
        await provider.get_rules(mock_db)

        assert mock_db.execute.await_count == 2

    async def test_expired_cache_reloads(self, provider, clock, mock_db):
        mock_db.execute.return_value = result_with_scalar(MockPricingRuleSet())
        await provider.get_rules(mock_db)

        clock.now += 59
        await provider.get_rules(mock_db)
        assert mock_db.execute.await_count == 1

        clock.now += 2
        await provider.get_rules(mock_db)
        assert mock_db.execute.await_count == 2

    async def test_concurrent_callers_share_one_load(self, provider, mock_db):
        async def slow_execute(*args, **kwargs):
            await asyncio.sleep(0)
            return result_with_scalar(MockPricingRuleSet())

        mock_db.execute.side_effect = slow_execute

        results = await asyncio.gather(*(provider.get_rules(mock_db) for _ in range(5)))

        assert mock_db.execute.await_count == 1
        assert all(r is results[0] for r in results)

    async def test_missing_rules(self, provider, mock_db):
        mock_db.execute.return_value = result_with_scalar(None)

        with pytest.raises(NotFoundError) as exc_info:
            await provider.get_rules(mock_db)

        assert exc_info.value.error_code == "PRICING_RULES_NOT_FOUND"


class TestRulesFromRow:

    def test_missing_percentages_use_configured_defaults(self):
        rules = rules_from_row(MockPricingRuleSet())

        assert rules.tax_rate_percent == Decimal("6.00")
        assert rules.deposit_percent == Decimal("25.00")

    def test_json_columns_are_typed(self):
        rules = rules_from_row(
            MockPricingRuleSet(
                tax_rate_percent=Decimal("7.25"),
                same_day_matrix=[{"units": 2, "fee_cents": 3500}],
            )
        )

        assert rules.tax_rate_percent == Decimal("7.25")
        assert rules.zone_overrides[0].flat_cents == 2500
        assert rules.same_day_matrix[0].units == 2
        assert rules.holiday_dates == [date(2026, 7, 4)]
        assert rules.included_cities == ["Wayne", "Westland"]
