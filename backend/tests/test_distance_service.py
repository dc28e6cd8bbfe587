"""
Unit tests for the travel distance lookup.
"""

from decimal import Decimal
from unittest.mock import AsyncMock

import pytest

from rental_engine.core.exceptions import ExternalServiceError
from rental_engine.schemas.order import AddressDraft
from rental_engine.services.distance_service import (
    HaversineDistanceProvider,
    haversine_miles,
    resolve_distance_miles,
)


ADDRESS = AddressDraft(line1="9 Oak Ave", city="Canton", state="MI", zip="48187", lat=42.3, lng=-83.48)


class TestHaversine:

    def test_one_degree_of_latitude(self):
        assert haversine_miles(0, 0, 1, 0) == pytest.approx(69.1, abs=0.1)

    def test_same_point(self):
        assert haversine_miles(42.28, -83.38, 42.28, -83.38) == 0

    async def test_road_factor_scales_distance(self):
        straight = await HaversineDistanceProvider(road_factor=Decimal("1")).distance(0, 0, 1, 0)
        road = await HaversineDistanceProvider(road_factor=Decimal("1.5")).distance(0, 0, 1, 0)

        assert road == straight * Decimal("1.5")

    async def test_bad_coordinates(self):
        with pytest.raises(ExternalServiceError):
            await HaversineDistanceProvider().distance("north", 0, 1, 0)


class TestResolveDistance:

    async def test_rounded_to_hundredth(self):
        provider = AsyncMock()
        provider.distance = AsyncMock(return_value=Decimal("12.345"))

        assert await resolve_distance_miles(provider, ADDRESS, Decimal("28")) == Decimal("12.35")

    async def test_missing_coordinates_keep_fallback(self):
        provider = AsyncMock()
        address = AddressDraft(line1="9 Oak Ave", city="Canton", state="MI", zip="48187")

        assert await resolve_distance_miles(provider, address, Decimal("28")) == Decimal("28")
        provider.distance.assert_not_awaited()

    async def test_provider_failure_keeps_fallback(self):
        provider = AsyncMock()
        provider.distance = AsyncMock(side_effect=ExternalServiceError("geocoder down"))

        assert await resolve_distance_miles(provider, ADDRESS, Decimal("28")) == Decimal("28")
