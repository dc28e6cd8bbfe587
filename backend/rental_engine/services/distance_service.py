"""
Travel distance lookup
Project: Rental Order Engine

Driving distance from the home base to an event address. The default
provider scales the great-circle distance by a road factor; a failed
lookup falls back to the distance already stored on the order.
"""

import logging
import math
from decimal import ROUND_HALF_UP, Decimal
from typing import Optional

from rental_engine.core.config import settings
from rental_engine.core.exceptions import ExternalServiceError
from rental_engine.schemas.order import AddressDraft

logger = logging.getLogger(__name__)

EARTH_RADIUS_MILES = 3959.0


class DistanceProvider:
    """
    Interface of a distance lookup.

    Implementations raise ExternalServiceError when the lookup fails.
    """

    async def distance(
        self,
        origin_lat: float,
        origin_lng: float,
        dest_lat: float,
        dest_lng: float,
    ) -> Decimal:
        raise NotImplementedError


def haversine_miles(lat1: float, lng1: float, lat2: float, lng2: float) -> float:
    """Great-circle distance in miles."""
    d_lat = math.radians(lat2 - lat1)
    d_lng = math.radians(lng2 - lng1)
    a = (
        math.sin(d_lat / 2) ** 2
        + math.cos(math.radians(lat1)) * math.cos(math.radians(lat2)) * math.sin(d_lng / 2) ** 2
    )
    return EARTH_RADIUS_MILES * 2 * math.atan2(math.sqrt(a), math.sqrt(1 - a))


class HaversineDistanceProvider(DistanceProvider):
    """Straight-line distance times a road factor, an approximation of driving miles."""

    def __init__(self, road_factor: Optional[Decimal] = None) -> None:
        self.road_factor = road_factor if road_factor is not None else settings.road_distance_factor

    async def distance(self, origin_lat, origin_lng, dest_lat, dest_lng) -> Decimal:
        try:
            miles = haversine_miles(float(origin_lat), float(origin_lng), float(dest_lat), float(dest_lng))
        except (TypeError, ValueError) as e:
            raise ExternalServiceError(f"Cannot compute distance: {e}") from e
        return Decimal(str(miles)) * self.road_factor


async def resolve_distance_miles(
    provider: DistanceProvider,
    address: AddressDraft,
    fallback_miles: Decimal,
) -> Decimal:
    """
    Miles from the home base to the address, rounded to the hundredth.

    Falls back to fallback_miles when the address has no coordinates or
    the provider fails.
    """
    if address.lat is None or address.lng is None:
        logger.warning("Address '%s' has no coordinates, keeping %s mi", address.one_line(), fallback_miles)
        return Decimal(fallback_miles)

    try:
        miles = await provider.distance(settings.home_base_lat, settings.home_base_lng, address.lat, address.lng)
    except ExternalServiceError as e:
        logger.error("Distance lookup failed for '%s': %s. Keeping %s mi", address.one_line(), e.detail, fallback_miles)
        return Decimal(fallback_miles)

    return Decimal(miles).quantize(Decimal("0.01"), rounding=ROUND_HALF_UP)
