"""
Dependency Injection
Project: Rental Order Engine

FastAPI dependencies for the acting user and the engine services.

Authentication happens upstream: the gateway forwards the signed-in
user's id in the X-Actor-Id header. A missing or malformed header
yields None and the services reject the write.
"""

from functools import lru_cache
from typing import Optional
from uuid import UUID

from fastapi import Header

from rental_engine.services.availability_service import AvailabilityService
from rental_engine.services.changelog_service import ChangelogService
from rental_engine.services.distance_service import HaversineDistanceProvider
from rental_engine.services.notification_service import OrderNotificationService
from rental_engine.services.order_edit_service import OrderEditService
from rental_engine.services.order_status_service import OrderStatusService
from rental_engine.services.pricing_service import DraftPricingService, PricingRulesProvider


async def get_current_actor(
    x_actor_id: Optional[str] = Header(default=None, description="ID of the signed-in user"),
) -> Optional[UUID]:
    """
    Dependency returning the acting user id, or None when absent.

    Args:
        x_actor_id: Value of the X-Actor-Id header
    """
    if not x_actor_id:
        return None
    try:
        return UUID(x_actor_id)
    except ValueError:
        return None


# ------------------------------------------------------------
# Services (one instance per process)
# ------------------------------------------------------------
@lru_cache
def get_pricing_rules_provider() -> PricingRulesProvider:
    return PricingRulesProvider()


@lru_cache
def get_availability_service() -> AvailabilityService:
    return AvailabilityService()


@lru_cache
def get_changelog_service() -> ChangelogService:
    return ChangelogService()


@lru_cache
def get_draft_pricing_service() -> DraftPricingService:
    return DraftPricingService(get_pricing_rules_provider(), HaversineDistanceProvider())


@lru_cache
def get_order_edit_service() -> OrderEditService:
    return OrderEditService(
        availability_service=get_availability_service(),
        changelog_service=get_changelog_service(),
        notification_service=OrderNotificationService(),
    )


@lru_cache
def get_order_status_service() -> OrderStatusService:
    return OrderStatusService(
        availability_service=get_availability_service(),
        changelog_service=get_changelog_service(),
    )
