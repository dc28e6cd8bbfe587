"""
FastAPI routers for the rental order engine
Project: Rental Order Engine

Thin request handlers over the engine services: quotes, availability,
status changes, edit-session saves and the changelog.
"""

import datetime
import logging
import uuid
from typing import Optional

from fastapi import APIRouter, Depends, Path, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from rental_engine.core.database import get_db
from rental_engine.core.deps import (
    get_availability_service,
    get_changelog_service,
    get_current_actor,
    get_draft_pricing_service,
    get_order_edit_service,
    get_order_status_service,
    get_pricing_rules_provider,
)
from rental_engine.core.exceptions import BusinessValidationError
from rental_engine.schemas.availability import AvailabilityCheck, AvailabilityResult, UnavailableDate
from rental_engine.schemas.changelog import ChangelogEntryRead, ChangelogList
from rental_engine.schemas.order import OrderRead, SaveChangesRequest, SaveOutcome, StatusChangeRequest
from rental_engine.schemas.pricing import PriceBreakdown, QuoteRequest
from rental_engine.services.availability_service import AvailabilityService
from rental_engine.services.changelog_service import ChangelogService
from rental_engine.services.order_edit_service import OrderEditService
from rental_engine.services.order_status_service import OrderStatusService
from rental_engine.services.pricing_service import (
    DraftPricingService,
    PricingRulesProvider,
    calculate_price,
)

logger = logging.getLogger(__name__)

pricing_router = APIRouter(prefix="/pricing", tags=["Pricing"])
availability_router = APIRouter(prefix="/availability", tags=["Availability"])
router = APIRouter(prefix="/orders", tags=["Orders"])


# -------------------------------------------------------------------
# Pricing
# -------------------------------------------------------------------

@pricing_router.post(
    "/quote",
    name="pricing_quote",
    summary="Price a cart",
    description="Compute the itemized price of a cart with the active pricing rules.",
    response_model=PriceBreakdown,
    status_code=status.HTTP_200_OK,
)
async def quote(
    data: QuoteRequest,
    refresh_rules: bool = Query(False, description="Reload the pricing rules before pricing"),
    db: AsyncSession = Depends(get_db),
    rules_provider: PricingRulesProvider = Depends(get_pricing_rules_provider),
) -> PriceBreakdown:
    rules = await rules_provider.get_rules(db, refresh=refresh_rules)
    return calculate_price(data.cart, data.event, rules, data.waivers)


@pricing_router.post(
    "/rules/refresh",
    name="pricing_rules_refresh",
    summary="Drop cached pricing rules",
    status_code=status.HTTP_204_NO_CONTENT,
)
async def refresh_rules(
    rules_provider: PricingRulesProvider = Depends(get_pricing_rules_provider),
) -> None:
    rules_provider.invalidate()
    logger.info("Pricing rules cache invalidated")


# -------------------------------------------------------------------
# Availability
# -------------------------------------------------------------------

@availability_router.post(
    "/check",
    name="availability_check",
    summary="Check unit availability",
    description="Check each unit independently over a closed date range.",
    response_model=AvailabilityResult,
    status_code=status.HTTP_200_OK,
)
async def check_availability(
    data: AvailabilityCheck,
    db: AsyncSession = Depends(get_db),
    availability_service: AvailabilityService = Depends(get_availability_service),
) -> AvailabilityResult:
    return await availability_service.check_many(
        db, data.unit_ids, data.start_date, data.end_date, data.exclude_order_id
    )


@availability_router.get(
    "/units/{unit_id}/unavailable-dates",
    name="availability_unavailable_dates",
    summary="Booked days of a unit",
    response_model=list[UnavailableDate],
    status_code=status.HTTP_200_OK,
)
async def get_unavailable_dates(
    unit_id: uuid.UUID = Path(..., description="Unit UUID"),
    start_date: datetime.date = Query(..., description="First day of the range"),
    end_date: datetime.date = Query(..., description="Last day of the range"),
    exclude_order_id: Optional[uuid.UUID] = Query(None, description="Order to ignore"),
    db: AsyncSession = Depends(get_db),
    availability_service: AvailabilityService = Depends(get_availability_service),
) -> list[UnavailableDate]:
    """
    List the days a unit is booked, for calendars.

    Raises:
        BusinessValidationError: If end_date is before start_date
    """
    if end_date < start_date:
        raise BusinessValidationError("end_date must not be before start_date")
    return await availability_service.get_unavailable_dates(
        db, unit_id, start_date, end_date, exclude_order_id
    )


# -------------------------------------------------------------------
# Orders
# -------------------------------------------------------------------

@router.get(
    "/{order_id}",
    name="order_detail",
    summary="Order detail",
    response_model=OrderRead,
    status_code=status.HTTP_200_OK,
)
async def get_order(
    order_id: uuid.UUID = Path(..., description="Order UUID"),
    db: AsyncSession = Depends(get_db),
    edit_service: OrderEditService = Depends(get_order_edit_service),
) -> OrderRead:
    order = await edit_service.get_by_id(db, order_id)
    return OrderRead.from_order(order)


@router.post(
    "/{order_id}/status",
    name="order_status_change",
    summary="Change order status",
    description="Apply a status transition. Rejected transitions return 422.",
    response_model=OrderRead,
    status_code=status.HTTP_200_OK,
)
async def change_order_status(
    data: StatusChangeRequest,
    order_id: uuid.UUID = Path(..., description="Order UUID"),
    db: AsyncSession = Depends(get_db),
    actor_id: Optional[uuid.UUID] = Depends(get_current_actor),
    status_service: OrderStatusService = Depends(get_order_status_service),
) -> OrderRead:
    order = await status_service.change_status(db, order_id, data.status, actor_id)
    return OrderRead.from_order(order)


@router.post(
    "/{order_id}/changes",
    name="order_save_changes",
    summary="Save an edit session",
    description=(
        "Reprice the draft, check availability and persist the changes. "
        "Tracked changes send the order back to the customer for approval."
    ),
    response_model=SaveOutcome,
    status_code=status.HTTP_200_OK,
)
async def save_order_changes(
    data: SaveChangesRequest,
    order_id: uuid.UUID = Path(..., description="Order UUID"),
    db: AsyncSession = Depends(get_db),
    actor_id: Optional[uuid.UUID] = Depends(get_current_actor),
    pricing_service: DraftPricingService = Depends(get_draft_pricing_service),
    availability_service: AvailabilityService = Depends(get_availability_service),
    edit_service: OrderEditService = Depends(get_order_edit_service),
) -> SaveOutcome:
    """
    Save an edit session.

    Pricing and availability are recomputed server side from the draft.
    """
    draft = data.draft
    baseline = await edit_service.load_snapshot(db, order_id)
    pricing = await pricing_service.price_draft(db, draft, baseline, can_use_stakes=data.can_use_stakes)
    availability = await availability_service.check_many(
        db,
        [item.unit_id for item in draft.active_items],
        draft.event_date,
        draft.effective_end_date,
        exclude_order_id=order_id,
    )
    return await edit_service.save_changes(
        db, order_id, draft, pricing, availability, actor_id, data.options
    )


@router.get(
    "/{order_id}/changelog",
    name="order_changelog",
    summary="Order changelog",
    response_model=ChangelogList,
    status_code=status.HTTP_200_OK,
)
async def get_order_changelog(
    order_id: uuid.UUID = Path(..., description="Order UUID"),
    page: int = Query(1, ge=1, description="Page number"),
    per_page: int = Query(50, ge=1, le=200, description="Entries per page"),
    db: AsyncSession = Depends(get_db),
    changelog_service: ChangelogService = Depends(get_changelog_service),
) -> ChangelogList:
    entries, total = await changelog_service.list_for_order(db, order_id, page=page, per_page=per_page)
    return ChangelogList(
        items=[ChangelogEntryRead.model_validate(entry) for entry in entries],
        total=total,
    )
