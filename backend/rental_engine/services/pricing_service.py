"""
Service Layer for pricing
Project: Rental Order Engine

Contains the pure price calculator, the cached provider of the active
pricing rules and the service that prices an edit-session draft.

Every amount is an integer number of cents. Intermediate products are
computed with Decimal and each line is rounded ROUND_HALF_UP before the
lines are summed.
"""

import asyncio
import datetime
import logging
import time
from decimal import ROUND_HALF_UP, Decimal
from typing import Callable, Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from rental_engine.core.config import settings
from rental_engine.core.exceptions import BusinessValidationError, NotFoundError
from rental_engine.models import PricingRuleSet
from rental_engine.schemas.order import (
    FeeWaivers,
    LocationType,
    OrderDraft,
    OrderSnapshot,
    PickupPreference,
    Surface,
)
from rental_engine.schemas.pricing import (
    Cart,
    CartDiscount,
    CartFee,
    CartItem,
    EventParams,
    PriceBreakdown,
    PricingRules,
    SameDayRule,
)
from rental_engine.services.distance_service import DistanceProvider, resolve_distance_miles

logger = logging.getLogger(__name__)

HUNDRED = Decimal("100")


def round_half_up(value: Decimal) -> int:
    """Round a Decimal amount of cents to an integer, halves away from zero."""
    return int(Decimal(value).quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def calculate_num_days(start: datetime.date, end: Optional[datetime.date]) -> int:
    """Number of rental days, both ends included."""
    if end is None or end <= start:
        return 1
    return (end - start).days + 1


# -------------------------------------------------------------------
# Calculator helpers
# -------------------------------------------------------------------

def _rental_subtotal(cart: Cart, event: EventParams, rules: PricingRules) -> tuple[int, int]:
    items_subtotal = sum(item.qty * item.unit_price_cents for item in cart.items)

    multiplier = (
        rules.commercial_multiplier
        if event.location_type == LocationType.COMMERCIAL
        else rules.residential_multiplier
    )
    day_one = round_half_up(Decimal(items_subtotal) * multiplier)

    rental = day_one
    if event.num_days > 1:
        extra_days = event.num_days - 1
        rental += round_half_up(Decimal(day_one) * rules.extra_day_pct / HUNDRED * extra_days)

    return items_subtotal, rental


def _discount_amount(discount: CartDiscount, rental_cents: int) -> int:
    if discount.percentage:
        return round_half_up(Decimal(rental_cents) * discount.percentage / HUNDRED)
    return discount.amount_cents


def _travel(event: EventParams, rules: PricingRules) -> dict:
    distance = Decimal(event.distance_miles)
    result = {
        "travel_fee_cents": 0,
        "travel_total_miles": distance,
        "travel_base_radius_miles": rules.base_radius_miles,
        "travel_chargeable_miles": Decimal("0"),
        "travel_per_mile_cents": rules.per_mile_after_base_cents,
        "travel_is_flat_fee": False,
    }

    override = next(
        (zone for zone in rules.zone_overrides if zone.matches(event.city, event.zip)),
        None,
    )
    if override is not None:
        if override.flat_cents is not None:
            result["travel_fee_cents"] = override.flat_cents
            result["travel_is_flat_fee"] = True
        else:
            # Zone rate applies to the whole distance, no free radius
            result["travel_base_radius_miles"] = Decimal("0")
            result["travel_chargeable_miles"] = distance
            result["travel_per_mile_cents"] = override.per_mile_cents
            result["travel_fee_cents"] = round_half_up(distance * override.per_mile_cents)
        return result

    included = {city.lower() for city in rules.included_cities}
    if event.city and event.city.lower() in included:
        return result

    if distance > rules.base_radius_miles:
        chargeable = distance - rules.base_radius_miles
        result["travel_chargeable_miles"] = chargeable
        result["travel_fee_cents"] = round_half_up(chargeable * rules.per_mile_after_base_cents)

    return result


def effective_pickup(event: EventParams, rules: PricingRules) -> PickupPreference:
    """
    Pickup actually offered for the event.

    Commercial bookings are always picked up the same day. With the
    holiday-only overnight rule, next-day pickup is only offered when the
    event starts on a holiday.
    """
    if event.location_type == LocationType.COMMERCIAL:
        return PickupPreference.SAME_DAY
    if rules.overnight_holiday_only and event.event_date not in rules.holiday_dates:
        return PickupPreference.SAME_DAY
    return event.pickup_preference


def _same_day_fee(
    rules: PricingRules,
    total_units: int,
    has_generator: bool,
    subtotal_cents: int,
) -> int:
    if not rules.same_day_matrix:
        return rules.same_day_pickup_fee_cents

    applicable = [
        rule
        for rule in rules.same_day_matrix
        if rule.units <= total_units
        and (not rule.generator or has_generator)
        and rule.subtotal_ge_cents <= subtotal_cents
    ]
    if not applicable:
        return 0

    # Most units first, then generator rules, then highest threshold
    def specificity(rule: SameDayRule):
        return (-rule.units, 0 if rule.generator else 1, -rule.subtotal_ge_cents)

    return min(applicable, key=specificity).fee_cents


# -------------------------------------------------------------------
# Calculator
# -------------------------------------------------------------------

def calculate_price(
    cart: Cart,
    event: EventParams,
    rules: PricingRules,
    waivers: Optional[FeeWaivers] = None,
) -> PriceBreakdown:
    """
    Compute the itemized price of a cart.

    Pure and deterministic: no I/O, same inputs give the same breakdown.

    Args:
        cart: Items, discounts and custom fees
        event: Location, surface, days, distance and pickup choice
        rules: Active pricing rules
        waivers: Waived fee lines (default: none)

    Returns:
        PriceBreakdown whose total is the sum of its six lines

    Raises:
        BusinessValidationError: If the custom deposit exceeds the total
    """
    waivers = waivers or FeeWaivers()

    items_subtotal, rental = _rental_subtotal(cart, event, rules)

    discount_total = min(
        sum(_discount_amount(discount, rental) for discount in cart.discounts),
        rental,
    )
    fees_total = sum(fee.amount_cents for fee in cart.custom_fees)
    subtotal = rental - discount_total + fees_total

    travel = _travel(event, rules)

    surface_fee = 0
    if event.surface == Surface.CEMENT or not event.can_use_stakes:
        surface_fee = rules.surface_sandbag_fee_cents

    pickup = effective_pickup(event, rules)
    same_day_fee = 0
    if pickup == PickupPreference.SAME_DAY:
        same_day_fee = _same_day_fee(
            rules,
            total_units=cart.total_units,
            has_generator=event.generator_qty > 0,
            subtotal_cents=subtotal,
        )

    generator_fee = event.generator_qty * rules.generator_price_cents

    # Waived lines drop out of the total and out of the tax base
    lines = {
        "travel_fee": travel["travel_fee_cents"],
        "surface_fee": surface_fee,
        "same_day_pickup_fee": same_day_fee,
        "generator_fee": generator_fee,
    }
    waived_amounts: dict[str, int] = {}
    for name in lines:
        if getattr(waivers, f"{name}_waived") and lines[name]:
            waived_amounts[name] = lines[name]
            lines[name] = 0

    tax_base = subtotal + lines["travel_fee"] + lines["surface_fee"] + lines["generator_fee"]
    tax = round_half_up(Decimal(max(tax_base, 0)) * rules.tax_rate_percent / HUNDRED)
    if waivers.tax_waived:
        if tax:
            waived_amounts["tax"] = tax
        tax = 0

    total = (
        subtotal
        + lines["travel_fee"]
        + lines["surface_fee"]
        + lines["same_day_pickup_fee"]
        + lines["generator_fee"]
        + tax
    )

    if event.custom_deposit_cents is not None:
        if event.custom_deposit_cents > total:
            raise BusinessValidationError(
                f"Custom deposit ({event.custom_deposit_cents}) cannot exceed the order total ({total})"
            )
        deposit = event.custom_deposit_cents
    else:
        deposit = round_half_up(Decimal(total) * rules.deposit_percent / HUNDRED)

    travel["travel_fee_cents"] = lines["travel_fee"]

    return PriceBreakdown(
        items_subtotal_cents=items_subtotal,
        discount_total_cents=discount_total,
        custom_fees_total_cents=fees_total,
        subtotal_cents=subtotal,
        **travel,
        surface_fee_cents=lines["surface_fee"],
        same_day_pickup_fee_cents=lines["same_day_pickup_fee"],
        generator_fee_cents=lines["generator_fee"],
        tax_cents=tax,
        total_cents=total,
        deposit_due_cents=deposit,
        balance_due_cents=total - deposit,
        pickup_preference=pickup,
        waived_amounts=waived_amounts,
    )


# -------------------------------------------------------------------
# Rules provider
# -------------------------------------------------------------------

class PricingRulesProvider:
    """
    Cached access to the active pricing rule set.

    Rules are reloaded when the cache is older than ttl_seconds, when the
    caller asks for refresh=True, or after invalidate(). Concurrent
    callers share a single load.
    """

    def __init__(
        self,
        ttl_seconds: Optional[int] = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.ttl_seconds = settings.pricing_rules_cache_seconds if ttl_seconds is None else ttl_seconds
        self._clock = clock
        self._rules: Optional[PricingRules] = None
        self._loaded_at: Optional[float] = None
        self._generation = 0
        self._lock = asyncio.Lock()

    def _is_fresh(self) -> bool:
        if self._rules is None or self._loaded_at is None:
            return False
        return self._clock() - self._loaded_at < self.ttl_seconds

    def invalidate(self) -> None:
        """Drop the cached rules; the next call reloads them."""
        self._rules = None
        self._loaded_at = None

    async def get_rules(self, db: AsyncSession, refresh: bool = False) -> PricingRules:
        """
        Return the active pricing rules.

        Args:
            db: Database session
            refresh: Bypass the cache and reload

        Raises:
            NotFoundError: If no active rule set exists
        """
        if not refresh and self._is_fresh():
            return self._rules

        generation = self._generation
        async with self._lock:
            # Another caller loaded them while we waited
            if self._generation != generation and self._rules is not None:
                return self._rules
            if not refresh and self._is_fresh():
                return self._rules

            rules = await self._load(db)
            self._rules = rules
            self._loaded_at = self._clock()
            self._generation += 1
            logger.info("Pricing rules loaded")
            return rules

    async def _load(self, db: AsyncSession) -> PricingRules:
        result = await db.execute(
            select(PricingRuleSet)
            .where(PricingRuleSet.is_active.is_(True))
            .order_by(PricingRuleSet.updated_at.desc())
            .limit(1)
        )
        row = result.scalar_one_or_none()
        if row is None:
            raise NotFoundError("No active pricing rules configured", error_code="PRICING_RULES_NOT_FOUND")
        return rules_from_row(row)


def rules_from_row(row: PricingRuleSet) -> PricingRules:
    """Build PricingRules from a database row, filling in configured defaults."""
    return PricingRules(
        base_radius_miles=row.base_radius_miles,
        per_mile_after_base_cents=row.per_mile_after_base_cents,
        included_cities=row.included_cities or [],
        zone_overrides=row.zone_overrides or [],
        surface_sandbag_fee_cents=row.surface_sandbag_fee_cents,
        residential_multiplier=row.residential_multiplier,
        commercial_multiplier=row.commercial_multiplier,
        same_day_matrix=row.same_day_matrix or [],
        same_day_pickup_fee_cents=row.same_day_pickup_fee_cents,
        overnight_holiday_only=row.overnight_holiday_only,
        holiday_dates=row.holiday_dates or [],
        extra_day_pct=row.extra_day_pct,
        generator_price_cents=row.generator_price_cents,
        tax_rate_percent=(
            row.tax_rate_percent if row.tax_rate_percent is not None else settings.default_tax_rate_percent
        ),
        deposit_percent=(
            row.deposit_percent if row.deposit_percent is not None else settings.default_deposit_percent
        ),
    )


# -------------------------------------------------------------------
# Draft pricing
# -------------------------------------------------------------------

class DraftPricingService:
    """
    Prices an edit-session draft.

    Turns the draft into calculator inputs and resolves the travel distance,
    reusing the stored distance while the address is unchanged.
    """

    def __init__(
        self,
        rules_provider: PricingRulesProvider,
        distance_provider: DistanceProvider,
    ) -> None:
        self.rules_provider = rules_provider
        self.distance_provider = distance_provider

    @staticmethod
    def build_cart(draft: OrderDraft) -> Cart:
        return Cart(
            items=[
                CartItem(
                    unit_id=item.unit_id,
                    mode=item.mode,
                    unit_price_cents=item.unit_price_cents,
                    qty=item.qty,
                )
                for item in draft.active_items
            ],
            discounts=[
                CartDiscount(name=d.name, amount_cents=d.amount_cents, percentage=d.percentage)
                for d in draft.discounts
            ],
            custom_fees=[CartFee(name=f.name, amount_cents=f.amount_cents) for f in draft.custom_fees],
        )

    async def price_draft(
        self,
        db: AsyncSession,
        draft: OrderDraft,
        baseline: Optional[OrderSnapshot] = None,
        can_use_stakes: bool = True,
        refresh_rules: bool = False,
    ) -> PriceBreakdown:
        """
        Price the draft with the active rules.

        Args:
            db: Database session
            draft: Edit-session draft
            baseline: Persisted order the draft was loaded from
            can_use_stakes: Whether stakes can anchor the units on grass
            refresh_rules: Reload pricing rules before pricing

        Returns:
            PriceBreakdown of the draft
        """
        rules = await self.rules_provider.get_rules(db, refresh=refresh_rules)

        stored_miles = baseline.travel_total_miles if baseline is not None else Decimal("0")
        if baseline is not None and baseline.address.same_location(draft.address):
            distance = stored_miles
        else:
            distance = await resolve_distance_miles(self.distance_provider, draft.address, stored_miles)

        event = EventParams(
            location_type=draft.location_type,
            surface=draft.surface,
            can_use_stakes=can_use_stakes,
            pickup_preference=draft.pickup_preference,
            num_days=calculate_num_days(draft.event_date, draft.event_end_date),
            event_date=draft.event_date,
            distance_miles=distance,
            city=draft.address.city,
            zip=draft.address.zip,
            generator_qty=draft.generator_qty,
            custom_deposit_cents=draft.custom_deposit_cents,
        )
        return calculate_price(self.build_cart(draft), event, rules, draft.waivers)
