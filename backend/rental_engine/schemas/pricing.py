"""
Pydantic schemas for pricing
Project: Rental Order Engine

Inputs and output of the pricing calculator, plus the typed view of the
active pricing rule set.
"""

import datetime
import uuid
from decimal import Decimal
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, computed_field, field_validator, model_validator

from rental_engine.schemas.order import FeeWaivers, ItemMode, LocationType, PickupPreference, Surface


# -------------------------------------------------------------------
# Pricing rules
# -------------------------------------------------------------------

class ZoneOverride(BaseModel):
    """
    Travel fee override for a zip code or a city.

    Exactly one of zip/city identifies the zone; exactly one of
    flat_cents/per_mile_cents sets the fee.
    """
    zip: Optional[str] = None
    city: Optional[str] = None
    flat_cents: Optional[int] = Field(default=None, ge=0)
    per_mile_cents: Optional[int] = Field(default=None, ge=0)

    @model_validator(mode="after")
    def check_zone(self) -> "ZoneOverride":
        if not self.zip and not self.city:
            raise ValueError("A zone override needs a zip or a city")
        if (self.flat_cents is None) == (self.per_mile_cents is None):
            raise ValueError("A zone override needs exactly one of flat_cents and per_mile_cents")
        return self

    def matches(self, city: str, zip_code: str) -> bool:
        if self.zip:
            return self.zip == zip_code
        return (self.city or "").lower() == (city or "").lower()


class SameDayRule(BaseModel):
    """Row of the same-day pickup fee matrix."""
    units: int = Field(..., ge=0)
    generator: bool = False
    subtotal_ge_cents: int = Field(default=0, ge=0)
    fee_cents: int = Field(..., ge=0)


class PricingRules(BaseModel):
    """Typed pricing configuration consumed by calculate_price()."""
    model_config = ConfigDict(from_attributes=True)

    base_radius_miles: Decimal = Decimal("20")
    per_mile_after_base_cents: int = 500
    included_cities: list[str] = Field(default_factory=list)
    zone_overrides: list[ZoneOverride] = Field(default_factory=list)
    surface_sandbag_fee_cents: int = 0
    residential_multiplier: Decimal = Decimal("1")
    commercial_multiplier: Decimal = Decimal("1")
    same_day_matrix: list[SameDayRule] = Field(default_factory=list)
    same_day_pickup_fee_cents: int = 0
    overnight_holiday_only: bool = False
    holiday_dates: list[datetime.date] = Field(default_factory=list)
    extra_day_pct: Decimal = Decimal("0")
    generator_price_cents: int = 0
    tax_rate_percent: Decimal = Decimal("6.00")
    deposit_percent: Decimal = Decimal("25.00")

    @field_validator("tax_rate_percent", "deposit_percent")
    @classmethod
    def validate_percent(cls, v: Decimal) -> Decimal:
        if v < 0 or v > 100:
            raise ValueError("Percentages must be between 0 and 100")
        return v


# -------------------------------------------------------------------
# Calculator inputs
# -------------------------------------------------------------------

class CartItem(BaseModel):
    unit_id: uuid.UUID
    mode: ItemMode = ItemMode.DRY
    unit_price_cents: int = Field(..., ge=0)
    qty: int = Field(default=1, gt=0)


class CartDiscount(BaseModel):
    """Fixed amount or percentage of the rental subtotal, never both."""
    name: str = ""
    amount_cents: int = Field(default=0, ge=0)
    percentage: Decimal = Field(default=Decimal("0"), ge=0, le=100)

    @model_validator(mode="after")
    def check_amount_xor_percentage(self) -> "CartDiscount":
        if self.amount_cents and self.percentage:
            raise ValueError("A discount is either an amount or a percentage, not both")
        return self


class CartFee(BaseModel):
    name: str = ""
    amount_cents: int = Field(default=0, ge=0)


class Cart(BaseModel):
    items: list[CartItem] = Field(default_factory=list)
    discounts: list[CartDiscount] = Field(default_factory=list)
    custom_fees: list[CartFee] = Field(default_factory=list)

    @property
    def total_units(self) -> int:
        return sum(item.qty for item in self.items)


class EventParams(BaseModel):
    """
    Event parameters of a quote.

    event_date is used to decide whether the holiday-only overnight rule
    allows next-day pickup.
    """
    location_type: LocationType = LocationType.RESIDENTIAL
    surface: Surface = Surface.GRASS
    can_use_stakes: bool = True
    pickup_preference: PickupPreference = PickupPreference.NEXT_DAY
    num_days: int = Field(default=1, ge=1)
    event_date: Optional[datetime.date] = None
    distance_miles: Decimal = Field(default=Decimal("0"), ge=0)
    city: str = ""
    zip: str = ""
    generator_qty: int = Field(default=0, ge=0)
    custom_deposit_cents: Optional[int] = Field(default=None, ge=0)


# -------------------------------------------------------------------
# Calculator output
# -------------------------------------------------------------------

class PriceBreakdown(BaseModel):
    """
    Itemized price.

    total_cents is always the sum of the six persisted lines. Waived lines
    are zero here and their unwaived amount is in waived_amounts.
    """
    items_subtotal_cents: int = 0
    discount_total_cents: int = 0
    custom_fees_total_cents: int = 0
    subtotal_cents: int = 0

    travel_fee_cents: int = 0
    travel_total_miles: Decimal = Decimal("0")
    travel_base_radius_miles: Decimal = Decimal("0")
    travel_chargeable_miles: Decimal = Decimal("0")
    travel_per_mile_cents: int = 0
    travel_is_flat_fee: bool = False

    surface_fee_cents: int = 0
    same_day_pickup_fee_cents: int = 0
    generator_fee_cents: int = 0
    tax_cents: int = 0
    total_cents: int = 0

    deposit_due_cents: int = 0
    balance_due_cents: int = 0

    pickup_preference: PickupPreference = PickupPreference.NEXT_DAY
    waived_amounts: dict[str, int] = Field(default_factory=dict)

    @computed_field
    @property
    def travel_fee_display_name(self) -> str:
        if self.travel_fee_cents <= 0:
            return "Travel Fee"
        if self.travel_is_flat_fee:
            return f"Travel Fee ({self.travel_total_miles:.1f} mi)"
        if self.travel_chargeable_miles > 0:
            per_mile = Decimal(self.travel_per_mile_cents) / 100
            return f"Travel Fee ({self.travel_chargeable_miles:.1f} mi × ${per_mile:.2f}/mi)"
        return "Travel Fee"


class QuoteRequest(BaseModel):
    """Body of the quote endpoint."""
    cart: Cart
    event: EventParams
    waivers: FeeWaivers = Field(default_factory=FeeWaivers)
