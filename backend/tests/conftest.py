"""
Pytest configuration and fixtures for the rental engine services.

Database access is replaced by an AsyncMock session; ORM rows are
replaced by lightweight Mock* records carrying the attributes the
services read.
"""

import uuid
from datetime import date
from decimal import Decimal
from unittest.mock import AsyncMock, MagicMock

import pytest
from sqlalchemy.ext.asyncio import AsyncSession

from rental_engine.schemas.order import (
    AddressDraft,
    DraftCustomFee,
    DraftDiscount,
    DraftItem,
    FeeWaivers,
    OrderDraft,
    OrderSnapshot,
)
from rental_engine.schemas.pricing import PriceBreakdown, PricingRules


# ============================================================
# AsyncSession mock
# ============================================================


@pytest.fixture
def mock_db():
    """AsyncSession mock."""
    db = AsyncMock(spec=AsyncSession)
    db.execute = AsyncMock()
    db.add = MagicMock()
    db.commit = AsyncMock()
    db.rollback = AsyncMock()
    db.flush = AsyncMock()
    db.refresh = AsyncMock()
    db.delete = AsyncMock()
    return db


def result_with_rows(rows):
    """Mock of a Result whose .all() returns rows."""
    result = MagicMock()
    result.all.return_value = rows
    return result


def result_with_scalar(value):
    """Mock of a Result for scalar_one / scalar_one_or_none queries."""
    result = MagicMock()
    result.scalar_one.return_value = value
    result.scalar_one_or_none.return_value = value
    result.unique.return_value = result
    return result


# ============================================================
# Mock records
# ============================================================


class MockCustomer:
    def __init__(self, **kwargs):
        self.id = kwargs.get("id", uuid.uuid4())
        self.first_name = kwargs.get("first_name", "Jane")
        self.last_name = kwargs.get("last_name", "Doe")
        self.email = kwargs.get("email", "jane@example.com")
        self.phone = kwargs.get("phone", "+13135550100")

    @property
    def full_name(self):
        return f"{self.first_name} {self.last_name}"


class MockAddress:
    def __init__(self, **kwargs):
        self.id = kwargs.get("id", uuid.uuid4())
        self.line1 = kwargs.get("line1", "123 Main St")
        self.line2 = kwargs.get("line2", None)
        self.city = kwargs.get("city", "Wayne")
        self.state = kwargs.get("state", "MI")
        self.zip = kwargs.get("zip", "48184")
        self.lat = kwargs.get("lat", Decimal("42.281400"))
        self.lng = kwargs.get("lng", Decimal("-83.386300"))


class MockUnit:
    def __init__(self, **kwargs):
        self.id = kwargs.get("id", uuid.uuid4())
        self.name = kwargs.get("name", "Combo Slide")
        self.price_dry_cents = kwargs.get("price_dry_cents", 20000)
        self.price_water_cents = kwargs.get("price_water_cents", 25000)


class MockOrderItem:
    def __init__(self, **kwargs):
        self.unit = kwargs.get("unit", MockUnit())
        self.id = kwargs.get("id", uuid.uuid4())
        self.unit_id = kwargs.get("unit_id", self.unit.id)
        self.qty = kwargs.get("qty", 1)
        self.mode = kwargs.get("mode", "water")
        self.unit_price_cents = kwargs.get("unit_price_cents", 25000)


class MockOrderDiscount:
    def __init__(self, **kwargs):
        self.id = kwargs.get("id", uuid.uuid4())
        self.name = kwargs.get("name", "Returning customer")
        self.amount_cents = kwargs.get("amount_cents", 0)
        self.percentage = kwargs.get("percentage", Decimal("10"))


class MockOrderCustomFee:
    def __init__(self, **kwargs):
        self.id = kwargs.get("id", uuid.uuid4())
        self.name = kwargs.get("name", "Late setup")
        self.amount_cents = kwargs.get("amount_cents", 1500)


class MockOrder:
    """
    Mock of the Order model.

    Defaults describe the reference booking: one Combo Slide (water) at
    $250.00, 28 miles away with a 20 mile free radius at $5.00/mile,
    confirmed with a card on file and the deposit captured.
    """

    def __init__(self, **kwargs):
        self.id = kwargs.get("id", uuid.uuid4())
        self.version = kwargs.get("version", 3)
        self.status = kwargs.get("status", "confirmed")
        self.location_type = kwargs.get("location_type", "residential")
        self.surface = kwargs.get("surface", "grass")
        self.generator_qty = kwargs.get("generator_qty", 0)
        self.event_date = kwargs.get("event_date", date(2026, 7, 11))
        self.event_end_date = kwargs.get("event_end_date", date(2026, 7, 11))
        self.start_window = kwargs.get("start_window", "9:00 AM")
        self.end_window = kwargs.get("end_window", "5:00 PM")
        self.pickup_preference = kwargs.get("pickup_preference", "next_day")
        self.customer = kwargs.get("customer", MockCustomer())
        self.address = kwargs.get("address", MockAddress())
        self.items = kwargs.get("items", [MockOrderItem()])
        self.discounts = kwargs.get("discounts", [])
        self.custom_fees = kwargs.get("custom_fees", [])

        self.subtotal_cents = kwargs.get("subtotal_cents", 25000)
        self.travel_fee_cents = kwargs.get("travel_fee_cents", 4000)
        self.surface_fee_cents = kwargs.get("surface_fee_cents", 0)
        self.same_day_pickup_fee_cents = kwargs.get("same_day_pickup_fee_cents", 0)
        self.generator_fee_cents = kwargs.get("generator_fee_cents", 0)
        self.tax_cents = kwargs.get("tax_cents", 1740)
        self.total_cents = kwargs.get("total_cents", 30740)
        self.travel_total_miles = kwargs.get("travel_total_miles", Decimal("28"))
        self.travel_base_radius_miles = kwargs.get("travel_base_radius_miles", Decimal("20"))
        self.travel_chargeable_miles = kwargs.get("travel_chargeable_miles", Decimal("8"))
        self.travel_per_mile_cents = kwargs.get("travel_per_mile_cents", 500)
        self.travel_is_flat_fee = kwargs.get("travel_is_flat_fee", False)

        self.deposit_due_cents = kwargs.get("deposit_due_cents", 7685)
        self.deposit_paid_cents = kwargs.get("deposit_paid_cents", 7685)
        self.balance_due_cents = kwargs.get("balance_due_cents", 23055)
        self.balance_paid_cents = kwargs.get("balance_paid_cents", 0)
        self.custom_deposit_cents = kwargs.get("custom_deposit_cents", None)

        for fee in ("tax", "travel_fee", "same_day_pickup_fee", "surface_fee", "generator_fee"):
            setattr(self, f"{fee}_waived", kwargs.get(f"{fee}_waived", False))
            setattr(self, f"{fee}_waive_reason", kwargs.get(f"{fee}_waive_reason", None))

        self.payment_method_ref = kwargs.get("payment_method_ref", "pm_card_visa")
        self.payment_status = kwargs.get("payment_status", "deposit_paid")
        self.amount_captured_cents = kwargs.get("amount_captured_cents", 7685)
        self.admin_message = kwargs.get("admin_message", None)

    @property
    def amount_paid_cents(self):
        return self.deposit_paid_cents + self.balance_paid_cents

    @property
    def amount_due_cents(self):
        return max(self.total_cents - self.amount_paid_cents, 0)

    def recompute_total(self):
        self.total_cents = (
            self.subtotal_cents
            + self.travel_fee_cents
            + self.surface_fee_cents
            + self.same_day_pickup_fee_cents
            + self.generator_fee_cents
            + self.tax_cents
        )
        return self.total_cents


class MockPricingRuleSet:
    def __init__(self, **kwargs):
        self.id = kwargs.get("id", uuid.uuid4())
        self.is_active = True
        self.base_radius_miles = kwargs.get("base_radius_miles", Decimal("20"))
        self.per_mile_after_base_cents = kwargs.get("per_mile_after_base_cents", 500)
        self.included_cities = kwargs.get("included_cities", ["Wayne", "Westland"])
        self.zone_overrides = kwargs.get("zone_overrides", [{"zip": "48170", "flat_cents": 2500}])
        self.surface_sandbag_fee_cents = kwargs.get("surface_sandbag_fee_cents", 3000)
        self.residential_multiplier = kwargs.get("residential_multiplier", Decimal("1"))
        self.commercial_multiplier = kwargs.get("commercial_multiplier", Decimal("1.5"))
        self.same_day_matrix = kwargs.get("same_day_matrix", [])
        self.same_day_pickup_fee_cents = kwargs.get("same_day_pickup_fee_cents", 5000)
        self.overnight_holiday_only = kwargs.get("overnight_holiday_only", False)
        self.holiday_dates = kwargs.get("holiday_dates", ["2026-07-04"])
        self.extra_day_pct = kwargs.get("extra_day_pct", Decimal("50"))
        self.generator_price_cents = kwargs.get("generator_price_cents", 7500)
        self.tax_rate_percent = kwargs.get("tax_rate_percent", None)
        self.deposit_percent = kwargs.get("deposit_percent", None)


# ============================================================
# Fixtures
# ============================================================


@pytest.fixture
def mock_order():
    return MockOrder()


@pytest.fixture
def pricing_rules():
    """Rules of the reference booking: 20 free miles then $5.00/mile, 6% tax."""
    return PricingRules(
        base_radius_miles=Decimal("20"),
        per_mile_after_base_cents=500,
        tax_rate_percent=Decimal("6"),
        deposit_percent=Decimal("25"),
    )


@pytest.fixture
def baseline(mock_order):
    return OrderSnapshot.from_order(mock_order)


def draft_from(snapshot: OrderSnapshot, **overrides) -> OrderDraft:
    """Unedited draft of the snapshot; keyword arguments replace fields."""
    data = dict(
        version=snapshot.version,
        location_type=snapshot.location_type,
        surface=snapshot.surface,
        generator_qty=snapshot.generator_qty,
        start_window=snapshot.start_window,
        end_window=snapshot.end_window,
        event_date=snapshot.event_date,
        event_end_date=snapshot.event_end_date,
        pickup_preference=snapshot.pickup_preference,
        address=AddressDraft(**snapshot.address.model_dump()),
        items=[
            DraftItem(
                id=item.id,
                unit_id=item.unit_id,
                unit_name=item.unit_name,
                qty=item.qty,
                mode=item.mode,
                unit_price_cents=item.unit_price_cents,
            )
            for item in snapshot.items
        ],
        discounts=[
            DraftDiscount(id=d.id, name=d.name, amount_cents=d.amount_cents, percentage=d.percentage)
            for d in snapshot.discounts
        ],
        custom_fees=[
            DraftCustomFee(id=f.id, name=f.name, amount_cents=f.amount_cents)
            for f in snapshot.custom_fees
        ],
        custom_deposit_cents=snapshot.custom_deposit_cents,
        waivers=FeeWaivers(**snapshot.waivers.model_dump()),
        admin_message=snapshot.admin_message or "",
    )
    data.update(overrides)
    return OrderDraft(**data)


def pricing_from(snapshot: OrderSnapshot, **overrides) -> PriceBreakdown:
    """Price breakdown equal to the stored one; keyword arguments replace fields."""
    data = dict(
        items_subtotal_cents=snapshot.subtotal_cents,
        subtotal_cents=snapshot.subtotal_cents,
        travel_fee_cents=snapshot.travel_fee_cents,
        travel_total_miles=snapshot.travel_total_miles,
        surface_fee_cents=snapshot.surface_fee_cents,
        same_day_pickup_fee_cents=snapshot.same_day_pickup_fee_cents,
        generator_fee_cents=snapshot.generator_fee_cents,
        tax_cents=snapshot.tax_cents,
        total_cents=snapshot.total_cents,
        deposit_due_cents=snapshot.deposit_due_cents,
        balance_due_cents=snapshot.balance_due_cents,
        pickup_preference=snapshot.pickup_preference,
    )
    data.update(overrides)
    return PriceBreakdown(**data)
