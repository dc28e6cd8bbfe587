"""
Pydantic schemas for the Rental Order Engine

This module exposes the schemas used for validation and serialization
of engine inputs and API responses.
"""

# e.g.: from rental_engine.schemas import OrderDraft, PriceBreakdown

from rental_engine.schemas.availability import (
    AvailabilityCheck,
    AvailabilityResult,
    ConflictingOrder,
    Reservation,
    UnavailableDate,
    UnitAvailability,
)
from rental_engine.schemas.changelog import ChangelogEntryRead, ChangelogList
from rental_engine.schemas.order import (
    BLOCKING_STATUSES,
    TERMINAL_STATUSES,
    VALID_TRANSITIONS,
    AddressDraft,
    ChangeEntry,
    ChangeType,
    DraftCustomFee,
    DraftDiscount,
    DraftItem,
    FeeWaivers,
    ItemMode,
    LocationType,
    OrderDraft,
    OrderRead,
    OrderSnapshot,
    OrderStatus,
    PaymentStatus,
    PickupPreference,
    SaveChangesOptions,
    SaveChangesRequest,
    SaveOutcome,
    StatusChangeRequest,
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
    QuoteRequest,
    SameDayRule,
    ZoneOverride,
)

__all__ = [
    # Order
    "OrderStatus",
    "LocationType",
    "Surface",
    "PickupPreference",
    "ItemMode",
    "ChangeType",
    "PaymentStatus",
    "VALID_TRANSITIONS",
    "BLOCKING_STATUSES",
    "TERMINAL_STATUSES",
    "AddressDraft",
    "DraftItem",
    "DraftDiscount",
    "DraftCustomFee",
    "FeeWaivers",
    "OrderDraft",
    "OrderSnapshot",
    "OrderRead",
    "SaveChangesOptions",
    "SaveChangesRequest",
    "ChangeEntry",
    "SaveOutcome",
    "StatusChangeRequest",
    # Pricing
    "PricingRules",
    "ZoneOverride",
    "SameDayRule",
    "Cart",
    "CartItem",
    "CartDiscount",
    "CartFee",
    "EventParams",
    "PriceBreakdown",
    "QuoteRequest",
    # Availability
    "AvailabilityCheck",
    "AvailabilityResult",
    "Reservation",
    "ConflictingOrder",
    "UnitAvailability",
    "UnavailableDate",
    # Changelog
    "ChangelogEntryRead",
    "ChangelogList",
]
