"""
Pydantic schemas for availability checks
Project: Rental Order Engine
"""

import datetime
import uuid
from typing import Optional

from pydantic import BaseModel, Field, model_validator

from rental_engine.schemas.order import OrderStatus


class AvailabilityCheck(BaseModel):
    """Request to check one or more units over a date range."""
    unit_ids: list[uuid.UUID] = Field(..., min_length=1)
    start_date: datetime.date
    end_date: datetime.date
    exclude_order_id: Optional[uuid.UUID] = None

    @model_validator(mode="after")
    def check_range(self) -> "AvailabilityCheck":
        if self.end_date < self.start_date:
            raise ValueError("end_date must not be before start_date")
        return self


class Reservation(BaseModel):
    """Booking of a unit by an order, as read from the order items."""
    order_id: uuid.UUID
    unit_id: uuid.UUID
    status: OrderStatus
    event_date: datetime.date
    event_end_date: datetime.date


class ConflictingOrder(BaseModel):
    order_id: uuid.UUID
    event_date: datetime.date
    event_end_date: datetime.date
    status: OrderStatus


class UnitAvailability(BaseModel):
    """
    Availability of a single unit.

    A unit is available only when conflicts is empty and the lookup
    succeeded.
    """
    unit_id: uuid.UUID
    unit_name: str = ""
    available: bool
    conflicts: list[ConflictingOrder] = Field(default_factory=list)
    error: Optional[str] = None


class AvailabilityResult(BaseModel):
    """Aggregated result the edit session hands to save_changes()."""
    units: list[UnitAvailability] = Field(default_factory=list)

    @property
    def all_available(self) -> bool:
        return all(unit.available for unit in self.units)

    @property
    def unavailable_units(self) -> list[UnitAvailability]:
        return [unit for unit in self.units if not unit.available]


class UnavailableDate(BaseModel):
    date: datetime.date
    order_ids: list[uuid.UUID] = Field(default_factory=list)
