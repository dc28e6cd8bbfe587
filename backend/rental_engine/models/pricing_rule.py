"""
SQLAlchemy model for the pricing rule set
Project: Rental Order Engine

Admin-editable pricing configuration. One row is active at a time;
PricingRulesProvider turns it into a PricingRules schema.
"""

from __future__ import annotations
from decimal import Decimal
from typing import Optional

from sqlalchemy import JSON, Boolean, Integer, Numeric
from sqlalchemy.orm import Mapped, mapped_column

from rental_engine.models import Base
from rental_engine.models.mixins import TimestampMixin, UUIDMixin


class PricingRuleSet(Base, UUIDMixin, TimestampMixin):
    """
    Pricing rules used by the calculator.

    JSON columns:
        included_cities: ["Wayne", "Westland", ...]
        zone_overrides: [{"zip": "48170", "flat_cents": 2500}, {"city": "Detroit", "per_mile_cents": 300}]
        same_day_matrix: [{"units": 1, "generator": false, "subtotal_ge_cents": 0, "fee_cents": 5000}]
        holiday_dates: ["2026-07-04", ...]
    """

    __tablename__ = "pricing_rules"

    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True, index=True)

    base_radius_miles: Mapped[Decimal] = mapped_column(Numeric(6, 2), nullable=False, default=Decimal("20"))
    per_mile_after_base_cents: Mapped[int] = mapped_column(Integer, nullable=False, default=500)
    included_cities: Mapped[list] = mapped_column(JSON, nullable=False, default=list)
    zone_overrides: Mapped[list] = mapped_column(JSON, nullable=False, default=list)

    surface_sandbag_fee_cents: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    residential_multiplier: Mapped[Decimal] = mapped_column(Numeric(6, 3), nullable=False, default=Decimal("1"))
    commercial_multiplier: Mapped[Decimal] = mapped_column(Numeric(6, 3), nullable=False, default=Decimal("1"))

    same_day_matrix: Mapped[list] = mapped_column(JSON, nullable=False, default=list)
    same_day_pickup_fee_cents: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    overnight_holiday_only: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    holiday_dates: Mapped[list] = mapped_column(JSON, nullable=False, default=list)

    extra_day_pct: Mapped[Decimal] = mapped_column(Numeric(6, 2), nullable=False, default=Decimal("0"))
    generator_price_cents: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    tax_rate_percent: Mapped[Optional[Decimal]] = mapped_column(Numeric(5, 2), nullable=True)
    deposit_percent: Mapped[Optional[Decimal]] = mapped_column(Numeric(5, 2), nullable=True)

    def __repr__(self) -> str:
        return f"<PricingRuleSet(id={self.id}, active={self.is_active})>"
