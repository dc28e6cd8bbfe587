"""
SQLAlchemy models for the rental catalog
Project: Rental Order Engine

Contains:
- Unit: one physical rental unit (bounce house, slide, combo...)
- DiscountTemplate: reusable named discount
- CustomFeeTemplate: reusable named custom fee
"""

from __future__ import annotations
from decimal import Decimal
from typing import Optional

from sqlalchemy import Boolean, CheckConstraint, Index, Integer, Numeric, String, func
from sqlalchemy.orm import Mapped, mapped_column

from rental_engine.models import Base
from rental_engine.models.mixins import TimestampMixin, UUIDMixin


class Unit(Base, UUIDMixin, TimestampMixin):
    """
    Rental unit of the catalog.

    Each row is a single physical item: two overlapping bookings of the
    same unit are a double booking.

    Attributes:
        name: Display name (e.g. "Combo Slide")
        price_dry_cents: Daily price when rented dry
        price_water_cents: Daily price when rented with water
        is_active: Whether the unit can still be booked
    """

    __tablename__ = "units"

    name: Mapped[str] = mapped_column(String(200), nullable=False)

    price_dry_cents: Mapped[int] = mapped_column(
        Integer,
        nullable=False,
        default=0,
        doc="Price in cents for a dry rental",
    )

    price_water_cents: Mapped[Optional[int]] = mapped_column(
        Integer,
        nullable=True,
        doc="Price in cents for a water rental (None if the unit has no water mode)",
    )

    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)

    __table_args__ = (
        CheckConstraint("price_dry_cents >= 0", name="ck_units_price_dry"),
        CheckConstraint(
            "price_water_cents IS NULL OR price_water_cents >= 0",
            name="ck_units_price_water",
        ),
    )

    def price_for_mode(self, mode: str) -> int:
        """Catalog price for the given mode, used when an item is first added."""
        if mode == "water" and self.price_water_cents is not None:
            return self.price_water_cents
        return self.price_dry_cents

    def __repr__(self) -> str:
        return f"<Unit(id={self.id}, name={self.name})>"


class DiscountTemplate(Base, UUIDMixin, TimestampMixin):
    """
    Reusable named discount.

    Exactly one of amount_cents and percentage is set.
    Names are unique regardless of case.
    """

    __tablename__ = "discount_templates"

    name: Mapped[str] = mapped_column(String(200), nullable=False)
    amount_cents: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    percentage: Mapped[Decimal] = mapped_column(Numeric(5, 2), nullable=False, default=Decimal("0"))

    __table_args__ = (
        CheckConstraint(
            "(amount_cents = 0) <> (percentage = 0)",
            name="ck_discount_templates_amount_xor_percentage",
        ),
    )


class CustomFeeTemplate(Base, UUIDMixin, TimestampMixin):
    """Reusable named custom fee. Names are unique regardless of case."""

    __tablename__ = "custom_fee_templates"

    name: Mapped[str] = mapped_column(String(200), nullable=False)
    amount_cents: Mapped[int] = mapped_column(Integer, nullable=False, default=0)


# Case-insensitive uniqueness of template names
Index("uq_discount_templates_name", func.lower(DiscountTemplate.name), unique=True)
Index("uq_custom_fee_templates_name", func.lower(CustomFeeTemplate.name), unique=True)
