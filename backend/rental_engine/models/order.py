"""
SQLAlchemy models for rental orders
Project: Rental Order Engine

Contains:
- Order: the booking with its priced breakdown
- OrderItem: rented unit with a snapshotted price
- OrderDiscount: discount applied to an order
- OrderCustomFee: extra fee applied to an order
"""


from __future__ import annotations
import uuid
from datetime import date
from decimal import Decimal
from typing import TYPE_CHECKING, List, Optional

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    Date,
    ForeignKey,
    Index,
    Integer,
    Numeric,
    String,
    Text,
    Uuid,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from rental_engine.models import Base
from rental_engine.models.mixins import TimestampMixin, UUIDMixin

if TYPE_CHECKING:
    from rental_engine.models.catalog import Unit
    from rental_engine.models.customer import Address, Customer


# Statuses live in rental_engine.schemas.order.OrderStatus
# Fee lines that can be waived, in the order they appear on a quote
WAIVABLE_FEES = ("tax", "travel_fee", "same_day_pickup_fee", "surface_fee", "generator_fee")


class Order(Base, UUIDMixin, TimestampMixin):
    """
    Rental order.

    Every money column is an integer amount of cents.
    total_cents is the sum of the six price lines and is recomputed on every
    save, never edited by hand (enforced by ck_orders_total).

    States (State Machine):
        draft → pending_review → awaiting_customer_approval → confirmed →
        setup_in_progress → on_the_way ⇄ setup_completed → pickup_in_progress →
        on_the_way_back → completed
        cancelled / void from draft, pending_review, awaiting_customer_approval, confirmed

    The version column is the optimistic concurrency token: SQLAlchemy
    bumps it on every UPDATE and fails the flush if another session got
    there first.
    """

    __tablename__ = "orders"

    # ------------------------------------------------------------
    # Relations
    # ------------------------------------------------------------
    customer_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        Uuid,
        ForeignKey("customers.id", ondelete="SET NULL"),
        nullable=True,
        index=True,
    )

    address_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        Uuid,
        ForeignKey("addresses.id", ondelete="SET NULL"),
        nullable=True,
    )

    # ------------------------------------------------------------
    # Status and event
    # ------------------------------------------------------------
    status: Mapped[str] = mapped_column(String(40), nullable=False, default="draft")

    location_type: Mapped[str] = mapped_column(String(20), nullable=False, default="residential")
    surface: Mapped[str] = mapped_column(String(20), nullable=False, default="grass")
    generator_qty: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    event_date: Mapped[date] = mapped_column(Date, nullable=False)
    event_end_date: Mapped[date] = mapped_column(Date, nullable=False)
    start_window: Mapped[Optional[str]] = mapped_column(String(40), nullable=True)
    end_window: Mapped[Optional[str]] = mapped_column(String(40), nullable=True)
    pickup_preference: Mapped[str] = mapped_column(String(20), nullable=False, default="next_day")

    # ------------------------------------------------------------
    # Price lines (cents)
    # ------------------------------------------------------------
    subtotal_cents: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    travel_fee_cents: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    surface_fee_cents: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    same_day_pickup_fee_cents: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    generator_fee_cents: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    tax_cents: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    total_cents: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    # Travel detail kept for display and audit
    travel_total_miles: Mapped[Decimal] = mapped_column(Numeric(8, 2), nullable=False, default=Decimal("0"))
    travel_base_radius_miles: Mapped[Decimal] = mapped_column(Numeric(8, 2), nullable=False, default=Decimal("0"))
    travel_chargeable_miles: Mapped[Decimal] = mapped_column(Numeric(8, 2), nullable=False, default=Decimal("0"))
    travel_per_mile_cents: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    travel_is_flat_fee: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)

    # ------------------------------------------------------------
    # Deposit and balance (cents)
    # ------------------------------------------------------------
    deposit_due_cents: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    deposit_paid_cents: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    balance_due_cents: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    balance_paid_cents: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    custom_deposit_cents: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)

    # ------------------------------------------------------------
    # Fee waivers
    # ------------------------------------------------------------
    tax_waived: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    tax_waive_reason: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    travel_fee_waived: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    travel_fee_waive_reason: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    same_day_pickup_fee_waived: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    same_day_pickup_fee_waive_reason: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    surface_fee_waived: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    surface_fee_waive_reason: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    generator_fee_waived: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    generator_fee_waive_reason: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    # ------------------------------------------------------------
    # Payment authorization (opaque reference, never card data)
    # ------------------------------------------------------------
    payment_method_ref: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    payment_status: Mapped[str] = mapped_column(String(20), nullable=False, default="unpaid")
    amount_captured_cents: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    admin_message: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    version: Mapped[int] = mapped_column(Integer, nullable=False)

    # ------------------------------------------------------------
    # Relationships
    # ------------------------------------------------------------
    customer: Mapped[Optional["Customer"]] = relationship(
        "Customer",
        back_populates="orders",
        lazy="joined",
    )

    address: Mapped[Optional["Address"]] = relationship(
        "Address",
        lazy="joined",
    )

    items: Mapped[List["OrderItem"]] = relationship(
        "OrderItem",
        back_populates="order",
        cascade="all, delete-orphan",
        lazy="noload",
    )

    discounts: Mapped[List["OrderDiscount"]] = relationship(
        "OrderDiscount",
        back_populates="order",
        cascade="all, delete-orphan",
        lazy="noload",
    )

    custom_fees: Mapped[List["OrderCustomFee"]] = relationship(
        "OrderCustomFee",
        back_populates="order",
        cascade="all, delete-orphan",
        lazy="noload",
    )

    __mapper_args__ = {"version_id_col": version}

    # ------------------------------------------------------------
    # Indexes and constraints
    # ------------------------------------------------------------
    __table_args__ = (
        Index("ix_orders_status", "status"),
        Index("ix_orders_status_dates", "status", "event_date", "event_end_date"),
        CheckConstraint(
            "status IN ('draft', 'pending_review', 'awaiting_customer_approval', 'confirmed', "
            "'setup_in_progress', 'on_the_way', 'setup_completed', 'pickup_in_progress', "
            "'on_the_way_back', 'completed', 'cancelled', 'void')",
            name="ck_orders_status",
        ),
        CheckConstraint("event_end_date >= event_date", name="ck_orders_event_range"),
        CheckConstraint(
            "total_cents = subtotal_cents + travel_fee_cents + surface_fee_cents"
            " + same_day_pickup_fee_cents + generator_fee_cents + tax_cents",
            name="ck_orders_total",
        ),
        CheckConstraint("location_type IN ('residential', 'commercial')", name="ck_orders_location_type"),
        CheckConstraint("surface IN ('grass', 'cement')", name="ck_orders_surface"),
        CheckConstraint("pickup_preference IN ('same_day', 'next_day')", name="ck_orders_pickup"),
        CheckConstraint("generator_qty >= 0", name="ck_orders_generator_qty"),
    )

    # ------------------------------------------------------------
    # Methods
    # ------------------------------------------------------------
    @property
    def amount_paid_cents(self) -> int:
        return (self.deposit_paid_cents or 0) + (self.balance_paid_cents or 0)

    @property
    def amount_due_cents(self) -> int:
        """What the customer still owes against the current total."""
        return max((self.total_cents or 0) - self.amount_paid_cents, 0)

    def recompute_total(self) -> int:
        """Set total_cents from the six price lines and return it."""
        self.total_cents = (
            self.subtotal_cents
            + self.travel_fee_cents
            + self.surface_fee_cents
            + self.same_day_pickup_fee_cents
            + self.generator_fee_cents
            + self.tax_cents
        )
        return self.total_cents

    def __repr__(self) -> str:
        return f"<Order(id={self.id}, status={self.status}, event_date={self.event_date})>"


class OrderItem(Base, UUIDMixin, TimestampMixin):
    """
    Unit rented by an order.

    unit_price_cents is copied from the catalog when the item is added and
    never re-derived afterwards.
    """

    __tablename__ = "order_items"

    order_id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        ForeignKey("orders.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )

    unit_id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        ForeignKey("units.id", ondelete="RESTRICT"),
        nullable=False,
        index=True,
    )

    qty: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    mode: Mapped[str] = mapped_column(String(10), nullable=False, default="dry")
    unit_price_cents: Mapped[int] = mapped_column(Integer, nullable=False)

    order: Mapped["Order"] = relationship("Order", back_populates="items")

    unit: Mapped["Unit"] = relationship("Unit", lazy="joined")

    __table_args__ = (
        CheckConstraint("qty > 0", name="ck_order_items_qty"),
        CheckConstraint("mode IN ('dry', 'water')", name="ck_order_items_mode"),
        CheckConstraint("unit_price_cents >= 0", name="ck_order_items_price"),
    )

    @property
    def line_total_cents(self) -> int:
        return self.qty * self.unit_price_cents

    def __repr__(self) -> str:
        return f"<OrderItem(id={self.id}, unit_id={self.unit_id}, qty={self.qty}, mode={self.mode})>"


class OrderDiscount(Base, UUIDMixin, TimestampMixin):
    """Discount on an order: a fixed amount or a percentage, never both."""

    __tablename__ = "order_discounts"

    order_id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        ForeignKey("orders.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )

    name: Mapped[str] = mapped_column(String(200), nullable=False)
    amount_cents: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    percentage: Mapped[Decimal] = mapped_column(Numeric(5, 2), nullable=False, default=Decimal("0"))

    order: Mapped["Order"] = relationship("Order", back_populates="discounts")

    __table_args__ = (
        CheckConstraint(
            "NOT (amount_cents <> 0 AND percentage <> 0)",
            name="ck_order_discounts_amount_xor_percentage",
        ),
    )


class OrderCustomFee(Base, UUIDMixin, TimestampMixin):
    """Extra named fee on an order."""

    __tablename__ = "order_custom_fees"

    order_id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        ForeignKey("orders.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )

    name: Mapped[str] = mapped_column(String(200), nullable=False)
    amount_cents: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    order: Mapped["Order"] = relationship("Order", back_populates="custom_fees")
