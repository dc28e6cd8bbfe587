"""
SQLAlchemy models for customers and delivery addresses
Project: Rental Order Engine
"""

from __future__ import annotations
from decimal import Decimal
from typing import TYPE_CHECKING, List, Optional

from sqlalchemy import Numeric, String
from sqlalchemy.orm import Mapped, mapped_column, relationship

from rental_engine.models import Base
from rental_engine.models.mixins import TimestampMixin, UUIDMixin

if TYPE_CHECKING:
    from rental_engine.models.order import Order


class Customer(Base, UUIDMixin, TimestampMixin):
    """
    Customer placing rental orders.

    Only the contact fields the engine needs to reach the customer
    after an edit are modelled here.
    """

    __tablename__ = "customers"

    first_name: Mapped[str] = mapped_column(String(100), nullable=False)
    last_name: Mapped[str] = mapped_column(String(100), nullable=False)
    email: Mapped[Optional[str]] = mapped_column(String(255), nullable=True, index=True)
    phone: Mapped[Optional[str]] = mapped_column(String(30), nullable=True)

    orders: Mapped[List["Order"]] = relationship(
        "Order",
        back_populates="customer",
        lazy="noload",
    )

    @property
    def full_name(self) -> str:
        return f"{self.first_name} {self.last_name}".strip()

    def __repr__(self) -> str:
        return f"<Customer(id={self.id}, name={self.full_name})>"


class Address(Base, UUIDMixin, TimestampMixin):
    """
    Event address an order is delivered to.

    Attributes:
        line1, line2: Street lines
        city, state, zip: Locality used by travel zone overrides
        lat, lng: Geocoded coordinates used for the travel distance
    """

    __tablename__ = "addresses"

    line1: Mapped[str] = mapped_column(String(255), nullable=False, default="")
    line2: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    city: Mapped[str] = mapped_column(String(120), nullable=False, default="")
    state: Mapped[str] = mapped_column(String(60), nullable=False, default="")
    zip: Mapped[str] = mapped_column(String(20), nullable=False, default="", index=True)
    lat: Mapped[Optional[Decimal]] = mapped_column(Numeric(9, 6), nullable=True)
    lng: Mapped[Optional[Decimal]] = mapped_column(Numeric(9, 6), nullable=True)

    def one_line(self) -> str:
        """Single-line rendering used in changelog entries."""
        return f"{self.line1}, {self.city}, {self.state} {self.zip}"

    def __repr__(self) -> str:
        return f"<Address(id={self.id}, city={self.city}, zip={self.zip})>"
