"""
SQLAlchemy database models
Project: Rental Order Engine

Central import of every model for Alembic and general use.

Models:
- Customer, Address: contact and delivery location of an order
- Unit: physical inventory unit of the catalog
- Order, OrderItem, OrderDiscount, OrderCustomFee: the priced booking
- DiscountTemplate, CustomFeeTemplate: reusable named adjustments
- OrderChangelog: append-only audit of order edits
- PricingRuleSet: admin-configured pricing rules
"""

from sqlalchemy.orm import DeclarativeBase


class Base(DeclarativeBase):
    """Base class for every SQLAlchemy model."""
    pass


from rental_engine.models.customer import Address, Customer
from rental_engine.models.catalog import CustomFeeTemplate, DiscountTemplate, Unit
from rental_engine.models.order import Order, OrderCustomFee, OrderDiscount, OrderItem
from rental_engine.models.changelog import OrderChangelog
from rental_engine.models.pricing_rule import PricingRuleSet

__all__ = [
    "Base",
    "Address",
    "Customer",
    "Unit",
    "DiscountTemplate",
    "CustomFeeTemplate",
    "Order",
    "OrderItem",
    "OrderDiscount",
    "OrderCustomFee",
    "OrderChangelog",
    "PricingRuleSet",
]
