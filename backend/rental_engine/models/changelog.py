"""
SQLAlchemy model for the order changelog
Project: Rental Order Engine

Append-only audit trail of field-level changes made to an order.
Rows are inserted by the edit and status services and never touched again.
"""

from __future__ import annotations
import datetime
import uuid
from typing import Optional

from sqlalchemy import CheckConstraint, DateTime, ForeignKey, Index, String, Text, Uuid, event
from sqlalchemy.orm import Mapped, mapped_column
from sqlalchemy.sql import func

from rental_engine.models import Base
from rental_engine.models.mixins import UUIDMixin


class OrderChangelog(Base, UUIDMixin):
    """
    Single field-level change of an order.

    Attributes:
        order_id: Changed order
        actor_id: Authenticated user who saved the change
        field_name: Changed field ("address", "order_items", "travel_fee", ...)
        old_value: Previous value rendered as text
        new_value: New value rendered as text
        change_type: add, remove or edit
        created_at: When the change was saved
    """

    __tablename__ = "order_changelog"

    order_id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        ForeignKey("orders.id", ondelete="RESTRICT"),
        nullable=False,
    )

    actor_id: Mapped[Optional[uuid.UUID]] = mapped_column(Uuid, nullable=True)

    field_name: Mapped[str] = mapped_column(String(100), nullable=False)
    old_value: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    new_value: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    change_type: Mapped[str] = mapped_column(String(10), nullable=False, default="edit")

    created_at: Mapped[datetime.datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        nullable=False,
    )

    __table_args__ = (
        Index("ix_order_changelog_order_created", "order_id", "created_at"),
        CheckConstraint("change_type IN ('add', 'remove', 'edit')", name="ck_order_changelog_type"),
    )

    def __repr__(self) -> str:
        return f"<OrderChangelog(order_id={self.order_id}, field={self.field_name}, type={self.change_type})>"


# ------------------------------------------------------------
# Append-only guards
# ------------------------------------------------------------
@event.listens_for(OrderChangelog, "before_update")
def _reject_changelog_update(mapper, connection, target: OrderChangelog) -> None:
    raise ValueError(f"Changelog entries are append-only (entry {target.id})")


@event.listens_for(OrderChangelog, "before_delete")
def _reject_changelog_delete(mapper, connection, target: OrderChangelog) -> None:
    raise ValueError(f"Changelog entries are append-only (entry {target.id})")
