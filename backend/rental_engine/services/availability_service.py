"""
Service Layer for unit availability
Project: Rental Order Engine

Detects double bookings of physical units. A unit is booked by every
order in a blocking status whose event range overlaps the requested
range; both ends of a range are included.
"""

import datetime
import logging
import uuid
from typing import Iterable, Optional

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from rental_engine.core.exceptions import PersistenceError
from rental_engine.models import Order, OrderItem, Unit
from rental_engine.schemas.availability import (
    AvailabilityResult,
    ConflictingOrder,
    Reservation,
    UnavailableDate,
    UnitAvailability,
)
from rental_engine.schemas.order import BLOCKING_STATUSES, OrderStatus

logger = logging.getLogger(__name__)


def ranges_overlap(
    a_start: datetime.date,
    a_end: datetime.date,
    b_start: datetime.date,
    b_end: datetime.date,
) -> bool:
    """Closed-interval overlap: sharing a single day is a conflict."""
    return a_start <= b_end and b_start <= a_end


def find_conflicts(
    reservations: Iterable[Reservation],
    unit_id: uuid.UUID,
    start: datetime.date,
    end: datetime.date,
    exclude_order_id: Optional[uuid.UUID] = None,
) -> list[ConflictingOrder]:
    """
    Select the reservations that block unit_id over [start, end].

    Reservations of other units, of non-blocking orders and of the
    excluded order are ignored. Each order is reported once.
    """
    conflicts: dict[uuid.UUID, ConflictingOrder] = {}
    for reservation in reservations:
        if reservation.unit_id != unit_id:
            continue
        if reservation.status not in BLOCKING_STATUSES:
            continue
        if exclude_order_id is not None and reservation.order_id == exclude_order_id:
            continue
        if not ranges_overlap(start, end, reservation.event_date, reservation.event_end_date):
            continue
        conflicts.setdefault(
            reservation.order_id,
            ConflictingOrder(
                order_id=reservation.order_id,
                event_date=reservation.event_date,
                event_end_date=reservation.event_end_date,
                status=reservation.status,
            ),
        )
    return list(conflicts.values())


class AvailabilityService:
    """
    Availability queries over order items.

    check_availability() and check_many() are read-only and report a failed
    lookup as unavailable. recheck_for_write() runs inside the caller's
    transaction and locks the unit rows first.
    """

    async def _fetch_reservations(
        self,
        db: AsyncSession,
        unit_ids: list[uuid.UUID],
        start: datetime.date,
        end: datetime.date,
        exclude_order_id: Optional[uuid.UUID] = None,
    ) -> list[Reservation]:
        query = (
            select(
                OrderItem.unit_id,
                Order.id.label("order_id"),
                Order.status,
                Order.event_date,
                Order.event_end_date,
            )
            .join(Order, Order.id == OrderItem.order_id)
            .where(
                OrderItem.unit_id.in_(unit_ids),
                Order.status.in_([status.value for status in BLOCKING_STATUSES]),
                Order.event_date <= end,
                Order.event_end_date >= start,
            )
        )
        if exclude_order_id is not None:
            query = query.where(Order.id != exclude_order_id)

        result = await db.execute(query)
        return [
            Reservation(
                order_id=row.order_id,
                unit_id=row.unit_id,
                status=OrderStatus(row.status),
                event_date=row.event_date,
                event_end_date=row.event_end_date,
            )
            for row in result.all()
        ]

    async def _unit_names(self, db: AsyncSession, unit_ids: list[uuid.UUID]) -> dict[uuid.UUID, str]:
        try:
            result = await db.execute(select(Unit.id, Unit.name).where(Unit.id.in_(unit_ids)))
        except SQLAlchemyError as e:
            logger.error("Error loading unit names: %s", e)
            return {}
        return {row.id: row.name for row in result.all()}

    async def check_availability(
        self,
        db: AsyncSession,
        unit_id: uuid.UUID,
        start: datetime.date,
        end: datetime.date,
        exclude_order_id: Optional[uuid.UUID] = None,
        unit_name: str = "",
    ) -> UnitAvailability:
        """
        Check a single unit over [start, end].

        Args:
            db: Database session
            unit_id: Unit to check
            start: First day of the range
            end: Last day of the range (included)
            exclude_order_id: Order whose own bookings are ignored
            unit_name: Name reported back with the result

        Returns:
            UnitAvailability; available is False when the lookup failed
        """
        try:
            reservations = await self._fetch_reservations(db, [unit_id], start, end, exclude_order_id)
        except SQLAlchemyError as e:
            logger.error("Availability lookup failed for unit %s: %s", unit_id, e)
            return UnitAvailability(
                unit_id=unit_id,
                unit_name=unit_name,
                available=False,
                error="Availability lookup failed",
            )

        conflicts = find_conflicts(reservations, unit_id, start, end, exclude_order_id)
        if conflicts:
            logger.debug("Unit %s has %d conflicting orders", unit_id, len(conflicts))
        return UnitAvailability(
            unit_id=unit_id,
            unit_name=unit_name,
            available=not conflicts,
            conflicts=conflicts,
        )

    async def check_many(
        self,
        db: AsyncSession,
        unit_ids: list[uuid.UUID],
        start: datetime.date,
        end: datetime.date,
        exclude_order_id: Optional[uuid.UUID] = None,
    ) -> AvailabilityResult:
        """Check each unit independently; the result lists them in request order."""
        unique_ids = list(dict.fromkeys(unit_ids))
        if not unique_ids:
            return AvailabilityResult()

        names = await self._unit_names(db, unique_ids)
        units = []
        for unit_id in unique_ids:
            units.append(
                await self.check_availability(
                    db, unit_id, start, end, exclude_order_id, unit_name=names.get(unit_id, "")
                )
            )
        return AvailabilityResult(units=units)

    async def get_unavailable_dates(
        self,
        db: AsyncSession,
        unit_id: uuid.UUID,
        start: datetime.date,
        end: datetime.date,
        exclude_order_id: Optional[uuid.UUID] = None,
    ) -> list[UnavailableDate]:
        """
        List the days of [start, end] on which the unit is booked.

        Raises:
            PersistenceError: If the lookup fails
        """
        try:
            reservations = await self._fetch_reservations(db, [unit_id], start, end, exclude_order_id)
        except SQLAlchemyError as e:
            logger.error("Unavailable dates lookup failed for unit %s: %s", unit_id, e)
            raise PersistenceError("Could not load unit bookings") from e

        booked: dict[datetime.date, list[uuid.UUID]] = {}
        for conflict in find_conflicts(reservations, unit_id, start, end, exclude_order_id):
            day = max(conflict.event_date, start)
            last = min(conflict.event_end_date, end)
            while day <= last:
                booked.setdefault(day, []).append(conflict.order_id)
                day += datetime.timedelta(days=1)

        return [UnavailableDate(date=day, order_ids=order_ids) for day, order_ids in sorted(booked.items())]

    async def recheck_for_write(
        self,
        db: AsyncSession,
        unit_ids: list[uuid.UUID],
        start: datetime.date,
        end: datetime.date,
        exclude_order_id: Optional[uuid.UUID] = None,
    ) -> AvailabilityResult:
        """
        Re-run the check inside the caller's transaction.

        Locks the unit rows with SELECT ... FOR UPDATE (in a fixed order) so
        two transactions booking the same unit serialize. Database errors
        propagate to the caller, which owns the transaction.
        """
        unique_ids = sorted(set(unit_ids))
        if not unique_ids:
            return AvailabilityResult()

        locked = await db.execute(
            select(Unit.id, Unit.name)
            .where(Unit.id.in_(unique_ids))
            .order_by(Unit.id)
            .with_for_update()
        )
        names = {row.id: row.name for row in locked.all()}

        reservations = await self._fetch_reservations(db, unique_ids, start, end, exclude_order_id)
        units = []
        for unit_id in unique_ids:
            conflicts = find_conflicts(reservations, unit_id, start, end, exclude_order_id)
            units.append(
                UnitAvailability(
                    unit_id=unit_id,
                    unit_name=names.get(unit_id, ""),
                    available=not conflicts,
                    conflicts=conflicts,
                )
            )
        return AvailabilityResult(units=units)
