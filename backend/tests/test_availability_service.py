"""
Unit tests for AvailabilityService and the overlap helpers.
"""

import uuid
from datetime import date
from types import SimpleNamespace

import pytest
from sqlalchemy.exc import OperationalError

from rental_engine.core.exceptions import PersistenceError
from rental_engine.schemas.availability import Reservation
from rental_engine.schemas.order import OrderStatus
from rental_engine.services.availability_service import (
    AvailabilityService,
    find_conflicts,
    ranges_overlap,
)

from conftest import result_with_rows

UNIT_ID = uuid.uuid4()
OTHER_UNIT_ID = uuid.uuid4()


def reservation_row(order_id=None, unit_id=UNIT_ID, status="confirmed", start=date(2026, 1, 3), end=None):
    return SimpleNamespace(
        order_id=order_id or uuid.uuid4(),
        unit_id=unit_id,
        status=status,
        event_date=start,
        event_end_date=end or start,
    )


def reservation(**kwargs):
    row = reservation_row(**kwargs)
    return Reservation(
        order_id=row.order_id,
        unit_id=row.unit_id,
        status=OrderStatus(row.status),
        event_date=row.event_date,
        event_end_date=row.event_end_date,
    )


@pytest.fixture
def service():
    return AvailabilityService()


# ============================================================
# Pure helpers
# ============================================================


class TestRangesOverlap:

    def test_shared_day_is_a_conflict(self):
        assert ranges_overlap(date(2026, 1, 1), date(2026, 1, 3), date(2026, 1, 3), date(2026, 1, 5))

    def test_adjacent_ranges_do_not_conflict(self):
        assert not ranges_overlap(date(2026, 1, 1), date(2026, 1, 2), date(2026, 1, 3), date(2026, 1, 4))

    def test_contained_range(self):
        assert ranges_overlap(date(2026, 1, 1), date(2026, 1, 10), date(2026, 1, 4), date(2026, 1, 4))


class TestFindConflicts:

    def test_excluded_order_is_ignored(self):
        own = uuid.uuid4()
        reservations = [reservation(order_id=own)]

        assert find_conflicts(reservations, UNIT_ID, date(2026, 1, 3), date(2026, 1, 3), exclude_order_id=own) == []

    def test_non_blocking_statuses_are_ignored(self):
        reservations = [
            reservation(status="draft"),
            reservation(status="cancelled"),
            reservation(status="void"),
        ]

        assert find_conflicts(reservations, UNIT_ID, date(2026, 1, 3), date(2026, 1, 3)) == []

    def test_other_units_are_ignored(self):
        reservations = [reservation(unit_id=OTHER_UNIT_ID)]

        assert find_conflicts(reservations, UNIT_ID, date(2026, 1, 3), date(2026, 1, 3)) == []

    def test_each_order_reported_once(self):
        order_id = uuid.uuid4()
        reservations = [reservation(order_id=order_id), reservation(order_id=order_id)]

        conflicts = find_conflicts(reservations, UNIT_ID, date(2026, 1, 1), date(2026, 1, 5))

        assert len(conflicts) == 1
        assert conflicts[0].order_id == order_id


# ============================================================
# Queries
# ============================================================


class TestCheckAvailability:

    async def test_available_without_bookings(self, service, mock_db):
        mock_db.execute.return_value = result_with_rows([])

        result = await service.check_availability(mock_db, UNIT_ID, date(2026, 1, 1), date(2026, 1, 2))

        assert result.available is True
        assert result.conflicts == []

    async def test_overlapping_booking(self, service, mock_db):
        row = reservation_row(status="awaiting_customer_approval")
        mock_db.execute.return_value = result_with_rows([row])

        result = await service.check_availability(mock_db, UNIT_ID, date(2026, 1, 1), date(2026, 1, 3))

        assert result.available is False
        assert result.conflicts[0].order_id == row.order_id

    async def test_lookup_failure_is_unavailable(self, service, mock_db):
        mock_db.execute.side_effect = OperationalError("SELECT", {}, Exception("connection lost"))

        result = await service.check_availability(mock_db, UNIT_ID, date(2026, 1, 1), date(2026, 1, 3))

        assert result.available is False
        assert result.error is not None


class TestCheckMany:

    async def test_units_checked_independently(self, service, mock_db):
        mock_db.execute.side_effect = [
            result_with_rows([SimpleNamespace(id=UNIT_ID, name="Combo Slide"), SimpleNamespace(id=OTHER_UNIT_ID, name="Castle")]),
            result_with_rows([reservation_row()]),
            result_with_rows([]),
        ]

        result = await service.check_many(
            mock_db, [UNIT_ID, OTHER_UNIT_ID, UNIT_ID], date(2026, 1, 3), date(2026, 1, 3)
        )

        assert [u.unit_id for u in result.units] == [UNIT_ID, OTHER_UNIT_ID]
        assert result.all_available is False
        assert [u.unit_name for u in result.unavailable_units] == ["Combo Slide"]

    async def test_empty_request(self, service, mock_db):
        result = await service.check_many(mock_db, [], date(2026, 1, 3), date(2026, 1, 3))

        assert result.all_available is True
        mock_db.execute.assert_not_awaited()


class TestUnavailableDates:

    async def test_days_are_clipped_to_range(self, service, mock_db):
        row = reservation_row(start=date(2026, 1, 2), end=date(2026, 1, 6))
        mock_db.execute.return_value = result_with_rows([row])

        days = await service.get_unavailable_dates(mock_db, UNIT_ID, date(2026, 1, 5), date(2026, 1, 10))

        assert [d.date for d in days] == [date(2026, 1, 5), date(2026, 1, 6)]
        assert days[0].order_ids == [row.order_id]

    async def test_lookup_failure_raises(self, service, mock_db):
        mock_db.execute.side_effect = OperationalError("SELECT", {}, Exception("connection lost"))

        with pytest.raises(PersistenceError):
            await service.get_unavailable_dates(mock_db, UNIT_ID, date(2026, 1, 5), date(2026, 1, 10))


class TestRecheckForWrite:

    async def test_locks_units_before_reading_bookings(self, service, mock_db):
        mock_db.execute.side_effect = [
            result_with_rows([SimpleNamespace(id=UNIT_ID, name="Combo Slide")]),
            result_with_rows([reservation_row()]),
        ]

        result = await service.recheck_for_write(mock_db, [UNIT_ID], date(2026, 1, 3), date(2026, 1, 3))

        lock_query = mock_db.execute.await_args_list[0].args[0]
        assert lock_query._for_update_arg is not None
        assert result.all_available is False
        assert result.units[0].unit_name == "Combo Slide"

    async def test_errors_propagate(self, service, mock_db):
        mock_db.execute.side_effect = OperationalError("SELECT", {}, Exception("deadlock"))

        with pytest.raises(OperationalError):
            await service.recheck_for_write(mock_db, [UNIT_ID], date(2026, 1, 3), date(2026, 1, 3))
