"""
Service Layer for order status changes
Project: Rental Order Engine

Applies a transition accepted by the state machine. Entering a status
that holds inventory re-checks availability under lock first.
"""

import logging
import uuid
from typing import Optional

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload
from sqlalchemy.orm.exc import StaleDataError

from rental_engine.core.exceptions import (
    AppException,
    AuthorizationError,
    AvailabilityConflictError,
    BusinessValidationError,
    ConflictError,
    NotFoundError,
    PersistenceError,
)
from rental_engine.models import Order
from rental_engine.schemas.order import BLOCKING_STATUSES, ChangeType, OrderStatus
from rental_engine.services.availability_service import AvailabilityService
from rental_engine.services.changelog_service import ChangelogService
from rental_engine.services.order_state_machine import (
    TransitionContext,
    format_status_name,
    validate_transition,
)

logger = logging.getLogger(__name__)


class OrderStatusService:
    """Status changes requested outside an edit session."""

    def __init__(
        self,
        availability_service: Optional[AvailabilityService] = None,
        changelog_service: Optional[ChangelogService] = None,
    ) -> None:
        self.availability_service = availability_service or AvailabilityService()
        self.changelog_service = changelog_service or ChangelogService()

    async def _load_order_for_update(self, db: AsyncSession, order_id: uuid.UUID) -> Order:
        result = await db.execute(
            select(Order)
            .where(Order.id == order_id)
            .options(selectinload(Order.items))
            .with_for_update(of=Order)
            .execution_options(populate_existing=True)
        )
        order = result.unique().scalar_one_or_none()
        if order is None:
            raise NotFoundError(f"Order with ID {order_id} not found")
        return order

    @staticmethod
    def needs_availability_check(current: OrderStatus, new_status: OrderStatus) -> bool:
        """True when the change starts holding units or confirms the order."""
        if new_status == OrderStatus.CONFIRMED and current != OrderStatus.CONFIRMED:
            return True
        return new_status in BLOCKING_STATUSES and current not in BLOCKING_STATUSES

    async def change_status(
        self,
        db: AsyncSession,
        order_id: uuid.UUID,
        new_status: OrderStatus,
        actor_id: Optional[uuid.UUID],
    ) -> Order:
        """
        Move an order to a new status.

        Args:
            db: Database session
            order_id: Order to update
            new_status: Requested status
            actor_id: Authenticated user

        Returns:
            Updated order

        Raises:
            AuthorizationError: If no actor is given
            NotFoundError: If the order does not exist
            BusinessValidationError: If the transition is not allowed
            AvailabilityConflictError: If a unit is booked by another order
            ConflictError: If the order was updated concurrently
            PersistenceError: If the write fails
        """
        if actor_id is None:
            raise AuthorizationError("You must be signed in to change an order status")

        try:
            order = await self._load_order_for_update(db, order_id)
            current = OrderStatus(order.status)

            result = validate_transition(
                current,
                new_status,
                TransitionContext(
                    has_payment_method=order.payment_method_ref is not None,
                    amount_due_cents=order.amount_due_cents,
                ),
            )
            if not result.valid:
                logger.warning(
                    "Status change of order %s rejected: %s -> %s (%s)",
                    order_id, current.value, new_status.value, result.reason,
                )
                raise BusinessValidationError(result.reason, error_code="INVALID_STATUS_TRANSITION")

            if current == new_status:
                await db.rollback()
                return order

            if self.needs_availability_check(current, new_status) and order.items:
                check = await self.availability_service.recheck_for_write(
                    db,
                    [item.unit_id for item in order.items],
                    order.event_date,
                    order.event_end_date,
                    exclude_order_id=order.id,
                )
                if not check.all_available:
                    raise AvailabilityConflictError(
                        [unit.unit_name or str(unit.unit_id) for unit in check.unavailable_units]
                    )

            order.status = new_status.value
            self.changelog_service.record(
                db,
                order.id,
                actor_id,
                "status",
                format_status_name(current),
                format_status_name(new_status),
                ChangeType.EDIT,
            )
            await db.commit()
            await db.refresh(order)

        except AppException:
            await db.rollback()
            raise
        except StaleDataError as e:
            await db.rollback()
            raise ConflictError("The order was changed by someone else. Reload it and try again") from e
        except SQLAlchemyError as e:
            await db.rollback()
            logger.error("Error changing status of order %s: %s", order_id, e)
            raise PersistenceError("Could not change the order status") from e

        logger.info(
            "Order %s status changed: %s -> %s by %s",
            order_id, current.value, new_status.value, actor_id,
        )
        return order
