"""
Order status state machine
Project: Rental Order Engine

Table-driven validation of status changes. Advisory only: nothing here
touches the database, OrderStatusService applies the result.
"""

from dataclasses import dataclass
from typing import Callable, Optional

from rental_engine.schemas.order import VALID_TRANSITIONS, OrderStatus


@dataclass(frozen=True)
class TransitionContext:
    """Order facts the guards look at."""
    has_payment_method: bool = False
    amount_due_cents: int = 0


@dataclass(frozen=True)
class TransitionResult:
    valid: bool
    reason: Optional[str] = None


def _can_confirm(context: TransitionContext) -> Optional[str]:
    if context.has_payment_method or context.amount_due_cents <= 0:
        return None
    return "A payment method is required to confirm an order with an amount due"


# Guards run when entering the key status; they return a rejection reason or None
GUARDS: dict[OrderStatus, Callable[[TransitionContext], Optional[str]]] = {
    OrderStatus.CONFIRMED: _can_confirm,
}


def check_guard(requested: OrderStatus, context: TransitionContext) -> Optional[str]:
    """Run the guard of the requested status, return the rejection reason or None."""
    guard = GUARDS.get(requested)
    if guard is None:
        return None
    return guard(context)


def _parse_status(value) -> Optional[OrderStatus]:
    try:
        return OrderStatus(value)
    except ValueError:
        return None


def format_status_name(status) -> str:
    """Human readable status, e.g. 'awaiting_customer_approval' -> 'Awaiting Customer Approval'."""
    value = status.value if isinstance(status, OrderStatus) else str(status)
    return " ".join(word.capitalize() for word in value.split("_"))


def get_available_statuses(current) -> list[OrderStatus]:
    """Statuses reachable from current in one step (empty for unknown or terminal states)."""
    status = _parse_status(current)
    if status is None:
        return []
    return list(VALID_TRANSITIONS[status])


def validate_transition(
    current,
    requested,
    context: Optional[TransitionContext] = None,
) -> TransitionResult:
    """
    Check whether an order may move from current to requested.

    Args:
        current: Current status (OrderStatus or its value)
        requested: Requested status (OrderStatus or its value)
        context: Payment facts used by the guards

    Returns:
        TransitionResult with the rejection reason when invalid
    """
    context = context or TransitionContext()
    current_status = _parse_status(current)
    requested_status = _parse_status(requested)

    if current_status is None:
        return TransitionResult(False, f"Unknown status '{current}'")
    if requested_status is None:
        return TransitionResult(False, f"Unknown status '{requested}'")

    if current_status == requested_status:
        return TransitionResult(True)

    allowed = VALID_TRANSITIONS[current_status]
    if requested_status not in allowed:
        if allowed:
            targets = ", ".join(format_status_name(s) for s in allowed)
        else:
            targets = "none"
        return TransitionResult(
            False,
            f"Cannot change status from '{format_status_name(current_status)}' "
            f"to '{format_status_name(requested_status)}'. Allowed: {targets}",
        )

    reason = check_guard(requested_status, context)
    if reason:
        return TransitionResult(False, reason)

    return TransitionResult(True)
