"""
Service Layer for order edits
Project: Rental Order Engine

Reconciles an admin edit session with the persisted order.

build_change_plan() is a pure diff of the draft against its baseline: it
decides which rows to write, which changelog entries to record, whether
the stored payment method must be cleared and which status the order
ends in. OrderEditService.save_changes() checks the preconditions and
applies the plan in a single transaction.
"""

import datetime
import logging
import uuid
from dataclasses import dataclass, field
from decimal import Decimal
from enum import Enum
from typing import Any, Optional

from sqlalchemy import delete, func, select
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
    DuplicateError,
    NotFoundError,
    PersistenceError,
)
from rental_engine.models import (
    Address,
    CustomFeeTemplate,
    DiscountTemplate,
    Order,
    OrderCustomFee,
    OrderDiscount,
    OrderItem,
)
from rental_engine.models.order import WAIVABLE_FEES
from rental_engine.schemas.availability import AvailabilityResult
from rental_engine.schemas.order import (
    TERMINAL_STATUSES,
    AddressDraft,
    ChangeEntry,
    ChangeType,
    DraftCustomFee,
    DraftDiscount,
    DraftItem,
    OrderDraft,
    OrderSnapshot,
    OrderStatus,
    PaymentStatus,
    SaveChangesOptions,
    SaveOutcome,
)
from rental_engine.schemas.pricing import PriceBreakdown
from rental_engine.services.availability_service import AvailabilityService
from rental_engine.services.changelog_service import ChangelogService
from rental_engine.services.notification_service import Contact, OrderNotificationService
from rental_engine.services.order_state_machine import TransitionContext, check_guard, format_status_name

logger = logging.getLogger(__name__)


# Changelog field name -> Order column, in the order entries are written
PRICE_FIELDS = {
    "subtotal": "subtotal_cents",
    "generator_fee": "generator_fee_cents",
    "travel_fee": "travel_fee_cents",
    "surface_fee": "surface_fee_cents",
    "same_day_pickup_fee": "same_day_pickup_fee_cents",
    "tax": "tax_cents",
    "deposit_due": "deposit_due_cents",
    "balance_due": "balance_due_cents",
    "total": "total_cents",
}

TRAVEL_DETAIL_FIELDS = (
    "travel_total_miles",
    "travel_base_radius_miles",
    "travel_chargeable_miles",
    "travel_per_mile_cents",
    "travel_is_flat_fee",
)

EVENT_FIELDS = (
    "location_type",
    "surface",
    "generator_qty",
    "start_window",
    "end_window",
    "event_date",
    "event_end_date",
    "pickup_preference",
)


# -------------------------------------------------------------------
# Formatting helpers
# -------------------------------------------------------------------

def format_cents(cents: Optional[int]) -> str:
    if cents is None:
        return ""
    return f"${Decimal(cents) / 100:,.2f}"


def _as_text(value: Any) -> Optional[str]:
    if value is None:
        return None
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, datetime.date):
        return value.isoformat()
    return str(value)


def _date_only(value):
    if isinstance(value, datetime.datetime):
        return value.date()
    return value


def _item_label(item) -> str:
    mode = item.mode.value if isinstance(item.mode, Enum) else item.mode
    return f"{item.unit_name} ({mode}) x{item.qty}"


def _discount_label(discount) -> str:
    if discount.percentage:
        return f"{discount.name} ({discount.percentage.normalize():f}%)"
    return f"{discount.name} ({format_cents(discount.amount_cents)})"


def _fee_label(fee) -> str:
    return f"{fee.name} ({format_cents(fee.amount_cents)})"


def _waiver_text(waived: bool, reason: Optional[str]) -> str:
    if not waived:
        return "Charged"
    return f"Waived: {reason}" if reason else "Waived"


# -------------------------------------------------------------------
# Change plan
# -------------------------------------------------------------------

@dataclass
class ChangePlan:
    """
    Everything a save will write.

    entries holds the tracked changes; untracked changes (admin message,
    waiver reason text) only show up in field_updates.
    """
    field_updates: dict[str, Any] = field(default_factory=dict)
    address: Optional[AddressDraft] = None
    items_to_add: list[DraftItem] = field(default_factory=list)
    item_ids_to_remove: list[uuid.UUID] = field(default_factory=list)
    discounts_to_add: list[DraftDiscount] = field(default_factory=list)
    discount_ids_to_remove: list[uuid.UUID] = field(default_factory=list)
    fees_to_add: list[DraftCustomFee] = field(default_factory=list)
    fee_ids_to_remove: list[uuid.UUID] = field(default_factory=list)
    entries: list[ChangeEntry] = field(default_factory=list)
    has_untracked_changes: bool = False
    dates_changed: bool = False
    payment_cleared: bool = False
    new_status: Optional[OrderStatus] = None
    approval_required: bool = False

    @property
    def has_tracked_changes(self) -> bool:
        return bool(self.entries)

    @property
    def is_empty(self) -> bool:
        return not self.has_tracked_changes and not self.has_untracked_changes

    @property
    def items_changed(self) -> bool:
        return bool(self.items_to_add or self.item_ids_to_remove)

    def log(
        self,
        field_name: str,
        old_value: Any,
        new_value: Any,
        change_type: ChangeType = ChangeType.EDIT,
    ) -> None:
        self.entries.append(
            ChangeEntry(
                field_name=field_name,
                old_value=_as_text(old_value),
                new_value=_as_text(new_value),
                change_type=change_type,
            )
        )


def validate_draft(draft: OrderDraft, pricing: PriceBreakdown) -> None:
    """
    Check the draft before anything is written.

    Raises:
        BusinessValidationError: If the draft breaks a business rule
    """
    if draft.event_end_date is not None and draft.event_end_date < draft.event_date:
        raise BusinessValidationError("Event end date cannot be before the start date")

    for item in draft.active_items:
        if item.qty <= 0:
            raise BusinessValidationError(f"Quantity of '{item.unit_name}' must be greater than zero")

    for discount in draft.discounts:
        if discount.amount_cents and discount.percentage:
            raise BusinessValidationError(
                f"Discount '{discount.name}' cannot have both an amount and a percentage"
            )
        if discount.amount_cents < 0:
            raise BusinessValidationError(f"Discount '{discount.name}' cannot be negative")
        if not Decimal("0") <= discount.percentage <= Decimal("100"):
            raise BusinessValidationError(f"Discount '{discount.name}' percentage must be between 0 and 100")
        if not discount.name.strip():
            raise BusinessValidationError("Discount name is required")

    for fee in draft.custom_fees:
        if fee.amount_cents < 0:
            raise BusinessValidationError(f"Fee '{fee.name}' cannot be negative")
        if not fee.name.strip():
            raise BusinessValidationError("Fee name is required")

    if draft.custom_deposit_cents is not None:
        if not 0 <= draft.custom_deposit_cents <= pricing.total_cents:
            raise BusinessValidationError(
                f"Custom deposit must be between {format_cents(0)} and {format_cents(pricing.total_cents)}"
            )


def _diff_event_fields(plan: ChangePlan, baseline: OrderSnapshot, draft: OrderDraft, pricing: PriceBreakdown) -> None:
    new_values = {
        "location_type": draft.location_type,
        "surface": draft.surface,
        "generator_qty": draft.generator_qty,
        "start_window": draft.start_window,
        "end_window": draft.end_window,
        "event_date": draft.event_date,
        "event_end_date": draft.effective_end_date,
        "pickup_preference": pricing.pickup_preference,
    }
    old_values = {
        "location_type": baseline.location_type,
        "surface": baseline.surface,
        "generator_qty": baseline.generator_qty,
        "start_window": baseline.start_window,
        "end_window": baseline.end_window,
        "event_date": _date_only(baseline.event_date),
        "event_end_date": _date_only(baseline.effective_end_date),
        "pickup_preference": baseline.pickup_preference,
    }
    for name in EVENT_FIELDS:
        old, new = old_values[name], new_values[name]
        if (old or None) == (new or None) or _as_text(old) == _as_text(new):
            continue
        plan.field_updates[name] = new.value if isinstance(new, Enum) else new
        plan.log(name, old, new)
        if name in ("event_date", "event_end_date"):
            plan.dates_changed = True


def _diff_address(plan: ChangePlan, baseline: OrderSnapshot, draft: OrderDraft) -> None:
    old, new = baseline.address, draft.address
    if old.same_location(new) and (old.line2 or None) == (new.line2 or None):
        if (old.lat, old.lng) != (new.lat, new.lng):
            plan.address = new
            plan.has_untracked_changes = True
        return
    plan.address = new
    plan.log("address", old.one_line(), new.one_line())


def _diff_pricing(plan: ChangePlan, baseline: OrderSnapshot, pricing: PriceBreakdown) -> None:
    for name, column in PRICE_FIELDS.items():
        new = getattr(pricing, column)
        plan.field_updates[column] = new
        old = getattr(baseline, column)
        if old != new:
            plan.log(name, format_cents(old), format_cents(new))
    for column in TRAVEL_DETAIL_FIELDS:
        plan.field_updates[column] = getattr(pricing, column)


def _diff_waivers(plan: ChangePlan, baseline: OrderSnapshot, draft: OrderDraft) -> None:
    for fee in WAIVABLE_FEES:
        flag, reason = f"{fee}_waived", f"{fee}_waive_reason"
        old_flag, new_flag = getattr(baseline.waivers, flag), getattr(draft.waivers, flag)
        old_reason, new_reason = getattr(baseline.waivers, reason), getattr(draft.waivers, reason)
        if old_flag != new_flag:
            plan.field_updates[flag] = new_flag
            plan.field_updates[reason] = new_reason
            plan.log(flag, _waiver_text(old_flag, old_reason), _waiver_text(new_flag, new_reason))
        elif (old_reason or None) != (new_reason or None):
            # Reason text alone is saved silently
            plan.field_updates[reason] = new_reason
            plan.has_untracked_changes = True


def _diff_items(plan: ChangePlan, baseline: OrderSnapshot, draft: OrderDraft) -> None:
    persisted = {item.id: item for item in baseline.items}
    for item in draft.items:
        if item.is_new and item.is_deleted:
            continue
        if item.is_new:
            plan.items_to_add.append(item)
            plan.log("order_items", None, _item_label(item), ChangeType.ADD)
        elif item.is_deleted and item.id in persisted:
            plan.item_ids_to_remove.append(item.id)
            plan.log("order_items", _item_label(persisted[item.id]), None, ChangeType.REMOVE)


def _diff_adjustments(plan: ChangePlan, baseline: OrderSnapshot, draft: OrderDraft) -> None:
    kept = {d.id for d in draft.discounts if not d.is_new and d.id is not None}
    for discount in draft.discounts:
        if discount.is_new or discount.id is None:
            plan.discounts_to_add.append(discount)
            plan.log("discounts", None, _discount_label(discount), ChangeType.ADD)
    for discount in baseline.discounts:
        if discount.id not in kept:
            plan.discount_ids_to_remove.append(discount.id)
            plan.log("discounts", _discount_label(discount), None, ChangeType.REMOVE)

    kept = {f.id for f in draft.custom_fees if not f.is_new and f.id is not None}
    for fee in draft.custom_fees:
        if fee.is_new or fee.id is None:
            plan.fees_to_add.append(fee)
            plan.log("custom_fees", None, _fee_label(fee), ChangeType.ADD)
    for fee in baseline.custom_fees:
        if fee.id not in kept:
            plan.fee_ids_to_remove.append(fee.id)
            plan.log("custom_fees", _fee_label(fee), None, ChangeType.REMOVE)


def payment_invalidation_reason(
    baseline: OrderSnapshot,
    pricing: PriceBreakdown,
    items_changed: bool,
) -> Optional[str]:
    """
    Why the stored payment method can no longer be charged, or None.

    Applies only when a method is on file. The deposit and total checks
    only apply once money has been captured on it.
    """
    if baseline.payment_method_ref is None:
        return None
    if items_changed:
        return "Items changed"
    captured = baseline.amount_captured_cents
    if captured <= 0 and baseline.payment_status == PaymentStatus.UNPAID:
        return None
    if pricing.deposit_due_cents > captured:
        return "Deposit due exceeds the amount captured"
    paid_in_full = baseline.total_cents > 0 and captured >= baseline.total_cents
    if paid_in_full and pricing.total_cents > captured:
        return "Total increased after payment in full"
    return None


def build_change_plan(
    baseline: OrderSnapshot,
    draft: OrderDraft,
    pricing: PriceBreakdown,
    options: Optional[SaveChangesOptions] = None,
) -> ChangePlan:
    """
    Diff the draft against its baseline.

    Pure: reads the three inputs and returns the plan, no I/O.

    Args:
        baseline: Persisted order the draft was loaded from
        draft: Edited draft
        pricing: Price of the draft
        options: Approval and notification choices

    Returns:
        ChangePlan, empty when nothing needs to be written
    """
    options = options or SaveChangesOptions()
    plan = ChangePlan()

    _diff_address(plan, baseline, draft)
    _diff_event_fields(plan, baseline, draft, pricing)
    _diff_pricing(plan, baseline, pricing)
    _diff_waivers(plan, baseline, draft)
    _diff_items(plan, baseline, draft)
    _diff_adjustments(plan, baseline, draft)

    if (baseline.custom_deposit_cents or None) != (draft.custom_deposit_cents or None):
        plan.field_updates["custom_deposit_cents"] = draft.custom_deposit_cents
        plan.log("custom_deposit", format_cents(baseline.custom_deposit_cents), format_cents(draft.custom_deposit_cents))

    new_message = draft.admin_message.strip()
    if new_message != (baseline.admin_message or "").strip():
        plan.field_updates["admin_message"] = new_message or None
        plan.has_untracked_changes = True

    reason = payment_invalidation_reason(baseline, pricing, plan.items_changed)
    if reason is not None:
        plan.payment_cleared = True
        plan.field_updates["payment_method_ref"] = None
        plan.field_updates["payment_status"] = PaymentStatus.UNPAID.value
        plan.log("payment_method", "Card on file", f"Removed: {reason}", ChangeType.REMOVE)

    if plan.has_tracked_changes:
        if options.admin_override_approval:
            target = OrderStatus.CONFIRMED
        else:
            target = OrderStatus.AWAITING_CUSTOMER_APPROVAL
            plan.approval_required = True
        if target != baseline.status:
            plan.new_status = target
            plan.field_updates["status"] = target.value
            plan.log("status", format_status_name(baseline.status), format_status_name(target))

    return plan


# -------------------------------------------------------------------
# Service
# -------------------------------------------------------------------

class OrderEditService:
    """
    Saves admin edit sessions.

    Collaborators are injected so tests can replace them.
    """

    def __init__(
        self,
        availability_service: Optional[AvailabilityService] = None,
        changelog_service: Optional[ChangelogService] = None,
        notification_service: Optional[OrderNotificationService] = None,
    ) -> None:
        self.availability_service = availability_service or AvailabilityService()
        self.changelog_service = changelog_service or ChangelogService()
        self.notification_service = notification_service or OrderNotificationService()

    async def get_by_id(self, db: AsyncSession, order_id: uuid.UUID) -> Order:
        """
        Load an order with its items, discounts and fees (no lock).

        Raises:
            NotFoundError: If the order does not exist
        """
        result = await db.execute(
            select(Order)
            .where(Order.id == order_id)
            .options(
                selectinload(Order.items),
                selectinload(Order.discounts),
                selectinload(Order.custom_fees),
            )
        )
        order = result.unique().scalar_one_or_none()
        if order is None:
            raise NotFoundError(f"Order with ID {order_id} not found")
        return order

    async def load_snapshot(self, db: AsyncSession, order_id: uuid.UUID) -> OrderSnapshot:
        """Baseline an edit session starts from."""
        return OrderSnapshot.from_order(await self.get_by_id(db, order_id))

    async def _load_order_for_update(self, db: AsyncSession, order_id: uuid.UUID) -> Order:
        """
        Load the order with its collections, locking its row.

        Raises:
            NotFoundError: If the order does not exist
        """
        result = await db.execute(
            select(Order)
            .where(Order.id == order_id)
            .options(
                selectinload(Order.items),
                selectinload(Order.discounts),
                selectinload(Order.custom_fees),
            )
            .with_for_update(of=Order)
            .execution_options(populate_existing=True)
        )
        order = result.unique().scalar_one_or_none()
        if order is None:
            raise NotFoundError(f"Order with ID {order_id} not found")
        return order

    async def _ensure_template_names_free(self, db: AsyncSession, plan: ChangePlan) -> None:
        for discount in plan.discounts_to_add:
            if discount.save_as_template:
                await self._check_template_name(db, DiscountTemplate, discount.name, "Discount")
        for fee in plan.fees_to_add:
            if fee.save_as_template:
                await self._check_template_name(db, CustomFeeTemplate, fee.name, "Fee")

    async def _check_template_name(self, db: AsyncSession, model, name: str, label: str) -> None:
        result = await db.execute(
            select(func.count()).select_from(model).where(func.lower(model.name) == name.strip().lower())
        )
        if result.scalar_one() > 0:
            raise DuplicateError(f"{label} template '{name}' already exists")

    async def _write_address(self, db: AsyncSession, order: Order, address: AddressDraft) -> None:
        row = order.address
        if row is None:
            row = Address()
            db.add(row)
            order.address = row
        row.line1 = address.line1
        row.line2 = address.line2
        row.city = address.city
        row.state = address.state
        row.zip = address.zip
        row.lat = Decimal(str(address.lat)) if address.lat is not None else None
        row.lng = Decimal(str(address.lng)) if address.lng is not None else None
        await db.flush()

    async def _write_rows(self, db: AsyncSession, order: Order, plan: ChangePlan) -> None:
        if plan.item_ids_to_remove:
            await db.execute(
                delete(OrderItem).where(
                    OrderItem.order_id == order.id,
                    OrderItem.id.in_(plan.item_ids_to_remove),
                )
            )
        for item in plan.items_to_add:
            db.add(
                OrderItem(
                    order_id=order.id,
                    unit_id=item.unit_id,
                    qty=item.qty,
                    mode=item.mode.value,
                    unit_price_cents=item.unit_price_cents,
                )
            )

        if plan.discount_ids_to_remove:
            await db.execute(
                delete(OrderDiscount).where(
                    OrderDiscount.order_id == order.id,
                    OrderDiscount.id.in_(plan.discount_ids_to_remove),
                )
            )
        for discount in plan.discounts_to_add:
            db.add(
                OrderDiscount(
                    order_id=order.id,
                    name=discount.name,
                    amount_cents=discount.amount_cents,
                    percentage=discount.percentage,
                )
            )
            if discount.save_as_template:
                db.add(
                    DiscountTemplate(
                        name=discount.name.strip(),
                        amount_cents=discount.amount_cents,
                        percentage=discount.percentage,
                    )
                )

        if plan.fee_ids_to_remove:
            await db.execute(
                delete(OrderCustomFee).where(
                    OrderCustomFee.order_id == order.id,
                    OrderCustomFee.id.in_(plan.fee_ids_to_remove),
                )
            )
        for fee in plan.fees_to_add:
            db.add(OrderCustomFee(order_id=order.id, name=fee.name, amount_cents=fee.amount_cents))
            if fee.save_as_template:
                db.add(CustomFeeTemplate(name=fee.name.strip(), amount_cents=fee.amount_cents))

    async def _recheck_availability(
        self,
        db: AsyncSession,
        order: Order,
        draft: OrderDraft,
        plan: ChangePlan,
    ) -> None:
        if plan.dates_changed or plan.new_status == OrderStatus.CONFIRMED:
            unit_ids = [item.unit_id for item in draft.active_items]
        else:
            unit_ids = [item.unit_id for item in plan.items_to_add]
        if not unit_ids:
            return

        result = await self.availability_service.recheck_for_write(
            db, unit_ids, draft.event_date, draft.effective_end_date, exclude_order_id=order.id
        )
        if not result.all_available:
            names = [unit.unit_name or str(unit.unit_id) for unit in result.unavailable_units]
            raise AvailabilityConflictError(names)

    async def save_changes(
        self,
        db: AsyncSession,
        order_id: uuid.UUID,
        draft: OrderDraft,
        pricing: PriceBreakdown,
        availability: AvailabilityResult,
        actor_id: Optional[uuid.UUID],
        options: Optional[SaveChangesOptions] = None,
    ) -> SaveOutcome:
        """
        Persist an edit session.

        Args:
            db: Database session
            order_id: Edited order
            draft: Edited draft
            pricing: Last price computed for the draft
            availability: Last availability result for the draft
            actor_id: Authenticated user saving the changes
            options: Approval and notification choices

        Returns:
            SaveOutcome describing what was written

        Raises:
            AvailabilityConflictError: If a unit is booked elsewhere
            AuthorizationError: If no actor is given
            BusinessValidationError: If the draft is invalid or the order is closed
            ConflictError: If the order changed since the draft was loaded
            DuplicateError: If a template name is already taken
            NotFoundError: If the order does not exist
            PersistenceError: If a write fails (everything is rolled back)
        """
        options = options or SaveChangesOptions()

        if not availability.all_available:
            names = [unit.unit_name or str(unit.unit_id) for unit in availability.unavailable_units]
            logger.warning("Save of order %s rejected, units unavailable: %s", order_id, names)
            raise AvailabilityConflictError(names)

        if actor_id is None:
            raise AuthorizationError("You must be signed in to save order changes")

        validate_draft(draft, pricing)

        try:
            order = await self._load_order_for_update(db, order_id)

            if OrderStatus(order.status) in TERMINAL_STATUSES:
                raise BusinessValidationError(
                    f"Order is {format_status_name(order.status)} and can no longer be edited"
                )
            if order.version != draft.version:
                raise ConflictError(
                    "The order was changed by someone else. Reload it and try again",
                    error_code="STALE_ORDER_VERSION",
                    extra={"current_version": order.version, "draft_version": draft.version},
                )

            baseline = OrderSnapshot.from_order(order)
            plan = build_change_plan(baseline, draft, pricing, options)

            if plan.is_empty:
                await db.rollback()
                logger.info("Order %s saved with no changes", order_id)
                return SaveOutcome(order_id=order_id, status=baseline.status)

            if plan.new_status == OrderStatus.CONFIRMED:
                payment_on_file = baseline.payment_method_ref is not None and not plan.payment_cleared
                reason = check_guard(
                    OrderStatus.CONFIRMED,
                    TransitionContext(
                        has_payment_method=payment_on_file,
                        amount_due_cents=max(pricing.total_cents - baseline.amount_paid_cents, 0),
                    ),
                )
                if reason:
                    raise BusinessValidationError(reason)

            await self._ensure_template_names_free(db, plan)

            if plan.address is not None:
                await self._write_address(db, order, plan.address)

            for name, value in plan.field_updates.items():
                setattr(order, name, value)
            order.recompute_total()

            await self._write_rows(db, order, plan)
            await self._recheck_availability(db, order, draft, plan)

            self.changelog_service.record_entries(db, order.id, actor_id, plan.entries)

            await db.commit()

        except AppException:
            await db.rollback()
            raise
        except StaleDataError as e:
            await db.rollback()
            logger.warning("Concurrent update of order %s: %s", order_id, e)
            raise ConflictError(
                "The order was changed by someone else. Reload it and try again",
                error_code="STALE_ORDER_VERSION",
            ) from e
        except SQLAlchemyError as e:
            await db.rollback()
            logger.error("Error saving order %s: %s", order_id, e)
            raise PersistenceError("Could not save the order changes. Reload the order and try again") from e

        status = plan.new_status or baseline.status
        logger.info(
            "Order %s saved by %s: %d changes, status %s%s",
            order_id,
            actor_id,
            len(plan.entries),
            status.value,
            ", payment method cleared" if plan.payment_cleared else "",
        )

        notification_sent = False
        if plan.approval_required and options.notify_customer:
            notification_sent = await self.notification_service.send_change_review_request(
                self._contact_for(order), order_id, draft.event_date
            )

        return SaveOutcome(
            order_id=order_id,
            status=status,
            status_changed=plan.new_status is not None,
            changes=plan.entries,
            payment_cleared=plan.payment_cleared,
            approval_required=plan.approval_required,
            notification_sent=notification_sent,
            persisted=True,
        )

    @staticmethod
    def _contact_for(order: Order) -> Optional[Contact]:
        customer = order.customer
        if customer is None:
            return None
        return Contact(name=customer.full_name, email=customer.email, phone=customer.phone)
