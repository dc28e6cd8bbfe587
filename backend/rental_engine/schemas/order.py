"""
Pydantic schemas for rental orders
Project: Rental Order Engine

Defines the order enums, the status transition table, the edit-session
draft and the read models returned by the API.
"""

import datetime
import uuid
from decimal import Decimal
from enum import Enum
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, computed_field


# -------------------------------------------------------------------
# Enums
# -------------------------------------------------------------------

class OrderStatus(str, Enum):
    """Lifecycle states of an order."""
    DRAFT = "draft"
    PENDING_REVIEW = "pending_review"
    AWAITING_CUSTOMER_APPROVAL = "awaiting_customer_approval"
    CONFIRMED = "confirmed"
    SETUP_IN_PROGRESS = "setup_in_progress"
    ON_THE_WAY = "on_the_way"
    SETUP_COMPLETED = "setup_completed"
    PICKUP_IN_PROGRESS = "pickup_in_progress"
    ON_THE_WAY_BACK = "on_the_way_back"
    COMPLETED = "completed"
    CANCELLED = "cancelled"
    VOID = "void"


class LocationType(str, Enum):
    RESIDENTIAL = "residential"
    COMMERCIAL = "commercial"


class Surface(str, Enum):
    GRASS = "grass"
    CEMENT = "cement"


class PickupPreference(str, Enum):
    SAME_DAY = "same_day"
    NEXT_DAY = "next_day"


class ItemMode(str, Enum):
    DRY = "dry"
    WATER = "water"


class ChangeType(str, Enum):
    """Kind of a changelog entry."""
    ADD = "add"
    REMOVE = "remove"
    EDIT = "edit"


class PaymentStatus(str, Enum):
    UNPAID = "unpaid"
    AUTHORIZED = "authorized"
    DEPOSIT_PAID = "deposit_paid"
    PAID_IN_FULL = "paid_in_full"


# -------------------------------------------------------------------
# Status transition table
# -------------------------------------------------------------------

# Single source of truth for legal status changes, imported by the
# state machine and by the availability checker.
VALID_TRANSITIONS: dict[OrderStatus, list[OrderStatus]] = {
    OrderStatus.DRAFT: [
        OrderStatus.PENDING_REVIEW,
        OrderStatus.CANCELLED,
        OrderStatus.VOID,
    ],
    OrderStatus.PENDING_REVIEW: [
        OrderStatus.AWAITING_CUSTOMER_APPROVAL,
        OrderStatus.CANCELLED,
        OrderStatus.VOID,
    ],
    OrderStatus.AWAITING_CUSTOMER_APPROVAL: [
        OrderStatus.CONFIRMED,
        OrderStatus.PENDING_REVIEW,
        OrderStatus.CANCELLED,
        OrderStatus.VOID,
    ],
    OrderStatus.CONFIRMED: [
        OrderStatus.SETUP_IN_PROGRESS,
        OrderStatus.CANCELLED,
        OrderStatus.VOID,
    ],
    OrderStatus.SETUP_IN_PROGRESS: [
        OrderStatus.ON_THE_WAY,
        OrderStatus.SETUP_COMPLETED,
        OrderStatus.CONFIRMED,
    ],
    OrderStatus.ON_THE_WAY: [OrderStatus.SETUP_COMPLETED, OrderStatus.SETUP_IN_PROGRESS],
    OrderStatus.SETUP_COMPLETED: [OrderStatus.PICKUP_IN_PROGRESS, OrderStatus.ON_THE_WAY],
    OrderStatus.PICKUP_IN_PROGRESS: [OrderStatus.ON_THE_WAY_BACK, OrderStatus.SETUP_COMPLETED],
    OrderStatus.ON_THE_WAY_BACK: [OrderStatus.COMPLETED, OrderStatus.PICKUP_IN_PROGRESS],
    OrderStatus.COMPLETED: [],  # terminal
    OrderStatus.CANCELLED: [],  # terminal
    OrderStatus.VOID: [],  # terminal
}

TERMINAL_STATUSES: frozenset[OrderStatus] = frozenset(
    {OrderStatus.COMPLETED, OrderStatus.CANCELLED, OrderStatus.VOID}
)

# Statuses whose orders hold their units for the event dates
BLOCKING_STATUSES: frozenset[OrderStatus] = frozenset(
    {
        OrderStatus.PENDING_REVIEW,
        OrderStatus.AWAITING_CUSTOMER_APPROVAL,
        OrderStatus.CONFIRMED,
        OrderStatus.SETUP_IN_PROGRESS,
        OrderStatus.ON_THE_WAY,
        OrderStatus.SETUP_COMPLETED,
        OrderStatus.PICKUP_IN_PROGRESS,
        OrderStatus.ON_THE_WAY_BACK,
        OrderStatus.COMPLETED,
    }
)


# -------------------------------------------------------------------
# Edit-session draft
# -------------------------------------------------------------------

class AddressDraft(BaseModel):
    line1: str = ""
    line2: Optional[str] = None
    city: str = ""
    state: str = ""
    zip: str = ""
    lat: Optional[float] = None
    lng: Optional[float] = None

    def one_line(self) -> str:
        return f"{self.line1}, {self.city}, {self.state} {self.zip}"

    def same_location(self, other: "AddressDraft") -> bool:
        """Compare the fields that identify where the event takes place."""
        return (
            self.line1 == other.line1
            and self.city == other.city
            and self.state == other.state
            and self.zip == other.zip
        )


class DraftItem(BaseModel):
    """
    Item staged in an edit session.

    is_new: not persisted yet
    is_deleted: marked for removal
    An item that is both is dropped without trace.
    """
    id: Optional[uuid.UUID] = None
    unit_id: uuid.UUID
    unit_name: str = ""
    qty: int = 1
    mode: ItemMode = ItemMode.DRY
    unit_price_cents: int = Field(..., ge=0)
    is_new: bool = False
    is_deleted: bool = False


class DraftDiscount(BaseModel):
    id: Optional[uuid.UUID] = None
    name: str
    amount_cents: int = 0
    percentage: Decimal = Decimal("0")
    is_new: bool = False
    save_as_template: bool = False


class DraftCustomFee(BaseModel):
    id: Optional[uuid.UUID] = None
    name: str
    amount_cents: int = 0
    is_new: bool = False
    save_as_template: bool = False


class FeeWaivers(BaseModel):
    """Waiver flags and reasons for the waivable fee lines."""
    tax_waived: bool = False
    tax_waive_reason: Optional[str] = None
    travel_fee_waived: bool = False
    travel_fee_waive_reason: Optional[str] = None
    same_day_pickup_fee_waived: bool = False
    same_day_pickup_fee_waive_reason: Optional[str] = None
    surface_fee_waived: bool = False
    surface_fee_waive_reason: Optional[str] = None
    generator_fee_waived: bool = False
    generator_fee_waive_reason: Optional[str] = None


class OrderDraft(BaseModel):
    """
    Editable copy of an order held by an admin edit session.

    Nothing here is persisted until OrderEditService.save_changes().
    version is the order version the draft was loaded from.
    """
    version: int
    location_type: LocationType
    surface: Surface
    generator_qty: int = Field(default=0, ge=0)
    start_window: Optional[str] = None
    end_window: Optional[str] = None
    event_date: datetime.date
    event_end_date: Optional[datetime.date] = None
    pickup_preference: PickupPreference = PickupPreference.NEXT_DAY
    address: AddressDraft = Field(default_factory=AddressDraft)
    items: list[DraftItem] = Field(default_factory=list)
    discounts: list[DraftDiscount] = Field(default_factory=list)
    custom_fees: list[DraftCustomFee] = Field(default_factory=list)
    custom_deposit_cents: Optional[int] = None
    waivers: FeeWaivers = Field(default_factory=FeeWaivers)
    admin_message: str = ""

    @property
    def effective_end_date(self) -> datetime.date:
        return self.event_end_date or self.event_date

    @property
    def active_items(self) -> list[DraftItem]:
        return [item for item in self.items if not item.is_deleted]


# -------------------------------------------------------------------
# Snapshot of the persisted order (baseline of a diff)
# -------------------------------------------------------------------

class OrderItemSnapshot(BaseModel):
    id: uuid.UUID
    unit_id: uuid.UUID
    unit_name: str = ""
    qty: int
    mode: ItemMode
    unit_price_cents: int


class OrderDiscountSnapshot(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    name: str
    amount_cents: int = 0
    percentage: Decimal = Decimal("0")


class OrderCustomFeeSnapshot(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    name: str
    amount_cents: int = 0


class OrderSnapshot(BaseModel):
    """
    Immutable view of the persisted order used as the baseline of a diff.

    Built from the ORM object with from_order(); tests build it directly.
    """
    id: uuid.UUID
    version: int
    status: OrderStatus
    location_type: LocationType
    surface: Surface
    generator_qty: int = 0
    start_window: Optional[str] = None
    end_window: Optional[str] = None
    event_date: datetime.date
    event_end_date: Optional[datetime.date] = None
    pickup_preference: Optional[PickupPreference] = None
    address: AddressDraft = Field(default_factory=AddressDraft)
    items: list[OrderItemSnapshot] = Field(default_factory=list)
    discounts: list[OrderDiscountSnapshot] = Field(default_factory=list)
    custom_fees: list[OrderCustomFeeSnapshot] = Field(default_factory=list)

    subtotal_cents: int = 0
    travel_fee_cents: int = 0
    surface_fee_cents: int = 0
    same_day_pickup_fee_cents: int = 0
    generator_fee_cents: int = 0
    tax_cents: int = 0
    total_cents: int = 0
    travel_total_miles: Decimal = Decimal("0")
    deposit_due_cents: int = 0
    deposit_paid_cents: int = 0
    balance_due_cents: int = 0
    balance_paid_cents: int = 0
    custom_deposit_cents: Optional[int] = None

    waivers: FeeWaivers = Field(default_factory=FeeWaivers)

    payment_method_ref: Optional[str] = None
    payment_status: PaymentStatus = PaymentStatus.UNPAID
    amount_captured_cents: int = 0
    admin_message: Optional[str] = None

    @classmethod
    def from_order(cls, order) -> "OrderSnapshot":
        """Build the snapshot from an Order loaded with its collections."""
        address = order.address
        return cls(
            id=order.id,
            version=order.version,
            status=order.status,
            location_type=order.location_type,
            surface=order.surface,
            generator_qty=order.generator_qty or 0,
            start_window=order.start_window,
            end_window=order.end_window,
            event_date=order.event_date,
            event_end_date=order.event_end_date,
            pickup_preference=order.pickup_preference,
            address=AddressDraft(
                line1=address.line1 or "",
                line2=address.line2,
                city=address.city or "",
                state=address.state or "",
                zip=address.zip or "",
                lat=float(address.lat) if address.lat is not None else None,
                lng=float(address.lng) if address.lng is not None else None,
            ) if address is not None else AddressDraft(),
            items=[
                OrderItemSnapshot(
                    id=item.id,
                    unit_id=item.unit_id,
                    unit_name=item.unit.name if item.unit is not None else "",
                    qty=item.qty,
                    mode=item.mode,
                    unit_price_cents=item.unit_price_cents,
                )
                for item in order.items
            ],
            discounts=[OrderDiscountSnapshot.model_validate(d) for d in order.discounts],
            custom_fees=[OrderCustomFeeSnapshot.model_validate(f) for f in order.custom_fees],
            subtotal_cents=order.subtotal_cents,
            travel_fee_cents=order.travel_fee_cents,
            surface_fee_cents=order.surface_fee_cents,
            same_day_pickup_fee_cents=order.same_day_pickup_fee_cents or 0,
            generator_fee_cents=order.generator_fee_cents or 0,
            tax_cents=order.tax_cents,
            total_cents=order.total_cents,
            travel_total_miles=order.travel_total_miles or Decimal("0"),
            deposit_due_cents=order.deposit_due_cents,
            deposit_paid_cents=order.deposit_paid_cents or 0,
            balance_due_cents=order.balance_due_cents,
            balance_paid_cents=order.balance_paid_cents or 0,
            custom_deposit_cents=order.custom_deposit_cents,
            waivers=FeeWaivers(
                tax_waived=order.tax_waived,
                tax_waive_reason=order.tax_waive_reason,
                travel_fee_waived=order.travel_fee_waived,
                travel_fee_waive_reason=order.travel_fee_waive_reason,
                same_day_pickup_fee_waived=order.same_day_pickup_fee_waived,
                same_day_pickup_fee_waive_reason=order.same_day_pickup_fee_waive_reason,
                surface_fee_waived=order.surface_fee_waived,
                surface_fee_waive_reason=order.surface_fee_waive_reason,
                generator_fee_waived=order.generator_fee_waived,
                generator_fee_waive_reason=order.generator_fee_waive_reason,
            ),
            payment_method_ref=order.payment_method_ref,
            payment_status=order.payment_status,
            amount_captured_cents=order.amount_captured_cents or 0,
            admin_message=order.admin_message,
        )

    @property
    def effective_end_date(self) -> datetime.date:
        return self.event_end_date or self.event_date

    @property
    def amount_paid_cents(self) -> int:
        return self.deposit_paid_cents + self.balance_paid_cents


# -------------------------------------------------------------------
# Save request / outcome
# -------------------------------------------------------------------

class SaveChangesOptions(BaseModel):
    """
    Caller choices for a save.

    admin_override_approval: skip customer approval and confirm directly
    notify_customer: send the review request when approval is required
    """
    admin_override_approval: bool = False
    notify_customer: bool = True


class ChangeEntry(BaseModel):
    """Changelog entry computed by the diff, not yet persisted."""
    field_name: str
    old_value: Optional[str] = None
    new_value: Optional[str] = None
    change_type: ChangeType = ChangeType.EDIT


class SaveOutcome(BaseModel):
    """
    Result of OrderEditService.save_changes().

    Attributes:
        order_id: Saved order
        status: Status after the save
        status_changed: Whether the save moved the order to a new status
        changes: Changelog entries written
        payment_cleared: Whether the stored payment method was invalidated
        approval_required: Whether the customer must re-approve
        notification_sent: Whether the review request went out
        persisted: False when the draft had nothing to save
    """
    order_id: uuid.UUID
    status: OrderStatus
    status_changed: bool = False
    changes: list[ChangeEntry] = Field(default_factory=list)
    payment_cleared: bool = False
    approval_required: bool = False
    notification_sent: bool = False
    persisted: bool = False


class SaveChangesRequest(BaseModel):
    """Body of the save endpoint; price and availability are recomputed server side."""
    draft: OrderDraft
    options: SaveChangesOptions = Field(default_factory=SaveChangesOptions)
    can_use_stakes: bool = True


class StatusChangeRequest(BaseModel):
    """Body of a status transition request."""
    status: OrderStatus = Field(..., description="Requested status")


# -------------------------------------------------------------------
# Read models
# -------------------------------------------------------------------

class OrderItemRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    unit_id: uuid.UUID
    qty: int
    mode: ItemMode
    unit_price_cents: int

    @computed_field
    @property
    def line_total_cents(self) -> int:
        return self.qty * self.unit_price_cents


class OrderRead(BaseModel):
    """Order returned by the API, price lines in cents."""
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    version: int
    status: OrderStatus
    location_type: LocationType
    surface: Surface
    generator_qty: int
    event_date: datetime.date
    event_end_date: datetime.date
    start_window: Optional[str] = None
    end_window: Optional[str] = None
    pickup_preference: PickupPreference
    subtotal_cents: int
    travel_fee_cents: int
    surface_fee_cents: int
    same_day_pickup_fee_cents: int
    generator_fee_cents: int
    tax_cents: int
    total_cents: int
    deposit_due_cents: int
    deposit_paid_cents: int
    balance_due_cents: int
    custom_deposit_cents: Optional[int] = None
    payment_status: PaymentStatus
    has_payment_method: bool = False
    admin_message: Optional[str] = None
    items: list[OrderItemRead] = Field(default_factory=list)

    @classmethod
    def from_order(cls, order) -> "OrderRead":
        read = cls.model_validate(order)
        read.has_payment_method = order.payment_method_ref is not None
        return read
