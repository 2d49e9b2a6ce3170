"""Order aggregate (CQRS): one customer order from checkout to handover.

The Order holds the line items of every seller involved, the delivery and
payment details, the assigned delivery agent and the delivery-code material.
Item stages are owned by sellers and roll up into `fulfillment_progress`;
the lifecycle `status` only moves through explicit transitions.

State Machine:
    PENDING → CONFIRMED → PREPARING → READY_FOR_PICKUP → OUT_FOR_DELIVERY → DELIVERED → RETURNED
    {PENDING … OUT_FOR_DELIVERY} → {CANCELLED, REJECTED, FAILED_PAYMENT}

Delivery stages (while OUT_FOR_DELIVERY):
    ASSIGNED → PICKED_UP → REACHED_STATION → DELIVERED
    PICKED_UP → DELIVERED (direct delivery)
"""

import secrets
import string
import time
from datetime import UTC, datetime, timedelta
from enum import Enum

from protean import atomic_change, invariant
from protean.exceptions import ObjectNotFoundError, ValidationError
from protean.fields import (
    DateTime,
    HasMany,
    Identifier,
    Integer,
    String,
    ValueObject,
)

from fulfillment import settings
from fulfillment.domain import fulfillment
from fulfillment.errors import (
    AuthorizationError,
    ConflictError,
    ExpiredError,
    InvalidTransitionError,
    MismatchError,
)
from fulfillment.identity import Actor, ActorRole
from fulfillment.order import otp
from fulfillment.order.events import (
    DeliveryIssueReported,
    DeliveryOTPGenerated,
    DeliveryOTPVerified,
    ItemStatusUpdated,
    OrderAccepted,
    OrderCancelled,
    OrderDeclined,
    OrderDelivered,
    OrderPickedUp,
    OrderPlaced,
    OrderStatusChanged,
    PaymentStatusRecorded,
    StationReached,
)
from fulfillment.order.item_status import (
    CLOSED_ITEM_STATUSES,
    ITEM_STATUS_SETTERS,
    FulfillmentProgress,
    ItemStatus,
    compute_aggregate_status,
    parse_item_status,
)


# ---------------------------------------------------------------------------
# Enums
# ---------------------------------------------------------------------------
class OrderStatus(Enum):
    PENDING = "Pending"
    CONFIRMED = "Confirmed"
    PREPARING = "Preparing"
    READY_FOR_PICKUP = "Ready_For_Pickup"
    OUT_FOR_DELIVERY = "Out_For_Delivery"
    DELIVERED = "Delivered"
    CANCELLED = "Cancelled"
    REJECTED = "Rejected"
    RETURNED = "Returned"
    FAILED_PAYMENT = "Failed_Payment"


class DeliveryStage(Enum):
    ASSIGNED = "Assigned"
    PICKED_UP = "Picked_Up"
    REACHED_STATION = "Reached_Station"
    DELIVERED = "Delivered"


class DeliveryType(Enum):
    TRAIN = "Train"
    STATION = "Station"
    HOME = "Home"


class PaymentMethod(Enum):
    UPI = "UPI"
    CARD = "Card"
    WALLET = "Wallet"
    COD = "COD"


class PaymentStatus(Enum):
    PENDING = "Pending"
    PROCESSING = "Processing"
    COMPLETED = "Completed"
    FAILED = "Failed"
    REFUNDED = "Refunded"


class ProofType(Enum):
    OTP = "OTP"
    PHOTO = "Photo"
    SIGNATURE = "Signature"


class HistoryNote(Enum):
    """History entries that annotate an order without moving its status."""

    DECLINED = "Declined"
    ISSUE_REPORTED = "Issue_Reported"


_ABORT_STATUSES = {
    OrderStatus.CANCELLED,
    OrderStatus.REJECTED,
    OrderStatus.FAILED_PAYMENT,
}

_VALID_TRANSITIONS = {
    OrderStatus.PENDING: {OrderStatus.CONFIRMED} | _ABORT_STATUSES,
    OrderStatus.CONFIRMED: {OrderStatus.PREPARING} | _ABORT_STATUSES,
    OrderStatus.PREPARING: {OrderStatus.READY_FOR_PICKUP} | _ABORT_STATUSES,
    OrderStatus.READY_FOR_PICKUP: {OrderStatus.OUT_FOR_DELIVERY} | _ABORT_STATUSES,
    OrderStatus.OUT_FOR_DELIVERY: {OrderStatus.DELIVERED} | _ABORT_STATUSES,
    OrderStatus.DELIVERED: {OrderStatus.RETURNED},  # post-delivery return only
    OrderStatus.CANCELLED: set(),  # terminal
    OrderStatus.REJECTED: set(),  # terminal
    OrderStatus.RETURNED: set(),  # terminal
    OrderStatus.FAILED_PAYMENT: set(),  # terminal
}

TERMINAL_STATUSES = frozenset(
    {
        OrderStatus.DELIVERED,
        OrderStatus.CANCELLED,
        OrderStatus.REJECTED,
        OrderStatus.RETURNED,
        OrderStatus.FAILED_PAYMENT,
    }
)

# Statuses in which the order is held by a delivery agent
DRIVER_HELD_STATUSES = frozenset(
    {
        OrderStatus.OUT_FOR_DELIVERY,
        OrderStatus.DELIVERED,
        OrderStatus.RETURNED,
    }
)

_PROGRESS_BY_STATUS = {
    OrderStatus.CONFIRMED: FulfillmentProgress.PARTIALLY_FULFILLED,
    OrderStatus.PREPARING: FulfillmentProgress.PARTIALLY_FULFILLED,
    OrderStatus.READY_FOR_PICKUP: FulfillmentProgress.PARTIALLY_FULFILLED,
    OrderStatus.OUT_FOR_DELIVERY: FulfillmentProgress.PARTIALLY_FULFILLED,
    OrderStatus.DELIVERED: FulfillmentProgress.FULFILLED,
    OrderStatus.RETURNED: FulfillmentProgress.FULFILLED,
}

_MILESTONE_FIELDS = {
    OrderStatus.PENDING: "placed_at",
    OrderStatus.CONFIRMED: "confirmed_at",
    OrderStatus.PREPARING: "preparing_at",
    OrderStatus.READY_FOR_PICKUP: "ready_for_pickup_at",
    OrderStatus.OUT_FOR_DELIVERY: "out_for_delivery_at",
    OrderStatus.DELIVERED: "delivered_at",
    OrderStatus.CANCELLED: "cancelled_at",
    OrderStatus.REJECTED: "rejected_at",
    OrderStatus.RETURNED: "returned_at",
    OrderStatus.FAILED_PAYMENT: "payment_failed_at",
    DeliveryStage.PICKED_UP: "picked_up_at",
    DeliveryStage.REACHED_STATION: "reached_station_at",
}

_DELIVERABLE_STAGES = {DeliveryStage.PICKED_UP, DeliveryStage.REACHED_STATION}


def progress_for_status(status: OrderStatus) -> FulfillmentProgress | None:
    """The fulfillment progress an order in `status` is consistent with.

    Active statuses pair with PARTIALLY_FULFILLED, a handed-over order with
    FULFILLED. Pending and aborted orders have no progress.
    """
    return _PROGRESS_BY_STATUS.get(status)


def _generate_order_number() -> str:
    suffix = "".join(secrets.choice(string.ascii_uppercase + string.digits) for _ in range(5))
    return f"TF{int(time.time() * 1000)}{suffix}"


# ---------------------------------------------------------------------------
# Value Objects
# ---------------------------------------------------------------------------
@fulfillment.value_object(part_of="Order")
class DeliveryInfo:
    """Where and to whom the order is handed over.

    Train deliveries need a train number, station pickups a station name and
    home deliveries an address. `actual_station` is filled in by the agent when
    the station reached differs from the planned one.
    """

    delivery_type = String(required=True, max_length=20, choices=DeliveryType)
    contact_name = String(required=True, max_length=100)
    contact_phone = String(required=True, max_length=20)
    train_no = String(max_length=20)
    train_name = String(max_length=100)
    coach = String(max_length=10)
    seat = String(max_length=10)
    departure_time = DateTime()
    station_name = String(max_length=100)
    platform = String(max_length=10)
    address = String(max_length=500)
    landmark = String(max_length=200)
    special_instructions = String(max_length=500)
    actual_station = String(max_length=100)

    @invariant.post
    def type_specific_details_present(self):
        required = {
            DeliveryType.TRAIN.value: ("train_no", "Train deliveries need a train number"),
            DeliveryType.STATION.value: ("station_name", "Station deliveries need a station name"),
            DeliveryType.HOME.value: ("address", "Home deliveries need an address"),
        }
        if self.delivery_type not in required:
            return
        field_name, message = required[self.delivery_type]
        if not getattr(self, field_name):
            raise ValidationError({field_name: [message]})


@fulfillment.value_object(part_of="Order")
class OrderTotals:
    """Order amounts in minor currency units."""

    subtotal = Integer(required=True, min_value=0)
    tax = Integer(default=0, min_value=0)
    delivery = Integer(default=2000, min_value=0)
    discount = Integer(default=0, min_value=0)
    final = Integer(required=True, min_value=0)
    coupon_code = String(max_length=50)

    @invariant.post
    def final_matches_components(self):
        expected = self.subtotal + self.tax + self.delivery - self.discount
        if self.final != expected:
            raise ValidationError(
                {"totals": [f"Final total {self.final} does not equal subtotal + tax + delivery - discount ({expected})"]}
            )


@fulfillment.value_object(part_of="Order")
class PaymentInfo:
    method = String(required=True, max_length=20, choices=PaymentMethod)
    status = String(max_length=20, choices=PaymentStatus, default=PaymentStatus.PENDING.value)


@fulfillment.value_object(part_of="Order")
class DeliveryProof:
    """What the agent presented to close the delivery."""

    proof_type = String(required=True, max_length=20, choices=ProofType)
    reference = String(max_length=500)


@fulfillment.value_object(part_of="Order")
class OrderTimestamps:
    """First time the order reached each milestone."""

    placed_at = DateTime()
    confirmed_at = DateTime()
    preparing_at = DateTime()
    ready_for_pickup_at = DateTime()
    out_for_delivery_at = DateTime()
    picked_up_at = DateTime()
    reached_station_at = DateTime()
    delivered_at = DateTime()
    cancelled_at = DateTime()
    rejected_at = DateTime()
    returned_at = DateTime()
    payment_failed_at = DateTime()


_TIMESTAMP_FIELDS = (
    "placed_at",
    "confirmed_at",
    "preparing_at",
    "ready_for_pickup_at",
    "out_for_delivery_at",
    "picked_up_at",
    "reached_station_at",
    "delivered_at",
    "cancelled_at",
    "rejected_at",
    "returned_at",
    "payment_failed_at",
)


# ---------------------------------------------------------------------------
# Entities
# ---------------------------------------------------------------------------
@fulfillment.entity(part_of="Order")
class OrderItem:
    """A line item, prepared by the seller of its product."""

    position = Integer(required=True, min_value=1)
    product_id = Identifier(required=True)
    seller_id = Identifier(required=True)
    name = String(max_length=200)
    quantity = Integer(required=True, min_value=1)
    unit_price = Integer(required=True, min_value=0)
    item_status = String(
        max_length=20,
        choices=ItemStatus,
        default=ItemStatus.PENDING.value,
    )
    item_note = String(max_length=500)


@fulfillment.entity(part_of="Order")
class StatusHistoryEntry:
    """One line of the order's audit trail."""

    sequence = Integer(required=True, min_value=1)
    status = String(required=True, max_length=50)
    actor_id = String(required=True, max_length=255)
    actor_role = String(max_length=50)
    note = String(max_length=1000)
    recorded_at = DateTime(required=True)


# ---------------------------------------------------------------------------
# Aggregate Root (CQRS)
# ---------------------------------------------------------------------------
@fulfillment.aggregate
class Order:
    order_number = String(required=True, max_length=30, unique=True)
    customer_id = Identifier(required=True)
    items = HasMany(OrderItem)
    delivery_info = ValueObject(DeliveryInfo)
    totals = ValueObject(OrderTotals)
    payment = ValueObject(PaymentInfo)
    status = String(
        choices=OrderStatus,
        default=OrderStatus.PENDING.value,
    )
    fulfillment_progress = String(max_length=30, choices=FulfillmentProgress)
    assigned_driver_id = Identifier()
    delivery_stage = String(max_length=30, choices=DeliveryStage)
    estimated_delivery_at = DateTime()
    delivery_proof = ValueObject(DeliveryProof)
    otp_hash = String(max_length=128)
    otp_salt = String(max_length=64)
    otp_expires_at = DateTime()
    otp_verified_at = DateTime()
    history = HasMany(StatusHistoryEntry)
    timestamps = ValueObject(OrderTimestamps)
    cancellation_reason = String(max_length=500)
    created_at = DateTime()
    updated_at = DateTime()

    @invariant.post
    def order_has_items(self):
        if not self.items:
            raise ValidationError({"items": ["Order must contain at least one item"]})

    @invariant.post
    def driver_assigned_only_while_held(self):
        held = OrderStatus(self.status) in DRIVER_HELD_STATUSES
        if held != bool(self.assigned_driver_id):
            raise ValidationError(
                {"assigned_driver_id": ["A driver is assigned exactly while the order is out for delivery or later"]}
            )

    # -------------------------------------------------------------------
    # Factory method
    # -------------------------------------------------------------------
    @classmethod
    def create(
        cls,
        customer_id: str,
        items_data: list[dict],
        delivery_info: dict,
        totals: dict,
        payment_method: str,
    ):
        """Create a new PENDING order at checkout.

        Every item must already name its seller; checkout resolves sellers
        against the product directory before calling this.
        """
        if not items_data:
            raise ValidationError({"items": ["Order must contain at least one item"]})
        unresolved = [str(i.get("product_id")) for i in items_data if not i.get("seller_id")]
        if unresolved:
            raise ValidationError({"items": [f"No resolvable seller for product(s): {', '.join(unresolved)}"]})

        now = datetime.now(UTC)
        customer = Actor(actor_id=customer_id, role=ActorRole.CUSTOMER)
        order = cls(
            order_number=_generate_order_number(),
            customer_id=customer_id,
            items=[OrderItem(position=idx, **item_data) for idx, item_data in enumerate(items_data, start=1)],
            delivery_info=DeliveryInfo(**delivery_info),
            totals=OrderTotals(**totals),
            payment=PaymentInfo(method=payment_method),
            status=OrderStatus.PENDING.value,
            timestamps=OrderTimestamps(placed_at=now),
            created_at=now,
            updated_at=now,
        )
        order._record(OrderStatus.PENDING.value, customer, "Order placed", now)
        order.raise_(
            OrderPlaced(
                order_id=str(order.id),
                order_number=order.order_number,
                customer_id=customer_id,
                item_count=len(items_data),
                final_total=order.totals.final,
                placed_at=now,
            )
        )
        return order

    # -------------------------------------------------------------------
    # Queries
    # -------------------------------------------------------------------
    def item(self, item_id: str) -> OrderItem:
        found = next((i for i in (self.items or []) if str(i.id) == str(item_id)), None)
        if found is None:
            raise ObjectNotFoundError({"item_id": [f"Item {item_id} not found in order {self.id}"]})
        return found

    def timeline(self) -> list[StatusHistoryEntry]:
        """History entries, oldest first."""
        return sorted(self.history or [], key=lambda entry: entry.sequence)

    def involves_seller(self, seller_id: str) -> bool:
        return any(str(i.seller_id) == str(seller_id) for i in (self.items or []))

    def milestones(self) -> dict[str, datetime]:
        """Milestone timestamps reached so far."""
        if not self.timestamps:
            return {}
        values = {name: getattr(self.timestamps, name) for name in _TIMESTAMP_FIELDS}
        return {name: value for name, value in values.items() if value is not None}

    def cash_on_delivery(self) -> int:
        """Cash the agent collects at handover; zero for prepaid orders."""
        if self.payment and self.payment.method == PaymentMethod.COD.value:
            return self.totals.final
        return 0

    @property
    def is_terminal(self) -> bool:
        return OrderStatus(self.status) in TERMINAL_STATUSES

    # -------------------------------------------------------------------
    # Internal helpers
    # -------------------------------------------------------------------
    def _assert_can_transition(self, target_status: OrderStatus) -> None:
        current = OrderStatus(self.status)
        # Re-entering the current status only re-records history
        if target_status == current and current not in TERMINAL_STATUSES:
            return
        if target_status not in _VALID_TRANSITIONS.get(current, set()):
            raise InvalidTransitionError(
                {"status": [f"Cannot transition from {current.value} to {target_status.value}"]}
            )

    def _assert_assigned_driver(self, actor: Actor) -> None:
        if not self.assigned_driver_id or str(self.assigned_driver_id) != actor.actor_id:
            raise AuthorizationError({"agent_id": ["Only the assigned delivery agent can act on this delivery"]})

    def _record(self, status: str, actor: Actor, note: str | None, now: datetime) -> None:
        self.add_history(
            StatusHistoryEntry(
                sequence=len(self.history or []) + 1,
                status=status,
                actor_id=actor.actor_id,
                actor_role=actor.role.value,
                note=note,
                recorded_at=now,
            )
        )

    def _stamp(self, milestone: OrderStatus | DeliveryStage, now: datetime) -> None:
        field_name = _MILESTONE_FIELDS.get(milestone)
        if field_name is None:
            return
        current = {name: getattr(self.timestamps, name) if self.timestamps else None for name in _TIMESTAMP_FIELDS}
        if current[field_name] is not None:
            return
        current[field_name] = now
        self.timestamps = OrderTimestamps(**current)

    def _clear_delivery_code(self) -> None:
        self.otp_hash = None
        self.otp_salt = None
        self.otp_expires_at = None

    def _release_driver(self) -> str | None:
        driver_id = str(self.assigned_driver_id) if self.assigned_driver_id else None
        self.assigned_driver_id = None
        self.delivery_stage = None
        self.estimated_delivery_at = None
        self._clear_delivery_code()
        return driver_id

    def _apply_status(self, new_status: OrderStatus, actor: Actor, note: str | None, now: datetime) -> str | None:
        """Move to `new_status` and apply its side effects.

        Callers check the edge first and wrap this in `atomic_change`.
        Returns the id of the driver released by an abort, if any.
        """
        previous = OrderStatus(self.status)
        released_driver_id = None

        self.status = new_status.value
        if new_status in _ABORT_STATUSES:
            released_driver_id = self._release_driver()
            for item in self.items or []:
                if ItemStatus(item.item_status) not in CLOSED_ITEM_STATUSES:
                    item.item_status = ItemStatus.CANCELLED.value
        elif new_status == OrderStatus.DELIVERED:
            self._clear_delivery_code()
            for item in self.items or []:
                if item.item_status != ItemStatus.CANCELLED.value:
                    item.item_status = ItemStatus.DELIVERED.value
            self.fulfillment_progress = progress_for_status(new_status).value

        self._stamp(new_status, now)
        self._record(new_status.value, actor, note, now)
        self.updated_at = now
        self.raise_(
            OrderStatusChanged(
                order_id=str(self.id),
                from_status=previous.value,
                to_status=new_status.value,
                actor_id=actor.actor_id,
                released_driver_id=released_driver_id or "",
                changed_at=now,
            )
        )
        return released_driver_id

    # -------------------------------------------------------------------
    # Lifecycle transitions
    # -------------------------------------------------------------------
    def transition_status(self, new_status: OrderStatus, actor: Actor, note: str | None = None) -> str | None:
        """Move the order along the status graph.

        OUT_FOR_DELIVERY needs an assigned driver, so it is only reached
        through `assign_driver`. Returns the id of a driver released by an
        abort so the caller can free the agent.
        """
        self._assert_can_transition(new_status)
        if new_status == OrderStatus.OUT_FOR_DELIVERY and not self.assigned_driver_id:
            raise InvalidTransitionError({"status": ["Orders go out for delivery only when claimed by an agent"]})

        with atomic_change(self):
            return self._apply_status(new_status, actor, note, datetime.now(UTC))

    def cancel(self, actor: Actor, reason: str | None = None, force: bool = False) -> str | None:
        """Cancel the order before delivery.

        Customers may cancel their own orders until they are out for
        delivery. `force` is the admin override, valid up to delivery.
        """
        current = OrderStatus(self.status)
        if force:
            if not actor.is_admin:
                raise AuthorizationError({"actor": ["Only an admin can force-cancel an order"]})
        elif not actor.is_privileged:
            if actor.role != ActorRole.CUSTOMER or actor.actor_id != str(self.customer_id):
                raise AuthorizationError({"actor": ["Only the ordering customer can cancel this order"]})
            if current == OrderStatus.OUT_FOR_DELIVERY:
                raise InvalidTransitionError({"status": ["Order is out for delivery and can no longer be cancelled"]})

        released_driver_id = self.transition_status(OrderStatus.CANCELLED, actor, note=reason)
        self.cancellation_reason = reason
        self.raise_(
            OrderCancelled(
                order_id=str(self.id),
                reason=reason,
                cancelled_by=actor.actor_id,
                forced=force,
                released_driver_id=released_driver_id or "",
                cancelled_at=self.updated_at,
            )
        )
        return released_driver_id

    def record_payment_status(self, payment_status: PaymentStatus, actor: Actor) -> None:
        """Store the payment collaborator's verdict and react to it.

        A completed payment confirms a pending order; a failed one moves it
        to FAILED_PAYMENT. Any other verdict is only stored.
        """
        now = datetime.now(UTC)
        self.payment = PaymentInfo(method=self.payment.method, status=payment_status.value)
        self.updated_at = now
        self.raise_(
            PaymentStatusRecorded(
                order_id=str(self.id),
                payment_status=payment_status.value,
                recorded_at=now,
            )
        )

        if OrderStatus(self.status) != OrderStatus.PENDING:
            return
        if payment_status == PaymentStatus.COMPLETED:
            self.transition_status(OrderStatus.CONFIRMED, actor, note="Payment completed")
        elif payment_status == PaymentStatus.FAILED:
            self.transition_status(OrderStatus.FAILED_PAYMENT, actor, note="Payment failed")

    # -------------------------------------------------------------------
    # Seller item stages
    # -------------------------------------------------------------------
    def set_item_status(self, item_id: str, new_status: str | ItemStatus, actor: Actor, note: str | None = None):
        """Set one item's stage and refresh the order's fulfillment progress.

        The item change and the recomputed progress are written together as
        part of this aggregate.
        """
        item = self.item(item_id)
        if actor.role not in ITEM_STATUS_SETTERS or (
            actor.role == ActorRole.SELLER and str(item.seller_id) != actor.actor_id
        ):
            raise AuthorizationError({"item_id": ["Only the item's seller can update its status"]})
        status = parse_item_status(new_status)
        if self.is_terminal:
            raise InvalidTransitionError({"status": [f"Items of a {self.status} order can no longer change"]})

        now = datetime.now(UTC)
        item.item_status = status.value
        if note is not None:
            item.item_note = note

        progress = compute_aggregate_status(i.item_status for i in self.items)
        if progress is not None:
            self.fulfillment_progress = progress.value
        self.updated_at = now
        self.raise_(
            ItemStatusUpdated(
                order_id=str(self.id),
                item_id=str(item.id),
                seller_id=str(item.seller_id),
                item_status=status.value,
                fulfillment_progress=self.fulfillment_progress,
                updated_at=now,
            )
        )

    # -------------------------------------------------------------------
    # Dispatch
    # -------------------------------------------------------------------
    def assign_driver(self, agent_id: str, estimated_delivery_at: datetime | None = None) -> bool:
        """Hand the order to a delivery agent and send it out for delivery.

        Repeating the call for the agent already holding the order changes
        nothing and returns False.
        """
        if self.assigned_driver_id:
            if str(self.assigned_driver_id) == agent_id:
                return False
            raise ConflictError({"order_id": ["Order is already assigned to another driver"]})
        if OrderStatus(self.status) != OrderStatus.READY_FOR_PICKUP:
            raise InvalidTransitionError({"status": [f"Order is {self.status}, not ready for pickup"]})

        now = datetime.now(UTC)
        agent = Actor(actor_id=agent_id, role=ActorRole.DELIVERY_AGENT)
        with atomic_change(self):
            self.assigned_driver_id = agent_id
            self.delivery_stage = DeliveryStage.ASSIGNED.value
            self.estimated_delivery_at = estimated_delivery_at
            self._apply_status(OrderStatus.OUT_FOR_DELIVERY, agent, "Accepted by delivery agent", now)

        self.raise_(
            OrderAccepted(
                order_id=str(self.id),
                driver_id=agent_id,
                estimated_delivery_at=estimated_delivery_at,
                accepted_at=now,
            )
        )
        return True

    def decline(self, actor: Actor, reason: str | None = None) -> None:
        """Note that an agent passed on the order. The order stays in the pool.

        An unassigned order can only be declined while it waits for pickup.
        Once an order is out, only its own driver may annotate it.
        """
        if actor.role != ActorRole.DELIVERY_AGENT:
            raise AuthorizationError({"actor": ["Only delivery agents can decline orders"]})
        if self.is_terminal:
            raise InvalidTransitionError({"status": [f"Order is {self.status}, there is nothing to decline"]})
        if self.assigned_driver_id:
            self._assert_assigned_driver(actor)
        elif OrderStatus(self.status) != OrderStatus.READY_FOR_PICKUP:
            raise InvalidTransitionError({"status": [f"Order is {self.status}, not waiting for pickup"]})

        now = datetime.now(UTC)
        self._record(HistoryNote.DECLINED.value, actor, reason or "Order declined by driver", now)
        self.updated_at = now
        self.raise_(
            OrderDeclined(
                order_id=str(self.id),
                agent_id=actor.actor_id,
                reason=reason,
                declined_at=now,
            )
        )

    # -------------------------------------------------------------------
    # Delivery lifecycle
    # -------------------------------------------------------------------
    def _assert_stage(self, allowed: set[DeliveryStage], target: DeliveryStage) -> None:
        current = DeliveryStage(self.delivery_stage) if self.delivery_stage else None
        if OrderStatus(self.status) != OrderStatus.OUT_FOR_DELIVERY or current not in allowed:
            label = current.value if current else self.status
            raise InvalidTransitionError({"delivery_stage": [f"Cannot transition from {label} to {target.value}"]})

    def mark_picked_up(self, actor: Actor) -> None:
        """The assigned agent collected the order."""
        self._assert_assigned_driver(actor)
        self._assert_stage({DeliveryStage.ASSIGNED}, DeliveryStage.PICKED_UP)

        now = datetime.now(UTC)
        self.delivery_stage = DeliveryStage.PICKED_UP.value
        self._stamp(DeliveryStage.PICKED_UP, now)
        self._record(DeliveryStage.PICKED_UP.value, actor, "Order picked up", now)
        self.updated_at = now
        self.raise_(
            OrderPickedUp(
                order_id=str(self.id),
                driver_id=actor.actor_id,
                picked_up_at=now,
            )
        )

    def mark_station_reached(self, actor: Actor, station: str | None = None) -> None:
        """The agent reached the handover station, possibly not the planned one."""
        self._assert_assigned_driver(actor)
        self._assert_stage({DeliveryStage.PICKED_UP}, DeliveryStage.REACHED_STATION)

        now = datetime.now(UTC)
        info = self.delivery_info
        actual_station = station or info.station_name
        self.delivery_info = DeliveryInfo(
            delivery_type=info.delivery_type,
            contact_name=info.contact_name,
            contact_phone=info.contact_phone,
            train_no=info.train_no,
            train_name=info.train_name,
            coach=info.coach,
            seat=info.seat,
            departure_time=info.departure_time,
            station_name=info.station_name,
            platform=info.platform,
            address=info.address,
            landmark=info.landmark,
            special_instructions=info.special_instructions,
            actual_station=actual_station,
        )
        self.delivery_stage = DeliveryStage.REACHED_STATION.value
        self._stamp(DeliveryStage.REACHED_STATION, now)
        self._record(
            DeliveryStage.REACHED_STATION.value,
            actor,
            f"Reached {actual_station}" if actual_station else "Reached station",
            now,
        )
        self.updated_at = now
        self.raise_(
            StationReached(
                order_id=str(self.id),
                driver_id=actor.actor_id,
                station=actual_station,
                reached_at=now,
            )
        )

    def mark_delivered(
        self,
        actor: Actor,
        proof_type: ProofType | None = None,
        proof_reference: str | None = None,
    ) -> None:
        """Close the delivery against a verified code or a photo/signature."""
        self._assert_assigned_driver(actor)
        self._assert_stage(_DELIVERABLE_STAGES, DeliveryStage.DELIVERED)
        self._assert_can_transition(OrderStatus.DELIVERED)

        if proof_type in (None, ProofType.OTP):
            if not self.otp_verified_at:
                raise ValidationError({"proof": ["Delivery needs a verified OTP or a photo/signature proof"]})
            proof = DeliveryProof(proof_type=ProofType.OTP.value)
        else:
            if not proof_reference:
                raise ValidationError({"proof": [f"{proof_type.value} proof needs a reference"]})
            proof = DeliveryProof(proof_type=proof_type.value, reference=proof_reference)

        now = datetime.now(UTC)
        with atomic_change(self):
            self.delivery_stage = DeliveryStage.DELIVERED.value
            self.delivery_proof = proof
            self._apply_status(OrderStatus.DELIVERED, actor, "Order delivered", now)

        self.raise_(
            OrderDelivered(
                order_id=str(self.id),
                driver_id=actor.actor_id,
                proof_type=proof.proof_type,
                delivered_at=now,
            )
        )

    def report_issue(self, actor: Actor, issue_type: str, description: str | None = None) -> None:
        """Log an operational problem on the delivery. Status is unchanged."""
        self._assert_assigned_driver(actor)

        now = datetime.now(UTC)
        note = f"{issue_type}: {description}" if description else issue_type
        self._record(HistoryNote.ISSUE_REPORTED.value, actor, note, now)
        self.updated_at = now
        self.raise_(
            DeliveryIssueReported(
                order_id=str(self.id),
                driver_id=actor.actor_id,
                issue_type=issue_type,
                description=description,
                reported_at=now,
            )
        )

    # -------------------------------------------------------------------
    # Delivery code (OTP)
    # -------------------------------------------------------------------
    def issue_delivery_code(self, code: str, actor: Actor, now: datetime | None = None) -> datetime:
        """Store a salted hash of `code`, replacing any earlier code.

        Returns the expiry. The plaintext is never kept on the order.
        """
        is_customer = actor.role == ActorRole.CUSTOMER and actor.actor_id == str(self.customer_id)
        is_driver = actor.role == ActorRole.DELIVERY_AGENT and actor.actor_id == str(self.assigned_driver_id)
        if not (is_customer or is_driver or actor.is_admin):
            raise AuthorizationError({"actor": ["Only the customer or the assigned agent can request a delivery code"]})
        if OrderStatus(self.status) != OrderStatus.OUT_FOR_DELIVERY:
            raise ValidationError({"status": ["Delivery codes are only issued while the order is out for delivery"]})

        now = now or datetime.now(UTC)
        salt = otp.new_salt()
        self.otp_salt = salt
        self.otp_hash = otp.hash_code(code, salt)
        self.otp_expires_at = now + timedelta(seconds=settings.OTP_TTL_SECONDS)
        self.otp_verified_at = None
        self.updated_at = now
        self.raise_(
            DeliveryOTPGenerated(
                order_id=str(self.id),
                expires_at=self.otp_expires_at,
                generated_at=now,
            )
        )
        return self.otp_expires_at

    def verify_delivery_code(self, code: str, actor: Actor, now: datetime | None = None) -> None:
        """Check `code` against the stored hash; a match consumes the code."""
        if not (actor.is_admin or str(self.assigned_driver_id or "") == actor.actor_id):
            raise AuthorizationError({"actor": ["Only the assigned agent can verify the delivery code"]})

        now = now or datetime.now(UTC)
        expires_at = self.otp_expires_at
        if expires_at is not None and expires_at.tzinfo is None:
            expires_at = expires_at.replace(tzinfo=UTC)
        if not self.otp_hash or expires_at is None or now > expires_at:
            raise ExpiredError({"otp": ["OTP expired or not generated"]})
        if not otp.matches(code, self.otp_salt, self.otp_hash):
            raise MismatchError({"otp": ["Invalid OTP"]})

        self._clear_delivery_code()
        self.otp_verified_at = now
        self.updated_at = now
        self.raise_(
            DeliveryOTPVerified(
                order_id=str(self.id),
                verified_at=now,
            )
        )
