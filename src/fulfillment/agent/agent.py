"""DeliveryAgent aggregate: availability, the active delivery and earnings.

An agent carries at most one order at a time. While an order is active the
agent is off the available pool; closing the order (delivered or cancelled)
puts the agent back. Every completed delivery is credited exactly once,
tracked by a ledger entry per order.
"""

from datetime import UTC, date, datetime
from enum import Enum

from protean import atomic_change, invariant
from protean.exceptions import ValidationError
from protean.fields import (
    Boolean,
    Date,
    DateTime,
    Float,
    HasMany,
    Identifier,
    Integer,
    String,
    ValueObject,
)

from fulfillment.agent.events import (
    AgentAssignmentReleased,
    AgentAssignmentTaken,
    AgentAvailabilityChanged,
    DeliveryAgentRegistered,
    DeliveryCredited,
)
from fulfillment.domain import fulfillment
from fulfillment.errors import ConflictError


class AssignmentOutcome(Enum):
    ACTIVE = "Active"
    DELIVERED = "Delivered"
    CANCELLED = "Cancelled"


# ---------------------------------------------------------------------------
# Value Objects
# ---------------------------------------------------------------------------
@fulfillment.value_object(part_of="DeliveryAgent")
class Earnings:
    """Amounts in minor currency units. `today` refers to the `as_of` date."""

    today = Integer(default=0, min_value=0)
    total = Integer(default=0, min_value=0)
    pending = Integer(default=0, min_value=0)
    cash_collected = Integer(default=0, min_value=0)
    as_of = Date()


@fulfillment.value_object(part_of="DeliveryAgent")
class DeliveryStats:
    total_deliveries = Integer(default=0, min_value=0)
    successful_deliveries = Integer(default=0, min_value=0)
    cancelled_deliveries = Integer(default=0, min_value=0)
    completion_rate = Float(default=0.0)


# ---------------------------------------------------------------------------
# Entities
# ---------------------------------------------------------------------------
@fulfillment.entity(part_of="DeliveryAgent")
class Assignment:
    """An order the agent has carried."""

    order_id = Identifier(required=True)
    outcome = String(
        max_length=20,
        choices=AssignmentOutcome,
        default=AssignmentOutcome.ACTIVE.value,
    )
    assigned_at = DateTime(required=True)
    closed_at = DateTime()


@fulfillment.entity(part_of="DeliveryAgent")
class LedgerEntry:
    """One credited delivery. At most one entry per order."""

    order_id = Identifier(required=True)
    amount = Integer(required=True, min_value=0)
    cash_collected = Integer(default=0, min_value=0)
    credited_at = DateTime(required=True)


# ---------------------------------------------------------------------------
# Aggregate Root (CQRS)
# ---------------------------------------------------------------------------
@fulfillment.aggregate
class DeliveryAgent:
    name = String(required=True, max_length=100)
    phone = String(required=True, max_length=20, unique=True)
    email = String(max_length=254)
    vehicle_type = String(max_length=50)
    is_active = Boolean(default=True)
    is_available = Boolean(default=False)
    active_order_id = Identifier()
    assignments = HasMany(Assignment)
    ledger = HasMany(LedgerEntry)
    earnings = ValueObject(Earnings)
    stats = ValueObject(DeliveryStats)
    registered_at = DateTime()
    updated_at = DateTime()

    @invariant.post
    def unavailable_while_carrying_an_order(self):
        if self.active_order_id and self.is_available:
            raise ValidationError({"is_available": ["An agent with an active delivery cannot be available"]})

    @classmethod
    def register(cls, name: str, phone: str, email: str | None = None, vehicle_type: str | None = None):
        now = datetime.now(UTC)
        agent = cls(
            name=name,
            phone=phone,
            email=email,
            vehicle_type=vehicle_type,
            earnings=Earnings(as_of=now.date()),
            stats=DeliveryStats(),
            registered_at=now,
            updated_at=now,
        )
        agent.raise_(
            DeliveryAgentRegistered(
                agent_id=str(agent.id),
                name=name,
                phone=phone,
                registered_at=now,
            )
        )
        return agent

    # -------------------------------------------------------------------
    # Queries
    # -------------------------------------------------------------------
    def assignment_for(self, order_id: str) -> Assignment | None:
        return next((a for a in (self.assignments or []) if str(a.order_id) == str(order_id)), None)

    def has_credit_for(self, order_id: str) -> bool:
        return any(str(e.order_id) == str(order_id) for e in (self.ledger or []))

    def todays_earnings(self, on: date | None = None) -> int:
        on = on or datetime.now(UTC).date()
        if not self.earnings or self.earnings.as_of != on:
            return 0
        return self.earnings.today

    # -------------------------------------------------------------------
    # Availability
    # -------------------------------------------------------------------
    def set_availability(self, available: bool) -> None:
        if available and not self.is_active:
            raise ValidationError({"is_available": ["Inactive agents cannot go online"]})
        if available and self.active_order_id:
            raise ValidationError({"is_available": ["Finish the active delivery before going online"]})

        now = datetime.now(UTC)
        self.is_available = available
        self.updated_at = now
        self.raise_(
            AgentAvailabilityChanged(
                agent_id=str(self.id),
                is_available=available,
                changed_at=now,
            )
        )

    # -------------------------------------------------------------------
    # Assignments
    # -------------------------------------------------------------------
    def assert_can_take(self, order_id: str) -> None:
        if not self.is_active:
            raise ValidationError({"agent_id": ["Inactive agents cannot claim orders"]})
        if self.active_order_id and str(self.active_order_id) != str(order_id):
            raise ConflictError({"agent_id": ["Agent already has an active delivery"]})

    def take_assignment(self, order_id: str) -> bool:
        """Make `order_id` the active delivery. Safe to repeat.

        Returns False when the agent was already carrying this order.
        """
        self.assert_can_take(order_id)
        if self.active_order_id and str(self.active_order_id) == str(order_id):
            return False

        now = datetime.now(UTC)
        with atomic_change(self):
            self.active_order_id = order_id
            self.is_available = False
            if self.assignment_for(order_id) is None:
                self.add_assignments(Assignment(order_id=order_id, assigned_at=now))
            self.updated_at = now

        self.raise_(
            AgentAssignmentTaken(
                agent_id=str(self.id),
                order_id=order_id,
                assigned_at=now,
            )
        )
        return True

    def close_assignment(self, order_id: str, outcome: AssignmentOutcome) -> bool:
        """End the delivery of `order_id` and put the agent back in the pool.

        Returns False when there was nothing open to close.
        """
        assignment = self.assignment_for(order_id)
        carrying = bool(self.active_order_id) and str(self.active_order_id) == str(order_id)
        if not carrying and (assignment is None or assignment.outcome != AssignmentOutcome.ACTIVE.value):
            return False

        now = datetime.now(UTC)
        with atomic_change(self):
            if carrying:
                self.active_order_id = None
                self.is_available = bool(self.is_active)
            if assignment is not None:
                assignment.outcome = outcome.value
                assignment.closed_at = now
            self.updated_at = now

        self.raise_(
            AgentAssignmentReleased(
                agent_id=str(self.id),
                order_id=order_id,
                outcome=outcome.value,
                released_at=now,
            )
        )
        return True

    def release_assignment(self, order_id: str) -> bool:
        """The carried order was cancelled; count it against completion."""
        if not self.close_assignment(order_id, AssignmentOutcome.CANCELLED):
            return False
        stats = self.stats or DeliveryStats()
        self._update_stats(
            total=stats.total_deliveries + 1,
            successful=stats.successful_deliveries,
            cancelled=stats.cancelled_deliveries + 1,
        )
        return True

    # -------------------------------------------------------------------
    # Earnings
    # -------------------------------------------------------------------
    def _update_stats(self, total: int, successful: int, cancelled: int) -> None:
        rate = round(successful / total * 100, 2) if total else 0.0
        self.stats = DeliveryStats(
            total_deliveries=total,
            successful_deliveries=successful,
            cancelled_deliveries=cancelled,
            completion_rate=rate,
        )

    def credit_delivery(self, order_id: str, fee: int, cash_collected: int = 0, on: date | None = None) -> bool:
        """Credit the delivery fee for `order_id`.

        A second credit for the same order is ignored and returns False.
        """
        if self.has_credit_for(order_id):
            return False

        now = datetime.now(UTC)
        on = on or now.date()
        earnings = self.earnings or Earnings()
        today = earnings.today if earnings.as_of == on else 0
        self.earnings = Earnings(
            today=today + fee,
            total=earnings.total + fee,
            pending=earnings.pending + fee,
            cash_collected=earnings.cash_collected + cash_collected,
            as_of=on,
        )
        stats = self.stats or DeliveryStats()
        self._update_stats(
            total=stats.total_deliveries + 1,
            successful=stats.successful_deliveries + 1,
            cancelled=stats.cancelled_deliveries,
        )
        self.add_ledger(
            LedgerEntry(
                order_id=order_id,
                amount=fee,
                cash_collected=cash_collected,
                credited_at=now,
            )
        )
        self.updated_at = now
        self.raise_(
            DeliveryCredited(
                agent_id=str(self.id),
                order_id=order_id,
                amount=fee,
                cash_collected=cash_collected,
                credited_at=now,
            )
        )
        return True
