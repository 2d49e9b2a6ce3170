"""Delivery agent domain events."""

from protean.fields import Boolean, DateTime, Identifier, Integer, String

from fulfillment.domain import fulfillment


@fulfillment.event(part_of="DeliveryAgent")
class DeliveryAgentRegistered:
    __version__ = 1

    agent_id = Identifier(required=True)
    name = String(required=True)
    phone = String(required=True)
    registered_at = DateTime(required=True)


@fulfillment.event(part_of="DeliveryAgent")
class AgentAvailabilityChanged:
    __version__ = 1

    agent_id = Identifier(required=True)
    is_available = Boolean(default=False)
    changed_at = DateTime(required=True)


@fulfillment.event(part_of="DeliveryAgent")
class AgentAssignmentTaken:
    """The agent's record caught up with a won claim."""

    __version__ = 1

    agent_id = Identifier(required=True)
    order_id = Identifier(required=True)
    assigned_at = DateTime(required=True)


@fulfillment.event(part_of="DeliveryAgent")
class AgentAssignmentReleased:
    """The agent's active order ended, delivered or cancelled."""

    __version__ = 1

    agent_id = Identifier(required=True)
    order_id = Identifier(required=True)
    outcome = String(required=True)
    released_at = DateTime(required=True)


@fulfillment.event(part_of="DeliveryAgent")
class DeliveryCredited:
    __version__ = 1

    agent_id = Identifier(required=True)
    order_id = Identifier(required=True)
    amount = Integer(required=True)
    cash_collected = Integer(default=0)
    credited_at = DateTime(required=True)
