"""Order domain events: immutable facts about an order's lifecycle.

`OrderAccepted`, `OrderPickedUp` and `OrderDelivered` are the events the
notification service subscribes to (order.accepted, order.picked_up and
order.delivered). No event ever carries a delivery code in plaintext.
"""

from protean.fields import Boolean, DateTime, Identifier, Integer, String

from fulfillment.domain import fulfillment


@fulfillment.event(part_of="Order")
class OrderPlaced:
    """A customer checked out and the order entered the fulfillment pipeline."""

    __version__ = 1

    order_id = Identifier(required=True)
    order_number = String(required=True)
    customer_id = Identifier(required=True)
    item_count = Integer(required=True)
    final_total = Integer(required=True)
    placed_at = DateTime(required=True)


@fulfillment.event(part_of="Order")
class OrderStatusChanged:
    """The order's lifecycle status moved along the status graph."""

    __version__ = 1

    order_id = Identifier(required=True)
    from_status = String(required=True)
    to_status = String(required=True)
    actor_id = String(required=True)
    released_driver_id = String()
    changed_at = DateTime(required=True)


@fulfillment.event(part_of="Order")
class ItemStatusUpdated:
    __version__ = 1

    order_id = Identifier(required=True)
    item_id = Identifier(required=True)
    seller_id = Identifier(required=True)
    item_status = String(required=True)
    fulfillment_progress = String()
    updated_at = DateTime(required=True)


@fulfillment.event(part_of="Order")
class OrderAccepted:
    """A delivery agent won the claim on a ready order."""

    __version__ = 1

    order_id = Identifier(required=True)
    driver_id = Identifier(required=True)
    estimated_delivery_at = DateTime()
    accepted_at = DateTime(required=True)


@fulfillment.event(part_of="Order")
class OrderDeclined:
    __version__ = 1

    order_id = Identifier(required=True)
    agent_id = Identifier(required=True)
    reason = String()
    declined_at = DateTime(required=True)


@fulfillment.event(part_of="Order")
class OrderPickedUp:
    """The assigned agent collected the order from the sellers."""

    __version__ = 1

    order_id = Identifier(required=True)
    driver_id = Identifier(required=True)
    picked_up_at = DateTime(required=True)


@fulfillment.event(part_of="Order")
class StationReached:
    __version__ = 1

    order_id = Identifier(required=True)
    driver_id = Identifier(required=True)
    station = String()
    reached_at = DateTime(required=True)


@fulfillment.event(part_of="Order")
class OrderDelivered:
    """The order was handed over to the customer against proof."""

    __version__ = 1

    order_id = Identifier(required=True)
    driver_id = Identifier(required=True)
    proof_type = String(required=True)
    delivered_at = DateTime(required=True)


@fulfillment.event(part_of="Order")
class DeliveryIssueReported:
    __version__ = 1

    order_id = Identifier(required=True)
    driver_id = Identifier(required=True)
    issue_type = String(required=True)
    description = String()
    reported_at = DateTime(required=True)


@fulfillment.event(part_of="Order")
class OrderCancelled:
    """The order was cancelled before delivery, by the customer or an admin."""

    __version__ = 1

    order_id = Identifier(required=True)
    reason = String()
    cancelled_by = String(required=True)
    forced = Boolean(default=False)
    released_driver_id = String()
    cancelled_at = DateTime(required=True)


@fulfillment.event(part_of="Order")
class DeliveryOTPGenerated:
    __version__ = 1

    order_id = Identifier(required=True)
    expires_at = DateTime(required=True)
    generated_at = DateTime(required=True)


@fulfillment.event(part_of="Order")
class DeliveryOTPVerified:
    __version__ = 1

    order_id = Identifier(required=True)
    verified_at = DateTime(required=True)


@fulfillment.event(part_of="Order")
class PaymentStatusRecorded:
    __version__ = 1

    order_id = Identifier(required=True)
    payment_status = String(required=True)
    recorded_at = DateTime(required=True)
