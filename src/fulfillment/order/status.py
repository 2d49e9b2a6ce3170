"""Order status management: commands and handler.

Manual lifecycle moves by sellers, customers, admins and the payment
service. Which actor may request which status is decided here; whether the
move is legal from the current status is the aggregate's call. Going out
for delivery and delivering happen only through dispatch and the delivery
lifecycle.
"""

import structlog
from protean import handle
from protean.fields import Identifier, String
from protean.utils.globals import current_domain

from fulfillment.dispatch.dispatcher import release_agent
from fulfillment.domain import fulfillment
from fulfillment.errors import AuthorizationError, InvalidTransitionError
from fulfillment.identity import SYSTEM_ACTOR, Actor, ActorRole
from fulfillment.order.order import Order, OrderStatus, PaymentStatus
from fulfillment.utils.enums import parse_choice

logger = structlog.get_logger(__name__)

# Statuses a seller with at least one item in the order may set
_SELLER_STATUSES = {
    OrderStatus.CONFIRMED,
    OrderStatus.PREPARING,
    OrderStatus.READY_FOR_PICKUP,
    OrderStatus.REJECTED,
}

_DELIVERY_FLOW_STATUSES = {OrderStatus.OUT_FOR_DELIVERY, OrderStatus.DELIVERED}


def parse_order_status(value: str) -> OrderStatus:
    return parse_choice(OrderStatus, value, "status")


def assert_may_set_status(order: Order, actor: Actor, target: OrderStatus) -> None:
    if target in _DELIVERY_FLOW_STATUSES:
        raise InvalidTransitionError({"status": [f"{target.value} is only reached through the delivery flow"]})
    if actor.is_privileged:
        return
    if actor.role == ActorRole.SELLER and target in _SELLER_STATUSES and order.involves_seller(actor.actor_id):
        return
    if actor.role == ActorRole.CUSTOMER and target == OrderStatus.CANCELLED and actor.actor_id == str(order.customer_id):
        return
    raise AuthorizationError({"status": [f"Not allowed to move this order to {target.value}"]})


@fulfillment.command(part_of="Order")
class UpdateOrderStatus:
    order_id = Identifier(required=True)
    status = String(required=True, max_length=30)
    actor_id = String(required=True, max_length=255)
    actor_role = String(required=True, max_length=30, choices=ActorRole)
    note = String(max_length=500)


@fulfillment.command(part_of="Order")
class CancelOrder:
    """Cancel an order on behalf of its customer (or an admin)."""

    order_id = Identifier(required=True)
    actor_id = String(required=True, max_length=255)
    actor_role = String(required=True, max_length=30, choices=ActorRole)
    reason = String(max_length=500)


@fulfillment.command(part_of="Order")
class ForceCancelOrder:
    """Admin override: cancel an order at any point before delivery."""

    order_id = Identifier(required=True)
    actor_id = String(required=True, max_length=255)
    actor_role = String(required=True, max_length=30, choices=ActorRole)
    reason = String(required=True, max_length=500)


@fulfillment.command(part_of="Order")
class RecordPaymentStatus:
    """The payment service reports the outcome of a payment."""

    order_id = Identifier(required=True)
    payment_status = String(required=True, max_length=20, choices=PaymentStatus)


@fulfillment.command_handler(part_of=Order)
class OrderStatusHandler:
    @handle(UpdateOrderStatus)
    def update_status(self, command):
        actor = Actor.from_values(command.actor_id, command.actor_role)
        target = parse_order_status(command.status)

        repo = current_domain.repository_for(Order)
        order = repo.get(command.order_id)
        assert_may_set_status(order, actor, target)

        if target == OrderStatus.CANCELLED:
            released_driver_id = order.cancel(actor, reason=command.note)
        else:
            released_driver_id = order.transition_status(target, actor, note=command.note)
        repo.add(order)
        logger.info(
            "Order status updated",
            order_id=command.order_id,
            status=target.value,
            actor_id=actor.actor_id,
        )

        if released_driver_id:
            release_agent(command.order_id, released_driver_id)
        return order.status

    @handle(CancelOrder)
    def cancel_order(self, command):
        self._cancel(command, force=False)

    @handle(ForceCancelOrder)
    def force_cancel_order(self, command):
        self._cancel(command, force=True)

    def _cancel(self, command, force: bool):
        actor = Actor.from_values(command.actor_id, command.actor_role)
        repo = current_domain.repository_for(Order)
        order = repo.get(command.order_id)

        released_driver_id = order.cancel(actor, reason=command.reason, force=force)
        repo.add(order)
        logger.info(
            "Order cancelled",
            order_id=command.order_id,
            actor_id=actor.actor_id,
            forced=force,
            released_driver_id=released_driver_id,
        )

        if released_driver_id:
            release_agent(command.order_id, released_driver_id)

    @handle(RecordPaymentStatus)
    def record_payment_status(self, command):
        repo = current_domain.repository_for(Order)
        order = repo.get(command.order_id)
        order.record_payment_status(PaymentStatus(command.payment_status), SYSTEM_ACTOR)
        repo.add(order)
        logger.info("Payment status recorded", order_id=command.order_id, payment_status=command.payment_status)
        return order.status
