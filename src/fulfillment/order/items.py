"""Seller item updates: command and handler.

A seller moves the stage of their own line items. The item change and the
recomputed order progress are persisted together in one aggregate write,
so sellers working on sibling items never overwrite each other's rollup
with a stale one.
"""

import structlog
from protean import handle
from protean.fields import Identifier, String
from protean.utils.globals import current_domain

from fulfillment.domain import fulfillment
from fulfillment.identity import Actor, ActorRole
from fulfillment.order.order import Order

logger = structlog.get_logger(__name__)


@fulfillment.command(part_of="Order")
class UpdateItemStatus:
    order_id = Identifier(required=True)
    item_id = Identifier(required=True)
    item_status = String(required=True, max_length=20)
    actor_id = String(required=True, max_length=255)
    actor_role = String(required=True, max_length=30, choices=ActorRole)
    note = String(max_length=500)


@fulfillment.command_handler(part_of=Order)
class SellerItemHandler:
    @handle(UpdateItemStatus)
    def update_item_status(self, command):
        actor = Actor.from_values(command.actor_id, command.actor_role)
        repo = current_domain.repository_for(Order)
        order = repo.get(command.order_id)
        order.set_item_status(command.item_id, command.item_status, actor, note=command.note)
        repo.add(order)
        logger.info(
            "Item status updated",
            order_id=command.order_id,
            item_id=command.item_id,
            item_status=command.item_status,
            fulfillment_progress=order.fulfillment_progress,
        )
        return order.fulfillment_progress
