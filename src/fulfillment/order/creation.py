"""Order placement: command and handler.

Checkout hands over a priced cart. Each line is attributed to the seller
that owns the product before the order is created.
"""

import json

import structlog
from protean import handle
from protean.exceptions import ValidationError
from protean.fields import Identifier, String, Text
from protean.utils.globals import current_domain

from fulfillment.catalog import get_product_directory
from fulfillment.domain import fulfillment
from fulfillment.order.order import Order, PaymentMethod

logger = structlog.get_logger(__name__)


@fulfillment.command(part_of="Order")
class PlaceOrder:
    """Create a new PENDING order from a checked-out cart."""

    customer_id = Identifier(required=True)
    items = Text(required=True)  # JSON list of item dicts
    delivery_info = Text(required=True)  # JSON dict
    totals = Text(required=True)  # JSON dict
    payment_method = String(required=True, max_length=20, choices=PaymentMethod)


def _load(value):
    return json.loads(value) if isinstance(value, str) else value


def resolve_sellers(items_data: list[dict]) -> list[dict]:
    """Attribute each line to the seller owning its product.

    A line naming a different seller than the directory knows is rejected.
    Lines for products the directory does not know keep their own seller.
    """
    directory = get_product_directory()
    resolved = []
    for item_data in items_data:
        item = dict(item_data)
        owner = directory.seller_of(str(item.get("product_id")))
        if owner:
            if item.get("seller_id") and str(item["seller_id"]) != owner:
                raise ValidationError(
                    {"items": [f"Seller {item['seller_id']} does not sell product {item['product_id']}"]}
                )
            item["seller_id"] = owner
        resolved.append(item)
    return resolved


@fulfillment.command_handler(part_of=Order)
class PlaceOrderHandler:
    @handle(PlaceOrder)
    def place_order(self, command):
        items_data = resolve_sellers(_load(command.items) or [])
        order = Order.create(
            customer_id=command.customer_id,
            items_data=items_data,
            delivery_info=_load(command.delivery_info),
            totals=_load(command.totals),
            payment_method=command.payment_method,
        )
        current_domain.repository_for(Order).add(order)
        logger.info(
            "Order placed",
            order_id=str(order.id),
            order_number=order.order_number,
            customer_id=command.customer_id,
            item_count=len(items_data),
        )
        return str(order.id)
