"""Per-item fulfillment stages and the rollup over an order's items.

Each line item moves through its own stage, owned by the item's seller.
`compute_aggregate_status` condenses the stages of all items into the
order's fulfillment progress. It only ever reports progress; moving the
order's lifecycle status is left to explicit transitions.
"""

from collections.abc import Iterable
from enum import Enum

from fulfillment.identity import ActorRole
from fulfillment.utils.enums import parse_choice


class ItemStatus(Enum):
    PENDING = "Pending"
    ACCEPTED = "Accepted"
    PREPARING = "Preparing"
    READY = "Ready"
    DELIVERED = "Delivered"
    CANCELLED = "Cancelled"


class FulfillmentProgress(Enum):
    PARTIALLY_FULFILLED = "Partially_Fulfilled"
    FULFILLED = "Fulfilled"


ACTIVE_ITEM_STATUSES = frozenset({ItemStatus.ACCEPTED, ItemStatus.PREPARING, ItemStatus.READY})

CLOSED_ITEM_STATUSES = frozenset({ItemStatus.DELIVERED, ItemStatus.CANCELLED})

# Sellers may only touch their own items; admins may touch any
ITEM_STATUS_SETTERS = frozenset({ActorRole.SELLER, ActorRole.ADMIN})


def parse_item_status(value: str | ItemStatus) -> ItemStatus:
    return parse_choice(ItemStatus, value, "item_status")


def compute_aggregate_status(statuses: Iterable[str | ItemStatus]) -> FulfillmentProgress | None:
    """Roll item stages up into order progress.

    All items delivered is FULFILLED. Any item accepted, preparing or ready
    is PARTIALLY_FULFILLED. Anything else returns None, meaning the current
    progress stays as it is.
    """
    stages = [parse_item_status(s) for s in statuses]
    if stages and all(s == ItemStatus.DELIVERED for s in stages):
        return FulfillmentProgress.FULFILLED
    if any(s in ACTIVE_ITEM_STATUSES for s in stages):
        return FulfillmentProgress.PARTIALLY_FULFILLED
    return None
