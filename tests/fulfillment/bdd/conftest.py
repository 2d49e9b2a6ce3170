"""Shared BDD fixtures and step definitions for order fulfillment."""

import pytest
from fulfillment.errors import (
    AuthorizationError,
    ConflictError,
    ExpiredError,
    InvalidTransitionError,
    MismatchError,
)
from fulfillment.identity import Actor, ActorRole
from fulfillment.order.events import (
    DeliveryOTPGenerated,
    DeliveryOTPVerified,
    ItemStatusUpdated,
    OrderAccepted,
    OrderCancelled,
    OrderDelivered,
    OrderPickedUp,
    OrderPlaced,
    OrderStatusChanged,
)
from fulfillment.order.order import Order, OrderStatus
from protean.exceptions import ValidationError
from pytest_bdd import given, parsers, then

_ORDER_EVENT_CLASSES = {
    "OrderPlaced": OrderPlaced,
    "OrderStatusChanged": OrderStatusChanged,
    "ItemStatusUpdated": ItemStatusUpdated,
    "OrderAccepted": OrderAccepted,
    "OrderPickedUp": OrderPickedUp,
    "OrderDelivered": OrderDelivered,
    "OrderCancelled": OrderCancelled,
    "DeliveryOTPGenerated": DeliveryOTPGenerated,
    "DeliveryOTPVerified": DeliveryOTPVerified,
}

_ERROR_CLASSES = {
    "validation": ValidationError,
    "invalid transition": InvalidTransitionError,
    "authorization": AuthorizationError,
    "conflict": ConflictError,
    "expired code": ExpiredError,
    "code mismatch": MismatchError,
}

ADMIN = Actor(actor_id="admin-1", role=ActorRole.ADMIN)
CUSTOMER = Actor(actor_id="cust-bdd", role=ActorRole.CUSTOMER)
AGENT = Actor(actor_id="agent-bdd", role=ActorRole.DELIVERY_AGENT)


def make_order(sellers=("seller-a",)):
    return Order.create(
        customer_id=CUSTOMER.actor_id,
        items_data=[
            {"product_id": f"prod-{n}", "seller_id": seller, "quantity": 1, "unit_price": 10000}
            for n, seller in enumerate(sellers, start=1)
        ],
        delivery_info={
            "delivery_type": "Train",
            "contact_name": "Rohan",
            "contact_phone": "9800000099",
            "train_no": "12951",
            "coach": "B3",
            "seat": "21",
            "station_name": "Ratlam Jn",
        },
        totals={
            "subtotal": 10000 * len(sellers),
            "delivery": 2000,
            "final": 10000 * len(sellers) + 2000,
        },
        payment_method="COD",
    )


def _ready(order):
    for status in (OrderStatus.CONFIRMED, OrderStatus.PREPARING, OrderStatus.READY_FOR_PICKUP):
        order.transition_status(status, ADMIN)
    return order


@pytest.fixture()
def error():
    """Container for captured domain errors."""
    return {"exc": None}


# ---------------------------------------------------------------------------
# Given steps
# ---------------------------------------------------------------------------
@given("a pending order", target_fixture="order")
def pending_order():
    order = make_order()
    order._events.clear()
    return order


@given(
    parsers.cfparse('a pending order with items from "{first}" and "{second}"'),
    target_fixture="order",
)
def pending_multi_seller_order(first, second):
    order = make_order(sellers=(first, second))
    order._events.clear()
    return order


@given("an order ready for pickup", target_fixture="order")
def ready_order():
    order = _ready(make_order())
    order._events.clear()
    return order


@given("an order out for delivery", target_fixture="order")
def out_for_delivery_order():
    order = _ready(make_order())
    order.assign_driver(AGENT.actor_id)
    order._events.clear()
    return order


@given("an order picked up by the agent", target_fixture="order")
def picked_up_order():
    order = _ready(make_order())
    order.assign_driver(AGENT.actor_id)
    order.mark_picked_up(AGENT)
    order._events.clear()
    return order


@given("a delivered order", target_fixture="order")
def delivered_order():
    order = _ready(make_order())
    order.assign_driver(AGENT.actor_id)
    order.mark_picked_up(AGENT)
    order.issue_delivery_code("123456", AGENT)
    order.verify_delivery_code("123456", AGENT)
    order.mark_delivered(AGENT)
    order._events.clear()
    return order


# ---------------------------------------------------------------------------
# Then steps
# ---------------------------------------------------------------------------
@then(parsers.cfparse('the order status is "{status}"'))
def order_status_is(order, status):
    assert order.status == status


@then(parsers.cfparse('the order progress is "{progress}"'))
def order_progress_is(order, progress):
    assert order.fulfillment_progress == progress


@then("the order has no progress yet")
def order_has_no_progress(order):
    assert order.fulfillment_progress is None


@then(parsers.cfparse("the order action fails with an {kind} error"))
@then(parsers.cfparse("the order action fails with a {kind} error"))
def order_action_fails(error, kind):
    assert error["exc"] is not None, f"Expected {kind} error but none was raised"
    assert isinstance(error["exc"], _ERROR_CLASSES[kind]), f"Got {type(error['exc']).__name__}"


@then(parsers.cfparse("a {event_type} event is raised"))
@then(parsers.cfparse("an {event_type} event is raised"))
def order_event_raised(order, event_type):
    event_cls = _ORDER_EVENT_CLASSES[event_type]
    assert any(
        isinstance(e, event_cls) for e in order._events
    ), f"No {event_type} event found. Events: {[type(e).__name__ for e in order._events]}"


@then(parsers.cfparse('the cancellation reason is "{reason}"'))
def cancellation_reason_is(order, reason):
    assert order.cancellation_reason == reason


@then("the order has no assigned driver")
def order_has_no_driver(order):
    assert order.assigned_driver_id is None
