"""Tests for per-item stages, the progress rollup and seller item authority."""

import pytest
from fulfillment.errors import AuthorizationError, InvalidTransitionError
from fulfillment.identity import Actor, ActorRole
from fulfillment.order.events import ItemStatusUpdated
from fulfillment.order.item_status import (
    FulfillmentProgress,
    ItemStatus,
    compute_aggregate_status,
    parse_item_status,
)
from fulfillment.order.order import Order, OrderStatus
from protean.exceptions import ObjectNotFoundError, ValidationError

SELLER_A = Actor(actor_id="seller-a", role=ActorRole.SELLER)
SELLER_B = Actor(actor_id="seller-b", role=ActorRole.SELLER)
ADMIN = Actor(actor_id="admin-1", role=ActorRole.ADMIN)


def _make_order():
    return Order.create(
        customer_id="cust-001",
        items_data=[
            {"product_id": "prod-1", "seller_id": "seller-a", "quantity": 1, "unit_price": 12000},
            {"product_id": "prod-2", "seller_id": "seller-b", "quantity": 1, "unit_price": 6000},
        ],
        delivery_info={
            "delivery_type": "Station",
            "contact_name": "Ravi",
            "contact_phone": "9123456780",
            "station_name": "Itarsi Jn",
        },
        totals={"subtotal": 18000, "delivery": 2000, "final": 20000},
        payment_method="COD",
    )


def _item_of(order, seller_id):
    return next(i for i in order.items if i.seller_id == seller_id)


class TestComputeAggregateStatus:
    def test_all_delivered_is_fulfilled(self):
        assert compute_aggregate_status(["Delivered", "Delivered"]) == FulfillmentProgress.FULFILLED

    def test_any_active_is_partially_fulfilled(self):
        assert compute_aggregate_status(["Pending", "Preparing"]) == FulfillmentProgress.PARTIALLY_FULFILLED

    @pytest.mark.parametrize("active", ["Accepted", "Preparing", "Ready"])
    def test_each_active_stage_counts(self, active):
        assert compute_aggregate_status(["Pending", active]) == FulfillmentProgress.PARTIALLY_FULFILLED

    def test_mixed_delivered_and_ready_is_partial(self):
        assert compute_aggregate_status(["Delivered", "Ready"]) == FulfillmentProgress.PARTIALLY_FULFILLED

    def test_all_pending_has_no_progress(self):
        assert compute_aggregate_status(["Pending", "Pending"]) is None

    def test_delivered_and_cancelled_has_no_progress(self):
        assert compute_aggregate_status(["Delivered", "Cancelled"]) is None

    def test_empty_list_has_no_progress(self):
        assert compute_aggregate_status([]) is None

    def test_accepts_enum_members(self):
        assert compute_aggregate_status([ItemStatus.DELIVERED]) == FulfillmentProgress.FULFILLED

    def test_unknown_stage_rejected(self):
        with pytest.raises(ValidationError):
            compute_aggregate_status(["Shipped"])


class TestParseItemStatus:
    def test_by_value(self):
        assert parse_item_status("Ready") == ItemStatus.READY

    def test_by_member_name(self):
        assert parse_item_status("preparing") == ItemStatus.PREPARING

    def test_unknown_lists_allowed_values(self):
        with pytest.raises(ValidationError) as exc:
            parse_item_status("Cooking")
        assert "Allowed" in str(exc.value)


class TestSetItemStatus:
    def test_seller_updates_own_item(self):
        order = _make_order()
        item = _item_of(order, "seller-a")
        order.set_item_status(str(item.id), "Preparing", SELLER_A, note="In the oven")
        assert item.item_status == "Preparing"
        assert item.item_note == "In the oven"

    def test_progress_follows_items(self):
        order = _make_order()
        order.set_item_status(str(_item_of(order, "seller-a").id), "Accepted", SELLER_A)
        assert order.fulfillment_progress == FulfillmentProgress.PARTIALLY_FULFILLED.value

    def test_progress_never_moves_order_status(self):
        order = _make_order()
        order.set_item_status(str(_item_of(order, "seller-a").id), "Delivered", SELLER_A)
        order.set_item_status(str(_item_of(order, "seller-b").id), "Delivered", SELLER_B)
        assert order.fulfillment_progress == FulfillmentProgress.FULFILLED.value
        assert order.status == OrderStatus.PENDING.value

    def test_neutral_rollup_keeps_previous_progress(self):
        order = _make_order()
        item = _item_of(order, "seller-a")
        order.set_item_status(str(item.id), "Accepted", SELLER_A)
        order.set_item_status(str(item.id), "Pending", SELLER_A)
        assert order.fulfillment_progress == FulfillmentProgress.PARTIALLY_FULFILLED.value

    def test_seller_cannot_touch_other_sellers_item(self):
        order = _make_order()
        item_b = _item_of(order, "seller-b")
        with pytest.raises(AuthorizationError):
            order.set_item_status(str(item_b.id), "Ready", SELLER_A)
        assert item_b.item_status == "Pending"

    def test_admin_may_update_any_item(self):
        order = _make_order()
        item_b = _item_of(order, "seller-b")
        order.set_item_status(str(item_b.id), "Ready", ADMIN)
        assert item_b.item_status == "Ready"

    def test_customer_cannot_update_items(self):
        order = _make_order()
        customer = Actor(actor_id="cust-001", role=ActorRole.CUSTOMER)
        with pytest.raises(AuthorizationError):
            order.set_item_status(str(order.items[0].id), "Ready", customer)

    def test_unknown_item(self):
        order = _make_order()
        with pytest.raises(ObjectNotFoundError):
            order.set_item_status("no-such-item", "Ready", SELLER_A)

    def test_unknown_stage(self):
        order = _make_order()
        with pytest.raises(ValidationError):
            order.set_item_status(str(_item_of(order, "seller-a").id), "Cooking", SELLER_A)

    def test_items_frozen_once_order_is_terminal(self):
        order = _make_order()
        order.transition_status(OrderStatus.REJECTED, ADMIN)
        with pytest.raises(InvalidTransitionError):
            order.set_item_status(str(_item_of(order, "seller-a").id), "Ready", SELLER_A)

    def test_event_carries_progress(self):
        order = _make_order()
        item = _item_of(order, "seller-a")
        order.set_item_status(str(item.id), "Ready", SELLER_A)
        events = [e for e in order._events if isinstance(e, ItemStatusUpdated)]
        assert len(events) == 1
        assert events[0].seller_id == "seller-a"
        assert events[0].item_status == "Ready"
        assert events[0].fulfillment_progress == FulfillmentProgress.PARTIALLY_FULFILLED.value
