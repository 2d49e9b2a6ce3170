"""Tests for Order creation, value objects and aggregate invariants."""

import re

import pytest
from fulfillment.identity import SYSTEM_ACTOR, Actor, ActorRole
from fulfillment.order.events import OrderPlaced, OrderStatusChanged, PaymentStatusRecorded
from fulfillment.order.order import (
    DeliveryInfo,
    Order,
    OrderStatus,
    OrderTotals,
    PaymentStatus,
)
from protean.exceptions import ObjectNotFoundError, ValidationError

ADMIN = Actor(actor_id="admin-1", role=ActorRole.ADMIN)


def _make_items():
    return [
        {"product_id": "prod-1", "seller_id": "seller-a", "name": "Veg Thali", "quantity": 2, "unit_price": 15000},
        {"product_id": "prod-2", "seller_id": "seller-b", "name": "Masala Chai", "quantity": 1, "unit_price": 8000},
    ]


def _make_delivery_info(**overrides):
    info = {
        "delivery_type": "Train",
        "contact_name": "Asha",
        "contact_phone": "9876543210",
        "train_no": "12951",
        "coach": "B4",
        "seat": "32",
        "station_name": "Vadodara Jn",
    }
    info.update(overrides)
    return info


def _make_totals():
    return {"subtotal": 38000, "tax": 1900, "delivery": 2000, "discount": 0, "final": 41900}


def _make_order(payment_method="UPI", items=None):
    return Order.create(
        customer_id="cust-001",
        items_data=items if items is not None else _make_items(),
        delivery_info=_make_delivery_info(),
        totals=_make_totals(),
        payment_method=payment_method,
    )


class TestOrderCreation:
    def test_create_sets_pending(self):
        order = _make_order()
        assert order.status == OrderStatus.PENDING.value
        assert order.fulfillment_progress is None
        assert order.assigned_driver_id is None

    def test_create_numbers_items_in_order(self):
        order = _make_order()
        assert sorted(i.position for i in order.items) == [1, 2]
        assert {i.seller_id for i in order.items} == {"seller-a", "seller-b"}

    def test_items_start_pending(self):
        order = _make_order()
        assert all(i.item_status == "Pending" for i in order.items)

    def test_order_number_format(self):
        order = _make_order()
        assert re.fullmatch(r"TF\d{13}[A-Z0-9]{5}", order.order_number)

    def test_order_numbers_are_distinct(self):
        assert _make_order().order_number != _make_order().order_number

    def test_create_stamps_placed_at(self):
        order = _make_order()
        assert order.timestamps.placed_at is not None
        assert order.milestones() == {"placed_at": order.timestamps.placed_at}

    def test_create_records_history(self):
        order = _make_order()
        entries = order.timeline()
        assert len(entries) == 1
        assert entries[0].status == OrderStatus.PENDING.value
        assert entries[0].actor_id == "cust-001"
        assert entries[0].note == "Order placed"

    def test_create_raises_order_placed(self):
        order = _make_order()
        events = [e for e in order._events if isinstance(e, OrderPlaced)]
        assert len(events) == 1
        assert events[0].order_number == order.order_number
        assert events[0].item_count == 2
        assert events[0].final_total == 41900

    def test_payment_starts_pending(self):
        order = _make_order(payment_method="COD")
        assert order.payment.method == "COD"
        assert order.payment.status == PaymentStatus.PENDING.value

    def test_empty_items_rejected(self):
        with pytest.raises(ValidationError) as exc:
            _make_order(items=[])
        assert "at least one item" in str(exc.value)

    def test_item_without_seller_rejected(self):
        items = [{"product_id": "prod-9", "quantity": 1, "unit_price": 100}]
        with pytest.raises(ValidationError) as exc:
            _make_order(items=items)
        assert "prod-9" in str(exc.value)

    def test_unknown_payment_method_rejected(self):
        with pytest.raises(ValidationError):
            _make_order(payment_method="Cheque")


class TestOrderQueries:
    def test_item_lookup(self):
        order = _make_order()
        item = order.items[0]
        assert order.item(str(item.id)).id == item.id

    def test_unknown_item_raises_not_found(self):
        order = _make_order()
        with pytest.raises(ObjectNotFoundError):
            order.item("missing")

    def test_involves_seller(self):
        order = _make_order()
        assert order.involves_seller("seller-a")
        assert not order.involves_seller("seller-z")

    def test_cash_on_delivery_for_cod(self):
        assert _make_order(payment_method="COD").cash_on_delivery() == 41900

    def test_no_cash_for_prepaid(self):
        assert _make_order(payment_method="Card").cash_on_delivery() == 0


class TestDeliveryInfo:
    def test_train_delivery_needs_train_number(self):
        with pytest.raises(ValidationError) as exc:
            DeliveryInfo(**_make_delivery_info(train_no=None))
        assert "train_no" in exc.value.messages

    def test_station_delivery_needs_station(self):
        with pytest.raises(ValidationError) as exc:
            DeliveryInfo(
                delivery_type="Station",
                contact_name="Asha",
                contact_phone="9876543210",
            )
        assert "station_name" in exc.value.messages

    def test_home_delivery_needs_address(self):
        with pytest.raises(ValidationError) as exc:
            DeliveryInfo(delivery_type="Home", contact_name="Asha", contact_phone="9876543210")
        assert "address" in exc.value.messages

    def test_home_delivery_with_address(self):
        info = DeliveryInfo(
            delivery_type="Home",
            contact_name="Asha",
            contact_phone="9876543210",
            address="12 MG Road, Pune",
        )
        assert info.address == "12 MG Road, Pune"

    def test_contact_is_required(self):
        with pytest.raises(ValidationError):
            DeliveryInfo(delivery_type="Station", station_name="Surat")


class TestOrderTotals:
    def test_final_must_add_up(self):
        with pytest.raises(ValidationError) as exc:
            OrderTotals(subtotal=1000, tax=50, delivery=2000, discount=0, final=999)
        assert "does not equal" in str(exc.value)

    def test_discount_is_subtracted(self):
        totals = OrderTotals(subtotal=10000, tax=500, delivery=2000, discount=1500, final=11000)
        assert totals.final == 11000

    def test_delivery_defaults(self):
        totals = OrderTotals(subtotal=1000, final=3000)
        assert totals.delivery == 2000

    def test_negative_amounts_rejected(self):
        with pytest.raises(ValidationError):
            OrderTotals(subtotal=-1, final=1999)


class TestDriverInvariant:
    def test_driver_cannot_be_set_on_pending_order(self):
        order = _make_order()
        with pytest.raises(ValidationError) as exc:
            order.assigned_driver_id = "agent-1"
        assert "assigned_driver_id" in exc.value.messages

    def test_driver_required_once_out_for_delivery(self):
        order = _make_order()
        order.transition_status(OrderStatus.CONFIRMED, ADMIN)
        order.transition_status(OrderStatus.PREPARING, ADMIN)
        order.transition_status(OrderStatus.READY_FOR_PICKUP, ADMIN)
        order.assign_driver("agent-1")
        with pytest.raises(ValidationError):
            order.assigned_driver_id = None


class TestStatusHistory:
    def test_every_transition_is_recorded(self):
        order = _make_order()
        order.transition_status(OrderStatus.CONFIRMED, ADMIN, note="Seller accepted")
        order.transition_status(OrderStatus.PREPARING, ADMIN)
        statuses = [e.status for e in order.timeline()]
        assert statuses == ["Pending", "Confirmed", "Preparing"]

    def test_history_keeps_actor_and_note(self):
        order = _make_order()
        order.transition_status(OrderStatus.CONFIRMED, ADMIN, note="Seller accepted")
        entry = order.timeline()[-1]
        assert entry.actor_id == "admin-1"
        assert entry.actor_role == "Admin"
        assert entry.note == "Seller accepted"

    def test_status_change_event(self):
        order = _make_order()
        order.transition_status(OrderStatus.CONFIRMED, ADMIN)
        events = [e for e in order._events if isinstance(e, OrderStatusChanged)]
        assert len(events) == 1
        assert events[0].from_status == "Pending"
        assert events[0].to_status == "Confirmed"


class TestPaymentStatus:
    def test_completed_payment_confirms_pending_order(self):
        order = _make_order()
        order.record_payment_status(PaymentStatus.COMPLETED, SYSTEM_ACTOR)
        assert order.payment.status == "Completed"
        assert order.status == OrderStatus.CONFIRMED.value

    def test_failed_payment_fails_pending_order(self):
        order = _make_order()
        order.record_payment_status(PaymentStatus.FAILED, SYSTEM_ACTOR)
        assert order.status == OrderStatus.FAILED_PAYMENT.value
        assert order.timestamps.payment_failed_at is not None

    def test_processing_only_stores_status(self):
        order = _make_order()
        order.record_payment_status(PaymentStatus.PROCESSING, SYSTEM_ACTOR)
        assert order.payment.status == "Processing"
        assert order.status == OrderStatus.PENDING.value

    def test_completed_payment_after_confirmation_keeps_status(self):
        order = _make_order()
        order.transition_status(OrderStatus.CONFIRMED, ADMIN)
        order.transition_status(OrderStatus.PREPARING, ADMIN)
        order.record_payment_status(PaymentStatus.COMPLETED, SYSTEM_ACTOR)
        assert order.status == OrderStatus.PREPARING.value

    def test_payment_method_is_kept(self):
        order = _make_order(payment_method="Wallet")
        order.record_payment_status(PaymentStatus.COMPLETED, SYSTEM_ACTOR)
        assert order.payment.method == "Wallet"

    def test_payment_event_raised(self):
        order = _make_order()
        order.record_payment_status(PaymentStatus.REFUNDED, SYSTEM_ACTOR)
        events = [e for e in order._events if isinstance(e, PaymentStatusRecorded)]
        assert events[-1].payment_status == "Refunded"
