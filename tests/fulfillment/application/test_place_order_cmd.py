"""Application tests for order placement via domain.process()."""

import json

import pytest
from fulfillment.catalog import get_product_directory
from fulfillment.order.creation import PlaceOrder
from fulfillment.order.order import Order, OrderStatus
from protean import current_domain
from protean.exceptions import ValidationError


def _items(*entries):
    return json.dumps(list(entries))


def _place_order(items=None, **overrides):
    data = {
        "customer_id": "cust-001",
        "items": items
        or _items({"product_id": "prod-1", "seller_id": "seller-a", "name": "Paneer Roll", "quantity": 2, "unit_price": 9000}),
        "delivery_info": json.dumps(
            {
                "delivery_type": "Train",
                "contact_name": "Nisha",
                "contact_phone": "9700000001",
                "train_no": "12009",
                "coach": "C2",
                "seat": "45",
            }
        ),
        "totals": json.dumps({"subtotal": 18000, "tax": 900, "delivery": 2000, "final": 20900}),
        "payment_method": "UPI",
    }
    data.update(overrides)
    return current_domain.process(PlaceOrder(**data), asynchronous=False)


class TestPlaceOrder:
    def test_returns_persisted_order_id(self):
        order_id = _place_order()
        order = current_domain.repository_for(Order).get(order_id)
        assert order.status == OrderStatus.PENDING.value
        assert order.customer_id == "cust-001"
        assert order.totals.final == 20900

    def test_items_persisted_with_seller(self):
        order_id = _place_order()
        order = current_domain.repository_for(Order).get(order_id)
        assert len(order.items) == 1
        assert order.items[0].seller_id == "seller-a"
        assert order.items[0].name == "Paneer Roll"

    def test_history_persisted(self):
        order_id = _place_order()
        order = current_domain.repository_for(Order).get(order_id)
        assert [e.status for e in order.timeline()] == ["Pending"]

    def test_order_placed_event_stored(self):
        _place_order()

        messages = current_domain.event_store.store.read("fulfillment::order")
        placed_events = [
            m
            for m in messages
            if m.metadata and m.metadata.headers and m.metadata.headers.type == "Fulfillment.OrderPlaced.v1"
        ]
        assert len(placed_events) >= 1

    def test_invalid_totals_rejected(self):
        with pytest.raises(ValidationError):
            _place_order(totals=json.dumps({"subtotal": 18000, "final": 1}))

    def test_missing_delivery_details_rejected(self):
        with pytest.raises(ValidationError):
            _place_order(
                delivery_info=json.dumps(
                    {"delivery_type": "Home", "contact_name": "Nisha", "contact_phone": "9700000001"}
                )
            )


class TestSellerResolution:
    def test_known_product_inherits_seller(self):
        get_product_directory().register("prod-7", "seller-z")
        order_id = _place_order(items=_items({"product_id": "prod-7", "quantity": 1, "unit_price": 18000}))
        order = current_domain.repository_for(Order).get(order_id)
        assert order.items[0].seller_id == "seller-z"

    def test_known_product_with_matching_seller(self):
        get_product_directory().register("prod-7", "seller-z")
        order_id = _place_order(
            items=_items({"product_id": "prod-7", "seller_id": "seller-z", "quantity": 1, "unit_price": 18000})
        )
        assert current_domain.repository_for(Order).get(order_id).items[0].seller_id == "seller-z"

    def test_known_product_with_wrong_seller_rejected(self):
        get_product_directory().register("prod-7", "seller-z")
        with pytest.raises(ValidationError) as exc:
            _place_order(
                items=_items({"product_id": "prod-7", "seller_id": "seller-a", "quantity": 1, "unit_price": 18000})
            )
        assert "does not sell" in str(exc.value)

    def test_unknown_product_without_seller_rejected(self):
        with pytest.raises(ValidationError) as exc:
            _place_order(items=_items({"product_id": "prod-404", "quantity": 1, "unit_price": 18000}))
        assert "prod-404" in str(exc.value)

    def test_multi_seller_order(self):
        directory = get_product_directory()
        directory.register("prod-1", "seller-a")
        directory.register("prod-2", "seller-b")
        order_id = _place_order(
            items=_items(
                {"product_id": "prod-1", "quantity": 1, "unit_price": 10000},
                {"product_id": "prod-2", "quantity": 1, "unit_price": 8000},
            )
        )
        order = current_domain.repository_for(Order).get(order_id)
        assert {i.seller_id for i in order.items} == {"seller-a", "seller-b"}
