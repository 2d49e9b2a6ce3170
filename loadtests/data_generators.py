"""Faker-based data generators for Locust load test scenarios.

Each generator produces payloads that pass the fulfillment validation rules
(delivery details per delivery type, totals that add up) and match the
field names expected by the API's Pydantic request schemas.
"""

import random
import uuid

from faker import Faker

fake = Faker("en_IN")

STATIONS = [
    "New Delhi",
    "Mumbai Central",
    "Howrah Jn",
    "Chennai Central",
    "Bhopal Jn",
    "Nagpur Jn",
    "Vijayawada Jn",
    "Itarsi Jn",
]

SELLERS = [f"seller-lt-{n:02d}" for n in range(1, 11)]


# ---------- Identity headers ----------


def actor_headers(actor_id: str, role: str) -> dict:
    """Headers the gateway forwards for an authenticated caller."""
    return {"X-Actor-Id": actor_id, "X-Actor-Role": role}


def customer_id() -> str:
    return f"cust-lt-{uuid.uuid4().hex[:8]}"


def valid_phone() -> str:
    """Ten-digit mobile number starting 6-9."""
    return f"{random.randint(6, 9)}{random.randint(0, 999_999_999):09d}"


# ---------- Orders ----------


def delivery_info_data(delivery_type: str | None = None) -> dict:
    """DeliveryInfoRequest payload carrying the details its type requires."""
    delivery_type = delivery_type or random.choice(["Train", "Train", "Station", "Home"])
    info = {
        "delivery_type": delivery_type,
        "contact_name": fake.name()[:100],
        "contact_phone": valid_phone(),
    }
    if delivery_type == "Train":
        info.update(
            {
                "train_no": str(random.randint(12001, 22999)),
                "coach": random.choice(["S", "B", "A"]) + str(random.randint(1, 9)),
                "seat": str(random.randint(1, 72)),
                "station_name": random.choice(STATIONS),
            }
        )
    elif delivery_type == "Station":
        info.update({"station_name": random.choice(STATIONS), "platform": str(random.randint(1, 12))})
    else:
        info.update({"address": fake.address()[:500], "landmark": fake.street_name()[:200]})
    return info


def order_items_data(sellers: list[str] | None = None) -> list[dict]:
    """1-3 line items, each naming its seller."""
    sellers = sellers or random.sample(SELLERS, k=random.randint(1, 3))
    return [
        {
            "product_id": f"prod-lt-{uuid.uuid4().hex[:6]}",
            "seller_id": seller,
            "name": fake.word().capitalize(),
            "quantity": random.randint(1, 3),
            "unit_price": random.randint(50, 400) * 100,
        }
        for seller in sellers
    ]


def order_data(sellers: list[str] | None = None, payment_method: str | None = None) -> dict:
    """PlaceOrderRequest payload with consistent totals."""
    items = order_items_data(sellers)
    subtotal = sum(item["quantity"] * item["unit_price"] for item in items)
    tax = subtotal // 20
    delivery = 2000
    return {
        "items": items,
        "delivery_info": delivery_info_data(),
        "totals": {"subtotal": subtotal, "tax": tax, "delivery": delivery, "final": subtotal + tax + delivery},
        "payment_method": payment_method or random.choice(["COD", "UPI", "Card"]),
    }


# ---------- Agents ----------


def agent_data() -> dict:
    """RegisterAgentRequest payload."""
    return {
        "name": fake.name()[:100],
        "phone": valid_phone(),
        "vehicle_type": random.choice(["Bike", "Scooter", "Cycle"]),
    }


def issue_data() -> dict:
    return {
        "issue_type": random.choice(["Train delayed", "Customer unreachable", "Platform changed"]),
        "description": fake.sentence()[:500],
    }
