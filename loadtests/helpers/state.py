"""Per-user state tracking for Locust load test scenarios.

Each Locust user instance maintains its own state with no cross-user sharing.
State tracks entity IDs returned by creation endpoints so follow-up
operations can reference them.
"""

from dataclasses import dataclass, field


@dataclass
class OrderState:
    """Tracks state for a single simulated order lifecycle."""

    order_id: str | None = None
    customer_id: str | None = None
    seller_ids: list[str] = field(default_factory=list)
    item_ids: dict[str, str] = field(default_factory=dict)
    current_status: str = "Pending"


@dataclass
class AgentState:
    """Tracks a delivery agent across claim attempts."""

    agent_id: str | None = None
    active_order_id: str | None = None
    customer_id: str | None = None
    claims_won: int = 0
    claims_lost: int = 0
