"""An agent's own view: the orders it has carried and a dashboard summary."""

from datetime import UTC, date, datetime
from enum import Enum

from protean.utils.globals import current_domain

from fulfillment.agent.agent import Assignment, AssignmentOutcome, DeliveryAgent
from fulfillment.dispatch.dispatcher import list_available
from fulfillment.order.order import Order, OrderStatus
from fulfillment.utils.enums import parse_choice


class DeliveryPeriod(Enum):
    TODAY = "today"
    ALL = "all"


def _day_of(moment: datetime | None) -> date | None:
    if moment is None:
        return None
    if moment.tzinfo is not None:
        moment = moment.astimezone(UTC)
    return moment.date()


def my_deliveries(
    agent_id: str,
    status=None,
    period=None,
    on: date | None = None,
) -> list[tuple[Assignment, Order]]:
    """Orders the agent has been assigned, newest assignment first.

    `status` filters on the order's current status. A `period` of ``today``
    keeps only orders assigned on `on` (UTC today by default).
    """
    status = parse_choice(OrderStatus, status, "status")
    period = parse_choice(DeliveryPeriod, period, "period") or DeliveryPeriod.ALL
    on = on or datetime.now(UTC).date()

    agent = current_domain.repository_for(DeliveryAgent).get(agent_id)
    assignments = sorted(agent.assignments or [], key=lambda a: a.assigned_at, reverse=True)
    if period == DeliveryPeriod.TODAY:
        assignments = [a for a in assignments if _day_of(a.assigned_at) == on]

    order_repo = current_domain.repository_for(Order)
    deliveries = []
    for assignment in assignments:
        order = order_repo.get(assignment.order_id)
        if status is not None and OrderStatus(order.status) != status:
            continue
        deliveries.append((assignment, order))
    return deliveries


def dashboard(agent_id: str, on: date | None = None) -> dict:
    on = on or datetime.now(UTC).date()
    agent = current_domain.repository_for(DeliveryAgent).get(agent_id)

    active_order = None
    if agent.active_order_id:
        active_order = current_domain.repository_for(Order).get(agent.active_order_id)

    delivered_today = sum(
        1
        for a in agent.assignments or []
        if a.outcome == AssignmentOutcome.DELIVERED.value and _day_of(a.closed_at) == on
    )
    return {
        "agent": agent,
        "todays_earnings": agent.todays_earnings(on=on),
        "active_order": active_order,
        "delivered_today": delivered_today,
        "available_orders": sum(1 for _ in list_available()),
    }
