"""Delivery dispatch: the pool of ready orders and the claim protocol.

The order row decides who wins a claim. Claiming reads a ready, unassigned
order and writes it back with the version it was read at; the repository
applies that write only if the stored version still matches, so of several
agents racing for one order exactly one commit lands. Protean re-runs a
handler whose commit hit a version conflict, and on the re-run the loser
finds the order taken and gets a ConflictError. The agent's record is
written in the same unit of work; `SyncAgentAssignment` replays the agent
side if it ever falls behind.
"""

from collections.abc import Iterator
from datetime import UTC, datetime, timedelta

import structlog
from protean import handle
from protean.fields import Identifier, String
from protean.utils.globals import current_domain
from protean.utils.query import Q

from fulfillment import settings
from fulfillment.agent.agent import DeliveryAgent
from fulfillment.agent.earnings import EarningsLedger
from fulfillment.domain import fulfillment
from fulfillment.identity import Actor, ActorRole
from fulfillment.order.order import DRIVER_HELD_STATUSES, Order, OrderStatus

logger = structlog.get_logger(__name__)


class AvailableOrders:
    """Orders ready for pickup with no agent yet, oldest first.

    Iterating pages through the repository lazily, so a fresh iteration
    always reflects the current pool. Pages are keyed on the last
    ``(created_at, id)`` seen rather than an offset, so orders claimed while
    iterating never push unseen orders past the next page.
    """

    def __init__(self, page_size: int | None = None):
        self.page_size = page_size or settings.AVAILABLE_ORDERS_PAGE_SIZE

    def __iter__(self) -> Iterator[Order]:
        repo = current_domain.repository_for(Order)
        after = None
        while True:
            query = repo._dao.query.filter(status=OrderStatus.READY_FOR_PICKUP.value)
            if after is not None:
                created_at, order_id = after
                query = query.filter(Q(created_at__gt=created_at) | Q(created_at=created_at, id__gt=order_id))
            page = query.order_by(["created_at", "id"]).limit(self.page_size).all()

            for order in page.items:
                if not order.assigned_driver_id:
                    yield order
            if len(page.items) < self.page_size:
                return
            last = page.items[-1]
            after = (last.created_at, str(last.id))


def list_available(page_size: int | None = None) -> AvailableOrders:
    return AvailableOrders(page_size)


def release_agent(order_id: str, agent_id: str | None) -> None:
    """Free the agent of an order it no longer carries."""
    if not agent_id:
        return
    repo = current_domain.repository_for(DeliveryAgent)
    agent = repo.get(agent_id)
    if agent.release_assignment(order_id):
        repo.add(agent)
        logger.info("Agent released from order", agent_id=agent_id, order_id=order_id)


# ---------------------------------------------------------------------------
# Commands
# ---------------------------------------------------------------------------
@fulfillment.command(part_of="Order")
class ClaimOrder:
    """A delivery agent takes an unassigned, ready order."""

    order_id = Identifier(required=True)
    agent_id = Identifier(required=True)


@fulfillment.command(part_of="Order")
class DeclineOrder:
    order_id = Identifier(required=True)
    agent_id = Identifier(required=True)
    reason = String(max_length=500)


@fulfillment.command(part_of="Order")
class SyncAgentAssignment:
    """Bring an agent's record in line with what the order says.

    Replays the agent-side follow-up of a claim, a delivery or a
    cancellation. Running it any number of times has the effect of one.
    """

    order_id = Identifier(required=True)
    agent_id = Identifier(required=True)


# ---------------------------------------------------------------------------
# Handler
# ---------------------------------------------------------------------------
@fulfillment.command_handler(part_of=Order)
class DispatchHandler:
    @handle(ClaimOrder)
    def claim_order(self, command):
        order_id, agent_id = command.order_id, command.agent_id
        order_repo = current_domain.repository_for(Order)
        agent_repo = current_domain.repository_for(DeliveryAgent)

        order = order_repo.get(order_id)
        agent = agent_repo.get(agent_id)
        agent.assert_can_take(order_id)

        eta = datetime.now(UTC) + timedelta(minutes=settings.ESTIMATED_DELIVERY_MINUTES)
        if order.assign_driver(agent_id, eta):
            order_repo.add(order)
        if agent.take_assignment(order_id):
            agent_repo.add(agent)

        logger.info("Order claimed", order_id=order_id, agent_id=agent_id)
        return {
            "order_id": order_id,
            "agent_id": agent_id,
            "estimated_delivery_time": order.estimated_delivery_at,
        }

    @handle(DeclineOrder)
    def decline_order(self, command):
        current_domain.repository_for(DeliveryAgent).get(command.agent_id)

        repo = current_domain.repository_for(Order)
        order = repo.get(command.order_id)
        order.decline(Actor(actor_id=command.agent_id, role=ActorRole.DELIVERY_AGENT), command.reason)
        repo.add(order)
        logger.info("Order declined", order_id=command.order_id, agent_id=command.agent_id)

    @handle(SyncAgentAssignment)
    def sync_agent_assignment(self, command):
        order_id, agent_id = command.order_id, command.agent_id
        order = current_domain.repository_for(Order).get(order_id)
        status = OrderStatus(order.status)

        if str(order.assigned_driver_id or "") != agent_id or status not in DRIVER_HELD_STATUSES:
            release_agent(order_id, agent_id)
            return

        if status == OrderStatus.OUT_FOR_DELIVERY:
            repo = current_domain.repository_for(DeliveryAgent)
            agent = repo.get(agent_id)
            if agent.take_assignment(order_id):
                repo.add(agent)
                logger.info("Agent assignment synced", order_id=order_id, agent_id=agent_id)
            return

        EarningsLedger().record_delivery(agent_id, order_id, cash_collected=order.cash_on_delivery())
