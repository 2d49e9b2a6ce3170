"""Delivery lifecycle: agent-driven progress of a claimed order.

Commands:
    UpdateDeliveryStatus  Picked_Up, Reached_Station or Delivered
    ReportDeliveryIssue   annotate the delivery without moving it

Every step must come from the order's assigned agent. Delivering settles
the agent's side of the order through the earnings ledger.
"""

import structlog
from protean import handle
from protean.fields import Identifier, String
from protean.utils.globals import current_domain

from fulfillment.agent.earnings import EarningsLedger
from fulfillment.domain import fulfillment
from fulfillment.errors import InvalidTransitionError
from fulfillment.identity import Actor, ActorRole
from fulfillment.order.order import DeliveryStage, Order, ProofType
from fulfillment.utils.enums import parse_choice

logger = structlog.get_logger(__name__)


@fulfillment.command(part_of="Order")
class UpdateDeliveryStatus:
    order_id = Identifier(required=True)
    agent_id = Identifier(required=True)
    status = String(required=True, max_length=30)
    station = String(max_length=100)
    proof_type = String(max_length=20)
    proof_reference = String(max_length=500)


@fulfillment.command(part_of="Order")
class ReportDeliveryIssue:
    order_id = Identifier(required=True)
    agent_id = Identifier(required=True)
    issue_type = String(required=True, max_length=50)
    description = String(max_length=500)


@fulfillment.command_handler(part_of=Order)
class DeliveryLifecycleHandler:
    @handle(UpdateDeliveryStatus)
    def update_delivery_status(self, command):
        actor = Actor(actor_id=command.agent_id, role=ActorRole.DELIVERY_AGENT)
        stage = parse_choice(DeliveryStage, command.status, "status")

        repo = current_domain.repository_for(Order)
        order = repo.get(command.order_id)

        if stage == DeliveryStage.PICKED_UP:
            order.mark_picked_up(actor)
        elif stage == DeliveryStage.REACHED_STATION:
            order.mark_station_reached(actor, station=command.station)
        elif stage == DeliveryStage.DELIVERED:
            order.mark_delivered(
                actor,
                proof_type=parse_choice(ProofType, command.proof_type, "proof_type"),
                proof_reference=command.proof_reference,
            )
        else:
            raise InvalidTransitionError({"status": [f"{stage.value} is not a delivery update"]})
        repo.add(order)
        logger.info("Delivery status updated", order_id=command.order_id, agent_id=command.agent_id, stage=stage.value)

        if stage == DeliveryStage.DELIVERED:
            EarningsLedger().record_delivery(
                command.agent_id,
                command.order_id,
                cash_collected=order.cash_on_delivery(),
            )

        return {
            "status": order.status,
            "delivery_stage": order.delivery_stage,
            "timestamps": order.milestones(),
        }

    @handle(ReportDeliveryIssue)
    def report_issue(self, command):
        actor = Actor(actor_id=command.agent_id, role=ActorRole.DELIVERY_AGENT)
        repo = current_domain.repository_for(Order)
        order = repo.get(command.order_id)
        order.report_issue(actor, command.issue_type, command.description)
        repo.add(order)
        logger.warning(
            "Delivery issue reported",
            order_id=command.order_id,
            agent_id=command.agent_id,
            issue_type=command.issue_type,
        )
