"""Delivery agent registration and availability: commands and handler."""

import structlog
from protean import handle
from protean.fields import Boolean, Identifier, String
from protean.utils.globals import current_domain

from fulfillment.agent.agent import DeliveryAgent
from fulfillment.domain import fulfillment

logger = structlog.get_logger(__name__)


@fulfillment.command(part_of="DeliveryAgent")
class RegisterDeliveryAgent:
    """Onboard a new delivery agent. Agents start offline."""

    name = String(required=True, max_length=100)
    phone = String(required=True, max_length=20)
    email = String(max_length=254)
    vehicle_type = String(max_length=50)


@fulfillment.command(part_of="DeliveryAgent")
class SetAgentAvailability:
    agent_id = Identifier(required=True)
    is_available = Boolean(default=False)


@fulfillment.command_handler(part_of=DeliveryAgent)
class AgentRegistrationHandler:
    @handle(RegisterDeliveryAgent)
    def register_agent(self, command):
        agent = DeliveryAgent.register(
            name=command.name,
            phone=command.phone,
            email=command.email,
            vehicle_type=command.vehicle_type,
        )
        current_domain.repository_for(DeliveryAgent).add(agent)
        logger.info("Delivery agent registered", agent_id=str(agent.id))
        return str(agent.id)

    @handle(SetAgentAvailability)
    def set_availability(self, command):
        repo = current_domain.repository_for(DeliveryAgent)
        agent = repo.get(command.agent_id)
        agent.set_availability(command.is_available)
        repo.add(agent)
