"""Earnings ledger: credits agents for completed deliveries."""

import structlog
from protean.utils.globals import current_domain

from fulfillment import settings
from fulfillment.agent.agent import AssignmentOutcome, DeliveryAgent

logger = structlog.get_logger(__name__)


class EarningsLedger:
    """Settles a delivered order on the agent's record.

    Closing the agent's active delivery and crediting the fee happen on one
    load of the agent, so both land in the same write. Crediting is keyed
    by order id: replaying a settlement never pays twice.
    """

    def __init__(self, fee: int | None = None):
        self.fee = settings.DELIVERY_FEE if fee is None else fee

    def record_delivery(self, agent_id: str, order_id: str, cash_collected: int = 0) -> bool:
        """Returns True when the fee was credited by this call."""
        repo = current_domain.repository_for(DeliveryAgent)
        agent = repo.get(agent_id)

        agent.close_assignment(order_id, AssignmentOutcome.DELIVERED)
        credited = agent.credit_delivery(order_id, self.fee, cash_collected=cash_collected)
        repo.add(agent)

        if credited:
            logger.info(
                "Delivery credited",
                agent_id=agent_id,
                order_id=order_id,
                amount=self.fee,
                cash_collected=cash_collected,
            )
        else:
            logger.info("Delivery already credited", agent_id=agent_id, order_id=order_id)
        return credited
