"""Fulfillment bounded context: order lifecycle, dispatch and delivery.

Drives a customer order from placement through per-item seller preparation,
delivery-agent assignment and OTP-confirmed handover, and keeps delivery
agents' earnings in step with completed deliveries. Uses CQRS: every write
is a command handled against an aggregate in a single unit of work.
"""

from protean.domain import Domain

from fulfillment.utils.logging import configure_logging

configure_logging()

fulfillment = Domain(name="fulfillment")
