"""Delivery code (OTP): commands and handler.

The customer receives a six-digit code through the notification service and
reads it out to the agent at handover. The code is returned in plaintext
exactly once, from generation; only its salted hash is stored.
"""

import structlog
from protean import handle
from protean.fields import Identifier, String
from protean.utils.globals import current_domain

from fulfillment import settings
from fulfillment.domain import fulfillment
from fulfillment.identity import Actor, ActorRole
from fulfillment.order import otp
from fulfillment.order.order import Order

logger = structlog.get_logger(__name__)


@fulfillment.command(part_of="Order")
class GenerateDeliveryOTP:
    order_id = Identifier(required=True)
    actor_id = String(required=True, max_length=255)
    actor_role = String(required=True, max_length=30, choices=ActorRole)


@fulfillment.command(part_of="Order")
class VerifyDeliveryOTP:
    order_id = Identifier(required=True)
    otp = String(required=True, max_length=10)
    actor_id = String(required=True, max_length=255)
    actor_role = String(required=True, max_length=30, choices=ActorRole)


@fulfillment.command_handler(part_of=Order)
class DeliveryCodeHandler:
    @handle(GenerateDeliveryOTP)
    def generate_code(self, command):
        actor = Actor.from_values(command.actor_id, command.actor_role)
        repo = current_domain.repository_for(Order)
        order = repo.get(command.order_id)

        code = otp.generate_code()
        expires_at = order.issue_delivery_code(code, actor)
        repo.add(order)
        logger.info("Delivery code issued", order_id=command.order_id, expires_at=expires_at.isoformat())
        return {
            "otp": code,
            "expires_in_seconds": settings.OTP_TTL_SECONDS,
            "expires_at": expires_at,
        }

    @handle(VerifyDeliveryOTP)
    def verify_code(self, command):
        actor = Actor.from_values(command.actor_id, command.actor_role)
        repo = current_domain.repository_for(Order)
        order = repo.get(command.order_id)
        order.verify_delivery_code(command.otp, actor)
        repo.add(order)
        logger.info("Delivery code verified", order_id=command.order_id, actor_id=actor.actor_id)
        return True
