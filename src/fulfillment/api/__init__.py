"""Fulfillment HTTP API package."""

from fulfillment.api.errors import register_error_handlers
from fulfillment.api.routes import agent_router, delivery_router, order_router

__all__ = ["agent_router", "delivery_router", "order_router", "register_error_handlers"]
