"""Operational constants, overridable through the environment."""

import os

# Flat per-delivery fee credited to the agent, in minor currency units
DELIVERY_FEE = int(os.getenv("DELIVERY_FEE_MINOR", "3000"))

OTP_TTL_SECONDS = int(os.getenv("OTP_TTL_SECONDS", "600"))

ESTIMATED_DELIVERY_MINUTES = int(os.getenv("ESTIMATED_DELIVERY_MINUTES", "45"))

AVAILABLE_ORDERS_PAGE_SIZE = int(os.getenv("AVAILABLE_ORDERS_PAGE_SIZE", "50"))
