"""Failure categories surfaced by the fulfillment core.

Validation and not-found failures are Protean's own exceptions, re-exported
here so callers import every category from one place. The remaining
categories share `FulfillmentError`, which carries messages in the same
``{"field": ["message", ...]}`` shape Protean uses.
"""

from protean.exceptions import ObjectNotFoundError, ValidationError

NotFoundError = ObjectNotFoundError

__all__ = [
    "AuthorizationError",
    "ConflictError",
    "ExpiredError",
    "FulfillmentError",
    "InvalidTransitionError",
    "MismatchError",
    "NotFoundError",
    "OTPError",
    "ValidationError",
]


class FulfillmentError(Exception):
    def __init__(self, messages: dict[str, list[str]]):
        super().__init__(messages)
        self.messages = messages


class AuthorizationError(FulfillmentError):
    """The actor has no rights over the targeted order, item or agent."""


class ConflictError(FulfillmentError):
    """Lost a race for a shared resource. Safe to retry against fresh state."""


class InvalidTransitionError(FulfillmentError):
    """The requested status change is not an edge of the status graph."""


class OTPError(FulfillmentError):
    pass


class ExpiredError(OTPError):
    """No live delivery code: never generated, already used, or past expiry."""


class MismatchError(OTPError):
    """The submitted delivery code does not match the stored one."""
