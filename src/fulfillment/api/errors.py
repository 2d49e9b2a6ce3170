"""HTTP mapping of the fulfillment failure categories.

Each category maps to one status code and an `outcome` hint, so clients can
tell "try again" from "not allowed" from "rejected for good" without
parsing messages:

    retry        409  lost a race (claim) or a concurrent write
    not_allowed  403  the actor has no rights over the resource
    not_found    404  unknown order, item or agent
    rejected     400  invalid input or wrong OTP
                 410  OTP expired or never generated
                 422  illegal status transition
"""

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from protean.exceptions import ExpectedVersionError, ObjectNotFoundError, ValidationError

from fulfillment.errors import (
    AuthorizationError,
    ConflictError,
    ExpiredError,
    InvalidTransitionError,
    MismatchError,
)

_MAPPINGS = [
    (ConflictError, 409, "retry"),
    (ExpectedVersionError, 409, "retry"),
    (AuthorizationError, 403, "not_allowed"),
    (ObjectNotFoundError, 404, "not_found"),
    (InvalidTransitionError, 422, "rejected"),
    (ExpiredError, 410, "rejected"),
    (MismatchError, 400, "rejected"),
    (ValidationError, 400, "rejected"),
]


def _messages(exc: Exception):
    return getattr(exc, "messages", None) or str(exc)


def _handler(status_code: int, outcome: str):
    async def handle(request: Request, exc: Exception) -> JSONResponse:
        return JSONResponse(
            status_code=status_code,
            content={"error": _messages(exc), "outcome": outcome},
        )

    return handle


def register_error_handlers(app: FastAPI) -> None:
    for exc_class, status_code, outcome in _MAPPINGS:
        app.add_exception_handler(exc_class, _handler(status_code, outcome))
