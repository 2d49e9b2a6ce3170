"""Request identity: the authenticated caller as a FastAPI dependency.

The gateway in front of this service verifies credentials and forwards the
caller as two headers. They are turned into an `Actor` once, here.
"""

from fastapi import Depends, Header, HTTPException
from protean.exceptions import ValidationError

from fulfillment.identity import Actor, ActorRole
from fulfillment.utils.enums import parse_choice
from fulfillment.utils.logging import add_context


def current_actor(
    x_actor_id: str = Header(default=""),
    x_actor_role: str = Header(default=""),
) -> Actor:
    if not x_actor_id or not x_actor_role:
        raise HTTPException(status_code=401, detail="Missing actor identity")
    try:
        role = parse_choice(ActorRole, x_actor_role, "role")
    except ValidationError:
        raise HTTPException(status_code=401, detail=f"Unknown actor role '{x_actor_role}'") from None
    add_context(actor_id=x_actor_id, actor_role=role.value)
    return Actor(actor_id=x_actor_id, role=role)


def require_role(*roles: ActorRole):
    """Dependency factory admitting only the given roles."""

    def _dependency(actor: Actor = Depends(current_actor)) -> Actor:
        if actor.role not in roles:
            allowed = ", ".join(r.value for r in roles)
            raise HTTPException(status_code=403, detail=f"Requires role: {allowed}")
        return actor

    return _dependency
