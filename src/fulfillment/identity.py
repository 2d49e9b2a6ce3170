"""The authenticated caller, as handed over by the authentication layer.

Credentials are verified before the core runs; what arrives here is always
one uniform shape regardless of where the identity was looked up. Seller,
customer and agent identities all resolve to an ``Actor``.
"""

from dataclasses import dataclass
from enum import Enum


class ActorRole(Enum):
    CUSTOMER = "Customer"
    SELLER = "Seller"
    DELIVERY_AGENT = "Delivery_Agent"
    ADMIN = "Admin"
    SYSTEM = "System"


@dataclass(frozen=True)
class Actor:
    actor_id: str
    role: ActorRole

    @property
    def is_admin(self) -> bool:
        return self.role == ActorRole.ADMIN

    @property
    def is_privileged(self) -> bool:
        """Admin override or an internal collaborator acting on its own."""
        return self.role in (ActorRole.ADMIN, ActorRole.SYSTEM)

    @classmethod
    def from_values(cls, actor_id: str, role: str) -> "Actor":
        """Rebuild an actor from the primitive fields commands carry."""
        return cls(actor_id=actor_id, role=ActorRole(role))


SYSTEM_ACTOR = Actor(actor_id="system", role=ActorRole.SYSTEM)
