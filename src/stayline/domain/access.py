"""Authorization context threaded through engine calls.

Identity and permission checks happen upstream; the engine only needs to
know which property the caller is scoped to and whether it acts as staff
(interactive dashboard) or as a service (public flow, payment callbacks).
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Literal

from stayline.domain.errors import NotFoundError

ContextKind = Literal["staff", "service"]


@dataclass(frozen=True)
class AuthContext:
    """Caller scope for a single engine call."""

    kind: ContextKind
    property_id: str | None = None
    actor_id: str | None = None

    @classmethod
    def staff(cls, property_id: str, actor_id: str | None = None) -> AuthContext:
        return cls(kind="staff", property_id=property_id, actor_id=actor_id)

    @classmethod
    def service(cls, property_id: str | None = None) -> AuthContext:
        return cls(kind="service", property_id=property_id)

    def ensure_property(self, property_id: str) -> None:
        """Reject calls for a property outside this context's scope.

        Staff contexts are always scoped. Service contexts may be unscoped
        (payment callbacks resolve the property from the booking).

        Raises:
            NotFoundError: Property is outside scope (reported as not found
                so existence is not leaked).
        """
        if self.kind == "service" and self.property_id is None:
            return
        if self.property_id != property_id:
            raise NotFoundError("property_not_found", {"property_id": property_id})
