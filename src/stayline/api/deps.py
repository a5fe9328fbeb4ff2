"""FastAPI dependencies producing the engine's AuthContext.

Identity is verified upstream; requests reach the engine already scoped
to a property. Dashboard routes act as staff, the public booking flow
acts as a property-scoped service.

Ids from the client are checked here before they reach a uuid column: a
malformed id is reported as not found, like an unknown one.
"""

from __future__ import annotations

import uuid

from fastapi import Header, Query

from stayline.api.errors import http_error
from stayline.domain.access import AuthContext
from stayline.domain.errors import NotFoundError


def is_uuid(value: object) -> bool:
    if not isinstance(value, str):
        return False
    try:
        uuid.UUID(value)
    except ValueError:
        return False
    return True


def require_id(value: str, reason_code: str) -> str:
    """Return value if it is a UUID, else raise a 404 HTTPException."""
    if not is_uuid(value):
        raise http_error(NotFoundError(reason_code))
    return value


def staff_context(
    property_id: str = Query(..., description="Property ID"),
    x_actor_id: str | None = Header(default=None),
) -> AuthContext:
    return AuthContext.staff(require_id(property_id, "property_not_found"), actor_id=x_actor_id)


def public_context(
    property_id: str = Query(..., description="Property ID"),
) -> AuthContext:
    return AuthContext.service(require_id(property_id, "property_not_found"))
