"""Auth dependencies — bearer JWT validation and role enforcement.

Tokens are issued by the external identity service. The attendance API
trusts the ``sub`` (actor id) and ``role`` claims and does not re-authenticate.
"""

from __future__ import annotations

import uuid
from dataclasses import dataclass
from typing import Callable

from fastapi import Depends, Request
from fastapi.exceptions import HTTPException
from jose import ExpiredSignatureError, JWTError, jwt

from laborhub.common.constants import ActorRole, CreatorType
from laborhub.common.exceptions import ForbiddenException
from laborhub.config import settings

# Role hierarchy: each role implicitly includes lower roles
_ROLE_HIERARCHY: dict[ActorRole, set[ActorRole]] = {
    ActorRole.admin: {ActorRole.admin, ActorRole.manager, ActorRole.worker},
    ActorRole.manager: {ActorRole.manager, ActorRole.worker},
    ActorRole.worker: {ActorRole.worker},
}


@dataclass(frozen=True)
class Actor:
    """The authenticated caller of an interactive operation."""

    id: uuid.UUID
    role: ActorRole

    @property
    def creator_type(self) -> CreatorType:
        return CreatorType(self.role.value)

    @property
    def is_admin(self) -> bool:
        return self.role == ActorRole.admin


def _extract_bearer(request: Request) -> str:
    """Extract Bearer token from Authorization header."""
    auth_header = request.headers.get("Authorization")
    if not auth_header or not auth_header.startswith("Bearer "):
        raise HTTPException(status_code=401, detail="Missing or invalid Authorization header.")
    return auth_header[7:]


# ── Core dependency ─────────────────────────────────────────────────

async def get_current_actor(request: Request) -> Actor:
    """Validate the JWT and return the acting identity."""
    token = _extract_bearer(request)

    try:
        payload = jwt.decode(
            token,
            settings.JWT_SECRET,
            algorithms=[settings.JWT_ALGORITHM],
        )
    except ExpiredSignatureError:
        raise HTTPException(status_code=401, detail="Token has expired.")
    except JWTError:
        raise HTTPException(status_code=401, detail="Invalid token.")

    if payload.get("type", "access") != "access":
        raise HTTPException(status_code=401, detail="Invalid token type.")

    try:
        actor_id = uuid.UUID(str(payload["sub"]))
        role = ActorRole(payload.get("role"))
    except (KeyError, ValueError):
        raise HTTPException(status_code=401, detail="Token is missing a valid subject or role.")

    actor = Actor(id=actor_id, role=role)
    request.state.actor = actor
    return actor


# ── Role-based dependency ───────────────────────────────────────────

def require_role(*allowed_roles: ActorRole) -> Callable:
    """Return a FastAPI dependency that enforces role membership.

    Respects hierarchy — e.g. admin can access manager endpoints.
    """

    async def _check(actor: Actor = Depends(get_current_actor)) -> Actor:
        effective_roles = _ROLE_HIERARCHY.get(actor.role, {actor.role})
        if not effective_roles.intersection(set(allowed_roles)):
            raise ForbiddenException(
                detail=f"Role '{actor.role.value}' is not permitted. Required: {[r.value for r in allowed_roles]}.",
            )
        return actor

    return _check
