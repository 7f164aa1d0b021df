"""Explicit actor roles for operations that change schedules."""

from __future__ import annotations

import enum

from seva.errors import PermissionDenied


class ActorRole(str, enum.Enum):
    SYSTEM = "SYSTEM"  # scheduled jobs and internal callers
    ADMIN = "ADMIN"
    SECRETARY = "SECRETARY"


ALLOWED = {
    "auto_assign": {ActorRole.SYSTEM, ActorRole.ADMIN, ActorRole.SECRETARY},
    "assign": {ActorRole.SYSTEM, ActorRole.ADMIN, ActorRole.SECRETARY},
    "swap": {ActorRole.SYSTEM, ActorRole.ADMIN, ActorRole.SECRETARY},
    "override": {ActorRole.SYSTEM, ActorRole.ADMIN, ActorRole.SECRETARY},
    "create_booking": {ActorRole.SYSTEM, ActorRole.ADMIN, ActorRole.SECRETARY},
    "approve": {ActorRole.SYSTEM, ActorRole.ADMIN},
    "cancel": {ActorRole.SYSTEM, ActorRole.ADMIN},
    "expire": {ActorRole.SYSTEM, ActorRole.ADMIN},
}


def require(actor: ActorRole, action: str) -> None:
    """
    Raises:
        PermissionDenied: If `actor` is not a known role or may not perform `action`
    """
    try:
        role = ActorRole(actor)
    except ValueError:
        raise PermissionDenied(f"Unknown actor {actor!r}") from None
    if role not in ALLOWED[action]:
        raise PermissionDenied(f"{role.value} may not {action.replace('_', ' ')}")
