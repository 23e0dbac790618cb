"""Closed role set and the capability checks every operation goes through."""
from dataclasses import dataclass
from enum import Enum

from supportdesk.core.exceptions import ForbiddenError


class Role(str, Enum):
    USER = "USER"
    AGENT = "AGENT"
    ADMIN = "ADMIN"


STAFF_ROLES = frozenset({Role.AGENT, Role.ADMIN})


@dataclass(frozen=True)
class Principal:
    """The already-authenticated caller: who they are and what role they hold."""

    user_id: str
    role: Role

    @property
    def is_staff(self) -> bool:
        return is_staff(self.role)


def is_staff(role: Role) -> bool:
    return role in STAFF_ROLES


def can_post_internal(role: Role) -> bool:
    return is_staff(role)


def can_view_internal(role: Role) -> bool:
    return is_staff(role)


def can_set_status(role: Role) -> bool:
    return is_staff(role)


def can_access_ticket(principal: Principal, requester_id: str) -> bool:
    # Requesters see their own tickets; staff see everything.
    return principal.is_staff or principal.user_id == requester_id


def require_staff(principal: Principal) -> Principal:
    if not principal.is_staff:
        raise ForbiddenError("Agent or admin access required")
    return principal


def require_admin(principal: Principal) -> Principal:
    if principal.role != Role.ADMIN:
        raise ForbiddenError("Admin access required")
    return principal
