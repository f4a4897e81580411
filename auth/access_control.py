"""
Access decision engine.

Answers "can actor A act on a resource owned by user U?" in two phases:

1. ``can_access`` makes a provisional, store-free decision from the actor's
   role: ALLOW, DENY, or ALLOW_IF_MANAGER_OF(owner).
2. For the conditional case the caller reads the owner's *current*
   ``manager_id`` and calls ``resolve``; ``authorize_owner_access`` does both
   against the database.

Mutations are stricter than reads: only the owner or an admin may delete a
file, and only the owner may edit its description.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Optional

from sqlalchemy.orm import Session
from loguru import logger

from auth.roles import Role
from core.exceptions import ForbiddenError


@dataclass(frozen=True)
class Principal:
    """Authenticated actor as produced by the authenticator."""
    id: int
    role: Role
    is_active: bool = True
    name: Optional[str] = None
    email: Optional[str] = None

    @classmethod
    def from_user(cls, user) -> "Principal":
        return cls(
            id=user.id,
            role=Role(user.role),
            is_active=bool(user.is_active),
            name=user.name,
            email=user.email,
        )

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "email": self.email,
            "role": self.role.value,
            "is_active": self.is_active,
        }


class Outcome(str, Enum):
    ALLOW = "allow"
    ALLOW_IF_MANAGER_OF = "allow_if_manager_of"
    DENY = "deny"


@dataclass(frozen=True)
class AccessDecision:
    outcome: Outcome
    owner_id: Optional[int] = None

    @classmethod
    def allow(cls) -> "AccessDecision":
        return cls(Outcome.ALLOW)

    @classmethod
    def deny(cls) -> "AccessDecision":
        return cls(Outcome.DENY)

    @classmethod
    def allow_if_manager_of(cls, owner_id: int) -> "AccessDecision":
        return cls(Outcome.ALLOW_IF_MANAGER_OF, owner_id)

    @property
    def needs_manager_check(self) -> bool:
        return self.outcome is Outcome.ALLOW_IF_MANAGER_OF


def can_access(actor: Principal, target_owner_id: int) -> AccessDecision:
    """Provisional decision, evaluated in fixed priority order."""
    if actor.id == target_owner_id:
        return AccessDecision.allow()

    role = actor.role
    if role is Role.ADMIN:
        return AccessDecision.allow()
    if role is Role.MANAGER:
        return AccessDecision.allow_if_manager_of(target_owner_id)
    if role is Role.EDITOR:
        # Editors process documents across all clients
        return AccessDecision.allow()
    if role is Role.CLIENT:
        return AccessDecision.deny()

    raise ValueError(f"Unhandled role: {role!r}")


def resolve(decision: AccessDecision, actor: Principal, owner_manager_id: Optional[int]) -> bool:
    """Final decision once the owner's current manager assignment is known."""
    if decision.outcome is Outcome.ALLOW:
        return True
    if decision.outcome is Outcome.DENY:
        return False
    return owner_manager_id is not None and owner_manager_id == actor.id


def authorize_owner_access(db: Session, actor: Principal, owner_id: int) -> None:
    """
    Run both phases against the store.

    Raises:
        ForbiddenError: access denied, including a manager who is not the
            owner's assigned manager
    """
    from auth.repository import UserRepository

    decision = can_access(actor, owner_id)

    if decision.needs_manager_check:
        if not UserRepository.is_manager_of(db, manager_id=actor.id, client_id=owner_id):
            logger.warning(f"[ACCESS] Manager {actor.id} is not assigned to user {owner_id}")
            raise ForbiddenError("Access denied. User is not your assigned client.")
        return

    if not resolve(decision, actor, None):
        logger.warning(f"[ACCESS] {actor.role.value} {actor.id} denied access to user {owner_id}")
        raise ForbiddenError("Access denied")


def can_delete(actor: Principal, owner_id: int) -> bool:
    """Only the owner or an admin may delete."""
    return actor.id == owner_id or actor.role is Role.ADMIN


def can_update(actor: Principal, owner_id: int) -> bool:
    """Only the owner may edit; admin does not bypass this."""
    return actor.id == owner_id
