"""
Manager assignment engine.

A client has at most one personal manager (``client.manager_id``), a manager
or admin may have many clients. New self-registered clients are assigned to
the least loaded active manager once; after that only an explicit reassign
changes the assignment.
"""

from typing import Optional

from sqlalchemy.orm import Session
from loguru import logger

from auth.repository import UserRepository
from auth.roles import MANAGER_ROLES, Role
from core.database import transaction
from core.exceptions import (
    InactiveManagerError, InvalidRoleError, InvalidTargetError, NotFoundError,
)
from core.models import User


def auto_assign_manager(db: Session) -> Optional[int]:
    """
    Pick a manager for a new client.

    Returns:
        id of the active manager/admin with the fewest clients (earliest
        account wins ties), or None when nobody qualifies
    """
    candidate = UserRepository.least_loaded_manager(db)
    if candidate is None:
        logger.info("[AUTO_ASSIGN] No active manager or admin available")
        return None

    logger.debug(f"[AUTO_ASSIGN] Selected manager {candidate.id} ({candidate.role.value})")
    return candidate.id


def reassign_manager(db: Session, client_id: int, new_manager_id: Optional[int]) -> User:
    """
    Replace (or clear, with ``None``) a client's manager.

    Validation and the update run in one transaction on locked rows so that
    the manager's role/active status cannot change between check and commit.

    Raises:
        NotFoundError: client or manager does not exist
        InvalidTargetError: target user is not a client
        InvalidRoleError: new manager is not a manager or admin
        InactiveManagerError: new manager is deactivated
    """
    with transaction(db, "reassign_manager"):
        client = UserRepository.get_by_id(db, client_id, for_update=True)
        if client is None:
            raise NotFoundError("User not found")
        if client.role is not Role.CLIENT:
            raise InvalidTargetError("Managers can only be assigned to clients")

        if new_manager_id is not None:
            manager = UserRepository.get_by_id(db, new_manager_id, for_update=True)
            if manager is None:
                raise NotFoundError("Manager not found")
            if manager.role not in MANAGER_ROLES:
                raise InvalidRoleError("Assigned manager must have role manager or admin")
            if not manager.is_active:
                raise InactiveManagerError("Assigned manager is deactivated")

        previous = client.manager_id
        client.manager_id = new_manager_id

    logger.info(
        f"[REASSIGN] Client {client_id} manager changed: {previous} -> {new_manager_id}"
    )
    return client
