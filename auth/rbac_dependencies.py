"""
Role-Based Access Control (RBAC) dependencies for FastAPI.
Provides reusable dependency functions to protect routes with role checks.
"""

from fastapi import Depends, Header
from sqlalchemy.orm import Session
from loguru import logger

from auth.access_control import Principal
from auth.auth_manager import auth_manager
from auth.roles import Operation, allowed_roles
from core.database import get_db
from core.exceptions import AuthenticationError, ForbiddenError

# ==================== DEPENDENCY FUNCTIONS ====================


def extract_bearer_token(authorization: str) -> str:
    if not authorization or not authorization.startswith("Bearer "):
        raise AuthenticationError("Authorization required")
    return authorization[len("Bearer "):].strip()


async def get_current_principal(
    authorization: str = Header(None),
    db: Session = Depends(get_db),
) -> Principal:
    """
    Dependency: Verify the bearer token and load the current principal.
    Deactivated accounts are rejected here, before any route logic runs.
    """
    token = extract_bearer_token(authorization)
    return auth_manager.authenticate(db, token)


def require_operation(operation: Operation):
    """
    Dependency factory: require the principal's role to be in the
    operation's declared allow-list.
    """
    permitted = allowed_roles(operation)

    async def _require_operation(
        principal: Principal = Depends(get_current_principal),
    ) -> Principal:
        if principal.role not in permitted:
            logger.warning(
                f"User {principal.id} ({principal.role.value}) attempted "
                f"{operation.value} without required role"
            )
            raise ForbiddenError("Insufficient access rights")
        return principal

    return _require_operation
