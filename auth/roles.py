"""
Role model and per-operation allow-lists.

Roles are a closed set. Rank exists for display and ordering only; no
permission is ever derived from comparing ranks. Every guarded operation
declares its own explicit set of allowed roles.
"""

from enum import Enum
from typing import Dict, FrozenSet

from core.exceptions import InvalidRoleError, SelfModificationError


class Role(str, Enum):
    ADMIN = "admin"
    MANAGER = "manager"
    EDITOR = "editor"
    CLIENT = "client"


ROLE_RANK: Dict[Role, int] = {
    Role.ADMIN: 4,
    Role.MANAGER: 3,
    Role.EDITOR: 2,
    Role.CLIENT: 1,
}

# Roles a client may be assigned to as personal manager
MANAGER_ROLES: FrozenSet[Role] = frozenset({Role.MANAGER, Role.ADMIN})

# Roles a manager is not allowed to grant when creating accounts
MANAGER_CREATION_BLOCKLIST: FrozenSet[Role] = frozenset({Role.ADMIN, Role.MANAGER})


class Operation(str, Enum):
    """Operations guarded by a role allow-list."""
    LIST_USERS = "list_users"
    CREATE_USER = "create_user"
    CHANGE_ROLE = "change_role"
    CHANGE_STATUS = "change_status"
    REASSIGN_MANAGER = "reassign_manager"
    SET_CREDITS = "set_credits"
    UPLOAD_FILE = "upload_file"
    LIST_OWN_FILES = "list_own_files"
    READ_FILE = "read_file"
    UPDATE_FILE = "update_file"
    DELETE_FILE = "delete_file"
    LIST_USER_FILES = "list_user_files"
    LIST_CLIENTS = "list_clients"


_ALL_ROLES = frozenset(Role)
_STAFF = frozenset({Role.ADMIN, Role.MANAGER})
_DOCUMENT_STAFF = frozenset({Role.ADMIN, Role.MANAGER, Role.EDITOR})

ALLOWED_ROLES: Dict[Operation, FrozenSet[Role]] = {
    Operation.LIST_USERS: _STAFF,
    Operation.CREATE_USER: _STAFF,
    Operation.CHANGE_ROLE: frozenset({Role.ADMIN}),
    Operation.CHANGE_STATUS: frozenset({Role.ADMIN}),
    Operation.REASSIGN_MANAGER: _STAFF,
    Operation.SET_CREDITS: _STAFF,
    # File endpoints are open to every role; ownership and the access
    # decision engine narrow them per resource.
    Operation.UPLOAD_FILE: _ALL_ROLES,
    Operation.LIST_OWN_FILES: _ALL_ROLES,
    Operation.READ_FILE: _ALL_ROLES,
    Operation.UPDATE_FILE: _ALL_ROLES,
    Operation.DELETE_FILE: _ALL_ROLES,
    Operation.LIST_USER_FILES: _DOCUMENT_STAFF,
    Operation.LIST_CLIENTS: _DOCUMENT_STAFF,
}

_missing = set(Operation) - set(ALLOWED_ROLES)
if _missing:
    raise RuntimeError(f"Operations without an allow-list: {sorted(op.value for op in _missing)}")


def is_valid_role(value) -> bool:
    """True if ``value`` names one of the known roles."""
    if isinstance(value, Role):
        return True
    if not isinstance(value, str):
        return False
    return value in {role.value for role in Role}


def parse_role(value) -> Role:
    """Convert a raw role string to ``Role`` or raise InvalidRoleError."""
    if not is_valid_role(value):
        allowed = ", ".join(role.value for role in Role)
        raise InvalidRoleError(f"Invalid role '{value}'. Allowed roles: {allowed}")
    return Role(value)


def allowed_roles(operation: Operation) -> FrozenSet[Role]:
    return ALLOWED_ROLES[operation]


def is_allowed(role: Role, operation: Operation) -> bool:
    return role in ALLOWED_ROLES[operation]


def ensure_not_self(actor_id: int, target_id: int, action: str) -> None:
    """Reject role/status changes an actor attempts on their own account."""
    if actor_id == target_id:
        raise SelfModificationError(f"You cannot change your own {action}")
