"""
User directory service.

Business rules for staff-side user management:
- creating accounts with a given role
- listing users
- changing role and active status (never on one's own account)
"""

import re
from typing import List, Optional

from sqlalchemy.orm import Session
from loguru import logger

from auth.access_control import Principal
from auth.repository import UserRepository
from auth.roles import MANAGER_CREATION_BLOCKLIST, Role, ensure_not_self, parse_role
from core.config import settings
from core.database import transaction
from core.exceptions import (
    ConflictError, ForbiddenError, InvalidValueError, NotFoundError, ValidationError,
)
from core.models import User

EMAIL_PATTERN = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")


def normalize_email(email: str) -> str:
    return (email or "").strip().lower()


def validate_new_account(name: str, email: str, password: str) -> str:
    """Check registration fields and return the normalized email."""
    if not name or not email or not password:
        raise ValidationError("Name, email and password are required")

    normalized = normalize_email(email)
    if not EMAIL_PATTERN.match(normalized):
        raise ValidationError("Invalid email format")

    validate_password(password)
    return normalized


def validate_password(password: str) -> None:
    if len(password or "") < settings.min_password_length:
        raise ValidationError(
            f"Password must be at least {settings.min_password_length} characters"
        )


class UserDirectory:
    """Staff operations on user records."""

    @staticmethod
    def get_user(db: Session, user_id: int) -> User:
        user = UserRepository.get_by_id(db, user_id)
        if user is None:
            raise NotFoundError("User not found")
        return user

    @staticmethod
    def list_users(db: Session, actor: Principal, role: Optional[str] = None) -> List[User]:
        role_filter = parse_role(role) if role else None
        users = UserRepository.list_users(db, role_filter)
        logger.info(
            f"[USERS] User list requested by {actor.id} ({actor.role.value}), "
            f"filter={role_filter.value if role_filter else 'all'}, count={len(users)}"
        )
        return users

    @staticmethod
    def create_user(
        db: Session,
        actor: Principal,
        name: str,
        email: str,
        password_hash: str,
        phone: Optional[str] = None,
        role: Optional[str] = None,
    ) -> User:
        """
        Create an account on behalf of staff.

        Managers may not create admin or manager accounts. No manager is
        auto-assigned here; that only happens at self-registration.
        """
        requested = parse_role(role) if role else Role.CLIENT
        if actor.role is Role.MANAGER and requested in MANAGER_CREATION_BLOCKLIST:
            logger.warning(f"[CREATE_USER] Manager {actor.id} tried to create a {requested.value}")
            raise ForbiddenError("Insufficient rights to create a user with this role")

        normalized = normalize_email(email)
        if UserRepository.get_by_email(db, normalized) is not None:
            raise ConflictError("A user with this email already exists")

        with transaction(db, "admin_create_user"):
            user = UserRepository.add(db, User(
                name=name,
                email=normalized,
                phone=phone or None,
                password_hash=password_hash,
                role=requested,
                is_active=True,
                credits=settings.default_credits,
            ))

        logger.info(f"[CREATE_USER] User {user.id} ({requested.value}) created by {actor.id}")
        return user

    @staticmethod
    def change_role(db: Session, actor: Principal, user_id: int, role: str) -> User:
        new_role = parse_role(role)
        ensure_not_self(actor.id, user_id, "role")

        with transaction(db, "admin_change_role"):
            user = UserRepository.get_by_id(db, user_id, for_update=True)
            if user is None:
                raise NotFoundError("User not found")
            user.role = new_role

        logger.info(f"[ROLE] Admin {actor.id} set role of user {user_id} to {new_role.value}")
        return user

    @staticmethod
    def change_status(db: Session, actor: Principal, user_id: int, is_active) -> User:
        if not isinstance(is_active, bool):
            raise InvalidValueError("is_active must be a boolean")
        ensure_not_self(actor.id, user_id, "status")

        with transaction(db, "admin_change_status"):
            user = UserRepository.get_by_id(db, user_id, for_update=True)
            if user is None:
                raise NotFoundError("User not found")
            user.is_active = is_active

        logger.info(
            f"[STATUS] Admin {actor.id} {'activated' if is_active else 'deactivated'} user {user_id}"
        )
        return user
