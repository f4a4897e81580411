"""
Authentication manager with bcrypt hashing and JWT access tokens.

Turns credentials into an authenticated Principal; everything about who may
do what afterwards belongs to the access layer.
"""

import secrets
from datetime import datetime, timedelta, timezone
from typing import Optional, Tuple

import bcrypt
import jwt
from sqlalchemy.orm import Session
from loguru import logger

from auth.access_control import Principal
from auth.directory import normalize_email, validate_new_account, validate_password
from auth.manager_assignment import auto_assign_manager
from auth.repository import UserRepository
from auth.roles import Role
from core.config import settings
from core.database import transaction
from core.exceptions import (
    AuthenticationError, ConflictError, InactiveAccountError, ValidationError,
)
from core.models import User, utcnow


class AuthManager:
    """Authentication manager"""

    def __init__(self):
        self.jwt_secret = settings.jwt_secret
        if not self.jwt_secret:
            raise ValueError("JWT_SECRET environment variable not set. Cannot initialize auth system.")
        if len(self.jwt_secret) < 32:
            logger.warning("JWT_SECRET is less than 32 bytes - use a stronger secret!")
        self.jwt_expiry = settings.jwt_expiry
        self.password_reset_expiry = settings.password_reset_expiry
        self.bcrypt_rounds = settings.bcrypt_rounds
        logger.info("AuthManager initialized")

    # ==================== PASSWORD HASHING ====================

    def hash_password(self, password: str) -> str:
        """Hash password using bcrypt"""
        password_bytes = password.encode('utf-8')[:72]
        salt = bcrypt.gensalt(rounds=self.bcrypt_rounds)
        return bcrypt.hashpw(password_bytes, salt).decode('utf-8')

    def verify_password(self, password: str, password_hash: Optional[str]) -> bool:
        """Verify password against hash"""
        if not password_hash:
            return False
        try:
            return bcrypt.checkpw(password.encode('utf-8')[:72], password_hash.encode('utf-8'))
        except ValueError as e:
            logger.error(f"[VERIFY] Malformed password hash: {e}")
            return False

    # ==================== TOKENS ====================

    def create_access_token(self, user: User) -> str:
        return jwt.encode(
            {
                "sub": str(user.id),
                "email": user.email,
                "role": user.role.value,
                "exp": datetime.now(timezone.utc) + timedelta(seconds=self.jwt_expiry),
            },
            self.jwt_secret,
            algorithm="HS256",
        )

    def verify_token(self, token: str) -> Optional[dict]:
        """Verify JWT token and return payload"""
        try:
            return jwt.decode(token, self.jwt_secret, algorithms=["HS256"])
        except jwt.ExpiredSignatureError:
            logger.warning("[TOKEN_VERIFY] Token expired")
            return None
        except jwt.InvalidTokenError as e:
            logger.warning(f"[TOKEN_VERIFY] Invalid token: {e}")
            return None

    def authenticate(self, db: Session, token: Optional[str]) -> Principal:
        """
        Resolve a bearer token to a Principal using the current user record.

        Role and active flag come from the database, not from the token, so
        role changes and deactivation apply to tokens already issued.
        """
        if not token:
            raise AuthenticationError("Authorization required")

        payload = self.verify_token(token)
        if not payload:
            raise AuthenticationError("Invalid or expired token")

        try:
            user_id = int(payload.get("sub"))
        except (TypeError, ValueError):
            raise AuthenticationError("Invalid token subject")

        user = UserRepository.get_by_id(db, user_id)
        if user is None:
            raise AuthenticationError("User not found")
        if not user.is_active:
            logger.warning(f"[AUTH] Deactivated account used a token: {user_id}")
            raise InactiveAccountError()

        return Principal.from_user(user)

    # ==================== REGISTRATION ====================

    def register(
        self, db: Session, name: str, email: str, password: str, phone: Optional[str] = None
    ) -> Tuple[User, str]:
        """Self-registration: always creates an active client."""
        normalized = validate_new_account(name, email, password)
        logger.info(f"[REGISTER] Starting registration for email: {normalized}")

        if UserRepository.get_by_email(db, normalized) is not None:
            logger.warning(f"[REGISTER] Email already exists: {normalized}")
            raise ConflictError("A user with this email already exists")

        password_hash = self.hash_password(password)

        with transaction(db, "register_user"):
            manager_id = auto_assign_manager(db)
            user = UserRepository.add(db, User(
                name=name,
                email=normalized,
                phone=phone or None,
                password_hash=password_hash,
                role=Role.CLIENT,
                is_active=True,
                manager_id=manager_id,
                credits=settings.default_credits,
            ))

        logger.info(f"[REGISTER] User {user.id} registered, manager={user.manager_id}")
        return user, self.create_access_token(user)

    # ==================== LOGIN ====================

    def login(self, db: Session, email: str, password: str) -> Tuple[User, str]:
        if not email or not password:
            raise ValidationError("Email and password are required")

        normalized = normalize_email(email)
        user = UserRepository.get_by_email(db, normalized)
        if user is None:
            logger.warning(f"[LOGIN] User not found: {normalized}")
            raise AuthenticationError("Invalid email or password")

        if not user.is_active:
            logger.warning(f"[LOGIN] Account is disabled for: {normalized}")
            raise InactiveAccountError()

        if not user.password_hash:
            logger.warning(f"[LOGIN] No password set for: {normalized}")
            raise AuthenticationError("Password is not set. Use password recovery")

        if not self.verify_password(password, user.password_hash):
            logger.warning(f"[LOGIN] Password verification failed for: {normalized}")
            raise AuthenticationError("Invalid email or password")

        with transaction(db, "update_last_login"):
            user.last_login = utcnow()

        logger.info(f"[LOGIN] User logged in: {user.id} ({user.role.value})")
        return user, self.create_access_token(user)

    # ==================== PASSWORD RESET ====================

    def request_password_reset(self, db: Session, email: str) -> Optional[str]:
        """
        Issue a reset token, replacing any previous one.

        Returns the token, or None for unknown emails; callers must not reveal
        which case occurred.
        """
        if not email:
            raise ValidationError("Email is required")

        user = UserRepository.get_by_email(db, email)
        if user is None:
            logger.info(f"[PASSWORD_RESET] Reset requested for unknown email: {email}")
            return None

        reset_token = secrets.token_hex(32)
        with transaction(db, "set_reset_token"):
            user.password_reset_token = reset_token
            user.password_reset_expires = utcnow() + timedelta(seconds=self.password_reset_expiry)

        logger.info(f"[PASSWORD_RESET] Reset token issued for user: {user.id}")
        return reset_token

    def reset_password(self, db: Session, token: str, new_password: str) -> User:
        if not token or not new_password:
            raise ValidationError("Token and new password are required")
        validate_password(new_password)

        user = UserRepository.get_by_reset_token(db, token, utcnow())
        if user is None:
            logger.warning("[RESET_PWD] Invalid or expired reset token")
            raise ValidationError("Invalid or expired reset token")

        password_hash = self.hash_password(new_password)
        with transaction(db, "reset_password"):
            user.password_hash = password_hash
            user.password_reset_token = None
            user.password_reset_expires = None

        logger.info(f"[RESET_PWD] Password reset for user: {user.id}")
        return user

    def change_password(
        self, db: Session, principal: Principal, current_password: str, new_password: str
    ) -> None:
        if not current_password or not new_password:
            raise ValidationError("Current and new password are required")
        validate_password(new_password)

        user = UserRepository.get_by_id(db, principal.id)
        if user is None or not self.verify_password(current_password, user.password_hash):
            logger.warning(f"[CHANGE_PWD] Wrong current password for user: {principal.id}")
            raise AuthenticationError("Current password is incorrect")

        password_hash = self.hash_password(new_password)
        with transaction(db, "change_password"):
            user.password_hash = password_hash

        logger.info(f"[CHANGE_PWD] Password changed for user: {principal.id}")

    # ==================== SEEDING ====================

    def seed_admin(self, db: Session, email: str, password: str, name: str = "Administrator") -> User:
        """
        Create the bootstrap admin account if the email is not registered yet.

        An existing account is returned untouched, so role and status changes
        made by staff survive restarts.
        """
        normalized = normalize_email(email)
        existing = UserRepository.get_by_email(db, normalized)
        if existing is not None:
            logger.info(f"[SEED] Account already exists, left unchanged: {normalized}")
            return existing

        password_hash = self.hash_password(password)
        with transaction(db, "seed_admin"):
            user = UserRepository.add(db, User(
                name=name,
                email=normalized,
                role=Role.ADMIN,
                is_active=True,
                credits=settings.default_credits,
                password_hash=password_hash,
            ))

        logger.info(f"[SEED] Admin account created: {normalized}")
        return user


# Global instance
auth_manager = AuthManager()
