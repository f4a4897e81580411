"""
Data access layer for the user directory.

All user queries live here; the directory, manager assignment and credit
ledger services build their rules on top of these methods.
"""

from typing import List, Optional

from sqlalchemy import and_, func
from sqlalchemy.orm import Session

from auth.roles import MANAGER_ROLES, Role
from core.models import User


class UserRepository:
    """Repository for User database operations."""

    @staticmethod
    def get_by_id(db: Session, user_id: int, for_update: bool = False) -> Optional[User]:
        query = db.query(User).filter(User.id == user_id)
        if for_update:
            query = query.with_for_update()
        return query.first()

    @staticmethod
    def get_by_email(db: Session, email: str) -> Optional[User]:
        return db.query(User).filter(User.email == email.strip().lower()).first()

    @staticmethod
    def get_by_reset_token(db: Session, token: str, now) -> Optional[User]:
        return db.query(User).filter(
            User.password_reset_token == token,
            User.password_reset_expires > now,
        ).first()

    @staticmethod
    def list_users(db: Session, role: Optional[Role] = None) -> List[User]:
        """All users, newest first, optionally filtered by role."""
        query = db.query(User)
        if role is not None:
            query = query.filter(User.role == role)
        return query.order_by(User.created_at.desc(), User.id.desc()).all()

    @staticmethod
    def add(db: Session, user: User) -> User:
        db.add(user)
        db.flush()
        return user

    @staticmethod
    def is_manager_of(db: Session, manager_id: int, client_id: int) -> bool:
        """Current assignment check: does client_id.manager_id == manager_id?"""
        return db.query(User.id).filter(
            User.id == client_id,
            User.manager_id == manager_id,
        ).first() is not None

    @staticmethod
    def least_loaded_manager(db: Session) -> Optional[User]:
        """
        Active manager/admin with the fewest assigned clients.

        Ties go to the earliest created account, then the lowest id.
        """
        Client = User.__table__.alias("client")
        client_counts = (
            db.query(
                Client.c.manager_id.label("manager_id"),
                func.count(Client.c.id).label("client_count"),
            )
            .filter(
                Client.c.manager_id.isnot(None),
                Client.c.role == Role.CLIENT,
            )
            .group_by(Client.c.manager_id)
            .subquery()
        )

        load = func.coalesce(client_counts.c.client_count, 0)
        return (
            db.query(User)
            .outerjoin(client_counts, client_counts.c.manager_id == User.id)
            .filter(
                and_(
                    User.role.in_(list(MANAGER_ROLES)),
                    User.is_active == True,
                )
            )
            .order_by(load.asc(), User.created_at.asc(), User.id.asc())
            .first()
        )

    @staticmethod
    def client_count(db: Session, manager_id: int) -> int:
        return db.query(func.count(User.id)).filter(
            User.manager_id == manager_id,
            User.role == Role.CLIENT,
        ).scalar() or 0
