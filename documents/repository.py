"""
Data access layer for the file catalog.

Soft-deleted rows are filtered here, in every read, so callers never see them.
"""

from typing import List, Optional

from sqlalchemy import and_, case, func
from sqlalchemy.orm import Session

from auth.roles import Role
from core.models import File, User


class FileRepository:
    """Repository for File database operations."""

    @staticmethod
    def add(db: Session, file: File) -> File:
        db.add(file)
        db.flush()
        return file

    @staticmethod
    def get_active(db: Session, file_id: int, for_update: bool = False) -> Optional[File]:
        query = db.query(File).filter(File.id == file_id, File.is_deleted == False)
        if for_update:
            query = query.with_for_update()
        return query.first()

    @staticmethod
    def list_owned_by(db: Session, owner_id: int) -> List[File]:
        """Non-deleted files of one owner, newest first."""
        return (
            db.query(File)
            .filter(File.owner_id == owner_id, File.is_deleted == False)
            .order_by(File.created_at.desc(), File.id.desc())
            .all()
        )

    @staticmethod
    def clients_overview(db: Session, manager_id: Optional[int] = None) -> list:
        """
        Clients with their live file count and latest upload.

        Args:
            manager_id: restrict to clients assigned to this manager

        Returns:
            rows of (id, name, email, role, file_count, last_upload), most
            recent upload first, clients without files last
        """
        file_count = func.count(File.id).label("file_count")
        last_upload = func.max(File.created_at).label("last_upload")

        query = (
            db.query(User.id, User.name, User.email, User.role, file_count, last_upload)
            .outerjoin(File, and_(File.owner_id == User.id, File.is_deleted == False))
            .filter(User.role == Role.CLIENT)
        )
        if manager_id is not None:
            query = query.filter(User.manager_id == manager_id)

        return (
            query.group_by(User.id, User.name, User.email, User.role)
            .order_by(
                case((func.max(File.created_at).is_(None), 1), else_=0),
                func.max(File.created_at).desc(),
                User.name.asc(),
            )
            .all()
        )
