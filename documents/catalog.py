"""
File catalog service.

Owns the file records and the rules around them:
- upload (blob first, record second; the blob is removed if the record fails)
- reads gated by the access decision engine
- soft delete (owner or admin) and description edits (owner only)
- per-user and per-client listings that never include deleted files
"""

from dataclasses import dataclass
from typing import BinaryIO, Iterator, List, Optional, Tuple

from sqlalchemy.orm import Session
from loguru import logger

from auth.access_control import Principal, authorize_owner_access, can_delete, can_update
from auth.repository import UserRepository
from auth.roles import Role
from core.config import settings
from core.database import transaction
from core.exceptions import (
    DomainError, ForbiddenError, InvalidValueError, NotFoundError, StoreError, ValidationError,
)
from core.models import File, User
from documents.blob_store import BlobStore
from documents.repository import FileRepository

ALLOWED_MIME_TYPES = frozenset({
    # Documents
    "application/pdf",
    "application/msword",
    "application/vnd.openxmlformats-officedocument.wordprocessingml.document",
    "application/vnd.ms-excel",
    "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet",
    "application/vnd.ms-powerpoint",
    "application/vnd.openxmlformats-officedocument.presentationml.presentation",
    "text/plain",
    "text/csv",
    "application/rtf",
    # Images
    "image/jpeg",
    "image/png",
    "image/gif",
    "image/webp",
    "image/tiff",
    # Archives
    "application/zip",
    "application/x-rar-compressed",
    "application/x-7z-compressed",
})


@dataclass
class FileMetadata:
    """Everything a new file record needs besides its owner."""
    filename: str
    original_name: str
    mime_type: str
    size: int
    path: str
    description: Optional[str] = None


@dataclass
class UploadSource:
    original_name: str
    mime_type: str
    stream: BinaryIO


def validate_upload(original_name: Optional[str], mime_type: Optional[str]) -> None:
    if not original_name:
        raise ValidationError("No file uploaded")
    if mime_type not in ALLOWED_MIME_TYPES:
        raise ValidationError(f"File type {mime_type} is not allowed")


class FileCatalog:
    """Business logic for file records."""

    # ==================== RECORDS ====================

    @staticmethod
    def create_file(db: Session, owner_id: int, metadata: FileMetadata) -> File:
        """Insert a live record for an already stored blob."""
        with transaction(db, "create_file"):
            if UserRepository.get_by_id(db, owner_id) is None:
                raise NotFoundError("User not found")
            file = FileRepository.add(db, File(
                filename=metadata.filename,
                original_name=metadata.original_name,
                mime_type=metadata.mime_type,
                size=metadata.size,
                path=metadata.path,
                owner_id=owner_id,
                description=metadata.description or None,
                is_deleted=False,
            ))

        logger.info(f"[UPLOAD] File {file.id} recorded for owner {owner_id} ({file.size} bytes)")
        return file

    @staticmethod
    def get_active(db: Session, file_id: int) -> File:
        file = FileRepository.get_active(db, file_id)
        if file is None:
            raise NotFoundError("File not found")
        return file

    @staticmethod
    def soft_delete(db: Session, file_id: int, actor: Principal) -> File:
        """Mark a file deleted. Deleting an already deleted file is a 404."""
        with transaction(db, "soft_delete_file"):
            file = FileRepository.get_active(db, file_id, for_update=True)
            if file is None:
                raise NotFoundError("File not found")
            if not can_delete(actor, file.owner_id):
                logger.warning(f"[DELETE] User {actor.id} may not delete file {file_id}")
                raise ForbiddenError("Access denied. Only owner or admin can delete files.")
            file.is_deleted = True

        logger.info(f"[DELETE] File {file_id} deleted by {actor.id} (owner {file.owner_id})")
        return file

    @staticmethod
    def update_description(db: Session, file_id: int, actor: Principal, text: Optional[str]) -> File:
        if text is not None and not isinstance(text, str):
            raise InvalidValueError("Description must be a string")

        with transaction(db, "update_file"):
            file = FileRepository.get_active(db, file_id, for_update=True)
            if file is None:
                raise NotFoundError("File not found")
            if not can_update(actor, file.owner_id):
                logger.warning(f"[UPDATE] User {actor.id} may not update file {file_id}")
                raise ForbiddenError("Access denied. Only owner can update file.")
            file.description = text or None

        logger.info(f"[UPDATE] File {file_id} description updated by {actor.id}")
        return file

    # ==================== READS ====================

    @staticmethod
    def list_owned_by(db: Session, user_id: int) -> List[File]:
        return FileRepository.list_owned_by(db, user_id)

    @staticmethod
    def get_file_for_read(db: Session, actor: Principal, file_id: int) -> File:
        """Live file the actor may read; 404 before any access check."""
        file = FileCatalog.get_active(db, file_id)
        authorize_owner_access(db, actor, file.owner_id)
        return file

    @staticmethod
    def list_user_files(db: Session, actor: Principal, user_id: int) -> Tuple[User, List[File]]:
        """Files of another user, after the access decision."""
        authorize_owner_access(db, actor, user_id)

        user = UserRepository.get_by_id(db, user_id)
        if user is None:
            raise NotFoundError("User not found")

        files = FileRepository.list_owned_by(db, user_id)
        logger.info(f"[FILES] User {actor.id} listed {len(files)} files of user {user_id}")
        return user, files

    @staticmethod
    def list_clients_overview(db: Session, actor: Principal) -> List[dict]:
        """
        Clients with file counts. Admins and editors see every client,
        managers only their assigned ones.
        """
        if actor.role in (Role.ADMIN, Role.EDITOR):
            rows = FileRepository.clients_overview(db)
        elif actor.role is Role.MANAGER:
            rows = FileRepository.clients_overview(db, manager_id=actor.id)
        else:
            raise ForbiddenError("Insufficient access rights")

        return [
            {
                "id": row.id,
                "name": row.name,
                "email": row.email,
                "role": row.role.value,
                "file_count": row.file_count,
                "last_upload": row.last_upload.isoformat() if row.last_upload else None,
            }
            for row in rows
        ]

    @staticmethod
    def open_download(
        db: Session, blob_store: BlobStore, actor: Principal, file_id: int
    ) -> Tuple[File, Iterator[bytes]]:
        file = FileCatalog.get_file_for_read(db, actor, file_id)
        if not blob_store.exists(file.path):
            logger.error(f"[DOWNLOAD] Blob missing for file {file_id}")
            raise NotFoundError("File not found on disk")

        logger.info(f"[DOWNLOAD] File {file_id} downloaded by {actor.id} (owner {file.owner_id})")
        return file, blob_store.open_stream(file.path)

    # ==================== UPLOADS ====================

    @staticmethod
    def store_upload(
        db: Session,
        blob_store: BlobStore,
        owner_id: int,
        upload: UploadSource,
        description: Optional[str] = None,
    ) -> File:
        """
        Store the bytes, then record them.

        If the record cannot be written the stored blob is deleted again, so
        a failed upload leaves neither a record nor an orphaned blob.
        """
        validate_upload(upload.original_name, upload.mime_type)

        try:
            blob = blob_store.save(
                owner_id,
                upload.original_name,
                upload.stream,
                settings.max_file_size,
                content_type=upload.mime_type,
            )
        except DomainError:
            raise
        except Exception as e:
            logger.error(f"[UPLOAD] Blob write failed for owner {owner_id}: {e}")
            raise StoreError("upload_file", e) from e

        metadata = FileMetadata(
            filename=blob.key.rsplit("/", 1)[-1],
            original_name=upload.original_name,
            mime_type=upload.mime_type,
            size=blob.size,
            path=blob.key,
            description=description,
        )
        try:
            return FileCatalog.create_file(db, owner_id, metadata)
        except Exception as e:
            logger.warning(f"[UPLOAD] Record failed, removing blob {blob.key}")
            try:
                blob_store.delete(blob.key)
            except Exception as cleanup_error:
                logger.error(f"[UPLOAD] Could not remove blob {blob.key}: {cleanup_error}")
            if isinstance(e, DomainError):
                raise
            raise StoreError("upload_file", e) from e

    @staticmethod
    def store_uploads(
        db: Session, blob_store: BlobStore, owner_id: int, uploads: List[UploadSource]
    ) -> Tuple[List[File], List[dict]]:
        """Upload several files; each succeeds or fails on its own."""
        if not uploads:
            raise ValidationError("No files uploaded")
        if len(uploads) > settings.max_files_per_upload:
            raise ValidationError(
                f"Too many files. Maximum is {settings.max_files_per_upload} per upload"
            )

        stored: List[File] = []
        failed: List[dict] = []
        for upload in uploads:
            try:
                stored.append(FileCatalog.store_upload(db, blob_store, owner_id, upload))
            except DomainError as e:
                failed.append({"name": upload.original_name, "error": e.message})

        logger.info(
            f"[UPLOAD] Owner {owner_id} multi-upload: {len(stored)} stored, {len(failed)} failed"
        )
        return stored, failed
