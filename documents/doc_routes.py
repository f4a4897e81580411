from typing import List, Optional
from urllib.parse import quote

from fastapi import APIRouter, Depends, File, Form, UploadFile, status
from fastapi.responses import StreamingResponse
from sqlalchemy.orm import Session
from loguru import logger

from auth.access_control import Principal
from auth.rbac_dependencies import require_operation
from auth.roles import Operation
from core.database import get_db
from documents.blob_store import BlobStore, get_blob_store
from documents.catalog import FileCatalog, UploadSource
from documents.schemas import (
    FileDetailResponse, FileOwner, FileResponse, FileUpdateRequest,
    MultiUploadResponse, UserFilesResponse,
)

# ============================================
# CONFIGURATION
# ============================================

router = APIRouter(prefix="/files", tags=["files"])


def _upload_source(upload: UploadFile) -> UploadSource:
    return UploadSource(
        original_name=upload.filename,
        mime_type=upload.content_type,
        stream=upload.file,
    )

# ============================================
# UPLOADS
# ============================================


@router.post("/upload", status_code=status.HTTP_201_CREATED)
async def upload_file(
    file: Optional[UploadFile] = File(None),
    description: Optional[str] = Form(None),
    principal: Principal = Depends(require_operation(Operation.UPLOAD_FILE)),
    db: Session = Depends(get_db),
    blob_store: BlobStore = Depends(get_blob_store),
):
    source = _upload_source(file) if file is not None else UploadSource(None, None, None)
    record = FileCatalog.store_upload(db, blob_store, principal.id, source, description)
    return {
        "message": "File uploaded successfully",
        "file": FileResponse.model_validate(record),
    }


@router.post(
    "/upload-multiple",
    status_code=status.HTTP_201_CREATED,
    response_model=MultiUploadResponse,
)
async def upload_multiple(
    files: Optional[List[UploadFile]] = File(None),
    principal: Principal = Depends(require_operation(Operation.UPLOAD_FILE)),
    db: Session = Depends(get_db),
    blob_store: BlobStore = Depends(get_blob_store),
):
    sources = [_upload_source(upload) for upload in files or []]
    stored, failed = FileCatalog.store_uploads(db, blob_store, principal.id, sources)
    return MultiUploadResponse(
        message=f"{len(stored)} file(s) uploaded successfully",
        files=[FileResponse.model_validate(record) for record in stored],
        failed=failed,
    )

# ============================================
# LISTINGS
# ============================================


@router.get("/my-files", response_model=List[FileResponse])
async def my_files(
    principal: Principal = Depends(require_operation(Operation.LIST_OWN_FILES)),
    db: Session = Depends(get_db),
):
    return FileCatalog.list_owned_by(db, principal.id)


@router.get("/user/{user_id}", response_model=UserFilesResponse)
async def user_files(
    user_id: int,
    principal: Principal = Depends(require_operation(Operation.LIST_USER_FILES)),
    db: Session = Depends(get_db),
):
    """Files of one user, for staff. Managers only see their assigned clients."""
    user, files = FileCatalog.list_user_files(db, principal, user_id)
    return UserFilesResponse(
        user=FileOwner(id=user.id, name=user.name, email=user.email, role=user.role.value),
        files=[FileResponse.model_validate(record) for record in files],
    )


@router.get("/all-clients")
async def all_clients(
    principal: Principal = Depends(require_operation(Operation.LIST_CLIENTS)),
    db: Session = Depends(get_db),
):
    return FileCatalog.list_clients_overview(db, principal)

# ============================================
# SINGLE FILE
# ============================================


@router.get("/download/{file_id}")
async def download_file(
    file_id: int,
    principal: Principal = Depends(require_operation(Operation.READ_FILE)),
    db: Session = Depends(get_db),
    blob_store: BlobStore = Depends(get_blob_store),
):
    record, chunks = FileCatalog.open_download(db, blob_store, principal, file_id)
    return StreamingResponse(
        chunks,
        media_type=record.mime_type,
        headers={
            "Content-Disposition": f"attachment; filename*=UTF-8''{quote(record.original_name)}",
            "X-Content-Type-Options": "nosniff",
        },
    )


@router.delete("/{file_id}")
async def delete_file(
    file_id: int,
    principal: Principal = Depends(require_operation(Operation.DELETE_FILE)),
    db: Session = Depends(get_db),
):
    FileCatalog.soft_delete(db, file_id, principal)
    return {"message": "File deleted successfully"}


@router.put("/{file_id}")
async def update_file(
    file_id: int,
    data: FileUpdateRequest,
    principal: Principal = Depends(require_operation(Operation.UPDATE_FILE)),
    db: Session = Depends(get_db),
):
    record = FileCatalog.update_description(db, file_id, principal, data.description)
    return {
        "message": "File updated successfully",
        "file": FileResponse.model_validate(record),
    }


@router.get("/{file_id}", response_model=FileDetailResponse)
async def get_file_info(
    file_id: int,
    principal: Principal = Depends(require_operation(Operation.READ_FILE)),
    db: Session = Depends(get_db),
):
    record = FileCatalog.get_file_for_read(db, principal, file_id)
    logger.debug(f"[FILE_INFO] File {file_id} read by {principal.id}")
    return FileDetailResponse(
        **FileResponse.model_validate(record).model_dump(),
        owner_name=record.owner.name,
        owner_email=record.owner.email,
    )
