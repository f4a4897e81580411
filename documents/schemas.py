"""
Pydantic schemas for the file endpoints.
"""

from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field


# ============ Request Schemas ============

class FileUpdateRequest(BaseModel):
    """Empty or null description clears it."""
    description: Optional[str] = Field(None, description="Free-text description")


# ============ Response Schemas ============

class FileResponse(BaseModel):
    """
    Public view of a file record. The storage key is never part of it.
    """
    model_config = ConfigDict(from_attributes=True)

    id: int
    filename: str
    original_name: str
    mime_type: str
    size: int
    description: Optional[str] = None
    owner_id: int
    created_at: datetime
    updated_at: datetime


class FileDetailResponse(FileResponse):
    owner_name: Optional[str] = None
    owner_email: Optional[str] = None


class FileOwner(BaseModel):
    id: int
    name: str
    email: str
    role: str


class UserFilesResponse(BaseModel):
    user: FileOwner
    files: List[FileResponse]


class FailedUpload(BaseModel):
    name: Optional[str]
    error: str


class MultiUploadResponse(BaseModel):
    message: str
    files: List[FileResponse]
    failed: List[FailedUpload] = Field(default_factory=list)
