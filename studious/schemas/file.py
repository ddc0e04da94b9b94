from pydantic import AliasChoices, BaseModel, Field
from typing import Optional, List
from datetime import datetime
from studious.models.file_record import UploadStatus
from studious.schemas.base import BaseSchema


# Request schemas
class DirectFileUpload(BaseModel):
    name: str = Field(min_length=1, max_length=500)
    type: str = Field(min_length=1, max_length=255)
    size: int = Field(ge=0)


class UploadRequest(BaseModel):
    files: List[DirectFileUpload] = Field(min_length=1)


class ProgressUpdate(BaseModel):
    progress: float


class UploadConfirmation(BaseModel):
    success: bool
    error: Optional[str] = None


# Response schemas
class UploadSlotResponse(BaseSchema):
    id: int
    name: str
    type: str = Field(validation_alias=AliasChoices("mime_type", "type"))
    size: int
    path: str
    upload_url: str
    upload_expires_at: datetime
    upload_session_id: str


class UploadSlotsResponse(BaseModel):
    files: List[UploadSlotResponse]


class FileResponse(BaseSchema):
    id: int
    name: str
    type: str = Field(validation_alias=AliasChoices("mime_type", "type"))
    size: int
    path: str
    user_id: Optional[int] = None
    upload_status: UploadStatus
    upload_progress: int
    upload_retry_count: int
    upload_error: Optional[str] = None
    uploaded_at: Optional[datetime] = None
    thumbnail_id: Optional[int] = None


class FileStatusResponse(FileResponse):
    exists_in_storage: bool


class SignedUrlResponse(BaseModel):
    url: str
    expires_in: int


class DeletionResponse(BaseModel):
    id: int
    files_deleted: int
    blob_failures: int
