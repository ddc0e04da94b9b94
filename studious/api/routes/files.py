"""File access and the client side of the upload lifecycle."""

import logging

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from studious.core.auth import can_access_file, get_current_user
from studious.core.database import get_db
from studious.core.errors import NotFoundError, ValidationError
from studious.models.file_record import FileRecord, UploadStatus
from studious.models.user import User
from studious.schemas.file import (
    FileResponse,
    FileStatusResponse,
    ProgressUpdate,
    SignedUrlResponse,
    UploadConfirmation,
    UploadSlotResponse,
)
from studious.services.container import Services, get_services

logger = logging.getLogger(__name__)
router = APIRouter()


def get_visible_file(db: Session, file_id: int, user: User) -> FileRecord:
    """Absent and invisible files look the same to the caller."""
    record = db.get(FileRecord, file_id)
    if record is None or not can_access_file(db, record, user):
        raise NotFoundError("File not found")
    return record


def get_owned_file(db: Session, file_id: int, user: User) -> FileRecord:
    record = db.get(FileRecord, file_id)
    if record is None or record.user_id != user.id:
        raise NotFoundError("File not found")
    return record


@router.get("/{file_id}", response_model=FileResponse)
def get_file(
    file_id: int,
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
):
    return get_visible_file(db, file_id, user)


@router.get("/{file_id}/signed-url", response_model=SignedUrlResponse)
async def get_signed_url(
    file_id: int,
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
    services: Services = Depends(get_services),
):
    """Short-lived read URL for a completed upload."""
    record = get_visible_file(db, file_id, user)
    if record.upload_status != UploadStatus.completed:
        raise ValidationError("File upload is not complete")
    url = await services.blob_store.issue_signed_url(record.path, "read")
    return SignedUrlResponse(url=url, expires_in=services.blob_store.signed_url_ttl_seconds)


@router.get("/{file_id}/status", response_model=FileStatusResponse)
async def get_upload_status(
    file_id: int,
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
    services: Services = Depends(get_services),
):
    record = get_visible_file(db, file_id, user)
    exists = await services.blob_store.object_exists(record.path)
    return FileStatusResponse(**FileResponse.model_validate(record).model_dump(), exists_in_storage=exists)


@router.post("/{file_id}/progress", response_model=FileResponse)
def report_progress(
    file_id: int,
    payload: ProgressUpdate,
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
    services: Services = Depends(get_services),
):
    get_owned_file(db, file_id, user)
    return services.uploads.report_progress(db, file_id, payload.progress)


@router.post("/{file_id}/confirm", response_model=FileResponse)
def confirm_upload(
    file_id: int,
    payload: UploadConfirmation,
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
    services: Services = Depends(get_services),
):
    get_owned_file(db, file_id, user)
    return services.uploads.confirm_upload(db, file_id, payload.success, payload.error)


@router.post("/{file_id}/retry", response_model=UploadSlotResponse)
def retry_upload(
    file_id: int,
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
    services: Services = Depends(get_services),
):
    get_owned_file(db, file_id, user)
    return services.uploads.retry_upload(db, file_id)
