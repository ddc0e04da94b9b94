"""Direct-upload lifecycle: slot issuance, progress, confirmation and retry."""

import logging
import uuid
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Callable, Iterable, List, Optional
from urllib.parse import quote

from sqlalchemy.orm import Session

from studious.core.errors import NotFoundError, ValidationError
from studious.models.file_record import FileRecord, UploadStatus, TERMINAL_UPLOAD_STATUSES

logger = logging.getLogger(__name__)

# Extension -> MIME types a client may declare for it. Other extensions pass unchecked.
ALLOWED_FILE_TYPES = {
    "jpg": ["image/jpeg"],
    "jpeg": ["image/jpeg"],
    "png": ["image/png"],
    "gif": ["image/gif"],
    "webp": ["image/webp"],
}


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def file_extension(filename: str) -> str:
    if "." not in filename:
        return ""
    return filename.rsplit(".", 1)[-1].lower()


def validate_file_type(filename: str, mime_type: str) -> None:
    """Reject a declared MIME type that contradicts a known image extension."""
    allowed = ALLOWED_FILE_TYPES.get(file_extension(filename))
    if allowed is not None and mime_type.lower() not in allowed:
        raise ValidationError(f"File type {mime_type} does not match extension of {filename}")


def build_storage_path(filename: str, directory: Optional[str] = None) -> str:
    ext = file_extension(filename)
    name = f"{uuid.uuid4()}.{ext}" if ext else str(uuid.uuid4())
    if directory:
        return f"{directory.strip('/')}/{name}"
    return name


@dataclass
class FileMeta:
    name: str
    mime_type: str
    size: int


@dataclass
class AttachTarget:
    """Owner of newly uploaded files. At most one field may be set."""

    assignment_id: Optional[int] = None
    submission_id: Optional[int] = None
    annotation_submission_id: Optional[int] = None
    announcement_id: Optional[int] = None
    folder_id: Optional[int] = None

    def columns(self) -> dict:
        values = {
            "assignment_id": self.assignment_id,
            "submission_id": self.submission_id,
            "annotation_submission_id": self.annotation_submission_id,
            "announcement_id": self.announcement_id,
            "folder_id": self.folder_id,
        }
        owners = [key for key, value in values.items() if value is not None]
        if len(owners) > 1:
            raise ValidationError(f"A file can belong to only one owner, got {', '.join(owners)}")
        return {key: value for key, value in values.items() if value is not None}


@dataclass
class UploadSlot:
    id: int
    name: str
    mime_type: str
    size: int
    path: str
    upload_url: str
    upload_expires_at: datetime
    upload_session_id: str


class UploadManager:
    """Owns the state machine of a FileRecord from slot issuance to completion.

    ``on_completed`` is called with the file id after a successful confirmation
    (thumbnail scheduling); its failures are logged and never reach the caller.
    """

    def __init__(
        self,
        backend_url: str,
        slot_ttl_seconds: int = 900,
        clock: Callable[[], datetime] = utcnow,
        on_completed: Optional[Callable[[int], None]] = None,
    ):
        self.backend_url = backend_url.rstrip("/")
        self.slot_ttl_seconds = slot_ttl_seconds
        self._clock = clock
        self._on_completed = on_completed

    def upload_url_for(self, path: str) -> str:
        return f"{self.backend_url}/api/upload/{quote(path, safe='')}"

    def _open_slot(self, record: FileRecord) -> None:
        record.upload_url = self.upload_url_for(record.path)
        record.upload_expires_at = self._clock() + timedelta(seconds=self.slot_ttl_seconds)
        record.upload_session_id = str(uuid.uuid4())

    def _new_record(
        self,
        meta: FileMeta,
        owner_id: int,
        owner_columns: dict,
        directory: Optional[str],
    ) -> FileRecord:
        record = FileRecord(
            name=meta.name,
            mime_type=meta.mime_type,
            size=meta.size,
            path=build_storage_path(meta.name, directory),
            user_id=owner_id,
            upload_status=UploadStatus.pending,
            upload_progress=0,
            upload_retry_count=0,
            **owner_columns,
        )
        self._open_slot(record)
        return record

    @staticmethod
    def _slot(record: FileRecord) -> UploadSlot:
        return UploadSlot(
            id=record.id,
            name=record.name,
            mime_type=record.mime_type,
            size=record.size,
            path=record.path,
            upload_url=record.upload_url,
            upload_expires_at=record.upload_expires_at,
            upload_session_id=record.upload_session_id,
        )

    def request_upload_slot(
        self,
        db: Session,
        meta: FileMeta,
        owner_id: int,
        target: Optional[AttachTarget] = None,
        directory: Optional[str] = None,
    ) -> UploadSlot:
        return self.request_upload_slots(db, [meta], owner_id, target, directory)[0]

    def request_upload_slots(
        self,
        db: Session,
        files: Iterable[FileMeta],
        owner_id: int,
        target: Optional[AttachTarget] = None,
        directory: Optional[str] = None,
    ) -> List[UploadSlot]:
        """Create PENDING records for a batch of files.

        The batch is all-or-nothing: every file is validated first and the
        records are committed together.
        """
        files = list(files)
        if not files:
            raise ValidationError("No files to upload")
        for meta in files:
            if not meta.name or not meta.mime_type:
                raise ValidationError("File name and type are required")
            if meta.size < 0:
                raise ValidationError(f"Invalid size for {meta.name}")
            validate_file_type(meta.name, meta.mime_type)

        owner_columns = (target or AttachTarget()).columns()
        records = [self._new_record(meta, owner_id, owner_columns, directory) for meta in files]
        try:
            db.add_all(records)
            db.commit()
        except Exception:
            db.rollback()
            raise
        for record in records:
            db.refresh(record)

        logger.info(f"Issued {len(records)} upload slot(s) for user {owner_id}")
        return [self._slot(record) for record in records]

    def _get(self, db: Session, file_id: int) -> FileRecord:
        record = db.get(FileRecord, file_id)
        if record is None:
            raise NotFoundError("File not found")
        return record

    def report_progress(self, db: Session, file_id: int, percent: float) -> FileRecord:
        record = self._get(db, file_id)
        if record.upload_status in TERMINAL_UPLOAD_STATUSES:
            return record
        record.upload_progress = int(max(0, min(100, percent)))
        record.upload_status = UploadStatus.uploading
        db.commit()
        db.refresh(record)
        return record

    def confirm_upload(
        self,
        db: Session,
        file_id: int,
        success: bool,
        error_message: Optional[str] = None,
    ) -> FileRecord:
        """Record the outcome the client reports. The blob itself is not checked."""
        record = self._get(db, file_id)
        if success:
            record.upload_status = UploadStatus.completed
            record.upload_progress = 100
            record.uploaded_at = self._clock()
            record.upload_error = None
        else:
            record.upload_status = UploadStatus.failed
            record.upload_progress = 0
            record.upload_error = error_message
            record.upload_retry_count = (record.upload_retry_count or 0) + 1
        db.commit()
        db.refresh(record)

        if success:
            logger.info(f"Upload completed for file {file_id} ({record.path})")
            self._notify_completed(record)
        else:
            logger.warning(f"Upload failed for file {file_id}: {error_message}")
        return record

    def retry_upload(self, db: Session, file_id: int) -> UploadSlot:
        """Reopen a FAILED upload with a fresh slot for the same path."""
        record = self._get(db, file_id)
        if record.upload_status != UploadStatus.failed:
            raise ValidationError("Only failed uploads can be retried")
        record.upload_status = UploadStatus.uploading
        record.upload_progress = 0
        record.upload_error = None
        self._open_slot(record)
        db.commit()
        db.refresh(record)
        logger.info(f"Retrying upload for file {file_id} (attempt {record.upload_retry_count + 1})")
        return self._slot(record)

    def slot_is_open(self, record: FileRecord) -> bool:
        """Whether the upload proxy may still accept bytes for ``record``."""
        if record.upload_status in TERMINAL_UPLOAD_STATUSES:
            return False
        expires_at = record.upload_expires_at
        if expires_at is None:
            return False
        if expires_at.tzinfo is None:
            expires_at = expires_at.replace(tzinfo=timezone.utc)
        return self._clock() < expires_at

    def _notify_completed(self, record: FileRecord) -> None:
        if self._on_completed is None or record.is_thumbnail:
            return
        try:
            self._on_completed(record.id)
        except Exception:
            logger.exception(f"Failed to schedule thumbnail for file {record.id}")
