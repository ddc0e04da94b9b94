import enum

from sqlalchemy import Column, Integer, BigInteger, String, Text, DateTime, Boolean, ForeignKey
from sqlalchemy import Enum as SAEnum
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from studious.core.database import Base


class UploadStatus(str, enum.Enum):
    pending = "pending"
    uploading = "uploading"
    completed = "completed"
    failed = "failed"


TERMINAL_UPLOAD_STATUSES = (UploadStatus.completed, UploadStatus.failed)


class FileRecord(Base):
    """Metadata for a blob in object storage.

    A record is owned by at most one of assignment, submission (attachment),
    submission (teacher annotation), announcement or folder. Owner foreign keys
    cascade, so deleting the owner removes the record; the blob itself must be
    purged beforehand.
    """
    __tablename__ = "files"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String(500), nullable=False)
    mime_type = Column(String(255), nullable=False)
    size = Column(BigInteger, nullable=False, default=0)
    path = Column(String(1000), nullable=False, unique=True)
    user_id = Column(Integer, ForeignKey("users.id", ondelete="SET NULL"), nullable=True, index=True)

    upload_status = Column(SAEnum(UploadStatus, name="upload_status"), nullable=False, default=UploadStatus.pending)
    upload_progress = Column(Integer, nullable=False, default=0)
    upload_url = Column(String(2000), nullable=True)
    upload_expires_at = Column(DateTime(timezone=True), nullable=True)
    upload_session_id = Column(String(64), nullable=True)
    upload_retry_count = Column(Integer, nullable=False, default=0)
    upload_error = Column(Text, nullable=True)
    uploaded_at = Column(DateTime(timezone=True), nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    is_thumbnail = Column(Boolean, nullable=False, default=False)
    thumbnail_id = Column(Integer, ForeignKey("files.id", ondelete="SET NULL"), nullable=True)

    assignment_id = Column(Integer, ForeignKey("assignments.id", ondelete="CASCADE"), nullable=True, index=True)
    submission_id = Column(Integer, ForeignKey("submissions.id", ondelete="CASCADE"), nullable=True, index=True)
    annotation_submission_id = Column(
        Integer, ForeignKey("submissions.id", ondelete="CASCADE"), nullable=True, index=True
    )
    announcement_id = Column(Integer, ForeignKey("announcements.id", ondelete="CASCADE"), nullable=True, index=True)
    folder_id = Column(Integer, ForeignKey("folders.id", ondelete="CASCADE"), nullable=True, index=True)

    thumbnail = relationship("FileRecord", remote_side=[id], foreign_keys=[thumbnail_id])
