# Import all models here so Base.metadata is complete for Alembic
from studious.models.user import User, AuthSession
from studious.models.classroom import Classroom, ClassMember, MemberRole
from studious.models.assignment import Assignment, Submission
from studious.models.announcement import Announcement
from studious.models.folder import Folder
from studious.models.notification import Notification
from studious.models.file_record import FileRecord, UploadStatus

__all__ = [
    "User",
    "AuthSession",
    "Classroom",
    "ClassMember",
    "MemberRole",
    "Assignment",
    "Submission",
    "Announcement",
    "Folder",
    "Notification",
    "FileRecord",
    "UploadStatus",
]
