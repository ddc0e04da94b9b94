from datetime import datetime, timezone
from typing import Optional

from fastapi import Depends, Header
from sqlalchemy.orm import Session

from studious.core.database import get_db
from studious.core.errors import AuthenticationError, AuthorizationError, NotFoundError
from studious.models.announcement import Announcement
from studious.models.assignment import Assignment, Submission
from studious.models.classroom import Classroom, ClassMember, MemberRole
from studious.models.file_record import FileRecord
from studious.models.folder import Folder
from studious.models.user import AuthSession, User


def _bearer_token(authorization: Optional[str]) -> str:
    if not authorization:
        raise AuthenticationError("Authorization header required")
    scheme, _, token = authorization.partition(" ")
    if scheme.lower() != "bearer" or not token.strip():
        raise AuthenticationError("Bearer token required")
    return token.strip()


def get_current_user(
    authorization: Optional[str] = Header(default=None, alias="Authorization"),
    db: Session = Depends(get_db),
) -> User:
    """Resolve the session token to its user."""
    token = _bearer_token(authorization)
    session = db.get(AuthSession, token)
    if session is None:
        raise AuthenticationError("Invalid session")
    if session.expires_at is not None:
        expires_at = session.expires_at
        if expires_at.tzinfo is None:
            expires_at = expires_at.replace(tzinfo=timezone.utc)
        if expires_at <= datetime.now(timezone.utc):
            raise AuthenticationError("Session expired")
    return session.user


def get_membership(db: Session, class_id: int, user_id: int) -> Optional[ClassMember]:
    return db.query(ClassMember).filter(
        ClassMember.class_id == class_id,
        ClassMember.user_id == user_id,
    ).first()


def check_class_member(db: Session, class_id: int, user: User) -> ClassMember:
    """Verify the class exists and the user belongs to it."""
    if db.get(Classroom, class_id) is None:
        raise NotFoundError("Class not found")
    membership = get_membership(db, class_id, user.id)
    if membership is None:
        raise AuthorizationError("Not a member of this class")
    return membership


def check_class_teacher(db: Session, class_id: int, user: User) -> ClassMember:
    """Verify the user teaches the class."""
    membership = check_class_member(db, class_id, user)
    if membership.role != MemberRole.teacher:
        raise AuthorizationError("Only teachers of this class can do this")
    return membership


def class_member_ids(db: Session, class_id: int, role: Optional[MemberRole] = None) -> list[int]:
    query = db.query(ClassMember.user_id).filter(ClassMember.class_id == class_id)
    if role is not None:
        query = query.filter(ClassMember.role == role)
    return [row.user_id for row in query.order_by(ClassMember.user_id).all()]


def can_access_file(db: Session, record: FileRecord, user: User) -> bool:
    """Uploader, or anyone who can see the entity that owns the file."""
    if record.user_id == user.id:
        return True
    if record.is_thumbnail:
        parent = db.query(FileRecord).filter(FileRecord.thumbnail_id == record.id).first()
        return parent is not None and can_access_file(db, parent, user)

    class_id = None
    if record.assignment_id is not None:
        class_id = db.query(Assignment.class_id).filter(Assignment.id == record.assignment_id).scalar()
    elif record.announcement_id is not None:
        class_id = db.query(Announcement.class_id).filter(Announcement.id == record.announcement_id).scalar()
    elif record.folder_id is not None:
        class_id = db.query(Folder.class_id).filter(Folder.id == record.folder_id).scalar()
    if class_id is not None:
        return get_membership(db, class_id, user.id) is not None

    submission_id = record.submission_id or record.annotation_submission_id
    if submission_id is not None:
        submission = db.get(Submission, submission_id)
        if submission is None:
            return False
        if submission.student_id == user.id:
            return True
        membership = get_membership(db, submission.assignment.class_id, user.id)
        return membership is not None and membership.role == MemberRole.teacher
    return False
