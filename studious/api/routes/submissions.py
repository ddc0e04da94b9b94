import logging
from datetime import datetime, timezone
from typing import List

from fastapi import APIRouter, Depends, status
from sqlalchemy.orm import Session

from studious.api.routes.assignments import file_metas, get_class_assignment
from studious.core.auth import check_class_member, check_class_teacher, get_current_user
from studious.core.database import get_db
from studious.core.errors import AuthorizationError, NotFoundError, ValidationError
from studious.models.assignment import Submission
from studious.models.classroom import MemberRole
from studious.models.file_record import FileRecord
from studious.models.user import User
from studious.schemas.assignment import SubmissionGrade, SubmissionResponse
from studious.schemas.file import DeletionResponse, UploadRequest, UploadSlotResponse, UploadSlotsResponse
from studious.services.container import Services, get_services
from studious.services.uploads import AttachTarget

logger = logging.getLogger(__name__)
router = APIRouter()


def get_visible_submission(
    db: Session, class_id: int, assignment_id: int, submission_id: int, user: User
) -> Submission:
    """The student who owns a submission and the class teachers can see it."""
    membership = check_class_member(db, class_id, user)
    get_class_assignment(db, class_id, assignment_id)
    submission = db.query(Submission).filter(
        Submission.id == submission_id,
        Submission.assignment_id == assignment_id,
    ).first()
    if not submission:
        raise NotFoundError("Submission not found")
    if submission.student_id != user.id and membership.role != MemberRole.teacher:
        raise NotFoundError("Submission not found")
    return submission


@router.get("", response_model=List[SubmissionResponse])
def list_submissions(
    class_id: int,
    assignment_id: int,
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
):
    check_class_teacher(db, class_id, user)
    get_class_assignment(db, class_id, assignment_id)
    return (
        db.query(Submission)
        .filter(Submission.assignment_id == assignment_id)
        .order_by(Submission.student_id)
        .all()
    )


@router.get("/mine", response_model=SubmissionResponse)
def get_my_submission(
    class_id: int,
    assignment_id: int,
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
):
    check_class_member(db, class_id, user)
    get_class_assignment(db, class_id, assignment_id)
    submission = db.query(Submission).filter(
        Submission.assignment_id == assignment_id,
        Submission.student_id == user.id,
    ).first()
    if not submission:
        raise NotFoundError("Submission not found")
    return submission


@router.get("/{submission_id}", response_model=SubmissionResponse)
def get_submission(
    class_id: int,
    assignment_id: int,
    submission_id: int,
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
):
    return get_visible_submission(db, class_id, assignment_id, submission_id, user)


@router.post("/{submission_id}/submit", response_model=SubmissionResponse)
def toggle_submitted(
    class_id: int,
    assignment_id: int,
    submission_id: int,
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
):
    """Turn a submission in, or take it back if it has not been returned yet."""
    submission = get_visible_submission(db, class_id, assignment_id, submission_id, user)
    if submission.student_id != user.id:
        raise AuthorizationError("Only the student can submit")
    if submission.returned:
        raise ValidationError("Submission has already been returned")
    submission.submitted = not submission.submitted
    submission.submitted_at = datetime.now(timezone.utc) if submission.submitted else None
    db.commit()
    db.refresh(submission)
    return submission


@router.put("/{submission_id}/grade", response_model=SubmissionResponse)
def grade_submission(
    class_id: int,
    assignment_id: int,
    submission_id: int,
    payload: SubmissionGrade,
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
):
    check_class_teacher(db, class_id, user)
    submission = get_visible_submission(db, class_id, assignment_id, submission_id, user)
    max_grade = submission.assignment.max_grade
    if payload.grade_received is not None and max_grade is not None and payload.grade_received > max_grade:
        raise ValidationError(f"Grade cannot exceed {max_grade}")
    for field, value in payload.model_dump(exclude_unset=True).items():
        setattr(submission, field, value)
    db.commit()
    db.refresh(submission)
    return submission


@router.post("/{submission_id}/upload-urls", response_model=UploadSlotsResponse, status_code=status.HTTP_201_CREATED)
def request_submission_uploads(
    class_id: int,
    assignment_id: int,
    submission_id: int,
    payload: UploadRequest,
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
    services: Services = Depends(get_services),
):
    submission = get_visible_submission(db, class_id, assignment_id, submission_id, user)
    if submission.student_id != user.id:
        raise AuthorizationError("Only the student can attach files to a submission")
    slots = services.uploads.request_upload_slots(
        db, file_metas(payload.files), user.id, AttachTarget(submission_id=submission_id)
    )
    return UploadSlotsResponse(files=[UploadSlotResponse.model_validate(s) for s in slots])


@router.post(
    "/{submission_id}/annotation-upload-urls",
    response_model=UploadSlotsResponse,
    status_code=status.HTTP_201_CREATED,
)
def request_annotation_uploads(
    class_id: int,
    assignment_id: int,
    submission_id: int,
    payload: UploadRequest,
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
    services: Services = Depends(get_services),
):
    check_class_teacher(db, class_id, user)
    get_visible_submission(db, class_id, assignment_id, submission_id, user)
    slots = services.uploads.request_upload_slots(
        db, file_metas(payload.files), user.id, AttachTarget(annotation_submission_id=submission_id)
    )
    return UploadSlotsResponse(files=[UploadSlotResponse.model_validate(s) for s in slots])


@router.delete("/{submission_id}/files/{file_id}", response_model=DeletionResponse)
async def remove_submission_file(
    class_id: int,
    assignment_id: int,
    submission_id: int,
    file_id: int,
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
    services: Services = Depends(get_services),
):
    """Students remove their attachments; teachers remove their annotations."""
    submission = get_visible_submission(db, class_id, assignment_id, submission_id, user)
    record = db.get(FileRecord, file_id)
    if record is None:
        raise NotFoundError("File not found")
    if record.submission_id == submission.id:
        allowed = submission.student_id == user.id
    elif record.annotation_submission_id == submission.id:
        allowed = submission.student_id != user.id
    else:
        raise NotFoundError("File not found")
    if not allowed:
        raise AuthorizationError("Cannot remove this file")

    report = await services.cascade.delete_files(db, [record])
    return DeletionResponse(id=file_id, files_deleted=report.files, blob_failures=len(report.purge.failed))
