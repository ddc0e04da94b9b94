import asyncio
import logging
from typing import List, Sequence

from fastapi import APIRouter, Depends, status
from sqlalchemy.orm import Session

from studious.core.auth import check_class_member, check_class_teacher, class_member_ids, get_current_user
from studious.core.database import get_db
from studious.core.errors import NotFoundError
from studious.models.assignment import Assignment, Submission
from studious.models.classroom import MemberRole
from studious.models.file_record import FileRecord
from studious.models.user import User
from studious.schemas.assignment import (
    AssignmentCreate,
    AssignmentCreateResponse,
    AssignmentResponse,
    AssignmentUpdate,
)
from studious.schemas.file import DeletionResponse, UploadRequest, UploadSlotResponse, UploadSlotsResponse
from studious.services.container import Services, get_services
from studious.services.uploads import AttachTarget, FileMeta, validate_file_type

logger = logging.getLogger(__name__)
router = APIRouter()


def get_class_assignment(db: Session, class_id: int, assignment_id: int) -> Assignment:
    assignment = db.query(Assignment).filter(
        Assignment.id == assignment_id,
        Assignment.class_id == class_id,
    ).first()
    if not assignment:
        raise NotFoundError("Assignment not found")
    return assignment


def file_metas(files) -> List[FileMeta]:
    return [FileMeta(name=f.name, mime_type=f.type, size=f.size) for f in files]


async def create_submissions(
    db: Session,
    assignment_id: int,
    student_ids: Sequence[int],
    batch_size: int,
    pause_seconds: float,
) -> None:
    """Insert one empty submission per student, a chunk at a time."""
    batch_size = max(1, batch_size)
    for start in range(0, len(student_ids), batch_size):
        chunk = student_ids[start:start + batch_size]
        db.add_all([Submission(assignment_id=assignment_id, student_id=student_id) for student_id in chunk])
        db.flush()
        if start + batch_size < len(student_ids) and pause_seconds > 0:
            await asyncio.sleep(pause_seconds)


@router.post("", response_model=AssignmentCreateResponse, status_code=status.HTTP_201_CREATED)
async def create_assignment(
    class_id: int,
    payload: AssignmentCreate,
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
    services: Services = Depends(get_services),
):
    """Create an assignment, a submission per student, and optional upload slots."""
    check_class_teacher(db, class_id, user)
    for f in payload.files:
        validate_file_type(f.name, f.type)

    assignment = Assignment(
        class_id=class_id,
        teacher_id=user.id,
        **payload.model_dump(exclude={"files"}),
    )
    try:
        db.add(assignment)
        db.flush()
        student_ids = class_member_ids(db, class_id, MemberRole.student)
        await create_submissions(
            db,
            assignment.id,
            student_ids,
            services.settings.bulk_insert_batch_size,
            services.settings.bulk_insert_pause_seconds,
        )
        db.commit()
    except Exception:
        db.rollback()
        raise
    db.refresh(assignment)

    slots = []
    if payload.files:
        slots = services.uploads.request_upload_slots(
            db, file_metas(payload.files), user.id, AttachTarget(assignment_id=assignment.id)
        )
        db.refresh(assignment)

    services.dispatcher.dispatch(
        student_ids,
        "New assignment",
        f"A new assignment has been posted: {assignment.title}",
        sender_id=user.id,
    )
    logger.info(f"Created assignment {assignment.id} in class {class_id} with {len(student_ids)} submission(s)")

    response = AssignmentCreateResponse.model_validate(assignment)
    return response.model_copy(update={"upload_files": [UploadSlotResponse.model_validate(s) for s in slots]})


@router.get("", response_model=List[AssignmentResponse])
def list_assignments(
    class_id: int,
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
):
    check_class_member(db, class_id, user)
    return (
        db.query(Assignment)
        .filter(Assignment.class_id == class_id)
        .order_by(Assignment.created_at.desc(), Assignment.id.desc())
        .all()
    )


@router.get("/{assignment_id}", response_model=AssignmentResponse)
def get_assignment(
    class_id: int,
    assignment_id: int,
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
):
    check_class_member(db, class_id, user)
    return get_class_assignment(db, class_id, assignment_id)


@router.put("/{assignment_id}", response_model=AssignmentResponse)
async def update_assignment(
    class_id: int,
    assignment_id: int,
    payload: AssignmentUpdate,
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
    services: Services = Depends(get_services),
):
    """Update fields; attachments listed in removed_attachment_ids are deleted with their blobs."""
    check_class_teacher(db, class_id, user)
    assignment = get_class_assignment(db, class_id, assignment_id)

    for field, value in payload.model_dump(exclude_unset=True, exclude={"removed_attachment_ids"}).items():
        setattr(assignment, field, value)
    db.commit()

    if payload.removed_attachment_ids:
        removed = db.query(FileRecord).filter(
            FileRecord.id.in_(payload.removed_attachment_ids),
            FileRecord.assignment_id == assignment_id,
        ).all()
        await services.cascade.delete_files(db, removed)

    return get_class_assignment(db, class_id, assignment_id)


@router.delete("/{assignment_id}", response_model=DeletionResponse)
async def delete_assignment(
    class_id: int,
    assignment_id: int,
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
    services: Services = Depends(get_services),
):
    """Delete an assignment, its submissions, and every file they own."""
    check_class_teacher(db, class_id, user)
    assignment = get_class_assignment(db, class_id, assignment_id)
    report = await services.cascade.delete(db, assignment)
    return DeletionResponse(id=assignment_id, files_deleted=report.files, blob_failures=len(report.purge.failed))


@router.post("/{assignment_id}/upload-urls", response_model=UploadSlotsResponse, status_code=status.HTTP_201_CREATED)
def request_assignment_uploads(
    class_id: int,
    assignment_id: int,
    payload: UploadRequest,
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
    services: Services = Depends(get_services),
):
    check_class_teacher(db, class_id, user)
    get_class_assignment(db, class_id, assignment_id)
    slots = services.uploads.request_upload_slots(
        db, file_metas(payload.files), user.id, AttachTarget(assignment_id=assignment_id)
    )
    return UploadSlotsResponse(files=[UploadSlotResponse.model_validate(s) for s in slots])
