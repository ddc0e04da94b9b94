import logging
from typing import List

from fastapi import APIRouter, Depends, status
from sqlalchemy.orm import Session

from studious.api.routes.assignments import file_metas
from studious.core.auth import check_class_member, check_class_teacher, get_current_user
from studious.core.database import get_db
from studious.core.errors import NotFoundError
from studious.models.announcement import Announcement
from studious.models.classroom import MemberRole
from studious.models.user import User
from studious.schemas.announcement import AnnouncementCreate, AnnouncementResponse, AnnouncementUpdate
from studious.schemas.file import DeletionResponse, UploadRequest, UploadSlotResponse, UploadSlotsResponse
from studious.services.cache import announcements_key, class_key
from studious.services.container import Services, get_services
from studious.services.uploads import AttachTarget

logger = logging.getLogger(__name__)
router = APIRouter()

PREVIEW_LENGTH = 120


def get_class_announcement(db: Session, class_id: int, announcement_id: int) -> Announcement:
    announcement = db.query(Announcement).filter(
        Announcement.id == announcement_id,
        Announcement.class_id == class_id,
    ).first()
    if not announcement:
        raise NotFoundError("Announcement not found")
    return announcement


@router.get("", response_model=List[AnnouncementResponse])
def list_announcements(
    class_id: int,
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
    services: Services = Depends(get_services),
):
    check_class_member(db, class_id, user)

    def load():
        announcements = (
            db.query(Announcement)
            .filter(Announcement.class_id == class_id)
            .order_by(Announcement.created_at.desc(), Announcement.id.desc())
            .all()
        )
        return [AnnouncementResponse.model_validate(a).model_dump(mode="json") for a in announcements]

    return services.cache.get_or_load(announcements_key(class_id), load)


@router.post("", response_model=AnnouncementResponse, status_code=status.HTTP_201_CREATED)
async def create_announcement(
    class_id: int,
    payload: AnnouncementCreate,
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
    services: Services = Depends(get_services),
):
    """Post an announcement and notify the class without waiting on delivery."""
    check_class_teacher(db, class_id, user)
    announcement = Announcement(class_id=class_id, teacher_id=user.id, remarks=payload.remarks)
    db.add(announcement)
    db.commit()
    db.refresh(announcement)
    services.cache.invalidate(announcements_key(class_id), class_key(class_id))

    preview = payload.remarks if len(payload.remarks) <= PREVIEW_LENGTH else payload.remarks[:PREVIEW_LENGTH] + "..."
    services.dispatcher.dispatch_to_class(
        class_id,
        MemberRole.student,
        "New announcement",
        preview,
        sender_id=user.id,
    )
    logger.info(f"Created announcement {announcement.id} in class {class_id}")
    return announcement


@router.put("/{announcement_id}", response_model=AnnouncementResponse)
def update_announcement(
    class_id: int,
    announcement_id: int,
    payload: AnnouncementUpdate,
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
    services: Services = Depends(get_services),
):
    check_class_teacher(db, class_id, user)
    announcement = get_class_announcement(db, class_id, announcement_id)
    announcement.remarks = payload.remarks
    db.commit()
    db.refresh(announcement)
    services.cache.invalidate(announcements_key(class_id), class_key(class_id))
    return announcement


@router.delete("/{announcement_id}", response_model=DeletionResponse)
async def delete_announcement(
    class_id: int,
    announcement_id: int,
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
    services: Services = Depends(get_services),
):
    check_class_teacher(db, class_id, user)
    announcement = get_class_announcement(db, class_id, announcement_id)
    report = await services.cascade.delete(db, announcement)
    services.cache.invalidate(announcements_key(class_id), class_key(class_id))
    return DeletionResponse(id=announcement_id, files_deleted=report.files, blob_failures=len(report.purge.failed))


@router.post("/{announcement_id}/upload-urls", response_model=UploadSlotsResponse, status_code=status.HTTP_201_CREATED)
def request_announcement_uploads(
    class_id: int,
    announcement_id: int,
    payload: UploadRequest,
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
    services: Services = Depends(get_services),
):
    check_class_teacher(db, class_id, user)
    get_class_announcement(db, class_id, announcement_id)
    slots = services.uploads.request_upload_slots(
        db, file_metas(payload.files), user.id, AttachTarget(announcement_id=announcement_id)
    )
    services.cache.invalidate(announcements_key(class_id))
    return UploadSlotsResponse(files=[UploadSlotResponse.model_validate(s) for s in slots])
