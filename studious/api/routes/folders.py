import logging
from typing import List

from fastapi import APIRouter, Depends, status
from sqlalchemy.orm import Session

from studious.api.routes.assignments import file_metas
from studious.core.auth import check_class_member, check_class_teacher, get_current_user
from studious.core.database import get_db
from studious.core.errors import NotFoundError, ValidationError
from studious.models.folder import Folder
from studious.models.user import User
from studious.schemas.file import DeletionResponse, UploadRequest, UploadSlotResponse, UploadSlotsResponse
from studious.schemas.folder import FolderCreate, FolderDetailResponse, FolderMove, FolderResponse, FolderUpdate
from studious.services.container import Services, get_services
from studious.services.uploads import AttachTarget

logger = logging.getLogger(__name__)
router = APIRouter()


def get_class_folder(db: Session, class_id: int, folder_id: int) -> Folder:
    folder = db.query(Folder).filter(Folder.id == folder_id, Folder.class_id == class_id).first()
    if not folder:
        raise NotFoundError("Folder not found")
    return folder


@router.post("", response_model=FolderResponse, status_code=status.HTTP_201_CREATED)
def create_folder(
    class_id: int,
    payload: FolderCreate,
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
):
    check_class_teacher(db, class_id, user)
    if payload.parent_id is not None:
        get_class_folder(db, class_id, payload.parent_id)
    folder = Folder(class_id=class_id, parent_id=payload.parent_id, name=payload.name)
    db.add(folder)
    db.commit()
    db.refresh(folder)
    return folder


@router.get("", response_model=List[FolderResponse])
def list_root_folders(
    class_id: int,
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
):
    check_class_member(db, class_id, user)
    return (
        db.query(Folder)
        .filter(Folder.class_id == class_id, Folder.parent_id.is_(None))
        .order_by(Folder.name)
        .all()
    )


@router.get("/{folder_id}", response_model=FolderDetailResponse)
def get_folder(
    class_id: int,
    folder_id: int,
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
):
    check_class_member(db, class_id, user)
    return get_class_folder(db, class_id, folder_id)


@router.put("/{folder_id}", response_model=FolderResponse)
def rename_folder(
    class_id: int,
    folder_id: int,
    payload: FolderUpdate,
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
):
    check_class_teacher(db, class_id, user)
    folder = get_class_folder(db, class_id, folder_id)
    name = payload.name.strip()
    if not name:
        raise ValidationError("Folder name cannot be empty")
    folder.name = name
    db.commit()
    db.refresh(folder)
    return folder


@router.post("/{folder_id}/move", response_model=FolderResponse)
def move_folder(
    class_id: int,
    folder_id: int,
    payload: FolderMove,
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
):
    """Re-parent a folder within its class; a folder cannot move under itself."""
    check_class_teacher(db, class_id, user)
    folder = get_class_folder(db, class_id, folder_id)

    if payload.parent_id is not None:
        target = get_class_folder(db, class_id, payload.parent_id)
        # Walk up from the target; meeting the moved folder means a cycle
        while target is not None:
            if target.id == folder.id:
                raise ValidationError("Cannot move a folder into itself or one of its subfolders")
            target = target.parent

    folder.parent_id = payload.parent_id
    db.commit()
    db.refresh(folder)
    logger.info(f"Moved folder {folder_id} in class {class_id} under {payload.parent_id}")
    return folder


@router.post("/{folder_id}/upload-urls", response_model=UploadSlotsResponse, status_code=status.HTTP_201_CREATED)
def request_folder_uploads(
    class_id: int,
    folder_id: int,
    payload: UploadRequest,
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
    services: Services = Depends(get_services),
):
    check_class_teacher(db, class_id, user)
    get_class_folder(db, class_id, folder_id)
    slots = services.uploads.request_upload_slots(
        db, file_metas(payload.files), user.id, AttachTarget(folder_id=folder_id)
    )
    return UploadSlotsResponse(files=[UploadSlotResponse.model_validate(s) for s in slots])


@router.delete("/{folder_id}", response_model=DeletionResponse)
async def delete_folder(
    class_id: int,
    folder_id: int,
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
    services: Services = Depends(get_services),
):
    """Delete a folder, its subfolders, and every file in them."""
    check_class_teacher(db, class_id, user)
    folder = get_class_folder(db, class_id, folder_id)
    report = await services.cascade.delete(db, folder)
    return DeletionResponse(id=folder_id, files_deleted=report.files, blob_failures=len(report.purge.failed))
