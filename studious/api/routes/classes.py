import logging
from typing import List

from fastapi import APIRouter, Depends, status
from sqlalchemy.orm import Session

from studious.core.auth import check_class_member, check_class_teacher, get_current_user, get_membership
from studious.core.database import get_db
from studious.core.errors import ConflictError, NotFoundError, ValidationError
from studious.models.classroom import Classroom, ClassMember, MemberRole
from studious.models.user import User
from studious.schemas.classroom import (
    ClassCreate,
    ClassDetailResponse,
    ClassResponse,
    ClassUpdate,
    JoinClassRequest,
    MemberAdd,
    MemberResponse,
)
from studious.schemas.file import DeletionResponse
from studious.services.cache import announcements_key, class_key
from studious.services.container import Services, get_services

logger = logging.getLogger(__name__)
router = APIRouter()


@router.post("", response_model=ClassResponse, status_code=status.HTTP_201_CREATED)
def create_class(
    payload: ClassCreate,
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
):
    """Create a class; the creator becomes its first teacher."""
    classroom = Classroom(**payload.model_dump(), created_by=user.id)
    db.add(classroom)
    db.flush()
    db.add(ClassMember(class_id=classroom.id, user_id=user.id, role=MemberRole.teacher))
    db.commit()
    db.refresh(classroom)
    logger.info(f"Created class {classroom.id} for user {user.id}")
    return classroom


@router.get("", response_model=List[ClassResponse])
def list_my_classes(
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
):
    return (
        db.query(Classroom)
        .join(ClassMember, ClassMember.class_id == Classroom.id)
        .filter(ClassMember.user_id == user.id)
        .order_by(Classroom.created_at.desc(), Classroom.id.desc())
        .all()
    )


@router.get("/{class_id}", response_model=ClassDetailResponse)
def get_class(
    class_id: int,
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
    services: Services = Depends(get_services),
):
    check_class_member(db, class_id, user)

    def load():
        classroom = db.get(Classroom, class_id)
        return ClassDetailResponse.model_validate(classroom).model_dump(mode="json")

    return services.cache.get_or_load(class_key(class_id), load)


@router.put("/{class_id}", response_model=ClassResponse)
def update_class(
    class_id: int,
    payload: ClassUpdate,
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
    services: Services = Depends(get_services),
):
    check_class_teacher(db, class_id, user)
    classroom = db.get(Classroom, class_id)
    for field, value in payload.model_dump(exclude_unset=True).items():
        setattr(classroom, field, value)
    db.commit()
    db.refresh(classroom)
    services.cache.invalidate(class_key(class_id))
    return classroom


@router.delete("/{class_id}", response_model=DeletionResponse)
async def delete_class(
    class_id: int,
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
    services: Services = Depends(get_services),
):
    """Delete a class with everything in it, stored files included."""
    check_class_teacher(db, class_id, user)
    report = await services.cascade.delete(db, db.get(Classroom, class_id))
    services.cache.invalidate(class_key(class_id), announcements_key(class_id))
    return DeletionResponse(id=class_id, files_deleted=report.files, blob_failures=len(report.purge.failed))


@router.post("/join", response_model=ClassResponse)
def join_class(
    payload: JoinClassRequest,
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
    services: Services = Depends(get_services),
):
    classroom = db.query(Classroom).filter(Classroom.invite_code == payload.invite_code.strip().upper()).first()
    if classroom is None:
        raise NotFoundError("Invalid invite code")
    if get_membership(db, classroom.id, user.id) is not None:
        raise ConflictError("Already a member of this class")
    db.add(ClassMember(class_id=classroom.id, user_id=user.id, role=MemberRole.student))
    db.commit()
    services.cache.invalidate(class_key(classroom.id))
    logger.info(f"User {user.id} joined class {classroom.id}")
    return classroom


@router.post("/{class_id}/members", response_model=MemberResponse, status_code=status.HTTP_201_CREATED)
def add_member(
    class_id: int,
    payload: MemberAdd,
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
    services: Services = Depends(get_services),
):
    check_class_teacher(db, class_id, user)
    if db.get(User, payload.user_id) is None:
        raise NotFoundError("User not found")
    if get_membership(db, class_id, payload.user_id) is not None:
        raise ConflictError("User is already a member of this class")
    member = ClassMember(class_id=class_id, user_id=payload.user_id, role=payload.role)
    db.add(member)
    db.commit()
    db.refresh(member)
    services.cache.invalidate(class_key(class_id))
    return member


@router.delete("/{class_id}/members/{user_id}", status_code=status.HTTP_204_NO_CONTENT)
def remove_member(
    class_id: int,
    user_id: int,
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
    services: Services = Depends(get_services),
):
    """Teachers remove anyone; members may remove themselves."""
    if user_id == user.id:
        membership = check_class_member(db, class_id, user)
    else:
        check_class_teacher(db, class_id, user)
        membership = get_membership(db, class_id, user_id)
        if membership is None:
            raise NotFoundError("Member not found")

    if membership.role == MemberRole.teacher:
        teachers = db.query(ClassMember).filter(
            ClassMember.class_id == class_id,
            ClassMember.role == MemberRole.teacher,
        ).count()
        if teachers <= 1:
            raise ValidationError("A class must keep at least one teacher")

    db.delete(membership)
    db.commit()
    services.cache.invalidate(class_key(class_id))
