import logging
from typing import List

from fastapi import APIRouter, Depends, status
from sqlalchemy.orm import Session

from studious.core.auth import get_current_user
from studious.core.database import get_db
from studious.core.errors import NotFoundError
from studious.models.notification import Notification
from studious.models.user import User
from studious.schemas.notification import (
    NotificationBatchResponse,
    NotificationResponse,
    NotificationSend,
    NotificationSendMany,
)
from studious.services.container import Services, get_services

logger = logging.getLogger(__name__)
router = APIRouter()


def get_own_notification(db: Session, notification_id: int, user: User) -> Notification:
    notification = db.query(Notification).filter(
        Notification.id == notification_id,
        Notification.receiver_id == user.id,
    ).first()
    if not notification:
        raise NotFoundError("Notification not found")
    return notification


@router.get("", response_model=List[NotificationResponse])
def list_notifications(
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
):
    return (
        db.query(Notification)
        .filter(Notification.receiver_id == user.id)
        .order_by(Notification.created_at.desc(), Notification.id.desc())
        .all()
    )


@router.get("/{notification_id}", response_model=NotificationResponse)
def get_notification(
    notification_id: int,
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
):
    return get_own_notification(db, notification_id, user)


@router.post("/{notification_id}/read", response_model=NotificationResponse)
def mark_read(
    notification_id: int,
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
):
    notification = get_own_notification(db, notification_id, user)
    notification.read = True
    db.commit()
    db.refresh(notification)
    return notification


@router.post("", response_model=NotificationResponse, status_code=status.HTTP_201_CREATED)
def send_notification(
    payload: NotificationSend,
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
    services: Services = Depends(get_services),
):
    if db.get(User, payload.receiver_id) is None:
        raise NotFoundError("Recipient not found")
    return services.notifications.notify_one(payload.receiver_id, payload.title, payload.content, sender_id=user.id)


@router.post("/batch", response_model=NotificationBatchResponse, status_code=status.HTTP_201_CREATED)
def send_notifications(
    payload: NotificationSendMany,
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
    services: Services = Depends(get_services),
):
    found = db.query(User.id).filter(User.id.in_(payload.receiver_ids)).count()
    if found != len(set(payload.receiver_ids)):
        raise NotFoundError("Recipient not found")
    sent = services.notifications.notify_many(payload.receiver_ids, payload.title, payload.content, sender_id=user.id)
    return NotificationBatchResponse(sent=sent)
