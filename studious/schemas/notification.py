from pydantic import BaseModel, Field
from typing import Optional, List
from datetime import datetime
from studious.schemas.base import BaseSchema


class NotificationSend(BaseModel):
    receiver_id: int
    title: str = Field(min_length=1, max_length=255)
    content: str = Field(min_length=1)


class NotificationSendMany(BaseModel):
    receiver_ids: List[int] = Field(min_length=1)
    title: str = Field(min_length=1, max_length=255)
    content: str = Field(min_length=1)


class NotificationResponse(BaseSchema):
    id: int
    receiver_id: int
    sender_id: Optional[int] = None
    title: str
    content: str
    read: bool
    created_at: Optional[datetime] = None


class NotificationBatchResponse(BaseModel):
    sent: int
