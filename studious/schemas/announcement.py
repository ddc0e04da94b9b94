from pydantic import BaseModel, Field
from typing import Optional, List
from datetime import datetime
from studious.schemas.base import BaseSchema
from studious.schemas.file import FileResponse


class AnnouncementCreate(BaseModel):
    remarks: str = Field(min_length=1)


class AnnouncementUpdate(BaseModel):
    remarks: str = Field(min_length=1)


class AnnouncementResponse(BaseSchema):
    id: int
    class_id: int
    teacher_id: Optional[int] = None
    remarks: str
    created_at: Optional[datetime] = None
    attachments: List[FileResponse] = []
