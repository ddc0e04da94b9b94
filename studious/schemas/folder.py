from pydantic import BaseModel, Field
from typing import Optional, List
from datetime import datetime
from studious.schemas.base import BaseSchema
from studious.schemas.file import FileResponse


class FolderCreate(BaseModel):
    name: str = Field(min_length=1, max_length=255)
    parent_id: Optional[int] = None


class FolderUpdate(BaseModel):
    name: str = Field(min_length=1, max_length=255)


class FolderMove(BaseModel):
    """Target parent; None moves the folder to the top level of its class."""
    parent_id: Optional[int] = None


class FolderResponse(BaseSchema):
    id: int
    class_id: int
    parent_id: Optional[int] = None
    name: str
    created_at: Optional[datetime] = None


class FolderDetailResponse(FolderResponse):
    files: List[FileResponse] = []
    children: List[FolderResponse] = []
