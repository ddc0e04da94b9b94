from pydantic import BaseModel, Field
from typing import Optional, List
from datetime import datetime
from studious.models.classroom import MemberRole
from studious.schemas.base import BaseSchema


class ClassCreate(BaseModel):
    name: str = Field(min_length=1, max_length=255)
    subject: Optional[str] = None
    section: Optional[str] = None
    color: Optional[str] = None


class ClassUpdate(BaseModel):
    name: Optional[str] = Field(default=None, min_length=1, max_length=255)
    subject: Optional[str] = None
    section: Optional[str] = None
    color: Optional[str] = None


class JoinClassRequest(BaseModel):
    invite_code: str = Field(min_length=1)


class MemberAdd(BaseModel):
    user_id: int
    role: MemberRole = MemberRole.student


class MemberResponse(BaseSchema):
    user_id: int
    role: MemberRole
    joined_at: Optional[datetime] = None


class ClassResponse(BaseSchema):
    id: int
    name: str
    subject: Optional[str] = None
    section: Optional[str] = None
    color: Optional[str] = None
    invite_code: str
    created_by: Optional[int] = None
    created_at: Optional[datetime] = None


class ClassDetailResponse(ClassResponse):
    members: List[MemberResponse] = []
