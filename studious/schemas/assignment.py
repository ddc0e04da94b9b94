from pydantic import BaseModel, Field
from typing import Optional, List
from datetime import datetime
from studious.schemas.base import BaseSchema
from studious.schemas.file import DirectFileUpload, FileResponse, UploadSlotResponse


class AssignmentCreate(BaseModel):
    title: str = Field(min_length=1, max_length=255)
    instructions: Optional[str] = None
    due_date: Optional[datetime] = None
    max_grade: Optional[int] = Field(default=None, ge=0)
    graded: bool = False
    weight: float = Field(default=1.0, ge=0)
    files: List[DirectFileUpload] = []


class AssignmentUpdate(BaseModel):
    title: Optional[str] = Field(default=None, min_length=1, max_length=255)
    instructions: Optional[str] = None
    due_date: Optional[datetime] = None
    max_grade: Optional[int] = Field(default=None, ge=0)
    graded: Optional[bool] = None
    weight: Optional[float] = Field(default=None, ge=0)
    removed_attachment_ids: List[int] = []


class AssignmentResponse(BaseSchema):
    id: int
    class_id: int
    teacher_id: Optional[int] = None
    title: str
    instructions: Optional[str] = None
    due_date: Optional[datetime] = None
    max_grade: Optional[int] = None
    graded: bool
    weight: float
    created_at: Optional[datetime] = None
    attachments: List[FileResponse] = []


class AssignmentCreateResponse(AssignmentResponse):
    upload_files: List[UploadSlotResponse] = []


class SubmissionGrade(BaseModel):
    grade_received: Optional[int] = Field(default=None, ge=0)
    feedback: Optional[str] = None
    returned: Optional[bool] = None


class SubmissionResponse(BaseSchema):
    id: int
    assignment_id: int
    student_id: int
    submitted: bool
    submitted_at: Optional[datetime] = None
    returned: bool
    grade_received: Optional[int] = None
    feedback: Optional[str] = None
    attachments: List[FileResponse] = []
    annotations: List[FileResponse] = []
