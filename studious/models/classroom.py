import enum
import secrets
import string

from sqlalchemy import Column, Integer, String, DateTime, ForeignKey, UniqueConstraint
from sqlalchemy import Enum as SAEnum
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from studious.core.database import Base


def generate_invite_code(length: int = 8) -> str:
    """Generate a random alphanumeric invite code."""
    alphabet = string.ascii_uppercase + string.digits
    # Exclude confusing characters like 0, O, I, 1
    alphabet = alphabet.replace('0', '').replace('O', '').replace('I', '').replace('1', '')
    return ''.join(secrets.choice(alphabet) for _ in range(length))


class MemberRole(str, enum.Enum):
    teacher = "teacher"
    student = "student"


class Classroom(Base):
    __tablename__ = "classes"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String(255), nullable=False)
    subject = Column(String(255), nullable=True)
    section = Column(String(100), nullable=True)
    color = Column(String(20), nullable=True)
    invite_code = Column(String(20), unique=True, nullable=False, index=True, default=generate_invite_code)
    created_by = Column(Integer, ForeignKey("users.id", ondelete="SET NULL"), nullable=True, index=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    # Rows below are removed by ON DELETE CASCADE in the database
    members = relationship("ClassMember", back_populates="classroom", passive_deletes=True)
    assignments = relationship("Assignment", back_populates="classroom", passive_deletes=True)
    announcements = relationship("Announcement", back_populates="classroom", passive_deletes=True)
    folders = relationship("Folder", back_populates="classroom", passive_deletes=True)


class ClassMember(Base):
    """Membership of a user in a class; the role drives authorization."""
    __tablename__ = "class_members"

    id = Column(Integer, primary_key=True, index=True)
    class_id = Column(Integer, ForeignKey("classes.id", ondelete="CASCADE"), nullable=False, index=True)
    user_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    role = Column(SAEnum(MemberRole, name="member_role"), nullable=False, default=MemberRole.student)
    joined_at = Column(DateTime(timezone=True), server_default=func.now())

    classroom = relationship("Classroom", back_populates="members")
    user = relationship("User", back_populates="memberships")

    __table_args__ = (
        UniqueConstraint('class_id', 'user_id', name='unique_class_member'),
    )
