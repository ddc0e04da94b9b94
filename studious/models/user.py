import secrets

from sqlalchemy import Column, Integer, String, DateTime, ForeignKey
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from studious.core.database import Base


def generate_session_token() -> str:
    return secrets.token_urlsafe(32)


class User(Base):
    __tablename__ = "users"

    id = Column(Integer, primary_key=True, index=True)
    username = Column(String(255), nullable=False, unique=True, index=True)
    email = Column(String(255), nullable=True, index=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    # Relationships
    memberships = relationship("ClassMember", back_populates="user", passive_deletes=True)
    sessions = relationship("AuthSession", back_populates="user", passive_deletes=True)


class AuthSession(Base):
    """Bearer token issued by the login flow; resolved to a user on every request."""
    __tablename__ = "auth_sessions"

    token = Column(String(64), primary_key=True, default=generate_session_token)
    user_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    expires_at = Column(DateTime(timezone=True), nullable=True)

    user = relationship("User", back_populates="sessions")
