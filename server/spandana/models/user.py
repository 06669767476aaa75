from sqlalchemy import Column, Integer, String, DateTime, Enum as SQLEnum
from sqlalchemy.sql import func
from spandana.database import Base
import enum


class UserRole(str, enum.Enum):
    ADMIN = "admin"
    PARTICIPANT = "participant"


class UserProfile(Base):
    """Role record for an auth-provider user; the primary source for role checks"""
    __tablename__ = "user_profiles"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(String, unique=True, index=True, nullable=False)
    role = Column(SQLEnum(UserRole), nullable=False, default=UserRole.PARTICIPANT)
    name = Column(String, nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), onupdate=func.now())

    def __repr__(self):
        return f"<UserProfile {self.user_id} ({self.role})>"
