from sqlalchemy import Column, Integer, String, Text, DateTime, Date, ForeignKey, Boolean
from sqlalchemy.sql import func
from sqlalchemy.orm import relationship
from spandana.database import Base


class Team(Base):
    """Two-member team registered together"""
    __tablename__ = "teams"

    id = Column(Integer, primary_key=True, index=True)
    team_name = Column(String, unique=True, nullable=False)
    team_code = Column(String, unique=True, index=True, nullable=False)  # GS-AB-CD-0001
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    # Relationships
    participants = relationship(
        "Participant",
        back_populates="team",
        order_by="Participant.is_participant1.desc()",
    )


class Participant(Base):
    """A registered participant, linked 1:1 to an auth-provider user"""
    __tablename__ = "participants"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(String, unique=True, index=True, nullable=False)
    team_id = Column(Integer, ForeignKey("teams.id"), nullable=False)
    is_participant1 = Column(Boolean, nullable=False, default=True)

    name = Column(String, nullable=False)
    gender = Column(String, nullable=True)
    email = Column(String, unique=True, index=True, nullable=False)
    phone = Column(String, nullable=False)
    school_name = Column(String, nullable=False)
    aadhar = Column(String, nullable=False)
    email_verified = Column(Boolean, default=False)
    phone_verified = Column(Boolean, default=False)

    # Profile completion fields
    address = Column(Text, nullable=True)
    school_address = Column(Text, nullable=True)
    class_name = Column(String, nullable=True)
    date_of_birth = Column(Date, nullable=True)
    parent_name = Column(String, nullable=True)
    parent_phone = Column(String, nullable=True)
    profile_photo_url = Column(String, nullable=True)
    profile_completed = Column(Boolean, default=False)

    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), onupdate=func.now())

    # Relationships
    team = relationship("Team", back_populates="participants")
    attempts = relationship("ExamAttempt", back_populates="participant", cascade="all, delete-orphan")
