from sqlalchemy import Column, Integer, String, DateTime, ForeignKey, Boolean, UniqueConstraint, Enum as SQLEnum
from sqlalchemy.orm import relationship
from spandana.database import Base, utcnow
import enum


class AttemptStatus(str, enum.Enum):
    IN_PROGRESS = "in_progress"
    SUBMITTED = "submitted"
    TIMEOUT = "timeout"


class ExamAttempt(Base):
    """One participant's timed run at one exam"""
    __tablename__ = "exam_attempts"

    id = Column(Integer, primary_key=True, index=True)
    exam_id = Column(Integer, ForeignKey("exams.id", ondelete="CASCADE"), nullable=False, index=True)
    participant_id = Column(Integer, ForeignKey("participants.id", ondelete="CASCADE"), nullable=False, index=True)
    status = Column(SQLEnum(AttemptStatus), nullable=False, default=AttemptStatus.IN_PROGRESS)
    score = Column(Integer, nullable=True)
    total_questions = Column(Integer, nullable=False, default=0)
    correct_answers = Column(Integer, nullable=True)
    started_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)
    submitted_at = Column(DateTime(timezone=True), nullable=True)
    time_taken_minutes = Column(Integer, nullable=True)

    # Relationships
    exam = relationship("Exam", back_populates="attempts")
    participant = relationship("Participant", back_populates="attempts")
    answers = relationship("ExamAnswer", back_populates="attempt", cascade="all, delete-orphan")


class ExamAnswer(Base):
    """Answer row keyed by (attempt, question).

    question_id is a soft reference: answer rows outlive the question they point at.
    """
    __tablename__ = "exam_answers"
    __table_args__ = (UniqueConstraint("attempt_id", "question_id"),)

    id = Column(Integer, primary_key=True, index=True)
    attempt_id = Column(Integer, ForeignKey("exam_attempts.id", ondelete="CASCADE"), nullable=False, index=True)
    question_id = Column(Integer, nullable=False, index=True)
    selected_answer = Column(String(1), nullable=True)
    is_correct = Column(Boolean, nullable=True)
    points_earned = Column(Integer, nullable=True)
    answered_at = Column(DateTime(timezone=True), default=utcnow, onupdate=utcnow)

    # Relationships
    attempt = relationship("ExamAttempt", back_populates="answers")


class TeamScore(Base):
    """Per-exam team aggregate; rows are written by the scoring pipeline, read here"""
    __tablename__ = "team_scores"
    __table_args__ = (UniqueConstraint("team_id", "exam_id"),)

    id = Column(Integer, primary_key=True, index=True)
    team_id = Column(Integer, ForeignKey("teams.id", ondelete="CASCADE"), nullable=False)
    exam_id = Column(Integer, ForeignKey("exams.id", ondelete="CASCADE"), nullable=False, index=True)
    participant1_score = Column(Integer, nullable=True)
    participant2_score = Column(Integer, nullable=True)
    total_team_score = Column(Integer, nullable=True)
    rank = Column(Integer, nullable=True)
    created_at = Column(DateTime(timezone=True), default=utcnow)

    # Relationships
    team = relationship("Team")
    exam = relationship("Exam", back_populates="team_scores")
