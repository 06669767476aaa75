from sqlalchemy import Column, Integer, String, Text, DateTime, ForeignKey, JSON, UniqueConstraint, Enum as SQLEnum
from sqlalchemy.sql import func
from sqlalchemy.orm import relationship
from spandana.database import Base, utcnow
import enum


class ExamStatus(str, enum.Enum):
    DRAFT = "draft"
    SCHEDULED = "scheduled"
    ACTIVE = "active"
    COMPLETED = "completed"


class Difficulty(str, enum.Enum):
    EASY = "easy"
    MEDIUM = "medium"
    HARD = "hard"


class Exam(Base):
    """Timed exam created by an admin"""
    __tablename__ = "exams"

    id = Column(Integer, primary_key=True, index=True)
    title = Column(String, nullable=False)
    description = Column(Text, nullable=True)
    duration_minutes = Column(Integer, nullable=False)
    total_questions = Column(Integer, nullable=False, default=0)
    passing_score = Column(Integer, nullable=True)
    status = Column(SQLEnum(ExamStatus), nullable=False, default=ExamStatus.DRAFT)
    scheduled_start = Column(DateTime(timezone=True), nullable=True)
    scheduled_end = Column(DateTime(timezone=True), nullable=True)
    created_by = Column(String, nullable=True)
    created_at = Column(DateTime(timezone=True), default=utcnow)

    # Relationships
    questions = relationship("Question", back_populates="exam")
    attempts = relationship("ExamAttempt", back_populates="exam", cascade="all, delete-orphan")
    assignments = relationship("ExamParticipant", back_populates="exam", cascade="all, delete-orphan")
    team_scores = relationship("TeamScore", back_populates="exam", cascade="all, delete-orphan")


class Question(Base):
    """Multiple-choice question; exam_id NULL means it sits in the question bank"""
    __tablename__ = "questions"

    id = Column(Integer, primary_key=True, index=True)
    exam_id = Column(Integer, ForeignKey("exams.id"), nullable=True, index=True)
    question_text = Column(Text, nullable=False)
    option_a = Column(Text, nullable=False)
    option_b = Column(Text, nullable=False)
    option_c = Column(Text, nullable=False)
    option_d = Column(Text, nullable=False)
    correct_answer = Column(String(1), nullable=False)  # "A" | "B" | "C" | "D"
    points = Column(Integer, nullable=False, default=1)
    explanation = Column(Text, nullable=True)
    difficulty_level = Column(SQLEnum(Difficulty), nullable=True, default=Difficulty.MEDIUM)
    category = Column(String, nullable=True)
    tags = Column(JSON, default=list)
    order_index = Column(Integer, nullable=True)
    created_at = Column(DateTime(timezone=True), default=utcnow)

    # Relationships
    exam = relationship("Exam", back_populates="questions")
    set_links = relationship("QuestionSetQuestion", back_populates="question", cascade="all, delete-orphan")


class QuestionSet(Base):
    """Named, ordered bundle of question references"""
    __tablename__ = "question_sets"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String, nullable=False)
    description = Column(Text, nullable=True)
    total_questions = Column(Integer, nullable=False, default=0)
    created_by = Column(String, nullable=True)
    created_at = Column(DateTime(timezone=True), default=utcnow)
    updated_at = Column(DateTime(timezone=True), onupdate=func.now())

    # Relationships
    items = relationship(
        "QuestionSetQuestion",
        back_populates="question_set",
        cascade="all, delete-orphan",
        order_by="QuestionSetQuestion.order_index",
    )


class QuestionSetQuestion(Base):
    __tablename__ = "question_set_questions"
    __table_args__ = (UniqueConstraint("question_set_id", "question_id"),)

    id = Column(Integer, primary_key=True, index=True)
    question_set_id = Column(Integer, ForeignKey("question_sets.id", ondelete="CASCADE"), nullable=False)
    question_id = Column(Integer, ForeignKey("questions.id", ondelete="CASCADE"), nullable=False)
    order_index = Column(Integer, nullable=False)

    # Relationships
    question_set = relationship("QuestionSet", back_populates="items")
    question = relationship("Question", back_populates="set_links")


class ExamParticipant(Base):
    """Assignment of a participant to an exam; an exam with no rows is open to everyone"""
    __tablename__ = "exam_participants"
    __table_args__ = (UniqueConstraint("exam_id", "participant_id"),)

    id = Column(Integer, primary_key=True, index=True)
    exam_id = Column(Integer, ForeignKey("exams.id", ondelete="CASCADE"), nullable=False, index=True)
    participant_id = Column(Integer, ForeignKey("participants.id", ondelete="CASCADE"), nullable=False)
    assigned_by = Column(String, nullable=True)
    assigned_at = Column(DateTime(timezone=True), default=utcnow)

    # Relationships
    exam = relationship("Exam", back_populates="assignments")
    participant = relationship("Participant")
