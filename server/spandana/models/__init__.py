"""
Models package initialization
Import all models here to ensure they are registered with SQLAlchemy
"""

from spandana.models.user import UserProfile, UserRole
from spandana.models.team import Team, Participant
from spandana.models.content import (
    Exam,
    ExamStatus,
    Difficulty,
    Question,
    QuestionSet,
    QuestionSetQuestion,
    ExamParticipant,
)
from spandana.models.session import ExamAttempt, ExamAnswer, AttemptStatus, TeamScore

__all__ = [
    "UserProfile",
    "UserRole",
    "Team",
    "Participant",
    "Exam",
    "ExamStatus",
    "Difficulty",
    "Question",
    "QuestionSet",
    "QuestionSetQuestion",
    "ExamParticipant",
    "ExamAttempt",
    "ExamAnswer",
    "AttemptStatus",
    "TeamScore",
]
