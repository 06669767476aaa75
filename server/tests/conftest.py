import os

os.environ.setdefault("SECRET_KEY", "test-secret-key")
os.environ.setdefault("OPENAI_API_KEY", "sk-test")
os.environ.setdefault("DATABASE_URL", "sqlite://")

from datetime import timedelta  # noqa: E402
from types import SimpleNamespace  # noqa: E402

import pytest  # noqa: E402
from fastapi.testclient import TestClient  # noqa: E402
from sqlalchemy import create_engine  # noqa: E402
from sqlalchemy.orm import sessionmaker  # noqa: E402
from sqlalchemy.pool import StaticPool  # noqa: E402

from spandana.database import Base, get_db, utcnow  # noqa: E402
from spandana.main import app  # noqa: E402
from spandana.models import (  # noqa: E402
    Difficulty,
    Exam,
    ExamStatus,
    Participant,
    Question,
    Team,
    UserProfile,
    UserRole,
)
from spandana.security import create_access_token  # noqa: E402

engine = create_engine(
    "sqlite://",
    connect_args={"check_same_thread": False},
    poolclass=StaticPool,
)
TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

ADMIN_USER_ID = "admin-user"


@pytest.fixture
def db():
    Base.metadata.create_all(bind=engine)
    session = TestingSessionLocal()
    try:
        yield session
    finally:
        session.close()
        Base.metadata.drop_all(bind=engine)


@pytest.fixture
def client(db):
    def override_get_db():
        yield db

    app.dependency_overrides[get_db] = override_get_db
    yield TestClient(app)
    app.dependency_overrides.clear()


def auth_headers(user_id: str, role: str = None) -> dict:
    return {"Authorization": f"Bearer {create_access_token(user_id, role=role)}"}


@pytest.fixture
def admin_headers(db):
    db.add(UserProfile(user_id=ADMIN_USER_ID, role=UserRole.ADMIN, name="Admin"))
    db.commit()
    return auth_headers(ADMIN_USER_ID)


@pytest.fixture
def make_team(db):
    counter = {"n": 0}

    def _make(team_name: str = None):
        counter["n"] += 1
        n = counter["n"]
        team = Team(team_name=team_name or f"Team {n}", team_code=f"GS-AA-BB-{n:04d}")
        db.add(team)
        db.flush()
        members = []
        for is_p1 in (True, False):
            suffix = f"{n}{'a' if is_p1 else 'b'}"
            participant = Participant(
                user_id=f"user-{suffix}",
                team_id=team.id,
                is_participant1=is_p1,
                name=f"Student {suffix}",
                email=f"student{suffix}@spandana.org",
                phone=f"9{n:04d}0000{1 if is_p1 else 2}",
                school_name="Govt High School",
                aadhar=f"{n:06d}00000{1 if is_p1 else 2}",
                email_verified=True,
            )
            db.add(participant)
            db.add(UserProfile(user_id=participant.user_id, role=UserRole.PARTICIPANT, name=participant.name))
            members.append(participant)
        db.commit()
        return team, members[0], members[1]

    return _make


@pytest.fixture
def make_exam(db):
    def _make(
        answers=("A", "B", "C"),
        points=None,
        status=ExamStatus.ACTIVE,
        duration_minutes=30,
        passing_score=None,
        title="Odisha Culture Quiz",
        **fields,
    ):
        exam = Exam(
            title=title,
            duration_minutes=duration_minutes,
            passing_score=passing_score,
            status=status,
            total_questions=len(answers),
            **fields,
        )
        db.add(exam)
        db.flush()
        for i, correct in enumerate(answers):
            db.add(Question(
                exam_id=exam.id,
                question_text=f"Question {i + 1}?",
                option_a="Alpha",
                option_b="Beta",
                option_c="Gamma",
                option_d="Delta",
                correct_answer=correct,
                points=points[i] if points else 1,
                difficulty_level=Difficulty.MEDIUM,
                order_index=i + 1,
            ))
        db.commit()
        db.refresh(exam)
        return exam

    return _make


def backdate_attempt(db, attempt, minutes: float):
    attempt.started_at = utcnow() - timedelta(minutes=minutes)
    db.commit()


class FakeCompletions:
    def __init__(self, reply):
        self.reply = reply
        self.calls = []

    def create(self, **kwargs):
        self.calls.append(kwargs)
        message = SimpleNamespace(content=self.reply)
        return SimpleNamespace(choices=[SimpleNamespace(message=message)])


class FakeOpenAI:
    """Stands in for the OpenAI client; records every chat completion request."""

    def __init__(self, reply="There are 3 questions in the question bank."):
        self.chat = SimpleNamespace(completions=FakeCompletions(reply))
