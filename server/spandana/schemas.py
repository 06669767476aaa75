from pydantic import AfterValidator, BaseModel, EmailStr, Field, field_validator, model_validator
from typing import Annotated, Optional, List, Dict, Literal, Any
from datetime import datetime, date
import re

from spandana.database import naive_utc
from spandana.models.user import UserRole
from spandana.models.content import ExamStatus, Difficulty
from spandana.models.session import AttemptStatus


OptionLetter = Literal["A", "B", "C", "D"]

AADHAR_RE = re.compile(r"^\d{12}$")
PHONE_RE = re.compile(r"^[6-9]\d{9}$")  # Indian mobile number


UTCDatetime = Annotated[datetime, AfterValidator(naive_utc)]


# =============================================================================
# Registration & profile
# =============================================================================

class ParticipantForm(BaseModel):
    """One team member as entered on the registration form."""
    name: str = Field(min_length=2, max_length=100)
    email: EmailStr
    phone: str
    school_name: str = Field(min_length=2, max_length=200)
    aadhar: str
    password: str = Field(min_length=8)
    gender: Optional[str] = None

    @field_validator("phone")
    @classmethod
    def check_phone(cls, v: str) -> str:
        if not PHONE_RE.match(v):
            raise ValueError("Phone must be a valid 10-digit Indian mobile number")
        return v

    @field_validator("aadhar")
    @classmethod
    def check_aadhar(cls, v: str) -> str:
        if not AADHAR_RE.match(v):
            raise ValueError("Aadhar must be exactly 12 digits")
        return v

    @field_validator("password")
    @classmethod
    def check_password(cls, v: str) -> str:
        if not (re.search(r"[a-z]", v) and re.search(r"[A-Z]", v) and re.search(r"\d", v)):
            raise ValueError("Password must contain uppercase, lowercase, and a number")
        return v


class TeamRegistrationRequest(BaseModel):
    """Two-participant team registration.

    The user ids come from the auth provider once both emails are verified.
    """
    team_name: str = Field(min_length=2, max_length=100)
    participant1: ParticipantForm
    participant2: ParticipantForm
    consent: bool
    p1_user_id: str
    p2_user_id: str

    @field_validator("consent")
    @classmethod
    def check_consent(cls, v: bool) -> bool:
        if v is not True:
            raise ValueError("You must agree to the terms and conditions")
        return v

    @model_validator(mode="after")
    def check_distinct_participants(self):
        p1, p2 = self.participant1, self.participant2
        if p1.email.lower() == p2.email.lower():
            raise ValueError("Both participants must have different email addresses")
        if p1.aadhar == p2.aadhar:
            raise ValueError("Both participants must have different Aadhar numbers")
        if p1.phone == p2.phone:
            raise ValueError("Both participants must have different phone numbers")
        if self.p1_user_id == self.p2_user_id:
            raise ValueError("Both participants must have different accounts")
        return self


class TeamRegistrationResponse(BaseModel):
    success: bool
    team_id: int
    team_code: str


class ProfileUpdateRequest(BaseModel):
    """Profile completion; only provided, non-blank fields are written."""
    gender: Optional[str] = None
    address: Optional[str] = None
    school_address: Optional[str] = None
    class_name: Optional[str] = None
    date_of_birth: Optional[date] = None
    parent_name: Optional[str] = None
    parent_phone: Optional[str] = None
    profile_photo_url: Optional[str] = None


class TeamBrief(BaseModel):
    id: int
    team_name: str
    team_code: str

    class Config:
        from_attributes = True


class ParticipantResponse(BaseModel):
    id: int
    user_id: str
    name: str
    email: str
    phone: str
    school_name: str
    gender: Optional[str] = None
    is_participant1: bool
    profile_completed: bool
    address: Optional[str] = None
    school_address: Optional[str] = None
    class_name: Optional[str] = None
    date_of_birth: Optional[date] = None
    parent_name: Optional[str] = None
    parent_phone: Optional[str] = None
    profile_photo_url: Optional[str] = None
    team: Optional[TeamBrief] = None
    created_at: Optional[datetime] = None

    class Config:
        from_attributes = True


# =============================================================================
# Exams & questions
# =============================================================================

class ExamCreate(BaseModel):
    title: str = Field(min_length=1)
    description: Optional[str] = None
    duration_minutes: int = Field(ge=1)
    passing_score: Optional[int] = Field(default=None, ge=0)
    scheduled_start: Optional[UTCDatetime] = None
    scheduled_end: Optional[UTCDatetime] = None

    @model_validator(mode="after")
    def check_window(self):
        if self.scheduled_start and self.scheduled_end and self.scheduled_end <= self.scheduled_start:
            raise ValueError("scheduled_end must be after scheduled_start")
        return self


class ExamUpdate(BaseModel):
    title: Optional[str] = None
    description: Optional[str] = None
    duration_minutes: Optional[int] = Field(default=None, ge=1)
    passing_score: Optional[int] = Field(default=None, ge=0)
    scheduled_start: Optional[UTCDatetime] = None
    scheduled_end: Optional[UTCDatetime] = None


class ExamStatusUpdate(BaseModel):
    status: ExamStatus


class ExamResponse(BaseModel):
    id: int
    title: str
    description: Optional[str] = None
    duration_minutes: int
    total_questions: int
    passing_score: Optional[int] = None
    status: ExamStatus
    scheduled_start: Optional[datetime] = None
    scheduled_end: Optional[datetime] = None
    created_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class QuestionBase(BaseModel):
    question_text: str = Field(min_length=1)
    option_a: str
    option_b: str
    option_c: str
    option_d: str
    correct_answer: OptionLetter
    points: int = Field(ge=1, default=1)
    explanation: Optional[str] = None
    difficulty_level: Difficulty = Difficulty.MEDIUM
    category: Optional[str] = None
    tags: List[str] = []


class QuestionCreate(QuestionBase):
    exam_id: Optional[int] = None
    order_index: Optional[int] = None


class QuestionUpdate(BaseModel):
    question_text: Optional[str] = None
    option_a: Optional[str] = None
    option_b: Optional[str] = None
    option_c: Optional[str] = None
    option_d: Optional[str] = None
    correct_answer: Optional[OptionLetter] = None
    points: Optional[int] = Field(default=None, ge=1)
    explanation: Optional[str] = None
    difficulty_level: Optional[Difficulty] = None
    category: Optional[str] = None
    tags: Optional[List[str]] = None
    order_index: Optional[int] = None


class QuestionResponse(QuestionBase):
    id: int
    exam_id: Optional[int] = None
    order_index: Optional[int] = None
    difficulty_level: Optional[Difficulty] = None
    tags: Optional[List[str]] = None
    created_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class QuestionForParticipant(BaseModel):
    """Question as shown while taking an exam (no answer key)."""
    id: int
    question_text: str
    option_a: str
    option_b: str
    option_c: str
    option_d: str
    points: int
    order_index: Optional[int] = None

    class Config:
        from_attributes = True


class AssignQuestionsRequest(BaseModel):
    question_ids: List[int] = Field(min_length=1)


class SeedFromSetRequest(BaseModel):
    question_set_id: int


class BulkDeleteRequest(BaseModel):
    question_ids: List[int] = Field(min_length=1)


# =============================================================================
# Question sets
# =============================================================================

class QuestionSetCreate(BaseModel):
    name: str = ""
    description: Optional[str] = None
    question_ids: List[int] = []


class QuestionSetUpdate(BaseModel):
    name: Optional[str] = None
    description: Optional[str] = None
    question_ids: Optional[List[int]] = None


class QuestionSetResponse(BaseModel):
    id: int
    name: str
    description: Optional[str] = None
    total_questions: int
    created_by: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    class Config:
        from_attributes = True


# =============================================================================
# Assignments
# =============================================================================

class AssignParticipantsRequest(BaseModel):
    participant_ids: List[int] = []


# =============================================================================
# Exam session
# =============================================================================

class AttemptResponse(BaseModel):
    id: int
    exam_id: int
    participant_id: int
    status: AttemptStatus
    score: Optional[int] = None
    total_questions: int
    correct_answers: Optional[int] = None
    started_at: datetime
    submitted_at: Optional[datetime] = None
    time_taken_minutes: Optional[int] = None

    class Config:
        from_attributes = True


class ExamSessionResponse(BaseModel):
    """Everything the exam page needs to (re)open a session."""
    exam: ExamResponse
    attempt: AttemptResponse
    questions: List[QuestionForParticipant]
    answers: Dict[int, Optional[OptionLetter]]
    remaining_seconds: int
    autosave_debounce_seconds: int


class SaveAnswersRequest(BaseModel):
    answers: Dict[int, Optional[OptionLetter]]


class SaveAnswersResponse(BaseModel):
    saved: int
    remaining_seconds: int


class SubmitExamRequest(BaseModel):
    """Final answer map; merged over anything already autosaved."""
    answers: Dict[int, Optional[OptionLetter]] = {}


class AnswerDetail(BaseModel):
    question_id: int
    question_text: Optional[str] = None
    selected_answer: Optional[OptionLetter] = None
    correct_answer: Optional[OptionLetter] = None
    is_correct: Optional[bool] = None
    points_earned: Optional[int] = None
    explanation: Optional[str] = None


class ExamResultResponse(BaseModel):
    exam: ExamResponse
    attempt: AttemptResponse
    total_points: int
    percentage: int
    passed: bool
    answers: List[AnswerDetail]


# =============================================================================
# Admin
# =============================================================================

class ScheduleConflictRequest(BaseModel):
    exam_id: Optional[int] = None
    start_time: UTCDatetime
    end_time: UTCDatetime


class AdminRoleRequest(BaseModel):
    user_id: str
    name: Optional[str] = None


class AdminResponse(BaseModel):
    user_id: str
    name: Optional[str] = None
    role: UserRole
    created_at: Optional[datetime] = None

    class Config:
        from_attributes = True


# =============================================================================
# Assistant
# =============================================================================

class AssistantMessage(BaseModel):
    role: Literal["system", "user", "assistant"]
    content: str


class AssistantRequest(BaseModel):
    query: str = ""
    conversation_history: List[AssistantMessage] = []


class AssistantResponse(BaseModel):
    response: str
    context: Dict[str, Any]
