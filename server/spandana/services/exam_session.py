"""
Exam-taking session.

The server owns the clock and the score: remaining time is always derived
from the persisted ``started_at`` and scoring happens here, never in the
browser. Any access to an attempt whose time has run out submits it with
whatever answers were saved, through the same path a manual submit uses.
"""
import logging
import math
from datetime import datetime
from typing import Dict, List, Optional

from sqlalchemy.orm import Session

from spandana.config import settings
from spandana.database import naive_utc, utcnow
from spandana.models import (
    AttemptStatus,
    Exam,
    ExamAnswer,
    ExamAttempt,
    ExamParticipant,
    ExamStatus,
    Participant,
    Question,
)
from spandana.services.scoring import calculate_answer_score, calculate_percentage, is_passed

logger = logging.getLogger(__name__)


class ExamSessionError(Exception):
    """Base error for the exam-taking flow; carries the HTTP status to report."""
    status_code = 400

    def __init__(self, message: str, attempt: Optional[ExamAttempt] = None):
        super().__init__(message)
        self.message = message
        self.attempt = attempt


class ExamNotFound(ExamSessionError):
    status_code = 404


class AttemptNotFound(ExamSessionError):
    status_code = 404


class NotAssigned(ExamSessionError):
    status_code = 403


class ExamNotAvailable(ExamSessionError):
    status_code = 403


class AlreadySubmitted(ExamSessionError):
    status_code = 409


class TimeExpired(ExamSessionError):
    """Raised after an expired attempt has been auto-submitted."""
    status_code = 409


class NoQuestions(ExamSessionError):
    status_code = 400


# =============================================================================
# Lookups
# =============================================================================

def get_exam_questions(db: Session, exam_id: int) -> List[Question]:
    """Questions of an exam: order_index ascending with nulls last, then creation order."""
    return (
        db.query(Question)
        .filter(Question.exam_id == exam_id)
        .order_by(
            Question.order_index.is_(None),
            Question.order_index,
            Question.created_at,
            Question.id,
        )
        .all()
    )


def can_take_exam(exam: Exam, now: Optional[datetime] = None) -> bool:
    now = now or utcnow()
    if exam.status == ExamStatus.ACTIVE:
        return True
    if exam.status == ExamStatus.SCHEDULED and exam.scheduled_start and exam.scheduled_end:
        return naive_utc(exam.scheduled_start) <= now <= naive_utc(exam.scheduled_end)
    return False


def is_assigned(db: Session, exam_id: int, participant_id: int) -> bool:
    """An exam without assignment rows is open to every participant."""
    assignments = db.query(ExamParticipant.participant_id).filter(ExamParticipant.exam_id == exam_id).all()
    if not assignments:
        return True
    return any(row.participant_id == participant_id for row in assignments)


def elapsed_seconds(attempt: ExamAttempt, now: Optional[datetime] = None) -> float:
    return ((now or utcnow()) - naive_utc(attempt.started_at)).total_seconds()


def remaining_seconds(exam: Exam, attempt: ExamAttempt, now: Optional[datetime] = None) -> int:
    elapsed = elapsed_seconds(attempt, now)
    return max(0, math.floor(exam.duration_minutes * 60 - elapsed))


def find_attempt(db: Session, exam_id: int, participant_id: int, status: AttemptStatus) -> Optional[ExamAttempt]:
    return (
        db.query(ExamAttempt)
        .filter(
            ExamAttempt.exam_id == exam_id,
            ExamAttempt.participant_id == participant_id,
            ExamAttempt.status == status,
        )
        .order_by(ExamAttempt.started_at.desc(), ExamAttempt.id.desc())
        .first()
    )


def saved_answers(db: Session, attempt: ExamAttempt) -> Dict[int, Optional[str]]:
    rows = db.query(ExamAnswer).filter(ExamAnswer.attempt_id == attempt.id).all()
    return {row.question_id: row.selected_answer for row in rows}


def _get_exam(db: Session, exam_id: int) -> Exam:
    exam = db.query(Exam).filter(Exam.id == exam_id).first()
    if not exam:
        raise ExamNotFound("Exam not found")
    return exam


def _upsert_answer(db: Session, attempt_id: int, question_id: int, **values) -> ExamAnswer:
    """Insert or update the single row keyed by (attempt, question)."""
    row = (
        db.query(ExamAnswer)
        .filter(ExamAnswer.attempt_id == attempt_id, ExamAnswer.question_id == question_id)
        .first()
    )
    if row is None:
        row = ExamAnswer(attempt_id=attempt_id, question_id=question_id)
        db.add(row)
    for key, value in values.items():
        setattr(row, key, value)
    return row


# =============================================================================
# Session operations
# =============================================================================

def list_available_exams(db: Session, participant: Participant, now: Optional[datetime] = None) -> List[dict]:
    """Scheduled and active exams with the participant's attempt state."""
    now = now or utcnow()
    exams = (
        db.query(Exam)
        .filter(Exam.status.in_([ExamStatus.SCHEDULED, ExamStatus.ACTIVE]))
        .order_by(Exam.scheduled_start.is_(None), Exam.scheduled_start, Exam.id)
        .all()
    )
    attempts = db.query(ExamAttempt).filter(ExamAttempt.participant_id == participant.id).all()
    by_exam: Dict[int, ExamAttempt] = {}
    for attempt in sorted(attempts, key=lambda a: a.started_at):
        by_exam[attempt.exam_id] = attempt

    items = []
    for exam in exams:
        attempt = by_exam.get(exam.id)
        items.append({
            "exam": exam,
            "attempt_status": attempt.status if attempt else None,
            "score": attempt.score if attempt else None,
            "assigned": is_assigned(db, exam.id, participant.id),
            "can_take": can_take_exam(exam, now),
            "has_attempted": bool(attempt and attempt.status != AttemptStatus.IN_PROGRESS),
        })
    return items


def start_or_resume(db: Session, exam_id: int, participant: Participant, now: Optional[datetime] = None) -> dict:
    """
    Open the participant's session for an exam.

    Returns the existing in-progress attempt when there is one, so starting
    twice never creates a second row.
    """
    now = now or utcnow()
    exam = _get_exam(db, exam_id)

    if not is_assigned(db, exam.id, participant.id):
        raise NotAssigned("You are not assigned to this exam. Please contact an administrator.")

    attempt = find_attempt(db, exam.id, participant.id, AttemptStatus.IN_PROGRESS)
    created = False

    if attempt is None:
        if find_attempt(db, exam.id, participant.id, AttemptStatus.SUBMITTED):
            raise AlreadySubmitted("You have already submitted this exam")
        if not can_take_exam(exam, now):
            raise ExamNotAvailable("This exam is not open right now")

    questions = get_exam_questions(db, exam.id)
    if not questions:
        raise NoQuestions("No questions found for this exam")

    if attempt is None:
        attempt = ExamAttempt(
            exam_id=exam.id,
            participant_id=participant.id,
            total_questions=len(questions),
            status=AttemptStatus.IN_PROGRESS,
            started_at=now,
        )
        db.add(attempt)
        db.commit()
        db.refresh(attempt)
        created = True
        logger.info("🚀 Attempt %s started: participant %s, exam %s", attempt.id, participant.id, exam.id)
    elif remaining_seconds(exam, attempt, now) == 0:
        finalize_attempt(db, exam, attempt, now=now)
        raise TimeExpired("Time is up. Your exam has been submitted.", attempt=attempt)

    return {
        "exam": exam,
        "attempt": attempt,
        "questions": questions,
        "answers": saved_answers(db, attempt),
        "remaining_seconds": remaining_seconds(exam, attempt, now),
        "autosave_debounce_seconds": settings.autosave_debounce_seconds,
        "created": created,
    }


def _open_attempt(db: Session, exam: Exam, participant: Participant) -> ExamAttempt:
    attempt = find_attempt(db, exam.id, participant.id, AttemptStatus.IN_PROGRESS)
    if attempt is None:
        if find_attempt(db, exam.id, participant.id, AttemptStatus.SUBMITTED):
            raise AlreadySubmitted("You have already submitted this exam")
        raise AttemptNotFound("No exam in progress. Start the exam first.")
    return attempt


def save_answers(
    db: Session,
    exam_id: int,
    participant: Participant,
    answers: Dict[int, Optional[str]],
    now: Optional[datetime] = None,
) -> dict:
    """Autosave: upsert each selected answer on its own row."""
    now = now or utcnow()
    exam = _get_exam(db, exam_id)
    attempt = _open_attempt(db, exam, participant)

    if remaining_seconds(exam, attempt, now) == 0:
        finalize_attempt(db, exam, attempt, now=now)
        raise TimeExpired("Time is up. Your exam has been submitted.", attempt=attempt)

    question_ids = {q.id for q in get_exam_questions(db, exam.id)}
    saved = 0
    for question_id, selected in answers.items():
        if selected is None:
            continue
        if question_id not in question_ids:
            raise ExamSessionError(f"Question {question_id} is not part of this exam")
        _upsert_answer(db, attempt.id, question_id, selected_answer=selected, answered_at=now)
        saved += 1
    db.commit()

    return {"saved": saved, "remaining_seconds": remaining_seconds(exam, attempt, now)}


def submit_attempt(
    db: Session,
    exam_id: int,
    participant: Participant,
    answers: Optional[Dict[int, Optional[str]]] = None,
    now: Optional[datetime] = None,
) -> ExamAttempt:
    """Manual submit. The final answer map is honoured until the grace period after time-up."""
    now = now or utcnow()
    exam = _get_exam(db, exam_id)
    attempt = _open_attempt(db, exam, participant)

    deadline_passed_by = elapsed_seconds(attempt, now) - exam.duration_minutes * 60
    if answers and deadline_passed_by > settings.submit_grace_seconds:
        logger.warning("⚠️ Attempt %s submitted %.0fs after time-up; final answers ignored", attempt.id, deadline_passed_by)
        answers = None

    return finalize_attempt(db, exam, attempt, answers=answers, now=now)


def finalize_attempt(
    db: Session,
    exam: Exam,
    attempt: ExamAttempt,
    answers: Optional[Dict[int, Optional[str]]] = None,
    now: Optional[datetime] = None,
) -> ExamAttempt:
    """
    Score every exam question against the saved answers (overridden by
    ``answers`` when given), write each answer row with its result and close
    the attempt as submitted.
    """
    now = now or utcnow()
    selections = saved_answers(db, attempt)
    if answers:
        selections.update({qid: value for qid, value in answers.items() if value is not None})

    total_score = 0
    correct_answers = 0
    for question in get_exam_questions(db, exam.id):
        selected = selections.get(question.id)
        result = calculate_answer_score(selected, question.correct_answer, question.points)
        if result.is_correct:
            correct_answers += 1
            total_score += result.points_earned
        _upsert_answer(
            db,
            attempt.id,
            question.id,
            selected_answer=selected,
            is_correct=result.is_correct,
            points_earned=result.points_earned,
        )

    attempt.status = AttemptStatus.SUBMITTED
    attempt.score = total_score
    attempt.correct_answers = correct_answers
    attempt.submitted_at = now
    attempt.time_taken_minutes = math.floor(elapsed_seconds(attempt, now) / 60)
    db.commit()
    db.refresh(attempt)

    logger.info(
        "✅ Attempt %s submitted: score %s, %s/%s correct",
        attempt.id, total_score, correct_answers, attempt.total_questions,
    )
    return attempt


def get_result(db: Session, exam_id: int, participant: Participant, now: Optional[datetime] = None) -> dict:
    """
    The participant's submitted attempt with per-question breakdown.
    ``auto_submitted`` holds the attempt when this read closed a timed-out one.
    """
    now = now or utcnow()
    exam = _get_exam(db, exam_id)

    auto_submitted = None
    pending = find_attempt(db, exam.id, participant.id, AttemptStatus.IN_PROGRESS)
    if pending and remaining_seconds(exam, pending, now) == 0:
        auto_submitted = finalize_attempt(db, exam, pending, now=now)

    attempt = find_attempt(db, exam.id, participant.id, AttemptStatus.SUBMITTED)
    if attempt is None:
        raise AttemptNotFound("No submitted attempt found for this exam")

    questions = {q.id: q for q in get_exam_questions(db, exam.id)}
    rows = db.query(ExamAnswer).filter(ExamAnswer.attempt_id == attempt.id).order_by(ExamAnswer.id).all()
    details = []
    for row in rows:
        question = questions.get(row.question_id) or db.get(Question, row.question_id)
        details.append({
            "question_id": row.question_id,
            "question_text": question.question_text if question else None,
            "selected_answer": row.selected_answer,
            "correct_answer": question.correct_answer if question else None,
            "is_correct": row.is_correct,
            "points_earned": row.points_earned,
            "explanation": question.explanation if question else None,
        })

    total_points = sum(q.points for q in questions.values())
    score = attempt.score or 0
    return {
        "exam": exam,
        "attempt": attempt,
        "total_points": total_points,
        "percentage": calculate_percentage(score, total_points),
        "passed": is_passed(score, exam.passing_score),
        "answers": details,
        "auto_submitted": auto_submitted,
    }
