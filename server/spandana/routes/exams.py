from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.orm import Session

from spandana.database import get_db
from spandana.models import ExamAttempt, Participant
from spandana.schemas import (
    AttemptResponse,
    ExamResultResponse,
    ExamSessionResponse,
    SaveAnswersRequest,
    SaveAnswersResponse,
    SubmitExamRequest,
)
from spandana.security import get_current_participant
from spandana.services import exam_session
from spandana.services.sse_manager import sse_manager

router = APIRouter(tags=["Exams"])


def _announce_submission(attempt: ExamAttempt, participant: Participant) -> None:
    sse_manager.publish(attempt.exam_id, {
        "type": "attempt_submitted",
        "data": {
            "attempt_id": attempt.id,
            "exam_id": attempt.exam_id,
            "participant_id": participant.id,
            "participant_name": participant.name,
            "score": attempt.score,
            "correct_answers": attempt.correct_answers,
            "total_questions": attempt.total_questions,
        },
    })


@router.get("")
def list_exams(
    participant: Participant = Depends(get_current_participant),
    db: Session = Depends(get_db),
):
    """Scheduled and active exams with the caller's attempt state."""
    items = exam_session.list_available_exams(db, participant)
    return [
        {
            "id": item["exam"].id,
            "title": item["exam"].title,
            "description": item["exam"].description,
            "duration_minutes": item["exam"].duration_minutes,
            "total_questions": item["exam"].total_questions,
            "status": item["exam"].status.value,
            "scheduled_start": item["exam"].scheduled_start,
            "scheduled_end": item["exam"].scheduled_end,
            "attempt_status": item["attempt_status"].value if item["attempt_status"] else None,
            "score": item["score"],
            "assigned": item["assigned"],
            "can_take": item["can_take"],
            "has_attempted": item["has_attempted"],
        }
        for item in items
    ]


@router.post("/{exam_id}/start", response_model=ExamSessionResponse)
def start_exam(
    exam_id: int,
    participant: Participant = Depends(get_current_participant),
    db: Session = Depends(get_db),
):
    """
    Start the exam, or resume the attempt already in progress.
    The remaining time always counts from the original start.
    """
    try:
        session = exam_session.start_or_resume(db, exam_id, participant)
    except exam_session.TimeExpired as e:
        _announce_submission(e.attempt, participant)
        raise HTTPException(status_code=e.status_code, detail=e.message)

    if session["created"]:
        sse_manager.publish(exam_id, {
            "type": "attempt_started",
            "data": {
                "attempt_id": session["attempt"].id,
                "exam_id": exam_id,
                "participant_id": participant.id,
                "participant_name": participant.name,
            },
        })
    return session


@router.put("/{exam_id}/answers", response_model=SaveAnswersResponse)
def save_answers(
    exam_id: int,
    request: SaveAnswersRequest,
    participant: Participant = Depends(get_current_participant),
    db: Session = Depends(get_db),
):
    """Autosave target; the client debounces calls."""
    try:
        return exam_session.save_answers(db, exam_id, participant, request.answers)
    except exam_session.TimeExpired as e:
        _announce_submission(e.attempt, participant)
        raise HTTPException(status_code=e.status_code, detail=e.message)


@router.post("/{exam_id}/submit", response_model=AttemptResponse)
def submit_exam(
    exam_id: int,
    request: SubmitExamRequest,
    participant: Participant = Depends(get_current_participant),
    db: Session = Depends(get_db),
):
    """Score and close the attempt. Scores are computed here, never trusted from the client."""
    attempt = exam_session.submit_attempt(db, exam_id, participant, request.answers)
    _announce_submission(attempt, participant)
    return attempt


@router.get("/{exam_id}/results", response_model=ExamResultResponse)
def exam_results(
    exam_id: int,
    participant: Participant = Depends(get_current_participant),
    db: Session = Depends(get_db),
):
    result = exam_session.get_result(db, exam_id, participant)
    if result["auto_submitted"] is not None:
        _announce_submission(result["auto_submitted"], participant)
    return result
