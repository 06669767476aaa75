import logging
from typing import List, Optional, Union

from fastapi import APIRouter, Body, Depends, HTTPException
from sqlalchemy import func
from sqlalchemy.orm import Session, joinedload

from spandana.database import get_db
from spandana.models import (
    Exam,
    ExamAttempt,
    ExamParticipant,
    ExamStatus,
    Participant,
    Question,
    QuestionSet,
)
from spandana.schemas import (
    AssignParticipantsRequest,
    AssignQuestionsRequest,
    ExamCreate,
    ExamResponse,
    ExamStatusUpdate,
    ExamUpdate,
    QuestionCreate,
    QuestionResponse,
    QuestionUpdate,
    SeedFromSetRequest,
)
from spandana.security import CurrentUser, require_admin
from spandana.services import analytics, question_bank
from spandana.services.exam_session import get_exam_questions
from spandana.services.sse_manager import sse_manager

logger = logging.getLogger(__name__)

router = APIRouter(tags=["Admin Exams"])

# Allowed status changes: draft -> scheduled -> active -> completed
STATUS_TRANSITIONS = {
    ExamStatus.DRAFT: {ExamStatus.SCHEDULED},
    ExamStatus.SCHEDULED: {ExamStatus.ACTIVE},
    ExamStatus.ACTIVE: {ExamStatus.COMPLETED},
    ExamStatus.COMPLETED: set(),
}


def get_exam_or_404(db: Session, exam_id: int) -> Exam:
    exam = db.get(Exam, exam_id)
    if not exam:
        raise HTTPException(status_code=404, detail="Exam not found")
    return exam


def _exam_question_or_404(db: Session, exam_id: int, question_id: int) -> Question:
    question = db.get(Question, question_id)
    if not question or question.exam_id != exam_id:
        raise HTTPException(status_code=404, detail="Question not found")
    return question


# =============================================================================
# Exams
# =============================================================================

@router.get("")
def list_exams(db: Session = Depends(get_db), admin: CurrentUser = Depends(require_admin)):
    """All exams, newest first, with their attempt counts."""
    counts = dict(
        db.query(ExamAttempt.exam_id, func.count(ExamAttempt.id)).group_by(ExamAttempt.exam_id).all()
    )
    exams = db.query(Exam).order_by(Exam.created_at.desc(), Exam.id.desc()).all()
    return [
        {**ExamResponse.model_validate(exam).model_dump(), "attempt_count": counts.get(exam.id, 0)}
        for exam in exams
    ]


@router.post("", response_model=ExamResponse, status_code=201)
def create_exam(
    request: ExamCreate,
    db: Session = Depends(get_db),
    admin: CurrentUser = Depends(require_admin),
):
    exam = Exam(**request.model_dump(), status=ExamStatus.DRAFT, created_by=admin.user_id)
    db.add(exam)
    db.commit()
    db.refresh(exam)
    logger.info("✅ Exam created: %s (%s)", exam.id, exam.title)
    return exam


@router.get("/{exam_id}", response_model=ExamResponse)
def read_exam(exam_id: int, db: Session = Depends(get_db), admin: CurrentUser = Depends(require_admin)):
    return get_exam_or_404(db, exam_id)


@router.put("/{exam_id}", response_model=ExamResponse)
def update_exam(
    exam_id: int,
    request: ExamUpdate,
    db: Session = Depends(get_db),
    admin: CurrentUser = Depends(require_admin),
):
    exam = get_exam_or_404(db, exam_id)
    for field, value in request.model_dump(exclude_unset=True).items():
        setattr(exam, field, value)

    if exam.scheduled_start and exam.scheduled_end and exam.scheduled_end <= exam.scheduled_start:
        db.rollback()
        raise HTTPException(status_code=400, detail="scheduled_end must be after scheduled_start")

    db.commit()
    db.refresh(exam)
    return exam


@router.delete("/{exam_id}")
def delete_exam(exam_id: int, db: Session = Depends(get_db), admin: CurrentUser = Depends(require_admin)):
    """Delete an exam; its questions go back to the bank."""
    exam = get_exam_or_404(db, exam_id)
    for question in exam.questions:
        question.exam_id = None
        question.order_index = None
    db.delete(exam)
    db.commit()
    logger.info("🗑️ Exam %s deleted", exam_id)
    return {"success": True}


@router.patch("/{exam_id}/status", response_model=ExamResponse)
def change_status(
    exam_id: int,
    request: ExamStatusUpdate,
    db: Session = Depends(get_db),
    admin: CurrentUser = Depends(require_admin),
):
    exam = get_exam_or_404(db, exam_id)
    if request.status not in STATUS_TRANSITIONS[exam.status]:
        raise HTTPException(
            status_code=400,
            detail=f"Cannot change status from {exam.status.value} to {request.status.value}",
        )
    question_count = db.query(func.count(Question.id)).filter(Question.exam_id == exam.id).scalar()
    if request.status == ExamStatus.ACTIVE and not question_count:
        raise HTTPException(status_code=400, detail="Add questions before activating the exam")

    previous = exam.status
    exam.status = request.status
    db.commit()
    db.refresh(exam)

    logger.info("🔄 Exam %s: %s -> %s", exam.id, previous.value, exam.status.value)
    sse_manager.publish(exam.id, {
        "type": "exam_status",
        "data": {"exam_id": exam.id, "title": exam.title, "status": exam.status.value},
    })
    return exam


# =============================================================================
# Exam questions
# =============================================================================

@router.get("/{exam_id}/questions", response_model=List[QuestionResponse])
def list_exam_questions(exam_id: int, db: Session = Depends(get_db), admin: CurrentUser = Depends(require_admin)):
    get_exam_or_404(db, exam_id)
    return get_exam_questions(db, exam_id)


@router.post("/{exam_id}/questions", response_model=QuestionResponse, status_code=201)
def add_exam_question(
    exam_id: int,
    request: QuestionCreate,
    db: Session = Depends(get_db),
    admin: CurrentUser = Depends(require_admin),
):
    get_exam_or_404(db, exam_id)
    data = request.model_dump(exclude={"exam_id"})
    if data["order_index"] is None:
        data["order_index"] = question_bank.next_order_index(db, exam_id)
    question = Question(exam_id=exam_id, **data)
    db.add(question)
    db.flush()
    question_bank.sync_total_questions(db, [exam_id])
    db.commit()
    db.refresh(question)
    return question


@router.put("/{exam_id}/questions/{question_id}", response_model=QuestionResponse)
def update_exam_question(
    exam_id: int,
    question_id: int,
    request: QuestionUpdate,
    db: Session = Depends(get_db),
    admin: CurrentUser = Depends(require_admin),
):
    question = _exam_question_or_404(db, exam_id, question_id)
    for field, value in request.model_dump(exclude_unset=True).items():
        setattr(question, field, value)
    db.commit()
    db.refresh(question)
    return question


@router.delete("/{exam_id}/questions/{question_id}")
def delete_exam_question(
    exam_id: int,
    question_id: int,
    db: Session = Depends(get_db),
    admin: CurrentUser = Depends(require_admin),
):
    _exam_question_or_404(db, exam_id, question_id)
    question_bank.delete_questions(db, [question_id])
    return {"success": True}


@router.post("/{exam_id}/questions/assign", response_model=List[QuestionResponse])
def assign_bank_questions(
    exam_id: int,
    request: AssignQuestionsRequest,
    db: Session = Depends(get_db),
    admin: CurrentUser = Depends(require_admin),
):
    """Move question-bank questions into this exam."""
    exam = get_exam_or_404(db, exam_id)
    try:
        question_bank.assign_to_exam(db, exam, request.question_ids)
    except LookupError as e:
        db.rollback()
        raise HTTPException(status_code=404, detail=str(e))
    except ValueError as e:
        db.rollback()
        raise HTTPException(status_code=400, detail=str(e))
    return get_exam_questions(db, exam_id)


@router.post("/{exam_id}/questions/seed", response_model=List[QuestionResponse])
def seed_questions_from_set(
    exam_id: int,
    request: SeedFromSetRequest,
    db: Session = Depends(get_db),
    admin: CurrentUser = Depends(require_admin),
):
    exam = get_exam_or_404(db, exam_id)
    question_set = db.get(QuestionSet, request.question_set_id)
    if not question_set:
        raise HTTPException(status_code=404, detail="Question set not found")
    question_bank.seed_from_set(db, exam, question_set)
    return get_exam_questions(db, exam_id)


# =============================================================================
# Participant assignment
# =============================================================================

@router.get("/{exam_id}/participants")
def list_assignments(exam_id: int, db: Session = Depends(get_db), admin: CurrentUser = Depends(require_admin)):
    get_exam_or_404(db, exam_id)
    rows = (
        db.query(ExamParticipant)
        .options(joinedload(ExamParticipant.participant).joinedload(Participant.team))
        .filter(ExamParticipant.exam_id == exam_id)
        .order_by(ExamParticipant.assigned_at.desc(), ExamParticipant.id.desc())
        .all()
    )
    return {
        "assignments": [
            {
                "id": row.id,
                "participant_id": row.participant_id,
                "assigned_at": row.assigned_at,
                "assigned_by": row.assigned_by,
                "participant": {
                    "id": row.participant.id,
                    "name": row.participant.name,
                    "email": row.participant.email,
                    "school_name": row.participant.school_name,
                    "team_name": row.participant.team.team_name if row.participant.team else None,
                    "team_code": row.participant.team.team_code if row.participant.team else None,
                },
            }
            for row in rows
        ]
    }


@router.post("/{exam_id}/participants")
def assign_participants(
    exam_id: int,
    request: AssignParticipantsRequest,
    db: Session = Depends(get_db),
    admin: CurrentUser = Depends(require_admin),
):
    """Bulk assign; participants already assigned are skipped."""
    get_exam_or_404(db, exam_id)
    if not request.participant_ids:
        raise HTTPException(status_code=400, detail="participant_ids is required")

    requested = list(dict.fromkeys(request.participant_ids))
    known = {pid for (pid,) in db.query(Participant.id).filter(Participant.id.in_(requested)).all()}
    unknown = [pid for pid in requested if pid not in known]
    if unknown:
        raise HTTPException(status_code=404, detail=f"Participants not found: {unknown}")

    existing = {
        pid for (pid,) in db.query(ExamParticipant.participant_id)
        .filter(ExamParticipant.exam_id == exam_id, ExamParticipant.participant_id.in_(requested))
        .all()
    }
    new_ids = [pid for pid in requested if pid not in existing]
    for pid in new_ids:
        db.add(ExamParticipant(exam_id=exam_id, participant_id=pid, assigned_by=admin.user_id))
    db.commit()

    logger.info("✅ Exam %s: %s participants assigned", exam_id, len(new_ids))
    return {"success": True, "assigned": len(new_ids), "total": len(requested)}


@router.delete("/{exam_id}/participants")
def unassign_participants(
    exam_id: int,
    participant_ids: Optional[Union[List[int], int]] = Body(default=None, embed=True),
    participant_id: Optional[int] = None,
    db: Session = Depends(get_db),
    admin: CurrentUser = Depends(require_admin),
):
    """Remove assignments; accepts a JSON list of ids, a single id, or ?participant_id=."""
    get_exam_or_404(db, exam_id)
    if isinstance(participant_ids, int):
        ids = [participant_ids]
    else:
        ids = list(participant_ids or [])
    if participant_id is not None:
        ids.append(participant_id)
    if not ids:
        raise HTTPException(status_code=400, detail="participant_ids is required")

    removed = (
        db.query(ExamParticipant)
        .filter(ExamParticipant.exam_id == exam_id, ExamParticipant.participant_id.in_(ids))
        .delete(synchronize_session=False)
    )
    db.commit()
    return {"success": True, "removed": removed}


# =============================================================================
# Results & analytics
# =============================================================================

@router.get("/{exam_id}/results")
def exam_results(exam_id: int, db: Session = Depends(get_db), admin: CurrentUser = Depends(require_admin)):
    return analytics.exam_results(db, get_exam_or_404(db, exam_id))


@router.get("/{exam_id}/analytics")
def exam_analytics(exam_id: int, db: Session = Depends(get_db), admin: CurrentUser = Depends(require_admin)):
    return analytics.exam_analytics(db, get_exam_or_404(db, exam_id))
