from typing import Optional

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.orm import Session

from spandana.database import get_db
from spandana.models import Difficulty, Exam, Question
from spandana.schemas import BulkDeleteRequest, QuestionCreate, QuestionResponse, QuestionUpdate
from spandana.security import CurrentUser, require_admin
from spandana.services import question_bank

router = APIRouter(tags=["Question Bank"])


def _question_or_404(db: Session, question_id: int) -> Question:
    question = db.get(Question, question_id)
    if not question:
        raise HTTPException(status_code=404, detail="Question not found")
    return question


@router.get("")
def list_questions(
    search: Optional[str] = None,
    exam_id: Optional[int] = None,
    difficulty: Optional[Difficulty] = None,
    category: Optional[str] = None,
    min_points: Optional[int] = None,
    max_points: Optional[int] = None,
    bank_only: bool = False,
    db: Session = Depends(get_db),
    admin: CurrentUser = Depends(require_admin),
):
    """
    Question bank listing.

    ``search`` matches question text, options, category, tags and exam title.
    Statistics cover the filtered list.
    """
    questions = question_bank.filter_questions(
        db,
        search=search,
        exam_id=exam_id,
        difficulty=difficulty,
        category=category,
        min_points=min_points,
        max_points=max_points,
        bank_only=bank_only,
    )
    return {
        "questions": [
            {
                **QuestionResponse.model_validate(q).model_dump(),
                "exam_title": q.exam.title if q.exam else None,
            }
            for q in questions
        ],
        "stats": question_bank.question_stats(questions),
    }


@router.post("", response_model=QuestionResponse, status_code=201)
def create_question(
    request: QuestionCreate,
    db: Session = Depends(get_db),
    admin: CurrentUser = Depends(require_admin),
):
    data = request.model_dump()
    if data["exam_id"] is not None:
        if not db.get(Exam, data["exam_id"]):
            raise HTTPException(status_code=404, detail="Exam not found")
        if data["order_index"] is None:
            data["order_index"] = question_bank.next_order_index(db, data["exam_id"])

    question = Question(**data)
    db.add(question)
    db.flush()
    question_bank.sync_total_questions(db, [question.exam_id])
    db.commit()
    db.refresh(question)
    return question


@router.get("/{question_id}", response_model=QuestionResponse)
def read_question(question_id: int, db: Session = Depends(get_db), admin: CurrentUser = Depends(require_admin)):
    return _question_or_404(db, question_id)


@router.put("/{question_id}", response_model=QuestionResponse)
def update_question(
    question_id: int,
    request: QuestionUpdate,
    db: Session = Depends(get_db),
    admin: CurrentUser = Depends(require_admin),
):
    question = _question_or_404(db, question_id)
    for field, value in request.model_dump(exclude_unset=True).items():
        setattr(question, field, value)
    db.commit()
    db.refresh(question)
    return question


@router.delete("/{question_id}")
def delete_question(question_id: int, db: Session = Depends(get_db), admin: CurrentUser = Depends(require_admin)):
    _question_or_404(db, question_id)
    question_bank.delete_questions(db, [question_id])
    return {"success": True}


@router.post("/bulk-delete")
def bulk_delete_questions(
    request: BulkDeleteRequest,
    db: Session = Depends(get_db),
    admin: CurrentUser = Depends(require_admin),
):
    deleted = question_bank.delete_questions(db, request.question_ids)
    return {"success": True, "deleted": deleted}
