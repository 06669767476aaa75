from typing import List

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.orm import Session

from spandana.database import get_db, utcnow
from spandana.models import Question, QuestionSet, QuestionSetQuestion
from spandana.schemas import (
    QuestionResponse,
    QuestionSetCreate,
    QuestionSetResponse,
    QuestionSetUpdate,
)
from spandana.security import CurrentUser, require_admin

router = APIRouter(tags=["Question Sets"])


def _set_or_404(db: Session, set_id: int) -> QuestionSet:
    question_set = db.get(QuestionSet, set_id)
    if not question_set:
        raise HTTPException(status_code=404, detail="Question set not found")
    return question_set


def _replace_items(db: Session, question_set: QuestionSet, question_ids: List[int]) -> None:
    """Set membership in the given order; positions start at 1."""
    ids = list(dict.fromkeys(question_ids))
    if not ids:
        raise HTTPException(status_code=400, detail="At least one question is required")
    known = {qid for (qid,) in db.query(Question.id).filter(Question.id.in_(ids)).all()}
    missing = [qid for qid in ids if qid not in known]
    if missing:
        raise HTTPException(status_code=404, detail=f"Questions not found: {missing}")

    question_set.items.clear()
    db.flush()
    for position, qid in enumerate(ids, start=1):
        question_set.items.append(QuestionSetQuestion(question_id=qid, order_index=position))
    question_set.total_questions = len(ids)


def _set_detail(question_set: QuestionSet) -> dict:
    # Memberships of deleted questions have no question; drop them
    questions = [item.question for item in question_set.items if item.question is not None]
    return {
        **QuestionSetResponse.model_validate(question_set).model_dump(),
        "questions": [QuestionResponse.model_validate(q).model_dump() for q in questions],
    }


@router.get("")
def list_question_sets(db: Session = Depends(get_db), admin: CurrentUser = Depends(require_admin)):
    sets = db.query(QuestionSet).order_by(QuestionSet.created_at.desc(), QuestionSet.id.desc()).all()
    return {"question_sets": [QuestionSetResponse.model_validate(s) for s in sets]}


@router.post("", status_code=201)
def create_question_set(
    request: QuestionSetCreate,
    db: Session = Depends(get_db),
    admin: CurrentUser = Depends(require_admin),
):
    name = request.name.strip()
    if not name:
        raise HTTPException(status_code=400, detail="Name is required")
    if not request.question_ids:
        raise HTTPException(status_code=400, detail="At least one question is required")

    description = request.description.strip() if request.description else None
    question_set = QuestionSet(name=name, description=description or None, created_by=admin.user_id)
    db.add(question_set)
    _replace_items(db, question_set, request.question_ids)
    db.commit()
    db.refresh(question_set)
    return {"success": True, "question_set": _set_detail(question_set)}


@router.get("/{set_id}")
def read_question_set(set_id: int, db: Session = Depends(get_db), admin: CurrentUser = Depends(require_admin)):
    return _set_detail(_set_or_404(db, set_id))


@router.put("/{set_id}")
def update_question_set(
    set_id: int,
    request: QuestionSetUpdate,
    db: Session = Depends(get_db),
    admin: CurrentUser = Depends(require_admin),
):
    question_set = _set_or_404(db, set_id)

    if request.name is not None:
        name = request.name.strip()
        if not name:
            raise HTTPException(status_code=400, detail="Name is required")
        question_set.name = name
    if request.description is not None:
        question_set.description = request.description.strip() or None
    if request.question_ids is not None:
        _replace_items(db, question_set, request.question_ids)

    question_set.updated_at = utcnow()
    db.commit()
    db.refresh(question_set)
    return {"success": True, "question_set": _set_detail(question_set)}


@router.delete("/{set_id}")
def delete_question_set(set_id: int, db: Session = Depends(get_db), admin: CurrentUser = Depends(require_admin)):
    db.delete(_set_or_404(db, set_id))
    db.commit()
    return {"success": True}
