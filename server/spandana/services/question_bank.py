"""
Question bank maintenance shared by the exam and question admin routes.

A question with no exam lives in the bank. Assigning moves a bank question
into an exam; seeding from a question set copies the set's questions so the
set stays reusable.
"""
import logging
from typing import Any, Dict, Iterable, List, Optional

from sqlalchemy import func
from sqlalchemy.orm import Session, joinedload

from spandana.models import Difficulty, Exam, Question, QuestionSet, QuestionSetQuestion

logger = logging.getLogger(__name__)

COPIED_FIELDS = (
    "question_text", "option_a", "option_b", "option_c", "option_d", "correct_answer",
    "points", "explanation", "difficulty_level", "category", "tags",
)


def sync_total_questions(db: Session, exam_ids: Iterable[Optional[int]]) -> None:
    """Keep exams.total_questions equal to the exam's question count."""
    for exam_id in {i for i in exam_ids if i is not None}:
        exam = db.get(Exam, exam_id)
        if exam is not None:
            exam.total_questions = (
                db.query(func.count(Question.id)).filter(Question.exam_id == exam_id).scalar() or 0
            )


def next_order_index(db: Session, exam_id: int) -> int:
    current = db.query(func.max(Question.order_index)).filter(Question.exam_id == exam_id).scalar()
    return (current or 0) + 1


def filter_questions(
    db: Session,
    search: Optional[str] = None,
    exam_id: Optional[int] = None,
    difficulty: Optional[Difficulty] = None,
    category: Optional[str] = None,
    min_points: Optional[int] = None,
    max_points: Optional[int] = None,
    bank_only: bool = False,
) -> List[Question]:
    query = db.query(Question).options(joinedload(Question.exam))
    if bank_only:
        query = query.filter(Question.exam_id.is_(None))
    elif exam_id is not None:
        query = query.filter(Question.exam_id == exam_id)
    if difficulty is not None:
        query = query.filter(Question.difficulty_level == difficulty)
    if category:
        query = query.filter(Question.category == category)
    if min_points is not None:
        query = query.filter(Question.points >= min_points)
    if max_points is not None:
        query = query.filter(Question.points <= max_points)

    questions = query.order_by(Question.created_at.desc(), Question.id.desc()).all()

    if search:
        needle = search.lower()
        questions = [q for q in questions if needle in _searchable_text(q)]
    return questions


def _searchable_text(q: Question) -> str:
    parts = [q.question_text, q.option_a, q.option_b, q.option_c, q.option_d, q.category or ""]
    if q.exam:
        parts.append(q.exam.title)
    parts.extend(q.tags or [])
    return " ".join(parts).lower()


def question_stats(questions: List[Question]) -> Dict[str, Any]:
    by_exam: Dict[str, int] = {}
    by_difficulty: Dict[str, int] = {d.value: 0 for d in Difficulty}
    by_category: Dict[str, int] = {}
    for q in questions:
        exam_title = q.exam.title if q.exam else "Question Bank"
        by_exam[exam_title] = by_exam.get(exam_title, 0) + 1
        difficulty = q.difficulty_level.value if q.difficulty_level else Difficulty.MEDIUM.value
        by_difficulty[difficulty] += 1
        category = q.category or "Uncategorized"
        by_category[category] = by_category.get(category, 0) + 1
    return {
        "total": len(questions),
        "byExam": by_exam,
        "byDifficulty": by_difficulty,
        "byCategory": by_category,
    }


def assign_to_exam(db: Session, exam: Exam, question_ids: List[int]) -> List[Question]:
    """Move bank questions into the exam, appended after its current questions."""
    questions = db.query(Question).filter(Question.id.in_(question_ids)).all()
    found = {q.id: q for q in questions}
    missing = [qid for qid in question_ids if qid not in found]
    if missing:
        raise LookupError(f"Questions not found: {missing}")

    order = next_order_index(db, exam.id)
    assigned = []
    for qid in question_ids:
        question = found[qid]
        if question.exam_id == exam.id:
            continue
        if question.exam_id is not None:
            raise ValueError(f"Question {qid} already belongs to another exam")
        question.exam_id = exam.id
        question.order_index = order
        order += 1
        assigned.append(question)

    db.flush()
    sync_total_questions(db, [exam.id])
    db.commit()
    logger.info("✅ Assigned %s bank questions to exam %s", len(assigned), exam.id)
    return assigned


def seed_from_set(db: Session, exam: Exam, question_set: QuestionSet) -> List[Question]:
    """Copy the set's questions into the exam in set order."""
    order = next_order_index(db, exam.id)
    copies = []
    for item in question_set.items:
        source = item.question
        if source is None:
            continue
        copy = Question(exam_id=exam.id, order_index=order, **{f: getattr(source, f) for f in COPIED_FIELDS})
        db.add(copy)
        copies.append(copy)
        order += 1

    db.flush()
    sync_total_questions(db, [exam.id])
    db.commit()
    logger.info("✅ Seeded exam %s with %s questions from set %s", exam.id, len(copies), question_set.id)
    return copies


def delete_questions(db: Session, question_ids: List[int]) -> int:
    """
    Delete questions and their question-set memberships. Recorded exam
    answers are left untouched.
    """
    questions = db.query(Question).filter(Question.id.in_(question_ids)).all()
    exam_ids = [q.exam_id for q in questions]
    set_ids = {
        row.question_set_id
        for row in db.query(QuestionSetQuestion.question_set_id)
        .filter(QuestionSetQuestion.question_id.in_(question_ids))
        .all()
    }

    for question in questions:
        db.delete(question)
    db.flush()

    sync_total_questions(db, exam_ids)
    for question_set in db.query(QuestionSet).filter(QuestionSet.id.in_(set_ids)).all():
        remaining = (
            db.query(QuestionSetQuestion)
            .filter(QuestionSetQuestion.question_set_id == question_set.id)
            .order_by(QuestionSetQuestion.order_index)
            .all()
        )
        # Positions stay 1-based and contiguous
        for position, item in enumerate(remaining, start=1):
            item.order_index = position
        question_set.total_questions = len(remaining)
    db.commit()

    logger.info("🗑️ Deleted %s questions", len(questions))
    return len(questions)
