"""
Read-only lookups the admin assistant feeds to the language model.

Every function returns plain JSON-serialisable data; key names are the ones
the assistant prompt refers to.
"""
from collections import OrderedDict
from typing import Any, Dict, List, Optional

from sqlalchemy import func
from sqlalchemy.orm import Session, joinedload

from spandana.models import (
    AttemptStatus,
    Difficulty,
    Exam,
    ExamAttempt,
    Participant,
    Question,
    Team,
    TeamScore,
)
from spandana.services.scoring import average, round_half_up


def _iso(value) -> Optional[str]:
    return value.isoformat() if value else None


def _participant_info(p: Participant) -> Dict[str, Any]:
    return {
        "id": p.id,
        "name": p.name,
        "email": p.email,
        "phone": p.phone,
        "school_name": p.school_name,
        "team_name": p.team.team_name if p.team else None,
        "team_code": p.team.team_code if p.team else None,
        "is_participant1": p.is_participant1,
        "profile_completed": p.profile_completed,
        "created_at": _iso(p.created_at),
    }


def _question_info(q: Question) -> Dict[str, Any]:
    return {
        "id": q.id,
        "question_text": q.question_text,
        "category": q.category,
        "difficulty_level": q.difficulty_level.value if q.difficulty_level else None,
        "points": q.points or 1,
        "exam_id": q.exam_id,
        "exam_title": q.exam.title if q.exam else None,
    }


def _score_summary(attempts: List[ExamAttempt]) -> Dict[str, int]:
    """Averages cover submitted attempts with a positive score."""
    submitted = [a for a in attempts if a.status == AttemptStatus.SUBMITTED]
    scores = [a.score or 0 for a in submitted]
    scores = [s for s in scores if s > 0]
    return {
        "averageScore": average(scores),
        "highestScore": max(scores) if scores else 0,
        "lowestScore": min(scores) if scores else 0,
        "completionRate": round_half_up(len(submitted) / len(attempts) * 100) if attempts else 0,
        "submitted": len(submitted),
    }


# =============================================================================
# Teams & participants
# =============================================================================

def search_teams_by_name(db: Session, team_name: str) -> List[Dict[str, Any]]:
    teams = db.query(Team).filter(Team.team_name.ilike(f"%{team_name}%")).limit(10).all()
    return [{"id": t.id, "team_name": t.team_name, "team_code": t.team_code} for t in teams]


def search_participants(
    db: Session,
    name: Optional[str] = None,
    email: Optional[str] = None,
    phone: Optional[str] = None,
    school: Optional[str] = None,
    team: Optional[str] = None,
    team_id: Optional[int] = None,
    limit: int = 50,
) -> List[Dict[str, Any]]:
    query = db.query(Participant).options(joinedload(Participant.team))
    if name:
        query = query.filter(Participant.name.ilike(f"%{name}%"))
    if email:
        query = query.filter(Participant.email.ilike(f"%{email}%"))
    if phone:
        query = query.filter(Participant.phone == phone)
    if school:
        query = query.filter(Participant.school_name.ilike(f"%{school}%"))
    if team_id:
        query = query.filter(Participant.team_id == team_id)
    elif team:
        teams = search_teams_by_name(db, team)
        if not teams:
            return []
        query = query.filter(Participant.team_id == teams[0]["id"])

    participants = query.order_by(Participant.created_at.desc(), Participant.id.desc()).limit(limit).all()
    return [_participant_info(p) for p in participants]


def get_participant_by_id(db: Session, participant_id: int) -> Optional[Dict[str, Any]]:
    participant = db.get(Participant, participant_id)
    return _participant_info(participant) if participant else None


def get_participant_performance(db: Session, participant_id: int) -> Dict[str, Any]:
    participant = get_participant_by_id(db, participant_id)
    if participant is None:
        return {
            "participant": None,
            "attempts": [],
            "stats": {
                "totalAttempts": 0,
                "averageScore": 0,
                "highestScore": 0,
                "lowestScore": 0,
                "completionRate": 0,
                "totalExams": 0,
                "completedExams": 0,
            },
        }

    attempts = (
        db.query(ExamAttempt)
        .options(joinedload(ExamAttempt.exam))
        .filter(ExamAttempt.participant_id == participant_id)
        .order_by(ExamAttempt.started_at.desc())
        .all()
    )
    summary = _score_summary(attempts)

    return {
        "participant": participant,
        "attempts": [
            {
                "id": a.id,
                "exam_id": a.exam_id,
                "exam_title": a.exam.title if a.exam else "Unknown Exam",
                "participant_id": a.participant_id,
                "participant_name": participant["name"],
                "score": a.score or 0,
                "total_questions": a.total_questions or 0,
                "correct_answers": a.correct_answers or 0,
                "status": a.status.value,
                "started_at": _iso(a.started_at),
                "submitted_at": _iso(a.submitted_at),
                "time_taken_minutes": a.time_taken_minutes,
            }
            for a in attempts
        ],
        "stats": {
            "totalAttempts": len(attempts),
            "averageScore": summary["averageScore"],
            "highestScore": summary["highestScore"],
            "lowestScore": summary["lowestScore"],
            "completionRate": summary["completionRate"],
            "totalExams": len(attempts),
            "completedExams": summary["submitted"],
        },
    }


# =============================================================================
# Exams & teams
# =============================================================================

def search_exams(db: Session, title: str) -> List[Dict[str, Any]]:
    exams = db.query(Exam).filter(Exam.title.ilike(f"%{title}%")).order_by(Exam.id).limit(20).all()
    return [{"id": e.id, "title": e.title, "status": e.status.value} for e in exams]


def get_exam_stats(db: Session, exam_id: Optional[int] = None) -> Dict[str, Any]:
    query = db.query(ExamAttempt).options(joinedload(ExamAttempt.exam))
    if exam_id is not None:
        query = query.filter(ExamAttempt.exam_id == exam_id)
    attempts = query.all()
    summary = _score_summary(attempts)

    exam_title = None
    if exam_id is not None and attempts:
        exam_title = attempts[0].exam.title

    return {
        "examId": exam_id,
        "examTitle": exam_title,
        "totalParticipants": len({a.participant_id for a in attempts}),
        "totalAttempts": len(attempts),
        "averageScore": summary["averageScore"],
        "highestScore": summary["highestScore"],
        "lowestScore": summary["lowestScore"],
        "completionRate": summary["completionRate"],
    }


def get_team_stats(db: Session, team_id: Optional[int] = None) -> List[Dict[str, Any]]:
    query = db.query(TeamScore).options(joinedload(TeamScore.team).joinedload(Team.participants))
    if team_id is not None:
        query = query.filter(TeamScore.team_id == team_id)
    scores = query.order_by(TeamScore.total_team_score.desc()).all()

    stats = []
    for score in scores:
        members = score.team.participants if score.team else []
        p1 = next((p for p in members if p.is_participant1), None)
        p2 = next((p for p in members if not p.is_participant1), None)
        stats.append({
            "team_id": score.team_id,
            "team_name": score.team.team_name if score.team else "Unknown Team",
            "team_code": score.team.team_code if score.team else "",
            "participant1_name": p1.name if p1 else "Unknown",
            "participant2_name": p2.name if p2 else "Unknown",
            "total_team_score": score.total_team_score or 0,
            "rank": score.rank,
        })
    return stats


def get_overall_stats(db: Session) -> Dict[str, int]:
    attempts = db.query(ExamAttempt.score, ExamAttempt.status).all()
    scores = [a.score or 0 for a in attempts if a.status == AttemptStatus.SUBMITTED]
    return {
        "totalParticipants": db.query(func.count(Participant.id)).scalar() or 0,
        "totalTeams": db.query(func.count(Team.id)).scalar() or 0,
        "totalExams": db.query(func.count(Exam.id)).scalar() or 0,
        "totalAttempts": len(attempts),
        "averageScore": average([s for s in scores if s > 0]),
        "activeSessions": sum(1 for a in attempts if a.status == AttemptStatus.IN_PROGRESS),
    }


# =============================================================================
# Questions
# =============================================================================

def get_question_stats(db: Session) -> Dict[str, Any]:
    questions = db.query(Question).options(joinedload(Question.exam)).order_by(Question.id).all()

    by_category: Dict[str, int] = OrderedDict()
    by_difficulty: Dict[str, int] = OrderedDict()
    by_exam: Dict[str, int] = OrderedDict()
    unassigned = 0

    for q in questions:
        category = q.category or "Uncategorized"
        by_category[category] = by_category.get(category, 0) + 1
        difficulty = q.difficulty_level.value if q.difficulty_level else "medium"
        by_difficulty[difficulty] = by_difficulty.get(difficulty, 0) + 1
        if q.exam_id and q.exam:
            by_exam[q.exam.title] = by_exam.get(q.exam.title, 0) + 1
        else:
            unassigned += 1

    return {
        "totalQuestions": len(questions),
        "questionsByCategory": [{"category": k, "count": v} for k, v in by_category.items()],
        "questionsByDifficulty": [{"difficulty": k, "count": v} for k, v in by_difficulty.items()],
        "questionsByExam": [{"examTitle": k, "count": v} for k, v in by_exam.items()],
        "unassignedQuestions": unassigned,
    }


def search_questions(
    db: Session,
    text: Optional[str] = None,
    category: Optional[str] = None,
    difficulty: Optional[str] = None,
    exam_id: Optional[int] = None,
    limit: int = 50,
) -> List[Dict[str, Any]]:
    query = db.query(Question).options(joinedload(Question.exam))
    if text:
        query = query.filter(Question.question_text.ilike(f"%{text}%"))
    if category:
        query = query.filter(Question.category == category)
    if difficulty:
        query = query.filter(Question.difficulty_level == Difficulty(difficulty))
    if exam_id is not None:
        query = query.filter(Question.exam_id == exam_id)
    questions = query.order_by(Question.created_at.desc(), Question.id.desc()).limit(limit).all()
    return [_question_info(q) for q in questions]


def _group_questions(questions: List[Question], key) -> Dict[str, List[Dict[str, Any]]]:
    grouped: Dict[str, List[Dict[str, Any]]] = OrderedDict()
    for q in questions:
        grouped.setdefault(key(q), []).append(_question_info(q))
    return grouped


def get_questions_by_category(db: Session) -> Dict[str, List[Dict[str, Any]]]:
    questions = db.query(Question).options(joinedload(Question.exam)).order_by(Question.category, Question.id).all()
    return _group_questions(questions, lambda q: q.category or "Uncategorized")


def get_questions_by_difficulty(db: Session) -> Dict[str, List[Dict[str, Any]]]:
    questions = (
        db.query(Question)
        .options(joinedload(Question.exam))
        .order_by(Question.difficulty_level, Question.id)
        .all()
    )
    return _group_questions(questions, lambda q: q.difficulty_level.value if q.difficulty_level else "medium")


def get_questions_by_exam(db: Session, exam_id: int) -> List[Dict[str, Any]]:
    return search_questions(db, exam_id=exam_id)
