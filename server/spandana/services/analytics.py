"""
Admin analytics, reports and schedule helpers.

Everything is computed in Python from the fetched rows; the data volumes of a
single competition are small.
"""
from collections import Counter
from datetime import datetime
from typing import Any, Dict, List, Optional

from sqlalchemy import func
from sqlalchemy.orm import Session, joinedload

from spandana.database import naive_utc, utcnow
from spandana.models import (
    AttemptStatus,
    Exam,
    ExamAnswer,
    ExamAttempt,
    ExamStatus,
    Participant,
    Question,
    Team,
    TeamScore,
)
from spandana.services.assistant_queries import get_participant_performance
from spandana.services.scoring import average, calculate_percentage, is_passed, round_half_up

SCORE_BUCKETS = (("0-25", 25), ("26-50", 50), ("51-75", 75), ("76-100", 100))
DIFFICULTY_BUCKETS = (
    ("Easy (76-100%)", 76),
    ("Medium (51-75%)", 51),
    ("Hard (26-50%)", 26),
    ("Very Hard (0-25%)", 0),
)


def _preview(text: str, length: int = 100) -> str:
    return text[:length] + ("..." if len(text) > length else "")


def dashboard_stats(db: Session) -> Dict[str, int]:
    """Headline numbers; the average includes zero scores."""
    attempts = db.query(ExamAttempt.score, ExamAttempt.status).all()
    submitted = [a.score or 0 for a in attempts if a.status == AttemptStatus.SUBMITTED]
    return {
        "totalExams": db.query(func.count(Exam.id)).scalar() or 0,
        "totalParticipants": db.query(func.count(Participant.id)).scalar() or 0,
        "totalTeams": db.query(func.count(Team.id)).scalar() or 0,
        "totalAttempts": len(attempts),
        "averageScore": average(submitted),
        "activeSessions": sum(1 for a in attempts if a.status == AttemptStatus.IN_PROGRESS),
    }


def exam_analytics(db: Session, exam: Exam) -> Dict[str, Any]:
    all_attempts = db.query(ExamAttempt).filter(ExamAttempt.exam_id == exam.id).all()
    submitted = [a for a in all_attempts if a.status == AttemptStatus.SUBMITTED]
    submitted_ids = {a.id for a in submitted}

    answers = (
        db.query(ExamAnswer)
        .join(ExamAttempt, ExamAnswer.attempt_id == ExamAttempt.id)
        .filter(ExamAttempt.exam_id == exam.id)
        .all()
    )
    questions = (
        db.query(Question)
        .filter(Question.exam_id == exam.id)
        .order_by(Question.order_index.is_(None), Question.order_index, Question.created_at, Question.id)
        .all()
    )

    question_stats = []
    for question in questions:
        rows = [a for a in answers if a.question_id == question.id and a.attempt_id in submitted_ids]
        correct = sum(1 for a in rows if a.is_correct)
        options = Counter(a.selected_answer for a in rows if a.selected_answer)
        question_stats.append({
            "question_id": question.id,
            "question_text": _preview(question.question_text),
            "total_attempts": len(submitted),
            "correct_count": correct,
            "incorrect_count": len(submitted) - correct,
            "option_a_count": options.get("A", 0),
            "option_b_count": options.get("B", 0),
            "option_c_count": options.get("C", 0),
            "option_d_count": options.get("D", 0),
            "difficulty_score": round_half_up(correct / len(submitted) * 100) if submitted else 0,
        })

    distribution = {label: 0 for label, _ in SCORE_BUCKETS}
    for attempt in submitted:
        percentage = calculate_percentage(attempt.score or 0, exam.total_questions or 0)
        for label, upper in SCORE_BUCKETS:
            if percentage <= upper or label == SCORE_BUCKETS[-1][0]:
                distribution[label] += 1
                break

    by_hour = Counter(a.submitted_at.hour for a in submitted if a.submitted_at)

    return {
        "examId": exam.id,
        "totalAttempts": len(all_attempts),
        "submittedAttempts": len(submitted),
        "averageScore": average([a.score or 0 for a in submitted]),
        "averageTimeMinutes": average([a.time_taken_minutes for a in submitted if a.time_taken_minutes is not None]),
        "questions": question_stats,
        "scoreDistribution": [{"range": label, "count": count} for label, count in distribution.items()],
        "submissionsByHour": [{"hour": f"{hour}:00", "count": by_hour[hour]} for hour in sorted(by_hour)],
    }


def exam_results(db: Session, exam: Exam) -> Dict[str, Any]:
    """Submitted attempts ranked by score, earliest submission first on ties."""
    attempts = (
        db.query(ExamAttempt)
        .options(joinedload(ExamAttempt.participant).joinedload(Participant.team))
        .filter(ExamAttempt.exam_id == exam.id, ExamAttempt.status == AttemptStatus.SUBMITTED)
        .order_by(ExamAttempt.score.desc(), ExamAttempt.submitted_at, ExamAttempt.id)
        .all()
    )
    total_points = sum(q.points for q in exam.questions)

    rows = []
    for position, attempt in enumerate(attempts, start=1):
        participant = attempt.participant
        score = attempt.score or 0
        rows.append({
            "position": position,
            "attempt_id": attempt.id,
            "participant_id": attempt.participant_id,
            "participant_name": participant.name if participant else None,
            "school_name": participant.school_name if participant else None,
            "team_name": participant.team.team_name if participant and participant.team else None,
            "team_code": participant.team.team_code if participant and participant.team else None,
            "score": score,
            "correct_answers": attempt.correct_answers or 0,
            "total_questions": attempt.total_questions,
            "percentage": calculate_percentage(score, total_points),
            "passed": is_passed(score, exam.passing_score),
            "time_taken_minutes": attempt.time_taken_minutes,
            "submitted_at": attempt.submitted_at,
        })

    return {
        "examId": exam.id,
        "examTitle": exam.title,
        "totalPoints": total_points,
        "submitted": len(rows),
        "passed": sum(1 for r in rows if r["passed"]),
        "averageScore": average([r["score"] for r in rows]),
        "results": rows,
    }


def leaderboard(db: Session, exam_id: Optional[int] = None) -> Dict[str, Any]:
    """
    Team standings for one exam (defaults to the latest active or completed
    one). Ranks come from the stored rows; a missing rank shows the position.
    """
    exams = (
        db.query(Exam)
        .filter(Exam.status.in_([ExamStatus.ACTIVE, ExamStatus.COMPLETED]))
        .order_by(Exam.created_at.desc(), Exam.id.desc())
        .all()
    )
    if exam_id is None and exams:
        exam_id = exams[0].id

    standings = []
    if exam_id is not None:
        scores = (
            db.query(TeamScore)
            .options(joinedload(TeamScore.team))
            .filter(TeamScore.exam_id == exam_id)
            .order_by(TeamScore.total_team_score.desc(), TeamScore.rank.is_(None), TeamScore.rank)
            .all()
        )
        for index, score in enumerate(scores):
            standings.append({
                "rank": score.rank or index + 1,
                "team_id": score.team_id,
                "team_name": score.team.team_name if score.team else "Unknown Team",
                "team_code": score.team.team_code if score.team else "",
                "participant1_score": score.participant1_score or 0,
                "participant2_score": score.participant2_score or 0,
                "total_team_score": score.total_team_score or 0,
            })

    return {
        "exams": [{"id": e.id, "title": e.title, "status": e.status.value} for e in exams],
        "examId": exam_id,
        "standings": standings,
    }


def question_analytics(db: Session) -> Dict[str, Any]:
    """Success rate of every question across all recorded answers."""
    questions = db.query(Question).order_by(Question.id).all()
    answers = db.query(ExamAnswer.question_id, ExamAnswer.selected_answer, ExamAnswer.is_correct).all()

    by_question: Dict[int, list] = {}
    for answer in answers:
        by_question.setdefault(answer.question_id, []).append(answer)

    stats = []
    for question in questions:
        rows = by_question.get(question.id, [])
        correct = sum(1 for a in rows if a.is_correct)
        options = Counter(a.selected_answer for a in rows if a.selected_answer)
        stats.append({
            "question_id": question.id,
            "question_text": question.question_text[:100],
            "total_attempts": len(rows),
            "correct_count": correct,
            "difficulty_percentage": round_half_up(correct / len(rows) * 100) if rows else 0,
            "most_selected_option": options.most_common(1)[0][0] if options else "N/A",
        })

    distribution = {label: 0 for label, _ in DIFFICULTY_BUCKETS}
    for s in stats:
        for label, lower in DIFFICULTY_BUCKETS:
            if s["difficulty_percentage"] >= lower:
                distribution[label] += 1
                break

    return {
        "questions": stats,
        "difficultyDistribution": [{"difficulty": k, "count": v} for k, v in distribution.items()],
    }


def participant_report(db: Session, participant_id: int) -> Optional[Dict[str, Any]]:
    report = get_participant_performance(db, participant_id)
    if report["participant"] is None:
        return None
    return report


def schedule_conflicts(
    db: Session,
    start_time: datetime,
    end_time: datetime,
    exam_id: Optional[int] = None,
) -> List[Dict[str, Any]]:
    """Other exams whose scheduled window overlaps [start_time, end_time]."""
    query = db.query(Exam).filter(
        Exam.scheduled_start.isnot(None),
        Exam.scheduled_end.isnot(None),
        Exam.scheduled_start <= end_time,
        Exam.scheduled_end >= start_time,
    )
    if exam_id is not None:
        query = query.filter(Exam.id != exam_id)
    return [
        {
            "id": e.id,
            "title": e.title,
            "scheduled_start": e.scheduled_start,
            "scheduled_end": e.scheduled_end,
        }
        for e in query.order_by(Exam.scheduled_start).all()
    ]


# =============================================================================
# iCalendar feed
# =============================================================================

def _ical_time(value: datetime) -> str:
    return naive_utc(value).strftime("%Y%m%dT%H%M%SZ")


def _ical_text(value: str) -> str:
    return (
        value.replace("\\", "\\\\")
        .replace(";", "\\;")
        .replace(",", "\\,")
        .replace("\r\n", "\\n")
        .replace("\n", "\\n")
    )


def _fold(line: str) -> List[str]:
    """Content lines are limited to 75 octets; continuations start with a space."""
    parts = []
    while len(line.encode("utf-8")) > 75:
        cut = 75
        while len(line[:cut].encode("utf-8")) > 75:
            cut -= 1
        parts.append(line[:cut])
        line = " " + line[cut:]
    parts.append(line)
    return parts


def calendar_feed(db: Session, app_name: str) -> str:
    """Scheduled exams as an iCalendar (RFC 5545) document, times in UTC."""
    exams = (
        db.query(Exam)
        .filter(Exam.scheduled_start.isnot(None), Exam.scheduled_end.isnot(None))
        .order_by(Exam.scheduled_start)
        .all()
    )
    stamp = _ical_time(utcnow())

    lines = [
        "BEGIN:VCALENDAR",
        "VERSION:2.0",
        f"PRODID:-//{_ical_text(app_name)}//Exam Schedule//EN",
        "CALSCALE:GREGORIAN",
    ]
    for exam in exams:
        lines += [
            "BEGIN:VEVENT",
            f"UID:exam-{exam.id}@gyana-spandana",
            f"DTSTAMP:{stamp}",
            f"DTSTART:{_ical_time(exam.scheduled_start)}",
            f"DTEND:{_ical_time(exam.scheduled_end)}",
            f"SUMMARY:{_ical_text(exam.title)}",
            f"DESCRIPTION:{_ical_text(exam.description or '')}",
            "END:VEVENT",
        ]
    lines.append("END:VCALENDAR")

    folded = [part for line in lines for part in _fold(line)]
    return "\r\n".join(folded) + "\r\n"
