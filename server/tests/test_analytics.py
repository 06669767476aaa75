from datetime import datetime

from conftest import ADMIN_USER_ID, auth_headers

from spandana.models import (
    AttemptStatus,
    Exam,
    ExamAnswer,
    ExamAttempt,
    ExamStatus,
    TeamScore,
    UserProfile,
    UserRole,
)


def submitted_attempt(db, exam, participant, score, submitted_at=None, **fields):
    attempt = ExamAttempt(
        exam_id=exam.id,
        participant_id=participant.id,
        status=AttemptStatus.SUBMITTED,
        score=score,
        correct_answers=score,
        total_questions=exam.total_questions,
        started_at=datetime(2025, 3, 1, 9, 0),
        submitted_at=submitted_at or datetime(2025, 3, 1, 9, 20),
        **fields,
    )
    db.add(attempt)
    db.commit()
    return attempt


def test_dashboard_average_counts_zero_scores(client, db, admin_headers, make_team, make_exam):
    exam = make_exam(answers=("A", "B", "C", "D"))
    _, p1, p2 = make_team()
    submitted_attempt(db, exam, p1, 3)
    submitted_attempt(db, exam, p2, 0)
    db.add(ExamAttempt(exam_id=make_exam(title="Second").id, participant_id=p1.id, total_questions=3))
    db.commit()

    stats = client.get("/api/admin/stats", headers=admin_headers).json()

    assert stats == {
        "totalExams": 2,
        "totalParticipants": 2,
        "totalTeams": 1,
        "totalAttempts": 3,
        "averageScore": 2,
        "activeSessions": 1,
    }


def test_exam_analytics_buckets_and_question_counts(client, db, admin_headers, make_team, make_exam):
    exam = make_exam(answers=("A", "B", "C", "D"))
    questions = sorted(exam.questions, key=lambda q: q.order_index)
    _, p1, p2 = make_team()
    _, p3, _ = make_team()
    for participant, score, hour in ((p1, 4, 9), (p2, 1, 9), (p3, 2, 14)):
        attempt = submitted_attempt(
            db, exam, participant, score,
            submitted_at=datetime(2025, 3, 1, hour, 5),
            time_taken_minutes=20,
        )
        db.add(ExamAnswer(
            attempt_id=attempt.id,
            question_id=questions[0].id,
            selected_answer="A" if score > 1 else "B",
            is_correct=score > 1,
            points_earned=1 if score > 1 else 0,
        ))
    db.commit()

    body = client.get(f"/api/admin/exams/{exam.id}/analytics", headers=admin_headers).json()

    assert body["submittedAttempts"] == 3
    assert body["averageTimeMinutes"] == 20
    assert body["scoreDistribution"] == [
        {"range": "0-25", "count": 1},
        {"range": "26-50", "count": 1},
        {"range": "51-75", "count": 0},
        {"range": "76-100", "count": 1},
    ]
    assert body["submissionsByHour"] == [{"hour": "9:00", "count": 2}, {"hour": "14:00", "count": 1}]
    first = body["questions"][0]
    assert (first["correct_count"], first["incorrect_count"]) == (2, 1)
    assert (first["option_a_count"], first["option_b_count"]) == (2, 1)
    assert first["difficulty_score"] == 67


def test_question_analytics(client, db, admin_headers, make_team, make_exam):
    exam = make_exam(answers=("A", "B"))
    questions = sorted(exam.questions, key=lambda q: q.order_index)
    _, p1, p2 = make_team()
    for participant, picks in ((p1, ("A", "C")), (p2, ("A", "C"))):
        attempt = submitted_attempt(db, exam, participant, 1)
        for question, pick in zip(questions, picks):
            db.add(ExamAnswer(
                attempt_id=attempt.id,
                question_id=question.id,
                selected_answer=pick,
                is_correct=pick == question.correct_answer,
            ))
    db.commit()

    body = client.get("/api/admin/analytics/questions", headers=admin_headers).json()

    easy, hard = body["questions"]
    assert (easy["difficulty_percentage"], easy["most_selected_option"]) == (100, "A")
    assert (hard["difficulty_percentage"], hard["most_selected_option"]) == (0, "C")
    counts = {row["difficulty"]: row["count"] for row in body["difficultyDistribution"]}
    assert counts == {"Easy (76-100%)": 1, "Medium (51-75%)": 0, "Hard (26-50%)": 0, "Very Hard (0-25%)": 1}


def test_leaderboard_defaults_to_latest_exam_and_fills_missing_rank(client, db, admin_headers, make_team, make_exam):
    older = make_exam(title="Prelims", status=ExamStatus.COMPLETED)
    latest = make_exam(title="Finals")
    make_exam(title="Draft", status=ExamStatus.DRAFT)
    first, _, _ = make_team("Konark Minds")
    second, _, _ = make_team("Chilika Thinkers")
    db.add_all([
        TeamScore(team_id=first.id, exam_id=latest.id, participant1_score=4, participant2_score=3,
                  total_team_score=7, rank=1),
        TeamScore(team_id=second.id, exam_id=latest.id, total_team_score=5, rank=None),
        TeamScore(team_id=second.id, exam_id=older.id, total_team_score=9, rank=1),
    ])
    db.commit()

    body = client.get("/api/admin/leaderboard", headers=admin_headers).json()

    assert [e["title"] for e in body["exams"]] == ["Finals", "Prelims"]
    assert body["examId"] == latest.id
    assert [(s["rank"], s["team_name"], s["total_team_score"]) for s in body["standings"]] == [
        (1, "Konark Minds", 7),
        (2, "Chilika Thinkers", 5),
    ]
    older_body = client.get(f"/api/admin/leaderboard?exam_id={older.id}", headers=admin_headers).json()
    assert [s["team_name"] for s in older_body["standings"]] == ["Chilika Thinkers"]


def test_schedule_conflicts(client, db, admin_headers):
    morning = Exam(title="Morning", duration_minutes=60,
                   scheduled_start=datetime(2025, 4, 1, 9, 0), scheduled_end=datetime(2025, 4, 1, 10, 0))
    evening = Exam(title="Evening", duration_minutes=60,
                   scheduled_start=datetime(2025, 4, 1, 18, 0), scheduled_end=datetime(2025, 4, 1, 19, 0))
    db.add_all([morning, evening, Exam(title="Unscheduled", duration_minutes=60)])
    db.commit()

    def conflicts(start, end, exam_id=None):
        payload = {"start_time": start, "end_time": end, "exam_id": exam_id}
        response = client.post("/api/admin/schedule/conflicts", json=payload, headers=admin_headers)
        return [c["title"] for c in response.json()["conflicts"]]

    assert conflicts("2025-04-01T09:30:00", "2025-04-01T18:30:00") == ["Morning", "Evening"]
    assert conflicts("2025-04-01T10:00:00", "2025-04-01T11:00:00") == ["Morning"]
    assert conflicts("2025-04-01T11:00:00", "2025-04-01T12:00:00") == []
    assert conflicts("2025-04-01T09:30:00", "2025-04-01T09:45:00", exam_id=morning.id) == []
    # 09:30 in India is 04:00 UTC, well before the morning exam
    assert conflicts("2025-04-01T09:30:00+05:30", "2025-04-01T10:30:00+05:30") == []


def test_schedule_conflicts_needs_a_forward_window(client, admin_headers):
    response = client.post(
        "/api/admin/schedule/conflicts",
        json={"start_time": "2025-04-01T10:00:00", "end_time": "2025-04-01T10:00:00"},
        headers=admin_headers,
    )
    assert response.status_code == 400


def test_calendar_feed(client, db, admin_headers):
    db.add(Exam(
        title="Finals, Round 2",
        description="Bring; pencils\nand ID",
        duration_minutes=60,
        scheduled_start=datetime(2025, 4, 1, 9, 0),
        scheduled_end=datetime(2025, 4, 1, 10, 30),
    ))
    db.add(Exam(title="Unscheduled", duration_minutes=60))
    db.commit()

    response = client.get("/api/admin/schedule/calendar-feed", headers=admin_headers)

    assert response.status_code == 200
    assert response.headers["content-type"].startswith("text/calendar")
    assert "exam-schedule.ics" in response.headers["content-disposition"]
    lines = response.text.split("\r\n")
    assert lines[0] == "BEGIN:VCALENDAR"
    assert lines[-2:] == ["END:VCALENDAR", ""]
    assert lines.count("BEGIN:VEVENT") == 1
    assert "DTSTART:20250401T090000Z" in lines
    assert "DTEND:20250401T103000Z" in lines
    assert "SUMMARY:Finals\\, Round 2" in lines
    assert "DESCRIPTION:Bring\\; pencils\\nand ID" in lines
    assert all(len(line.encode("utf-8")) <= 75 for line in lines)


def test_long_calendar_lines_are_folded(client, db, admin_headers):
    db.add(Exam(
        title="Gyana Spandana " * 10,
        duration_minutes=60,
        scheduled_start=datetime(2025, 4, 1, 9, 0),
        scheduled_end=datetime(2025, 4, 1, 10, 0),
    ))
    db.commit()

    lines = client.get("/api/admin/schedule/calendar-feed", headers=admin_headers).text.split("\r\n")

    summary = lines.index(next(line for line in lines if line.startswith("SUMMARY:")))
    assert lines[summary + 1].startswith(" ")
    assert all(len(line.encode("utf-8")) <= 75 for line in lines)


def test_participant_report(client, db, admin_headers, make_team, make_exam):
    _, p1, _ = make_team()
    exam = make_exam()
    submitted_attempt(db, exam, p1, 2)

    report = client.get(f"/api/admin/participants/{p1.id}/report", headers=admin_headers).json()

    assert report["participant"]["name"] == p1.name
    assert report["stats"]["completedExams"] == 1
    assert report["attempts"][0]["exam_title"] == exam.title
    assert client.get("/api/admin/participants/999/report", headers=admin_headers).status_code == 404


def test_participant_search(client, admin_headers, make_team):
    make_team()
    _, p1, _ = make_team()

    found = client.get("/api/admin/participants", params={"search": p1.email}, headers=admin_headers).json()

    assert [p["id"] for p in found] == [p1.id]
    assert found[0]["team"]["team_code"] == "GS-AA-BB-0002"


def test_admin_role_management(client, db, admin_headers):
    created = client.post("/api/admin/admins", json={"user_id": "coordinator", "name": "Coordinator"},
                          headers=admin_headers)
    assert created.status_code == 201
    assert created.json()["role"] == "admin"
    assert client.post("/api/admin/admins", json={"user_id": "coordinator"}, headers=admin_headers).status_code == 409

    admins = client.get("/api/admin/admins", headers=admin_headers).json()
    assert {a["user_id"] for a in admins} == {ADMIN_USER_ID, "coordinator"}

    assert client.delete(f"/api/admin/admins/{ADMIN_USER_ID}", headers=admin_headers).status_code == 400
    assert client.delete("/api/admin/admins/coordinator", headers=admin_headers).json() == {"success": True}
    assert client.delete("/api/admin/admins/coordinator", headers=admin_headers).status_code == 404
    profile = db.query(UserProfile).filter(UserProfile.user_id == "coordinator").one()
    assert profile.role == UserRole.PARTICIPANT
    assert client.get("/api/admin/stats", headers=auth_headers("coordinator")).status_code == 403
