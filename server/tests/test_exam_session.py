from datetime import datetime

from conftest import auth_headers, backdate_attempt

from spandana.models import (
    AttemptStatus,
    ExamAnswer,
    ExamAttempt,
    ExamParticipant,
    ExamStatus,
    QuestionSet,
    QuestionSetQuestion,
)
from spandana.services import exam_session


def question_ids(exam):
    return [q.id for q in sorted(exam.questions, key=lambda q: q.order_index)]


def start(client, exam, participant):
    return client.post(f"/api/exams/{exam.id}/start", headers=auth_headers(participant.user_id))


def test_start_hides_answer_key_and_reports_time(client, make_team, make_exam):
    _, p1, _ = make_team()
    exam = make_exam(duration_minutes=20)

    response = start(client, exam, p1)

    assert response.status_code == 200
    body = response.json()
    assert body["attempt"]["status"] == "in_progress"
    assert body["attempt"]["total_questions"] == 3
    assert [q["order_index"] for q in body["questions"]] == [1, 2, 3]
    assert all("correct_answer" not in q for q in body["questions"])
    assert 20 * 60 - 2 <= body["remaining_seconds"] <= 20 * 60
    assert body["answers"] == {}


def test_starting_twice_resumes_the_same_attempt(client, db, make_team, make_exam):
    _, p1, _ = make_team()
    exam = make_exam(duration_minutes=30)

    first = start(client, exam, p1).json()
    attempt = db.get(ExamAttempt, first["attempt"]["id"])
    backdate_attempt(db, attempt, minutes=10)
    second = start(client, exam, p1).json()

    assert second["attempt"]["id"] == first["attempt"]["id"]
    assert db.query(ExamAttempt).count() == 1
    assert abs(second["remaining_seconds"] - 20 * 60) <= 1


def test_autosaved_answers_come_back_on_resume(client, make_team, make_exam):
    _, p1, _ = make_team()
    exam = make_exam()
    qids = question_ids(exam)
    start(client, exam, p1)

    saved = client.put(
        f"/api/exams/{exam.id}/answers",
        json={"answers": {str(qids[0]): "A", str(qids[1]): "D", str(qids[2]): None}},
        headers=auth_headers(p1.user_id),
    )

    assert saved.status_code == 200
    assert saved.json()["saved"] == 2
    resumed = start(client, exam, p1).json()
    assert resumed["answers"] == {str(qids[0]): "A", str(qids[1]): "D"}


def test_saving_answer_for_foreign_question_is_rejected(client, make_team, make_exam):
    _, p1, _ = make_team()
    exam = make_exam()
    other = make_exam(title="Other")
    start(client, exam, p1)

    response = client.put(
        f"/api/exams/{exam.id}/answers",
        json={"answers": {str(question_ids(other)[0]): "A"}},
        headers=auth_headers(p1.user_id),
    )

    assert response.status_code == 400


def test_submit_scores_on_the_server(client, db, make_team, make_exam):
    _, p1, _ = make_team()
    exam = make_exam(answers=("A", "B", "C"), points=[1, 2, 3])
    qids = question_ids(exam)
    headers = auth_headers(p1.user_id)
    start(client, exam, p1)
    client.put(f"/api/exams/{exam.id}/answers", json={"answers": {str(qids[0]): "A"}}, headers=headers)

    response = client.post(
        f"/api/exams/{exam.id}/submit",
        json={"answers": {str(qids[1]): "C", str(qids[2]): "C"}},
        headers=headers,
    )

    assert response.status_code == 200
    body = response.json()
    assert body["status"] == "submitted"
    assert body["score"] == 4
    assert body["correct_answers"] == 2
    assert body["submitted_at"] is not None
    rows = {a.question_id: a for a in db.query(ExamAnswer).all()}
    assert rows[qids[1]].is_correct is False
    assert rows[qids[1]].points_earned == 0
    assert rows[qids[2]].points_earned == 3


def test_submitting_with_no_answers_scores_zero(client, db, make_team, make_exam):
    _, p1, _ = make_team()
    exam = make_exam()
    start(client, exam, p1)

    body = client.post(f"/api/exams/{exam.id}/submit", json={}, headers=auth_headers(p1.user_id)).json()

    assert body["score"] == 0
    assert body["correct_answers"] == 0
    rows = db.query(ExamAnswer).all()
    assert len(rows) == 3
    assert all(r.selected_answer is None and r.is_correct is False for r in rows)


def test_submit_twice_is_a_conflict(client, make_team, make_exam):
    _, p1, _ = make_team()
    exam = make_exam()
    headers = auth_headers(p1.user_id)
    start(client, exam, p1)

    assert client.post(f"/api/exams/{exam.id}/submit", json={}, headers=headers).status_code == 200
    assert client.post(f"/api/exams/{exam.id}/submit", json={}, headers=headers).status_code == 409
    assert start(client, exam, p1).status_code == 409


def test_auto_submit_matches_manual_submit(client, db, make_team, make_exam):
    exam = make_exam(answers=("A", "B", "C"), duration_minutes=10)
    qids = question_ids(exam)
    picks = {str(qids[0]): "A", str(qids[1]): "C"}

    _, manual, timed_out = make_team()
    for participant in (manual, timed_out):
        start(client, exam, participant)
        client.put(f"/api/exams/{exam.id}/answers", json={"answers": picks}, headers=auth_headers(participant.user_id))

    client.post(f"/api/exams/{exam.id}/submit", json={}, headers=auth_headers(manual.user_id))
    late = db.query(ExamAttempt).filter(ExamAttempt.participant_id == timed_out.id).one()
    backdate_attempt(db, late, minutes=11)
    response = start(client, exam, timed_out)

    assert response.status_code == 409
    attempts = {a.participant_id: a for a in db.query(ExamAttempt).all()}
    for a in attempts.values():
        db.refresh(a)
    first, second = attempts[manual.id], attempts[timed_out.id]
    assert (first.status, first.score, first.correct_answers) == (second.status, second.score, second.correct_answers)
    assert second.status == AttemptStatus.SUBMITTED

    def answer_rows(attempt):
        rows = db.query(ExamAnswer).filter(ExamAnswer.attempt_id == attempt.id).all()
        return sorted((r.question_id, r.selected_answer, r.is_correct, r.points_earned) for r in rows)

    assert answer_rows(first) == answer_rows(second)


def test_saving_after_time_up_submits_saved_answers(client, db, make_team, make_exam):
    _, p1, _ = make_team()
    exam = make_exam(answers=("A", "B", "C"), duration_minutes=5)
    qids = question_ids(exam)
    headers = auth_headers(p1.user_id)
    start(client, exam, p1)
    client.put(f"/api/exams/{exam.id}/answers", json={"answers": {str(qids[0]): "A"}}, headers=headers)
    attempt = db.query(ExamAttempt).one()
    backdate_attempt(db, attempt, minutes=6)

    response = client.put(f"/api/exams/{exam.id}/answers", json={"answers": {str(qids[1]): "B"}}, headers=headers)

    assert response.status_code == 409
    db.refresh(attempt)
    assert attempt.status == AttemptStatus.SUBMITTED
    assert attempt.score == 1
    assert attempt.time_taken_minutes == 6


def test_late_submit_beyond_grace_ignores_final_answers(client, db, make_team, make_exam):
    _, p1, _ = make_team()
    exam = make_exam(answers=("A", "B", "C"), duration_minutes=5)
    qids = question_ids(exam)
    start(client, exam, p1)
    backdate_attempt(db, db.query(ExamAttempt).one(), minutes=7)

    response = client.post(
        f"/api/exams/{exam.id}/submit",
        json={"answers": {str(qid): answer for qid, answer in zip(qids, "ABC")}},
        headers=auth_headers(p1.user_id),
    )

    assert response.status_code == 200
    assert response.json()["score"] == 0


def test_unassigned_participant_is_forbidden(client, db, make_team, make_exam):
    _, p1, p2 = make_team()
    exam = make_exam()
    db.add(ExamParticipant(exam_id=exam.id, participant_id=p1.id))
    db.commit()

    assert start(client, exam, p2).status_code == 403
    assert start(client, exam, p1).status_code == 200


def test_draft_exam_cannot_be_started(client, make_team, make_exam):
    _, p1, _ = make_team()
    exam = make_exam(status=ExamStatus.DRAFT)

    response = start(client, exam, p1)

    assert response.status_code == 403


def test_exam_without_questions_cannot_be_started(client, make_team, make_exam):
    _, p1, _ = make_team()
    exam = make_exam(answers=())

    response = start(client, exam, p1)

    assert response.status_code == 400
    assert response.json()["detail"] == "No questions found for this exam"


def test_unknown_exam_is_not_found(client, make_team):
    _, p1, _ = make_team()
    assert client.post("/api/exams/999/start", headers=auth_headers(p1.user_id)).status_code == 404


def test_exam_list_shows_attempt_state(client, make_team, make_exam):
    _, p1, _ = make_team()
    exam = make_exam()
    make_exam(title="Not yet", status=ExamStatus.DRAFT)
    start(client, exam, p1)
    client.post(f"/api/exams/{exam.id}/submit", json={}, headers=auth_headers(p1.user_id))

    listing = client.get("/api/exams", headers=auth_headers(p1.user_id)).json()

    assert [e["title"] for e in listing] == [exam.title]
    assert listing[0]["attempt_status"] == "submitted"
    assert listing[0]["has_attempted"] is True
    assert listing[0]["can_take"] is True


def test_results_include_percentage_and_pass_mark(client, make_team, make_exam):
    _, p1, _ = make_team()
    exam = make_exam(answers=("A", "B", "C"), points=[1, 1, 2], passing_score=2)
    qids = question_ids(exam)
    headers = auth_headers(p1.user_id)
    start(client, exam, p1)
    client.post(f"/api/exams/{exam.id}/submit", json={"answers": {str(qids[2]): "C"}}, headers=headers)

    body = client.get(f"/api/exams/{exam.id}/results", headers=headers).json()

    assert body["total_points"] == 4
    assert body["percentage"] == 50
    assert body["passed"] is True
    assert [a["correct_answer"] for a in body["answers"]] == ["A", "B", "C"]


def test_results_before_submitting_are_not_found(client, make_team, make_exam):
    _, p1, _ = make_team()
    exam = make_exam()
    start(client, exam, p1)

    assert client.get(f"/api/exams/{exam.id}/results", headers=auth_headers(p1.user_id)).status_code == 404


def test_deleting_a_question_keeps_answers_and_drops_set_membership(client, db, admin_headers, make_team, make_exam):
    _, p1, _ = make_team()
    exam = make_exam()
    qids = question_ids(exam)
    question_set = QuestionSet(name="Heritage", total_questions=2)
    db.add(question_set)
    db.flush()
    db.add_all([
        QuestionSetQuestion(question_set_id=question_set.id, question_id=qids[0], order_index=1),
        QuestionSetQuestion(question_set_id=question_set.id, question_id=qids[1], order_index=2),
    ])
    db.commit()
    start(client, exam, p1)
    client.post(f"/api/exams/{exam.id}/submit", json={"answers": {str(qids[0]): "A"}}, headers=auth_headers(p1.user_id))

    response = client.delete(f"/api/admin/questions/{qids[0]}", headers=admin_headers)

    assert response.status_code == 200
    assert db.query(ExamAnswer).filter(ExamAnswer.question_id == qids[0]).count() == 1
    assert db.query(QuestionSetQuestion).filter(QuestionSetQuestion.question_id == qids[0]).count() == 0
    db.refresh(question_set)
    assert question_set.total_questions == 1
    results = client.get(f"/api/exams/{exam.id}/results", headers=auth_headers(p1.user_id)).json()
    assert results["answers"][0]["question_text"] is None


def test_scheduled_exam_is_open_only_inside_its_window(make_exam):
    exam = make_exam(
        status=ExamStatus.SCHEDULED,
        scheduled_start=datetime(2025, 1, 10, 9, 0),
        scheduled_end=datetime(2025, 1, 10, 11, 0),
    )

    assert exam_session.can_take_exam(exam, datetime(2025, 1, 10, 10, 0)) is True
    assert exam_session.can_take_exam(exam, datetime(2025, 1, 10, 8, 59)) is False
    assert exam_session.can_take_exam(exam, datetime(2025, 1, 10, 11, 1)) is False
