from conftest import auth_headers

from spandana.models import AttemptStatus, ExamAttempt


def test_me_returns_participant_with_team(client, make_team):
    team, p1, _ = make_team("Konark Minds")

    body = client.get("/api/me", headers=auth_headers(p1.user_id)).json()

    assert body["email"] == p1.email
    assert body["team"] == {"id": team.id, "team_name": "Konark Minds", "team_code": team.team_code}


def test_unknown_user_has_no_participant_profile(client):
    assert client.get("/api/me", headers=auth_headers("nobody")).status_code == 404


def test_expired_or_forged_tokens_are_rejected(client):
    assert client.get("/api/me", headers={"Authorization": "Bearer not-a-token"}).status_code == 401


def test_dashboard_shows_teammate_and_stats(client, db, make_team, make_exam):
    _, p1, p2 = make_team()
    exam = make_exam()
    db.add(ExamAttempt(exam_id=exam.id, participant_id=p1.id, status=AttemptStatus.SUBMITTED,
                       score=3, total_questions=3))
    db.commit()

    body = client.get("/api/me/dashboard", headers=auth_headers(p1.user_id)).json()

    assert body["teammate"] == {"name": p2.name, "email": p2.email}
    assert body["stats"] == {"totalAttempts": 1, "completedExams": 1, "averageScore": 3}
    assert body["recentAttempts"][0]["exam_title"] == exam.title


def test_profile_completion_writes_only_filled_fields(client, db, make_team):
    _, p1, _ = make_team()
    p1.parent_name = "Original Parent"
    db.commit()
    headers = auth_headers(p1.user_id)
    assert client.get("/api/me/profile/status", headers=headers).json() == {"profile_completed": False}

    response = client.put(
        "/api/me/profile",
        json={"address": "  12 Temple Road, Puri  ", "parent_name": "   ", "date_of_birth": "2009-05-17"},
        headers=headers,
    )

    assert response.status_code == 200
    body = response.json()
    assert body["address"] == "12 Temple Road, Puri"
    assert body["parent_name"] == "Original Parent"
    assert body["date_of_birth"] == "2009-05-17"
    assert body["profile_completed"] is True
    assert client.get("/api/me/profile/status", headers=headers).json() == {"profile_completed": True}
