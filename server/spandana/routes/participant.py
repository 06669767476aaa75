from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from spandana.database import get_db
from spandana.models import AttemptStatus, ExamAttempt, Participant
from spandana.schemas import ParticipantResponse, ProfileUpdateRequest
from spandana.security import get_current_participant
from spandana.services.registration import complete_profile
from spandana.services.scoring import average

router = APIRouter(tags=["Participant"])


@router.get("/me", response_model=ParticipantResponse)
def read_me(participant: Participant = Depends(get_current_participant)):
    return participant


@router.get("/me/dashboard")
def dashboard(
    participant: Participant = Depends(get_current_participant),
    db: Session = Depends(get_db),
):
    """Profile, team-mate and attempt summary for the participant dashboard."""
    attempts = (
        db.query(ExamAttempt)
        .filter(ExamAttempt.participant_id == participant.id)
        .order_by(ExamAttempt.started_at.desc())
        .all()
    )
    submitted = [a for a in attempts if a.status == AttemptStatus.SUBMITTED]
    teammate = next((p for p in participant.team.participants if p.id != participant.id), None)

    return {
        "participant": ParticipantResponse.model_validate(participant),
        "teammate": {"name": teammate.name, "email": teammate.email} if teammate else None,
        "stats": {
            "totalAttempts": len(attempts),
            "completedExams": len(submitted),
            "averageScore": average([a.score or 0 for a in submitted]),
        },
        "recentAttempts": [
            {
                "exam_id": a.exam_id,
                "exam_title": a.exam.title if a.exam else None,
                "status": a.status.value,
                "score": a.score,
                "submitted_at": a.submitted_at,
            }
            for a in attempts[:5]
        ],
    }


@router.put("/me/profile", response_model=ParticipantResponse)
def update_profile(
    request: ProfileUpdateRequest,
    participant: Participant = Depends(get_current_participant),
    db: Session = Depends(get_db),
):
    return complete_profile(db, participant, request)


@router.get("/me/profile/status")
def profile_status(participant: Participant = Depends(get_current_participant)):
    return {"profile_completed": participant.profile_completed}
