import asyncio
import json
import logging
from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException, Request
from fastapi.responses import Response, StreamingResponse
from sqlalchemy.orm import Session, joinedload

from spandana.config import settings
from spandana.database import get_db
from spandana.models import AttemptStatus, ExamAttempt, Participant, UserProfile, UserRole
from spandana.schemas import (
    AdminResponse,
    AdminRoleRequest,
    AssistantRequest,
    AssistantResponse,
    ParticipantResponse,
    ScheduleConflictRequest,
)
from spandana.security import CurrentUser, require_admin
from spandana.services import analytics
from spandana.services.assistant import AssistantError, assistant_service
from spandana.services.scoring import average
from spandana.services.sse_manager import ALL_EXAMS, sse_manager

logger = logging.getLogger(__name__)

router = APIRouter(tags=["Admin"])


# =============================================================================
# Dashboard & analytics
# =============================================================================

@router.get("/stats")
def dashboard_stats(db: Session = Depends(get_db), admin: CurrentUser = Depends(require_admin)):
    return analytics.dashboard_stats(db)


@router.get("/recent-sessions")
def recent_sessions(
    limit: int = 10,
    db: Session = Depends(get_db),
    admin: CurrentUser = Depends(require_admin),
):
    """Latest attempts for the dashboard activity table."""
    attempts = (
        db.query(ExamAttempt)
        .options(joinedload(ExamAttempt.exam), joinedload(ExamAttempt.participant))
        .order_by(ExamAttempt.started_at.desc(), ExamAttempt.id.desc())
        .limit(limit)
        .all()
    )
    return [
        {
            "attempt_id": a.id,
            "exam_id": a.exam_id,
            "exam_title": a.exam.title if a.exam else None,
            "participant_id": a.participant_id,
            "participant_name": a.participant.name if a.participant else None,
            "status": a.status.value,
            "score": a.score,
            "started_at": a.started_at,
            "submitted_at": a.submitted_at,
        }
        for a in attempts
    ]


@router.get("/analytics")
def exam_summary(
    exam_id: Optional[int] = None,
    db: Session = Depends(get_db),
    admin: CurrentUser = Depends(require_admin),
):
    """Attempt summary for one exam, or the headline numbers without one."""
    if exam_id is None:
        return analytics.dashboard_stats(db)
    attempts = db.query(ExamAttempt).filter(ExamAttempt.exam_id == exam_id).all()
    submitted = [a.score or 0 for a in attempts if a.status == AttemptStatus.SUBMITTED]
    return {
        "totalAttempts": len(attempts),
        "submittedAttempts": len(submitted),
        "averageScore": average(submitted),
    }


@router.get("/analytics/questions")
def question_analytics(db: Session = Depends(get_db), admin: CurrentUser = Depends(require_admin)):
    return analytics.question_analytics(db)


@router.get("/leaderboard")
def leaderboard(
    exam_id: Optional[int] = None,
    db: Session = Depends(get_db),
    admin: CurrentUser = Depends(require_admin),
):
    return analytics.leaderboard(db, exam_id)


# =============================================================================
# Schedule
# =============================================================================

@router.post("/schedule/conflicts")
def schedule_conflicts(
    request: ScheduleConflictRequest,
    db: Session = Depends(get_db),
    admin: CurrentUser = Depends(require_admin),
):
    if request.end_time <= request.start_time:
        raise HTTPException(status_code=400, detail="end_time must be after start_time")
    return {"conflicts": analytics.schedule_conflicts(db, request.start_time, request.end_time, request.exam_id)}


@router.get("/schedule/calendar-feed")
def calendar_feed(db: Session = Depends(get_db), admin: CurrentUser = Depends(require_admin)):
    return Response(
        content=analytics.calendar_feed(db, settings.app_name),
        media_type="text/calendar",
        headers={"Content-Disposition": 'attachment; filename="exam-schedule.ics"'},
    )


# =============================================================================
# Participants
# =============================================================================

@router.get("/participants", response_model=List[ParticipantResponse])
def list_participants(
    search: Optional[str] = None,
    db: Session = Depends(get_db),
    admin: CurrentUser = Depends(require_admin),
):
    query = db.query(Participant).options(joinedload(Participant.team))
    if search:
        pattern = f"%{search}%"
        query = query.filter(
            Participant.name.ilike(pattern)
            | Participant.email.ilike(pattern)
            | Participant.school_name.ilike(pattern)
        )
    return query.order_by(Participant.created_at.desc(), Participant.id.desc()).all()


@router.get("/participants/{participant_id}/report")
def participant_report(
    participant_id: int,
    db: Session = Depends(get_db),
    admin: CurrentUser = Depends(require_admin),
):
    report = analytics.participant_report(db, participant_id)
    if report is None:
        raise HTTPException(status_code=404, detail="Participant not found")
    return report


# =============================================================================
# Admin management
# =============================================================================

@router.get("/admins", response_model=List[AdminResponse])
def list_admins(db: Session = Depends(get_db), admin: CurrentUser = Depends(require_admin)):
    return (
        db.query(UserProfile)
        .filter(UserProfile.role == UserRole.ADMIN)
        .order_by(UserProfile.created_at, UserProfile.id)
        .all()
    )


@router.post("/admins", response_model=AdminResponse, status_code=201)
def add_admin(
    request: AdminRoleRequest,
    db: Session = Depends(get_db),
    admin: CurrentUser = Depends(require_admin),
):
    profile = db.query(UserProfile).filter(UserProfile.user_id == request.user_id).first()
    if profile is None:
        profile = UserProfile(user_id=request.user_id, name=request.name)
        db.add(profile)
    elif profile.role == UserRole.ADMIN:
        raise HTTPException(status_code=409, detail="User is already an admin")

    profile.role = UserRole.ADMIN
    if request.name:
        profile.name = request.name
    db.commit()
    db.refresh(profile)
    logger.info("🔑 %s granted admin role by %s", profile.user_id, admin.user_id)
    return profile


@router.delete("/admins/{user_id}")
def remove_admin(user_id: str, db: Session = Depends(get_db), admin: CurrentUser = Depends(require_admin)):
    if user_id == admin.user_id:
        raise HTTPException(status_code=400, detail="You cannot remove your own admin role")
    profile = db.query(UserProfile).filter(UserProfile.user_id == user_id).first()
    if profile is None or profile.role != UserRole.ADMIN:
        raise HTTPException(status_code=404, detail="Admin not found")

    profile.role = UserRole.PARTICIPANT
    db.commit()
    logger.info("🔑 %s admin role removed by %s", user_id, admin.user_id)
    return {"success": True}


# =============================================================================
# Live activity feed
# =============================================================================

@router.get("/events")
async def activity_events(
    request: Request,
    exam_id: Optional[int] = None,
    admin: CurrentUser = Depends(require_admin),
):
    """
    SSE stream of exam activity (attempts started and submitted, status
    changes). Without ``exam_id`` every exam's events are delivered.
    """
    channel = str(exam_id) if exam_id is not None else ALL_EXAMS

    async def event_generator():
        queue = await sse_manager.connect(channel)
        try:
            while True:
                # Check for client disconnect
                if await request.is_disconnected():
                    break

                # Wait for message with timeout
                try:
                    data = await asyncio.wait_for(queue.get(), timeout=30.0)
                    yield f"data: {json.dumps(data, default=str)}\n\n"
                except asyncio.TimeoutError:
                    # Send ping to keep connection alive
                    yield ": ping\n\n"
        except asyncio.CancelledError:
            pass
        finally:
            sse_manager.disconnect(channel, queue)

    return StreamingResponse(event_generator(), media_type="text/event-stream")


# =============================================================================
# Assistant
# =============================================================================

@router.post("/assistant", response_model=AssistantResponse)
def assistant(
    request: AssistantRequest,
    db: Session = Depends(get_db),
    admin: CurrentUser = Depends(require_admin),
):
    """Answer a free-text question about participants, exams, teams or questions."""
    if not request.query.strip():
        raise HTTPException(status_code=400, detail="Query is required")

    history = [m.model_dump() for m in request.conversation_history]
    try:
        return assistant_service.answer(db, request.query, history)
    except AssistantError as e:
        raise HTTPException(status_code=500, detail=str(e))
